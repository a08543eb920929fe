#!/usr/bin/env python3
# -*- coding: utf-8 -*-
"""
NOVA Assistant - 主入口

控制台通道：把每行输入交给 AssistantCore.process_command
"""
import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path

# 添加项目根目录到路径，使 src 作为包可用
sys.path.insert(0, str(Path(__file__).parent.parent))

# 加载 .env 文件
from dotenv import load_dotenv
load_dotenv(Path(__file__).parent.parent / '.env')

logger = logging.getLogger('nova')

from src.bus import Event, EventKind
from src.config import AppConfig, load_config
from src.core.assistant import AssistantCore
from src.core.context import CoreContext


def setup_logging(level: str = "INFO", data_dir: str = "data"):
    """设置日志"""
    Path(data_dir).mkdir(parents=True, exist_ok=True)

    # 根日志级别
    log_level = getattr(logging, level.upper(), logging.INFO)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    # 控制台处理器 - 只显示 WARNING 及以上级别
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.WARNING)
    console_handler.setFormatter(logging.Formatter('%(levelname)s - %(message)s'))

    # 文件处理器 - 记录所有配置级别及以上的日志
    file_handler = logging.FileHandler(Path(data_dir) / 'app.log', encoding='utf-8')
    file_handler.setLevel(log_level)
    file_handler.setFormatter(logging.Formatter(
        '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    ))

    root_logger.addHandler(console_handler)
    root_logger.addHandler(file_handler)

    # 降低第三方库和高频模块的日志级别
    noisy_loggers = [
        'aiohttp',
        'asyncio',
        'bus',
        'memory.retrieval',
        'schedule.timers',
    ]
    for logger_name in noisy_loggers:
        logging.getLogger(logger_name).setLevel(logging.WARNING)


class ConsoleChannel:
    """控制台通道（开发用）"""

    def __init__(self, assistant: AssistantCore, conversation_id: str = "console", verbose: bool = False):
        self.assistant = assistant
        self.conversation_id = conversation_id
        self.verbose = verbose
        if verbose:
            assistant.context.bus.subscribe(EventKind.THOUGHT_GENERATED, self._on_thought)
            assistant.context.bus.subscribe(EventKind.ACTION_UPDATED, self._on_action)

    def _print_banner(self):
        name = self.assistant.config.assistant_name
        print("=" * 50)
        print(f"🤖 {name} - 输入 /quit 退出，/status 查看状态")
        print(f"   提供方: {self.assistant.context.router.preferred}")
        print("=" * 50)

    def _on_thought(self, event: Event):
        print(f"\n💭 {event.payload.content}")

    def _on_action(self, event: Event):
        action = event.payload
        print(f"\n⚙️  [{action.status.value}] {action.description}")

    async def run(self):
        """交互式对话模式"""
        self._print_banner()
        loop = asyncio.get_running_loop()

        while True:
            try:
                user_input = (await loop.run_in_executor(None, input, "👤 你: ")).strip()
            except (EOFError, KeyboardInterrupt):
                print("\n👋 再见！")
                break

            if not user_input:
                continue
            if user_input.lower() in ('/quit', '/q', 'exit'):
                print("👋 再见！")
                break
            if user_input.lower() in ('/status', '/s'):
                user_input = "status"

            reply = await self.assistant.process_command(user_input, self.conversation_id)
            print(f"🤖 {self.assistant.config.assistant_name}: {reply}\n")


async def async_main():
    """异步主函数"""
    parser = argparse.ArgumentParser(description='NOVA Assistant')
    parser.add_argument('-c', '--command', help='执行单次命令后退出')
    parser.add_argument('--config', default=os.getenv('NOVA_CONFIG'), help='YAML 配置文件')
    parser.add_argument('--data-dir', help='数据目录')
    parser.add_argument('--log-level', help='日志级别')
    parser.add_argument('--no-autonomous', action='store_true', help='关闭自主思考')
    parser.add_argument('-v', '--verbose', action='store_true', help='显示想法和动作事件')
    args = parser.parse_args()

    # 优先级：命令行参数 > 环境变量 > 配置文件 > 默认值
    config: AppConfig = load_config(args.config)
    if args.data_dir:
        config.data_dir = args.data_dir
    if args.log_level:
        config.log_level = args.log_level
    if args.no_autonomous:
        config.autonomous = False

    setup_logging(config.log_level, config.data_dir)

    assistant = AssistantCore(CoreContext.build(config))

    try:
        if args.command:
            await assistant.initialize()
            print(await assistant.process_command(args.command))
        else:
            await assistant.start()
            await ConsoleChannel(assistant, verbose=args.verbose).run()
    finally:
        await assistant.stop()


def main():
    """主入口"""
    asyncio.run(async_main())


if __name__ == "__main__":
    main()
