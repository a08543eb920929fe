# -*- coding: utf-8 -*-
"""
配置管理

默认值 → YAML 配置文件（可选）→ 环境变量，后者覆盖前者
"""
import logging
import os
from dataclasses import dataclass, field, fields, is_dataclass
from pathlib import Path
from typing import Any, Optional

import yaml

logger = logging.getLogger('config')


@dataclass
class MemoryConfig:
    """记忆系统配置"""
    retention_days: int = 30             # 超过该天数的低重要度记忆会被归档
    consolidate_threshold: int = 1000    # 活跃记忆超过该数量时自动整合
    similarity_threshold: float = 0.8    # Jaccard 相似度阈值
    related_limit: int = 5               # 关联记忆最多保留数量
    search_limit: int = 20               # 搜索结果上限


@dataclass
class ReasoningConfig:
    """自主思考配置"""
    think_interval: float = 30.0         # 周期思考间隔（秒）
    window_size: int = 50                # 观察窗口：最近 N 条记忆
    window_seconds: int = 3600           # 观察窗口：最近多少秒
    interaction_threshold: int = 5       # 高交互阈值（每小时）
    question_repeat_threshold: int = 3   # 同一话题未解答问题出现次数
    active_hours: tuple[int, int] = (9, 17)
    detector_cooldown_seconds: float = 300.0


@dataclass
class SchedulerConfig:
    """动作调度配置"""
    tick_seconds: float = 5.0
    history_limit: int = 500
    # None 表示依赖缺失时永久阻塞；设置后超时即失败
    dependency_timeout_seconds: Optional[float] = None


@dataclass
class ProviderConfig:
    """AI 提供方配置"""
    ollama_enabled: bool = True
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "llama3.1"
    gemini_enabled: bool = True
    gemini_api_key: Optional[str] = None
    gemini_base_url: str = "https://generativelanguage.googleapis.com/v1beta"
    gemini_model: str = "gemini-1.5-flash"
    probe_timeout: float = 3.0
    request_timeout: float = 30.0
    reprobe_interval: float = 300.0      # 重新探测的最小间隔（秒）


@dataclass
class AppConfig:
    """应用配置"""
    data_dir: str = "./data"
    assistant_name: str = "NOVA"
    autonomous: bool = True
    status_interval: float = 60.0
    maintenance_interval: float = 3600.0
    log_level: str = "INFO"
    memory: MemoryConfig = field(default_factory=MemoryConfig)
    reasoning: ReasoningConfig = field(default_factory=ReasoningConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    providers: ProviderConfig = field(default_factory=ProviderConfig)


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.lower() in ("1", "true", "yes", "on")


def _apply_overrides(target: Any, data: dict[str, Any]) -> None:
    """把字典中的值写入 dataclass，嵌套的 dataclass 递归处理"""
    known = {f.name for f in fields(target)}
    for key, value in data.items():
        if key not in known:
            logger.warning(f"忽略未知配置项: {key}")
            continue
        current = getattr(target, key)
        if is_dataclass(current):
            if isinstance(value, dict):
                _apply_overrides(current, value)
            else:
                logger.warning(f"配置项 {key} 应为映射，已忽略")
        elif isinstance(current, tuple) and isinstance(value, list):
            setattr(target, key, tuple(value))
        else:
            setattr(target, key, value)


def load_config(config_path: Optional[str] = None) -> AppConfig:
    """
    加载配置

    Args:
        config_path: YAML 配置文件路径（可选，也可通过 NOVA_CONFIG 指定）

    Returns:
        AppConfig 实例
    """
    config = AppConfig()

    path = config_path or os.environ.get('NOVA_CONFIG')
    if path:
        config_file = Path(path)
        if config_file.exists():
            data = yaml.safe_load(config_file.read_text(encoding='utf-8')) or {}
            if isinstance(data, dict):
                _apply_overrides(config, data)
                logger.info(f"已加载配置文件: {config_file}")
            else:
                logger.warning(f"配置文件顶层必须是映射，已忽略: {config_file}")
        else:
            logger.warning(f"配置文件不存在: {config_file}")

    config.data_dir = os.environ.get('DATA_DIR', config.data_dir)
    config.log_level = os.environ.get('LOG_LEVEL', config.log_level)
    config.autonomous = _env_bool('NOVA_AUTONOMOUS', config.autonomous)

    providers = config.providers
    providers.ollama_base_url = os.environ.get('OLLAMA_BASE_URL', providers.ollama_base_url)
    providers.ollama_model = os.environ.get('OLLAMA_MODEL', providers.ollama_model)
    providers.ollama_enabled = _env_bool('OLLAMA_ENABLED', providers.ollama_enabled)
    providers.gemini_api_key = os.environ.get('GEMINI_API_KEY') or providers.gemini_api_key
    providers.gemini_model = os.environ.get('GEMINI_MODEL', providers.gemini_model)
    providers.gemini_enabled = _env_bool('GEMINI_ENABLED', providers.gemini_enabled)

    timeout = os.environ.get('DEPENDENCY_TIMEOUT_SECONDS')
    if timeout:
        config.scheduler.dependency_timeout_seconds = float(timeout)

    return config
