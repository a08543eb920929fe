# -*- coding: utf-8 -*-
"""
JSON 文件存储

每个集合一个文件：{data_dir}/{collection}.json
每次保存都整体序列化整个集合，写入延迟随集合大小线性增长，
只适合小规模数据；更大规模需要改成追加日志或增量写入。
"""
import asyncio
import json
import logging
import os
from pathlib import Path

from .base import PersistencePort, Record

logger = logging.getLogger('storage.json')


class JsonFileStore(PersistencePort):
    """
    JSON 文件持久化

    特点：
    - 零依赖，纯文件操作
    - 写入先落临时文件再替换，避免写到一半的文件
    - 文件损坏时按空集合处理并记录警告
    """

    def __init__(self, data_dir: str):
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        logger.info(f"JsonFileStore 初始化: {self.data_dir}")

    def _path(self, collection: str) -> Path:
        return self.data_dir / f"{collection}.json"

    async def load(self, collection: str) -> list[Record]:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, self._read, collection)

    async def save(self, collection: str, records: list[Record]) -> None:
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._write, collection, records)

    def _read(self, collection: str) -> list[Record]:
        """读取集合文件"""
        path = self._path(collection)
        if not path.exists():
            return []

        try:
            with open(path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"加载集合失败: {collection}: {e}，按空集合处理")
            return []

        if not isinstance(data, list):
            logger.warning(f"集合格式错误: {collection}（应为数组），按空集合处理")
            return []

        records = [r for r in data if isinstance(r, dict)]
        if len(records) != len(data):
            logger.warning(f"集合 {collection} 中有 {len(data) - len(records)} 条非法记录被忽略")
        return records

    def _write(self, collection: str, records: list[Record]) -> None:
        """整体写入集合文件"""
        path = self._path(collection)
        tmp_path = path.with_suffix('.json.tmp')
        with open(tmp_path, 'w', encoding='utf-8') as f:
            json.dump(records, f, ensure_ascii=False, indent=2)
        os.replace(tmp_path, path)
        logger.debug(f"集合已保存: {collection} ({len(records)} 条)")
