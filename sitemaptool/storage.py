"""Entry Store：记录所有已收录 URL 的哈希以及每个分片的元数据。

数据库是输出目录下的 `.sitemaptool_db.json`，格式与旧版工具兼容：

    {
      "sitemaps": [{"filename": ..., "url_count": ..., "last_modified": ...}],
      "url_hashes": {"<sha256 hex>": true},
      "current_sitemap": "sitemap_1.xml",
      "last_updated": "2024-01-01T00:00:00+00:00"
    }

每次调用加载一次，在内存中修改，最后通过原子替换整体写回。
"""
import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Set, Union

from sitemaptool.errors import StoreIOError
from sitemaptool.fsutil import atomic_write, format_timestamp, parse_timestamp, utcnow

DB_FILENAME = ".sitemaptool_db.json"

logger = logging.getLogger("sitemaptool.store")


@dataclass
class PartitionInfo:
    filename: str
    url_count: int = 0
    last_modified: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "filename": self.filename,
            "url_count": self.url_count,
            "last_modified": format_timestamp(self.last_modified),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "PartitionInfo":
        return cls(
            filename=str(data["filename"]),
            url_count=int(data.get("url_count", 0)),
            last_modified=parse_timestamp(data["last_modified"]) if data.get("last_modified") else utcnow(),
        )


class EntryStore:
    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.sitemaps: List[PartitionInfo] = []
        self.url_hashes: Set[str] = set()
        self.current_sitemap: str = ""
        self.last_updated: datetime = utcnow()

    @classmethod
    def load(cls, path: Union[str, Path]) -> "EntryStore":
        """加载数据库；文件不存在时创建一个空库并立即落盘。"""
        store = cls(path)
        if not store.path.exists():
            logger.info(f"数据库不存在，创建新库: {store.path}")
            store.save()
            return store

        try:
            with store.path.open("r", encoding="utf-8") as f:
                data = json.load(f)
        except OSError as e:
            raise StoreIOError(f"无法读取数据库 {store.path}: {e}") from e
        except json.JSONDecodeError as e:
            raise StoreIOError(f"数据库 JSON 已损坏 {store.path}: {e}") from e

        try:
            store._apply(data)
        except (KeyError, TypeError, ValueError) as e:
            raise StoreIOError(f"数据库结构无效 {store.path}: {e}") from e
        logger.debug(f"已加载数据库: {len(store.sitemaps)} 个分片, {len(store.url_hashes)} 条 URL")
        return store

    def _apply(self, data: Dict[str, Any]) -> None:
        if not isinstance(data, dict):
            raise TypeError("顶层必须是 JSON 对象")
        self.sitemaps = [PartitionInfo.from_dict(item) for item in data.get("sitemaps") or []]
        # 旧库里可能出现值为 false 的键，只保留 true
        hashes = data.get("url_hashes") or {}
        if not isinstance(hashes, dict):
            raise TypeError("url_hashes 必须是 JSON 对象")
        self.url_hashes = {h for h, present in hashes.items() if present}
        self.current_sitemap = data.get("current_sitemap") or ""
        if data.get("last_updated"):
            self.last_updated = parse_timestamp(data["last_updated"])

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sitemaps": [info.to_dict() for info in self.sitemaps],
            "url_hashes": {h: True for h in sorted(self.url_hashes)},
            "current_sitemap": self.current_sitemap,
            "last_updated": format_timestamp(self.last_updated),
        }

    def save(self) -> None:
        """刷新 last_updated 后原子写回。"""
        self.last_updated = utcnow()
        data = json.dumps(self.to_dict(), ensure_ascii=False, indent=2)
        try:
            atomic_write(self.path, data)
        except OSError as e:
            raise StoreIOError(f"无法写入数据库 {self.path}: {e}") from e

    def is_seen(self, url_hash: str) -> bool:
        return url_hash in self.url_hashes

    def add_hash(self, url_hash: str) -> None:
        self.url_hashes.add(url_hash)

    def find(self, filename: str) -> Optional[PartitionInfo]:
        for info in self.sitemaps:
            if info.filename == filename:
                return info
        return None

    @property
    def current(self) -> Optional[PartitionInfo]:
        if not self.current_sitemap:
            return None
        return self.find(self.current_sitemap)

    @property
    def total_urls(self) -> int:
        return len(self.url_hashes)
