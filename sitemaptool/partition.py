"""Partition Writer：读写单个分片（urlset 文档），并决定何时滚动到新分片。

分片命名为 `{prefix}_{n}.xml`，n 从 1 开始单调递增。一个分片达到容量（条数或字节数）
后即冻结，之后的条目写入新分片，不会回填旧分片。
"""
import logging
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Union

from sitemaptool.errors import PartitionFull, PartitionIOError
from sitemaptool.fsutil import atomic_write, utcnow
from sitemaptool.storage import EntryStore, PartitionInfo

MAX_URLS_PER_SITEMAP = 50000
MAX_SITEMAP_SIZE = 50 * 1024 * 1024  # 50MB
SITEMAP_NAMESPACE = "http://www.sitemaps.org/schemas/sitemap/0.9"
XML_HEADER = '<?xml version="1.0" encoding="UTF-8"?>\n'

CHANGEFREQS = ("always", "hourly", "daily", "weekly", "monthly", "yearly", "never")

# XML 1.0 Char 产生式之外的字符，ElementTree 会原样写出导致文档不合法
_INVALID_XML_CHAR_RE = re.compile("[^\t\n\r\x20-\ud7ff\ue000-\ufffd\U00010000-\U0010ffff]")

logger = logging.getLogger("sitemaptool.partition")


@dataclass
class SitemapEntry:
    loc: str
    lastmod: str = ""
    changefreq: str = ""
    priority: Optional[float] = None


def find_invalid_xml_char(text: str) -> Optional[str]:
    """返回第一个不能出现在 XML 1.0 文档中的字符，没有则返回 None。"""
    match = _INVALID_XML_CHAR_RE.search(text)
    return match.group(0) if match else None


def _local_name(tag: str) -> str:
    return tag.rsplit("}", 1)[-1]


def _child_text(elem: ET.Element, name: str) -> str:
    for child in elem:
        if _local_name(child.tag) == name:
            return (child.text or "").strip()
    return ""


def parse_urlset(data: Union[str, bytes]) -> List[SitemapEntry]:
    """解析 urlset 文档。命名空间可有可无。"""
    root = ET.fromstring(data)
    if _local_name(root.tag) != "urlset":
        raise ValueError(f"根元素应为 urlset，实际为 {_local_name(root.tag)}")

    entries = []
    for node in root:
        if _local_name(node.tag) != "url":
            continue
        priority = _child_text(node, "priority")
        entries.append(
            SitemapEntry(
                loc=_child_text(node, "loc"),
                lastmod=_child_text(node, "lastmod"),
                changefreq=_child_text(node, "changefreq"),
                priority=float(priority) if priority else None,
            )
        )
    return entries


def render_urlset(entries: List[SitemapEntry]) -> str:
    root = ET.Element("urlset", {"xmlns": SITEMAP_NAMESPACE})
    for entry in entries:
        node = ET.SubElement(root, "url")
        ET.SubElement(node, "loc").text = entry.loc
        if entry.lastmod:
            ET.SubElement(node, "lastmod").text = entry.lastmod
        if entry.changefreq:
            ET.SubElement(node, "changefreq").text = entry.changefreq
        if entry.priority is not None:
            ET.SubElement(node, "priority").text = f"{entry.priority:g}"
    ET.indent(root, space="  ")
    return XML_HEADER + ET.tostring(root, encoding="unicode") + "\n"


class PartitionWriter:
    def __init__(
        self,
        store: EntryStore,
        output_dir: Union[str, Path],
        prefix: str = "sitemap",
        capacity: int = MAX_URLS_PER_SITEMAP,
        max_bytes: int = MAX_SITEMAP_SIZE,
    ):
        self.store = store
        self.output_dir = Path(output_dir)
        self.prefix = prefix
        self.capacity = capacity
        self.max_bytes = max_bytes

    def partition_path(self, name: str) -> Path:
        return self.output_dir / name

    def needs_new_partition(self) -> bool:
        current = self.store.current
        if current is None:
            return True
        return current.url_count >= self.capacity

    def current_partition_for_write(self) -> str:
        """返回当前可写分片名；没有或已满时先创建新分片（仅修改内存中的数据库）。

        检查与创建本身不是跨进程原子的，调用方需持有 `FileLock`。
        """
        if self.needs_new_partition():
            return self.create_partition()
        return self.store.current_sitemap

    def create_partition(self) -> str:
        filename = f"{self.prefix}_{len(self.store.sitemaps) + 1}.xml"
        self.store.sitemaps.append(PartitionInfo(filename=filename, url_count=0, last_modified=utcnow()))
        self.store.current_sitemap = filename
        logger.info(f"创建新分片: {filename}")
        return filename

    def load(self, name: str) -> List[SitemapEntry]:
        path = self.partition_path(name)
        if not path.exists():
            return []
        try:
            return parse_urlset(path.read_bytes())
        except OSError as e:
            raise PartitionIOError(f"无法读取分片 {path}: {e}") from e
        except (ET.ParseError, ValueError) as e:
            raise PartitionIOError(f"分片 XML 无效 {path}: {e}") from e

    def save(self, name: str, entries: List[SitemapEntry]) -> None:
        self._write(name, render_urlset(entries))

    def _write(self, name: str, data: str) -> None:
        path = self.partition_path(name)
        try:
            atomic_write(path, data)
        except OSError as e:
            raise PartitionIOError(f"无法写入分片 {path}: {e}") from e

    def append(self, name: str, entry: SitemapEntry) -> None:
        """追加一条并原子写回，同时更新内存中该分片的元数据（数据库由调用方保存）。

        写入后若超过字节上限则什么都不写，抛出 `PartitionFull`。
        """
        info = self.store.find(name)
        if info is None:
            raise PartitionIOError(f"数据库中没有分片 {name}")

        entries = self.load(name)
        entries.append(entry)
        data = render_urlset(entries)
        size = len(data.encode("utf-8"))
        if size > self.max_bytes:
            raise PartitionFull(f"分片 {name} 写入后为 {size} 字节，超过上限 {self.max_bytes}")

        self._write(name, data)
        info.url_count = len(entries)
        info.last_modified = utcnow()
        logger.debug(f"已写入 {entry.loc} -> {name} ({info.url_count}/{self.capacity})")
