"""Index Generator：根据数据库中的分片列表整体重建 sitemap_index.xml。"""
import logging
import xml.etree.ElementTree as ET
from pathlib import Path
from typing import Union

from sitemaptool.errors import PartitionIOError
from sitemaptool.fsutil import atomic_write, format_date
from sitemaptool.partition import SITEMAP_NAMESPACE, XML_HEADER
from sitemaptool.storage import EntryStore

INDEX_FILENAME = "sitemap_index.xml"

logger = logging.getLogger("sitemaptool.index")


def partition_url(base_url: str, filename: str) -> str:
    return f"{base_url.rstrip('/')}/{filename}"


def index_url(base_url: str) -> str:
    return partition_url(base_url, INDEX_FILENAME)


def render_index(store: EntryStore, base_url: str) -> str:
    root = ET.Element("sitemapindex", {"xmlns": SITEMAP_NAMESPACE})
    for info in store.sitemaps:
        node = ET.SubElement(root, "sitemap")
        ET.SubElement(node, "loc").text = partition_url(base_url, info.filename)
        ET.SubElement(node, "lastmod").text = format_date(info.last_modified)
    ET.indent(root, space="  ")
    return XML_HEADER + ET.tostring(root, encoding="unicode") + "\n"


def regenerate(store: EntryStore, base_url: str, output_dir: Union[str, Path]) -> Path:
    path = Path(output_dir) / INDEX_FILENAME
    try:
        atomic_write(path, render_index(store, base_url))
    except OSError as e:
        raise PartitionIOError(f"无法写入索引 {path}: {e}") from e
    logger.debug(f"已重建索引: {len(store.sitemaps)} 个分片")
    return path
