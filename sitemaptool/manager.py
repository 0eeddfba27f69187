"""SitemapManager：每次命令调用构造一次的上下文对象，串起过滤、分片写入、数据库与索引。

添加 URL 的流程：

    策略检查 -> 去重 -> 确定分片 -> 追加并写分片 -> 更新数据库 -> 保存数据库 -> 重建索引 -> (可选) ping

从加载数据库到重建索引全程持有输出目录下的文件锁。追加分片之前的任何失败都不会改动磁盘；
分片已写入但数据库尚未保存时进程崩溃，会留下一条不在哈希集合里的条目，之后同一 URL
可能被再次收录，这一缺口不会自动修复。
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Optional

from sitemaptool.config import Config, load_config
from sitemaptool.errors import InvalidEntry, PartitionFull, StoreIOError
from sitemaptool.fsutil import format_date, utcnow
from sitemaptool.index import INDEX_FILENAME, index_url, regenerate
from sitemaptool.locking import FileLock
from sitemaptool.notifier import PingResult, ping_in_background, ping_search_engines
from sitemaptool.partition import (
    CHANGEFREQS,
    MAX_SITEMAP_SIZE,
    MAX_URLS_PER_SITEMAP,
    PartitionWriter,
    SitemapEntry,
    find_invalid_xml_char,
)
from sitemaptool.policy import PolicyFilter, parse_robots
from sitemaptool.storage import DB_FILENAME, EntryStore, PartitionInfo

LOCK_FILENAME = ".sitemaptool_db.lock"


@dataclass
class AddResult:
    url: str
    url_hash: str
    partition: str
    entry: SitemapEntry


@dataclass
class Stats:
    output_dir: Path
    index_url: str
    total_urls: int
    current_sitemap: str
    partitions: List[PartitionInfo] = field(default_factory=list)

    @property
    def total_partitions(self) -> int:
        return len(self.partitions)


class SitemapManager:
    def __init__(
        self,
        config: Config,
        config_path: Optional[Path] = None,
        capacity: int = MAX_URLS_PER_SITEMAP,
        max_bytes: int = MAX_SITEMAP_SIZE,
        policy: Optional[PolicyFilter] = None,
    ):
        self.config = config
        self.config_path = config_path
        self.capacity = capacity
        self.max_bytes = max_bytes
        self.logger = logging.getLogger("sitemaptool.manager")

        self.output_dir = Path(config.output_dir).expanduser()
        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise StoreIOError(f"无法创建输出目录 {self.output_dir}: {e}") from e

        self.db_path = self.output_dir / DB_FILENAME
        self.index_path = self.output_dir / INDEX_FILENAME
        self.lock = FileLock(self.output_dir / LOCK_FILENAME)
        self.policy = policy if policy is not None else self._build_policy()

    @classmethod
    def from_config_file(cls, path: Optional[str] = None, **kwargs) -> "SitemapManager":
        cfg = load_config(path)
        return cls(cfg, config_path=Path(path) if path else None, **kwargs)

    def _build_policy(self) -> PolicyFilter:
        if not self.config.respect_robots:
            return PolicyFilter(enabled=False)
        try:
            rules = parse_robots(self.config.robots_path)
        except OSError as e:
            # robots.txt 读不了时按无规则处理
            self.logger.warning(f"读取 robots.txt 失败，忽略: {e}")
            rules = set()
        return PolicyFilter(rules)

    @contextmanager
    def transaction(self) -> Iterator[EntryStore]:
        """持有跨进程锁，期间加载的数据库可安全读改写。"""
        with self.lock:
            yield EntryStore.load(self.db_path)

    def writer(self, store: EntryStore) -> PartitionWriter:
        return PartitionWriter(
            store,
            self.output_dir,
            prefix=self.config.sitemap_prefix,
            capacity=self.capacity,
            max_bytes=self.max_bytes,
        )

    def build_entry(self, url: str, changefreq: Optional[str] = None, priority: Optional[float] = None) -> SitemapEntry:
        # 命令行里的非法 UTF-8 字节会变成孤立代理字符，既无法哈希也无法写入 XML
        try:
            url.encode("utf-8")
        except UnicodeEncodeError as e:
            raise InvalidEntry(f"URL 不是合法的 UTF-8 文本: {url!r}") from e
        bad = find_invalid_xml_char(url)
        if bad is not None:
            raise InvalidEntry(f"URL 含有 XML 不允许的字符 {bad!r}: {url!r}")

        freq = (changefreq if changefreq else self.config.default_changefreq or "").lower()
        if freq and freq not in CHANGEFREQS:
            raise InvalidEntry(f"changefreq 无效: {freq}（可选 {', '.join(CHANGEFREQS)}）")
        prio = self.config.default_priority if priority is None else priority
        if prio is not None and not 0.0 <= prio <= 1.0:
            raise InvalidEntry(f"priority 应在 0 到 1 之间: {prio}")
        return SitemapEntry(loc=url, lastmod=format_date(utcnow()), changefreq=freq, priority=prio)

    def add_url(self, url: str, changefreq: Optional[str] = None, priority: Optional[float] = None) -> AddResult:
        entry = self.build_entry(url, changefreq, priority)

        with self.transaction() as store:
            url_hash = self.policy.check(url, store)

            writer = self.writer(store)
            name = writer.current_partition_for_write()
            try:
                writer.append(name, entry)
            except PartitionFull:
                info = store.find(name)
                if info is None or info.url_count == 0:
                    raise
                self.logger.info(f"分片 {name} 已达字节上限，滚动到新分片")
                name = writer.create_partition()
                writer.append(name, entry)

            store.add_hash(url_hash)
            store.save()
            regenerate(store, self.config.base_url, self.output_dir)

        self.logger.info(f"已添加 {url} -> {name}")
        self._notify()
        return AddResult(url=url, url_hash=url_hash, partition=name, entry=entry)

    def create_sitemap(self) -> str:
        """显式开启一个新分片（之前的分片即使未满也不再写入）。"""
        with self.transaction() as store:
            writer = self.writer(store)
            name = writer.create_partition()
            writer.save(name, [])
            store.save()
            regenerate(store, self.config.base_url, self.output_dir)

        self._notify()
        return name

    def stats(self) -> Stats:
        with self.transaction() as store:
            return Stats(
                output_dir=self.output_dir,
                index_url=index_url(self.config.base_url),
                total_urls=store.total_urls,
                current_sitemap=store.current_sitemap,
                partitions=list(store.sitemaps),
            )

    def ping(self) -> List[PingResult]:
        return ping_search_engines(self.config.ping_engines, index_url(self.config.base_url))

    def _notify(self) -> None:
        if not self.config.ping_on_update or not self.config.ping_engines:
            return
        # 不 join：结果只进日志，调用方看不到
        ping_in_background(self.config.ping_engines, index_url(self.config.base_url))
