import multiprocessing
import os
import xml.etree.ElementTree as ET

import pytest

from sitemaptool import manager as manager_module
from sitemaptool.errors import DuplicateURL, InvalidEntry, PartitionFull, PolicyRejected
from sitemaptool.manager import SitemapManager
from sitemaptool.partition import SITEMAP_NAMESPACE, parse_urlset, render_urlset
from sitemaptool.policy import PolicyFilter, hash_url
from sitemaptool.storage import EntryStore

from tests.conftest import read_json

NS = {"sm": SITEMAP_NAMESPACE}


def index_locs(m: SitemapManager):
    root = ET.fromstring(m.index_path.read_bytes())
    return [node.findtext("sm:loc", namespaces=NS) for node in root.findall("sm:sitemap", NS)]


def test_first_add_creates_partition_store_and_index(manager):
    result = manager.add_url("https://example.com/a")

    assert result.partition == "sitemap_1.xml"
    entries = parse_urlset((manager.output_dir / "sitemap_1.xml").read_bytes())
    assert [e.loc for e in entries] == ["https://example.com/a"]
    assert entries[0].changefreq == "weekly"
    assert entries[0].priority == 0.5
    assert entries[0].lastmod

    db = read_json(manager.db_path)
    assert db["url_hashes"] == {hash_url("https://example.com/a"): True}
    assert db["current_sitemap"] == "sitemap_1.xml"
    assert db["sitemaps"][0]["filename"] == "sitemap_1.xml"
    assert db["sitemaps"][0]["url_count"] == 1

    assert index_locs(manager) == ["https://example.com/sitemap_1.xml"]


def test_explicit_changefreq_and_priority(manager):
    result = manager.add_url("https://example.com/a", changefreq="daily", priority=0.9)
    assert result.entry.changefreq == "daily"
    assert result.entry.priority == 0.9


def test_second_add_of_same_url_is_duplicate(manager):
    manager.add_url("https://example.com/a")
    before = (manager.output_dir / "sitemap_1.xml").read_bytes()

    with pytest.raises(DuplicateURL):
        manager.add_url("https://example.com/a")

    assert (manager.output_dir / "sitemap_1.xml").read_bytes() == before
    store = EntryStore.load(manager.db_path)
    assert store.total_urls == 1
    assert sum(p.url_count for p in store.sitemaps) == 1


def test_capacity_rollover(config):
    m = SitemapManager(config, capacity=3)
    for i in range(4):
        m.add_url(f"https://example.com/{i}")

    store = EntryStore.load(m.db_path)
    assert [(p.filename, p.url_count) for p in store.sitemaps] == [("sitemap_1.xml", 3), ("sitemap_2.xml", 1)]
    assert store.current_sitemap == "sitemap_2.xml"
    assert sum(p.url_count for p in store.sitemaps) == store.total_urls == 4
    assert index_locs(m) == ["https://example.com/sitemap_1.xml", "https://example.com/sitemap_2.xml"]

    # 每个已收录 URL 恰好出现在一个分片里
    seen = {}
    for p in store.sitemaps:
        for e in parse_urlset((m.output_dir / p.filename).read_bytes()):
            seen.setdefault(e.loc, []).append(p.filename)
    assert sorted(seen) == sorted(f"https://example.com/{i}" for i in range(4))
    assert all(len(v) == 1 for v in seen.values())


def test_policy_rejects_disallowed_prefix(config, tmp_path):
    (tmp_path / "robots.txt").write_text("User-agent: *\nDisallow: /private\n", encoding="utf-8")
    m = SitemapManager(config)

    with pytest.raises(PolicyRejected):
        m.add_url("https://example.com/private/page")
    assert not m.index_path.exists()
    assert EntryStore.load(m.db_path).sitemaps == []

    m.add_url("https://example.com/public/page")
    assert EntryStore.load(m.db_path).total_urls == 1


def test_respect_robots_off_ignores_rules(config, tmp_path):
    (tmp_path / "robots.txt").write_text("User-agent: *\nDisallow: /private\n", encoding="utf-8")
    config.respect_robots = False
    m = SitemapManager(config)
    m.add_url("https://example.com/private/page")


def test_injected_policy(config):
    m = SitemapManager(config, policy=PolicyFilter({"/blocked"}))
    with pytest.raises(PolicyRejected):
        m.add_url("https://example.com/blocked")


def test_byte_cap_rolls_to_new_partition(config):
    probe = SitemapManager(config)
    urls = [f"https://example.com/page-{i}" for i in range(3)]
    two = render_urlset([probe.build_entry(u) for u in urls[:2]])
    m = SitemapManager(config, max_bytes=len(two.encode("utf-8")))

    for url in urls:
        m.add_url(url)

    store = EntryStore.load(m.db_path)
    assert [(p.filename, p.url_count) for p in store.sitemaps] == [("sitemap_1.xml", 2), ("sitemap_2.xml", 1)]


def test_entry_larger_than_byte_cap_fails_cleanly(config):
    m = SitemapManager(config, max_bytes=10)
    with pytest.raises(PartitionFull):
        m.add_url("https://example.com/a")

    store = EntryStore.load(m.db_path)
    assert store.sitemaps == []
    assert store.total_urls == 0
    assert not m.index_path.exists()


def test_invalid_entry_values(manager):
    with pytest.raises(InvalidEntry):
        manager.add_url("https://example.com/a", priority=1.5)
    with pytest.raises(InvalidEntry):
        manager.add_url("https://example.com/a", changefreq="sometimes")
    assert not manager.db_path.exists()


def test_url_with_xml_illegal_character_is_rejected(manager):
    with pytest.raises(InvalidEntry):
        manager.add_url("https://example.com/a\x01b")
    assert not manager.db_path.exists()

    # 分片没有被写坏，之后的添加照常进行
    manager.add_url("https://example.com/ok")
    manager.add_url("https://example.com/next")
    entries = parse_urlset((manager.output_dir / "sitemap_1.xml").read_bytes())
    assert [e.loc for e in entries] == ["https://example.com/ok", "https://example.com/next"]


def test_url_with_undecodable_bytes_is_rejected(manager):
    url = b"https://example.com/\xff".decode("utf-8", "surrogateescape")
    with pytest.raises(InvalidEntry):
        manager.add_url(url)
    assert not manager.db_path.exists()


def test_non_ascii_url_is_accepted(manager):
    manager.add_url("https://example.com/中文/é")
    entries = parse_urlset((manager.output_dir / "sitemap_1.xml").read_bytes())
    assert [e.loc for e in entries] == ["https://example.com/中文/é"]


def test_create_sitemap_starts_new_partition(manager):
    manager.add_url("https://example.com/a")
    name = manager.create_sitemap()

    assert name == "sitemap_2.xml"
    assert parse_urlset((manager.output_dir / name).read_bytes()) == []
    assert index_locs(manager) == ["https://example.com/sitemap_1.xml", "https://example.com/sitemap_2.xml"]

    # 旧分片未满也不再写入
    assert manager.add_url("https://example.com/b").partition == "sitemap_2.xml"


def test_stats(config):
    m = SitemapManager(config, capacity=2)
    for i in range(3):
        m.add_url(f"https://example.com/{i}")

    stats = m.stats()
    assert stats.total_partitions == 2
    assert stats.total_urls == 3
    assert stats.current_sitemap == "sitemap_2.xml"
    assert stats.index_url == "https://example.com/sitemap_index.xml"
    assert [p.url_count for p in stats.partitions] == [2, 1]


def test_ping_on_update_spawns_background_ping(config, monkeypatch):
    calls = []
    monkeypatch.setattr(manager_module, "ping_in_background", lambda engines, url: calls.append((engines, url)))
    config.ping_on_update = True
    config.ping_engines = ["https://search.example/ping?sitemap="]

    m = SitemapManager(config)
    m.add_url("https://example.com/a")
    with pytest.raises(DuplicateURL):
        m.add_url("https://example.com/a")

    assert calls == [(["https://search.example/ping?sitemap="], "https://example.com/sitemap_index.xml")]


def test_no_ping_when_disabled(manager, monkeypatch):
    monkeypatch.setattr(manager_module, "ping_in_background", lambda *a: pytest.fail("should not ping"))
    manager.add_url("https://example.com/a")


def _add_batch(config, worker, count):
    m = SitemapManager(config, capacity=5)
    for i in range(count):
        m.add_url(f"https://example.com/w{worker}/{i}")
    # 所有进程都会尝试同一个 URL，只能收录一次
    try:
        m.add_url("https://example.com/shared")
    except DuplicateURL:
        pass


@pytest.mark.skipif(not hasattr(os, "fork"), reason="需要 fork")
def test_concurrent_processes_do_not_lose_or_duplicate_entries(config):
    ctx = multiprocessing.get_context("fork")
    workers = [ctx.Process(target=_add_batch, args=(config, w, 8)) for w in range(4)]
    for p in workers:
        p.start()
    for p in workers:
        p.join(60)
        assert p.exitcode == 0

    store = EntryStore.load(SitemapManager(config).db_path)
    assert store.total_urls == 4 * 8 + 1
    assert sum(p.url_count for p in store.sitemaps) == store.total_urls
    assert all(p.url_count <= 5 for p in store.sitemaps)
    assert all(p.url_count == 5 for p in store.sitemaps[:-1])

    locs = []
    for p in store.sitemaps:
        locs.extend(e.loc for e in parse_urlset((SitemapManager(config).output_dir / p.filename).read_bytes()))
    assert len(locs) == len(set(locs)) == store.total_urls
