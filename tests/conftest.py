import json
from pathlib import Path

import pytest

from sitemaptool.config import Config
from sitemaptool.manager import SitemapManager


@pytest.fixture
def config(tmp_path: Path) -> Config:
    return Config(
        output_dir=str(tmp_path / "out"),
        base_url="https://example.com",
        sitemap_prefix="sitemap",
        ping_on_update=False,
        robots_path=str(tmp_path / "robots.txt"),
        check_updates=False,
    )


@pytest.fixture
def config_file(tmp_path: Path, config: Config) -> Path:
    path = tmp_path / "config.json"
    path.write_text(json.dumps(config.to_dict()), encoding="utf-8")
    return path


@pytest.fixture
def manager(config: Config) -> SitemapManager:
    return SitemapManager(config)


def read_json(path: Path):
    return json.loads(path.read_text(encoding="utf-8"))
