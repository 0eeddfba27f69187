"""通过 GitHub releases 接口检查新版本。"""
import logging
from typing import Optional

import requests

from sitemaptool import __version__
from sitemaptool.errors import NetworkError

GITHUB_REPO = "abraham-ny/sitemaptool"
RELEASES_API = f"https://api.github.com/repos/{GITHUB_REPO}/releases/latest"
RELEASES_PAGE = f"https://github.com/{GITHUB_REPO}/releases"
CHECK_TIMEOUT = 5

logger = logging.getLogger("sitemaptool.updates")


def _normalize(tag: str) -> str:
    return tag.strip().lstrip("vV")


def latest_release(timeout: float = CHECK_TIMEOUT) -> str:
    try:
        resp = requests.get(RELEASES_API, headers={"Accept": "application/vnd.github+json"}, timeout=timeout)
        resp.raise_for_status()
        data = resp.json()
    except requests.RequestException as e:
        raise NetworkError(f"版本检查失败: {e}") from e
    except ValueError as e:
        raise NetworkError(f"版本检查返回了无效 JSON: {e}") from e

    tag = data.get("tag_name") if isinstance(data, dict) else None
    if not tag:
        raise NetworkError("版本检查返回中没有 tag_name")
    return tag


def check_for_updates(current: str = __version__, timeout: float = CHECK_TIMEOUT) -> Optional[str]:
    """有新版本时返回其 tag，否则返回 None。"""
    tag = latest_release(timeout=timeout)
    if _normalize(tag) != _normalize(current):
        logger.info(f"发现新版本 {tag}（当前 {current}）")
        return tag
    return None
