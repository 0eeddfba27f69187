"""Duplicate/Policy Filter：URL 哈希去重与 robots.txt 前缀排除。"""
import hashlib
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Set, Union
from urllib.parse import urlsplit

from sitemaptool.errors import DuplicateURL, PolicyRejected
from sitemaptool.storage import EntryStore

USER_AGENT_TOKEN = "sitemaptool"

logger = logging.getLogger("sitemaptool.policy")


def hash_url(url: str) -> str:
    """对 URL 原文做 SHA-256，不做任何规范化。"""
    return hashlib.sha256(url.encode("utf-8")).hexdigest()


def parse_robots(path: Union[str, Path]) -> Set[str]:
    """从 robots.txt 中提取适用于 `*` 或 sitemaptool 的 Disallow 前缀；文件不存在返回空集合。"""
    p = Path(path)
    rules: Set[str] = set()
    if not p.exists():
        return rules

    in_group = False
    with p.open("r", encoding="utf-8", errors="replace") as f:
        for raw in f:
            line = raw.split("#", 1)[0].strip()
            if ":" not in line:
                continue
            field, value = line.split(":", 1)
            field = field.strip().lower()
            value = value.strip()
            if field == "user-agent":
                in_group = value.lower() in ("*", USER_AGENT_TOKEN)
            elif field == "disallow" and in_group and value:
                rules.add(value)
    logger.debug(f"robots.txt {p} 中共 {len(rules)} 条 Disallow 规则")
    return rules


@dataclass
class Decision:
    allowed: bool
    url_hash: str
    reason: str = ""
    rule: str = ""


class PolicyFilter:
    def __init__(self, disallowed: Iterable[str] = (), enabled: bool = True):
        self.disallowed = set(disallowed)
        self.enabled = enabled

    def matching_rule(self, url: str) -> Optional[str]:
        """返回命中的前缀。URL 本身或其 path(+query) 以前缀开头即视为命中。"""
        if not self.enabled:
            return None
        parts = urlsplit(url)
        path = parts.path or "/"
        if parts.query:
            path = f"{path}?{parts.query}"
        for prefix in self.disallowed:
            if url.startswith(prefix) or path.startswith(prefix):
                return prefix
        return None

    def is_allowed(self, url: str) -> bool:
        return self.matching_rule(url) is None

    def accept(self, url: str, seen: Union[EntryStore, Set[str]]) -> Decision:
        """纯判断，不修改任何状态。"""
        url_hash = hash_url(url)
        rule = self.matching_rule(url)
        if rule is not None:
            return Decision(False, url_hash, reason="policy", rule=rule)
        is_seen = seen.is_seen(url_hash) if isinstance(seen, EntryStore) else url_hash in seen
        if is_seen:
            return Decision(False, url_hash, reason="duplicate")
        return Decision(True, url_hash)

    def check(self, url: str, seen: Union[EntryStore, Set[str]]) -> str:
        """与 `accept` 相同，但以异常形式报告拒绝；通过时返回 URL 哈希。"""
        decision = self.accept(url, seen)
        if decision.reason == "policy":
            raise PolicyRejected(url, decision.rule)
        if decision.reason == "duplicate":
            raise DuplicateURL(url)
        return decision.url_hash
