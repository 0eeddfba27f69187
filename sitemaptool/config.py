"""配置加载器：读取/写回 `~/.sitemaptool/config.json`。

读取使用 PyYAML（JSON 是 YAML 的子集，手写的 YAML 配置同样可用），写回统一为 JSON。
配置路径可通过 `--config` 或环境变量 `SITEMAPTOOL_CONFIG` 覆盖。
"""
import json
import logging
import os
from dataclasses import asdict, dataclass, field, fields
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import yaml

from sitemaptool.errors import ConfigIOError, InvalidConfigValue, UnknownConfigKey
from sitemaptool.fsutil import atomic_write
from sitemaptool.partition import CHANGEFREQS

CONFIG_ENV = "SITEMAPTOOL_CONFIG"

logger = logging.getLogger("sitemaptool.config")


def _default_ping_engines() -> List[str]:
    return [
        "https://www.google.com/ping?sitemap=",
        "https://www.bing.com/ping?sitemap=",
    ]


@dataclass
class Config:
    output_dir: str = "./sitemaps"
    base_url: str = "https://example.com"
    sitemap_prefix: str = "sitemap"
    ping_on_update: bool = False
    ping_engines: List[str] = field(default_factory=_default_ping_engines)
    default_changefreq: str = "weekly"
    default_priority: float = 0.5
    respect_robots: bool = True
    vcs_aware: bool = True
    robots_path: str = "./robots.txt"
    check_updates: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Config":
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            logger.warning(f"忽略未知配置项: {', '.join(unknown)}")
        cfg = cls()
        for key in known & set(data):
            # 文件里的值也走一遍解析表，保证类型正确
            setattr(cfg, key, CONFIG_PARSERS[key](key, data[key]))
        return cfg

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def default_config_path() -> Path:
    env = os.environ.get(CONFIG_ENV)
    if env:
        return Path(env).expanduser()
    return Path.home() / ".sitemaptool" / "config.json"


def load_config(path: Optional[str] = None) -> Config:
    """加载配置；文件不存在时写出默认配置。"""
    p = Path(path).expanduser() if path else default_config_path()
    try:
        p.parent.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise ConfigIOError(f"无法创建配置目录 {p.parent}: {e}") from e

    if not p.exists():
        cfg = Config()
        save_config(cfg, p)
        logger.info(f"已写出默认配置: {p}")
        return cfg

    try:
        with p.open("r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except OSError as e:
        raise ConfigIOError(f"无法读取配置文件 {p}: {e}") from e
    except yaml.YAMLError as e:
        raise ConfigIOError(f"配置文件格式错误 {p}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigIOError(f"配置文件顶层必须是对象: {p}")
    try:
        return Config.from_dict(data)
    except InvalidConfigValue as e:
        raise ConfigIOError(f"配置文件 {p} 中有无效值: {e}") from e


def save_config(cfg: Config, path: Path) -> None:
    try:
        atomic_write(path, json.dumps(cfg.to_dict(), ensure_ascii=False, indent=2) + "\n")
    except OSError as e:
        raise ConfigIOError(f"无法写入配置文件 {path}: {e}") from e


# ---- 每个配置项的解析函数 ----

_TRUE = {"true", "yes", "on", "1"}
_FALSE = {"false", "no", "off", "0"}


def _parse_str(key: str, value: Any) -> str:
    return "" if value is None else str(value)


def _parse_bool(key: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise InvalidConfigValue(key, str(value), "应为 true/false")


def _parse_priority(key: str, value: Any) -> float:
    if isinstance(value, bool):
        raise InvalidConfigValue(key, str(value), "应为 0 到 1 之间的数字")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidConfigValue(key, str(value), "应为 0 到 1 之间的数字")
    if not 0.0 <= number <= 1.0:
        raise InvalidConfigValue(key, str(value), "应在 0 到 1 之间")
    return number


def _parse_changefreq(key: str, value: Any) -> str:
    text = "" if value is None else str(value).strip().lower()
    if text and text not in CHANGEFREQS:
        raise InvalidConfigValue(key, str(value), f"应为 {'/'.join(CHANGEFREQS)} 之一或留空")
    return text


def _parse_list(key: str, value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, list):
        return [str(v).strip() for v in value if str(v).strip()]
    return [part.strip() for part in str(value).split(",") if part.strip()]


CONFIG_PARSERS: Dict[str, Callable[[str, Any], Any]] = {
    "output_dir": _parse_str,
    "base_url": _parse_str,
    "sitemap_prefix": _parse_str,
    "ping_on_update": _parse_bool,
    "ping_engines": _parse_list,
    "default_changefreq": _parse_changefreq,
    "default_priority": _parse_priority,
    "respect_robots": _parse_bool,
    "vcs_aware": _parse_bool,
    "robots_path": _parse_str,
    "check_updates": _parse_bool,
}


def set_config_value(cfg: Config, key: str, raw: str) -> Any:
    """按解析表设置单个配置项并返回解析后的值；未知键抛出 `UnknownConfigKey`。"""
    parser = CONFIG_PARSERS.get(key)
    if parser is None:
        raise UnknownConfigKey(key)
    value = parser(key, raw)
    setattr(cfg, key, value)
    return value


def get_config_value(cfg: Config, key: str) -> Any:
    if key not in CONFIG_PARSERS:
        raise UnknownConfigKey(key)
    return getattr(cfg, key)
