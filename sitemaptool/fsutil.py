"""文件与时间工具：原子替换写入、RFC3339 时间戳的读写。"""
import os
import re
import tempfile
from datetime import datetime, timezone
from pathlib import Path
from typing import Union

# 旧版工具写出的时间戳小数位数不定（最多纳秒），统一成 6 位再交给 fromisoformat
_FRACTION_RE = re.compile(r"\.(\d+)")


def atomic_write(path: Union[str, Path], data: str) -> None:
    """先写同目录下的临时文件再 rename，读者永远看不到写了一半的文件。

    失败时抛出 OSError，由调用方包装成各自的领域异常。
    """
    path = Path(path)
    fd, tmp = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent))
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        # mkstemp 默认 0600，sitemap 需要能被 Web 服务器读取
        os.chmod(tmp, 0o644)
        os.replace(tmp, path)
    except BaseException:
        try:
            os.unlink(tmp)
        except OSError:
            pass
        raise


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def format_timestamp(ts: datetime) -> str:
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts.isoformat()


def parse_timestamp(value: str) -> datetime:
    """解析 RFC3339 时间戳，兼容结尾的 `Z` 与超过 6 位的小数秒。"""
    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)
    ts = datetime.fromisoformat(text)
    if ts.tzinfo is None:
        ts = ts.replace(tzinfo=timezone.utc)
    return ts


def format_date(ts: datetime) -> str:
    """sitemap 中 lastmod 只保留日期。"""
    return ts.strftime("%Y-%m-%d")
