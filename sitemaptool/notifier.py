"""通知搜索引擎 sitemap 已更新。

`ping_search_engines` 同步逐个请求；`ping_in_background` 在守护线程里执行，
调用方不等待它结束，进程退出时也不会等待，其失败只会记录日志。
"""
import logging
import threading
from dataclasses import dataclass
from typing import List, Optional

import requests

PING_TIMEOUT = 10

logger = logging.getLogger("sitemaptool.notify")


@dataclass
class PingResult:
    engine: str
    ok: bool
    status_code: Optional[int] = None
    error: str = ""


def ping_search_engines(engines: List[str], sitemap_url: str, timeout: float = PING_TIMEOUT) -> List[PingResult]:
    results = []
    for engine in engines:
        ping_url = engine + sitemap_url
        try:
            resp = requests.get(ping_url, timeout=timeout)
        except requests.RequestException as e:
            logger.warning(f"ping {engine} 失败: {e}")
            results.append(PingResult(engine, False, error=str(e)))
            continue

        if resp.status_code >= 400:
            logger.warning(f"ping {engine} 返回 HTTP {resp.status_code}")
            results.append(PingResult(engine, False, status_code=resp.status_code, error=f"HTTP {resp.status_code}"))
        else:
            logger.info(f"已 ping {engine}")
            results.append(PingResult(engine, True, status_code=resp.status_code))
    return results


def ping_in_background(engines: List[str], sitemap_url: str, timeout: float = PING_TIMEOUT) -> threading.Thread:
    def _run() -> None:
        try:
            ping_search_engines(engines, sitemap_url, timeout=timeout)
        except Exception as e:
            logger.error(f"后台 ping 异常: {e}")

    thread = threading.Thread(target=_run, name="sitemaptool-ping", daemon=True)
    thread.start()
    return thread
