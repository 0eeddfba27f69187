"""查看 sitemap 分片内容的小工具

用法:
  python tools/inspect_sitemap.py file:///path/to/sitemaps/sitemap_1.xml
  python tools/inspect_sitemap.py https://example.com/sitemap_1.xml

调用包内的 `parse_urlset` 解析 urlset 文档，并以 JSON 打印全部条目。
"""
import json
import sys
from dataclasses import asdict
from pathlib import Path

from sitemaptool.partition import parse_urlset


def load_source(arg: str) -> tuple[bytes, str]:
    """如果是本地 file://... 路径，返回 (content, path)。否则用 requests 获取并返回 (content, url)。"""
    if arg.startswith("file://"):
        p = Path(arg[len("file://"):])
        return p.read_bytes(), str(p.resolve())
    else:
        import requests

        resp = requests.get(arg, timeout=15)
        resp.raise_for_status()
        return resp.content, arg


def main():
    if len(sys.argv) < 2:
        print("Usage: python tools/inspect_sitemap.py <file://... or http(s)://...>")
        sys.exit(1)

    data, source = load_source(sys.argv[1])
    entries = parse_urlset(data)
    print(json.dumps({"source": source, "count": len(entries), "urls": [asdict(e) for e in entries]}, ensure_ascii=False, indent=2))


if __name__ == "__main__":
    main()
