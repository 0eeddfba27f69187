"""命令行入口：解析参数并调用 `SitemapManager`。

支持两种运行方式：
- 推荐：`sitemaptool ...` 或 `python -m sitemaptool.cli ...`（作为包运行）
- 直接运行脚本：`python sitemaptool/cli.py ...`（会在运行时自动调整 `sys.path`）

成功返回 0；任何 `SitemapToolError` 都会在 stderr 打印 `Error: ...` 并返回 1。
"""

import argparse
import json
import logging
import platform
import sys
from pathlib import Path
from typing import List, Optional

# 当直接运行脚本（非包方式），修正 sys.path 以便可以使用包的绝对导入
if __package__ is None or __package__ == "":
    root = Path(__file__).resolve().parents[1]
    sys.path.insert(0, str(root))

from sitemaptool import __version__
from sitemaptool.config import default_config_path, get_config_value, load_config, save_config, set_config_value
from sitemaptool.errors import NetworkError, SitemapToolError
from sitemaptool.manager import SitemapManager
from sitemaptool.partition import CHANGEFREQS
from sitemaptool.updates import RELEASES_PAGE, check_for_updates

logger = logging.getLogger("sitemaptool.cli")


class ArgumentParser(argparse.ArgumentParser):
    """参数错误与其他错误一样以 1 退出（argparse 默认是 2）。子命令解析器也会使用这个类。"""

    def error(self, message: str) -> None:
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def build_parser() -> argparse.ArgumentParser:
    parser = ArgumentParser(prog="sitemaptool", description="跨平台的 sitemap 管理工具，支持多进程并发安全地追加 URL")
    parser.add_argument("--config", help="配置文件路径（默认 ~/.sitemaptool/config.json）")
    parser.add_argument("-v", "--verbose", action="count", default=0, help="输出更多日志（-vv 为调试）")
    sub = parser.add_subparsers(dest="command", metavar="COMMAND")
    sub.required = True

    add = sub.add_parser("add", help="向 sitemap 添加一个 URL")
    add.add_argument("url")
    add.add_argument("--changefreq", choices=CHANGEFREQS, help="更新频率")
    add.add_argument("--priority", type=float, help="优先级（0.0 到 1.0）")

    sub.add_parser("create", help="新建一个分片")

    cfg = sub.add_parser("config", help="查看或修改配置")
    cfg.add_argument("key", nargs="?")
    cfg.add_argument("value", nargs="?")

    sub.add_parser("stats", help="显示 sitemap 统计")
    sub.add_parser("ping", help="通知搜索引擎 sitemap 已更新")
    sub.add_parser("version", help="显示版本信息")
    sub.add_parser("update", help="检查是否有新版本")
    return parser


def _setup_logging(verbose: int) -> None:
    level = logging.WARNING
    if verbose == 1:
        level = logging.INFO
    elif verbose > 1:
        level = logging.DEBUG
    logging.basicConfig(level=level, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')


def cmd_add(args: argparse.Namespace) -> int:
    manager = SitemapManager.from_config_file(args.config)
    result = manager.add_url(args.url, changefreq=args.changefreq, priority=args.priority)
    print(f"✓ Added URL: {result.url} ({result.partition})")
    return 0


def cmd_create(args: argparse.Namespace) -> int:
    manager = SitemapManager.from_config_file(args.config)
    name = manager.create_sitemap()
    print(f"✓ Created new sitemap: {name}")
    return 0


def cmd_config(args: argparse.Namespace) -> int:
    path = Path(args.config).expanduser() if args.config else default_config_path()
    cfg = load_config(str(path))

    if args.key is None:
        print(json.dumps(cfg.to_dict(), ensure_ascii=False, indent=2))
        print(f"\nConfig file: {path}")
        return 0

    if args.value is None:
        print(json.dumps(get_config_value(cfg, args.key), ensure_ascii=False))
        return 0

    value = set_config_value(cfg, args.key, args.value)
    save_config(cfg, path)
    print(f"✓ Updated {args.key} = {json.dumps(value, ensure_ascii=False)}")
    return 0


def cmd_stats(args: argparse.Namespace) -> int:
    manager = SitemapManager.from_config_file(args.config)
    stats = manager.stats()
    print("Sitemap Statistics")
    print("==================")
    print(f"Total Sitemaps: {stats.total_partitions}")
    print(f"Total URLs: {stats.total_urls}")
    print(f"Output Directory: {stats.output_dir}")
    print(f"Index: {stats.index_url}")
    print("\nSitemaps:")
    for info in stats.partitions:
        marker = " *" if info.filename == stats.current_sitemap else ""
        print(f"  - {info.filename}: {info.url_count} URLs (last modified: {info.last_modified.strftime('%Y-%m-%d %H:%M:%S')}){marker}")
    return 0


def cmd_ping(args: argparse.Namespace) -> int:
    manager = SitemapManager.from_config_file(args.config)
    print("Pinging search engines...")
    for result in manager.ping():
        if result.ok:
            print(f"Pinged {result.engine} successfully")
        else:
            print(f"Failed to ping {result.engine}: {result.error}")
    return 0


def cmd_version(args: argparse.Namespace) -> int:
    print(f"SitemapTool v{__version__}")
    print(f"OS: {platform.system()}")
    print(f"Arch: {platform.machine()}")
    print(f"Python Version: {platform.python_version()}")

    cfg = load_config(args.config)
    if cfg.check_updates:
        try:
            tag = check_for_updates()
        except NetworkError as e:
            print(f"Error: {e}", file=sys.stderr)
            return 0
        if tag:
            print(f"\n🔔 New version available: {tag} (current: {__version__})")
            print(f"Download from: {RELEASES_PAGE}")
    return 0


def cmd_update(args: argparse.Namespace) -> int:
    tag = check_for_updates()
    if tag is None:
        print(f"Already up to date (v{__version__})")
    else:
        print(f"New version available: {tag} (current: {__version__})")
        print(f"Download from: {RELEASES_PAGE}")
    return 0


COMMANDS = {
    "add": cmd_add,
    "create": cmd_create,
    "config": cmd_config,
    "stats": cmd_stats,
    "ping": cmd_ping,
    "version": cmd_version,
    "update": cmd_update,
}


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _setup_logging(args.verbose)

    try:
        return COMMANDS[args.command](args)
    except SitemapToolError as e:
        logger.debug("命令失败", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
