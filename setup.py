from setuptools import setup, find_packages
from pathlib import Path

here = Path(__file__).parent
requirements = []
req_file = here / "requirements.txt"
if req_file.exists():
    requirements = [r.strip() for r in req_file.read_text(encoding="utf-8").splitlines() if r.strip() and not r.strip().startswith("#")]

setup(
    name="sitemaptool",
    version="1.0.0",
    description="按容量自动分片、并发安全地维护 sitemap 与 sitemap 索引的命令行工具",
    packages=find_packages(exclude=("tests", "tests.*", "tools", "tools.*")),
    python_requires=">=3.9",
    install_requires=requirements,
    extras_require={
        "test": ["pytest>=7"],
    },
    entry_points={
        "console_scripts": [
            "sitemaptool=sitemaptool.cli:main",
            "smx=sitemaptool.cli:main",
        ]
    },
)
