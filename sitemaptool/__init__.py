"""sitemaptool：按容量分片维护 sitemap，并在每次变更后重建 sitemap 索引。"""

__version__ = "1.0.0"
