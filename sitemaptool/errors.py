"""异常定义。

所有可预期的失败都继承自 `SitemapToolError`，CLI 统一捕获后输出到 stderr 并以 1 退出。
"""


class SitemapToolError(Exception):
    """sitemaptool 的基础异常。"""


class ConfigIOError(SitemapToolError):
    """配置目录或配置文件无法读写/解析。"""


class UnknownConfigKey(SitemapToolError):
    def __init__(self, key: str):
        super().__init__(f"未知的配置项: {key}")
        self.key = key


class InvalidConfigValue(SitemapToolError):
    def __init__(self, key: str, value: str, reason: str):
        super().__init__(f"配置项 {key} 的值无效 ({value!r}): {reason}")
        self.key = key
        self.value = value


class StoreIOError(SitemapToolError):
    """数据库文件无法读写，或 JSON 已损坏。"""


class PolicyRejected(SitemapToolError):
    def __init__(self, url: str, rule: str):
        super().__init__(f"URL 被 robots.txt 规则 {rule!r} 禁止: {url}")
        self.url = url
        self.rule = rule


class DuplicateURL(SitemapToolError):
    def __init__(self, url: str):
        super().__init__(f"URL 已存在于 sitemap 中: {url}")
        self.url = url


class InvalidEntry(SitemapToolError):
    """changefreq 或 priority 不合法。"""


class PartitionIOError(SitemapToolError):
    """分片文件读写失败。"""


class PartitionFull(PartitionIOError):
    """写入后分片会超过字节上限。"""


class LockError(SitemapToolError):
    """无法打开或获取锁文件。"""


class NetworkError(SitemapToolError):
    """版本检查或 ping 的网络错误，只报告，不重试。"""
