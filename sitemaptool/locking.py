"""跨进程互斥：在输出目录旁放一个锁文件，用 flock 加排他锁。

同一输出目录上的 add/create 可能由多个进程并发触发（例如 webhook），
因此锁必须覆盖从读取数据库到重建索引的整个读-改-写过程。
"""
import fcntl
import logging
import os
from pathlib import Path
from typing import Optional, Union

from sitemaptool.errors import LockError

logger = logging.getLogger("sitemaptool.lock")


class FileLock:
    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self._fd: Optional[int] = None

    @property
    def locked(self) -> bool:
        return self._fd is not None

    def acquire(self) -> None:
        if self._fd is not None:
            raise LockError(f"锁已被当前对象持有: {self.path}")
        try:
            fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o644)
        except OSError as e:
            raise LockError(f"无法打开锁文件 {self.path}: {e}") from e
        try:
            # 阻塞直到其他进程释放
            fcntl.flock(fd, fcntl.LOCK_EX)
        except OSError as e:
            os.close(fd)
            raise LockError(f"获取锁失败 {self.path}: {e}") from e
        self._fd = fd
        logger.debug(f"已获取锁 {self.path}")

    def release(self) -> None:
        if self._fd is None:
            return
        fd, self._fd = self._fd, None
        try:
            fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)
        logger.debug(f"已释放锁 {self.path}")

    def __enter__(self) -> "FileLock":
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.release()
