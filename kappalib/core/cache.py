"""
进程内 TTL 缓存

缓存读多写少的查询结果，整个缓存共用一把锁。
未命中时直接查询数据库，同一个 key 的并发未命中可能各自查询一次（查询是幂等的）。
过期项在读取时删除，或由后台清理线程定期清除
"""
import threading
import time
from typing import Any, Callable, Optional, TypeVar

from loguru import logger

T = TypeVar("T")


class TTLCache:
    """带过期时间的内存缓存"""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        """
        Args:
            clock: 时间函数（测试时可替换）
        """
        self._items: dict[str, tuple[Any, float]] = {}
        self._lock = threading.Lock()
        self._clock = clock
        self._stop_event = threading.Event()
        self._sweeper: Optional[threading.Thread] = None

    def get(self, key: str) -> tuple[Any, bool]:
        """
        读取缓存

        Returns:
            (值, 是否命中)
        """
        with self._lock:
            item = self._items.get(key)
            if item is None:
                return None, False
            value, expires_at = item
            if self._clock() >= expires_at:
                del self._items[key]
                return None, False
            return value, True

    def set(self, key: str, value: Any, ttl: float) -> None:
        """写入缓存，ttl 单位为秒"""
        with self._lock:
            self._items[key] = (value, self._clock() + ttl)

    def purge_expired(self) -> int:
        """清理已过期的项，返回清理数量"""
        now = self._clock()
        with self._lock:
            expired = [key for key, (_, expires_at) in self._items.items() if now >= expires_at]
            for key in expired:
                del self._items[key]
        if expired:
            logger.debug(f"缓存过期清理: {len(expired)} 条")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._items)

    def get_or_fetch(
        self,
        key: str,
        ttl: float,
        fetch: Callable[[], T],
        should_cache: Optional[Callable[[T], bool]] = None,
    ) -> T:
        """
        命中则返回缓存值，否则调用 fetch 并写入缓存

        fetch 抛出的异常原样向上传播，不会写入缓存

        Args:
            key: 缓存键
            ttl: 过期秒数
            fetch: 未命中时的取值函数
            should_cache: 判断取到的值是否写入缓存，默认总是写入

        Returns:
            缓存值或新取得的值
        """
        value, found = self.get(key)
        if found:
            logger.debug(f"缓存命中: {key}")
            return value

        logger.debug(f"缓存未命中: {key}")
        value = fetch()
        if should_cache is None or should_cache(value):
            self.set(key, value, ttl)
        return value

    def start(self, interval: float = 60.0) -> None:
        """启动后台清理线程"""
        if self._sweeper is not None:
            return
        self._stop_event.clear()

        def _loop():
            while not self._stop_event.wait(interval):
                self.purge_expired()

        self._sweeper = threading.Thread(target=_loop, name="ttl-cache-sweeper", daemon=True)
        self._sweeper.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=1)
            self._sweeper = None
