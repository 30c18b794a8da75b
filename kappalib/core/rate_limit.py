"""
限流器

- CommentCooldown：同一作者两次评论之间的冷却时间
- IPRateLimiter：按客户端 IP 的请求频率限制（基于 limits 库的滑动窗口）
"""
import threading
import time
from typing import Callable, Optional

from limits import RateLimitItemPerSecond
from limits.storage import MemoryStorage
from limits.strategies import MovingWindowRateLimiter
from loguru import logger


class CommentCooldown:
    """按作者 ID 记录最近一次评论时间"""

    def __init__(
        self,
        cooldown: float = 30.0,
        retention: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            cooldown: 冷却秒数
            retention: 记录保留秒数，超过后由 sweep() 清理
            clock: 时间函数（测试时可替换）
        """
        self.cooldown = cooldown
        self.retention = retention
        self._clock = clock
        self._last_comment: dict[str, float] = {}
        self._lock = threading.Lock()
        self._stop_event = threading.Event()
        self._sweeper: Optional[threading.Thread] = None

    def try_acquire(self, user_id: str) -> float:
        """
        检查冷却并在可以评论时立即记录

        检查和记录在同一把锁内完成，同一作者的并发请求只有一个能通过

        Returns:
            剩余冷却秒数，0 表示已占用本次评论机会
        """
        with self._lock:
            now = self._clock()
            last = self._last_comment.get(user_id)
            if last is not None:
                remaining = self.cooldown - (now - last)
                if remaining > 0:
                    return remaining
            self._last_comment[user_id] = now
            return 0.0

    def release(self, user_id: str) -> None:
        """评论未能发表时撤销 try_acquire 的记录"""
        with self._lock:
            self._last_comment.pop(user_id, None)

    def sweep(self) -> int:
        """清理超过保留期的记录，返回清理数量"""
        now = self._clock()
        with self._lock:
            stale = [uid for uid, last in self._last_comment.items() if now - last > self.retention]
            for uid in stale:
                del self._last_comment[uid]
        if stale:
            logger.debug(f"评论冷却记录清理: {len(stale)} 条")
        return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._last_comment)

    def start(self, interval: float = 300.0) -> None:
        """启动后台清理线程"""
        if self._sweeper is not None:
            return
        self._stop_event.clear()

        def _loop():
            while not self._stop_event.wait(interval):
                self.sweep()

        self._sweeper = threading.Thread(target=_loop, name="comment-cooldown-sweeper", daemon=True)
        self._sweeper.start()

    def stop(self) -> None:
        self._stop_event.set()
        if self._sweeper is not None:
            self._sweeper.join(timeout=1)
            self._sweeper = None


class IPRateLimiter:
    """按 IP 的滑动窗口限流器"""

    def __init__(self, amount: int, per_seconds: int, namespace: str):
        """
        Args:
            amount: 窗口内允许的请求数
            per_seconds: 窗口长度（秒）
            namespace: 限流命名空间（区分 API 和页面）
        """
        self.namespace = namespace
        self._item = RateLimitItemPerSecond(amount, per_seconds)
        self._limiter = MovingWindowRateLimiter(MemoryStorage())

    def hit(self, client_ip: str) -> bool:
        """
        记录一次请求

        Returns:
            True 表示放行，False 表示超出限制
        """
        allowed = self._limiter.hit(self._item, self.namespace, client_ip)
        if not allowed:
            logger.warning(f"请求频率超限 [{self.namespace}]: {client_ip}")
        return allowed

    def reset(self) -> None:
        self._limiter.storage.reset()
