"""
测试评论冷却与 IP 限流
"""
import pytest

from kappalib.core.rate_limit import CommentCooldown, IPRateLimiter


@pytest.fixture
def cooldown(clock):
    return CommentCooldown(cooldown=30, retention=300, clock=clock)


def test_new_user_has_no_cooldown(cooldown):
    assert cooldown.try_acquire("usr_a") == 0


def test_cooldown_window(cooldown, clock):
    assert cooldown.try_acquire("usr_a") == 0

    clock.advance(10)
    assert cooldown.try_acquire("usr_a") == pytest.approx(20)

    clock.advance(21)
    assert cooldown.try_acquire("usr_a") == 0


def test_cooldown_is_per_user(cooldown):
    assert cooldown.try_acquire("usr_a") == 0

    assert cooldown.try_acquire("usr_a") > 0
    assert cooldown.try_acquire("usr_b") == 0


def test_try_acquire_blocks_second_attempt(cooldown, clock):
    assert cooldown.try_acquire("usr_a") == 0

    clock.advance(5)
    assert cooldown.try_acquire("usr_a") == pytest.approx(25)
    assert cooldown.try_acquire("usr_a") == pytest.approx(25)


def test_release_frees_the_slot(cooldown):
    assert cooldown.try_acquire("usr_a") == 0

    cooldown.release("usr_a")

    assert cooldown.try_acquire("usr_a") == 0
    cooldown.release("usr_missing")


def test_sweep_evicts_old_entries(cooldown, clock):
    assert cooldown.try_acquire("usr_a") == 0
    clock.advance(200)
    assert cooldown.try_acquire("usr_b") == 0

    clock.advance(101)

    assert cooldown.sweep() == 1
    assert len(cooldown) == 1
    assert cooldown.try_acquire("usr_a") == 0


def test_background_sweeper_starts_and_stops(cooldown):
    cooldown.start(interval=0.01)
    cooldown.start(interval=0.01)
    cooldown.stop()

    assert cooldown._sweeper is None


def test_ip_limiter_blocks_after_limit():
    limiter = IPRateLimiter(2, 60, namespace="test")

    assert limiter.hit("1.1.1.1")
    assert limiter.hit("1.1.1.1")
    assert not limiter.hit("1.1.1.1")
    assert limiter.hit("2.2.2.2")


def test_ip_limiter_reset():
    limiter = IPRateLimiter(1, 60, namespace="test")
    limiter.hit("1.1.1.1")

    limiter.reset()

    assert limiter.hit("1.1.1.1")
