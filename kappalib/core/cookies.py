"""
客户端偏好 Cookie 的校验与合并

服务端只镜像以固定前缀开头的 Cookie；多设备之间按客户端提供的
updated_at 做“最后写入者胜出”合并。updated_at 由客户端给出，服务端不做修正，
伪造未来时间戳的客户端可以强制覆盖，这对偏好设置是可接受的
"""
import re
from typing import Any, Mapping

from loguru import logger

DEFAULT_COOKIE_PREFIX = "kappalib_"
_VALUE_RE = re.compile(r"^[A-Za-z0-9_\-]{1,200}$")

CookieBag = dict[str, dict[str, Any]]


def _name_pattern(prefix: str) -> re.Pattern:
    return re.compile(rf"^{re.escape(prefix)}[a-z0-9_]{{1,50}}$")


def validate_name(name: str, prefix: str = DEFAULT_COOKIE_PREFIX) -> bool:
    """Cookie 名必须是 前缀 + 1~50 个 [a-z0-9_] 字符"""
    return bool(_name_pattern(prefix).fullmatch(name))


def validate_value(value: str) -> bool:
    """Cookie 值必须是 1~200 个 [A-Za-z0-9_-] 字符"""
    return isinstance(value, str) and bool(_VALUE_RE.fullmatch(value))


def _valid_timestamp(value: Any) -> bool:
    # bool 是 int 的子类，需要排除
    return isinstance(value, int) and not isinstance(value, bool)


def filter_valid(cookies: Mapping[str, Any], prefix: str = DEFAULT_COOKIE_PREFIX) -> CookieBag:
    """
    过滤掉不合法的 Cookie 项

    Args:
        cookies: {名称: {"value": str, "updated_at": int}}
        prefix: Cookie 名前缀

    Returns:
        只包含合法项的新字典
    """
    valid: CookieBag = {}
    for name, entry in (cookies or {}).items():
        if not isinstance(entry, Mapping):
            continue
        value = entry.get("value")
        updated_at = entry.get("updated_at")
        if validate_name(name, prefix) and validate_value(value) and _valid_timestamp(updated_at):
            valid[name] = {"value": value, "updated_at": updated_at}
    dropped = len(cookies or {}) - len(valid)
    if dropped:
        logger.debug(f"丢弃 {dropped} 个不合法的 Cookie")
    return valid


def merge(existing: Mapping[str, Any] | None, incoming: Mapping[str, Any] | None) -> CookieBag:
    """
    合并两组 Cookie

    同名项仅当 incoming 的 updated_at 严格大于 existing 时才覆盖，
    只存在于一侧的项原样保留

    Returns:
        合并后的新字典（不修改入参）
    """
    result: CookieBag = {name: dict(entry) for name, entry in (existing or {}).items()}
    for name, entry in (incoming or {}).items():
        current = result.get(name)
        if current is None or entry["updated_at"] > current.get("updated_at", 0):
            result[name] = dict(entry)
    return result
