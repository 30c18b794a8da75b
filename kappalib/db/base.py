"""
数据库基础模型类

提供所有模型的通用字段和主键生成
"""
import secrets
from datetime import datetime, timezone
from sqlalchemy import DateTime
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# 短 ID 字符集（与对外 URL 中的 ID 保持一致）
SHORT_ID_ALPHABET = "abcdefghijklmnopqrstuvwxyz0123456789"
SHORT_ID_LENGTH = 8


def utcnow() -> datetime:
    """返回不带时区信息的 UTC 当前时间（数据库统一存储 UTC）"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def generate_short_id(prefix: str) -> str:
    """
    生成带前缀的短 ID

    Args:
        prefix: ID 前缀，如 "nvl_"、"usr_"

    Returns:
        形如 "usr_k3j9x0ab" 的字符串
    """
    suffix = "".join(secrets.choice(SHORT_ID_ALPHABET) for _ in range(SHORT_ID_LENGTH))
    return f"{prefix}{suffix}"


class Base(DeclarativeBase):
    """所有模型的基类"""

    pass


class CreatedAtMixin:
    """创建时间混入类"""

    created_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False, comment="创建时间（UTC）"
    )
