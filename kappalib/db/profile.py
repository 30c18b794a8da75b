"""
Profile（匿名用户资料）模型

没有邮箱和密码，仅凭 ID + 密钥识别用户；通过同步码在多设备之间迁移
"""
from datetime import datetime
from typing import Any, List
from sqlalchemy import String, Boolean, DateTime, JSON, Index
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Mapped, mapped_column, relationship

from kappalib.db.base import Base, CreatedAtMixin, generate_short_id, utcnow


class Profile(Base, CreatedAtMixin):
    """匿名用户资料模型"""

    __tablename__ = "users"
    __table_args__ = (Index("idx_profiles_last_active", "last_active_at"),)

    id: Mapped[str] = mapped_column(
        String(20), primary_key=True, default=lambda: generate_short_id("usr_"), comment="主键"
    )
    secret_token: Mapped[str] = mapped_column(String(64), nullable=False, comment="访问密钥（仅创建时返回）")
    display_name: Mapped[str] = mapped_column(String(100), nullable=False, comment="昵称")
    avatar_seed: Mapped[str] = mapped_column(String(50), nullable=False, comment="默认头像种子")
    has_custom_avatar: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False, comment="是否上传了自定义头像"
    )
    # {cookie 名: {"value": str, "updated_at": int}}
    cookies: Mapped[dict[str, Any]] = mapped_column(
        JSON().with_variant(JSONB(), "postgresql"), default=dict, nullable=False, comment="客户端偏好 Cookie"
    )
    sync_code: Mapped[str | None] = mapped_column(String(8), unique=True, nullable=True, comment="设备同步码")
    sync_code_expires_at: Mapped[datetime | None] = mapped_column(
        DateTime, nullable=True, comment="同步码过期时间（UTC）"
    )
    last_active_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, nullable=False, comment="最后活跃时间（UTC）"
    )

    # 关系：删除用户时级联删除其评论
    comments: Mapped[List["Comment"]] = relationship(
        "Comment", back_populates="user", cascade="all, delete-orphan", passive_deletes=True
    )

    def touch(self) -> None:
        """更新最后活跃时间"""
        self.last_active_at = utcnow()

    def __repr__(self) -> str:
        # 不输出 secret_token
        return f"Profile(id={self.id!r}, display_name={self.display_name!r})"
