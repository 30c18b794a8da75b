"""
Comment（评论）模型

评论创建后处于待审核状态，由 Telegram 审核群中的管理员通过或拒绝
"""
from enum import Enum
from sqlalchemy import String, Text, BigInteger, ForeignKey, Enum as SQLEnum, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from kappalib.db.base import Base, CreatedAtMixin, generate_short_id
from kappalib.db.profile import Profile


class CommentStatus(str, Enum):
    """评论状态枚举"""

    PENDING = "pending"  # 待审核
    APPROVED = "approved"  # 已通过
    REJECTED = "rejected"  # 已拒绝


class Comment(Base, CreatedAtMixin):
    """评论模型"""

    __tablename__ = "comments"
    __table_args__ = (Index("idx_comments_chapter_status", "chapter_id", "status", "created_at"),)

    id: Mapped[str] = mapped_column(
        String(20), primary_key=True, default=lambda: generate_short_id("cmt_"), comment="主键"
    )
    chapter_id: Mapped[str] = mapped_column(
        String(20), ForeignKey("chapters.id", ondelete="CASCADE"), nullable=False, index=True, comment="所属章节ID"
    )
    user_id: Mapped[str] = mapped_column(
        String(20), ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True, comment="作者ID"
    )
    content_html: Mapped[str] = mapped_column(Text, nullable=False, comment="净化后的 HTML 内容")
    status: Mapped[CommentStatus] = mapped_column(
        SQLEnum(
            CommentStatus,
            values_callable=lambda enum: [item.value for item in enum],
            native_enum=False,
            length=20,
        ),
        default=CommentStatus.PENDING,
        nullable=False,
        index=True,
        comment="审核状态",
    )
    telegram_message_id: Mapped[int | None] = mapped_column(
        BigInteger, nullable=True, comment="审核消息ID（用于编辑消息）"
    )

    # 关系：多对一
    user: Mapped[Profile] = relationship("Profile", back_populates="comments", lazy="joined")

    def __repr__(self) -> str:
        return f"Comment(id={self.id!r}, chapter_id={self.chapter_id!r}, status={self.status.value})"
