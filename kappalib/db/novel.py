"""
Novel（小说）模型

表示一部小说的基本信息，附带用于模糊搜索的规范化列
"""
from enum import Enum
from typing import List
from sqlalchemy import String, Text, Enum as SQLEnum, Integer, Index, event
from sqlalchemy.orm import Mapped, mapped_column, relationship

from kappalib.db.base import Base, CreatedAtMixin, generate_short_id
from kappalib.core.search import normalize_search_text


class NovelStatus(str, Enum):
    """小说状态枚举"""

    ONGOING = "ongoing"  # 连载中
    COMPLETED = "completed"  # 已完结
    ANNOUNCED = "announced"  # 已预告


class Novel(Base, CreatedAtMixin):
    """小说模型"""

    __tablename__ = "novels"
    __table_args__ = (
        Index("idx_novels_year_title", "year_start", "title"),
        Index("idx_novels_created_at", "created_at"),
        Index("idx_novels_chapters_count", "chapters_count"),
        Index("idx_novels_title_norm", "title_norm"),
        Index(
            "idx_novels_trgm_search",
            "title_norm",
            "title_en_norm",
            "author_norm",
            postgresql_using="gin",
            postgresql_ops={
                "title_norm": "gin_trgm_ops",
                "title_en_norm": "gin_trgm_ops",
                "author_norm": "gin_trgm_ops",
            },
        ),
    )

    id: Mapped[str] = mapped_column(
        String(20), primary_key=True, default=lambda: generate_short_id("nvl_"), comment="主键"
    )
    title: Mapped[str] = mapped_column(String(500), nullable=False, comment="小说标题（原文）")
    title_en: Mapped[str] = mapped_column(String(500), nullable=False, comment="英文标题")
    author: Mapped[str] = mapped_column(String(300), nullable=False, comment="作者")
    year_start: Mapped[int] = mapped_column(Integer, nullable=False, comment="开始连载年份")
    year_end: Mapped[int | None] = mapped_column(Integer, nullable=True, comment="完结年份")
    status: Mapped[NovelStatus] = mapped_column(
        SQLEnum(
            NovelStatus,
            values_callable=lambda enum: [item.value for item in enum],
            native_enum=False,
            length=20,
        ),
        nullable=False,
        comment="小说状态",
    )
    description: Mapped[str | None] = mapped_column(Text, nullable=True, comment="小说简介")
    age_rating: Mapped[str | None] = mapped_column(String(10), nullable=True, comment="年龄分级")
    cover_url: Mapped[str | None] = mapped_column(Text, nullable=True, comment="封面地址")
    chapters_count: Mapped[int] = mapped_column(
        Integer, default=0, nullable=False, comment="章节数（随章节增删维护）"
    )

    # 搜索用规范化列：小写、仅保留字母数字
    title_norm: Mapped[str] = mapped_column(Text, default="", nullable=False, comment="规范化标题")
    title_en_norm: Mapped[str] = mapped_column(Text, default="", nullable=False, comment="规范化英文标题")
    author_norm: Mapped[str] = mapped_column(Text, default="", nullable=False, comment="规范化作者")

    # 关系：一对多，一部小说包含多个章节
    chapters: Mapped[List["Chapter"]] = relationship(
        "Chapter",
        back_populates="novel",
        cascade="all, delete-orphan",
        passive_deletes=True,
        order_by="Chapter.chapter_num",
    )

    def refresh_search_columns(self) -> None:
        """根据原始字段重新计算规范化搜索列"""
        self.title_norm = normalize_search_text(self.title)
        self.title_en_norm = normalize_search_text(self.title_en)
        self.author_norm = normalize_search_text(self.author)

    def __repr__(self) -> str:
        return f"Novel(id={self.id!r}, title={self.title!r}, status={self.status.value})"


@event.listens_for(Novel, "before_insert")
@event.listens_for(Novel, "before_update")
def _sync_search_columns(mapper, connection, target: Novel) -> None:
    target.refresh_search_columns()
