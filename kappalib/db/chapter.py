"""
Chapter（章节）模型

表示小说中的一个章节，章节序号在同一部小说内唯一
"""
from sqlalchemy import String, Text, Integer, ForeignKey, UniqueConstraint, event, update
from sqlalchemy.orm import Mapped, mapped_column, relationship

from kappalib.db.base import Base, CreatedAtMixin, generate_short_id
from kappalib.db.novel import Novel
from kappalib.db.source import Source


class Chapter(Base, CreatedAtMixin):
    """章节模型"""

    __tablename__ = "chapters"
    __table_args__ = (UniqueConstraint("novel_id", "chapter_num", name="uq_chapters_novel_num"),)

    id: Mapped[str] = mapped_column(
        String(20), primary_key=True, default=lambda: generate_short_id("chp_"), comment="主键"
    )
    novel_id: Mapped[str] = mapped_column(
        String(20), ForeignKey("novels.id", ondelete="CASCADE"), nullable=False, index=True, comment="所属小说ID"
    )
    chapter_num: Mapped[int] = mapped_column(Integer, nullable=False, comment="章节序号（从1开始）")
    title: Mapped[str] = mapped_column(String(500), nullable=False, comment="章节标题")
    title_en: Mapped[str | None] = mapped_column(String(500), nullable=True, comment="英文标题")
    content: Mapped[str] = mapped_column(Text, nullable=False, comment="章节内容")
    source_id: Mapped[int | None] = mapped_column(
        Integer, ForeignKey("sources.id", ondelete="SET NULL"), nullable=True, index=True, comment="来源ID"
    )

    # 关系：多对一
    novel: Mapped["Novel"] = relationship("Novel", back_populates="chapters")
    source: Mapped[Source | None] = relationship("Source", lazy="joined")

    def __repr__(self) -> str:
        return f"Chapter(id={self.id!r}, novel_id={self.novel_id!r}, chapter_num={self.chapter_num})"


# 章节数随章节增删维护
@event.listens_for(Chapter, "after_insert")
def _increment_chapters_count(mapper, connection, target: Chapter) -> None:
    connection.execute(
        update(Novel.__table__)
        .where(Novel.__table__.c.id == target.novel_id)
        .values(chapters_count=Novel.__table__.c.chapters_count + 1)
    )


@event.listens_for(Chapter, "after_delete")
def _decrement_chapters_count(mapper, connection, target: Chapter) -> None:
    connection.execute(
        update(Novel.__table__)
        .where(Novel.__table__.c.id == target.novel_id)
        .values(chapters_count=Novel.__table__.c.chapters_count - 1)
    )
