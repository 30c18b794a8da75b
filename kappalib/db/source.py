"""
Source（来源）模型

章节的翻译/发布来源，多个章节可共享同一来源
"""
from sqlalchemy import String, Text, Integer
from sqlalchemy.orm import Mapped, mapped_column

from kappalib.db.base import Base


class Source(Base):
    """来源模型"""

    __tablename__ = "sources"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True, comment="主键")
    name: Mapped[str] = mapped_column(String(200), unique=True, nullable=False, comment="来源名称")
    logo_url: Mapped[str | None] = mapped_column(Text, nullable=True, comment="来源图标地址")

    def __repr__(self) -> str:
        return f"Source(id={self.id}, name={self.name!r})"
