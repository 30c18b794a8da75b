"""
数据库模块

提供数据库连接、模型定义和 CRUD 操作
"""
from kappalib.db.database import Database, init_database, get_database
from kappalib.db.base import Base, CreatedAtMixin, generate_short_id, utcnow
from kappalib.db.novel import Novel, NovelStatus
from kappalib.db.source import Source
from kappalib.db.chapter import Chapter
from kappalib.db.profile import Profile
from kappalib.db.comment import Comment, CommentStatus
from kappalib.db.crud import (
    CRUDBase,
    NovelCRUD,
    ChapterCRUD,
    SourceCRUD,
    ProfileCRUD,
    CommentCRUD,
    novel_crud,
    chapter_crud,
    source_crud,
    profile_crud,
    comment_crud,
)

__all__ = [
    # 数据库连接
    "Database",
    "init_database",
    "get_database",
    # 基础类
    "Base",
    "CreatedAtMixin",
    "generate_short_id",
    "utcnow",
    # 模型
    "Novel",
    "NovelStatus",
    "Source",
    "Chapter",
    "Profile",
    "Comment",
    "CommentStatus",
    # CRUD
    "CRUDBase",
    "NovelCRUD",
    "ChapterCRUD",
    "SourceCRUD",
    "ProfileCRUD",
    "CommentCRUD",
    "novel_crud",
    "chapter_crud",
    "source_crud",
    "profile_crud",
    "comment_crud",
]
