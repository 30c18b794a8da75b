"""
CRUD 操作基类和管理器

提供通用的 CRUD（增删改查）操作接口，以及各模型的专用查询
"""
from datetime import datetime
from typing import TypeVar, Generic, Type, List, Optional, Any
from sqlalchemy import select, func, update, exists, or_, literal, Text
from sqlalchemy.orm import Session

from kappalib.db.base import Base, utcnow

# 泛型类型变量，用于表示任意模型类
ModelType = TypeVar("ModelType", bound=Base)


class CRUDBase(Generic[ModelType]):
    """
    CRUD 操作基类

    提供通用的增删改查方法，可被任何模型复用
    """

    def __init__(self, model: Type[ModelType]):
        """
        初始化 CRUD 管理器

        Args:
            model: SQLAlchemy 模型类
        """
        self.model = model

    def create(self, session: Session, **kwargs) -> ModelType:
        """
        创建新记录

        Args:
            session: 数据库会话
            **kwargs: 模型字段值

        Returns:
            创建的模型实例
        """
        obj = self.model(**kwargs)
        session.add(obj)
        session.flush()
        return obj

    def get_by_id(self, session: Session, obj_id: Any) -> Optional[ModelType]:
        """
        根据 ID 查询记录

        Returns:
            模型实例，如果不存在则返回 None
        """
        return session.get(self.model, obj_id)

    def count(self, session: Session) -> int:
        """统计记录总数"""
        stmt = select(func.count()).select_from(self.model)
        return session.scalar(stmt) or 0

    def update(self, session: Session, obj_id: Any, **kwargs) -> Optional[ModelType]:
        """
        更新记录

        Args:
            session: 数据库会话
            obj_id: 记录 ID
            **kwargs: 要更新的字段值

        Returns:
            更新后的模型实例，如果不存在则返回 None
        """
        obj = self.get_by_id(session, obj_id)
        if obj is None:
            return None

        for key, value in kwargs.items():
            if hasattr(obj, key):
                setattr(obj, key, value)

        session.flush()
        return obj

    def delete(self, session: Session, obj_id: Any) -> bool:
        """
        删除记录

        Returns:
            删除成功返回 True，记录不存在返回 False
        """
        obj = self.get_by_id(session, obj_id)
        if obj is None:
            return False

        session.delete(obj)
        session.flush()
        return True


# ===== 特定模型的 CRUD 管理器 =====

from kappalib.db.novel import Novel
from kappalib.db.chapter import Chapter
from kappalib.db.source import Source
from kappalib.db.profile import Profile
from kappalib.db.comment import Comment, CommentStatus


class NovelCRUD(CRUDBase[Novel]):
    """Novel 模型的 CRUD 管理器"""

    # 排序方式白名单，未知值回退到 oldest
    SORT_ORDERS = {
        "newest": (Novel.year_start.desc(), Novel.title.asc()),
        "oldest": (Novel.year_start.asc(), Novel.title.asc()),
        "large": (Novel.chapters_count.desc(), Novel.title.asc()),
        "small": (Novel.chapters_count.asc(), Novel.title.asc()),
        "alphabet": (Novel.title_norm.asc(),),
        "created": (Novel.created_at.desc(),),
    }
    DEFAULT_SORT = "oldest"

    @classmethod
    def resolve_sort(cls, sort: Optional[str]) -> str:
        return sort if sort in cls.SORT_ORDERS else cls.DEFAULT_SORT

    def get_page(self, session: Session, page: int, page_size: int, sort: Optional[str] = None) -> List[Novel]:
        """
        按排序方式分页查询

        Args:
            session: 数据库会话
            page: 页码（从 1 开始）
            page_size: 每页数量
            sort: 排序方式

        Returns:
            当前页的小说列表
        """
        order_by = self.SORT_ORDERS[self.resolve_sort(sort)]
        stmt = (
            select(Novel)
            .order_by(*order_by, Novel.id)
            .offset((page - 1) * page_size)
            .limit(page_size)
        )
        return list(session.scalars(stmt).all())

    def get_sitemap_rows(self, session: Session) -> List[tuple[str, datetime]]:
        """查询所有小说的 (ID, 创建时间)"""
        stmt = select(Novel.id, Novel.created_at).order_by(Novel.created_at.desc())
        return [(row.id, row.created_at) for row in session.execute(stmt)]

    def search_trigram(
        self,
        session: Session,
        query_norm: str,
        title_weight: float,
        title_en_weight: float,
        author_weight: float,
        limit: int,
    ) -> List[tuple[Novel, float]]:
        """
        使用 pg_trgm 进行模糊搜索（仅 PostgreSQL）

        标题使用 word_similarity（<% 运算符），作者使用 similarity（% 运算符）

        Returns:
            [(小说, 相关度)]，按相关度降序、创建时间降序
        """
        q = literal(query_norm, type_=Text)
        relevance = (
            func.word_similarity(q, Novel.title_norm) * title_weight
            + func.word_similarity(q, Novel.title_en_norm) * title_en_weight
            + func.similarity(Novel.author_norm, q) * author_weight
        ).label("relevance")
        stmt = (
            select(Novel, relevance)
            .where(
                or_(
                    q.op("<%")(Novel.title_norm),
                    q.op("<%")(Novel.title_en_norm),
                    Novel.author_norm.op("%")(q),
                )
            )
            .order_by(relevance.desc(), Novel.created_at.desc())
            .limit(limit)
        )
        return [(row[0], float(row[1])) for row in session.execute(stmt)]

    def get_search_candidates(self, session: Session) -> List[Novel]:
        """查询全部小说用于内存中的相似度计算（非 PostgreSQL 环境）"""
        return list(session.scalars(select(Novel)).all())


class ChapterCRUD(CRUDBase[Chapter]):
    """Chapter 模型的 CRUD 管理器"""

    def get_by_novel_id(self, session: Session, novel_id: str) -> List[Chapter]:
        """按章节序号查询小说的所有章节"""
        stmt = select(Chapter).where(Chapter.novel_id == novel_id).order_by(Chapter.chapter_num)
        return list(session.scalars(stmt).all())

    def get_by_number(self, session: Session, novel_id: str, chapter_num: int) -> Optional[Chapter]:
        """根据小说 ID 和章节序号查询章节"""
        stmt = select(Chapter).where(Chapter.novel_id == novel_id, Chapter.chapter_num == chapter_num)
        return session.scalar(stmt)

    def exists(self, session: Session, chapter_id: str) -> bool:
        """章节是否存在（不加载正文）"""
        return bool(session.scalar(select(exists().where(Chapter.id == chapter_id))))


class SourceCRUD(CRUDBase[Source]):
    """Source 模型的 CRUD 管理器"""

    def get_by_name(self, session: Session, name: str) -> Optional[Source]:
        return session.scalar(select(Source).where(Source.name == name))


class ProfileCRUD(CRUDBase[Profile]):
    """Profile 模型的 CRUD 管理器"""

    def get_by_sync_code(self, session: Session, sync_code: str, now: Optional[datetime] = None) -> Optional[Profile]:
        """
        根据未过期的同步码查询用户

        Args:
            session: 数据库会话
            sync_code: 已规范化的同步码
            now: 当前时间（UTC），默认取系统时间

        Returns:
            用户资料，如果同步码不存在或已过期则返回 None
        """
        now = now or utcnow()
        stmt = select(Profile).where(
            Profile.sync_code == sync_code,
            Profile.sync_code_expires_at > now,
        )
        return session.scalar(stmt)

    def consume_sync_code(self, session: Session, profile_id: str, sync_code: str, now: datetime) -> bool:
        """
        作废同步码并刷新活跃时间

        只有同步码仍属于该用户且未过期时才会修改

        Returns:
            是否由本次调用作废了同步码
        """
        stmt = (
            update(Profile)
            .where(
                Profile.id == profile_id,
                Profile.sync_code == sync_code,
                Profile.sync_code_expires_at > now,
            )
            .values(sync_code=None, sync_code_expires_at=None, last_active_at=now)
            .execution_options(synchronize_session=False)
        )
        return session.execute(stmt).rowcount > 0

    def sync_code_taken(self, session: Session, sync_code: str) -> bool:
        """同步码是否已被占用（包括已过期但未清理的）"""
        return bool(session.scalar(select(exists().where(Profile.sync_code == sync_code))))


class CommentCRUD(CRUDBase[Comment]):
    """Comment 模型的 CRUD 管理器"""

    def count_approved(self, session: Session, chapter_id: str) -> int:
        stmt = select(func.count()).select_from(Comment).where(
            Comment.chapter_id == chapter_id, Comment.status == CommentStatus.APPROVED
        )
        return session.scalar(stmt) or 0

    def get_approved(self, session: Session, chapter_id: str, skip: int = 0, limit: int = 12) -> List[Comment]:
        """查询章节下已通过的评论（最新在前）"""
        stmt = (
            select(Comment)
            .where(Comment.chapter_id == chapter_id, Comment.status == CommentStatus.APPROVED)
            .order_by(Comment.created_at.desc(), Comment.id)
            .offset(skip)
            .limit(limit)
        )
        return list(session.scalars(stmt).all())

    def get_pending(self, session: Session, limit: int = 50) -> List[Comment]:
        """查询待审核评论（最早在前）"""
        stmt = (
            select(Comment)
            .where(Comment.status == CommentStatus.PENDING)
            .order_by(Comment.created_at.asc())
            .limit(limit)
        )
        return list(session.scalars(stmt).all())

    def update_status(self, session: Session, comment_id: str, status: CommentStatus) -> bool:
        """
        将待审核评论更新为最终状态

        已通过或已拒绝的评论不会再被修改

        Returns:
            是否发生了状态变更
        """
        stmt = (
            update(Comment)
            .where(Comment.id == comment_id, Comment.status == CommentStatus.PENDING)
            .values(status=status)
            .execution_options(synchronize_session=False)
        )
        result = session.execute(stmt)
        return result.rowcount > 0

    def set_message_id(self, session: Session, comment_id: str, message_id: int) -> bool:
        """保存审核消息ID"""
        stmt = (
            update(Comment)
            .where(Comment.id == comment_id)
            .values(telegram_message_id=message_id)
            .execution_options(synchronize_session=False)
        )
        return session.execute(stmt).rowcount > 0


# 全局 CRUD 实例（单例模式）
novel_crud = NovelCRUD(Novel)
chapter_crud = ChapterCRUD(Chapter)
source_crud = SourceCRUD(Source)
profile_crud = ProfileCRUD(Profile)
comment_crud = CommentCRUD(Comment)
