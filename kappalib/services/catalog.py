"""
NovelCatalog 服务类

小说与章节的只读查询，结果以 Pydantic 模型形式缓存在进程内
"""
import math
from dataclasses import dataclass
from typing import List

from loguru import logger
from sqlalchemy.orm import Session

from kappalib.core.cache import TTLCache
from kappalib.core.search import (
    DEFAULT_SIMILARITY_THRESHOLD,
    DEFAULT_WORD_SIMILARITY_THRESHOLD,
    SearchWeights,
    normalize_search_text,
    score_candidate,
)
from kappalib.db.crud import chapter_crud, novel_crud
from kappalib.exceptions import ChapterNotFoundError, NovelNotFoundError
from kappalib.web.schemas.novel import (
    ChapterResponse,
    ChapterSummary,
    ChaptersListResponse,
    NovelResponse,
    NovelsPageResponse,
    SitemapItem,
)


@dataclass(frozen=True)
class CatalogTTL:
    """各类缓存的过期时间（秒）"""

    novel: float = 600
    chapter: float = 1800
    listing: float = 300
    chapters_list: float = 300
    sitemap: float = 3600


class NovelCatalog:
    """小说目录服务类"""

    def __init__(
        self,
        session: Session,
        cache: TTLCache,
        ttl: CatalogTTL = CatalogTTL(),
        page_size: int = 12,
        search_limit: int = 20,
        weights: SearchWeights = SearchWeights(),
        word_threshold: float = DEFAULT_WORD_SIMILARITY_THRESHOLD,
        threshold: float = DEFAULT_SIMILARITY_THRESHOLD,
    ):
        """
        初始化小说目录

        Args:
            session: 数据库会话
            cache: 进程内缓存
            ttl: 缓存过期时间
            page_size: 列表每页数量
            search_limit: 搜索结果上限
            weights: 搜索相关度权重
            word_threshold: 标题 word_similarity 阈值（非 PostgreSQL）
            threshold: 作者 similarity 阈值（非 PostgreSQL）
        """
        self.session = session
        self.cache = cache
        self.ttl = ttl
        self.page_size = page_size
        self.search_limit = search_limit
        self.weights = weights
        self.word_threshold = word_threshold
        self.threshold = threshold

    # ========== 小说 ==========

    def list_novels(self, page: int = 1, sort: str | None = None) -> NovelsPageResponse:
        """
        分页获取小说列表

        Args:
            page: 页码（从 1 开始，小于 1 按 1 处理）
            sort: 排序方式，未知值按 oldest 处理

        Returns:
            分页结果；页码超出范围时返回空列表和总数
        """
        page = max(page, 1)
        sort = novel_crud.resolve_sort(sort)
        key = f"novels:page:{page}:sort:{sort}"
        # 超出末页的页码不缓存，避免任意页码占用缓存
        return self.cache.get_or_fetch(
            key,
            self.ttl.listing,
            lambda: self._fetch_page(page, sort),
            should_cache=lambda result: result.page <= max(result.total_pages, 1),
        )

    def _fetch_page(self, page: int, sort: str) -> NovelsPageResponse:
        total = novel_crud.count(self.session)
        total_pages = math.ceil(total / self.page_size) if total else 0
        novels: List[NovelResponse] = []
        if (page - 1) * self.page_size < total:
            rows = novel_crud.get_page(self.session, page, self.page_size, sort)
            novels = [NovelResponse.model_validate(novel) for novel in rows]
        return NovelsPageResponse(
            novels=novels,
            page=page,
            page_size=self.page_size,
            total_count=total,
            total_pages=total_pages,
        )

    def get_novel(self, novel_id: str) -> NovelResponse:
        """
        获取小说详情

        Raises:
            NovelNotFoundError: 小说不存在
        """
        return self.cache.get_or_fetch(f"novel:{novel_id}", self.ttl.novel, lambda: self._fetch_novel(novel_id))

    def _fetch_novel(self, novel_id: str) -> NovelResponse:
        novel = novel_crud.get_by_id(self.session, novel_id)
        if novel is None:
            raise NovelNotFoundError(novel_id)
        return NovelResponse.model_validate(novel)

    def sitemap_data(self) -> List[SitemapItem]:
        """所有小说的 ID 和创建时间（用于生成站点地图）"""
        return self.cache.get_or_fetch(
            "novels:sitemap",
            self.ttl.sitemap,
            lambda: [
                SitemapItem(id=novel_id, created_at=created_at)
                for novel_id, created_at in novel_crud.get_sitemap_rows(self.session)
            ],
        )

    def search(self, query: str) -> List[NovelResponse]:
        """
        按标题、英文标题和作者模糊搜索

        Args:
            query: 搜索词

        Returns:
            按相关度排序的小说列表，空查询或无匹配时返回空列表
        """
        query_norm = normalize_search_text((query or "").strip())
        if not query_norm:
            return []

        if self.session.get_bind().dialect.name == "postgresql":
            rows = novel_crud.search_trigram(
                self.session,
                query_norm,
                title_weight=self.weights.title,
                title_en_weight=self.weights.title_en,
                author_weight=self.weights.author,
                limit=self.search_limit,
            )
            novels = [novel for novel, _ in rows]
        else:
            novels = self._search_in_memory(query_norm)

        logger.debug(f"搜索 {query!r} 命中 {len(novels)} 条")
        return [NovelResponse.model_validate(novel) for novel in novels]

    def _search_in_memory(self, query_norm: str) -> list:
        scored = []
        for novel in novel_crud.get_search_candidates(self.session):
            score = score_candidate(
                query_norm,
                novel.title_norm,
                novel.title_en_norm,
                novel.author_norm,
                weights=self.weights,
                word_threshold=self.word_threshold,
                threshold=self.threshold,
            )
            if score is not None:
                scored.append((score, novel))
        # 相关度降序，其次创建时间降序
        scored.sort(key=lambda item: (item[0], item[1].created_at), reverse=True)
        return [novel for _, novel in scored[: self.search_limit]]

    # ========== 章节 ==========

    def get_chapters(self, novel_id: str) -> ChaptersListResponse:
        """
        获取小说的章节目录（按章节序号）

        空目录不缓存，未知的小说ID不会留在缓存中
        """
        return self.cache.get_or_fetch(
            f"chapters:novel:{novel_id}",
            self.ttl.chapters_list,
            lambda: self._fetch_chapters(novel_id),
            should_cache=lambda result: result.count > 0,
        )

    def _fetch_chapters(self, novel_id: str) -> ChaptersListResponse:
        chapters = [ChapterSummary.model_validate(ch) for ch in chapter_crud.get_by_novel_id(self.session, novel_id)]
        return ChaptersListResponse(chapters=chapters, novel_id=novel_id, count=len(chapters))

    def get_chapter(self, chapter_id: str) -> ChapterResponse:
        """
        获取章节详情（含来源信息）

        Raises:
            ChapterNotFoundError: 章节不存在
        """
        return self.cache.get_or_fetch(
            f"chapter:{chapter_id}", self.ttl.chapter, lambda: self._fetch_chapter(chapter_id)
        )

    def _fetch_chapter(self, chapter_id: str) -> ChapterResponse:
        chapter = chapter_crud.get_by_id(self.session, chapter_id)
        if chapter is None:
            raise ChapterNotFoundError(chapter_id)
        return ChapterResponse.model_validate(chapter)
