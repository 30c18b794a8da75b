"""
小说和章节相关的 Pydantic 模型

定义API响应的数据格式；这些模型同时作为读缓存中保存的值
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from kappalib.db.novel import NovelStatus


# ============ 响应模型 (Response Models) ============


class NovelResponse(BaseModel):
    """小说响应"""

    model_config = ConfigDict(from_attributes=True)

    id: str
    title: str
    title_en: str
    author: str
    year_start: int
    year_end: Optional[int] = None
    status: NovelStatus
    description: Optional[str] = None
    age_rating: Optional[str] = None
    cover_url: Optional[str] = None
    chapters_count: int = 0
    created_at: datetime


class NovelsPageResponse(BaseModel):
    """小说分页列表响应"""

    novels: list[NovelResponse]
    page: int
    page_size: int
    total_count: int
    total_pages: int


class NovelSearchResponse(BaseModel):
    """搜索结果响应"""

    novels: list[NovelResponse]
    query: str


class SitemapItem(BaseModel):
    id: str
    created_at: datetime


class SourceResponse(BaseModel):
    """章节来源"""

    model_config = ConfigDict(from_attributes=True)

    name: str
    logo_url: Optional[str] = None


class ChapterSummary(BaseModel):
    """章节目录项（不含正文）"""

    model_config = ConfigDict(from_attributes=True)

    id: str
    chapter_num: int
    title: str
    title_en: Optional[str] = None


class ChaptersListResponse(BaseModel):
    """章节目录响应"""

    chapters: list[ChapterSummary]
    novel_id: str
    count: int


class ChapterResponse(BaseModel):
    """章节详情响应"""

    model_config = ConfigDict(from_attributes=True)

    id: str
    novel_id: str
    chapter_num: int
    title: str
    title_en: Optional[str] = None
    content: str
    source: Optional[SourceResponse] = None
    created_at: datetime


class ApiStatusResponse(BaseModel):
    """API 状态"""

    status: str = Field(..., description="服务状态")
    database: str = Field(..., description="数据库状态")
    version: str
