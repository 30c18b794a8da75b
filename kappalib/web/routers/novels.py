"""
小说目录路由

提供小说列表、搜索、详情和章节目录查询
"""
from fastapi import APIRouter, Query

from kappalib.web.config import settings
from kappalib.web.dependencies import CatalogDep
from kappalib.web.schemas.novel import (
    ChaptersListResponse,
    NovelResponse,
    NovelSearchResponse,
    NovelsPageResponse,
    SitemapItem,
)

router = APIRouter()


@router.get("", response_model=NovelsPageResponse, summary="获取小说列表")
async def list_novels(catalog: CatalogDep, page: int = 1, sort: str = "oldest"):
    """
    分页获取小说列表

    Args:
        catalog: 小说目录服务
        page: 页码（从 1 开始）
        sort: 排序方式（newest / oldest / large / small / alphabet / created）

    Returns:
        小说分页列表
    """
    return catalog.list_novels(page=page, sort=sort)


@router.get("/sitemap-data", response_model=list[SitemapItem], summary="站点地图数据")
async def sitemap_data(catalog: CatalogDep):
    return catalog.sitemap_data()


@router.get("/search", response_model=NovelSearchResponse, summary="搜索小说")
async def search_novels(
    catalog: CatalogDep,
    q: str = Query(..., max_length=settings.SEARCH_QUERY_MAX_LENGTH, description="搜索词"),
):
    """
    按标题、英文标题和作者模糊搜索

    Returns:
        搜索结果（最多 20 条）
    """
    return NovelSearchResponse(novels=catalog.search(q), query=q)


@router.get("/{novel_id}", response_model=NovelResponse, summary="获取小说详情")
async def get_novel(novel_id: str, catalog: CatalogDep):
    """
    获取小说详情

    Raises:
        NovelNotFoundError: 小说不存在时返回 404
    """
    return catalog.get_novel(novel_id)


@router.get("/{novel_id}/chapters", response_model=ChaptersListResponse, summary="获取章节目录")
async def list_chapters(novel_id: str, catalog: CatalogDep):
    return catalog.get_chapters(novel_id)
