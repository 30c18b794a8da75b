"""
章节路由

提供章节正文查询，以及章节下评论的列表和发表
"""
import asyncio
from typing import Annotated, Optional

from fastapi import APIRouter, Header

from kappalib.services.comments import comment_to_response
from kappalib.web.dependencies import CatalogDep, ClientIPDep, CommentServiceDep
from kappalib.web.schemas.comment import CommentCreate, CommentResponse, CommentsPageResponse
from kappalib.web.schemas.novel import ChapterResponse

router = APIRouter()


@router.get("/{chapter_id}", response_model=ChapterResponse, summary="获取章节详情")
async def get_chapter(chapter_id: str, catalog: CatalogDep):
    """
    获取章节正文和来源信息

    Raises:
        ChapterNotFoundError: 章节不存在时返回 404
    """
    return catalog.get_chapter(chapter_id)


@router.get("/{chapter_id}/comments", response_model=CommentsPageResponse, summary="获取章节评论")
async def list_comments(chapter_id: str, service: CommentServiceDep, page: int = 1):
    """
    获取章节下已通过审核的评论（最新在前）

    Args:
        chapter_id: 章节ID
        service: 评论服务
        page: 页码

    Returns:
        评论分页列表
    """
    return service.list_approved(chapter_id, page=page)


@router.post("/{chapter_id}/comments", response_model=CommentResponse, status_code=201, summary="发表评论")
async def create_comment(
    chapter_id: str,
    comment_data: CommentCreate,
    service: CommentServiceDep,
    client_ip: ClientIPDep,
    x_profile_id: Annotated[Optional[str], Header()] = None,
    x_secret_token: Annotated[Optional[str], Header()] = None,
):
    """
    发表评论，评论经审核后才会公开

    Args:
        chapter_id: 章节ID
        comment_data: 评论内容和人机验证令牌
        service: 评论服务
        client_ip: 客户端 IP
        x_profile_id: 作者资料ID
        x_secret_token: 作者密钥

    Returns:
        待审核状态的评论
    """
    # 人机验证需要请求外部接口，放到线程中执行
    comment = await asyncio.to_thread(
        service.create,
        x_profile_id or "",
        x_secret_token or "",
        chapter_id,
        comment_data.content,
        comment_data.turnstile_token,
        client_ip,
    )
    return comment_to_response(comment)
