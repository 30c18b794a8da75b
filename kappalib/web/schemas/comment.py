"""
评论相关的 Pydantic 模型

定义API请求和响应的数据格式，以及 Telegram Webhook 回调的数据结构
"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, ConfigDict, Field

from kappalib.db.comment import CommentStatus


# ============ 请求模型 (Request Models) ============


class CommentCreate(BaseModel):
    """发表评论请求"""

    # 长度由服务层校验，以便返回统一的错误信息
    content: str = Field(..., description="Markdown 格式的评论内容")
    turnstile_token: str = Field(default="", description="Turnstile 人机验证令牌")


# ============ 响应模型 (Response Models) ============


class CommentResponse(BaseModel):
    """评论响应"""

    model_config = ConfigDict(from_attributes=True)

    id: str
    chapter_id: str
    user_id: str
    content_html: str
    status: CommentStatus
    created_at: datetime
    user_display_name: Optional[str] = None
    user_avatar_seed: Optional[str] = None
    user_has_custom_avatar: bool = False


class CommentsPageResponse(BaseModel):
    """评论分页列表响应"""

    comments: list[CommentResponse]
    page: int
    page_size: int
    total_count: int
    total_pages: int


# ============ Telegram Webhook ============


class TelegramMessage(BaseModel):
    model_config = ConfigDict(extra="ignore")

    message_id: int
    text: Optional[str] = None


class TelegramCallbackQuery(BaseModel):
    model_config = ConfigDict(extra="ignore")

    id: str
    data: Optional[str] = None
    message: Optional[TelegramMessage] = None


class TelegramUpdate(BaseModel):
    """Telegram 推送的 Update（只关心按钮回调）"""

    model_config = ConfigDict(extra="ignore")

    update_id: Optional[int] = None
    callback_query: Optional[TelegramCallbackQuery] = None
