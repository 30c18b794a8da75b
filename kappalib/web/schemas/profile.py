"""
用户资料相关的 Pydantic 模型

定义API请求和响应的数据格式
"""
from datetime import datetime
from typing import Any
from pydantic import BaseModel, ConfigDict, Field


# ============ 请求模型 (Request Models) ============


class ProfileCreate(BaseModel):
    """创建资料请求"""

    turnstile_token: str = Field(default="", description="Turnstile 人机验证令牌")


class SyncCodeLogin(BaseModel):
    """同步码登录请求"""

    sync_code: str = Field(..., max_length=32, description="8 位同步码")


class CookieValue(BaseModel):
    """单个 Cookie 值"""

    value: str
    updated_at: int = Field(..., description="客户端修改时间（毫秒时间戳）")


class CookieSyncRequest(BaseModel):
    """Cookie 同步请求"""

    # 逐项校验由服务层完成，不合法的项会被丢弃
    cookies: dict[str, Any] = Field(default_factory=dict)


class DisplayNameUpdate(BaseModel):
    """修改昵称请求"""

    display_name: str = Field(..., max_length=200)


class AvatarUpload(BaseModel):
    """上传头像请求"""

    image: str = Field(..., description="Base64 编码的图片，可带 data URL 前缀")


# ============ 响应模型 (Response Models) ============


class ProfilePublic(BaseModel):
    """公开资料"""

    model_config = ConfigDict(from_attributes=True)

    id: str
    display_name: str
    avatar_seed: str
    has_custom_avatar: bool = False
    created_at: datetime


class ProfileWithToken(ProfilePublic):
    """创建资料响应（仅此时返回密钥）"""

    secret_token: str


class SyncCodeResponse(BaseModel):
    sync_code: str
    expires_at: datetime


class LoginResponse(BaseModel):
    """同步码登录响应"""

    profile: ProfilePublic
    secret_token: str
    cookies: dict[str, CookieValue]


class CookieSyncResponse(BaseModel):
    cookies: dict[str, CookieValue]
