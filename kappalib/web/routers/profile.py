"""
用户资料路由

提供匿名资料的创建、查询、删除，多设备同步，以及昵称和头像修改
"""
import asyncio
import base64
import binascii
from typing import Annotated, Optional

from fastapi import APIRouter, Header, Response

from kappalib.db.profile import Profile
from kappalib.exceptions import ValidationError
from kappalib.web.config import settings
from kappalib.web.dependencies import ClientIPDep, ProfileServiceDep
from kappalib.web.schemas.profile import (
    AvatarUpload,
    CookieSyncRequest,
    CookieSyncResponse,
    DisplayNameUpdate,
    LoginResponse,
    ProfileCreate,
    ProfilePublic,
    ProfileWithToken,
    SyncCodeLogin,
    SyncCodeResponse,
)

router = APIRouter()

SecretTokenHeader = Annotated[Optional[str], Header(alias="X-Secret-Token")]
ProfileIDHeader = Annotated[Optional[str], Header(alias="X-Profile-ID")]


def _public(profile: Profile) -> ProfilePublic:
    return ProfilePublic.model_validate(profile)


def decode_image_payload(payload: str, max_bytes: int) -> bytes:
    """
    解码 Base64 图片，允许 data URL 前缀（data:image/png;base64,...）

    Raises:
        ValidationError: 不是合法的 Base64 或超过大小限制
    """
    data = payload.strip()
    if data.startswith("data:"):
        _, _, data = data.partition(",")
    # Base64 膨胀约 4/3，先按编码长度粗略判断
    if len(data) > max_bytes * 4 // 3 + 4:
        raise ValidationError("image", "图片过大")
    try:
        image = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise ValidationError("image", "图片数据无效") from e
    if not image:
        raise ValidationError("image", "图片数据无效")
    if len(image) > max_bytes:
        raise ValidationError("image", "图片过大")
    return image


@router.post("", response_model=ProfileWithToken, status_code=201, summary="创建资料")
async def create_profile(profile_data: ProfileCreate, service: ProfileServiceDep, client_ip: ClientIPDep):
    """
    创建匿名资料

    返回的密钥只在此时出现一次，客户端需要自行保存

    Raises:
        CaptchaRejectedError: 人机验证未通过时返回 400
    """
    profile = await asyncio.to_thread(service.create, profile_data.turnstile_token, client_ip)
    return ProfileWithToken(**_public(profile).model_dump(), secret_token=profile.secret_token)


@router.post("/login", response_model=LoginResponse, summary="同步码登录")
async def login(login_data: SyncCodeLogin, service: ProfileServiceDep):
    """
    在新设备上用同步码登录

    Returns:
        资料、密钥和已保存的 Cookie

    Raises:
        InvalidSyncCodeError: 同步码无效或已过期时返回 404
    """
    profile = service.login_with_code(login_data.sync_code)
    return LoginResponse(profile=_public(profile), secret_token=profile.secret_token, cookies=profile.cookies)


@router.post("/sync-cookies", response_model=CookieSyncResponse, summary="同步 Cookie")
async def sync_cookies(
    sync_data: CookieSyncRequest,
    service: ProfileServiceDep,
    x_profile_id: ProfileIDHeader = None,
    x_secret_token: SecretTokenHeader = None,
):
    """
    上传本地 Cookie 并返回与服务端合并后的结果

    Raises:
        ForbiddenError: 密钥无效时返回 403
    """
    merged = service.sync_cookies(x_profile_id or "", x_secret_token or "", sync_data.cookies)
    return CookieSyncResponse(cookies=merged)


@router.get("/{profile_id}", response_model=ProfilePublic, summary="获取资料")
async def get_profile(profile_id: str, service: ProfileServiceDep):
    return _public(service.get(profile_id))


@router.delete("/{profile_id}", status_code=204, summary="删除资料")
async def delete_profile(profile_id: str, service: ProfileServiceDep, x_secret_token: SecretTokenHeader = None):
    """
    删除资料及其所有评论

    Raises:
        ForbiddenError: 密钥无效时返回 403
    """
    service.delete(profile_id, x_secret_token or "")
    return Response(status_code=204)


@router.post("/{profile_id}/sync-code", response_model=SyncCodeResponse, summary="生成同步码")
async def generate_sync_code(profile_id: str, service: ProfileServiceDep, x_secret_token: SecretTokenHeader = None):
    """
    生成 15 分钟内有效的一次性同步码

    Raises:
        ForbiddenError: 密钥无效时返回 403
    """
    code, expires_at = service.generate_sync_code(profile_id, x_secret_token or "")
    return SyncCodeResponse(sync_code=code, expires_at=expires_at)


@router.patch("/{profile_id}/name", response_model=ProfilePublic, summary="修改昵称")
async def update_display_name(
    profile_id: str,
    name_data: DisplayNameUpdate,
    service: ProfileServiceDep,
    x_secret_token: SecretTokenHeader = None,
):
    """
    修改昵称（最多 15 个字符，只允许字母、数字和空格）

    Raises:
        ForbiddenError: 密钥无效时返回 403
        InvalidNameError: 昵称不合法时返回 400
    """
    profile = service.update_display_name(profile_id, x_secret_token or "", name_data.display_name)
    return _public(profile)


@router.post("/{profile_id}/avatar", response_model=ProfilePublic, summary="上传头像")
async def upload_avatar(
    profile_id: str,
    avatar_data: AvatarUpload,
    service: ProfileServiceDep,
    x_secret_token: SecretTokenHeader = None,
):
    """
    上传自定义头像（JPEG 或 PNG），裁剪缩放后保存

    Raises:
        ForbiddenError: 密钥无效时返回 403
        UnsupportedFormatError: 图片格式不支持时返回 400
        AvatarBusyError: 处理繁忙时返回 429
        StorageError: 对象存储不可用时返回 502
    """
    image = decode_image_payload(avatar_data.image, settings.AVATAR_MAX_BYTES)
    # 图片处理和上传较慢，放到线程中执行
    profile = await asyncio.to_thread(service.update_avatar, profile_id, x_secret_token or "", image)
    return _public(profile)
