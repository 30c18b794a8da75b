"""
ProfileService 服务类

匿名用户资料的创建、鉴权、多设备同步、昵称和头像管理
"""
import secrets
from datetime import datetime, timedelta
from typing import Any, Mapping, Optional

from loguru import logger
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from kappalib.core import cookies as cookie_bag
from kappalib.core.avatar import AvatarProcessor
from kappalib.core.captcha import TurnstileVerifier
from kappalib.core.markup import collapse_whitespace, strip_markup
from kappalib.core.tokens import (
    SYNC_CODE_LENGTH,
    new_avatar_seed,
    new_secret_token,
    new_sync_code,
    normalize_sync_code,
    random_display_name,
)
from kappalib.db.base import utcnow
from kappalib.db.crud import profile_crud
from kappalib.db.profile import Profile
from kappalib.exceptions import (
    CaptchaRejectedError,
    ForbiddenError,
    InvalidNameError,
    InvalidSyncCodeError,
    ProfileNotFoundError,
    StorageError,
    SyncCodeConflictError,
)

DISPLAY_NAME_MAX_LENGTH = 15


def validate_display_name(name: str, max_length: int = DISPLAY_NAME_MAX_LENGTH) -> str:
    """
    清洗并校验昵称

    先去除所有 HTML 标签，再合并连续空白并去除首尾空白，
    最后只允许字母、数字和空格

    Args:
        name: 用户提交的昵称
        max_length: 最大长度（按字符计）

    Returns:
        清洗后的昵称

    Raises:
        InvalidNameError: 为空、过长或包含非法字符
    """
    cleaned = collapse_whitespace(strip_markup(name or ""))
    if not cleaned:
        raise InvalidNameError("不能为空")
    if len(cleaned) > max_length:
        raise InvalidNameError(f"不能超过 {max_length} 个字符")
    if any(not (ch.isalnum() or ch == " ") for ch in cleaned):
        raise InvalidNameError("只能包含字母、数字和空格")
    return cleaned


class ProfileService:
    """用户资料服务类"""

    def __init__(
        self,
        session: Session,
        captcha: Optional[TurnstileVerifier] = None,
        avatars: Optional[AvatarProcessor] = None,
        cookie_prefix: str = cookie_bag.DEFAULT_COOKIE_PREFIX,
        sync_code_ttl: timedelta = timedelta(minutes=15),
        sync_code_max_attempts: int = 5,
    ):
        """
        初始化用户资料服务

        Args:
            session: 数据库会话
            captcha: 创建资料用的人机验证器
            avatars: 头像处理器
            cookie_prefix: 允许同步的 Cookie 名前缀
            sync_code_ttl: 同步码有效期
            sync_code_max_attempts: 同步码冲突时的最大尝试次数
        """
        self.session = session
        self.captcha = captcha
        self.avatars = avatars
        self.cookie_prefix = cookie_prefix
        self.sync_code_ttl = sync_code_ttl
        self.sync_code_max_attempts = sync_code_max_attempts

    # ========== 创建与查询 ==========

    def create(self, captcha_token: str, remote_ip: Optional[str] = None) -> Profile:
        """
        创建新的匿名资料

        Args:
            captcha_token: Turnstile 令牌
            remote_ip: 用户 IP

        Returns:
            新建的资料（包含密钥）

        Raises:
            CaptchaRejectedError: 人机验证未通过
        """
        if self.captcha is None or not self.captcha.verify(captcha_token, remote_ip):
            raise CaptchaRejectedError()

        profile = profile_crud.create(
            self.session,
            secret_token=new_secret_token(),
            display_name=random_display_name(),
            avatar_seed=new_avatar_seed(),
            has_custom_avatar=False,
            cookies={},
        )
        logger.info(f"用户资料已创建: {profile.id}")
        return profile

    def get(self, profile_id: str) -> Profile:
        """
        获取资料并刷新活跃时间

        Raises:
            ProfileNotFoundError: 资料不存在
        """
        profile = profile_crud.get_by_id(self.session, profile_id)
        if profile is None:
            raise ProfileNotFoundError(profile_id)
        profile.touch()
        self.session.flush()
        return profile

    def authenticate(self, profile_id: str, secret_token: str) -> bool:
        """
        校验资料密钥

        Returns:
            密钥匹配返回 True；资料不存在或密钥错误返回 False
        """
        if not profile_id or not secret_token:
            return False
        profile = profile_crud.get_by_id(self.session, profile_id)
        if profile is None:
            return False
        return secrets.compare_digest(profile.secret_token.encode(), secret_token.encode())

    def _require_owner(self, profile_id: str, secret_token: str) -> Profile:
        if not self.authenticate(profile_id, secret_token):
            raise ForbiddenError(profile_id)
        return profile_crud.get_by_id(self.session, profile_id)

    # ========== 多设备同步 ==========

    def generate_sync_code(self, profile_id: str, secret_token: str) -> tuple[str, datetime]:
        """
        生成同步码（覆盖之前的同步码）

        Returns:
            (同步码, 过期时间)

        Raises:
            ForbiddenError: 密钥无效
            SyncCodeConflictError: 多次尝试后仍与已有同步码冲突
        """
        self._require_owner(profile_id, secret_token)

        for attempt in range(1, self.sync_code_max_attempts + 1):
            code = new_sync_code()
            if profile_crud.sync_code_taken(self.session, code):
                logger.warning(f"同步码冲突，重新生成 (第 {attempt} 次)")
                continue

            expires_at = utcnow() + self.sync_code_ttl
            profile = profile_crud.get_by_id(self.session, profile_id)
            profile.sync_code = code
            profile.sync_code_expires_at = expires_at
            profile.touch()
            try:
                self.session.flush()
            except IntegrityError:
                # 并发请求占用了同一个同步码
                self.session.rollback()
                logger.warning(f"同步码写入冲突，重新生成 (第 {attempt} 次)")
                continue

            logger.info(f"同步码已生成: {profile_id}")
            return code, expires_at

        logger.error(f"同步码生成失败: {profile_id} 尝试 {self.sync_code_max_attempts} 次均冲突")
        raise SyncCodeConflictError(self.sync_code_max_attempts)

    def login_with_code(self, sync_code: str) -> Profile:
        """
        用同步码登录（同步码只能使用一次）

        Returns:
            对应的资料（包含密钥和 Cookie）

        Raises:
            InvalidSyncCodeError: 同步码格式错误、不存在或已过期
        """
        code = normalize_sync_code(sync_code or "")
        if len(code) != SYNC_CODE_LENGTH:
            raise InvalidSyncCodeError()

        now = utcnow()
        profile = profile_crud.get_by_sync_code(self.session, code, now=now)
        if profile is None:
            raise InvalidSyncCodeError()

        # 并发登录时只有一方能作废同步码
        if not profile_crud.consume_sync_code(self.session, profile.id, code, now):
            logger.warning(f"同步码已被使用: {profile.id}")
            raise InvalidSyncCodeError()
        self.session.refresh(profile)
        logger.info(f"同步码登录成功: {profile.id}")
        return profile

    def sync_cookies(self, profile_id: str, secret_token: str, cookies: Mapping[str, Any]) -> dict:
        """
        合并客户端 Cookie 与服务端保存的 Cookie

        不合法的项直接丢弃，同名项按 updated_at 保留较新的一方

        Returns:
            合并后的完整 Cookie

        Raises:
            ForbiddenError: 密钥无效
        """
        incoming = cookie_bag.filter_valid(cookies, self.cookie_prefix)
        profile = self._require_owner(profile_id, secret_token)

        merged = cookie_bag.merge(profile.cookies, incoming)
        # 整体替换字典，JSON 列才会被标记为已修改
        profile.cookies = merged
        profile.touch()
        self.session.flush()
        return merged

    # ========== 昵称与头像 ==========

    def update_display_name(self, profile_id: str, secret_token: str, name: str) -> Profile:
        """
        修改昵称

        Raises:
            ForbiddenError: 密钥无效
            InvalidNameError: 昵称不合法
        """
        profile = self._require_owner(profile_id, secret_token)
        profile.display_name = validate_display_name(name)
        profile.touch()
        self.session.flush()
        logger.info(f"昵称已修改: {profile_id}")
        return profile

    def update_avatar(self, profile_id: str, secret_token: str, image: bytes) -> Profile:
        """
        上传自定义头像

        Raises:
            ForbiddenError: 密钥无效
            StorageError: 对象存储未配置或上传失败
            AvatarBusyError: 头像处理繁忙
            UnsupportedFormatError: 图片不是 JPEG/PNG
        """
        if self.avatars is None:
            raise StorageError("对象存储未配置")
        profile = self._require_owner(profile_id, secret_token)

        self.avatars.process_and_store(profile_id, image)

        profile.has_custom_avatar = True
        profile.touch()
        self.session.flush()
        logger.info(f"头像已更新: {profile_id}")
        return profile

    # ========== 删除 ==========

    def delete(self, profile_id: str, secret_token: str) -> None:
        """
        删除资料（其评论一并删除）

        Raises:
            ForbiddenError: 密钥无效
        """
        profile = self._require_owner(profile_id, secret_token)
        self.session.delete(profile)
        self.session.flush()
        logger.info(f"用户资料已删除: {profile_id}")
