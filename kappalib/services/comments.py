"""
CommentService 服务类

评论发表与审核：校验、限流、人机验证、Markdown 净化、入库，
随后交给后台发送器推送到 Telegram 审核群
"""
import math
import secrets
from typing import Optional

from loguru import logger
from sqlalchemy.orm import Session

from kappalib.core.captcha import TurnstileVerifier
from kappalib.core.markup import render_comment
from kappalib.core.moderation import (
    APPROVE_ACTION,
    REJECT_ACTION,
    STATUS_TEXT,
    CommentNotice,
    NotificationDispatcher,
    TelegramModerator,
)
from kappalib.core.rate_limit import CommentCooldown
from kappalib.db.comment import Comment, CommentStatus
from kappalib.db.profile import Profile
from kappalib.db.crud import chapter_crud, comment_crud, profile_crud
from kappalib.exceptions import (
    CaptchaRejectedError,
    ChapterNotFoundError,
    CommentNotFoundError,
    CommentRateLimitedError,
    ForbiddenError,
    InvalidLengthError,
    ModerationDeliveryError,
)
from kappalib.web.schemas.comment import CommentResponse, CommentsPageResponse

ACTION_STATUS = {
    APPROVE_ACTION: CommentStatus.APPROVED,
    REJECT_ACTION: CommentStatus.REJECTED,
}


def comment_to_response(comment: Comment) -> CommentResponse:
    """评论连同作者信息转换为响应模型"""
    user = comment.user
    return CommentResponse(
        id=comment.id,
        chapter_id=comment.chapter_id,
        user_id=comment.user_id,
        content_html=comment.content_html,
        status=comment.status,
        created_at=comment.created_at,
        user_display_name=user.display_name if user else None,
        user_avatar_seed=user.avatar_seed if user else None,
        user_has_custom_avatar=bool(user and user.has_custom_avatar),
    )


class CommentService:
    """评论服务类"""

    def __init__(
        self,
        session: Session,
        captcha: Optional[TurnstileVerifier] = None,
        cooldown: Optional[CommentCooldown] = None,
        dispatcher: Optional[NotificationDispatcher] = None,
        moderator: Optional[TelegramModerator] = None,
        max_length: int = 1000,
        page_size: int = 12,
    ):
        """
        初始化评论服务

        Args:
            session: 数据库会话
            captcha: 评论用的人机验证器（与创建资料的密钥不同）
            cooldown: 作者冷却记录
            dispatcher: 审核通知后台发送器
            moderator: Telegram 客户端（处理审核回调时编辑消息）
            max_length: 评论最大长度
            page_size: 每页评论数
        """
        self.session = session
        self.captcha = captcha
        self.cooldown = cooldown
        self.dispatcher = dispatcher
        self.moderator = moderator
        self.max_length = max_length
        self.page_size = page_size

    def create(
        self,
        profile_id: str,
        secret_token: str,
        chapter_id: str,
        content: str,
        captcha_token: str,
        remote_ip: Optional[str] = None,
    ) -> Comment:
        """
        发表评论（进入待审核状态）

        Args:
            profile_id: 作者资料ID
            secret_token: 作者密钥
            chapter_id: 章节ID
            content: Markdown 内容
            captcha_token: Turnstile 令牌
            remote_ip: 用户 IP

        Returns:
            新建的评论

        Raises:
            InvalidLengthError: 内容为空或过长
            CommentRateLimitedError: 冷却期内重复发表
            CaptchaRejectedError: 人机验证未通过
            ChapterNotFoundError: 章节不存在
            ForbiddenError: 密钥无效
        """
        content = (content or "").strip()
        if not 1 <= len(content) <= self.max_length:
            raise InvalidLengthError("content", 1, self.max_length)

        if self.cooldown is not None:
            self.cooldown.sweep()
            remaining = self.cooldown.try_acquire(profile_id)
            if remaining > 0:
                raise CommentRateLimitedError(math.ceil(remaining))

        try:
            comment, profile = self._verify_and_store(
                profile_id, secret_token, chapter_id, content, captcha_token, remote_ip
            )
        except Exception:
            # 评论未发表，归还冷却名额
            if self.cooldown is not None:
                self.cooldown.release(profile_id)
            raise
        logger.info(f"评论已创建: {comment.id} (章节 {chapter_id}, 作者 {profile_id})")

        if self.dispatcher is not None:
            self.dispatcher.submit(
                CommentNotice(
                    comment_id=comment.id,
                    chapter_id=chapter_id,
                    author_name=profile.display_name,
                    content_html=comment.content_html,
                )
            )
        return comment

    def _verify_and_store(
        self,
        profile_id: str,
        secret_token: str,
        chapter_id: str,
        content: str,
        captcha_token: str,
        remote_ip: Optional[str],
    ) -> tuple[Comment, Profile]:
        if self.captcha is None or not self.captcha.verify(captcha_token, remote_ip):
            raise CaptchaRejectedError()

        if not chapter_crud.exists(self.session, chapter_id):
            raise ChapterNotFoundError(chapter_id)

        profile = profile_crud.get_by_id(self.session, profile_id)
        if profile is None or not _token_matches(profile.secret_token, secret_token):
            raise ForbiddenError(profile_id)

        comment = comment_crud.create(
            self.session,
            chapter_id=chapter_id,
            user_id=profile.id,
            content_html=render_comment(content),
            status=CommentStatus.PENDING,
        )
        profile.touch()
        # 发送器在独立会话中回写消息ID，评论必须先提交
        self.session.commit()
        return comment, profile

    def list_approved(self, chapter_id: str, page: int = 1) -> CommentsPageResponse:
        """
        分页获取章节下已通过的评论（最新在前）

        Returns:
            分页结果；没有评论时 comments 为空、total_pages 为 0
        """
        page = max(page, 1)
        total = comment_crud.count_approved(self.session, chapter_id)
        if total == 0:
            return CommentsPageResponse(comments=[], page=page, page_size=self.page_size, total_count=0, total_pages=0)

        comments = comment_crud.get_approved(
            self.session, chapter_id, skip=(page - 1) * self.page_size, limit=self.page_size
        )
        return CommentsPageResponse(
            comments=[comment_to_response(c) for c in comments],
            page=page,
            page_size=self.page_size,
            total_count=total,
            total_pages=math.ceil(total / self.page_size),
        )

    def moderate(self, comment_id: str, action: str) -> bool:
        """
        将待审核评论设为通过或拒绝

        Args:
            comment_id: 评论ID
            action: approve 或 reject

        Returns:
            是否发生了状态变更（已审核的评论保持不变）

        Raises:
            CommentNotFoundError: 评论不存在
            ValueError: 未知动作
        """
        status = ACTION_STATUS.get(action)
        if status is None:
            raise ValueError(f"未知审核动作: {action}")

        changed = comment_crud.update_status(self.session, comment_id, status)
        if changed:
            logger.info(f"评论状态已更新: {comment_id} -> {status.value}")
            return True

        if comment_crud.get_by_id(self.session, comment_id) is None:
            raise CommentNotFoundError(comment_id)
        logger.info(f"评论已审核过，忽略: {comment_id}")
        return False

    def handle_moderation_callback(
        self,
        action: str,
        comment_id: str,
        message_id: Optional[int] = None,
        message_text: Optional[str] = None,
        callback_id: Optional[str] = None,
    ) -> bool:
        """
        处理审核群中的按钮回调

        状态更新后编辑原消息追加结果并应答回调；这两步失败只记录日志，
        不会回滚状态变更

        Returns:
            是否发生了状态变更
        """
        if action not in ACTION_STATUS:
            logger.debug(f"忽略未知回调动作: {action}")
            return False

        try:
            changed = self.moderate(comment_id, action)
        except CommentNotFoundError:
            logger.warning(f"审核回调对应的评论不存在: {comment_id}")
            changed = False

        status_text = STATUS_TEXT[action]
        if self.moderator is not None:
            if changed and message_id is not None:
                try:
                    self.moderator.edit_message_text(message_id, f"{message_text or ''}\n\n{status_text}")
                except ModerationDeliveryError as e:
                    logger.error(f"审核消息编辑失败: {e}")
            if callback_id:
                try:
                    self.moderator.answer_callback_query(callback_id, status_text if changed else "评论已处理")
                except ModerationDeliveryError as e:
                    logger.error(f"回调应答失败: {e}")
        return changed

    def list_pending(self, limit: int = 50) -> list[Comment]:
        """待审核评论（管理命令使用）"""
        return comment_crud.get_pending(self.session, limit=limit)


def _token_matches(expected: str, given: str) -> bool:
    return bool(given) and secrets.compare_digest(expected.encode(), given.encode())
