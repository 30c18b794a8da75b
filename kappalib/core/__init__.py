"""
核心工具层

提供与数据库无关的通用组件：随机码生成、Cookie 合并、缓存、模糊搜索、
人机验证、Markdown 净化、审核通知、头像处理和限流
"""
from kappalib.core.tokens import (
    new_secret_token,
    new_avatar_seed,
    new_sync_code,
    normalize_sync_code,
    random_display_name,
)
from kappalib.core.cookies import DEFAULT_COOKIE_PREFIX, filter_valid, merge
from kappalib.core.cache import TTLCache
from kappalib.core.search import SearchWeights, normalize_search_text, score_candidate
from kappalib.core.captcha import TurnstileVerifier
from kappalib.core.markup import render_comment, sanitize_comment_html, strip_markup
from kappalib.core.moderation import (
    CommentNotice,
    NotificationDispatcher,
    TelegramModerator,
    html_to_telegram_html,
)
from kappalib.core.avatar import AvatarProcessor, S3AvatarStorage, process_avatar
from kappalib.core.rate_limit import CommentCooldown, IPRateLimiter

__all__ = [
    # 随机码
    "new_secret_token",
    "new_avatar_seed",
    "new_sync_code",
    "normalize_sync_code",
    "random_display_name",
    # Cookie
    "DEFAULT_COOKIE_PREFIX",
    "filter_valid",
    "merge",
    # 缓存与搜索
    "TTLCache",
    "SearchWeights",
    "normalize_search_text",
    "score_candidate",
    # 外部服务
    "TurnstileVerifier",
    "CommentNotice",
    "NotificationDispatcher",
    "TelegramModerator",
    "html_to_telegram_html",
    "AvatarProcessor",
    "S3AvatarStorage",
    "process_avatar",
    # 内容与限流
    "render_comment",
    "sanitize_comment_html",
    "strip_markup",
    "CommentCooldown",
    "IPRateLimiter",
]
