"""
FastAPI 依赖注入

提供全局共享的依赖实例（Database、缓存、人机验证、审核通知、头像处理等）
以及按请求创建的服务对象
"""
from datetime import timedelta
from typing import Annotated, Generator
from fastapi import Depends, Request
from loguru import logger
from sqlalchemy.orm import Session

from kappalib.core.avatar import AvatarProcessor, S3AvatarStorage
from kappalib.core.cache import TTLCache
from kappalib.core.captcha import TurnstileVerifier
from kappalib.core.moderation import NotificationDispatcher, TelegramModerator
from kappalib.core.rate_limit import CommentCooldown, IPRateLimiter
from kappalib.core.search import SearchWeights
from kappalib.db.crud import comment_crud
from kappalib.db.database import Database, init_database
from kappalib.services.catalog import CatalogTTL, NovelCatalog
from kappalib.services.comments import CommentService
from kappalib.services.profiles import ProfileService
from kappalib.web.config import Settings, get_settings, settings


# ============ 全局单例（首次使用时初始化） ============

_db_instance: Database | None = None
_cache: TTLCache | None = None
_cooldown: CommentCooldown | None = None
_profile_captcha: TurnstileVerifier | None = None
_comment_captcha: TurnstileVerifier | None = None
_moderator: TelegramModerator | None = None
_dispatcher: NotificationDispatcher | None = None
_avatar_processor: AvatarProcessor | None = None
_api_limiter: IPRateLimiter | None = None
_web_limiter: IPRateLimiter | None = None


def get_database() -> Database:
    """
    获取全局 Database 实例

    Returns:
        Database 实例
    """
    global _db_instance
    if _db_instance is None:
        _db_instance = init_database(
            settings.DATABASE_URL,
            echo=settings.DEBUG,
            pool_size=settings.DB_POOL_SIZE,
            max_overflow=settings.DB_MAX_OVERFLOW,
            pool_recycle=settings.DB_POOL_RECYCLE,
            pool_timeout=settings.DB_POOL_TIMEOUT,
        )
    return _db_instance


def get_cache() -> TTLCache:
    """目录查询缓存（同时启动后台过期清理线程）"""
    global _cache
    if _cache is None:
        _cache = TTLCache()
        _cache.start(settings.CACHE_SWEEP_INTERVAL)
    return _cache


def get_cooldown() -> CommentCooldown:
    """评论冷却记录（同时启动后台清理线程）"""
    global _cooldown
    if _cooldown is None:
        _cooldown = CommentCooldown(cooldown=settings.COMMENT_COOLDOWN_SECONDS)
        _cooldown.start()
    return _cooldown


def get_profile_captcha() -> TurnstileVerifier:
    global _profile_captcha
    if _profile_captcha is None:
        _profile_captcha = TurnstileVerifier(
            settings.TURNSTILE_SECRET,
            verify_url=settings.TURNSTILE_VERIFY_URL,
            timeout=settings.CAPTCHA_TIMEOUT,
            max_attempts=settings.CAPTCHA_MAX_ATTEMPTS,
            name="profile-turnstile",
        )
    return _profile_captcha


def get_comment_captcha() -> TurnstileVerifier:
    global _comment_captcha
    if _comment_captcha is None:
        _comment_captcha = TurnstileVerifier(
            settings.TURNSTILE_COMMENTS_SECRET,
            verify_url=settings.TURNSTILE_VERIFY_URL,
            timeout=settings.CAPTCHA_TIMEOUT,
            max_attempts=settings.CAPTCHA_MAX_ATTEMPTS,
            name="comment-turnstile",
        )
    return _comment_captcha


def get_moderator() -> TelegramModerator:
    global _moderator
    if _moderator is None:
        _moderator = TelegramModerator(
            settings.TELEGRAM_BOT_TOKEN,
            settings.TELEGRAM_CHAT_ID,
            api_base=settings.TELEGRAM_API_BASE,
            timeout=settings.TELEGRAM_TIMEOUT,
        )
        if not _moderator.configured:
            logger.warning("Telegram 未配置，新评论不会推送到审核群")
    return _moderator


def _store_message_id(comment_id: str, message_id: int) -> None:
    """在独立会话中保存审核消息ID"""
    with get_database().session_scope() as session:
        comment_crud.set_message_id(session, comment_id, message_id)


def get_dispatcher() -> NotificationDispatcher:
    global _dispatcher
    if _dispatcher is None:
        _dispatcher = NotificationDispatcher(
            get_moderator(),
            on_delivered=_store_message_id,
            max_workers=settings.NOTIFY_WORKERS,
            max_attempts=settings.NOTIFY_MAX_ATTEMPTS,
            deadline=settings.NOTIFY_DEADLINE,
        )
    return _dispatcher


def get_avatar_processor() -> AvatarProcessor:
    global _avatar_processor
    if _avatar_processor is None:
        storage = None
        if settings.storage_configured:
            storage = S3AvatarStorage(
                settings.S3_ENDPOINT,
                settings.S3_ACCESS_KEY,
                settings.S3_SECRET_KEY,
                settings.S3_BUCKET,
                secure=settings.S3_USE_SSL,
                region=settings.S3_REGION,
            )
        else:
            logger.warning("对象存储未配置，头像上传不可用")
        _avatar_processor = AvatarProcessor(
            storage,
            max_concurrency=settings.AVATAR_MAX_CONCURRENCY,
            wait_timeout=settings.AVATAR_WAIT_TIMEOUT,
            size=settings.AVATAR_SIZE,
            quality=settings.AVATAR_QUALITY,
        )
    return _avatar_processor


def get_api_limiter() -> IPRateLimiter:
    global _api_limiter
    if _api_limiter is None:
        _api_limiter = IPRateLimiter(settings.API_RATE_LIMIT, settings.API_RATE_WINDOW, namespace="api")
    return _api_limiter


def get_web_limiter() -> IPRateLimiter:
    global _web_limiter
    if _web_limiter is None:
        _web_limiter = IPRateLimiter(settings.WEB_RATE_LIMIT, settings.WEB_RATE_WINDOW, namespace="web")
    return _web_limiter


def shutdown_resources() -> None:
    """释放后台线程和外部连接"""
    global _dispatcher, _cooldown, _cache
    if _dispatcher is not None:
        _dispatcher.shutdown(wait=True)
        _dispatcher = None
    if _cooldown is not None:
        _cooldown.stop()
        _cooldown = None
    if _cache is not None:
        _cache.stop()
        _cache = None
    for verifier in (_profile_captcha, _comment_captcha):
        if verifier is not None:
            verifier.close()
    if _moderator is not None:
        _moderator.close()
    if _db_instance is not None:
        _db_instance.dispose()


# ============ FastAPI 依赖函数 ============

DatabaseDep = Annotated[Database, Depends(get_database)]


def get_db(db: DatabaseDep) -> Generator[Session, None, None]:
    """
    FastAPI 依赖注入：提供数据库 Session

    使用 yield 确保请求结束后自动提交并关闭 Session

    Yields:
        Session: SQLAlchemy Session
    """
    with db.session_scope() as session:
        yield session


# ============ 类型别名（简化路由签名） ============

SessionDep = Annotated[Session, Depends(get_db)]
CacheDep = Annotated[TTLCache, Depends(get_cache)]


def get_catalog(session: SessionDep, cache: CacheDep) -> NovelCatalog:
    """按请求创建小说目录服务"""
    return NovelCatalog(
        session,
        cache,
        ttl=CatalogTTL(
            novel=settings.CACHE_TTL_NOVEL,
            chapter=settings.CACHE_TTL_CHAPTER,
            listing=settings.CACHE_TTL_LISTING,
            chapters_list=settings.CACHE_TTL_LISTING,
            sitemap=settings.CACHE_TTL_SITEMAP,
        ),
        page_size=settings.NOVELS_PAGE_SIZE,
        search_limit=settings.SEARCH_LIMIT,
        weights=SearchWeights(),
        word_threshold=settings.SEARCH_WORD_SIMILARITY_THRESHOLD,
        threshold=settings.SEARCH_SIMILARITY_THRESHOLD,
    )


def get_profile_service(
    session: SessionDep,
    captcha: Annotated[TurnstileVerifier, Depends(get_profile_captcha)],
    avatars: Annotated[AvatarProcessor, Depends(get_avatar_processor)],
) -> ProfileService:
    """按请求创建用户资料服务"""
    return ProfileService(
        session,
        captcha=captcha,
        avatars=avatars,
        cookie_prefix=settings.COOKIE_PREFIX,
        sync_code_ttl=timedelta(minutes=settings.SYNC_CODE_TTL_MINUTES),
        sync_code_max_attempts=settings.SYNC_CODE_MAX_ATTEMPTS,
    )


def get_comment_service(
    session: SessionDep,
    captcha: Annotated[TurnstileVerifier, Depends(get_comment_captcha)],
    cooldown: Annotated[CommentCooldown, Depends(get_cooldown)],
    dispatcher: Annotated[NotificationDispatcher, Depends(get_dispatcher)],
    moderator: Annotated[TelegramModerator, Depends(get_moderator)],
) -> CommentService:
    """按请求创建评论服务"""
    return CommentService(
        session,
        captcha=captcha,
        cooldown=cooldown,
        dispatcher=dispatcher,
        moderator=moderator,
        max_length=settings.COMMENT_MAX_LENGTH,
        page_size=settings.COMMENTS_PAGE_SIZE,
    )


CatalogDep = Annotated[NovelCatalog, Depends(get_catalog)]
ProfileServiceDep = Annotated[ProfileService, Depends(get_profile_service)]
CommentServiceDep = Annotated[CommentService, Depends(get_comment_service)]


# ============ 请求工具 ============


def get_client_ip(request: Request) -> str:
    """客户端 IP（优先使用 CDN 转发的真实地址）"""
    forwarded = request.headers.get("CF-Connecting-IP") or request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()
    return request.client.host if request.client else "unknown"


ClientIPDep = Annotated[str, Depends(get_client_ip)]
SettingsDep = Annotated[Settings, Depends(get_settings)]
