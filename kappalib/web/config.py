"""
Web 应用配置管理

使用 Pydantic Settings 管理环境变量配置
"""
from typing import Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field


class Settings(BaseSettings):
    """应用配置"""

    # 应用基础配置
    APP_NAME: str = "kappalib"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = Field(default=False, description="调试模式")
    API_PREFIX: str = Field(default="/api", description="API 路由前缀")
    SITE_URL: str = Field(default="http://localhost:8000", description="站点地址（用于站点地图）")

    # Web 服务器配置
    HOST: str = Field(default="0.0.0.0", description="监听地址")
    PORT: int = Field(default=8000, description="监听端口")
    RELOAD: bool = Field(default=False, description="热重载（开发模式）")

    # 数据库配置
    DATABASE_URL: str = Field(default="sqlite:///data/kappalib.db", description="数据库连接URL")
    DB_POOL_SIZE: int = Field(default=5, description="常驻连接数")
    DB_MAX_OVERFLOW: int = Field(default=20, description="额外连接数")
    DB_POOL_RECYCLE: int = Field(default=3600, description="连接最长存活秒数")
    DB_POOL_TIMEOUT: int = Field(default=30, description="等待连接秒数")

    # Cloudflare Turnstile
    TURNSTILE_SECRET: Optional[str] = Field(default=None, description="创建资料用的 Turnstile 密钥")
    TURNSTILE_COMMENTS_SECRET: Optional[str] = Field(default=None, description="发表评论用的 Turnstile 密钥")
    TURNSTILE_VERIFY_URL: str = Field(
        default="https://challenges.cloudflare.com/turnstile/v0/siteverify", description="Turnstile 验证接口"
    )
    CAPTCHA_TIMEOUT: float = Field(default=5.0, description="人机验证超时秒数")
    CAPTCHA_MAX_ATTEMPTS: int = Field(default=2, description="人机验证网络错误时的最大尝试次数")

    # Telegram 审核
    TELEGRAM_BOT_TOKEN: Optional[str] = Field(default=None, description="机器人令牌")
    TELEGRAM_CHAT_ID: Optional[str] = Field(default=None, description="审核群 ID")
    TELEGRAM_WEBHOOK_SECRET: Optional[str] = Field(default=None, description="Webhook 共享密钥")
    TELEGRAM_API_BASE: str = Field(default="https://api.telegram.org", description="Bot API 地址")
    TELEGRAM_TIMEOUT: float = Field(default=10.0, description="单次请求超时秒数")
    NOTIFY_DEADLINE: float = Field(default=30.0, description="单条通知总时限（秒）")
    NOTIFY_MAX_ATTEMPTS: int = Field(default=3, description="通知最大尝试次数")
    NOTIFY_WORKERS: int = Field(default=2, description="通知线程数")

    # 对象存储（S3 兼容）
    S3_ENDPOINT: Optional[str] = Field(default=None, description="服务地址 host:port")
    S3_ACCESS_KEY: Optional[str] = Field(default=None, description="访问密钥 ID")
    S3_SECRET_KEY: Optional[str] = Field(default=None, description="访问密钥")
    S3_BUCKET: str = Field(default="kappalib", description="存储桶")
    S3_USE_SSL: bool = Field(default=True, description="是否使用 HTTPS")
    S3_REGION: str = Field(default="us-east-1", description="区域（MinIO 可保持默认）")

    # 头像
    AVATAR_SIZE: int = Field(default=250, description="头像边长（像素）")
    AVATAR_QUALITY: int = Field(default=85, description="JPEG 质量")
    AVATAR_MAX_CONCURRENCY: int = Field(default=5, description="同时处理的头像数")
    AVATAR_WAIT_TIMEOUT: float = Field(default=10.0, description="等待处理名额的秒数")
    AVATAR_MAX_BYTES: int = Field(default=5 * 1024 * 1024, description="上传图片最大字节数")

    # 用户资料
    COOKIE_PREFIX: str = Field(default="kappalib_", description="可同步的 Cookie 名前缀")
    SYNC_CODE_TTL_MINUTES: int = Field(default=15, description="同步码有效分钟数")
    SYNC_CODE_MAX_ATTEMPTS: int = Field(default=5, description="同步码冲突重试次数")

    # 评论
    COMMENT_COOLDOWN_SECONDS: float = Field(default=30.0, description="评论冷却秒数")
    COMMENT_MAX_LENGTH: int = Field(default=1000, description="评论最大长度")
    COMMENTS_PAGE_SIZE: int = Field(default=12, description="每页评论数")

    # 小说目录与缓存
    NOVELS_PAGE_SIZE: int = Field(default=12, description="每页小说数")
    CACHE_TTL_NOVEL: float = Field(default=600, description="小说详情缓存秒数")
    CACHE_TTL_CHAPTER: float = Field(default=1800, description="章节详情缓存秒数")
    CACHE_TTL_LISTING: float = Field(default=300, description="列表缓存秒数")
    CACHE_TTL_SITEMAP: float = Field(default=3600, description="站点地图缓存秒数")
    CACHE_SWEEP_INTERVAL: float = Field(default=60, description="缓存过期清理间隔秒数")

    # 搜索
    SEARCH_LIMIT: int = Field(default=20, description="搜索结果上限")
    SEARCH_QUERY_MAX_LENGTH: int = Field(default=50, description="搜索词最大长度")
    SEARCH_WORD_SIMILARITY_THRESHOLD: float = Field(default=0.6, description="标题相似度阈值")
    SEARCH_SIMILARITY_THRESHOLD: float = Field(default=0.3, description="作者相似度阈值")

    # 访问控制
    API_TOKEN: Optional[str] = Field(default=None, description="服务间调用令牌（跳过限流）")
    ALLOWED_ORIGIN: Optional[str] = Field(default=None, description="允许跨域的前端地址")
    RATE_LIMIT_ENABLED: bool = Field(default=True, description="是否启用 IP 限流")
    API_RATE_LIMIT: int = Field(default=9, description="API 窗口内请求数")
    API_RATE_WINDOW: int = Field(default=3, description="API 窗口秒数")
    WEB_RATE_LIMIT: int = Field(default=20, description="其他路径窗口内请求数")
    WEB_RATE_WINDOW: int = Field(default=2, description="其他路径窗口秒数")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore",
    )

    @property
    def storage_configured(self) -> bool:
        return bool(self.S3_ENDPOINT and self.S3_ACCESS_KEY and self.S3_SECRET_KEY)


# 全局配置实例
settings = Settings()


def get_settings() -> Settings:
    """获取配置实例（用于依赖注入）"""
    return settings
