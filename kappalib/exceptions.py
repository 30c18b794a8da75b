"""
业务异常类

定义 kappalib 系统的业务层异常，每个异常携带对外的 HTTP 状态码，
由 Web 层统一转换为 JSON 错误响应
"""


class KappalibError(Exception):
    """kappalib 基础异常类"""

    status_code = 500

    def __init__(self, message: str, details: dict = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

    def __str__(self):
        if self.details:
            details_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"{self.message} ({details_str})"
        return self.message


# ========== 输入验证异常（400） ==========


class ValidationError(KappalibError):
    """数据验证失败"""

    status_code = 400

    def __init__(self, field: str, message: str):
        super().__init__(message, details={"field": field})
        self.field = field


class InvalidLengthError(ValidationError):
    """文本长度不合法"""

    def __init__(self, field: str, min_length: int, max_length: int):
        super().__init__(field, f"长度必须在 {min_length}-{max_length} 个字符之间")
        self.min_length = min_length
        self.max_length = max_length


class InvalidNameError(ValidationError):
    """昵称不合法"""

    def __init__(self, reason: str):
        super().__init__("display_name", f"昵称无效: {reason}")
        self.reason = reason


class UnsupportedFormatError(ValidationError):
    """不支持的图片格式"""

    def __init__(self, image_format: str | None = None):
        super().__init__("image", "仅支持 JPEG 和 PNG 格式的图片")
        self.image_format = image_format


class CaptchaRejectedError(ValidationError):
    """人机验证未通过"""

    def __init__(self):
        super().__init__("turnstile_token", "人机验证失败")


# ========== 鉴权异常（403） ==========


class AuthError(KappalibError):
    """鉴权失败"""

    status_code = 403


class ForbiddenError(AuthError):
    """密钥无效"""

    def __init__(self, profile_id: str | None = None):
        super().__init__("密钥无效", details={"profile_id": profile_id} if profile_id else None)
        self.profile_id = profile_id


class WebhookSecretError(AuthError):
    """Webhook 共享密钥无效"""

    def __init__(self):
        super().__init__("Webhook 密钥无效")


# ========== 数据未找到异常（404） ==========


class NotFoundError(KappalibError):
    """数据未找到异常"""

    status_code = 404


class NovelNotFoundError(NotFoundError):
    """小说不存在"""

    def __init__(self, novel_id: str):
        super().__init__("小说不存在", details={"novel_id": novel_id})
        self.novel_id = novel_id


class ChapterNotFoundError(NotFoundError):
    """章节不存在"""

    def __init__(self, chapter_id: str):
        super().__init__("章节不存在", details={"chapter_id": chapter_id})
        self.chapter_id = chapter_id


class ProfileNotFoundError(NotFoundError):
    """用户资料不存在"""

    def __init__(self, profile_id: str):
        super().__init__("用户资料不存在", details={"profile_id": profile_id})
        self.profile_id = profile_id


class CommentNotFoundError(NotFoundError):
    """评论不存在"""

    def __init__(self, comment_id: str):
        super().__init__("评论不存在", details={"comment_id": comment_id})
        self.comment_id = comment_id


class InvalidSyncCodeError(NotFoundError):
    """同步码无效或已过期"""

    def __init__(self):
        super().__init__("同步码无效或已过期")


# ========== 限流异常（429） ==========


class RateLimitError(KappalibError):
    """请求过于频繁"""

    status_code = 429


class CommentRateLimitedError(RateLimitError):
    """评论冷却期内重复提交"""

    def __init__(self, retry_after: int):
        super().__init__(f"请等待 {retry_after} 秒后再发表评论", details={"retry_after": retry_after})
        self.retry_after = retry_after


class AvatarBusyError(RateLimitError):
    """头像处理队列已满"""

    def __init__(self):
        super().__init__("服务器繁忙，请稍后再上传头像")


# ========== 外部服务异常（502） ==========


class UpstreamError(KappalibError):
    """外部服务调用失败"""

    status_code = 502


class StorageError(UpstreamError):
    """对象存储不可用或上传失败"""

    pass


class ModerationDeliveryError(UpstreamError):
    """审核消息发送失败"""

    pass


# ========== 冲突异常（409） ==========


class ConflictError(KappalibError):
    """唯一约束冲突"""

    status_code = 409


class SyncCodeConflictError(ConflictError):
    """多次重试后仍无法生成唯一的同步码"""

    def __init__(self, attempts: int):
        super().__init__("同步码生成失败，请重试", details={"attempts": attempts})
        self.attempts = attempts
