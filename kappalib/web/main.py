"""
FastAPI 主应用

初始化 FastAPI 应用，配置路由、中间件和统一的错误处理
"""
import secrets

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from kappalib.exceptions import CommentRateLimitedError, KappalibError
from kappalib.web.config import settings
from kappalib.web.dependencies import (
    get_api_limiter,
    get_client_ip,
    get_database,
    get_web_limiter,
    shutdown_resources,
)

PROFILE_HEADERS = ["X-Profile-ID", "X-Secret-Token"]
SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Permissions-Policy": "camera=(), microphone=(), geolocation=()",
}
API_CACHE_CONTROL = "public, max-age=300"

# 创建 FastAPI 应用
app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="网络小说阅读平台 API",
    debug=settings.DEBUG,
)


# ============ 中间件 ============


def _is_api_path(path: str) -> bool:
    return path == settings.API_PREFIX or path.startswith(settings.API_PREFIX + "/")


def _has_service_token(request: Request) -> bool:
    token = request.headers.get("X-Service-Token")
    if not token or not settings.API_TOKEN:
        return False
    return secrets.compare_digest(token.encode(), settings.API_TOKEN.encode())


@app.middleware("http")
async def rate_limit_middleware(request: Request, call_next):
    """按 IP 限流，携带服务令牌的请求不受限制"""
    if settings.RATE_LIMIT_ENABLED and request.method != "OPTIONS" and not _has_service_token(request):
        limiter = get_api_limiter() if _is_api_path(request.url.path) else get_web_limiter()
        if not limiter.hit(get_client_ip(request)):
            return JSONResponse(
                status_code=429,
                content={"error": "请求过于频繁，请稍后再试"},
                headers={"Retry-After": "1"},
            )
    return await call_next(request)


@app.middleware("http")
async def response_headers_middleware(request: Request, call_next):
    """安全响应头，以及 API 读请求的缓存头"""
    response = await call_next(request)
    for name, value in SECURITY_HEADERS.items():
        response.headers.setdefault(name, value)
    if (
        request.method == "GET"
        and response.status_code == 200
        and _is_api_path(request.url.path)
        and "cache-control" not in response.headers
    ):
        response.headers["Cache-Control"] = API_CACHE_CONTROL
    return response


# CORS 最后注册，位于中间件最外层
if not settings.ALLOWED_ORIGIN:
    logger.warning("未配置 ALLOWED_ORIGIN，允许任意来源跨域访问")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.ALLOWED_ORIGIN or "*"],
    allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", *PROFILE_HEADERS],
    expose_headers=PROFILE_HEADERS,
    max_age=3600,
)


# ============ 生命周期事件 ============


@app.on_event("startup")
async def startup_event():
    """应用启动时执行"""
    logger.info(f"🚀 {settings.APP_NAME} v{settings.APP_VERSION} 启动中...")

    db = get_database()
    db.create_all_tables()
    logger.info(f"✅ 数据库初始化完成 ({db.dialect_name})")

    if not settings.TELEGRAM_WEBHOOK_SECRET:
        logger.warning("未配置 TELEGRAM_WEBHOOK_SECRET，Webhook 不校验来源")
    if not settings.TURNSTILE_SECRET or not settings.TURNSTILE_COMMENTS_SECRET:
        logger.warning("Turnstile 密钥未完整配置，相关请求将无法通过人机验证")

    logger.info(f"🌐 Web 服务器运行在 http://{settings.HOST}:{settings.PORT}")


@app.on_event("shutdown")
async def shutdown_event():
    """应用关闭时执行"""
    shutdown_resources()
    logger.info("🛑 应用关闭")


# ============ 注册路由 ============

from kappalib.web.routers import chapters, novels, profile, status, webhook

app.include_router(status.router, prefix=settings.API_PREFIX, tags=["状态"])
app.include_router(novels.router, prefix=f"{settings.API_PREFIX}/novels", tags=["小说"])
app.include_router(chapters.router, prefix=f"{settings.API_PREFIX}/chapters", tags=["章节与评论"])
app.include_router(profile.router, prefix=f"{settings.API_PREFIX}/profile", tags=["用户资料"])
app.include_router(webhook.router, prefix=f"{settings.API_PREFIX}/webhook", tags=["Webhook"])
app.include_router(status.site_router, tags=["站点"])


# ============ 错误处理 ============


@app.exception_handler(KappalibError)
async def kappalib_error_handler(request: Request, exc: KappalibError):
    """业务异常转换为 {"error": 信息}"""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} 失败: {exc}")
    else:
        logger.debug(f"{request.method} {request.url.path} -> {exc.status_code}: {exc}")

    headers = None
    if isinstance(exc, CommentRateLimitedError):
        headers = {"Retry-After": str(exc.retry_after)}
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message}, headers=headers)


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError):
    """请求参数校验失败统一返回 400"""
    details = [
        {"loc": [str(part) for part in error.get("loc", ())], "msg": error.get("msg", "")}
        for error in exc.errors()
    ]
    return JSONResponse(status_code=400, content={"error": "请求参数无效", "details": details})


@app.exception_handler(Exception)
async def internal_error_handler(request: Request, exc: Exception):
    """500 错误处理（不向客户端暴露内部信息）"""
    logger.exception(f"Internal error: {request.method} {request.url.path}")
    return JSONResponse(status_code=500, content={"error": "服务器内部错误"})


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "kappalib.web.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.RELOAD,
    )
