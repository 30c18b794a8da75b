"""
状态与站点路由

API 状态、健康检查、robots.txt 和站点地图
"""
from xml.sax.saxutils import escape

from fastapi import APIRouter
from fastapi.responses import JSONResponse, PlainTextResponse, Response

from kappalib.web.dependencies import CatalogDep, DatabaseDep, SettingsDep
from kappalib.web.schemas.novel import ApiStatusResponse

# 挂载在 API 前缀下
router = APIRouter()
# 挂载在站点根路径
site_router = APIRouter()


@router.get("/", response_model=ApiStatusResponse, summary="API 状态")
async def api_status(db: DatabaseDep, app_settings: SettingsDep):
    database_ok = db.ping()
    return ApiStatusResponse(
        status="ok",
        database="ok" if database_ok else "unavailable",
        version=app_settings.APP_VERSION,
    )


@site_router.get("/healthz", summary="健康检查")
async def health_check(db: DatabaseDep):
    """
    健康检查接口

    用于监控和容器健康检查，数据库不可用时返回 503
    """
    if not db.ping():
        return JSONResponse(status_code=503, content={"status": "unavailable"})
    return {"status": "ok"}


@site_router.get("/robots.txt", response_class=PlainTextResponse, summary="robots.txt")
async def robots_txt(app_settings: SettingsDep):
    site = app_settings.SITE_URL.rstrip("/")
    return "\n".join(
        [
            "User-agent: *",
            "Allow: /",
            f"Disallow: {app_settings.API_PREFIX}/",
            f"Sitemap: {site}/sitemap.xml",
            "",
        ]
    )


@site_router.get("/sitemap.xml", summary="站点地图")
async def sitemap_xml(catalog: CatalogDep, app_settings: SettingsDep):
    """根据小说列表生成站点地图"""
    site = app_settings.SITE_URL.rstrip("/")
    lines = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        '<urlset xmlns="http://www.sitemaps.org/schemas/sitemap/0.9">',
        f"  <url><loc>{escape(site)}/</loc></url>",
    ]
    for item in catalog.sitemap_data():
        lines.append(
            f"  <url><loc>{escape(site)}/novel/{escape(item.id)}</loc>"
            f"<lastmod>{item.created_at.date().isoformat()}</lastmod></url>"
        )
    lines.append("</urlset>")
    return Response(content="\n".join(lines), media_type="application/xml")
