"""
CLI 命令行接口

提供数据库初始化、启动服务和评论审核等管理命令
"""
import click
from pathlib import Path
from rich.console import Console
from rich.table import Table
from rich.panel import Panel
from loguru import logger

from kappalib.core.moderation import APPROVE_ACTION, REJECT_ACTION, TelegramModerator
from kappalib.db import init_database
from kappalib.db.crud import novel_crud
from kappalib.services.comments import CommentService
from kappalib.web.config import settings

console = Console()


def get_db():
    """获取数据库实例"""
    url = settings.DATABASE_URL
    if url.startswith("sqlite:///") and ":memory:" not in url:
        Path(url.removeprefix("sqlite:///")).parent.mkdir(parents=True, exist_ok=True)
    return init_database(
        url,
        pool_size=settings.DB_POOL_SIZE,
        max_overflow=settings.DB_MAX_OVERFLOW,
        pool_recycle=settings.DB_POOL_RECYCLE,
        pool_timeout=settings.DB_POOL_TIMEOUT,
    )


def get_moderator() -> TelegramModerator:
    """获取 Telegram 客户端"""
    return TelegramModerator(
        settings.TELEGRAM_BOT_TOKEN,
        settings.TELEGRAM_CHAT_ID,
        api_base=settings.TELEGRAM_API_BASE,
        timeout=settings.TELEGRAM_TIMEOUT,
    )


@click.group()
@click.version_option(version=settings.APP_VERSION, prog_name="kappalib")
def cli():
    """
    kappalib - 网络小说阅读平台管理工具
    """
    pass


@cli.command()
def init_db():
    """
    创建所有数据表（PostgreSQL 下同时启用 pg_trgm 扩展）

    示例：kappalib init-db
    """
    try:
        db = get_db()
        db.create_all_tables()
        console.print(f"[green]✓[/green] 数据表已创建（{db.dialect_name}）")
    except Exception as e:
        console.print(f"[red]错误：{e}[/red]")
        logger.exception("初始化数据库失败")


@cli.command()
@click.option("--host", default=None, help="监听地址")
@click.option("--port", default=None, type=int, help="监听端口")
@click.option("--reload", is_flag=True, default=None, help="热重载（开发模式）")
def serve(host: str | None, port: int | None, reload: bool | None):
    """
    启动 Web 服务

    示例：kappalib serve --port 8080
    """
    import uvicorn

    uvicorn.run(
        "kappalib.web.main:app",
        host=host or settings.HOST,
        port=port or settings.PORT,
        reload=settings.RELOAD if reload is None else reload,
    )


@cli.command()
@click.option("--page", default=1, help="页码")
@click.option("--sort", default="oldest", help="排序方式（newest/oldest/large/small/alphabet/created）")
def list_novels(page: int, sort: str):
    """
    列出小说

    示例：kappalib list-novels --sort created
    """
    try:
        db = get_db()

        with db.session_scope() as session:
            novels = novel_crud.get_page(session, page, settings.NOVELS_PAGE_SIZE, sort)
            total = novel_crud.count(session)

            if not novels:
                console.print("[yellow]暂无小说[/yellow]")
                return

            table = Table(title=f"小说列表（共 {total} 部）", show_header=True, header_style="bold cyan")
            table.add_column("ID", style="dim", width=14)
            table.add_column("标题", min_width=20)
            table.add_column("作者", width=16)
            table.add_column("年份", width=6)
            table.add_column("状态", width=10)
            table.add_column("章节", width=6)

            for novel in novels:
                table.add_row(
                    novel.id,
                    novel.title,
                    novel.author,
                    str(novel.year_start),
                    novel.status.value,
                    str(novel.chapters_count),
                )

            console.print(table)

    except Exception as e:
        console.print(f"[red]错误：{e}[/red]")
        logger.exception("列出小说失败")


@cli.command()
@click.option("--limit", default=20, help="显示数量")
def pending_comments(limit: int):
    """
    列出待审核评论（审核通知发送失败时手动处理）

    示例：kappalib pending-comments
    """
    try:
        db = get_db()

        with db.session_scope() as session:
            comments = CommentService(session).list_pending(limit=limit)

            if not comments:
                console.print("[green]没有待审核的评论[/green]")
                return

            table = Table(title="待审核评论", show_header=True, header_style="bold cyan")
            table.add_column("ID", style="dim", width=14)
            table.add_column("章节", width=14)
            table.add_column("作者", width=16)
            table.add_column("已通知", width=6)
            table.add_column("内容", min_width=30)

            for comment in comments:
                table.add_row(
                    comment.id,
                    comment.chapter_id,
                    comment.user.display_name if comment.user else comment.user_id,
                    "是" if comment.telegram_message_id else "否",
                    comment.content_html[:80],
                )

            console.print(table)

    except Exception as e:
        console.print(f"[red]错误：{e}[/red]")
        logger.exception("列出待审核评论失败")


@cli.command()
@click.argument("comment_id")
@click.argument("action", type=click.Choice([APPROVE_ACTION, REJECT_ACTION]))
def moderate(comment_id: str, action: str):
    """
    手动审核评论

    示例：kappalib moderate cmt_k3j9x0ab approve
    """
    try:
        db = get_db()

        with db.session_scope() as session:
            changed = CommentService(session).moderate(comment_id, action)

        if changed:
            console.print(f"[green]✓[/green] 评论 {comment_id} 已{'通过' if action == APPROVE_ACTION else '拒绝'}")
        else:
            console.print(f"[yellow]评论 {comment_id} 已审核过，未做修改[/yellow]")

    except Exception as e:
        console.print(f"[red]错误：{e}[/red]")
        logger.exception("审核评论失败")


@cli.command()
@click.argument("url")
def set_webhook(url: str):
    """
    向 Telegram 注册 Webhook 地址（使用配置中的共享密钥）

    示例：kappalib set-webhook https://example.com/api/webhook/telegram
    """
    moderator = get_moderator()
    try:
        moderator.set_webhook(url, settings.TELEGRAM_WEBHOOK_SECRET)
        console.print(Panel.fit(
            f"[green]✓[/green] Webhook 已设置\n\n"
            f"[cyan]地址:[/cyan] {url}\n"
            f"[cyan]共享密钥:[/cyan] {'已配置' if settings.TELEGRAM_WEBHOOK_SECRET else '未配置'}",
            title="Telegram",
            border_style="green"
        ))
    except Exception as e:
        console.print(f"[red]错误：{e}[/red]")
        logger.exception("设置 Webhook 失败")
    finally:
        moderator.close()


if __name__ == "__main__":
    cli()
