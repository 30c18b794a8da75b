"""
Telegram Webhook 路由

接收审核群中“通过 / 拒绝”按钮的回调
"""
import asyncio
import secrets
from typing import Annotated, Optional

from fastapi import APIRouter, Header
from loguru import logger

from kappalib.core.moderation import parse_callback_data
from kappalib.exceptions import WebhookSecretError
from kappalib.web.dependencies import CommentServiceDep, SettingsDep
from kappalib.web.schemas.comment import TelegramUpdate

router = APIRouter()


@router.post("/telegram", summary="Telegram 回调")
async def telegram_webhook(
    update: TelegramUpdate,
    service: CommentServiceDep,
    app_settings: SettingsDep,
    x_telegram_bot_api_secret_token: Annotated[Optional[str], Header()] = None,
):
    """
    处理审核按钮回调

    与按钮无关的更新直接忽略；无论处理结果如何都返回 200，
    避免 Telegram 重复推送

    Raises:
        WebhookSecretError: 共享密钥不匹配时返回 403
    """
    expected = app_settings.TELEGRAM_WEBHOOK_SECRET
    if expected and not secrets.compare_digest(
        (x_telegram_bot_api_secret_token or "").encode(), expected.encode()
    ):
        raise WebhookSecretError()

    callback = update.callback_query
    if callback is None or callback.message is None:
        return {"ok": True}

    parsed = parse_callback_data(callback.data)
    if parsed is None:
        logger.debug(f"忽略无法解析的回调数据: {callback.data!r}")
        return {"ok": True}

    action, comment_id = parsed
    # 编辑消息和应答回调需要请求 Telegram，放到线程中执行
    await asyncio.to_thread(
        service.handle_moderation_callback,
        action,
        comment_id,
        callback.message.message_id,
        callback.message.text,
        callback.id,
    )
    return {"ok": True}
