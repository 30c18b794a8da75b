"""
Telegram 评论审核

新评论以带“通过 / 拒绝”按钮的消息发送到审核群，管理员点击按钮后
Telegram 通过 Webhook 回调，服务端据此更新评论状态。

消息发送在后台线程池中完成，与请求生命周期无关，失败只记录日志
"""
import re
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from html import escape
from typing import Any, Callable, Optional

import httpx
from loguru import logger
from tenacity import (
    Retrying,
    retry_if_exception_type,
    stop_after_attempt,
    stop_after_delay,
    wait_exponential,
)

from kappalib.exceptions import ModerationDeliveryError

TELEGRAM_API_BASE = "https://api.telegram.org"
MAX_MESSAGE_LENGTH = 4000
MAX_CALLBACK_ID_LENGTH = 50

APPROVE_ACTION = "approve"
REJECT_ACTION = "reject"
STATUS_TEXT = {
    APPROVE_ACTION: "✅ 已通过",
    REJECT_ACTION: "❌ 已拒绝",
}

EMPTY_CONTENT_TEXT = "[无文本]"
DEFAULT_IMAGE_ALT = "图片"

_HEADING_OPEN_RE = re.compile(r"<h[1-6]>")
_HEADING_CLOSE_RE = re.compile(r"</h[1-6]>")
_BR_RE = re.compile(r"<br\s*/?>")
_LINK_RE = re.compile(r"<a\s[^>]*?href=\"([^\"]*)\"[^>]*>")
_IMG_RE = re.compile(r"<img\s[^>]*>")
_ATTR_RE = r'{name}="([^"]*)"'

# 简单的一对一标签替换
_TAG_REPLACEMENTS = [
    ("<p>", ""),
    ("</p>", "\n\n"),
    ("<ul>", ""),
    ("</ul>", "\n"),
    ("<ol>", ""),
    ("</ol>", "\n"),
    ("<li>", "• "),
    ("</li>", "\n"),
    ("<strong>", "<b>"),
    ("</strong>", "</b>"),
    ("<em>", "<i>"),
    ("</em>", "</i>"),
]


def _image_attr(tag: str, name: str) -> str:
    match = re.search(_ATTR_RE.format(name=name), tag)
    return match.group(1) if match else ""


def _replace_image(match: re.Match) -> str:
    tag = match.group(0)
    src = _image_attr(tag, "src")
    alt = _image_attr(tag, "alt") or DEFAULT_IMAGE_ALT
    label = f"[🖼 {alt}]"
    if src:
        return f'<a href="{src}">{label}</a>'
    return label


def html_to_telegram_html(html: str) -> str:
    """
    将评论 HTML 转换为 Telegram 支持的 HTML 子集

    标题转为粗体，段落、换行和列表转为换行与项目符号，图片转为链接

    Args:
        html: 已净化的评论 HTML

    Returns:
        Telegram 消息文本；内容为空时返回占位文本
    """
    if not html:
        return EMPTY_CONTENT_TEXT

    result = _HEADING_OPEN_RE.sub("<b>", html)
    result = _HEADING_CLOSE_RE.sub("</b>\n", result)
    result = _BR_RE.sub("\n", result)
    for old, new in _TAG_REPLACEMENTS:
        result = result.replace(old, new)
    # Telegram 只接受 href 属性
    result = _LINK_RE.sub(r'<a href="\1">', result)
    result = _IMG_RE.sub(_replace_image, result)

    result = result.strip()
    return result or EMPTY_CONTENT_TEXT


@dataclass
class CommentNotice:
    """待审核评论的消息内容"""

    comment_id: str
    chapter_id: str
    author_name: str
    content_html: str

    def render(self) -> str:
        text = (
            "💬 <b>新评论</b>\n\n"
            f"👤 作者: {escape(self.author_name)}\n"
            f"📖 章节: <code>{escape(self.chapter_id)}</code>\n\n"
            f"📝 内容:\n{html_to_telegram_html(self.content_html)}"
        )
        if len(text) > MAX_MESSAGE_LENGTH:
            text = text[:MAX_MESSAGE_LENGTH] + "..."
        return text

    def keyboard(self) -> dict[str, Any]:
        """审核按钮，callback_data 形如 approve:<评论ID>"""
        callback_id = self.comment_id
        if len(callback_id) > MAX_CALLBACK_ID_LENGTH:
            callback_id = callback_id[:MAX_CALLBACK_ID_LENGTH]
            logger.warning(f"评论ID过长，回调数据已截断: {self.comment_id}")
        return {
            "inline_keyboard": [
                [
                    {"text": "✅ 通过", "callback_data": f"{APPROVE_ACTION}:{callback_id}"},
                    {"text": "❌ 拒绝", "callback_data": f"{REJECT_ACTION}:{callback_id}"},
                ]
            ]
        }


def parse_callback_data(data: str | None) -> tuple[str, str] | None:
    """
    解析按钮回调数据

    Returns:
        (动作, 评论ID)；格式不符时返回 None
    """
    if not data:
        return None
    action, sep, comment_id = data.partition(":")
    if not sep or not comment_id:
        return None
    return action, comment_id


class TelegramModerator:
    """Telegram Bot API 客户端"""

    def __init__(
        self,
        bot_token: Optional[str],
        chat_id: Optional[str],
        api_base: str = TELEGRAM_API_BASE,
        timeout: float = 10.0,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        """
        Args:
            bot_token: 机器人令牌
            chat_id: 审核群 ID
            api_base: Bot API 地址
            timeout: 单次请求超时秒数
            transport: 自定义 httpx 传输层（测试时注入）
        """
        self.bot_token = bot_token
        self.chat_id = chat_id
        self.api_base = api_base.rstrip("/")
        self._client = httpx.Client(timeout=timeout, transport=transport)

    @property
    def configured(self) -> bool:
        return bool(self.bot_token and self.chat_id)

    def _call(self, method: str, payload: dict[str, Any]) -> Any:
        """
        调用 Bot API 方法

        Returns:
            响应中的 result 字段

        Raises:
            ModerationDeliveryError: 未配置令牌、网络错误或接口返回失败
        """
        if not self.bot_token:
            raise ModerationDeliveryError("Telegram 机器人令牌未配置")

        url = f"{self.api_base}/bot{self.bot_token}/{method}"
        try:
            response = self._client.post(url, json=payload)
            body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            raise ModerationDeliveryError(f"Telegram 请求失败: {method}", details={"error": str(e)}) from e

        if not body.get("ok"):
            raise ModerationDeliveryError(
                f"Telegram 接口返回错误: {method}",
                details={"status": response.status_code, "description": body.get("description")},
            )
        return body.get("result")

    def send_comment(self, notice: CommentNotice) -> int:
        """
        发送待审核评论

        Returns:
            消息ID

        Raises:
            ModerationDeliveryError: 发送失败
        """
        if not self.configured:
            raise ModerationDeliveryError("Telegram 审核群未配置")
        result = self._call(
            "sendMessage",
            {
                "chat_id": self.chat_id,
                "text": notice.render(),
                "parse_mode": "HTML",
                "reply_markup": notice.keyboard(),
            },
        )
        try:
            return int(result["message_id"])
        except (TypeError, KeyError, ValueError) as e:
            raise ModerationDeliveryError("Telegram 响应缺少消息ID") from e

    def edit_message_text(self, message_id: int, text: str) -> None:
        """替换审核消息文本（同时移除按钮）"""
        self._call(
            "editMessageText",
            {"chat_id": self.chat_id, "message_id": message_id, "text": text},
        )

    def answer_callback_query(self, callback_query_id: str, text: str) -> None:
        self._call("answerCallbackQuery", {"callback_query_id": callback_query_id, "text": text})

    def set_webhook(self, url: str, secret_token: Optional[str] = None) -> None:
        """注册 Webhook 地址"""
        payload: dict[str, Any] = {"url": url, "allowed_updates": ["callback_query"]}
        if secret_token:
            payload["secret_token"] = secret_token
        self._call("setWebhook", payload)
        logger.info(f"Telegram Webhook 已设置: {url}")

    def close(self) -> None:
        self._client.close()


class NotificationDispatcher:
    """
    审核消息后台发送器

    每条评论的发送在线程池中执行，有独立的总时限和有限次数的重试；
    发送成功后通过 on_delivered 回调保存消息ID
    """

    def __init__(
        self,
        moderator: TelegramModerator,
        on_delivered: Optional[Callable[[str, int], None]] = None,
        max_workers: int = 2,
        max_attempts: int = 3,
        deadline: float = 30.0,
        wait=None,
    ):
        """
        Args:
            moderator: Telegram 客户端
            on_delivered: 发送成功回调 (评论ID, 消息ID)
            max_workers: 线程池大小
            max_attempts: 最大尝试次数
            deadline: 单条消息的总时限（秒）
            wait: tenacity 等待策略，默认指数退避
        """
        self.moderator = moderator
        self.on_delivered = on_delivered
        self.max_attempts = max_attempts
        self.deadline = deadline
        self._wait = wait or wait_exponential(multiplier=1, min=1, max=5)
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="moderation")
        self._pending = 0
        self._idle = threading.Condition()

    @property
    def pending(self) -> int:
        """尚未完成的发送任务数"""
        with self._idle:
            return self._pending

    def submit(self, notice: CommentNotice) -> Future:
        """
        提交一条待审核评论

        Returns:
            Future，结果为消息ID；未配置 Telegram 时结果为 None
        """
        with self._idle:
            self._pending += 1
        future = self._executor.submit(self._deliver, notice)
        future.add_done_callback(self._on_done)
        return future

    def _deliver(self, notice: CommentNotice) -> int | None:
        if not self.moderator.configured:
            logger.warning(f"Telegram 未配置，跳过审核通知: {notice.comment_id}")
            return None

        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts) | stop_after_delay(self.deadline),
            wait=self._wait,
            retry=retry_if_exception_type(ModerationDeliveryError),
            reraise=True,
        )
        message_id = retrying(self.moderator.send_comment, notice)
        logger.info(f"审核通知已发送: {notice.comment_id} (message_id={message_id})")

        if self.on_delivered:
            self.on_delivered(notice.comment_id, message_id)
        return message_id

    def _on_done(self, future: Future) -> None:
        error = None if future.cancelled() else future.exception()
        if error is not None:
            logger.error(f"审核通知发送失败: {error}")
        with self._idle:
            self._pending -= 1
            self._idle.notify_all()

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """
        等待所有发送任务完成

        Returns:
            是否在超时前全部完成
        """
        with self._idle:
            return self._idle.wait_for(lambda: self._pending == 0, timeout=timeout)

    def shutdown(self, wait: bool = True) -> None:
        self._executor.shutdown(wait=wait)
