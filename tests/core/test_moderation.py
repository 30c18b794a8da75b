"""
测试 Telegram 审核消息格式、Bot API 客户端和后台发送器
"""
import json

import httpx
import pytest
from tenacity import wait_none

from kappalib.core.moderation import (
    MAX_MESSAGE_LENGTH,
    CommentNotice,
    NotificationDispatcher,
    TelegramModerator,
    html_to_telegram_html,
    parse_callback_data,
)
from kappalib.exceptions import ModerationDeliveryError


# ========== HTML 转换 ==========


def test_headings_and_paragraphs():
    html = "<h2>Title</h2><p>Hello <strong>world</strong> and <em>you</em></p>"

    assert html_to_telegram_html(html) == "<b>Title</b>\nHello <b>world</b> and <i>you</i>"


def test_lists_become_bullets():
    assert html_to_telegram_html("<ul><li>a</li><li>b</li></ul>") == "• a\n• b"


def test_line_breaks():
    assert html_to_telegram_html("<p>a<br>b<br />c</p>") == "a\nb\nc"


def test_links_keep_only_href():
    html = '<p><a href="https://example.com" rel="nofollow noreferrer">x</a></p>'

    assert html_to_telegram_html(html) == '<a href="https://example.com">x</a>'


def test_images_become_links():
    html = '<img alt="cat" src="https://example.com/cat.png">'

    assert html_to_telegram_html(html) == '<a href="https://example.com/cat.png">[🖼 cat]</a>'


def test_image_without_src_or_alt():
    assert html_to_telegram_html('<img title="x">') == "[🖼 图片]"


def test_empty_content_placeholder():
    assert html_to_telegram_html("") == "[无文本]"
    assert html_to_telegram_html("<p></p>") == "[无文本]"


# ========== 消息与按钮 ==========


def test_notice_render_escapes_author():
    notice = CommentNotice("cmt_1", "chp_1", "<Bob>", "<p>hi</p>")

    text = notice.render()

    assert "&lt;Bob&gt;" in text
    assert "<code>chp_1</code>" in text
    assert text.endswith("hi")


def test_notice_render_truncates_long_content():
    notice = CommentNotice("cmt_1", "chp_1", "Bob", "a" * 5000)

    text = notice.render()

    assert len(text) == MAX_MESSAGE_LENGTH + 3
    assert text.endswith("...")


def test_keyboard_callback_data():
    keyboard = CommentNotice("cmt_1", "chp_1", "Bob", "").keyboard()

    buttons = keyboard["inline_keyboard"][0]
    assert [b["callback_data"] for b in buttons] == ["approve:cmt_1", "reject:cmt_1"]


def test_keyboard_truncates_long_ids():
    keyboard = CommentNotice("c" * 60, "chp_1", "Bob", "").keyboard()

    assert keyboard["inline_keyboard"][0][0]["callback_data"] == "approve:" + "c" * 50


@pytest.mark.parametrize(
    "data,expected",
    [
        ("approve:cmt_1", ("approve", "cmt_1")),
        ("reject:cmt_2", ("reject", "cmt_2")),
        ("approve:", None),
        ("approve", None),
        ("", None),
        (None, None),
    ],
)
def test_parse_callback_data(data, expected):
    assert parse_callback_data(data) == expected


# ========== Bot API 客户端 ==========


class RecordingTransport:
    """按顺序返回预设响应并记录请求"""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        response = self.responses.pop(0) if len(self.responses) > 1 else self.responses[0]
        if isinstance(response, Exception):
            raise response
        return httpx.Response(response.status_code, content=response.content, headers=response.headers)


def ok(result):
    return httpx.Response(200, json={"ok": True, "result": result})


def failed(description="Bad Request"):
    return httpx.Response(400, json={"ok": False, "description": description})


def make_moderator(handler, token="123:abc", chat_id="-100"):
    return TelegramModerator(token, chat_id, transport=httpx.MockTransport(handler))


def test_send_comment():
    handler = RecordingTransport(ok({"message_id": 42}))
    moderator = make_moderator(handler)

    message_id = moderator.send_comment(CommentNotice("cmt_1", "chp_1", "Bob", "<p>hi</p>"))

    assert message_id == 42
    request = handler.requests[0]
    assert request.url.path == "/bot123:abc/sendMessage"
    payload = json.loads(request.content)
    assert payload["chat_id"] == "-100"
    assert payload["parse_mode"] == "HTML"
    assert payload["reply_markup"]["inline_keyboard"][0][0]["callback_data"] == "approve:cmt_1"


def test_api_error_raises():
    moderator = make_moderator(RecordingTransport(failed()))

    with pytest.raises(ModerationDeliveryError):
        moderator.edit_message_text(1, "text")


def test_network_error_raises():
    moderator = make_moderator(RecordingTransport(httpx.ConnectError("boom")))

    with pytest.raises(ModerationDeliveryError):
        moderator.answer_callback_query("cb", "text")


def test_send_without_chat_id_raises():
    handler = RecordingTransport(ok({"message_id": 1}))
    moderator = make_moderator(handler, chat_id=None)

    assert not moderator.configured
    with pytest.raises(ModerationDeliveryError):
        moderator.send_comment(CommentNotice("cmt_1", "chp_1", "Bob", ""))
    assert handler.requests == []


def test_set_webhook_payload():
    handler = RecordingTransport(ok(True))
    moderator = make_moderator(handler)

    moderator.set_webhook("https://example.com/hook", secret_token="s3cret")

    payload = json.loads(handler.requests[0].content)
    assert payload == {
        "url": "https://example.com/hook",
        "allowed_updates": ["callback_query"],
        "secret_token": "s3cret",
    }


# ========== 后台发送器 ==========


def test_dispatcher_retries_then_delivers():
    handler = RecordingTransport(failed(), failed(), ok({"message_id": 7}))
    delivered = []
    dispatcher = NotificationDispatcher(
        make_moderator(handler),
        on_delivered=lambda comment_id, message_id: delivered.append((comment_id, message_id)),
        max_attempts=3,
        wait=wait_none(),
    )

    future = dispatcher.submit(CommentNotice("cmt_1", "chp_1", "Bob", "<p>hi</p>"))

    assert future.result(timeout=5) == 7
    assert dispatcher.wait_idle(timeout=5)
    assert dispatcher.pending == 0
    assert delivered == [("cmt_1", 7)]
    assert len(handler.requests) == 3
    dispatcher.shutdown()


def test_dispatcher_gives_up_after_max_attempts():
    handler = RecordingTransport(failed())
    delivered = []
    dispatcher = NotificationDispatcher(
        make_moderator(handler),
        on_delivered=lambda *args: delivered.append(args),
        max_attempts=3,
        wait=wait_none(),
    )

    future = dispatcher.submit(CommentNotice("cmt_1", "chp_1", "Bob", ""))

    assert isinstance(future.exception(timeout=5), ModerationDeliveryError)
    assert dispatcher.wait_idle(timeout=5)
    assert len(handler.requests) == 3
    assert delivered == []
    dispatcher.shutdown()


def test_dispatcher_skips_when_not_configured():
    handler = RecordingTransport(ok({"message_id": 1}))
    dispatcher = NotificationDispatcher(make_moderator(handler, token=None), wait=wait_none())

    future = dispatcher.submit(CommentNotice("cmt_1", "chp_1", "Bob", ""))

    assert future.result(timeout=5) is None
    assert handler.requests == []
    dispatcher.shutdown()
