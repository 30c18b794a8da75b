"""
测试 Telegram 审核回调
"""
import pytest

from kappalib.core.tokens import new_avatar_seed, new_secret_token
from kappalib.db import Comment, CommentStatus, comment_crud, profile_crud
from kappalib.web.config import settings

URL = "/api/webhook/telegram"


@pytest.fixture
def pending_comment(web_db, seeded):
    with web_db.session_scope() as session:
        profile = profile_crud.create(
            session, secret_token=new_secret_token(), display_name="Bob", avatar_seed=new_avatar_seed()
        )
        comment = comment_crud.create(
            session,
            chapter_id=seeded["chapter_id"],
            user_id=profile.id,
            content_html="<p>好看</p>",
            status=CommentStatus.PENDING,
        )
        return comment.id


def callback(data, message_id=77, text="💬 新评论"):
    return {
        "update_id": 1,
        "callback_query": {
            "id": "cb-1",
            "from": {"id": 42, "is_bot": False, "first_name": "Mod"},
            "data": data,
            "message": {"message_id": message_id, "text": text, "chat": {"id": -100}},
        },
    }


def status_of(web_db, comment_id):
    with web_db.session_scope() as session:
        return session.get(Comment, comment_id).status


def test_approve_callback(client, web_db, pending_comment, fake_moderator):
    response = client.post(URL, json=callback(f"approve:{pending_comment}"))

    assert response.status_code == 200
    assert response.json() == {"ok": True}
    assert status_of(web_db, pending_comment) == CommentStatus.APPROVED
    assert fake_moderator.edits == [(77, "💬 新评论\n\n✅ 已通过")]
    assert fake_moderator.answers == [("cb-1", "✅ 已通过")]


def test_reject_callback(client, web_db, pending_comment):
    client.post(URL, json=callback(f"reject:{pending_comment}"))

    assert status_of(web_db, pending_comment) == CommentStatus.REJECTED


def test_callback_on_handled_comment(client, web_db, pending_comment, fake_moderator):
    client.post(URL, json=callback(f"reject:{pending_comment}"))
    fake_moderator.answers.clear()

    response = client.post(URL, json=callback(f"approve:{pending_comment}"))

    assert response.json() == {"ok": True}
    assert status_of(web_db, pending_comment) == CommentStatus.REJECTED
    assert fake_moderator.answers == [("cb-1", "评论已处理")]


@pytest.mark.parametrize("data", ["garbage", "approve:", "delete:cmt_1", None])
def test_unparseable_callback_is_ignored(client, web_db, pending_comment, fake_moderator, data):
    response = client.post(URL, json=callback(data))

    assert response.json() == {"ok": True}
    assert status_of(web_db, pending_comment) == CommentStatus.PENDING
    assert fake_moderator.answers == []


def test_update_without_callback(client, fake_moderator):
    response = client.post(URL, json={"update_id": 2, "message": {"message_id": 1, "text": "hi"}})

    assert response.status_code == 200
    assert response.json() == {"ok": True}
    assert fake_moderator.edits == []


def test_webhook_secret(client, web_db, pending_comment, monkeypatch):
    monkeypatch.setattr(settings, "TELEGRAM_WEBHOOK_SECRET", "s3cret")
    payload = callback(f"approve:{pending_comment}")

    missing = client.post(URL, json=payload)
    wrong = client.post(URL, json=payload, headers={"X-Telegram-Bot-Api-Secret-Token": "nope"})

    assert missing.status_code == 403
    assert wrong.json() == {"error": "Webhook 密钥无效"}
    assert status_of(web_db, pending_comment) == CommentStatus.PENDING

    accepted = client.post(URL, json=payload, headers={"X-Telegram-Bot-Api-Secret-Token": "s3cret"})

    assert accepted.json() == {"ok": True}
    assert status_of(web_db, pending_comment) == CommentStatus.APPROVED
