"""
Web 层测试夹具

用依赖覆盖替换数据库、人机验证、对象存储和 Telegram，
不使用 with 语句创建 TestClient，因此不会触发启动事件
"""
import pytest
from fastapi.testclient import TestClient

from kappalib.core.avatar import AvatarProcessor
from kappalib.core.cache import TTLCache
from kappalib.core.rate_limit import CommentCooldown
from kappalib.db import Database, NovelStatus, chapter_crud, novel_crud, source_crud
from kappalib.web.config import settings
from kappalib.web.dependencies import (
    get_avatar_processor,
    get_cache,
    get_comment_captcha,
    get_cooldown,
    get_database,
    get_dispatcher,
    get_moderator,
    get_profile_captcha,
)
from kappalib.web.main import app


@pytest.fixture
def web_db():
    database = Database("sqlite:///:memory:")
    database.create_all_tables()
    yield database
    database.dispose()


@pytest.fixture
def cooldown():
    return CommentCooldown(cooldown=30)


@pytest.fixture
def client(web_db, monkeypatch, fake_captcha, fake_storage, fake_dispatcher, fake_moderator, cooldown):
    monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", False)
    monkeypatch.setattr(settings, "TELEGRAM_WEBHOOK_SECRET", None)

    cache = TTLCache()
    avatars = AvatarProcessor(fake_storage)
    app.dependency_overrides[get_database] = lambda: web_db
    app.dependency_overrides[get_cache] = lambda: cache
    app.dependency_overrides[get_profile_captcha] = lambda: fake_captcha
    app.dependency_overrides[get_comment_captcha] = lambda: fake_captcha
    app.dependency_overrides[get_avatar_processor] = lambda: avatars
    app.dependency_overrides[get_dispatcher] = lambda: fake_dispatcher
    app.dependency_overrides[get_moderator] = lambda: fake_moderator
    app.dependency_overrides[get_cooldown] = lambda: cooldown

    yield TestClient(app)

    app.dependency_overrides.clear()


@pytest.fixture
def seeded(web_db):
    """一部两章的小说，第一章带来源"""
    with web_db.session_scope() as session:
        source = source_crud.create(session, name="Wuxiaworld")
        novel = novel_crud.create(
            session,
            title="Lord of the Mysteries",
            title_en="Lord of the Mysteries",
            author="Cuttlefish",
            year_start=2018,
            status=NovelStatus.COMPLETED,
        )
        first = chapter_crud.create(
            session, novel_id=novel.id, chapter_num=1, title="第一章", content="绯红", source_id=source.id
        )
        second = chapter_crud.create(session, novel_id=novel.id, chapter_num=2, title="第二章", content="情况")
        return {"novel_id": novel.id, "chapter_id": first.id, "second_chapter_id": second.id}
