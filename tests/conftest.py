"""
测试公共夹具

内存数据库、会话，以及小说、章节、用户和评论的构造工具
"""
import pytest

from kappalib.core.tokens import new_avatar_seed, new_secret_token
from kappalib.db import (
    CommentStatus,
    NovelStatus,
    chapter_crud,
    comment_crud,
    init_database,
    novel_crud,
    profile_crud,
)


class FakeCaptcha:
    """只接受 "ok" 令牌的人机验证器"""

    def __init__(self):
        self.calls = []

    def verify(self, token, remote_ip=None):
        self.calls.append((token, remote_ip))
        return token == "ok"

    def close(self):
        pass


class FakeStorage:
    """记录上传内容的头像存储"""

    def __init__(self):
        self.objects = {}

    def put_avatar(self, profile_id, data):
        key = f"avatars/{profile_id}.jpg"
        self.objects[key] = data
        return key


class FakeDispatcher:
    """记录提交的审核通知"""

    def __init__(self):
        self.notices = []

    def submit(self, notice):
        self.notices.append(notice)


class FakeModerator:
    """记录消息编辑和回调应答，设置 error 后每次调用都抛出该异常"""

    def __init__(self):
        self.edits = []
        self.answers = []
        self.error = None

    @property
    def configured(self):
        return True

    def edit_message_text(self, message_id, text):
        if self.error:
            raise self.error
        self.edits.append((message_id, text))

    def answer_callback_query(self, callback_query_id, text):
        if self.error:
            raise self.error
        self.answers.append((callback_query_id, text))

    def close(self):
        pass


class FakeClock:
    """可手动推进的时钟"""

    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


@pytest.fixture
def db():
    """创建内存数据库用于测试"""
    database = init_database("sqlite:///:memory:", echo=False)
    database.create_all_tables()
    yield database
    database.dispose()


@pytest.fixture
def session(db):
    """创建数据库会话"""
    with db.session_scope() as sess:
        yield sess


@pytest.fixture
def make_novel(session):
    def _make(title="Lord of the Mysteries", **kwargs):
        fields = {
            "title": title,
            "title_en": title,
            "author": "Cuttlefish",
            "year_start": 2018,
            "status": NovelStatus.COMPLETED,
        }
        fields.update(kwargs)
        return novel_crud.create(session, **fields)

    return _make


@pytest.fixture
def make_chapter(session):
    def _make(novel, chapter_num=1, **kwargs):
        fields = {
            "novel_id": novel.id,
            "chapter_num": chapter_num,
            "title": f"第{chapter_num}章",
            "content": "正文内容",
        }
        fields.update(kwargs)
        return chapter_crud.create(session, **fields)

    return _make


@pytest.fixture
def make_profile(session):
    def _make(display_name="Quiet Fox", **kwargs):
        fields = {
            "secret_token": new_secret_token(),
            "display_name": display_name,
            "avatar_seed": new_avatar_seed(),
        }
        fields.update(kwargs)
        return profile_crud.create(session, **fields)

    return _make


@pytest.fixture
def make_comment(session):
    def _make(chapter, profile, status=CommentStatus.PENDING, created_at=None, content_html="<p>评论</p>"):
        fields = {
            "chapter_id": chapter.id,
            "user_id": profile.id,
            "content_html": content_html,
            "status": status,
        }
        if created_at is not None:
            fields["created_at"] = created_at
        return comment_crud.create(session, **fields)

    return _make


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def fake_captcha():
    return FakeCaptcha()


@pytest.fixture
def fake_storage():
    return FakeStorage()


@pytest.fixture
def fake_dispatcher():
    return FakeDispatcher()


@pytest.fixture
def fake_moderator():
    return FakeModerator()
