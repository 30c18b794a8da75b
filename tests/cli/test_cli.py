"""
测试管理命令
"""
import pytest
from click.testing import CliRunner
from rich.console import Console

from kappalib.cli import main as cli_module
from kappalib.cli.main import cli
from kappalib.core.tokens import new_avatar_seed, new_secret_token
from kappalib.db import (
    Comment,
    CommentStatus,
    NovelStatus,
    chapter_crud,
    comment_crud,
    novel_crud,
    profile_crud,
)


@pytest.fixture
def runner(db, monkeypatch):
    monkeypatch.setattr(cli_module, "get_db", lambda: db)
    monkeypatch.setattr(cli_module, "console", Console(width=200))
    return CliRunner()


@pytest.fixture
def pending_comment(db):
    with db.session_scope() as session:
        novel = novel_crud.create(
            session,
            title="Shadow Slave",
            title_en="Shadow Slave",
            author="Guiltythree",
            year_start=2022,
            status=NovelStatus.ONGOING,
        )
        chapter = chapter_crud.create(session, novel_id=novel.id, chapter_num=1, title="Nightmare", content="...")
        profile = profile_crud.create(
            session, secret_token=new_secret_token(), display_name="Bob", avatar_seed=new_avatar_seed()
        )
        comment = comment_crud.create(
            session, chapter_id=chapter.id, user_id=profile.id, content_html="<p>好看</p>"
        )
        return comment.id


def status_of(db, comment_id):
    with db.session_scope() as session:
        return session.get(Comment, comment_id).status


def test_init_db(runner):
    result = runner.invoke(cli, ["init-db"])

    assert result.exit_code == 0
    assert "数据表已创建" in result.output


def test_list_novels_empty(runner):
    result = runner.invoke(cli, ["list-novels"])

    assert result.exit_code == 0
    assert "暂无小说" in result.output


def test_list_novels(runner, pending_comment):
    result = runner.invoke(cli, ["list-novels", "--sort", "created"])

    assert result.exit_code == 0
    assert "Shadow Slave" in result.output


def test_pending_comments_empty(runner):
    result = runner.invoke(cli, ["pending-comments"])

    assert "没有待审核的评论" in result.output


def test_pending_comments(runner, pending_comment):
    result = runner.invoke(cli, ["pending-comments"])

    assert result.exit_code == 0
    assert pending_comment in result.output


def test_moderate_approve(runner, db, pending_comment):
    result = runner.invoke(cli, ["moderate", pending_comment, "approve"])

    assert result.exit_code == 0
    assert "已通过" in result.output
    assert status_of(db, pending_comment) == CommentStatus.APPROVED


def test_moderate_twice_keeps_first_decision(runner, db, pending_comment):
    runner.invoke(cli, ["moderate", pending_comment, "reject"])
    result = runner.invoke(cli, ["moderate", pending_comment, "approve"])

    assert "已审核过" in result.output
    assert status_of(db, pending_comment) == CommentStatus.REJECTED


def test_moderate_missing_comment(runner):
    result = runner.invoke(cli, ["moderate", "cmt_missing", "approve"])

    assert "评论不存在" in result.output


def test_moderate_invalid_action(runner, pending_comment):
    result = runner.invoke(cli, ["moderate", pending_comment, "delete"])

    assert result.exit_code == 2
