"""
测试 HTTP API（目录、资料同步流程、评论）
"""
import base64
from io import BytesIO

from PIL import Image

from kappalib.db import Comment, CommentStatus


def create_profile(client):
    response = client.post("/api/profile", json={"turnstile_token": "ok"})
    assert response.status_code == 201
    return response.json()


def auth(profile):
    return {"X-Profile-ID": profile["id"], "X-Secret-Token": profile["secret_token"]}


def png_data_url(size=(400, 300)) -> str:
    buffer = BytesIO()
    Image.new("RGB", size, "blue").save(buffer, format="PNG")
    return "data:image/png;base64," + base64.b64encode(buffer.getvalue()).decode()


# ========== 状态与站点 ==========


def test_api_status(client):
    response = client.get("/api/")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"
    assert response.json()["database"] == "ok"


def test_healthz(client):
    assert client.get("/healthz").json() == {"status": "ok"}


def test_robots_and_sitemap(client, seeded):
    robots = client.get("/robots.txt")
    sitemap = client.get("/sitemap.xml")

    assert "Sitemap:" in robots.text
    assert "Disallow: /api/" in robots.text
    assert sitemap.headers["content-type"].startswith("application/xml")
    assert f"/novel/{seeded['novel_id']}</loc>" in sitemap.text


# ========== 目录 ==========


def test_list_novels(client, seeded):
    response = client.get("/api/novels", params={"sort": "newest"})

    assert response.status_code == 200
    body = response.json()
    assert body["total_count"] == 1
    assert body["novels"][0]["id"] == seeded["novel_id"]
    assert body["novels"][0]["chapters_count"] == 2
    assert body["novels"][0]["status"] == "completed"
    assert response.headers["Cache-Control"] == "public, max-age=300"
    assert response.headers["X-Content-Type-Options"] == "nosniff"


def test_get_novel_and_chapters(client, seeded):
    novel = client.get(f"/api/novels/{seeded['novel_id']}")
    chapters = client.get(f"/api/novels/{seeded['novel_id']}/chapters")

    assert novel.json()["title"] == "Lord of the Mysteries"
    assert chapters.json()["count"] == 2
    assert [c["chapter_num"] for c in chapters.json()["chapters"]] == [1, 2]


def test_novel_not_found(client):
    response = client.get("/api/novels/nvl_missing")

    assert response.status_code == 404
    assert response.json() == {"error": "小说不存在"}
    assert "Cache-Control" not in response.headers


def test_get_chapter(client, seeded):
    response = client.get(f"/api/chapters/{seeded['chapter_id']}")

    assert response.status_code == 200
    assert response.json()["content"] == "绯红"
    assert response.json()["source"] == {"name": "Wuxiaworld", "logo_url": None}
    assert client.get(f"/api/chapters/{seeded['second_chapter_id']}").json()["source"] is None


def test_chapter_not_found(client):
    assert client.get("/api/chapters/chp_missing").status_code == 404


def test_sitemap_data(client, seeded):
    assert [item["id"] for item in client.get("/api/novels/sitemap-data").json()] == [seeded["novel_id"]]


def test_search(client, seeded):
    found = client.get("/api/novels/search", params={"q": "mysteries"}).json()
    missing = client.get("/api/novels/search", params={"q": "zzzzqqqq"}).json()
    empty = client.get("/api/novels/search", params={"q": ""}).json()

    assert [n["id"] for n in found["novels"]] == [seeded["novel_id"]]
    assert found["query"] == "mysteries"
    assert missing["novels"] == []
    assert empty["novels"] == []


def test_search_query_too_long(client):
    response = client.get("/api/novels/search", params={"q": "x" * 51})

    assert response.status_code == 400
    assert response.json()["error"] == "请求参数无效"


# ========== 用户资料 ==========


def test_profile_sync_flow(client):
    """创建资料 -> 同步 Cookie -> 生成同步码 -> 新设备登录"""
    profile = create_profile(client)
    assert len(profile["secret_token"]) == 64

    synced = client.post(
        "/api/profile/sync-cookies",
        json={"cookies": {"kappalib_theme": {"value": "dark", "updated_at": 1700000000000}}},
        headers=auth(profile),
    )
    assert synced.status_code == 200
    cookies = synced.json()["cookies"]
    assert cookies == {"kappalib_theme": {"value": "dark", "updated_at": 1700000000000}}

    code = client.post(f"/api/profile/{profile['id']}/sync-code", headers=auth(profile))
    assert code.status_code == 200
    sync_code = code.json()["sync_code"]

    login = client.post("/api/profile/login", json={"sync_code": sync_code})
    assert login.status_code == 200
    assert login.json()["secret_token"] == profile["secret_token"]
    assert login.json()["profile"]["id"] == profile["id"]
    assert login.json()["cookies"] == cookies

    again = client.post("/api/profile/login", json={"sync_code": sync_code})
    assert again.status_code == 404
    assert again.json() == {"error": "同步码无效或已过期"}


def test_create_profile_rejects_captcha(client):
    response = client.post("/api/profile", json={"turnstile_token": "bad"})

    assert response.status_code == 400
    assert response.json() == {"error": "人机验证失败"}


def test_public_profile_hides_token(client):
    profile = create_profile(client)

    response = client.get(f"/api/profile/{profile['id']}")

    assert response.status_code == 200
    assert "secret_token" not in response.json()
    assert client.get("/api/profile/usr_missing").status_code == 404


def test_wrong_token_is_forbidden(client):
    profile = create_profile(client)
    headers = {"X-Profile-ID": profile["id"], "X-Secret-Token": "0" * 64}

    assert client.post(f"/api/profile/{profile['id']}/sync-code", headers=headers).status_code == 403
    assert client.post("/api/profile/sync-cookies", json={"cookies": {}}, headers=headers).status_code == 403
    response = client.post(f"/api/profile/{profile['id']}/sync-code")
    assert response.status_code == 403
    assert response.json() == {"error": "密钥无效"}


def test_update_display_name(client):
    profile = create_profile(client)

    ok = client.patch(f"/api/profile/{profile['id']}/name", json={"display_name": "<b>Bob</b> Smith"}, headers=auth(profile))
    too_long = client.patch(f"/api/profile/{profile['id']}/name", json={"display_name": "A" * 16}, headers=auth(profile))

    assert ok.status_code == 200
    assert ok.json()["display_name"] == "Bob Smith"
    assert too_long.status_code == 400


def test_upload_avatar(client, fake_storage):
    profile = create_profile(client)

    response = client.post(f"/api/profile/{profile['id']}/avatar", json={"image": png_data_url()}, headers=auth(profile))

    assert response.status_code == 200
    assert response.json()["has_custom_avatar"] is True
    stored = Image.open(BytesIO(fake_storage.objects[f"avatars/{profile['id']}.jpg"]))
    assert stored.size == (250, 250)


def test_upload_avatar_rejects_bad_data(client):
    profile = create_profile(client)
    buffer = BytesIO()
    Image.new("RGB", (10, 10)).save(buffer, format="GIF")
    gif = base64.b64encode(buffer.getvalue()).decode()

    garbage = client.post(f"/api/profile/{profile['id']}/avatar", json={"image": "!!!"}, headers=auth(profile))
    unsupported = client.post(f"/api/profile/{profile['id']}/avatar", json={"image": gif}, headers=auth(profile))

    assert garbage.status_code == 400
    assert garbage.json() == {"error": "图片数据无效"}
    assert unsupported.status_code == 400


def test_delete_profile(client):
    profile = create_profile(client)

    response = client.delete(f"/api/profile/{profile['id']}", headers=auth(profile))

    assert response.status_code == 204
    assert client.get(f"/api/profile/{profile['id']}").status_code == 404


# ========== 评论 ==========


def test_post_comment_flow(client, seeded, web_db, fake_dispatcher):
    profile = create_profile(client)
    url = f"/api/chapters/{seeded['chapter_id']}/comments"

    created = client.post(url, json={"content": "**好看**", "turnstile_token": "ok"}, headers=auth(profile))

    assert created.status_code == 201
    body = created.json()
    assert body["status"] == "pending"
    assert body["content_html"] == "<p><strong>好看</strong></p>"
    assert body["user_display_name"] == profile["display_name"]
    assert [n.comment_id for n in fake_dispatcher.notices] == [body["id"]]

    # 待审核评论不公开
    assert client.get(url).json()["total_count"] == 0

    with web_db.session_scope() as session:
        session.get(Comment, body["id"]).status = CommentStatus.APPROVED

    listed = client.get(url).json()
    assert [c["id"] for c in listed["comments"]] == [body["id"]]
    assert listed["total_pages"] == 1


def test_post_comment_cooldown(client, seeded):
    profile = create_profile(client)
    url = f"/api/chapters/{seeded['chapter_id']}/comments"
    payload = {"content": "第一条", "turnstile_token": "ok"}

    assert client.post(url, json=payload, headers=auth(profile)).status_code == 201
    second = client.post(url, json=payload, headers=auth(profile))

    assert second.status_code == 429
    assert int(second.headers["Retry-After"]) in range(1, 31)


def test_post_comment_errors(client, seeded):
    profile = create_profile(client)
    url = f"/api/chapters/{seeded['chapter_id']}/comments"

    assert client.post(url, json={"content": "", "turnstile_token": "ok"}, headers=auth(profile)).status_code == 400
    assert client.post(url, json={"content": "hi", "turnstile_token": "bad"}, headers=auth(profile)).status_code == 400
    assert client.post(url, json={"content": "hi", "turnstile_token": "ok"}).status_code == 403
    assert client.post(url, json={"turnstile_token": "ok"}, headers=auth(profile)).status_code == 400
    missing = client.post(
        "/api/chapters/chp_missing/comments", json={"content": "hi", "turnstile_token": "ok"}, headers=auth(profile)
    )
    assert missing.status_code == 404
