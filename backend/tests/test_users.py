"""Tests for user profile, activity and avatar endpoints."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from io import BytesIO
from typing import Any

import pytest
from httpx import AsyncClient
from PIL import Image
from sqlalchemy.ext.asyncio import AsyncSession

from api.v1 import media as media_api
from core import settings
from models import Comment, Like, PostRead, SavedPost, SharedPost, User
from services import storage


def make_image_bytes(image_format: str = "PNG") -> bytes:
    image = Image.new("RGB", (1200, 800), color=(0, 200, 100))
    buffer = BytesIO()
    image.save(buffer, format=image_format)
    return buffer.getvalue()


class DummyMinio:
    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.removed: list[str] = []

    def bucket_exists(self, bucket_name: str) -> bool:
        return True

    def make_bucket(self, bucket_name: str) -> None:
        return None

    def put_object(self, bucket_name, object_name, data, length, content_type=None):
        self.objects[object_name] = data.read()

    def remove_object(self, bucket_name, object_name):
        self.removed.append(object_name)
        self.objects.pop(object_name, None)


@pytest.fixture()
def dummy_minio(monkeypatch: pytest.MonkeyPatch) -> DummyMinio:
    client = DummyMinio()
    monkeypatch.setattr(storage, "get_minio_client", lambda: client)
    return client


@pytest.mark.asyncio
async def test_get_user_profile(async_client: AsyncClient, register_user):
    viewer = await register_user("viewer")
    target = await register_user("target")

    response = await async_client.get(
        f"/api/v1/users/{target['payload']['username']}",
        headers=viewer["headers"],
    )

    assert response.status_code == 200
    body = response.json()
    assert body["username"] == target["payload"]["username"]
    assert body["firstName"] == "Target"
    assert body["avatarKey"] is None
    assert "email" not in body


@pytest.mark.asyncio
async def test_user_routes_require_authentication(async_client, register_user):
    target = await register_user("target")

    profile = await async_client.get(f"/api/v1/users/{target['payload']['username']}")
    liked = await async_client.get(f"/api/v1/users/{target['id']}/liked-posts")

    assert profile.status_code == 401
    assert liked.status_code == 401


@pytest.mark.asyncio
async def test_get_unknown_user_profile_is_not_found(async_client, register_user):
    viewer = await register_user("viewer")

    response = await async_client.get("/api/v1/users/nosuchuser", headers=viewer["headers"])

    assert response.status_code == 404
    assert response.json() == {"error": "User not found"}


@pytest.mark.asyncio
async def test_list_user_posts_newest_first_with_next_offset(
    async_client,
    register_user,
    create_post,
):
    viewer = await register_user("viewer")
    author = await register_user("author")
    for title in ("One", "Two", "Three"):
        await create_post(author, title=title)

    username = author["payload"]["username"]
    first_page = await async_client.get(
        f"/api/v1/users/{username}/posts",
        params={"limit": 2},
        headers=viewer["headers"],
    )
    assert [post["title"] for post in first_page.json()] == ["Three", "Two"]
    assert first_page.headers["X-Next-Offset"] == "2"

    second_page = await async_client.get(
        f"/api/v1/users/{username}/posts",
        params={"limit": 2, "offset": 2},
        headers=viewer["headers"],
    )
    assert [post["title"] for post in second_page.json()] == ["One"]
    assert "X-Next-Offset" not in second_page.headers


@pytest.mark.asyncio
async def test_activity_lists_follow_engagement_recency(
    async_client,
    db_session: AsyncSession,
    register_user,
    create_post,
):
    author = await register_user("author")
    fan = await register_user("fan")
    older = await create_post(author, title="Older")
    newer = await create_post(author, title="Newer")
    base = datetime(2026, 3, 1, tzinfo=timezone.utc)

    # The older post was engaged with most recently.
    for model in (Like, SavedPost, SharedPost, PostRead):
        db_session.add(model(user_id=fan["id"], post_id=newer["id"], created_at=base))
        db_session.add(
            model(
                user_id=fan["id"],
                post_id=older["id"],
                created_at=base + timedelta(hours=1),
            )
        )
    await db_session.commit()

    for activity in ("liked", "saved", "shared", "read"):
        response = await async_client.get(
            f"/api/v1/users/{fan['id']}/{activity}-posts",
            headers=fan["headers"],
        )
        assert response.status_code == 200, activity
        assert [post["title"] for post in response.json()] == ["Older", "Newer"], activity

    author_likes = await async_client.get(
        f"/api/v1/users/{author['id']}/liked-posts",
        headers=fan["headers"],
    )
    assert author_likes.json() == []


@pytest.mark.asyncio
async def test_commented_posts_are_deduplicated(
    async_client,
    db_session: AsyncSession,
    register_user,
    create_post,
):
    author = await register_user("author")
    fan = await register_user("fan")
    first = await create_post(author, title="First")
    second = await create_post(author, title="Second")
    base = datetime(2026, 3, 1, tzinfo=timezone.utc)

    db_session.add_all(
        [
            Comment(user_id=fan["id"], post_id=first["id"], content="a", created_at=base),
            Comment(
                user_id=fan["id"],
                post_id=second["id"],
                content="b",
                created_at=base + timedelta(minutes=1),
            ),
            Comment(
                user_id=fan["id"],
                post_id=first["id"],
                content="c",
                created_at=base + timedelta(minutes=2),
            ),
        ]
    )
    await db_session.commit()

    response = await async_client.get(
        f"/api/v1/users/{fan['id']}/commented-posts",
        headers=fan["headers"],
    )

    assert [post["title"] for post in response.json()] == ["First", "Second"]


@pytest.mark.asyncio
async def test_activity_for_unknown_user_is_not_found(async_client, register_user):
    viewer = await register_user("viewer")

    response = await async_client.get(
        "/api/v1/users/999999/read-posts",
        headers=viewer["headers"],
    )

    assert response.status_code == 404


@pytest.mark.asyncio
async def test_update_me_changes_names(async_client, register_user):
    user = await register_user("renamer")

    response = await async_client.patch(
        "/api/v1/users/me",
        json={"firstName": "  Renamed  "},
        headers=user["headers"],
    )

    assert response.status_code == 200
    data = response.json()
    assert data["firstName"] == "Renamed"
    assert data["lastName"] == "Tester"
    assert data["email"] == user["payload"]["email"]


@pytest.mark.asyncio
async def test_update_me_requires_a_field(async_client, register_user):
    user = await register_user("noop")

    response = await async_client.patch("/api/v1/users/me", json={}, headers=user["headers"])

    assert response.status_code == 400


@pytest.mark.asyncio
async def test_upload_avatar_replaces_previous_object(
    async_client,
    db_session: AsyncSession,
    register_user,
    dummy_minio: DummyMinio,
):
    user = await register_user("avatar")
    files = {"avatar": ("me.png", make_image_bytes(), "image/png")}

    first = await async_client.post("/api/v1/users/me/avatar", files=files, headers=user["headers"])
    assert first.status_code == 200
    first_key = first.json()["avatarKey"]
    assert first_key.startswith(f"avatars/{user['id']}-")
    assert dummy_minio.objects[first_key][:2] == b"\xff\xd8"

    second = await async_client.post(
        "/api/v1/users/me/avatar",
        files={"avatar": ("me.webp", make_image_bytes("WEBP"), "image/webp")},
        headers=user["headers"],
    )
    second_key = second.json()["avatarKey"]
    assert second_key != first_key
    assert dummy_minio.removed == [first_key]

    stored = await db_session.get(User, user["id"])
    assert stored is not None
    assert stored.avatar_key == second_key


@pytest.mark.asyncio
async def test_upload_avatar_rejects_bad_files(async_client, register_user, dummy_minio: DummyMinio):
    user = await register_user("badfile")

    wrong_type = await async_client.post(
        "/api/v1/users/me/avatar",
        files={"avatar": ("notes.txt", b"hello", "text/plain")},
        headers=user["headers"],
    )
    not_an_image = await async_client.post(
        "/api/v1/users/me/avatar",
        files={"avatar": ("fake.png", b"definitely not png", "image/png")},
        headers=user["headers"],
    )

    assert wrong_type.status_code == 400
    assert not_an_image.status_code == 400
    assert dummy_minio.objects == {}


@pytest.mark.asyncio
async def test_upload_avatar_rejects_oversized_files(
    async_client,
    register_user,
    dummy_minio: DummyMinio,
    monkeypatch: pytest.MonkeyPatch,
):
    monkeypatch.setattr(settings, "avatar_max_bytes", 16)
    user = await register_user("huge")

    response = await async_client.post(
        "/api/v1/users/me/avatar",
        files={"avatar": ("big.png", make_image_bytes(), "image/png")},
        headers=user["headers"],
    )

    assert response.status_code == 413
    assert dummy_minio.objects == {}


@pytest.mark.asyncio
async def test_delete_avatar(async_client, register_user, dummy_minio: DummyMinio):
    user = await register_user("remover")

    missing = await async_client.delete("/api/v1/users/me/avatar", headers=user["headers"])
    assert missing.status_code == 404
    assert missing.json() == {"error": "No profile image to delete"}

    upload = await async_client.post(
        "/api/v1/users/me/avatar",
        files={"avatar": ("me.png", make_image_bytes(), "image/png")},
        headers=user["headers"],
    )
    avatar_key = upload.json()["avatarKey"]

    deleted = await async_client.delete("/api/v1/users/me/avatar", headers=user["headers"])
    assert deleted.status_code == 200
    assert dummy_minio.removed == [avatar_key]

    profile = await async_client.get("/api/v1/auth/profile", headers=user["headers"])
    assert profile.json()["avatarKey"] is None


@pytest.mark.asyncio
async def test_avatar_url_is_presigned(
    async_client,
    db_session: AsyncSession,
    register_user,
    monkeypatch: pytest.MonkeyPatch,
):
    user = await register_user("pictured")
    signed: list[tuple[str, int]] = []

    def fake_presign(object_key: str, *, expires_seconds: int = 120, **_kwargs: Any) -> str:
        signed.append((object_key, expires_seconds))
        return f"https://signed.local/{object_key}"

    monkeypatch.setattr(media_api, "create_presigned_get_url", fake_presign)

    no_avatar = await async_client.get(f"/api/v1/media/avatars/{user['id']}")
    assert no_avatar.status_code == 404

    stored = await db_session.get(User, user["id"])
    assert stored is not None
    stored.avatar_key = "avatars/pictured.jpg"
    await db_session.commit()

    response = await async_client.get(f"/api/v1/media/avatars/{user['id']}")
    assert response.status_code == 200
    assert response.json() == {
        "url": "https://signed.local/avatars/pictured.jpg",
        "expiresIn": media_api.SIGNED_MEDIA_URL_TTL_SECONDS,
    }
    assert response.headers["Cache-Control"] == "no-store"
    assert signed == [("avatars/pictured.jpg", media_api.SIGNED_MEDIA_URL_TTL_SECONDS)]

    unknown = await async_client.get("/api/v1/media/avatars/999999")
    assert unknown.status_code == 404
