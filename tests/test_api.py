"""HTTP 엔드포인트 테스트"""

from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from app.core.config import settings
from app.models.user_setting import SETTING_BUY_IMMEDIATELY, SETTING_LOAD_FULL_IMAGES
from app.services.point_service import PointService
from tests.factories import (
    auth_headers,
    create_user,
    create_series,
    grant,
    set_setting,
    balance_of,
    purchase_count,
)


@pytest.fixture
async def manga(session_factory):
    # 1화 무료, 2화 30, 3화 20. 회차당 이미지 12장
    return await create_series(session_factory, "manga", [0, 30, 20], title="테스트 만화", images_per_episode=12)


@pytest.fixture
async def novel(session_factory):
    return await create_series(session_factory, "novel", [0, 10, 20, 15], title="테스트 소설")


@pytest.fixture
async def reader(session_factory):
    return await create_user(session_factory, balance=100)


def _manga_body(manga, no):
    return {"cartoonUuid": str(manga.uuid), "episode": no, "epId": manga.episodes[no - 1].id}


# 구매


@pytest.mark.asyncio
async def test_purchase_manga_episode(client, session_factory, manga, reader):
    response = await client.post("/manga/episode/purchase", json=_manga_body(manga, 2), headers=auth_headers(reader))

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["totalPrice"] == 30
    assert data["balanceAfter"] == 70
    assert await balance_of(session_factory, reader) == 70


@pytest.mark.asyncio
async def test_purchase_twice_is_already_owned(client, session_factory, manga, reader):
    headers = auth_headers(reader)
    await client.post("/manga/episode/purchase", json=_manga_body(manga, 2), headers=headers)

    response = await client.post("/manga/episode/purchase", json=_manga_body(manga, 2), headers=headers)

    assert response.status_code == 400
    assert response.json() == {"error": "이미 소장 중인 회차입니다.", "code": "already_owned"}
    assert await balance_of(session_factory, reader) == 70


@pytest.mark.asyncio
async def test_purchase_with_insufficient_points(client, session_factory, manga):
    user_id = await create_user(session_factory, balance=5, username="poor")

    response = await client.post("/manga/episode/purchase", json=_manga_body(manga, 2), headers=auth_headers(user_id))

    assert response.status_code == 400
    assert response.json()["code"] == "insufficient_points"
    assert await purchase_count(session_factory, user_id) == 0


@pytest.mark.asyncio
async def test_purchase_requires_login(client, manga):
    response = await client.post("/manga/episode/purchase", json=_manga_body(manga, 2))

    assert response.status_code == 401
    assert response.json() == {"error": "로그인이 필요합니다."}


@pytest.mark.asyncio
async def test_purchase_with_mismatched_episode_id(client, manga, reader):
    body = {**_manga_body(manga, 2), "epId": manga.episodes[2].id}

    response = await client.post("/manga/episode/purchase", json=body, headers=auth_headers(reader))

    assert response.status_code == 404
    assert response.json()["code"] == "episode_not_found"


@pytest.mark.asyncio
async def test_malformed_purchase_body_is_validation_error(client, manga, reader):
    response = await client.post(
        "/manga/episode/purchase",
        json={"cartoonUuid": str(manga.uuid), "episode": 2},
        headers=auth_headers(reader),
    )

    assert response.status_code == 400
    assert response.json()["code"] == "validation"


@pytest.mark.asyncio
async def test_batch_purchase_novel_episodes(client, session_factory, novel, reader):
    uuids = [str(ep.uuid) for ep in novel.episodes[1:]]

    response = await client.post("/novel/episode/purchase", json={"episodeUuids": uuids}, headers=auth_headers(reader))

    assert response.status_code == 200
    assert response.json()["totalPrice"] == 45
    assert await balance_of(session_factory, reader) == 55
    assert await purchase_count(session_factory, reader) == 3


@pytest.mark.asyncio
async def test_batch_purchase_legacy_form(client, session_factory, novel, reader):
    response = await client.post(
        "/novel/episode/purchase",
        json={"cartoonUuid": str(novel.uuid), "episode": "3"},
        headers=auth_headers(reader),
    )

    assert response.status_code == 200
    assert await purchase_count(session_factory, reader, novel.episodes[2].id) == 1
    assert await balance_of(session_factory, reader) == 80


@pytest.mark.asyncio
async def test_batch_purchase_needs_target(client, reader):
    response = await client.post("/novel/episode/purchase", json={}, headers=auth_headers(reader))

    assert response.status_code == 400
    assert response.json()["code"] == "validation"


@pytest.mark.asyncio
async def test_batch_purchase_unknown_episode(client, session_factory, novel, reader):
    response = await client.post(
        "/novel/episode/purchase",
        json={"episodeUuids": [str(novel.episodes[1].uuid), "not-a-uuid"]},
        headers=auth_headers(reader),
    )

    assert response.status_code == 404
    assert await balance_of(session_factory, reader) == 100


@pytest.mark.asyncio
async def test_purchase_rate_limited(client, manga, reader, monkeypatch):
    monkeypatch.setattr(settings, "PURCHASE_RATE_LIMIT_MAX_REQUESTS", 1)
    headers = auth_headers(reader)

    first = await client.post("/manga/episode/purchase", json=_manga_body(manga, 2), headers=headers)
    second = await client.post("/manga/episode/purchase", json=_manga_body(manga, 3), headers=headers)

    assert first.status_code == 200
    assert second.status_code == 429
    assert second.headers["Retry-After"] == str(settings.PURCHASE_RATE_LIMIT_WINDOW_SECONDS)
    assert second.headers["X-RateLimit-Limit"] == "1"
    assert second.headers["X-RateLimit-Remaining"] == "0"
    assert "X-RateLimit-Reset" in second.headers


# 소장 확인이 필요한 조회


@pytest.mark.asyncio
async def test_locked_images_return_unlock_info(client, manga):
    response = await client.get("/manga/episode/images", params={"cartoonUuid": str(manga.uuid), "episode": 2})

    assert response.status_code == 403
    data = response.json()
    assert data["isOwned"] is False
    assert data["episodeInfo"] == {"epId": manga.episodes[1].id, "epNo": 2, "epName": "2화", "epPrice": 30}
    assert data["navigation"] == {"prevEpNo": 1, "nextEpNo": 3}


@pytest.mark.asyncio
async def test_owned_images_are_paginated(client, session_factory, manga, reader):
    await grant(session_factory, reader, manga.episodes[1])
    params = {"cartoonUuid": str(manga.uuid), "episode": 2, "limit": 5}

    first = await client.get("/manga/episode/images", params={**params, "page": 1}, headers=auth_headers(reader))
    last = await client.get("/manga/episode/images", params={**params, "page": 3}, headers=auth_headers(reader))

    assert first.status_code == 200
    body = first.json()
    assert len(body["images"]) == 5
    assert body["images"][0] == f"/images/manga_episode_images/{manga.id}/2/001.jpg"
    assert body["hasMore"] is True
    assert body["total"] == 12
    assert body["navigation"] == {"prevEpNo": 1, "nextEpNo": 3}
    assert len(last.json()["images"]) == 2
    assert last.json()["hasMore"] is False
    assert last.json()["navigation"] is None


@pytest.mark.asyncio
async def test_free_images_need_no_login(client, manga):
    response = await client.get("/manga/episode/images", params={"cartoonUuid": str(manga.uuid), "episode": 1})

    assert response.status_code == 200


@pytest.mark.asyncio
async def test_novel_content(client, session_factory, novel, reader):
    params = {"cartoonUuid": str(novel.uuid), "episode": 2}
    locked = await client.get("/novel/episode/content", params=params, headers=auth_headers(reader))
    await grant(session_factory, reader, novel.episodes[1])
    unlocked = await client.get("/novel/episode/content", params=params, headers=auth_headers(reader))

    assert locked.status_code == 403
    assert unlocked.status_code == 200
    assert unlocked.json()["content"] == "2화 본문"
    assert unlocked.json()["navigation"] == {"prevEpNo": 1, "nextEpNo": 3}


@pytest.mark.asyncio
async def test_unknown_episode_is_404(client, manga):
    response = await client.get("/manga/episode/images", params={"cartoonUuid": str(manga.uuid), "episode": 99})

    assert response.status_code == 404


# 읽기 화면 + 자동 구매


@pytest.mark.asyncio
async def test_read_auto_purchases_inline(client, session_factory, manga, reader):
    await set_setting(session_factory, reader, SETTING_BUY_IMMEDIATELY, True)

    response = await client.get(f"/manga/{manga.uuid}/2", headers=auth_headers(reader))

    assert response.status_code == 200
    data = response.json()
    assert data["isOwned"] is True
    assert data["view"] == "read"
    assert data["title"] == "테스트 만화"
    assert data["userPoints"] == 70
    assert data["notice"] == {"type": "autoPurchased", "epPrice": 30, "epNo": 2}
    assert data["autoPurchase"]["state"] == "purchased"
    assert len(data["images"]) == 10
    assert await balance_of(session_factory, reader) == 70


@pytest.mark.asyncio
async def test_read_redirects_with_flags(client, session_factory, manga, reader, monkeypatch):
    monkeypatch.setattr(settings, "AUTO_PURCHASE_REDIRECT", True)
    await set_setting(session_factory, reader, SETTING_BUY_IMMEDIATELY, True)

    response = await client.get(f"/manga/{manga.uuid}/2", headers=auth_headers(reader))

    assert response.status_code == 303
    assert response.headers["location"] == f"/manga/{manga.uuid}/2?autoPurchased=true&epPrice=30&epNo=2"

    follow = await client.get(response.headers["location"], headers=auth_headers(reader))
    assert follow.status_code == 200
    assert follow.json()["isOwned"] is True
    assert follow.json()["notice"] == {"type": "autoPurchased", "epPrice": 30, "epNo": 2}
    assert await balance_of(session_factory, reader) == 70


@pytest.mark.asyncio
async def test_read_failed_auto_purchase_redirects_once(client, session_factory, manga, reader, monkeypatch):
    monkeypatch.setattr(settings, "AUTO_PURCHASE_REDIRECT", True)
    monkeypatch.setattr(settings, "PURCHASE_MAX_RETRIES", 1)
    # 차감이 계속 실패하는 상황
    monkeypatch.setattr(PointService, "debit_for_purchase", AsyncMock(return_value=False))
    await set_setting(session_factory, reader, SETTING_BUY_IMMEDIATELY, True)
    headers = auth_headers(reader)

    response = await client.get(f"/manga/{manga.uuid}/2", headers=headers)

    assert response.status_code == 303
    assert "autoPurchaseFailed=true" in response.headers["location"]

    follow = await client.get(response.headers["location"], headers=headers)

    assert follow.status_code == 200
    data = follow.json()
    assert data["isOwned"] is False
    assert data["view"] == "unlock"
    assert data["autoPurchase"]["state"] == "awaiting_unlock"
    assert data["notice"] == {"type": "autoPurchaseFailed", "error": "구매 처리 중 오류가 발생했습니다. 잠시 후 다시 시도해 주세요."}
    assert PointService.debit_for_purchase.await_count == 1
    assert await balance_of(session_factory, reader) == 100


@pytest.mark.asyncio
async def test_read_locked_without_auto_purchase(client, session_factory, manga):
    user_id = await create_user(session_factory, balance=10, username="saver")
    await set_setting(session_factory, user_id, SETTING_BUY_IMMEDIATELY, True)

    response = await client.get(f"/manga/{manga.uuid}/2", headers=auth_headers(user_id))

    assert response.status_code == 200
    data = response.json()
    assert data["isOwned"] is False
    assert data["view"] == "unlock"
    assert data["userPoints"] == 10
    assert data["notice"] is None
    assert "images" not in data
    assert await balance_of(session_factory, user_id) == 10


@pytest.mark.asyncio
async def test_read_with_full_images(client, session_factory, manga, reader):
    await set_setting(session_factory, reader, SETTING_LOAD_FULL_IMAGES, True)

    response = await client.get(f"/manga/{manga.uuid}/1", headers=auth_headers(reader))

    data = response.json()
    assert data["loadFullImages"] is True
    assert len(data["images"]) == 12
    assert data["hasMore"] is False


@pytest.mark.asyncio
async def test_read_novel_anonymous(client, novel):
    free = await client.get(f"/novel/{novel.uuid}/1")
    paid = await client.get(f"/novel/{novel.uuid}/2")

    assert free.json()["content"] == "1화 본문"
    assert free.json()["userPoints"] is None
    assert paid.json()["view"] == "unlock"


@pytest.mark.asyncio
async def test_read_renders_failure_notice_from_query(client, manga):
    response = await client.get(
        f"/manga/{manga.uuid}/1", params={"autoPurchaseFailed": "true", "error": "포인트가 부족합니다."}
    )

    assert response.json()["notice"] == {"type": "autoPurchaseFailed", "error": "포인트가 부족합니다."}


@pytest.mark.asyncio
async def test_read_unknown_series_is_404(client):
    response = await client.get("/manga/00000000-0000-0000-0000-000000000000/1")

    assert response.status_code == 404
    assert response.json() == {"error": "회차를 찾을 수 없습니다"}


# 사용자 포인트/설정


@pytest.mark.asyncio
async def test_settings_round_trip(client, reader):
    headers = auth_headers(reader)

    saved = await client.put(
        "/users/me/settings", json={"settingKey": "buyImmediately", "settingValue": True}, headers=headers
    )
    await client.put("/users/me/settings", json={"settingKey": "buyImmediately", "settingValue": False}, headers=headers)
    response = await client.get("/users/me/settings", headers=headers)

    assert saved.json() == {"success": True}
    assert response.json() == {"settings": {"buyImmediately": False}}


@pytest.mark.asyncio
async def test_points_endpoints(client, session_factory, manga, reader):
    headers = auth_headers(reader)
    await client.post("/manga/episode/purchase", json=_manga_body(manga, 2), headers=headers)

    points = await client.get("/users/me/points", headers=headers)
    balance = await client.get("/point/balance", headers=headers)
    transactions = await client.get("/point/transactions", headers=headers)

    assert points.json() == {"points": 70}
    assert balance.json()["balance"] == 70
    assert balance.json()["total_used"] == 30
    assert [(t["type"], t["amount"], t["balance_after"]) for t in transactions.json()] == [("use", -30, 70)]
    assert transactions.json()[0]["description"] == "2화 구매"


@pytest.mark.asyncio
async def test_points_without_point_row(client, session_factory):
    user_id = await create_user(session_factory, balance=None, username="newbie")

    points = await client.get("/users/me/points", headers=auth_headers(user_id))
    balance = await client.get("/point/balance", headers=auth_headers(user_id))

    assert points.json() == {"points": 0}
    assert balance.json()["balance"] == 0


# 인증


@pytest.mark.asyncio
async def test_expired_token_is_rejected(client, reader):
    response = await client.get("/users/me/points", headers=auth_headers(reader, expires_in=timedelta(minutes=-1)))

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_non_access_token_is_rejected(client, reader):
    response = await client.get("/users/me/points", headers=auth_headers(reader, token_type="refresh"))

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_invalid_token_reads_as_anonymous(client, novel):
    response = await client.get(f"/novel/{novel.uuid}/2", headers={"Authorization": "Bearer not-a-token"})

    assert response.status_code == 200
    assert response.json()["userPoints"] is None
    assert response.json()["view"] == "unlock"
