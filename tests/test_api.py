"""HTTP-level tests: routing, auth, error mapping and response shapes."""
import pytest

from conftest import CURRENT_USER
from classcrush.services.chat_identity import chat_key_of

API = "/api/v1"


class TestHealth:

    async def test_root(self, async_client):
        response = await async_client.get("/")
        assert response.status_code == 200
        assert response.json()["status"] == "healthy"

    async def test_health_reports_store(self, async_client):
        body = (await async_client.get("/health")).json()
        assert body["services"]["store"]["type"] == "InMemoryRecordStore"
        assert body["services"]["firebase"]["status"] == "not_configured"

    async def test_request_id_header(self, async_client):
        response = await async_client.get("/", headers={"X-Request-ID": "abc123"})
        assert response.headers["X-Request-ID"] == "abc123"


class TestAuth:

    async def test_missing_token(self, async_client):
        from classcrush.core.dependencies import get_current_user_id
        from classcrush.main import app

        app.dependency_overrides.pop(get_current_user_id)
        response = await async_client.get(f"{API}/profiles/me")
        assert response.status_code == 401
        assert response.json()["error"] == "Unauthenticated"


class TestProfiles:

    async def test_me_not_found(self, async_client):
        response = await async_client.get(f"{API}/profiles/me")
        assert response.status_code == 404
        assert response.json()["error"] == "NotFound"

    async def test_create_then_read(self, async_client):
        payload = {
            "name": "Alice",
            "age": 20,
            "gender": "FEMALE",
            "interested_in": "ALL",
            "college": "MIT",
            "department": "CS",
            "year": "2",
        }
        created = await async_client.post(f"{API}/profiles/me", json=payload)
        assert created.status_code == 201
        assert created.json()["is_complete"] is False

        me = (await async_client.get(f"{API}/profiles/me")).json()
        assert me["user_id"] == CURRENT_USER
        assert me["remaining_swipes"] == 50

    async def test_create_underage_rejected(self, async_client):
        payload = {"name": "Kid", "age": 16, "gender": "MALE", "interested_in": "ALL", "college": "MIT"}
        response = await async_client.post(f"{API}/profiles/me", json=payload)
        assert response.status_code == 422

    async def test_create_twice_rejected(self, async_client, seed_user):
        await seed_user(CURRENT_USER, blocked_users=["bob"])
        await seed_user("bob")
        payload = {"name": "Alice", "age": 20, "gender": "FEMALE", "interested_in": "ALL", "college": "MIT"}

        response = await async_client.post(f"{API}/profiles/me", json=payload)
        assert response.status_code == 400

        discovered = (await async_client.get(f"{API}/matching/discover")).json()
        assert "bob" not in [p["user_id"] for p in discovered["profiles"]]

    async def test_presence(self, async_client, store, seed_user):
        await seed_user(CURRENT_USER)
        response = await async_client.post(f"{API}/profiles/me/presence", json={"online": False})
        assert response.status_code == 204
        assert await store.get(f"users/{CURRENT_USER}/isOnline") is False


class TestMatching:

    async def test_discover_with_session_exclusions(self, async_client, seed_user):
        for uid in (CURRENT_USER, "bob", "carol"):
            await seed_user(uid)
        response = await async_client.get(f"{API}/matching/discover", params={"exclude": ["bob"]})
        assert response.status_code == 200
        body = response.json()
        assert [p["user_id"] for p in body["profiles"]] == ["carol"]
        assert body["remaining_swipes"] == 50

    async def test_discover_incomplete_profile(self, async_client, seed_user):
        await seed_user(CURRENT_USER, year="")
        response = await async_client.get(f"{API}/matching/discover")
        assert response.status_code == 400

    async def test_mutual_like(self, async_client, seed_user):
        await seed_user(CURRENT_USER)
        await seed_user("bob", liked_users=[CURRENT_USER])

        response = await async_client.post(f"{API}/matching/like/bob")
        assert response.status_code == 200
        body = response.json()
        assert body["is_match"] is True
        assert 0 <= body["compatibility"] <= 100
        assert body["remaining_swipes"] == 49

        matches = (await async_client.get(f"{API}/matching/matches")).json()
        assert matches["total"] == 1
        assert matches["matches"][0]["matched_user_id"] == "bob"
        assert matches["matches"][0]["chat_key"] == chat_key_of(CURRENT_USER, "bob")

    async def test_swipe_limit(self, async_client, seed_user, limiter):
        await seed_user(CURRENT_USER)
        await seed_user("bob")
        for _ in range(limiter.daily_limit):
            await limiter.consume(CURRENT_USER)

        response = await async_client.post(f"{API}/matching/dislike/bob")
        assert response.status_code == 429
        assert response.json()["error"] == "RateLimited"

    async def test_like_self_rejected(self, async_client, seed_user):
        await seed_user(CURRENT_USER)
        response = await async_client.post(f"{API}/matching/like/{CURRENT_USER}")
        assert response.status_code == 400

    @pytest.mark.parametrize("target", [CURRENT_USER, "ghost"])
    async def test_rejected_swipe_keeps_quota(self, async_client, seed_user, limiter, target):
        await seed_user(CURRENT_USER)
        response = await async_client.post(f"{API}/matching/like/{target}")
        assert response.status_code in (400, 404)
        assert await limiter.remaining(CURRENT_USER) == limiter.daily_limit

    async def test_unmatch(self, async_client, store, seed_user):
        await seed_user(CURRENT_USER, matched_users=["bob"])
        await store.set("matches/m1", {"user1Id": CURRENT_USER, "user2Id": "bob", "timestamp": 1})

        response = await async_client.delete(f"{API}/matching/matches/bob")
        assert response.status_code == 200
        assert response.json()["records_updated"] == 1
        assert (await async_client.get(f"{API}/matching/matches")).json()["total"] == 0

    async def test_block_and_report(self, async_client, store, seed_user):
        await seed_user(CURRENT_USER)
        assert (await async_client.post(f"{API}/matching/block/bob")).status_code == 200

        report = await async_client.post(f"{API}/matching/report/bob", json={"reason": "spam"})
        assert report.status_code == 200
        assert report.json()["status"] == "pending"
        assert await store.get(f"users/{CURRENT_USER}/reportedUsers") == ["bob"]


class TestChat:

    async def test_send_and_list(self, async_client, store, seed_user):
        await seed_user(CURRENT_USER)
        await seed_user("bob")
        key = chat_key_of(CURRENT_USER, "bob")
        await store.set("matches/m1", {"user1Id": CURRENT_USER, "user2Id": "bob", "timestamp": 1})

        sent = await async_client.post(f"{API}/chat/{key}/messages", json={"text": "hi bob"})
        assert sent.status_code == 201
        assert sent.json()["sender_name"] == "Alice"

        messages = (await async_client.get(f"{API}/chat/{key}/messages")).json()
        assert [m["text"] for m in messages["messages"]] == ["hi bob"]

        inbox = (await async_client.get(f"{API}/chat/summaries")).json()
        assert inbox["chats"][0]["other_user_name"] == "Bob"
        assert inbox["chats"][0]["last_message"] == "hi bob"

    async def test_send_requires_active_match(self, async_client, store, seed_user):
        await seed_user(CURRENT_USER)
        await seed_user("bob")
        key = chat_key_of(CURRENT_USER, "bob")
        await store.set("matches/m1", {"user1Id": CURRENT_USER, "user2Id": "bob", "timestamp": 1, "status": "unmatched"})

        response = await async_client.post(f"{API}/chat/{key}/messages", json={"text": "still there?"})
        assert response.status_code == 404
        assert await store.get_or_none(f"chats/{key}/messages") is None

    @pytest.mark.parametrize("key", ["bob_carol", "notakey"])
    async def test_foreign_or_malformed_chat(self, async_client, key):
        response = await async_client.get(f"{API}/chat/{key}/messages")
        assert response.status_code in (400, 404)

    async def test_image_upload_unavailable(self, async_client, store, seed_user):
        await seed_user(CURRENT_USER)
        key = chat_key_of(CURRENT_USER, "bob")
        await store.set("matches/m1", {"user1Id": CURRENT_USER, "user2Id": "bob", "timestamp": 1})
        files = {"file": ("photo.jpg", b"\xff\xd8jpeg", "image/jpeg")}
        response = await async_client.post(f"{API}/chat/{key}/images", files=files)
        assert response.status_code == 400
