"""Tests for cache statistics, question generation and health endpoints."""

import pytest


@pytest.fixture
def submit(client, transcript):
    def _submit():
        return client.post("/api/feedback", json={
            "interviewId": "int-1", "userId": "u1", "transcript": transcript,
        })
    return _submit


class TestCacheStats:
    def test_empty_day(self, client):
        body = client.get("/api/cache/stats").get_json()
        assert body["success"] is True
        assert body["hits"] == 0
        assert body["total"] == 0
        assert body["hitRate"] == 0.0
        assert body["date"] == "2025-03-01"

    def test_hit_rate_and_savings(self, client, submit):
        submit()
        submit()
        submit()
        body = client.get("/api/cache/stats").get_json()
        assert body["hits"] == 2
        assert body["misses"] == 1
        assert body["total"] == 3
        assert body["hitRate"] == 66.7
        assert body["estimatedSavings"] == 0.02
        assert body["monthlyProjection"] == 0.6
        assert body["totalEntries"] == 1

    def test_cleanup_removes_expired_entries(self, client, submit, clock):
        submit()
        clock.advance(days=8)
        body = client.get("/api/cache/stats?cleanup=true").get_json()
        assert body["cleanedEntries"] == 1
        assert body["totalEntries"] == 0

    def test_without_cleanup_flag_nothing_removed(self, client, submit, clock):
        submit()
        clock.advance(days=8)
        body = client.get("/api/cache/stats").get_json()
        assert body["cleanedEntries"] == 0
        assert body["totalEntries"] == 1


class TestQuestionGeneration:
    PAYLOAD = {"role": "Backend Developer", "level": "mid", "type": "technical", "amount": 3, "userId": "u1"}

    def test_miss_then_hit(self, client, question_generator):
        first = client.post("/api/questions/generate", json=self.PAYLOAD).get_json()
        second = client.post("/api/questions/generate", json=self.PAYLOAD).get_json()

        assert first["cached"] is False
        assert len(first["questions"]) == 3
        assert second["cached"] is True
        assert second["cacheId"] == first["cacheId"]
        assert second["questions"] == first["questions"]
        assert second["usageCount"] == 1
        assert question_generator.calls == 1

    def test_force_refresh_generates_new_set(self, client, question_generator):
        first = client.post("/api/questions/generate", json=self.PAYLOAD).get_json()
        refreshed = client.post("/api/questions/generate", json={**self.PAYLOAD, "forceRefresh": True}).get_json()
        assert refreshed["cached"] is False
        assert refreshed["cacheId"] != first["cacheId"]
        assert question_generator.calls == 2

    def test_invalid_amount(self, client):
        response = client.post("/api/questions/generate", json={**self.PAYLOAD, "amount": 500})
        assert response.status_code == 400

    def test_non_string_fields_rejected(self, client, question_generator, question_cache):
        response = client.post("/api/questions/generate", json={**self.PAYLOAD, "role": 5})
        assert response.status_code == 400
        assert response.get_json()["fields"] == ["role"]
        response = client.post("/api/questions/generate", json={**self.PAYLOAD, "userId": ["u1"]})
        assert response.status_code == 400
        assert question_generator.calls == 0
        assert question_cache.get_stats()["totalCached"] == 0

    def test_usage_count_includes_current_use(self, client):
        client.post("/api/questions/generate", json=self.PAYLOAD)
        counts = [
            client.post("/api/questions/generate", json=self.PAYLOAD).get_json()["usageCount"]
            for _ in range(3)
        ]
        assert counts == [1, 2, 3]

    def test_generator_failure(self, client, question_generator):
        question_generator.fail = True
        assert client.post("/api/questions/generate", json=self.PAYLOAD).status_code == 502

    def test_question_stats(self, client):
        client.post("/api/questions/generate", json=self.PAYLOAD)
        client.post("/api/questions/generate", json=self.PAYLOAD)
        body = client.get("/api/cache/questions/stats").get_json()
        assert body["totalCached"] == 1
        assert body["totalUses"] == 1
        assert body["mostUsed"][0]["role"] == "backend developer"


class TestHealth:
    def test_health(self, client):
        body = client.get("/health/").get_json()
        assert body["status"] == "healthy"
        assert body["database"] == "connected"
        assert body["ai"] == "fallback"

    def test_ready(self, client):
        assert client.get("/health/ready").status_code == 200
