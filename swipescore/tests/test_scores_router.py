import asyncio

import pytest
from fastapi.testclient import TestClient

from swipescore.adapters.scores.router import get_store, summarize
from swipescore.config.settings import settings
from swipescore.core.gateway import app
from swipescore.core.models import ItemScore
from swipescore.storage.memory_store import MemoryVersionedStore


@pytest.fixture
def make_client(monkeypatch):
    monkeypatch.setattr(settings, "backoff_base_ms", 0)
    monkeypatch.setattr(settings, "max_commit_attempts", 5)

    def _make(store):
        app.dependency_overrides[get_store] = lambda: store
        return TestClient(app)

    yield _make
    app.dependency_overrides.clear()


def test_get_scores_empty_table(make_client):
    client = make_client(MemoryVersionedStore())
    resp = client.get("/scores")
    assert resp.status_code == 200
    assert resp.json() == {}


def test_post_scores_returns_updated_table(make_client):
    store = MemoryVersionedStore()
    client = make_client(store)

    first = client.post("/scores", json={"votes": [{"item": "a", "choice": "left"}]})
    assert first.status_code == 200
    assert first.json() == {"a": {"left": 1, "right": 0}}

    second = client.post(
        "/scores",
        json={"votes": [{"item": "a", "choice": "right"}, {"item": "b", "choice": "right"}]},
    )
    assert second.status_code == 200
    assert second.json() == {"a": {"left": 1, "right": 1}, "b": {"left": 0, "right": 1}}
    assert client.get("/scores").json() == second.json()


@pytest.mark.parametrize(
    "body",
    [
        {},
        {"votes": None},
        {"votes": []},
        {"votes": "a"},
        {"votes": [{"item": "a", "choice": "sideways"}]},
        ["votes"],
    ],
)
def test_invalid_batch_is_rejected_without_touching_store(make_client, body):
    store = MemoryVersionedStore()
    client = make_client(store)
    client.post("/scores", json={"votes": [{"item": "seed", "choice": "left"}]})
    reads_before = store.read_calls

    resp = client.post("/scores", json=body)

    assert resp.status_code == 400
    assert resp.json()["error"] == "invalid_votes"
    assert store.read_calls == reads_before
    assert client.get("/scores").json() == {"seed": {"left": 1, "right": 0}}


def test_non_json_body_is_rejected(make_client):
    client = make_client(MemoryVersionedStore())
    resp = client.post("/scores", content=b"left,right", headers={"content-type": "application/json"})
    assert resp.status_code == 400
    assert resp.json()["error"] == "invalid_json"


def test_conflicts_then_success_counts_batch_once(make_client):
    store = MemoryVersionedStore(script=["conflict", "conflict"])
    client = make_client(store)

    resp = client.post("/scores", json={"votes": [{"item": "a", "choice": "left"}]})

    assert resp.status_code == 200
    assert resp.json() == {"a": {"left": 1, "right": 0}}
    assert store.read_calls == 3


def test_contention_exhausted_returns_409(make_client):
    store = MemoryVersionedStore(conflict_forever=True)
    client = make_client(store)

    resp = client.post("/scores", json={"votes": [{"item": "a", "choice": "left"}]})

    assert resp.status_code == 409
    assert resp.json()["error"] == "contention_exhausted"
    assert "after 5 attempt(s)" in resp.json()["detail"]
    assert store.write_calls == settings.max_commit_attempts
    assert store.committed_writes == 0
    assert client.get("/scores").json() == {}


def test_storage_failure_returns_500(make_client):
    client = make_client(MemoryVersionedStore(script=["transient"]))
    resp = client.post("/scores", json={"votes": [{"item": "a", "choice": "left"}]})
    assert resp.status_code == 500
    assert resp.json()["error"] == "storage_error"


def test_get_scores_read_failure_returns_500(make_client):
    client = make_client(MemoryVersionedStore(fail_reads=1))
    resp = client.get("/scores")
    assert resp.status_code == 500


def test_vote_limit_per_batch(make_client, monkeypatch):
    monkeypatch.setattr(settings, "max_votes_per_batch", 2)
    client = make_client(MemoryVersionedStore())
    votes = [{"item": "a", "choice": "left"}] * 3
    assert client.post("/scores", json={"votes": votes}).status_code == 400
    assert client.post("/scores", json={"votes": votes[:2]}).status_code == 200


def test_summary_endpoint_reports_percentages(make_client):
    store = MemoryVersionedStore()
    client = make_client(store)
    votes = [{"item": "a", "choice": "left"}] + [{"item": "a", "choice": "right"}] * 7
    client.post("/scores", json={"votes": votes})

    resp = client.get("/scores/summary")

    assert resp.status_code == 200
    assert resp.json() == {
        "a": {"left": 1, "right": 7, "total": 8, "left_percent": 13, "right_percent": 87},
    }


def test_summarize_handles_zero_totals_and_rounding():
    summary = summarize({"z": ItemScore(), "t": ItemScore(left=1, right=2)})
    assert list(summary) == ["t", "z"]
    assert summary["z"]["left_percent"] == 50 and summary["z"]["right_percent"] == 50
    assert summary["t"]["left_percent"] == 33 and summary["t"]["right_percent"] == 67


class HangingReadStore(MemoryVersionedStore):
    async def read(self):
        self.read_calls += 1
        await asyncio.Event().wait()


@pytest.mark.parametrize("path", ["/scores", "/scores/summary"])
def test_get_read_that_hangs_is_cut_off_with_500(make_client, monkeypatch, path):
    monkeypatch.setattr(settings, "storage_timeout_seconds", 0.05)
    store = HangingReadStore()
    client = make_client(store)

    resp = client.get(path)

    assert resp.status_code == 500
    assert resp.json()["error"] == "storage_error"
    assert store.read_calls == 1
