from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest
import requests

from event_scoring.errors import PersistenceFailure
from event_scoring.models import State
from event_scoring.persistence import (
    MemoryPersistence,
    RemoteSync,
    RetryPolicy,
    SqlitePersistence,
    SyncingPersistence,
    exponential_backoff,
    linear_backoff,
)
from event_scoring.store import EntityStore
from tests.conftest import SCORES_760, SCORES_820


class FakeResponse:
    def __init__(self, status_code: int = 200, payload=None):
        self.status_code = status_code
        self._payload = payload

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"HTTP {self.status_code}")

    def json(self):
        return self._payload


class FakeSession:
    """Replays queued responses; an exception in the queue is raised instead."""

    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def _next(self, method, url, **kwargs):
        self.calls.append((method, url, kwargs))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response

    def post(self, url, **kwargs):
        return self._next("POST", url, **kwargs)

    def get(self, url, **kwargs):
        return self._next("GET", url, **kwargs)


def no_sleep_policy(max_attempts: int = 3, sleeps=None) -> RetryPolicy:
    sleeps = sleeps if sleeps is not None else []
    return RetryPolicy(max_attempts=max_attempts, backoff=linear_backoff(1.0), sleep=sleeps.append)


@pytest.fixture
def populated_state(store, recorder, judge, second_judge, contestant) -> State:
    recorder.submit(judge.id, contestant.id, SCORES_760)
    recorder.submit(second_judge.id, contestant.id, SCORES_820)
    return store.snapshot()


# -----------------------
# SQLite
# -----------------------
def test_sqlite_load_without_prior_state(tmp_path) -> None:
    assert SqlitePersistence(str(tmp_path / "scores.sqlite")).load() == State()


def test_sqlite_round_trip(tmp_path, populated_state) -> None:
    db = SqlitePersistence(str(tmp_path / "scores.sqlite"))

    db.persist(populated_state)
    loaded = SqlitePersistence(str(tmp_path / "scores.sqlite")).load()

    assert loaded == populated_state
    assert loaded.evaluations[0].criteria_scores == populated_state.evaluations[0].criteria_scores


def test_sqlite_persist_overwrites(tmp_path, populated_state) -> None:
    db = SqlitePersistence(str(tmp_path / "scores.sqlite"))

    db.persist(populated_state)
    db.persist(populated_state)
    assert db.load() == populated_state

    db.persist(db.load())
    assert db.load() == populated_state

    db.persist(State())
    assert db.load().is_empty()


def test_sqlite_preserves_order(tmp_path, store) -> None:
    for i in range(5):
        store.register_contestant(f"Artist {i}", "color", f"a{i}@example.com", "600111222")
    db = SqlitePersistence(str(tmp_path / "scores.sqlite"))
    db.persist(store.snapshot())
    assert [c.name for c in db.load().contestants] == [f"Artist {i}" for i in range(5)]


def test_sqlite_bad_path_raises_persistence_failure(tmp_path) -> None:
    with pytest.raises(PersistenceFailure):
        SqlitePersistence(str(tmp_path / "missing-dir" / "scores.sqlite"))


def test_store_backed_by_sqlite_reloads(tmp_path, notifier, clock) -> None:
    from event_scoring.recorder import EvaluationRecorder

    path = str(tmp_path / "scores.sqlite")
    store = EntityStore(SqlitePersistence(path), notifier)
    contestant = store.register_contestant("Ana", "color", "a@example.com", "600111222")
    judge = store.register_judge("Judge", "j@example.com", 4)
    EvaluationRecorder(store, notifier, clock=clock).submit(judge.id, contestant.id, SCORES_760)

    reloaded = EntityStore(SqlitePersistence(path), notifier)
    reloaded.load()

    assert reloaded.snapshot() == store.snapshot()


def test_memory_persistence_round_trip(populated_state) -> None:
    memory = MemoryPersistence()
    assert memory.load() == State()
    memory.persist(populated_state)
    memory.persist(memory.load())
    assert memory.load() == populated_state


# -----------------------
# Retry policy
# -----------------------
def test_backoff_functions() -> None:
    assert [linear_backoff(0.5)(a) for a in (1, 2, 3)] == [0.5, 1.0, 1.5]
    assert [exponential_backoff(1.0)(a) for a in (1, 2, 3)] == [1.0, 2.0, 4.0]


def test_retry_policy_retries_then_succeeds() -> None:
    sleeps = []
    outcomes = [requests.ConnectionError("down"), requests.Timeout("slow"), "done"]

    def operation():
        outcome = outcomes.pop(0)
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    assert no_sleep_policy(sleeps=sleeps).call(operation, "test op") == "done"
    assert sleeps == [1.0, 2.0]


def test_retry_policy_gives_up() -> None:
    sleeps = []

    def operation():
        raise requests.ConnectionError("down")

    with pytest.raises(PersistenceFailure):
        no_sleep_policy(max_attempts=4, sleeps=sleeps).call(operation, "test op")
    assert sleeps == [1.0, 2.0, 3.0]


def test_retry_policy_does_not_retry_other_errors() -> None:
    calls = []

    def operation():
        calls.append(1)
        raise KeyError("bug")

    with pytest.raises(KeyError):
        no_sleep_policy().call(operation, "test op")
    assert len(calls) == 1


# -----------------------
# Remote sync
# -----------------------
def test_remote_push_posts_state(populated_state) -> None:
    session = FakeSession([FakeResponse(200)])
    remote = RemoteSync("http://sync.example/", retry_policy=no_sleep_policy(), session=session, timeout=3)

    remote.push(populated_state)

    method, url, kwargs = session.calls[0]
    assert (method, url) == ("POST", "http://sync.example/api/data")
    assert kwargs["timeout"] == 3
    assert len(kwargs["json"]["evaluations"]) == 2
    assert "last_update" in kwargs["json"]


def test_remote_push_retries_server_errors(populated_state) -> None:
    session = FakeSession([FakeResponse(503), FakeResponse(200)])
    RemoteSync("http://sync.example", retry_policy=no_sleep_policy(), session=session).push(populated_state)
    assert len(session.calls) == 2


def test_remote_fetch(populated_state) -> None:
    payload = populated_state.model_dump(mode="json")
    session = FakeSession([FakeResponse(200, payload)])

    state = RemoteSync("http://sync.example", retry_policy=no_sleep_policy(), session=session).fetch()

    assert state == populated_state


def test_remote_fetch_tolerates_missing_collections() -> None:
    session = FakeSession([FakeResponse(200, {"judges": None})])
    state = RemoteSync("http://sync.example", retry_policy=no_sleep_policy(), session=session).fetch()
    assert state.is_empty()


def test_remote_fetch_rejects_garbage() -> None:
    session = FakeSession([FakeResponse(200, ["not", "a", "state"])])
    with pytest.raises(PersistenceFailure):
        RemoteSync("http://sync.example", retry_policy=no_sleep_policy(), session=session).fetch()


def test_syncing_persistence_pushes_in_background(populated_state) -> None:
    local = MemoryPersistence()
    session = FakeSession([FakeResponse(200)])
    syncing = SyncingPersistence(
        local,
        RemoteSync("http://sync.example", retry_policy=no_sleep_policy(), session=session),
        executor=ThreadPoolExecutor(max_workers=1),
    )

    syncing.persist(populated_state)

    assert syncing.wait(timeout=5) is True
    assert local.load() == populated_state
    assert session.calls[0][0] == "POST"
    syncing.close()


def test_syncing_persistence_remote_failure_is_not_raised(populated_state) -> None:
    local = MemoryPersistence()
    session = FakeSession([requests.ConnectionError("offline")] * 3)
    syncing = SyncingPersistence(
        local, RemoteSync("http://sync.example", retry_policy=no_sleep_policy(), session=session)
    )

    syncing.persist(populated_state)

    assert syncing.wait(timeout=5) is False
    assert local.load() == populated_state
    syncing.close()


def test_syncing_persistence_load_prefers_remote(populated_state) -> None:
    local = MemoryPersistence()
    session = FakeSession([FakeResponse(200, populated_state.model_dump(mode="json"))])
    syncing = SyncingPersistence(
        local, RemoteSync("http://sync.example", retry_policy=no_sleep_policy(), session=session)
    )

    assert syncing.load() == populated_state
    # local copy refreshed for offline use
    assert local.load() == populated_state
    syncing.close()


def test_syncing_persistence_load_falls_back_to_local(populated_state) -> None:
    local = MemoryPersistence(populated_state)
    session = FakeSession([requests.ConnectionError("offline")] * 3)
    syncing = SyncingPersistence(
        local, RemoteSync("http://sync.example", retry_policy=no_sleep_policy(), session=session)
    )

    assert syncing.load() == populated_state
    assert syncing.wait() is None
    syncing.close()


class ExplodingRemote:
    def push(self, state) -> None:
        raise RuntimeError("serializer bug")


def test_syncing_persistence_logs_unexpected_push_errors(populated_state, caplog) -> None:
    local = MemoryPersistence()
    syncing = SyncingPersistence(local, ExplodingRemote())

    with caplog.at_level("ERROR", logger="event_scoring.persistence"):
        syncing.persist(populated_state)
        assert syncing.wait(timeout=5) is False

    assert local.load() == populated_state
    assert any(r.exc_info and "serializer bug" in str(r.exc_info[1]) for r in caplog.records)
    syncing.close()
