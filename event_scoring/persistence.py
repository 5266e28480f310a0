"""Persistence collaborators: load() -> State and persist(State).

persist() always overwrites the stored state, so calling it twice with the
same state leaves the same data behind.
"""
from __future__ import annotations

import json
import logging
import sqlite3
import time
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Callable, Optional, Protocol, Tuple, Type

import requests

from event_scoring.errors import PersistenceFailure
from event_scoring.models import Contestant, Evaluation, Judge, State, utcnow

logger = logging.getLogger(__name__)


class Persistence(Protocol):
    def load(self) -> State: ...

    def persist(self, state: State) -> None: ...


class MemoryPersistence:
    """Keeps a serialized copy in memory; used in tests and for disk-less runs."""

    def __init__(self, state: Optional[State] = None):
        self._payload = state.model_dump(mode="json") if state is not None else None
        self.persist_count = 0

    def load(self) -> State:
        if self._payload is None:
            return State()
        return State.model_validate(self._payload)

    def persist(self, state: State) -> None:
        self._payload = state.model_dump(mode="json")
        self.persist_count += 1


# -----------------------
# SQLite
# -----------------------
SCHEMA = """
CREATE TABLE IF NOT EXISTS contestants (
    position INTEGER NOT NULL,
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    category TEXT NOT NULL,
    email TEXT NOT NULL UNIQUE,
    phone TEXT NOT NULL,
    registered_at TEXT NOT NULL
);

CREATE TABLE IF NOT EXISTS judges (
    position INTEGER NOT NULL,
    id TEXT PRIMARY KEY,
    name TEXT NOT NULL,
    email TEXT NOT NULL UNIQUE,
    years_experience INTEGER NOT NULL,
    specialty TEXT NOT NULL,
    registered_at TEXT NOT NULL
);

-- criteria_scores holds a JSON object criterion -> score
CREATE TABLE IF NOT EXISTS evaluations (
    position INTEGER NOT NULL,
    id TEXT PRIMARY KEY,
    judge_id TEXT NOT NULL,
    judge_name TEXT NOT NULL,
    contestant_id TEXT NOT NULL,
    contestant_name TEXT NOT NULL,
    category TEXT NOT NULL,
    criteria_scores TEXT NOT NULL,
    total_score REAL NOT NULL,
    timestamp TEXT NOT NULL
);
"""

CONTESTANT_COLUMNS = ("id", "name", "category", "email", "phone", "registered_at")
JUDGE_COLUMNS = ("id", "name", "email", "years_experience", "specialty", "registered_at")
EVALUATION_COLUMNS = (
    "id", "judge_id", "judge_name", "contestant_id", "contestant_name",
    "category", "criteria_scores", "total_score", "timestamp",
)


class SqlitePersistence:
    def __init__(self, db_path: str):
        self.db_path = db_path
        self.init_db()

    def db(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def init_db(self):
        try:
            with self.db() as conn:
                conn.executescript(SCHEMA)
        except sqlite3.Error as e:
            raise PersistenceFailure(f"Could not prepare the database at {self.db_path}: {e}") from e

    def load(self) -> State:
        try:
            with self.db() as conn:
                contestants = conn.execute("SELECT * FROM contestants ORDER BY position").fetchall()
                judges = conn.execute("SELECT * FROM judges ORDER BY position").fetchall()
                evaluations = conn.execute("SELECT * FROM evaluations ORDER BY position").fetchall()
        except sqlite3.Error as e:
            raise PersistenceFailure(f"Could not load saved data: {e}") from e

        return State(
            contestants=[Contestant.model_validate(_row_dict(r, CONTESTANT_COLUMNS)) for r in contestants],
            judges=[Judge.model_validate(_row_dict(r, JUDGE_COLUMNS)) for r in judges],
            evaluations=[
                Evaluation.model_validate(
                    {**_row_dict(r, EVALUATION_COLUMNS), "criteria_scores": json.loads(r["criteria_scores"])}
                )
                for r in evaluations
            ],
        )

    def persist(self, state: State) -> None:
        payload = state.model_dump(mode="json")
        try:
            with self.db() as conn:
                conn.execute("DELETE FROM evaluations")
                conn.execute("DELETE FROM judges")
                conn.execute("DELETE FROM contestants")
                _insert_rows(conn, "contestants", CONTESTANT_COLUMNS, payload["contestants"])
                _insert_rows(conn, "judges", JUDGE_COLUMNS, payload["judges"])
                for row in payload["evaluations"]:
                    row["criteria_scores"] = json.dumps(row["criteria_scores"], sort_keys=True)
                _insert_rows(conn, "evaluations", EVALUATION_COLUMNS, payload["evaluations"])
        except sqlite3.Error as e:
            raise PersistenceFailure(f"Could not save data: {e}") from e


def _row_dict(row: sqlite3.Row, columns: Tuple[str, ...]) -> dict:
    return {c: row[c] for c in columns}


def _insert_rows(conn: sqlite3.Connection, table: str, columns: Tuple[str, ...], rows: list) -> None:
    placeholders = ",".join(["?"] * (len(columns) + 1))
    conn.executemany(
        f"INSERT INTO {table}(position, {', '.join(columns)}) VALUES({placeholders})",
        [(pos, *(row[c] for c in columns)) for pos, row in enumerate(rows)],
    )


# -----------------------
# Remote sync
# -----------------------
def linear_backoff(base_delay: float) -> Callable[[int], float]:
    """Delay grows with the attempt number: base, 2*base, 3*base..."""
    return lambda attempt: base_delay * attempt


def exponential_backoff(base_delay: float, factor: float = 2.0) -> Callable[[int], float]:
    return lambda attempt: base_delay * factor ** (attempt - 1)


@dataclass
class RetryPolicy:
    max_attempts: int = 3
    backoff: Callable[[int], float] = field(default_factory=lambda: linear_backoff(1.0))
    retry_on: Tuple[Type[BaseException], ...] = (requests.RequestException,)
    sleep: Callable[[float], None] = time.sleep

    def call(self, operation: Callable[[], object], description: str):
        last_error: Optional[BaseException] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                result = operation()
                if attempt > 1:
                    logger.info(f"{description} succeeded on attempt {attempt}")
                return result
            except self.retry_on as e:
                last_error = e
                logger.warning(f"{description} attempt {attempt}/{self.max_attempts} failed: {e}")
                if attempt < self.max_attempts:
                    self.sleep(self.backoff(attempt))
        raise PersistenceFailure(f"{description} failed after {self.max_attempts} attempts: {last_error}")


class RemoteSync:
    """Pushes and fetches the whole state from a remote /api/data endpoint."""

    def __init__(
        self,
        base_url: str,
        retry_policy: Optional[RetryPolicy] = None,
        session: Optional[requests.Session] = None,
        timeout: float = 10.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.retry_policy = retry_policy or RetryPolicy()
        self.session = session or requests.Session()
        self.timeout = timeout

    @property
    def data_url(self) -> str:
        return f"{self.base_url}/api/data"

    def push(self, state: State) -> None:
        payload = {**state.model_dump(mode="json"), "version": "1.0", "last_update": utcnow().isoformat()}

        def _post():
            response = self.session.post(self.data_url, json=payload, timeout=self.timeout)
            response.raise_for_status()

        self.retry_policy.call(_post, "Remote sync push")
        logger.info("State pushed to remote copy")

    def fetch(self) -> State:
        def _get():
            response = self.session.get(self.data_url, timeout=self.timeout)
            response.raise_for_status()
            return response.json()

        data = self.retry_policy.call(_get, "Remote sync fetch")
        try:
            return State.model_validate(
                {
                    "contestants": data.get("contestants") or [],
                    "judges": data.get("judges") or [],
                    "evaluations": data.get("evaluations") or [],
                }
            )
        except (AttributeError, ValueError) as e:
            raise PersistenceFailure(f"Remote copy is not a valid state: {e}") from e


class SyncingPersistence:
    """Local copy first, then a fire-and-forget push to the remote copy."""

    def __init__(self, local: Persistence, remote: RemoteSync, executor: Optional[ThreadPoolExecutor] = None):
        self.local = local
        self.remote = remote
        # one worker keeps pushes in submission order
        self.executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="remote-sync")
        self._pending: Optional[Future] = None

    def load(self) -> State:
        try:
            state = self.remote.fetch()
        except PersistenceFailure as e:
            logger.warning(f"Remote copy unavailable, using local data: {e}")
            return self.local.load()
        logger.info("State loaded from remote copy")
        try:
            self.local.persist(state)
        except PersistenceFailure as e:
            logger.warning(f"Could not refresh local copy: {e}")
        return state

    def persist(self, state: State) -> None:
        self.local.persist(state)
        self._pending = self.executor.submit(self._push, state)

    def _push(self, state: State) -> bool:
        try:
            self.remote.push(state)
            return True
        except PersistenceFailure as e:
            logger.warning(f"Saved locally only: {e}")
            return False
        except Exception:
            logger.exception("Remote sync push crashed; saved locally only")
            return False

    def wait(self, timeout: Optional[float] = None) -> Optional[bool]:
        """Block until the latest push has finished; returns whether it succeeded."""
        if self._pending is None:
            return None
        return self._pending.result(timeout=timeout)

    def close(self):
        self.executor.shutdown(wait=True)
