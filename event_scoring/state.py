"""Composition root: builds the application state from settings."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from event_scoring.config import Settings, settings as default_settings
from event_scoring.errors import PersistenceFailure
from event_scoring.notifications import MessageBoard
from event_scoring.persistence import (
    MemoryPersistence,
    RemoteSync,
    RetryPolicy,
    SqlitePersistence,
    SyncingPersistence,
    linear_backoff,
)
from event_scoring.recorder import EvaluationRecorder
from event_scoring.store import EntityStore

logger = logging.getLogger(__name__)


@dataclass
class AppState:
    store: EntityStore
    recorder: EvaluationRecorder
    notifier: MessageBoard
    persistence: object


def build_persistence(config: Settings):
    local = MemoryPersistence()
    if config.DB_PATH:
        try:
            local = SqlitePersistence(config.DB_PATH)
        except PersistenceFailure as e:
            logger.warning(f"Falling back to in-memory storage: {e}")
    if not config.sync_enabled:
        return local
    remote = RemoteSync(
        config.SYNC_URL,
        retry_policy=RetryPolicy(
            max_attempts=config.SYNC_MAX_ATTEMPTS,
            backoff=linear_backoff(config.SYNC_RETRY_DELAY),
        ),
        timeout=config.SYNC_TIMEOUT,
    )
    logger.info(f"Remote sync enabled: {config.SYNC_URL}")
    return SyncingPersistence(local, remote)


def build_state(config: Optional[Settings] = None, persistence=None, notifier: Optional[MessageBoard] = None) -> AppState:
    config = config or default_settings
    notifier = notifier or MessageBoard()
    persistence = persistence if persistence is not None else build_persistence(config)
    store = EntityStore(persistence, notifier)
    store.load()
    return AppState(
        store=store,
        recorder=EvaluationRecorder(store, notifier),
        notifier=notifier,
        persistence=persistence,
    )
