"""pytest fixtures for batchrelay tests.

Provides:
- settings: Fully populated Settings (no .env, no submission stagger)
- store: In-memory record store with Airtable-like behavior
- record_locks: Shared KeyedLock for dispatcher and aggregator
- scripted_provider: Provider adapter returning scripted job ids / errors
- dispatcher / aggregator: Components wired to the fakes above
"""

import pytest
from fakes import InMemoryRecordStore, ScriptedProvider, make_settings

from batchrelay.core.config import Settings
from batchrelay.core.locks import KeyedLock
from batchrelay.services.batch_dispatcher import BatchDispatcher
from batchrelay.services.webhook_aggregator import WebhookAggregator


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def store() -> InMemoryRecordStore:
    return InMemoryRecordStore()


@pytest.fixture
def record_locks() -> KeyedLock:
    return KeyedLock()


@pytest.fixture
def scripted_provider() -> ScriptedProvider:
    return ScriptedProvider()


@pytest.fixture
def dispatcher(store, scripted_provider, record_locks, settings) -> BatchDispatcher:
    return BatchDispatcher(
        store,
        {scripted_provider.name: scripted_provider},
        callback_base_url=settings.callback_base_url,
        record_locks=record_locks,
        max_batch_count=settings.max_batch_count,
        stagger_seconds=0,
    )


@pytest.fixture
def aggregator(store, scripted_provider, record_locks) -> WebhookAggregator:
    return WebhookAggregator(store, {scripted_provider.name: scripted_provider}, record_locks)
