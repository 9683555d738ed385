"""Shared test fixtures for corpus-sync."""

import random

import pytest

from corpus_sync import (
    ContentSynchronizer,
    PredefinedCatalog,
    RotationEngine,
    Settings,
    SqliteEngine,
)
from corpus_sync.exceptions import EngineUnavailableError

CATALOG_DATA = {
    "words": [
        {"id": "word-1", "english": "house", "french": ["maison"]},
    ],
    "verbs": [
        {
            "id": "verb-1", "infinitive": "parler", "english": "to speak",
            "group": "1",
            "conjugations": {
                "je": ["parle"], "tu": ["parles"], "il": ["parle"],
                "nous": ["parlons"], "vous": ["parlez"], "ils": ["parlent"],
            },
        },
    ],
    "sentences": [
        {"id": "sentence-1", "english": "How are you?",
         "french": ["Comment allez-vous?"]},
    ],
    "numbers": [
        {"id": "number-42", "english": "42", "french": ["quarante-deux"]},
    ],
}


class FlakyEngine(SqliteEngine):
    """In-memory engine whose operations can be made to fail on demand."""

    def __init__(self, db_path=":memory:"):
        super().__init__(db_path)
        self.fail_on = set()
        self.calls = []

    async def _check(self, operation):
        self.calls.append(operation)
        if operation in self.fail_on or "*" in self.fail_on:
            raise EngineUnavailableError(f"Injected {operation} failure")

    async def open(self):
        await self._check("open")
        await super().open()

    async def get_all(self, collection):
        await self._check("get_all")
        return await super().get_all(collection)

    async def get_by_id(self, collection, record_id):
        await self._check("get_by_id")
        return await super().get_by_id(collection, record_id)

    async def add(self, collection, record):
        await self._check("add")
        await super().add(collection, record)

    async def update(self, collection, record):
        await self._check("update")
        await super().update(collection, record)

    async def delete(self, collection, record_id):
        await self._check("delete")
        await super().delete(collection, record_id)

    async def bulk_add(self, collection, records):
        await self._check("bulk_add")
        return await super().bulk_add(collection, records)


@pytest.fixture
def catalog():
    """Small predefined catalog with one item per content type."""
    return PredefinedCatalog.from_mapping(CATALOG_DATA)


@pytest.fixture
def engine():
    """Create an in-memory engine for testing."""
    eng = FlakyEngine()
    yield eng
    eng.close()


@pytest.fixture
def sync(engine, catalog):
    """Synchronizer over the in-memory engine and the small catalog."""
    return ContentSynchronizer(engine, catalog=catalog)


@pytest.fixture
def empty_sync(engine):
    """Synchronizer with no predefined content at all."""
    return ContentSynchronizer(
        engine,
        catalog=PredefinedCatalog.empty(),
        settings=Settings(seed_predefined=False),
    )


@pytest.fixture
def rotation(engine):
    """Rotation engine with a seeded random source."""
    return RotationEngine(engine, rng=random.Random(1234))
