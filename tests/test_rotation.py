"""Tests for the seen/unseen rotation engine."""

import random

import pytest

from corpus_sync import ContentType, ErrorKind, RotationEngine, RotationStats, Settings, Word
from corpus_sync.rotation import STATE_COLLECTION, state_id


def make_words(n):
    return [
        Word(id=f"word-u{i}", english=f"w{i}", french=(f"m{i}",))
        for i in range(n)
    ]


async def draw(rotation, count, content_type="words", user_id="guest"):
    ids = []
    for _ in range(count):
        result = await rotation.get_next(content_type, user_id)
        assert result.ok
        ids.append(result.item.id)
    return ids


class TestCycle:

    @pytest.mark.asyncio
    async def test_every_item_once_per_cycle(self, rotation):
        items = make_words(6)
        await rotation.initialize("words", items)
        ids = await draw(rotation, 6)
        assert sorted(ids) == sorted(i.id for i in items)

    @pytest.mark.asyncio
    async def test_three_items_three_distinct_draws(self, rotation):
        await rotation.initialize("words", make_words(3))
        assert len(set(await draw(rotation, 3))) == 3

    @pytest.mark.asyncio
    async def test_new_cycle_after_exhaustion(self, rotation):
        items = make_words(4)
        await rotation.initialize("words", items)
        first = await draw(rotation, 4)
        second = await draw(rotation, 4)
        assert sorted(first) == sorted(second)
        # the last item of the first cycle is confirmed during the reset
        assert rotation.stats("words").seen == 3

    @pytest.mark.asyncio
    async def test_single_item_repeats(self, rotation):
        await rotation.initialize("words", make_words(1))
        assert await draw(rotation, 3) == ["word-u0"] * 3

    @pytest.mark.asyncio
    async def test_empty_pool(self, rotation):
        await rotation.initialize("words", [])
        result = await rotation.get_next("words")
        assert not result.ok
        assert result.error.kind is ErrorKind.EMPTY_POOL


class TestProgress:

    @pytest.mark.asyncio
    async def test_stats(self, rotation):
        assert rotation.stats("words") == RotationStats(seen=0, unseen=0, total=0)
        await rotation.initialize("words", make_words(5))
        assert rotation.stats("words") == RotationStats(seen=0, unseen=5, total=5)
        await draw(rotation, 1)
        assert rotation.stats("words") == RotationStats(seen=0, unseen=4, total=5)
        await draw(rotation, 1)
        assert rotation.stats("words") == RotationStats(seen=1, unseen=3, total=5)

    @pytest.mark.asyncio
    async def test_mark_current_as_seen(self, rotation):
        await rotation.initialize("words", make_words(3))
        (current,) = await draw(rotation, 1)
        result = await rotation.mark_current_as_seen("words")
        assert result.ok
        assert result.item == current
        await rotation.mark_current_as_seen("words")
        assert rotation.state("words").seen_ids == [current]

        # the confirmed item is not drawn again in this cycle
        assert current not in await draw(rotation, 2)

    @pytest.mark.asyncio
    async def test_mark_without_init(self, rotation):
        result = await rotation.mark_current_as_seen("verbs")
        assert result.error.kind is ErrorKind.NOT_FOUND

    @pytest.mark.asyncio
    async def test_reset(self, rotation, engine):
        items = make_words(4)
        await rotation.initialize("words", items)
        await draw(rotation, 3)
        await rotation.reset("words", items)
        assert rotation.stats("words") == RotationStats(seen=0, unseen=4, total=4)
        record = await engine.get_by_id(STATE_COLLECTION, "guest:words")
        assert record["seenIds"] == []
        assert record["current"] is None

    @pytest.mark.asyncio
    async def test_state_is_a_copy(self, rotation):
        await rotation.initialize("words", make_words(2))
        state = rotation.state("words")
        state.seen_ids.append("bogus")
        state.unseen_pool.clear()
        assert rotation.stats("words").unseen == 2
        assert rotation.state("numbers") is None


class TestInitialization:

    @pytest.mark.asyncio
    async def test_uninitialized_without_synchronizer(self, rotation):
        assert not rotation.is_initialized("words")
        result = await rotation.get_next("words")
        assert result.error.kind is ErrorKind.NOT_FOUND
        with pytest.raises(RuntimeError):
            await rotation.refresh("words")

    @pytest.mark.asyncio
    async def test_auto_refresh_from_synchronizer(self, sync, engine):
        rotation = RotationEngine(engine, synchronizer=sync, rng=random.Random(7))
        result = await rotation.get_next(ContentType.VERBS)
        assert result.ok
        assert result.item.infinitive == "parler"
        assert rotation.is_initialized("verbs")

    @pytest.mark.asyncio
    async def test_follows_synchronizer_changes(self, sync, engine):
        car = (await sync.add("words", {"english": "car", "french": "voiture"})).item
        rotation = RotationEngine(engine, synchronizer=sync, rng=random.Random(3))
        assert sorted(await draw(rotation, 2)) == sorted(["word-1", car.id])

        assert (await sync.delete("words", car.id)).ok
        assert await draw(rotation, 4) == ["word-1"] * 4
        assert rotation.stats("words").total == 1

        bus = (await sync.add("words", {"english": "bus", "french": "autobus"})).item
        assert bus.id in await draw(rotation, 2)
        assert rotation.stats("words").total == 2

    @pytest.mark.asyncio
    async def test_default_user_from_settings(self, engine):
        rotation = RotationEngine(engine, settings=Settings(default_user="amelie"))
        assert rotation.default_user == "amelie"
        await rotation.initialize("words", make_words(2))
        await draw(rotation, 1, user_id=None)
        record = await engine.get_by_id(STATE_COLLECTION, "amelie:words")
        assert record["userId"] == "amelie"
        assert await engine.get_by_id(STATE_COLLECTION, "guest:words") is None

    @pytest.mark.asyncio
    async def test_users_are_independent(self, rotation):
        items = make_words(3)
        await rotation.initialize("words", items, "alice")
        await rotation.initialize("words", items, "bob")
        await draw(rotation, 2, user_id="alice")
        assert rotation.stats("words", "alice").seen == 1
        assert rotation.stats("words", "bob") == RotationStats(seen=0, unseen=3, total=3)


class TestPersistence:

    @pytest.mark.asyncio
    async def test_state_is_saved(self, rotation, engine):
        await rotation.initialize("words", make_words(3))
        drawn = await draw(rotation, 2)
        record = await engine.get_by_id(STATE_COLLECTION, state_id("guest", ContentType.WORDS))
        assert record == {
            "id": "guest:words",
            "userId": "guest",
            "contentType": "words",
            "seenIds": drawn[:1],
            "current": drawn[1],
        }

    @pytest.mark.asyncio
    async def test_restore_continues_cycle(self, rotation, engine):
        items = make_words(4)
        await rotation.initialize("words", items)
        drawn = await draw(rotation, 3)

        restored = RotationEngine(engine, rng=random.Random(99))
        await restored.initialize("words", items)
        state = restored.state("words")
        assert state.seen_ids == drawn[:2]
        assert state.current == drawn[2]

        (last,) = await draw(restored, 1)
        assert last not in drawn

    @pytest.mark.asyncio
    async def test_restore_drops_vanished_items(self, rotation, engine):
        items = make_words(4)
        await rotation.initialize("words", items)
        drawn = await draw(rotation, 3)

        remaining = [i for i in items if i.id != drawn[0]]
        restored = RotationEngine(engine)
        await restored.initialize("words", remaining)
        assert restored.state("words").seen_ids == [drawn[1]]
        assert restored.stats("words").total == 3

    @pytest.mark.asyncio
    async def test_malformed_state_ignored(self, rotation, engine):
        await engine.update(
            STATE_COLLECTION, {"id": "guest:words", "seenIds": "oops", "current": None},
        )
        await rotation.initialize("words", make_words(2))
        assert rotation.stats("words") == RotationStats(seen=0, unseen=2, total=2)

    @pytest.mark.asyncio
    async def test_save_failure_does_not_block(self, rotation, engine):
        await rotation.initialize("words", make_words(2))
        engine.fail_on.add("update")
        result = await rotation.get_next("words")
        assert result.ok
