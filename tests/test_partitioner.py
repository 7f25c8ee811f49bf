"""Batch partitioner: exhaustive, non-overlapping, bounded units."""
import pytest

from favfeed.fanout.partitioner import DispatchUnit, partition


async def _pages(*pages):
    for page in pages:
        yield list(page)


async def _collect(post_id, pages, unit_size) -> list[DispatchUnit]:
    return [unit async for unit in partition(post_id, pages, unit_size)]


class TestPartition:
    @pytest.mark.asyncio
    async def test_250_followers_split_100_100_50(self):
        units = await _collect(7, _pages(range(1, 251)), 100)

        assert [len(u.recipient_ids) for u in units] == [100, 100, 50]
        assert all(u.post_id == 7 for u in units)

    @pytest.mark.asyncio
    async def test_union_equals_input_without_duplicates(self):
        followers = list(range(1000, 1437))
        units = await _collect(1, _pages(followers[:200], followers[200:]), 64)

        flattened = [uid for u in units for uid in u.recipient_ids]
        assert flattened == followers
        assert len(set(flattened)) == len(flattened)
        assert max(len(u.recipient_ids) for u in units) <= 64

    @pytest.mark.asyncio
    async def test_ids_carry_across_page_boundaries(self):
        # Pages of 30 with units of 25: only the last unit may be short
        units = await _collect(1, _pages(range(0, 30), range(30, 60), range(60, 90)), 25)

        assert [len(u.recipient_ids) for u in units] == [25, 25, 25, 15]
        assert units[1].recipient_ids == list(range(25, 50))

    @pytest.mark.asyncio
    async def test_exact_multiple_has_no_trailing_unit(self):
        units = await _collect(1, _pages(range(200)), 100)
        assert [len(u.recipient_ids) for u in units] == [100, 100]

    @pytest.mark.asyncio
    async def test_no_pages_yields_no_units(self):
        assert await _collect(1, _pages(), 100) == []

    @pytest.mark.asyncio
    async def test_empty_pages_yield_no_units(self):
        assert await _collect(1, _pages([], []), 100) == []

    @pytest.mark.asyncio
    async def test_rejects_non_positive_unit_size(self):
        with pytest.raises(ValueError):
            await _collect(1, _pages([1, 2]), 0)

    @pytest.mark.asyncio
    async def test_units_are_fresh_and_unbatched(self):
        units = await _collect(1, _pages(range(5)), 2)

        assert len({u.unit_id for u in units}) == 3
        assert all(u.batch_id is None and u.attempt == 0 for u in units)


class TestDispatchUnit:
    def test_json_wire_format(self):
        unit = DispatchUnit(post_id=3, recipient_ids=[4, 5], batch_id="b1")
        restored = DispatchUnit.model_validate(unit.model_dump(mode="json"))

        assert restored == unit

    def test_requires_at_least_one_recipient(self):
        with pytest.raises(ValueError):
            DispatchUnit(post_id=3, recipient_ids=[])
