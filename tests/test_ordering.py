"""Tests for rank arrangement."""

from gallery_manager.services.ordering import arrange, arrange_ranks
from gallery_manager.services.registry import ImageRegistry


class TestArrangeRanks:
    def test_enumeration_order_becomes_rank_order(self):
        assert arrange_ranks({7: None, 3: None, 5: None}) == {7: 3, 3: 5, 5: 7}

    def test_keep_position_in_enumeration_order(self):
        assert arrange_ranks({1: None, 2: None, 3: None}) == {1: 1, 2: 2, 3: 3}

    def test_explicit_ranks_join_the_pool(self):
        assert arrange_ranks({4: 100, 9: None}) == {4: 9, 9: 100}

    def test_zero_is_a_rank_not_a_marker(self):
        assert arrange_ranks({5: 0, 6: None}) == {5: 0, 6: 6}

    def test_idempotent(self):
        order = {8: None, 2: None, 5: None}
        first = arrange_ranks(order)
        second = arrange_ranks({image_id: first[image_id] for image_id in order})
        assert first == second

    def test_empty(self):
        assert arrange_ranks({}) == {}


class TestArrangePersisted:
    async def test_ranks_are_persisted(self, session):
        registry = ImageRegistry(session, "Post")
        a = await registry.insert("17")
        b = await registry.insert("17")
        c = await registry.insert("17")

        await arrange(registry, "17", {c.id: None, a.id: None, b.id: None})

        images = await registry.list_images("17")
        assert [image.id for image in images] == [c.id, a.id, b.id]
        assert [image.rank for image in images] == sorted([a.id, b.id, c.id])

    async def test_second_call_is_noop(self, session):
        registry = ImageRegistry(session, "Post")
        ids = [(await registry.insert("17")).id for _ in range(3)]
        order = {ids[2]: None, ids[0]: None, ids[1]: None}

        first = await arrange(registry, "17", order)
        second = await arrange(registry, "17", order)

        assert first == second
        assert [image.id for image in await registry.list_images("17")] == [ids[2], ids[0], ids[1]]
