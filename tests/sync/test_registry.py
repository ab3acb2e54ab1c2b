"""Tests for the in-memory content registry."""

from datetime import UTC, datetime, timedelta

from calendar_sync.models.content import ContentItem
from calendar_sync.sync.registry import ContentRegistry

BASE = datetime(2025, 1, 1, tzinfo=UTC)


def _item(item_id: str, location: str = "pool", minutes: int = 0) -> ContentItem:
    return ContentItem(
        id=item_id,
        media_url=f"https://cdn/{item_id}.jpg",
        title=item_id,
        location=location,
        last_moved=BASE + timedelta(minutes=minutes),
    )


class TestContentRegistry:
    def test_starts_loading_until_first_snapshot(self):
        registry = ContentRegistry()
        assert registry.loading is True
        registry.replace_all({"a": _item("a")})
        assert registry.loading is False
        assert registry.error is None
        assert "a" in registry

    def test_pool_items_most_recent_first(self):
        registry = ContentRegistry()
        registry.replace_all(
            {
                "old": _item("old", minutes=1),
                "new": _item("new", minutes=5),
                "tie-b": _item("tie-b", minutes=3),
                "tie-a": _item("tie-a", minutes=3),
                "slot": _item("slot", location="2025-0-14", minutes=9),
            }
        )
        assert [item.id for item in registry.pool_items()] == ["new", "tie-a", "tie-b", "old"]

    def test_slot_groups_and_occupant(self):
        registry = ContentRegistry()
        registry.replace_all({"a": _item("a", "2025-0-14"), "b": _item("b")})
        assert list(registry.slot_groups()) == ["2025-0-14"]
        assert registry.occupant("2025-0-14").id == "a"
        assert registry.occupant("2025-0-14", exclude="a") is None
        assert registry.occupant("2025-0-15") is None

    def test_snapshot_restore_is_deep(self):
        registry = ContentRegistry()
        registry.replace_all({"a": _item("a")})
        snapshot = registry.snapshot()
        registry.upsert("a", _item("a", "2025-0-14"))
        registry.upsert("b", _item("b"))
        registry.restore(snapshot)
        assert registry.items() == snapshot
        assert registry.get("a") is not snapshot["a"]

    def test_remove_many_notifies_once(self):
        registry = ContentRegistry()
        registry.replace_all({"a": _item("a"), "b": _item("b"), "c": _item("c")})
        calls = []
        registry.add_listener(lambda reg: calls.append(len(reg)))
        assert registry.remove_many(["a", "b", "missing"]) == ["a", "b"]
        assert calls == [1]

    def test_clear_sets_error(self):
        registry = ContentRegistry()
        registry.replace_all({"a": _item("a")})
        registry.clear(error="Failed to load fbig data. Please try again.")
        assert len(registry) == 0
        assert registry.error.startswith("Failed to load")
        assert registry.loading is False

    def test_listener_changes_are_not_recursive(self):
        registry = ContentRegistry()
        seen = []

        def listener(reg: ContentRegistry) -> None:
            seen.append(sorted(reg.items()))
            if "a" in reg:
                reg.remove("a")

        registry.add_listener(listener)
        registry.replace_all({"a": _item("a"), "b": _item("b")})
        assert seen == [["a", "b"], ["b"]]

    def test_failing_listener_does_not_block_others(self):
        registry = ContentRegistry()
        calls = []

        def broken(_reg):
            raise RuntimeError("boom")

        registry.add_listener(broken)
        registry.add_listener(lambda _reg: calls.append(True))
        registry.upsert("a", _item("a"))
        assert calls == [True]

    def test_remove_listener(self):
        registry = ContentRegistry()
        calls = []
        remove = registry.add_listener(lambda _reg: calls.append(True))
        remove()
        registry.upsert("a", _item("a"))
        assert calls == []

    def test_upsert_keeps_key_and_id_aligned(self):
        registry = ContentRegistry()
        registry.upsert("a", _item("other"))
        assert registry.get("a").id == "a"

    def test_closed_registry_ignores_writes(self):
        registry = ContentRegistry()
        registry.close()
        registry.replace_all({"a": _item("a")})
        registry.upsert("b", _item("b"))
        assert len(registry) == 0
        assert registry.loading is True
