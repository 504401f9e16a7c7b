"""Unit tests for cache utilities."""
import time

from reservations.cache import RoomCache


class TestRoomCache:
    """Test the per-room TTL cache."""

    def test_cache_set_and_get(self):
        """Test basic set and get operations."""
        cache = RoomCache[str](ttl=60)

        cache.set("booked", 1, "status")
        assert cache.get(1, "status") == "booked"
        assert cache.get(2, "status") is None

    def test_cache_ttl_expiration(self):
        """Test that values expire after TTL."""
        cache = RoomCache[str](ttl=1)

        cache.set("available", 1, "status")
        time.sleep(1.1)

        assert cache.get(1, "status") is None

    def test_get_or_load_calls_loader_once(self):
        """Test the loader only runs on a miss."""
        cache = RoomCache[list](ttl=60)
        calls = []

        def loader():
            calls.append(1)
            return ["Boardroom"]

        assert cache.get_or_load(loader, None, "list") == ["Boardroom"]
        assert cache.get_or_load(loader, None, "list") == ["Boardroom"]
        assert len(calls) == 1

    def test_invalidate_drops_room_and_listings(self):
        """Test invalidating a room also drops room-independent entries."""
        cache = RoomCache[str](ttl=60)
        cache.set("a", 1, "status")
        cache.set("b", 2, "status")
        cache.set("c", None, "list", 4)

        cache.invalidate(1)

        assert cache.get(1, "status") is None
        assert cache.get(None, "list", 4) is None
        assert cache.get(2, "status") == "b"

    def test_clear(self):
        """Test clearing every entry."""
        cache = RoomCache[str](ttl=60)
        cache.set("a", 1, "status")

        cache.clear()

        assert cache.get(1, "status") is None
