"""
Tests for DatabaseHandle leasing and ResourceSlot swaps
"""

import threading

import pytest

from ipinfo.db.slot import DatabaseHandle, ResourceSlot
from ipinfo.errors import SlotEmptyError


class Closer:
    def __init__(self):
        self.closed = []

    def __call__(self, resource):
        self.closed.append(resource)


class TestDatabaseHandle:
    """Test lease counting and deferred close"""

    def test_retire_without_leases_closes_immediately(self):
        closer = Closer()
        handle = DatabaseHandle("db", "a.mmdb", on_close=closer)
        handle.retire()
        assert handle.closed
        assert closer.closed == ["db"]

    def test_retire_with_lease_defers_close_until_release(self):
        closer = Closer()
        handle = DatabaseHandle("db", "a.mmdb", on_close=closer)
        assert handle.acquire()
        handle.retire()
        assert handle.retired
        assert not handle.closed
        assert closer.closed == []

        handle.release()
        assert handle.closed
        assert closer.closed == ["db"]

    def test_close_runs_once(self):
        closer = Closer()
        handle = DatabaseHandle("db", "a.mmdb", on_close=closer)
        handle.acquire()
        handle.acquire()
        handle.retire()
        handle.retire()
        handle.release()
        assert closer.closed == []
        handle.release()
        assert closer.closed == ["db"]

    def test_acquire_refused_after_retire(self):
        handle = DatabaseHandle("db", "a.mmdb")
        handle.retire()
        assert handle.acquire() is False

    def test_release_without_lease_raises(self):
        handle = DatabaseHandle("db", "a.mmdb")
        with pytest.raises(RuntimeError):
            handle.release()

    def test_close_failure_is_contained(self):
        def explode(resource):
            raise OSError("boom")

        handle = DatabaseHandle("db", "a.mmdb", on_close=explode)
        handle.retire()
        assert handle.closed


class TestResourceSlot:
    """Test slot state transitions"""

    def test_empty_slot_get_raises(self):
        slot = ResourceSlot("asn")
        assert not slot.ready
        with pytest.raises(SlotEmptyError):
            slot.get()

    def test_initialize(self):
        slot = ResourceSlot("asn")
        handle = DatabaseHandle("db", "a.mmdb")
        slot.initialize(handle)
        assert slot.ready
        assert slot.get() is handle
        assert slot.current() is handle
        assert slot.generation == 1

    def test_initialize_twice_raises(self):
        slot = ResourceSlot("asn", DatabaseHandle("db", "a.mmdb"))
        with pytest.raises(RuntimeError):
            slot.initialize(DatabaseHandle("db2", "b.mmdb"))

    def test_swap_returns_old_and_get_sees_new(self):
        old = DatabaseHandle("old", "a.mmdb")
        new = DatabaseHandle("new", "b.mmdb")
        slot = ResourceSlot("asn", old)

        assert slot.swap(new) is old
        assert slot.get() is new
        assert slot.generation == 2
        # swap never disposes of the old handle itself
        assert not old.retired

    def test_swap_before_initialize_raises(self):
        slot = ResourceSlot("asn")
        with pytest.raises(SlotEmptyError):
            slot.swap(DatabaseHandle("db", "a.mmdb"))

    def test_swap_rejects_same_or_retired_handle(self):
        handle = DatabaseHandle("db", "a.mmdb")
        slot = ResourceSlot("asn", handle)
        with pytest.raises(ValueError):
            slot.swap(handle)

        retired = DatabaseHandle("db2", "b.mmdb")
        retired.retire()
        with pytest.raises(ValueError):
            slot.swap(retired)
        assert slot.get() is handle

    def test_lease_keeps_old_handle_open_across_swap(self):
        closer = Closer()
        old = DatabaseHandle("old", "a.mmdb", on_close=closer)
        slot = ResourceSlot("asn", old)

        with slot.lease() as leased:
            assert leased is old
            slot.swap(DatabaseHandle("new", "b.mmdb", on_close=closer)).retire()
            assert not old.closed
        assert old.closed
        assert closer.closed == ["old"]

    def test_lease_skips_retired_handle(self):
        old = DatabaseHandle("old", "a.mmdb")
        new = DatabaseHandle("new", "b.mmdb")
        slot = ResourceSlot("asn", old)

        real_get = slot.get
        calls = []

        def racing_get():
            # First read returns the old handle, then a swap lands
            handle = real_get()
            if not calls:
                calls.append(handle)
                slot.swap(new).retire()
            return handle

        slot.get = racing_get
        with slot.lease() as leased:
            assert leased is new
        assert old.closed

    def test_close_retires_current(self):
        closer = Closer()
        slot = ResourceSlot("asn", DatabaseHandle("db", "a.mmdb", on_close=closer))
        slot.close()
        assert not slot.ready
        assert closer.closed == ["db"]

    def test_concurrent_swaps_are_serialized(self):
        slot = ResourceSlot("asn", DatabaseHandle(0, "0.mmdb"))
        displaced = []
        lock = threading.Lock()

        def writer(start):
            for i in range(start, start + 200):
                old = slot.swap(DatabaseHandle(i, f"{i}.mmdb"))
                with lock:
                    displaced.append(old.resource)

        threads = [threading.Thread(target=writer, args=(n * 1000 + 1,)) for n in range(4)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        # Every installed handle is displaced exactly once, except the survivor
        assert slot.generation == 801
        assert len(displaced) == 800
        assert len(set(displaced)) == 800
        assert slot.get().resource not in displaced

    def test_readers_proceed_while_swap_lock_is_held(self):
        handle = DatabaseHandle("db", "a.mmdb")
        slot = ResourceSlot("asn", handle)
        seen = []

        def read():
            seen.append(slot.get())
            with slot.lease() as leased:
                seen.append(leased)

        with slot._swap_lock:
            reader = threading.Thread(target=read)
            reader.start()
            reader.join(timeout=2)
            assert not reader.is_alive()
        assert seen == [handle, handle]
        assert handle.leases == 0

    def test_generation_recorded_on_installed_handle(self):
        first = DatabaseHandle("a", "a.mmdb")
        second = DatabaseHandle("b", "b.mmdb")
        slot = ResourceSlot("asn", first)
        slot.swap(second)
        assert (first.generation, second.generation) == (1, 2)
