"""
Hot-swappable database slot

A ResourceSlot holds the handle currently serving one database. Readers
never take the slot's lock: they read the current handle and lease it.
Swaps are serialized per slot. A displaced handle is retired and only
closed once the last lease taken on it has been released, so a query
that picked up the old handle just before a reload finishes on an open
database.
"""

import logging
import threading
import time
from contextlib import contextmanager
from typing import Any, Callable, Iterator, Optional

from ..errors import SlotEmptyError

logger = logging.getLogger("ipinfo.db")


class DatabaseHandle:
    """Reference-counted wrapper around one opened database"""

    def __init__(self, resource: Any, path: str,
                 on_close: Optional[Callable[[Any], None]] = None):
        self.resource = resource
        self.path = path
        self.loaded_at = time.time()
        # Slot generation this handle was installed at; set under the swap lock
        self.generation = 0
        self._on_close = on_close
        self._lock = threading.Lock()
        self._leases = 0
        self._retired = False
        self._closed = False

    @property
    def leases(self) -> int:
        return self._leases

    @property
    def retired(self) -> bool:
        return self._retired

    @property
    def closed(self) -> bool:
        return self._closed

    def acquire(self) -> bool:
        """Take a lease. Fails once the handle has been retired."""
        with self._lock:
            if self._retired:
                return False
            self._leases += 1
            return True

    def release(self) -> None:
        with self._lock:
            if self._leases <= 0:
                raise RuntimeError(f"release without lease on {self.path}")
            self._leases -= 1
            drained = self._retired and self._leases == 0 and not self._closed
            if drained:
                self._closed = True
        if drained:
            self._close()

    def retire(self) -> None:
        """Refuse new leases and close as soon as the current ones end"""
        with self._lock:
            if self._retired:
                return
            self._retired = True
            drained = self._leases == 0
            if drained:
                self._closed = True
        if drained:
            self._close()
        else:
            logger.debug("close deferred until leases drain", extra={
                "component": "db",
                "db_path": self.path,
                "leases": self._leases,
            })

    def _close(self) -> None:
        if self._on_close is None:
            return
        try:
            self._on_close(self.resource)
        except Exception:
            # Runs on whichever thread dropped the last lease; the lookup
            # it served already succeeded.
            logger.exception("failed to close database", extra={
                "component": "db",
                "db_path": self.path,
            })
        else:
            logger.info("database closed", extra={
                "component": "db",
                "db_path": self.path,
            })


class ResourceSlot:
    """Single-writer, many-reader holder of the active DatabaseHandle"""

    def __init__(self, name: str, handle: Optional[DatabaseHandle] = None):
        self.name = name
        self.generation = 0
        self._current: Optional[DatabaseHandle] = None
        self._swap_lock = threading.Lock()
        if handle is not None:
            self.initialize(handle)

    @property
    def ready(self) -> bool:
        return self._current is not None

    def initialize(self, handle: DatabaseHandle) -> None:
        with self._swap_lock:
            if self._current is not None:
                raise RuntimeError(f"{self.name} slot is already initialized")
            self._check_usable(handle)
            self.generation += 1
            handle.generation = self.generation
            self._current = handle

    def get(self) -> DatabaseHandle:
        # One attribute read; rebinding it in swap() is atomic.
        handle = self._current
        if handle is None:
            raise SlotEmptyError(self.name)
        return handle

    def current(self) -> DatabaseHandle:
        return self.get()

    @contextmanager
    def lease(self) -> Iterator[DatabaseHandle]:
        """Yield the current handle, kept open until the block exits"""
        while True:
            handle = self.get()
            if handle.acquire():
                break
            # Retired between the read and the acquire: a swap has already
            # installed its replacement.
        try:
            yield handle
        finally:
            handle.release()

    def swap(self, new: DatabaseHandle) -> DatabaseHandle:
        """Install `new` and hand back the displaced handle for disposal"""
        with self._swap_lock:
            old = self._current
            if old is None:
                raise SlotEmptyError(self.name, f"{self.name} slot swapped before initialize")
            if new is old:
                raise ValueError(f"{self.name} slot already holds this handle")
            self._check_usable(new)
            self.generation += 1
            new.generation = self.generation
            self._current = new
        logger.info("database swapped", extra={
            "component": "db",
            "database": self.name,
            "generation": new.generation,
            "db_path": new.path,
            "previous_path": old.path,
        })
        return old

    def close(self) -> None:
        with self._swap_lock:
            handle, self._current = self._current, None
        if handle is not None:
            handle.retire()

    def _check_usable(self, handle: DatabaseHandle) -> None:
        if handle.retired:
            raise ValueError(f"{self.name} slot cannot hold a retired handle ({handle.path})")
