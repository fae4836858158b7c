"""Quotas and semaphores that bound the resources a query may use."""

from __future__ import annotations

import threading


class ResourceExhaustedError(Exception):
    """Raised when a quota has no room left for a reservation."""

    def __init__(self, used: int) -> None:
        super().__init__(f"resource exhausted (used {used})")
        self.used = used


def is_resource_exhausted(err: BaseException | None) -> bool:
    """Report whether ``err`` or anything in its cause chain is a ResourceExhaustedError."""
    seen: set[int] = set()
    while err is not None and id(err) not in seen:
        if isinstance(err, ResourceExhaustedError):
            return True
        seen.add(id(err))
        err = err.__cause__ or err.__context__
    return False


class Semaphore:
    """A counting semaphore; a limit of zero means unlimited."""

    def __init__(self, n: int) -> None:
        if n < 0:
            raise ValueError(f"semaphore size must not be negative, got {n}")
        self._n = n
        self._held = 0
        self._cond = threading.Condition()

    @property
    def limit(self) -> int:
        return self._n

    def reserve(self, timeout: float | None = None) -> None:
        """Take a slot, waiting at most ``timeout`` seconds; raise TimeoutError otherwise."""
        if self._n == 0:
            return
        with self._cond:
            if not self._cond.wait_for(lambda: self._held < self._n, timeout):
                raise TimeoutError("timed out waiting for semaphore")
            self._held += 1

    def release(self) -> None:
        """Give back a slot; releasing more than was reserved is an error."""
        if self._n == 0:
            return
        with self._cond:
            if self._held == 0:
                raise RuntimeError("semaphore would block on release?")
            self._held -= 1
            self._cond.notify()

    def __enter__(self) -> Semaphore:
        self.reserve()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.release()


def unlimited_semaphore() -> Semaphore:
    return Semaphore(0)


class Quota:
    """A budget that reservations draw down; a budget of zero means unlimited."""

    def __init__(self, n: int) -> None:
        self._limit = n
        self._remaining = n
        self._lock = threading.Lock()

    @property
    def limit(self) -> int:
        return self._limit

    @property
    def remaining(self) -> int:
        return self._remaining

    def reserve(self, n: int) -> None:
        """Draw ``n`` from the budget or raise ResourceExhaustedError."""
        if self._limit == 0:
            return
        with self._lock:
            if self._remaining - n < 0:
                raise ResourceExhaustedError(self._limit)
            self._remaining -= n


def unlimited_quota() -> Quota:
    return Quota(0)