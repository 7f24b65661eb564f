"""
=============================================================================
PROCESS-WIDE REQUEST COUNTER
=============================================================================

Every request handled by the server increments one shared counter, and
the value after the increment is reported back in X-Requests-Count.

=============================================================================
WHY A LOCK?
=============================================================================

    counter += 1   is   LOAD → ADD → STORE

Two worker threads can both LOAD 41, both STORE 42, and one request is
lost. The GIL does not make the sequence atomic, so increment() and the
read of the new value happen under one lock:

    Worker A ──► [lock] 41 → 42, returns 42 [unlock]
    Worker B ──────────────────────────────► [lock] 42 → 43, returns 43 [unlock]

Returning the new value from increment() matters: reading value()
afterwards could already include another request's increment.

=============================================================================
32-BIT WRAP
=============================================================================

The value is an unsigned 32-bit integer. After 4,294,967,295 the next
increment yields 0. That is documented behaviour, not an error.

=============================================================================
"""

import threading


UINT32_MASK = 0xFFFFFFFF


class RequestCounter:
    """
    Thread-safe, monotonically increasing uint32 counter.

    There is deliberately no reset(): the count lives as long as the process.

    Usage:
        counter = RequestCounter()
        current = counter.increment()   # 1
        counter.value()                 # 1
    """

    def __init__(self, initial: int = 0):
        self._value = initial & UINT32_MASK
        self._lock = threading.Lock()

    def increment(self) -> int:
        """Add one (wrapping at 2**32) and return the new value."""
        with self._lock:
            self._value = (self._value + 1) & UINT32_MASK
            return self._value

    def value(self) -> int:
        """Return the current count."""
        with self._lock:
            return self._value

    def __repr__(self) -> str:
        return f"RequestCounter(value={self.value()})"
