"""Snowflake-style ID generator for business IDs (bet ids, bet group ids, payment ids).

Generates monotonically increasing, unique string IDs, optionally prefixed
("bet_", "grp_", "pay_") so an id alone tells which table it belongs to.
Each worker process needs its own machine_id: ID_MACHINE_ID when set,
otherwise one derived from the PID.
"""

import os
import threading
import time

from config.settings import settings


class SnowflakeIdGenerator:
    """Simple snowflake ID generator.

    Layout (64 bits):
      - 41 bits: millisecond timestamp (since custom epoch)
      - 10 bits: machine_id (0-1023)
      - 12 bits: sequence (0-4095 per millisecond)
    """

    _EPOCH_MS = 1_700_000_000_000  # 2023-11-14 approx
    _MACHINE_BITS = 10
    _SEQUENCE_BITS = 12
    _MAX_SEQUENCE = (1 << _SEQUENCE_BITS) - 1

    def __init__(self, machine_id: int = 0) -> None:
        if not (0 <= machine_id < (1 << self._MACHINE_BITS)):
            raise ValueError(f"machine_id must be 0-{(1 << self._MACHINE_BITS) - 1}")
        self._machine_id = machine_id
        self._sequence = 0
        self._last_timestamp_ms = -1
        self._lock = threading.Lock()

    def next_int(self) -> int:
        with self._lock:
            ts = self._current_ms()
            if ts < self._last_timestamp_ms:
                # Clock stepped back: keep issuing ids on the last seen millisecond
                ts = self._last_timestamp_ms
            if ts == self._last_timestamp_ms:
                self._sequence = (self._sequence + 1) & self._MAX_SEQUENCE
                if self._sequence == 0:
                    ts = self._wait_next_ms(ts)
            else:
                self._sequence = 0

            self._last_timestamp_ms = ts
            return (
                ((ts - self._EPOCH_MS) << (self._MACHINE_BITS + self._SEQUENCE_BITS))
                | (self._machine_id << self._SEQUENCE_BITS)
                | self._sequence
            )

    def next_id(self, prefix: str = "") -> str:
        return f"{prefix}{self.next_int()}"

    def _current_ms(self) -> int:
        return int(time.time() * 1000)

    def _wait_next_ms(self, last_ts: int) -> int:
        ts = self._current_ms()
        while ts <= last_ts:
            ts = self._current_ms()
        return ts


def default_machine_id() -> int:
    if settings.ID_MACHINE_ID is not None:
        return settings.ID_MACHINE_ID
    return os.getpid() % (1 << SnowflakeIdGenerator._MACHINE_BITS)


_default_generator = SnowflakeIdGenerator(default_machine_id())


def generate_id(prefix: str = "") -> str:
    """Generate a unique snowflake-style string ID using the module-level default generator."""
    return _default_generator.next_id(prefix)
