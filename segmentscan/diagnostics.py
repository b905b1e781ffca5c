"""Warnings collected while a scan runs."""

import threading
from enum import Flag, auto


class ScanWarning(Flag):
    """Problems worth surfacing to the user after a scan."""

    NONE = 0
    INVALID_FINGERPRINT = auto()
    SEASON_FAILED = auto()


class Diagnostics:
    """Warning flags for a single scan. Safe to share between season workers."""

    def __init__(self):
        self._flags = ScanWarning.NONE
        self._lock = threading.Lock()

    def set_flag(self, warning: ScanWarning) -> None:
        with self._lock:
            self._flags |= warning

    def clear(self) -> None:
        with self._lock:
            self._flags = ScanWarning.NONE

    @property
    def flags(self) -> ScanWarning:
        return self._flags

    def __str__(self) -> str:
        names = [
            member.name
            for member in ScanWarning.__members__.values()
            if member.value and member in self._flags
        ]
        return ", ".join(names) if names else "None"
