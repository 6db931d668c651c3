# powindex/shared/progress_tracker.py
"""
Ephemeral per-subject pipeline progress.

Entries expire a fixed time after their last update, whether or not the run
finished. Eviction happens on read, against an injectable clock.
"""

import time
import logging
import threading
from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional

from powindex.core.models import ProgressState

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 300


class ProgressStore(ABC):
    """Keyed progress store polled by consumers."""

    @abstractmethod
    def set_progress(self, subject: str, stage: str, message: str, percent: int) -> ProgressState:
        """Overwrite the subject's entry with a fresh timestamp."""

    @abstractmethod
    def get_progress(self, subject: str) -> Optional[ProgressState]:
        """Current entry, or None when absent or expired."""

    @abstractmethod
    def clear_progress(self, subject: str) -> None:
        """Drop the subject's entry."""


class InMemoryProgressStore(ProgressStore):
    """
    Flat map of subject to ProgressState.
    """

    def __init__(self, ttl_seconds: float = DEFAULT_TTL_SECONDS,
                 clock: Callable[[], float] = time.time):
        """
        Args:
            ttl_seconds: Age after which an entry is evicted on read
            clock: Returns the current time in seconds
        """
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._entries: Dict[str, ProgressState] = {}
        self._lock = threading.Lock()

    def set_progress(self, subject: str, stage: str, message: str, percent: int) -> ProgressState:
        state = ProgressState(
            subject=subject,
            stage=stage,
            message=message,
            percent=max(0, min(100, int(percent))),
            updated_at=self.clock(),
        )
        with self._lock:
            self._entries[subject] = state
        logger.debug(f"Progress {subject}: {stage} {state.percent}% - {message}")
        return state

    def get_progress(self, subject: str) -> Optional[ProgressState]:
        with self._lock:
            state = self._entries.get(subject)
            if state is None:
                return None
            if self.clock() - state.updated_at > self.ttl_seconds:
                del self._entries[subject]
                logger.debug(f"Progress entry for {subject} expired")
                return None
            return state

    def clear_progress(self, subject: str) -> None:
        with self._lock:
            self._entries.pop(subject, None)
