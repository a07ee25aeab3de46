"""
Operator notices.

Transient, dismissible messages about enrollment and detection outcomes.
Written from the event loop thread and read from HTTP handler threads,
so access is guarded by a lock.
"""

import itertools
import threading
import time
from collections import deque
from dataclasses import dataclass, asdict
from typing import Deque, Dict, List, Literal

from .errors import RecognitionError
from .logging_config import get_logger

logger = get_logger(__name__)

NoticeLevel = Literal['success', 'error', 'info']


@dataclass(frozen=True)
class Notice:
    id: int
    level: NoticeLevel
    message: str
    created_at: float

    def to_dict(self) -> Dict:
        return asdict(self)


class NoticeBoard:
    """
    Holds active notices in posting order.

    Oldest notices are dropped once max_active is exceeded.
    """

    def __init__(self, max_active: int = 20):
        self._notices: Deque[Notice] = deque(maxlen=max_active)
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    def post(self, level: NoticeLevel, message: str) -> Notice:
        """
        Post a new notice.

        Args:
            level: 'success', 'error' or 'info'
            message: Text shown to the operator

        Returns:
            The posted notice
        """
        with self._lock:
            notice = Notice(
                id=next(self._ids),
                level=level,
                message=message,
                created_at=time.time(),
            )
            self._notices.append(notice)

        logger.debug(f'Notice #{notice.id} [{level}] {message}')

        return notice

    def success(self, message: str) -> Notice:
        return self.post('success', message)

    def error(self, message: str) -> Notice:
        return self.post('error', message)

    def info(self, message: str) -> Notice:
        return self.post('info', message)

    def report(self, error: RecognitionError) -> Notice:
        """Post the operator-facing text of an error."""
        return self.error(error.notice)

    def active(self) -> List[Notice]:
        with self._lock:
            return list(self._notices)

    def dismiss(self, notice_id: int) -> bool:
        """
        Remove one notice.

        Returns:
            True if the notice existed
        """
        with self._lock:
            for notice in self._notices:
                if notice.id == notice_id:
                    self._notices.remove(notice)
                    return True
        return False

    def dismiss_all(self) -> None:
        with self._lock:
            self._notices.clear()
