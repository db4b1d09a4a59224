"""
Process-local holder for the latest analysis result and the latest error.
"""

import time
from typing import Any, Callable, List, Optional

from .errors import VisionCaptionError


class ResultStore:
    """
    Keeps exactly one result (no history) and one error.

    Presentation code subscribes with on_change(callback); callbacks receive
    the store itself after every mutation.
    """

    def __init__(self, name: str = 'results'):
        self.name = name
        self.result: Optional[Any] = None
        self.error: Optional[str] = None
        self.error_kind: Optional[str] = None
        self.updated_at: float = 0.0
        self._listeners: List[Callable[['ResultStore'], None]] = []

    def on_change(self, callback: Callable[['ResultStore'], None]):
        self._listeners.append(callback)

    def set_result(self, result: Any):
        """Replace the stored result and clear the error."""
        self.result = result
        self.error = None
        self.error_kind = None
        self._touch()

    def clear_error(self):
        if self.error is None:
            return
        self.error = None
        self.error_kind = None
        self._touch()

    def set_error(self, error, kind: str = None):
        """Record an error; the previous result is left untouched."""
        if isinstance(error, VisionCaptionError):
            self.error = error.message
            self.error_kind = kind or error.kind
        else:
            self.error = str(error)
            self.error_kind = kind or 'error'
        self._touch()

    def reset(self):
        self.result = None
        self.error = None
        self.error_kind = None
        self._touch()

    def snapshot(self) -> dict:
        result = self.result
        if hasattr(result, 'to_dict'):
            result = result.to_dict()
        return {
            'result': result,
            'error': self.error,
            'error_kind': self.error_kind,
            'updated_at': self.updated_at,
        }

    def _touch(self):
        self.updated_at = time.time()
        for callback in list(self._listeners):
            try:
                callback(self)
            except Exception as e:
                print(f"[ResultStore:{self.name}] listener error: {e}")
