"""Keyed lock registry enforcing one running simulation per pipeline."""

import threading
from typing import Dict, Optional


class PipelineLockRegistry:

    def __init__(self):
        self._holders: Dict[str, str] = {}
        self._lock = threading.Lock()

    def acquire(self, pipeline_id: str, session_id: str) -> bool:
        """Fails fast instead of queuing when the pipeline already has a run"""
        with self._lock:
            if pipeline_id in self._holders:
                return False
            self._holders[pipeline_id] = session_id
            return True

    def release(self, pipeline_id: str, session_id: str) -> bool:
        with self._lock:
            if self._holders.get(pipeline_id) != session_id:
                return False
            del self._holders[pipeline_id]
            return True

    def holder(self, pipeline_id: str) -> Optional[str]:
        with self._lock:
            return self._holders.get(pipeline_id)
