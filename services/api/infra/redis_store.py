"""
Redis store for pipeline definitions and finished simulation records.
"""

import redis
import json
from typing import Optional, Dict, Any, List
import os
from shared.constants import REDIS_KEY_TTL_SECONDS, SESSION_RECORD_TTL_SECONDS
from shared.types import Pipeline


class RedisStore:
    """Redis client wrapper for API service"""

    def __init__(self, redis_url: Optional[str] = None):
        url = redis_url or os.getenv("REDIS_URL", "redis://localhost:6379/0")
        self.client = redis.Redis.from_url(url, decode_responses=False)

    def store_pipeline(self, pipeline_id: str, name: Optional[str], nodes: List[Dict[str, Any]],
                       edges: List[Dict[str, Any]]) -> Pipeline:
        """Saves a definition under the next version number"""
        version = self.client.incr(f"pipeline:{pipeline_id}:version")
        pipeline = Pipeline(id=pipeline_id, version=version, name=name, nodes=nodes, edges=edges)

        key = f"pipeline:{pipeline_id}:definition"
        self.client.set(key, pipeline.model_dump_json())
        self.client.expire(key, REDIS_KEY_TTL_SECONDS)
        self.client.expire(f"pipeline:{pipeline_id}:version", REDIS_KEY_TTL_SECONDS)
        return pipeline

    def get_pipeline(self, pipeline_id: str) -> Optional[Pipeline]:
        data = self.client.get(f"pipeline:{pipeline_id}:definition")
        if data:
            return Pipeline.model_validate_json(data)
        return None

    def save_session(self, record: Dict[str, Any]) -> None:
        key = f"simulation:{record['session_id']}"
        self.client.set(key, json.dumps(record))
        self.client.expire(key, SESSION_RECORD_TTL_SECONDS)

    def get_session(self, session_id: str) -> Optional[Dict[str, Any]]:
        data = self.client.get(f"simulation:{session_id}")
        if data:
            return json.loads(data)
        return None
