"""
Vercel KV / Upstash Redis REST integration.
Commands are POSTed as a JSON array to the REST base URL; the reply is {"result": ...}.
Failures are logged and reported as False/None so callers can degrade.
"""
import httpx
import logging
from typing import Any, Dict, List, Optional
from .settings import KV_REST_API_URL, KV_REST_API_TOKEN

logger = logging.getLogger(__name__)

class KVStorage:
    def __init__(self, url: str = None, token: str = None, transport: httpx.AsyncBaseTransport = None):
        self.kv_rest_api_url = (url if url is not None else KV_REST_API_URL).rstrip("/")
        self.kv_rest_api_token = token if token is not None else KV_REST_API_TOKEN
        self._transport = transport

        if not self.kv_rest_api_url or not self.kv_rest_api_token:
            logger.warning("KV storage not configured - falling back to file storage")
            self.enabled = False
        else:
            self.enabled = True
            logger.info("KV storage enabled")

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.kv_rest_api_token}",
            "Content-Type": "application/json"
        }

    async def _command(self, *args) -> Any:
        async with httpx.AsyncClient(timeout=10, transport=self._transport) as client:
            response = await client.post(
                self.kv_rest_api_url,
                headers=self._headers(),
                json=[str(a) for a in args]
            )
            response.raise_for_status()
            body = response.json()
            if body.get("error"):
                raise RuntimeError(body["error"])
            return body.get("result")

    async def set(self, key: str, value: str, ttl: int = None) -> bool:
        """Store a string value, optionally expiring after ttl seconds"""
        if not self.enabled:
            return False
        try:
            if ttl:
                await self._command("SET", key, value, "EX", ttl)
            else:
                await self._command("SET", key, value)
            return True
        except Exception as e:
            logger.error(f"Failed to store {key} in KV: {e}")
            return False

    async def get(self, key: str) -> Optional[str]:
        if not self.enabled:
            return None
        try:
            return await self._command("GET", key)
        except Exception as e:
            logger.error(f"Failed to retrieve {key} from KV: {e}")
            return None

    async def delete(self, key: str) -> bool:
        if not self.enabled:
            return False
        try:
            await self._command("DEL", key)
            return True
        except Exception as e:
            logger.error(f"Failed to delete {key} from KV: {e}")
            return False

    async def keys(self, pattern: str) -> List[str]:
        if not self.enabled:
            return []
        try:
            return list(await self._command("KEYS", pattern) or [])
        except Exception as e:
            logger.error(f"Failed to list keys {pattern} in KV: {e}")
            return []
