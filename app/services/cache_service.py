"""
Bill Read Cache

Short-lived cache in front of the bill repository so repeated lookups
from the counter screens (same bill by id or invoice number, recent
lists) don't hit storage every time. Any write clears it.

Usage:
    cache = BillCache(InMemoryCache(), ttl=20)

    await cache.set_bill(bill)
    bill = await cache.get_bill("2025-26/000123")

    await cache.invalidate()
"""
from typing import Any, Optional, Dict, List
from datetime import datetime, timedelta, timezone
from abc import ABC, abstractmethod
import asyncio
import logging

from app.schemas.bill import Bill

logger = logging.getLogger(__name__)


class CacheBackend(ABC):
    """Abstract cache backend interface."""

    @abstractmethod
    async def get(self, key: str) -> Optional[Any]:
        """Get value from cache."""
        pass

    @abstractmethod
    async def set(self, key: str, value: Any, ttl: int = 20) -> bool:
        """Set value in cache with TTL (seconds)."""
        pass

    @abstractmethod
    async def delete(self, key: str) -> bool:
        """Delete key from cache."""
        pass

    @abstractmethod
    async def clear_pattern(self, pattern: str) -> int:
        """Clear all keys matching pattern."""
        pass


class InMemoryCache(CacheBackend):
    """
    In-memory cache.

    Note: Not shared between processes, which matches the single
    allocator per process deployment.
    """

    def __init__(self):
        self._cache: Dict[str, tuple[Any, datetime]] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            if key in self._cache:
                value, expires_at = self._cache[key]
                if expires_at > datetime.now(timezone.utc):
                    return value
                else:
                    del self._cache[key]
            return None

    async def set(self, key: str, value: Any, ttl: int = 20) -> bool:
        async with self._lock:
            expires_at = datetime.now(timezone.utc) + timedelta(seconds=ttl)
            self._cache[key] = (value, expires_at)
            return True

    async def delete(self, key: str) -> bool:
        async with self._lock:
            if key in self._cache:
                del self._cache[key]
                return True
            return False

    async def clear_pattern(self, pattern: str) -> int:
        """Clear keys matching pattern (simple prefix match)."""
        async with self._lock:
            prefix = pattern.rstrip('*')
            keys_to_delete = [k for k in self._cache.keys() if k.startswith(prefix)]
            for key in keys_to_delete:
                del self._cache[key]
            return len(keys_to_delete)

    async def cleanup_expired(self) -> int:
        """Remove expired entries. Call periodically to prevent memory bloat."""
        async with self._lock:
            now = datetime.now(timezone.utc)
            expired_keys = [
                k for k, (_, expires_at) in self._cache.items()
                if expires_at <= now
            ]
            for key in expired_keys:
                del self._cache[key]
            return len(expired_keys)


class BillCache:
    """
    Bill cache with key layout:

        {namespace}:bill:{id or invoice number}
        {namespace}:bills:{status or ALL}
    """

    def __init__(self, backend: CacheBackend, ttl: int = 20, namespace: str = "pos"):
        self._backend = backend
        self._ttl = ttl
        self._namespace = namespace

    @property
    def backend(self) -> CacheBackend:
        return self._backend

    def _bill_key(self, key: str) -> str:
        return f"{self._namespace}:bill:{key}"

    def _list_key(self, status: Optional[str]) -> str:
        return f"{self._namespace}:bills:{status or 'ALL'}"

    async def get_bill(self, key: str) -> Optional[Bill]:
        return await self._backend.get(self._bill_key(key))

    async def set_bill(self, bill: Bill) -> None:
        """Cache under the bill id and, when present, its invoice number."""
        await self._backend.set(self._bill_key(bill.id), bill, self._ttl)
        if bill.invoice_number:
            await self._backend.set(self._bill_key(bill.invoice_number), bill, self._ttl)

    async def get_list(self, status: Optional[str]) -> Optional[List[Bill]]:
        return await self._backend.get(self._list_key(status))

    async def set_list(self, status: Optional[str], bills: List[Bill]) -> None:
        await self._backend.set(self._list_key(status), list(bills), self._ttl)

    async def invalidate(self) -> int:
        cleared = await self._backend.clear_pattern(f"{self._namespace}:*")
        logger.debug(f"Bill cache invalidated ({cleared} keys)")
        return cleared
