"""
Valkey (Redis-compatible) client for cross-process coordination.

Simple wrapper around redis-py. Connection URL from Vault.
Fail-fast: raises on connection failure, never returns fallback values.
"""

import logging

import redis
from redis.lock import Lock

logger = logging.getLogger(__name__)


class ValkeyClient:
    """
    Redis-compatible client for Valkey.

    Usage:
        client = ValkeyClient("redis://localhost:6379/0")
        lock = client.lock("notify:milestones", timeout=3600)
        if lock.acquire(blocking=False):
            try:
                ...
            finally:
                lock.release()
    """

    def __init__(self, url: str):
        """
        Initialize Valkey connection.

        Args:
            url: Redis-compatible connection URL (e.g., redis://localhost:6379/0)

        Raises:
            redis.ConnectionError: If connection fails
        """
        self._client = redis.from_url(url, decode_responses=True)
        # Verify connectivity immediately (fail-fast)
        self._client.ping()
        logger.info("ValkeyClient connected")

    def ping(self) -> bool:
        """
        Health check.

        Returns True if Valkey responds.
        Raises redis.ConnectionError if unreachable.
        """
        self._client.ping()
        return True

    def lock(self, name: str, timeout: int) -> Lock:
        """
        Named lock shared by every process on this Valkey.

        The lock expires after `timeout` seconds even if the holder dies,
        so a crashed run cannot block the next one forever.

        Args:
            name: Lock key
            timeout: Expiry in seconds
        """
        return self._client.lock(name, timeout=timeout)

    def close(self) -> None:
        """Close the connection."""
        self._client.close()
        logger.info("ValkeyClient closed")
