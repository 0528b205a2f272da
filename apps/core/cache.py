"""
Caching utilities for frequently accessed access-control data.

Provides centralized cache management with consistent TTLs and invalidation patterns.
"""
import logging
from typing import Any, Callable, Optional
from django.core.cache import cache

logger = logging.getLogger(__name__)


class CacheKeys:
    """Centralized cache key definitions with consistent naming."""

    # Role permission sets, shared by every principal holding the role (TTL: 5 minutes)
    ROLE_PERMISSIONS = "rbac:role_permissions:{role_slug}"
    # Generation counter per role; cached sets are stored under the current generation (no expiry)
    ROLE_PERMISSIONS_VERSION = "rbac:role_permissions_version:{role_slug}"

    # Team-derived permissions per principal and organization (TTL: 5 minutes)
    TEAM_PERMISSIONS = "rbac:team_permissions:{principal_id}:{org_id}"
    TEAM_PERMISSIONS_FOR_PRINCIPAL = "rbac:team_permissions:{principal_id}:*"

    @classmethod
    def format(cls, key_template: str, **kwargs) -> str:
        """Format a cache key with provided parameters."""
        return key_template.format(**kwargs)


class CacheTTL:
    """Default cache TTL (Time To Live) constants in seconds."""

    ROLE_PERMISSIONS = 300  # 5 minutes
    TEAM_PERMISSIONS = 300  # 5 minutes


class CacheService:
    """Service for managing cached data with consistent patterns."""

    @staticmethod
    def get(key: str, default: Any = None) -> Any:
        """
        Get value from cache.

        Args:
            key: Cache key
            default: Default value if key not found

        Returns:
            Cached value or default
        """
        try:
            value = cache.get(key, default)
            if value is not None:
                logger.debug(f"Cache HIT: {key}")
            else:
                logger.debug(f"Cache MISS: {key}")
            return value
        except Exception as e:
            logger.error(f"Cache get error for key {key}: {str(e)}")
            return default

    @staticmethod
    def set(key: str, value: Any, ttl: int = None) -> bool:
        """
        Set value in cache.

        Args:
            key: Cache key
            value: Value to cache
            ttl: Time to live in seconds (optional)

        Returns:
            True if successful, False otherwise
        """
        try:
            cache.set(key, value, timeout=ttl)
            logger.debug(f"Cache SET: {key} (TTL: {ttl}s)")
            return True
        except Exception as e:
            logger.error(f"Cache set error for key {key}: {str(e)}")
            return False

    @staticmethod
    def delete(key: str) -> bool:
        """
        Delete value from cache.

        Args:
            key: Cache key

        Returns:
            True if successful, False otherwise
        """
        try:
            cache.delete(key)
            logger.debug(f"Cache DELETE: {key}")
            return True
        except Exception as e:
            logger.error(f"Cache delete error for key {key}: {str(e)}")
            return False

    @staticmethod
    def delete_pattern(pattern: str) -> bool:
        """
        Delete all keys matching a pattern.

        Args:
            pattern: Pattern to match (e.g., "rbac:team_permissions:123:*")

        Returns:
            True if successful, False otherwise
        """
        try:
            # Use django-redis delete_pattern if available
            if hasattr(cache, 'delete_pattern'):
                cache.delete_pattern(pattern)
                logger.debug(f"Cache DELETE_PATTERN: {pattern}")
                return True
            else:
                logger.warning("delete_pattern not supported by cache backend")
                return False
        except Exception as e:
            logger.error(f"Cache delete_pattern error for pattern {pattern}: {str(e)}")
            return False

    @staticmethod
    def add(key: str, value: Any, ttl: int = None) -> bool:
        """
        Set value only if the key is absent.

        Returns:
            True if the value was stored, False if the key existed or on error
        """
        try:
            added = cache.add(key, value, timeout=ttl)
            logger.debug(f"Cache ADD: {key} ({'stored' if added else 'exists'})")
            return bool(added)
        except Exception as e:
            logger.error(f"Cache add error for key {key}: {str(e)}")
            return False

    @staticmethod
    def incr(key: str, initial: int = 1, ttl: int = None) -> Optional[int]:
        """
        Atomically increment a counter, creating it with ``initial`` if missing.

        Args:
            key: Cache key
            initial: Value stored when the counter does not exist yet
            ttl: Time to live for a newly created counter

        Returns:
            The new counter value, or None on backend error
        """
        try:
            try:
                value = cache.incr(key)
            except ValueError:
                # Missing key; another writer may create it first
                if cache.add(key, initial, timeout=ttl):
                    value = initial
                else:
                    value = cache.incr(key)
            logger.debug(f"Cache INCR: {key} -> {value}")
            return value
        except Exception as e:
            logger.error(f"Cache incr error for key {key}: {str(e)}")
            return None

    @staticmethod
    def get_or_set(key: str, default_func: Callable, ttl: int = None) -> Any:
        """
        Get value from cache or set it using default_func if not found.

        Args:
            key: Cache key
            default_func: Function to call if cache miss
            ttl: Time to live in seconds (optional)

        Returns:
            Cached or computed value
        """
        value = CacheService.get(key)
        if value is None:
            value = default_func()
            if value is not None:
                CacheService.set(key, value, ttl)
        return value
