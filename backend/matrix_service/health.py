"""Health check module with dependency verification."""

from __future__ import annotations

import time
from typing import Any

import httpx

from .router import osrm_breaker
from .settings import settings


def _is_configured(value: str | None) -> bool:
    """Return True when a config string is non-empty after trimming."""
    if value is None:
        return False
    return bool(value.strip())


class HealthChecker:
    """Health checker for the upstream router and optional integrations."""

    def __init__(self) -> None:
        self._check_cache: dict[str, tuple[dict[str, Any], float]] = {}
        self._cache_ttl = 30.0

    async def check_all(self) -> dict[str, Any]:
        """
        Check health of all dependencies.

        Returns:
            Dict with overall status and individual component checks
        """
        checks = {
            "router": await self._check_router(),
            "sentry": self._check_sentry()
            if _is_configured(settings.SENTRY_DSN)
            else {"status": "disabled"},
        }
        all_ok = all(check.get("status") in {"ok", "disabled"} for check in checks.values())
        return {
            "status": "healthy" if all_ok else "degraded",
            "timestamp": time.time(),
            "checks": checks,
        }

    async def _check_router(self) -> dict[str, Any]:
        """Check the OSRM server answers HTTP and the circuit is not open."""
        cache_key = "router"
        cached = self._get_cached_check(cache_key)
        if cached is not None:
            return cached

        breaker = osrm_breaker()
        if breaker.is_open():
            # not cached: the breaker moves to half-open on its own
            return {"status": "error", "error": "circuit open", "circuit": breaker.state.value}

        url = settings.osrm_base
        try:
            async with httpx.AsyncClient(timeout=5.0) as client:
                response = await client.get(url)
            if response.status_code >= 500:
                result = {
                    "status": "error",
                    "error": f"HTTP {response.status_code}",
                    "error_type": "HTTPStatusError",
                }
            else:
                result = {
                    "status": "ok",
                    "endpoint": url,
                    "circuit": breaker.state.value,
                }
        except httpx.TimeoutException:
            result = {
                "status": "error",
                "error": "Connection timeout",
                "error_type": "TimeoutException",
            }
        except httpx.HTTPError as exc:
            result = {
                "status": "error",
                "error": str(exc),
                "error_type": type(exc).__name__,
            }
        self._cache_check(cache_key, result)
        return result

    def _check_sentry(self) -> dict[str, Any]:
        """Validate the DSN shape; connectivity is not tested."""
        dsn = settings.SENTRY_DSN or ""
        if "@" in dsn and "//" in dsn:
            return {
                "status": "ok",
                "environment": settings.SENTRY_ENVIRONMENT,
                "release": settings.SENTRY_RELEASE or "unset",
            }
        return {"status": "error", "error": "Invalid SENTRY_DSN format"}

    def _get_cached_check(self, key: str) -> dict[str, Any] | None:
        if key not in self._check_cache:
            return None
        result, timestamp = self._check_cache[key]
        if time.time() - timestamp > self._cache_ttl:
            return None
        return result

    def _cache_check(self, key: str, result: dict[str, Any]) -> None:
        self._check_cache[key] = (result, time.time())

    def clear_cache(self) -> None:
        """Clear cached dependency checks (useful for tests)."""
        self._check_cache.clear()


health_checker = HealthChecker()


__all__ = ["HealthChecker", "health_checker"]
