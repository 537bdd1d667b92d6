"""Point-to-point router collaborator and its OSRM HTTP implementation."""

from __future__ import annotations

import logging
import math
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from threading import Lock
from typing import Any, Protocol

import httpx

from .cache import TTLCache, route_cache
from .circuit_breaker import CircuitBreaker, CircuitOpenError, get_circuit_breaker
from .geo import GeoPoint
from .metrics import router_call_duration_seconds, router_calls_total
from .settings import settings

logger = logging.getLogger(__name__)

# hint names set on every pair request
CALC_POINTS = "calc_points"
INSTRUCTIONS = "instructions"
WAY_POINT_MAX_DISTANCE = "way_point_max_distance"

VEHICLE_PROFILES = {
    "car": "driving",
    "bike": "cycling",
    "foot": "walking",
}

# OSRM /route options that may be passed through as free-form hints
OSRM_PASSTHROUGH_HINTS = frozenset(
    {"exclude", "snapping", "radiuses", "approaches", "continue_straight", "generate_hints"}
)


class RouterUnavailableError(Exception):
    """The router could not be reached or failed internally."""


def osrm_breaker() -> CircuitBreaker:
    """Process-wide breaker for OSRM; only transport failures trip it."""
    return get_circuit_breaker("osrm", failure_exceptions=(RouterUnavailableError,))


@dataclass(frozen=True, slots=True)
class RouteRequest:
    points: tuple[GeoPoint, ...]
    headings: tuple[float, ...] = ()  # NaN = no preference for that point
    vehicle: str = "car"
    weighting: str = "fastest"
    algorithm: str = ""
    locale: str = "en"
    point_hints: tuple[str, ...] = ()
    path_details: tuple[str, ...] = ()
    hints: tuple[tuple[str, Any], ...] = ()

    @property
    def hints_map(self) -> dict[str, Any]:
        return dict(self.hints)

    def hint_bool(self, name: str, default: bool) -> bool:
        value = self.hints_map.get(name, default)
        if isinstance(value, str):
            return value.strip().lower() in {"true", "1", "yes", "on"}
        return bool(value)

    def cache_key(self) -> tuple:
        # NaN != NaN, so headings are normalised before hashing
        headings = tuple(None if math.isnan(h) else h for h in self.headings)
        return (
            self.points,
            headings,
            self.vehicle,
            self.weighting,
            self.algorithm,
            self.locale,
            self.point_hints,
            self.path_details,
            tuple(sorted((k, str(v)) for k, v in self.hints)),
        )


@dataclass(slots=True)
class RoutePath:
    distance: float  # meters
    time: int  # milliseconds


@dataclass(slots=True)
class RouteResponse:
    best: RoutePath | None = None
    errors: list[str] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return bool(self.errors)


class Router(Protocol):
    supports_elevation: bool

    def route(self, request: RouteRequest) -> RouteResponse: ...


class OsrmRouter:
    """
    Router backed by an OSRM server's /route service.

    Route-level failures reported by OSRM (no route, unsnappable point,
    invalid value) come back as a RouteResponse with errors. Transport
    failures, 5xx and throttling raise RouterUnavailableError and count
    against the circuit breaker.
    """

    supports_elevation = False

    def __init__(
        self,
        base_url: str | None = None,
        *,
        timeout: float | None = None,
        client: httpx.Client | None = None,
        cache: TTLCache | None = route_cache,
        breaker: CircuitBreaker | None = None,
        heading_tolerance: int | None = None,
    ) -> None:
        self.base_url = (base_url or settings.osrm_base).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.OSRM_TIMEOUT_SECONDS
        self.cache = cache
        self.breaker = breaker or osrm_breaker()
        self.heading_tolerance = (
            heading_tolerance
            if heading_tolerance is not None
            else settings.HEADING_TOLERANCE_DEGREES
        )
        self._client = client

    @property
    def client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=self.timeout)
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def route(self, request: RouteRequest) -> RouteResponse:
        if len(request.points) < 2:
            return RouteResponse(errors=["At least two points are required to compute a route"])

        key = request.cache_key()
        if self.cache is not None:
            cached = self.cache.get(key)
            if cached is not None:
                router_calls_total.labels(result="cached").inc()
                return cached

        url = self.route_url(request)
        params = self.route_params(request)
        started = time.perf_counter()
        try:
            payload = self.breaker.call(self._fetch, url, params)
        except (RouterUnavailableError, CircuitOpenError):
            router_calls_total.labels(result="unavailable").inc()
            raise
        finally:
            router_call_duration_seconds.observe(time.perf_counter() - started)

        response = self._parse(payload, request)
        if response.has_errors:
            router_calls_total.labels(result="route_error").inc()
            logger.debug("OSRM route error url=%s errors=%s", url, response.errors)
            return response

        router_calls_total.labels(result="ok").inc()
        if self.cache is not None:
            self.cache.put(key, response)
        return response

    def route_url(self, request: RouteRequest) -> str:
        profile = VEHICLE_PROFILES.get(request.vehicle.lower(), request.vehicle)
        coords = ";".join(f"{p.lon},{p.lat}" for p in request.points)
        return f"{self.base_url}/route/v1/{profile}/{coords}"

    def route_params(self, request: RouteRequest) -> dict[str, str]:
        params = {
            "alternatives": "true" if request.weighting == "shortest" else "false",
            "steps": "true" if request.hint_bool(INSTRUCTIONS, False) else "false",
            "annotations": "false",
            "overview": "simplified" if request.hint_bool(CALC_POINTS, True) else "false",
        }
        bearings = self._bearings(request)
        if bearings:
            params["bearings"] = bearings
        for name, value in request.hints:
            if name in OSRM_PASSTHROUGH_HINTS:
                params[name] = str(value)
        return params

    def _bearings(self, request: RouteRequest) -> str | None:
        # headings beyond the request's point count are ignored
        headings = list(request.headings[: len(request.points)])
        if not any(not math.isnan(h) for h in headings):
            return None
        headings += [math.nan] * (len(request.points) - len(headings))
        return ";".join(
            "" if math.isnan(h) else f"{int(round(h)) % 360},{self.heading_tolerance}"
            for h in headings
        )

    def _fetch(self, url: str, params: Mapping[str, str]) -> dict[str, Any]:
        try:
            resp = self.client.get(url, params=params)
        except httpx.HTTPError as exc:
            logger.warning("OSRM route fetch failed: %s", exc)
            raise RouterUnavailableError(f"OSRM request failed: {exc}") from exc

        if resp.status_code >= 500 or resp.status_code == 429:
            raise RouterUnavailableError(f"OSRM returned HTTP {resp.status_code}")
        try:
            data = resp.json()
        except ValueError as exc:
            raise RouterUnavailableError(
                f"OSRM returned a non-JSON body (HTTP {resp.status_code})"
            ) from exc
        if not isinstance(data, dict):
            raise RouterUnavailableError("OSRM returned an unexpected payload")
        return data

    @staticmethod
    def _parse(data: dict[str, Any], request: RouteRequest) -> RouteResponse:
        code = data.get("code")
        if code != "Ok":
            return RouteResponse(errors=[str(data.get("message") or code or "Unknown error")])
        routes = data.get("routes") or []
        if not routes:
            return RouteResponse(errors=["No route found"])
        if request.weighting == "shortest":
            best = min(routes, key=lambda r: float(r.get("distance", 0.0)))
        else:
            best = routes[0]
        distance = float(best.get("distance", 0.0))
        time_ms = math.floor(float(best.get("duration", 0.0)) * 1000 + 0.5)
        return RouteResponse(best=RoutePath(distance=distance, time=time_ms))


_default_router: OsrmRouter | None = None
_router_lock = Lock()


def get_router() -> Router:
    """FastAPI dependency returning the process-wide router."""
    global _default_router
    with _router_lock:
        if _default_router is None:
            _default_router = OsrmRouter()
        return _default_router


def close_router() -> None:
    global _default_router
    with _router_lock:
        if _default_router is not None:
            _default_router.close()
            _default_router = None


__all__ = [
    "CALC_POINTS",
    "INSTRUCTIONS",
    "OsrmRouter",
    "RoutePath",
    "RouteRequest",
    "RouteResponse",
    "Router",
    "RouterUnavailableError",
    "WAY_POINT_MAX_DISTANCE",
    "close_router",
    "get_router",
    "osrm_breaker",
]
