"""
Pairwise distance/time matrix built from single-pair router calls.

For N points the router is asked for every ordered pair (i, j) whose ids
differ, so at most N*(N-1) calls. Pairs the router cannot route are left out
of the result; an unreachable router fails the whole matrix.
"""

from __future__ import annotations

import math
import time
from collections.abc import Iterator, Sequence
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field

from .geo import GeoPoint
from .logging_config import get_logger
from .router import (
    CALC_POINTS,
    INSTRUCTIONS,
    WAY_POINT_MAX_DISTANCE,
    RouteRequest,
    RouteResponse,
    Router,
)

logger = get_logger(__name__)


def round_half_up(value: float, decimals: int = 0) -> float:
    """Round halves up (2.5 -> 3, 0.0625 -> 0.063 at 3 decimals)."""
    factor = 10**decimals
    return math.floor(value * factor + 0.5) / factor


class MatrixValidationError(ValueError):
    """Request parameters are inconsistent; nothing was sent to the router."""


@dataclass(slots=True)
class MatrixRequestOptions:
    vehicle: str = "car"
    weighting: str = "fastest"
    algorithm: str = ""
    locale: str = "en"
    point_hints: list[str] = field(default_factory=list)
    path_details: list[str] = field(default_factory=list)
    headings: list[float] = field(default_factory=list)
    calc_points: bool = True
    elevation: bool = False
    points_encoded: bool = True
    way_point_max_distance: float = 1.0
    # free-form single-valued request parameters, passed to the router as hints
    hints: dict[str, str] = field(default_factory=dict)


@dataclass(slots=True)
class MatrixElement:
    id_point1: str
    id_point2: str
    distance: float  # meters
    time: int  # milliseconds


@dataclass(slots=True)
class MatrixResult:
    elements: list[MatrixElement] = field(default_factory=list)
    took: float = 0.0  # seconds

    @property
    def took_ms(self) -> int:
        return int(round_half_up(self.took * 1000))


def validate_request(
    points: Sequence[GeoPoint], options: MatrixRequestOptions, router: Router
) -> None:
    if not points:
        raise MatrixValidationError("You have to pass at least one point")
    if options.elevation and not router.supports_elevation:
        raise MatrixValidationError("Elevation not supported!")
    if len(options.headings) > 1 and len(options.headings) != len(points):
        raise MatrixValidationError(
            "The number of 'heading' parameters must be <= 1 "
            f"or equal to the number of points ({len(points)})"
        )
    if options.point_hints and len(options.point_hints) != len(points):
        raise MatrixValidationError(
            "If you pass point_hint, you need to pass a hint for every point, "
            "empty hints will be ignored"
        )


def resolve_ids(points: Sequence[GeoPoint], ids: Sequence[str]) -> list[str]:
    """Align ids with points; points without an id are named by their index."""
    return [ids[index] if index < len(ids) else str(index) for index in range(len(points))]


def iter_pairs(ids: Sequence[str]) -> Iterator[tuple[int, int]]:
    """Yield (origin, destination) index pairs in row-major order, skipping equal ids."""
    for i in range(len(ids)):
        for j in range(len(ids)):
            if ids[i] == ids[j]:
                continue
            yield i, j


def pair_headings(headings: Sequence[float]) -> tuple[float, ...]:
    """
    Headings attached to every pair request.

    A single heading applies to the origin only. Several headings are passed
    as given, so they line up with the original point list rather than with
    the pair.
    """
    if not headings:
        return ()
    if len(headings) == 1:
        return (headings[0], math.nan)
    return tuple(headings)


def build_route_request(
    origin: GeoPoint, destination: GeoPoint, options: MatrixRequestOptions
) -> RouteRequest:
    hints = dict(options.hints)
    hints[CALC_POINTS] = options.calc_points
    hints[INSTRUCTIONS] = False
    hints[WAY_POINT_MAX_DISTANCE] = options.way_point_max_distance
    return RouteRequest(
        points=(origin, destination),
        headings=pair_headings(options.headings),
        vehicle=options.vehicle,
        weighting=options.weighting,
        algorithm=options.algorithm,
        locale=options.locale,
        point_hints=tuple(options.point_hints),
        path_details=tuple(options.path_details),
        hints=tuple(hints.items()),
    )


def dispatch(
    router: Router, requests: Sequence[RouteRequest], max_workers: int = 1
) -> list[RouteResponse]:
    """Route every request; responses come back in request order."""
    if max_workers <= 1 or len(requests) <= 1:
        return [router.route(request) for request in requests]

    with ThreadPoolExecutor(
        max_workers=min(max_workers, len(requests)), thread_name_prefix="matrix"
    ) as pool:
        futures = [pool.submit(router.route, request) for request in requests]
        try:
            return [future.result() for future in futures]
        except BaseException:
            for future in futures:
                future.cancel()
            raise


def compute_matrix(
    points: Sequence[GeoPoint],
    ids: Sequence[str],
    options: MatrixRequestOptions,
    router: Router,
    *,
    max_workers: int = 1,
) -> MatrixResult:
    """
    Validate the request and fan it out to the router.

    Raises:
        MatrixValidationError: on inconsistent parameters, before any router call
        RouterUnavailableError / CircuitOpenError: when the router cannot be reached
    """
    started = time.perf_counter()
    validate_request(points, options, router)
    point_ids = resolve_ids(points, ids)

    pairs = list(iter_pairs(point_ids))
    requests = [build_route_request(points[i], points[j], options) for i, j in pairs]
    responses = dispatch(router, requests, max_workers)

    result = MatrixResult()
    for (i, j), response in zip(pairs, responses):
        if response.has_errors or response.best is None:
            continue
        result.elements.append(
            MatrixElement(
                id_point1=point_ids[i],
                id_point2=point_ids[j],
                distance=response.best.distance,
                time=response.best.time,
            )
        )
    result.took = time.perf_counter() - started

    logger.info(
        "matrix_computed",
        points=len(points),
        pairs=len(pairs),
        elements=len(result.elements),
        dropped=len(pairs) - len(result.elements),
        took_seconds=round(result.took, 3),
    )
    return result


__all__ = [
    "MatrixElement",
    "MatrixRequestOptions",
    "MatrixResult",
    "MatrixValidationError",
    "build_route_request",
    "compute_matrix",
    "dispatch",
    "iter_pairs",
    "pair_headings",
    "resolve_ids",
    "round_half_up",
    "validate_request",
]
