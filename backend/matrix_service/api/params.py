"""Reading matrix parameters from query strings and form bodies."""

from __future__ import annotations

import math
from typing import Any, Protocol

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ..geo import GeoPoint, parse_point
from ..matrix import MatrixRequestOptions, MatrixValidationError


class MultiValueParams(Protocol):
    """Starlette's QueryParams and FormData both satisfy this."""

    def keys(self) -> Any: ...

    def getlist(self, key: Any) -> list[Any]: ...


class MatrixParams(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    point: list[str] = Field(default_factory=list)
    id: list[str] = Field(default_factory=list)
    calc_points: bool = True
    elevation: bool = False
    points_encoded: bool = True
    vehicle: str = "car"
    weighting: str = "fastest"
    algorithm: str = ""
    locale: str = "en"
    point_hint: list[str] = Field(default_factory=list)
    path_details: list[str] = Field(default_factory=list)
    heading: list[float] = Field(default_factory=list)
    way_point_max_distance: float = 1.0

    # GPX output flags: accepted for compatibility, JSON output ignores them
    gpx_route: bool = Field(True, alias="gpx.route")
    gpx_track: bool = Field(True, alias="gpx.track")
    gpx_waypoints: bool = Field(False, alias="gpx.waypoints")
    gpx_trackname: str = Field("GraphHopper Track", alias="gpx.trackname")
    gpx_millis: str | None = Field(None, alias="gpx.millis")

    @field_validator("heading")
    @classmethod
    def _finite_headings(cls, value: list[float]) -> list[float]:
        # NaN means "no preference" for that point
        if any(math.isinf(h) for h in value):
            raise ValueError("heading must be a finite number of degrees")
        return value

    def to_request(
        self, hints: dict[str, str] | None = None
    ) -> tuple[list[GeoPoint], list[str], MatrixRequestOptions]:
        try:
            points = [parse_point(raw) for raw in self.point]
        except ValueError as exc:
            raise MatrixValidationError(str(exc)) from exc
        options = MatrixRequestOptions(
            vehicle=self.vehicle,
            weighting=self.weighting,
            algorithm=self.algorithm,
            locale=self.locale,
            point_hints=list(self.point_hint),
            path_details=list(self.path_details),
            headings=list(self.heading),
            calc_points=self.calc_points,
            elevation=self.elevation,
            points_encoded=self.points_encoded,
            way_point_max_distance=self.way_point_max_distance,
            hints=dict(hints or {}),
        )
        return points, list(self.id), options


LIST_PARAMS = ("point", "id", "point_hint", "path_details", "heading")
SCALAR_PARAMS = (
    "calc_points",
    "elevation",
    "points_encoded",
    "vehicle",
    "weighting",
    "algorithm",
    "locale",
    "way_point_max_distance",
    "gpx.route",
    "gpx.track",
    "gpx.waypoints",
    "gpx.trackname",
    "gpx.millis",
)
# "details" is the routing API's own name for path_details
PATH_DETAILS_ALIAS = "details"
KNOWN_PARAMS = frozenset((*LIST_PARAMS, *SCALAR_PARAMS, PATH_DETAILS_ALIAS))


def _strings(values: list[Any]) -> list[str]:
    # form bodies may carry uploads; only plain fields count
    return [value for value in values if isinstance(value, str)]


def read_matrix_params(params: MultiValueParams) -> MatrixParams:
    """
    Build MatrixParams from a multi-valued mapping.

    Scalars use the first occurrence. Raises pydantic.ValidationError on
    values that cannot be coerced (e.g. heading=north).
    """
    data: dict[str, Any] = {name: _strings(params.getlist(name)) for name in LIST_PARAMS}
    data["path_details"] += _strings(params.getlist(PATH_DETAILS_ALIAS))
    for name in SCALAR_PARAMS:
        values = _strings(params.getlist(name))
        if values:
            data[name] = values[0]
    return MatrixParams.model_validate(data)


def collect_hints(params: MultiValueParams) -> dict[str, str]:
    """
    Free-form hints: every unknown parameter supplied exactly once.

    Unknown parameters given several times are dropped without an error.
    """
    hints: dict[str, str] = {}
    for name in dict.fromkeys(params.keys()):
        if name in KNOWN_PARAMS:
            continue
        values = _strings(params.getlist(name))
        if len(values) == 1:
            hints[name] = values[0]
    return hints


def format_validation_error(exc: ValidationError) -> str:
    first = exc.errors()[0]
    location = ".".join(str(part) for part in first.get("loc", ()) if not isinstance(part, int))
    message = first.get("msg", "invalid value")
    return f"Invalid parameter '{location}': {message}" if location else message


__all__ = [
    "KNOWN_PARAMS",
    "MatrixParams",
    "collect_hints",
    "format_validation_error",
    "read_matrix_params",
]
