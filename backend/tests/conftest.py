import math
import os
import sys
from pathlib import Path

import pytest
import sentry_sdk
from fastapi.testclient import TestClient

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Disable outbound Sentry calls during tests
sentry_sdk.init = lambda *args, **kwargs: None  # type: ignore[assignment]
os.environ["SENTRY_DSN"] = ""
# Never reach a real routing engine from the test suite
os.environ["OSRM_BASE_URL"] = "http://osrm.test"

from backend.matrix_service.health import health_checker  # noqa: E402
from backend.matrix_service.main import app  # noqa: E402
from backend.matrix_service.router import (  # noqa: E402
    RoutePath,
    RouteResponse,
    RouterUnavailableError,
    get_router,
    osrm_breaker,
)


class StubRouter:
    """Router double returning a fixed distance/time for every pair."""

    def __init__(
        self,
        distance: float = 1234.56789,
        time: int = 98765,
        *,
        supports_elevation: bool = False,
        fail_pairs: set[tuple[str, str]] | None = None,
        unavailable: bool = False,
    ) -> None:
        self.distance = distance
        self.time = time
        self.supports_elevation = supports_elevation
        self.fail_pairs = fail_pairs or set()
        self.unavailable = unavailable
        self.requests = []

    def route(self, request):
        self.requests.append(request)
        if self.unavailable:
            raise RouterUnavailableError("connection refused")
        key = (str(request.points[0]), str(request.points[1]))
        if key in self.fail_pairs:
            return RouteResponse(errors=["Impossible route"])
        return RouteResponse(best=RoutePath(distance=self.distance, time=self.time))


def same_headings(actual, expected) -> bool:
    if len(actual) != len(expected):
        return False
    return all(
        (math.isnan(a) and math.isnan(e)) or a == e for a, e in zip(actual, expected)
    )


@pytest.fixture(scope="session")
def client() -> TestClient:
    return TestClient(app, base_url="http://api.testserver")


@pytest.fixture
def stub_router():
    router = StubRouter()
    app.dependency_overrides[get_router] = lambda: router
    yield router
    app.dependency_overrides.pop(get_router, None)


@pytest.fixture(autouse=True)
def reset_shared_state():
    health_checker.clear_cache()
    osrm_breaker().reset()
    yield
    app.dependency_overrides.clear()
