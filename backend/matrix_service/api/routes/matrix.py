from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.concurrency import run_in_threadpool

from ...circuit_breaker import CircuitOpenError
from ...contracts import ErrorResponse, MatrixResponse
from ...logging_config import get_logger
from ...matrix import MatrixValidationError, compute_matrix
from ...metrics import matrix_elements, matrix_requests_total
from ...router import Router, RouterUnavailableError, get_router
from ...serializers import matrix_to_dict, took_headers
from ...settings import settings
from ..params import MultiValueParams, collect_hints, format_validation_error, read_matrix_params

router = APIRouter(tags=["matrix"])
logger = get_logger(__name__)

MATRIX_RESPONSES = {
    400: {"model": ErrorResponse, "description": "Invalid or inconsistent parameters"},
    503: {"model": ErrorResponse, "description": "Routing engine unavailable"},
}


def _reject(detail: str) -> HTTPException:
    matrix_requests_total.labels(outcome="rejected").inc()
    return HTTPException(status_code=400, detail=detail)


async def _matrix_response(params: MultiValueParams, routing: Router) -> JSONResponse:
    try:
        points, ids, options = read_matrix_params(params).to_request(collect_hints(params))
    except ValidationError as exc:
        raise _reject(format_validation_error(exc)) from exc
    except MatrixValidationError as exc:
        raise _reject(str(exc)) from exc

    try:
        result = await run_in_threadpool(
            compute_matrix,
            points,
            ids,
            options,
            routing,
            max_workers=settings.MATRIX_MAX_WORKERS,
        )
    except MatrixValidationError as exc:
        raise _reject(str(exc)) from exc
    except (RouterUnavailableError, CircuitOpenError) as exc:
        matrix_requests_total.labels(outcome="unavailable").inc()
        logger.warning("matrix_router_unavailable", points=len(points), error=str(exc))
        raise HTTPException(status_code=503, detail=f"Routing engine unavailable: {exc}") from exc

    matrix_requests_total.labels(outcome="ok").inc()
    matrix_elements.observe(len(result.elements))
    return JSONResponse(content=matrix_to_dict(result), headers=took_headers(result))


@router.get("/matrix", response_model=MatrixResponse, responses=MATRIX_RESPONSES)
async def matrix_get(request: Request, routing: Router = Depends(get_router)):
    """
    Distance/time matrix between the given points.

    Repeat `point=lat,lon` and `id=...` once per point. Every ordered pair of
    points with different ids is routed; unroutable pairs are omitted.
    """
    return await _matrix_response(request.query_params, routing)


@router.post("/matrix", response_model=MatrixResponse, responses=MATRIX_RESPONSES)
async def matrix_post(request: Request, routing: Router = Depends(get_router)):
    """Same as GET /matrix with the parameters sent as a form body."""
    form = await request.form()
    return await _matrix_response(form, routing)


__all__ = ["router"]
