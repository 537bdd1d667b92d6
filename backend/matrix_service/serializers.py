from __future__ import annotations

from typing import Any

from .matrix import MatrixElement, MatrixResult, round_half_up
from .settings import settings

TOOK_HEADER = "X-Matrix-Took"


def element_to_dict(element: MatrixElement) -> dict[str, Any]:
    return {
        "idPoint1": element.id_point1,
        "idPoint2": element.id_point2,
        "distance": round_half_up(element.distance, 3),
        "time": int(element.time),
    }


def matrix_to_dict(result: MatrixResult, copyrights: list[str] | None = None) -> dict[str, Any]:
    # If you rebrand the service keep crediting OpenStreetMap contributors.
    return {
        "info": {
            "copyrights": list(copyrights if copyrights is not None else settings.copyrights),
            "took": result.took_ms,
        },
        "matrixElements": [element_to_dict(element) for element in result.elements],
    }


def took_headers(result: MatrixResult) -> dict[str, str]:
    return {TOOK_HEADER: str(result.took_ms)}


__all__ = ["TOOK_HEADER", "element_to_dict", "matrix_to_dict", "took_headers"]
