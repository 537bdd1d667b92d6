from __future__ import annotations

from pydantic import BaseModel, Field


class MatrixInfo(BaseModel):
    copyrights: list[str] = Field(default_factory=list)
    took: int = Field(description="Elapsed time for the whole matrix in milliseconds")


class MatrixElementOut(BaseModel):
    idPoint1: str
    idPoint2: str
    distance: float = Field(description="Meters, rounded to 3 decimals")
    time: int = Field(description="Milliseconds")


class MatrixResponse(BaseModel):
    info: MatrixInfo
    matrixElements: list[MatrixElementOut] = Field(default_factory=list)


class ErrorResponse(BaseModel):
    detail: str
