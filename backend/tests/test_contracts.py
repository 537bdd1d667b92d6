from __future__ import annotations

import pytest
from backend.matrix_service.contracts import MatrixResponse
from backend.matrix_service.matrix import MatrixElement, MatrixResult
from backend.matrix_service.serializers import matrix_to_dict
from pydantic import ValidationError


def test_serialized_matrix_matches_response_model():
    result = MatrixResult(elements=[MatrixElement("A", "B", 12.3456, 789)], took=0.01)
    model = MatrixResponse.model_validate(matrix_to_dict(result))
    assert model.info.took == 10
    assert model.matrixElements[0].idPoint1 == "A"
    assert model.matrixElements[0].distance == 12.346


def test_response_model_requires_took():
    with pytest.raises(ValidationError):
        MatrixResponse.model_validate({"info": {"copyrights": []}, "matrixElements": []})


def test_openapi_documents_both_methods_and_error_codes(client):
    schema = client.get("/openapi.json").json()
    for path in ("/matrix", "/v1/matrix"):
        operations = schema["paths"][path]
        assert set(operations) >= {"get", "post"}
        assert {"200", "400", "503"} <= set(operations["get"]["responses"])
