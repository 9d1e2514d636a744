from __future__ import annotations

from fastapi import FastAPI
from fastapi.testclient import TestClient

from carton_mes.domain_errors import DomainError, InvalidTransition, PersistenceFailure
from carton_mes.problem_details import build_problem_details_response, install_problem_details_handler


def test_problem_details_payload_contains_stable_code_and_rfc7807_fields() -> None:
    response = build_problem_details_response(
        InvalidTransition(
            code="STEP_COMPLETION_BLOCKED",
            message="earlier steps are not completed",
            details={"step_no": 3},
        )
    )

    assert response.status_code == 409
    assert response.media_type == "application/problem+json"

    body = response.body.decode("utf-8")
    assert '"type":"https://api.carton-mes.local/problems/step_completion_blocked"' in body
    assert '"title":"Conflict"' in body
    assert '"status":409' in body
    assert '"detail":"earlier steps are not completed"' in body
    assert '"code":"STEP_COMPLETION_BLOCKED"' in body
    assert '"details":{"step_no":3}' in body


def test_problem_details_omits_details_when_none() -> None:
    response = build_problem_details_response(
        PersistenceFailure(code="STEP_COMPLETION_FAILED", message="could not record completion")
    )

    body = response.body.decode("utf-8")
    assert response.status_code == 500
    assert '"title":"Internal Server Error"' in body
    assert '"details"' not in body


def test_installed_handler_maps_domain_error_to_problem_details() -> None:
    app = FastAPI()
    install_problem_details_handler(app)

    @app.get("/boom")
    def _boom():
        raise DomainError(
            code="ROUTE_PROBLEM",
            http_status=409,
            message="route failed",
            details={"source": "test"},
        )

    client = TestClient(app)
    response = client.get("/boom")

    assert response.status_code == 409
    assert response.headers["content-type"].startswith("application/problem+json")
    payload = response.json()
    assert payload["code"] == "ROUTE_PROBLEM"
    assert payload["detail"] == "route failed"
