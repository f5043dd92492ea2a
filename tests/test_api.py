import json

from tests.conftest import OTHER_USER_ID, failed_completion

BASE = "/api/v1/conversational-workflow"


def start(test_client, headers, **overrides):
    body = {"title": "Portal de Pagos", "description": "Pagos en línea", "epic_content": "Como cliente quiero pagar"}
    body.update(overrides)
    response = test_client.post(BASE, json=body, headers=headers)
    assert response.status_code == 201
    return response.json()


def test_health_check(test_client):
    """Test health check endpoint"""
    response = test_client.get("/api/v1/health")
    assert response.status_code == 200

    data = response.json()
    assert data["status"] == "healthy"
    assert data["environment"] == "test"
    assert "timestamp" in data
    assert "version" in data


def test_readiness_check(test_client):
    """Test readiness check endpoint"""
    response = test_client.get("/api/v1/health/readiness")
    assert response.status_code == 200

    data = response.json()
    assert data["status"] == "ready"
    assert data["checks"]["database"] == "ok"


def test_missing_user_header_is_rejected(test_client):
    response = test_client.post(BASE, json={"title": "X"})
    assert response.status_code == 401


def test_start_requires_title(test_client, headers):
    response = test_client.post(BASE, json={"description": "sin título"}, headers=headers)
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"

    response = test_client.post(BASE, json={"title": "  "}, headers=headers)
    assert response.status_code == 400


def test_chat_flow(test_client, headers):
    analysis = start(test_client, headers)
    assert analysis["status"] == "IN_PROGRESS"
    assert len(analysis["messages"]) == 1

    response = test_client.post(
        f"{BASE}/{analysis['id']}/chat",
        json={"content": "Necesito que el usuario pueda registrarse"},
        headers=headers,
    )
    assert response.status_code == 200
    turn = response.json()
    assert turn["phase"] == "FUNCTIONAL"
    assert "He registrado" in turn["ai_response"]
    assert turn["readiness"]["ready"] is False

    status = test_client.get(f"{BASE}/{analysis['id']}/status", headers=headers).json()
    assert len(status["messages"]) == 3

    readiness = test_client.get(f"{BASE}/{analysis['id']}/readiness", headers=headers).json()
    assert "usuarios y roles" not in readiness["missing_aspects"]


def test_chat_accepts_instruction_payload(test_client, headers):
    analysis = start(test_client, headers)
    response = test_client.post(
        f"{BASE}/{analysis['id']}/chat",
        json={"instruction": "Ajusta el alcance", "requirement": "Solo pagos con tarjeta"},
        headers=headers,
    )
    assert response.status_code == 200

    status = test_client.get(f"{BASE}/{analysis['id']}/status", headers=headers).json()
    user_message = status["messages"][1]["content"]
    assert user_message.startswith("Ajusta el alcance")
    assert "Requerimiento editado:\nSolo pagos con tarjeta" in user_message


def test_empty_chat_payload_is_rejected(test_client, headers):
    analysis = start(test_client, headers)
    response = test_client.post(f"{BASE}/{analysis['id']}/chat", json={}, headers=headers)
    assert response.status_code == 400


def test_error_mapping(test_client, headers):
    analysis = start(test_client, headers)

    response = test_client.get(f"{BASE}/unknown/status", headers=headers)
    assert response.status_code == 404
    assert response.json()["error"]["code"] == "NOT_FOUND"

    response = test_client.get(f"{BASE}/{analysis['id']}/status", headers={"X-User-Id": OTHER_USER_ID})
    assert response.status_code == 403

    assert test_client.post(f"{BASE}/{analysis['id']}/complete", headers=headers).status_code == 200
    response = test_client.post(f"{BASE}/{analysis['id']}/chat", json={"content": "hola"}, headers=headers)
    assert response.status_code == 409
    assert response.json()["error"]["context"]["operation"] == "process_user_message"


def test_lifecycle_routes(test_client, headers):
    analysis = start(test_client, headers)
    analysis_id = analysis["id"]

    assert test_client.post(f"{BASE}/{analysis_id}/pause", headers=headers).json()["status"] == "PAUSED"
    assert test_client.post(f"{BASE}/{analysis_id}/resume", headers=headers).json()["status"] == "IN_PROGRESS"
    assert test_client.post(f"{BASE}/{analysis_id}/complete", headers=headers).json()["status"] == "COMPLETED"

    reopened = test_client.post(f"{BASE}/{analysis_id}/reopen", json={"reason": "faltan datos"}, headers=headers)
    assert reopened.json()["status"] == "IN_PROGRESS"

    patched = test_client.patch(f"{BASE}/{analysis_id}", json={"title": "Pagos v2"}, headers=headers)
    assert patched.json()["title"] == "Pagos v2"

    assert test_client.post(f"{BASE}/{analysis_id}/archive", headers=headers).json()["status"] == "ARCHIVED"

    listed = test_client.get(BASE, params={"status": "ARCHIVED"}, headers=headers).json()
    assert [a["id"] for a in listed] == [analysis_id]


def test_start_on_existing_route(test_client, headers):
    analysis = start(test_client, headers)
    response = test_client.post(f"{BASE}/{analysis['id']}/start", headers=headers)
    assert response.status_code == 200
    assert response.json()["already_started"] is True


def test_summit_routes(test_client, headers):
    analysis = start(test_client, headers)
    summit_url = f"{BASE}/{analysis['id']}/summit"

    assert test_client.get(summit_url, headers=headers).status_code == 404
    assert test_client.patch(summit_url, json={"summary_text": "x"}, headers=headers).status_code == 404

    created = test_client.post(
        summit_url,
        json={"refined_requirements": "[\"Pagar\"]", "business_rules": ["Monto máximo 5000"]},
        headers=headers,
    )
    assert created.status_code == 200

    updated = test_client.patch(summit_url, json={"summary_text": "Resumen"}, headers=headers).json()
    assert updated["summary_text"] == "Resumen"
    assert updated["business_rules"] == ["Monto máximo 5000"]
    assert updated["refined_requirements"] == "[\"Pagar\"]"


def test_chat_upstream_failure_is_retryable(settings, container, fake_ai, headers):
    from fastapi.testclient import TestClient

    from main import create_app

    settings.chat_ai_replies = True
    client = TestClient(create_app(settings, container))
    analysis = start(client, headers)
    fake_ai.script(failed_completion(timed_out=True))

    response = client.post(f"{BASE}/{analysis['id']}/chat", json={"content": "Necesito reportes"}, headers=headers)
    assert response.status_code == 503
    assert response.json()["error"]["retryable"] is True

    fake_ai.script("¿Qué reportes necesitas?")
    retried = client.post(f"{BASE}/{analysis['id']}/retry", headers=headers)
    assert retried.status_code == 200
    assert retried.json()["ai_response"] == "¿Qué reportes necesitas?"


def test_generate_unknown_source_is_bad_request(test_client, headers):
    response = test_client.post(
        "/api/v1/test-cases/generate", json={"source": "conversational", "id": "missing"}, headers=headers
    )
    assert response.status_code == 400
    assert "not found" in response.json()["error"]["message"]


def test_generate_and_list_test_cases(test_client, headers, fake_ai):
    analysis = start(test_client, headers)
    test_client.post(f"{BASE}/{analysis['id']}/complete", headers=headers)
    cases = [
        {"title": f"Caso {i}", "description": "Valida el pago", "priority": "HIGH", "category": "Funcional"}
        for i in range(1, 13)
    ]
    fake_ai.script(json.dumps(cases))

    response = test_client.post(
        "/api/v1/test-cases/generate", json={"source": "conversational", "id": analysis["id"]}, headers=headers
    )
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert len(body["test_cases"]) == 12

    listed = test_client.get("/api/v1/test-cases", params={"analysis_id": analysis["id"]}, headers=headers)
    assert listed.status_code == 200
    assert len(listed.json()) == 12


def test_generate_unparseable_reply_is_unprocessable(test_client, headers, fake_ai):
    analysis = start(test_client, headers)
    test_client.post(f"{BASE}/{analysis['id']}/complete", headers=headers)
    fake_ai.script("sin JSON")

    response = test_client.post(
        "/api/v1/test-cases/generate", json={"source": "conversational", "id": analysis["id"]}, headers=headers
    )
    assert response.status_code == 422
    assert response.json()["success"] is False
