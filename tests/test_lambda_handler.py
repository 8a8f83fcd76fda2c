"""Tests for AWS Lambda handler."""

import base64
import json

import pytest

import lambda_handler as handler_module
from lambda_handler import lambda_handler


@pytest.fixture
def plan_id(service, plan_input, platform_admin, monkeypatch):
    """Point the handler at a seeded service and return an active plan id."""
    monkeypatch.setattr(handler_module, "service", service)
    return service.catalog.create(plan_input, actor=platform_admin).id


class TestLambdaHandler:
    """Test the Lambda handler routes and responses."""

    def test_health_check(self):
        """GET /health returns healthy status."""
        event = {"httpMethod": "GET", "path": "/health"}
        response = lambda_handler(event, None)

        assert response["statusCode"] == 200
        body = json.loads(response["body"])
        assert body["status"] == "healthy"

    def test_api_info(self):
        """GET /api returns API information."""
        event = {"httpMethod": "GET", "path": "/api"}
        response = lambda_handler(event, None)

        assert response["statusCode"] == 200
        body = json.loads(response["body"])
        assert body["status"] == "ok"
        assert "endpoints" in body

    def test_cors_preflight(self):
        """OPTIONS requests return CORS headers."""
        event = {"httpMethod": "OPTIONS", "path": "/estimate"}
        response = lambda_handler(event, None)

        assert response["statusCode"] == 200
        assert "Access-Control-Allow-Origin" in response["headers"]
        assert "Access-Control-Allow-Methods" in response["headers"]

    def test_not_found(self):
        """Unknown paths return 404."""
        event = {"httpMethod": "GET", "path": "/unknown"}
        response = lambda_handler(event, None)

        assert response["statusCode"] == 404

    def test_estimate_success(self, plan_id):
        """POST /estimate quotes a plan."""
        payload = {"plan_id": plan_id, "guard_count": 10, "billing_cycle": "monthly"}
        event = {"httpMethod": "POST", "path": "/estimate", "body": json.dumps(payload)}
        response = lambda_handler(event, None)

        assert response["statusCode"] == 200
        body = json.loads(response["body"])
        assert body["total"] == "600.00"
        assert body["license_fee"] == "400.00"
        assert body["per_guard_fee"] == "20.00"

    def test_estimate_base64_body(self, plan_id):
        """API Gateway may base64 encode the body."""
        payload = json.dumps({"plan_id": plan_id, "guard_count": 0, "billing_cycle": "yearly"})
        event = {
            "httpMethod": "POST",
            "path": "/estimate",
            "body": base64.b64encode(payload.encode("utf-8")).decode("ascii"),
            "isBase64Encoded": True,
        }
        response = lambda_handler(event, None)

        assert response["statusCode"] == 200
        assert json.loads(response["body"])["total"] == "4000.00"

    def test_estimate_empty_body(self):
        """POST /estimate with empty body returns 400."""
        event = {"httpMethod": "POST", "path": "/estimate", "body": ""}
        response = lambda_handler(event, None)

        assert response["statusCode"] == 400
        body = json.loads(response["body"])
        assert "error" in body

    def test_estimate_invalid_json(self):
        """POST /estimate with invalid JSON returns 400."""
        event = {"httpMethod": "POST", "path": "/estimate", "body": "not valid json"}
        response = lambda_handler(event, None)

        assert response["statusCode"] == 400
        body = json.loads(response["body"])
        assert "error" in body

    def test_estimate_validation_error(self, plan_id):
        """POST /estimate with a negative guard count returns 400."""
        payload = {"plan_id": plan_id, "guard_count": -1}
        event = {"httpMethod": "POST", "path": "/estimate", "body": json.dumps(payload)}
        response = lambda_handler(event, None)

        assert response["statusCode"] == 400
        body = json.loads(response["body"])
        assert body["status"] == "validation_failed"

    def test_estimate_unknown_plan(self, plan_id):
        """Unknown plans return 404."""
        payload = {"plan_id": "missing", "guard_count": 5}
        event = {"httpMethod": "POST", "path": "/estimate", "body": json.dumps(payload)}
        response = lambda_handler(event, None)

        assert response["statusCode"] == 404

    def test_http_api_format(self):
        """Supports HTTP API v2 event format."""
        event = {"requestContext": {"http": {"method": "GET"}}, "rawPath": "/health"}
        response = lambda_handler(event, None)

        assert response["statusCode"] == 200
