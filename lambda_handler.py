"""
AWS Lambda handler for the SecureCommand pricing estimate API.

Serves the public, read-only quote used by the marketing pricing page.
The administrative API runs from main.py (Flask app).
"""

import base64
import json
import logging

from billing import BillingService, create_store
from billing.config import Settings
from billing.errors import BillingError
from billing.output import OutputBuilder

settings = Settings.from_env()

# Configure logging
logger = logging.getLogger()
logger.setLevel(getattr(logging, settings.log_level, logging.INFO))

# Environment (dev, staging, prod)
ENVIRONMENT = settings.environment

# Initialize service (reused across warm invocations)
service = BillingService(create_store(settings.db_path), settings)
output = OutputBuilder()

# CORS headers for API Gateway
CORS_HEADERS = {
    "Content-Type": "application/json",
    "Access-Control-Allow-Origin": settings.cors_origins,
    "Access-Control-Allow-Headers": "Content-Type,Authorization",
    "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
}


def _response(status_code: int, body: dict) -> dict:
    return {"statusCode": status_code, "headers": CORS_HEADERS, "body": json.dumps(body)}


def lambda_handler(event, context):
    """
    Main Lambda entry point.

    Handles API Gateway events for:
    - GET /health
    - GET /api
    - POST /estimate
    - OPTIONS (CORS preflight)
    """
    # Handle CORS preflight
    http_method = event.get("httpMethod") or event.get("requestContext", {}).get("http", {}).get("method", "")
    if http_method == "OPTIONS":
        return {"statusCode": 200, "headers": CORS_HEADERS, "body": ""}

    # Get path (supports both REST API and HTTP API formats)
    path = event.get("path") or event.get("rawPath", "")

    # Route to appropriate handler
    if path == "/health" and http_method == "GET":
        return handle_health()
    elif path == "/estimate" and http_method == "POST":
        return handle_estimate(event)
    elif path == "/api" and http_method == "GET":
        return handle_api_info()
    else:
        return _response(404, {"error": "Not found", "path": path})


def handle_health():
    """Health check endpoint."""
    return _response(200, {"status": "healthy", "environment": ENVIRONMENT})


def handle_api_info():
    """API information endpoint."""
    return _response(200, {
        "status": "ok",
        "message": "SecureCommand Pricing Estimate API",
        "version": "1.0",
        "environment": ENVIRONMENT,
        "runtime": "AWS Lambda",
        "endpoints": {"estimate": "/estimate [POST]", "health": "/health [GET]"},
    })


def handle_estimate(event):
    """Quote a plan for a guard count and billing cycle."""
    try:
        # Parse request body
        body = event.get("body", "")
        if isinstance(body, str):
            if not body:
                return _response(400, {"error": "No input data provided", "status": "failed"})
            # Handle base64 encoded body (API Gateway)
            if event.get("isBase64Encoded"):
                body = base64.b64decode(body).decode("utf-8")
            input_data = json.loads(body)
        else:
            input_data = body

        if not isinstance(input_data, dict):
            return _response(400, {"error": "Request body must be a JSON object", "status": "failed"})

        plan_id = input_data.get("plan_id")
        logger.info(f"Estimating plan: {plan_id}")

        result = service.estimate(
            plan_id,
            input_data.get("guard_count"),
            input_data.get("billing_cycle", "monthly"),
        )

        return _response(200, output.estimate(result))

    except json.JSONDecodeError as e:
        logger.error(f"JSON parse error: {str(e)}")
        return _response(400, {"error": f"Invalid JSON: {str(e)}", "status": "failed"})

    except BillingError as e:
        logger.error(f"{type(e).__name__}: {str(e)}")
        return _response(e.http_status, {"error": str(e), "status": e.status})

    except Exception as e:
        # Unexpected errors - log details but return generic message to avoid information disclosure
        logger.error(f"Unexpected processing error: {str(e)}", exc_info=True)
        return _response(500, {"error": "An unexpected error occurred during processing", "status": "failed"})
