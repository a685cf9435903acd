"""
AWS Lambda handler for the Station Commission API.

This is the production entry point for AWS Lambda deployments.
For local development, use main.py (Flask app) instead.
"""

import base64
import json
import logging
import os
import re

from commission_engine import build_service
from commission_engine.errors import CommissionEngineError, http_status_for
from commission_engine.models import Caller

# Configure logging
logger = logging.getLogger()
logger.setLevel(logging.INFO)

# Environment (dev, staging, prod)
ENVIRONMENT = os.environ.get("ENVIRONMENT", "dev")

# Initialize service (reused across warm invocations), seeded from COMMISSION_SEED_FILE
service = build_service()

# CORS headers for API Gateway
CORS_HEADERS = {
    "Content-Type": "application/json",
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Headers": "Content-Type,Authorization,X-User-Role,X-User-Id,X-OMC-Id,X-Dealer-Id,X-Station-Id",
    "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
}

ADJUSTMENT_RULES_PATH = "/commissions/adjustment-rules"
RECORD_ACTION_PATH = re.compile(r"^/commissions/([^/]+)/(pay|approve|cancel|receipt)$")


def lambda_handler(event, context):
    """
    Main Lambda entry point.

    Handles API Gateway events for:
    - GET /health, GET /api
    - POST /commissions/calculate
    - GET /commissions, /commissions/stats, /commissions/progressive
    - POST /commissions/{id}/pay|approve|cancel|receipt
    - GET, POST /commissions/adjustment-rules
    - OPTIONS (CORS preflight)
    """
    # Handle CORS preflight
    http_method = event.get("httpMethod") or event.get("requestContext", {}).get("http", {}).get("method", "")
    if http_method == "OPTIONS":
        return {"statusCode": 200, "headers": CORS_HEADERS, "body": ""}

    # Get path (supports both REST API and HTTP API formats)
    path = event.get("path") or event.get("rawPath", "")

    if path == "/health" and http_method == "GET":
        return handle_health()
    if path == "/api" and http_method == "GET":
        return handle_api_info()

    params = event.get("queryStringParameters") or {}

    if path == "/commissions/calculate" and http_method == "POST":
        return handle_operation(event, lambda caller: service.calculate_from_dict(parse_body(event), caller))
    if path == "/commissions" and http_method == "GET":
        return handle_operation(event, lambda caller: service.list_from_dict(params, caller))
    if path == "/commissions/stats" and http_method == "GET":
        return handle_operation(event, lambda caller: service.stats_from_dict(params, caller))
    if path == "/commissions/progressive" and http_method == "GET":
        return handle_operation(event, lambda caller: service.progressive_from_dict(params, caller))

    if path == ADJUSTMENT_RULES_PATH and http_method == "GET":
        return handle_operation(event, lambda caller: service.rules_from_dict(params, caller))
    if path == ADJUSTMENT_RULES_PATH and http_method == "POST":
        return handle_operation(event, lambda caller: service.create_rule_from_dict(parse_body(event), caller))

    match = RECORD_ACTION_PATH.match(path)
    if match and http_method == "POST":
        commission_id, action = match.groups()
        return handle_operation(event, lambda caller: record_action(commission_id, action, event, caller))

    return response(404, {"error": "Not found", "path": path})


def record_action(commission_id, action, event, caller):
    if action == "pay":
        return service.pay_from_dict(commission_id, parse_body(event), caller)
    if action == "approve":
        return service.approve_from_dict(commission_id, caller)
    if action == "cancel":
        return service.cancel_from_dict(commission_id, parse_body(event), caller)
    return service.receipt_from_dict(commission_id, parse_body(event), caller)


def handle_health():
    """Health check endpoint."""
    return response(200, {"status": "healthy", "environment": ENVIRONMENT})


def handle_api_info():
    """API information endpoint."""
    return response(
        200,
        {
            "status": "ok",
            "message": "Station Commission API",
            "version": "1.0",
            "environment": ENVIRONMENT,
            "runtime": "AWS Lambda",
            "endpoints": {
                "calculate": "/commissions/calculate [POST]",
                "list": "/commissions [GET]",
                "stats": "/commissions/stats [GET]",
                "progressive": "/commissions/progressive [GET]",
                "pay": "/commissions/{id}/pay [POST]",
                "approve": "/commissions/{id}/approve [POST]",
                "cancel": "/commissions/{id}/cancel [POST]",
                "receipt": "/commissions/{id}/receipt [POST]",
                "adjustment_rules": "/commissions/adjustment-rules [GET, POST]",
                "health": "/health [GET]",
            },
        },
    )


def parse_body(event) -> dict:
    """JSON body as a dict. An empty body is an empty payload."""
    body = event.get("body") or ""
    if not isinstance(body, str):
        return body
    if not body:
        return {}
    # Handle base64 encoded body (API Gateway)
    if event.get("isBase64Encoded"):
        body = base64.b64decode(body).decode("utf-8")
    return json.loads(body)


def handle_operation(event, operation):
    """Resolve the caller, run the operation and map failures to status codes."""
    try:
        caller = Caller.from_headers(event.get("headers") or {})
        result = operation(caller)
        return response(200, result)

    except json.JSONDecodeError as e:
        logger.error(f"JSON parse error: {str(e)}")
        return response(400, {"error": f"Invalid JSON: {str(e)}", "status": "failed"})

    except CommissionEngineError as e:
        logger.error(f"{type(e).__name__}: {str(e)}")
        return response(http_status_for(e), {"error": str(e), "status": e.status})

    except Exception as e:
        # Unexpected errors - log details but return generic message to avoid information disclosure
        logger.error(f"Unexpected processing error: {str(e)}", exc_info=True)
        return response(500, {"error": "An unexpected error occurred during processing", "status": "failed"})


def response(status_code, body):
    return {"statusCode": status_code, "headers": CORS_HEADERS, "body": json.dumps(body)}
