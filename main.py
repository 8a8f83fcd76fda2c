from datetime import date
import logging

from flask import Flask, jsonify, request
from flask_cors import CORS
from werkzeug.exceptions import HTTPException

from billing import BillingService, create_store
from billing.config import Settings
from billing.errors import BillingError, ConflictError, ValidationError
from billing.identity import Actor, require_company_admin, require_platform_admin
from billing.output import OutputBuilder

settings = Settings.from_env()

# Configure logging
logging.basicConfig(level=getattr(logging, settings.log_level, logging.INFO))
logger = logging.getLogger(__name__)


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data:
        raise ValidationError("No input data provided")
    return data


def _actor():
    return Actor.from_headers(request.headers)


def _parse_date(value):
    if value is None or value == "":
        return None
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid due_date: {value!r}. Expected YYYY-MM-DD") from None


def create_app(service: BillingService = None, app_settings: Settings = None) -> Flask:
    app_settings = app_settings or settings
    service = service or BillingService(create_store(app_settings.db_path), app_settings)
    output = OutputBuilder()

    app = Flask(__name__)
    app.config["BILLING_SERVICE"] = service

    # Enable CORS for all routes (the pricing page and the admin console call the API)
    CORS(app, origins=app_settings.cors_origins)

    @app.errorhandler(BillingError)
    def handle_billing_error(e: BillingError):
        logger.error(f"{type(e).__name__}: {str(e)}")
        body = {"error": str(e), "status": e.status}
        if isinstance(e, ConflictError):
            body["blocking_company_ids"] = e.blocking_company_ids
        return jsonify(body), e.http_status

    @app.errorhandler(Exception)
    def handle_unexpected(e: Exception):
        if isinstance(e, HTTPException):
            return jsonify({"error": e.description, "status": "failed"}), e.code
        # Log details but return a generic message to avoid information disclosure
        logger.error(f"Unexpected error: {str(e)}", exc_info=True)
        return jsonify({"error": "An unexpected error occurred", "status": "failed"}), 500

    @app.route("/api", methods=["GET"])
    def api_info():
        """API information endpoint"""
        return jsonify({
            "status": "ok",
            "message": "SecureCommand Billing API",
            "version": "1.0",
            "endpoints": {
                "estimate": "/estimate [POST]",
                "pricing_settings": "/settings/pricing [GET, PUT]",
                "overview": "/billing/overview [GET]",
                "company_pricing": "/companies/<id>/pricing [PUT]",
                "company_plan": "/companies/<id>/plan [PUT]",
                "invoice_draft": "/companies/<id>/invoice-draft [GET]",
                "invoices": "/invoices [GET, POST]",
                "invoice_status": "/invoices/<id>/{paid,overdue,reopen} [POST]",
                "invoice_payments": "/invoices/<id>/payments [GET, POST]",
                "plans": "/plans [GET, POST], /plans/<id> [GET, PUT, DELETE]",
                "health": "/health [GET]",
            },
        }), 200

    @app.route("/health", methods=["GET"])
    def health():
        """Health check for monitoring"""
        return jsonify({"status": "healthy", "environment": app_settings.environment}), 200

    @app.route("/estimate", methods=["POST"])
    def estimate():
        """Price quote for the public pricing page. No authentication, no side effects."""
        data = _json_body()
        result = service.estimate(
            data.get("plan_id"),
            data.get("guard_count"),
            data.get("billing_cycle", "monthly"),
        )
        return jsonify(output.estimate(result)), 200

    # -------------------------------------------------------------------------
    # Pricing settings
    # -------------------------------------------------------------------------

    @app.route("/settings/pricing", methods=["GET"])
    def get_pricing_settings():
        require_platform_admin(_actor())
        return jsonify(output.pricing_config(service.get_pricing_config())), 200

    @app.route("/settings/pricing", methods=["PUT"])
    def update_pricing_settings():
        data = _json_body()
        config = service.update_pricing_config(
            data.get("license_fee"),
            data.get("per_guard_fee"),
            actor=_actor(),
        )
        return jsonify(output.pricing_config(config)), 200

    @app.route("/billing/overview", methods=["GET"])
    def billing_overview():
        require_platform_admin(_actor())
        return jsonify(output.billing_overview(service.billing_overview())), 200

    # -------------------------------------------------------------------------
    # Companies
    # -------------------------------------------------------------------------

    @app.route("/companies/<company_id>/billing", methods=["GET"])
    def company_billing(company_id):
        require_company_admin(_actor(), company_id)
        return jsonify(output.company_billing(service.company_billing(company_id))), 200

    @app.route("/companies/<company_id>/pricing", methods=["PUT"])
    def update_company_pricing(company_id):
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise ValidationError("No input data provided")
        company = service.set_company_overrides(
            company_id,
            data.get("custom_license_fee"),
            data.get("custom_per_guard_fee"),
            actor=_actor(),
        )
        return jsonify(output.company(company)), 200

    @app.route("/companies/<company_id>/plan", methods=["PUT"])
    def assign_company_plan(company_id):
        data = request.get_json(silent=True)
        if not isinstance(data, dict):
            raise ValidationError("No input data provided")
        company = service.assign_plan(company_id, data.get("pricing_plan_id"), actor=_actor())
        return jsonify(output.company(company)), 200

    @app.route("/companies/<company_id>/invoice-draft", methods=["GET"])
    def invoice_draft(company_id):
        require_company_admin(_actor(), company_id)
        return jsonify(output.invoice_draft(service.draft_invoice(company_id))), 200

    # -------------------------------------------------------------------------
    # Invoices
    # -------------------------------------------------------------------------

    @app.route("/invoices", methods=["GET"])
    def list_invoices():
        actor = _actor()
        company_id = request.args.get("company_id")
        if actor is None or not actor.is_platform_admin:
            # Company administrators only ever see their own invoices
            company_id = company_id or (actor.company_id if actor else None)
            require_company_admin(actor, company_id)

        limit = request.args.get("limit", 50)
        try:
            limit = int(limit)
        except ValueError:
            raise ValidationError(f"Invalid limit: {limit}") from None

        invoices = service.list_invoices(company_id, request.args.get("status"), limit)
        return jsonify({"invoices": [output.invoice(i) for i in invoices]}), 200

    @app.route("/invoices", methods=["POST"])
    def generate_invoice():
        data = _json_body()
        if not data.get("company_id"):
            raise ValidationError("company_id is required")

        invoice = service.generate_invoice(
            data["company_id"],
            actor=_actor(),
            due_date=_parse_date(data.get("due_date")),
            amount=data.get("amount"),
            description=data.get("description"),
        )
        logger.info(f"Invoice generated: {invoice.invoice_number}")
        return jsonify(output.invoice(invoice)), 201

    @app.route("/invoices/<invoice_id>/paid", methods=["POST"])
    def mark_invoice_paid(invoice_id):
        return jsonify(output.invoice(service.lifecycle.mark_paid(invoice_id, actor=_actor()))), 200

    @app.route("/invoices/<invoice_id>/overdue", methods=["POST"])
    def mark_invoice_overdue(invoice_id):
        return jsonify(output.invoice(service.lifecycle.mark_overdue(invoice_id, actor=_actor()))), 200

    @app.route("/invoices/<invoice_id>/reopen", methods=["POST"])
    def reopen_invoice(invoice_id):
        return jsonify(output.invoice(service.lifecycle.reopen(invoice_id, actor=_actor()))), 200

    @app.route("/invoices/<invoice_id>/payments", methods=["GET"])
    def list_invoice_payments(invoice_id):
        payments = service.lifecycle.payments_for(invoice_id, actor=_actor())
        return jsonify({"payments": [output.payment(p) for p in payments]}), 200

    @app.route("/invoices/<invoice_id>/payments", methods=["POST"])
    def pay_invoice(invoice_id):
        data = _json_body()
        transaction = service.lifecycle.record_payment(invoice_id, data.get("gateway"), actor=_actor())
        return jsonify(output.payment(transaction)), 201

    # -------------------------------------------------------------------------
    # Pricing plans
    # -------------------------------------------------------------------------

    @app.route("/plans", methods=["GET"])
    def list_plans():
        active_only = request.args.get("active", "").lower() in ("1", "true", "yes")
        if not active_only:
            require_platform_admin(_actor())
        return jsonify({"plans": [output.plan(p) for p in service.catalog.list(active_only)]}), 200

    @app.route("/plans", methods=["POST"])
    def create_plan():
        plan = service.catalog.create(_json_body(), actor=_actor())
        return jsonify(output.plan(plan)), 201

    @app.route("/plans/<plan_id>", methods=["GET"])
    def get_plan(plan_id):
        require_platform_admin(_actor())
        return jsonify(output.plan(service.catalog.get(plan_id))), 200

    @app.route("/plans/<plan_id>", methods=["PUT"])
    def update_plan(plan_id):
        plan = service.catalog.update(plan_id, _json_body(), actor=_actor())
        return jsonify(output.plan(plan)), 200

    @app.route("/plans/<plan_id>", methods=["DELETE"])
    def delete_plan(plan_id):
        service.catalog.delete(plan_id, actor=_actor())
        return jsonify({"status": "deleted", "id": plan_id}), 200

    return app


app = create_app()


if __name__ == "__main__":
    app.run(host="0.0.0.0", port=settings.port, debug=False)
