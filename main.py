from flask import Flask, request, jsonify
from flask_cors import CORS
from commission_engine import CommissionService, build_service
from commission_engine.errors import CommissionEngineError, http_status_for
from commission_engine.models import Caller
import os
import logging

# Configure logging
logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


def create_app(service: CommissionService | None = None) -> Flask:
    app = Flask(__name__)

    # Enable CORS for all routes (dashboard front-end calls the API directly)
    CORS(app)

    app.config["COMMISSION_SERVICE"] = service or build_service()

    def run(operation):
        """Resolve the caller, run the operation and map engine errors to HTTP."""
        try:
            caller = Caller.from_headers(request.headers)
            return jsonify(operation(app.config["COMMISSION_SERVICE"], caller)), 200

        except CommissionEngineError as e:
            logger.error(f"{type(e).__name__}: {str(e)}")
            return jsonify({
                "error": str(e),
                "status": e.status
            }), http_status_for(e)

        except Exception as e:
            # Unexpected errors
            logger.error(f"Processing error: {str(e)}", exc_info=True)
            return jsonify({
                "error": "An unexpected error occurred during processing",
                "status": "failed"
            }), 500

    @app.route("/api", methods=["GET"])
    def api_info():
        """API information endpoint"""
        return jsonify({
            "status": "ok",
            "message": "Station Commission API",
            "version": "1.0",
            "endpoints": {
                "calculate": "/commissions/calculate [POST]",
                "list": "/commissions [GET]",
                "stats": "/commissions/stats [GET]",
                "progressive": "/commissions/progressive [GET]",
                "pay": "/commissions/<id>/pay [POST]",
                "approve": "/commissions/<id>/approve [POST]",
                "cancel": "/commissions/<id>/cancel [POST]",
                "receipt": "/commissions/<id>/receipt [POST]",
                "adjustment_rules": "/commissions/adjustment-rules [GET, POST]",
                "health": "/health [GET]"
            }
        }), 200

    @app.route("/health", methods=["GET"])
    def health():
        """Health check for monitoring"""
        return jsonify({"status": "healthy"}), 200

    @app.route("/commissions/calculate", methods=["POST"])
    def calculate():
        data = request.get_json(silent=True) or {}
        return run(lambda service, caller: service.calculate_from_dict(data, caller))

    @app.route("/commissions", methods=["GET"])
    def list_commissions():
        params = request.args.to_dict()
        return run(lambda service, caller: service.list_from_dict(params, caller))

    @app.route("/commissions/stats", methods=["GET"])
    def stats():
        params = request.args.to_dict()
        return run(lambda service, caller: service.stats_from_dict(params, caller))

    @app.route("/commissions/progressive", methods=["GET"])
    def progressive():
        params = request.args.to_dict()
        return run(lambda service, caller: service.progressive_from_dict(params, caller))

    @app.route("/commissions/adjustment-rules", methods=["GET"])
    def list_adjustment_rules():
        params = request.args.to_dict()
        return run(lambda service, caller: service.rules_from_dict(params, caller))

    @app.route("/commissions/adjustment-rules", methods=["POST"])
    def create_adjustment_rule():
        data = request.get_json(silent=True) or {}
        return run(lambda service, caller: service.create_rule_from_dict(data, caller))

    @app.route("/commissions/<commission_id>/pay", methods=["POST"])
    def pay(commission_id):
        data = request.get_json(silent=True) or {}
        return run(lambda service, caller: service.pay_from_dict(commission_id, data, caller))

    @app.route("/commissions/<commission_id>/approve", methods=["POST"])
    def approve(commission_id):
        return run(lambda service, caller: service.approve_from_dict(commission_id, caller))

    @app.route("/commissions/<commission_id>/cancel", methods=["POST"])
    def cancel(commission_id):
        data = request.get_json(silent=True) or {}
        return run(lambda service, caller: service.cancel_from_dict(commission_id, data, caller))

    @app.route("/commissions/<commission_id>/receipt", methods=["POST"])
    def receipt(commission_id):
        data = request.get_json(silent=True) or {}
        return run(lambda service, caller: service.receipt_from_dict(commission_id, data, caller))

    return app


# WSGI entry point (gunicorn main:app)
app = create_app()

if __name__ == "__main__":
    port = int(os.environ.get("PORT", 8080))
    app.run(host="0.0.0.0", port=port, debug=False)
