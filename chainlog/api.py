"""Flask HTTP surface: add an entry, read the newest entries, health and stats."""

import logging

from flask import Flask, jsonify, request

from chainlog.errors import (
    ChainlogError,
    ConnectivityFailure,
    ErrorKind,
    MalformedInput,
)
from chainlog.pipeline import IngestionPipeline
from chainlog.runner import LoopThread
from chainlog.service import LedgerService

logger = logging.getLogger(__name__)

_STATUS_BY_KIND = {
    ErrorKind.MALFORMED_INPUT: 400,
    ErrorKind.CONNECTIVITY: 503,
    ErrorKind.BULK_READ_EXHAUSTED: 503,
    ErrorKind.QUOTA_EXHAUSTED: 429,
}


def _error_response(title: str, exc: ChainlogError):
    status = _STATUS_BY_KIND.get(exc.kind, 500)
    message = str(exc)
    if isinstance(exc, ConnectivityFailure):
        message = "Cannot connect to the ledger. Please make sure the ledger node is running."
    return jsonify({"error": title, "kind": exc.kind.value, "message": message}), status


def create_app(
    service: LedgerService,
    runner: LoopThread,
    pipeline: IngestionPipeline | None = None,
    request_timeout: float = 60.0,
) -> Flask:
    """Flask application factory. ``runner`` executes the async service calls."""
    app = Flask(__name__)
    app.config["components"] = {
        "service": service,
        "runner": runner,
        "pipeline": pipeline,
    }

    @app.route("/add-log", methods=["POST"])
    def add_log():
        body = request.get_json(silent=True) or {}
        message = body.get("message") if isinstance(body, dict) else None
        try:
            receipt = runner.call(service.submit(message), timeout=request_timeout)
        except MalformedInput as e:
            return jsonify({"error": "Invalid request", "kind": e.kind.value, "message": str(e)}), 400
        except ChainlogError as e:
            logger.error("Error adding log: %s", e)
            return _error_response("Failed to add log", e)
        return jsonify({
            "success": True,
            "index": receipt.index,
            "confirmationId": receipt.confirmation_id,
            "message": "Log entry added successfully",
        })

    def get_logs():
        limit = request.args.get("limit", None, type=int)
        try:
            result = runner.call(service.retrieve_latest(limit), timeout=request_timeout)
        except ChainlogError as e:
            logger.error("Error retrieving logs: %s", e)
            return _error_response("Failed to retrieve logs", e)
        body = result.to_dict()
        body["success"] = True
        return jsonify(body)

    app.add_url_rule("/logs", "logs", get_logs)
    app.add_url_rule("/api/logs", "api_logs", get_logs)
    app.add_url_rule("/get", "get", get_logs)

    @app.route("/health")
    def health():
        status = service.health_status()
        return jsonify({
            "status": "healthy" if status["reachable"] else "unhealthy",
            "reachable": status["reachable"],
        })

    @app.route("/stats")
    def stats():
        if pipeline is None:
            return jsonify({"error": "No ingestion pipeline attached"}), 404
        return jsonify(pipeline.stats())

    return app


def run_api(app: Flask, host: str, port: int):
    app.run(host=host, port=port, use_reloader=False, threaded=True)
