#!/usr/bin/env python3
"""
Live Enricher HTTP server.

Exposes the enrichment engine as a small JSON API so a chat backend can ask,
per user query, whether fresh external data is needed and get back a
prompt-ready context block when it is.

Endpoints:
- GET  /                 health check and version
- POST /api/enrich       {"query": ..., "context": {...}} -> payload + context_text
- GET  /api/providers    live source metadata
- GET  /api/cache/stats  engine and cache counters
- POST /api/cache/clear  drop every cached payload
"""

import logging
import os
import time
from typing import Optional

from flask import Blueprint, Flask, abort, current_app, g, jsonify, request

from plugin_base.common import EnrichmentContext
from routing import EnrichmentEngine, is_degraded
from version import VERSION

# Configure logging
logging.basicConfig(
    level=os.environ.get("LOG_LEVEL", "INFO").upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

MAX_QUERY_LENGTH = 2000

api = Blueprint("api", __name__)


def get_engine() -> EnrichmentEngine:
    return current_app.extensions["enrichment_engine"]


def get_client_ip(req) -> Optional[str]:
    """Client address, honouring the first X-Forwarded-For hop."""
    forwarded = req.headers.get("X-Forwarded-For", "")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    return req.headers.get("X-Real-IP") or req.remote_addr


# ============================================================================
# Request Logging Middleware
# ============================================================================


@api.before_app_request
def log_request():
    """Log all incoming requests."""
    g.start_time = time.time()
    logger.info(f">>> {request.method} {request.path}")


@api.after_app_request
def log_response(response):
    """Log response status and timing."""
    elapsed_ms = int((time.time() - getattr(g, "start_time", time.time())) * 1000)
    logger.info(f"<<< {response.status_code} {request.path} ({elapsed_ms}ms)")
    return response


# ============================================================================
# Error Handlers - Return JSON instead of HTML for all errors
# ============================================================================


@api.app_errorhandler(400)
def bad_request(e):
    """Handle 400 Bad Request errors."""
    return jsonify(
        {"error": str(e.description) if hasattr(e, "description") else "Bad request"}
    ), 400


@api.app_errorhandler(404)
def not_found(e):
    """Handle 404 Not Found errors."""
    return jsonify({"error": f"Endpoint not found: {request.path}"}), 404


@api.app_errorhandler(405)
def method_not_allowed(e):
    """Handle 405 Method Not Allowed errors."""
    return jsonify(
        {"error": f"Method {request.method} not allowed for {request.path}"}
    ), 405


@api.app_errorhandler(500)
def internal_error(e):
    """Handle 500 Internal Server errors."""
    logger.exception("Internal server error")
    return jsonify({"error": "Internal server error"}), 500


# ============================================================================
# Endpoints
# ============================================================================


@api.route("/", methods=["GET"])
def health_check():
    """Health check endpoint."""
    return jsonify({"status": "ok", "service": "live-enricher", "version": VERSION})


@api.route("/api/enrich", methods=["POST"])
def enrich():
    """Classify a query and return live context for it."""
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        abort(400, description="Request body must be a JSON object")

    query = data.get("query")
    if not isinstance(query, str):
        abort(400, description="'query' must be a string")
    if len(query) > MAX_QUERY_LENGTH:
        abort(400, description=f"'query' is longer than {MAX_QUERY_LENGTH} characters")

    raw_context = data.get("context") or {}
    if not isinstance(raw_context, dict):
        abort(400, description="'context' must be an object")
    try:
        context = EnrichmentContext.from_dict(raw_context)
    except (TypeError, ValueError) as e:
        abort(400, description=f"Invalid context: {e}")
    if not context.client_ip:
        context.client_ip = get_client_ip(request)

    engine = get_engine()
    payload = engine.enrich_sync(query, context)

    response = payload.to_dict()
    response["context_text"] = engine.context_text(payload)
    response["degraded"] = is_degraded(payload)
    return jsonify(response)


@api.route("/api/providers", methods=["GET"])
def list_providers():
    """List live sources and whether each one is active."""
    return jsonify({"providers": get_engine().list_sources()})


@api.route("/api/cache/stats", methods=["GET"])
def cache_stats():
    """Engine counters and cache statistics."""
    return jsonify(get_engine().get_stats())


@api.route("/api/cache/clear", methods=["POST"])
def clear_cache():
    """Drop every cached payload."""
    removed = get_engine().cache.clear()
    return jsonify({"cleared": removed})


def create_app(engine: Optional[EnrichmentEngine] = None) -> Flask:
    """
    Create the Flask application.

    Args:
        engine: Engine to serve; one is built from the environment if omitted
    """
    application = Flask(__name__)
    application.extensions["enrichment_engine"] = engine or EnrichmentEngine()
    application.register_blueprint(api)
    return application


if __name__ == "__main__":
    port = int(os.environ.get("PORT", os.environ.get("FLASK_PORT", 8090)))
    host = os.environ.get("HOST", "0.0.0.0")
    debug = os.environ.get("DEBUG", "false").lower() == "true"

    app = create_app()
    engine = app.extensions["enrichment_engine"]

    logger.info("=" * 60)
    logger.info(f"Live Enricher v{VERSION}")
    logger.info("=" * 60)
    logger.info(f"API server:   http://{host}:{port}")
    logger.info(f"Live sources: {', '.join(engine.sources) or 'none'}")
    logger.info("=" * 60)

    app.run(host=host, port=port, debug=debug, threaded=True)
