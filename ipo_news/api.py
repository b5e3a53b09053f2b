"""JSON trigger/read API for the IPO news pipeline."""
from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

from flask import Flask, jsonify, request
from flask_cors import CORS

from crawler.pipelines.store import SCHEDULE_KINDS, StoreUnavailableError
from ipo_news.classifier import classify
from ipo_news.models import CrawlResult, NormalizedRecord, ScheduleStatus
from ipo_news.pipeline import PipelineCoordinator
from ipo_news.settings import configure_logging, load_settings
from ipo_news.status import build_status

logger = logging.getLogger(__name__)


def _record_to_dict(record: NormalizedRecord, status: Optional[ScheduleStatus] = None) -> Dict[str, Any]:
    payload = record.model_dump(mode="json")
    if status is not None:
        payload["status"] = status.label
        payload["urgency"] = status.urgency.value
    return payload


def _crawl_response(result: CrawlResult):
    return jsonify(result.to_dict()), 200 if result.success else 500


def _int_arg(name: str, default: int, maximum: int = 100) -> int:
    try:
        value = int(request.args.get(name, default))
    except (TypeError, ValueError):
        return default
    return max(1, min(value, maximum))


def register_routes(app: Flask, coordinator: PipelineCoordinator) -> None:
    """Register all API routes with the Flask app."""

    @app.errorhandler(StoreUnavailableError)
    def store_unavailable(exc):
        logger.error("Store unavailable while serving %s: %s", request.path, exc)
        return jsonify({"success": False, "error": "Persistence store is unavailable"}), 503

    @app.route("/api/crawl", methods=["POST"])
    def api_crawl():
        payload = request.get_json(silent=True) or {}
        query = payload.get("query") or payload.get("searchQuery")
        logger.info("Received crawl request for %r", query)
        return _crawl_response(coordinator.run_crawl(query))

    @app.route("/api/crawl-schedules", methods=["POST"])
    def api_crawl_schedules():
        logger.info("Received schedule crawl request")
        return _crawl_response(coordinator.crawl_schedules())

    @app.route("/api/news")
    def api_news():
        refresh = request.args.get("refresh", "").lower() in ("1", "true", "yes")
        result = coordinator.headlines(request.args.get("query") or None, refresh=refresh)
        payload = result.to_dict()
        return jsonify(payload), 200 if payload["success"] else 502

    @app.route("/api/articles")
    def api_articles():
        records = coordinator.store.recent(limit=_int_arg("limit", 10))
        return jsonify({"success": True, "data": [_record_to_dict(r) for r in records], "count": len(records)})

    @app.route("/api/calendar")
    def api_calendar():
        kind = request.args.get("filter") or None
        if kind == "all":
            kind = None
        if kind is not None and kind not in SCHEDULE_KINDS:
            return jsonify({"success": False, "error": f"unknown filter '{kind}'"}), 400
        entries = [_record_to_dict(record, status) for record, status in coordinator.calendar(kind)]
        return jsonify({"success": True, "data": entries, "count": len(entries)})

    @app.route("/api/autocomplete")
    def api_autocomplete():
        query = (request.args.get("q") or "").strip()
        names = coordinator.store.suggest(query, limit=_int_arg("limit", 10, maximum=20))
        return jsonify({"success": True, "suggestions": names})

    @app.route("/api/ipo/<int:record_id>")
    def api_ipo_detail(record_id: int):
        record = coordinator.store.get(record_id)
        if record is None:
            return jsonify({"success": False, "error": "not found"}), 404
        related = coordinator.store.related(record, limit=5)
        return jsonify(
            {
                "success": True,
                "data": _record_to_dict(record, classify(record.schedule)),
                "related": [_record_to_dict(r) for r in related],
            }
        )

    @app.route("/api/status")
    def api_status():
        return jsonify(build_status(coordinator))


def create_app(coordinator: Optional[PipelineCoordinator] = None) -> Flask:
    app = Flask(__name__)
    CORS(app)
    if coordinator is None:
        settings = load_settings()
        configure_logging(settings.log_level)
        coordinator = PipelineCoordinator(settings)
    register_routes(app, coordinator)
    return app


def main() -> None:  # pragma: no cover
    host = os.getenv("HOST", "127.0.0.1")
    port = int(os.getenv("PORT", 5000))
    debug = os.getenv("DEBUG", "False").lower() == "true"
    create_app().run(host=host, port=port, debug=debug, threaded=True)


if __name__ == "__main__":  # pragma: no cover
    main()
