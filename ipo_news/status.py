"""
Status/health payload for the IPO news pipeline (sources, cache, store, config).
Credentials are reported only as configured/not configured.
"""
from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Dict

from crawler.infra.security import is_configured_key, redact_secrets
from crawler.pipelines.store import StoreUnavailableError
from ipo_news.models import HealthStatus
from ipo_news.pipeline import PipelineCoordinator


def _health_to_dict(status: HealthStatus) -> Dict[str, Any]:
    return {
        "name": status.name,
        "healthy": status.healthy,
        "last_error": status.last_error,
        "last_success": status.last_success.isoformat() if status.last_success else None,
        "items_last_fetch": status.items_last_fetch,
        "latency_ms": status.latency_ms,
        "extra": status.extra,
    }


def _store_status(coordinator: PipelineCoordinator) -> Dict[str, Any]:
    try:
        coordinator.store.ping()
        return {"reachable": True, "records": coordinator.store.count()}
    except StoreUnavailableError as exc:
        return {"reachable": False, "error": str(exc)}


def build_status(coordinator: PipelineCoordinator) -> Dict[str, Any]:
    settings = coordinator.settings
    health = [_health_to_dict(entry) for entry in coordinator.get_health()]
    return {
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "pipeline": {
            "state": coordinator.state.value,
            "health": health,
            "source_order": [adapter.name for adapter in coordinator.adapters],
            "fetch_limit": settings.fetch_limit,
            "default_query": settings.default_query,
        },
        "store": _store_status(coordinator),
        "cache": coordinator.cache.snapshot(),
        "config": {
            "database_url": redact_secrets(settings.database_url),
            "gemini_model": settings.gemini_model,
            "gemini_configured": is_configured_key(settings.gemini_api_key),
            "fetch_workers": settings.fetch_workers,
            "article_workers": settings.article_workers,
            "cache_ttl_seconds": settings.cache_ttl_seconds,
        },
    }
