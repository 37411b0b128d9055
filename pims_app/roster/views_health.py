from __future__ import annotations

import logging

from django.db import DEFAULT_DB_ALIAS, connections
from django.db.migrations.executor import MigrationExecutor
from django.http import HttpRequest, JsonResponse
from django.views.decorators.http import require_GET

logger = logging.getLogger(__name__)


def _pending_migrations() -> list[str]:
    connection = connections[DEFAULT_DB_ALIAS]
    executor = MigrationExecutor(connection)
    targets = executor.loader.graph.leaf_nodes()
    plan = executor.migration_plan(targets)
    return [f"{migration.app_label}.{migration.name}" for migration, _backwards in plan]


@require_GET
def healthz(_request: HttpRequest) -> JsonResponse:
    return JsonResponse({"status": "ok"})


@require_GET
def readyz(_request: HttpRequest) -> JsonResponse:
    try:
        connections[DEFAULT_DB_ALIAS].ensure_connection()
        pending = _pending_migrations()
    except Exception as exc:
        logger.exception("Readiness probe failed: database unreachable")
        return JsonResponse({"status": "not ready", "database": "unavailable", "error": str(exc)}, status=503)

    if pending:
        logger.warning("Readiness probe: %d unapplied migrations", len(pending))
        return JsonResponse({"status": "not ready", "database": "ok", "pending_migrations": pending}, status=503)

    return JsonResponse({"status": "ready", "database": "ok"})
