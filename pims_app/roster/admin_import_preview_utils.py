from collections import Counter
from collections.abc import Mapping, Sequence
from typing import Any

from django.core.paginator import Paginator


def _row_will_import(row_result: Any, will_import_attr: str) -> bool:
    import_type = str(getattr(row_result, "import_type", "") or "")
    if import_type:
        return import_type != "skip"

    instance = getattr(row_result, "instance", None)
    if instance is not None and hasattr(instance, will_import_attr):
        return bool(getattr(instance, will_import_attr))
    return False


def _row_number(row_result: Any, fallback: int) -> int:
    instance = getattr(row_result, "instance", None)
    for candidate in (
        getattr(instance, "csv_row_number", None),
        getattr(row_result, "number", None),
        getattr(getattr(row_result, "row", None), "number", None),
    ):
        if candidate is None:
            continue
        try:
            return int(candidate)
        except (TypeError, ValueError):
            continue
    return fallback


def build_import_preview_context(
    *,
    valid_rows: Sequence[Any],
    request_get: Mapping[str, Any],
    will_import_attr: str = "preview_will_import",
    per_page_default: int = 50,
    per_page_min: int = 50,
) -> dict[str, Any]:
    """Split import-export row results into paginated "to import" and "skipped" groups."""

    to_import: list[Any] = []
    skipped: list[Any] = []
    status_counts: Counter[str] = Counter()

    for index, row_result in enumerate(valid_rows, start=1):
        row_result.roster_row_number = _row_number(row_result, index)

        instance = getattr(row_result, "instance", None)
        status_label = str(getattr(instance, "preview_status", "") or "")
        if status_label:
            status_counts[status_label] += 1

        if _row_will_import(row_result, will_import_attr):
            to_import.append(row_result)
        else:
            skipped.append(row_result)

    try:
        per_page = int(str(request_get.get("per_page", str(per_page_default))))
    except ValueError:
        per_page = per_page_default
    per_page = max(per_page, per_page_min)

    to_import_page_obj = Paginator(to_import, per_page).get_page(request_get.get("to_import_page") or "1")
    skipped_page_obj = Paginator(skipped, per_page).get_page(request_get.get("skipped_page") or "1")

    return {
        "to_import_page_obj": to_import_page_obj,
        "skipped_page_obj": skipped_page_obj,
        "status_counts": dict(sorted(status_counts.items())),
        "preview_summary": {
            "total": len(valid_rows),
            "to_import": len(to_import),
            "skipped": len(skipped),
        },
    }
