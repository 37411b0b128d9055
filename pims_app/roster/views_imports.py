import logging

from django.contrib.admin.views.decorators import staff_member_required
from django.core.cache import cache
from django.http import Http404, HttpRequest, HttpResponse
from django.views.decorators.http import require_GET

from roster.csv_import import SKIPPED_CSV_CACHE_PREFIX
from roster.import_templates import TEMPLATE_FILENAMES, import_template_dataset
from roster.reconcile import ImportKind

logger = logging.getLogger(__name__)


def _csv_attachment(content: str, filename: str) -> HttpResponse:
    response = HttpResponse(content, content_type="text/csv; charset=utf-8")
    response["Content-Disposition"] = f'attachment; filename="{filename}"'
    return response


@require_GET
@staff_member_required
def import_template_download(_request: HttpRequest, kind: str) -> HttpResponse:
    try:
        import_kind = ImportKind(kind)
    except ValueError as exc:
        raise Http404(f"Unknown import kind {kind!r}") from exc

    return _csv_attachment(import_template_dataset(import_kind).export("csv"), TEMPLATE_FILENAMES[import_kind])


@require_GET
@staff_member_required
def skipped_rows_download(_request: HttpRequest, token: str) -> HttpResponse:
    content = cache.get(f"{SKIPPED_CSV_CACHE_PREFIX}:{token}")
    if content is None:
        logger.info("Skipped-rows CSV not found or expired")
        raise Http404("Skipped rows export has expired. Run the import preview again.")

    return _csv_attachment(content, "YIN_Import_Skipped_Rows.csv")
