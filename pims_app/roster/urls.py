from django.urls import path

from roster import views_health, views_imports
from roster.csv_import import SKIPPED_CSV_URL_NAME

urlpatterns = [
    path("healthz", views_health.healthz, name="healthz"),
    path("readyz", views_health.readyz, name="readyz"),
    path(
        "imports/templates/<str:kind>.csv",
        views_imports.import_template_download,
        name="roster-import-template",
    ),
    path(
        "imports/skipped/<str:token>.csv",
        views_imports.skipped_rows_download,
        name=SKIPPED_CSV_URL_NAME,
    ),
]
