"""Flatten participants into an export dataset with operator-chosen columns."""

import datetime
import logging
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from typing import Any

from django import forms
from django.conf import settings
from django.utils import timezone
from django.utils.formats import date_format
from tablib import Dataset

from roster.exceptions import ExportError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ExportColumn:
    key: str
    label: str
    default: bool = False


PARTICIPANT_EXPORT_COLUMNS: tuple[ExportColumn, ...] = (
    ExportColumn("membership_id", "Membership ID", default=True),
    ExportColumn("name", "Name", default=True),
    ExportColumn("contact", "Contact", default=True),
    ExportColumn("institution", "Institution", default=True),
    ExportColumn("membership_status", "Membership Status", default=True),
    ExportColumn("engagement_score", "Engagement Score", default=True),
    ExportColumn("is_contestant", "Is Contestant"),
    ExportColumn("ghana_card_number", "Ghana Card"),
    ExportColumn("gender", "Gender"),
    ExportColumn("region", "Region"),
    ExportColumn("created_at", "Date Joined"),
    ExportColumn("certificate_issued", "Certificate Issued"),
    ExportColumn("notes", "Notes"),
    ExportColumn("last_membership_card_generated_at", "Last Card Generated"),
)

_COLUMNS_BY_KEY = {column.key: column for column in PARTICIPANT_EXPORT_COLUMNS}


def default_export_columns() -> list[str]:
    return [column.key for column in PARTICIPANT_EXPORT_COLUMNS if column.default]


def format_export_value(value: Any) -> Any:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "Yes" if value else "No"
    if isinstance(value, datetime.datetime):
        if timezone.is_aware(value):
            value = timezone.localtime(value)
        return date_format(value, "SHORT_DATE_FORMAT")
    if isinstance(value, datetime.date):
        return date_format(value, "SHORT_DATE_FORMAT")
    return value


def build_export(entities: Iterable[Any], selected_columns: Sequence[str]) -> Dataset:
    """Project ``entities`` onto ``selected_columns`` in exactly the order given.

    Raises ExportError for an empty selection, an empty entity set, or an
    unknown column key; nothing is built in those cases.
    """

    columns = [str(key) for key in selected_columns]
    if not columns:
        raise ExportError("Please select at least one column to export.")

    unknown = [key for key in columns if key not in _COLUMNS_BY_KEY]
    if unknown:
        raise ExportError(f"Unknown export column(s): {', '.join(unknown)}")

    rows = list(entities)
    if not rows:
        raise ExportError("There are no participants to export with the current filters.")

    dataset = Dataset(headers=[_COLUMNS_BY_KEY[key].label for key in columns])
    for entity in rows:
        dataset.append([format_export_value(getattr(entity, key, None)) for key in columns])

    logger.info("Participant export built: rows=%d columns=%s", len(rows), ",".join(columns))
    return dataset


def export_filename(today: datetime.date | None = None) -> str:
    day = today or timezone.localdate()
    prefix = str(settings.PIMS_EXPORT_FILENAME_PREFIX).strip() or "YIN_PIMS"
    return f"{prefix}_Participants_Export_{day.isoformat()}.csv"


class ParticipantExportForm(forms.Form):
    columns = forms.MultipleChoiceField(
        choices=[(column.key, column.label) for column in PARTICIPANT_EXPORT_COLUMNS],
        initial=default_export_columns,
        required=False,
        widget=forms.CheckboxSelectMultiple,
    )
    column_order = forms.CharField(
        required=False,
        widget=forms.HiddenInput,
        help_text="Optional comma-separated column keys; selected columns are exported in this order.",
    )

    def selected_columns(self) -> list[str]:
        selected = list(self.cleaned_data.get("columns") or [])
        order = [key.strip() for key in str(self.cleaned_data.get("column_order") or "").split(",") if key.strip()]
        ordered = [key for key in order if key in selected]
        return [*ordered, *[key for key in selected if key not in ordered]]
