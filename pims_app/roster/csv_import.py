import logging
import uuid
from collections import Counter
from typing import Any, override

from django import forms
from import_export import fields, resources
from import_export.forms import ConfirmImportForm, ImportForm
from tablib import Dataset

from roster.csv_import_utils import (
    attach_skipped_csv_to_result,
    extract_csv_headers_from_uploaded_file,
    is_blank_row,
    normalize_str,
    sanitize_csv_cell,
    set_form_column_field_choices,
    validate_csv_upload,
)
from roster.exceptions import InvalidFileType, RowValidationError
from roster.models import Club, Event, Participant
from roster.reconcile import (
    ImportKind,
    ImportRun,
    ImportSnapshot,
    PreviewRow,
    build_preview,
    coerce_row,
    preview_summary,
    resolve_headers,
)
from roster.services import import_writer_for, participant_snapshot

logger = logging.getLogger(__name__)

# Column-mapping field names shared by the import form, the confirm form and
# the admin's get_confirm_form_initial / get_import_resource_kwargs.
COLUMN_FIELDS = ("name_column", "contact_column")

SKIPPED_CSV_CACHE_PREFIX = "roster-import-skipped"
SKIPPED_CSV_URL_NAME = "roster-import-skipped-download"


class RosterCSVImportForm(ImportForm):
    name_column = forms.ChoiceField(
        required=False,
        choices=[("", "Auto-detect")],
        help_text="Optional: select the CSV header for the name column. Leave as Auto-detect to infer.",
    )
    contact_column = forms.ChoiceField(
        required=False,
        choices=[("", "Auto-detect")],
        help_text="Optional: select the CSV header for the contact column. Leave as Auto-detect to infer.",
    )

    @override
    def __init__(self, *args: Any, **kwargs: Any) -> None:
        super().__init__(*args, **kwargs)

        format_field = self.fields.get("format")
        if format_field is not None and len(format_field.choices) == 1:
            format_field.initial = format_field.choices[0][0]
            format_field.widget = forms.HiddenInput()

        uploaded = self.files.get("import_file")
        if uploaded is None:
            return

        try:
            headers = extract_csv_headers_from_uploaded_file(uploaded)
        except Exception:
            logger.exception("Unable to read CSV headers for import form dropdowns")
            return

        if headers:
            set_form_column_field_choices(form=self, field_names=COLUMN_FIELDS, headers=headers)

    def clean_import_file(self) -> Any:
        uploaded = self.cleaned_data.get("import_file")
        if uploaded is None:
            return uploaded
        try:
            validate_csv_upload(uploaded)
        except InvalidFileType as exc:
            raise forms.ValidationError(str(exc)) from exc
        return uploaded


class RosterCSVConfirmImportForm(ConfirmImportForm):
    name_column = forms.CharField(required=False, widget=forms.HiddenInput)
    contact_column = forms.CharField(required=False, widget=forms.HiddenInput)


class ClubMemberCSVImportForm(RosterCSVImportForm):
    club = forms.ModelChoiceField(
        queryset=Club.objects.order_by("name", "pk"),
        required=True,
        help_text="Club the imported rows join. Only participants from the club's institution are matched.",
    )


class ClubMemberCSVConfirmImportForm(RosterCSVConfirmImportForm):
    club = forms.ModelChoiceField(queryset=Club.objects.all(), required=True, widget=forms.HiddenInput)


class EventAttendeeCSVImportForm(RosterCSVImportForm):
    event = forms.ModelChoiceField(
        queryset=Event.objects.order_by("-date", "title"),
        required=True,
        help_text="Event the imported rows are registered for.",
    )


class EventAttendeeCSVConfirmImportForm(RosterCSVConfirmImportForm):
    event = forms.ModelChoiceField(queryset=Event.objects.all(), required=True, widget=forms.HiddenInput)


class RosterCSVImportResource(resources.ModelResource):
    """Preview/confirm import of roster rows through the reconciliation core.

    The preview (dry run) classifies every row and writes nothing. The confirm
    step classifies again against fresh data and applies each accepted row
    through an ImportRun, one write at a time. Participant is only a
    placeholder instance for import-export's row bookkeeping.
    """

    kind = ImportKind.participants

    source_row = fields.Field(attribute="csv_row_number", column_name="Row", readonly=True)
    csv_name = fields.Field(attribute="csv_name", column_name="Name", readonly=True)
    csv_contact = fields.Field(attribute="csv_contact", column_name="Contact", readonly=True)
    csv_institution = fields.Field(attribute="csv_institution", column_name="Institution", readonly=True)
    status = fields.Field(attribute="preview_status", column_name="Status", readonly=True)
    message = fields.Field(attribute="preview_message", column_name="Message", readonly=True)

    def __init__(
        self,
        *,
        club: Club | None = None,
        event: Event | None = None,
        name_column: str = "",
        contact_column: str = "",
        actor_username: str = "",
    ) -> None:
        super().__init__()
        self._club = club
        self._event = event
        self._actor_username = actor_username
        self._column_overrides: dict[str, str] = {
            "name": name_column,
            "contact": contact_column,
        }

        self._dry_run = True
        self._headers: list[str] = []
        self._snapshot: ImportSnapshot | None = None
        self._preview: list[PreviewRow] = []
        self._run: ImportRun | None = None
        self._cursor = 0
        self._current: PreviewRow | None = None
        self._current_instance: Participant | None = None
        self._skipped: list[PreviewRow] = []
        self._status_counts: Counter[str] = Counter()
        self._import_batch_id: uuid.UUID | None = None

    class Meta:
        model = Participant
        # Rows never update an existing Participant in place; reconciliation
        # decides what to write, so there is no id column to resolve.
        import_id_fields = ()
        fields = ("source_row", "csv_name", "csv_contact", "csv_institution", "status", "message")
        # Each write runs in its own transaction; one failing row must not undo
        # the rows applied before it.
        use_transactions = False
        use_bulk = False

    def load_snapshot(self) -> ImportSnapshot:
        return participant_snapshot(self.kind, club=self._club, event=self._event)

    @property
    def preview(self) -> list[PreviewRow]:
        return list(self._preview)

    @override
    def import_data(self, dataset: Dataset, dry_run: bool = False, raise_errors: bool = False, **kwargs: Any) -> Any:
        self._dry_run = bool(dry_run)
        if not dry_run:
            self._import_batch_id = uuid.uuid4()
        rows_total = len(dataset)

        result: Any | None = None
        outcome = "applied"
        try:
            result = super().import_data(dataset, dry_run=dry_run, raise_errors=raise_errors, **kwargs)
            return result
        except Exception:
            outcome = "failed"
            raise
        finally:
            if not dry_run:
                stats = self._run.stats if self._run is not None else None
                rows_applied = (stats.created + stats.converted) if stats else 0
                rows_skipped = stats.skipped if stats else 0
                rows_failed = stats.failed if stats else rows_total
                correlation_id = str(self._import_batch_id)
                logger.info(
                    (
                        "event=pims.roster.csv_import.batch_applied "
                        f"component={self.kind} outcome={outcome} "
                        f"correlation_id={correlation_id} batch_id={self._import_batch_id} "
                        f"rows_total={rows_total} rows_applied={rows_applied} "
                        f"rows_skipped={rows_skipped} rows_failed={rows_failed}"
                    ),
                    extra={
                        "event": "pims.roster.csv_import.batch_applied",
                        "component": str(self.kind),
                        "outcome": outcome,
                        "correlation_id": correlation_id,
                        "batch_id": self._import_batch_id,
                        "rows_total": rows_total,
                        "rows_applied": rows_applied,
                        "rows_skipped": rows_skipped,
                        "rows_failed": rows_failed,
                        "actor": self._actor_username,
                    },
                )
            self._import_batch_id = None

    @override
    def before_import(self, dataset: Dataset, **kwargs: Any) -> None:
        # Keep the raw header strings: they are the keys of every row mapping.
        self._headers = [str(header) for header in (dataset.headers or [])]
        header_map = resolve_headers(self._headers, self.kind, self._column_overrides)
        institution = self._club.institution if self._club is not None else None

        rows = []
        blank_indexes: list[int] = []
        for index, data in enumerate(dataset.dict):
            if is_blank_row(data):
                blank_indexes.append(index)
                continue
            rows.append(
                coerce_row(
                    data,
                    number=index + 1,
                    kind=self.kind,
                    header_map=header_map,
                    institution=institution,
                )
            )

        # Blank rows are never previewed; drop them so row iteration lines up with the preview.
        for index in reversed(blank_indexes):
            del dataset[index]

        self._snapshot = self.load_snapshot()
        self._preview = build_preview(rows, self._snapshot, self.kind)
        self._run = ImportRun(self._snapshot, import_writer_for(self.kind, club=self._club, event=self._event), kind=self.kind)
        self._cursor = 0
        self._skipped = []
        self._status_counts = Counter()

        logger.info(
            "Roster CSV import: prepared kind=%s dry_run=%s rows=%d blank_dropped=%d headers=%r",
            self.kind,
            self._dry_run,
            len(self._preview),
            len(blank_indexes),
            self._headers,
        )

    @override
    def get_instance(self, instance_loader: Any, row: Any) -> None:
        return None

    @override
    def import_row(self, row: Any, instance_loader: Any, **kwargs: Any) -> Any:
        if self._cursor >= len(self._preview):
            raise RowValidationError("Row could not be classified; the import was not prepared.")
        self._current = self._preview[self._cursor]
        self._current_instance = None
        self._cursor += 1
        try:
            row_result = super().import_row(row, instance_loader, **kwargs)
        except Exception:
            logger.exception(
                "Roster CSV import: row crashed row=%s kind=%s status=%s dry_run=%s",
                self._current.row.number,
                self.kind,
                self._current.status,
                self._dry_run,
            )
            raise

        # The preview template and grouping read the decorated placeholder instance.
        if getattr(row_result, "instance", None) is None and self._current_instance is not None:
            row_result.instance = self._current_instance
        return row_result

    @override
    def import_instance(self, instance: Any, row: Any, **kwargs: Any) -> None:
        super().import_instance(instance, row, **kwargs)
        self._current_instance = instance
        current = self._current
        if current is None:
            return
        instance.name = current.row.name
        instance.contact = current.row.contact
        instance.csv_row_number = current.row.number
        instance.csv_name = current.row.name
        instance.csv_contact = current.row.contact
        instance.csv_institution = current.row.institution
        instance.preview_status = current.label
        instance.preview_message = current.message
        instance.preview_will_import = current.will_import

    @override
    def skip_row(self, instance: Any, original: Any, row: Any, import_validation_errors: Any = None) -> bool:
        current = self._current
        if current is None:
            return True

        self._status_counts[current.status] += 1
        # Contact is PII; keep row-level decisions at DEBUG level.
        logger.debug(
            "Roster CSV import: decision row=%d status=%s message=%r",
            current.row.number,
            current.status,
            current.message,
        )

        if current.will_import:
            return False

        self._skipped.append(current)
        if not self._dry_run and self._run is not None:
            self._run.apply(current)
        return True

    @override
    def save_instance(self, instance: Any, is_create: bool, row: Any, **kwargs: Any) -> None:
        # The placeholder Participant is never saved; the ImportRun performs the writes.
        if self._dry_run or bool(kwargs.get("dry_run")):
            return
        if self._run is None or self._current is None:
            return
        instance.import_outcome = self._run.apply(self._current)

    def skipped_rows_dataset(self) -> Dataset:
        headers = [*(normalize_str(header) for header in self._headers), "Reason"]
        dataset = Dataset(headers=headers)
        for preview_row in self._skipped:
            values = [sanitize_csv_cell(preview_row.row.data.get(header, "")) for header in self._headers]
            dataset.append([*values, sanitize_csv_cell(f"{preview_row.label}: {preview_row.message}")])
        return dataset

    @override
    def after_import(self, dataset: Dataset, result: Any, **kwargs: Any) -> None:
        super().after_import(dataset, result, **kwargs)

        setattr(result, "import_kind", self.kind)
        setattr(result, "preview_counts", preview_summary(self._preview))
        if self._run is not None and not self._dry_run:
            setattr(result, "import_stats", self._run.stats)

        if self._status_counts:
            logger.info(
                "Roster CSV import status counts: %s",
                " ".join(f"{status}={self._status_counts[status]}" for status in sorted(self._status_counts)),
            )

        if self._skipped:
            attach_skipped_csv_to_result(
                result,
                self.skipped_rows_dataset(),
                cache_key_prefix=SKIPPED_CSV_CACHE_PREFIX,
                reverse_url_name=SKIPPED_CSV_URL_NAME,
            )


class ParticipantCSVImportResource(RosterCSVImportResource):
    kind = ImportKind.participants


class ClubMemberCSVImportResource(RosterCSVImportResource):
    kind = ImportKind.club_members

    @override
    def before_import(self, dataset: Dataset, **kwargs: Any) -> None:
        if self._club is None:
            raise ValueError("club is required")
        super().before_import(dataset, **kwargs)


class EventAttendeeCSVImportResource(RosterCSVImportResource):
    kind = ImportKind.event_attendees

    @override
    def before_import(self, dataset: Dataset, **kwargs: Any) -> None:
        if self._event is None:
            raise ValueError("event is required")
        super().before_import(dataset, **kwargs)


class VolunteerCSVImportResource(RosterCSVImportResource):
    kind = ImportKind.volunteers

    role = fields.Field(attribute="csv_role", column_name="Role", readonly=True)
    start_date = fields.Field(attribute="csv_start_date", column_name="StartDate", readonly=True)

    class Meta(RosterCSVImportResource.Meta):
        fields = ("source_row", "csv_name", "csv_contact", "csv_institution", "role", "start_date", "status", "message")

    @override
    def import_instance(self, instance: Any, row: Any, **kwargs: Any) -> None:
        super().import_instance(instance, row, **kwargs)
        if self._current is not None:
            instance.csv_role = self._current.row.raw_role
            instance.csv_start_date = self._current.row.raw_start_date


IMPORT_RESOURCES: dict[ImportKind, type[RosterCSVImportResource]] = {
    ImportKind.participants: ParticipantCSVImportResource,
    ImportKind.club_members: ClubMemberCSVImportResource,
    ImportKind.event_attendees: EventAttendeeCSVImportResource,
    ImportKind.volunteers: VolunteerCSVImportResource,
}
