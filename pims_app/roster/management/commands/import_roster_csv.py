import logging
from pathlib import Path
from typing import override

from django.core.management.base import BaseCommand, CommandError

from roster.csv_import_utils import load_csv_dataset
from roster.exceptions import RosterImportError
from roster.models import Club, Event
from roster.reconcile import ImportKind, build_preview, coerce_row, execute, preview_summary, resolve_headers
from roster.services import import_writer_for, participant_snapshot

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Preview and apply a roster CSV import (participants, club members, event attendees or volunteers)."

    @override
    def add_arguments(self, parser) -> None:
        parser.add_argument("path", help="Path to the CSV file.")
        parser.add_argument(
            "--kind",
            choices=[kind.value for kind in ImportKind],
            default=ImportKind.participants.value,
            help="Which importer to run.",
        )
        parser.add_argument("--club", dest="club_id", type=int, default=None, help="Club id (club_members only).")
        parser.add_argument("--event", dest="event_id", type=int, default=None, help="Event id (event_attendees only).")
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Print the preview without writing anything.",
        )

    @override
    def handle(self, *args, **options) -> None:
        kind = ImportKind(options["kind"])
        dry_run = bool(options.get("dry_run"))
        club = self._club(kind, options.get("club_id"))
        event = self._event(kind, options.get("event_id"))

        path = Path(str(options["path"]))
        if path.suffix.lower() != ".csv":
            raise CommandError("Invalid file type. Please upload a CSV file.")
        try:
            content = path.read_bytes()
        except OSError as exc:
            raise CommandError(f"Unable to read {path}: {exc}") from exc

        try:
            dataset = load_csv_dataset(content)
        except RosterImportError as exc:
            raise CommandError(str(exc)) from exc

        header_map = resolve_headers(dataset.headers, kind)
        rows = [
            coerce_row(
                data,
                number=index,
                kind=kind,
                header_map=header_map,
                institution=club.institution if club is not None else None,
            )
            for index, data in enumerate(dataset.dict, start=1)
        ]

        snapshot = participant_snapshot(kind, club=club, event=event)
        preview = build_preview(rows, snapshot, kind)
        summary = preview_summary(preview)

        for preview_row in preview:
            self.stdout.write(
                f"row {preview_row.row.number}: {preview_row.label} - {preview_row.message}",
            )
        self.stdout.write(f"{summary['new']} new, {summary['existing']} existing, {summary['skipped']} skipped")

        if dry_run:
            logger.info("import_roster_csv: dry run kind=%s rows=%d", kind, len(preview))
            return

        stats = execute(preview, snapshot, import_writer_for(kind, club=club, event=event), kind=kind)
        logger.info(
            "import_roster_csv: applied kind=%s created=%d converted=%d skipped=%d failed=%d",
            kind,
            stats.created,
            stats.converted,
            stats.skipped,
            stats.failed,
        )
        self.stdout.write(self.style.SUCCESS(stats.as_message(kind)))

    def _club(self, kind: ImportKind, club_id: int | None) -> Club | None:
        if kind != ImportKind.club_members:
            return None
        if club_id is None:
            raise CommandError("--club is required for club_members imports.")
        try:
            return Club.objects.get(pk=club_id)
        except Club.DoesNotExist as exc:
            raise CommandError(f"Club {club_id} does not exist.") from exc

    def _event(self, kind: ImportKind, event_id: int | None) -> Event | None:
        if kind != ImportKind.event_attendees:
            return None
        if event_id is None:
            raise CommandError("--event is required for event_attendees imports.")
        try:
            return Event.objects.get(pk=event_id)
        except Event.DoesNotExist as exc:
            raise CommandError(f"Event {event_id} does not exist.") from exc
