import logging
from pathlib import Path
from typing import override

from django.core.management.base import BaseCommand, CommandError

from roster.exceptions import ExportError
from roster.exports import PARTICIPANT_EXPORT_COLUMNS, build_export, default_export_columns, export_filename
from roster.services import participants_with_engagement

logger = logging.getLogger(__name__)


class Command(BaseCommand):
    help = "Export participants to CSV with the chosen columns, in the order given."

    @override
    def add_arguments(self, parser) -> None:
        parser.add_argument(
            "--columns",
            default=",".join(default_export_columns()),
            help=(
                "Comma-separated column keys. Available: "
                + ", ".join(column.key for column in PARTICIPANT_EXPORT_COLUMNS)
            ),
        )
        parser.add_argument(
            "--output",
            default="",
            help="Output path. Defaults to the dated export file name in the current directory; '-' writes to stdout.",
        )
        parser.add_argument("--institution", default="", help="Only export participants from this institution.")

    @override
    def handle(self, *args, **options) -> None:
        columns = [key.strip() for key in str(options.get("columns") or "").split(",") if key.strip()]
        institution = str(options.get("institution") or "").strip()

        participants = participants_with_engagement()
        if institution:
            participants = participants.for_institution(institution)

        try:
            dataset = build_export(participants, columns)
        except ExportError as exc:
            raise CommandError(str(exc)) from exc

        content = dataset.export("csv")
        output = str(options.get("output") or "").strip()
        if output == "-":
            self.stdout.write(content, ending="")
            return

        path = Path(output or export_filename())
        path.write_text(content, encoding="utf-8")
        logger.info("export_participants: wrote rows=%d path=%s", len(dataset), path)
        self.stdout.write(self.style.SUCCESS(f"Exported {len(dataset)} participants to {path}"))
