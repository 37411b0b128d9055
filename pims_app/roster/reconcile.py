"""Classify CSV rows against the participant roster and apply the accepted writes.

Everything here works on read-only snapshots. Writes go through an
``ImportWriter`` so the same code drives the admin import, the management
command and the tests.
"""

from __future__ import annotations

import datetime
import logging
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Protocol

from django.conf import settings

from roster.csv_import_utils import (
    is_blank_row,
    norm_csv_header,
    normalize_str,
    parse_csv_bool,
    parse_csv_date,
    resolve_column_header,
)
from roster.exceptions import DuplicateSkip, RowValidationError, WriteFailure
from roster.models import Gender, Region, Volunteer

logger = logging.getLogger(__name__)


class ImportKind(StrEnum):
    participants = "participants"
    club_members = "club_members"
    event_attendees = "event_attendees"
    volunteers = "volunteers"


class RowStatus(StrEnum):
    new = "new"
    existing = "existing"
    already_linked = "already_linked"
    invalid = "invalid"


class RowOutcome(StrEnum):
    created = "created"
    converted = "converted"
    skipped = "skipped"
    failed = "failed"


# Logical field -> accepted header spellings, compared with norm_csv_header().
COLUMN_ALIASES: dict[str, tuple[str, ...]] = {
    "name": ("NAMES", "Name", "Full Name"),
    "contact": ("CONTACT", "Contact", "Phone", "Email"),
    "institution": ("INSTITUTION", "Institution", "School"),
    "gender": ("GENDER", "Gender"),
    "region": ("REGION", "Region"),
    "ghana_card_number": ("GHANA CARD", "Ghana Card", "Ghana Card Number"),
    "notes": ("NOTES", "Notes"),
    "is_member": ("MEMBERS", "Members", "Member"),
    "is_contestant": ("Contestant", "Is Contestant"),
    "role": ("Role",),
    "start_date": ("StartDate", "Start Date"),
}

KIND_COLUMNS: dict[ImportKind, tuple[str, ...]] = {
    ImportKind.participants: (
        "name",
        "contact",
        "institution",
        "is_member",
        "gender",
        "region",
        "ghana_card_number",
        "notes",
    ),
    ImportKind.club_members: ("name", "contact", "gender", "region", "ghana_card_number", "is_contestant"),
    ImportKind.event_attendees: ("name", "contact", "institution", "gender", "region", "ghana_card_number"),
    ImportKind.volunteers: (
        "name",
        "contact",
        "institution",
        "role",
        "start_date",
        "gender",
        "region",
        "ghana_card_number",
    ),
}

DEFAULT_NOTES: dict[ImportKind, str] = {
    ImportKind.participants: "Imported via CSV.",
    ImportKind.club_members: "Imported via club CSV upload.",
    ImportKind.event_attendees: "Imported via event CSV upload.",
    ImportKind.volunteers: "Imported via volunteer CSV upload.",
}

DEFAULT_INSTITUTION = "N/A"

_STATUS_LABELS: dict[ImportKind, dict[RowStatus, str]] = {
    ImportKind.participants: {
        RowStatus.new: "New Participant",
        RowStatus.already_linked: "Participant Already Exists",
        RowStatus.invalid: "Invalid Data",
    },
    ImportKind.club_members: {
        RowStatus.new: "New Participant",
        RowStatus.existing: "Existing Participant",
        RowStatus.already_linked: "Already a Member",
        RowStatus.invalid: "Invalid Data",
    },
    ImportKind.event_attendees: {
        RowStatus.new: "New Participant",
        RowStatus.existing: "Existing Participant",
        RowStatus.already_linked: "Already Registered",
        RowStatus.invalid: "Invalid Data",
    },
    ImportKind.volunteers: {
        RowStatus.new: "New Participant",
        RowStatus.existing: "Existing Participant",
        RowStatus.already_linked: "Already a Volunteer",
        RowStatus.invalid: "Invalid Data",
    },
}

_STATUS_MESSAGES: dict[ImportKind, dict[RowStatus, str]] = {
    ImportKind.participants: {
        RowStatus.new: "Will be created",
        RowStatus.already_linked: "Will be skipped",
        RowStatus.invalid: "Missing NAMES or CONTACT column",
    },
    ImportKind.club_members: {
        RowStatus.new: "Will be created and added",
        RowStatus.existing: "Will be added to club",
        RowStatus.already_linked: "Will be skipped",
        RowStatus.invalid: "Missing Name or Contact",
    },
    ImportKind.event_attendees: {
        RowStatus.new: "Will be created and registered",
        RowStatus.existing: "Will be registered for the event",
        RowStatus.already_linked: "Already registered for this event",
        RowStatus.invalid: "Missing Name or Contact",
    },
    ImportKind.volunteers: {
        RowStatus.new: "Will be created and added as a volunteer.",
        RowStatus.existing: "Will be converted to a volunteer.",
        RowStatus.already_linked: "This person is already a volunteer.",
        RowStatus.invalid: "Missing Name, Contact, or Role",
    },
}


def status_label(status: RowStatus, kind: ImportKind) -> str:
    return _STATUS_LABELS[kind].get(status, str(status))


def composite_key(name: object, contact: object) -> str:
    """Identity key shared by every importer: lowercased trimmed name + trimmed contact."""
    return f"{normalize_str(name).lower()}_{normalize_str(contact)}"


@dataclass(frozen=True, slots=True)
class ParticipantRecord:
    id: int
    name: str
    contact: str
    institution: str = ""

    @property
    def key(self) -> str:
        return composite_key(self.name, self.contact)


@dataclass(frozen=True, slots=True)
class ImportSnapshot:
    participants: tuple[ParticipantRecord, ...]
    linked_participant_ids: frozenset[int] = frozenset()
    # Set for club imports: only participants from this institution can match.
    institution: str | None = None

    def candidates(self) -> Iterable[ParticipantRecord]:
        if self.institution is None:
            return self.participants
        return (p for p in self.participants if p.institution == self.institution)

    def by_key(self) -> dict[str, ParticipantRecord]:
        index: dict[str, ParticipantRecord] = {}
        for participant in self.candidates():
            # First record wins so lookups stay stable when the roster already holds duplicates.
            index.setdefault(participant.key, participant)
        return index


@dataclass(frozen=True, slots=True)
class ImportRow:
    number: int
    name: str
    contact: str
    institution: str
    gender: str
    region: str
    ghana_card_number: str = ""
    notes: str = ""
    is_member: bool = False
    is_contestant: bool = False
    role: str = ""
    raw_role: str = ""
    start_date: datetime.date | None = None
    raw_start_date: str = ""
    data: Mapping[str, str] = field(default_factory=dict)

    @property
    def key(self) -> str:
        return composite_key(self.name, self.contact)

    def participant_fields(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "contact": self.contact,
            "institution": self.institution,
            "gender": self.gender,
            "region": self.region,
            "ghana_card_number": self.ghana_card_number,
            "notes": self.notes,
            "membership_status": self.is_member,
            "is_contestant": self.is_contestant,
            "certificate_issued": False,
        }


@dataclass(frozen=True, slots=True)
class Classification:
    status: RowStatus
    message: str


@dataclass(frozen=True, slots=True)
class PreviewRow:
    row: ImportRow
    status: RowStatus
    message: str
    kind: ImportKind

    @property
    def label(self) -> str:
        return status_label(self.status, self.kind)

    @property
    def will_import(self) -> bool:
        return self.status in (RowStatus.new, RowStatus.existing)


def resolve_headers(
    headers: Sequence[str],
    kind: ImportKind,
    column_overrides: Mapping[str, str] | None = None,
) -> dict[str, str | None]:
    header_by_norm = {norm_csv_header(h): h for h in headers if norm_csv_header(h)}
    overrides = column_overrides or {}
    return {
        logical: resolve_column_header(logical, headers, header_by_norm, overrides, *COLUMN_ALIASES[logical])
        for logical in KIND_COLUMNS[kind]
    }


def _choice_or_default(value: str, choices: Iterable[str], default: str) -> str:
    for choice in choices:
        if value.lower() == choice.lower():
            return choice
    return default


def coerce_row(
    data: Mapping[str, Any],
    *,
    number: int,
    kind: ImportKind,
    header_map: Mapping[str, str | None],
    institution: str | None = None,
) -> ImportRow:
    """Build a typed row from a raw CSV mapping, applying per-importer defaults."""

    def cell(logical: str) -> str:
        header = header_map.get(logical)
        if not header:
            return ""
        return normalize_str(data.get(header))

    default_region = normalize_str(getattr(settings, "PIMS_DEFAULT_REGION", "")) or Region.greater_accra.value
    raw_role = cell("role")
    raw_start_date = cell("start_date")

    if kind == ImportKind.club_members:
        row_institution = normalize_str(institution) or DEFAULT_INSTITUTION
        is_member = True
        notes = DEFAULT_NOTES[kind]
    elif kind == ImportKind.participants:
        row_institution = cell("institution") or DEFAULT_INSTITUTION
        is_member = cell("is_member").lower() == "yes"
        notes = cell("notes") or DEFAULT_NOTES[kind]
    else:
        row_institution = cell("institution") or DEFAULT_INSTITUTION
        is_member = kind == ImportKind.volunteers
        notes = DEFAULT_NOTES[kind]

    return ImportRow(
        number=number,
        name=cell("name"),
        contact=cell("contact"),
        institution=row_institution,
        gender=_choice_or_default(cell("gender"), Gender.values, Gender.other.value),
        region=_choice_or_default(cell("region"), Region.values, default_region),
        ghana_card_number=cell("ghana_card_number"),
        notes=notes,
        is_member=is_member,
        is_contestant=kind == ImportKind.club_members and parse_csv_bool(cell("is_contestant")),
        role=_choice_or_default(raw_role, Volunteer.Role.values, ""),
        raw_role=raw_role,
        start_date=parse_csv_date(raw_start_date),
        raw_start_date=raw_start_date,
        data={str(k): normalize_str(v) for k, v in data.items()},
    )


def classify(
    row: ImportRow,
    existing_participants: Iterable[ParticipantRecord] | Mapping[str, ParticipantRecord],
    linked_participant_ids: Iterable[int] | None = None,
    *,
    kind: ImportKind,
    institution: str | None = None,
) -> Classification:
    messages = _STATUS_MESSAGES[kind]

    if not row.name or not row.contact:
        return Classification(RowStatus.invalid, messages[RowStatus.invalid])

    if kind == ImportKind.volunteers:
        if not row.raw_role:
            return Classification(RowStatus.invalid, messages[RowStatus.invalid])
        if not row.role:
            return Classification(RowStatus.invalid, f"Invalid role: {row.raw_role}")

    if isinstance(existing_participants, Mapping):
        match = existing_participants.get(row.key)
    else:
        match = next(
            (
                p
                for p in existing_participants
                if p.key == row.key and (institution is None or p.institution == institution)
            ),
            None,
        )

    if match is None:
        return Classification(RowStatus.new, messages[RowStatus.new])

    if kind == ImportKind.participants or match.id in set(linked_participant_ids or ()):
        return Classification(RowStatus.already_linked, messages[RowStatus.already_linked])

    return Classification(RowStatus.existing, messages[RowStatus.existing])


def build_preview(
    rows: Iterable[ImportRow],
    snapshot: ImportSnapshot,
    kind: ImportKind,
) -> list[PreviewRow]:
    """Classify every non-blank row in source order. No writes happen here."""

    by_key = snapshot.by_key()
    first_new_row: dict[str, int] = {}
    preview: list[PreviewRow] = []

    for row in rows:
        if is_blank_row(row.data):
            continue

        classification = classify(
            row,
            by_key,
            snapshot.linked_participant_ids,
            kind=kind,
            institution=snapshot.institution,
        )
        message = classification.message
        if classification.status == RowStatus.new:
            earlier = first_new_row.setdefault(row.key, row.number)
            if earlier != row.number:
                message = f"Duplicate of row {earlier}; will reuse the participant created from it"

        preview.append(PreviewRow(row=row, status=classification.status, message=message, kind=kind))

    return preview


def preview_summary(preview: Iterable[PreviewRow]) -> dict[str, int]:
    summary = {"new": 0, "existing": 0, "skipped": 0}
    for preview_row in preview:
        if preview_row.status == RowStatus.new:
            summary["new"] += 1
        elif preview_row.status == RowStatus.existing:
            summary["existing"] += 1
        else:
            summary["skipped"] += 1
    return summary


@dataclass(slots=True)
class ImportStats:
    created: int = 0
    converted: int = 0
    skipped: int = 0
    failed: int = 0

    @property
    def total(self) -> int:
        return self.created + self.converted + self.skipped + self.failed

    def record(self, outcome: RowOutcome) -> None:
        setattr(self, outcome.value, getattr(self, outcome.value) + 1)

    def as_message(self, kind: ImportKind) -> str:
        existing_label = "Converted" if kind == ImportKind.volunteers else "Existing"
        return (
            f"Import complete! New: {self.created}, {existing_label}: {self.converted}, "
            f"Skipped: {self.skipped}, Failed: {self.failed}."
        )


class ImportWriter(Protocol):
    def create_participant(self, row: ImportRow) -> ParticipantRecord | None: ...

    def attach(self, participant: ParticipantRecord, row: ImportRow) -> bool: ...


class ImportRun:
    """Apply preview rows one at a time against a batch-local shadow copy.

    The shadow copy starts from the snapshot and gains every participant
    created earlier in the run, so a later row with the same composite key
    resolves to it instead of creating a second participant.
    """

    def __init__(self, snapshot: ImportSnapshot, writer: ImportWriter, *, kind: ImportKind) -> None:
        self.kind = kind
        self.stats = ImportStats()
        self._writer = writer
        self._shadow: dict[str, ParticipantRecord] = snapshot.by_key()
        self._attached: set[int] = set()

    def apply(self, preview_row: PreviewRow) -> RowOutcome:
        row = preview_row.row
        try:
            outcome = self._apply(preview_row)
        except DuplicateSkip as exc:
            logger.debug("Roster CSV import: duplicate skipped row=%d kind=%s: %s", row.number, self.kind, exc)
            outcome = RowOutcome.skipped
        except RowValidationError as exc:
            logger.warning("Roster CSV import: row rejected row=%d kind=%s: %s", row.number, self.kind, exc)
            outcome = RowOutcome.failed
        except Exception:
            logger.exception(
                "Roster CSV import: row failed row=%d kind=%s status=%s",
                row.number,
                self.kind,
                preview_row.status,
            )
            outcome = RowOutcome.failed

        self.stats.record(outcome)
        return outcome

    def _apply(self, preview_row: PreviewRow) -> RowOutcome:
        if not preview_row.will_import:
            return RowOutcome.skipped

        row = preview_row.row
        if self.kind == ImportKind.volunteers and row.raw_start_date and row.start_date is None:
            raise RowValidationError(f"Invalid start date {row.raw_start_date!r}")

        participant = self._shadow.get(row.key)

        if preview_row.status == RowStatus.existing:
            if participant is None:
                raise WriteFailure(f"No participant found for existing row {row.number}")
            self._attach(participant, row)
            return RowOutcome.converted

        if participant is not None:
            # Created by an earlier row of this batch; link it once.
            if participant.id not in self._attached:
                self._attach(participant, row)
            return RowOutcome.created

        participant = self._writer.create_participant(row)
        if not participant:
            raise WriteFailure(f"Participant could not be created for row {row.number}")
        self._shadow[row.key] = participant
        logger.debug("Roster CSV import: created participant id=%s contact=%r", participant.id, row.contact)

        self._attach(participant, row)
        return RowOutcome.created

    def _attach(self, participant: ParticipantRecord, row: ImportRow) -> None:
        if participant.id in self._attached:
            raise DuplicateSkip(f"Participant {participant.id} was already linked earlier in this import")
        if not self._writer.attach(participant, row):
            raise WriteFailure(f"Relation could not be attached for row {row.number}")
        self._attached.add(participant.id)


def execute(
    preview_rows: Iterable[PreviewRow],
    snapshot: ImportSnapshot,
    writer: ImportWriter,
    *,
    kind: ImportKind,
) -> ImportStats:
    run = ImportRun(snapshot, writer, kind=kind)
    for preview_row in preview_rows:
        run.apply(preview_row)
    return run.stats
