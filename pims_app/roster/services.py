from __future__ import annotations

import datetime
import logging
from collections.abc import Iterable, Mapping
from typing import Any

from django.db import IntegrityError, transaction
from django.utils import timezone

from roster.exceptions import DuplicateSkip
from roster.models import Club, ClubMembership, Event, Participant, ParticipantQuerySet, Participation, Volunteer
from roster.reconcile import ImportKind, ImportRow, ImportSnapshot, ParticipantRecord

logger = logging.getLogger(__name__)

PARTICIPANT_EDITABLE_FIELDS = frozenset(
    {
        "name",
        "gender",
        "institution",
        "region",
        "contact",
        "membership_status",
        "certificate_issued",
        "is_contestant",
        "notes",
        "ghana_card_number",
        "photo",
    }
)


def _participant_kwargs(fields: Mapping[str, Any]) -> dict[str, Any]:
    unknown = set(fields) - PARTICIPANT_EDITABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown participant fields: {', '.join(sorted(unknown))}")
    return dict(fields)


def participant_record(participant: Participant) -> ParticipantRecord:
    return ParticipantRecord(
        id=participant.pk,
        name=participant.name,
        contact=participant.contact,
        institution=participant.institution,
    )


def add_participant(fields: Mapping[str, Any], club: Club | None = None) -> Participant | None:
    """Create a participant, optionally enrolling them in ``club`` in the same transaction.

    Returns None when the database rejects the row.
    """

    kwargs = _participant_kwargs(fields)
    try:
        with transaction.atomic():
            participant = Participant.objects.create(**kwargs)
            if club is not None:
                ClubMembership.objects.create(participant=participant, club=club)
    except IntegrityError:
        logger.exception("Failed to create participant club_id=%s", getattr(club, "pk", None))
        return None

    logger.debug("Created participant id=%s membership_id=%s", participant.pk, participant.membership_id)
    return participant


def add_multiple_participants(fields_list: Iterable[Mapping[str, Any]]) -> int:
    created = 0
    for fields in fields_list:
        if add_participant(fields) is not None:
            created += 1
    logger.info("Bulk participant create: created=%d", created)
    return created


def update_participant(participant_id: int, fields: Mapping[str, Any]) -> Participant:
    kwargs = _participant_kwargs(fields)
    with transaction.atomic():
        participant = Participant.objects.select_for_update().get(pk=participant_id)
        for name, value in kwargs.items():
            setattr(participant, name, value)
        participant.save(update_fields=sorted(kwargs) or None)
    return participant


def delete_participant(participant_id: int) -> bool:
    # Memberships, registrations and volunteer records cascade.
    deleted, _by_model = Participant.objects.filter(pk=participant_id).delete()
    return deleted > 0


def delete_multiple_participants(participant_ids: Iterable[int]) -> int:
    ids = list(participant_ids)
    if not ids:
        return 0
    with transaction.atomic():
        count = Participant.objects.filter(pk__in=ids).count()
        Participant.objects.filter(pk__in=ids).delete()
    logger.info("Bulk participant delete: requested=%d deleted=%d", len(ids), count)
    return count


def add_club_membership(participant_id: int, club_id: int) -> bool:
    """Return True when a new membership row was written."""
    try:
        with transaction.atomic():
            _membership, created = ClubMembership.objects.get_or_create(
                participant_id=participant_id,
                club_id=club_id,
            )
    except IntegrityError:
        logger.exception("Failed to add club membership participant_id=%s club_id=%s", participant_id, club_id)
        return False
    return created


def add_participation(participant_id: int, event_id: int) -> bool:
    """Return True when a new registration row was written."""
    try:
        with transaction.atomic():
            _participation, created = Participation.objects.get_or_create(
                participant_id=participant_id,
                event_id=event_id,
            )
    except IntegrityError:
        logger.exception("Failed to add participation participant_id=%s event_id=%s", participant_id, event_id)
        return False
    return created


def add_multiple_participations(participant_ids: Iterable[int], event_id: int) -> tuple[int, int]:
    added = 0
    skipped = 0
    for participant_id in dict.fromkeys(participant_ids):
        if add_participation(participant_id, event_id):
            added += 1
        else:
            skipped += 1
    return added, skipped


def delete_participation(participant_id: int, event_id: int) -> bool:
    deleted, _by_model = Participation.objects.filter(participant_id=participant_id, event_id=event_id).delete()
    return deleted > 0


def add_volunteer(fields: Mapping[str, Any]) -> Volunteer:
    data = dict(fields)
    data.setdefault("status", Volunteer.Status.active)
    if data.get("start_date") is None:
        data["start_date"] = timezone.localdate()
    with transaction.atomic():
        return Volunteer.objects.create(**data)


@transaction.atomic
def create_and_register(fields: Mapping[str, Any], event: Event, club: Club | None = None) -> Participant:
    """Quick-add a participant from the event panel and register them for ``event``."""

    participant = Participant.objects.create(**_participant_kwargs(fields))
    if club is not None:
        ClubMembership.objects.create(participant=participant, club=club)
    Participation.objects.create(participant=participant, event=event)
    return participant


def available_participants_for_club(club: Club) -> ParticipantQuerySet:
    return (
        Participant.objects.for_institution(club.institution)
        .exclude(club_memberships__club=club)
        .order_by("name", "pk")
    )


def record_membership_card_generated(participant_id: int, now: datetime.datetime | None = None) -> None:
    when = now or timezone.now()
    updated = Participant.objects.filter(pk=participant_id).update(last_membership_card_generated_at=when)
    if not updated:
        raise Participant.DoesNotExist(f"Participant {participant_id} does not exist")


def participants_with_engagement() -> ParticipantQuerySet:
    return Participant.objects.with_engagement().order_by("name", "pk")


def participant_snapshot(
    kind: ImportKind,
    *,
    club: Club | None = None,
    event: Event | None = None,
) -> ImportSnapshot:
    records = tuple(
        ParticipantRecord(id=pk, name=name, contact=contact, institution=institution)
        for pk, name, contact, institution in Participant.objects.order_by("pk").values_list(
            "pk", "name", "contact", "institution"
        )
    )

    if kind == ImportKind.club_members:
        if club is None:
            raise ValueError("club is required for club member imports")
        linked = ClubMembership.objects.filter(club=club).values_list("participant_id", flat=True)
        return ImportSnapshot(records, frozenset(linked), institution=club.institution)

    if kind == ImportKind.event_attendees:
        if event is None:
            raise ValueError("event is required for event attendee imports")
        linked = Participation.objects.filter(event=event).values_list("participant_id", flat=True)
        return ImportSnapshot(records, frozenset(linked))

    if kind == ImportKind.volunteers:
        linked = Volunteer.objects.values_list("participant_id", flat=True)
        return ImportSnapshot(records, frozenset(linked))

    return ImportSnapshot(records, frozenset(record.id for record in records))


class ParticipantImportWriter:
    def create_participant(self, row: ImportRow) -> ParticipantRecord | None:
        participant = add_participant(row.participant_fields())
        if participant is None:
            return None
        return participant_record(participant)

    def attach(self, participant: ParticipantRecord, row: ImportRow) -> bool:
        # Being a participant is the relation for this importer.
        return True


class ClubMembershipImportWriter(ParticipantImportWriter):
    def __init__(self, club: Club) -> None:
        self.club = club

    def attach(self, participant: ParticipantRecord, row: ImportRow) -> bool:
        if not add_club_membership(participant.id, self.club.pk):
            if ClubMembership.objects.filter(participant_id=participant.id, club=self.club).exists():
                raise DuplicateSkip(f"Participant {participant.id} is already a member of club {self.club.pk}")
            return False
        return True


class EventAttendanceImportWriter(ParticipantImportWriter):
    def __init__(self, event: Event) -> None:
        self.event = event

    def attach(self, participant: ParticipantRecord, row: ImportRow) -> bool:
        if not add_participation(participant.id, self.event.pk):
            if Participation.objects.filter(participant_id=participant.id, event=self.event).exists():
                raise DuplicateSkip(f"Participant {participant.id} is already registered for event {self.event.pk}")
            return False
        return True


class VolunteerImportWriter(ParticipantImportWriter):
    def attach(self, participant: ParticipantRecord, row: ImportRow) -> bool:
        volunteer = add_volunteer(
            {
                "participant_id": participant.id,
                "role": row.role,
                "status": Volunteer.Status.active,
                "start_date": row.start_date,
            }
        )
        return volunteer.pk is not None


def import_writer_for(kind: ImportKind, *, club: Club | None = None, event: Event | None = None) -> ParticipantImportWriter:
    if kind == ImportKind.club_members:
        if club is None:
            raise ValueError("club is required for club member imports")
        return ClubMembershipImportWriter(club)
    if kind == ImportKind.event_attendees:
        if event is None:
            raise ValueError("event is required for event attendee imports")
        return EventAttendanceImportWriter(event)
    if kind == ImportKind.volunteers:
        return VolunteerImportWriter()
    return ParticipantImportWriter()
