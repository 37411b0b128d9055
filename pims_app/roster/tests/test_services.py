import datetime
from unittest.mock import patch

from django.db import IntegrityError
from django.test import TestCase
from django.utils import timezone

from roster.exceptions import DuplicateSkip
from roster.models import Club, ClubMembership, Event, Participant, Participation, Volunteer
from roster.reconcile import (
    ImportKind,
    ImportRow,
    ImportStats,
    ParticipantRecord,
    build_preview,
    coerce_row,
    execute,
    resolve_headers,
)
from roster.services import (
    ClubMembershipImportWriter,
    EventAttendanceImportWriter,
    ParticipantImportWriter,
    VolunteerImportWriter,
    add_club_membership,
    add_multiple_participants,
    add_multiple_participations,
    add_participant,
    add_participation,
    add_volunteer,
    available_participants_for_club,
    create_and_register,
    delete_multiple_participants,
    delete_participant,
    delete_participation,
    participant_snapshot,
    participants_with_engagement,
    record_membership_card_generated,
    update_participant,
)


def _row(**overrides: object) -> ImportRow:
    values: dict = {
        "number": 1,
        "name": "Ama Mensah",
        "contact": "024",
        "institution": "UG",
        "gender": "Female",
        "region": "Greater Accra",
    }
    values.update(overrides)
    return ImportRow(**values)


class ParticipantServiceTests(TestCase):
    def test_add_participant_assigns_membership_id_and_joins_club(self) -> None:
        club = Club.objects.create(name="Coding Club", institution="UG")

        participant = add_participant({"name": "Ama", "contact": "024", "institution": "UG"}, club=club)

        self.assertIsNotNone(participant)
        self.assertRegex(participant.membership_id, r"^YIN-\d{4}-[0-9A-F]{6}$")
        self.assertTrue(ClubMembership.objects.filter(participant=participant, club=club).exists())

    def test_add_participant_rejects_unknown_fields(self) -> None:
        with self.assertRaisesRegex(ValueError, "membership_id"):
            add_participant({"name": "Ama", "contact": "024", "membership_id": "X"})

    def test_add_participant_returns_none_when_database_rejects_row(self) -> None:
        with (
            patch("roster.services.Participant.objects.create", side_effect=IntegrityError("boom")),
            self.assertLogs("roster.services", level="ERROR"),
        ):
            self.assertIsNone(add_participant({"name": "Ama", "contact": "024"}))

        self.assertEqual(Participant.objects.count(), 0)

    def test_add_multiple_participants_counts_created_rows(self) -> None:
        created = add_multiple_participants(
            [{"name": "Ama", "contact": "024"}, {"name": "Kofi", "contact": "020"}],
        )

        self.assertEqual(created, 2)

    def test_update_participant(self) -> None:
        participant = Participant.objects.create(name="Ama", contact="024")

        updated = update_participant(participant.pk, {"institution": "KNUST", "certificate_issued": True})

        participant.refresh_from_db()
        self.assertEqual(updated.institution, "KNUST")
        self.assertEqual(participant.institution, "KNUST")
        self.assertTrue(participant.certificate_issued)

    def test_delete_participant_cascades_relations(self) -> None:
        participant = Participant.objects.create(name="Ama", contact="024")
        event = Event.objects.create(title="Summit", date=datetime.date(2024, 5, 1))
        Participation.objects.create(participant=participant, event=event)
        Volunteer.objects.create(participant=participant, role=Volunteer.Role.mentor)

        self.assertTrue(delete_participant(participant.pk))
        self.assertFalse(delete_participant(participant.pk))
        self.assertEqual(Participation.objects.count(), 0)
        self.assertEqual(Volunteer.objects.count(), 0)

    def test_delete_multiple_participants(self) -> None:
        ids = [Participant.objects.create(name=name, contact=name).pk for name in ("a", "b", "c")]

        self.assertEqual(delete_multiple_participants([*ids[:2], 9999]), 2)
        self.assertEqual(delete_multiple_participants([]), 0)
        self.assertEqual(Participant.objects.count(), 1)

    def test_record_membership_card_generated(self) -> None:
        participant = Participant.objects.create(name="Ama", contact="024")
        when = timezone.now()

        record_membership_card_generated(participant.pk, now=when)

        participant.refresh_from_db()
        self.assertEqual(participant.last_membership_card_generated_at, when)
        with self.assertRaises(Participant.DoesNotExist):
            record_membership_card_generated(9999)

    def test_participants_with_engagement_counts_distinct_events(self) -> None:
        ama = Participant.objects.create(name="Ama", contact="024")
        Participant.objects.create(name="Kofi", contact="020")
        for day in (1, 2):
            event = Event.objects.create(title=f"Day {day}", date=datetime.date(2024, 5, day))
            Participation.objects.create(participant=ama, event=event)

        scores = {p.name: p.engagement_score for p in participants_with_engagement()}

        self.assertEqual(scores, {"Ama": 2, "Kofi": 0})


class RelationServiceTests(TestCase):
    def setUp(self) -> None:
        self.participant = Participant.objects.create(name="Ama", contact="024", institution="UG")
        self.club = Club.objects.create(name="Coding Club", institution="UG")
        self.event = Event.objects.create(title="Summit", date=datetime.date(2024, 5, 1))

    def test_add_club_membership_is_idempotent(self) -> None:
        self.assertTrue(add_club_membership(self.participant.pk, self.club.pk))
        self.assertFalse(add_club_membership(self.participant.pk, self.club.pk))
        self.assertEqual(ClubMembership.objects.count(), 1)

    def test_add_participation_and_delete(self) -> None:
        self.assertTrue(add_participation(self.participant.pk, self.event.pk))
        self.assertFalse(add_participation(self.participant.pk, self.event.pk))
        self.assertEqual(self.event.year, 2024)

        self.assertTrue(delete_participation(self.participant.pk, self.event.pk))
        self.assertFalse(delete_participation(self.participant.pk, self.event.pk))

    def test_add_multiple_participations_reports_added_and_skipped(self) -> None:
        other = Participant.objects.create(name="Kofi", contact="020")
        add_participation(self.participant.pk, self.event.pk)

        added, skipped = add_multiple_participations([self.participant.pk, other.pk, other.pk], self.event.pk)

        self.assertEqual((added, skipped), (1, 1))

    def test_add_volunteer_defaults_status_and_start_date(self) -> None:
        volunteer = add_volunteer({"participant": self.participant, "role": Volunteer.Role.mentor})

        self.assertEqual(volunteer.status, Volunteer.Status.active)
        self.assertEqual(volunteer.start_date, timezone.localdate())

    def test_create_and_register_is_all_or_nothing(self) -> None:
        participant = create_and_register({"name": "Kofi", "contact": "020"}, self.event, club=self.club)

        self.assertTrue(Participation.objects.filter(participant=participant, event=self.event).exists())
        self.assertTrue(ClubMembership.objects.filter(participant=participant, club=self.club).exists())

        with (
            patch("roster.services.Participation.objects.create", side_effect=IntegrityError("boom")),
            self.assertRaises(IntegrityError),
        ):
            create_and_register({"name": "Yaw", "contact": "026"}, self.event)

        self.assertFalse(Participant.objects.filter(name="Yaw").exists())

    def test_available_participants_for_club(self) -> None:
        member = Participant.objects.create(name="Esi", contact="027", institution="UG")
        Participant.objects.create(name="Abena", contact="023", institution="KNUST")
        ClubMembership.objects.create(participant=member, club=self.club)

        self.assertEqual(list(available_participants_for_club(self.club)), [self.participant])


class ParticipantSnapshotTests(TestCase):
    def setUp(self) -> None:
        self.ama = Participant.objects.create(name="Ama", contact="024", institution="UG")
        self.kofi = Participant.objects.create(name="Kofi", contact="020", institution="KNUST")

    def test_club_snapshot_links_members_and_scopes_institution(self) -> None:
        club = Club.objects.create(name="Coding Club", institution="UG")
        ClubMembership.objects.create(participant=self.ama, club=club)

        snapshot = participant_snapshot(ImportKind.club_members, club=club)

        self.assertEqual(snapshot.linked_participant_ids, frozenset({self.ama.pk}))
        self.assertEqual(snapshot.institution, "UG")
        self.assertEqual(list(snapshot.by_key()), ["ama_024"])

    def test_volunteer_snapshot_links_volunteers(self) -> None:
        Volunteer.objects.create(participant=self.kofi, role=Volunteer.Role.mentor)

        snapshot = participant_snapshot(ImportKind.volunteers)

        self.assertEqual(snapshot.linked_participant_ids, frozenset({self.kofi.pk}))
        self.assertEqual(len(snapshot.participants), 2)

    def test_participant_snapshot_links_everyone(self) -> None:
        snapshot = participant_snapshot(ImportKind.participants)

        self.assertEqual(snapshot.linked_participant_ids, frozenset({self.ama.pk, self.kofi.pk}))

    def test_event_snapshot_requires_event(self) -> None:
        with self.assertRaises(ValueError):
            participant_snapshot(ImportKind.event_attendees)


class ImportWriterTests(TestCase):
    def setUp(self) -> None:
        self.participant = Participant.objects.create(name="Ama Mensah", contact="024", institution="UG")
        self.record = ParticipantRecord(id=self.participant.pk, name="Ama Mensah", contact="024", institution="UG")

    def test_club_writer_raises_duplicate_skip_for_existing_membership(self) -> None:
        club = Club.objects.create(name="Coding Club", institution="UG")
        writer = ClubMembershipImportWriter(club)

        self.assertTrue(writer.attach(self.record, _row()))
        with self.assertRaises(DuplicateSkip):
            writer.attach(self.record, _row())

    def test_event_writer_raises_duplicate_skip_for_existing_registration(self) -> None:
        event = Event.objects.create(title="Summit", date=datetime.date(2024, 5, 1))
        writer = EventAttendanceImportWriter(event)

        self.assertTrue(writer.attach(self.record, _row()))
        with self.assertRaises(DuplicateSkip):
            writer.attach(self.record, _row())

    def test_writer_creates_participant_from_row(self) -> None:
        writer = VolunteerImportWriter()

        created = writer.create_participant(_row(name="Kofi", contact="020", is_member=True, notes="Imported"))

        participant = Participant.objects.get(pk=created.id)
        self.assertEqual(created.key, "kofi_020")
        self.assertTrue(participant.membership_status)
        self.assertFalse(participant.certificate_issued)

    def test_volunteer_writer_uses_row_role_and_start_date(self) -> None:
        writer = VolunteerImportWriter()

        writer.attach(self.record, _row(role="Fundraising", start_date=datetime.date(2024, 2, 1)))

        volunteer = Volunteer.objects.get(participant=self.participant)
        self.assertEqual(volunteer.role, Volunteer.Role.fundraising)
        self.assertEqual(volunteer.start_date, datetime.date(2024, 2, 1))


class RepeatedRowImportTests(TestCase):
    def _execute(self, kind: ImportKind, records: list[dict[str, str]], *, club: Club | None = None) -> ImportStats:
        header_map = resolve_headers(list(records[0]), kind)
        institution = club.institution if club is not None else None
        rows = [
            coerce_row(data, number=index, kind=kind, header_map=header_map, institution=institution)
            for index, data in enumerate(records, start=1)
        ]
        snapshot = participant_snapshot(kind, club=club)
        preview = build_preview(rows, snapshot, kind)
        writer = ClubMembershipImportWriter(club) if club is not None else ParticipantImportWriter()
        return execute(preview, snapshot, writer, kind=kind)

    def test_repeated_new_row_counts_as_created_without_second_participant(self) -> None:
        stats = self._execute(
            ImportKind.participants,
            [
                {"NAMES": "Ama", "CONTACT": "024"},
                {"NAMES": "Ama", "CONTACT": "024"},
                {"NAMES": "Kofi", "CONTACT": ""},
            ],
        )

        self.assertEqual(stats, ImportStats(created=2, converted=0, skipped=1, failed=0))
        self.assertEqual(Participant.objects.count(), 1)

    def test_repeated_new_club_row_links_the_member_once(self) -> None:
        club = Club.objects.create(name="Coding Club", institution="UG")

        stats = self._execute(
            ImportKind.club_members,
            [{"Name": "Ama", "Contact": "024"}, {"Name": " AMA ", "Contact": "024"}],
            club=club,
        )

        self.assertEqual((stats.created, stats.skipped, stats.failed), (2, 0, 0))
        participant = Participant.objects.get()
        self.assertEqual(ClubMembership.objects.filter(participant=participant, club=club).count(), 1)
