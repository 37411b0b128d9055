import datetime

from django.test import SimpleTestCase, TestCase, override_settings
from django.utils import translation

from roster.exceptions import ExportError
from roster.exports import (
    ParticipantExportForm,
    build_export,
    default_export_columns,
    export_filename,
    format_export_value,
)
from roster.models import Event, Participant, Participation
from roster.services import participants_with_engagement


class FormatExportValueTests(SimpleTestCase):
    def test_formats_scalars(self) -> None:
        self.assertEqual(format_export_value(None), "")
        self.assertEqual(format_export_value(True), "Yes")
        self.assertEqual(format_export_value(False), "No")
        self.assertEqual(format_export_value(3), 3)
        self.assertEqual(format_export_value("UG"), "UG")

    def test_formats_dates_in_locale_short_format(self) -> None:
        with translation.override("en-gb"):
            self.assertEqual(format_export_value(datetime.date(2024, 1, 2)), "02/01/2024")

    @override_settings(TIME_ZONE="Africa/Lagos")
    def test_formats_aware_datetimes_in_local_time(self) -> None:
        value = datetime.datetime(2024, 1, 1, 23, 30, tzinfo=datetime.UTC)

        with translation.override("en-gb"):
            self.assertEqual(format_export_value(value), "02/01/2024")


class ExportFilenameTests(SimpleTestCase):
    @override_settings(PIMS_EXPORT_FILENAME_PREFIX="YIN_PIMS")
    def test_export_filename_is_dated(self) -> None:
        self.assertEqual(
            export_filename(datetime.date(2024, 3, 9)),
            "YIN_PIMS_Participants_Export_2024-03-09.csv",
        )


class BuildExportTests(TestCase):
    def setUp(self) -> None:
        self.ama = Participant.objects.create(
            name="Ama Mensah",
            contact="0241234567",
            institution="UG",
            membership_status=True,
        )
        self.kofi = Participant.objects.create(name="Kofi Boateng", contact="0207654321", institution="KNUST")
        event = Event.objects.create(title="Summit", date=datetime.date(2024, 5, 1))
        Participation.objects.create(participant=self.ama, event=event)

    def test_columns_follow_selection_order(self) -> None:
        dataset = build_export(participants_with_engagement(), ["contact", "name", "engagement_score"])

        self.assertEqual(dataset.headers, ["Contact", "Name", "Engagement Score"])
        self.assertEqual(dataset[0], ("0241234567", "Ama Mensah", 1))
        self.assertEqual(dataset[1], ("0207654321", "Kofi Boateng", 0))

    def test_booleans_render_yes_no(self) -> None:
        dataset = build_export(participants_with_engagement(), ["name", "membership_status"])

        self.assertEqual([row[1] for row in dataset], ["Yes", "No"])

    def test_default_columns_export_with_labels(self) -> None:
        dataset = build_export(participants_with_engagement(), default_export_columns())

        self.assertEqual(
            dataset.headers,
            ["Membership ID", "Name", "Contact", "Institution", "Membership Status", "Engagement Score"],
        )
        self.assertEqual(dataset[0][0], self.ama.membership_id)

    def test_empty_selection_is_rejected(self) -> None:
        with self.assertRaisesRegex(ExportError, "at least one column"):
            build_export(participants_with_engagement(), [])

    def test_unknown_column_is_rejected(self) -> None:
        with self.assertRaisesRegex(ExportError, "photo"):
            build_export(participants_with_engagement(), ["name", "photo"])

    def test_empty_entity_set_is_rejected(self) -> None:
        with self.assertRaisesRegex(ExportError, "no participants"):
            build_export(Participant.objects.none(), ["name"])


class ParticipantExportFormTests(SimpleTestCase):
    def test_selected_columns_follow_column_order_then_remaining_selection(self) -> None:
        form = ParticipantExportForm(
            data={"columns": ["name", "contact", "region"], "column_order": "region, name, gender"},
        )

        self.assertTrue(form.is_valid(), form.errors)
        self.assertEqual(form.selected_columns(), ["region", "name", "contact"])

    def test_unknown_column_choice_is_invalid(self) -> None:
        form = ParticipantExportForm(data={"columns": ["name", "password"]})

        self.assertFalse(form.is_valid())
        self.assertIn("columns", form.errors)
