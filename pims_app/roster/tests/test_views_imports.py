from django.contrib.auth import get_user_model
from django.core.cache import cache
from django.test import TestCase
from django.urls import reverse


class ImportDownloadViewsTests(TestCase):
    def setUp(self) -> None:
        user = get_user_model().objects.create_user("alex", "alex@example.org", "pw", is_staff=True)
        self.client.force_login(user)

    def test_template_download_per_importer(self) -> None:
        cases = [
            ("participants", "YIN_Participant_Import_Template.csv", "NAMES,CONTACT,INSTITUTION,MEMBERS"),
            ("club_members", "YIN_Club_Import_Template.csv", "Name,Contact,Gender,Region,Ghana Card,Contestant"),
            ("event_attendees", "YIN_Event_Attendee_Import_Template.csv", "Name,Contact,Institution"),
            ("volunteers", "YIN_Volunteer_Import_Template.csv", "Name,Contact,Institution,Role,StartDate"),
        ]

        for kind, filename, header_prefix in cases:
            with self.subTest(kind=kind):
                resp = self.client.get(reverse("roster-import-template", kwargs={"kind": kind}))

                self.assertEqual(resp.status_code, 200)
                self.assertEqual(resp["Content-Disposition"], f'attachment; filename="{filename}"')
                lines = resp.content.decode("utf-8").splitlines()
                self.assertTrue(lines[0].startswith(header_prefix))
                self.assertEqual(len(lines), 2)

    def test_template_download_unknown_kind_is_404(self) -> None:
        resp = self.client.get(reverse("roster-import-template", kwargs={"kind": "donors"}))

        self.assertEqual(resp.status_code, 404)

    def test_skipped_rows_download_reads_cache(self) -> None:
        cache.set("roster-import-skipped:abc123", "Name,Reason\r\nAma,Invalid Data\r\n")

        resp = self.client.get(reverse("roster-import-skipped-download", kwargs={"token": "abc123"}))

        self.assertEqual(resp.status_code, 200)
        self.assertIn("YIN_Import_Skipped_Rows.csv", resp["Content-Disposition"])
        self.assertIn("Ama,Invalid Data", resp.content.decode("utf-8"))

    def test_skipped_rows_download_expired_token_is_404(self) -> None:
        resp = self.client.get(reverse("roster-import-skipped-download", kwargs={"token": "missing"}))

        self.assertEqual(resp.status_code, 404)

    def test_downloads_require_staff(self) -> None:
        self.client.logout()

        resp = self.client.get(reverse("roster-import-template", kwargs={"kind": "participants"}))

        self.assertEqual(resp.status_code, 302)
