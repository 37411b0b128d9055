import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models

import roster.models


class Migration(migrations.Migration):

    initial = True

    dependencies = []

    operations = [
        migrations.CreateModel(
            name="Club",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=255)),
                ("description", models.TextField(blank=True, default="")),
                ("institution", models.CharField(max_length=255)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
            ],
            options={
                "ordering": ("name", "pk"),
            },
        ),
        migrations.CreateModel(
            name="Event",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("title", models.CharField(max_length=255)),
                ("date", models.DateField()),
                ("year", models.PositiveIntegerField(blank=True, null=True)),
                ("location", models.CharField(blank=True, default="", max_length=255)),
                ("category", models.CharField(blank=True, default="", max_length=128)),
            ],
            options={
                "ordering": ("-date", "title"),
            },
        ),
        migrations.CreateModel(
            name="Participant",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("name", models.CharField(max_length=255)),
                (
                    "gender",
                    models.CharField(
                        choices=[("Male", "Male"), ("Female", "Female"), ("Other", "Other")],
                        default="Other",
                        max_length=16,
                    ),
                ),
                ("institution", models.CharField(blank=True, default="", max_length=255)),
                (
                    "region",
                    models.CharField(
                        choices=[
                            ("Ashanti", "Ashanti"),
                            ("Greater Accra", "Greater Accra"),
                            ("Volta", "Volta"),
                            ("Western", "Western"),
                            ("Eastern", "Eastern"),
                            ("Central", "Central"),
                        ],
                        default="Greater Accra",
                        max_length=32,
                    ),
                ),
                ("contact", models.CharField(max_length=255)),
                ("membership_status", models.BooleanField(default=False, verbose_name="Active member")),
                ("certificate_issued", models.BooleanField(default=False)),
                ("is_contestant", models.BooleanField(default=False, verbose_name="Contestant")),
                ("notes", models.TextField(blank=True, default="")),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now, verbose_name="Date joined")),
                ("membership_id", models.CharField(blank=True, max_length=32, unique=True)),
                ("ghana_card_number", models.CharField(blank=True, default="", max_length=32)),
                ("last_membership_card_generated_at", models.DateTimeField(blank=True, null=True)),
                (
                    "photo",
                    models.ImageField(blank=True, null=True, upload_to=roster.models.participant_photo_upload_to),
                ),
            ],
            options={
                "ordering": ("name", "pk"),
                "indexes": [models.Index(fields=["institution"], name="roster_part_institution_idx")],
            },
        ),
        migrations.CreateModel(
            name="ClubMembership",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                ("join_date", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "club",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="memberships",
                        to="roster.club",
                    ),
                ),
                (
                    "participant",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="club_memberships",
                        to="roster.participant",
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(fields=("participant", "club"), name="roster_unique_club_membership")
                ],
            },
        ),
        migrations.CreateModel(
            name="Participation",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "event",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="participations",
                        to="roster.event",
                    ),
                ),
                (
                    "participant",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="participations",
                        to="roster.participant",
                    ),
                ),
            ],
            options={
                "constraints": [
                    models.UniqueConstraint(fields=("participant", "event"), name="roster_unique_participation")
                ],
            },
        ),
        migrations.CreateModel(
            name="Volunteer",
            fields=[
                ("id", models.BigAutoField(auto_created=True, primary_key=True, serialize=False, verbose_name="ID")),
                (
                    "role",
                    models.CharField(
                        choices=[
                            ("Event Staff", "Event Staff"),
                            ("Mentor", "Mentor"),
                            ("Logistics", "Logistics"),
                            ("Administrative", "Administrative"),
                            ("Fundraising", "Fundraising"),
                        ],
                        max_length=32,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[("Active", "Active"), ("Inactive", "Inactive"), ("Pending", "Pending")],
                        default="Active",
                        max_length=16,
                    ),
                ),
                ("start_date", models.DateField(default=django.utils.timezone.localdate)),
                (
                    "participant",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="volunteer_records",
                        to="roster.participant",
                    ),
                ),
            ],
            options={
                "ordering": ("-start_date", "pk"),
            },
        ),
    ]
