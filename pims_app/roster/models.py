import datetime
import logging
import secrets

from django.conf import settings
from django.db import models
from django.db.models import Count
from django.utils import timezone

logger = logging.getLogger(__name__)


def participant_photo_upload_to(instance: "Participant", filename: str) -> str:
    # One photo per participant; the membership id is stable across edits.
    return f"participants/photos/{instance.membership_id or 'unassigned'}.png"


def generate_membership_id(now: datetime.datetime | None = None) -> str:
    when = now or timezone.now()
    prefix = str(settings.PIMS_MEMBERSHIP_ID_PREFIX).strip() or "YIN"
    return f"{prefix}-{when.year}-{secrets.token_hex(3).upper()}"


class Gender(models.TextChoices):
    male = "Male", "Male"
    female = "Female", "Female"
    other = "Other", "Other"


class Region(models.TextChoices):
    ashanti = "Ashanti", "Ashanti"
    greater_accra = "Greater Accra", "Greater Accra"
    volta = "Volta", "Volta"
    western = "Western", "Western"
    eastern = "Eastern", "Eastern"
    central = "Central", "Central"


class ParticipantQuerySet(models.QuerySet["Participant"]):
    def with_engagement(self) -> "ParticipantQuerySet":
        return self.annotate(engagement_score=Count("participations", distinct=True))

    def for_institution(self, institution: str) -> "ParticipantQuerySet":
        return self.filter(institution=institution)


class Participant(models.Model):
    name = models.CharField(max_length=255)
    gender = models.CharField(max_length=16, choices=Gender.choices, default=Gender.other)
    institution = models.CharField(max_length=255, blank=True, default="")
    region = models.CharField(max_length=32, choices=Region.choices, default=Region.greater_accra)
    contact = models.CharField(max_length=255)
    membership_status = models.BooleanField(default=False, verbose_name="Active member")
    certificate_issued = models.BooleanField(default=False)
    is_contestant = models.BooleanField(default=False, verbose_name="Contestant")
    notes = models.TextField(blank=True, default="")
    created_at = models.DateTimeField(default=timezone.now, verbose_name="Date joined")
    membership_id = models.CharField(max_length=32, unique=True, blank=True)
    ghana_card_number = models.CharField(max_length=32, blank=True, default="")
    last_membership_card_generated_at = models.DateTimeField(null=True, blank=True)
    photo = models.ImageField(upload_to=participant_photo_upload_to, null=True, blank=True)

    objects = ParticipantQuerySet.as_manager()

    class Meta:
        ordering = ("name", "pk")
        indexes = [
            models.Index(fields=["institution"], name="roster_part_institution_idx"),
        ]

    def __str__(self) -> str:
        return self.name

    def save(self, *args, **kwargs) -> None:
        if not self.membership_id:
            self.membership_id = generate_membership_id(self.created_at)
        super().save(*args, **kwargs)


class Club(models.Model):
    name = models.CharField(max_length=255)
    description = models.TextField(blank=True, default="")
    institution = models.CharField(max_length=255)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ("name", "pk")

    def __str__(self) -> str:
        return f"{self.name} ({self.institution})"


class Event(models.Model):
    title = models.CharField(max_length=255)
    date = models.DateField()
    year = models.PositiveIntegerField(blank=True, null=True)
    location = models.CharField(max_length=255, blank=True, default="")
    category = models.CharField(max_length=128, blank=True, default="")

    class Meta:
        ordering = ("-date", "title")

    def __str__(self) -> str:
        return f"{self.title} ({self.date.isoformat()})"

    def save(self, *args, **kwargs) -> None:
        if self.year is None and self.date is not None:
            self.year = self.date.year
        super().save(*args, **kwargs)


class ClubMembership(models.Model):
    participant = models.ForeignKey(Participant, on_delete=models.CASCADE, related_name="club_memberships")
    club = models.ForeignKey(Club, on_delete=models.CASCADE, related_name="memberships")
    join_date = models.DateTimeField(default=timezone.now)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["participant", "club"], name="roster_unique_club_membership"),
        ]

    def __str__(self) -> str:
        return f"{self.participant_id} in club {self.club_id}"


class Participation(models.Model):
    participant = models.ForeignKey(Participant, on_delete=models.CASCADE, related_name="participations")
    event = models.ForeignKey(Event, on_delete=models.CASCADE, related_name="participations")

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["participant", "event"], name="roster_unique_participation"),
        ]

    def __str__(self) -> str:
        return f"{self.participant_id} at event {self.event_id}"


class Volunteer(models.Model):
    class Role(models.TextChoices):
        event_staff = "Event Staff", "Event Staff"
        mentor = "Mentor", "Mentor"
        logistics = "Logistics", "Logistics"
        administrative = "Administrative", "Administrative"
        fundraising = "Fundraising", "Fundraising"

    class Status(models.TextChoices):
        active = "Active", "Active"
        inactive = "Inactive", "Inactive"
        pending = "Pending", "Pending"

    participant = models.ForeignKey(Participant, on_delete=models.CASCADE, related_name="volunteer_records")
    role = models.CharField(max_length=32, choices=Role.choices)
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.active)
    start_date = models.DateField(default=timezone.localdate)

    class Meta:
        ordering = ("-start_date", "pk")

    def __str__(self) -> str:
        return f"{self.participant_id} ({self.role}, {self.status})"
