import logging
from typing import Any, override

from django.contrib import admin, messages
from django.contrib.admin import helpers
from django.db.models import QuerySet
from django.http import HttpRequest, HttpResponse
from django.template.response import TemplateResponse
from django.urls import reverse
from import_export.admin import ImportMixin
from import_export.formats import base_formats

from roster.admin_import_preview_utils import build_import_preview_context
from roster.csv_import import (
    COLUMN_FIELDS,
    ClubMemberCSVConfirmImportForm,
    ClubMemberCSVImportForm,
    ClubMemberCSVImportResource,
    EventAttendeeCSVConfirmImportForm,
    EventAttendeeCSVImportForm,
    EventAttendeeCSVImportResource,
    ParticipantCSVImportResource,
    RosterCSVConfirmImportForm,
    RosterCSVImportForm,
    VolunteerCSVImportResource,
)
from roster.exceptions import ExportError
from roster.exports import ParticipantExportForm, build_export, export_filename
from roster.models import Club, ClubMembership, Event, Participant, Participation, Volunteer
from roster.reconcile import ImportKind

logger = logging.getLogger(__name__)


class RosterCSVImportAdminMixin(ImportMixin):
    """Shared preview/confirm wiring for the roster CSV importers."""

    import_kind = ImportKind.participants
    import_form_class = RosterCSVImportForm
    confirm_form_class = RosterCSVConfirmImportForm
    import_template_name = "admin/roster/import.html"
    # Fields beyond the column overrides that travel from the import form to the resource.
    import_context_fields: tuple[str, ...] = ()
    skip_admin_log = True
    from_encoding = "utf-8-sig"

    @override
    def get_import_formats(self) -> list[type[base_formats.Format]]:
        return [base_formats.CSV]

    @override
    def has_import_permission(self, request: HttpRequest) -> bool:
        user = request.user
        return bool(user.is_active and user.is_staff)

    @override
    def get_import_resource_kwargs(self, request: HttpRequest, **kwargs: Any) -> dict[str, Any]:
        resource_kwargs = super().get_import_resource_kwargs(request, **kwargs)
        # The resource is built from cleaned values only, never the form itself.
        form = resource_kwargs.pop("form", None)
        cleaned = getattr(form, "cleaned_data", None) or {}
        for field_name in COLUMN_FIELDS:
            resource_kwargs[field_name] = str(cleaned.get(field_name) or "")
        for field_name in self.import_context_fields:
            resource_kwargs[field_name] = cleaned.get(field_name)
        resource_kwargs["actor_username"] = request.user.get_username()
        return resource_kwargs

    @override
    def get_confirm_form_initial(self, request: HttpRequest, import_form: Any) -> dict[str, Any]:
        initial = super().get_confirm_form_initial(request, import_form)
        if import_form is None:
            return initial

        for field_name in COLUMN_FIELDS:
            initial[field_name] = import_form.cleaned_data.get(field_name, "")
        for field_name in self.import_context_fields:
            value = import_form.cleaned_data.get(field_name)
            initial[field_name] = getattr(value, "pk", value)
        return initial

    @override
    def import_action(self, request: HttpRequest, **kwargs: Any) -> HttpResponse:
        response = super().import_action(request, **kwargs)
        context = getattr(response, "context_data", None)
        if not isinstance(context, dict):
            return response

        context["import_template_url"] = reverse("roster-import-template", kwargs={"kind": self.import_kind})

        result = context.get("result")
        if result is None:
            return response

        context.update(build_import_preview_context(valid_rows=list(result.valid_rows()), request_get=request.GET))
        context["preview_counts"] = getattr(result, "preview_counts", None)
        context["skipped_download_url"] = getattr(result, "skipped_download_url", "")
        return response

    @override
    def add_success_message(self, result: Any, request: HttpRequest) -> None:
        stats = getattr(result, "import_stats", None)
        if stats is None:
            super().add_success_message(result, request)
            return
        messages.success(request, stats.as_message(self.import_kind))


@admin.register(Participant)
class ParticipantAdmin(RosterCSVImportAdminMixin, admin.ModelAdmin):
    import_kind = ImportKind.participants
    resource_classes = [ParticipantCSVImportResource]

    list_display = (
        "name",
        "membership_id",
        "contact",
        "institution",
        "region",
        "membership_status",
        "engagement_score",
    )
    list_filter = ("membership_status", "is_contestant", "certificate_issued", "gender", "region")
    search_fields = ("name", "contact", "institution", "membership_id", "ghana_card_number")
    readonly_fields = ("membership_id", "created_at", "last_membership_card_generated_at")
    actions = ("export_participants",)

    @override
    def get_queryset(self, request: HttpRequest) -> QuerySet[Participant]:
        return super().get_queryset(request).with_engagement()

    @admin.display(description="Engagement score", ordering="engagement_score")
    def engagement_score(self, obj: Participant) -> int:
        return int(getattr(obj, "engagement_score", 0) or 0)

    @admin.action(description="Export selected participants to CSV")
    def export_participants(self, request: HttpRequest, queryset: QuerySet[Participant]) -> HttpResponse | None:
        form = ParticipantExportForm(request.POST if "apply" in request.POST else None)
        if form.is_bound and form.is_valid():
            try:
                dataset = build_export(queryset, form.selected_columns())
            except ExportError as exc:
                self.message_user(request, str(exc), level=messages.ERROR)
                return None

            response = HttpResponse(dataset.export("csv"), content_type="text/csv; charset=utf-8")
            response["Content-Disposition"] = f'attachment; filename="{export_filename()}"'
            return response

        return TemplateResponse(
            request,
            "admin/roster/participant/export.html",
            {
                **self.admin_site.each_context(request),
                "title": "Export participants",
                "opts": self.model._meta,
                "form": form,
                "queryset": queryset,
                "action_checkbox_name": helpers.ACTION_CHECKBOX_NAME,
            },
        )


@admin.register(Club)
class ClubAdmin(admin.ModelAdmin):
    list_display = ("name", "institution", "member_count", "created_at")
    search_fields = ("name", "institution")

    @admin.display(description="Members")
    def member_count(self, obj: Club) -> int:
        return obj.memberships.count()


@admin.register(Event)
class EventAdmin(admin.ModelAdmin):
    list_display = ("title", "date", "year", "location", "category", "attendee_count")
    list_filter = ("year", "category")
    search_fields = ("title", "location", "category")

    @admin.display(description="Attendees")
    def attendee_count(self, obj: Event) -> int:
        return obj.participations.count()


@admin.register(ClubMembership)
class ClubMembershipAdmin(RosterCSVImportAdminMixin, admin.ModelAdmin):
    import_kind = ImportKind.club_members
    resource_classes = [ClubMemberCSVImportResource]
    import_form_class = ClubMemberCSVImportForm
    confirm_form_class = ClubMemberCSVConfirmImportForm
    import_context_fields = ("club",)

    list_display = ("participant", "club", "join_date")
    list_filter = ("club",)
    search_fields = ("participant__name", "participant__contact", "club__name")
    autocomplete_fields = ("participant",)


@admin.register(Participation)
class ParticipationAdmin(RosterCSVImportAdminMixin, admin.ModelAdmin):
    import_kind = ImportKind.event_attendees
    resource_classes = [EventAttendeeCSVImportResource]
    import_form_class = EventAttendeeCSVImportForm
    confirm_form_class = EventAttendeeCSVConfirmImportForm
    import_context_fields = ("event",)

    list_display = ("participant", "event")
    list_filter = ("event",)
    search_fields = ("participant__name", "participant__contact", "event__title")
    autocomplete_fields = ("participant",)


@admin.register(Volunteer)
class VolunteerAdmin(RosterCSVImportAdminMixin, admin.ModelAdmin):
    import_kind = ImportKind.volunteers
    resource_classes = [VolunteerCSVImportResource]

    list_display = ("participant", "role", "status", "start_date")
    list_filter = ("role", "status")
    search_fields = ("participant__name", "participant__contact")
    autocomplete_fields = ("participant",)
