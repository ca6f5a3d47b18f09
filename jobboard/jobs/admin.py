from django.contrib import admin

from .models import ApplicationStatusEvent, Job, JobApplication


@admin.register(Job)
class JobAdmin(admin.ModelAdmin):
    list_display = ("title", "company", "status", "location", "created_at")
    list_filter = ("status", "job_type", "experience_level")
    search_fields = ("title", "company__name")


class StatusEventInline(admin.TabularInline):
    model = ApplicationStatusEvent
    extra = 0
    can_delete = False
    readonly_fields = ("sequence", "status", "previous_status", "changed_by", "changed_at")

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(JobApplication)
class JobApplicationAdmin(admin.ModelAdmin):
    list_display = ("applicant", "job", "status", "applied_at", "responded_at")
    list_filter = ("status",)
    inlines = [StatusEventInline]

    # view only: writes go through ApplicationService so the history, the
    # version and the resume file stay in step
    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
