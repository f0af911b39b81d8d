import logging

from django.contrib import admin

from .models import Candidate, Election, Position

logger = logging.getLogger("elections")


class ElectionAdmin(admin.ModelAdmin):
    list_display = ("title", "start_time", "end_time", "is_active")
    list_filter = ("is_active",)

    def has_change_permission(self, request, obj=None):
        return request.user.is_superuser

    def has_view_permission(self, request, obj=None):
        return request.user.is_staff or request.user.is_superuser

    def save_model(self, request, obj, form, change):
        if change:
            logger.info(
                f"Election updated by admin : {request.user.username} - {obj.id}"
            )
        else:
            logger.info(
                f"Election created by admin: {request.user.username} - {obj.id}"
            )
        super().save_model(request, obj, form, change)


class CandidateInline(admin.TabularInline):
    model = Candidate
    extra = 0
    fields = ("name", "party", "photo_url")


class PositionAdmin(admin.ModelAdmin):
    list_display = ("title", "created_at")
    inlines = [CandidateInline]


class CandidateAdmin(admin.ModelAdmin):
    list_display = ("name", "party", "position")
    list_filter = ("position",)

    def has_view_permission(self, request, obj=None):
        return request.user.is_staff or request.user.is_superuser

    def has_change_permission(self, request, obj=None):
        return request.user.is_superuser

    def get_readonly_fields(self, request, obj=None):
        readonly = list(super().get_readonly_fields(request, obj))
        # votes keep the position they were cast for
        if obj is not None and obj.votes.exists():
            readonly.append("position")
        return readonly

    def save_model(self, request, obj, form, change):
        if change:
            logger.info(
                f"Candidate updated by admin: {request.user.username} - {obj.id}"
            )
        else:
            logger.info(
                f"Candidate added by admin : {request.user.username} - {obj.id}"
            )
        super().save_model(request, obj, form, change)


admin.site.register(Election, ElectionAdmin)
admin.site.register(Position, PositionAdmin)
admin.site.register(Candidate, CandidateAdmin)
