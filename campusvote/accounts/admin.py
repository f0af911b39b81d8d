from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from .models import PartyRep, User, Voter
import logging

logger = logging.getLogger('accounts')


class UserAdmin(BaseUserAdmin):

    def has_change_permission(self, request, obj = None):
        return request.user.is_superuser

    def has_delete_permission(self, request, obj = None):
        return request.user.is_superuser

    def has_view_permission(self, request, obj = None):
        return request.user.is_superuser or request.user.is_staff

    def save_model(self, request, obj, form, change):
        if change:
            logger.info(f'User updated by admin: {request.user.username} - {obj.username}')
        else:
            logger.info(f"User created by admin: {request.user.username}- {obj.username}")
        super().save_model(request, obj, form, change)


class VoterAdmin(admin.ModelAdmin):
    list_display = ('full_name', 'university_id', 'email', 'is_verified')
    list_filter = ('is_verified',)
    search_fields = ('full_name', 'university_id', 'email')

    def save_model(self, request, obj, form, change):
        if change:
            logger.info(f"Voter updated by admin: {request.user.username} - {obj.pk}")
        else:
            logger.info(f"Voter added by admin: {request.user.username} - {obj.pk}")
        super().save_model(request, obj, form, change)


class PartyRepAdmin(admin.ModelAdmin):
    list_display = ('email', 'name', 'created_at')
    search_fields = ('email', 'name')


admin.site.register(User, UserAdmin)
admin.site.register(Voter, VoterAdmin)
admin.site.register(PartyRep, PartyRepAdmin)
