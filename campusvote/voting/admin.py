from django.contrib import admin

from .models import Vote


class VoteAdmin(admin.ModelAdmin):
    """
    Votes are visible to staff but never added or edited by hand.
    """
    list_display = ("voter", "position", "candidate", "voted_at")
    list_filter = ("position",)

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False


admin.site.register(Vote, VoteAdmin)
