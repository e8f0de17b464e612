"""
Core Admin
"""
from django.contrib import admin
from .models import AuditLog


@admin.register(AuditLog)
class AuditLogAdmin(admin.ModelAdmin):
    list_display = ['timestamp', 'user', 'action', 'model', 'record_id', 'ip_address']
    list_filter = ['action', 'model']
    search_fields = ['model', 'record_id', 'user__username']
    readonly_fields = ['timestamp', 'user', 'action', 'model', 'record_id', 'changes', 'ip_address']
    date_hierarchy = 'timestamp'

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
