"""
Property Management Admin
Status fields are read-only here; transitions go through apps.property.services.
"""
from django.contrib import admin
from .models import Tenant, PDCCheque, PDCWithdrawal


@admin.register(Tenant)
class TenantAdmin(admin.ModelAdmin):
    list_display = ['tenant_number', 'name', 'email', 'phone', 'status', 'is_active']
    list_filter = ['status', 'is_active']
    search_fields = ['tenant_number', 'name', 'email', 'phone']
    readonly_fields = ['tenant_number', 'created_at', 'updated_at']


@admin.register(PDCCheque)
class PDCChequeAdmin(admin.ModelAdmin):
    list_display = [
        'pdc_number', 'cheque_number', 'bank_name', 'cheque_date',
        'amount', 'tenant', 'status', 'version'
    ]
    list_filter = ['status', 'bank_name', 'is_active']
    search_fields = ['pdc_number', 'cheque_number', 'tenant__name', 'bank_name']
    readonly_fields = [
        'pdc_number', 'status', 'version',
        'deposit_date', 'deposit_account',
        'cleared_date', 'clearing_reference',
        'bounced_date', 'bounce_reason',
        'replaced_by', 'replaces',
        'created_at', 'updated_at',
    ]
    date_hierarchy = 'cheque_date'

    fieldsets = (
        ('Cheque Details', {
            'fields': ('pdc_number', 'cheque_number', 'bank_name', 'cheque_date', 'amount')
        }),
        ('Tenant & Lease', {
            'fields': ('tenant', 'lease_reference', 'installment_number')
        }),
        ('Status', {
            'fields': ('status', 'version', 'received_date')
        }),
        ('Deposit', {
            'fields': ('deposit_date', 'deposit_account')
        }),
        ('Clearing', {
            'fields': ('cleared_date', 'clearing_reference')
        }),
        ('Bounce', {
            'fields': ('bounced_date', 'bounce_reason'),
            'classes': ('collapse',)
        }),
        ('Replacement', {
            'fields': ('replaced_by', 'replaces'),
            'classes': ('collapse',)
        }),
        ('Notes', {
            'fields': ('notes',)
        }),
    )

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(PDCWithdrawal)
class PDCWithdrawalAdmin(admin.ModelAdmin):
    list_display = [
        'withdrawal_number', 'pdc', 'withdrawal_date', 'reason',
        'replacement_method', 'status_before', 'is_active'
    ]
    list_filter = ['reason', 'replacement_method', 'is_active']
    search_fields = ['withdrawal_number', 'pdc__cheque_number', 'pdc__tenant__name']
    date_hierarchy = 'withdrawal_date'

    def get_readonly_fields(self, request, obj=None):
        return [field.name for field in self.model._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False
