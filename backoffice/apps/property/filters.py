"""
Filter sets for the PDC register and the withdrawal ledger.
"""
import django_filters
from django.db.models import Q
from django_filters.constants import EMPTY_VALUES

from .models import PDCCheque, PDCStatus, PDCWithdrawal, ReplacementPaymentMethod


class StableOrderingFilter(django_filters.OrderingFilter):
    """OrderingFilter that always ends on the primary key, so pages never overlap."""

    def filter(self, qs, value):
        qs = super().filter(qs, value)
        if value in EMPTY_VALUES:
            return qs
        return qs.order_by(*qs.query.order_by, 'pk')


class PDCFilter(django_filters.FilterSet):
    search = django_filters.CharFilter(method='filter_search')
    status = django_filters.MultipleChoiceFilter(choices=PDCStatus.choices)
    tenant = django_filters.NumberFilter(field_name='tenant_id')
    bank_name = django_filters.CharFilter(lookup_expr='icontains')
    date_from = django_filters.DateFilter(field_name='cheque_date', lookup_expr='gte')
    date_to = django_filters.DateFilter(field_name='cheque_date', lookup_expr='lte')
    ordering = StableOrderingFilter(fields=(
        ('cheque_date', 'cheque_date'),
        ('amount', 'amount'),
        ('status', 'status'),
        ('bank_name', 'bank_name'),
        ('deposit_date', 'deposit_date'),
        ('created_at', 'created_at'),
    ))

    class Meta:
        model = PDCCheque
        fields = []

    def filter_search(self, queryset, name, value):
        return queryset.filter(
            Q(pdc_number__icontains=value) |
            Q(cheque_number__icontains=value) |
            Q(bank_name__icontains=value) |
            Q(tenant__name__icontains=value)
        )


class WithdrawalFilter(django_filters.FilterSet):
    search = django_filters.CharFilter(method='filter_search')
    reason = django_filters.CharFilter(lookup_expr='iexact')
    replacement_method = django_filters.ChoiceFilter(choices=ReplacementPaymentMethod.choices)
    tenant = django_filters.NumberFilter(field_name='pdc__tenant_id')
    date_from = django_filters.DateFilter(field_name='withdrawal_date', lookup_expr='gte')
    date_to = django_filters.DateFilter(field_name='withdrawal_date', lookup_expr='lte')
    ordering = StableOrderingFilter(fields=(
        ('withdrawal_date', 'withdrawal_date'),
        ('reason', 'reason'),
        ('created_at', 'created_at'),
        ('pdc__cheque_number', 'cheque_number'),
        ('pdc__amount', 'amount'),
    ))

    class Meta:
        model = PDCWithdrawal
        fields = []

    def filter_search(self, queryset, name, value):
        return queryset.filter(
            Q(withdrawal_number__icontains=value) |
            Q(pdc__cheque_number__icontains=value) |
            Q(pdc__tenant__name__icontains=value)
        )
