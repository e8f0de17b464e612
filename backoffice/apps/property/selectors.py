"""
Read-side queries for the PDC register: filtered pages, the withdrawal
ledger, dashboard metrics and per-tenant history.
"""
from datetime import date, timedelta
from decimal import Decimal

from django.core.exceptions import ValidationError
from django.core.paginator import Paginator
from django.db.models import Count, Q, Sum

from .filters import PDCFilter, WithdrawalFilter
from .models import OUTSTANDING_STATUSES, PDCCheque, PDCStatus, PDCWithdrawal

DEFAULT_PAGE_SIZE = 30
MAX_PAGE_SIZE = 100


def _page_size(value):
    try:
        size = int(value)
    except (TypeError, ValueError):
        return DEFAULT_PAGE_SIZE
    return max(1, min(size, MAX_PAGE_SIZE))


def paginate(queryset, page=1, page_size=DEFAULT_PAGE_SIZE):
    """
    Slice a queryset into a page payload:
    {results, page, page_size, total, total_pages}. Out-of-range page
    numbers land on the nearest valid page.
    """
    paginator = Paginator(queryset, _page_size(page_size))
    page_obj = paginator.get_page(page)
    return {
        'results': list(page_obj.object_list),
        'page': page_obj.number,
        'page_size': paginator.per_page,
        'total': paginator.count,
        'total_pages': paginator.num_pages,
    }


def _filtered(filterset):
    if not filterset.is_valid():
        raise ValidationError(
            '; '.join(f'{field}: {" ".join(errors)}' for field, errors in filterset.errors.items())
        )
    return filterset.qs


def pdc_page(params=None, page=1, page_size=DEFAULT_PAGE_SIZE):
    queryset = PDCCheque.objects.filter(is_active=True).select_related('tenant')
    return paginate(_filtered(PDCFilter(params or {}, queryset=queryset)), page, page_size)


def withdrawal_ledger_page(params=None, page=1, page_size=DEFAULT_PAGE_SIZE):
    """Active withdrawal entries, newest withdrawal date first unless sorted otherwise."""
    queryset = PDCWithdrawal.objects.filter(is_active=True).select_related('pdc', 'pdc__tenant')
    return paginate(_filtered(WithdrawalFilter(params or {}, queryset=queryset)), page, page_size)


def _sum(queryset):
    return queryset.aggregate(total=Sum('amount'))['total'] or Decimal('0.00')


def _rate(bounced, cleared):
    settled = bounced + cleared
    if not settled:
        return Decimal('0.00')
    return (Decimal(bounced) * 100 / settled).quantize(Decimal('0.01'))


def dashboard_summary(today=None):
    today = today or date.today()
    all_pdcs = PDCCheque.objects.filter(is_active=True)

    rows = all_pdcs.values('status').annotate(count=Count('id'), amount=Sum('amount'))
    by_status = {
        status: {'count': 0, 'amount': Decimal('0.00')} for status in PDCStatus.values
    }
    for row in rows:
        by_status[row['status']] = {'count': row['count'], 'amount': row['amount'] or Decimal('0.00')}

    due_this_week = all_pdcs.filter(
        status__in=[PDCStatus.RECEIVED, PDCStatus.DUE],
    ).in_due_window(today)
    deposited_this_month = all_pdcs.filter(
        deposit_date__year=today.year,
        deposit_date__month=today.month,
    )
    outstanding = all_pdcs.outstanding()
    bounced_recently = all_pdcs.filter(bounced_date__gte=today - timedelta(days=30))

    ever_bounced = all_pdcs.filter(bounced_date__isnull=False).count()
    cleared = by_status[PDCStatus.CLEARED]['count']

    return {
        'by_status': by_status,
        'total_count': sum(item['count'] for item in by_status.values()),
        'total_amount': sum((item['amount'] for item in by_status.values()), Decimal('0.00')),
        'due_this_week': {'count': due_this_week.count(), 'amount': _sum(due_this_week)},
        'deposited_this_month': {
            'count': deposited_this_month.count(), 'amount': _sum(deposited_this_month),
        },
        'outstanding': {'count': outstanding.count(), 'amount': _sum(outstanding)},
        'bounced_last_30_days': {'count': bounced_recently.count(), 'amount': _sum(bounced_recently)},
        'bounce_rate': _rate(ever_bounced, cleared),
    }


def tenant_history(tenant):
    pdcs = PDCCheque.objects.filter(tenant=tenant, is_active=True).order_by('-cheque_date', '-id')
    totals = pdcs.aggregate(
        total_count=Count('id'),
        total_amount=Sum('amount'),
        cleared_count=Count('id', filter=Q(status=PDCStatus.CLEARED)),
        pending_count=Count('id', filter=Q(status__in=OUTSTANDING_STATUSES)),
        bounced_count=Count('id', filter=Q(bounced_date__isnull=False)),
    )
    return {
        'tenant_id': tenant.pk,
        'tenant_number': tenant.tenant_number,
        'tenant_name': tenant.name,
        'total_count': totals['total_count'],
        'total_amount': totals['total_amount'] or Decimal('0.00'),
        'cleared_count': totals['cleared_count'],
        'bounced_count': totals['bounced_count'],
        'pending_count': totals['pending_count'],
        'bounce_rate': _rate(totals['bounced_count'], totals['cleared_count']),
        'pdcs': list(pdcs),
    }


def distinct_bank_names():
    return list(
        PDCCheque.objects.filter(is_active=True)
        .order_by('bank_name')
        .values_list('bank_name', flat=True)
        .distinct()
    )
