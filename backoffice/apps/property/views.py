"""
Property Management Views - PDC JSON endpoints.

Every endpoint returns JSON. Errors come back as
{"error": <kind>, "message": ...} with the HTTP status of the error kind:
validation/configuration/invalid transition 400, unknown PDC 404,
concurrent modification 409.
"""
import json
from functools import wraps

from django.contrib.auth.decorators import login_required
from django.core.exceptions import ValidationError
from django.http import JsonResponse
from django.views.decorators.http import require_GET, require_http_methods, require_POST

from apps.core.audit import get_entity_audit_history

from . import selectors, services
from .exceptions import (
    BulkRegistrationError, InvalidTransitionError, PDCNotFound,
    ScheduleConfigurationError, TransitionConflictError,
)
from .forms import (
    BulkPDCForm, PDCBounceForm, PDCClearForm, PDCDepositForm, PDCEntryForm,
    PDCRegisterForm, PDCReplaceForm, PDCWithdrawForm, RentScheduleForm,
    ScheduleRegistrationForm, TransitionForm,
)
from .models import Tenant, WithdrawalReason
from .schedule import PaymentPlan


# =============================================================================
# Helpers
# =============================================================================

def _error(kind, message, status=400, **extra):
    return JsonResponse(dict({'error': kind, 'message': message}, **extra), status=status)


def api_errors(view):
    """Map the lifecycle error kinds onto JSON responses."""
    @wraps(view)
    def wrapper(request, *args, **kwargs):
        try:
            return view(request, *args, **kwargs)
        except PDCNotFound as e:
            return _error('not_found', str(e), status=404)
        except TransitionConflictError as e:
            return _error('conflict', e.messages[0], status=409,
                          expected_version=e.expected_version, current_version=e.current_version)
        except InvalidTransitionError as e:
            return _error('invalid_transition', e.messages[0],
                          current_status=e.current_status, requested_status=e.requested_status)
        except BulkRegistrationError as e:
            return _error('bulk_registration_failed', e.messages[0], failures=e.failures)
        except ScheduleConfigurationError as e:
            return _error('configuration_error', e.messages[0])
        except ValidationError as e:
            return _error('validation_error', ' '.join(e.messages), errors=e.messages)
    return wrapper


def _payload(request):
    """Request data from a JSON body, or the form-encoded POST."""
    if request.content_type == 'application/json':
        try:
            data = json.loads(request.body or b'{}')
        except ValueError:
            raise ValidationError('Malformed JSON body.')
        if not isinstance(data, dict):
            raise ValidationError('JSON body must be an object.')
        return data
    return request.POST


def _form_error(form):
    return _error('validation_error', 'Invalid input.', errors=form.errors.get_json_data())


def _tenant_dict(tenant):
    return {
        'id': tenant.pk,
        'tenant_number': tenant.tenant_number,
        'name': tenant.name,
    }


def pdc_to_dict(pdc):
    return {
        'id': pdc.pk,
        'pdc_number': pdc.pdc_number,
        'cheque_number': pdc.cheque_number,
        'bank_name': pdc.bank_name,
        'amount': pdc.amount,
        'cheque_date': pdc.cheque_date,
        'tenant': _tenant_dict(pdc.tenant),
        'lease_reference': pdc.lease_reference,
        'installment_number': pdc.installment_number,
        'status': pdc.status,
        'display_status': pdc.display_status,
        'is_overdue': pdc.is_overdue(),
        'version': pdc.version,
        'received_date': pdc.received_date,
        'deposit_date': pdc.deposit_date,
        'deposit_account': pdc.deposit_account,
        'cleared_date': pdc.cleared_date,
        'clearing_reference': pdc.clearing_reference,
        'bounced_date': pdc.bounced_date,
        'bounce_reason': pdc.bounce_reason,
        'replaced_by': pdc.replaced_by_id,
        'replaces': pdc.replaces_id,
        'notes': pdc.notes,
        'allowed_actions': [str(action) for action in pdc.allowed_actions],
    }


def withdrawal_to_dict(withdrawal):
    pdc = withdrawal.pdc
    return {
        'id': withdrawal.pk,
        'withdrawal_number': withdrawal.withdrawal_number,
        'withdrawal_date': withdrawal.withdrawal_date,
        'reason': withdrawal.reason,
        'replacement_method': withdrawal.replacement_method,
        'transaction_reference': withdrawal.transaction_reference,
        'status_before': withdrawal.status_before,
        'pdc': {
            'id': pdc.pk,
            'pdc_number': pdc.pdc_number,
            'cheque_number': pdc.cheque_number,
            'bank_name': pdc.bank_name,
            'amount': pdc.amount,
            'cheque_date': pdc.cheque_date,
        },
        'tenant': _tenant_dict(pdc.tenant),
    }


def _page_response(page, serializer):
    page['results'] = [serializer(obj) for obj in page['results']]
    return JsonResponse(page)


def _expected_version(form):
    return form.cleaned_data.get('version')


# =============================================================================
# Schedule
# =============================================================================

@login_required
@require_http_methods(['GET', 'POST'])
@api_errors
def api_schedule_preview(request):
    """Schedule for a payment plan, with the first payment override applied if given."""
    form = RentScheduleForm(request.GET if request.method == 'GET' else _payload(request))
    if not form.is_valid():
        return _form_error(form)

    plan = PaymentPlan(form.to_config())
    if form.cleaned_data.get('first_payment_total') is not None:
        plan.apply_override(form.cleaned_data['first_payment_total'])
    items, summary = plan.summary(form.cleaned_data.get('reference_date'))
    return JsonResponse({
        'items': [item.as_dict() for item in items],
        'summary': summary,
    })


@login_required
@require_POST
@api_errors
def api_register_schedule(request):
    form = ScheduleRegistrationForm(_payload(request))
    if not form.is_valid():
        return _form_error(form)

    data = form.cleaned_data
    plan = PaymentPlan(form.to_config())
    if data.get('first_payment_total') is not None:
        plan.apply_override(data['first_payment_total'])
    items = plan.schedule(data.get('reference_date'))
    pdcs = services.register_schedule(
        data['tenant'], plan.config, items,
        data['first_cheque_number'], data['bank_name'],
        lease_reference=data.get('lease_reference', ''),
    )
    return JsonResponse({'results': [pdc_to_dict(pdc) for pdc in pdcs]}, status=201)


# =============================================================================
# Register & list
# =============================================================================

@login_required
@require_GET
@api_errors
def api_pdc_list(request):
    page = selectors.pdc_page(request.GET, request.GET.get('page', 1), request.GET.get('page_size'))
    return _page_response(page, pdc_to_dict)


@login_required
@require_GET
@api_errors
def api_pdc_detail(request, pk):
    pdc = services.get_pdc(pk)
    data = pdc_to_dict(pdc)
    withdrawal = getattr(pdc, 'withdrawal', None)
    data['withdrawal'] = withdrawal_to_dict(withdrawal) if withdrawal else None
    data['history'] = [
        {
            'action': entry.action,
            'user': entry.user.get_username() if entry.user else None,
            'timestamp': entry.timestamp,
            'changes': entry.changes,
        }
        for entry in get_entity_audit_history(services.AUDIT_MODEL, pdc.pk)
    ]
    return JsonResponse(data)


@login_required
@require_POST
@api_errors
def api_pdc_register(request):
    form = PDCRegisterForm(_payload(request))
    if not form.is_valid():
        return _form_error(form)

    data = form.cleaned_data
    pdc = services.register_pdc(
        data['tenant'],
        cheque_number=data['cheque_number'],
        bank_name=data['bank_name'],
        amount=data['amount'],
        cheque_date=data['cheque_date'],
        lease_reference=data.get('lease_reference', ''),
        installment_number=data.get('installment_number'),
        notes=data.get('notes', ''),
        received_date=data.get('received_date'),
    )
    return JsonResponse(pdc_to_dict(pdc), status=201)


@login_required
@require_POST
@api_errors
def api_pdc_bulk_register(request):
    """
    Body: {"tenant": id, "lease_reference": "...", "entries": [{...}, ...]}.
    Either every entry is registered or none is.
    """
    payload = _payload(request)
    form = BulkPDCForm(payload)
    if not form.is_valid():
        return _form_error(form)

    raw_entries = payload.get('entries')
    if not isinstance(raw_entries, list):
        raise ValidationError('entries must be a list.')

    entries = []
    failures = []
    for index, raw in enumerate(raw_entries):
        entry_form = PDCEntryForm(raw if isinstance(raw, dict) else {})
        if entry_form.is_valid():
            entries.append(entry_form.cleaned_data)
        else:
            reasons = [f'{field}: {" ".join(errors)}' for field, errors in entry_form.errors.items()]
            cheque_number = raw.get('cheque_number', '') if isinstance(raw, dict) else ''
            failures.append({'index': index, 'cheque_number': cheque_number, 'reason': ' '.join(reasons)})
    if failures:
        raise BulkRegistrationError(failures)

    pdcs = services.register_pdcs_bulk(
        form.cleaned_data['tenant'], entries,
        lease_reference=form.cleaned_data.get('lease_reference', ''),
    )
    return JsonResponse({'results': [pdc_to_dict(pdc) for pdc in pdcs]}, status=201)


@login_required
@require_GET
@api_errors
def api_bank_names(request):
    return JsonResponse({'results': selectors.distinct_bank_names()})


# =============================================================================
# Transitions
# =============================================================================

@login_required
@require_POST
@api_errors
def api_pdc_deposit(request, pk):
    form = PDCDepositForm(_payload(request))
    if not form.is_valid():
        return _form_error(form)
    pdc = services.deposit_pdc(
        pk,
        form.cleaned_data['deposit_account'],
        deposit_date=form.cleaned_data.get('deposit_date'),
        expected_version=_expected_version(form),
    )
    return JsonResponse(pdc_to_dict(pdc))


@login_required
@require_POST
@api_errors
def api_pdc_clear(request, pk):
    form = PDCClearForm(_payload(request))
    if not form.is_valid():
        return _form_error(form)
    pdc = services.clear_pdc(
        pk,
        cleared_date=form.cleaned_data.get('cleared_date'),
        clearing_reference=form.cleaned_data.get('clearing_reference', ''),
        expected_version=_expected_version(form),
    )
    return JsonResponse(pdc_to_dict(pdc))


@login_required
@require_POST
@api_errors
def api_pdc_bounce(request, pk):
    form = PDCBounceForm(_payload(request))
    if not form.is_valid():
        return _form_error(form)
    pdc = services.bounce_pdc(
        pk,
        form.cleaned_data['bounce_reason'],
        bounced_date=form.cleaned_data.get('bounced_date'),
        expected_version=_expected_version(form),
    )
    return JsonResponse(pdc_to_dict(pdc))


@login_required
@require_POST
@api_errors
def api_pdc_replace(request, pk):
    form = PDCReplaceForm(_payload(request))
    if not form.is_valid():
        return _form_error(form)
    data = form.cleaned_data
    original, replacement = services.replace_pdc(
        pk,
        cheque_number=data['cheque_number'],
        bank_name=data['bank_name'],
        amount=data['amount'],
        cheque_date=data['cheque_date'],
        notes=data.get('notes', ''),
        expected_version=_expected_version(form),
    )
    return JsonResponse({
        'original': pdc_to_dict(original),
        'replacement': pdc_to_dict(replacement),
    }, status=201)


@login_required
@require_POST
@api_errors
def api_pdc_withdraw(request, pk):
    form = PDCWithdrawForm(_payload(request))
    if not form.is_valid():
        return _form_error(form)
    data = form.cleaned_data
    pdc = services.withdraw_pdc(
        pk,
        data['reason'],
        withdrawal_date=data.get('withdrawal_date'),
        replacement_method=data.get('replacement_method', ''),
        transaction_reference=data.get('transaction_reference', ''),
        expected_version=_expected_version(form),
    )
    response = pdc_to_dict(pdc)
    response['withdrawal'] = withdrawal_to_dict(pdc.withdrawal)
    return JsonResponse(response)


@login_required
@require_POST
@api_errors
def api_pdc_cancel(request, pk):
    form = TransitionForm(_payload(request))
    if not form.is_valid():
        return _form_error(form)
    pdc = services.cancel_pdc(pk, expected_version=_expected_version(form))
    return JsonResponse(pdc_to_dict(pdc))


# =============================================================================
# Ledger & reporting
# =============================================================================

@login_required
@require_GET
@api_errors
def api_withdrawal_ledger(request):
    page = selectors.withdrawal_ledger_page(
        request.GET, request.GET.get('page', 1), request.GET.get('page_size')
    )
    page['reasons'] = WithdrawalReason.values
    return _page_response(page, withdrawal_to_dict)


@login_required
@require_GET
@api_errors
def api_dashboard(request):
    return JsonResponse(selectors.dashboard_summary())


@login_required
@require_GET
@api_errors
def api_tenant_history(request, tenant_id):
    try:
        tenant = Tenant.objects.get(pk=tenant_id)
    except Tenant.DoesNotExist:
        return _error('not_found', f'Tenant not found: {tenant_id}', status=404)
    history = selectors.tenant_history(tenant)
    history['pdcs'] = [pdc_to_dict(pdc) for pdc in history['pdcs']]
    return JsonResponse(history)
