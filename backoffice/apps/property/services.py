"""
PDC Lifecycle Services
Registration and status transitions for post-dated cheques.

Every transition:
- locks the row (SELECT ... FOR UPDATE NOWAIT where the backend supports it)
- checks the transition table against the current status
- writes with a conditional UPDATE on the version counter
- records an AuditLog entry and sends pdc_status_changed after commit

A lock that cannot be taken, or a version that moved underneath us, is a
TransitionConflictError. Nothing is retried here.
"""
import logging
from datetime import date

from django.conf import settings
from django.core.exceptions import ValidationError
from django.db import IntegrityError, OperationalError, transaction
from django.db.models import F
from django.utils import timezone

from apps.core.audit import log_audit
from apps.core.middleware import get_current_user

from .exceptions import (
    BulkRegistrationError, InvalidTransitionError, PDCNotFound, TransitionConflictError,
)
from .models import (
    PDCAction, PDCCheque, PDCStatus, PDCWithdrawal, ReplacementPaymentMethod,
    Tenant, TRANSITIONS,
)
from .schedule import cheque_entries, to_decimal
from .signals import pdc_bounced, pdc_status_changed

logger = logging.getLogger(__name__)

AUDIT_MODEL = 'PDCCheque'


# =============================================================================
# Registration
# =============================================================================

def resolve_tenant(tenant):
    """Accept a Tenant or its primary key."""
    if isinstance(tenant, Tenant):
        return tenant
    try:
        return Tenant.objects.get(pk=tenant, is_active=True)
    except (Tenant.DoesNotExist, ValueError, TypeError):
        raise ValidationError(f'Tenant not found: {tenant}')


def entry_errors(entry):
    """Field problems of one registration entry, as a list of messages."""
    errors = []
    cheque_number = (entry.get('cheque_number') or '').strip()
    if not 3 <= len(cheque_number) <= 50:
        errors.append('Cheque number must be between 3 and 50 characters.')

    bank_name = (entry.get('bank_name') or '').strip()
    if not bank_name:
        errors.append('Bank name cannot be blank.')
    elif len(bank_name) > 100:
        errors.append('Bank name cannot exceed 100 characters.')

    try:
        amount = to_decimal(entry.get('amount'), 'amount')
    except ValidationError:
        errors.append('Amount must be a number.')
    else:
        if amount <= 0:
            errors.append('Amount must be greater than 0.')

    if not isinstance(entry.get('cheque_date'), date):
        errors.append('Cheque date is required.')

    if len(entry.get('notes') or '') > 500:
        errors.append('Notes cannot exceed 500 characters.')
    return errors


def _new_pdc(tenant, entry, lease_reference='', **extra):
    return PDCCheque.objects.create(
        **extra,
        tenant=tenant,
        cheque_number=entry['cheque_number'].strip(),
        bank_name=entry['bank_name'].strip(),
        amount=to_decimal(entry['amount']),
        cheque_date=entry['cheque_date'],
        lease_reference=entry.get('lease_reference') or lease_reference,
        installment_number=entry.get('installment_number'),
        notes=entry.get('notes') or '',
        received_date=entry.get('received_date') or date.today(),
    )


def _raise_if_duplicate(tenant, cheque_number):
    if PDCCheque.objects.filter(tenant=tenant, cheque_number=cheque_number).exists():
        raise ValidationError(
            f'Cheque number already exists for this tenant: {cheque_number}', code='duplicate'
        )


def register_pdc(tenant, cheque_number, bank_name, amount, cheque_date,
                 lease_reference='', installment_number=None, notes='', received_date=None):
    """
    Record a newly received cheque in RECEIVED status.
    Raises ValidationError on bad fields or a cheque number the tenant already used.
    """
    tenant = resolve_tenant(tenant)
    entry = {
        'cheque_number': cheque_number,
        'bank_name': bank_name,
        'amount': amount,
        'cheque_date': cheque_date,
        'installment_number': installment_number,
        'notes': notes,
        'received_date': received_date,
    }
    errors = entry_errors(entry)
    if errors:
        raise ValidationError(errors)

    cheque_number = cheque_number.strip()
    _raise_if_duplicate(tenant, cheque_number)

    try:
        with transaction.atomic():
            pdc = _new_pdc(tenant, entry, lease_reference)
            log_audit(None, 'register', AUDIT_MODEL, pdc.pk, {
                'pdc_number': pdc.pdc_number,
                'cheque_number': pdc.cheque_number,
                'amount': pdc.amount,
                'to_status': pdc.status,
            })
    except IntegrityError:
        _raise_if_duplicate(tenant, cheque_number)
        raise

    logger.info('Registered PDC %s (cheque %s) for tenant %s', pdc.pdc_number, pdc.cheque_number, tenant.pk)
    return pdc


def _bulk_failures(tenant, entries):
    numbers = [(entry.get('cheque_number') or '').strip() for entry in entries]
    existing = set(
        PDCCheque.objects.filter(tenant=tenant, cheque_number__in=numbers)
        .values_list('cheque_number', flat=True)
    )
    failures = []
    seen = set()
    for index, (entry, number) in enumerate(zip(entries, numbers)):
        reasons = entry_errors(entry)
        if number in existing:
            reasons.append('Cheque number already exists for this tenant.')
        elif number in seen:
            reasons.append('Duplicate cheque number within this submission.')
        seen.add(number)
        if reasons:
            failures.append({'index': index, 'cheque_number': number, 'reason': ' '.join(reasons)})
    return failures


def register_pdcs_bulk(tenant, entries, lease_reference=''):
    """
    Register a batch of cheques for one tenant, all or nothing.

    Every entry is validated before anything is written; any failure rejects
    the whole batch with a BulkRegistrationError listing each bad entry.
    """
    tenant = resolve_tenant(tenant)
    entries = list(entries)
    if not entries:
        raise ValidationError('At least one PDC entry is required.')
    if len(entries) > settings.PDC_MAX_BULK:
        raise ValidationError(f'Cannot register more than {settings.PDC_MAX_BULK} PDCs at once.')

    failures = _bulk_failures(tenant, entries)
    if failures:
        logger.warning('Bulk registration for tenant %s rejected: %d bad entries', tenant.pk, len(failures))
        raise BulkRegistrationError(failures)

    try:
        with transaction.atomic():
            pdcs = [_new_pdc(tenant, entry, lease_reference) for entry in entries]
            log_audit(None, 'bulk_register', AUDIT_MODEL, None, {
                'tenant': tenant.tenant_number,
                'count': len(pdcs),
                'pdc_ids': [pdc.pk for pdc in pdcs],
            })
    except IntegrityError:
        # Another request registered one of these numbers in the meantime.
        failures = _bulk_failures(tenant, entries)
        if failures:
            raise BulkRegistrationError(failures)
        raise

    logger.info('Registered %d PDCs for tenant %s', len(pdcs), tenant.pk)
    return pdcs


def register_schedule(tenant, config, items, first_cheque_number, bank_name, lease_reference=''):
    """Register one cheque per cheque-settled installment of a schedule."""
    entries = cheque_entries(config, items, first_cheque_number, bank_name)
    return register_pdcs_bulk(tenant, entries, lease_reference=lease_reference)


# =============================================================================
# Transitions
# =============================================================================

def get_pdc(pdc_id):
    try:
        return PDCCheque.objects.select_related('tenant').get(pk=pdc_id)
    except (PDCCheque.DoesNotExist, ValueError, TypeError):
        raise PDCNotFound(pdc_id)


def _lock(pdc_id):
    try:
        return (
            PDCCheque.objects.select_for_update(nowait=True, of=('self',))
            .select_related('tenant')
            .get(pk=pdc_id)
        )
    except (PDCCheque.DoesNotExist, ValueError, TypeError):
        raise PDCNotFound(pdc_id)
    except OperationalError:
        logger.warning('PDC %s is locked by another transition', pdc_id)
        raise TransitionConflictError(pdc_id)


def _write(pdc, changes):
    """Conditional update on the version the caller read; zero rows is a conflict."""
    changes = dict(changes, version=F('version') + 1, updated_at=timezone.now())
    user = get_current_user()
    if user is not None and user.is_authenticated:
        changes['updated_by'] = user

    updated = PDCCheque.objects.filter(pk=pdc.pk, version=pdc.version).update(**changes)
    if not updated:
        current = PDCCheque.objects.filter(pk=pdc.pk).values_list('version', flat=True).first()
        raise TransitionConflictError(pdc.pk, pdc.version, current)
    pdc.refresh_from_db()


def _transition(pdc_id, action, expected_version=None, apply=None):
    """
    Run one status transition.

    `apply(pdc)` runs inside the transaction with the row locked and returns
    the extra field values to write alongside the new status.
    """
    sources, target = TRANSITIONS[action]

    with transaction.atomic():
        pdc = _lock(pdc_id)
        if expected_version is not None and pdc.version != expected_version:
            raise TransitionConflictError(pdc.pk, expected_version, pdc.version)
        if pdc.status not in sources:
            logger.warning(
                'Rejected %s of PDC %s in status %s', action, pdc.pdc_number, pdc.status
            )
            raise InvalidTransitionError(pdc.pk, action, pdc.status, target)

        from_status = pdc.status
        changes = apply(pdc) if apply else {}
        changes['status'] = target
        _write(pdc, changes)

        audit_changes = {'from_status': from_status, 'to_status': pdc.status, 'version': pdc.version}
        audit_changes.update({k: v for k, v in changes.items() if k != 'status'})
        log_audit(None, str(action), AUDIT_MODEL, pdc.pk, audit_changes)

        transaction.on_commit(lambda: pdc_status_changed.send(
            sender=PDCCheque, pdc=pdc, action=str(action),
            from_status=from_status, to_status=pdc.status,
        ))

    logger.info('PDC %s: %s -> %s (%s)', pdc.pdc_number, from_status, pdc.status, action)
    return pdc


def _required(value, message):
    value = (value or '').strip()
    if not value:
        raise ValidationError(message)
    return value


def deposit_pdc(pdc_id, deposit_account, deposit_date=None, expected_version=None):
    """RECEIVED/DUE -> DEPOSITED, recording the date and the bank account."""
    deposit_account = _required(deposit_account, 'Deposit bank account is required.')
    deposit_date = deposit_date or date.today()
    return _transition(pdc_id, PDCAction.DEPOSIT, expected_version, lambda pdc: {
        'deposit_date': deposit_date,
        'deposit_account': deposit_account,
    })


def clear_pdc(pdc_id, cleared_date=None, clearing_reference='', expected_version=None):
    """DEPOSITED -> CLEARED."""
    cleared_date = cleared_date or date.today()

    def apply(pdc):
        if pdc.deposit_date and cleared_date < pdc.deposit_date:
            raise ValidationError('Cleared date cannot be before the deposit date.')
        return {'cleared_date': cleared_date, 'clearing_reference': (clearing_reference or '').strip()}

    return _transition(pdc_id, PDCAction.CLEAR, expected_version, apply)


def bounce_pdc(pdc_id, reason, bounced_date=None, expected_version=None):
    """DEPOSITED -> BOUNCED. The tenant's bounce statistic follows from `bounced_date`."""
    reason = _required(reason, 'Bounce reason is required.')
    if len(reason) > 255:
        raise ValidationError('Bounce reason cannot exceed 255 characters.')
    bounced_date = bounced_date or date.today()

    pdc = _transition(pdc_id, PDCAction.BOUNCE, expected_version, lambda pdc: {
        'bounced_date': bounced_date,
        'bounce_reason': reason,
    })
    transaction.on_commit(lambda: pdc_bounced.send(
        sender=PDCCheque, pdc=pdc, tenant=pdc.tenant, reason=reason,
    ))
    return pdc


def replace_pdc(pdc_id, cheque_number, bank_name, amount, cheque_date, notes='', expected_version=None):
    """
    BOUNCED -> REPLACED, registering the replacement cheque in the same
    transaction. Returns (original, replacement).
    """
    entry = {
        'cheque_number': cheque_number,
        'bank_name': bank_name,
        'amount': amount,
        'cheque_date': cheque_date,
        'notes': notes,
    }
    errors = entry_errors(entry)
    if errors:
        raise ValidationError(errors)
    created = {}

    def apply(pdc):
        number = entry['cheque_number'].strip()
        _raise_if_duplicate(pdc.tenant, number)
        try:
            with transaction.atomic():
                replacement = _new_pdc(pdc.tenant, dict(
                    entry,
                    installment_number=pdc.installment_number,
                    lease_reference=pdc.lease_reference,
                ), replaces=pdc)
        except IntegrityError:
            _raise_if_duplicate(pdc.tenant, number)
            raise
        log_audit(None, 'register', AUDIT_MODEL, replacement.pk, {
            'pdc_number': replacement.pdc_number,
            'cheque_number': replacement.cheque_number,
            'amount': replacement.amount,
            'to_status': replacement.status,
            'replaces': pdc.pdc_number,
        })
        created['replacement'] = replacement
        return {'replaced_by': replacement}

    original = _transition(pdc_id, PDCAction.REPLACE, expected_version, apply)
    return original, created['replacement']


def withdraw_pdc(pdc_id, reason, withdrawal_date=None, replacement_method='',
                 transaction_reference='', expected_version=None):
    """
    Return the cheque to the payer. Writes exactly one PDCWithdrawal entry
    holding the status the cheque had before.
    """
    reason = _required(reason, 'Withdrawal reason is required.')
    if len(reason) > 255:
        raise ValidationError('Withdrawal reason cannot exceed 255 characters.')
    replacement_method = (replacement_method or '').strip()
    if replacement_method and replacement_method not in ReplacementPaymentMethod.values:
        raise ValidationError(f'Invalid replacement payment method: {replacement_method}')
    transaction_reference = (transaction_reference or '').strip()
    if len(transaction_reference) > 100:
        raise ValidationError('Transaction reference cannot exceed 100 characters.')
    withdrawal_date = withdrawal_date or date.today()

    def apply(pdc):
        PDCWithdrawal.objects.create(
            pdc=pdc,
            withdrawal_date=withdrawal_date,
            reason=reason,
            replacement_method=replacement_method,
            transaction_reference=transaction_reference,
            status_before=pdc.status,
        )
        return {}

    return _transition(pdc_id, PDCAction.WITHDRAW, expected_version, apply)


def cancel_pdc(pdc_id, expected_version=None):
    """RECEIVED/DUE -> CANCELLED. The record is kept."""
    return _transition(pdc_id, PDCAction.CANCEL, expected_version)


def mark_due_pdcs(today=None):
    """
    Move RECEIVED cheques whose date is within the due window to DUE.
    Rows that changed concurrently are skipped. Returns the number marked.
    """
    today = today or date.today()
    candidates = (
        PDCCheque.objects.filter(status=PDCStatus.RECEIVED, is_active=True)
        .in_due_window(today)
        .values_list('pk', 'version')
    )
    marked = 0
    for pk, version in list(candidates):
        with transaction.atomic():
            updated = PDCCheque.objects.filter(
                pk=pk, version=version, status=PDCStatus.RECEIVED
            ).update(status=PDCStatus.DUE, version=F('version') + 1, updated_at=timezone.now())
            if updated:
                log_audit(None, 'mark_due', AUDIT_MODEL, pk, {
                    'from_status': PDCStatus.RECEIVED,
                    'to_status': PDCStatus.DUE,
                })
                marked += 1
    logger.info('Marked %d PDCs as due (window %d days from %s)', marked, settings.PDC_DUE_WINDOW_DAYS, today)
    return marked
