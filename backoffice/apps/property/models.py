"""
Property Management Models - Post-Dated Cheques
Lifecycle tracking of the cheques that back a tenant's rent schedule.

Key Features:
- Cheque numbers unique per tenant
- Closed status set with one transition table
- Optimistic version counter on every PDC row
- Bidirectional original/replacement links (informational, never cascading)
- Append-only withdrawal ledger
"""
from datetime import date, timedelta
from decimal import Decimal

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinLengthValidator, MinValueValidator
from django.db import models

from apps.core.models import BaseModel
from apps.core.utils import generate_number


class PDCStatus(models.TextChoices):
    RECEIVED = 'RECEIVED', 'Received'
    DUE = 'DUE', 'Due'
    DEPOSITED = 'DEPOSITED', 'Deposited'
    CLEARED = 'CLEARED', 'Cleared'
    BOUNCED = 'BOUNCED', 'Bounced'
    CANCELLED = 'CANCELLED', 'Cancelled'
    REPLACED = 'REPLACED', 'Replaced'
    WITHDRAWN = 'WITHDRAWN', 'Withdrawn'


# RECEIVED and DUE are one logical entry state; DUE only says the cheque
# date has arrived.
ENTRY_STATUSES = frozenset({PDCStatus.RECEIVED, PDCStatus.DUE})
TERMINAL_STATUSES = frozenset({
    PDCStatus.CLEARED, PDCStatus.CANCELLED, PDCStatus.REPLACED, PDCStatus.WITHDRAWN,
})
OUTSTANDING_STATUSES = frozenset({PDCStatus.RECEIVED, PDCStatus.DUE, PDCStatus.DEPOSITED})


class PDCAction(models.TextChoices):
    DEPOSIT = 'deposit', 'Deposit'
    CLEAR = 'clear', 'Clear'
    BOUNCE = 'bounce', 'Bounce'
    REPLACE = 'replace', 'Replace'
    WITHDRAW = 'withdraw', 'Withdraw'
    CANCEL = 'cancel', 'Cancel'


# action -> (valid source statuses, resulting status)
TRANSITIONS = {
    PDCAction.DEPOSIT: (ENTRY_STATUSES, PDCStatus.DEPOSITED),
    PDCAction.CLEAR: (frozenset({PDCStatus.DEPOSITED}), PDCStatus.CLEARED),
    PDCAction.BOUNCE: (frozenset({PDCStatus.DEPOSITED}), PDCStatus.BOUNCED),
    PDCAction.REPLACE: (frozenset({PDCStatus.BOUNCED}), PDCStatus.REPLACED),
    PDCAction.WITHDRAW: (
        ENTRY_STATUSES | {PDCStatus.DEPOSITED, PDCStatus.BOUNCED},
        PDCStatus.WITHDRAWN,
    ),
    PDCAction.CANCEL: (ENTRY_STATUSES, PDCStatus.CANCELLED),
}


def allowed_actions(status):
    """Actions that are valid from `status`, in declaration order."""
    return [action for action, (sources, _) in TRANSITIONS.items() if status in sources]


class WithdrawalReason(models.TextChoices):
    CHEQUE_BOUNCED = 'Cheque Bounced'
    REPLACEMENT_REQUESTED = 'Replacement Requested'
    EARLY_TERMINATION = 'Early Contract Termination'
    PAYMENT_METHOD_CHANGE = 'Payment Method Change'
    TENANT_REQUEST = 'Tenant Request'
    OTHER = 'Other'


class ReplacementPaymentMethod(models.TextChoices):
    BANK_TRANSFER = 'BANK_TRANSFER', 'Bank Transfer'
    CASH = 'CASH', 'Cash'
    NEW_CHEQUE = 'NEW_CHEQUE', 'New Cheque'


class Tenant(BaseModel):
    """
    Payer of the cheques. Tenant management lives elsewhere; this is the
    reference the PDC register needs.
    """
    tenant_number = models.CharField(max_length=50, unique=True, editable=False)
    name = models.CharField(max_length=200)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=20, blank=True)
    status = models.CharField(max_length=20, choices=[
        ('active', 'Active'),
        ('inactive', 'Inactive'),
        ('blacklisted', 'Blacklisted'),
    ], default='active')
    notes = models.TextField(blank=True)

    class Meta:
        ordering = ['name']

    def __str__(self):
        return f"{self.tenant_number} - {self.name}"

    def save(self, *args, **kwargs):
        if not self.tenant_number:
            self.tenant_number = generate_number('TENANT', Tenant, 'tenant_number')
        super().save(*args, **kwargs)

    @property
    def bounce_count(self):
        """Cheques of this tenant that ever bounced, replaced ones included."""
        return self.pdc_cheques.filter(bounced_date__isnull=False).count()


class PDCChequeQuerySet(models.QuerySet):

    def outstanding(self):
        return self.filter(status__in=OUTSTANDING_STATUSES)

    def in_due_window(self, today=None, window_days=None):
        today = today or date.today()
        if window_days is None:
            window_days = settings.PDC_DUE_WINDOW_DAYS
        return self.filter(
            cheque_date__gte=today,
            cheque_date__lte=today + timedelta(days=window_days),
        )


class PDCCheque(BaseModel):
    """
    Post-Dated Cheque (PDC).

    Status only changes through apps.property.services; every change bumps
    `version`. Records are never deleted: CANCELLED and WITHDRAWN are
    terminal statuses, not removal.
    """
    pdc_number = models.CharField(max_length=50, unique=True, editable=False)

    # Cheque details
    cheque_number = models.CharField(max_length=50, validators=[MinLengthValidator(3)])
    bank_name = models.CharField(max_length=100)
    cheque_date = models.DateField(help_text='Post-dated cheque date')
    amount = models.DecimalField(
        max_digits=15, decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )
    tenant = models.ForeignKey(Tenant, on_delete=models.PROTECT, related_name='pdc_cheques')

    # Link to the payment plan the cheque settles
    lease_reference = models.CharField(max_length=50, blank=True)
    installment_number = models.PositiveSmallIntegerField(null=True, blank=True)

    # Status tracking
    status = models.CharField(max_length=20, choices=PDCStatus.choices, default=PDCStatus.RECEIVED)
    version = models.PositiveIntegerField(default=0)
    received_date = models.DateField(default=date.today)

    # Deposit details
    deposit_date = models.DateField(null=True, blank=True)
    deposit_account = models.CharField(max_length=100, blank=True, help_text='Bank account deposited to')

    # Clearing details
    cleared_date = models.DateField(null=True, blank=True)
    clearing_reference = models.CharField(max_length=100, blank=True)

    # Bounce details
    bounced_date = models.DateField(null=True, blank=True)
    bounce_reason = models.CharField(max_length=255, blank=True)

    # Replacement chain; either side may be archived without touching the other
    replaced_by = models.ForeignKey(
        'self',
        on_delete=models.SET_NULL,
        null=True, blank=True,
        related_name='+'
    )
    replaces = models.ForeignKey(
        'self',
        on_delete=models.SET_NULL,
        null=True, blank=True,
        related_name='+'
    )

    notes = models.TextField(blank=True, max_length=500)

    objects = PDCChequeQuerySet.as_manager()

    class Meta:
        ordering = ['cheque_date', 'id']
        constraints = [
            models.UniqueConstraint(
                fields=['cheque_number', 'tenant'],
                name='unique_pdc_cheque_per_tenant'
            ),
        ]
        indexes = [
            models.Index(fields=['status'], name='idx_pdc_status'),
            models.Index(fields=['cheque_date'], name='idx_pdc_cheque_date'),
            models.Index(fields=['bank_name'], name='idx_pdc_bank_name'),
            models.Index(fields=['status', 'cheque_date'], name='idx_pdc_status_cheque_date'),
        ]

    def __str__(self):
        return f"PDC {self.pdc_number} - {self.cheque_number} ({self.tenant.name})"

    def save(self, *args, **kwargs):
        if not self.pdc_number:
            self.pdc_number = generate_number('PDC', PDCCheque, 'pdc_number')
        super().save(*args, **kwargs)

    def clean(self):
        if self.amount is not None and self.amount <= 0:
            raise ValidationError({'amount': 'Amount must be greater than 0.'})
        if self.cheque_number and len(self.cheque_number.strip()) < 3:
            raise ValidationError({'cheque_number': 'Cheque number must be between 3 and 50 characters.'})
        if not (self.bank_name or '').strip():
            raise ValidationError({'bank_name': 'Bank name cannot be blank.'})

    @property
    def allowed_actions(self):
        return allowed_actions(self.status)

    @property
    def is_terminal(self):
        return self.status in TERMINAL_STATUSES

    def is_within_due_window(self, today=None):
        today = today or date.today()
        window_end = today + timedelta(days=settings.PDC_DUE_WINDOW_DAYS)
        return today <= self.cheque_date <= window_end

    def is_overdue(self, today=None):
        today = today or date.today()
        return self.status in ENTRY_STATUSES and self.cheque_date < today

    @property
    def display_status(self):
        """DUE for received cheques whose date has come into the due window."""
        if self.status == PDCStatus.RECEIVED and self.is_within_due_window():
            return PDCStatus.DUE
        return self.status


class PDCWithdrawal(BaseModel):
    """
    Ledger entry for a cheque returned to the payer.

    Written exactly once by the withdraw transition and immutable afterward.
    Archiving an entry only clears `is_active`; the PDC is never affected.
    """
    withdrawal_number = models.CharField(max_length=50, unique=True, editable=False)
    pdc = models.OneToOneField(
        PDCCheque,
        on_delete=models.PROTECT,
        related_name='withdrawal'
    )
    withdrawal_date = models.DateField()
    reason = models.CharField(max_length=255)
    replacement_method = models.CharField(
        max_length=20,
        choices=ReplacementPaymentMethod.choices,
        blank=True
    )
    transaction_reference = models.CharField(max_length=100, blank=True)
    status_before = models.CharField(max_length=20, choices=PDCStatus.choices)

    class Meta:
        ordering = ['-withdrawal_date', '-id']
        indexes = [
            models.Index(fields=['withdrawal_date'], name='idx_withdrawal_date'),
            models.Index(fields=['reason'], name='idx_withdrawal_reason'),
        ]

    def __str__(self):
        return f"{self.withdrawal_number} - {self.pdc.cheque_number}"

    def save(self, *args, **kwargs):
        if self.pk:
            raise ValidationError('Withdrawal records are immutable.')
        if not self.withdrawal_number:
            self.withdrawal_number = generate_number('WITHDRAWAL', PDCWithdrawal, 'withdrawal_number')
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValidationError('Withdrawal records cannot be deleted; archive them instead.')

    def archive(self):
        """Hide the entry from the ledger. The withdrawn PDC is untouched."""
        from apps.core.audit import log_audit

        PDCWithdrawal.objects.filter(pk=self.pk).update(is_active=False)
        self.is_active = False
        log_audit(None, 'archive', 'PDCWithdrawal', self.pk, {'withdrawal_number': self.withdrawal_number})
