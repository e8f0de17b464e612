"""
Property Management Forms
Input validation for the PDC JSON endpoints.
"""
from decimal import Decimal

from django import forms

from .models import ReplacementPaymentMethod, Tenant
from .schedule import (
    ALLOWED_INSTALLMENT_COUNTS, LeaseType, RentScheduleConfig, SettlementMethod,
)


class RentScheduleForm(forms.Form):
    """Payment plan inputs plus an optional first payment override."""
    yearly_rent = forms.DecimalField(max_digits=15, decimal_places=2, min_value=Decimal('0'))
    installment_count = forms.TypedChoiceField(
        choices=[(n, n) for n in ALLOWED_INSTALLMENT_COUNTS],
        coerce=int,
    )
    first_payment_method = forms.ChoiceField(
        choices=SettlementMethod.choices, required=False, initial=SettlementMethod.CHEQUE
    )
    due_day_of_month = forms.IntegerField(min_value=1, max_value=31, required=False, initial=1)
    lease_type = forms.ChoiceField(choices=LeaseType.choices, required=False, initial=LeaseType.YEARLY)
    security_deposit = forms.DecimalField(max_digits=15, decimal_places=2, min_value=Decimal('0'), required=False)
    admin_fee = forms.DecimalField(max_digits=15, decimal_places=2, min_value=Decimal('0'), required=False)
    service_charge = forms.DecimalField(max_digits=15, decimal_places=2, min_value=Decimal('0'), required=False)
    parking_fee = forms.DecimalField(max_digits=15, decimal_places=2, min_value=Decimal('0'), required=False)
    reference_date = forms.DateField(required=False, help_text='Due date of the first installment')
    first_payment_total = forms.DecimalField(
        max_digits=15, decimal_places=2, min_value=Decimal('0'), required=False,
        help_text='Override of the first payment total (fees + rent)'
    )

    def to_config(self):
        data = self.cleaned_data
        return RentScheduleConfig(
            yearly_rent=data['yearly_rent'],
            installment_count=data['installment_count'],
            first_payment_method=data.get('first_payment_method') or SettlementMethod.CHEQUE,
            due_day_of_month=data.get('due_day_of_month') or 1,
            lease_type=data.get('lease_type') or LeaseType.YEARLY,
            security_deposit=data.get('security_deposit') or Decimal('0'),
            admin_fee=data.get('admin_fee') or Decimal('0'),
            service_charge=data.get('service_charge') or Decimal('0'),
            parking_fee=data.get('parking_fee') or Decimal('0'),
        )


class PDCEntryForm(forms.Form):
    """One cheque as received from the payer."""
    cheque_number = forms.CharField(min_length=3, max_length=50)
    bank_name = forms.CharField(max_length=100)
    amount = forms.DecimalField(max_digits=15, decimal_places=2, min_value=Decimal('0.01'))
    cheque_date = forms.DateField()
    installment_number = forms.IntegerField(min_value=1, required=False)
    notes = forms.CharField(max_length=500, required=False)


class PDCRegisterForm(PDCEntryForm):
    tenant = forms.ModelChoiceField(queryset=Tenant.objects.filter(is_active=True))
    lease_reference = forms.CharField(max_length=50, required=False)
    received_date = forms.DateField(required=False)


class BulkPDCForm(forms.Form):
    """Header of a bulk registration; the entries are validated one by one."""
    tenant = forms.ModelChoiceField(queryset=Tenant.objects.filter(is_active=True))
    lease_reference = forms.CharField(max_length=50, required=False)


class ScheduleRegistrationForm(RentScheduleForm):
    """Register the cheques of a generated schedule in one go."""
    tenant = forms.ModelChoiceField(queryset=Tenant.objects.filter(is_active=True))
    lease_reference = forms.CharField(max_length=50, required=False)
    first_cheque_number = forms.CharField(min_length=3, max_length=50)
    bank_name = forms.CharField(max_length=100)


class TransitionForm(forms.Form):
    """Common to every transition: the version the caller last read."""
    version = forms.IntegerField(min_value=0, required=False)


class PDCDepositForm(TransitionForm):
    deposit_account = forms.CharField(max_length=100, help_text='Bank account the cheque is deposited to')
    deposit_date = forms.DateField(required=False)


class PDCClearForm(TransitionForm):
    cleared_date = forms.DateField(required=False)
    clearing_reference = forms.CharField(max_length=100, required=False)


class PDCBounceForm(TransitionForm):
    bounce_reason = forms.CharField(
        max_length=255,
        help_text='Reason for bounce (e.g., Insufficient Funds, Signature Mismatch)'
    )
    bounced_date = forms.DateField(required=False)


class PDCReplaceForm(TransitionForm, PDCEntryForm):
    pass


class PDCWithdrawForm(TransitionForm):
    reason = forms.CharField(max_length=255)
    withdrawal_date = forms.DateField(required=False)
    replacement_method = forms.ChoiceField(
        choices=[('', '---------')] + ReplacementPaymentMethod.choices, required=False
    )
    transaction_reference = forms.CharField(max_length=100, required=False)
