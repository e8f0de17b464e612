"""
PDC (Post-Dated Cheque) Test Cases

Covers:
1. Rent schedule: conservation, rounding, due dates, first payment override
2. Registration, single and bulk (all or nothing)
3. Lifecycle transitions, invalid transitions and version conflicts
4. Replacement links and the withdrawal ledger
5. Register pages, dashboard and tenant history
6. JSON endpoints and the due-window sweep command
"""
import json
from datetime import date, timedelta
from decimal import Decimal
from unittest import mock

from django.contrib.auth.models import User
from django.core.exceptions import ValidationError
from django.core.management import call_command
from django.db import IntegrityError
from django.http import QueryDict
from django.test import SimpleTestCase, TestCase, override_settings
from django.urls import reverse

from apps.core.middleware import acting_user
from apps.core.models import AuditLog

from . import selectors, services
from .exceptions import (
    BulkRegistrationError, InvalidTransitionError, PDCNotFound,
    ScheduleConfigurationError, TransitionConflictError,
)
from .models import (
    PDCAction, PDCCheque, PDCStatus, PDCWithdrawal, Tenant, TERMINAL_STATUSES,
)
from .schedule import (
    ALLOWED_INSTALLMENT_COUNTS, PaymentPlan, RentScheduleConfig, SettlementMethod,
    apply_override, cheque_entries, generate, generate_for_config, schedule_summary,
)
from .signals import pdc_bounced, pdc_status_changed


# =============================================================================
# Rent schedule
# =============================================================================


class GenerateScheduleTest(SimpleTestCase):

    def setUp(self):
        self.today = date(2025, 1, 15)

    def test_total_is_conserved_for_every_count(self):
        for rent in [0, 1, 7, 999, 10000, 12000, 55555, Decimal('10000.50'), Decimal('74999.49')]:
            for n in ALLOWED_INSTALLMENT_COUNTS:
                items = generate(rent, n, reference_date=self.today)
                self.assertEqual(len(items), n)
                expected = int(Decimal(str(rent)).quantize(Decimal('1'), rounding='ROUND_HALF_UP'))
                self.assertEqual(sum(item.amount for item in items), expected, (rent, n))

    def test_single_installment_carries_whole_rent_due_today(self):
        items = generate(Decimal('45000.60'), 1, reference_date=self.today)

        self.assertEqual(len(items), 1)
        self.assertEqual(items[0].sequence_number, 1)
        self.assertEqual(items[0].amount, 45001)
        self.assertEqual(items[0].due_date, self.today)

    def test_six_installments_every_two_months(self):
        items = generate(12000, 6, due_day_of_month=15, reference_date=self.today)

        self.assertEqual([item.amount for item in items], [2000] * 6)
        self.assertEqual([item.due_date for item in items], [
            date(2025, 1, 15),
            date(2025, 3, 15),
            date(2025, 5, 15),
            date(2025, 7, 15),
            date(2025, 9, 15),
            date(2025, 11, 15),
        ])
        self.assertEqual([item.sequence_number for item in items], [1, 2, 3, 4, 5, 6])

    def test_remainder_goes_to_first_trailing_installment(self):
        items = generate(10000, 3, reference_date=self.today)
        self.assertEqual([item.amount for item in items], [3333, 3334, 3333])

    def test_remainder_spread_over_several_trailing_installments(self):
        # 10003 / 4 -> first 2501, remaining 7502 -> base 2500, remainder 2
        items = generate(10003, 4, reference_date=self.today)
        self.assertEqual([item.amount for item in items], [2501, 2501, 2501, 2500])

    def test_half_unit_rounds_up(self):
        items = generate(Decimal('10000.50'), 3, reference_date=self.today)
        # 3333.5 rounds half-up to 3334
        self.assertEqual(items[0].amount, 3334)
        self.assertEqual(sum(item.amount for item in items), 10001)

    def test_due_day_clamped_to_end_of_february(self):
        items = generate(12000, 6, due_day_of_month=31, reference_date=date(2024, 12, 31))
        self.assertEqual(items[1].due_date, date(2025, 2, 28))
        self.assertEqual(items[2].due_date, date(2025, 4, 30))
        self.assertEqual(items[3].due_date, date(2025, 6, 30))

    def test_due_day_clamped_in_leap_year(self):
        items = generate(12000, 6, due_day_of_month=31, reference_date=date(2023, 12, 31))
        self.assertEqual(items[1].due_date, date(2024, 2, 29))

    def test_due_day_applied_to_trailing_installments_only(self):
        items = generate(12000, 4, due_day_of_month=1, reference_date=self.today)
        self.assertEqual(items[0].due_date, date(2025, 1, 15))
        self.assertEqual(items[1].due_date, date(2025, 4, 1))

    def test_zero_rent(self):
        items = generate(0, 4, reference_date=self.today)
        self.assertEqual([item.amount for item in items], [0, 0, 0, 0])

    def test_invalid_installment_count(self):
        for n in (0, 5, 12, -1):
            with self.assertRaises(ScheduleConfigurationError):
                generate(12000, n, reference_date=self.today)

    def test_negative_rent(self):
        with self.assertRaises(ScheduleConfigurationError):
            generate(-1, 4, reference_date=self.today)

    def test_invalid_due_day(self):
        with self.assertRaises(ScheduleConfigurationError):
            generate(12000, 4, due_day_of_month=0, reference_date=self.today)
        with self.assertRaises(ScheduleConfigurationError):
            generate(12000, 4, due_day_of_month=32, reference_date=self.today)

    def test_negative_fees(self):
        with self.assertRaises(ScheduleConfigurationError):
            generate(12000, 4, one_time_fees=-100, reference_date=self.today)

    def test_configuration_error_is_validation_error(self):
        with self.assertRaises(ValidationError):
            generate(12000, 5, reference_date=self.today)

    def test_item_as_dict(self):
        item = generate(12000, 1, reference_date=self.today)[0]
        self.assertEqual(item.as_dict(), {
            'sequence_number': 1,
            'amount': 12000,
            'due_date': '2025-01-15',
        })


class RentScheduleConfigTest(SimpleTestCase):

    def test_fee_totals(self):
        config = RentScheduleConfig(
            yearly_rent=60000,
            installment_count=4,
            security_deposit='3000',
            admin_fee=500,
            service_charge=Decimal('250.50'),
            parking_fee=1200,
        )
        self.assertEqual(config.one_time_fees_without_parking, Decimal('3750.50'))
        self.assertEqual(config.one_time_fees, Decimal('4950.50'))
        self.assertEqual(config.default_rent_per_installment, Decimal('15000'))
        self.assertEqual(config.default_first_total, Decimal('19950.50'))

    def test_rejects_negative_fee(self):
        with self.assertRaises(ScheduleConfigurationError):
            RentScheduleConfig(yearly_rent=60000, installment_count=4, admin_fee=-1)

    def test_rejects_unknown_payment_method(self):
        with self.assertRaises(ScheduleConfigurationError):
            RentScheduleConfig(yearly_rent=60000, installment_count=4, first_payment_method='CARD')

    def test_rejects_invalid_count(self):
        with self.assertRaises(ScheduleConfigurationError):
            RentScheduleConfig(yearly_rent=60000, installment_count=5)

    def test_with_changes_revalidates(self):
        config = RentScheduleConfig(yearly_rent=60000, installment_count=4)
        self.assertEqual(config.with_changes(installment_count=6).installment_count, 6)
        with self.assertRaises(ScheduleConfigurationError):
            config.with_changes(installment_count=7)

    def test_generate_for_config_ignores_fees_in_items(self):
        config = RentScheduleConfig(yearly_rent=12000, installment_count=4, security_deposit=5000)
        items = generate_for_config(config, date(2025, 1, 1))
        self.assertEqual([item.amount for item in items], [3000, 3000, 3000, 3000])


class FirstPaymentOverrideTest(SimpleTestCase):

    def setUp(self):
        self.today = date(2025, 1, 1)
        self.config = RentScheduleConfig(
            yearly_rent=12000,
            installment_count=4,
            security_deposit=1000,
            admin_fee=500,
        )

    def test_override_reshapes_distribution(self):
        # 6500 total - 1500 fees -> 5000 rent up front, 7000 over three payments
        items = apply_override(self.config, 6500, self.today)
        self.assertEqual([item.amount for item in items], [5000, 2334, 2333, 2333])

    def test_override_conserves_rent(self):
        for value in [0, 1, 1500, 1501, 4500, 6500, 9999.4, 13500, 100000]:
            items = apply_override(self.config, value, self.today)
            self.assertEqual(sum(item.amount for item in items), 12000, value)
            self.assertTrue(all(item.amount >= 0 for item in items), value)

    def test_override_below_fees_means_no_rent_up_front(self):
        items = apply_override(self.config, 500, self.today)
        self.assertEqual([item.amount for item in items], [0, 4000, 4000, 4000])

    def test_override_above_rent_is_clamped(self):
        items = apply_override(self.config, 100000, self.today)
        self.assertEqual([item.amount for item in items], [12000, 0, 0, 0])

    def test_default_total_as_override_is_identical(self):
        overridden = apply_override(self.config, self.config.default_first_total, self.today)
        self.assertEqual(overridden, generate_for_config(self.config, self.today))

    def test_single_installment_keeps_whole_rent(self):
        config = self.config.with_changes(installment_count=1)
        items = apply_override(config, 2000, self.today)
        self.assertEqual([item.amount for item in items], [12000])

    def test_negative_override_rejected(self):
        with self.assertRaises(ScheduleConfigurationError):
            apply_override(self.config, -1, self.today)

    def test_due_dates_unchanged_by_override(self):
        default = generate_for_config(self.config, self.today)
        overridden = apply_override(self.config, 6500, self.today)
        self.assertEqual(
            [item.due_date for item in default],
            [item.due_date for item in overridden],
        )

    def test_summary(self):
        items = apply_override(self.config, 6500, self.today)
        summary = schedule_summary(self.config, items)

        self.assertEqual(summary['first_payment_total'], Decimal('6500'))
        self.assertEqual(summary['rent_total'], 12000)
        self.assertEqual(summary['one_time_fees'], Decimal('1500'))
        self.assertEqual(summary['grand_total'], Decimal('13500'))


class PaymentPlanTest(SimpleTestCase):

    def setUp(self):
        self.today = date(2025, 1, 1)
        self.config = RentScheduleConfig(
            yearly_rent=12000,
            installment_count=4,
            security_deposit=1000,
            admin_fee=500,
        )
        self.plan = PaymentPlan(self.config)

    def test_starts_in_default_mode(self):
        self.assertFalse(self.plan.is_overridden)
        self.assertEqual(self.plan.first_payment_total, Decimal('4500'))
        self.assertEqual(self.plan.adjustment, 0)
        self.assertEqual(self.plan.schedule(self.today), generate_for_config(self.config, self.today))

    def test_override_reports_extra_collected(self):
        self.plan.apply_override(6500)

        self.assertTrue(self.plan.is_overridden)
        self.assertEqual(self.plan.adjustment, Decimal('2000'))
        self.assertEqual(self.plan.extra_collected, Decimal('2000'))
        items, summary = self.plan.summary(self.today)
        self.assertEqual(items[0].amount, 5000)
        self.assertEqual(summary['mode'], 'overridden')
        self.assertEqual(summary['extra_collected'], 2000)
        self.assertEqual(summary['default_first_total'], 4500)

    def test_lower_override_collects_nothing_extra(self):
        self.plan.apply_override(3500)
        self.assertEqual(self.plan.adjustment, Decimal('-1000'))
        self.assertEqual(self.plan.extra_collected, 0)

    def test_override_above_fees_and_rent_is_clamped(self):
        self.plan.apply_override(100000)

        items, summary = self.plan.summary(self.today)
        self.assertEqual([item.amount for item in items], [12000, 0, 0, 0])
        self.assertEqual(self.plan.first_payment_total, Decimal('13500'))
        self.assertEqual(summary['first_payment_total'], Decimal('13500'))
        self.assertEqual(summary['adjustment'], 9000)
        self.assertEqual(summary['extra_collected'], 9000)

    def test_override_below_fees_collects_fees_only(self):
        self.plan.apply_override(1000)

        items, summary = self.plan.summary(self.today)
        self.assertEqual(items[0].amount, 0)
        self.assertEqual(self.plan.first_payment_total, Decimal('1500'))
        self.assertEqual(summary['adjustment'], -3000)
        self.assertEqual(summary['extra_collected'], 0)

    def test_override_equal_to_default_keeps_default_mode(self):
        self.plan.apply_override('4500.40')
        self.assertFalse(self.plan.is_overridden)

    def test_config_change_resets_override(self):
        self.plan.apply_override(6500)
        self.plan.update_config(self.config.with_changes(installment_count=6))

        self.assertFalse(self.plan.is_overridden)
        self.assertEqual(self.plan.first_payment_total, Decimal('3500'))
        self.assertEqual(len(self.plan.schedule(self.today)), 6)

    def test_reset_override(self):
        self.plan.apply_override(6500)
        self.plan.reset_override()
        self.assertFalse(self.plan.is_overridden)
        self.assertEqual(self.plan.summary(self.today)[1]['mode'], 'default')


class ChequeEntriesTest(SimpleTestCase):

    def setUp(self):
        self.today = date(2025, 1, 1)
        self.config = RentScheduleConfig(
            yearly_rent=12000,
            installment_count=4,
            security_deposit=1000,
            admin_fee=500,
        )
        self.items = generate_for_config(self.config, self.today)

    def test_first_cheque_includes_fees(self):
        entries = cheque_entries(self.config, self.items, '000123', 'Emirates NBD')

        self.assertEqual(len(entries), 4)
        self.assertEqual([e['cheque_number'] for e in entries], ['000123', '000124', '000125', '000126'])
        self.assertEqual(entries[0]['amount'], Decimal('4500'))
        self.assertEqual([e['amount'] for e in entries[1:]], [Decimal('3000')] * 3)
        self.assertEqual([e['installment_number'] for e in entries], [1, 2, 3, 4])
        self.assertEqual(entries[1]['cheque_date'], self.items[1].due_date)
        self.assertTrue(all(e['bank_name'] == 'Emirates NBD' for e in entries))

    def test_cash_first_payment_has_no_cheque(self):
        config = self.config.with_changes(first_payment_method=SettlementMethod.CASH)
        entries = cheque_entries(config, self.items, '500', 'ADCB')

        self.assertEqual([e['installment_number'] for e in entries], [2, 3, 4])
        self.assertEqual([e['cheque_number'] for e in entries], ['500', '501', '502'])

    def test_zero_amount_installments_skipped(self):
        items = apply_override(self.config, 100000, self.today)
        entries = cheque_entries(self.config, items, '100', 'ADCB')
        self.assertEqual(len(entries), 1)
        self.assertEqual(entries[0]['amount'], Decimal('13500'))

    def test_non_numeric_first_cheque_number(self):
        with self.assertRaises(ValidationError):
            cheque_entries(self.config, self.items, 'ABC-1', 'ADCB')


# =============================================================================
# Registration and lifecycle
# =============================================================================


class PDCSetupMixin:
    """Mixin for setting up test data."""

    @classmethod
    def setUpTestData(cls):
        cls.user = User.objects.create_user(
            username='testuser',
            email='test@test.com',
            password='testpass123'
        )
        cls.tenant_1 = Tenant.objects.create(name='Tenant One', email='tenant1@test.com')
        cls.tenant_2 = Tenant.objects.create(name='Tenant Two', email='tenant2@test.com')

    def register(self, cheque_number='100001', tenant=None, **kwargs):
        defaults = {
            'bank_name': 'Emirates NBD',
            'amount': Decimal('15000.00'),
            'cheque_date': date.today() + timedelta(days=30),
        }
        defaults.update(kwargs)
        return services.register_pdc(tenant or self.tenant_1, cheque_number, **defaults)

    def deposited(self, cheque_number='100001', **kwargs):
        pdc = self.register(cheque_number, **kwargs)
        return services.deposit_pdc(pdc.pk, 'ENBD-0012345', date.today())

    def bounced(self, cheque_number='100001', **kwargs):
        pdc = self.deposited(cheque_number, **kwargs)
        return services.bounce_pdc(pdc.pk, 'Insufficient Funds')

    def in_status(self, status):
        if status == PDCStatus.CLEARED:
            return services.clear_pdc(self.deposited(f'C-{status}').pk)
        if status == PDCStatus.CANCELLED:
            return services.cancel_pdc(self.register(f'C-{status}').pk)
        if status == PDCStatus.REPLACED:
            original, _ = services.replace_pdc(
                self.bounced(f'C-{status}').pk, 'R-REPLACED', 'ADCB', 15000, date.today()
            )
            return original
        if status == PDCStatus.WITHDRAWN:
            return services.withdraw_pdc(self.register(f'C-{status}').pk, 'Tenant Request')
        raise AssertionError(status)


class RegistrationTest(PDCSetupMixin, TestCase):

    def test_register_creates_received_pdc(self):
        pdc = self.register(lease_reference='LSE-2025-0001', installment_number=2)

        self.assertEqual(pdc.status, PDCStatus.RECEIVED)
        self.assertEqual(pdc.version, 0)
        self.assertTrue(pdc.pdc_number.startswith(f'PDC-{date.today().year}-'))
        self.assertEqual(pdc.lease_reference, 'LSE-2025-0001')
        self.assertEqual(pdc.installment_number, 2)
        self.assertTrue(AuditLog.objects.filter(
            action='register', model='PDCCheque', record_id=str(pdc.pk)
        ).exists())

    def test_register_accepts_tenant_id(self):
        pdc = services.register_pdc(
            self.tenant_2.pk, '200001', 'ADCB', '5000', date.today()
        )
        self.assertEqual(pdc.tenant, self.tenant_2)
        self.assertEqual(pdc.amount, Decimal('5000'))

    def test_unknown_tenant(self):
        with self.assertRaises(ValidationError):
            services.register_pdc(999999, '200001', 'ADCB', 5000, date.today())

    def test_duplicate_cheque_number_same_tenant_rejected(self):
        self.register('100001')
        with self.assertRaises(ValidationError) as ctx:
            self.register('100001')
        self.assertIn('already exists', ctx.exception.messages[0])
        self.assertEqual(PDCCheque.objects.count(), 1)

    def test_same_cheque_number_different_tenant_allowed(self):
        self.register('100001', tenant=self.tenant_1)
        self.register('100001', tenant=self.tenant_2)
        self.assertEqual(PDCCheque.objects.filter(cheque_number='100001').count(), 2)

    def test_field_validation(self):
        with self.assertRaises(ValidationError):
            self.register('12')
        with self.assertRaises(ValidationError):
            self.register('100001', bank_name='  ')
        with self.assertRaises(ValidationError):
            self.register('100001', amount=0)
        with self.assertRaises(ValidationError):
            self.register('100001', bank_name='B' * 101)
        self.assertEqual(PDCCheque.objects.count(), 0)

    @override_settings(NUMBER_SERIES={
        'TENANT': {'prefix': 'TEN', 'padding': 4},
        'PDC': {'prefix': 'PDC', 'padding': 1},
        'WITHDRAWAL': {'prefix': 'WDL', 'padding': 4},
    })
    def test_numbering_continues_past_padding_width(self):
        pdcs = [self.register(f'1000{i:02d}') for i in range(12)]

        year = date.today().year
        self.assertEqual(pdcs[8].pdc_number, f'PDC-{year}-9')
        self.assertEqual(pdcs[9].pdc_number, f'PDC-{year}-10')
        self.assertEqual(pdcs[11].pdc_number, f'PDC-{year}-12')
        self.assertEqual(len({pdc.pdc_number for pdc in pdcs}), 12)

    def test_pdc_number_clash_is_not_reported_as_duplicate_cheque(self):
        with mock.patch('apps.property.models.generate_number', return_value='PDC-CLASH-1'):
            self.register('100001')
            with self.assertRaises(IntegrityError):
                self.register('100002')
        self.assertEqual(PDCCheque.objects.count(), 1)

    def test_created_by_from_acting_user(self):
        with acting_user(self.user):
            pdc = self.register()
        self.assertEqual(pdc.created_by, self.user)
        log = AuditLog.objects.get(action='register', record_id=str(pdc.pk))
        self.assertEqual(log.user, self.user)


class DepositClearTest(PDCSetupMixin, TestCase):

    def test_register_deposit_clear(self):
        pdc = self.register()

        pdc = services.deposit_pdc(pdc.pk, 'ENBD-0012345', date(2025, 3, 1))
        self.assertEqual(pdc.status, PDCStatus.DEPOSITED)
        self.assertEqual(pdc.deposit_date, date(2025, 3, 1))
        self.assertEqual(pdc.deposit_account, 'ENBD-0012345')
        self.assertEqual(pdc.version, 1)

        pdc = services.clear_pdc(pdc.pk, date(2025, 3, 3), 'CLR-778')
        self.assertEqual(pdc.status, PDCStatus.CLEARED)
        self.assertEqual(pdc.cleared_date, date(2025, 3, 3))
        self.assertEqual(pdc.clearing_reference, 'CLR-778')
        self.assertEqual(pdc.version, 2)

    def test_deposit_after_clear_is_invalid(self):
        pdc = services.clear_pdc(self.deposited().pk)

        with self.assertRaises(InvalidTransitionError) as ctx:
            services.deposit_pdc(pdc.pk, 'ENBD-0012345')
        self.assertEqual(ctx.exception.current_status, PDCStatus.CLEARED)
        self.assertEqual(ctx.exception.requested_status, PDCStatus.DEPOSITED)
        self.assertIn('cannot be deposited', ctx.exception.messages[0])

        pdc.refresh_from_db()
        self.assertEqual(pdc.status, PDCStatus.CLEARED)
        self.assertEqual(pdc.version, 2)

    def test_clear_requires_deposit(self):
        pdc = self.register()
        with self.assertRaises(InvalidTransitionError):
            services.clear_pdc(pdc.pk)

    def test_deposit_requires_bank_account(self):
        pdc = self.register()
        with self.assertRaises(ValidationError):
            services.deposit_pdc(pdc.pk, '   ')
        pdc.refresh_from_db()
        self.assertEqual(pdc.status, PDCStatus.RECEIVED)

    def test_clear_before_deposit_date_rejected(self):
        pdc = self.register()
        services.deposit_pdc(pdc.pk, 'ENBD-0012345', date(2025, 3, 10))
        with self.assertRaises(ValidationError):
            services.clear_pdc(pdc.pk, date(2025, 3, 1))
        pdc.refresh_from_db()
        self.assertEqual(pdc.status, PDCStatus.DEPOSITED)

    def test_unknown_pdc(self):
        with self.assertRaises(PDCNotFound):
            services.deposit_pdc(999999, 'ENBD-0012345')
        with self.assertRaises(PDCNotFound):
            services.cancel_pdc(999999)

    def test_transitions_are_audited(self):
        pdc = services.clear_pdc(self.deposited().pk)

        logs = AuditLog.objects.filter(model='PDCCheque', record_id=str(pdc.pk)).order_by('id')
        self.assertEqual([log.action for log in logs], ['register', 'deposit', 'clear'])
        self.assertEqual(logs[1].changes['from_status'], 'RECEIVED')
        self.assertEqual(logs[1].changes['to_status'], 'DEPOSITED')
        self.assertEqual(logs[2].changes['to_status'], 'CLEARED')

    def test_status_changed_signal(self):
        received = []

        def receiver(sender, pdc, action, from_status, to_status, **kwargs):
            received.append((action, from_status, to_status))

        pdc_status_changed.connect(receiver)
        self.addCleanup(pdc_status_changed.disconnect, receiver)

        pdc = self.register()
        with self.captureOnCommitCallbacks(execute=True):
            services.deposit_pdc(pdc.pk, 'ENBD-0012345')
        self.assertEqual(received, [('deposit', 'RECEIVED', 'DEPOSITED')])


class BounceReplaceTest(PDCSetupMixin, TestCase):

    def test_bounce(self):
        pdc = self.deposited()
        pdc = services.bounce_pdc(pdc.pk, 'Insufficient Funds', date(2025, 4, 2))

        self.assertEqual(pdc.status, PDCStatus.BOUNCED)
        self.assertEqual(pdc.bounce_reason, 'Insufficient Funds')
        self.assertEqual(pdc.bounced_date, date(2025, 4, 2))
        self.assertEqual(self.tenant_1.bounce_count, 1)

    def test_bounce_requires_reason(self):
        pdc = self.deposited()
        with self.assertRaises(ValidationError):
            services.bounce_pdc(pdc.pk, '')
        pdc.refresh_from_db()
        self.assertEqual(pdc.status, PDCStatus.DEPOSITED)

    def test_bounce_requires_deposit(self):
        pdc = self.register()
        with self.assertRaises(InvalidTransitionError):
            services.bounce_pdc(pdc.pk, 'Insufficient Funds')

    def test_bounce_signal(self):
        received = []

        def receiver(sender, pdc, tenant, reason, **kwargs):
            received.append((pdc.pk, tenant.pk, reason))

        pdc_bounced.connect(receiver)
        self.addCleanup(pdc_bounced.disconnect, receiver)

        pdc = self.deposited()
        with self.captureOnCommitCallbacks(execute=True):
            services.bounce_pdc(pdc.pk, 'Signature Mismatch')
        self.assertEqual(received, [(pdc.pk, self.tenant_1.pk, 'Signature Mismatch')])

    def test_replace_links_both_records(self):
        bounced = self.bounced(lease_reference='LSE-1', installment_number=3)

        original, replacement = services.replace_pdc(
            bounced.pk, '300001', 'ADCB', Decimal('15000.00'), date.today() + timedelta(days=10),
            notes='Replacement for bounced cheque'
        )

        self.assertEqual(original.status, PDCStatus.REPLACED)
        self.assertEqual(original.replaced_by_id, replacement.pk)
        self.assertEqual(replacement.status, PDCStatus.RECEIVED)
        self.assertEqual(replacement.replaces_id, original.pk)
        self.assertEqual(replacement.tenant, self.tenant_1)
        self.assertEqual(replacement.lease_reference, 'LSE-1')
        self.assertEqual(replacement.installment_number, 3)
        self.assertEqual(replacement.notes, 'Replacement for bounced cheque')

        # the bounce is still counted after replacement
        self.assertEqual(self.tenant_1.bounce_count, 1)

    def test_replace_with_existing_number_leaves_nothing_behind(self):
        self.register('300001')
        bounced = self.bounced('100001')

        with self.assertRaises(ValidationError):
            services.replace_pdc(bounced.pk, '300001', 'ADCB', 15000, date.today())

        bounced.refresh_from_db()
        self.assertEqual(bounced.status, PDCStatus.BOUNCED)
        self.assertIsNone(bounced.replaced_by_id)
        self.assertEqual(PDCCheque.objects.count(), 2)

    def test_replacement_number_taken_concurrently(self):
        bounced = self.bounced('100001')
        self.register('300001')
        check = services._raise_if_duplicate
        calls = []

        # the first look misses a cheque registered in the meantime
        def stale_first_check(tenant, cheque_number):
            calls.append(cheque_number)
            if len(calls) > 1:
                check(tenant, cheque_number)

        with mock.patch.object(services, '_raise_if_duplicate', side_effect=stale_first_check):
            with self.assertRaises(ValidationError) as ctx:
                services.replace_pdc(bounced.pk, '300001', 'ADCB', 15000, date.today())

        self.assertEqual(ctx.exception.code, 'duplicate')
        bounced.refresh_from_db()
        self.assertEqual(bounced.status, PDCStatus.BOUNCED)
        self.assertEqual(PDCCheque.objects.count(), 2)

    def test_replace_requires_bounce(self):
        pdc = self.deposited()
        with self.assertRaises(InvalidTransitionError):
            services.replace_pdc(pdc.pk, '300001', 'ADCB', 15000, date.today())
        self.assertFalse(PDCCheque.objects.filter(cheque_number='300001').exists())


class WithdrawCancelTest(PDCSetupMixin, TestCase):

    def test_bounce_then_withdraw(self):
        bounced = self.bounced()

        pdc = services.withdraw_pdc(
            bounced.pk, 'Cheque Bounced', date(2025, 5, 1),
            replacement_method='BANK_TRANSFER', transaction_reference='TRX-5521'
        )

        self.assertEqual(pdc.status, PDCStatus.WITHDRAWN)
        self.assertEqual(PDCWithdrawal.objects.filter(pdc=pdc).count(), 1)
        withdrawal = pdc.withdrawal
        self.assertEqual(withdrawal.reason, 'Cheque Bounced')
        self.assertEqual(withdrawal.withdrawal_date, date(2025, 5, 1))
        self.assertEqual(withdrawal.replacement_method, 'BANK_TRANSFER')
        self.assertEqual(withdrawal.transaction_reference, 'TRX-5521')
        self.assertEqual(withdrawal.status_before, PDCStatus.BOUNCED)

    def test_withdraw_from_entry_and_deposited(self):
        received = services.withdraw_pdc(self.register('100001').pk, 'Tenant Request')
        deposited = services.withdraw_pdc(self.deposited('100002').pk, 'Early Contract Termination')

        self.assertEqual(received.withdrawal.status_before, PDCStatus.RECEIVED)
        self.assertEqual(deposited.withdrawal.status_before, PDCStatus.DEPOSITED)

    def test_withdraw_requires_reason(self):
        pdc = self.register()
        with self.assertRaises(ValidationError):
            services.withdraw_pdc(pdc.pk, ' ')
        self.assertFalse(PDCWithdrawal.objects.exists())

    def test_withdraw_rejects_unknown_replacement_method(self):
        pdc = self.register()
        with self.assertRaises(ValidationError):
            services.withdraw_pdc(pdc.pk, 'Other', replacement_method='CARD')

    def test_withdrawal_is_immutable(self):
        pdc = services.withdraw_pdc(self.register().pk, 'Tenant Request')
        withdrawal = pdc.withdrawal

        withdrawal.reason = 'Edited'
        with self.assertRaises(ValidationError):
            withdrawal.save()
        with self.assertRaises(ValidationError):
            withdrawal.delete()

    def test_archive_withdrawal_leaves_pdc_alone(self):
        pdc = services.withdraw_pdc(self.register().pk, 'Tenant Request')
        pdc.withdrawal.archive()

        self.assertFalse(PDCWithdrawal.objects.get(pdc=pdc).is_active)
        pdc.refresh_from_db()
        self.assertEqual(pdc.status, PDCStatus.WITHDRAWN)
        self.assertTrue(pdc.is_active)

    def test_cancel(self):
        pdc = services.cancel_pdc(self.register().pk)
        self.assertEqual(pdc.status, PDCStatus.CANCELLED)
        self.assertFalse(PDCWithdrawal.objects.exists())

    def test_cancel_after_deposit_is_invalid(self):
        pdc = self.deposited()
        with self.assertRaises(InvalidTransitionError):
            services.cancel_pdc(pdc.pk)


class TerminalStatusTest(PDCSetupMixin, TestCase):

    def test_no_transition_from_terminal_status(self):
        attempts = {
            PDCAction.DEPOSIT: lambda pk: services.deposit_pdc(pk, 'ENBD-0012345'),
            PDCAction.CLEAR: lambda pk: services.clear_pdc(pk),
            PDCAction.BOUNCE: lambda pk: services.bounce_pdc(pk, 'Insufficient Funds'),
            PDCAction.REPLACE: lambda pk: services.replace_pdc(pk, 'X-999', 'ADCB', 100, date.today()),
            PDCAction.WITHDRAW: lambda pk: services.withdraw_pdc(pk, 'Other'),
            PDCAction.CANCEL: lambda pk: services.cancel_pdc(pk),
        }
        for status in TERMINAL_STATUSES:
            pdc = self.in_status(status)
            self.assertEqual(pdc.status, status)
            self.assertTrue(pdc.is_terminal)
            self.assertEqual(pdc.allowed_actions, [])
            for action, attempt in attempts.items():
                with self.subTest(status=status, action=action):
                    with self.assertRaises(InvalidTransitionError):
                        attempt(pdc.pk)
            pdc.refresh_from_db()
            self.assertEqual(pdc.status, status)


class ConcurrencyTest(PDCSetupMixin, TestCase):

    def test_stale_expected_version(self):
        pdc = self.register()
        services.deposit_pdc(pdc.pk, 'ENBD-0012345', expected_version=0)

        with self.assertRaises(TransitionConflictError) as ctx:
            services.bounce_pdc(pdc.pk, 'Insufficient Funds', expected_version=0)
        self.assertEqual(ctx.exception.expected_version, 0)
        self.assertEqual(ctx.exception.current_version, 1)

        pdc.refresh_from_db()
        self.assertEqual(pdc.status, PDCStatus.DEPOSITED)

    def test_matching_expected_version(self):
        pdc = self.deposited()
        pdc = services.clear_pdc(pdc.pk, expected_version=1)
        self.assertEqual(pdc.status, PDCStatus.CLEARED)

    def test_write_against_moved_version_conflicts(self):
        pdc = self.register()
        # another transition committed after we read the row
        PDCCheque.objects.filter(pk=pdc.pk).update(version=5)

        with self.assertRaises(TransitionConflictError):
            services._write(pdc, {'status': PDCStatus.CANCELLED})

        pdc.refresh_from_db()
        self.assertEqual(pdc.status, PDCStatus.RECEIVED)


class MarkDueTest(PDCSetupMixin, TestCase):

    def test_marks_received_cheques_inside_window(self):
        today = date(2025, 6, 1)
        inside = self.register('100001', cheque_date=date(2025, 6, 5))
        edge = self.register('100002', cheque_date=date(2025, 6, 8))
        outside = self.register('100003', cheque_date=date(2025, 6, 20))
        deposited = self.deposited('100004', cheque_date=date(2025, 6, 3))

        self.assertEqual(services.mark_due_pdcs(today), 2)

        for pdc, status in [
            (inside, PDCStatus.DUE),
            (edge, PDCStatus.DUE),
            (outside, PDCStatus.RECEIVED),
            (deposited, PDCStatus.DEPOSITED),
        ]:
            pdc.refresh_from_db()
            self.assertEqual(pdc.status, status)

        self.assertEqual(AuditLog.objects.filter(action='mark_due').count(), 2)
        # a second sweep has nothing left to do
        self.assertEqual(services.mark_due_pdcs(today), 0)

    def test_due_cheque_can_be_deposited_or_cancelled(self):
        due = self.register('100001', cheque_date=date(2025, 6, 5))
        due_2 = self.register('100002', cheque_date=date(2025, 6, 5))
        services.mark_due_pdcs(date(2025, 6, 1))

        self.assertEqual(services.deposit_pdc(due.pk, 'ENBD-0012345').status, PDCStatus.DEPOSITED)
        self.assertEqual(services.cancel_pdc(due_2.pk).status, PDCStatus.CANCELLED)

    def test_display_status(self):
        soon = self.register('100001', cheque_date=date.today() + timedelta(days=2))
        later = self.register('100002', cheque_date=date.today() + timedelta(days=60))

        self.assertEqual(soon.status, PDCStatus.RECEIVED)
        self.assertEqual(soon.display_status, PDCStatus.DUE)
        self.assertEqual(later.display_status, PDCStatus.RECEIVED)


# =============================================================================
# Bulk registration
# =============================================================================


def entry(cheque_number, months=0, amount='12500.00', bank_name='Emirates NBD'):
    return {
        'cheque_number': cheque_number,
        'bank_name': bank_name,
        'amount': Decimal(amount),
        'cheque_date': date(2025, 1, 1) + timedelta(days=30 * months),
    }


class BulkRegistrationTest(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.tenant = Tenant.objects.create(name='Bulk Tenant')

    def test_registers_all_entries(self):
        pdcs = services.register_pdcs_bulk(
            self.tenant, [entry(f'00010{i}', i) for i in range(4)], lease_reference='LSE-7'
        )

        self.assertEqual(len(pdcs), 4)
        self.assertTrue(all(pdc.status == PDCStatus.RECEIVED for pdc in pdcs))
        self.assertTrue(all(pdc.lease_reference == 'LSE-7' for pdc in pdcs))
        self.assertEqual(PDCCheque.objects.filter(tenant=self.tenant).count(), 4)
        self.assertEqual(AuditLog.objects.filter(action='bulk_register').count(), 1)

    def test_duplicate_within_batch_rejects_everything(self):
        entries = [entry('000101'), entry('000102'), entry('000103'), entry('000104'), entry('000102')]

        with self.assertRaises(BulkRegistrationError) as ctx:
            services.register_pdcs_bulk(self.tenant, entries)

        self.assertEqual(PDCCheque.objects.count(), 0)
        failures = ctx.exception.failures
        self.assertEqual(len(failures), 1)
        self.assertEqual(failures[0]['index'], 4)
        self.assertEqual(failures[0]['cheque_number'], '000102')
        self.assertIn('Duplicate', failures[0]['reason'])

    def test_duplicate_of_existing_cheque_rejects_everything(self):
        services.register_pdc(self.tenant, '000103', 'ADCB', 1000, date(2024, 12, 1))
        entries = [entry(f'00010{i}', i) for i in range(1, 6)]

        with self.assertRaises(BulkRegistrationError) as ctx:
            services.register_pdcs_bulk(self.tenant, entries)

        self.assertEqual(PDCCheque.objects.count(), 1)
        self.assertEqual(
            [(f['index'], f['cheque_number']) for f in ctx.exception.failures],
            [(2, '000103')],
        )
        self.assertIn('already exists', ctx.exception.failures[0]['reason'])

    def test_every_bad_entry_is_reported(self):
        entries = [entry('000101'), entry('12'), entry('000103', amount='0'), entry('000104', bank_name='')]

        with self.assertRaises(BulkRegistrationError) as ctx:
            services.register_pdcs_bulk(self.tenant, entries)

        self.assertEqual([f['index'] for f in ctx.exception.failures], [1, 2, 3])
        self.assertEqual(PDCCheque.objects.count(), 0)

    def test_other_tenant_numbers_do_not_collide(self):
        other = Tenant.objects.create(name='Other Tenant')
        services.register_pdc(other, '000101', 'ADCB', 1000, date(2024, 12, 1))

        pdcs = services.register_pdcs_bulk(self.tenant, [entry('000101')])
        self.assertEqual(len(pdcs), 1)

    def test_pdc_number_clash_is_not_reported_as_bad_entry(self):
        with mock.patch('apps.property.models.generate_number', return_value='PDC-CLASH-1'):
            with self.assertRaises(IntegrityError):
                services.register_pdcs_bulk(self.tenant, [entry('000101'), entry('000102')])
        self.assertEqual(PDCCheque.objects.count(), 0)

    def test_empty_batch(self):
        with self.assertRaises(ValidationError):
            services.register_pdcs_bulk(self.tenant, [])

    @override_settings(PDC_MAX_BULK=3)
    def test_batch_size_limit(self):
        with self.assertRaises(ValidationError) as ctx:
            services.register_pdcs_bulk(self.tenant, [entry(f'00010{i}') for i in range(4)])
        self.assertNotIsInstance(ctx.exception, BulkRegistrationError)
        self.assertEqual(PDCCheque.objects.count(), 0)


class RegisterScheduleTest(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.tenant = Tenant.objects.create(name='Schedule Tenant')

    def setUp(self):
        self.config = RentScheduleConfig(
            yearly_rent=48000,
            installment_count=4,
            security_deposit=2400,
            admin_fee=600,
        )
        self.items = generate_for_config(self.config, date(2025, 2, 1))

    def test_register_schedule(self):
        pdcs = services.register_schedule(
            self.tenant, self.config, self.items, '004501', 'Mashreq', lease_reference='LSE-42'
        )

        self.assertEqual([pdc.cheque_number for pdc in pdcs], ['004501', '004502', '004503', '004504'])
        self.assertEqual([pdc.installment_number for pdc in pdcs], [1, 2, 3, 4])
        self.assertEqual(pdcs[0].amount, Decimal('15000'))
        self.assertEqual(pdcs[1].amount, Decimal('12000'))
        self.assertEqual(pdcs[0].cheque_date, date(2025, 2, 1))
        self.assertEqual(pdcs[1].cheque_date, date(2025, 5, 1))
        self.assertTrue(all(pdc.lease_reference == 'LSE-42' for pdc in pdcs))

    def test_cash_first_payment(self):
        config = self.config.with_changes(first_payment_method=SettlementMethod.CASH)
        pdcs = services.register_schedule(self.tenant, config, self.items, '004501', 'Mashreq')

        self.assertEqual(len(pdcs), 3)
        self.assertEqual([pdc.installment_number for pdc in pdcs], [2, 3, 4])

    def test_schedule_with_taken_number_registers_nothing(self):
        services.register_pdc(self.tenant, '004503', 'Mashreq', 1000, date(2025, 1, 1))

        with self.assertRaises(BulkRegistrationError):
            services.register_schedule(self.tenant, self.config, self.items, '004501', 'Mashreq')
        self.assertEqual(PDCCheque.objects.filter(tenant=self.tenant).count(), 1)


# =============================================================================
# Register pages, ledger and dashboard
# =============================================================================


class QuerySetupMixin:

    @classmethod
    def setUpTestData(cls):
        cls.alice = Tenant.objects.create(name='Alice Rahman')
        cls.bob = Tenant.objects.create(name='Bob Khan')

        def register(tenant, number, bank, amount, cheque_date):
            return services.register_pdc(tenant, number, bank, Decimal(amount), cheque_date)

        cls.a1 = register(cls.alice, '100001', 'Emirates NBD', '10000', date(2025, 1, 10))
        cls.a2 = register(cls.alice, '100002', 'Emirates NBD', '20000', date(2025, 2, 10))
        cls.a3 = register(cls.alice, '100003', 'ADCB', '30000', date(2025, 3, 10))
        cls.b1 = register(cls.bob, '200001', 'Mashreq', '5000', date(2025, 1, 20))
        cls.b2 = register(cls.bob, '200002', 'Mashreq', '6000', date(2025, 2, 20))

        services.deposit_pdc(cls.a1.pk, 'ENBD-1', date(2025, 1, 10))
        services.clear_pdc(cls.a1.pk, date(2025, 1, 12))
        services.deposit_pdc(cls.b1.pk, 'ENBD-1', date(2025, 1, 20))
        services.bounce_pdc(cls.b1.pk, 'Insufficient Funds', date(2025, 1, 22))
        services.withdraw_pdc(cls.b1.pk, 'Cheque Bounced', date(2025, 1, 25), replacement_method='CASH')
        services.withdraw_pdc(cls.a3.pk, 'Early Contract Termination', date(2025, 2, 1),
                              replacement_method='BANK_TRANSFER')
        services.deposit_pdc(cls.a2.pk, 'ENBD-1', date(2025, 2, 10))


class PDCPageTest(QuerySetupMixin, TestCase):

    def test_page_payload(self):
        page = selectors.pdc_page({}, page=1, page_size=2)

        self.assertEqual(page['total'], 5)
        self.assertEqual(page['total_pages'], 3)
        self.assertEqual(page['page'], 1)
        self.assertEqual(page['page_size'], 2)
        # default ordering: cheque date ascending
        self.assertEqual([p.cheque_number for p in page['results']], ['100001', '200001'])

    def test_out_of_range_page(self):
        page = selectors.pdc_page({}, page=99, page_size=2)
        self.assertEqual(page['page'], 3)
        self.assertEqual(len(page['results']), 1)

    def test_status_filter_accepts_several(self):
        params = QueryDict('status=CLEARED&status=DEPOSITED')
        page = selectors.pdc_page(params)
        self.assertEqual({p.cheque_number for p in page['results']}, {'100001', '100002'})

    def test_tenant_bank_and_date_filters(self):
        self.assertEqual(selectors.pdc_page({'tenant': self.bob.pk})['total'], 2)
        self.assertEqual(selectors.pdc_page({'bank_name': 'emirates'})['total'], 2)
        page = selectors.pdc_page({'date_from': '2025-02-01', 'date_to': '2025-02-28'})
        self.assertEqual({p.cheque_number for p in page['results']}, {'100002', '200002'})

    def test_search(self):
        self.assertEqual(selectors.pdc_page({'search': 'khan'})['total'], 2)
        self.assertEqual(selectors.pdc_page({'search': '100003'})['total'], 1)

    def test_ordering(self):
        page = selectors.pdc_page({'ordering': '-amount'})
        self.assertEqual(
            [p.cheque_number for p in page['results']],
            ['100003', '100002', '100001', '200002', '200001'],
        )

    def test_unknown_ordering_field_rejected(self):
        with self.assertRaises(ValidationError):
            selectors.pdc_page({'ordering': 'notes'})

    def test_invalid_status_rejected(self):
        with self.assertRaises(ValidationError):
            selectors.pdc_page(QueryDict('status=LOST'))


class WithdrawalLedgerTest(QuerySetupMixin, TestCase):

    def test_newest_first(self):
        page = selectors.withdrawal_ledger_page()
        self.assertEqual(
            [w.pdc.cheque_number for w in page['results']],
            ['100003', '200001'],
        )
        self.assertEqual(page['total'], 2)

    def test_filter_by_reason_and_method(self):
        page = selectors.withdrawal_ledger_page({'reason': 'cheque bounced'})
        self.assertEqual([w.pdc.cheque_number for w in page['results']], ['200001'])

        page = selectors.withdrawal_ledger_page({'replacement_method': 'BANK_TRANSFER'})
        self.assertEqual([w.pdc.cheque_number for w in page['results']], ['100003'])

    def test_filter_by_date_and_search(self):
        page = selectors.withdrawal_ledger_page({'date_from': '2025-01-26'})
        self.assertEqual([w.pdc.cheque_number for w in page['results']], ['100003'])

        page = selectors.withdrawal_ledger_page({'search': 'bob'})
        self.assertEqual([w.pdc.cheque_number for w in page['results']], ['200001'])

    def test_sort_by_amount(self):
        page = selectors.withdrawal_ledger_page({'ordering': 'amount'})
        self.assertEqual([w.pdc.cheque_number for w in page['results']], ['200001', '100003'])

    def test_archived_entries_hidden(self):
        self.a3.refresh_from_db()
        self.a3.withdrawal.archive()
        self.assertEqual(selectors.withdrawal_ledger_page()['total'], 1)


class DashboardTest(QuerySetupMixin, TestCase):

    def test_summary(self):
        summary = selectors.dashboard_summary(today=date(2025, 2, 15))

        self.assertEqual(summary['total_count'], 5)
        self.assertEqual(summary['by_status'][PDCStatus.CLEARED], {'count': 1, 'amount': Decimal('10000')})
        self.assertEqual(summary['by_status'][PDCStatus.WITHDRAWN]['count'], 2)
        self.assertEqual(summary['by_status'][PDCStatus.REPLACED]['count'], 0)
        self.assertEqual(summary['outstanding'], {'count': 2, 'amount': Decimal('26000')})
        self.assertEqual(summary['deposited_this_month']['count'], 1)
        self.assertEqual(summary['due_this_week'], {'count': 1, 'amount': Decimal('6000')})
        self.assertEqual(summary['bounced_last_30_days']['count'], 1)
        # one bounced, one cleared
        self.assertEqual(summary['bounce_rate'], Decimal('50.00'))

    @override_settings(PDC_DUE_WINDOW_DAYS=3)
    def test_due_figure_follows_due_window(self):
        # Bob's 2025-02-20 cheque is five days out
        summary = selectors.dashboard_summary(today=date(2025, 2, 15))
        self.assertEqual(summary['due_this_week'], {'count': 0, 'amount': Decimal('0.00')})

        summary = selectors.dashboard_summary(today=date(2025, 2, 17))
        self.assertEqual(summary['due_this_week'], {'count': 1, 'amount': Decimal('6000')})

    def test_tenant_history(self):
        history = selectors.tenant_history(self.bob)

        self.assertEqual(history['total_count'], 2)
        self.assertEqual(history['bounced_count'], 1)
        self.assertEqual(history['cleared_count'], 0)
        self.assertEqual(history['pending_count'], 1)
        self.assertEqual(history['bounce_rate'], Decimal('100.00'))
        self.assertEqual([p.cheque_number for p in history['pdcs']], ['200002', '200001'])

    def test_distinct_bank_names(self):
        self.assertEqual(selectors.distinct_bank_names(), ['ADCB', 'Emirates NBD', 'Mashreq'])


# =============================================================================
# JSON endpoints
# =============================================================================


class APITestCase(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.user = User.objects.create_user(username='cashier', password='testpass123')
        cls.tenant = Tenant.objects.create(name='API Tenant')

    def setUp(self):
        self.client.force_login(self.user)

    def post_json(self, name, data, **kwargs):
        return self.client.post(
            reverse(f'property:{name}', kwargs=kwargs),
            data=json.dumps(data),
            content_type='application/json',
        )

    def register(self, cheque_number='100001'):
        return services.register_pdc(self.tenant, cheque_number, 'ADCB', Decimal('9000'), date(2025, 3, 1))


class ScheduleEndpointTest(APITestCase):

    def test_preview(self):
        response = self.client.get(reverse('property:api_schedule_preview'), {
            'yearly_rent': '10000',
            'installment_count': '3',
            'reference_date': '2025-01-01',
        })

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual([item['amount'] for item in data['items']], [3333, 3334, 3333])
        self.assertEqual(data['items'][1]['due_date'], '2025-05-01')
        self.assertEqual(data['summary']['mode'], 'default')

    def test_preview_with_override(self):
        response = self.post_json('api_schedule_preview', {
            'yearly_rent': 12000,
            'installment_count': 4,
            'security_deposit': 1000,
            'admin_fee': 500,
            'first_payment_total': 6500,
            'reference_date': '2025-01-01',
        })

        self.assertEqual(response.status_code, 200)
        data = response.json()
        self.assertEqual([item['amount'] for item in data['items']], [5000, 2334, 2333, 2333])
        self.assertEqual(data['summary']['mode'], 'overridden')
        self.assertEqual(data['summary']['extra_collected'], 2000)

    def test_invalid_installment_count(self):
        response = self.client.get(reverse('property:api_schedule_preview'), {
            'yearly_rent': '10000',
            'installment_count': '5',
        })
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'validation_error')
        self.assertIn('installment_count', response.json()['errors'])

    def test_register_schedule(self):
        response = self.post_json('api_register_schedule', {
            'tenant': self.tenant.pk,
            'yearly_rent': 12000,
            'installment_count': 2,
            'reference_date': '2025-01-01',
            'first_cheque_number': '0099',
            'bank_name': 'ADCB',
        })

        self.assertEqual(response.status_code, 201)
        numbers = [pdc['cheque_number'] for pdc in response.json()['results']]
        self.assertEqual(numbers, ['0099', '0100'])

    def test_login_required(self):
        self.client.logout()
        response = self.client.get(reverse('property:api_pdc_list'))
        self.assertEqual(response.status_code, 302)


class RegistrationEndpointTest(APITestCase):

    def test_register(self):
        response = self.post_json('api_pdc_register', {
            'tenant': self.tenant.pk,
            'cheque_number': '555001',
            'bank_name': 'Emirates NBD',
            'amount': '12500.00',
            'cheque_date': '2025-04-01',
        })

        self.assertEqual(response.status_code, 201)
        data = response.json()
        self.assertEqual(data['status'], PDCStatus.RECEIVED)
        self.assertEqual(data['amount'], '12500.00')
        self.assertEqual(data['allowed_actions'], ['deposit', 'withdraw', 'cancel'])
        self.assertEqual(PDCCheque.objects.get(pk=data['id']).created_by, self.user)

    def test_register_duplicate(self):
        self.register('555001')
        response = self.post_json('api_pdc_register', {
            'tenant': self.tenant.pk,
            'cheque_number': '555001',
            'bank_name': 'Emirates NBD',
            'amount': '12500.00',
            'cheque_date': '2025-04-01',
        })
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['error'], 'validation_error')

    def test_bulk_register_failure_lists_entries(self):
        entries = [
            {'cheque_number': f'66600{i}', 'bank_name': 'ADCB', 'amount': '1000', 'cheque_date': '2025-05-01'}
            for i in range(4)
        ]
        entries.append(dict(entries[1]))

        response = self.post_json('api_pdc_bulk_register', {'tenant': self.tenant.pk, 'entries': entries})

        self.assertEqual(response.status_code, 400)
        data = response.json()
        self.assertEqual(data['error'], 'bulk_registration_failed')
        self.assertEqual(len(data['failures']), 1)
        self.assertEqual(data['failures'][0]['index'], 4)
        self.assertEqual(PDCCheque.objects.count(), 0)

    def test_bulk_register_bad_field(self):
        entries = [
            {'cheque_number': '666001', 'bank_name': 'ADCB', 'amount': '1000', 'cheque_date': '2025-05-01'},
            {'cheque_number': '666002', 'bank_name': 'ADCB', 'amount': 'abc', 'cheque_date': '2025-05-01'},
        ]
        response = self.post_json('api_pdc_bulk_register', {'tenant': self.tenant.pk, 'entries': entries})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()['failures'][0]['index'], 1)
        self.assertEqual(PDCCheque.objects.count(), 0)

    def test_bulk_register(self):
        entries = [
            {'cheque_number': f'66600{i}', 'bank_name': 'ADCB', 'amount': '1000', 'cheque_date': '2025-05-01'}
            for i in range(3)
        ]
        response = self.post_json('api_pdc_bulk_register', {'tenant': self.tenant.pk, 'entries': entries})

        self.assertEqual(response.status_code, 201)
        self.assertEqual(len(response.json()['results']), 3)


class TransitionEndpointTest(APITestCase):

    def test_deposit_and_detail(self):
        pdc = self.register()
        response = self.post_json('api_pdc_deposit', {
            'deposit_account': 'ADCB-001', 'deposit_date': '2025-03-01', 'version': 0,
        }, pk=pdc.pk)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['status'], PDCStatus.DEPOSITED)
        self.assertEqual(response.json()['version'], 1)

        detail = self.client.get(reverse('property:api_pdc_detail', kwargs={'pk': pdc.pk})).json()
        self.assertEqual([entry['action'] for entry in detail['history']], ['deposit', 'register'])
        self.assertEqual(detail['history'][0]['user'], 'cashier')
        self.assertIsNone(detail['withdrawal'])

    def test_invalid_transition(self):
        pdc = self.register()
        response = self.post_json('api_pdc_clear', {}, pk=pdc.pk)

        self.assertEqual(response.status_code, 400)
        data = response.json()
        self.assertEqual(data['error'], 'invalid_transition')
        self.assertEqual(data['current_status'], 'RECEIVED')
        self.assertEqual(data['requested_status'], 'CLEARED')

    def test_not_found(self):
        response = self.post_json('api_pdc_cancel', {}, pk=999999)
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()['error'], 'not_found')

        response = self.client.get(reverse('property:api_pdc_detail', kwargs={'pk': 999999}))
        self.assertEqual(response.status_code, 404)

    def test_stale_version_conflict(self):
        pdc = self.register()
        services.deposit_pdc(pdc.pk, 'ADCB-001')

        response = self.post_json('api_pdc_bounce', {
            'bounce_reason': 'Insufficient Funds', 'version': 0,
        }, pk=pdc.pk)

        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()['error'], 'conflict')
        self.assertEqual(response.json()['current_version'], 1)

    def test_bounce_requires_reason(self):
        pdc = self.register()
        services.deposit_pdc(pdc.pk, 'ADCB-001')
        response = self.post_json('api_pdc_bounce', {}, pk=pdc.pk)

        self.assertEqual(response.status_code, 400)
        self.assertIn('bounce_reason', response.json()['errors'])

    def test_replace(self):
        pdc = self.register()
        services.deposit_pdc(pdc.pk, 'ADCB-001')
        services.bounce_pdc(pdc.pk, 'Insufficient Funds')

        response = self.post_json('api_pdc_replace', {
            'cheque_number': '100099', 'bank_name': 'ADCB', 'amount': '9000', 'cheque_date': '2025-03-15',
        }, pk=pdc.pk)

        self.assertEqual(response.status_code, 201)
        data = response.json()
        self.assertEqual(data['original']['status'], PDCStatus.REPLACED)
        self.assertEqual(data['original']['replaced_by'], data['replacement']['id'])
        self.assertEqual(data['replacement']['replaces'], pdc.pk)

    def test_withdraw_and_ledger(self):
        pdc = self.register()
        response = self.post_json('api_pdc_withdraw', {
            'reason': 'Payment Method Change',
            'withdrawal_date': '2025-02-20',
            'replacement_method': 'BANK_TRANSFER',
            'transaction_reference': 'TRX-1',
        }, pk=pdc.pk)

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['withdrawal']['status_before'], PDCStatus.RECEIVED)
        self.assertEqual(PDCWithdrawal.objects.count(), 1)

        ledger = self.client.get(reverse('property:api_withdrawal_ledger'), {'search': '100001'}).json()
        self.assertEqual(ledger['total'], 1)
        self.assertIn('Early Contract Termination', ledger['reasons'])
        self.assertEqual(ledger['results'][0]['reason'], 'Payment Method Change')
        self.assertEqual(ledger['results'][0]['tenant']['name'], 'API Tenant')

    def test_cancel(self):
        pdc = self.register()
        response = self.post_json('api_pdc_cancel', {}, pk=pdc.pk)
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()['status'], PDCStatus.CANCELLED)
        self.assertEqual(response.json()['allowed_actions'], [])

    def test_get_not_allowed_on_transition(self):
        pdc = self.register()
        response = self.client.get(reverse('property:api_pdc_cancel', kwargs={'pk': pdc.pk}))
        self.assertEqual(response.status_code, 405)

    def test_malformed_json(self):
        pdc = self.register()
        response = self.client.post(
            reverse('property:api_pdc_cancel', kwargs={'pk': pdc.pk}),
            data='{not json', content_type='application/json',
        )
        self.assertEqual(response.status_code, 400)


class ReportingEndpointTest(APITestCase):

    def test_list_filters_and_paginates(self):
        for i in range(3):
            self.register(f'10000{i}')
        response = self.client.get(reverse('property:api_pdc_list'), {'page_size': 2, 'status': 'RECEIVED'})

        data = response.json()
        self.assertEqual(data['total'], 3)
        self.assertEqual(data['total_pages'], 2)
        self.assertEqual(len(data['results']), 2)

    def test_invalid_filter(self):
        response = self.client.get(reverse('property:api_pdc_list'), {'status': 'LOST'})
        self.assertEqual(response.status_code, 400)

    def test_dashboard(self):
        self.register()
        data = self.client.get(reverse('property:api_dashboard')).json()
        self.assertEqual(data['total_count'], 1)
        self.assertEqual(data['by_status']['RECEIVED']['count'], 1)

    def test_tenant_history_and_banks(self):
        self.register()
        history = self.client.get(
            reverse('property:api_tenant_history', kwargs={'tenant_id': self.tenant.pk})
        ).json()
        self.assertEqual(history['total_count'], 1)
        self.assertEqual(len(history['pdcs']), 1)

        missing = self.client.get(reverse('property:api_tenant_history', kwargs={'tenant_id': 999999}))
        self.assertEqual(missing.status_code, 404)

        banks = self.client.get(reverse('property:api_bank_names')).json()
        self.assertEqual(banks['results'], ['ADCB'])


class MarkDueCommandTest(APITestCase):

    def test_command_marks_due(self):
        pdc = self.register()
        call_command('mark_due_pdcs', '--date', '2025-02-25', verbosity=0)

        pdc.refresh_from_db()
        self.assertEqual(pdc.status, PDCStatus.DUE)
        self.assertEqual(AuditLog.objects.filter(action='mark_due').count(), 1)

    def test_dry_run_changes_nothing(self):
        pdc = self.register()
        call_command('mark_due_pdcs', '--date', '2025-02-25', '--dry-run', verbosity=0)

        pdc.refresh_from_db()
        self.assertEqual(pdc.status, PDCStatus.RECEIVED)
