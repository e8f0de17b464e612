"""
Rent Payment Schedule
Splits a yearly rent into a due-dated sequence of installments.

Rules:
- Amounts are whole currency units, rounded half-up
- Installment #1 is due on the reference date and carries round(rent / n)
- The rest of the rent is spread over the remaining installments; the first
  `remainder` of them absorb the extra unit
- Installment k > 1 is due (k - 1) * (12 // n) months after the reference
  date, on the configured due day (clamped to the month's last day)
- sum(amounts) == round(yearly rent), always, overridden or not

One-time fees (security deposit, admin fee, service charge, parking) are
collected with the first payment and never split. Parking is always an
annual charge, whatever the lease type.

Everything in this module is pure: no database, no shared state.
"""
import calendar
from dataclasses import dataclass, replace
from datetime import date
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP

from dateutil.relativedelta import relativedelta
from django.core.exceptions import ValidationError
from django.db import models

from .exceptions import ScheduleConfigurationError

ALLOWED_INSTALLMENT_COUNTS = (1, 2, 3, 4, 6)
ZERO = Decimal('0')


class SettlementMethod(models.TextChoices):
    CASH = 'CASH', 'Cash'
    CHEQUE = 'CHEQUE', 'Cheque'


class LeaseType(models.TextChoices):
    YEARLY = 'YEARLY', 'Yearly'
    MONTH_TO_MONTH = 'MONTH_TO_MONTH', 'Month to Month'
    FIXED_TERM = 'FIXED_TERM', 'Fixed Term'


def to_decimal(value, field='amount'):
    """Coerce ints, strings and floats to Decimal without float artifacts."""
    if isinstance(value, Decimal):
        return value
    if value is None or value == '':
        return ZERO
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError):
        raise ScheduleConfigurationError(f'{field} must be a number, got {value!r}.')


def round_money(value):
    """Round to whole currency units, half-up."""
    return int(to_decimal(value).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def clamp_to_day(value, day_of_month):
    """Move `value` to `day_of_month`, or to the month's last day if shorter."""
    last_day = calendar.monthrange(value.year, value.month)[1]
    return value.replace(day=min(day_of_month, last_day))


def validate_schedule_inputs(yearly_rent, installment_count, due_day_of_month):
    if installment_count not in ALLOWED_INSTALLMENT_COUNTS:
        raise ScheduleConfigurationError(
            f'Installment count must be one of {ALLOWED_INSTALLMENT_COUNTS}, got {installment_count!r}.'
        )
    if yearly_rent < 0:
        raise ScheduleConfigurationError('Yearly rent cannot be negative.')
    if not isinstance(due_day_of_month, int) or not 1 <= due_day_of_month <= 31:
        raise ScheduleConfigurationError(
            f'Due day of month must be between 1 and 31, got {due_day_of_month!r}.'
        )


@dataclass(frozen=True)
class PaymentScheduleItem:
    sequence_number: int
    amount: int
    due_date: date

    def as_dict(self):
        return {
            'sequence_number': self.sequence_number,
            'amount': self.amount,
            'due_date': self.due_date.isoformat(),
        }


def _distribute(total_rent, first_amount, installment_count, due_day_of_month, reference_date):
    items = [PaymentScheduleItem(1, first_amount, reference_date)]
    if installment_count == 1:
        return items

    trailing_count = installment_count - 1
    remaining = total_rent - first_amount
    base = remaining // trailing_count
    remainder = remaining - base * trailing_count
    month_interval = 12 // installment_count

    for i in range(trailing_count):
        due_date = clamp_to_day(
            reference_date + relativedelta(months=(i + 1) * month_interval),
            due_day_of_month,
        )
        amount = base + 1 if i < remainder else base
        items.append(PaymentScheduleItem(i + 2, amount, due_date))
    return items


def generate(yearly_rent, installment_count, one_time_fees=ZERO, due_day_of_month=1, reference_date=None):
    """
    Split `yearly_rent` into `installment_count` payment items.

    `one_time_fees` ride along with the first payment but are not part of
    any item amount; they only need to be a valid non-negative figure here.
    """
    yearly_rent = to_decimal(yearly_rent, 'yearly_rent')
    if to_decimal(one_time_fees, 'one_time_fees') < 0:
        raise ScheduleConfigurationError('One-time fees cannot be negative.')
    validate_schedule_inputs(yearly_rent, installment_count, due_day_of_month)
    reference_date = reference_date or date.today()

    first_amount = round_money(yearly_rent / installment_count)
    return _distribute(
        round_money(yearly_rent), first_amount, installment_count, due_day_of_month, reference_date
    )


@dataclass(frozen=True)
class RentScheduleConfig:
    """Inputs of a payment plan. Validated on construction."""
    yearly_rent: Decimal
    installment_count: int
    first_payment_method: str = SettlementMethod.CHEQUE
    due_day_of_month: int = 1
    security_deposit: Decimal = ZERO
    admin_fee: Decimal = ZERO
    service_charge: Decimal = ZERO
    parking_fee: Decimal = ZERO
    lease_type: str = LeaseType.YEARLY

    def __post_init__(self):
        for name in ('yearly_rent', 'security_deposit', 'admin_fee', 'service_charge', 'parking_fee'):
            value = to_decimal(getattr(self, name), name)
            if name != 'yearly_rent' and value < 0:
                raise ScheduleConfigurationError(f'{name} cannot be negative.')
            object.__setattr__(self, name, value)
        validate_schedule_inputs(self.yearly_rent, self.installment_count, self.due_day_of_month)
        if self.first_payment_method not in SettlementMethod.values:
            raise ScheduleConfigurationError(
                f'First payment method must be one of {SettlementMethod.values}.'
            )
        if self.lease_type not in LeaseType.values:
            raise ScheduleConfigurationError(f'Lease type must be one of {LeaseType.values}.')

    def with_changes(self, **changes):
        return replace(self, **changes)

    @property
    def one_time_fees_without_parking(self):
        return self.security_deposit + self.admin_fee + self.service_charge

    @property
    def one_time_fees(self):
        return self.one_time_fees_without_parking + self.parking_fee

    @property
    def rent_total(self):
        return round_money(self.yearly_rent)

    @property
    def default_rent_per_installment(self):
        return self.yearly_rent / self.installment_count

    @property
    def default_first_total(self):
        """Fees plus the unrounded default first rent portion."""
        return self.one_time_fees + self.default_rent_per_installment


def generate_for_config(config, reference_date=None):
    return generate(
        config.yearly_rent,
        config.installment_count,
        config.one_time_fees,
        config.due_day_of_month,
        reference_date,
    )


def override_first_rent(config, custom_first_total):
    """Rent portion item #1 actually carries when the first payment total is fixed."""
    custom_first_total = to_decimal(custom_first_total, 'custom_first_total')
    if custom_first_total < 0:
        raise ScheduleConfigurationError('First payment total cannot be negative.')
    total_rent = config.rent_total
    if config.installment_count == 1:
        return total_rent
    first_rent_portion = max(ZERO, custom_first_total - config.one_time_fees)
    return min(round_money(first_rent_portion), total_rent)


def apply_override(config, custom_first_total, reference_date=None):
    """
    Regenerate the schedule with the first payment's *total* (fees + rent)
    fixed by the caller. The rent portion of the override is clamped to
    [0, round(yearly rent)], so trailing installments never go negative and
    the rent total is conserved. With a single installment there is nothing
    to rebalance against and the item keeps the whole rent.
    """
    first_amount = override_first_rent(config, custom_first_total)
    reference_date = reference_date or date.today()
    return _distribute(
        config.rent_total, first_amount, config.installment_count, config.due_day_of_month, reference_date
    )


def schedule_summary(config, items):
    """Totals shown next to a schedule."""
    rent_total = sum(item.amount for item in items)
    first_rent = items[0].amount if items else 0
    return {
        'installment_count': config.installment_count,
        'lease_type': config.lease_type,
        'first_payment_method': config.first_payment_method,
        'one_time_fees_without_parking': config.one_time_fees_without_parking,
        'parking_fee': config.parking_fee,
        'one_time_fees': config.one_time_fees,
        'first_payment_total': config.one_time_fees + first_rent,
        'rent_total': rent_total,
        'grand_total': config.one_time_fees + rent_total,
    }


class PaymentPlan:
    """
    A payment plan being edited by a caller.

    Holds the config and whether the first payment total is overridden.
    Changing the config recomputes the default and drops any override;
    the caller has to re-apply it explicitly.
    """

    def __init__(self, config):
        self._config = config
        self._override_total = None

    @property
    def config(self):
        return self._config

    def update_config(self, config):
        self._config = config
        self._override_total = None

    def apply_override(self, first_payment_total):
        total = to_decimal(first_payment_total, 'first_payment_total')
        if total < 0:
            raise ScheduleConfigurationError('First payment total cannot be negative.')
        if round_money(total) == round_money(self.default_first_total):
            self._override_total = None
        else:
            self._override_total = total

    def reset_override(self):
        self._override_total = None

    @property
    def is_overridden(self):
        return self._override_total is not None

    @property
    def default_first_total(self):
        return self._config.default_first_total

    @property
    def first_payment_total(self):
        """Fees plus the rent the first item really carries after clamping."""
        if self.is_overridden:
            return self._config.one_time_fees + override_first_rent(self._config, self._override_total)
        return self.default_first_total

    @property
    def adjustment(self):
        """Override minus default; zero in default mode."""
        return self.first_payment_total - self.default_first_total

    @property
    def extra_collected(self):
        """Extra collected up front, which reduces the other payments."""
        return max(ZERO, self.adjustment)

    def schedule(self, reference_date=None):
        if self.is_overridden:
            return apply_override(self._config, self._override_total, reference_date)
        return generate_for_config(self._config, reference_date)

    def summary(self, reference_date=None):
        items = self.schedule(reference_date)
        summary = schedule_summary(self._config, items)
        summary.update({
            'mode': 'overridden' if self.is_overridden else 'default',
            'default_first_total': round_money(self.default_first_total),
            'adjustment': round_money(self.adjustment),
            'extra_collected': round_money(self.extra_collected),
        })
        return items, summary


def _cheque_number_sequence(first_cheque_number, count):
    first_cheque_number = (first_cheque_number or '').strip()
    if not first_cheque_number.isdigit():
        raise ValidationError('First cheque number must be numeric for auto-increment.')
    start = int(first_cheque_number)
    width = len(first_cheque_number)
    return [str(start + offset).zfill(width) for offset in range(count)]


def cheque_entries(config, items, first_cheque_number, bank_name):
    """
    Registration entries for the installments settled by cheque.

    A cash first payment produces no cheque. A cheque first payment covers
    the one-time fees as well as its rent portion. Zero-amount installments
    are skipped.
    """
    payable = []
    for item in items:
        amount = Decimal(item.amount)
        if item.sequence_number == 1:
            if config.first_payment_method == SettlementMethod.CASH:
                continue
            amount += config.one_time_fees
        if amount > 0:
            payable.append((item, amount))

    numbers = _cheque_number_sequence(first_cheque_number, len(payable))
    return [
        {
            'cheque_number': number,
            'bank_name': bank_name,
            'amount': amount,
            'cheque_date': item.due_date,
            'installment_number': item.sequence_number,
        }
        for number, (item, amount) in zip(numbers, payable)
    ]
