"""
Error kinds raised by the rent schedule and PDC lifecycle layers.

All of them are recoverable by the caller: fix the input, re-read the
record, or resubmit the batch. Nothing here is retried automatically.
"""
from django.core.exceptions import ObjectDoesNotExist, ValidationError


class ScheduleConfigurationError(ValidationError):
    """Invalid installment count, negative rent or fee, or bad due day."""
    code = 'configuration_error'

    def __init__(self, message):
        super().__init__(message, code=self.code)


PAST_TENSE = {
    'deposit': 'deposited',
    'clear': 'cleared',
    'bounce': 'bounced',
    'replace': 'replaced',
    'withdraw': 'withdrawn',
    'cancel': 'cancelled',
}


class InvalidTransitionError(ValidationError):
    """The requested transition is not valid from the record's current status."""
    code = 'invalid_transition'

    def __init__(self, pdc_id, action, current_status, requested_status):
        self.pdc_id = pdc_id
        self.action = str(action)
        self.current_status = str(current_status)
        self.requested_status = str(requested_status)
        super().__init__(
            f'PDC cannot be {PAST_TENSE.get(self.action, self.action)} in current status: '
            f'{self.current_status} (requested {self.requested_status})',
            code=self.code,
        )


class TransitionConflictError(ValidationError):
    """
    The record changed (or is being changed) concurrently.
    The caller must re-fetch and decide whether to retry.
    """
    code = 'conflict'

    def __init__(self, pdc_id, expected_version=None, current_version=None):
        self.pdc_id = pdc_id
        self.expected_version = expected_version
        self.current_version = current_version
        if expected_version is not None and current_version is not None:
            message = (
                f'PDC {pdc_id} was modified concurrently '
                f'(expected version {expected_version}, found {current_version}).'
            )
        else:
            message = f'PDC {pdc_id} is being modified by another transition.'
        super().__init__(message, code=self.code)


class BulkRegistrationError(ValidationError):
    """
    A bulk registration was rejected as a whole.
    `failures` lists {index, cheque_number, reason} for every bad entry.
    """
    code = 'bulk_registration_failed'

    def __init__(self, failures):
        self.failures = list(failures)
        summary = '; '.join(
            f"#{f['index'] + 1} ({f['cheque_number']}): {f['reason']}" for f in self.failures
        )
        super().__init__(
            f'Bulk registration rejected, no PDCs were created. {summary}',
            code=self.code,
        )


class PDCNotFound(ObjectDoesNotExist):
    """No PDC exists with the given id."""

    def __init__(self, pdc_id):
        self.pdc_id = pdc_id
        super().__init__(f'PDC not found: {pdc_id}')
