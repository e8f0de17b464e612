"""
Signals sent after a PDC transition has been committed.

Notification delivery and tenant statistics subscribe to these; the
lifecycle layer itself does not know who is listening.
"""
from django.dispatch import Signal

# kwargs: pdc, action, from_status, to_status
pdc_status_changed = Signal()

# kwargs: pdc, tenant, reason
pdc_bounced = Signal()
