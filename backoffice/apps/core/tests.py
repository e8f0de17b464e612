"""
Core Test Cases: number series, audit log, acting user.
"""
from datetime import datetime
from decimal import Decimal

from django.contrib.auth.models import User
from django.test import RequestFactory, TestCase, override_settings

from apps.core.audit import get_entity_audit_history, log_audit
from apps.core.middleware import AuditMiddleware, acting_user, get_current_user
from apps.core.models import AuditLog
from apps.core.utils import generate_number, get_client_ip
from apps.property.models import Tenant


class GenerateNumberTest(TestCase):

    def test_sequence_per_year(self):
        year = datetime.now().year
        self.assertEqual(generate_number('TENANT', Tenant, 'tenant_number'), f'TEN-{year}-0001')

        Tenant.objects.create(name='First')
        Tenant.objects.create(name='Second')
        self.assertEqual(generate_number('TENANT', Tenant, 'tenant_number'), f'TEN-{year}-0003')

    @override_settings(NUMBER_SERIES={'TENANT': {'prefix': 'TEN', 'padding': 1}})
    def test_sequence_compared_numerically(self):
        year = datetime.now().year
        for _ in range(10):
            Tenant.objects.create(name='Tenant')

        self.assertTrue(Tenant.objects.filter(tenant_number=f'TEN-{year}-10').exists())
        self.assertEqual(generate_number('TENANT', Tenant, 'tenant_number'), f'TEN-{year}-11')

    def test_unknown_series_uses_default_prefix(self):
        year = datetime.now().year
        self.assertEqual(generate_number('UNKNOWN', Tenant, 'tenant_number'), f'DOC-{year}-0001')


class AuditLogTest(TestCase):

    @classmethod
    def setUpTestData(cls):
        cls.user = User.objects.create_user(username='auditor', password='testpass123')

    def test_log_audit_serializes_values(self):
        log = log_audit(self.user, 'deposit', 'PDCCheque', 42, {
            'amount': Decimal('100.50'),
            'deposit_date': datetime(2025, 3, 1).date(),
            'from_status': 'RECEIVED',
        })

        self.assertEqual(log.user, self.user)
        self.assertEqual(log.record_id, '42')
        self.assertEqual(log.changes, {
            'amount': '100.50',
            'deposit_date': '2025-03-01',
            'from_status': 'RECEIVED',
        })

    def test_falls_back_to_acting_user(self):
        with acting_user(self.user):
            log = log_audit(None, 'cancel', 'PDCCheque', 1)
        self.assertEqual(log.user, self.user)
        self.assertIsNone(get_current_user())

    def test_history_newest_first(self):
        log_audit(None, 'register', 'PDCCheque', 7)
        log_audit(None, 'deposit', 'PDCCheque', 7)
        log_audit(None, 'register', 'PDCCheque', 8)

        history = get_entity_audit_history('PDCCheque', 7)
        self.assertEqual([entry.action for entry in history], ['deposit', 'register'])
        self.assertEqual(AuditLog.objects.count(), 3)


class AuditMiddlewareTest(TestCase):

    def test_request_ip_recorded(self):
        factory = RequestFactory()
        request = factory.get('/', HTTP_X_FORWARDED_FOR='10.0.0.5, 172.16.0.1')
        self.assertEqual(get_client_ip(request), '10.0.0.5')

        user = User.objects.create_user(username='cashier', password='testpass123')
        request.user = user
        middleware = AuditMiddleware(lambda req: None)
        middleware.process_request(request)
        try:
            log = log_audit(None, 'clear', 'PDCCheque', 3)
        finally:
            middleware.process_response(request, None)

        self.assertEqual(log.user, user)
        self.assertEqual(log.ip_address, '10.0.0.5')
        self.assertIsNone(get_current_user())
