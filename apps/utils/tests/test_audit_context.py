# utils/tests/test_audit_context.py

from django.contrib.auth import get_user_model
from django.contrib.auth.models import AnonymousUser
from django.test import RequestFactory, SimpleTestCase, TestCase, override_settings

from apps.fees.models import FeeHead
from apps.utils.context import RequestContext, get_client_ip, get_request_context


class ClientIpTests(SimpleTestCase):

    def setUp(self):
        self.factory = RequestFactory()

    def test_remote_addr(self):
        request = self.factory.get('/', REMOTE_ADDR='10.0.0.5', HTTP_X_FORWARDED_FOR='203.0.113.9')
        self.assertEqual(get_client_ip(request), '10.0.0.5')

    @override_settings(AUDIT_TRUST_X_FORWARDED_FOR=True)
    def test_forwarded_for_behind_proxy(self):
        request = self.factory.get('/', REMOTE_ADDR='10.0.0.5', HTTP_X_FORWARDED_FOR='203.0.113.9, 10.0.0.1')
        self.assertEqual(get_client_ip(request), '203.0.113.9')

    @override_settings(AUDIT_TRUST_X_FORWARDED_FOR=True)
    def test_invalid_address_dropped(self):
        request = self.factory.get('/', HTTP_X_FORWARDED_FOR='not-an-ip')
        self.assertIsNone(get_client_ip(request))


class AuditFieldTests(TestCase):

    def setUp(self):
        self.user = get_user_model().objects.create_user(username='bursar', password='pass12345')

    def test_context_stamps_audit_fields(self):
        with RequestContext(user=self.user, ip_address='192.168.1.20'):
            head = FeeHead.objects.create(name='Tuition')

        self.assertEqual(head.created_by_id, str(self.user.pk))
        self.assertEqual(head.updated_by_id, str(self.user.pk))
        self.assertEqual(head.created_from_ip, '192.168.1.20')
        self.assertEqual(head.get_created_by(), self.user)
        self.assertIsNone(get_request_context())

    def test_anonymous_user_not_recorded(self):
        with RequestContext(user=AnonymousUser(), ip_address='192.168.1.20'):
            head = FeeHead.objects.create(name='Transport')
        self.assertIsNone(head.created_by_id)
        self.assertIsNone(head.get_created_by())

    def test_nested_context_restored(self):
        with RequestContext(request_path='outer'):
            with RequestContext(request_path='inner'):
                self.assertEqual(get_request_context()['request_path'], 'inner')
            self.assertEqual(get_request_context()['request_path'], 'outer')

    def test_update_keeps_creator(self):
        head = FeeHead.objects.create(name='Library')
        with RequestContext(user=self.user):
            head.description = 'Annual library fee'
            head.save()

        head.refresh_from_db()
        self.assertIsNone(head.created_by_id)
        self.assertEqual(head.updated_by_id, str(self.user.pk))
        self.assertGreaterEqual(head.updated_at, head.created_at)
