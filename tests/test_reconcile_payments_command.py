"""
Tests for payment reconciliation and the reconcile_payments management command.
"""

from datetime import timedelta
from io import StringIO

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError
from django.utils import timezone

from market.exceptions import GatewayUnavailable
from market.ledger import create_order
from market.lifecycle import advance_status, reconcile_payments, submit_payment
from market.models import Notification, Order, PaymentAttempt
from market.payments import DemoPaymentGateway


@pytest.fixture
def order(buyer, product):
    return create_order(buyer, product, 2, '12 Mill Lane')


def age(attempt, minutes=30):
    PaymentAttempt.objects.filter(pk=attempt.pk).update(
        created_at=timezone.now() - timedelta(minutes=minutes)
    )


def initiated_attempt(order, minutes_old=30):
    """An attempt that was committed but never heard back from the gateway."""
    attempt = PaymentAttempt.objects.create(
        order=order,
        idempotency_key=order.idempotency_key,
        amount=order.total_price,
    )
    age(attempt, minutes_old)
    attempt.refresh_from_db()
    return attempt


class ChargedThenLostGateway(DemoPaymentGateway):
    """Charges the card, then the response never arrives."""

    def authorize(self, amount, payment_method_token, idempotency_key):
        super().authorize(amount, payment_method_token, idempotency_key)
        raise GatewayUnavailable()


@pytest.mark.django_db
class TestReconcilePayments:

    def test_stale_attempt_approved_at_gateway_is_applied(self, order):
        approval = DemoPaymentGateway().authorize(order.total_price, 'tok_visa', order.idempotency_key)
        attempt = initiated_attempt(order)

        summary = reconcile_payments()

        assert summary == {'applied': 1, 'superseded': 0, 'declined': 0, 'needs_review': 0, 'skipped': 0}
        attempt.refresh_from_db()
        assert attempt.status == PaymentAttempt.STATUS_AUTHORIZED
        assert attempt.applied is True

        order.refresh_from_db()
        assert order.status == Order.STATUS_CONFIRMED
        assert order.payment_status == Order.PAYMENT_COMPLETED
        assert order.payment_reference == approval.reference

    def test_reconciled_payment_notifies_buyer(self, order, buyer):
        DemoPaymentGateway().authorize(order.total_price, 'tok_visa', order.idempotency_key)
        initiated_attempt(order)

        reconcile_payments()

        assert Notification.objects.filter(user=buyer, type=Notification.TYPE_ORDER_PLACED).count() == 1

    def test_stale_attempt_unknown_to_gateway_is_declined(self, order):
        attempt = initiated_attempt(order)

        summary = reconcile_payments()

        assert summary['declined'] == 1
        attempt.refresh_from_db()
        assert attempt.status == PaymentAttempt.STATUS_DECLINED
        assert attempt.error_reason == 'No authorization found at the gateway.'
        assert Order.objects.get(pk=order.pk).payment_status == Order.PAYMENT_PENDING

    def test_fresh_attempt_is_left_alone(self, order):
        attempt = initiated_attempt(order, minutes_old=1)

        summary = reconcile_payments(stale_after=timedelta(minutes=15))

        assert summary == {'applied': 0, 'superseded': 0, 'declined': 0, 'needs_review': 0, 'skipped': 0}
        attempt.refresh_from_db()
        assert attempt.status == PaymentAttempt.STATUS_INITIATED

    def test_authorization_for_cancelled_order_needs_review(self, order, farmer):
        DemoPaymentGateway().authorize(order.total_price, 'tok_visa', order.idempotency_key)
        attempt = initiated_attempt(order)
        advance_status(order, farmer, Order.STATUS_CANCELLED)

        summary = reconcile_payments()

        assert summary['needs_review'] == 1
        attempt.refresh_from_db()
        assert attempt.status == PaymentAttempt.STATUS_NEEDS_REVIEW
        assert Order.objects.get(pk=order.pk).payment_status == Order.PAYMENT_PENDING

    def test_dry_run_changes_nothing(self, order):
        DemoPaymentGateway().authorize(order.total_price, 'tok_visa', order.idempotency_key)
        attempt = initiated_attempt(order)

        summary = reconcile_payments(dry_run=True)

        assert summary['applied'] == 1
        attempt.refresh_from_db()
        assert attempt.status == PaymentAttempt.STATUS_INITIATED
        assert Order.objects.get(pk=order.pk).payment_status == Order.PAYMENT_PENDING

    def test_second_run_finds_nothing(self, order):
        DemoPaymentGateway().authorize(order.total_price, 'tok_visa', order.idempotency_key)
        initiated_attempt(order)

        reconcile_payments()
        summary = reconcile_payments()

        assert summary == {'applied': 0, 'superseded': 0, 'declined': 0, 'needs_review': 0, 'skipped': 0}

    def test_charge_lost_in_transit_is_applied(self, order, buyer):
        with pytest.raises(GatewayUnavailable):
            submit_payment(order, buyer, 'tok_visa', gateway=ChargedThenLostGateway())
        attempt = PaymentAttempt.objects.get(order=order)
        assert attempt.status == PaymentAttempt.STATUS_ERROR
        age(attempt)

        summary = reconcile_payments()

        assert summary['applied'] == 1
        attempt.refresh_from_db()
        assert attempt.status == PaymentAttempt.STATUS_AUTHORIZED
        assert attempt.applied is True
        assert attempt.error_reason == ''
        order.refresh_from_db()
        assert order.status == Order.STATUS_CONFIRMED
        assert order.payment_status == Order.PAYMENT_COMPLETED
        assert order.payment_reference == attempt.gateway_reference

    def test_outage_without_charge_is_declined(self, order, buyer):
        with pytest.raises(GatewayUnavailable):
            submit_payment(order, buyer, 'tok_unavailable')
        age(PaymentAttempt.objects.get(order=order))

        summary = reconcile_payments()

        assert summary['declined'] == 1
        assert PaymentAttempt.objects.get(order=order).status == PaymentAttempt.STATUS_DECLINED
        assert Order.objects.get(pk=order.pk).payment_status == Order.PAYMENT_PENDING

    def test_attempt_superseded_by_later_payment(self, order, buyer):
        stale = initiated_attempt(order)
        paid = submit_payment(order, buyer, 'tok_visa')

        summary = reconcile_payments()

        assert summary == {'applied': 0, 'superseded': 1, 'declined': 0, 'needs_review': 0, 'skipped': 0}
        stale.refresh_from_db()
        assert stale.status == PaymentAttempt.STATUS_AUTHORIZED
        assert stale.applied is True
        assert stale.gateway_reference == paid.payment_reference
        assert Notification.objects.filter(user=buyer, type=Notification.TYPE_ORDER_PLACED).count() == 1

        assert reconcile_payments()['superseded'] == 0

    def test_retry_after_outage_supersedes_errored_attempt(self, order, buyer):
        with pytest.raises(GatewayUnavailable):
            submit_payment(order, buyer, 'tok_visa', gateway=ChargedThenLostGateway())
        submit_payment(order, buyer, 'tok_visa')
        age(PaymentAttempt.objects.get(order=order, status=PaymentAttempt.STATUS_ERROR))

        summary = reconcile_payments()

        assert summary['superseded'] == 1
        assert summary['needs_review'] == 0
        assert not PaymentAttempt.objects.filter(status=PaymentAttempt.STATUS_NEEDS_REVIEW).exists()


@pytest.mark.django_db
class TestReconcilePaymentsCommand:

    def test_command_prints_summary(self, order):
        DemoPaymentGateway().authorize(order.total_price, 'tok_visa', order.idempotency_key)
        initiated_attempt(order)
        out = StringIO()

        call_command('reconcile_payments', stdout=out)

        output = out.getvalue()
        assert 'applied: 1' in output
        assert 'declined: 0' in output
        assert 'Reconciliation completed successfully.' in output
        assert Order.objects.get(pk=order.pk).payment_status == Order.PAYMENT_COMPLETED

    def test_command_dry_run(self, order):
        initiated_attempt(order)
        out = StringIO()

        call_command('reconcile_payments', '--dry-run', stdout=out)

        assert 'declined: 1' in out.getvalue()
        assert 'Dry run completed. No changes saved.' in out.getvalue()
        assert PaymentAttempt.objects.get(order=order).status == PaymentAttempt.STATUS_INITIATED

    def test_command_stale_minutes(self, order):
        initiated_attempt(order, minutes_old=5)
        out = StringIO()

        call_command('reconcile_payments', '--stale-minutes', '60', stdout=out)
        assert 'declined: 0' in out.getvalue()

        call_command('reconcile_payments', '--stale-minutes', '2', stdout=out)
        assert PaymentAttempt.objects.get(order=order).status == PaymentAttempt.STATUS_DECLINED

    def test_command_warns_about_needs_review(self, order, farmer):
        DemoPaymentGateway().authorize(order.total_price, 'tok_visa', order.idempotency_key)
        initiated_attempt(order)
        advance_status(order, farmer, Order.STATUS_CANCELLED)
        out = StringIO()

        call_command('reconcile_payments', stdout=out)

        assert '1 payment(s) need manual review in the admin.' in out.getvalue()

    def test_negative_stale_minutes_is_rejected(self, db):
        with pytest.raises(CommandError):
            call_command('reconcile_payments', '--stale-minutes', '-1', stdout=StringIO())
