"""
Order Lifecycle Controller.

Valid order transitions and who may trigger them:
- pending -> confirmed (farmer owning the product)
- pending -> cancelled (farmer owning the product)
- confirmed -> shipped (farmer owning the product)
- shipped -> delivered (buyer who placed the order)
- delivered, cancelled -> (terminal states)

The payment step moves payment_status pending -> completed and, with it,
status pending -> confirmed. payment_status 'failed' and 'refunded' are never
produced here; staff set them through the admin.
"""

import logging
from datetime import timedelta

from django.db import transaction
from django.utils import timezone

from .events import order_transitioned, payment_completed
from .exceptions import (
    AlreadyPaid,
    AlreadyTerminal,
    GatewayUnavailable,
    InvalidInput,
    InvalidTransition,
    PaymentFailed,
    Unauthorized,
)
from .ledger import release_stock
from .models import Order, PaymentAttempt, User
from .payments import get_payment_gateway

logger = logging.getLogger(__name__)

FARMER = User.ROLE_FARMER
BUYER = User.ROLE_BUYER

# Attempts whose outcome at the gateway is unknown
UNRESOLVED_ATTEMPT_STATUSES = (PaymentAttempt.STATUS_INITIATED, PaymentAttempt.STATUS_ERROR)

# (from, to) -> party allowed to make the change
TRANSITIONS = {
    (Order.STATUS_PENDING, Order.STATUS_CONFIRMED): FARMER,
    (Order.STATUS_PENDING, Order.STATUS_CANCELLED): FARMER,
    (Order.STATUS_CONFIRMED, Order.STATUS_SHIPPED): FARMER,
    (Order.STATUS_SHIPPED, Order.STATUS_DELIVERED): BUYER,
}


def _locked(order):
    return Order.objects.select_for_update().select_related('product', 'buyer').get(pk=order.pk)


def party_of(order, actor):
    """Return 'farmer', 'buyer' or None for the actor's side of an order."""
    if actor is None:
        return None
    if actor.id == order.product.farmer_id:
        return FARMER
    if actor.id == order.buyer_id:
        return BUYER
    return None


def allowed_targets(order, actor):
    """Statuses the actor may move this order to right now."""
    party = party_of(order, actor)
    return [
        target for (source, target), required in TRANSITIONS.items()
        if source == order.status and required == party
    ]


def advance_status(order, actor, target_status):
    """
    Move an order to `target_status` on behalf of `actor`.

    The order row is locked for the duration of the check and the write, so
    two actors racing on the same order are serialized.

    Returns:
        Order: The updated order

    Raises:
        AlreadyTerminal: order is delivered or cancelled
        InvalidTransition: (status, target_status) is not in TRANSITIONS
        Unauthorized: actor is not the party the transition requires
    """
    with transaction.atomic():
        locked = _locked(order)
        old_status = locked.status

        if locked.is_terminal():
            raise AlreadyTerminal(f'Cannot modify a {old_status} order.')

        required = TRANSITIONS.get((old_status, target_status))
        if required is None:
            raise InvalidTransition(
                f'Invalid status transition from {old_status} to {target_status}.'
            )

        if party_of(locked, actor) != required:
            raise Unauthorized(f'Only the {required} can mark this order as {target_status}.')

        locked.status = target_status
        locked.save(update_fields=['status', 'updated_at'])

        if target_status == Order.STATUS_CANCELLED:
            release_stock(locked.product_id, locked.quantity)

    logger.info(
        f"Order status updated. Order ID: {locked.pk}, Old Status: {old_status}, "
        f"New Status: {target_status}, Actor ID: {actor.id}"
    )
    order_transitioned.send_robust(
        sender=Order,
        order=locked,
        actor=actor,
        old_status=old_status,
        new_status=target_status,
    )
    return locked


def _already_paid_by(order, attempt):
    return (
        order.payment_status == Order.PAYMENT_COMPLETED
        and bool(attempt.gateway_reference)
        and order.payment_reference == attempt.gateway_reference
    )


def apply_authorization(attempt):
    """
    Write an authorized payment attempt to its order.

    Safe to call more than once: an already applied attempt is a no-op. An
    attempt whose reference the order already carries is marked applied
    without touching the order. If the order is no longer awaiting payment
    the attempt is flagged 'needs_review'.

    Returns:
        tuple: (order, applied: bool)
    """
    with transaction.atomic():
        attempt = PaymentAttempt.objects.select_for_update().get(pk=attempt.pk)
        order = _locked(attempt.order)

        if attempt.applied:
            return order, False

        if _already_paid_by(order, attempt):
            # A sibling attempt with the same idempotency key already paid the order
            attempt.applied = True
            attempt.save(update_fields=['applied', 'updated_at'])
            logger.info(
                f"Authorization already on order. Attempt ID: {attempt.pk}, "
                f"Order ID: {order.pk}, Reference: {attempt.gateway_reference}"
            )
            return order, False

        if order.status != Order.STATUS_PENDING or order.payment_status != Order.PAYMENT_PENDING:
            attempt.status = PaymentAttempt.STATUS_NEEDS_REVIEW
            attempt.error_reason = (
                f'Order was {order.status}/{order.payment_status} when the authorization arrived.'
            )
            attempt.save(update_fields=['status', 'error_reason', 'updated_at'])
            logger.warning(
                f"Authorized payment could not be applied. Attempt ID: {attempt.pk}, "
                f"Order ID: {order.pk}, Order Status: {order.status}, "
                f"Payment Status: {order.payment_status}, Reference: {attempt.gateway_reference}"
            )
            return order, False

        old_status = order.status
        order.payment_reference = attempt.gateway_reference
        order.payment_status = Order.PAYMENT_COMPLETED
        order.status = Order.STATUS_CONFIRMED
        order.save(update_fields=['payment_reference', 'payment_status', 'status', 'updated_at'])

        attempt.applied = True
        attempt.save(update_fields=['applied', 'updated_at'])

    logger.info(
        f"Payment applied. Order ID: {order.pk}, Attempt ID: {attempt.pk}, "
        f"Reference: {attempt.gateway_reference}, Amount: {attempt.amount}"
    )
    payment_completed.send_robust(sender=Order, order=order, attempt=attempt)
    order_transitioned.send_robust(
        sender=Order,
        order=order,
        actor=order.buyer,
        old_status=old_status,
        new_status=order.status,
    )
    return order, True


def submit_payment(order, actor, payment_method_token, gateway=None):
    """
    Pay for a pending order through the configured payment gateway.

    A PaymentAttempt is committed before the gateway is called, so an
    authorization whose ledger write fails is still found by
    reconcile_payments(). The order's idempotency key is sent with every
    call; re-submitting never charges twice.

    Returns:
        Order: The confirmed, paid order

    Raises:
        Unauthorized: actor is not the order's buyer
        AlreadyTerminal: order is delivered or cancelled
        AlreadyPaid: payment already completed
        InvalidTransition: order is not awaiting payment
        InvalidInput: no payment method token
        PaymentFailed: gateway declined the charge
        GatewayUnavailable: gateway could not be reached
    """
    token = (payment_method_token or '').strip()

    with transaction.atomic():
        locked = _locked(order)

        if actor.id != locked.buyer_id:
            raise Unauthorized('Only the buyer can pay for this order.')

        if locked.is_terminal():
            raise AlreadyTerminal(f'Cannot pay for a {locked.status} order.')

        if locked.payment_status == Order.PAYMENT_COMPLETED:
            raise AlreadyPaid()

        if locked.status != Order.STATUS_PENDING or locked.payment_status != Order.PAYMENT_PENDING:
            raise InvalidTransition(
                f'Order is {locked.status}/{locked.payment_status} and cannot be paid.'
            )

        if not token:
            raise InvalidInput('A payment method is required.')

        pending_authorization = locked.payment_attempts.filter(
            status=PaymentAttempt.STATUS_AUTHORIZED,
            applied=False,
        ).first()

        if pending_authorization is None:
            attempt = PaymentAttempt.objects.create(
                order=locked,
                idempotency_key=locked.idempotency_key,
                amount=locked.total_price,
            )

    if pending_authorization is not None:
        # A previous authorization never reached the order; apply it instead of charging again
        logger.info(
            f"Reusing unapplied authorization. Order ID: {locked.pk}, "
            f"Attempt ID: {pending_authorization.pk}"
        )
        paid, applied = apply_authorization(pending_authorization)
        if not applied:
            raise InvalidTransition('The order changed while the payment was processed.')
        return paid

    gateway = gateway or get_payment_gateway()

    try:
        result = gateway.authorize(
            amount=locked.total_price,
            payment_method_token=token,
            idempotency_key=locked.idempotency_key,
        )
    except GatewayUnavailable as e:
        attempt.status = PaymentAttempt.STATUS_ERROR
        attempt.error_reason = e.message
        attempt.save(update_fields=['status', 'error_reason', 'updated_at'])
        logger.error(
            f"Payment gateway unavailable. Order ID: {locked.pk}, Attempt ID: {attempt.pk}"
        )
        raise

    if not result.approved:
        attempt.status = PaymentAttempt.STATUS_DECLINED
        attempt.error_reason = result.error_reason or ''
        attempt.save(update_fields=['status', 'error_reason', 'updated_at'])
        logger.warning(
            f"Payment declined. Order ID: {locked.pk}, Attempt ID: {attempt.pk}, "
            f"Reason: {result.error_reason}"
        )
        raise PaymentFailed(result.error_reason or PaymentFailed.default_message)

    attempt.status = PaymentAttempt.STATUS_AUTHORIZED
    attempt.gateway_reference = result.reference
    attempt.save(update_fields=['status', 'gateway_reference', 'updated_at'])

    paid, applied = apply_authorization(attempt)
    if not applied:
        if _already_paid_by(paid, attempt):
            return paid
        raise InvalidTransition(
            'The order changed while the payment was processed; it has been flagged for review.'
        )
    return paid


def reconcile_payments(stale_after=None, gateway=None, dry_run=False):
    """
    Bring payment attempts and orders back in line.

    - authorized but unapplied attempts are applied to their order
    - initiated or errored attempts older than `stale_after` are looked up at
      the gateway and then applied, or marked declined if the gateway has no
      approval. A transport error can hide a charge that went through.
    - an approval the order already carries through another attempt with the
      same idempotency key is counted as 'superseded', not flagged for review

    Returns:
        dict: counts keyed by 'applied', 'superseded', 'declined',
        'needs_review', 'skipped'
    """
    if stale_after is None:
        stale_after = timedelta(minutes=15)

    summary = {'applied': 0, 'superseded': 0, 'declined': 0, 'needs_review': 0, 'skipped': 0}
    gateway = gateway or get_payment_gateway()

    unapplied = PaymentAttempt.objects.filter(
        status=PaymentAttempt.STATUS_AUTHORIZED,
        applied=False,
    ).order_by('created_at')

    stale = PaymentAttempt.objects.filter(
        status__in=UNRESOLVED_ATTEMPT_STATUSES,
        created_at__lt=timezone.now() - stale_after,
    ).order_by('created_at')

    candidates = list(unapplied) + list(stale)

    for attempt in candidates:
        if attempt.status in UNRESOLVED_ATTEMPT_STATUSES:
            try:
                result = gateway.lookup(attempt.idempotency_key)
            except GatewayUnavailable:
                logger.warning(f"Gateway unavailable while reconciling attempt {attempt.pk}")
                summary['skipped'] += 1
                continue

            if result is None or not result.approved:
                summary['declined'] += 1
                if not dry_run:
                    attempt.status = PaymentAttempt.STATUS_DECLINED
                    attempt.error_reason = (
                        (result.error_reason if result else None)
                        or 'No authorization found at the gateway.'
                    )
                    attempt.save(update_fields=['status', 'error_reason', 'updated_at'])
                continue

            if dry_run:
                attempt.gateway_reference = result.reference
                summary['superseded' if _already_paid_by(attempt.order, attempt) else 'applied'] += 1
                continue

            attempt.status = PaymentAttempt.STATUS_AUTHORIZED
            attempt.gateway_reference = result.reference
            attempt.error_reason = ''
            attempt.save(update_fields=['status', 'gateway_reference', 'error_reason', 'updated_at'])
        elif dry_run:
            summary['superseded' if _already_paid_by(attempt.order, attempt) else 'applied'] += 1
            continue

        order, applied = apply_authorization(attempt)
        if applied:
            summary['applied'] += 1
        elif _already_paid_by(order, attempt):
            summary['superseded'] += 1
        else:
            summary['needs_review'] += 1

    logger.info(f"Payment reconciliation finished: {summary}")
    return summary
