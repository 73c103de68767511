"""
Django signal receivers that turn marketplace events into notifications.

Receivers run after the core operation has committed. A failure here is
logged and re-raised to the dispatcher; the core sends with send_robust(),
so it never undoes or fails the order, payment or message it describes.
"""

import logging

from django.dispatch import receiver

from .events import message_appended, order_created, order_transitioned, payment_completed
from .notifications import (
    NewMessagePayload,
    NewOrderPayload,
    OrderPlacedPayload,
    OrderStatusUpdatePayload,
    notify,
)

logger = logging.getLogger(__name__)


@receiver(order_created)
def notify_farmer_of_new_order(sender, order, **kwargs):
    """Tell the farmer a buyer has ordered one of their products."""
    try:
        notify(order.product.farmer, NewOrderPayload(
            order_id=order.pk,
            product_id=order.product_id,
            product_name=order.product.name,
            quantity=order.quantity,
            total_price=str(order.total_price),
            buyer_name=order.buyer.display_name,
        ))
    except Exception as e:
        logger.error(f"Error creating new_order notification for order {order.pk}: {str(e)}")
        raise


@receiver(payment_completed)
def notify_buyer_of_payment(sender, order, attempt, **kwargs):
    try:
        notify(order.buyer, OrderPlacedPayload(
            order_id=order.pk,
            product_id=order.product_id,
            product_name=order.product.name,
            total_price=str(order.total_price),
            payment_reference=order.payment_reference,
        ))
    except Exception as e:
        logger.error(f"Error creating order_placed notification for order {order.pk}: {str(e)}")
        raise


@receiver(order_transitioned)
def notify_counterparty_of_status_change(sender, order, actor, old_status, new_status, **kwargs):
    """
    Tell the other side of the order about a status change.

    The farmer acts on everything except delivery, so the buyer is notified
    unless the buyer made the change.
    """
    recipient = order.product.farmer if actor is not None and actor.id == order.buyer_id else order.buyer

    try:
        notify(recipient, OrderStatusUpdatePayload(
            order_id=order.pk,
            product_name=order.product.name,
            old_status=old_status,
            new_status=new_status,
        ))
    except Exception as e:
        logger.error(f"Error creating order_status_update notification for order {order.pk}: {str(e)}")
        raise


@receiver(message_appended)
def notify_receiver_of_message(sender, message, **kwargs):
    try:
        notify(message.receiver, NewMessagePayload(
            message_id=message.pk,
            sender_id=message.sender_id,
            sender_name=message.sender.display_name,
            message_type=message.message_type,
        ))
    except Exception as e:
        logger.error(f"Error creating new_message notification for message {message.pk}: {str(e)}")
        raise
