"""
Typed notification payloads and notification operations.

Every notification type has exactly one payload class. The payload is stored
in Notification.data as a plain dict and read back through payload_from_data().
"""

import logging
from dataclasses import asdict, dataclass, fields
from typing import Optional

from .exceptions import InvalidInput, Unauthorized
from .models import Notification

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NewOrderPayload:
    order_id: int
    product_id: int
    product_name: str
    quantity: int
    total_price: str
    buyer_name: str

    type = Notification.TYPE_NEW_ORDER

    def title(self):
        return 'New Order Received'

    def body(self):
        return (
            f'{self.buyer_name} ordered {self.quantity} of {self.product_name} '
            f'for ${self.total_price}.'
        )


@dataclass(frozen=True)
class OrderPlacedPayload:
    order_id: int
    product_id: int
    product_name: str
    total_price: str
    payment_reference: Optional[str] = None

    type = Notification.TYPE_ORDER_PLACED

    def title(self):
        return 'Order Placed'

    def body(self):
        return f'Your payment of ${self.total_price} for {self.product_name} went through.'


@dataclass(frozen=True)
class OrderStatusUpdatePayload:
    order_id: int
    product_name: str
    old_status: str
    new_status: str

    type = Notification.TYPE_ORDER_STATUS_UPDATE

    def title(self):
        return 'Order Status Updated'

    def body(self):
        return f'Order #{self.order_id} for {self.product_name} is now {self.new_status}.'


@dataclass(frozen=True)
class NewMessagePayload:
    message_id: int
    sender_id: int
    sender_name: str
    message_type: str

    type = Notification.TYPE_NEW_MESSAGE

    def title(self):
        return 'New Message'

    def body(self):
        if self.message_type == 'text':
            return f'{self.sender_name} sent you a message.'
        return f'{self.sender_name} sent you a {self.message_type} message.'


PAYLOAD_TYPES = {
    payload_class.type: payload_class
    for payload_class in (
        NewOrderPayload,
        OrderPlacedPayload,
        OrderStatusUpdatePayload,
        NewMessagePayload,
    )
}


def payload_from_data(notification_type, data):
    """Rebuild the payload object for a stored notification."""
    payload_class = PAYLOAD_TYPES.get(notification_type)
    if payload_class is None:
        raise InvalidInput(f'Unknown notification type: {notification_type}.')

    known = {field.name for field in fields(payload_class)}
    return payload_class(**{key: value for key, value in (data or {}).items() if key in known})


def notify(user, payload):
    """Create a notification for `user` from a typed payload."""
    if type(payload) not in PAYLOAD_TYPES.values():
        raise InvalidInput(f'Unsupported notification payload: {type(payload).__name__}.')

    notification = Notification.objects.create(
        user=user,
        type=payload.type,
        title=payload.title(),
        message=payload.body(),
        data=asdict(payload),
    )
    logger.info(
        f"Notification created. Notification ID: {notification.pk}, User ID: {user.id}, "
        f"Type: {payload.type}"
    )
    return notification


def mark_read(user, notification_id):
    """
    Mark one of the user's notifications read. Returns the notification.

    Raises Notification.DoesNotExist for an unknown id.
    """
    notification = Notification.objects.get(pk=notification_id)

    if notification.user_id != user.id:
        raise Unauthorized('You can only update your own notifications.')

    if not notification.read:
        notification.read = True
        notification.save(update_fields=['read'])
    return notification


def mark_all_read(user):
    """Mark every unread notification of `user` read. Returns the number changed."""
    updated = Notification.objects.filter(user=user, read=False).update(read=True)
    if updated:
        logger.info(f"All notifications marked read. User ID: {user.id}, Count: {updated}")
    return updated


def unread_count(user):
    return Notification.objects.filter(user=user, read=False).count()
