"""
Conversation Aggregator: per-counterparty thread summaries.

Conversations are not stored. They are rebuilt from the flat message table
every time they are requested.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from django.core.exceptions import ValidationError
from django.db import transaction
from django.db.models import Q

from .events import message_appended
from .exceptions import InvalidInput
from .models import Message, Product, User

logger = logging.getLogger(__name__)


@dataclass
class Conversation:
    other_party_id: int
    other_party: Optional[User]
    last_message: Message
    unread_count: int = 0
    product_context: Optional[Product] = None


def _newest_first(message):
    return (message.created_at, message.id)


def build_conversations(viewer_id, messages: Iterable[Message]) -> Dict[int, Conversation]:
    """
    Group `messages` involving `viewer_id` by the other participant.

    Messages are walked newest first, ties on created_at broken by id. The
    first message seen for a counterparty becomes its last_message and
    supplies the product context. Every unread message addressed to the
    viewer adds one to unread_count.
    """
    conversations = {}

    for message in sorted(messages, key=_newest_first, reverse=True):
        if message.sender_id == viewer_id:
            other_id = message.receiver_id
            other = message.receiver
        else:
            other_id = message.sender_id
            other = message.sender

        conversation = conversations.get(other_id)
        if conversation is None:
            conversation = Conversation(
                other_party_id=other_id,
                other_party=other,
                last_message=message,
                product_context=message.product if message.product_id else None,
            )
            conversations[other_id] = conversation

        if message.receiver_id == viewer_id and not message.read:
            conversation.unread_count += 1

    return conversations


def rank_conversations(conversations: Dict[int, Conversation]) -> List[Conversation]:
    """Most recently active conversation first."""
    return sorted(
        conversations.values(),
        key=lambda conversation: _newest_first(conversation.last_message),
        reverse=True,
    )


def conversations_for(user, search=None) -> List[Conversation]:
    """
    Ranked conversations of `user`, optionally filtered by the other party's
    name or email (case-insensitive substring).
    """
    messages = Message.objects.filter(
        Q(sender=user) | Q(receiver=user)
    ).select_related('sender', 'receiver', 'product')

    ranked = rank_conversations(build_conversations(user.id, messages))

    if search:
        term = search.strip().lower()
        ranked = [
            conversation for conversation in ranked
            if term in (conversation.other_party.full_name or '').lower()
            or term in (conversation.other_party.email or '').lower()
        ]

    return ranked


def mark_thread_read(viewer, other_party_id):
    """
    Mark every unread message from `other_party_id` to `viewer` as read.

    Idempotent. Returns the number of messages that changed.
    """
    updated = Message.objects.filter(
        receiver=viewer,
        sender_id=other_party_id,
        read=False,
    ).update(read=True)

    if updated:
        logger.info(
            f"Thread marked read. Viewer ID: {viewer.id}, Other Party ID: {other_party_id}, "
            f"Messages: {updated}"
        )
    return updated


def thread_between(viewer, other):
    """
    All messages between `viewer` and `other`, oldest first.

    Opening a thread reads it: incoming unread messages are marked read
    before the thread is returned.
    """
    mark_thread_read(viewer, other.id)
    return Message.objects.filter(
        Q(sender=viewer, receiver=other) | Q(sender=other, receiver=viewer)
    ).select_related('sender', 'receiver', 'product').order_by('created_at', 'id')


def send_message(sender, receiver, message_type=Message.TYPE_TEXT, content='', attachment=None,
                 product=None):
    """
    Append a message from `sender` to `receiver`.

    Raises:
        InvalidInput: self-addressed, empty text, missing or invalid attachment
    """
    if receiver is None:
        raise InvalidInput('Receiver is required.')

    if sender.id == receiver.id:
        raise InvalidInput('You cannot send a message to yourself.')

    if message_type not in dict(Message.TYPE_CHOICES):
        raise InvalidInput(f'Unknown message type: {message_type}.')

    message = Message(
        sender=sender,
        receiver=receiver,
        message_type=message_type,
        content=(content or '').strip(),
        attachment=attachment,
        product=product,
    )

    try:
        with transaction.atomic():
            message.save()
    except ValidationError as e:
        errors = [error for error_list in e.message_dict.values() for error in error_list]
        logger.warning(
            f"Message rejected. Sender ID: {sender.id}, Receiver ID: {receiver.id}, "
            f"Errors: {errors}"
        )
        raise InvalidInput(' '.join(errors))

    logger.info(
        f"Message sent. Message ID: {message.pk}, Sender ID: {sender.id}, "
        f"Receiver ID: {receiver.id}, Type: {message_type}"
    )
    message_appended.send_robust(sender=Message, message=message)
    return message
