"""
Domain events published by the marketplace core.

Core operations send these with send_robust() after their database work has
succeeded; a failing receiver is reported but does not fail the operation.
Receivers (see market.signals) turn them into notifications; other
collaborators such as a websocket push layer can subscribe the same way.
"""

from django.dispatch import Signal

# kwargs: order
order_created = Signal()

# kwargs: order, actor, old_status, new_status
order_transitioned = Signal()

# kwargs: order, attempt
payment_completed = Signal()

# kwargs: message
message_appended = Signal()
