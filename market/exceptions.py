"""
Errors raised by the marketplace core.

Each error carries a stable ``code``, a short human-readable ``message`` and
the HTTP status the API answers with.
"""

from rest_framework import status


class MarketplaceError(Exception):
    """Base class for all business-rule failures."""

    code = 'marketplace_error'
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = 'The request could not be completed.'

    def __init__(self, message=None):
        self.message = message or self.default_message
        super().__init__(self.message)

    def as_response_data(self):
        return {'detail': self.message, 'code': self.code}


class InvalidInput(MarketplaceError):
    code = 'invalid_input'
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = 'The request contains invalid data.'


class InsufficientStock(MarketplaceError):
    code = 'insufficient_stock'
    status_code = status.HTTP_409_CONFLICT
    default_message = 'Not enough stock is available for this order.'


class Unauthorized(MarketplaceError):
    code = 'unauthorized'
    status_code = status.HTTP_403_FORBIDDEN
    default_message = 'You do not have permission to perform this action.'


class InvalidTransition(MarketplaceError):
    code = 'invalid_transition'
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = 'This status change is not allowed.'


class AlreadyPaid(InvalidTransition):
    code = 'already_paid'
    status_code = status.HTTP_409_CONFLICT
    default_message = 'This order has already been paid.'


class AlreadyTerminal(MarketplaceError):
    code = 'already_terminal'
    status_code = status.HTTP_409_CONFLICT
    default_message = 'This order is closed and can no longer change.'


class PaymentFailed(MarketplaceError):
    code = 'payment_failed'
    status_code = status.HTTP_402_PAYMENT_REQUIRED
    default_message = 'The payment was declined.'


class GatewayUnavailable(MarketplaceError):
    code = 'gateway_unavailable'
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = 'The payment service is unavailable. Please try again later.'
