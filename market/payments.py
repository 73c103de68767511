"""
Payment gateway backends.

The active backend is configured in settings:

    PAYMENT_GATEWAY = {
        'BACKEND': 'market.payments.DemoPaymentGateway',
        'OPTIONS': {'currency': 'usd'},
    }

A backend authorizes an amount against a payment-method token and returns a
`PaymentResult`. Transport failures raise `GatewayUnavailable`; a decline is a
normal result with `approved=False`.
"""

import logging
import threading
import uuid
from dataclasses import dataclass
from typing import Optional

from django.conf import settings
from django.utils.module_loading import import_string

from .exceptions import GatewayUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PaymentResult:
    approved: bool
    reference: Optional[str] = None
    error_reason: Optional[str] = None


class PaymentGateway:
    """Interface every payment backend implements."""

    def __init__(self, currency='usd', **options):
        self.currency = currency
        self.options = options

    def authorize(self, amount, payment_method_token, idempotency_key):
        """
        Authorize `amount` against the card behind `payment_method_token`.

        Calls repeated with the same `idempotency_key` must not charge twice;
        they return the result of the first call.
        """
        raise NotImplementedError

    def lookup(self, idempotency_key):
        """
        Return the PaymentResult recorded for `idempotency_key`, or None if the
        gateway never saw it.
        """
        raise NotImplementedError


class DemoPaymentGateway(PaymentGateway):
    """
    In-process gateway for development and demos.

    Follows the card-processor test-token convention:
    - 'tok_chargeDeclined' (or any token containing 'declined') is declined
    - 'tok_unavailable' simulates a network failure
    - every other non-empty token is approved with a 'pi_demo_' reference
    """

    _authorizations = {}
    _lock = threading.Lock()

    def authorize(self, amount, payment_method_token, idempotency_key):
        key = str(idempotency_key)
        token = (payment_method_token or '').strip()

        if token == 'tok_unavailable':
            logger.warning(f"Demo gateway unreachable for key {key}")
            raise GatewayUnavailable()

        with self._lock:
            if key in self._authorizations:
                return self._authorizations[key]

            if not token:
                result = PaymentResult(approved=False, error_reason='A payment method is required.')
            elif 'declined' in token.lower():
                result = PaymentResult(approved=False, error_reason='Your card was declined.')
            else:
                result = PaymentResult(approved=True, reference=f'pi_demo_{uuid.uuid4().hex[:24]}')

            # Declines are not remembered so the buyer can retry with another card
            if result.approved:
                self._authorizations[key] = result

        logger.info(
            f"Demo gateway {'approved' if result.approved else 'declined'} "
            f"{amount} {self.currency} for key {key}"
        )
        return result

    def lookup(self, idempotency_key):
        with self._lock:
            return self._authorizations.get(str(idempotency_key))

    @classmethod
    def reset(cls):
        with cls._lock:
            cls._authorizations.clear()


def get_payment_gateway():
    """Instantiate the backend configured in settings.PAYMENT_GATEWAY."""
    config = getattr(settings, 'PAYMENT_GATEWAY', {})
    backend_path = config.get('BACKEND', 'market.payments.DemoPaymentGateway')
    backend_class = import_string(backend_path)
    return backend_class(**config.get('OPTIONS', {}))
