"""
Order Ledger: validation and creation of purchases.
"""

import logging

from django.db import transaction
from django.db.models import Case, F, Value, When

from .events import order_created
from .exceptions import InsufficientStock, InvalidInput, Unauthorized
from .models import Order, Product

logger = logging.getLogger(__name__)


def reserve_stock(product_id, quantity):
    """
    Atomically take `quantity` units from an active product.

    Runs as one conditional UPDATE so two concurrent orders can never both
    take the last units. The product flips to 'sold' when it reaches zero.

    Returns:
        bool: False if the product no longer has enough active stock
    """
    updated = Product.objects.filter(
        pk=product_id,
        status=Product.STATUS_ACTIVE,
        quantity__gte=quantity,
    ).update(
        # status is assigned first: MySQL evaluates SET clauses left to right
        status=Case(
            When(quantity=quantity, then=Value(Product.STATUS_SOLD)),
            default=F('status'),
        ),
        quantity=F('quantity') - quantity,
    )
    return updated == 1


def release_stock(product_id, quantity):
    """Return reserved units to a product, reactivating it if it had sold out."""
    Product.objects.filter(pk=product_id).update(
        quantity=F('quantity') + quantity,
        status=Case(
            When(status=Product.STATUS_SOLD, then=Value(Product.STATUS_ACTIVE)),
            default=F('status'),
        ),
    )


def create_order(actor, product, quantity, delivery_address, notes=''):
    """
    Create a pending order for `quantity` units of `product`.

    The price is snapshotted from the product and the stock is reserved in
    the same transaction that inserts the order.

    Args:
        actor: Authenticated user placing the order (must be a buyer)
        product: Product instance being ordered
        quantity: Positive integer number of units
        delivery_address: Non-blank delivery address
        notes: Optional free text for the farmer

    Returns:
        Order: The new order (status=pending, payment_status=pending)

    Raises:
        InvalidInput: quantity < 1, blank address, or product not on sale
        InsufficientStock: quantity exceeds the available stock
        Unauthorized: actor is not a buyer, or is ordering their own product
    """
    if not actor.is_buyer():
        raise Unauthorized('Only buyers can place orders.')

    if product.farmer_id == actor.id:
        raise Unauthorized('You cannot order your own product.')

    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
        raise InvalidInput('Quantity must be a whole number of at least 1.')

    delivery_address = (delivery_address or '').strip()
    if not delivery_address:
        raise InvalidInput('Delivery address cannot be empty.')

    if product.status == Product.STATUS_INACTIVE:
        raise InvalidInput('This product is not currently for sale.')

    if quantity > product.quantity:
        raise InsufficientStock(f'Only {product.quantity} {product.unit} available.')

    with transaction.atomic():
        if not reserve_stock(product.pk, quantity):
            # Stock changed between the read above and the reservation
            product.refresh_from_db(fields=['quantity', 'status'])
            logger.warning(
                f"Stock reservation failed. Product ID: {product.pk}, "
                f"Requested: {quantity}, Available: {product.quantity}, Buyer ID: {actor.id}"
            )
            raise InsufficientStock(f'Only {product.quantity} {product.unit} available.')

        product.refresh_from_db(fields=['quantity', 'status'])
        order = Order(
            buyer=actor,
            product=product,
            quantity=quantity,
            unit_price=product.price,
            total_price=Order.compute_total(quantity, product.price),
            delivery_address=delivery_address,
            notes=(notes or '').strip(),
        )
        order.save()

    logger.info(
        f"Order created. Order ID: {order.pk}, Product ID: {product.pk}, "
        f"Buyer ID: {actor.id}, Quantity: {quantity}, Total: {order.total_price}"
    )
    order_created.send_robust(sender=Order, order=order)
    return order
