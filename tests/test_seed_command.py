"""
Tests for the seed_marketplace management command.
"""

from io import StringIO

import pytest
from django.core.management import call_command
from django.core.management.base import CommandError

from market.models import Message, Notification, Order, Product, User


@pytest.mark.django_db
class TestSeedMarketplace:

    def test_creates_accounts_products_and_orders(self):
        out = StringIO()

        call_command(
            'seed_marketplace',
            '--farmers', '2',
            '--buyers', '3',
            '--products', '3',
            '--orders', '5',
            '--seed', '42',
            stdout=out,
        )

        assert User.objects.filter(role=User.ROLE_FARMER).count() == 2
        assert User.objects.filter(role=User.ROLE_BUYER).count() == 3
        assert Product.objects.count() == 6

        orders = Order.objects.count()
        assert 0 < orders <= 5
        assert Message.objects.count() == orders
        assert Notification.objects.filter(type=Notification.TYPE_NEW_ORDER).count() == orders
        assert f'{orders} orders.' in out.getvalue()

    def test_orders_respect_stock(self):
        call_command('seed_marketplace', '--orders', '30', '--seed', '7', stdout=StringIO())

        for product in Product.objects.all():
            ordered = sum(order.quantity for order in product.orders.all())
            assert product.quantity >= 0
            assert ordered <= 80
            if product.quantity == 0:
                assert product.status == Product.STATUS_SOLD

    def test_seeded_accounts_can_log_in(self, api_client):
        call_command('seed_marketplace', '--farmers', '1', '--buyers', '0', '--products', '0',
                     '--password', 'Harvest2024!', stdout=StringIO())
        farmer = User.objects.get(role=User.ROLE_FARMER)

        response = api_client.post('/api/auth/login/', {
            'email': farmer.email,
            'password': 'Harvest2024!',
        }, format='json')

        assert response.status_code == 200

    def test_no_buyers_means_no_orders(self):
        out = StringIO()

        call_command('seed_marketplace', '--buyers', '0', stdout=out)

        assert Order.objects.count() == 0
        assert '0 orders.' in out.getvalue()

    def test_negative_counts_are_rejected(self):
        with pytest.raises(CommandError):
            call_command('seed_marketplace', '--farmers', '-1', stdout=StringIO())
