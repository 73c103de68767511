"""
Shared fixtures for the marketplace test suite.
"""

from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.core.cache import cache
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import RefreshToken

from market.models import Product
from market.payments import DemoPaymentGateway

User = get_user_model()


@pytest.fixture(autouse=True)
def reset_state():
    """Clear throttle counters and remembered demo authorizations between tests."""
    cache.clear()
    DemoPaymentGateway.reset()
    yield
    DemoPaymentGateway.reset()


@pytest.fixture(autouse=True)
def media_root(settings, tmp_path):
    settings.MEDIA_ROOT = tmp_path / 'media'


def make_user(email, role, **extra):
    return User.objects.create_user(
        username=email,
        email=email,
        password='TestPass123!',
        role=role,
        **extra
    )


def client_for(user):
    """Return an APIClient authenticated as `user` with a JWT access token."""
    client = APIClient()
    refresh = RefreshToken.for_user(user)
    client.credentials(HTTP_AUTHORIZATION=f'Bearer {refresh.access_token}')
    return client


@pytest.fixture
def api_client():
    return APIClient()


@pytest.fixture
def farmer(db):
    return make_user('farmer@test.com', User.ROLE_FARMER, full_name='Fern Fields')


@pytest.fixture
def other_farmer(db):
    return make_user('farmer2@test.com', User.ROLE_FARMER, full_name='Otto Orchard')


@pytest.fixture
def buyer(db):
    return make_user(
        'buyer@test.com',
        User.ROLE_BUYER,
        full_name='Bea Baker',
        address='12 Mill Lane, Springfield',
    )


@pytest.fixture
def other_buyer(db):
    return make_user('buyer2@test.com', User.ROLE_BUYER, full_name='Cal Cook')


@pytest.fixture
def product(farmer):
    """10 kg of tomatoes at $2.50/kg."""
    return Product.objects.create(
        farmer=farmer,
        name='Heirloom Tomatoes',
        description='Vine ripened, picked this morning',
        price=Decimal('2.50'),
        quantity=10,
        unit='kg',
        category='vegetables',
    )


@pytest.fixture
def farmer_client(farmer):
    return client_for(farmer)


@pytest.fixture
def buyer_client(buyer):
    return client_for(buyer)
