"""
Account Tests

Tests cover:
- Farmer and buyer registration and its validation
- Email login issuing a JWT pair, and login throttling
- Own profile read and update
- Logout blacklisting the refresh token, refresh-token rotation
"""

import jwt
import pytest
from django.conf import settings
from django.contrib.auth import get_user_model
from django.urls import reverse
from rest_framework import status
from rest_framework_simplejwt.token_blacklist.models import BlacklistedToken
from rest_framework_simplejwt.tokens import RefreshToken

from conftest import make_user

User = get_user_model()


def registration_data(**overrides):
    data = {
        'email': 'New.Farmer@Example.com',
        'password': 'GreenAcres2024!',
        'confirm_password': 'GreenAcres2024!',
        'role': 'farmer',
        'full_name': 'Nina Fields',
        'phone_number': '+1 555-010-2030',
        'address': 'Route 9, Hollow Creek',
    }
    data.update(overrides)
    return data


@pytest.mark.django_db
class TestRegistration:
    url = '/api/auth/register/'

    def test_register_farmer(self, api_client):
        response = api_client.post(self.url, registration_data(), format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['email'] == 'new.farmer@example.com'
        assert response.data['role'] == 'farmer'
        assert 'password' not in response.data
        assert 'confirm_password' not in response.data

        user = User.objects.get(email='new.farmer@example.com')
        assert user.is_farmer()
        assert user.check_password('GreenAcres2024!')
        assert user.username == 'new.farmer@example.com'

    def test_register_buyer(self, api_client):
        response = api_client.post(self.url, registration_data(
            email='buyer.new@example.com',
            role='buyer',
        ), format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert User.objects.get(email='buyer.new@example.com').is_buyer()

    def test_duplicate_email_is_case_insensitive(self, api_client, farmer):
        response = api_client.post(self.url, registration_data(email='FARMER@test.com'), format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'email' in response.data

    @pytest.mark.parametrize('overrides, field', [
        ({'role': 'admin'}, 'role'),
        ({'role': ''}, 'role'),
        ({'email': 'not-an-email'}, 'email'),
        ({'password': 'short', 'confirm_password': 'short'}, 'password'),
        ({'confirm_password': 'Different2024!'}, 'confirm_password'),
        ({'phone_number': '12345'}, 'phone_number'),
        ({'phone_number': 'call me maybe'}, 'phone_number'),
    ])
    def test_invalid_registration(self, api_client, overrides, field):
        response = api_client.post(self.url, registration_data(**overrides), format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert field in response.data
        assert User.objects.count() == 0

    def test_missing_role(self, api_client):
        data = registration_data()
        del data['role']

        response = api_client.post(self.url, data, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'role' in response.data


@pytest.mark.django_db
class TestLogin:

    def test_login_returns_token_pair(self, api_client, farmer):
        response = api_client.post(reverse('user_login'), {
            'email': 'farmer@test.com',
            'password': 'TestPass123!',
        }, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert response.data['user'] == {
            'id': farmer.id,
            'email': 'farmer@test.com',
            'role': 'farmer',
            'full_name': 'Fern Fields',
        }

        payload = jwt.decode(
            response.data['access'],
            settings.SIMPLE_JWT['SIGNING_KEY'],
            algorithms=[settings.SIMPLE_JWT['ALGORITHM']],
        )
        assert str(payload['user_id']) == str(farmer.id)
        assert payload['token_type'] == 'access'

    def test_login_email_is_case_insensitive(self, api_client, farmer):
        response = api_client.post(reverse('user_login'), {
            'email': 'Farmer@Test.COM',
            'password': 'TestPass123!',
        }, format='json')

        assert response.status_code == status.HTTP_200_OK

    @pytest.mark.parametrize('email, password', [
        ('farmer@test.com', 'WrongPass123!'),
        ('nobody@test.com', 'TestPass123!'),
    ])
    def test_bad_credentials_look_the_same(self, api_client, farmer, email, password):
        response = api_client.post(reverse('user_login'), {
            'email': email,
            'password': password,
        }, format='json')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED
        assert response.data == {'detail': 'Invalid credentials'}

    def test_inactive_user_cannot_login(self, api_client):
        make_user('dormant@test.com', User.ROLE_BUYER, is_active=False)

        response = api_client.post(reverse('user_login'), {
            'email': 'dormant@test.com',
            'password': 'TestPass123!',
        }, format='json')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_login_is_throttled(self, api_client, farmer):
        for _ in range(10):
            api_client.post(reverse('user_login'), {
                'email': 'farmer@test.com',
                'password': 'WrongPass123!',
            }, format='json')

        response = api_client.post(reverse('user_login'), {
            'email': 'farmer@test.com',
            'password': 'TestPass123!',
        }, format='json')

        assert response.status_code == status.HTTP_429_TOO_MANY_REQUESTS


@pytest.mark.django_db
class TestProfile:

    def test_get_own_profile(self, buyer_client, buyer):
        response = buyer_client.get(reverse('user_profile'))

        assert response.status_code == status.HTTP_200_OK
        assert response.data['email'] == 'buyer@test.com'
        assert response.data['address'] == '12 Mill Lane, Springfield'
        assert response.data['avatar_url'] is None
        assert 'password' not in response.data

    def test_update_profile(self, buyer_client, buyer):
        response = buyer_client.patch(reverse('user_profile'), {
            'full_name': 'Bea B. Baker',
            'address': '14 Mill Lane, Springfield',
        }, format='json')

        assert response.status_code == status.HTTP_200_OK
        buyer.refresh_from_db()
        assert buyer.full_name == 'Bea B. Baker'
        assert buyer.address == '14 Mill Lane, Springfield'

    def test_role_and_email_cannot_be_changed(self, buyer_client, buyer):
        buyer_client.patch(reverse('user_profile'), {
            'role': 'farmer',
            'email': 'hijack@test.com',
        }, format='json')

        buyer.refresh_from_db()
        assert buyer.role == 'buyer'
        assert buyer.email == 'buyer@test.com'

    def test_invalid_phone_number(self, buyer_client):
        response = buyer_client.patch(reverse('user_profile'), {'phone_number': '1111111111'}, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert 'phone_number' in response.data

    def test_profile_requires_authentication(self, api_client):
        assert api_client.get(reverse('user_profile')).status_code == status.HTTP_401_UNAUTHORIZED


@pytest.mark.django_db
class TestLogoutAndRefresh:

    def test_logout_blacklists_refresh_token(self, api_client, buyer):
        refresh = RefreshToken.for_user(buyer)

        response = api_client.post(reverse('user_logout'), {'refresh': str(refresh)}, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert BlacklistedToken.objects.filter(token__jti=refresh['jti']).exists()

        response = api_client.post(reverse('token_refresh'), {'refresh': str(refresh)}, format='json')
        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_logout_with_garbage_token(self, api_client, db):
        response = api_client.post(reverse('user_logout'), {'refresh': 'not-a-token'}, format='json')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    def test_refresh_rotates_and_blacklists_old_token(self, api_client, buyer):
        refresh = RefreshToken.for_user(buyer)

        response = api_client.post(reverse('token_refresh'), {'refresh': str(refresh)}, format='json')

        assert response.status_code == status.HTTP_200_OK
        assert 'access' in response.data
        assert response.data['refresh'] != str(refresh)

        reused = api_client.post(reverse('token_refresh'), {'refresh': str(refresh)}, format='json')
        assert reused.status_code == status.HTTP_401_UNAUTHORIZED
