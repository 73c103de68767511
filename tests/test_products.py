"""
Tests for product listing, browsing and management.
"""

from decimal import Decimal
from io import BytesIO

import pytest
from django.core.exceptions import ValidationError
from django.core.files.uploadedfile import SimpleUploadedFile
from django.urls import reverse
from PIL import Image
from rest_framework import status

from conftest import client_for
from market.ledger import create_order
from market.models import Product


def make_image(name='carrots.png', size=(50, 50)):
    buffer = BytesIO()
    Image.new('RGB', size, color='orange').save(buffer, format='PNG')
    return SimpleUploadedFile(name, buffer.getvalue(), content_type='image/png')


def make_product(farmer, name, price, category='vegetables', quantity=20, **extra):
    return Product.objects.create(
        farmer=farmer,
        name=name,
        price=Decimal(price),
        quantity=quantity,
        category=category,
        **extra
    )


@pytest.mark.django_db
class TestProductModel:

    def test_buyer_cannot_own_product(self, buyer):
        with pytest.raises(ValidationError):
            make_product(buyer, 'Kale', '3.00')

    @pytest.mark.parametrize('price', ['0.00', '-1.00'])
    def test_price_must_be_positive(self, farmer, price):
        with pytest.raises(ValidationError):
            make_product(farmer, 'Kale', price)

    def test_blank_name_rejected(self, farmer):
        with pytest.raises(ValidationError):
            make_product(farmer, '   ', '3.00')

    def test_is_available(self, farmer):
        product = make_product(farmer, 'Kale', '3.00')
        assert product.is_available()

        product.quantity = 0
        assert not product.is_available()


@pytest.mark.django_db
class TestProductBrowsing:
    url = '/api/products/'

    @pytest.fixture
    def catalogue(self, farmer, other_farmer):
        return {
            'carrots': make_product(farmer, 'Carrots', '1.50'),
            'apples': make_product(farmer, 'Honeycrisp Apples', '4.00', category='fruits'),
            'honey': make_product(other_farmer, 'Wildflower Honey', '12.00', category='other',
                                  description='Raw and unfiltered'),
            'hidden': make_product(farmer, 'Old Stock', '1.00', status=Product.STATUS_INACTIVE),
        }

    def test_anonymous_users_can_browse_active_products(self, api_client, catalogue):
        response = api_client.get(self.url)

        assert response.status_code == status.HTTP_200_OK
        assert response.data['count'] == 3
        names = {p['name'] for p in response.data['results']}
        assert 'Old Stock' not in names
        assert response.data['results'][0]['farmer']['full_name']

    def test_search(self, api_client, catalogue):
        assert api_client.get(self.url, {'search': 'unfiltered'}).data['count'] == 1
        assert api_client.get(self.url, {'search': 'APPLE'}).data['count'] == 1
        assert api_client.get(self.url, {'search': 'fruits'}).data['count'] == 1

    def test_category_filter(self, api_client, catalogue):
        response = api_client.get(self.url, {'category': 'fruits'})

        assert [p['name'] for p in response.data['results']] == ['Honeycrisp Apples']

    def test_invalid_category(self, api_client, catalogue):
        response = api_client.get(self.url, {'category': 'meat'})

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_price_range(self, api_client, catalogue):
        response = api_client.get(self.url, {'min_price': '2', 'max_price': '10'})

        assert [p['name'] for p in response.data['results']] == ['Honeycrisp Apples']

    @pytest.mark.parametrize('params', [
        {'min_price': 'cheap'},
        {'max_price': '-5'},
        {'min_price': '10', 'max_price': '2'},
        {'farmer': 'abc'},
    ])
    def test_invalid_filters(self, api_client, catalogue, params):
        response = api_client.get(self.url, params)

        assert response.status_code == status.HTTP_400_BAD_REQUEST

    def test_farmer_filter(self, api_client, catalogue, other_farmer):
        response = api_client.get(self.url, {'farmer': other_farmer.id})

        assert [p['name'] for p in response.data['results']] == ['Wildflower Honey']

    def test_pagination(self, api_client, farmer):
        for i in range(25):
            make_product(farmer, f'Squash {i}', '2.00')

        first = api_client.get(self.url)
        assert first.data['count'] == 25
        assert len(first.data['results']) == 20
        assert first.data['next'] is not None

        small = api_client.get(self.url, {'page_size': 5, 'page': 2})
        assert len(small.data['results']) == 5


@pytest.mark.django_db
class TestProductCreation:
    url = '/api/products/'

    def test_farmer_creates_product(self, farmer_client, farmer):
        response = farmer_client.post(self.url, {
            'name': '  Sweet Potatoes ',
            'description': 'Cured for two weeks',
            'price': '3.25',
            'quantity': 40,
            'unit': 'lb',
            'category': 'vegetables',
        }, format='json')

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['name'] == 'Sweet Potatoes'
        assert response.data['price'] == '3.25'
        assert response.data['status'] == 'active'
        assert response.data['farmer']['id'] == farmer.id

    def test_farmer_uploads_image(self, farmer_client):
        response = farmer_client.post(self.url, {
            'name': 'Carrots',
            'price': '1.50',
            'quantity': 10,
            'category': 'vegetables',
            'image': make_image(),
        }, format='multipart')

        assert response.status_code == status.HTTP_201_CREATED
        assert response.data['image_url'].endswith('.png')

    def test_buyer_cannot_create_product(self, buyer_client):
        response = buyer_client.post(self.url, {
            'name': 'Carrots',
            'price': '1.50',
            'quantity': 10,
            'category': 'vegetables',
        }, format='json')

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_anonymous_cannot_create_product(self, api_client):
        response = api_client.post(self.url, {'name': 'Carrots'}, format='json')

        assert response.status_code == status.HTTP_401_UNAUTHORIZED

    @pytest.mark.parametrize('field, value', [
        ('price', '0'),
        ('price', '-2.00'),
        ('quantity', -1),
        ('category', 'meat'),
        ('unit', 'bushel'),
        ('name', '   '),
    ])
    def test_invalid_fields(self, farmer_client, field, value):
        data = {'name': 'Carrots', 'price': '1.50', 'quantity': 10, 'category': 'vegetables'}
        data[field] = value

        response = farmer_client.post(self.url, data, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST
        assert field in response.data

    def test_cannot_create_as_sold(self, farmer_client):
        response = farmer_client.post(self.url, {
            'name': 'Carrots',
            'price': '1.50',
            'quantity': 10,
            'category': 'vegetables',
            'status': 'sold',
        }, format='json')

        assert response.status_code == status.HTTP_400_BAD_REQUEST


@pytest.mark.django_db
class TestProductManagement:

    def url(self, product):
        return reverse('product_detail', args=[product.id])

    def test_owner_updates_price(self, farmer_client, product):
        response = farmer_client.patch(self.url(product), {'price': '3.00'}, format='json')

        assert response.status_code == status.HTTP_200_OK
        product.refresh_from_db()
        assert product.price == Decimal('3.00')

    def test_other_farmer_cannot_update(self, other_farmer, product):
        response = client_for(other_farmer).patch(self.url(product), {'price': '0.50'}, format='json')

        assert response.status_code == status.HTTP_403_FORBIDDEN

    def test_restocking_sold_product_puts_it_back_on_sale(self, farmer_client, buyer, product):
        create_order(buyer, product, 10, '12 Mill Lane')
        assert Product.objects.get(pk=product.pk).status == Product.STATUS_SOLD

        response = farmer_client.patch(self.url(product), {'quantity': 15}, format='json')

        assert response.data['status'] == 'active'
        assert response.data['quantity'] == 15

    def test_inactive_product_hidden_from_others(self, farmer_client, api_client, product):
        farmer_client.patch(self.url(product), {'status': 'inactive'}, format='json')

        assert api_client.get(self.url(product)).status_code == status.HTTP_404_NOT_FOUND
        assert farmer_client.get(self.url(product)).status_code == status.HTTP_200_OK

    def test_delete_product_without_orders(self, farmer_client, product):
        response = farmer_client.delete(self.url(product))

        assert response.status_code == status.HTTP_204_NO_CONTENT
        assert not Product.objects.filter(pk=product.pk).exists()

    def test_delete_product_with_orders_deactivates_it(self, farmer_client, buyer, product):
        create_order(buyer, product, 1, '12 Mill Lane')

        response = farmer_client.delete(self.url(product))

        assert response.status_code == status.HTTP_200_OK
        assert Product.objects.get(pk=product.pk).status == Product.STATUS_INACTIVE

    def test_my_products_lists_every_status(self, farmer_client, farmer, other_farmer, product):
        make_product(farmer, 'Old Stock', '1.00', status=Product.STATUS_INACTIVE)
        make_product(other_farmer, 'Honey', '9.00')

        response = farmer_client.get(reverse('product_mine'))

        assert response.status_code == status.HTTP_200_OK
        assert {p['name'] for p in response.data['results']} == {'Heirloom Tomatoes', 'Old Stock'}

    def test_my_products_is_farmer_only(self, buyer_client):
        assert buyer_client.get(reverse('product_mine')).status_code == status.HTTP_403_FORBIDDEN
