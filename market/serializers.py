"""
Serializers for the marketplace API.
"""

from django.contrib.auth import get_user_model
from django.contrib.auth.hashers import make_password
from django.contrib.auth.password_validation import validate_password
from django.core.exceptions import ValidationError as DjangoValidationError
from django.db import transaction
from rest_framework import serializers

from .lifecycle import allowed_targets
from .models import Message, Notification, Order, Product
from .validators import validate_image_file, validate_phone_number

User = get_user_model()


def _file_url(field_file, context):
    """Absolute URL for an uploaded file when a request is available."""
    if not field_file:
        return None
    request = context.get('request')
    if request is not None:
        return request.build_absolute_uri(field_file.url)
    return field_file.url


def _run_django_validator(validator, value):
    try:
        validator(value)
    except DjangoValidationError as e:
        raise serializers.ValidationError(list(e.messages))
    return value


# ============================================================================
# Authentication and Profile Serializers
# ============================================================================

class UserRegistrationSerializer(serializers.ModelSerializer):
    """
    Serializer for registering a farmer or buyer.

    Fields:
    - email: Required, unique (case-insensitive)
    - password / confirm_password: Required, must match and pass Django's validators
    - role: Required, 'farmer' or 'buyer'
    - full_name, phone_number, address: Optional profile details
    """

    password = serializers.CharField(
        write_only=True,
        required=True,
        style={'input_type': 'password'}
    )
    confirm_password = serializers.CharField(
        write_only=True,
        required=True,
        style={'input_type': 'password'}
    )

    class Meta:
        model = User
        fields = ['id', 'email', 'password', 'confirm_password', 'role',
                  'full_name', 'phone_number', 'address', 'created_at']
        read_only_fields = ['id', 'created_at']
        extra_kwargs = {
            'email': {'required': True},
            'role': {'required': True},
        }

    def validate_email(self, value):
        value = value.strip().lower()

        if User.objects.filter(email__iexact=value).exists():
            raise serializers.ValidationError("A user with that email already exists.")

        return value

    def validate_password(self, value):
        return _run_django_validator(validate_password, value)

    def validate_phone_number(self, value):
        return _run_django_validator(validate_phone_number, value)

    def validate(self, attrs):
        if attrs.get('password') != attrs.get('confirm_password'):
            raise serializers.ValidationError({
                'confirm_password': 'Password confirmation does not match.'
            })
        return attrs

    def create(self, validated_data):
        validated_data.pop('confirm_password', None)
        validated_data['password'] = make_password(validated_data.pop('password'))

        # The account logs in by email; username only has to be unique
        validated_data['username'] = validated_data['email'][:150]

        with transaction.atomic():
            user = User.objects.create(**validated_data)

        return user


class LoginSerializer(serializers.Serializer):
    """
    Email and password. Authentication itself happens in the view so that
    failures for unknown emails and wrong passwords look the same.
    """
    email = serializers.EmailField(required=True)
    password = serializers.CharField(
        required=True,
        write_only=True,
        style={'input_type': 'password'}
    )


class PublicUserSerializer(serializers.ModelSerializer):
    """What one marketplace user sees of another."""

    avatar_url = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = ['id', 'full_name', 'email', 'role', 'avatar_url']
        read_only_fields = fields

    def get_avatar_url(self, obj):
        return _file_url(obj.avatar, self.context)


class UserProfileSerializer(serializers.ModelSerializer):
    """
    The authenticated user's own profile. Never exposes password or staff flags.
    """

    avatar_url = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = [
            'id',
            'email',
            'role',
            'full_name',
            'phone_number',
            'address',
            'avatar_url',
            'created_at',
        ]
        read_only_fields = fields

    def get_avatar_url(self, obj):
        return _file_url(obj.avatar, self.context)


class UserProfileUpdateSerializer(serializers.ModelSerializer):
    """
    Profile update (PATCH). Email, password and role cannot be changed here.
    """

    class Meta:
        model = User
        fields = ['full_name', 'phone_number', 'address', 'avatar']
        extra_kwargs = {
            'full_name': {'required': False},
            'phone_number': {'required': False},
            'address': {'required': False},
            'avatar': {'required': False},
        }

    def validate_phone_number(self, value):
        return _run_django_validator(validate_phone_number, value)

    def validate_avatar(self, value):
        return _run_django_validator(validate_image_file, value)

    def update(self, instance, validated_data):
        if 'avatar' in validated_data and instance.avatar and validated_data['avatar']:
            # Replaced avatars are removed from storage
            instance.avatar.delete(save=False)

        fields_to_update = []
        for attr, value in validated_data.items():
            setattr(instance, attr, value)
            fields_to_update.append(attr)

        if fields_to_update:
            instance.save(update_fields=fields_to_update + ['updated_at'])

        return instance


# ============================================================================
# Product Serializers
# ============================================================================

class ProductSerializer(serializers.ModelSerializer):
    """Read representation of a product, with its farmer."""

    farmer = PublicUserSerializer(read_only=True)
    image_url = serializers.SerializerMethodField()

    class Meta:
        model = Product
        fields = [
            'id',
            'farmer',
            'name',
            'description',
            'price',
            'quantity',
            'unit',
            'category',
            'image_url',
            'status',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields

    def get_image_url(self, obj):
        return _file_url(obj.image, self.context)


class ProductWriteSerializer(serializers.ModelSerializer):
    """
    Create or update a product.

    The farmer comes from the request; 'sold' is only ever set by orders.
    """

    status = serializers.ChoiceField(
        choices=[Product.STATUS_ACTIVE, Product.STATUS_INACTIVE],
        required=False,
    )

    class Meta:
        model = Product
        fields = ['id', 'name', 'description', 'price', 'quantity', 'unit', 'category', 'image', 'status']
        read_only_fields = ['id']

    def validate_name(self, value):
        if not value or not value.strip():
            raise serializers.ValidationError("Product name cannot be empty or whitespace only.")
        return value.strip()

    def validate_price(self, value):
        if value <= 0:
            raise serializers.ValidationError("Price must be greater than 0.")
        return value

    def validate_image(self, value):
        return _run_django_validator(validate_image_file, value)

    def validate(self, attrs):
        # Restocking a sold-out product puts it back on sale
        if self.instance is not None and 'status' not in attrs:
            if self.instance.status == Product.STATUS_SOLD and attrs.get('quantity', 0) > 0:
                attrs['status'] = Product.STATUS_ACTIVE
        return attrs

    def create(self, validated_data):
        request = self.context.get('request')
        validated_data['farmer'] = request.user
        return Product.objects.create(**validated_data)


# ============================================================================
# Order Serializers
# ============================================================================

class OrderProductSerializer(serializers.ModelSerializer):
    image_url = serializers.SerializerMethodField()

    class Meta:
        model = Product
        fields = ['id', 'name', 'unit', 'category', 'image_url']
        read_only_fields = fields

    def get_image_url(self, obj):
        return _file_url(obj.image, self.context)


class OrderCreateSerializer(serializers.Serializer):
    """
    Input for placing an order. Business rules (stock, quantity, roles) are
    checked by market.ledger.create_order.
    """
    product_id = serializers.IntegerField(required=True)
    quantity = serializers.IntegerField(required=True)
    delivery_address = serializers.CharField(required=False, allow_blank=True, default='')
    notes = serializers.CharField(required=False, allow_blank=True, default='')

    def validate_product_id(self, value):
        try:
            return Product.objects.select_related('farmer').get(pk=value)
        except Product.DoesNotExist:
            raise serializers.ValidationError("Product not found.")

    def validate(self, attrs):
        attrs['product'] = attrs.pop('product_id')

        # Buyers without an address on the order fall back to their profile address
        if not attrs.get('delivery_address', '').strip():
            request = self.context.get('request')
            if request is not None and request.user.is_authenticated:
                attrs['delivery_address'] = request.user.address
        return attrs


class OrderSerializer(serializers.ModelSerializer):
    """
    Order as shown to its buyer or farmer. `allowed_transitions` lists the
    statuses the requesting user may move the order to.
    """

    product = OrderProductSerializer(read_only=True)
    buyer = PublicUserSerializer(read_only=True)
    farmer = serializers.SerializerMethodField()
    allowed_transitions = serializers.SerializerMethodField()

    class Meta:
        model = Order
        fields = [
            'id',
            'product',
            'buyer',
            'farmer',
            'quantity',
            'unit_price',
            'total_price',
            'delivery_address',
            'notes',
            'status',
            'payment_status',
            'payment_reference',
            'allowed_transitions',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields

    def get_farmer(self, obj):
        return PublicUserSerializer(obj.product.farmer, context=self.context).data

    def get_allowed_transitions(self, obj):
        request = self.context.get('request')
        if request is None or not request.user.is_authenticated:
            return []
        return allowed_targets(obj, request.user)


class OrderStatusUpdateSerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=Order.STATUS_CHOICES, required=True)


class PaymentSerializer(serializers.Serializer):
    """
    A payment-method token produced by the card form on the client. Card
    numbers never reach the server.
    """
    payment_method_token = serializers.CharField(required=True, allow_blank=True)


# ============================================================================
# Messaging Serializers
# ============================================================================

class MessageSerializer(serializers.ModelSerializer):
    sender_id = serializers.IntegerField(read_only=True)
    receiver_id = serializers.IntegerField(read_only=True)
    product_id = serializers.IntegerField(read_only=True, allow_null=True)
    sender_name = serializers.CharField(source='sender.display_name', read_only=True)
    attachment_url = serializers.SerializerMethodField()

    class Meta:
        model = Message
        fields = [
            'id',
            'sender_id',
            'receiver_id',
            'sender_name',
            'message_type',
            'content',
            'attachment_url',
            'product_id',
            'read',
            'created_at',
        ]
        read_only_fields = fields

    def get_attachment_url(self, obj):
        return _file_url(obj.attachment, self.context)


class MessageCreateSerializer(serializers.Serializer):
    """
    Input for sending a message. Voice and image messages are sent as
    multipart with the file in `attachment`.
    """
    receiver_id = serializers.IntegerField(required=True)
    message_type = serializers.ChoiceField(
        choices=Message.TYPE_CHOICES,
        required=False,
        default=Message.TYPE_TEXT,
    )
    content = serializers.CharField(required=False, allow_blank=True, default='')
    attachment = serializers.FileField(required=False, allow_null=True, default=None)
    product_id = serializers.IntegerField(required=False, allow_null=True, default=None)

    def validate_receiver_id(self, value):
        try:
            return User.objects.get(pk=value, is_active=True)
        except User.DoesNotExist:
            raise serializers.ValidationError("Receiver not found.")

    def validate_product_id(self, value):
        if value is None:
            return None
        try:
            return Product.objects.get(pk=value)
        except Product.DoesNotExist:
            raise serializers.ValidationError("Product not found.")

    def validate(self, attrs):
        attrs['receiver'] = attrs.pop('receiver_id')
        attrs['product'] = attrs.pop('product_id', None)
        return attrs


class ProductContextSerializer(serializers.ModelSerializer):
    image_url = serializers.SerializerMethodField()

    class Meta:
        model = Product
        fields = ['id', 'name', 'image_url']
        read_only_fields = fields

    def get_image_url(self, obj):
        return _file_url(obj.image, self.context)


class ConversationSerializer(serializers.Serializer):
    other_party = PublicUserSerializer(read_only=True)
    last_message = MessageSerializer(read_only=True)
    unread_count = serializers.IntegerField(read_only=True)
    product_context = ProductContextSerializer(read_only=True, allow_null=True)


# ============================================================================
# Notification Serializers
# ============================================================================

class NotificationSerializer(serializers.ModelSerializer):
    class Meta:
        model = Notification
        fields = ['id', 'type', 'title', 'message', 'data', 'read', 'created_at']
        read_only_fields = fields
