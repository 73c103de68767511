"""
Data model for the Farm Direct marketplace.
"""

import uuid
from decimal import Decimal

from django.contrib.auth.models import AbstractUser
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.utils.translation import gettext_lazy as _

from .validators import validate_image_file, validate_phone_number, validate_voice_file

CENTS = Decimal('0.01')


def avatar_upload_path(instance, filename):
    """Path format: avatars/{user_id}/{filename}"""
    user_id = instance.id if instance.id else 'temp'
    return f'avatars/{user_id}/{filename}'


def product_image_upload_path(instance, filename):
    """Path format: products/{farmer_id}/{filename}"""
    return f'products/{instance.farmer_id or "temp"}/{filename}'


def message_attachment_upload_path(instance, filename):
    """Path format: messages/{sender_id}/{message_type}/{filename}"""
    return f'messages/{instance.sender_id or "temp"}/{instance.message_type}/{filename}'


class User(AbstractUser):
    """
    Marketplace account. Acts as the session actor for every core operation.

    Additional fields:
    - email: Required, unique email address (used to log in)
    - role: Either 'farmer' or 'buyer'
    - full_name: Display name shown to the other party
    - phone_number: Optional phone number with validation
    - address: Default delivery address for buyers
    - avatar: Optional profile picture
    """

    ROLE_FARMER = 'farmer'
    ROLE_BUYER = 'buyer'
    ROLE_CHOICES = [
        (ROLE_FARMER, 'Farmer'),
        (ROLE_BUYER, 'Buyer'),
    ]

    email = models.EmailField(
        _('email address'),
        unique=True,
        error_messages={
            'unique': _('A user with that email already exists.'),
        },
    )

    role = models.CharField(
        _('role'),
        max_length=10,
        choices=ROLE_CHOICES,
        help_text=_('Whether the account sells (farmer) or buys (buyer) produce.')
    )

    full_name = models.CharField(_('full name'), max_length=200, blank=True, default='')

    phone_number = models.CharField(
        _('phone number'),
        max_length=20,
        blank=True,
        default='',
        validators=[validate_phone_number],
    )

    address = models.CharField(_('address'), max_length=300, blank=True, default='')

    avatar = models.ImageField(
        _('avatar'),
        upload_to=avatar_upload_path,
        blank=True,
        null=True,
        validators=[validate_image_file],
    )

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    REQUIRED_FIELDS = ['email', 'role']

    class Meta:
        verbose_name = _('user')
        verbose_name_plural = _('users')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['role'], name='market_user_role_idx'),
        ]

    def __str__(self):
        return self.email or self.username

    @property
    def display_name(self):
        return self.full_name or self.email

    def is_farmer(self):
        return self.role == self.ROLE_FARMER

    def is_buyer(self):
        return self.role == self.ROLE_BUYER

    def clean(self):
        super().clean()

        if self.email:
            self.email = self.email.lower()

        if not self.email:
            raise ValidationError({'email': _('Email address is required.')})

        if self.role not in (self.ROLE_FARMER, self.ROLE_BUYER):
            raise ValidationError({'role': _('Role must be either farmer or buyer.')})

    def save(self, *args, **kwargs):
        # Case-insensitive uniqueness relies on storing lowercase emails
        if self.email:
            self.email = self.email.lower()
        super().save(*args, **kwargs)


class Product(models.Model):
    """
    Produce listed by a farmer.

    Stock (`quantity`) is reserved by orders through a conditional UPDATE,
    never through save(), so concurrent orders cannot oversell.
    """

    STATUS_ACTIVE = 'active'
    STATUS_SOLD = 'sold'
    STATUS_INACTIVE = 'inactive'
    STATUS_CHOICES = [
        (STATUS_ACTIVE, 'Active'),
        (STATUS_SOLD, 'Sold'),
        (STATUS_INACTIVE, 'Inactive'),
    ]

    UNIT_CHOICES = [
        ('kg', 'kg'),
        ('lb', 'lb'),
        ('units', 'units'),
        ('boxes', 'boxes'),
    ]

    CATEGORY_CHOICES = [
        ('vegetables', 'Vegetables'),
        ('fruits', 'Fruits'),
        ('grains', 'Grains'),
        ('herbs', 'Herbs'),
        ('dairy', 'Dairy'),
        ('other', 'Other'),
    ]

    farmer = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='products',
        help_text=_('Farmer selling this product')
    )

    name = models.CharField(_('name'), max_length=200)
    description = models.TextField(_('description'), blank=True, default='')

    price = models.DecimalField(
        _('price'),
        max_digits=10,
        decimal_places=2,
        help_text=_('Price per unit in USD')
    )

    quantity = models.PositiveIntegerField(
        _('quantity available'),
        default=0,
    )

    unit = models.CharField(_('unit'), max_length=10, choices=UNIT_CHOICES, default='kg')
    category = models.CharField(_('category'), max_length=20, choices=CATEGORY_CHOICES)

    image = models.ImageField(
        _('image'),
        upload_to=product_image_upload_path,
        blank=True,
        null=True,
        validators=[validate_image_file],
    )

    status = models.CharField(
        _('status'),
        max_length=10,
        choices=STATUS_CHOICES,
        default=STATUS_ACTIVE,
    )

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('product')
        verbose_name_plural = _('products')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['farmer'], name='market_prod_farmer_idx'),
            models.Index(fields=['status'], name='market_prod_status_idx'),
            models.Index(fields=['category'], name='market_prod_category_idx'),
        ]

    def __str__(self):
        return self.name

    def clean(self):
        """
        Ensures:
        - Farmer is a user with role='farmer'
        - Name is not empty
        - Price is greater than 0
        """
        super().clean()

        if self.farmer_id and self.farmer and not self.farmer.is_farmer():
            raise ValidationError({
                'farmer': _('Only users with role="farmer" can list products.')
            })

        if not self.name or not self.name.strip():
            raise ValidationError({'name': _('Product name cannot be empty.')})

        if self.price is not None and self.price <= 0:
            raise ValidationError({'price': _('Price must be greater than 0.')})

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)

    def is_available(self):
        return self.status == self.STATUS_ACTIVE and self.quantity > 0


class Order(models.Model):
    """
    One buyer's purchase of a quantity of one product.

    Fields:
    - buyer: Foreign key to User (must be buyer role)
    - product: Foreign key to Product (farmer is product.farmer)
    - quantity: Units ordered (>= 1)
    - unit_price: product.price snapshotted at creation
    - total_price: quantity * unit_price, never recalculated
    - status / payment_status: lifecycle state, see market.lifecycle
    - payment_reference: opaque reference returned by the payment gateway
    - idempotency_key: sent with every authorization so retries cannot double charge
    """

    STATUS_PENDING = 'pending'
    STATUS_CONFIRMED = 'confirmed'
    STATUS_SHIPPED = 'shipped'
    STATUS_DELIVERED = 'delivered'
    STATUS_CANCELLED = 'cancelled'
    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_CONFIRMED, 'Confirmed'),
        (STATUS_SHIPPED, 'Shipped'),
        (STATUS_DELIVERED, 'Delivered'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]
    TERMINAL_STATUSES = (STATUS_DELIVERED, STATUS_CANCELLED)

    PAYMENT_PENDING = 'pending'
    PAYMENT_COMPLETED = 'completed'
    PAYMENT_FAILED = 'failed'
    PAYMENT_REFUNDED = 'refunded'
    PAYMENT_STATUS_CHOICES = [
        (PAYMENT_PENDING, 'Pending'),
        (PAYMENT_COMPLETED, 'Completed'),
        (PAYMENT_FAILED, 'Failed'),
        (PAYMENT_REFUNDED, 'Refunded'),
    ]

    buyer = models.ForeignKey(
        User,
        on_delete=models.PROTECT,
        related_name='orders',
        help_text=_('Buyer who placed the order')
    )

    product = models.ForeignKey(
        Product,
        on_delete=models.PROTECT,
        related_name='orders',
        help_text=_('Product being purchased')
    )

    quantity = models.PositiveIntegerField(
        _('quantity'),
        validators=[MinValueValidator(1, message=_('Quantity must be at least 1.'))],
    )

    unit_price = models.DecimalField(_('unit price'), max_digits=10, decimal_places=2)
    total_price = models.DecimalField(_('total price'), max_digits=12, decimal_places=2)

    delivery_address = models.CharField(_('delivery address'), max_length=300)
    notes = models.TextField(_('notes'), blank=True, default='')

    status = models.CharField(
        _('status'),
        max_length=20,
        choices=STATUS_CHOICES,
        default=STATUS_PENDING,
    )

    payment_status = models.CharField(
        _('payment status'),
        max_length=20,
        choices=PAYMENT_STATUS_CHOICES,
        default=PAYMENT_PENDING,
    )

    payment_reference = models.CharField(
        _('payment reference'),
        max_length=255,
        blank=True,
        null=True,
    )

    idempotency_key = models.UUIDField(
        _('idempotency key'),
        default=uuid.uuid4,
        unique=True,
        editable=False,
    )

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('order')
        verbose_name_plural = _('orders')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['buyer'], name='market_order_buyer_idx'),
            models.Index(fields=['product'], name='market_order_product_idx'),
            models.Index(fields=['status'], name='market_order_status_idx'),
            models.Index(fields=['payment_status'], name='market_order_paystat_idx'),
        ]

    def __str__(self):
        return f"Order #{self.pk} - {self.quantity} x {self.product.name}"

    @property
    def farmer_id(self):
        return self.product.farmer_id

    def is_terminal(self):
        return self.status in self.TERMINAL_STATUSES

    @staticmethod
    def compute_total(quantity, unit_price):
        return (Decimal(quantity) * Decimal(unit_price)).quantize(CENTS)

    def clean(self):
        """
        Ensures:
        - Buyer has role='buyer'
        - Delivery address is not blank
        - total_price == quantity * unit_price
        - Status changes follow the lifecycle table
        """
        from .lifecycle import TRANSITIONS

        super().clean()

        if self.buyer_id and self.buyer and not self.buyer.is_buyer():
            raise ValidationError({'buyer': _('Only users with role="buyer" can place orders.')})

        if not self.delivery_address or not self.delivery_address.strip():
            raise ValidationError({'delivery_address': _('Delivery address cannot be empty.')})

        if self.quantity is not None and self.unit_price is not None and self.total_price is not None:
            if self.compute_total(self.quantity, self.unit_price) != Decimal(self.total_price).quantize(CENTS):
                raise ValidationError({
                    'total_price': _('Total price must equal quantity multiplied by unit price.')
                })

        if self.pk is not None:
            try:
                old_status = Order.objects.values_list('status', flat=True).get(pk=self.pk)
            except Order.DoesNotExist:
                old_status = None

            if old_status is not None and old_status != self.status:
                if old_status in self.TERMINAL_STATUSES:
                    raise ValidationError({
                        'status': _('Cannot modify a %(status)s order.') % {'status': old_status}
                    })
                if (old_status, self.status) not in TRANSITIONS:
                    raise ValidationError({
                        'status': _('Invalid status transition from %(old)s to %(new)s.') % {
                            'old': old_status,
                            'new': self.status,
                        }
                    })

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)


class PaymentAttempt(models.Model):
    """
    Outbox row for one payment submission.

    Written before the gateway is called and updated after, so that an
    authorization that never reached the order can be found and applied by
    reconciliation.
    """

    STATUS_INITIATED = 'initiated'
    STATUS_AUTHORIZED = 'authorized'
    STATUS_DECLINED = 'declined'
    STATUS_ERROR = 'error'
    STATUS_NEEDS_REVIEW = 'needs_review'
    STATUS_CHOICES = [
        (STATUS_INITIATED, 'Initiated'),
        (STATUS_AUTHORIZED, 'Authorized'),
        (STATUS_DECLINED, 'Declined'),
        (STATUS_ERROR, 'Error'),
        (STATUS_NEEDS_REVIEW, 'Needs review'),
    ]

    order = models.ForeignKey(Order, on_delete=models.PROTECT, related_name='payment_attempts')
    idempotency_key = models.UUIDField(_('idempotency key'))
    amount = models.DecimalField(_('amount'), max_digits=12, decimal_places=2)
    status = models.CharField(
        _('status'),
        max_length=20,
        choices=STATUS_CHOICES,
        default=STATUS_INITIATED,
    )
    gateway_reference = models.CharField(max_length=255, blank=True, default='')
    error_reason = models.CharField(max_length=500, blank=True, default='')
    applied = models.BooleanField(
        default=False,
        help_text=_('Whether the authorization has been written to the order')
    )

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    class Meta:
        verbose_name = _('payment attempt')
        verbose_name_plural = _('payment attempts')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['status', 'applied'], name='market_pay_status_idx'),
        ]

    def __str__(self):
        return f"Payment attempt {self.pk} for order {self.order_id} ({self.status})"


class Message(models.Model):
    """
    Append-only message between two users. Only `read` ever changes, false to true.
    """

    TYPE_TEXT = 'text'
    TYPE_VOICE = 'voice'
    TYPE_IMAGE = 'image'
    TYPE_CHOICES = [
        (TYPE_TEXT, 'Text'),
        (TYPE_VOICE, 'Voice'),
        (TYPE_IMAGE, 'Image'),
    ]

    sender = models.ForeignKey(User, on_delete=models.CASCADE, related_name='sent_messages')
    receiver = models.ForeignKey(User, on_delete=models.CASCADE, related_name='received_messages')
    message_type = models.CharField(
        _('message type'),
        max_length=10,
        choices=TYPE_CHOICES,
        default=TYPE_TEXT,
    )
    content = models.TextField(_('content'), blank=True, default='')
    attachment = models.FileField(
        _('attachment'),
        upload_to=message_attachment_upload_path,
        blank=True,
        null=True,
        help_text=_('Voice recording or image for non-text messages')
    )
    product = models.ForeignKey(
        Product,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name='messages',
        help_text=_('Product the conversation is about')
    )
    read = models.BooleanField(_('read'), default=False)
    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    class Meta:
        verbose_name = _('message')
        verbose_name_plural = _('messages')
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['sender', 'receiver'], name='market_msg_pair_idx'),
            models.Index(fields=['receiver', 'read'], name='market_msg_unread_idx'),
            models.Index(fields=['created_at'], name='market_msg_created_idx'),
        ]

    def __str__(self):
        return f"{self.message_type} message {self.sender_id} -> {self.receiver_id}"

    def clean(self):
        super().clean()

        if self.sender_id and self.sender_id == self.receiver_id:
            raise ValidationError({'receiver': _('You cannot send a message to yourself.')})

        if self.message_type == self.TYPE_TEXT:
            if not self.content or not self.content.strip():
                raise ValidationError({'content': _('Message cannot be empty.')})
        elif not self.attachment:
            raise ValidationError({
                'attachment': _('A file is required for %(type)s messages.') % {'type': self.message_type}
            })
        elif self.message_type == self.TYPE_VOICE:
            validate_voice_file(self.attachment)
        else:
            validate_image_file(self.attachment)

        if self.pk is not None:
            was_read = Message.objects.filter(pk=self.pk).values_list('read', flat=True).first()
            if was_read and not self.read:
                raise ValidationError({'read': _('A read message cannot be marked unread.')})

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)


class Notification(models.Model):
    """
    Notification addressed to one user.

    `data` always holds the fields of the payload class registered for `type`
    in market.notifications; use `payload` to get it back as that class.
    """

    TYPE_NEW_ORDER = 'new_order'
    TYPE_ORDER_PLACED = 'order_placed'
    TYPE_ORDER_STATUS_UPDATE = 'order_status_update'
    TYPE_NEW_MESSAGE = 'new_message'
    TYPE_CHOICES = [
        (TYPE_NEW_ORDER, 'New order'),
        (TYPE_ORDER_PLACED, 'Order placed'),
        (TYPE_ORDER_STATUS_UPDATE, 'Order status update'),
        (TYPE_NEW_MESSAGE, 'New message'),
    ]

    user = models.ForeignKey(User, on_delete=models.CASCADE, related_name='notifications')
    type = models.CharField(_('type'), max_length=30, choices=TYPE_CHOICES)
    title = models.CharField(_('title'), max_length=200)
    message = models.TextField(_('message'))
    data = models.JSONField(_('data'), default=dict, blank=True)
    read = models.BooleanField(_('read'), default=False)
    created_at = models.DateTimeField(_('created at'), auto_now_add=True)

    class Meta:
        verbose_name = _('notification')
        verbose_name_plural = _('notifications')
        ordering = ['-created_at', '-id']
        indexes = [
            models.Index(fields=['user', 'read'], name='market_notif_unread_idx'),
        ]

    def __str__(self):
        return f"{self.type} for {self.user_id}: {self.title}"

    @property
    def payload(self):
        from .notifications import payload_from_data
        return payload_from_data(self.type, self.data)
