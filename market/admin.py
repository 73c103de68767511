"""
Django admin configuration for the marketplace models.

Payment statuses 'failed' and 'refunded' are only ever set here, by staff.
"""

import logging

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.utils.translation import gettext_lazy as _

from .models import Message, Notification, Order, PaymentAttempt, Product, User

logger = logging.getLogger(__name__)


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """Adds the marketplace role and profile fields to Django's UserAdmin."""

    list_display = ['email', 'full_name', 'role', 'is_staff', 'is_active', 'created_at']
    list_filter = ['role', 'is_staff', 'is_superuser', 'is_active', 'created_at']
    search_fields = ['email', 'username', 'full_name', 'phone_number']
    ordering = ['-created_at']

    fieldsets = (
        (None, {
            'fields': ('username', 'password')
        }),
        (_('Profile'), {
            'fields': ('email', 'full_name', 'role', 'phone_number', 'address', 'avatar')
        }),
        (_('Permissions'), {
            'fields': (
                'is_active',
                'is_staff',
                'is_superuser',
                'groups',
                'user_permissions',
            ),
            'classes': ('collapse',),
        }),
        (_('Important Dates'), {
            'fields': ('last_login', 'date_joined', 'created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )

    add_fieldsets = (
        (None, {
            'classes': ('wide',),
            'fields': ('username', 'email', 'password1', 'password2', 'role', 'full_name'),
        }),
    )

    readonly_fields = ['created_at', 'updated_at', 'last_login', 'date_joined']
    date_hierarchy = 'created_at'
    list_per_page = 25


@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['name', 'farmer', 'price', 'quantity', 'unit', 'category', 'status', 'created_at']
    list_filter = ['status', 'category', 'unit', 'created_at']
    search_fields = ['name', 'description', 'farmer__email', 'farmer__full_name']
    readonly_fields = ['created_at', 'updated_at']
    ordering = ['-created_at']
    list_per_page = 25


class PaymentAttemptInline(admin.TabularInline):
    model = PaymentAttempt
    extra = 0
    can_delete = False
    fields = ['status', 'amount', 'gateway_reference', 'error_reason', 'applied', 'created_at']
    readonly_fields = fields


@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    """
    Orders are never deleted. Status changes still go through the model's
    transition check; payment status can be set to failed or refunded.
    """

    list_display = [
        'id',
        'buyer',
        'product',
        'quantity',
        'total_price',
        'status',
        'payment_status',
        'created_at',
    ]
    list_filter = ['status', 'payment_status', 'created_at']
    search_fields = ['buyer__email', 'product__name', 'product__farmer__email', 'payment_reference']
    readonly_fields = [
        'buyer',
        'product',
        'quantity',
        'unit_price',
        'total_price',
        'payment_reference',
        'idempotency_key',
        'created_at',
        'updated_at',
    ]
    ordering = ['-created_at']
    date_hierarchy = 'created_at'
    list_per_page = 25
    inlines = [PaymentAttemptInline]
    actions = ['mark_payment_refunded', 'mark_payment_failed']

    fieldsets = (
        (None, {
            'fields': ('buyer', 'product', 'quantity', 'unit_price', 'total_price')
        }),
        (_('Delivery'), {
            'fields': ('delivery_address', 'notes')
        }),
        (_('Status'), {
            'fields': ('status', 'payment_status', 'payment_reference', 'idempotency_key')
        }),
        (_('Timestamps'), {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )

    def has_delete_permission(self, request, obj=None):
        return False

    def _set_payment_status(self, request, queryset, payment_status):
        updated = queryset.update(payment_status=payment_status)
        logger.info(
            f"Payment status set by staff. Status: {payment_status}, Orders: {updated}, "
            f"Staff ID: {request.user.id}"
        )
        self.message_user(request, f'{updated} order(s) marked {payment_status}.')

    @admin.action(description=_('Mark payment as refunded'))
    def mark_payment_refunded(self, request, queryset):
        self._set_payment_status(request, queryset, Order.PAYMENT_REFUNDED)

    @admin.action(description=_('Mark payment as failed'))
    def mark_payment_failed(self, request, queryset):
        self._set_payment_status(request, queryset, Order.PAYMENT_FAILED)


@admin.register(PaymentAttempt)
class PaymentAttemptAdmin(admin.ModelAdmin):
    list_display = ['id', 'order', 'amount', 'status', 'applied', 'gateway_reference', 'created_at']
    list_filter = ['status', 'applied', 'created_at']
    search_fields = ['gateway_reference', 'order__id']
    readonly_fields = ['order', 'idempotency_key', 'amount', 'gateway_reference', 'applied',
                       'created_at', 'updated_at']
    ordering = ['-created_at']
    list_per_page = 50


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    list_display = ['id', 'sender', 'receiver', 'message_type', 'product', 'read', 'created_at']
    list_filter = ['message_type', 'read', 'created_at']
    search_fields = ['sender__email', 'receiver__email', 'content']
    readonly_fields = ['created_at']
    ordering = ['-created_at']
    list_per_page = 50


@admin.register(Notification)
class NotificationAdmin(admin.ModelAdmin):
    list_display = ['id', 'user', 'type', 'title', 'read', 'created_at']
    list_filter = ['type', 'read', 'created_at']
    search_fields = ['user__email', 'title', 'message']
    readonly_fields = ['created_at']
    ordering = ['-created_at']
    list_per_page = 50
