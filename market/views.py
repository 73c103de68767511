"""
API views for the Farm Direct marketplace.

Business rules live in market.ledger, market.lifecycle, market.conversations
and market.notifications. Views authenticate, parse input, call the core and
translate MarketplaceError into the HTTP status it carries.
"""

import logging
from decimal import Decimal, InvalidOperation

from django.contrib.auth import authenticate, get_user_model
from django.db import IntegrityError
from django.db.models import Count, ProtectedError, Q, Sum
from rest_framework import generics, status
from rest_framework.generics import ListAPIView
from rest_framework.pagination import PageNumberPagination
from rest_framework.permissions import AllowAny, IsAuthenticated
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView
from rest_framework_simplejwt.tokens import RefreshToken

from .conversations import conversations_for, mark_thread_read, send_message, thread_between
from .exceptions import MarketplaceError
from .ledger import create_order
from .lifecycle import advance_status, submit_payment
from .models import Message, Notification, Order, Product
from .notifications import mark_all_read, mark_read, unread_count
from .permissions import IsBuyer, IsFarmer, IsOrderParticipant, IsProductOwnerOrReadOnly
from .serializers import (
    ConversationSerializer,
    LoginSerializer,
    MessageCreateSerializer,
    MessageSerializer,
    NotificationSerializer,
    OrderCreateSerializer,
    OrderSerializer,
    OrderStatusUpdateSerializer,
    PaymentSerializer,
    ProductSerializer,
    ProductWriteSerializer,
    UserProfileSerializer,
    UserProfileUpdateSerializer,
    UserRegistrationSerializer,
)

User = get_user_model()
logger = logging.getLogger(__name__)


def get_client_ip(request):
    """
    Get client IP address from request.
    Handles proxy headers for accurate IP detection.
    """
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        return x_forwarded_for.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR')


def marketplace_error_response(request, exc, action):
    """Log a rejected core operation and answer with the error's status."""
    logger.warning(
        f"{action} rejected. Code: {exc.code}, Detail: {exc.message}, "
        f"User ID: {request.user.id}, IP: {get_client_ip(request)}"
    )
    return Response(exc.as_response_data(), status=exc.status_code)


class MarketplacePagination(PageNumberPagination):
    page_size = 20
    page_size_query_param = 'page_size'
    max_page_size = 100


# ============================================================================
# Authentication and Profile
# ============================================================================

class UserRegistrationView(generics.CreateAPIView):
    """
    POST /api/auth/register/

    Creates a farmer or buyer account. Returns the new user (no password).
    """
    serializer_class = UserRegistrationSerializer
    permission_classes = [AllowAny]

    def create(self, request, *args, **kwargs):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)

        try:
            user = serializer.save()
        except IntegrityError:
            # Two registrations with the same email raced past validate_email
            return Response(
                {'email': ['A user with that email already exists.']},
                status=status.HTTP_400_BAD_REQUEST
            )

        logger.info(
            f"User registered. User ID: {user.id}, Role: {user.role}, IP: {get_client_ip(request)}"
        )
        return Response(serializer.data, status=status.HTTP_201_CREATED)


class LoginView(APIView):
    """
    POST /api/auth/login/
    Request body: {"email": "farmer@example.com", "password": "..."}

    Success response (200):
    {
        "access": "<jwt_access_token>",
        "refresh": "<jwt_refresh_token>",
        "user": {"id": 1, "email": "...", "role": "farmer", "full_name": "..."}
    }

    Every failure answers 401 {"detail": "Invalid credentials"}.
    """
    permission_classes = [AllowAny]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = 'login'

    def post(self, request, *args, **kwargs):
        serializer = LoginSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        email = serializer.validated_data['email'].lower().strip()
        password = serializer.validated_data['password']
        client_ip = get_client_ip(request)

        user = authenticate(request, email=email, password=password)
        if user is None:
            logger.warning(f"Failed login attempt. Email: {email}, IP: {client_ip}")
            return Response(
                {'detail': 'Invalid credentials'},
                status=status.HTTP_401_UNAUTHORIZED
            )

        refresh = RefreshToken.for_user(user)
        logger.info(f"Successful login. Email: {email}, IP: {client_ip}")

        return Response({
            'access': str(refresh.access_token),
            'refresh': str(refresh),
            'user': {
                'id': user.id,
                'email': user.email,
                'role': user.role,
                'full_name': user.full_name,
            }
        }, status=status.HTTP_200_OK)


class UserProfileView(APIView):
    """
    GET   /api/auth/profile/  own profile
    PATCH /api/auth/profile/  update full_name, phone_number, address, avatar
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, *args, **kwargs):
        serializer = UserProfileSerializer(request.user, context={'request': request})
        return Response(serializer.data, status=status.HTTP_200_OK)

    def patch(self, request, *args, **kwargs):
        serializer = UserProfileUpdateSerializer(request.user, data=request.data, partial=True)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        user = serializer.save()
        logger.info(
            f"Profile updated. User ID: {user.id}, Fields: {sorted(serializer.validated_data.keys())}"
        )
        return Response(
            UserProfileSerializer(user, context={'request': request}).data,
            status=status.HTTP_200_OK
        )


# ============================================================================
# Products
# ============================================================================

class ProductListCreateView(APIView):
    """
    GET  /api/products/  public browse of active products
    POST /api/products/  farmer lists a new product

    Query Parameters (GET):
    - search: matches name, description or category (case-insensitive)
    - category: one of the product categories
    - min_price / max_price: price range (decimal)
    - farmer: only this farmer's products
    - page / page_size: pagination
    """

    def get_permissions(self):
        if self.request.method == 'GET':
            return [AllowAny()]
        return [IsAuthenticated(), IsFarmer()]

    def get(self, request, *args, **kwargs):
        queryset = Product.objects.select_related('farmer').filter(status=Product.STATUS_ACTIVE)

        search = request.query_params.get('search', '').strip()
        if search:
            queryset = queryset.filter(
                Q(name__icontains=search)
                | Q(description__icontains=search)
                | Q(category__icontains=search)
            )

        category = request.query_params.get('category')
        if category:
            if category not in dict(Product.CATEGORY_CHOICES):
                return Response(
                    {'detail': f'Invalid category "{category}".'},
                    status=status.HTTP_400_BAD_REQUEST
                )
            queryset = queryset.filter(category=category)

        prices = {}
        for param in ('min_price', 'max_price'):
            value = request.query_params.get(param)
            if value is None:
                continue
            try:
                prices[param] = Decimal(value)
            except InvalidOperation:
                return Response(
                    {'detail': f'Invalid value for "{param}". Must be a valid number.'},
                    status=status.HTTP_400_BAD_REQUEST
                )
            if prices[param] < 0:
                return Response(
                    {'detail': f'"{param}" cannot be negative.'},
                    status=status.HTTP_400_BAD_REQUEST
                )

        if 'min_price' in prices and 'max_price' in prices and prices['min_price'] > prices['max_price']:
            return Response(
                {'detail': 'Minimum price cannot be greater than maximum price.'},
                status=status.HTTP_400_BAD_REQUEST
            )
        if 'min_price' in prices:
            queryset = queryset.filter(price__gte=prices['min_price'])
        if 'max_price' in prices:
            queryset = queryset.filter(price__lte=prices['max_price'])

        farmer = request.query_params.get('farmer')
        if farmer:
            if not farmer.isdigit():
                return Response(
                    {'detail': 'Invalid value for "farmer".'},
                    status=status.HTTP_400_BAD_REQUEST
                )
            queryset = queryset.filter(farmer_id=int(farmer))

        paginator = MarketplacePagination()
        page = paginator.paginate_queryset(queryset.order_by('-created_at', '-id'), request, view=self)
        serializer = ProductSerializer(page, many=True, context={'request': request})
        return paginator.get_paginated_response(serializer.data)

    def post(self, request, *args, **kwargs):
        serializer = ProductWriteSerializer(data=request.data, context={'request': request})
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        product = serializer.save()
        logger.info(
            f"Product created. Product ID: {product.pk}, Farmer ID: {request.user.id}, "
            f"Quantity: {product.quantity}, Price: {product.price}"
        )
        return Response(
            ProductSerializer(product, context={'request': request}).data,
            status=status.HTTP_201_CREATED
        )


class ProductDetailView(APIView):
    """
    GET    /api/products/<id>/  anyone; inactive products only for their farmer
    PATCH  /api/products/<id>/  owning farmer
    DELETE /api/products/<id>/  owning farmer; products with orders are deactivated instead
    """

    def get_permissions(self):
        if self.request.method == 'GET':
            return [AllowAny()]
        return [IsAuthenticated(), IsProductOwnerOrReadOnly()]

    def get_object(self, request, pk):
        try:
            product = Product.objects.select_related('farmer').get(pk=pk)
        except Product.DoesNotExist:
            return None

        if product.status == Product.STATUS_INACTIVE and product.farmer_id != request.user.id:
            return None
        return product

    def not_found(self, pk):
        return Response(
            {'detail': f'Product with ID {pk} does not exist.'},
            status=status.HTTP_404_NOT_FOUND
        )

    def get(self, request, pk, *args, **kwargs):
        product = self.get_object(request, pk)
        if product is None:
            return self.not_found(pk)
        return Response(ProductSerializer(product, context={'request': request}).data)

    def patch(self, request, pk, *args, **kwargs):
        product = self.get_object(request, pk)
        if product is None:
            return self.not_found(pk)
        self.check_object_permissions(request, product)

        serializer = ProductWriteSerializer(
            product, data=request.data, partial=True, context={'request': request}
        )
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        product = serializer.save()
        logger.info(
            f"Product updated. Product ID: {product.pk}, Farmer ID: {request.user.id}, "
            f"Fields: {sorted(serializer.validated_data.keys())}"
        )
        return Response(ProductSerializer(product, context={'request': request}).data)

    def delete(self, request, pk, *args, **kwargs):
        product = self.get_object(request, pk)
        if product is None:
            return self.not_found(pk)
        self.check_object_permissions(request, product)

        try:
            product.delete()
        except ProtectedError:
            # Orders keep a reference to the product forever
            product.status = Product.STATUS_INACTIVE
            product.save(update_fields=['status', 'updated_at'])
            logger.info(f"Product deactivated instead of deleted. Product ID: {pk}")
            return Response(
                {'detail': 'Product has orders and was deactivated instead of deleted.'},
                status=status.HTTP_200_OK
            )

        logger.info(f"Product deleted. Product ID: {pk}, Farmer ID: {request.user.id}")
        return Response(status=status.HTTP_204_NO_CONTENT)


class MyProductsView(ListAPIView):
    """
    GET /api/products/mine/

    The farmer's own products in every status, newest first.
    """
    permission_classes = [IsAuthenticated, IsFarmer]
    pagination_class = MarketplacePagination
    serializer_class = ProductSerializer

    def get_queryset(self):
        queryset = Product.objects.select_related('farmer').filter(farmer=self.request.user)

        product_status = self.request.query_params.get('status')
        if product_status in dict(Product.STATUS_CHOICES):
            queryset = queryset.filter(status=product_status)

        return queryset.order_by('-created_at', '-id')


# ============================================================================
# Orders
# ============================================================================

class OrderListCreateView(APIView):
    """
    GET  /api/orders/  orders the user placed (buyer) or received (farmer)
    POST /api/orders/  place an order

    POST request body:
    {"product_id": 1, "quantity": 3, "delivery_address": "12 Mill Lane", "notes": ""}

    Error responses (POST):
    - 400: invalid quantity, blank address, product not on sale
    - 403: not a buyer, or ordering own product
    - 409: not enough stock
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, *args, **kwargs):
        user = request.user
        queryset = Order.objects.select_related('product', 'product__farmer', 'buyer')

        if user.is_farmer():
            queryset = queryset.filter(product__farmer=user)
        else:
            queryset = queryset.filter(buyer=user)

        order_status = request.query_params.get('status')
        if order_status:
            if order_status not in dict(Order.STATUS_CHOICES):
                return Response(
                    {'detail': f'Invalid status "{order_status}".'},
                    status=status.HTTP_400_BAD_REQUEST
                )
            queryset = queryset.filter(status=order_status)

        paginator = MarketplacePagination()
        page = paginator.paginate_queryset(queryset.order_by('-created_at', '-id'), request, view=self)
        serializer = OrderSerializer(page, many=True, context={'request': request})
        return paginator.get_paginated_response(serializer.data)

    def post(self, request, *args, **kwargs):
        serializer = OrderCreateSerializer(data=request.data, context={'request': request})
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        try:
            order = create_order(
                actor=request.user,
                product=data['product'],
                quantity=data['quantity'],
                delivery_address=data['delivery_address'],
                notes=data['notes'],
            )
        except MarketplaceError as e:
            return marketplace_error_response(request, e, 'Order creation')

        return Response(
            OrderSerializer(order, context={'request': request}).data,
            status=status.HTTP_201_CREATED
        )


class OrderDetailView(APIView):
    """GET /api/orders/<id>/ for the order's buyer or farmer."""
    permission_classes = [IsAuthenticated, IsOrderParticipant]

    def get(self, request, pk, *args, **kwargs):
        try:
            order = Order.objects.select_related('product', 'product__farmer', 'buyer').get(pk=pk)
        except Order.DoesNotExist:
            return Response(
                {'detail': f'Order with ID {pk} does not exist.'},
                status=status.HTTP_404_NOT_FOUND
            )

        self.check_object_permissions(request, order)
        return Response(OrderSerializer(order, context={'request': request}).data)


class OrderStatusUpdateView(APIView):
    """
    PUT /api/orders/<id>/status/
    Request body: {"status": "shipped"}

    Error responses:
    - 400: transition not in the lifecycle table
    - 403: user is not the party allowed to make this transition
    - 404: order not found
    - 409: order already delivered or cancelled
    """
    permission_classes = [IsAuthenticated]

    def put(self, request, pk, *args, **kwargs):
        serializer = OrderStatusUpdateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            order = Order.objects.select_related('product').get(pk=pk)
        except Order.DoesNotExist:
            logger.warning(
                f"Status update attempted for non-existent order. Order ID: {pk}, "
                f"User ID: {request.user.id}, IP: {get_client_ip(request)}"
            )
            return Response(
                {'detail': f'Order with ID {pk} does not exist.'},
                status=status.HTTP_404_NOT_FOUND
            )

        try:
            order = advance_status(order, request.user, serializer.validated_data['status'])
        except MarketplaceError as e:
            return marketplace_error_response(request, e, 'Order status update')

        return Response(OrderSerializer(order, context={'request': request}).data)


class OrderPaymentView(APIView):
    """
    POST /api/orders/<id>/payment/
    Request body: {"payment_method_token": "tok_visa"}

    Success response (200): the order, now confirmed with payment_status=completed.

    Error responses:
    - 402: card declined
    - 403: not a buyer, or not this order's buyer
    - 409: already paid or order closed
    - 503: payment service unavailable
    """
    permission_classes = [IsAuthenticated, IsBuyer]
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = 'payment'

    def post(self, request, pk, *args, **kwargs):
        serializer = PaymentSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        try:
            order = Order.objects.get(pk=pk)
        except Order.DoesNotExist:
            return Response(
                {'detail': f'Order with ID {pk} does not exist.'},
                status=status.HTTP_404_NOT_FOUND
            )

        try:
            order = submit_payment(order, request.user, serializer.validated_data['payment_method_token'])
        except MarketplaceError as e:
            return marketplace_error_response(request, e, 'Payment')
        except Exception as e:
            logger.error(
                f"Unexpected error during payment. Order ID: {pk}, User ID: {request.user.id}, "
                f"Error: {str(e)}"
            )
            return Response(
                {'detail': 'Payment could not be completed. It will be reconciled shortly.'},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR
            )

        return Response(OrderSerializer(order, context={'request': request}).data)


# ============================================================================
# Messages
# ============================================================================

class MessageCreateView(APIView):
    """
    POST /api/messages/

    JSON for text messages, multipart for voice and image messages:
    receiver_id, message_type, content, attachment, product_id
    """
    permission_classes = [IsAuthenticated]

    def post(self, request, *args, **kwargs):
        serializer = MessageCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        data = serializer.validated_data
        try:
            message = send_message(
                sender=request.user,
                receiver=data['receiver'],
                message_type=data['message_type'],
                content=data['content'],
                attachment=data['attachment'],
                product=data['product'],
            )
        except MarketplaceError as e:
            return marketplace_error_response(request, e, 'Message')

        return Response(
            MessageSerializer(message, context={'request': request}).data,
            status=status.HTTP_201_CREATED
        )


class ConversationListView(APIView):
    """
    GET /api/messages/conversations/?search=<name or email>

    One entry per counterparty, most recent first.
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, *args, **kwargs):
        conversations = conversations_for(request.user, search=request.query_params.get('search'))
        serializer = ConversationSerializer(conversations, many=True, context={'request': request})
        return Response(serializer.data)


class ThreadView(APIView):
    """
    GET /api/messages/threads/<user_id>/

    The whole thread with one user, oldest first. Reading it marks the
    incoming messages read.
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, user_id, *args, **kwargs):
        try:
            other = User.objects.get(pk=user_id)
        except User.DoesNotExist:
            return Response(
                {'detail': f'User with ID {user_id} does not exist.'},
                status=status.HTTP_404_NOT_FOUND
            )

        messages = thread_between(request.user, other)
        return Response(MessageSerializer(messages, many=True, context={'request': request}).data)


class ThreadReadView(APIView):
    """POST /api/messages/threads/<user_id>/read/"""
    permission_classes = [IsAuthenticated]

    def post(self, request, user_id, *args, **kwargs):
        updated = mark_thread_read(request.user, user_id)
        return Response({'updated': updated}, status=status.HTTP_200_OK)


# ============================================================================
# Notifications
# ============================================================================

class NotificationListView(ListAPIView):
    """
    GET /api/notifications/?unread=true
    """
    permission_classes = [IsAuthenticated]
    pagination_class = MarketplacePagination
    serializer_class = NotificationSerializer

    def get_queryset(self):
        queryset = Notification.objects.filter(user=self.request.user)
        if self.request.query_params.get('unread', '').lower() == 'true':
            queryset = queryset.filter(read=False)
        return queryset.order_by('-created_at', '-id')


class NotificationReadView(APIView):
    """POST /api/notifications/<id>/read/"""
    permission_classes = [IsAuthenticated]

    def post(self, request, pk, *args, **kwargs):
        try:
            notification = mark_read(request.user, pk)
        except Notification.DoesNotExist:
            return Response(
                {'detail': f'Notification with ID {pk} does not exist.'},
                status=status.HTTP_404_NOT_FOUND
            )
        except MarketplaceError as e:
            return marketplace_error_response(request, e, 'Notification update')

        return Response(NotificationSerializer(notification).data)


class NotificationReadAllView(APIView):
    """POST /api/notifications/read-all/"""
    permission_classes = [IsAuthenticated]

    def post(self, request, *args, **kwargs):
        return Response({'updated': mark_all_read(request.user)}, status=status.HTTP_200_OK)


# ============================================================================
# Dashboard
# ============================================================================

class DashboardSummaryView(APIView):
    """
    GET /api/dashboard/summary/

    Counters for the dashboard header and stat cards. Farmers also get
    product stock figures and revenue from paid orders; buyers get what they
    have spent.
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, *args, **kwargs):
        user = request.user

        summary = {
            'unread_messages': Message.objects.filter(receiver=user, read=False).count(),
            'unread_notifications': unread_count(user),
        }

        if user.is_farmer():
            orders = Order.objects.filter(product__farmer=user)
            products = Product.objects.filter(farmer=user)
            summary['active_products'] = products.filter(status=Product.STATUS_ACTIVE).count()
            summary['total_products'] = products.count()
            summary['total_revenue'] = self._paid_total(orders)
        else:
            orders = Order.objects.filter(buyer=user)
            summary['total_spent'] = self._paid_total(orders)

        by_status = dict(orders.order_by().values_list('status').annotate(count=Count('id')))
        summary['orders'] = {
            value: by_status.get(value, 0) for value, _ in Order.STATUS_CHOICES
        }
        summary['orders']['total'] = sum(by_status.values())

        return Response(summary, status=status.HTTP_200_OK)

    @staticmethod
    def _paid_total(orders):
        total = orders.filter(
            payment_status=Order.PAYMENT_COMPLETED
        ).exclude(
            status=Order.STATUS_CANCELLED
        ).aggregate(total=Sum('total_price'))['total']
        return str(total or Decimal('0.00'))
