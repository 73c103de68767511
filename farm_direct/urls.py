"""
URL configuration for the farm_direct project.
"""
from django.conf import settings
from django.conf.urls.static import static
from django.contrib import admin
from django.urls import path
from rest_framework_simplejwt.views import TokenBlacklistView, TokenRefreshView

from market.views import (
    ConversationListView,
    DashboardSummaryView,
    LoginView,
    MessageCreateView,
    MyProductsView,
    NotificationListView,
    NotificationReadAllView,
    NotificationReadView,
    OrderDetailView,
    OrderListCreateView,
    OrderPaymentView,
    OrderStatusUpdateView,
    ProductDetailView,
    ProductListCreateView,
    ThreadReadView,
    ThreadView,
    UserProfileView,
    UserRegistrationView,
)


urlpatterns = [
    path('admin/', admin.site.urls),

    # Authentication endpoints
    path('api/auth/register/', UserRegistrationView.as_view(), name='user_register'),
    path('api/auth/login/', LoginView.as_view(), name='user_login'),
    path('api/auth/logout/', TokenBlacklistView.as_view(), name='user_logout'),
    path('api/auth/profile/', UserProfileView.as_view(), name='user_profile'),
    path('api/token/refresh/', TokenRefreshView.as_view(), name='token_refresh'),

    # Product endpoints
    path('api/products/', ProductListCreateView.as_view(), name='product_list'),
    path('api/products/mine/', MyProductsView.as_view(), name='product_mine'),
    path('api/products/<int:pk>/', ProductDetailView.as_view(), name='product_detail'),

    # Order endpoints
    path('api/orders/', OrderListCreateView.as_view(), name='order_list'),
    path('api/orders/<int:pk>/', OrderDetailView.as_view(), name='order_detail'),
    path('api/orders/<int:pk>/status/', OrderStatusUpdateView.as_view(), name='order_status_update'),
    path('api/orders/<int:pk>/payment/', OrderPaymentView.as_view(), name='order_payment'),

    # Messaging endpoints
    path('api/messages/', MessageCreateView.as_view(), name='message_create'),
    path('api/messages/conversations/', ConversationListView.as_view(), name='conversation_list'),
    path('api/messages/threads/<int:user_id>/', ThreadView.as_view(), name='message_thread'),
    path('api/messages/threads/<int:user_id>/read/', ThreadReadView.as_view(), name='message_thread_read'),

    # Notification endpoints
    path('api/notifications/', NotificationListView.as_view(), name='notification_list'),
    path('api/notifications/read-all/', NotificationReadAllView.as_view(), name='notification_read_all'),
    path('api/notifications/<int:pk>/read/', NotificationReadView.as_view(), name='notification_read'),

    path('api/dashboard/summary/', DashboardSummaryView.as_view(), name='dashboard_summary'),
]

if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
