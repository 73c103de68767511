"""
Custom permission classes for the Farm Direct marketplace.

Role checks answer 403 with a message naming the role that is required.
Ownership of orders and transitions is enforced again in market.lifecycle.
"""

from rest_framework import permissions


class IsFarmer(permissions.BasePermission):
    """
    Allows only users with role='farmer'.

    Usage:
        class ProductListView(APIView):
            permission_classes = [IsAuthenticated, IsFarmer]
    """

    message = 'Only farmers can perform this action.'

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        return request.user.is_farmer()


class IsBuyer(permissions.BasePermission):
    message = 'Only buyers can perform this action.'

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False
        return request.user.is_buyer()


class IsProductOwnerOrReadOnly(permissions.BasePermission):
    """
    Anyone may read a product; only its farmer may change or remove it.
    """

    message = 'You can only modify your own products.'

    def has_object_permission(self, request, view, obj):
        if request.method in permissions.SAFE_METHODS:
            return True
        return bool(request.user and request.user.is_authenticated and obj.farmer_id == request.user.id)


class IsOrderParticipant(permissions.BasePermission):
    """
    Allows the buyer who placed an order and the farmer who sells the product.
    """

    message = 'You do not have permission to view this order.'

    def has_object_permission(self, request, view, obj):
        user = request.user
        if not user or not user.is_authenticated:
            return False
        return user.id in (obj.buyer_id, obj.product.farmer_id)
