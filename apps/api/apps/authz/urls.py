"""
Authz URLs - registration, current user, roles and admins.
"""
from django.urls import path, include
from rest_framework.routers import DefaultRouter

from .views import RegisterView, CurrentUserView, UserRoleView, AdminViewSet

router = DefaultRouter()
router.register(r'admins', AdminViewSet, basename='admin')

urlpatterns = [
    path('auth/register/', RegisterView.as_view(), name='auth-register'),
    path('auth/me/', CurrentUserView.as_view(), name='auth-me'),
    path('users/<uuid:user_id>/role/', UserRoleView.as_view(), name='user-role'),
    path('', include(router.urls)),
]
