# accounts/urls.py
"""
URL configuration for users, auth and settings.

Endpoints:
- /auth/me/ - Current user
- /users/ - User management
- /settings/ - Key/value settings
"""

from django.urls import path

from .views import (
    ProfileView,
    UserListCreateView,
    UserDetailView,
    UserSetPasswordView,
    SettingListView,
    SettingDetailView,
)


urlpatterns = [
    path("auth/me/", ProfileView.as_view(), name="auth-me"),
    path("users/", UserListCreateView.as_view(), name="user-list"),
    path("users/<int:pk>/", UserDetailView.as_view(), name="user-detail"),
    path("users/<int:pk>/set-password/", UserSetPasswordView.as_view(), name="user-set-password"),
    path("settings/", SettingListView.as_view(), name="setting-list"),
    path("settings/<str:key>/", SettingDetailView.as_view(), name="setting-detail"),
]
