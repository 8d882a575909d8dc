from django.shortcuts import get_object_or_404
from rest_framework import permissions, status
from rest_framework.response import Response
from rest_framework.views import APIView
from rest_framework_simplejwt.views import TokenObtainPairView

from ledger.views import command_response
from .authz import resolve_actor, require
from .commands import create_user, update_user, set_user_password, set_setting
from .models import AppSetting, User
from .serializers import (
    AppSettingSerializer,
    AppSettingUpdateSerializer,
    MizanTokenObtainPairSerializer,
    SetPasswordSerializer,
    UserCreateSerializer,
    UserSerializer,
    UserUpdateSerializer,
)


class LoginView(TokenObtainPairView):
    serializer_class = MizanTokenObtainPairSerializer
    permission_classes = [permissions.AllowAny]


class ProfileView(APIView):
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, *args, **kwargs):
        actor = resolve_actor(request)
        return Response(UserSerializer(actor.user).data)


class UserListCreateView(APIView):
    """
    GET /api/users/ -> list users
    POST /api/users/ -> create user
    """
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        actor = resolve_actor(request)
        require(actor, "users.manage")
        users = User.objects.order_by("username")
        return Response(UserSerializer(users, many=True).data)

    def post(self, request):
        actor = resolve_actor(request)
        serializer = UserCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return command_response(
            create_user, actor, **serializer.validated_data,
            serializer_class=UserSerializer,
            success_status=status.HTTP_201_CREATED,
        )


class UserDetailView(APIView):
    """
    GET /api/users/<pk>/ -> retrieve user
    PATCH /api/users/<pk>/ -> update profile, role, permissions, active flag
    """
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, pk):
        actor = resolve_actor(request)
        if actor.user.pk != pk:
            require(actor, "users.manage")
        return Response(UserSerializer(get_object_or_404(User, pk=pk)).data)

    def patch(self, request, pk):
        actor = resolve_actor(request)
        serializer = UserUpdateSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        return command_response(
            update_user, actor, pk, **serializer.validated_data,
            serializer_class=UserSerializer,
        )


class UserSetPasswordView(APIView):
    """POST /api/users/<pk>/set-password/"""
    permission_classes = [permissions.IsAuthenticated]

    def post(self, request, pk):
        actor = resolve_actor(request)
        serializer = SetPasswordSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        response = command_response(set_user_password, actor, pk, serializer.validated_data["new_password"])
        if response.status_code == status.HTTP_200_OK:
            return Response(status=status.HTTP_204_NO_CONTENT)
        return response


class SettingListView(APIView):
    """GET /api/settings/ -> every stored setting"""
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request):
        resolve_actor(request)
        return Response(AppSettingSerializer(AppSetting.objects.all(), many=True).data)


class SettingDetailView(APIView):
    """
    GET /api/settings/<key>/ -> one setting
    PUT /api/settings/<key>/ {value} -> set it
    """
    permission_classes = [permissions.IsAuthenticated]

    def get(self, request, key):
        resolve_actor(request)
        return Response(AppSettingSerializer(get_object_or_404(AppSetting, key=key)).data)

    def put(self, request, key):
        actor = resolve_actor(request)
        serializer = AppSettingUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        return command_response(
            set_setting, actor, key, serializer.validated_data["value"],
            serializer_class=AppSettingSerializer,
        )
