from rest_framework import serializers
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer

from .models import AppSetting, User
from .permissions import ALL_PERMISSIONS, effective_permissions


class UserSerializer(serializers.ModelSerializer):
    effective_permissions = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = (
            "id", "public_id", "username", "email", "name", "role",
            "permissions", "effective_permissions", "is_active", "date_joined",
        )
        read_only_fields = fields

    def get_effective_permissions(self, obj):
        if obj.role == User.Role.ADMIN:
            return sorted(ALL_PERMISSIONS)
        return sorted(effective_permissions(obj))


class UserCreateSerializer(serializers.Serializer):
    username = serializers.CharField(max_length=150)
    password = serializers.CharField(write_only=True)
    name = serializers.CharField(max_length=150)
    email = serializers.EmailField(required=False, allow_blank=True, default="")
    role = serializers.ChoiceField(choices=User.Role.choices, default=User.Role.USER)
    permissions = serializers.ListField(
        child=serializers.ChoiceField(choices=sorted(ALL_PERMISSIONS)),
        required=False,
        default=list,
    )


class UserUpdateSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=150, required=False)
    email = serializers.EmailField(required=False, allow_blank=True)
    role = serializers.ChoiceField(choices=User.Role.choices, required=False)
    permissions = serializers.ListField(
        child=serializers.ChoiceField(choices=sorted(ALL_PERMISSIONS)),
        required=False,
    )
    is_active = serializers.BooleanField(required=False)


class SetPasswordSerializer(serializers.Serializer):
    new_password = serializers.CharField(write_only=True)


class AppSettingSerializer(serializers.ModelSerializer):
    class Meta:
        model = AppSetting
        fields = ("key", "value", "description", "updated_at")
        read_only_fields = fields


class AppSettingUpdateSerializer(serializers.Serializer):
    value = serializers.CharField(max_length=255, allow_blank=True)


class MizanTokenObtainPairSerializer(TokenObtainPairSerializer):
    """Username/password login; the access token carries role and name."""

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token["role"] = user.role
        token["name"] = user.name
        return token

    def validate(self, attrs):
        data = super().validate(attrs)
        data["user"] = UserSerializer(self.user).data
        return data
