from django.contrib.auth import authenticate
from rest_framework import serializers
from rest_framework.exceptions import AuthenticationFailed
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer
from rest_framework_simplejwt.tokens import RefreshToken

from .models import Organization, OrganizationMembership, User


def tokens_for(user) -> dict:
    refresh = RefreshToken.for_user(user)
    return {"access": str(refresh.access_token), "refresh": str(refresh)}


class UserSerializer(serializers.ModelSerializer):
    class Meta:
        model = User
        fields = ("id", "email", "name", "role", "status", "date_joined")
        read_only_fields = fields


class OrganizationSerializer(serializers.ModelSerializer):
    owner_email = serializers.EmailField(source="owner.email", read_only=True)

    class Meta:
        model = Organization
        fields = ("id", "name", "slug", "owner_email", "created_at")
        read_only_fields = fields


class MembershipSerializer(serializers.ModelSerializer):
    user = UserSerializer(read_only=True)

    class Meta:
        model = OrganizationMembership
        fields = ("id", "organization", "user", "role", "permissions", "created_at", "updated_at")
        read_only_fields = fields


class RegistrationSerializer(serializers.Serializer):
    email = serializers.EmailField()
    name = serializers.CharField(max_length=150, allow_blank=True, required=False, default="")
    password = serializers.CharField(min_length=8, write_only=True)
    role = serializers.ChoiceField(
        choices=(User.Role.OWNER, User.Role.CLIENT),
        default=User.Role.CLIENT,
    )
    business_name = serializers.CharField(max_length=100, allow_blank=True, required=False, default="")

    def validate_email(self, value: str):
        return value.strip().lower()

    def validate(self, attrs):
        if attrs["role"] == User.Role.OWNER and not attrs.get("business_name", "").strip():
            raise serializers.ValidationError({"business_name": "Business name is required for workshops."})
        return attrs


class EmailTokenObtainPairSerializer(TokenObtainPairSerializer):
    username_field = User.EMAIL_FIELD

    default_error_messages = {
        "pending": "Your workshop is awaiting approval.",
        "blocked": "This account cannot sign in.",
    }

    def validate(self, attrs):
        authenticate_kwargs = {
            self.username_field: (attrs.get("email") or "").strip().lower(),
            "password": attrs.get("password"),
        }
        user = authenticate(request=self.context.get("request"), **authenticate_kwargs)
        if not user:
            raise AuthenticationFailed("Invalid credentials")
        if user.status == User.Status.PENDING:
            raise AuthenticationFailed(self.error_messages["pending"], code="pending_approval")
        if not user.can_sign_in:
            raise AuthenticationFailed(self.error_messages["blocked"], code="account_blocked")
        return tokens_for(user)


class MembershipUpdateSerializer(serializers.Serializer):
    role = serializers.CharField(required=False)
    permissions = serializers.ListField(
        child=serializers.CharField(max_length=64),
        required=False,
        allow_empty=True,
    )
    apply_role_defaults = serializers.BooleanField(required=False, default=False)


class RejectUserSerializer(serializers.Serializer):
    reason = serializers.CharField(max_length=500, allow_blank=True, required=False, default="")
