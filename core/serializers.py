from django.contrib.auth import get_user_model, password_validation
from django.contrib.auth.tokens import default_token_generator
from django.db import transaction
from django.utils.encoding import force_bytes, force_str
from django.utils.http import urlsafe_base64_decode, urlsafe_base64_encode
from rest_framework import serializers
from rest_framework.exceptions import AuthenticationFailed
from rest_framework_simplejwt.serializers import TokenObtainPairSerializer

from core.models import Company

User = get_user_model()


def normalize_unique_email(value, instance=None):
    normalized_email = value.strip().lower()
    if not normalized_email:
        return normalized_email

    duplicates = User.objects.filter(email__iexact=normalized_email)
    if instance is not None:
        duplicates = duplicates.exclude(pk=instance.pk)
    if duplicates.exists():
        raise serializers.ValidationError("A user with this email already exists.")
    return normalized_email


def make_password_token(user):
    """uid/token pair accepted by PasswordSetConfirmSerializer."""
    return {
        "uid": urlsafe_base64_encode(force_bytes(user.pk)),
        "token": default_token_generator.make_token(user),
    }


class CompanyRegistrationSerializer(serializers.ModelSerializer):
    """Sign-up: a new company together with its first administrator."""

    company_name = serializers.CharField(max_length=150, write_only=True)
    password = serializers.CharField(write_only=True, min_length=8)
    company = serializers.PrimaryKeyRelatedField(read_only=True)

    class Meta:
        model = User
        fields = ["id", "username", "email", "password", "first_name", "last_name", "company_name", "company", "profile"]
        read_only_fields = ["id", "company", "profile"]

    def validate_email(self, value):
        return normalize_unique_email(value)

    def validate_company_name(self, value):
        value = value.strip()
        if not value:
            raise serializers.ValidationError("Company name is required.")
        return value

    def validate_password(self, value):
        password_validation.validate_password(value)
        return value

    def create(self, validated_data):
        with transaction.atomic():
            company = Company.objects.create(name=validated_data["company_name"], email=validated_data.get("email", ""))
            user = User.objects.create_user(
                username=validated_data["username"],
                email=validated_data.get("email", ""),
                password=validated_data["password"],
                first_name=validated_data.get("first_name", ""),
                last_name=validated_data.get("last_name", ""),
                company=company,
                profile=User.Profile.ADMIN,
            )
        return user


class CompanySerializer(serializers.ModelSerializer):
    class Meta:
        model = Company
        fields = ["id", "name", "document", "email", "phone", "address", "created_at", "updated_at"]
        read_only_fields = ["id", "created_at", "updated_at"]

    def validate_address(self, value):
        if not isinstance(value, dict):
            raise serializers.ValidationError("Address must be an object.")
        return value


class CoworkerSerializer(serializers.ModelSerializer):
    company = serializers.PrimaryKeyRelatedField(read_only=True)

    class Meta:
        model = User
        fields = [
            "id",
            "username",
            "email",
            "first_name",
            "last_name",
            "profile",
            "is_active",
            "company",
            "date_joined",
        ]
        read_only_fields = ["id", "is_active", "company", "date_joined"]

    def validate_email(self, value):
        return normalize_unique_email(value, self.instance)

    def validate_profile(self, value):
        if value == User.Profile.SYSTEM_ADMIN:
            raise serializers.ValidationError("The system admin profile cannot be assigned here.")
        return value

    def create(self, validated_data):
        user = User(**validated_data)
        user.set_unusable_password()
        user.save()
        return user


class EmailOrUsernameTokenObtainPairSerializer(TokenObtainPairSerializer):
    default_error_messages = {
        **TokenObtainPairSerializer.default_error_messages,
        "inactive_account": "This account has been deactivated.",
    }

    @classmethod
    def get_token(cls, user):
        token = super().get_token(user)
        token["company_id"] = user.company_id
        token["profile"] = user.profile
        return token

    def validate(self, attrs):
        username = attrs.get("username", "")
        if username and "@" in username:
            user = User.objects.filter(email__iexact=username.strip()).first()
            if user is not None:
                attrs["username"] = user.get_username()

        data = super().validate(attrs)
        if self.user.profile == User.Profile.INACTIVE:
            raise AuthenticationFailed(self.error_messages["inactive_account"], "inactive_account")
        return data


class PasswordSetConfirmSerializer(serializers.Serializer):
    uid = serializers.CharField(required=True)
    token = serializers.CharField()
    new_password = serializers.CharField(write_only=True, min_length=8)

    default_error_messages = {
        "invalid_password_token": "Invalid password token.",
    }

    def _get_user(self, attrs):
        uid = attrs.get("uid")

        if uid:
            try:
                user_id = force_str(urlsafe_base64_decode(uid))
                return User.objects.filter(pk=user_id).first()
            except (TypeError, ValueError, OverflowError):
                return None

        return None

    def validate(self, attrs):
        token = attrs.get("token", "")
        user = self._get_user(attrs)

        if not user:
            self.fail("invalid_password_token")

        if not default_token_generator.check_token(user, token):
            self.fail("invalid_password_token")

        password_validation.validate_password(attrs["new_password"], user=user)
        attrs["user"] = user
        return attrs

    def save(self):
        user = self.validated_data["user"]
        user.set_password(self.validated_data["new_password"])
        user.save(update_fields=["password"])
        return user


class PasswordChangeSerializer(serializers.Serializer):
    current_password = serializers.CharField(write_only=True)
    new_password = serializers.CharField(write_only=True, min_length=8)

    def validate_current_password(self, value):
        if not self.context["request"].user.check_password(value):
            raise serializers.ValidationError("Current password is incorrect.")
        return value

    def validate(self, attrs):
        password_validation.validate_password(attrs["new_password"], user=self.context["request"].user)
        return attrs

    def save(self):
        user = self.context["request"].user
        user.set_password(self.validated_data["new_password"])
        user.save(update_fields=["password"])
        return user
