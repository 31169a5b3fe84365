from django.contrib.auth.models import AbstractUser
from django.db import models
from django.db.models import Q
from django.db.models.functions import Lower


class Company(models.Model):
    name = models.CharField(max_length=150)
    document = models.CharField(max_length=20, blank=True)
    email = models.EmailField(blank=True)
    phone = models.CharField(max_length=32, blank=True)
    address = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name_plural = "companies"

    def __str__(self):
        return self.name


class User(AbstractUser):
    class Profile(models.TextChoices):
        SYSTEM_ADMIN = "system_admin", "System Admin"
        ADMIN = "admin", "Admin"
        EMPLOYEE = "employee", "Employee"
        INACTIVE = "inactive", "Inactive"

    email = models.EmailField(blank=True)
    company = models.ForeignKey(Company, on_delete=models.PROTECT, null=True, blank=True, related_name="users")
    profile = models.CharField(max_length=32, choices=Profile, default=Profile.EMPLOYEE)

    class Meta(AbstractUser.Meta):
        constraints = [
            models.UniqueConstraint(
                Lower("email"),
                condition=~Q(email=""),
                name="core_user_email_ci_unique",
            )
        ]
        indexes = [
            models.Index(fields=["company", "profile"], name="user_company_profile_idx"),
        ]

    def save(self, *args, **kwargs):
        if self.email:
            self.email = self.email.strip().lower()
        super().save(*args, **kwargs)

    @property
    def is_system_admin(self):
        return self.profile == self.Profile.SYSTEM_ADMIN

    def deactivate(self):
        self.profile = self.Profile.INACTIVE
        self.is_active = False
        self.save(update_fields=["profile", "is_active"])

    def reactivate(self):
        self.profile = self.Profile.EMPLOYEE
        self.is_active = True
        self.save(update_fields=["profile", "is_active"])
