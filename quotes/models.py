from django.db import models
from django.db.models import F, Max
from django.utils import timezone

from common.managers import SoftDeleteManager, SoftDeleteQuerySet
from core.models import User
from customers.models import Customer


class PaymentMethod(models.TextChoices):
    UNKNOWN = "unknown", "Unknown"
    CASH = "cash", "Cash"
    CREDIT_CARD = "credit_card", "Credit Card"
    DEBIT_CARD = "debit_card", "Debit Card"
    PIX = "pix", "Pix"
    BANK_TRANSFER = "bank_transfer", "Bank Transfer"


class QuoteQuerySet(SoftDeleteQuerySet):
    flag_field = "is_archived"

    def for_company(self, company_id):
        return self.filter(customer__company_id=company_id)

    def with_items(self):
        return self.select_related("customer", "user").prefetch_related("items")


class Quote(models.Model):
    customer = models.ForeignKey(Customer, on_delete=models.PROTECT, related_name="quotes")
    user = models.ForeignKey(User, on_delete=models.PROTECT, related_name="quotes")
    created_at = models.DateTimeField(default=timezone.now, editable=False)
    updated_at = models.DateTimeField(null=True, blank=True)
    total_price = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    payment_method = models.CharField(max_length=32, choices=PaymentMethod, default=PaymentMethod.UNKNOWN)
    payment_conditions = models.CharField(max_length=500, blank=True)
    cash_discount = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    is_archived = models.BooleanField(default=False)

    objects = SoftDeleteManager.from_queryset(QuoteQuerySet)()
    all_objects = QuoteQuerySet.as_manager()

    class Meta:
        indexes = [
            models.Index(fields=["customer", "created_at"], name="quote_customer_created_idx"),
            models.Index(fields=["user", "created_at"], name="quote_user_created_idx"),
        ]

    def __str__(self):
        return f"Quote #{self.pk}"


class QuoteItemQuerySet(models.QuerySet):
    def for_quote(self, quote_id):
        return self.filter(quote_id=quote_id)

    def park_orders(self, minimum):
        """Move every order above `minimum` so new labels 1..N can be assigned without clashing."""
        highest = self.aggregate(highest=Max("order"))["highest"] or 0
        offset = max(highest, minimum) + 1
        return self.update(order=F("order") + offset)


class QuoteItem(models.Model):
    quote = models.ForeignKey(Quote, on_delete=models.CASCADE, related_name="items")
    description = models.CharField(max_length=500)
    quantity = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    unit_price = models.DecimalField(max_digits=12, decimal_places=2, null=True, blank=True)
    total_price = models.DecimalField(max_digits=12, decimal_places=2, default=0)
    order = models.PositiveIntegerField()
    custom_fields = models.JSONField(default=dict, blank=True)

    objects = QuoteItemQuerySet.as_manager()

    class Meta:
        ordering = ["order"]
        constraints = [
            models.UniqueConstraint(fields=["quote", "order"], name="uniq_quote_item_order"),
        ]

    def __str__(self):
        return f"{self.order}. {self.description}"
