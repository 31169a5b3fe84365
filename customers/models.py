from functools import reduce
from operator import add

from django.db import models
from django.db.models import Case, IntegerField, Q, Value, When
from django.utils import timezone

from common.managers import SoftDeleteManager, SoftDeleteQuerySet
from core.models import Company


class CustomerQuerySet(SoftDeleteQuerySet):
    def for_company(self, company_id):
        return self.filter(company_id=company_id)

    def search(self, term):
        """Rank customers by how many words of `term` appear in name or phones.

        Rows matching no word are dropped; an empty term returns everything
        ordered by name.
        """
        words = [word.lower() for word in (term or "").split() if word]
        if not words:
            return self.order_by("name", "id")

        hits = [
            Case(
                When(
                    Q(name__icontains=word) | Q(phone_mobile__icontains=word) | Q(phone_landline__icontains=word),
                    then=Value(1),
                ),
                default=Value(0),
                output_field=IntegerField(),
            )
            for word in words
        ]
        return (
            self.annotate(match_score=reduce(add, hits))
            .filter(match_score__gt=0)
            .order_by("-match_score", "name", "id")
        )


class Customer(models.Model):
    company = models.ForeignKey(Company, on_delete=models.PROTECT, related_name="customers")
    name = models.CharField(max_length=255)
    email = models.EmailField(blank=True)
    phone_mobile = models.CharField(max_length=32, blank=True)
    phone_landline = models.CharField(max_length=32, blank=True)
    address = models.JSONField(default=dict, blank=True)
    observations = models.TextField(blank=True)
    created_at = models.DateTimeField(default=timezone.now, editable=False)
    updated_at = models.DateTimeField(null=True, blank=True)
    is_deleted = models.BooleanField(default=False)

    objects = SoftDeleteManager.from_queryset(CustomerQuerySet)()
    all_objects = CustomerQuerySet.as_manager()

    class Meta:
        indexes = [
            models.Index(fields=["company", "name"], name="customer_company_name_idx"),
            models.Index(fields=["company", "is_deleted"], name="customer_company_deleted_idx"),
        ]

    def __str__(self):
        return self.name


class CustomerRelationshipQuerySet(SoftDeleteQuerySet):
    def for_customer(self, customer_id):
        return self.filter(customer_id=customer_id)

    def newest_first(self):
        return self.order_by("-date_time", "-id")


class CustomerRelationship(models.Model):
    customer = models.ForeignKey(Customer, on_delete=models.PROTECT, related_name="relationships")
    description = models.CharField(max_length=500)
    date_time = models.DateTimeField(default=timezone.now)
    created_at = models.DateTimeField(default=timezone.now, editable=False)
    updated_at = models.DateTimeField(null=True, blank=True)
    is_deleted = models.BooleanField(default=False)

    objects = SoftDeleteManager.from_queryset(CustomerRelationshipQuerySet)()
    all_objects = CustomerRelationshipQuerySet.as_manager()

    class Meta:
        indexes = [
            models.Index(fields=["customer", "date_time"], name="relationship_customer_dt_idx"),
        ]
