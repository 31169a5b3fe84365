from django.db import models
from django.utils import timezone


class SoftDeleteQuerySet(models.QuerySet):
    flag_field = "is_deleted"

    def soft_delete(self):
        return self.update(**{self.flag_field: True, "updated_at": timezone.now()})


class SoftDeleteManager(models.Manager):
    """Default manager hiding logically deleted rows.

    Build it with `SoftDeleteManager.from_queryset(...)` so the flag column
    comes from the queryset class. Models pair it with a plain `all_objects`
    manager for the reads that must also see hidden rows.
    """

    def get_queryset(self):
        queryset = super().get_queryset()
        return queryset.filter(**{queryset.flag_field: False})
