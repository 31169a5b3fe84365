from decimal import Decimal

from rest_framework import serializers

from quotes.models import PaymentMethod, Quote, QuoteItem

MONEY = {"max_digits": 12, "decimal_places": 2}
POSITIVE = Decimal("0.01")


class QuoteItemSerializer(serializers.ModelSerializer):
    class Meta:
        model = QuoteItem
        fields = ["id", "description", "quantity", "unit_price", "total_price", "order", "custom_fields"]
        read_only_fields = fields


class QuoteItemInputSerializer(serializers.Serializer):
    id = serializers.IntegerField(required=False, min_value=1)
    description = serializers.CharField(max_length=200)
    quantity = serializers.DecimalField(required=False, allow_null=True, min_value=POSITIVE, **MONEY)
    unit_price = serializers.DecimalField(required=False, allow_null=True, min_value=POSITIVE, **MONEY)
    total_price = serializers.DecimalField(required=False, allow_null=True, **MONEY)
    custom_fields = serializers.DictField(child=serializers.CharField(allow_blank=True), required=False)

    def validate(self, attrs):
        if self.partial:
            return attrs
        has_override = attrs.get("total_price") is not None
        has_price_inputs = attrs.get("quantity") is not None and attrs.get("unit_price") is not None
        if not has_override and not has_price_inputs and not attrs.get("id"):
            raise serializers.ValidationError("Provide quantity and unit_price, or a total_price.")
        return attrs


class QuoteSerializer(serializers.ModelSerializer):
    customer_id = serializers.IntegerField(read_only=True)
    customer_name = serializers.CharField(source="customer.name", read_only=True)
    user_id = serializers.IntegerField(read_only=True)
    items = QuoteItemSerializer(many=True, read_only=True)

    class Meta:
        model = Quote
        fields = [
            "id",
            "customer_id",
            "customer_name",
            "user_id",
            "created_at",
            "updated_at",
            "total_price",
            "payment_method",
            "payment_conditions",
            "cash_discount",
            "items",
        ]
        read_only_fields = fields


class QuoteWriteSerializer(serializers.Serializer):
    customer_id = serializers.IntegerField(min_value=1)
    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices, required=False)
    payment_conditions = serializers.CharField(max_length=500, required=False, allow_blank=True)
    cash_discount = serializers.DecimalField(required=False, allow_null=True, min_value=Decimal("0"), **MONEY)
    items = QuoteItemInputSerializer(many=True, allow_empty=False)


class QuoteUpdateSerializer(serializers.Serializer):
    # Anything else in the payload (creation date, author, total) is ignored.
    payment_method = serializers.ChoiceField(choices=PaymentMethod.choices, required=False)
    payment_conditions = serializers.CharField(max_length=500, required=False, allow_blank=True)
    cash_discount = serializers.DecimalField(required=False, allow_null=True, min_value=Decimal("0"), **MONEY)
    items = QuoteItemInputSerializer(many=True, required=False)


class ReorderItemsSerializer(serializers.Serializer):
    item_ids = serializers.ListField(child=serializers.IntegerField(min_value=1), allow_empty=False)


class QuoteListParamsSerializer(serializers.Serializer):
    customer_id = serializers.IntegerField(required=False, min_value=1)
    user_id = serializers.IntegerField(required=False, min_value=1)
    client_name = serializers.CharField(required=False, allow_blank=True)
    client_phone = serializers.CharField(required=False, allow_blank=True)
    search = serializers.CharField(required=False, allow_blank=True)
    created_from = serializers.DateTimeField(required=False)
    created_to = serializers.DateTimeField(required=False)
    sort_by = serializers.ChoiceField(choices=["created_at", "client_name", "total_price"], required=False)
    descending = serializers.BooleanField(required=False, default=False)

    def validate(self, attrs):
        created_from = attrs.get("created_from")
        created_to = attrs.get("created_to")
        if created_from and created_to and created_from > created_to:
            raise serializers.ValidationError({"created_to": "created_to must not be before created_from."})
        return attrs
