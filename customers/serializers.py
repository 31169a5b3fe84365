from rest_framework import serializers

from customers.models import Customer, CustomerRelationship


class AddressSerializer(serializers.Serializer):
    street = serializers.CharField(max_length=255, required=False, allow_blank=True)
    number = serializers.CharField(max_length=20, required=False, allow_blank=True)
    complement = serializers.CharField(max_length=255, required=False, allow_blank=True)
    neighborhood = serializers.CharField(max_length=255, required=False, allow_blank=True)
    city = serializers.CharField(max_length=255, required=False, allow_blank=True)
    state = serializers.CharField(max_length=2, required=False, allow_blank=True)
    zip_code = serializers.CharField(max_length=9, required=False, allow_blank=True)


class PhoneSerializer(serializers.Serializer):
    mobile = serializers.CharField(source="phone_mobile", max_length=32, required=False, allow_blank=True)
    landline = serializers.CharField(source="phone_landline", max_length=32, required=False, allow_blank=True)


class CustomerRelationshipSerializer(serializers.ModelSerializer):
    class Meta:
        model = CustomerRelationship
        fields = ["id", "customer", "description", "date_time", "created_at", "updated_at"]
        read_only_fields = fields


class RelationshipInputSerializer(serializers.Serializer):
    # Content rules (required, length) are enforced by the relationship service as business rules.
    id = serializers.IntegerField(required=False, min_value=0, default=0)
    description = serializers.CharField(required=False, allow_blank=True, default="", trim_whitespace=False)
    date_time = serializers.DateTimeField(required=False, allow_null=True, default=None)


class RelationshipDeleteSerializer(serializers.Serializer):
    ids = serializers.ListField(child=serializers.IntegerField(min_value=1), allow_empty=False)


class CustomerSerializer(serializers.ModelSerializer):
    phone = PhoneSerializer(source="*", required=False)
    address = AddressSerializer(required=False)
    relationships = RelationshipInputSerializer(many=True, required=False, write_only=True)

    class Meta:
        model = Customer
        fields = [
            "id",
            "name",
            "email",
            "phone",
            "address",
            "observations",
            "relationships",
            "created_at",
            "updated_at",
        ]
        read_only_fields = ["id", "created_at", "updated_at"]


class CustomerDetailSerializer(CustomerSerializer):
    relationships = serializers.SerializerMethodField()

    def get_relationships(self, obj):
        live = obj.relationships.newest_first()
        return CustomerRelationshipSerializer(live, many=True).data


class CustomerSearchResultSerializer(CustomerSerializer):
    match_score = serializers.IntegerField(read_only=True)

    class Meta(CustomerSerializer.Meta):
        fields = ["id", "name", "email", "phone", "match_score", "created_at"]
