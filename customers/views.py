from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from common.permissions import IsCompanyMember
from customers import relationships as relationship_service
from customers import services
from customers.serializers import (
    CustomerDetailSerializer,
    CustomerRelationshipSerializer,
    CustomerSearchResultSerializer,
    CustomerSerializer,
    RelationshipDeleteSerializer,
    RelationshipInputSerializer,
)


class CustomerViewSet(viewsets.GenericViewSet):
    """Customers of the acting user's company.

    Mutations go through `customers.services`; the serializers only validate
    the payload shape and render responses.
    """

    serializer_class = CustomerSerializer
    permission_classes = [IsAuthenticated, IsCompanyMember]
    lookup_value_regex = r"\d+"

    def get_serializer_class(self):
        if self.action == "retrieve":
            return CustomerDetailSerializer
        if self.action == "search":
            return CustomerSearchResultSerializer
        return CustomerSerializer

    def _paginated(self, queryset):
        page = self.paginate_queryset(queryset)
        serializer = self.get_serializer(page, many=True)
        return self.get_paginated_response(serializer.data)

    def list(self, request):
        queryset = services.list_customers(
            request.user,
            search=request.query_params.get("search"),
            order_by=request.query_params.get("order_by", "name"),
            direction=request.query_params.get("direction", "asc"),
        )
        return self._paginated(queryset)

    def create(self, request):
        serializer = self.get_serializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        customer = services.create_customer(serializer.validated_data, request.user)
        return Response(CustomerDetailSerializer(customer).data, status=status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):
        customer = services.get_customer(pk, request.user)
        return Response(self.get_serializer(customer).data)

    def update(self, request, pk=None, partial=False):
        serializer = self.get_serializer(data=request.data, partial=partial)
        serializer.is_valid(raise_exception=True)
        customer = services.update_customer(pk, serializer.validated_data, request.user)
        return Response(CustomerSerializer(customer).data)

    def partial_update(self, request, pk=None):
        return self.update(request, pk=pk, partial=True)

    def destroy(self, request, pk=None):
        services.soft_delete_customer(pk, request.user)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=False, methods=["get"])
    def search(self, request):
        queryset = services.search_customers(request.user, request.query_params.get("term", ""))
        return self._paginated(queryset)

    @action(detail=True, methods=["get", "post", "delete"], url_path="relationships")
    def relationships(self, request, pk=None):
        if request.method == "GET":
            items = relationship_service.list_relationships(pk, request.user)
            return Response(CustomerRelationshipSerializer(items, many=True).data)

        if request.method == "DELETE":
            serializer = RelationshipDeleteSerializer(data=request.data)
            serializer.is_valid(raise_exception=True)
            relationship_service.delete_relationships(pk, serializer.validated_data["ids"], request.user)
            return Response(status=status.HTTP_204_NO_CONTENT)

        serializer = RelationshipInputSerializer(data=request.data, many=True)
        serializer.is_valid(raise_exception=True)
        saved = relationship_service.add_or_update_relationships(pk, serializer.validated_data, request.user)
        return Response(CustomerRelationshipSerializer(saved, many=True).data, status=status.HTTP_200_OK)
