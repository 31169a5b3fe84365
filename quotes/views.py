from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.exceptions import NotFound
from rest_framework.permissions import IsAuthenticated
from rest_framework.response import Response

from common.permissions import IsCompanyMember
from quotes import items as item_service
from quotes import services
from quotes.serializers import (
    QuoteItemInputSerializer,
    QuoteItemSerializer,
    QuoteListParamsSerializer,
    QuoteSerializer,
    QuoteUpdateSerializer,
    QuoteWriteSerializer,
    ReorderItemsSerializer,
)


class QuoteViewSet(viewsets.GenericViewSet):
    serializer_class = QuoteSerializer
    permission_classes = [IsAuthenticated, IsCompanyMember]
    lookup_value_regex = r"\d+"

    def _render(self, quote, status_code=status.HTTP_200_OK):
        # Re-read so the response carries the committed items and total.
        quote = services.get_quote(quote.id, self.request.user)
        return Response(QuoteSerializer(quote).data, status=status_code)

    def list(self, request):
        params = QuoteListParamsSerializer(data=request.query_params)
        params.is_valid(raise_exception=True)
        queryset = services.list_quotes(request.user, params.validated_data)
        page = self.paginate_queryset(queryset)
        return self.get_paginated_response(QuoteSerializer(page, many=True).data)

    def create(self, request):
        serializer = QuoteWriteSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        quote = services.create_quote(serializer.validated_data, request.user)
        return self._render(quote, status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):
        quote = services.get_quote(pk, request.user)
        if quote is None:
            raise NotFound("Quote not found.")
        return Response(QuoteSerializer(quote).data)

    def update(self, request, pk=None):
        serializer = QuoteUpdateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        quote = services.update_quote(pk, serializer.validated_data, request.user)
        return self._render(quote)

    def partial_update(self, request, pk=None):
        return self.update(request, pk=pk)

    def destroy(self, request, pk=None):
        if not services.archive_quote(pk, request.user):
            raise NotFound("Quote not found.")
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=["post"], url_path="items")
    def add_item(self, request, pk=None):
        serializer = QuoteItemInputSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        item = item_service.add_item(pk, serializer.validated_data, request.user)
        return Response(QuoteItemSerializer(item).data, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"], url_path="items/reorder")
    def reorder_items(self, request, pk=None):
        serializer = ReorderItemsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        item_service.reorder_items(pk, serializer.validated_data["item_ids"], request.user)
        return Response(status=status.HTTP_204_NO_CONTENT)


class QuoteItemViewSet(viewsets.GenericViewSet):
    serializer_class = QuoteItemSerializer
    permission_classes = [IsAuthenticated, IsCompanyMember]
    lookup_value_regex = r"\d+"

    def update(self, request, pk=None):
        serializer = QuoteItemInputSerializer(data=request.data, partial=True)
        serializer.is_valid(raise_exception=True)
        item = item_service.update_item(pk, serializer.validated_data, request.user)
        return Response(QuoteItemSerializer(item).data)

    def partial_update(self, request, pk=None):
        return self.update(request, pk=pk)

    def destroy(self, request, pk=None):
        item_service.delete_item(pk, request.user)
        return Response(status=status.HTTP_204_NO_CONTENT)
