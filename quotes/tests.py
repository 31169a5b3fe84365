from datetime import timedelta
from decimal import Decimal

from django.contrib.auth import get_user_model
from django.test import SimpleTestCase, TestCase
from django.utils import timezone
from rest_framework.exceptions import NotFound
from rest_framework.test import APIClient

from common.exceptions import BusinessRuleError, InvalidOperation, TenancyViolation
from core.models import Company
from customers.models import Customer
from quotes import items as item_service
from quotes import services
from quotes.models import Quote, QuoteItem
from quotes.pricing import calculate_total, line_total
from quotes.reports import get_dashboard_stats


class PricingTests(SimpleTestCase):
    def test_line_total_prefers_override(self):
        self.assertEqual(line_total(Decimal("2"), Decimal("10"), Decimal("18")), Decimal("18.00"))

    def test_line_total_rounds_half_up_to_cents(self):
        self.assertEqual(line_total(Decimal("1.5"), Decimal("0.33")), Decimal("0.50"))

    def test_line_total_without_price_inputs_is_zero(self):
        self.assertEqual(line_total(None, Decimal("10")), Decimal("0.00"))

    def test_total_subtracts_discount_and_is_not_floored(self):
        self.assertEqual(calculate_total([Decimal("18"), Decimal("5.50")], Decimal("5")), Decimal("18.50"))
        self.assertEqual(calculate_total([Decimal("10")], Decimal("25")), Decimal("-15.00"))
        self.assertEqual(calculate_total([Decimal("10")], None), Decimal("10.00"))


class QuoteTestMixin:
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()

        self.company = Company.objects.create(name="Company A")
        self.other_company = Company.objects.create(name="Company B")
        self.user = self.user_model.objects.create_user(
            username="quotes-a",
            password="pass1234",
            company=self.company,
        )
        self.colleague = self.user_model.objects.create_user(
            username="quotes-a2",
            password="pass1234",
            company=self.company,
        )
        self.other_user = self.user_model.objects.create_user(
            username="quotes-b",
            password="pass1234",
            company=self.other_company,
        )
        self.customer = Customer.objects.create(company=self.company, name="Alice", phone_mobile="11999990000")
        self.other_customer = Customer.objects.create(company=self.other_company, name="Bob")

    def make_quote(self, items=None, cash_discount=None, user=None, customer=None):
        return services.create_quote(
            {
                "customer_id": (customer or self.customer).id,
                "payment_method": "pix",
                "payment_conditions": "30 days",
                "cash_discount": cash_discount,
                "items": items
                or [
                    {"description": "Window cleaning", "quantity": Decimal("2"), "unit_price": Decimal("10")},
                    {"description": "Floor cleaning", "quantity": Decimal("1"), "unit_price": Decimal("15")},
                ],
            },
            user or self.user,
        )

    def ordered_items(self, quote):
        return list(QuoteItem.objects.filter(quote_id=quote.id).order_by("order"))

    def assert_orders_dense(self, quote):
        orders = [item.order for item in self.ordered_items(quote)]
        self.assertEqual(orders, list(range(1, len(orders) + 1)))

    def assert_total_consistent(self, quote):
        quote = Quote.all_objects.get(pk=quote.pk)
        item_sum = sum((item.total_price for item in self.ordered_items(quote)), Decimal("0"))
        expected = item_sum - (quote.cash_discount or Decimal("0"))
        self.assertEqual(quote.total_price, expected)


class QuoteCreateTests(QuoteTestMixin, TestCase):
    def test_manual_item_total_and_discount(self):
        self.client.force_authenticate(user=self.user)

        response = self.client.post(
            "/api/v1/quotes/",
            {
                "customer_id": self.customer.id,
                "payment_method": "cash",
                "cash_discount": "5.00",
                "items": [{"description": "Deep clean", "quantity": "2", "unit_price": "10", "total_price": "18"}],
            },
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        payload = response.json()
        self.assertEqual(payload["total_price"], "13.00")
        self.assertEqual(payload["items"][0]["total_price"], "18.00")
        self.assertEqual(payload["items"][0]["order"], 1)
        self.assertEqual(payload["user_id"], self.user.id)

    def test_items_get_dense_orders_and_computed_totals(self):
        quote = self.make_quote()

        items = self.ordered_items(quote)
        self.assertEqual([item.description for item in items], ["Window cleaning", "Floor cleaning"])
        self.assertEqual([item.total_price for item in items], [Decimal("20.00"), Decimal("15.00")])
        self.assert_orders_dense(quote)
        self.assertEqual(Quote.objects.get(pk=quote.pk).total_price, Decimal("35.00"))

    def test_unknown_customer_is_not_found_and_nothing_persisted(self):
        self.client.force_authenticate(user=self.user)

        response = self.client.post(
            "/api/v1/quotes/",
            {"customer_id": 999999, "items": [{"description": "X", "quantity": "1", "unit_price": "1"}]},
            format="json",
        )

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["code"], "not_found")
        self.assertEqual(Quote.all_objects.count(), 0)
        self.assertEqual(QuoteItem.objects.count(), 0)

    def test_other_company_customer_is_forbidden(self):
        with self.assertRaises(TenancyViolation):
            self.make_quote(customer=self.other_customer)

        self.assertEqual(Quote.all_objects.count(), 0)

    def test_quote_without_items_is_rejected(self):
        with self.assertRaises(BusinessRuleError):
            services.create_quote({"customer_id": self.customer.id, "items": []}, self.user)

        self.client.force_authenticate(user=self.user)
        response = self.client.post("/api/v1/quotes/", {"customer_id": self.customer.id, "items": []}, format="json")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "validation_error")

    def test_edge_validation_rejects_bad_items(self):
        self.client.force_authenticate(user=self.user)

        response = self.client.post(
            "/api/v1/quotes/",
            {
                "customer_id": self.customer.id,
                "cash_discount": "-1",
                "items": [{"description": "", "quantity": "0", "unit_price": "10"}],
            },
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        errors = response.json()["errors"]
        self.assertIn("cash_discount", errors)
        self.assertIn("items", errors)
        self.assertEqual(Quote.all_objects.count(), 0)


class QuoteReadUpdateArchiveTests(QuoteTestMixin, TestCase):
    def test_get_quote_returns_items_in_order(self):
        quote = self.make_quote()
        self.client.force_authenticate(user=self.colleague)

        response = self.client.get(f"/api/v1/quotes/{quote.id}/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual([item["order"] for item in response.json()["items"]], [1, 2])

    def test_get_other_company_quote_is_forbidden(self):
        quote = self.make_quote()

        with self.assertRaises(TenancyViolation):
            services.get_quote(quote.id, self.other_user)

        self.client.force_authenticate(user=self.other_user)
        self.assertEqual(self.client.get(f"/api/v1/quotes/{quote.id}/").status_code, 403)

    def test_get_missing_quote_returns_none(self):
        self.assertIsNone(services.get_quote(999999, self.user))

    def test_update_never_changes_provenance(self):
        quote = self.make_quote()
        original_created_at = Quote.objects.get(pk=quote.pk).created_at
        self.client.force_authenticate(user=self.colleague)

        response = self.client.put(
            f"/api/v1/quotes/{quote.id}/",
            {
                "payment_method": "bank_transfer",
                "cash_discount": "5",
                "created_at": "2001-01-01T00:00:00Z",
                "user_id": self.colleague.id,
                "total_price": "1.00",
            },
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        refreshed = Quote.objects.get(pk=quote.pk)
        self.assertEqual(refreshed.created_at, original_created_at)
        self.assertEqual(refreshed.user_id, self.user.id)
        self.assertEqual(refreshed.payment_method, "bank_transfer")
        self.assertEqual(refreshed.total_price, Decimal("30.00"))
        self.assertIsNotNone(refreshed.updated_at)

    def test_update_replaces_item_list(self):
        quote = self.make_quote()
        first, second = self.ordered_items(quote)

        services.update_quote(
            quote.id,
            {
                "items": [
                    {"description": "Extra service", "quantity": Decimal("3"), "unit_price": Decimal("4")},
                    {"id": first.id, "description": "Window cleaning", "unit_price": Decimal("12")},
                ]
            },
            self.user,
        )

        items = self.ordered_items(quote)
        self.assertEqual([item.description for item in items], ["Extra service", "Window cleaning"])
        self.assertEqual(items[1].id, first.id)
        self.assertEqual(items[1].total_price, Decimal("24.00"))
        self.assertFalse(QuoteItem.objects.filter(pk=second.pk).exists())
        self.assert_orders_dense(quote)
        self.assert_total_consistent(quote)

    def test_update_rejects_items_of_another_quote(self):
        quote = self.make_quote()
        other_item = self.ordered_items(self.make_quote())[0]

        with self.assertRaises(BusinessRuleError):
            services.update_quote(
                quote.id,
                {"items": [{"id": other_item.id, "description": "Moved"}]},
                self.user,
            )

        self.assertEqual(QuoteItem.objects.get(pk=other_item.pk).description, "Window cleaning")
        self.assertEqual(len(self.ordered_items(quote)), 2)

    def test_update_rejects_empty_item_list(self):
        quote = self.make_quote()
        self.client.force_authenticate(user=self.user)

        response = self.client.patch(f"/api/v1/quotes/{quote.id}/", {"items": []}, format="json")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "business_rule_violation")
        self.assertEqual(len(self.ordered_items(quote)), 2)

    def test_update_missing_quote_is_not_found(self):
        self.client.force_authenticate(user=self.user)

        response = self.client.patch("/api/v1/quotes/999999/", {"payment_conditions": "cash"}, format="json")

        self.assertEqual(response.status_code, 404)

    def test_archive_hides_quote_and_is_not_repeatable(self):
        quote = self.make_quote()
        self.client.force_authenticate(user=self.user)

        first = self.client.delete(f"/api/v1/quotes/{quote.id}/")
        second = self.client.delete(f"/api/v1/quotes/{quote.id}/")

        self.assertEqual(first.status_code, 204)
        self.assertEqual(second.status_code, 404)
        self.assertTrue(Quote.all_objects.get(pk=quote.pk).is_archived)
        self.assertIsNone(services.get_quote(quote.id, self.user))
        self.assertEqual(self.client.get(f"/api/v1/quotes/{quote.id}/").status_code, 404)

    def test_archive_other_company_quote_is_forbidden(self):
        quote = self.make_quote()

        with self.assertRaises(TenancyViolation):
            services.archive_quote(quote.id, self.other_user)

        self.assertFalse(Quote.all_objects.get(pk=quote.pk).is_archived)
        self.assertFalse(services.archive_quote(999999, self.user))


class QuoteItemTests(QuoteTestMixin, TestCase):
    def test_add_item_appends_and_recalculates(self):
        quote = self.make_quote(cash_discount=Decimal("5"))
        self.client.force_authenticate(user=self.user)

        response = self.client.post(
            f"/api/v1/quotes/{quote.id}/items/",
            {"description": "Sofa cleaning", "quantity": "1", "unit_price": "40", "custom_fields": {"color": "blue"}},
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        self.assertEqual(response.json()["order"], 3)
        self.assertEqual(response.json()["custom_fields"], {"color": "blue"})
        self.assertEqual(Quote.objects.get(pk=quote.pk).total_price, Decimal("70.00"))
        self.assert_orders_dense(quote)

    def test_add_item_to_archived_quote_is_not_found(self):
        quote = self.make_quote()
        services.archive_quote(quote.id, self.user)
        self.client.force_authenticate(user=self.user)

        response = self.client.post(
            f"/api/v1/quotes/{quote.id}/items/",
            {"description": "Late", "quantity": "1", "unit_price": "1"},
            format="json",
        )

        self.assertEqual(response.status_code, 404)

    def test_update_item_recomputes_only_when_price_inputs_change(self):
        quote = self.make_quote(
            items=[{"description": "Manual", "quantity": Decimal("2"), "unit_price": Decimal("10"), "total_price": Decimal("18")}]
        )
        item = self.ordered_items(quote)[0]

        item_service.update_item(item.id, {"description": "Manual renamed"}, self.user)
        self.assertEqual(QuoteItem.objects.get(pk=item.pk).total_price, Decimal("18.00"))

        item_service.update_item(item.id, {"quantity": Decimal("3")}, self.user)
        self.assertEqual(QuoteItem.objects.get(pk=item.pk).total_price, Decimal("30.00"))

        item_service.update_item(item.id, {"total_price": Decimal("25")}, self.user)
        self.assertEqual(QuoteItem.objects.get(pk=item.pk).total_price, Decimal("25.00"))
        self.assert_total_consistent(quote)

    def test_update_item_over_http(self):
        quote = self.make_quote()
        item = self.ordered_items(quote)[1]
        self.client.force_authenticate(user=self.user)

        response = self.client.patch(f"/api/v1/quote-items/{item.id}/", {"unit_price": "20"}, format="json")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["total_price"], "20.00")
        self.assertEqual(Quote.objects.get(pk=quote.pk).total_price, Decimal("40.00"))

    def test_update_other_company_item_is_forbidden(self):
        quote = self.make_quote()
        item = self.ordered_items(quote)[0]
        self.client.force_authenticate(user=self.other_user)

        response = self.client.patch(f"/api/v1/quote-items/{item.id}/", {"description": "Hijacked"}, format="json")

        self.assertEqual(response.status_code, 403)
        self.assertEqual(QuoteItem.objects.get(pk=item.pk).description, "Window cleaning")

    def test_missing_item_is_not_found(self):
        self.client.force_authenticate(user=self.user)

        self.assertEqual(self.client.delete("/api/v1/quote-items/999999/").status_code, 404)

    def test_deleting_the_only_item_is_rejected(self):
        quote = self.make_quote(items=[{"description": "Only", "quantity": Decimal("1"), "unit_price": Decimal("10")}])
        item = self.ordered_items(quote)[0]
        self.client.force_authenticate(user=self.user)

        response = self.client.delete(f"/api/v1/quote-items/{item.id}/")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "business_rule_violation")
        self.assertTrue(QuoteItem.objects.filter(pk=item.pk).exists())

    def test_delete_item_relabels_and_recalculates(self):
        quote = self.make_quote(
            items=[
                {"description": "A", "quantity": Decimal("1"), "unit_price": Decimal("1")},
                {"description": "B", "quantity": Decimal("1"), "unit_price": Decimal("2")},
                {"description": "C", "quantity": Decimal("1"), "unit_price": Decimal("3")},
            ]
        )
        middle = self.ordered_items(quote)[1]

        self.assertTrue(item_service.delete_item(middle.id, self.user))

        items = self.ordered_items(quote)
        self.assertEqual([(item.description, item.order) for item in items], [("A", 1), ("C", 2)])
        self.assertEqual(Quote.objects.get(pk=quote.pk).total_price, Decimal("4.00"))

    def test_items_of_archived_quote_cannot_change(self):
        quote = self.make_quote()
        services.archive_quote(quote.id, self.user)
        first, second = self.ordered_items(quote)

        with self.assertRaises(NotFound):
            item_service.update_item(first.id, {"total_price": Decimal("999")}, self.user)
        with self.assertRaises(NotFound):
            item_service.delete_item(second.id, self.user)

        self.assertEqual(QuoteItem.objects.get(pk=first.pk).total_price, first.total_price)
        self.assertTrue(QuoteItem.objects.filter(pk=second.pk).exists())
        self.assertEqual(Quote.all_objects.get(pk=quote.pk).total_price, Decimal("35.00"))

        self.client.force_authenticate(user=self.user)
        response = self.client.patch(f"/api/v1/quote-items/{first.id}/", {"description": "Late"}, format="json")
        self.assertEqual(response.status_code, 404)

    def test_reorder_swaps_items(self):
        quote = self.make_quote()
        first, second = self.ordered_items(quote)
        self.client.force_authenticate(user=self.user)

        response = self.client.post(
            f"/api/v1/quotes/{quote.id}/items/reorder/",
            {"item_ids": [second.id, first.id]},
            format="json",
        )

        self.assertEqual(response.status_code, 204)
        self.assertEqual(QuoteItem.objects.get(pk=second.pk).order, 1)
        self.assertEqual(QuoteItem.objects.get(pk=first.pk).order, 2)

    def test_invalid_reorder_changes_nothing(self):
        quote = self.make_quote()
        first, second = self.ordered_items(quote)
        foreign = self.ordered_items(self.make_quote())[0]

        for item_ids in ([first.id, first.id], [first.id], [first.id, second.id, foreign.id], [first.id, foreign.id]):
            with self.assertRaises(InvalidOperation):
                item_service.reorder_items(quote.id, item_ids, self.user)

        self.assertEqual([item.id for item in self.ordered_items(quote)], [first.id, second.id])
        self.assert_orders_dense(quote)

    def test_invalid_reorder_over_http(self):
        quote = self.make_quote()
        first = self.ordered_items(quote)[0]
        self.client.force_authenticate(user=self.user)

        response = self.client.post(
            f"/api/v1/quotes/{quote.id}/items/reorder/",
            {"item_ids": [first.id, first.id]},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "invalid_operation")

    def test_total_and_orders_hold_after_mixed_edits(self):
        quote = self.make_quote(cash_discount=Decimal("3"))
        added = item_service.add_item(
            quote.id,
            {"description": "Extra", "quantity": Decimal("4"), "unit_price": Decimal("2.5")},
            self.user,
        )
        first, second, third = self.ordered_items(quote)
        item_service.update_item(second.id, {"total_price": Decimal("9.99")}, self.user)
        item_service.reorder_items(quote.id, [third.id, first.id, second.id], self.user)
        item_service.delete_item(first.id, self.user)

        self.assertEqual([item.id for item in self.ordered_items(quote)], [added.id, second.id])
        self.assert_orders_dense(quote)
        self.assert_total_consistent(quote)
        self.assertEqual(Quote.objects.get(pk=quote.pk).total_price, Decimal("16.99"))

    def test_item_mutations_are_logged(self):
        quote = self.make_quote()

        with self.assertLogs("quotes.items", level="INFO") as cm:
            item_service.add_item(quote.id, {"description": "Logged", "total_price": Decimal("1")}, self.user)

        self.assertTrue(any("quote_item_added" in message for message in cm.output))


class QuoteListTests(QuoteTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.carla = Customer.objects.create(company=self.company, name="Carla", phone_landline="1133334444")
        self.cheap = self.make_quote(items=[{"description": "Small", "total_price": Decimal("5")}])
        self.expensive = self.make_quote(
            customer=self.carla,
            user=self.colleague,
            items=[{"description": "Big", "total_price": Decimal("500")}],
        )
        self.archived = self.make_quote()
        services.archive_quote(self.archived.id, self.user)
        self.make_quote(customer=self.other_customer, user=self.other_user)
        self.client.force_authenticate(user=self.user)

    def ids(self, response):
        self.assertEqual(response.status_code, 200)
        return [item["id"] for item in response.json()["results"]]

    def test_list_is_company_scoped_and_excludes_archived(self):
        ids = self.ids(self.client.get("/api/v1/quotes/"))

        self.assertEqual(sorted(ids), sorted([self.cheap.id, self.expensive.id]))

    def test_sort_by_total_price(self):
        ascending = self.ids(self.client.get("/api/v1/quotes/", {"sort_by": "total_price"}))
        descending = self.ids(self.client.get("/api/v1/quotes/", {"sort_by": "total_price", "descending": "true"}))

        self.assertEqual(ascending, [self.cheap.id, self.expensive.id])
        self.assertEqual(descending, [self.expensive.id, self.cheap.id])

    def test_filters(self):
        by_name = self.ids(self.client.get("/api/v1/quotes/", {"client_name": "carl"}))
        by_phone = self.ids(self.client.get("/api/v1/quotes/", {"client_phone": "3333"}))
        by_user = self.ids(self.client.get("/api/v1/quotes/", {"user_id": self.colleague.id}))
        future = (timezone.now() + timedelta(days=1)).isoformat()
        by_date = self.ids(self.client.get("/api/v1/quotes/", {"created_from": future}))

        self.assertEqual(by_name, [self.expensive.id])
        self.assertEqual(by_phone, [self.expensive.id])
        self.assertEqual(by_user, [self.expensive.id])
        self.assertEqual(by_date, [])

    def test_invalid_sort_is_a_validation_error(self):
        response = self.client.get("/api/v1/quotes/", {"sort_by": "password"})

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "validation_error")


class DashboardTests(QuoteTestMixin, TestCase):
    def test_stats_compare_this_month_with_last_month(self):
        now = timezone.now()
        current = self.make_quote(items=[{"description": "Now", "total_price": Decimal("100")}])
        previous = self.make_quote(items=[{"description": "Before", "total_price": Decimal("40")}])
        last_month = now.replace(day=1) - timedelta(days=3)
        Quote.objects.filter(pk=previous.pk).update(created_at=last_month)
        self.make_quote(customer=self.other_customer, user=self.other_user)

        stats = get_dashboard_stats(self.company.id, now=now)

        self.assertEqual(stats["total_quotes"], 2)
        self.assertEqual(stats["quotes_this_month"], 1)
        self.assertEqual(stats["quotes_last_month"], 1)
        self.assertEqual(stats["revenue_this_month"], current.total_price)
        self.assertEqual(stats["revenue_last_month"], Decimal("40"))
        self.assertEqual(stats["total_customers"], 1)
        self.assertEqual(stats["total_coworkers"], 2)

    def test_stats_endpoint(self):
        self.make_quote()
        self.client.force_authenticate(user=self.user)

        response = self.client.get("/api/v1/dashboard/stats/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["total_quotes"], 1)
        self.assertEqual(Decimal(response.json()["revenue_this_month"]), Decimal("35"))
