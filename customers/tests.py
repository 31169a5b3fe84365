from datetime import timedelta

from django.contrib.auth import get_user_model
from django.test import TestCase
from django.utils import timezone
from rest_framework.test import APIClient

from common.exceptions import BusinessRuleError, TenancyViolation
from core.models import Company
from customers import relationships as relationship_service
from customers import services
from customers.models import Customer, CustomerRelationship


class CustomerTestMixin:
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()

        self.company_a = Company.objects.create(name="Company A")
        self.company_b = Company.objects.create(name="Company B")
        self.user_a = self.user_model.objects.create_user(
            username="customers-a",
            password="pass1234",
            company=self.company_a,
        )
        self.user_b = self.user_model.objects.create_user(
            username="customers-b",
            password="pass1234",
            company=self.company_b,
        )
        self.customer_a = Customer.objects.create(company=self.company_a, name="Alice", phone_mobile="11999990000")
        self.customer_b = Customer.objects.create(company=self.company_b, name="Bob")


class CustomerApiTests(CustomerTestMixin, TestCase):
    def test_create_customer_ignores_injected_company(self):
        self.client.force_authenticate(user=self.user_a)

        response = self.client.post(
            "/api/v1/customers/",
            {
                "name": "Carla",
                "company": self.company_b.id,
                "phone": {"mobile": "11988887777", "landline": "1133334444"},
                "address": {"street": "Rua A", "number": "10", "city": "Sao Paulo", "state": "SP"},
                "relationships": [{"description": "First contact"}],
            },
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        payload = response.json()
        created = Customer.objects.get(id=payload["id"])
        self.assertEqual(created.company_id, self.company_a.id)
        self.assertEqual(created.phone_mobile, "11988887777")
        self.assertEqual(created.address["city"], "Sao Paulo")
        self.assertEqual(payload["phone"], {"mobile": "11988887777", "landline": "1133334444"})
        self.assertEqual([item["description"] for item in payload["relationships"]], ["First contact"])

    def test_create_customer_requires_name(self):
        self.client.force_authenticate(user=self.user_a)

        response = self.client.post("/api/v1/customers/", {"email": "x@example.com"}, format="json")

        self.assertEqual(response.status_code, 400)
        payload = response.json()
        self.assertEqual(payload["code"], "validation_error")
        self.assertIn("name", payload["errors"])

    def test_other_company_customer_is_forbidden(self):
        self.client.force_authenticate(user=self.user_a)

        with self.assertLogs("security.authorization", level="WARNING") as cm:
            response = self.client.get(f"/api/v1/customers/{self.customer_b.id}/")

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["code"], "tenant_forbidden")
        self.assertTrue(any("tenant_access_denied" in message for message in cm.output))

    def test_missing_customer_is_not_found(self):
        self.client.force_authenticate(user=self.user_a)

        response = self.client.get("/api/v1/customers/999999/")

        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["code"], "not_found")

    def test_update_keeps_company_and_sets_updated_at(self):
        self.client.force_authenticate(user=self.user_a)

        response = self.client.patch(
            f"/api/v1/customers/{self.customer_a.id}/",
            {"name": "Alice Renamed", "company": self.company_b.id},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        self.customer_a.refresh_from_db()
        self.assertEqual(self.customer_a.name, "Alice Renamed")
        self.assertEqual(self.customer_a.company_id, self.company_a.id)
        self.assertIsNotNone(self.customer_a.updated_at)

    def test_update_other_company_customer_is_forbidden(self):
        self.client.force_authenticate(user=self.user_a)

        response = self.client.patch(f"/api/v1/customers/{self.customer_b.id}/", {"name": "Hijacked"}, format="json")

        self.assertEqual(response.status_code, 403)
        self.customer_b.refresh_from_db()
        self.assertEqual(self.customer_b.name, "Bob")

    def test_soft_delete_hides_customer_but_keeps_row(self):
        self.client.force_authenticate(user=self.user_a)

        delete_response = self.client.delete(f"/api/v1/customers/{self.customer_a.id}/")
        get_response = self.client.get(f"/api/v1/customers/{self.customer_a.id}/")

        self.assertEqual(delete_response.status_code, 204)
        self.assertEqual(get_response.status_code, 404)
        self.assertTrue(Customer.all_objects.get(id=self.customer_a.id).is_deleted)
        self.assertFalse(Customer.objects.filter(id=self.customer_a.id).exists())

    def test_list_is_scoped_to_company(self):
        Customer.objects.create(company=self.company_a, name="Zed", is_deleted=True)
        self.client.force_authenticate(user=self.user_a)

        response = self.client.get("/api/v1/customers/")

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(sorted(payload.keys()), ["count", "next", "page", "page_size", "previous", "results"])
        self.assertEqual([item["id"] for item in payload["results"]], [self.customer_a.id])

    def test_user_without_company_cannot_use_customers(self):
        orphan = self.user_model.objects.create_user(username="orphan", password="pass1234")
        self.client.force_authenticate(user=orphan)

        response = self.client.get("/api/v1/customers/")

        self.assertEqual(response.status_code, 403)


class CustomerSearchTests(CustomerTestMixin, TestCase):
    def setUp(self):
        super().setUp()
        self.maria_silva = Customer.objects.create(company=self.company_a, name="Maria Silva")
        self.maria_souza = Customer.objects.create(company=self.company_a, name="Maria Souza")
        self.joao_silva = Customer.objects.create(company=self.company_a, name="Joao Silva", phone_landline="1140041234")
        Customer.objects.create(company=self.company_b, name="Maria Silva")

    def test_search_ranks_by_matched_words_then_name(self):
        results = list(services.search_customers(self.user_a, "maria SILVA"))

        self.assertEqual(results, [self.maria_silva, self.joao_silva, self.maria_souza])
        self.assertEqual(results[0].match_score, 2)

    def test_search_matches_phone_numbers(self):
        results = list(services.search_customers(self.user_a, "4004"))

        self.assertEqual(results, [self.joao_silva])

    def test_empty_term_returns_all_live_customers_by_name(self):
        names = [customer.name for customer in services.search_customers(self.user_a, "   ")]

        self.assertEqual(names, ["Alice", "Joao Silva", "Maria Silva", "Maria Souza"])

    def test_search_endpoint_is_paginated(self):
        self.client.force_authenticate(user=self.user_a)

        response = self.client.get("/api/v1/customers/search/", {"term": "silva", "page_size": 1})

        self.assertEqual(response.status_code, 200)
        payload = response.json()
        self.assertEqual(payload["count"], 2)
        self.assertEqual(len(payload["results"]), 1)
        self.assertEqual(payload["results"][0]["match_score"], 1)


class CustomerRelationshipTests(CustomerTestMixin, TestCase):
    def test_validate_relationship_reports_messages(self):
        self.assertEqual(relationship_service.validate_relationship({"description": "  "}), ["Description is required."])
        self.assertEqual(
            relationship_service.validate_relationship({"description": "x" * 501}),
            ["Description must be at most 500 characters."],
        )
        self.assertTrue(relationship_service.is_valid_relationship({"description": "Called back"}))

    def test_relationships_are_listed_newest_first(self):
        now = timezone.now()
        relationship_service.add_or_update_relationships(
            self.customer_a.id,
            [
                {"description": "Yesterday", "date_time": now - timedelta(days=1)},
                {"description": "Today", "date_time": now},
            ],
            self.user_a,
        )

        listed = relationship_service.list_relationships(self.customer_a.id, self.user_a)

        self.assertEqual([relationship.description for relationship in listed], ["Today", "Yesterday"])

    def test_invalid_batch_is_rejected_whole(self):
        with self.assertRaises(BusinessRuleError) as ctx:
            relationship_service.add_or_update_relationships(
                self.customer_a.id,
                [{"description": "Valid"}, {"description": ""}, {"description": "y" * 600}],
                self.user_a,
            )

        self.assertEqual(len(ctx.exception.detail), 2)
        self.assertFalse(CustomerRelationship.objects.filter(customer=self.customer_a).exists())

    def test_create_defaults_date_time_and_update_existing(self):
        created = relationship_service.add_or_update_relationships(
            self.customer_a.id, [{"id": 0, "description": "Visit"}], self.user_a
        )[0]
        self.assertIsNotNone(created.date_time)

        updated = relationship_service.add_or_update_relationships(
            self.customer_a.id, [{"id": created.id, "description": "Visit rescheduled"}], self.user_a
        )[0]

        self.assertEqual(updated.id, created.id)
        self.assertEqual(CustomerRelationship.objects.get(id=created.id).description, "Visit rescheduled")
        self.assertIsNotNone(updated.updated_at)

    def test_update_of_other_customer_relationship_is_rejected(self):
        other_customer = Customer.objects.create(company=self.company_a, name="Other")
        foreign = CustomerRelationship.objects.create(customer=other_customer, description="Not yours")

        with self.assertRaises(BusinessRuleError):
            relationship_service.add_or_update_relationships(
                self.customer_a.id, [{"id": foreign.id, "description": "Stolen"}], self.user_a
            )

        foreign.refresh_from_db()
        self.assertEqual(foreign.description, "Not yours")

    def test_relationships_of_other_company_are_forbidden(self):
        with self.assertRaises(TenancyViolation):
            relationship_service.list_relationships(self.customer_b.id, self.user_a)

        self.client.force_authenticate(user=self.user_a)
        response = self.client.post(
            f"/api/v1/customers/{self.customer_b.id}/relationships/",
            [{"description": "Sneaky"}],
            format="json",
        )
        self.assertEqual(response.status_code, 403)
        self.assertFalse(CustomerRelationship.objects.filter(customer=self.customer_b).exists())

    def test_delete_relationships_rejects_cross_customer_ids(self):
        own = CustomerRelationship.objects.create(customer=self.customer_a, description="Own")
        other_customer = Customer.objects.create(company=self.company_a, name="Other")
        foreign = CustomerRelationship.objects.create(customer=other_customer, description="Foreign")
        self.client.force_authenticate(user=self.user_a)

        response = self.client.delete(
            f"/api/v1/customers/{self.customer_a.id}/relationships/",
            {"ids": [own.id, foreign.id]},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "business_rule_violation")
        self.assertFalse(CustomerRelationship.all_objects.get(id=own.id).is_deleted)
        self.assertFalse(CustomerRelationship.all_objects.get(id=foreign.id).is_deleted)

    def test_delete_relationships_is_logical(self):
        own = CustomerRelationship.objects.create(customer=self.customer_a, description="Own")
        self.client.force_authenticate(user=self.user_a)

        delete_response = self.client.delete(
            f"/api/v1/customers/{self.customer_a.id}/relationships/",
            {"ids": [own.id]},
            format="json",
        )
        list_response = self.client.get(f"/api/v1/customers/{self.customer_a.id}/relationships/")

        self.assertEqual(delete_response.status_code, 204)
        self.assertEqual(list_response.json(), [])
        self.assertTrue(CustomerRelationship.all_objects.get(id=own.id).is_deleted)

    def test_invalid_relationship_over_http_returns_all_messages(self):
        self.client.force_authenticate(user=self.user_a)

        response = self.client.post(
            f"/api/v1/customers/{self.customer_a.id}/relationships/",
            [{"description": ""}, {"description": "z" * 501}],
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        payload = response.json()
        self.assertEqual(payload["code"], "business_rule_violation")
        self.assertEqual(payload["message"], "Description is required.")
        self.assertEqual(len(payload["errors"]), 2)
