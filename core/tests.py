from django.contrib.auth import get_user_model
from django.test import TestCase
from rest_framework.test import APIClient
from rest_framework_simplejwt.tokens import AccessToken

from core.models import Company


class CoworkerTenancyTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()

        self.company_a = Company.objects.create(name="Company A")
        self.company_b = Company.objects.create(name="Company B")

        self.admin_a = self.user_model.objects.create_user(
            username="admin-a",
            password="pass1234",
            company=self.company_a,
            profile="admin",
        )
        self.employee_a = self.user_model.objects.create_user(
            username="employee-a",
            password="pass1234",
            company=self.company_a,
        )
        self.employee_b = self.user_model.objects.create_user(
            username="employee-b",
            password="pass1234",
            company=self.company_b,
        )

    def test_admin_lists_only_own_company_coworkers(self):
        self.client.force_authenticate(user=self.admin_a)

        response = self.client.get("/api/v1/coworkers/")

        self.assertEqual(response.status_code, 200)
        ids = {item["id"] for item in response.json()["results"]}
        self.assertEqual(ids, {self.admin_a.id, self.employee_a.id})

    def test_inactive_coworkers_are_hidden_unless_requested(self):
        self.employee_a.deactivate()
        self.client.force_authenticate(user=self.admin_a)

        default_ids = {item["id"] for item in self.client.get("/api/v1/coworkers/").json()["results"]}
        all_ids = {item["id"] for item in self.client.get("/api/v1/coworkers/?include_inactive=true").json()["results"]}

        self.assertNotIn(self.employee_a.id, default_ids)
        self.assertIn(self.employee_a.id, all_ids)

    def test_employee_cannot_list_coworkers_and_denial_is_logged(self):
        self.client.force_authenticate(user=self.employee_a)

        with self.assertLogs("security.authorization", level="WARNING") as cm:
            response = self.client.get("/api/v1/coworkers/")

        self.assertEqual(response.status_code, 403)
        self.assertTrue(any("permission_denied" in message for message in cm.output))

    def test_system_admin_has_admin_rights(self):
        operator = self.user_model.objects.create_user(
            username="operator",
            password="pass1234",
            company=self.company_a,
            profile="system_admin",
        )
        self.assertTrue(operator.is_system_admin)
        self.assertFalse(self.admin_a.is_system_admin)
        self.client.force_authenticate(user=operator)

        response = self.client.get("/api/v1/coworkers/")

        self.assertEqual(response.status_code, 200)
        self.assertIn(self.employee_a.id, {item["id"] for item in response.json()["results"]})

    def test_admin_creates_employee_in_own_company(self):
        self.client.force_authenticate(user=self.admin_a)

        response = self.client.post(
            "/api/v1/coworkers/",
            {"username": "new-hire", "email": "New.Hire@Example.com", "first_name": "New"},
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        created = self.user_model.objects.get(id=response.json()["id"])
        self.assertEqual(created.company_id, self.company_a.id)
        self.assertEqual(created.profile, "employee")
        self.assertEqual(created.email, "new.hire@example.com")
        self.assertFalse(created.has_usable_password())

    def test_admin_cannot_create_admin_coworker(self):
        self.client.force_authenticate(user=self.admin_a)

        response = self.client.post(
            "/api/v1/coworkers/",
            {"username": "another-admin", "profile": "admin"},
            format="json",
        )

        self.assertEqual(response.status_code, 403)
        self.assertFalse(self.user_model.objects.filter(username="another-admin").exists())

    def test_other_company_coworker_is_forbidden(self):
        self.client.force_authenticate(user=self.admin_a)

        response = self.client.patch(
            f"/api/v1/coworkers/{self.employee_b.id}/",
            {"first_name": "Hijacked"},
            format="json",
        )

        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["code"], "tenant_forbidden")
        self.employee_b.refresh_from_db()
        self.assertEqual(self.employee_b.first_name, "")

    def test_employee_can_update_self_but_not_own_profile(self):
        self.client.force_authenticate(user=self.employee_a)

        name_response = self.client.patch(
            f"/api/v1/coworkers/{self.employee_a.id}/",
            {"first_name": "Renamed"},
            format="json",
        )
        profile_response = self.client.patch(
            f"/api/v1/coworkers/{self.employee_a.id}/",
            {"profile": "admin"},
            format="json",
        )

        self.assertEqual(name_response.status_code, 200)
        self.assertEqual(name_response.json()["first_name"], "Renamed")
        self.assertEqual(profile_response.status_code, 403)
        self.employee_a.refresh_from_db()
        self.assertEqual(self.employee_a.profile, "employee")

    def test_deactivate_and_reactivate_coworker(self):
        self.client.force_authenticate(user=self.admin_a)

        delete_response = self.client.delete(f"/api/v1/coworkers/{self.employee_a.id}/")
        self.employee_a.refresh_from_db()
        self.assertEqual(delete_response.status_code, 204)
        self.assertEqual(self.employee_a.profile, "inactive")
        self.assertFalse(self.employee_a.is_active)

        reactivate_response = self.client.post(f"/api/v1/coworkers/{self.employee_a.id}/reactivate/")
        self.employee_a.refresh_from_db()
        self.assertEqual(reactivate_response.status_code, 200)
        self.assertEqual(self.employee_a.profile, "employee")
        self.assertTrue(self.employee_a.is_active)

    def test_admin_cannot_deactivate_self(self):
        self.client.force_authenticate(user=self.admin_a)

        response = self.client.delete(f"/api/v1/coworkers/{self.admin_a.id}/")

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "invalid_operation")


class CurrentCompanyTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.company = Company.objects.create(name="Acme", document="12345678000199")
        self.admin = self.user_model.objects.create_user(
            username="company-admin",
            password="pass1234",
            company=self.company,
            profile="admin",
        )
        self.employee = self.user_model.objects.create_user(
            username="company-employee",
            password="pass1234",
            company=self.company,
        )

    def test_employee_reads_own_company(self):
        self.client.force_authenticate(user=self.employee)

        response = self.client.get("/api/v1/company/")

        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["name"], "Acme")

    def test_only_admin_updates_company(self):
        self.client.force_authenticate(user=self.employee)
        denied = self.client.patch("/api/v1/company/", {"name": "Renamed"}, format="json")

        self.client.force_authenticate(user=self.admin)
        allowed = self.client.patch("/api/v1/company/", {"name": "Renamed"}, format="json")

        self.assertEqual(denied.status_code, 403)
        self.assertEqual(allowed.status_code, 200)
        self.company.refresh_from_db()
        self.assertEqual(self.company.name, "Renamed")

    def test_user_without_company_is_rejected(self):
        orphan = self.user_model.objects.create_user(username="orphan", password="pass1234")
        self.client.force_authenticate(user=orphan)

        response = self.client.get("/api/v1/company/")

        self.assertEqual(response.status_code, 403)


class TokenTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.company = Company.objects.create(name="Token Co")
        self.user = self.user_model.objects.create_user(
            username="token-user",
            email="token@example.com",
            password="pass1234",
            company=self.company,
            profile="admin",
        )

    def test_token_by_email_carries_company_and_profile_claims(self):
        response = self.client.post(
            "/api/v1/token/",
            {"username": "TOKEN@example.com", "password": "pass1234"},
            format="json",
        )

        self.assertEqual(response.status_code, 200)
        access = AccessToken(response.json()["access"])
        self.assertEqual(access["company_id"], self.company.id)
        self.assertEqual(access["profile"], "admin")

    def test_deactivated_user_cannot_obtain_token(self):
        self.user.deactivate()

        response = self.client.post(
            "/api/v1/token/",
            {"username": "token-user", "password": "pass1234"},
            format="json",
        )

        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["status"], 401)


class HealthTests(TestCase):
    def test_healthz_and_readyz(self):
        client = APIClient()

        self.assertEqual(client.get("/api/v1/healthz/").json()["status"], "ok")
        self.assertEqual(client.get("/api/v1/readyz/").json()["status"], "ready")


class RegistrationTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()

    def test_register_creates_company_and_admin(self):
        response = self.client.post(
            "/api/v1/register/",
            {
                "company_name": "Clean Co",
                "username": "founder",
                "email": "Founder@Example.com",
                "password": "s3cret-pass",
                "first_name": "Ana",
            },
            format="json",
        )

        self.assertEqual(response.status_code, 201)
        payload = response.json()
        self.assertNotIn("password", payload)
        self.assertEqual(payload["profile"], "admin")
        user = self.user_model.objects.get(username="founder")
        self.assertEqual(user.company.name, "Clean Co")
        self.assertEqual(payload["company"], user.company_id)
        self.assertEqual(user.email, "founder@example.com")

        token_response = self.client.post(
            "/api/v1/token/",
            {"username": "founder@example.com", "password": "s3cret-pass"},
            format="json",
        )
        self.assertEqual(token_response.status_code, 200)
        self.assertEqual(AccessToken(token_response.json()["access"])["company_id"], user.company_id)

    def test_register_rejects_duplicate_email(self):
        existing_company = Company.objects.create(name="Existing")
        self.user_model.objects.create_user(
            username="existing",
            email="taken@example.com",
            password="pass1234",
            company=existing_company,
        )

        response = self.client.post(
            "/api/v1/register/",
            {"company_name": "Copycat", "username": "copycat", "email": "TAKEN@example.com", "password": "s3cret-pass"},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertIn("email", response.json()["errors"])
        self.assertFalse(Company.objects.filter(name="Copycat").exists())
        self.assertFalse(self.user_model.objects.filter(username="copycat").exists())

    def test_register_requires_company_name(self):
        response = self.client.post(
            "/api/v1/register/",
            {"username": "nameless", "password": "s3cret-pass"},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertIn("company_name", response.json()["errors"])
        self.assertEqual(Company.objects.count(), 0)


class PasswordTests(TestCase):
    def setUp(self):
        self.client = APIClient()
        self.user_model = get_user_model()
        self.company = Company.objects.create(name="Password Co")
        self.admin = self.user_model.objects.create_user(
            username="pw-admin",
            password="pass1234",
            company=self.company,
            profile="admin",
        )

    def test_created_coworker_sets_password_and_logs_in(self):
        self.client.force_authenticate(user=self.admin)
        created = self.client.post("/api/v1/coworkers/", {"username": "fresh", "email": "fresh@example.com"}, format="json")
        self.assertEqual(created.status_code, 201)
        coworker_id = created.json()["id"]

        token_response = self.client.post(f"/api/v1/coworkers/{coworker_id}/password-token/")
        self.assertEqual(token_response.status_code, 200)
        self.client.force_authenticate(user=None)

        confirm = self.client.post(
            "/api/v1/password/confirm/",
            {**token_response.json(), "new_password": "fresh-pass-1"},
            format="json",
        )
        login = self.client.post(
            "/api/v1/token/",
            {"username": "fresh@example.com", "password": "fresh-pass-1"},
            format="json",
        )

        self.assertEqual(confirm.status_code, 200)
        self.assertTrue(self.user_model.objects.get(id=coworker_id).has_usable_password())
        self.assertEqual(login.status_code, 200)
        self.assertIn("access", login.json())

    def test_password_token_is_single_use(self):
        self.client.force_authenticate(user=self.admin)
        coworker = self.user_model.objects.create_user(username="once", company=self.company)
        pair = self.client.post(f"/api/v1/coworkers/{coworker.id}/password-token/").json()
        self.client.force_authenticate(user=None)

        first = self.client.post("/api/v1/password/confirm/", {**pair, "new_password": "first-pass-1"}, format="json")
        second = self.client.post("/api/v1/password/confirm/", {**pair, "new_password": "second-pass-2"}, format="json")

        self.assertEqual(first.status_code, 200)
        self.assertEqual(second.status_code, 400)
        coworker.refresh_from_db()
        self.assertTrue(coworker.check_password("first-pass-1"))

    def test_confirm_rejects_bad_token(self):
        response = self.client.post(
            "/api/v1/password/confirm/",
            {"uid": "bm90LWEtdXNlcg", "token": "nope", "new_password": "whatever-1"},
            format="json",
        )

        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["code"], "validation_error")

    def test_employee_cannot_issue_password_tokens(self):
        employee = self.user_model.objects.create_user(username="pw-employee", password="pass1234", company=self.company)
        self.client.force_authenticate(user=employee)

        response = self.client.post(f"/api/v1/coworkers/{self.admin.id}/password-token/")

        self.assertEqual(response.status_code, 403)

    def test_change_password_requires_current_password(self):
        self.client.force_authenticate(user=self.admin)

        wrong = self.client.post(
            "/api/v1/password/change/",
            {"current_password": "not-it", "new_password": "brand-new-1"},
            format="json",
        )
        right = self.client.post(
            "/api/v1/password/change/",
            {"current_password": "pass1234", "new_password": "brand-new-1"},
            format="json",
        )

        self.assertEqual(wrong.status_code, 400)
        self.assertIn("current_password", wrong.json()["errors"])
        self.assertEqual(right.status_code, 200)
        self.admin.refresh_from_db()
        self.assertTrue(self.admin.check_password("brand-new-1"))

    def test_change_password_requires_authentication(self):
        response = self.client.post(
            "/api/v1/password/change/",
            {"current_password": "pass1234", "new_password": "brand-new-1"},
            format="json",
        )

        self.assertEqual(response.status_code, 401)
