# Overview: HTTP-level tests for the variant template endpoints.

from conftest import tenant_headers
from stockmatrix.models import ProductVariant, VariantTemplate
from stockmatrix.services.template_service import seed_system_templates

BASE = "/api/variant-templates"

SIZES = {"attributes": [{"name": "Size", "values": ["S", "M"]}], "default_values": {"stock": 2}}


def create(client, tenant, **body):
    body.setdefault("name", "Shirt Sizes")
    body.setdefault("configuration", SIZES)
    return client.post(BASE, json=body, headers=tenant_headers(tenant))


class TestTemplateCrud:
    def test_create_list_get(self, client, db_session, tenant_a):
        resp = create(client, tenant_a, category="Fashion")
        assert resp.status_code == 201
        body = resp.get_json()
        assert body["slug"] == "shirt-sizes"
        assert body["estimated_variant_count"] == 2

        resp = client.get(f"{BASE}?category=Fashion", headers=tenant_headers(tenant_a))
        assert [t["slug"] for t in resp.get_json()["items"]] == ["shirt-sizes"]

        resp = client.get(f"{BASE}/{body['id']}", headers=tenant_headers(tenant_a))
        assert resp.status_code == 200
        assert resp.get_json()["configuration"]["sku_pattern"] == "attributes"

    def test_create_invalid_is_400(self, client, db_session, tenant_a):
        resp = create(client, tenant_a, configuration={"attributes": [{"name": "Size", "values": []}]})
        assert resp.status_code == 400
        assert resp.get_json()["error"] == "ValidationError"

    def test_duplicate_slug_is_409(self, client, db_session, tenant_a):
        create(client, tenant_a)
        resp = create(client, tenant_a)
        assert resp.status_code == 409

    def test_patch_and_delete(self, client, db_session, tenant_a):
        template_id = create(client, tenant_a).get_json()["id"]

        resp = client.patch(f"{BASE}/{template_id}", json={"is_active": False}, headers=tenant_headers(tenant_a))
        assert resp.status_code == 200
        assert resp.get_json()["is_active"] is False

        resp = client.delete(f"{BASE}/{template_id}", headers=tenant_headers(tenant_a))
        assert resp.status_code == 204
        db_session.expire_all()
        assert db_session.get(VariantTemplate, template_id) is None

    def test_other_tenant_template_is_404(self, client, db_session, tenant_a, tenant_b):
        template_id = create(client, tenant_a).get_json()["id"]

        resp = client.get(f"{BASE}/{template_id}", headers=tenant_headers(tenant_b))
        assert resp.status_code == 404
        assert resp.get_json()["error"] == "TemplateNotFound"

    def test_system_template_is_403_to_edit(self, client, db_session, tenant_a):
        seed_system_templates()
        clothing = db_session.query(VariantTemplate).filter_by(slug="clothing").one()

        resp = client.patch(f"{BASE}/{clothing.id}", json={"name": "Mine"}, headers=tenant_headers(tenant_a))
        assert resp.status_code == 403
        assert resp.get_json()["error"] == "TemplateReadOnly"

        resp = client.delete(f"{BASE}/{clothing.id}", headers=tenant_headers(tenant_a))
        assert resp.status_code == 403


class TestPreviewApplyRoutes:
    def test_preview(self, client, db_session, tenant_a, product_a):
        template_id = create(client, tenant_a).get_json()["id"]

        resp = client.post(
            f"{BASE}/{template_id}/preview", json={"product_id": product_a.id}, headers=tenant_headers(tenant_a)
        )
        assert resp.status_code == 200
        body = resp.get_json()
        assert body["combination_count"] == 2
        assert [c["sku"] for c in body["cells"]] == ["TSHIRT-S", "TSHIRT-M"]

    def test_preview_requires_product(self, client, db_session, tenant_a):
        template_id = create(client, tenant_a).get_json()["id"]
        resp = client.post(f"{BASE}/{template_id}/preview", json={}, headers=tenant_headers(tenant_a))
        assert resp.status_code == 400

    def test_apply_then_conflict_then_replace(self, client, db_session, tenant_a, product_a):
        template_id = create(client, tenant_a).get_json()["id"]
        url = f"{BASE}/{template_id}/apply"

        resp = client.post(url, json={"product_id": product_a.id}, headers=tenant_headers(tenant_a, "alice"))
        assert resp.status_code == 201
        assert resp.get_json()["created_count"] == 2

        resp = client.post(url, json={"product_id": product_a.id}, headers=tenant_headers(tenant_a))
        assert resp.status_code == 409
        assert resp.get_json()["error"] == "Conflict"

        resp = client.post(
            url, json={"product_id": product_a.id, "replace_existing": True}, headers=tenant_headers(tenant_a)
        )
        assert resp.status_code == 201
        db_session.expire_all()
        assert db_session.query(ProductVariant).filter(ProductVariant.deleted_at.isnot(None)).count() == 2
        assert db_session.get(VariantTemplate, template_id).usage_count == 2

    def test_apply_to_other_tenant_product_is_404(self, client, db_session, tenant_a, product_b):
        template_id = create(client, tenant_a).get_json()["id"]
        resp = client.post(
            f"{BASE}/{template_id}/apply", json={"product_id": product_b.id}, headers=tenant_headers(tenant_a)
        )
        assert resp.status_code == 404
