# Overview: Pytest coverage for the variant commit gateway, variant reads, and stock aggregation.

from decimal import Decimal

import pytest

from conftest import ledger_rows, make_variant
from stockmatrix.errors import BatchTooLarge, DuplicateSku, ValidationFailed, VariantNotFound
from stockmatrix.models import InventoryTransaction, ProductVariant
from stockmatrix.services.matrix_session import MatrixSession
from stockmatrix.services.tenant_service import TenantAccessError
from stockmatrix.services.variant_service import (
    bulk_create_variants,
    bulk_delete_variants,
    bulk_update_variants,
    commit_matrix,
    delete_variant,
    ensure_unique_sku,
    find_variant_by_sku,
    get_product_stock_summary,
    get_variant,
    list_variants,
    update_variant,
)
from stockmatrix.services.stock_ledger_service import adjust_stock, reserve_stock
from stockmatrix.validation import ConflictError, ValidationError


class TestBulkCreate:
    def test_creates_variants_with_opening_ledger_row(self, db_session, tenant_a, product_a):
        result = bulk_create_variants(
            tenant_id=tenant_a.id,
            product_id=product_a.id,
            items=[
                {"sku": "TS-S", "attributes": [{"name": "Size", "value": "S"}], "price": "12.50", "stock": 4},
                {"sku": "TS-M", "name": "Medium"},
            ],
            actor="alice",
        )

        assert result.created_count == 2
        assert result.failures == []

        small, medium = result.created
        assert small.name == "S"
        assert small.price == Decimal("12.50")
        assert small.stock == 4
        assert small.reserved_stock == 0
        assert medium.name == "Medium"
        assert medium.price_cents == 1000  # falls back to the product price
        assert medium.stock == 0

        rows = ledger_rows(db_session, small.id)
        assert len(rows) == 1
        assert rows[0].transaction_type == InventoryTransaction.TYPE_RESTOCK
        assert rows[0].reason == "initial_stock"
        assert (rows[0].quantity_before, rows[0].quantity_after) == (0, 4)
        assert rows[0].actor == "alice"
        assert ledger_rows(db_session, medium.id) == []

    def test_reserved_stock_input_is_ignored(self, db_session, tenant_a, product_a):
        result = bulk_create_variants(
            tenant_id=tenant_a.id,
            product_id=product_a.id,
            items=[{"sku": "TS-L", "stock": 5, "reserved_stock": 3}],
        )
        assert result.created[0].reserved_stock == 0

    def test_partial_failure_on_existing_sku(self, db_session, tenant_a, product_a):
        """Scenario: three items, the second collides with a persisted variant."""
        make_variant(db_session, product_a, sku="TS-M-RED")

        result = bulk_create_variants(
            tenant_id=tenant_a.id,
            product_id=product_a.id,
            items=[{"sku": "TS-S-RED"}, {"sku": "ts-m-red"}, {"sku": "TS-L-RED"}],
        )

        assert result.created_count == 2
        assert [v.sku for v in result.created] == ["TS-S-RED", "TS-L-RED"]
        assert len(result.failures) == 1
        failure = result.failures[0]
        assert failure["index"] == 1
        assert failure["sku"] == "ts-m-red"
        assert "duplicate" in failure["message"].lower()

        skus = {v.sku for v in db_session.query(ProductVariant).all()}
        assert skus == {"TS-M-RED", "TS-S-RED", "TS-L-RED"}

    def test_duplicate_within_batch(self, db_session, tenant_a, product_a):
        result = bulk_create_variants(
            tenant_id=tenant_a.id,
            product_id=product_a.id,
            items=[{"sku": "TS-X"}, {"sku": "TS-X"}],
        )
        assert result.created_count == 1
        assert result.failures[0]["index"] == 1
        assert "duplicate" in result.failures[0]["message"].lower()

    def test_invalid_items_do_not_stop_batch(self, db_session, tenant_a, product_a):
        result = bulk_create_variants(
            tenant_id=tenant_a.id,
            product_id=product_a.id,
            items=[
                {"sku": "TS-1", "price": "-1"},
                {"sku": "TS-2", "stock": -3},
                {"name": "no sku"},
                "not an object",
                {"sku": "TS-5", "stock": 2},
            ],
        )
        assert [f["index"] for f in result.failures] == [0, 1, 2, 3]
        assert [v.sku for v in result.created] == ["TS-5"]

    def test_same_sku_allowed_in_other_tenant(self, db_session, tenant_a, tenant_b, product_a, product_b):
        make_variant(db_session, product_b, sku="SHARED")
        result = bulk_create_variants(tenant_id=tenant_a.id, product_id=product_a.id, items=[{"sku": "SHARED"}])
        assert result.created_count == 1

    def test_batch_too_large_attempts_nothing(self, db_session, tenant_a, product_a):
        items = [{"sku": f"TS-{i}"} for i in range(4)]
        with pytest.raises(BatchTooLarge) as exc:
            bulk_create_variants(tenant_id=tenant_a.id, product_id=product_a.id, items=items, max_items=3)
        assert exc.value.limit == 3
        assert db_session.query(ProductVariant).count() == 0

    def test_default_limit_comes_from_config(self, app, db_session, tenant_a, product_a):
        previous = app.config["VARIANT_BULK_MAX_ITEMS"]
        app.config["VARIANT_BULK_MAX_ITEMS"] = 2
        try:
            with pytest.raises(BatchTooLarge):
                bulk_create_variants(
                    tenant_id=tenant_a.id,
                    product_id=product_a.id,
                    items=[{"sku": "A"}, {"sku": "B"}, {"sku": "C"}],
                )
        finally:
            app.config["VARIANT_BULK_MAX_ITEMS"] = previous

    def test_empty_batch_rejected(self, db_session, tenant_a, product_a):
        with pytest.raises(ValidationError):
            bulk_create_variants(tenant_id=tenant_a.id, product_id=product_a.id, items=[])

    def test_foreign_product_rejected(self, db_session, tenant_a, product_b):
        with pytest.raises(TenantAccessError):
            bulk_create_variants(tenant_id=tenant_a.id, product_id=product_b.id, items=[{"sku": "X"}])


class TestCommitMatrix:
    def _session(self):
        s = MatrixSession("TS", Decimal("10.00"))
        s.add_attribute("Size", ["S", "M"])
        s.add_attribute("Color", ["Red"])
        s.generate_matrix()
        return s

    def test_commit_valid_matrix(self, db_session, tenant_a, product_a):
        session = self._session()
        session.update_cell(session.cells[0].id, stock=3)

        result = commit_matrix(session, tenant_id=tenant_a.id, product_id=product_a.id)

        assert result.created_count == 2
        assert session.cells == []
        assert not session.is_dirty
        variants = list_variants(tenant_id=tenant_a.id, product_id=product_a.id)
        assert [v.sku for v in variants] == ["TS-S-Red", "TS-M-Red"]
        assert variants[0].attributes == [{"name": "Size", "value": "S"}, {"name": "Color", "value": "Red"}]
        assert variants[0].stock == 3

    def test_invalid_matrix_writes_nothing(self, db_session, tenant_a, product_a):
        session = self._session()
        session.update_cell(session.cells[1].id, sku=session.cells[0].sku)

        with pytest.raises(ValidationFailed) as exc:
            commit_matrix(session, tenant_id=tenant_a.id, product_id=product_a.id)

        assert len(exc.value.errors) == 2
        assert db_session.query(ProductVariant).count() == 0
        assert len(session.cells) == 2

    def test_failed_cells_stay_in_session(self, db_session, tenant_a, product_a):
        make_variant(db_session, product_a, sku="TS-M-Red")
        session = self._session()

        result = commit_matrix(session, tenant_id=tenant_a.id, product_id=product_a.id)

        assert result.created_count == 1
        assert [c.sku for c in session.cells] == ["TS-M-Red"]


class TestReads:
    def test_get_variant_scoped_to_tenant(self, db_session, tenant_a, variant_a, variant_b):
        assert get_variant(tenant_id=tenant_a.id, variant_id=variant_a.id).sku == "TSHIRT-M-RED"
        with pytest.raises(VariantNotFound):
            get_variant(tenant_id=tenant_a.id, variant_id=variant_b.id)

    def test_find_variant_by_sku(self, db_session, tenant_a, tenant_b, variant_a):
        assert find_variant_by_sku(tenant_id=tenant_a.id, sku="tshirt-m-red").id == variant_a.id
        assert find_variant_by_sku(tenant_id=tenant_b.id, sku="TSHIRT-M-RED") is None

    def test_stock_summary(self, db_session, tenant_a, product_a):
        make_variant(
            db_session, product_a, sku="S-RED", stock=10, reserved=2, reorder_point=5,
            attributes=[{"name": "Size", "value": "S"}, {"name": "Color", "value": "Red"}],
        )
        make_variant(
            db_session, product_a, sku="M-RED", stock=2, reorder_point=5,
            attributes=[{"name": "Size", "value": "M"}, {"name": "Color", "value": "Red"}],
        )
        make_variant(
            db_session, product_a, sku="M-BLUE", stock=0, reorder_point=5,
            attributes=[{"name": "Size", "value": "M"}, {"name": "Color", "value": "Blue"}],
        )

        summary = get_product_stock_summary(tenant_id=tenant_a.id, product_id=product_a.id)

        assert summary["variant_count"] == 3
        assert summary["total_stock"] == 12
        assert summary["total_reserved"] == 2
        assert summary["total_available"] == 10
        assert [v["sku"] for v in summary["low_stock_variants"]] == ["M-RED"]
        assert summary["low_stock_variants"][0]["stock_status"] == "critical"
        assert [v["sku"] for v in summary["out_of_stock_variants"]] == ["M-BLUE"]
        assert summary["stock_by_attribute"]["Color"]["Red"] == {
            "stock": 12, "reserved_stock": 2, "available_stock": 10, "variant_count": 2,
        }
        assert summary["stock_by_attribute"]["Size"]["M"]["variant_count"] == 2


class TestEnsureUniqueSku:
    def test_free_sku_is_returned_as_is(self, db_session, tenant_a):
        assert ensure_unique_sku(tenant_id=tenant_a.id, sku="NEW-SKU") == "NEW-SKU"

    def test_taken_sku_gets_first_free_suffix(self, db_session, tenant_a, product_a):
        make_variant(db_session, product_a, sku="TS-M")
        assert ensure_unique_sku(tenant_id=tenant_a.id, sku="TS-M") == "TS-M-01"

        make_variant(db_session, product_a, sku="TS-M-01")
        assert ensure_unique_sku(tenant_id=tenant_a.id, sku="ts-m") == "ts-m-02"

    def test_batch_skus_count_as_taken(self, db_session, tenant_a):
        assert ensure_unique_sku(tenant_id=tenant_a.id, sku="TS-M", taken={"ts-m"}) == "TS-M-01"

    def test_other_tenant_does_not_block(self, db_session, tenant_a, variant_b):
        assert ensure_unique_sku(tenant_id=tenant_a.id, sku="MUG-WHITE") == "MUG-WHITE"

    def test_suffixed_sku_fits_the_column(self, db_session, tenant_a, product_a):
        long_sku = "L" * 64
        make_variant(db_session, product_a, sku=long_sku)

        unique = ensure_unique_sku(tenant_id=tenant_a.id, sku=long_sku)

        assert len(unique) == 64
        assert unique == "L" * 61 + "-01"

    def test_bulk_create_suffixes_taken_skus(self, db_session, tenant_a, product_a, variant_a):
        result = bulk_create_variants(
            tenant_id=tenant_a.id,
            product_id=product_a.id,
            items=[{"sku": "TSHIRT-M-RED"}, {"sku": "TSHIRT-M-RED"}],
            unique_skus=True,
        )

        assert result.failures == []
        assert [v.sku for v in result.created] == ["TSHIRT-M-RED-01", "TSHIRT-M-RED-02"]


class TestUpdateVariant:
    def test_updates_descriptive_fields(self, db_session, tenant_a, variant_a):
        updated = update_variant(
            tenant_id=tenant_a.id,
            variant_id=variant_a.id,
            payload={"name": "Medium Red", "price": "14.99", "reorder_point": 3, "is_active": False},
        )

        assert updated.name == "Medium Red"
        assert updated.price_cents == 1499
        assert updated.reorder_point == 3
        assert updated.is_active is False
        assert updated.stock == 10
        assert ledger_rows(db_session, variant_a.id) == []

    @pytest.mark.parametrize("field", ["stock", "reserved_stock"])
    def test_stock_counters_are_not_writable(self, db_session, tenant_a, variant_a, field):
        with pytest.raises(ValidationError):
            update_variant(tenant_id=tenant_a.id, variant_id=variant_a.id, payload={field: 99})

        db_session.expire_all()
        fresh = db_session.get(ProductVariant, variant_a.id)
        assert (fresh.stock, fresh.reserved_stock) == (10, 0)

    def test_sku_clash_raises_duplicate(self, db_session, tenant_a, product_a, variant_a):
        make_variant(db_session, product_a, sku="TSHIRT-L-RED")

        with pytest.raises(DuplicateSku):
            update_variant(tenant_id=tenant_a.id, variant_id=variant_a.id, payload={"sku": "tshirt-l-red"})

    def test_keeping_own_sku_is_allowed(self, db_session, tenant_a, variant_a):
        updated = update_variant(tenant_id=tenant_a.id, variant_id=variant_a.id, payload={"sku": "TSHIRT-M-RED"})
        assert updated.sku == "TSHIRT-M-RED"

    def test_other_tenant_and_deleted_variants_are_not_found(self, db_session, tenant_a, variant_a, variant_b):
        with pytest.raises(VariantNotFound):
            update_variant(tenant_id=tenant_a.id, variant_id=variant_b.id, payload={"name": "x"})

        delete_variant(tenant_id=tenant_a.id, variant_id=variant_a.id)
        with pytest.raises(VariantNotFound):
            update_variant(tenant_id=tenant_a.id, variant_id=variant_a.id, payload={"name": "x"})

    def test_bulk_update_partial_success(self, db_session, tenant_a, product_a, variant_a, variant_b):
        other = make_variant(db_session, product_a, sku="TSHIRT-L-RED")

        result = bulk_update_variants(
            tenant_id=tenant_a.id,
            product_id=product_a.id,
            items=[
                {"id": variant_a.id, "name": "Renamed"},
                {"id": other.id, "stock": 5},
                {"id": variant_b.id, "name": "Foreign"},
                {"name": "no id"},
                "not an object",
            ],
        )

        assert [v.id for v in result.updated] == [variant_a.id]
        assert [(f["index"], f["id"]) for f in result.failures] == [
            (1, other.id), (2, variant_b.id), (3, None), (4, None),
        ]
        assert result.failures[3]["message"] == "id must be an integer"
        assert result.failures[4]["message"] == "item must be an object"
        assert result.to_dict()["updated_count"] == 1


class TestDeleteVariant:
    def test_deleted_variant_is_hidden_but_keeps_its_sku(self, db_session, tenant_a, product_a, variant_a):
        deleted = delete_variant(tenant_id=tenant_a.id, variant_id=variant_a.id)

        assert deleted.is_deleted
        with pytest.raises(VariantNotFound):
            get_variant(tenant_id=tenant_a.id, variant_id=variant_a.id)
        assert list_variants(tenant_id=tenant_a.id, product_id=product_a.id) == []
        assert find_variant_by_sku(tenant_id=tenant_a.id, sku="TSHIRT-M-RED").id == variant_a.id

        result = bulk_create_variants(tenant_id=tenant_a.id, product_id=product_a.id, items=[{"sku": "TSHIRT-M-RED"}])
        assert result.created_count == 0

    def test_reserved_variant_cannot_be_deleted(self, db_session, tenant_a, variant_a):
        reserve_stock(tenant_id=tenant_a.id, variant_id=variant_a.id, quantity=2)

        with pytest.raises(ConflictError):
            delete_variant(tenant_id=tenant_a.id, variant_id=variant_a.id)

        assert get_variant(tenant_id=tenant_a.id, variant_id=variant_a.id).deleted_at is None

    def test_ledger_refuses_deleted_variant(self, db_session, tenant_a, variant_a):
        delete_variant(tenant_id=tenant_a.id, variant_id=variant_a.id)

        with pytest.raises(VariantNotFound):
            adjust_stock(tenant_id=tenant_a.id, variant_id=variant_a.id, delta=5)
        with pytest.raises(VariantNotFound):
            reserve_stock(tenant_id=tenant_a.id, variant_id=variant_a.id, quantity=1)

    def test_bulk_delete(self, db_session, tenant_a, product_a, variant_a, variant_b):
        reserved = make_variant(db_session, product_a, sku="TSHIRT-L-RED", stock=5, reserved=1)
        spare = make_variant(db_session, product_a, sku="TSHIRT-S-RED")

        result = bulk_delete_variants(
            tenant_id=tenant_a.id,
            product_id=product_a.id,
            variant_ids=[variant_a.id, spare.id, reserved.id, variant_b.id, "x"],
        )

        assert result["deleted_count"] == 2
        assert result["deleted_ids"] == [variant_a.id, spare.id]
        assert [f["id"] for f in result["failures"]] == [reserved.id, variant_b.id, "x"]
        assert [v.id for v in list_variants(tenant_id=tenant_a.id, product_id=product_a.id)] == [reserved.id]

    def test_bulk_delete_requires_ids(self, db_session, tenant_a, product_a):
        with pytest.raises(ValidationError):
            bulk_delete_variants(tenant_id=tenant_a.id, product_id=product_a.id, variant_ids=[])
