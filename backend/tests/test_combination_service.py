# Overview: Pytest coverage for combination expansion and SKU/price/name derivation.

from decimal import Decimal
from itertools import combinations

import pytest

from stockmatrix.errors import InvalidAttributeSet
from stockmatrix.services.attribute_set import Attribute
from stockmatrix.services.combination_service import (
    calculate_price,
    combination_advisory,
    combination_count,
    combination_key,
    derive_sku,
    generate_matrix,
    sanitize_sku,
)


SIZE = Attribute.of("Size", ["S", "M"])
COLOR = Attribute.of("Color", ["Red", "Blue"])


class TestGenerateMatrix:
    def test_tshirt_matrix(self):
        """Size x Color with a Size:M modifier yields four ordered cells."""
        cells = generate_matrix([SIZE, COLOR], "TS", Decimal("10.00"), {"Size": {"M": Decimal("2.00")}})

        assert [c.sku for c in cells] == ["TS-S-Red", "TS-S-Blue", "TS-M-Red", "TS-M-Blue"]
        assert [c.price for c in cells] == [
            Decimal("10.00"), Decimal("10.00"), Decimal("12.00"), Decimal("12.00"),
        ]
        assert cells[0].name == "S - Red"
        assert cells[0].attributes == [{"name": "Size", "value": "S"}, {"name": "Color", "value": "Red"}]
        assert cells[0].id == "Size=S|Color=Red"

    def test_count_is_product_of_value_counts(self):
        attrs = [
            Attribute.of("A", ["1", "2", "3"]),
            Attribute.of("B", ["x", "y"]),
            Attribute.of("C", ["p", "q", "r", "s"]),
        ]
        cells = generate_matrix(attrs, "", 0)
        assert len(cells) == 3 * 2 * 4 == combination_count(attrs)

    def test_every_value_pair_appears(self):
        attrs = [
            Attribute.of("A", ["1", "2"]),
            Attribute.of("B", ["x", "y", "z"]),
            Attribute.of("C", ["p", "q"]),
        ]
        cells = generate_matrix(attrs, "", 0)
        seen = {frozenset(c.combination) for c in cells}
        for a1, a2 in combinations(attrs, 2):
            for v1 in a1.values:
                for v2 in a2.values:
                    assert any({(a1.name, v1), (a2.name, v2)} <= combo for combo in seen)

    def test_deep_attribute_list_is_not_recursive(self):
        attrs = [Attribute.of(f"A{i}", ["x"]) for i in range(2000)]
        cells = generate_matrix(attrs, "", 0)
        assert len(cells) == 1

    def test_single_value_attribute(self):
        cells = generate_matrix([Attribute.of("Material", ["Cotton"])], "SHIRT", 5)
        assert [c.sku for c in cells] == ["SHIRT-Cotton"]

    def test_blank_base_sku_is_omitted(self):
        cells = generate_matrix([SIZE], "  ", 0)
        assert cells[0].sku == "S"

    def test_empty_attributes_raise(self):
        with pytest.raises(InvalidAttributeSet):
            generate_matrix([], "TS", 10)

    def test_attribute_without_values_raises(self):
        with pytest.raises(InvalidAttributeSet):
            generate_matrix([Attribute.of("Size", [])], "TS", 10)

    def test_invalid_base_price_raises(self):
        with pytest.raises(InvalidAttributeSet):
            generate_matrix([SIZE], "TS", "ten")

    def test_regeneration_is_deterministic(self):
        first = generate_matrix([SIZE, COLOR], "TS", 10)
        second = generate_matrix([SIZE, COLOR], "TS", 10)
        assert first == second

    def test_base_stock_is_applied(self):
        cells = generate_matrix([SIZE], "TS", 10, base_stock=4)
        assert {c.stock for c in cells} == {4}

    def test_ids_stay_unique_when_values_contain_separators(self):
        """Values holding "|" and "=" must not fold two combinations onto one id."""
        attrs = [Attribute.of("A", ["p", "p|B=x"]), Attribute.of("B", ["y", "x|B=y"])]
        cells = generate_matrix(attrs, "S", 1)

        ids = [c.id for c in cells]
        assert len(ids) == 4
        assert len(set(ids)) == 4

    def test_plain_keys_are_unchanged(self):
        assert combination_key((("Size", "S"), ("Color", "Red"))) == "Size=S|Color=Red"
        assert combination_key((("A", "a\\b"),)) == "A=a\\\\b"

    def test_unknown_sku_pattern_raises(self):
        with pytest.raises(InvalidAttributeSet):
            generate_matrix([SIZE], "TS", 10, sku_pattern="random")


class TestSkuPatterns:
    def test_attributes_pattern_is_default(self):
        cells = generate_matrix([SIZE, COLOR], "TS", 10, sku_pattern="attributes")
        assert [c.sku for c in cells] == ["TS-S-Red", "TS-S-Blue", "TS-M-Red", "TS-M-Blue"]

    def test_sequential_pattern(self):
        cells = generate_matrix([SIZE, COLOR], "TS", 10, sku_pattern="sequential")
        assert [c.sku for c in cells] == ["TS-VAR-001", "TS-VAR-002", "TS-VAR-003", "TS-VAR-004"]

    def test_incremental_pattern(self):
        cells = generate_matrix([SIZE, COLOR], "TS", 10, sku_pattern="incremental")
        assert [c.sku for c in cells] == ["TS-A", "TS-B", "TS-C", "TS-D"]

    def test_incremental_pattern_cycles_past_z(self):
        assert derive_sku("TS", (), pattern="incremental", index=25) == "TS-Z"
        assert derive_sku("TS", (), pattern="incremental", index=26) == "TS-A1"
        assert derive_sku("TS", (), pattern="incremental", index=53) == "TS-B2"

    def test_sequential_pattern_without_base(self):
        assert derive_sku("", (), pattern="sequential", index=9) == "VAR-010"

    def test_patterns_keep_ids_and_names(self):
        by_pattern = {
            p: generate_matrix([SIZE, COLOR], "TS", 10, sku_pattern=p)
            for p in ("attributes", "sequential", "incremental")
        }
        ids = {p: [c.id for c in cells] for p, cells in by_pattern.items()}
        assert ids["attributes"] == ids["sequential"] == ids["incremental"]
        assert by_pattern["sequential"][0].name == "S - Red"

    def test_sanitize_applies_to_every_pattern(self):
        cells = generate_matrix([SIZE], "ts", 10, sku_pattern="sequential", sanitize=True)
        assert cells[0].sku == "TS-VAR-001"


class TestDerivation:
    def test_price_rounds_half_up(self):
        price = calculate_price(Decimal("10.005"), (("Size", "S"),))
        assert price == Decimal("10.01")

    def test_missing_modifier_contributes_zero(self):
        price = calculate_price(10, (("Size", "XL"),), {"Size": {"S": "1.00"}})
        assert price == Decimal("10.00")

    def test_negative_total_is_floored_at_zero(self):
        price = calculate_price(Decimal("5.00"), (("Size", "S"),), {"Size": {"S": "-7.50"}})
        assert price == Decimal("0.00")

    def test_modifiers_from_several_attributes_add_up(self):
        combo = (("Size", "L"), ("Color", "Gold"))
        price = calculate_price("20", combo, {"Size": {"L": "2.50"}, "Color": {"Gold": 5}})
        assert price == Decimal("27.50")

    def test_sanitize_sku(self):
        assert sanitize_sku("ts-s/red blue") == "TS-SREDBLUE"
        assert len(sanitize_sku("X" * 80)) == 50

    def test_derive_sku_with_sanitize(self):
        sku = derive_sku("ts", (("Size", "x l"), ("Color", "Red!")), sanitize=True)
        assert sku == "TS-XL-RED"


class TestAdvisory:
    def test_no_warning_at_or_below_threshold(self):
        assert combination_advisory(500, 500) is None

    def test_warning_above_threshold(self):
        assert "large number" in combination_advisory(501, 500)

    def test_strong_warning_past_twice_threshold(self):
        assert "too many" in combination_advisory(1001, 500)

    def test_large_matrix_still_generates(self):
        attrs = [Attribute.of("A", [str(i) for i in range(30)]), Attribute.of("B", [str(i) for i in range(20)])]
        cells = generate_matrix(attrs, "", 1)
        assert len(cells) == 600
        assert combination_advisory(len(cells)) is not None
