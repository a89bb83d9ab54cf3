"""
Line-item extraction tests.

Verifies:
- Duplicate cart lines are summed into one item
- box_id, product_id and cart_items are combined
- Malformed cart data is dropped with a warning, never raised
- Lock order is deterministic
"""

import json

import pytest

from kavara.services.errors import MalformedLineItemsWarning
from kavara.services.line_items import (
    LineItem,
    aggregate_line_items,
    extract_line_items,
    sort_for_locking,
)


class TestAggregation:

    def test_same_product_and_size_is_summed(self):
        order = {
            "cart_items": [
                {"type": "product", "id": "P1", "size": "M", "quantity": 2},
                {"type": "product", "id": "P1", "size": "M", "quantity": 3},
            ]
        }

        items = extract_line_items(order)

        assert items == [LineItem("product", "P1", "M", 5)]

    def test_different_sizes_stay_separate(self):
        order = {
            "cart_items": [
                {"type": "product", "id": "P1", "size": "M", "quantity": 1},
                {"type": "product", "id": "P1", "size": "L", "quantity": 1},
            ]
        }

        items = extract_line_items(order)

        assert {i.size for i in items} == {"M", "L"}
        assert all(i.quantity == 1 for i in items)

    def test_product_id_and_matching_cart_line_are_merged(self):
        order = {
            "product_id": "P1",
            "selected_size": "M",
            "cart_items": [{"type": "product", "id": "P1", "size": "M", "quantity": 2}],
        }

        items = extract_line_items(order)

        assert items == [LineItem("product", "P1", "M", 3)]

    def test_first_seen_order_is_kept(self):
        items = aggregate_line_items([
            LineItem("product", "P2", None, 1),
            LineItem("box", "B1", None, 1),
            LineItem("product", "P2", None, 4),
        ])

        assert [i.key for i in items] == ["product|P2|default", "box|B1|default"]
        assert items[0].quantity == 5

    def test_sizeless_and_default_size_are_one_item(self):
        order = {
            "box_id": "B1",
            "cart_items": [{"type": "box", "id": "B1", "size": "default", "quantity": 1}],
        }

        items = extract_line_items(order)

        assert len(items) == 1
        assert items[0].quantity == 2

    def test_numeric_sizes_become_strings(self):
        order = {
            "cart_items": [
                {"type": "product", "id": "P1", "size": 42, "quantity": 1},
                {"type": "product", "id": "P1", "size": "M", "quantity": 1},
                {"type": "product", "id": "P1", "size": "42", "quantity": 1},
            ]
        }

        items = extract_line_items(order)

        assert items == [
            LineItem("product", "P1", "42", 2),
            LineItem("product", "P1", "M", 1),
        ]
        assert [i.size for i in sort_for_locking(items)] == ["42", "M"]


class TestSources:

    def test_box_and_cart_yield_two_items(self):
        order = {
            "box_id": "B1",
            "cart_items": json.dumps([{"type": "product", "id": "P1", "quantity": 1}]),
        }

        items = extract_line_items(order)

        assert items == [
            LineItem("box", "B1", None, 1),
            LineItem("product", "P1", None, 1),
        ]

    def test_camel_case_keys_are_accepted(self):
        order = {
            "boxId": "B1",
            "selectedSize": "S",
            "cartItems": [{"type": "product", "id": "P1", "selectedSize": "L", "quantity": 1}],
        }

        items = extract_line_items(order)

        assert LineItem("box", "B1", "S", 1) in items
        assert LineItem("product", "P1", "L", 1) in items

    def test_missing_or_zero_quantity_means_one(self):
        order = {
            "cart_items": [
                {"type": "product", "id": "P1"},
                {"type": "box", "id": "B1", "quantity": 0},
            ]
        }

        items = extract_line_items(order)

        assert [i.quantity for i in items] == [1, 1]

    def test_numeric_ids_become_strings(self):
        items = extract_line_items({"cart_items": [{"type": "product", "id": 42, "quantity": "2"}]})

        assert items == [LineItem("product", "42", None, 2)]

    def test_empty_order_has_no_items(self):
        assert extract_line_items({}) == []

    def test_reads_orm_like_objects(self):
        class Row:
            order_number = "KB0000011234"
            box_id = None
            product_id = "P1"
            selected_size = "M"
            cart_items = None

        assert extract_line_items(Row()) == [LineItem("product", "P1", "M", 1)]


class TestMalformedCart:

    def test_invalid_json_is_ignored_with_warning(self):
        order = {"box_id": "B1", "cart_items": "[{not json"}

        with pytest.warns(MalformedLineItemsWarning):
            items = extract_line_items(order)

        assert items == [LineItem("box", "B1", None, 1)]

    def test_non_list_cart_is_ignored(self):
        with pytest.warns(MalformedLineItemsWarning):
            items = extract_line_items({"cart_items": json.dumps({"type": "product"})})

        assert items == []

    @pytest.mark.parametrize(
        "entry",
        [
            "P1",
            {"type": "service", "id": "X1"},
            {"type": "product"},
            {"type": "product", "id": "P1", "quantity": -2},
            {"type": "product", "id": "P1", "quantity": 1.5},
            {"type": "product", "id": "P1", "quantity": "many"},
            {"type": "product", "id": "P1", "quantity": True},
        ],
    )
    def test_bad_entry_is_skipped(self, entry):
        order = {"cart_items": [entry, {"type": "box", "id": "B1", "quantity": 1}]}

        with pytest.warns(MalformedLineItemsWarning):
            items = extract_line_items(order)

        assert items == [LineItem("box", "B1", None, 1)]

    def test_malformed_cart_is_logged(self, caplog):
        with pytest.warns(MalformedLineItemsWarning):
            extract_line_items({"order_number": "KB1", "cart_items": "oops"})

        assert "Ignoring malformed cart data on order KB1" in caplog.text


class TestLockOrder:

    def test_sorted_by_kind_then_id_then_size(self):
        items = [
            LineItem("product", "P2", "M", 1),
            LineItem("product", "P1", "M", 1),
            LineItem("box", "B9", None, 1),
            LineItem("product", "P1", None, 1),
        ]

        ordered = sort_for_locking(items)

        assert [i.key for i in ordered] == [
            "box|B9|default",
            "product|P1|default",
            "product|P1|M",
            "product|P2|M",
        ]

    def test_same_result_for_any_input_order(self):
        items = [
            LineItem("product", "P2", None, 1),
            LineItem("product", "P1", None, 1),
        ]

        assert sort_for_locking(items) == sort_for_locking(list(reversed(items)))
