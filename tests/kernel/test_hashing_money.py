"""Deterministic hashing and fixed-point money helpers."""

from datetime import date
from decimal import Decimal
from uuid import UUID

import pytest

from rental_kernel.domain.money import floor_cents, to_decimal, to_money, within_tolerance
from rental_kernel.models.listing import ListingStatus
from rental_kernel.utils.hashing import (
    canonicalize_json,
    hash_payload,
    hash_sorted_parts,
)


class TestCanonicalJson:

    def test_keys_sorted_without_whitespace(self):
        assert canonicalize_json({"b": 1, "a": 2}) == '{"a":2,"b":1}'

    def test_decimal_normalized(self):
        assert canonicalize_json({"x": Decimal("300.000000000")}) == canonicalize_json(
            {"x": Decimal("300.00")}
        )

    def test_typed_values(self):
        uid = UUID("00000000-0000-4000-a000-00000000000a")
        rendered = canonicalize_json(
            {"id": uid, "on": date(2024, 1, 31), "status": ListingStatus.ACTIVE}
        )
        assert rendered == (
            '{"id":"00000000-0000-4000-a000-00000000000a","on":"2024-01-31","status":"ACTIVE"}'
        )

    def test_unknown_type_rejected(self):
        with pytest.raises(TypeError):
            canonicalize_json({"x": object()})


class TestHashes:

    def test_payload_hash_is_64_hex(self):
        digest = hash_payload({"a": 1})
        assert len(digest) == 64
        int(digest, 16)

    def test_payload_hash_ignores_key_order(self):
        assert hash_payload({"a": 1, "b": 2}) == hash_payload({"b": 2, "a": 1})

    def test_sorted_parts_ignore_input_order(self):
        assert hash_sorted_parts(["u2:300", "u1:300"]) == hash_sorted_parts(["u1:300", "u2:300"])

    def test_sorted_parts_sensitive_to_content(self):
        assert hash_sorted_parts(["u1:300"]) != hash_sorted_parts(["u1:301"])


class TestMoney:

    def test_float_refused(self):
        with pytest.raises(TypeError):
            to_decimal(0.1)

    def test_bool_refused(self):
        with pytest.raises(TypeError):
            to_decimal(True)

    @pytest.mark.parametrize("raw", ["abc", "NaN", "Infinity"])
    def test_non_finite_or_garbage_refused(self, raw):
        with pytest.raises(ValueError):
            to_decimal(raw)

    def test_to_money_rounds_half_up(self):
        assert to_money("10.005") == Decimal("10.01")
        assert to_money(7) == Decimal("7.00")

    def test_floor_cents_truncates(self):
        assert floor_cents(Decimal("333.339")) == Decimal("333.33")

    def test_within_tolerance(self):
        assert within_tolerance(Decimal("100.00"), Decimal("100.01"))
        assert not within_tolerance(Decimal("100.00"), Decimal("100.02"))
