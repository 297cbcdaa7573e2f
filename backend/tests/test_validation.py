"""
Sale request validator tests. The validator is pure: no fixtures needed.
"""

import pytest

from stockpoint.errors import ValidationError
from stockpoint.validation import coerce_int, validate_sale_request, validate_status

METHODS = ("cash", "card", "digital")


def _validate(payload, **kwargs):
    return validate_sale_request(payload, payment_methods=METHODS, **kwargs)


class TestAccepted:

    def test_minimal_payload_gets_defaults(self):
        request = _validate({"items": [{"product_id": 1, "quantity": 2}]})

        assert request.payment_method == "cash"
        assert request.discount_amount == 0
        assert request.tax_amount is None
        assert request.customer_id is None
        assert request.status == "completed"
        assert request.items[0].unit_price is None

    def test_full_payload(self):
        request = _validate(
            {
                "customer_id": 7,
                "items": [
                    {"product_id": 1, "quantity": 2, "unit_price": 2500},
                    {"product_id": "3", "quantity": "1"},
                ],
                "discount_amount": 100,
                "tax_amount": 250,
                "payment_method": "card",
                "status": "pending",
                "notes": "  gift wrap  ",
            },
            idempotency_key=" key-1 ",
        )

        assert request.customer_id == 7
        assert [(i.product_id, i.quantity, i.unit_price) for i in request.items] == [
            (1, 2, 2500),
            (3, 1, None),
        ]
        assert request.discount_amount == 100
        assert request.tax_amount == 250
        assert request.payment_method == "card"
        assert request.status == "pending"
        assert request.notes == "gift wrap"
        assert request.idempotency_key == "key-1"


class TestRejected:

    @pytest.mark.parametrize(
        "payload",
        [
            None,
            [],
            {},
            {"items": []},
            {"items": "not-a-list"},
            {"items": [{"product_id": 1, "quantity": 0}]},
            {"items": [{"product_id": 1, "quantity": -1}]},
            {"items": [{"product_id": 1, "quantity": 1.5}]},
            {"items": [{"product_id": 1, "quantity": True}]},
            {"items": [{"product_id": 1}]},
            {"items": [{"quantity": 1}]},
            {"items": [{"product_id": 1, "quantity": 1, "discount": 5}]},
            {"items": [{"product_id": 1, "quantity": 1, "unit_price": -5}]},
            {"items": [{"product_id": 1, "quantity": 1}], "payment_method": "bitcoin"},
            {"items": [{"product_id": 1, "quantity": 1}], "discount_amount": -1},
            {"items": [{"product_id": 1, "quantity": 1}], "tax_amount": 2.5},
            {"items": [{"product_id": 1, "quantity": 1}], "status": "refunded"},
            {"items": [{"product_id": 1, "quantity": 1}], "total_amount": 1},
            {"items": ["oops"]},
        ],
    )
    def test_invalid_payloads(self, payload):
        with pytest.raises(ValidationError):
            _validate(payload)

    def test_payment_method_error_lists_allowed(self):
        with pytest.raises(ValidationError) as exc:
            _validate({"items": [{"product_id": 1, "quantity": 1}], "payment_method": "iou"})
        assert exc.value.details["allowed"] == list(METHODS)
        assert exc.value.status_code == 400

    def test_overlong_idempotency_key(self):
        with pytest.raises(ValidationError):
            _validate({"items": [{"product_id": 1, "quantity": 1}]}, idempotency_key="k" * 129)


class TestCoerceInt:

    @pytest.mark.parametrize("value,expected", [(5, 5), ("12", 12), (" 7 ", 7), ("-3", -3)])
    def test_accepts(self, value, expected):
        assert coerce_int("n", value) == expected

    @pytest.mark.parametrize("value", ["1e3", "12.5", "", "abc", 1.0, None, False, [1]])
    def test_rejects(self, value):
        with pytest.raises(ValidationError):
            coerce_int("n", value)


class TestValidateStatus:

    def test_known(self):
        assert validate_status("refunded") == "refunded"

    @pytest.mark.parametrize("value", ["void", "", None, 3])
    def test_unknown(self, value):
        with pytest.raises(ValidationError):
            validate_status(value)
