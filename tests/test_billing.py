from datetime import datetime, timezone

import pytest

from billing import build_billing_update, mint_invoice_number
from errors import ValidationFailed
from schemas import BillingPatch

STAMP = datetime(2024, 1, 1, tzinfo=timezone.utc)


class TestMintInvoiceNumber:
    def test_prefix(self):
        assert mint_invoice_number().startswith("INV-")

    def test_burst_of_mints_never_repeats(self):
        # thousands of mints land inside the same second
        numbers = [mint_invoice_number() for _ in range(5000)]
        assert len(set(numbers)) == len(numbers)


class TestBuildBillingUpdate:
    def test_sets_supplied_fields_and_stamps(self):
        update = build_billing_update(BillingPatch(number="INV-9", amount="12.5"), STAMP)
        assert update == {"$set": {
            "billing.number": "INV-9",
            "billing.amount": 12.5,
            "billing.generated_at": STAMP,
            "updated_at": STAMP,
        }}

    def test_null_unsets(self):
        update = build_billing_update(BillingPatch(notes=None), STAMP)
        assert update["$unset"] == {"billing.notes": ""}

    @pytest.mark.parametrize("patch", [
        BillingPatch(),
        BillingPatch(number="", notes="   "),
        BillingPatch(amount="not a number"),
    ])
    def test_nothing_usable(self, patch):
        with pytest.raises(ValidationFailed, match="Please provide billing number, amount, or notes."):
            build_billing_update(patch, STAMP)
