"""Billing sub-record shared by shop orders and print orders."""
from datetime import datetime
from typing import Any, Dict

from bson import ObjectId

from errors import ValidationFailed
from pricing import coerce_amount
from schemas import BillingPatch


def mint_invoice_number() -> str:
    # ObjectId carries a per-process counter, so same-millisecond mints differ
    return f"INV-{ObjectId()}"


def build_billing_update(patch: BillingPatch, stamp: datetime) -> Dict[str, Dict[str, Any]]:
    """Translate a billing patch into a MongoDB update document.

    Only fields present in the request are touched. An explicit null clears
    the stored value, a blank string or a non-finite amount is ignored.
    generated_at is refreshed on every write.
    """
    supplied = patch.model_fields_set
    to_set: Dict[str, Any] = {}
    to_unset: Dict[str, Any] = {}

    if "number" in supplied:
        if patch.number is None:
            to_unset["billing.number"] = ""
        elif patch.number:
            to_set["billing.number"] = patch.number

    if "amount" in supplied:
        if patch.amount is None:
            to_unset["billing.amount"] = ""
        else:
            amount = coerce_amount(patch.amount)
            if amount is not None:
                to_set["billing.amount"] = amount

    if "notes" in supplied:
        if patch.notes is None:
            to_unset["billing.notes"] = ""
        elif patch.notes:
            to_set["billing.notes"] = patch.notes

    if not to_set and not to_unset:
        raise ValidationFailed(
            "Please provide billing number, amount, or notes.",
            errors=[{"loc": ["body"], "msg": "Provide number, amount, or notes", "type": "value_error.missing"}],
        )

    to_set["billing.generated_at"] = stamp
    to_set["updated_at"] = stamp
    update: Dict[str, Dict[str, Any]] = {"$set": to_set}
    if to_unset:
        update["$unset"] = to_unset
    return update
