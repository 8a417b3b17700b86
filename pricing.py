"""
Price tables for the shop.

Every table is keyed by an Enum and covers all of its members, so adding a
member without a price is caught by the tests rather than at checkout.
"""
import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


class DeliveryZone(str, Enum):
    DHAKA = "dhaka"
    OUTSIDE = "outside"


class DeliveryLocation(str, Enum):
    SEU = "SEU"
    AUST = "AUST"
    OTHER = "OTHER"


class ColorMode(str, Enum):
    COLOR = "color"
    BLACK_WHITE = "black_white"


class Sides(str, Enum):
    SINGLE = "single"
    DOUBLE = "double"


class PaperSize(str, Enum):
    A4 = "a4"
    LETTER = "letter"
    PHOTO_PAPER = "photo_paper"
    PASSPORT_PHOTO = "passport_photo"
    STAMP_PHOTO = "stamp_photo"


DELIVERY_RATES = {
    DeliveryZone.DHAKA: 60.0,
    DeliveryZone.OUTSIDE: 110.0,
}

SECURITY_DEPOSITS = {
    DeliveryLocation.SEU: 20.0,
    DeliveryLocation.AUST: 20.0,
    DeliveryLocation.OTHER: 60.0,
}

# delivery charge added to a print estimate
PRINT_DELIVERY_CHARGES = {
    DeliveryLocation.SEU: 0.0,
    DeliveryLocation.AUST: 0.0,
    DeliveryLocation.OTHER: 60.0,
}

PRINT_RATES = {
    (ColorMode.COLOR, Sides.SINGLE): 5.0,
    (ColorMode.COLOR, Sides.DOUBLE): 8.0,
    (ColorMode.BLACK_WHITE, Sides.SINGLE): 3.0,
    (ColorMode.BLACK_WHITE, Sides.DOUBLE): 6.0,
}

PAPER_SIZE_LABELS = {
    PaperSize.A4: "A4",
    PaperSize.LETTER: "Letter",
    PaperSize.PHOTO_PAPER: "Photo Paper",
    PaperSize.PASSPORT_PHOTO: "Passport Photo",
    PaperSize.STAMP_PHOTO: "Stamp Photo",
}

COLOR_MODE_LABELS = {
    ColorMode.COLOR: "Color",
    ColorMode.BLACK_WHITE: "Black & White",
}

SIDES_LABELS = {
    Sides.SINGLE: "Single-sided",
    Sides.DOUBLE: "Double-sided",
}


@dataclass(frozen=True)
class DeliveryQuote:
    zone: DeliveryZone
    charge: float


def resolve_delivery_charge(zone: Any) -> DeliveryQuote:
    """Return the zone and its fixed charge; unknown or missing zones fall back to Dhaka."""
    try:
        resolved = DeliveryZone(zone)
    except ValueError:
        resolved = DeliveryZone.DHAKA
    return DeliveryQuote(zone=resolved, charge=DELIVERY_RATES[resolved])


def security_amount_for(location: DeliveryLocation) -> float:
    return SECURITY_DEPOSITS[DeliveryLocation(location)]


def print_rate(color_mode: ColorMode, sides: Sides) -> float:
    return PRINT_RATES[(ColorMode(color_mode), Sides(sides))]


def estimate_print_cost(color_mode: ColorMode, sides: Sides, quantity: int,
                        location: DeliveryLocation) -> float:
    rate = print_rate(color_mode, sides)
    return round_money(rate * quantity + PRINT_DELIVERY_CHARGES[DeliveryLocation(location)])


def paper_size_label(size: Any) -> str:
    try:
        return PAPER_SIZE_LABELS[PaperSize(size)]
    except ValueError:
        return str(size)


def round_money(value: float) -> float:
    return round(float(value), 2)


def coerce_amount(value: Any) -> Optional[float]:
    """Coerce a number or numeric string to a finite float, or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(number):
        return None
    return number
