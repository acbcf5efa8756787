"""
Pricing engine.

Turns a service subtotal and a travel distance into the full booking price:

    travel_charges = max(0, distance_km - base_radius_km) * travel_charge_per_km
    gst            = (subtotal + travel_charges) * gst_percentage / 100
    total_amount   = subtotal + travel_charges + gst
    advance_amount = round(total_amount * 0.5)       (whole currency units)
    remaining      = total_amount - advance_amount

Rates are never read here; callers pass a PricingConfig built from the
platform settings.
"""

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

from app.errors import ValidationError

CENTS = Decimal("0.01")
WHOLE = Decimal("1")
ADVANCE_RATIO = Decimal("0.5")


def to_decimal(value, label):
    try:
        amount = Decimal(str(value))
    except (InvalidOperation, ValueError, TypeError) as exc:
        raise ValidationError(f"{label} must be a number.") from exc
    if not amount.is_finite():
        raise ValidationError(f"{label} must be a number.")
    if amount < 0:
        raise ValidationError(f"{label} cannot be negative.")
    return amount


def money(value):
    return Decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


@dataclass(frozen=True)
class PricingConfig:
    travel_charge_per_km: Decimal
    base_radius_km: Decimal
    gst_percentage: Decimal

    @classmethod
    def from_values(cls, travel_charge_per_km, base_radius_km, gst_percentage):
        return cls(
            travel_charge_per_km=to_decimal(travel_charge_per_km, "Travel charge per km"),
            base_radius_km=to_decimal(base_radius_km, "Base radius"),
            gst_percentage=to_decimal(gst_percentage, "GST percentage"),
        )

    def as_dict(self):
        return {
            "travel_charge_per_km": str(self.travel_charge_per_km),
            "base_radius_km": str(self.base_radius_km),
            "gst_percentage": str(self.gst_percentage),
        }


@dataclass(frozen=True)
class PriceBreakdown:
    base_service_fee: Decimal
    distance_km: Decimal
    travel_charges: Decimal
    subtotal: Decimal
    gst: Decimal
    total_amount: Decimal
    advance_amount: Decimal
    remaining_amount: Decimal


def travel_charges_for(distance_km, config: PricingConfig) -> Decimal:
    extra_km = max(Decimal("0"), distance_km - config.base_radius_km)
    return money(extra_km * config.travel_charge_per_km)


def split_installments(total_amount: Decimal):
    """Split a total into advance and remaining so both always sum to the total."""
    advance = (total_amount * ADVANCE_RATIO).quantize(WHOLE, rounding=ROUND_HALF_UP)
    advance = money(advance)
    return advance, money(total_amount - advance)


def compute_price(subtotal, distance_km, config: PricingConfig) -> PriceBreakdown:
    base_fee = money(to_decimal(subtotal, "Service fee"))
    distance = to_decimal(distance_km if distance_km is not None else 0, "Distance")

    travel_charges = travel_charges_for(distance, config)
    taxable = base_fee + travel_charges
    gst = money(taxable * config.gst_percentage / Decimal("100"))
    total = money(taxable + gst)
    advance, remaining = split_installments(total)

    return PriceBreakdown(
        base_service_fee=base_fee,
        distance_km=distance,
        travel_charges=travel_charges,
        subtotal=taxable,
        gst=gst,
        total_amount=total,
        advance_amount=advance,
        remaining_amount=remaining,
    )
