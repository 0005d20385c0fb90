# fulfillment/services/pricing.py
"""
Szacowanie dostawy: czysta funkcja, bez dostepu do bazy ani stanu,
wiec mozna ja wolac przed utworzeniem DeliveryRequest (endpoint /delivery/estimate).
"""
import math
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Tuple

from fulfillment.utils.settings import (
    DELIVERY_BASE_FEE,
    DELIVERY_PER_KM_RATE,
    DELIVERY_PER_ITEM_CHARGE,
    DELIVERY_SPEED_KMH,
    DELIVERY_HANDLING_MINUTES_PER_ITEM,
)

EARTH_RADIUS_KM = 6371.0

Coordinates = Tuple[float, float]


@dataclass(frozen=True)
class FeeModel:
    base_fee: Decimal = DELIVERY_BASE_FEE
    per_km_rate: Decimal = DELIVERY_PER_KM_RATE
    per_item_charge: Decimal = DELIVERY_PER_ITEM_CHARGE
    speed_kmh: float = DELIVERY_SPEED_KMH
    handling_minutes_per_item: float = DELIVERY_HANDLING_MINUTES_PER_ITEM


@dataclass(frozen=True)
class DeliveryEstimate:
    distance_km: float
    eta_minutes: float
    fee: Decimal


def validate_coordinates(latitude: float, longitude: float) -> None:
    if not -90 <= latitude <= 90 or not -180 <= longitude <= 180:
        raise ValueError(f"Invalid coordinates: {latitude}, {longitude}")


def haversine_km(origin: Coordinates, destination: Coordinates) -> float:
    lat1, lon1 = map(math.radians, origin)
    lat2, lon2 = map(math.radians, destination)
    dlat = lat2 - lat1
    dlon = lon2 - lon1

    a = math.sin(dlat / 2) ** 2 + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    return 2 * EARTH_RADIUS_KM * math.asin(math.sqrt(a))


def count_units(items: Iterable) -> int:
    """items: dicty albo obiekty z polem quantity."""
    total = 0
    for item in items:
        quantity = item["quantity"] if isinstance(item, dict) else item.quantity
        total += int(quantity)
    return total


def calculate_delivery_estimate(
    origin: Coordinates,
    destination: Coordinates,
    items: Iterable,
    fee_model: FeeModel | None = None,
) -> DeliveryEstimate:
    model = fee_model or FeeModel()
    validate_coordinates(*origin)
    validate_coordinates(*destination)

    distance_km = haversine_km(origin, destination)
    units = count_units(items)

    eta_minutes = distance_km / model.speed_kmh * 60 + units * model.handling_minutes_per_item

    # wszystkie skladniki nieujemne -> oplata monotoniczna wzgledem dystansu i liczby sztuk
    fee = (
        model.base_fee
        + model.per_km_rate * Decimal(str(round(distance_km, 3)))
        + model.per_item_charge * units
    ).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP)

    return DeliveryEstimate(
        distance_km=round(distance_km, 3),
        eta_minutes=round(eta_minutes, 1),
        fee=fee,
    )
