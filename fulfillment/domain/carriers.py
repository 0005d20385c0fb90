# fulfillment/domain/carriers.py
"""
Profile przewoznikow jako jeden wariant:

    CarrierProfile = Driver | TaxiDriver | DispatchProfile

Kazdy wariant ma ta sama powierzchnie (is_eligible, verification_status,
vehicle_ref), wiec dispatcher nie rozgalezia sie po roli przy kazdym polu.
"""
from dataclasses import dataclass
from typing import Optional, Union

from fulfillment.domain.permissions import DRIVER, TAXI_DRIVER, DISPATCHER

PENDING = "PENDING"
APPROVED = "APPROVED"
REJECTED = "REJECTED"


@dataclass(frozen=True)
class _BaseProfile:
    user_id: int
    verification_status: str
    is_commission_current: bool
    vehicle_ref: Optional[str] = None

    @property
    def is_approved(self) -> bool:
        return self.verification_status == APPROVED

    @property
    def is_eligible(self) -> bool:
        return self.is_commission_current and self.verification_status != REJECTED


@dataclass(frozen=True)
class Driver(_BaseProfile):
    license_number: Optional[str] = None
    kind: str = "DRIVER"


@dataclass(frozen=True)
class TaxiDriver(_BaseProfile):
    license_number: Optional[str] = None
    kind: str = "TAXI_DRIVER"


@dataclass(frozen=True)
class DispatchProfile(_BaseProfile):
    kind: str = "DISPATCH"


CarrierProfile = Union[Driver, TaxiDriver, DispatchProfile]

# rola principala -> rodzaj profilu, ktory musi istniec
ROLE_PROFILE_KIND = {
    DRIVER: "DRIVER",
    TAXI_DRIVER: "TAXI_DRIVER",
    DISPATCHER: "DISPATCH",
}

_VARIANTS = {
    "DRIVER": Driver,
    "TAXI_DRIVER": TaxiDriver,
    "DISPATCH": DispatchProfile,
}


def build_profile(
    kind: str,
    user_id: int,
    verification_status: str,
    is_commission_current: bool,
    vehicle_ref: Optional[str] = None,
    license_number: Optional[str] = None,
) -> CarrierProfile:
    variant = _VARIANTS[kind]
    if variant is DispatchProfile:
        return DispatchProfile(
            user_id=user_id,
            verification_status=verification_status,
            is_commission_current=is_commission_current,
            vehicle_ref=vehicle_ref,
        )
    return variant(
        user_id=user_id,
        verification_status=verification_status,
        is_commission_current=is_commission_current,
        vehicle_ref=vehicle_ref,
        license_number=license_number,
    )
