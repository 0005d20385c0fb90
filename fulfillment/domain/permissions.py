# fulfillment/domain/permissions.py
from dataclasses import dataclass, field
from typing import FrozenSet

CUSTOMER = "CUSTOMER"
STORE_OWNER = "STORE_OWNER"
DRIVER = "DRIVER"
TAXI_DRIVER = "TAXI_DRIVER"
DISPATCHER = "DISPATCHER"
ADMIN = "ADMIN"

DRIVER_ROLES = frozenset({DRIVER, TAXI_DRIVER, DISPATCHER})

CART_WRITE = "cart:write"
ORDER_CREATE = "order:create"
DELIVERY_CREATE = "delivery:create"
DELIVERY_CARRY = "delivery:carry"
DELIVERY_CONFIRM = "delivery:confirm"
DELIVERY_CANCEL = "delivery:cancel"
DELIVERY_ADMIN = "delivery:admin"

_SHOPPER = {CART_WRITE, ORDER_CREATE, DELIVERY_CREATE, DELIVERY_CANCEL}

ROLE_PERMISSIONS = {
    CUSTOMER: frozenset(_SHOPPER),
    STORE_OWNER: frozenset(_SHOPPER | {DELIVERY_CONFIRM}),
    DRIVER: frozenset({DELIVERY_CARRY, DELIVERY_CANCEL}),
    TAXI_DRIVER: frozenset({DELIVERY_CARRY, DELIVERY_CANCEL}),
    DISPATCHER: frozenset({DELIVERY_CARRY, DELIVERY_CANCEL}),
    ADMIN: frozenset(_SHOPPER | {DELIVERY_CARRY, DELIVERY_CONFIRM, DELIVERY_ADMIN}),
}


def permissions_for(role: str) -> FrozenSet[str]:
    """role -> zbior uprawnien; nieznana rola nie ma zadnych."""
    return ROLE_PERMISSIONS.get((role or "").upper(), frozenset())


@dataclass(frozen=True)
class Principal:
    user_id: int
    role: str
    permissions: FrozenSet[str] = field(default_factory=frozenset)

    @classmethod
    def from_role(cls, user_id: int, role: str) -> "Principal":
        return cls(user_id=user_id, role=role.upper(), permissions=permissions_for(role))

    def can(self, permission: str) -> bool:
        return permission in self.permissions

    @property
    def is_admin(self) -> bool:
        return self.role == ADMIN
