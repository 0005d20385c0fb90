# fulfillment/api/routers/orders.py
from fastapi import APIRouter, Depends

from fulfillment.api.deps import get_order_service, get_principal
from fulfillment.domain.permissions import Principal
from fulfillment.domain.schemas import OrderOut
from fulfillment.services.order_service import OrderService

router = APIRouter(prefix="/orders", tags=["orders"])


@router.get("/{order_id}", response_model=OrderOut)
def get_order(
    order_id: int,
    principal: Principal = Depends(get_principal),
    svc: OrderService = Depends(get_order_service),
):
    """
    Pobiera szczegóły zamówienia.
    """
    return svc.get_order(order_id, principal.user_id, is_admin=principal.is_admin)
