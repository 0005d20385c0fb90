# fulfillment/api/routers/deliveries.py
from datetime import datetime

from fastapi import APIRouter, Depends, Query

from fulfillment.api.deps import get_confirmation_service, get_delivery_service, get_principal, require
from fulfillment.data.models.delivery import STORE_PURCHASE
from fulfillment.domain.permissions import (
    Principal,
    DELIVERY_CREATE,
    DELIVERY_CARRY,
    DELIVERY_CONFIRM,
    DELIVERY_CANCEL,
    DELIVERY_ADMIN,
)
from fulfillment.domain.schemas import (
    CancelIn,
    ConfirmIn,
    ConfirmationOut,
    ConfirmedOut,
    DeliveredOut,
    DeliveryCreatedOut,
    DeliveryOut,
    DeliveryStatisticsOut,
    EstimateIn,
    EstimateOut,
    RemindersSentOut,
    StorePurchaseIn,
    TrackingOut,
    UserToUserIn,
)
from fulfillment.services.confirmation_service import ConfirmationService
from fulfillment.services.delivery_service import DeliveryService

router = APIRouter(prefix="/delivery", tags=["delivery"])


@router.post("/estimate", response_model=EstimateOut)
def estimate(
    payload: EstimateIn,
    svc: DeliveryService = Depends(get_delivery_service),
):
    """Wycena bez tworzenia dostawy."""
    return svc.estimate_for_store(
        store_id=payload.store_id,
        latitude=payload.customer_latitude,
        longitude=payload.customer_longitude,
        items=[i.model_dump() for i in payload.items],
    )


@router.post("/store-purchase", response_model=DeliveryCreatedOut, status_code=201)
def create_store_purchase(
    payload: StorePurchaseIn,
    principal: Principal = Depends(require(DELIVERY_CREATE)),
    svc: DeliveryService = Depends(get_delivery_service),
):
    return svc.create_store_purchase_delivery(
        customer_id=principal.user_id,
        order_id=payload.order_id,
        store_id=payload.store_id,
        customer_coordinates=(payload.customer_coordinates.latitude, payload.customer_coordinates.longitude),
    )


@router.post("/user-to-user", response_model=DeliveryCreatedOut, status_code=201)
def create_user_to_user(
    payload: UserToUserIn,
    principal: Principal = Depends(require(DELIVERY_CREATE)),
    svc: DeliveryService = Depends(get_delivery_service),
):
    return svc.create_user_to_user_delivery(
        sender_id=principal.user_id,
        pickup=payload.pickup.model_dump(),
        dropoff=payload.dropoff.model_dump(),
        items=[i.model_dump() for i in payload.items],
        recipient_name=payload.recipient_name,
        recipient_phone=payload.recipient_phone,
        special_instructions=payload.special_instructions,
    )


@router.get("/track/{tracking_code}", response_model=TrackingOut)
def track(
    tracking_code: str,
    svc: DeliveryService = Depends(get_delivery_service),
):
    # publiczny endpoint, kod jest jedynym kluczem
    return svc.tracking.resolve(tracking_code)


@router.post("/confirm", response_model=ConfirmedOut)
def confirm(
    payload: ConfirmIn,
    principal: Principal = Depends(require(DELIVERY_CONFIRM)),
    svc: ConfirmationService = Depends(get_confirmation_service),
):
    return svc.confirm(payload.confirmation_token, principal)


@router.get("/confirmation/{token}", response_model=ConfirmationOut)
def get_confirmation(
    token: str,
    svc: ConfirmationService = Depends(get_confirmation_service),
):
    return svc.get(token)


# statyczne sciezki przed /{delivery_id}
@router.get("/statistics", response_model=DeliveryStatisticsOut)
def statistics(
    start_date: datetime | None = Query(None, alias="startDate"),
    end_date: datetime | None = Query(None, alias="endDate"),
    store_id: int | None = Query(None, alias="storeId"),
    principal: Principal = Depends(require(DELIVERY_ADMIN)),
    svc: DeliveryService = Depends(get_delivery_service),
):
    return svc.get_statistics(start_date=start_date, end_date=end_date, store_id=store_id)


@router.post("/send-reminders", response_model=RemindersSentOut)
def send_reminders(
    principal: Principal = Depends(require(DELIVERY_ADMIN)),
    svc: ConfirmationService = Depends(get_confirmation_service),
):
    """Reczne uruchomienie sweepu przypomnien (normalnie robi to beat)."""
    return {"sent": svc.sweep_reminders()}


@router.get("/{delivery_id}", response_model=DeliveryOut)
def get_delivery(
    delivery_id: int,
    principal: Principal = Depends(get_principal),
    svc: DeliveryService = Depends(get_delivery_service),
):
    return svc.get_delivery(delivery_id, principal)


@router.post("/{delivery_id}/assign", response_model=DeliveryOut)
def assign(
    delivery_id: int,
    principal: Principal = Depends(require(DELIVERY_CARRY)),
    svc: DeliveryService = Depends(get_delivery_service),
):
    return svc.assign_carrier(delivery_id, principal)


@router.post("/{delivery_id}/pickup", response_model=DeliveryOut)
def pickup(
    delivery_id: int,
    principal: Principal = Depends(require(DELIVERY_CARRY)),
    svc: DeliveryService = Depends(get_delivery_service),
):
    return svc.start_transit(delivery_id, principal)


@router.post("/{delivery_id}/deliver", response_model=DeliveredOut)
def deliver(
    delivery_id: int,
    principal: Principal = Depends(require(DELIVERY_CARRY)),
    svc: DeliveryService = Depends(get_delivery_service),
    confirmations: ConfirmationService = Depends(get_confirmation_service),
):
    """Zakup ze sklepu dostaje od razu token potwierdzenia dla wlasciciela sklepu."""
    delivery = svc.mark_delivered(delivery_id, principal)

    confirmation = None
    if delivery["kind"] == STORE_PURCHASE:
        confirmation = confirmations.issue(delivery_id)

    return {"delivery_request": delivery, "confirmation": confirmation}


@router.post("/{delivery_id}/cancel", response_model=DeliveryOut)
def cancel(
    delivery_id: int,
    payload: CancelIn | None = None,
    principal: Principal = Depends(require(DELIVERY_CANCEL)),
    svc: DeliveryService = Depends(get_delivery_service),
):
    return svc.cancel(delivery_id, principal, payload.reason if payload else None)
