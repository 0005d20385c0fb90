# fulfillment/services/tracking_service.py
from datetime import timedelta
from typing import Any, Dict

from sqlalchemy.orm import Session

from fulfillment.data.models.delivery import DeliveryModel
from fulfillment.data.models.tracking import TrackingRecordModel
from fulfillment.domain.errors import ConflictError, TrackingNotFound
from fulfillment.repos.delivery_repo import DeliveryRepo
from fulfillment.repos.tracking_repo import TrackingRepo
from fulfillment.utils.clock import as_utc
from fulfillment.utils.tokens import TokenGenerator, TRACKING_CODE_RE
from fulfillment.utils.logging import get_logger

logger = get_logger(__name__)

_MAX_CODE_ATTEMPTS = 5


def tracking_view(delivery: DeliveryModel, code: str) -> Dict[str, Any]:
    """Publiczny snapshot, bez wewnetrznych id."""
    created_at = as_utc(delivery.created_at)
    return {
        "tracking_code": code,
        "kind": delivery.kind,
        "status": delivery.status,
        "distance_km": delivery.distance_km,
        "eta_minutes": delivery.eta_minutes,
        "fee": delivery.fee,
        "carrier_assigned": delivery.carrier_id is not None,
        "recipient_name": delivery.recipient_name,
        "estimated_delivery_time": created_at + timedelta(minutes=delivery.eta_minutes) if created_at else None,
        "created_at": created_at,
        "assigned_at": as_utc(delivery.assigned_at),
        "picked_up_at": as_utc(delivery.picked_up_at),
        "delivered_at": as_utc(delivery.delivered_at),
        "confirmed_at": as_utc(delivery.confirmed_at),
        "cancelled_at": as_utc(delivery.cancelled_at),
    }


class TrackingService:
    def __init__(self, db: Session, tokens: TokenGenerator | None = None):
        self.repo = TrackingRepo(db)
        self.delivery_repo = DeliveryRepo(db)
        self.tokens = tokens or TokenGenerator()

    def issue(self, delivery_id: int) -> str:
        """
        Nowy kod dla dostawy, zapisany w biezacej transakcji (commit robi wywolujacy).
        Kody nigdy nie sa usuwane, wiec sprawdzenie istnienia wyklucza ponowne uzycie.
        """
        for _ in range(_MAX_CODE_ATTEMPTS):
            code = self.tokens.tracking_code()
            if self.repo.get_record(code) is None:
                self.repo.create_record(TrackingRecordModel(code=code, delivery_id=delivery_id))
                return code
            logger.warning(f"Tracking code collision for delivery {delivery_id}, regenerating")

        raise ConflictError("Could not allocate a unique tracking code")

    def code_for(self, delivery_id: int) -> str | None:
        record = self.repo.get_record_for_delivery(delivery_id)
        return record.code if record else None

    def resolve(self, code: str) -> Dict[str, Any]:
        # ten sam blad dla zlego formatu i nieznanego kodu
        if not isinstance(code, str) or not TRACKING_CODE_RE.match(code):
            raise TrackingNotFound()

        record = self.repo.get_record(code)
        if record is None:
            raise TrackingNotFound()

        delivery = self.delivery_repo.get_delivery(record.delivery_id)
        if delivery is None:
            raise TrackingNotFound()

        return tracking_view(delivery, code)
