# fulfillment/repos/confirmation_repo.py
from datetime import datetime, timedelta
from typing import List

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from fulfillment.data.models.confirmation import ConfirmationModel, ISSUED, EXPIRED


class ConfirmationRepo:
    def __init__(self, db: Session):
        self.db = db

    def create_confirmation(self, confirmation: ConfirmationModel) -> ConfirmationModel:
        self.db.add(confirmation)
        self.db.flush()
        return confirmation

    def get_by_token(self, token: str) -> ConfirmationModel | None:
        return self.db.execute(
            select(ConfirmationModel).where(ConfirmationModel.token == token)
        ).scalar_one_or_none()

    def get_active_for_delivery(self, delivery_id: int) -> ConfirmationModel | None:
        return self.db.execute(
            select(ConfirmationModel).where(ConfirmationModel.active_delivery_id == delivery_id)
        ).scalar_one_or_none()

    def update_status(self, confirmation_id: int, expected_status: str, new_data: dict) -> int:
        result = self.db.execute(
            update(ConfirmationModel)
            .where(
                ConfirmationModel.id == confirmation_id,
                ConfirmationModel.status == expected_status,
            )
            .values(**new_data)
        )
        return result.rowcount

    def mark_reminded(self, confirmation_id: int, when: datetime) -> int:
        # tylko raz: warunek reminder_sent_at IS NULL
        result = self.db.execute(
            update(ConfirmationModel)
            .where(
                ConfirmationModel.id == confirmation_id,
                ConfirmationModel.status == ISSUED,
                ConfirmationModel.reminder_sent_at.is_(None),
            )
            .values(reminder_sent_at=when)
        )
        return result.rowcount

    def find_due_for_reminder(self, now: datetime, window: timedelta) -> List[ConfirmationModel]:
        return list(
            self.db.execute(
                select(ConfirmationModel)
                .where(
                    ConfirmationModel.status == ISSUED,
                    ConfirmationModel.reminder_sent_at.is_(None),
                    ConfirmationModel.expires_at > now,
                    ConfirmationModel.expires_at <= now + window,
                )
                .order_by(ConfirmationModel.expires_at)
            ).scalars()
        )

    def find_overdue(self, now: datetime) -> List[ConfirmationModel]:
        return list(
            self.db.execute(
                select(ConfirmationModel)
                .where(
                    ConfirmationModel.status == ISSUED,
                    ConfirmationModel.expires_at < now,
                )
                .order_by(ConfirmationModel.expires_at)
            ).scalars()
        )

    def expire_active_for_delivery(self, delivery_id: int, when: datetime) -> int:
        # zamyka oczekujace potwierdzenie razem z anulowaniem dostawy
        result = self.db.execute(
            update(ConfirmationModel)
            .where(
                ConfirmationModel.active_delivery_id == delivery_id,
                ConfirmationModel.status == ISSUED,
            )
            .values(status=EXPIRED, active_delivery_id=None, expired_at=when)
        )
        return result.rowcount
