from sqlalchemy import select
from sqlalchemy.orm import Session

from fulfillment.data.models.carrier import CarrierProfileModel
from fulfillment.domain.carriers import CarrierProfile, ROLE_PROFILE_KIND, build_profile


class CarrierRepo:
    def __init__(self, db: Session):
        self.db = db

    def get_profile(self, user_id: int, role: str) -> CarrierProfile | None:
        """Profil zgodny z rola principala albo None (rola spoza driver-class tez daje None)."""
        kind = ROLE_PROFILE_KIND.get(role)
        if kind is None:
            return None

        row = self.db.execute(
            select(CarrierProfileModel).where(
                CarrierProfileModel.user_id == user_id,
                CarrierProfileModel.kind == kind,
            )
        ).scalar_one_or_none()

        if row is None:
            return None

        return build_profile(
            kind=row.kind,
            user_id=row.user_id,
            verification_status=row.verification_status,
            is_commission_current=row.is_commission_current,
            vehicle_ref=row.vehicle_ref,
            license_number=row.license_number,
        )

    def create_profile(self, profile: CarrierProfileModel) -> CarrierProfileModel:
        self.db.add(profile)
        self.db.commit()
        return profile
