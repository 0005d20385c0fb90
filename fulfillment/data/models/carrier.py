from sqlalchemy import Column, Integer, String, Boolean, UniqueConstraint

from fulfillment.data.database import Base


class CarrierProfileModel(Base):
    __tablename__ = "carrier_profiles"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, nullable=False, index=True)
    kind = Column(String, nullable=False)  # DRIVER, TAXI_DRIVER, DISPATCH

    verification_status = Column(String, nullable=False, default="PENDING")
    is_commission_current = Column(Boolean, nullable=False, default=True)
    vehicle_ref = Column(String, nullable=True)
    license_number = Column(String, nullable=True)

    __table_args__ = (UniqueConstraint("user_id", "kind", name="u_carrier_user_kind"),)
