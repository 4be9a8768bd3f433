import datetime as dt
import uuid

from sqlalchemy import Boolean, CheckConstraint, Date, Integer, Time, Uuid
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base


class PickupSlot(Base):
    __tablename__ = "pickup_slots"
    __table_args__ = (
        CheckConstraint(
            "remaining >= 0 AND remaining <= capacity", name="ck_pickup_slots_remaining"
        ),
    )

    id: Mapped[uuid.UUID] = mapped_column(Uuid, primary_key=True, default=uuid.uuid4)
    date: Mapped[dt.date] = mapped_column(Date, nullable=False, index=True)
    time_from: Mapped[dt.time] = mapped_column(Time, nullable=False)
    time_to: Mapped[dt.time] = mapped_column(Time, nullable=False)
    capacity: Mapped[int] = mapped_column(Integer, nullable=False)
    remaining: Mapped[int] = mapped_column(Integer, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
