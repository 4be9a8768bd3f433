from datetime import datetime, time, timedelta
from decimal import Decimal
from zoneinfo import ZoneInfo

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.config import settings
from app.models.pickup_slot import PickupSlot
from app.models.product import Product
from app.observability import log_event

DEMO_PRODUCTS = (
    ("Eau minérale 1.5L", "EAU-150", Decimal("1.50"), 20, False),
    ("Chips nature 150g", "CHIPS-150", Decimal("2.00"), 15, False),
    ("Yaourt nature x4", "YAOURT-4", Decimal("3.20"), 10, True),
)

DEMO_SLOT_CAPACITY = 50


def seed_demo_catalog(db: Session) -> bool:
    """Insert a small demo catalog and today's pickup slots into an empty database."""
    if db.scalar(select(func.count()).select_from(Product)):
        return False

    for name, sku, price, stock, is_perishable in DEMO_PRODUCTS:
        db.add(
            Product(
                name=name,
                sku=sku,
                price=price,
                stock=stock,
                is_perishable=is_perishable,
            )
        )

    today = datetime.now(ZoneInfo(settings.pickup_timezone)).date()
    for day in (today, today + timedelta(days=1)):
        for time_from, time_to in ((time(9, 0), time(11, 0)), (time(17, 0), time(19, 0))):
            db.add(
                PickupSlot(
                    date=day,
                    time_from=time_from,
                    time_to=time_to,
                    capacity=DEMO_SLOT_CAPACITY,
                    remaining=DEMO_SLOT_CAPACITY,
                )
            )

    db.commit()
    log_event("demo_catalog_seeded", detail=f"products={len(DEMO_PRODUCTS)}")
    return True
