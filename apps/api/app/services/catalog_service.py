import uuid
from datetime import date

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from app.errors import NotFoundError, ValidationError
from app.models.pickup_slot import PickupSlot
from app.models.product import Product


def _parse_uuid(value: str | uuid.UUID, message: str) -> uuid.UUID:
    if isinstance(value, uuid.UUID):
        return value
    try:
        return uuid.UUID(str(value))
    except ValueError as err:
        raise NotFoundError(message) from err


def get_product_by_id(db: Session, product_id: str | uuid.UUID) -> Product:
    product = db.get(Product, _parse_uuid(product_id, "Product not found"))
    if not product:
        raise NotFoundError("Product not found")
    return product


def get_pickup_slot_by_id(db: Session, slot_id: str | uuid.UUID) -> PickupSlot:
    slot = db.get(PickupSlot, _parse_uuid(slot_id, "Pickup slot not found"))
    if not slot:
        raise NotFoundError("Pickup slot not found")
    return slot


def list_pickup_slots(db: Session, on_date: date | None = None) -> list[PickupSlot]:
    query = select(PickupSlot).where(PickupSlot.is_active.is_(True))
    if on_date:
        query = query.where(PickupSlot.date == on_date)
    return list(db.scalars(query.order_by(PickupSlot.date.asc(), PickupSlot.time_from.asc())))


def reserve_stock(db: Session, product: Product, quantity: int) -> None:
    result = db.execute(
        update(Product)
        .where(Product.id == product.id, Product.stock >= quantity)
        .values(stock=Product.stock - quantity)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ValidationError(f"Insufficient stock for {product.name}")


def release_stock(db: Session, product_id: uuid.UUID, quantity: int) -> None:
    db.execute(
        update(Product)
        .where(Product.id == product_id)
        .values(stock=Product.stock + quantity)
        .execution_options(synchronize_session=False)
    )


def reserve_slot(db: Session, slot: PickupSlot) -> None:
    if not slot.is_active:
        raise ValidationError("Invalid pickup slot")
    result = db.execute(
        update(PickupSlot)
        .where(PickupSlot.id == slot.id, PickupSlot.remaining > 0)
        .values(remaining=PickupSlot.remaining - 1)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount != 1:
        raise ValidationError("Chosen pickup slot is full")


def release_slot(db: Session, slot_id: uuid.UUID) -> None:
    db.execute(
        update(PickupSlot)
        .where(PickupSlot.id == slot_id, PickupSlot.remaining < PickupSlot.capacity)
        .values(remaining=PickupSlot.remaining + 1)
        .execution_options(synchronize_session=False)
    )
