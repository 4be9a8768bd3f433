# Import SQLAlchemy models so they register on Base.metadata
from app.models.activity_log import ActivityLogEntry  # noqa: F401
from app.models.order import Order, OrderItem, OrderStatus  # noqa: F401
from app.models.pickup_slot import PickupSlot  # noqa: F401
from app.models.product import Product  # noqa: F401
