import secrets
import string
from datetime import datetime

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.config import settings
from app.models.order import TERMINAL_STATUSES, Order

_CODE_ALPHABET = string.ascii_uppercase + string.digits
TEMP_CODE_LENGTH = 8
ORDER_NUMBER_SUFFIX_LENGTH = 6
MAX_CODE_ATTEMPTS = 10


def _random_token(length: int) -> str:
    return "".join(secrets.choice(_CODE_ALPHABET) for _ in range(length))


def generate_temp_code() -> str:
    return _random_token(TEMP_CODE_LENGTH)


def generate_final_code() -> str:
    return secrets.token_hex(4).upper()


def generate_order_number(now: datetime) -> str:
    millis = int(now.timestamp() * 1000)
    return f"{settings.order_number_prefix}-{millis}-{_random_token(ORDER_NUMBER_SUFFIX_LENGTH)}"


def generate_unique_temp_code(db: Session) -> str:
    for _ in range(MAX_CODE_ATTEMPTS):
        code = generate_temp_code()
        clash = db.scalar(
            select(Order.id).where(
                Order.temp_pickup_code == code,
                Order.status.not_in(TERMINAL_STATUSES),
            )
        )
        if not clash:
            return code
    raise RuntimeError("Could not allocate a unique temporary pickup code")
