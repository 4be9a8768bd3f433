import logging
from dataclasses import dataclass
from decimal import Decimal
from html import escape

from app.integrations.errors import UpstreamError
from app.integrations.notification_client import NotificationClientProtocol
from app.models.order import Order
from app.observability import log_event, metrics_store


@dataclass(frozen=True)
class NotificationLine:
    product_name: str
    quantity: int
    unit_price: Decimal


@dataclass(frozen=True)
class OrderConfirmation:
    order_id: str
    order_number: str
    customer_name: str
    customer_email: str | None
    customer_phone: str | None
    items: tuple[NotificationLine, ...]
    amount: Decimal
    currency: str
    temp_pickup_code: str
    pickup_date: str
    pickup_time: str


@dataclass(frozen=True)
class FinalCodeNotice:
    order_id: str
    order_number: str
    customer_email: str | None
    customer_phone: str | None
    final_code: str


def build_order_confirmation(order: Order) -> OrderConfirmation:
    """Snapshot what the confirmation needs so it can be sent after the session closes."""
    slot = order.pickup_slot
    return OrderConfirmation(
        order_id=str(order.id),
        order_number=order.order_number,
        customer_name=order.customer_name,
        customer_email=order.customer_email,
        customer_phone=order.customer_phone,
        items=tuple(
            NotificationLine(item.product_name, item.quantity, item.unit_price)
            for item in order.items
        ),
        amount=order.total_amount,
        currency=order.currency,
        temp_pickup_code=order.temp_pickup_code,
        pickup_date=slot.date.isoformat(),
        pickup_time=f"{slot.time_from:%H:%M} - {slot.time_to:%H:%M}",
    )


def build_final_code_notice(order: Order) -> FinalCodeNotice:
    return FinalCodeNotice(
        order_id=str(order.id),
        order_number=order.order_number,
        customer_email=order.customer_email,
        customer_phone=order.customer_phone,
        final_code=order.final_pickup_code or "",
    )


def render_confirmation_html(confirmation: OrderConfirmation) -> str:
    rows = "".join(
        f"<tr><td>{escape(line.product_name)}</td><td>{line.quantity}</td>"
        f"<td>{line.unit_price} {confirmation.currency}</td></tr>"
        for line in confirmation.items
    )
    return (
        f"<p>Bonjour {escape(confirmation.customer_name)},</p>"
        f"<p>Votre commande <b>{confirmation.order_number}</b> est confirmée.</p>"
        f"<table>{rows}</table>"
        f"<p>Total : {confirmation.amount} {confirmation.currency}</p>"
        f"<p>Code de retrait : <b>{confirmation.temp_pickup_code}</b></p>"
        f"<p>Retrait le {confirmation.pickup_date}, {confirmation.pickup_time}</p>"
    )


def render_confirmation_sms(confirmation: OrderConfirmation) -> str:
    return (
        f"Commande {confirmation.order_number} confirmée. "
        f"Code de retrait: {confirmation.temp_pickup_code}. "
        f"Retrait le {confirmation.pickup_date} {confirmation.pickup_time}."
    )


def render_final_code_sms(notice: FinalCodeNotice) -> str:
    return (
        f"Commande {notice.order_number}: votre code final de retrait est "
        f"{notice.final_code}. Présentez-le en caisse."
    )


class Notifier:
    """Best-effort delivery: failures are logged and counted, never raised."""

    def __init__(self, client: NotificationClientProtocol) -> None:
        self._client = client

    def send_email(self, to: str, subject: str, html: str) -> bool:
        try:
            self._client.send_email(to, subject, html)
        except UpstreamError as err:
            self._record_failure("email", err)
            return False
        return True

    def send_sms(self, to: str, message: str) -> bool:
        try:
            self._client.send_sms(to, message)
        except UpstreamError as err:
            self._record_failure("sms", err)
            return False
        return True

    def send_order_confirmation(self, confirmation: OrderConfirmation) -> dict[str, bool]:
        results: dict[str, bool] = {}
        if confirmation.customer_email:
            results["email"] = self.send_email(
                confirmation.customer_email,
                f"Confirmation de votre commande {confirmation.order_number}",
                render_confirmation_html(confirmation),
            )
        if confirmation.customer_phone:
            results["sms"] = self.send_sms(
                confirmation.customer_phone, render_confirmation_sms(confirmation)
            )
        log_event(
            "order_confirmation_dispatched",
            order_id=confirmation.order_id,
            detail=",".join(f"{channel}={ok}" for channel, ok in results.items()),
        )
        return results

    def send_final_code(self, notice: FinalCodeNotice) -> dict[str, bool]:
        results: dict[str, bool] = {}
        if notice.customer_phone:
            results["sms"] = self.send_sms(notice.customer_phone, render_final_code_sms(notice))
        if notice.customer_email:
            results["email"] = self.send_email(
                notice.customer_email,
                f"Code final de retrait - commande {notice.order_number}",
                f"<p>Votre code final de retrait : <b>{notice.final_code}</b></p>",
            )
        log_event(
            "final_code_dispatched",
            order_id=notice.order_id,
            detail=",".join(f"{channel}={ok}" for channel, ok in results.items()),
        )
        return results

    @staticmethod
    def _record_failure(channel: str, err: UpstreamError) -> None:
        metrics_store.increment("notifications_failed_total")
        log_event(
            "notification_failed",
            level=logging.WARNING,
            detail=f"{channel}:{err}",
        )
