from decimal import Decimal
from typing import Protocol

import httpx
from pydantic import BaseModel, ConfigDict, Field

from app.config import settings
from app.integrations.errors import (
    UpstreamBadGatewayError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
)

PROVIDER_NAME = "MTN Mobile Money"


class PaymentInitiation(BaseModel):
    payment_url: str | None = None
    transaction_id: str | None = None
    provider: str = PROVIDER_NAME


class _TransactionPayload(BaseModel):
    model_config = ConfigDict(extra="ignore")

    checkout_url: str | None = Field(default=None, alias="checkoutUrl")
    payment_url: str | None = Field(default=None, alias="paymentUrl")
    transaction_id: str | None = Field(default=None, alias="transactionId")
    id: str | None = None


class PaymentProviderProtocol(Protocol):
    def initiate_payment(
        self, *, order_id: str, amount: Decimal, currency: str, payer_phone: str
    ) -> PaymentInitiation: ...


class LygosClient:
    """Mobile-money transactions through the Lygos gateway."""

    def __init__(
        self,
        base_url: str,
        api_key: str,
        merchant_id: str,
        channel: str,
        timeout_s: float,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.merchant_id = merchant_id
        self.channel = channel
        self.timeout_s = timeout_s

    def initiate_payment(
        self, *, order_id: str, amount: Decimal, currency: str, payer_phone: str
    ) -> PaymentInitiation:
        if not self.base_url:
            raise UpstreamUnavailableError("lygos", "Lygos base URL is not configured")

        payload = {
            "merchantId": self.merchant_id,
            "reference": order_id,
            "amount": float(amount),
            "currency": currency,
            "channel": self.channel,
            "payer": {"phone": payer_phone},
            "metadata": {"orderId": order_id},
        }
        try:
            with httpx.Client(timeout=self.timeout_s) as client:
                response = client.post(
                    f"{self.base_url}/v1/transactions",
                    json=payload,
                    headers={"Authorization": f"Bearer {self.api_key}"},
                )
        except httpx.TimeoutException as err:
            raise UpstreamTimeoutError("lygos") from err
        except httpx.TransportError as err:
            raise UpstreamUnavailableError("lygos", str(err)) from err

        if response.status_code >= 500:
            raise UpstreamUnavailableError("lygos", "Lygos returned 5xx")
        if response.status_code >= 400:
            raise UpstreamBadGatewayError("lygos", f"Lygos returned {response.status_code}")

        try:
            body = _TransactionPayload.model_validate(response.json() or {})
        except ValueError as err:
            raise UpstreamBadGatewayError("lygos", "Lygos returned malformed payload") from err

        return PaymentInitiation(
            payment_url=body.checkout_url or body.payment_url,
            transaction_id=body.transaction_id or body.id,
        )


def get_payment_provider() -> PaymentProviderProtocol:
    return LygosClient(
        base_url=settings.lygos_base_url,
        api_key=settings.lygos_api_key,
        merchant_id=settings.lygos_merchant_id,
        channel=settings.lygos_channel,
        timeout_s=settings.lygos_timeout_s,
    )
