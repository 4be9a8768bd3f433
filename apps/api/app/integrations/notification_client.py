from typing import Protocol

import httpx

from app.config import settings
from app.integrations.errors import (
    UpstreamBadGatewayError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
)


class NotificationClientProtocol(Protocol):
    def send_email(self, to: str, subject: str, html: str) -> None: ...

    def send_sms(self, to: str, message: str) -> None: ...


class HttpNotificationClient:
    """Posts emails and SMS to HTTP gateways; a single attempt per message."""

    def __init__(
        self,
        email_base_url: str,
        email_api_key: str,
        email_sender: str,
        sms_base_url: str,
        sms_api_key: str,
        sms_sender: str,
        timeout_s: float,
    ) -> None:
        self.email_base_url = email_base_url.rstrip("/")
        self.email_api_key = email_api_key
        self.email_sender = email_sender
        self.sms_base_url = sms_base_url.rstrip("/")
        self.sms_api_key = sms_api_key
        self.sms_sender = sms_sender
        self.timeout_s = timeout_s

    def send_email(self, to: str, subject: str, html: str) -> None:
        if not self.email_base_url:
            raise UpstreamUnavailableError("email", "Email gateway is not configured")
        self._post(
            "email",
            f"{self.email_base_url}/v1/messages",
            self.email_api_key,
            {"from": self.email_sender, "to": to, "subject": subject, "html": html},
        )

    def send_sms(self, to: str, message: str) -> None:
        if not self.sms_base_url:
            raise UpstreamUnavailableError("sms", "SMS gateway is not configured")
        self._post(
            "sms",
            f"{self.sms_base_url}/v1/sms",
            self.sms_api_key,
            {"from": self.sms_sender, "to": to, "text": message},
        )

    def _post(self, service: str, url: str, api_key: str, payload: dict) -> None:
        try:
            with httpx.Client(timeout=self.timeout_s) as client:
                response = client.post(
                    url,
                    json=payload,
                    headers={"Authorization": f"Bearer {api_key}"},
                )
        except httpx.TimeoutException as err:
            raise UpstreamTimeoutError(service) from err
        except httpx.TransportError as err:
            raise UpstreamUnavailableError(service, str(err)) from err

        if response.status_code >= 500:
            raise UpstreamUnavailableError(service, f"{service} gateway returned 5xx")
        if response.status_code >= 400:
            raise UpstreamBadGatewayError(
                service, f"{service} gateway returned {response.status_code}"
            )


def get_notification_client() -> NotificationClientProtocol:
    return HttpNotificationClient(
        email_base_url=settings.email_api_base_url,
        email_api_key=settings.email_api_key,
        email_sender=settings.email_sender,
        sms_base_url=settings.sms_api_base_url,
        sms_api_key=settings.sms_api_key,
        sms_sender=settings.sms_sender,
        timeout_s=settings.notification_timeout_s,
    )
