from dataclasses import dataclass


@dataclass
class UpstreamError(Exception):
    service: str
    code: str
    message: str
    retryable: bool = False

    def __str__(self) -> str:
        return f"{self.service}:{self.code}:{self.message}"


class UpstreamTimeoutError(UpstreamError):
    def __init__(self, service: str, message: str = "Upstream timeout") -> None:
        super().__init__(service=service, code="TIMEOUT", message=message, retryable=True)


class UpstreamUnavailableError(UpstreamError):
    def __init__(self, service: str, message: str = "Upstream unavailable") -> None:
        super().__init__(service=service, code="UNAVAILABLE", message=message, retryable=True)


class UpstreamBadGatewayError(UpstreamError):
    def __init__(self, service: str, message: str = "Unexpected upstream response") -> None:
        super().__init__(service=service, code="BAD_GATEWAY", message=message, retryable=False)
