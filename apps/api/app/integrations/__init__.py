from app.integrations.errors import (
    UpstreamBadGatewayError,
    UpstreamError,
    UpstreamTimeoutError,
    UpstreamUnavailableError,
)

__all__ = [
    "UpstreamError",
    "UpstreamTimeoutError",
    "UpstreamUnavailableError",
    "UpstreamBadGatewayError",
]
