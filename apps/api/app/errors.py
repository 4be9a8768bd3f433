from dataclasses import dataclass

from fastapi import status


@dataclass
class DomainError(Exception):
    code: str
    message: str
    status_code: int = status.HTTP_400_BAD_REQUEST

    def __str__(self) -> str:
        return f"{self.code}:{self.message}"


class ValidationError(DomainError):
    def __init__(self, message: str) -> None:
        super().__init__(code="VALIDATION_ERROR", message=message)


class NotFoundError(DomainError):
    def __init__(self, message: str = "Order not found") -> None:
        super().__init__(
            code="NOT_FOUND", message=message, status_code=status.HTTP_404_NOT_FOUND
        )


class InvalidCodeError(DomainError):
    def __init__(self, message: str = "Invalid pickup code") -> None:
        super().__init__(code="INVALID_CODE", message=message)


class ForbiddenRoleError(DomainError):
    def __init__(self, message: str = "Insufficient role") -> None:
        super().__init__(
            code="FORBIDDEN_ROLE", message=message, status_code=status.HTTP_403_FORBIDDEN
        )


class IllegalTransitionError(DomainError):
    def __init__(self, current: str, trigger: str) -> None:
        super().__init__(
            code="ILLEGAL_TRANSITION",
            message=f"Illegal transition: {trigger} is not allowed from {current}",
            status_code=status.HTTP_409_CONFLICT,
        )
        self.current = current
        self.trigger = trigger


class SignatureError(DomainError):
    def __init__(self, message: str = "Invalid signature") -> None:
        super().__init__(
            code="INVALID_SIGNATURE", message=message, status_code=status.HTTP_401_UNAUTHORIZED
        )


class RateLimitedError(DomainError):
    def __init__(self, retry_after_s: int) -> None:
        super().__init__(
            code="RATE_LIMITED",
            message="Too Many Requests",
            status_code=status.HTTP_429_TOO_MANY_REQUESTS,
        )
        self.retry_after_s = retry_after_s
