from __future__ import annotations


class AppError(Exception):
    code = "APP_ERROR"
    status_code = 500

    def __init__(self, message: str = "", *, details: dict[str, object] | None = None) -> None:
        super().__init__(message or self.code)
        self.message = message or self.code
        self.details = details or {}


class ValidationError(AppError):
    code = "VALIDATION_ERROR"
    status_code = 400


class SignatureError(AppError):
    code = "INVALID_SIGNATURE"
    status_code = 401


class NotFoundError(AppError):
    code = "NOT_FOUND"
    status_code = 404


class ProviderNotFoundError(NotFoundError):
    code = "PROVIDER_NOT_FOUND"


class OfferNotMappedError(NotFoundError):
    code = "OFFER_NOT_MAPPED"


class MenteeNotFoundError(NotFoundError):
    code = "MENTEE_NOT_FOUND"


class MentorshipNotFoundError(NotFoundError):
    code = "MENTORSHIP_NOT_FOUND"


class DuplicateError(AppError):
    code = "DUPLICATE"
    status_code = 200


class TransientStoreError(AppError):
    code = "TRANSIENT_STORE_ERROR"
    status_code = 503


class ExternalAPIError(AppError):
    code = "EXTERNAL_API_ERROR"
    status_code = 502


class DiscordApiError(ExternalAPIError):
    code = "DISCORD_API_ERROR"

    def __init__(self, message: str = "", *, status_code: int, body: str, endpoint: str) -> None:
        super().__init__(
            message or f"Discord API error ({status_code})",
            details={"status_code": status_code, "endpoint": endpoint},
        )
        self.http_status = status_code
        self.body = body
        self.endpoint = endpoint


class DiscordRateLimitExceededError(DiscordApiError):
    code = "DISCORD_RATE_LIMITED"


class EmailDeliveryError(ExternalAPIError):
    code = "EMAIL_DELIVERY_ERROR"


class RateLimitExceededError(AppError):
    code = "RATE_LIMITED"
    status_code = 429

    def __init__(self, *, retry_after: int) -> None:
        super().__init__("Too many requests", details={"retry_after": retry_after})
        self.retry_after = retry_after


class WebhookVerificationNotConfiguredError(AppError):
    code = "WEBHOOK_VERIFICATION_NOT_CONFIGURED"
    status_code = 500


class OAuthStateError(ValidationError):
    code = "OAUTH_STATE_INVALID"


class GoneError(AppError):
    code = "GONE"
    status_code = 410
