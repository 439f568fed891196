"""Error taxonomy shared by the encryption, credential, provider and action layers.

Every error carries a stable ``code`` and a ``user_message`` that is safe to
show end users. Adapters translate backend-native exceptions into these types
at their boundary, so nothing above them ever sees a LiteLLM or httpx error.
"""

from __future__ import annotations

import copy
from typing import Optional

# User-facing messages
PROVIDER_UNAVAILABLE = "Provider is not available. Please check your configuration."
RATE_LIMIT_EXCEEDED = "Rate limit exceeded. Please try again later."
MISSING_CREDENTIALS = "Provider credentials are missing or invalid. Please check your API key."
MODEL_NOT_FOUND = "The selected model is not available for this provider."
PARSE_FAILED = "The provider returned a response that could not be understood. Please try again."
UNKNOWN_ERROR = "An unexpected error occurred. Please try again."


class EasyPromptError(Exception):
    """Base class for every error raised by the core."""

    code = "error"
    default_user_message = UNKNOWN_ERROR

    def __init__(self, message: str, *, provider: Optional[str] = None) -> None:
        super().__init__(message)
        self.provider = provider

    @property
    def message(self) -> str:
        return str(self.args[0]) if self.args else ""

    @property
    def user_message(self) -> str:
        return self.default_user_message

    def for_user(self) -> "EasyPromptError":
        """Return a copy of this error whose message is the user-facing one."""
        clone = copy.copy(self)
        clone.args = (self.user_message,)
        return clone

    def to_dict(self) -> dict:
        data = {"error": self.user_message, "code": self.code}
        if self.provider:
            data["provider"] = self.provider
        return data


# --- Input validation ---

class InvalidInputError(EasyPromptError):
    code = "invalid_input"

    @property
    def user_message(self) -> str:
        # Validation messages are written for the user already
        return self.message


class PromptEmptyError(InvalidInputError):
    code = "prompt_empty"


class PromptTooShortError(InvalidInputError):
    code = "prompt_too_short"


class PromptTooLongError(InvalidInputError):
    code = "prompt_too_long"


# --- Credentials / backend failures ---

class AuthenticationError(EasyPromptError):
    code = "authentication_error"
    default_user_message = MISSING_CREDENTIALS


class AuthenticationRequiredError(AuthenticationError):
    code = "authentication_required"
    default_user_message = "You must be logged in to do that."


class RateLimitError(EasyPromptError):
    code = "rate_limit"
    default_user_message = RATE_LIMIT_EXCEEDED

    def __init__(
        self, message: str, *, provider: Optional[str] = None, retry_after: Optional[int] = None
    ) -> None:
        super().__init__(message, provider=provider)
        self.retry_after = retry_after


class ProviderUnavailableError(EasyPromptError):
    code = "provider_unavailable"
    default_user_message = PROVIDER_UNAVAILABLE


class ModelNotFoundError(EasyPromptError):
    code = "model_not_found"
    default_user_message = MODEL_NOT_FOUND


class ParseError(EasyPromptError):
    code = "parse_error"
    default_user_message = PARSE_FAILED

    def __init__(self, message: str, *, provider: Optional[str] = None, raw_response: str = "") -> None:
        super().__init__(message, provider=provider)
        self.raw_response = raw_response

    def for_user(self) -> "ParseError":
        clone = super().for_user()
        clone.raw_response = ""
        return clone


class APIError(EasyPromptError):
    """Catch-all for backend failures that fit no narrower type."""

    code = "api_error"

    def __init__(self, message: str, *, provider: Optional[str] = None, status_code: int = 500) -> None:
        super().__init__(message, provider=provider)
        self.status_code = status_code


# --- Local configuration / storage ---

class DecryptionError(EasyPromptError):
    code = "decryption_error"
    default_user_message = "A stored credential could not be read. Please save it again."


class ConfigurationError(EasyPromptError):
    code = "configuration_error"
    default_user_message = "The server is not configured correctly. Please contact the administrator."


class ConfigNotFoundError(EasyPromptError):
    code = "config_not_found"
    default_user_message = "Configuration not found or already deleted."
