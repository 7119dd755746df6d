"""Protocol definitions and errors for translation providers."""

from __future__ import annotations

from collections.abc import Sequence
from enum import StrEnum
from typing import Protocol, runtime_checkable

from pydantic import Field

from modloc_schemas.base import BaseSchema
from modloc_schemas.context import TranslationContext
from modloc_schemas.primitives import LanguageCode, ProviderId
from modloc_schemas.responses import ErrorDetails, ErrorResponse
from modloc_schemas.translation import ProviderTranslation, SourceUnit


class ProviderErrorCode(StrEnum):
    """Failure classes a provider call can report."""

    REJECTED = "rejected"
    INVALID_RESPONSE = "invalid_response"
    VALIDATION = "validation"
    NETWORK = "network"
    RATE_LIMITED = "rate_limited"
    UNAVAILABLE = "unavailable"
    TIMEOUT = "timeout"
    AUTHENTICATION = "authentication"
    CONFIGURATION = "configuration"


UNIT_LOCAL_ERROR_CODES = frozenset({
    ProviderErrorCode.REJECTED,
    ProviderErrorCode.INVALID_RESPONSE,
    ProviderErrorCode.VALIDATION,
})
RETRYABLE_ERROR_CODES = frozenset({
    ProviderErrorCode.NETWORK,
    ProviderErrorCode.RATE_LIMITED,
    ProviderErrorCode.UNAVAILABLE,
    ProviderErrorCode.TIMEOUT,
})
FATAL_ERROR_CODES = frozenset({
    ProviderErrorCode.AUTHENTICATION,
    ProviderErrorCode.CONFIGURATION,
})


class ProviderErrorDetails(BaseSchema):
    """Detailed provider error context."""

    provider_id: ProviderId | None = Field(None, description="Provider identifier")
    status_code: int | None = Field(None, description="Upstream status code")
    reason: str | None = Field(None, description="Additional error context")


class ProviderErrorInfo(BaseSchema):
    """Structured provider error data."""

    code: ProviderErrorCode = Field(..., description="Provider error code")
    message: str = Field(..., min_length=1, description="Error message")
    details: ProviderErrorDetails | None = Field(None, description="Error details")

    @property
    def is_unit_local(self) -> bool:
        """Whether only the units of the failed call are affected."""
        return self.code in UNIT_LOCAL_ERROR_CODES

    @property
    def is_fatal(self) -> bool:
        """Whether retrying the batch cannot succeed."""
        return self.code in FATAL_ERROR_CODES

    def to_error_response(self) -> ErrorResponse:
        """Convert provider error info to the standard error response schema.

        Returns:
            ErrorResponse: Standard response error payload.
        """
        details: ErrorDetails | None = None
        if self.details is not None and self.details.provider_id is not None:
            details = ErrorDetails(
                field="provider_id",
                provided=self.details.provider_id,
                valid_options=None,
            )
        return ErrorResponse(code=str(self.code), message=self.message, details=details)


class ProviderError(Exception):
    """Provider call failure with structured details."""

    def __init__(self, info: ProviderErrorInfo) -> None:
        """Initialize the provider error.

        Args:
            info: Structured provider error information.
        """
        super().__init__(info.message)
        self.info = info


@runtime_checkable
class TranslationProviderProtocol(Protocol):
    """Capability boundary for a translation provider.

    ``translate`` returns one result per submitted unit; units missing from the
    response are treated as failed. Whole-call failures raise ProviderError.
    """

    @property
    def provider_id(self) -> ProviderId:
        """Opaque provider identifier."""
        raise NotImplementedError

    @property
    def max_units_per_request(self) -> int | None:
        """Largest chunk the provider accepts, None when unknown."""
        raise NotImplementedError

    @property
    def max_chars_per_request(self) -> int | None:
        """Character budget of one request payload, None when unlimited."""
        raise NotImplementedError

    async def translate(
        self, context: TranslationContext, units: Sequence[SourceUnit]
    ) -> list[ProviderTranslation]:
        """Translate a chunk of units under a shared context."""
        raise NotImplementedError


@runtime_checkable
class TranslationMemoryProtocol(Protocol):
    """Protocol for exact-match translation memory lookups."""

    async def lookup(
        self,
        source_text: str,
        source_language: LanguageCode,
        target_language: LanguageCode,
    ) -> str | None:
        """Return a stored translation for the source text if one exists."""
        raise NotImplementedError
