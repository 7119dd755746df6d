"""Scripted translation provider for local runs and tests."""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping, Sequence

from modloc_core.ports.provider import ProviderError, TranslationProviderProtocol
from modloc_schemas.context import TranslationContext
from modloc_schemas.primitives import ProviderId, UnitId
from modloc_schemas.translation import ProviderTranslation, SourceUnit

type CallHook = Callable[[int, Sequence[SourceUnit]], Awaitable[None]]


class ScriptedTranslationProvider(TranslationProviderProtocol):
    """Provider that answers from a script instead of a remote service.

    Units translate to ``"[<target>] <source text>"`` unless scripted
    otherwise. ``call_errors`` maps a 1-based call number to an error raised
    by that call; ``unit_errors`` rejects individual units on every call.
    """

    def __init__(
        self,
        provider_id: ProviderId = "scripted",
        *,
        max_units_per_request: int | None = None,
        max_chars_per_request: int | None = None,
        unit_errors: Mapping[UnitId, str] | None = None,
        empty_units: Sequence[UnitId] = (),
        call_errors: Mapping[int, ProviderError] | None = None,
        before_call: CallHook | None = None,
    ) -> None:
        """Initialize the scripted provider.

        Args:
            provider_id: Opaque provider identifier.
            max_units_per_request: Advertised chunk capacity, None if unknown.
            max_chars_per_request: Advertised payload budget, None if unlimited.
            unit_errors: Per-unit rejection messages.
            empty_units: Units answered with empty text.
            call_errors: Errors raised by specific call numbers.
            before_call: Hook awaited before each call with its number.
        """
        self._provider_id = provider_id
        self._max_units_per_request = max_units_per_request
        self._max_chars_per_request = max_chars_per_request
        self._unit_errors = dict(unit_errors or {})
        self._empty_units = set(empty_units)
        self._call_errors = dict(call_errors or {})
        self._before_call = before_call
        self.calls: list[list[UnitId]] = []

    @property
    def provider_id(self) -> ProviderId:
        """Opaque provider identifier."""
        return self._provider_id

    @property
    def max_units_per_request(self) -> int | None:
        """Advertised chunk capacity."""
        return self._max_units_per_request

    @property
    def max_chars_per_request(self) -> int | None:
        """Advertised payload budget."""
        return self._max_chars_per_request

    async def translate(
        self, context: TranslationContext, units: Sequence[SourceUnit]
    ) -> list[ProviderTranslation]:
        """Translate a chunk according to the script.

        Raises:
            ProviderError: If the script fails this call number.
        """
        self.calls.append([unit.unit_id for unit in units])
        call_number = len(self.calls)
        if self._before_call is not None:
            await self._before_call(call_number, units)
        error = self._call_errors.get(call_number)
        if error is not None:
            raise error
        results: list[ProviderTranslation] = []
        for unit in units:
            if unit.unit_id in self._unit_errors:
                results.append(
                    ProviderTranslation(
                        unit_id=unit.unit_id,
                        error_message=self._unit_errors[unit.unit_id],
                    )
                )
            elif unit.unit_id in self._empty_units:
                results.append(
                    ProviderTranslation(unit_id=unit.unit_id, translated_text="")
                )
            else:
                results.append(
                    ProviderTranslation(
                        unit_id=unit.unit_id,
                        translated_text=(
                            f"[{context.target_language}] {unit.source_text}"
                        ),
                    )
                )
        return results
