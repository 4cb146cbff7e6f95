from __future__ import annotations

import logging
from typing import Callable, Dict, Optional

from src.radorder.config import settings
from src.radorder.domain.validation.models import (
    FallbackReason,
    ResultSource,
    ValidationOutcome,
    ValidationResult,
)
from src.radorder.errors import LLMResponseError, ValidationServiceUnavailable
from src.radorder.infra.codes.database import CodeDatabase
from src.radorder.services.phi.scrubber import strip_phi
from src.radorder.services.validation.backends import ValidationLLMBackend, get_validation_backend_from_env
from src.radorder.services.validation.database_context import generate_database_context
from src.radorder.services.validation.mock import generate_fallback_result
from src.radorder.services.validation.prompt_builder import build_system_prompt, format_database_context
from src.radorder.services.validation.response_parser import parse_validation_response
from src.radorder.services.validation.specialties import enforce_word_count, optimal_word_count

logger = logging.getLogger("validation")

BackendFactory = Callable[[], Optional[ValidationLLMBackend]]


class DictationValidationService:
    """Dictation -> codes + appropriateness verdict.

    One pipeline with one failure policy:

    - no API key for the provider: fallback result
    - unusable LLM output: fallback result
    - provider or code database unavailable: fallback result when
      ``fallback_on_error`` is true, otherwise ``ValidationServiceUnavailable``

    The dictation is PHI-scrubbed before anything leaves the process, and
    feedback is cut to the specialty's word count whatever the source.
    """

    def __init__(
        self,
        *,
        backend_factory: Optional[BackendFactory] = None,
        code_database: Optional[CodeDatabase] = None,
        fallback_on_error: Optional[bool] = None,
    ) -> None:
        self._backend_factory = backend_factory or get_validation_backend_from_env
        self._code_database = code_database
        self._fallback_on_error = fallback_on_error

    @property
    def fallback_on_error(self) -> bool:
        if self._fallback_on_error is not None:
            return self._fallback_on_error
        return settings.validation_fallback_on_error

    def _database(self) -> CodeDatabase:
        return self._code_database or CodeDatabase()

    def validate(
        self,
        dictation_text: str,
        *,
        specialty: Optional[str] = None,
        patient_age: Optional[int] = None,
        patient_gender: Optional[str] = None,
    ) -> ValidationOutcome:
        specialty = specialty or settings.default_specialty
        scrubbed = strip_phi(dictation_text)

        backend = self._backend_factory()
        if backend is None:
            logger.info("No LLM credentials configured; using fallback result (specialty=%s)", specialty)
            return self._fallback(scrubbed, specialty, FallbackReason.MISSING_CREDENTIALS)

        try:
            database_context = generate_database_context(scrubbed, self._database())
            system_prompt = build_system_prompt(specialty, database_context, patient_age, patient_gender)
            logger.info(
                "Calling %s backend (specialty=%s, dictation_chars=%d, prompt_chars=%d)",
                backend.name,
                specialty,
                len(scrubbed),
                len(system_prompt),
            )
            result = parse_validation_response(backend.complete(system_prompt, scrubbed))
        except LLMResponseError as exc:
            logger.warning("Discarding LLM response: %s", exc.message)
            return self._fallback(scrubbed, specialty, FallbackReason.INVALID_RESPONSE)
        except ValidationServiceUnavailable as exc:
            if not self.fallback_on_error:
                raise
            logger.warning("Validation service unavailable (%s); using fallback result", exc.code)
            return self._fallback(scrubbed, specialty, FallbackReason.SERVICE_UNAVAILABLE)

        return self._outcome(result, specialty, ResultSource.LLM)

    def database_context_report(self, dictation_text: str) -> Dict[str, object]:
        """Candidate counts and the formatted prompt context for one dictation."""

        context = generate_database_context(strip_phi(dictation_text), self._database())
        return {**context.stats(), "formatted_context": format_database_context(context)}

    def _fallback(self, text: str, specialty: str, reason: FallbackReason) -> ValidationOutcome:
        result = generate_fallback_result(text, specialty)
        return self._outcome(result, specialty, ResultSource.FALLBACK, reason)

    def _outcome(
        self,
        result: ValidationResult,
        specialty: str,
        source: ResultSource,
        reason: Optional[FallbackReason] = None,
    ) -> ValidationOutcome:
        result.feedback = enforce_word_count(result.feedback, specialty)
        return ValidationOutcome(
            result=result,
            source=source,
            fallback_reason=reason,
            specialty=specialty,
            target_word_count=optimal_word_count(specialty),
        )


validation_service = DictationValidationService()
