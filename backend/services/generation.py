import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional, Sequence

from config import Settings, get_settings
from errors import (
    GenerationExhaustedError,
    LLMBackendError,
    MediaGenerationError,
    RegenerationError,
    ResponseParseError,
)
from models import (
    Concept,
    GeneratedQuestion,
    GenerationRequest,
    ParseOutcome,
    ParseStatus,
    QuestionLevel,
    QuestionTypeQuantity,
    TypeBreakdown,
)
from prompts import DEFAULT_TEMPLATES, PromptTemplates
from services.llm import LLMClient
from services.media import MediaClient, MediaSynthesizer
from services.prompt_builder import PromptBuilder
from services.validation import format_questions
from utils import describe_parse_failure, extract_partial_questions, parse_llm_json

logger = logging.getLogger(__name__)

_LOG_PREVIEW_CHARS = 500


def _question_list(data: Any) -> Optional[list]:
    if isinstance(data, dict) and isinstance(data.get("questions"), list):
        return data["questions"]
    if isinstance(data, list):
        return data
    return None


class QuestionGenerationService:
    """
    Drives batch generation (bounded retries) and single-question
    regeneration (no retries). Holds no per-call state, so one instance can
    serve concurrent requests.
    """

    def __init__(
        self,
        llm: Optional[LLMClient] = None,
        media: Optional[MediaClient] = None,
        templates: PromptTemplates = DEFAULT_TEMPLATES,
        settings: Optional[Settings] = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.settings = settings or get_settings()
        self.llm = llm or LLMClient()
        self.templates = templates
        self.prompts = PromptBuilder(templates)
        self.media = MediaSynthesizer(
            self.llm,
            media or MediaClient(settings=self.settings),
            templates,
            self.settings,
        )
        self._sleep = sleep

    # ── Batch generation ──────────────────────────────────────────────────────

    async def generate_questions(self, request: GenerationRequest) -> list[GeneratedQuestion]:
        """
        Generate up to request.quantity validated questions.
        Retries the whole batch on any failure, waiting retry_base_delay x
        attempt number between attempts; raises GenerationExhaustedError
        once max_attempts have failed.
        """
        max_attempts = self.settings.max_attempts
        last_error: Optional[Exception] = None

        for attempt in range(1, max_attempts + 1):
            logger.info(
                "Question generation attempt %d/%d for %s",
                attempt, max_attempts, request.question_type.value,
            )
            try:
                return await self._attempt(request)
            except Exception as e:
                last_error = e
                logger.warning("Attempt %d failed: %s", attempt, e)
                if attempt < max_attempts:
                    await self._sleep(self.settings.retry_base_delay * attempt)

        logger.error(
            "Giving up on %s after %d attempts: %s",
            request.question_type.value, max_attempts, last_error,
        )
        raise GenerationExhaustedError(max_attempts, last_error)

    async def _attempt(self, request: GenerationRequest) -> list[GeneratedQuestion]:
        prompt = self.prompts.build(request)
        response = await self.llm.generate(
            prompt,
            temperature=self.settings.generation_temperature,
            max_tokens=self.settings.generation_max_tokens,
            system_prompt=self.templates.system,
        )
        if not response.success:
            raise LLMBackendError(response.error or "Model backend returned no data")

        logger.debug("Raw model response: %s", response.data[:_LOG_PREVIEW_CHARS])
        outcome = self._parse_batch(response.data)

        questions = format_questions(_question_list(outcome.data), request)
        if not questions and outcome.status != ParseStatus.OK:
            # Only a cleanly parsed empty batch counts as an answer
            raise ResponseParseError(f"No usable questions in {outcome.status.value} response")
        if len(questions) < request.quantity:
            logger.info(
                "Kept %d of %d requested %s questions",
                len(questions), request.quantity, request.question_type.value,
            )

        # Media failures propagate and fail the whole attempt
        for question in questions:
            await self.media.attach_media(question, request.concepts)
        return questions

    def _parse_batch(self, raw: str) -> ParseOutcome:
        """
        Strict or repaired parse, falling back to fragment extraction when
        neither yields a question list. Raises ResponseParseError.
        """
        outcome = parse_llm_json(raw)
        raw_questions = _question_list(outcome.data) if outcome.success else None

        if outcome.status == ParseStatus.OK and raw_questions is not None:
            return outcome
        if outcome.status == ParseStatus.REPAIRED and any(isinstance(q, dict) for q in raw_questions or []):
            logger.info("Model response needed JSON repair")
            return outcome

        logger.error("JSON parsing error: %s", describe_parse_failure(raw, outcome.error))
        partial = extract_partial_questions(raw)
        if partial is None:
            if outcome.success:
                raise ResponseParseError("LLM returned invalid question structure")
            raise ResponseParseError(f"Failed to parse LLM response: {outcome.error}")

        logger.warning("Using partial JSON extraction as fallback (%d questions)", len(partial["questions"]))
        return ParseOutcome(status=ParseStatus.PARTIAL, data=partial, original_text=raw)

    async def generate_batch(
        self,
        concepts: Sequence[Concept],
        plan: Sequence[QuestionTypeQuantity],
        difficulty: QuestionLevel,
        special_instructions: Optional[str] = None,
    ) -> tuple[list[GeneratedQuestion], list[TypeBreakdown]]:
        """
        Run one generation per requested type concurrently. A type that fails
        after its retries is reported in the breakdown instead of failing the
        other types.
        """
        entries = [item for item in plan if item.quantity > 0]
        requests = [
            GenerationRequest(
                concepts=tuple(concepts),
                question_type=item.type,
                difficulty=difficulty,
                quantity=item.quantity,
                special_instructions=special_instructions,
            )
            for item in entries
        ]
        results = await asyncio.gather(
            *(self.generate_questions(r) for r in requests),
            return_exceptions=True,
        )

        questions: list[GeneratedQuestion] = []
        breakdown: list[TypeBreakdown] = []
        for item, result in zip(entries, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logger.error("%s generation failed: %s", item.type.value, result)
                breakdown.append(TypeBreakdown(
                    type=item.type, requested=item.quantity, generated=0, error=str(result),
                ))
                continue
            questions.extend(result)
            breakdown.append(TypeBreakdown(type=item.type, requested=item.quantity, generated=len(result)))
        return questions, breakdown

    # ── Regeneration ──────────────────────────────────────────────────────────

    async def regenerate_question(
        self,
        original: GeneratedQuestion,
        concepts: Sequence[Concept],
        special_instructions: Optional[str] = None,
    ) -> GeneratedQuestion:
        """
        Replace one question with a fresh variant of the same type and
        difficulty. Single attempt: any failure raises RegenerationError.
        """
        prompt = self.prompts.build_regeneration(original, concepts, special_instructions)
        response = await self.llm.generate(
            prompt,
            temperature=self.settings.regeneration_temperature,
            max_tokens=self.settings.regeneration_max_tokens,
            system_prompt=self.templates.system,
        )
        if not response.success:
            raise RegenerationError(f"Model backend failed: {response.error}")

        outcome = parse_llm_json(response.data)
        if not outcome.success:
            logger.error("JSON parsing error: %s", describe_parse_failure(response.data, outcome.error))
            raise RegenerationError(f"Failed to parse regeneration response: {outcome.error}")

        data = outcome.data
        if isinstance(data, dict) and isinstance(data.get("question"), dict):
            data = data["question"]

        request = GenerationRequest(
            concepts=tuple(concepts),
            question_type=original.question_type,
            difficulty=original.difficulty,
            quantity=1,
        )
        questions = format_questions([data], request)
        if not questions:
            raise RegenerationError("Failed to generate valid replacement question")

        question = questions[0]
        try:
            await self.media.attach_media(question, concepts)
        except MediaGenerationError as e:
            raise RegenerationError(str(e)) from e
        return question
