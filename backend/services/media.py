"""
Media synthesis for media-bearing question types.

Audio comprehension questions get a spoken Polish script, visual vocabulary
questions get an illustration. The script / illustration brief is derived
from a content-analysis pass over the answer and its concepts; when that
derivation fails a fallback built from the concept description is used.
Failures of the media backend itself are never swallowed: a media-bearing
question without its medium is unusable.
"""
import base64
import logging
from typing import Any, Optional, Sequence

from openai import AsyncOpenAI, OpenAIError

from config import Settings, get_settings
from errors import LLMBackendError, MediaGenerationError, ResponseParseError
from models import (
    Concept,
    GeneratedQuestion,
    MediaBrief,
    MediaBriefStatus,
    QuestionLevel,
    QuestionType,
)
from prompts import DEFAULT_TEMPLATES, PromptTemplates
from services.llm import LLMClient
from utils import parse_llm_json

logger = logging.getLogger(__name__)

AUDIO = "audio"
IMAGE = "image"

MEDIA_TYPES: dict[QuestionType, str] = {
    QuestionType.AUDIO_COMPREHENSION: AUDIO,
    QuestionType.VISUAL_VOCABULARY: IMAGE,
}

_MAX_CONTEXT_CHARS = 200


def requires_media(question_type: QuestionType) -> bool:
    return question_type in MEDIA_TYPES


class MediaClient:
    """Audio (TTS) and image generation backend."""

    def __init__(self, client: Optional[AsyncOpenAI] = None, settings: Optional[Settings] = None):
        s = settings or get_settings()
        # media endpoints are OpenAI-only, so no custom base_url here
        self._client = client or AsyncOpenAI(api_key=s.openai_api_key)
        self.tts_model = s.tts_model
        self.image_model = s.image_model

    async def generate_audio(self, text: str, voice: str = "alloy") -> bytes:
        try:
            response = await self._client.audio.speech.create(
                model=self.tts_model,
                voice=voice,
                input=text,
            )
        except OpenAIError as e:
            raise MediaGenerationError(f"Audio generation failed: {e}") from e
        audio = response.content
        if not audio:
            raise MediaGenerationError("Audio generation returned no data")
        return audio

    async def generate_image(self, prompt: str, size: str = "1024x1024") -> str:
        try:
            result = await self._client.images.generate(
                model=self.image_model,
                prompt=prompt,
                size=size,
                n=1,
            )
        except OpenAIError as e:
            raise MediaGenerationError(f"Image generation failed: {e}") from e

        image = result.data[0] if result.data else None
        if image is not None and image.url:
            return image.url
        if image is not None and image.b64_json:
            return f"data:image/png;base64,{image.b64_json}"
        raise MediaGenerationError("Image generation returned no image")


def _truncate(text: str, limit: int = _MAX_CONTEXT_CHARS) -> str:
    text = " ".join(text.split())
    return text if len(text) <= limit else text[:limit].rstrip() + "..."


def _strings(value: Any, limit: int = 3) -> list[str]:
    if not isinstance(value, list):
        return []
    return [str(v).strip() for v in value if str(v).strip()][:limit]


class MediaSynthesizer:
    def __init__(
        self,
        llm: LLMClient,
        media: MediaClient,
        templates: PromptTemplates = DEFAULT_TEMPLATES,
        settings: Optional[Settings] = None,
    ):
        self.llm = llm
        self.media = media
        self.templates = templates
        self.settings = settings or get_settings()

    async def attach_media(self, question: GeneratedQuestion, concepts: Sequence[Concept]) -> None:
        """Attach the medium a question type needs. Raises MediaGenerationError."""
        kind = MEDIA_TYPES.get(question.question_type)
        if kind is None:
            return

        targets = [c for c in concepts if c.id in question.target_concepts] or list(concepts)

        if kind == AUDIO:
            brief = await self.audio_script(question, targets)
            audio = await self.media.generate_audio(brief.text, self.settings.tts_voice)
            question.audio_url = "data:audio/mp3;base64," + base64.b64encode(audio).decode("ascii")
        else:
            brief = await self.image_brief(question, targets)
            question.image_url = await self.media.generate_image(brief.text, self.settings.image_size)

        logger.info("Attached %s to %s question (%s brief)", kind, question.question_type.value, brief.status.value)

    # ── Brief derivation ──────────────────────────────────────────────────────

    async def analyse_content(self, target_word: str, concept_context: str, difficulty: QuestionLevel) -> dict:
        prompt = self.templates.content_analysis.format(
            target_word=target_word,
            concept_context=concept_context or "No additional context provided",
            difficulty=difficulty.value,
        )
        response = await self.llm.generate(
            prompt,
            temperature=self.settings.analysis_temperature,
            max_tokens=self.settings.analysis_max_tokens,
            system_prompt=self.templates.content_analysis_system,
            model=self.settings.analysis_model,
        )
        if not response.success:
            raise LLMBackendError(response.error or "Content analysis failed")

        outcome = parse_llm_json(response.data)
        if not outcome.success or not isinstance(outcome.data, dict):
            raise ResponseParseError(outcome.error or "Content analysis is not a JSON object")
        return outcome.data

    async def audio_script(self, question: GeneratedQuestion, concepts: Sequence[Concept]) -> MediaBrief:
        target = question.correct_answer
        context = _truncate("; ".join(c.description for c in concepts if c.description))
        try:
            analysis = await self.analyse_content(target, context, question.difficulty)
            scenarios = _strings(analysis.get("naturalScenarios")) or ["daily conversation"]
            response = await self.llm.generate(
                self.templates.audio_script.format(
                    target_word=target,
                    difficulty=question.difficulty.value,
                    concept_context=context or "common everyday usage",
                    scenarios=", ".join(scenarios),
                ),
                temperature=self.settings.generation_temperature,
                max_tokens=self.settings.analysis_max_tokens,
                system_prompt=self.templates.media_system,
                model=self.settings.analysis_model,
            )
            if not response.success:
                raise LLMBackendError(response.error or "Audio script generation failed")
            script = response.data.strip().strip('"`').strip()
            if target.casefold() not in script.casefold():
                raise ResponseParseError("Audio script does not contain the answer")
        except (LLMBackendError, ResponseParseError) as e:
            logger.warning("Audio script derivation failed, using fallback: %s", e)
            return self._fallback(self.templates.audio_fallback, target, concepts)

        return MediaBrief(status=MediaBriefStatus.ANALYSED, text=script)

    async def image_brief(self, question: GeneratedQuestion, concepts: Sequence[Concept]) -> MediaBrief:
        target = question.correct_answer
        context = _truncate("; ".join(c.description for c in concepts if c.description))
        try:
            analysis = await self.analyse_content(target, context, question.difficulty)
        except (LLMBackendError, ResponseParseError) as e:
            logger.warning("Image brief derivation failed, using fallback: %s", e)
            return self._fallback(self.templates.image_fallback, target, concepts)

        settings = _strings(analysis.get("naturalSettings")) or ["an everyday setting"]
        elements = _strings(analysis.get("keyVisualElements"), limit=4) or ["people in a natural situation"]
        avoid = _strings(analysis.get("avoidVisualElements")) or ["text", "labels"]
        brief = self.templates.image_brief.format(
            target_word=target,
            settings=", ".join(settings),
            visual_elements=", ".join(elements),
            avoid_elements=", ".join(avoid),
        )
        return MediaBrief(status=MediaBriefStatus.ANALYSED, text=brief)

    def _fallback(self, template: str, target: str, concepts: Sequence[Concept]) -> MediaBrief:
        concept = concepts[0] if concepts else None
        description = ""
        if concept is not None:
            description = concept.description or concept.name
        text = template.format(target_word=target, description=_truncate(description) or target)
        return MediaBrief(status=MediaBriefStatus.FALLBACK, text=text)
