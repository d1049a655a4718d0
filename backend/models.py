from enum import Enum
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


# ── Enumerations ──────────────────────────────────────────────────────────────

class QuestionType(str, Enum):
    BASIC_CLOZE = "basic_cloze"
    MULTI_CLOZE = "multi_cloze"
    VOCAB_CHOICE = "vocab_choice"
    MULTI_SELECT = "multi_select"
    CONJUGATION_TABLE = "conjugation_table"
    CASE_TRANSFORM = "case_transform"
    SENTENCE_TRANSFORM = "sentence_transform"
    WORD_ARRANGEMENT = "word_arrangement"
    TRANSLATION_PL = "translation_pl"
    TRANSLATION_EN = "translation_en"
    AUDIO_COMPREHENSION = "audio_comprehension"
    VISUAL_VOCABULARY = "visual_vocabulary"
    DIALOGUE_COMPLETE = "dialogue_complete"
    ASPECT_PAIRS = "aspect_pairs"
    DIMINUTIVE_FORMS = "diminutive_forms"
    SCENARIO_RESPONSE = "scenario_response"
    CULTURAL_CONTEXT = "cultural_context"
    Q_A = "q_a"


class QuestionLevel(str, Enum):
    A1 = "A1"
    A2 = "A2"
    B1 = "B1"
    B2 = "B2"
    C1 = "C1"
    C2 = "C2"


class ConceptCategory(str, Enum):
    GRAMMAR = "grammar"
    VOCABULARY = "vocabulary"


class _CamelModel(BaseModel):
    """Accepts and emits camelCase keys to match the question-bank API."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Domain models ─────────────────────────────────────────────────────────────

class Concept(_CamelModel):
    id: str
    name: str
    description: str = ""
    difficulty: QuestionLevel = QuestionLevel.A1
    tags: list[str] = []
    category: Optional[ConceptCategory] = None
    examples: list[str] = []


class GenerationRequest(_CamelModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    concepts: tuple[Concept, ...]
    question_type: QuestionType
    difficulty: QuestionLevel
    quantity: int = Field(gt=0, le=50)
    special_instructions: Optional[str] = None

    @field_validator("concepts")
    @classmethod
    def concepts_not_empty(cls, v: tuple[Concept, ...]) -> tuple[Concept, ...]:
        if not v:
            raise ValueError("At least one concept is required")
        return v

    @property
    def concept_ids(self) -> list[str]:
        return [c.id for c in self.concepts]


class GeneratedQuestion(_CamelModel):
    question: str
    correct_answer: str
    question_type: QuestionType
    difficulty: QuestionLevel
    target_concepts: list[str]   # concept ids, never names
    options: Optional[list[str]] = None
    audio_url: Optional[str] = None
    image_url: Optional[str] = None


# ── Tagged intermediate results ───────────────────────────────────────────────

class ParseStatus(str, Enum):
    OK = "ok"              # strict JSON parse
    REPAIRED = "repaired"  # forgiving re-parse
    PARTIAL = "partial"    # fragment extraction
    FAILED = "failed"


class ParseOutcome(BaseModel):
    model_config = ConfigDict(frozen=True)

    status: ParseStatus
    data: Any = None
    original_text: str = ""
    error: Optional[str] = None

    @property
    def success(self) -> bool:
        return self.status != ParseStatus.FAILED


class ResolutionStatus(str, Enum):
    EXACT = "exact"
    PARTIAL = "partial"
    FALLBACK = "fallback"


class ConceptResolution(BaseModel):
    status: ResolutionStatus
    concept_ids: list[str]


class MediaBriefStatus(str, Enum):
    ANALYSED = "analysed"
    FALLBACK = "fallback"


class MediaBrief(BaseModel):
    status: MediaBriefStatus
    text: str


class LLMResponse(BaseModel):
    success: bool
    data: str = ""
    error: Optional[str] = None


# ── Request models ────────────────────────────────────────────────────────────

class QuestionTypeQuantity(_CamelModel):
    type: QuestionType
    quantity: int = Field(ge=0, le=50)


class GenerateQuestionsRequest(_CamelModel):
    concepts: list[Concept]
    question_types: list[QuestionTypeQuantity]
    difficulty: QuestionLevel
    special_instructions: Optional[str] = None

    @field_validator("concepts")
    @classmethod
    def concepts_not_empty(cls, v: list[Concept]) -> list[Concept]:
        if not v:
            raise ValueError("Concepts are required")
        return v

    @field_validator("question_types")
    @classmethod
    def total_within_limit(cls, v: list[QuestionTypeQuantity]) -> list[QuestionTypeQuantity]:
        total = sum(qt.quantity for qt in v)
        if total == 0:
            raise ValueError("At least one question must be requested")
        if total > 100:
            raise ValueError("Maximum 100 questions per batch")
        return v


class RegenerateQuestionRequest(_CamelModel):
    question: GeneratedQuestion
    concepts: list[Concept]
    special_instructions: Optional[str] = None

    @field_validator("concepts")
    @classmethod
    def concepts_not_empty(cls, v: list[Concept]) -> list[Concept]:
        if not v:
            raise ValueError("Concepts are required")
        return v


# ── Response models ───────────────────────────────────────────────────────────

class TypeBreakdown(_CamelModel):
    type: QuestionType
    requested: int
    generated: int
    error: Optional[str] = None


class GenerationSummary(_CamelModel):
    total_generated: int
    breakdown: list[TypeBreakdown]


class GenerateQuestionsResponse(_CamelModel):
    questions: list[GeneratedQuestion]
    summary: GenerationSummary


class RegenerateQuestionResponse(_CamelModel):
    question: GeneratedQuestion
