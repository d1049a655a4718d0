import logging
from typing import Any, Callable, Optional, Sequence

from models import (
    Concept,
    ConceptResolution,
    GeneratedQuestion,
    GenerationRequest,
    QuestionType,
    ResolutionStatus,
)

logger = logging.getLogger(__name__)

BLANK_MARKER = "_____"


def _min_options(n: int) -> Callable[[GeneratedQuestion], bool]:
    def rule(q: GeneratedQuestion) -> bool:
        return q.options is not None and len(q.options) >= n
    return rule


def _has_blank(q: GeneratedQuestion) -> bool:
    return BLANK_MARKER in q.question


# Types missing from the table are structurally unconstrained.
TYPE_RULES: dict[QuestionType, Callable[[GeneratedQuestion], bool]] = {
    QuestionType.VOCAB_CHOICE: _min_options(2),
    QuestionType.MULTI_SELECT: _min_options(2),
    QuestionType.BASIC_CLOZE: _has_blank,
    QuestionType.MULTI_CLOZE: _has_blank,
    QuestionType.WORD_ARRANGEMENT: _min_options(3),
}


def is_valid_for_type(question: GeneratedQuestion) -> bool:
    rule = TYPE_RULES.get(question.question_type)
    return rule is None or rule(question)


def _normalize_name(name: str) -> str:
    return " ".join(name.split()).casefold()


def resolve_target_concepts(names: Any, concepts: Sequence[Concept]) -> ConceptResolution:
    """
    Map model-supplied concept names back to concept ids.

    The model is prompted with names, but may change case/spacing or echo an
    id back. Names that cannot be resolved are dropped; if nothing resolves
    the question is attributed to every requested concept.
    """
    all_ids = [c.id for c in concepts]
    if isinstance(names, str):
        names = [names]
    if not isinstance(names, list) or not names:
        return ConceptResolution(status=ResolutionStatus.FALLBACK, concept_ids=all_ids)

    by_name = {c.name: c.id for c in concepts}
    by_normalized = {_normalize_name(c.name): c.id for c in concepts}
    known_ids = set(all_ids)

    resolved: list[str] = []
    unresolved = 0
    for name in names:
        if not isinstance(name, str):
            unresolved += 1
            continue
        concept_id = (
            by_name.get(name)
            or by_normalized.get(_normalize_name(name))
            or (name if name in known_ids else None)
        )
        if concept_id is None:
            unresolved += 1
        elif concept_id not in resolved:
            resolved.append(concept_id)

    if not resolved:
        return ConceptResolution(status=ResolutionStatus.FALLBACK, concept_ids=all_ids)
    if unresolved:
        return ConceptResolution(status=ResolutionStatus.PARTIAL, concept_ids=resolved)
    return ConceptResolution(status=ResolutionStatus.EXACT, concept_ids=resolved)


def _text(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, list):
        # multi-select answers sometimes come back as a list
        return ",".join(str(v).strip() for v in value if str(v).strip())
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return ""


def _options(value: Any) -> Optional[list[str]]:
    if not isinstance(value, list):
        return None
    options = [str(o).strip() for o in value if o is not None and str(o).strip()]
    return options or None


def format_questions(raw_questions: Sequence[Any], request: GenerationRequest) -> list[GeneratedQuestion]:
    """
    Turn raw model question dicts into GeneratedQuestion objects.
    Entries without a body/answer or failing their type's shape rule are
    dropped, so the batch may come back shorter than requested.
    """
    valid: list[GeneratedQuestion] = []

    for raw in raw_questions:
        if not isinstance(raw, dict):
            logger.warning("Skipping non-object question entry: %r", raw)
            continue

        body = _text(raw.get("question"))
        answer = _text(raw.get("correctAnswer", raw.get("correct_answer")))
        if not body or not answer:
            logger.warning("Skipping question without body or answer: %r", raw)
            continue

        resolution = resolve_target_concepts(
            raw.get("targetConcepts", raw.get("target_concepts")),
            request.concepts,
        )
        if resolution.status != ResolutionStatus.EXACT:
            logger.info(
                "Concept names %r resolved with %s to %s",
                raw.get("targetConcepts"), resolution.status.value, resolution.concept_ids,
            )

        question = GeneratedQuestion(
            question=body,
            correct_answer=answer,
            question_type=request.question_type,
            difficulty=request.difficulty,
            target_concepts=resolution.concept_ids,
            options=_options(raw.get("options")),
        )

        if not is_valid_for_type(question):
            logger.warning(
                "Dropping %s question that fails shape check: %s",
                request.question_type.value, body[:120],
            )
            continue
        valid.append(question)

    return valid
