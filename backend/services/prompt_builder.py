from typing import Optional, Sequence

from models import Concept, GeneratedQuestion, GenerationRequest, QuestionLevel, QuestionType
from prompts import DEFAULT_TEMPLATES, PromptTemplates


def _concept_names(concepts: Sequence[Concept]) -> str:
    return ", ".join(c.name for c in concepts)


def _concept_descriptions(concepts: Sequence[Concept]) -> str:
    return "\n".join(f"{c.name}: {c.description}" for c in concepts)


def _concept_metadata(concepts: Sequence[Concept]) -> str:
    lines = []
    for c in concepts:
        parts = [f"level {c.difficulty.value}"]
        if c.category:
            parts.append(f"category {c.category.value}")
        if c.tags:
            parts.append("tags: " + ", ".join(c.tags))
        if c.examples:
            parts.append("examples: " + "; ".join(c.examples[:3]))
        lines.append(f"- {c.name} ({'; '.join(parts)})")
    return "\n".join(lines)


class PromptBuilder:
    """Composes generation and regeneration prompts from injected templates."""

    def __init__(self, templates: PromptTemplates = DEFAULT_TEMPLATES):
        self.templates = templates

    def difficulty_guidelines(self, difficulty: QuestionLevel) -> str:
        guidelines = self.templates.difficulty_guidelines
        return guidelines.get(difficulty) or guidelines[QuestionLevel.A1]

    def build(self, request: GenerationRequest) -> str:
        type_info = self.templates.type_prompts[request.question_type]
        concepts = request.concepts

        return self.templates.generation.format(
            question_type=request.question_type.value,
            quantity=request.quantity,
            type_description=type_info.description,
            type_template=type_info.template,
            type_example=type_info.example,
            concept_names=_concept_names(concepts),
            concept_descriptions=_concept_descriptions(concepts),
            concept_metadata=_concept_metadata(concepts),
            difficulty=request.difficulty.value,
            difficulty_guidelines=self.difficulty_guidelines(request.difficulty),
            special_instructions=(
                f"SPECIAL INSTRUCTIONS: {request.special_instructions}"
                if request.special_instructions else ""
            ),
            conjugation_requirements=(
                self.templates.conjugation_requirements
                if request.question_type == QuestionType.CONJUGATION_TABLE else ""
            ),
            example_concept_name=concepts[0].name,
        )

    def build_regeneration(
        self,
        original: GeneratedQuestion,
        concepts: Sequence[Concept],
        special_instructions: Optional[str] = None,
    ) -> str:
        type_info = self.templates.type_prompts[original.question_type]

        return self.templates.regeneration.format(
            original_question=original.question,
            original_answer=original.correct_answer,
            question_type=original.question_type.value,
            original_options=f"Options: {', '.join(original.options)}" if original.options else "",
            concept_descriptions=_concept_descriptions(concepts),
            difficulty=original.difficulty.value,
            type_description=type_info.description,
            type_template=type_info.template,
            special_instructions=(
                f"SPECIAL REQUIREMENTS: {special_instructions}" if special_instructions else ""
            ),
            example_concept_name=concepts[0].name if concepts else "concept name",
        )
