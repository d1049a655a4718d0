from types import MappingProxyType
from typing import Mapping

from pydantic import BaseModel, ConfigDict, field_validator

from models import QuestionLevel, QuestionType


class TypePrompt(BaseModel):
    model_config = ConfigDict(frozen=True)

    description: str
    template: str
    example: str


class PromptTemplates(BaseModel):
    """
    Immutable bundle of every prompt fragment the pipeline uses.
    Passed to PromptBuilder / MediaSynthesizer so tests can swap in fixtures.
    """

    model_config = ConfigDict(frozen=True)

    generation: str
    regeneration: str
    conjugation_requirements: str
    type_prompts: Mapping[QuestionType, TypePrompt]
    difficulty_guidelines: Mapping[QuestionLevel, str]
    system: str
    content_analysis: str
    content_analysis_system: str
    audio_script: str
    image_brief: str
    media_system: str
    audio_fallback: str
    image_fallback: str

    @field_validator("type_prompts", "difficulty_guidelines")
    @classmethod
    def read_only(cls, v: Mapping) -> Mapping:
        # frozen=True only guards attribute assignment, not the tables themselves
        return MappingProxyType(dict(v))


# ── Per-level guidance ────────────────────────────────────────────────────────

DIFFICULTY_GUIDELINES = {
    QuestionLevel.A1: "Use basic vocabulary, simple present tense, common everyday topics",
    QuestionLevel.A2: "Include past/future tenses, more vocabulary, basic cases",
    QuestionLevel.B1: "Complex sentences, all cases, conditional mood, broader topics",
    QuestionLevel.B2: "Advanced grammar, nuanced vocabulary, cultural contexts",
    QuestionLevel.C1: "Sophisticated language, idiomatic expressions, complex concepts",
    QuestionLevel.C2: "Native-level complexity, literary language, abstract concepts",
}


# ── Per-type fragments ────────────────────────────────────────────────────────

QUESTION_TYPE_PROMPTS = {
    QuestionType.BASIC_CLOZE: TypePrompt(
        description="Fill-in-the-blank questions with single word answers",
        template="Create a sentence with a missing word (use _____ for the blank). The missing word should test the concept.",
        example="Question: 'Ja _____ do sklepu.' Answer: 'idę'",
    ),
    QuestionType.MULTI_CLOZE: TypePrompt(
        description="Fill-in-the-blank questions with multiple missing words",
        template="Create a sentence with 2-3 missing words (use _____ for each blank). Each blank tests related concepts.",
        example="Question: 'Moja _____ _____ do pracy autobusem.' Answer: 'siostra jedzie'",
    ),
    QuestionType.VOCAB_CHOICE: TypePrompt(
        description="Multiple choice vocabulary questions",
        template="Create a multiple choice question with 4 options. Only one option should be correct.",
        example="Question: 'What does \"książka\" mean?' Options: ['book', 'table', 'chair', 'window'] Answer: 'book'",
    ),
    QuestionType.MULTI_SELECT: TypePrompt(
        description="Multiple choice questions with multiple correct answers",
        template="Create a question where multiple options are correct. Provide 4-6 options with 2-3 correct answers.",
        example="Question: 'Which are Polish cities?' Options: ['Warszawa', 'Berlin', 'Kraków', 'Paris', 'Gdańsk'] Answer: 'Warszawa,Kraków,Gdańsk'",
    ),
    QuestionType.CONJUGATION_TABLE: TypePrompt(
        description="Complete verb conjugation table with all 6 standard forms",
        template=(
            "Ask to conjugate a verb in a specific tense (present/past/future) for all 6 persons. "
            "Return answers as comma-separated string in order: ja,ty,on/ona/ono,my,wy,oni/one"
        ),
        example="Question: 'Conjugate \"mówić\" in present tense' Answer: 'mówię,mówisz,mówi,mówimy,mówicie,mówią'",
    ),
    QuestionType.CASE_TRANSFORM: TypePrompt(
        description="Questions about grammatical case transformations",
        template="Give a word and ask for its transformation into a specific grammatical case.",
        example="Question: 'Transform \"kot\" to accusative case' Answer: 'kota'",
    ),
    QuestionType.SENTENCE_TRANSFORM: TypePrompt(
        description="Transform sentences between different grammatical forms",
        template="Ask to transform sentences (e.g., affirmative to negative, present to past).",
        example="Question: 'Transform to past tense: Ja czytam książkę' Answer: 'Ja czytałem książkę'",
    ),
    QuestionType.WORD_ARRANGEMENT: TypePrompt(
        description="Arrange words to form correct sentence",
        template=(
            "The question text is a generic instruction (e.g., 'Arrange these words to form a correct sentence:'). "
            "Place the scrambled words ONLY in the options array, never in the same order as the answer. "
            "Return the correct sentence as the correctAnswer."
        ),
        example="Question: 'Arrange these words to form a correct sentence:' Options: ['książkę', 'czytam', 'ciekawą'] Answer: 'Czytam ciekawą książkę'",
    ),
    QuestionType.TRANSLATION_PL: TypePrompt(
        description="Translate from English to Polish",
        template="Provide an English phrase and ask for Polish translation.",
        example="Question: 'Translate: I am reading a book' Answer: 'Czytam książkę'",
    ),
    QuestionType.TRANSLATION_EN: TypePrompt(
        description="Translate from Polish to English",
        template="Provide a Polish phrase and ask for English translation.",
        example="Question: 'Translate: Lubię kawę' Answer: 'I like coffee'",
    ),
    QuestionType.AUDIO_COMPREHENSION: TypePrompt(
        description="Audio-based comprehension questions",
        template=(
            "Create a question about a short spoken Polish phrase. The correctAnswer is the Polish phrase "
            "the learner will hear; audio is generated separately."
        ),
        example="Question: 'What did the speaker say?' Answer: 'Dzień dobry'",
    ),
    QuestionType.VISUAL_VOCABULARY: TypePrompt(
        description="Image-based vocabulary questions",
        template=(
            "Create a question asking what is shown in a picture. The correctAnswer is the Polish word "
            "for the pictured thing; the image is generated separately."
        ),
        example="Question: 'What is shown in the image?' Answer: 'dom'",
    ),
    QuestionType.DIALOGUE_COMPLETE: TypePrompt(
        description="Complete dialogue conversations",
        template="Provide partial dialogue and ask to complete it.",
        example="Question: 'A: Jak się masz? B: _____' Answer: 'Dobrze, dziękuję'",
    ),
    QuestionType.ASPECT_PAIRS: TypePrompt(
        description="Perfective and imperfective verb aspects",
        template="Ask about verb aspect pairs in Polish.",
        example="Question: 'Give the perfective form of \"czytać\"' Answer: 'przeczytać'",
    ),
    QuestionType.DIMINUTIVE_FORMS: TypePrompt(
        description="Polish diminutive word forms",
        template="Ask for diminutive forms of nouns.",
        example="Question: 'Give the diminutive form of \"kot\"' Answer: 'kotek'",
    ),
    QuestionType.SCENARIO_RESPONSE: TypePrompt(
        description="Respond to specific scenarios",
        template="Provide a scenario and ask for appropriate response.",
        example="Question: 'You enter a shop. What do you say?' Answer: 'Dzień dobry'",
    ),
    QuestionType.CULTURAL_CONTEXT: TypePrompt(
        description="Polish culture and context questions",
        template="Ask about Polish customs, culture, or context.",
        example="Question: 'When do Poles celebrate name days?' Answer: 'Throughout the year'",
    ),
    QuestionType.Q_A: TypePrompt(
        description="Question and answer format",
        template="Create a question that requires a specific answer related to the concept.",
        example="Question: 'Co robisz wieczorem?' Answer: 'Czytam książki' (or similar appropriate answer)",
    ),
}


# ── Generation ────────────────────────────────────────────────────────────────

GENERATION_PROMPT = """
You are an expert Polish language pedagogy specialist creating {question_type} questions that test genuine understanding and practical application.

Generate {quantity} self-contained Polish learning questions.

QUESTION TYPE:
- Type: {question_type}
- Description: {type_description}
- Template guidelines: {type_template}
- Reference example: {type_example}

TARGET CONCEPT NAMES: {concept_names}

CONCEPT DETAILS:
{concept_descriptions}

CONCEPT METADATA:
{concept_metadata}

LEARNER LEVEL: {difficulty}
LEVEL GUIDELINES: {difficulty_guidelines}

{special_instructions}

QUALITY REQUIREMENTS:
1. Every question must provide all context needed to answer it - no external references.
2. Each question must directly test at least one target concept.
3. Ensure a single, unambiguous correct answer.
4. For multiple choice, distractors should reflect common learner errors.
5. In the targetConcepts field use the exact concept NAMES from the list above.
{conjugation_requirements}

Return ONLY valid JSON - no markdown, no explanations, no code blocks.
Use DOUBLE QUOTES, NO trailing commas, NO comments.

RESPONSE FORMAT:
{{
  "questions": [
    {{
      "question": "Self-contained question text with _____ for blanks if applicable",
      "correctAnswer": "Precise correct answer, comma-separated for multi-select",
      "targetConcepts": ["{example_concept_name}"],
      "options": ["option1", "option2", "option3", "option4"]
    }}
  ]
}}

Generate exactly {quantity} questions. Return ONLY the JSON object.
""".strip()


CONJUGATION_REQUIREMENTS = """
6. CONJUGATION REQUIREMENTS:
   - Randomly select tense: present, past, or future
   - Ask to conjugate for ALL 6 standard forms: ja, ty, on/ona/ono, my, wy, oni/one
   - Return correctAnswer as comma-separated string in exact order: form1,form2,form3,form4,form5,form6
   - Question format: "Conjugate [verb] in [tense] tense"
""".strip()


REGENERATION_PROMPT = """
You are regenerating a Polish learning question that needs improvement.

ORIGINAL QUESTION:
Question: {original_question}
Answer: {original_answer}
Type: {question_type}
{original_options}

TARGET CONCEPTS:
{concept_descriptions}

TASK: Create a NEW, DIFFERENT question of the same type testing the same concepts.
- Use different wording, context, or examples
- Maintain the same difficulty level ({difficulty})
- Follow the same format requirements

{type_description}
{type_template}

{special_instructions}

Return ONLY valid JSON - no markdown, no explanations, no code blocks.
Use DOUBLE QUOTES, NO trailing commas, NO comments.

RESPONSE FORMAT:
{{
  "question": {{
    "question": "New question text",
    "correctAnswer": "Correct answer",
    "targetConcepts": ["{example_concept_name}"],
    "options": ["option1", "option2", "option3", "option4"]
  }}
}}
""".strip()


SYSTEM_PROMPT = "You are an expert Polish language teacher creating high-quality learning questions for students."


# ── Media ─────────────────────────────────────────────────────────────────────

CONTENT_ANALYSIS_PROMPT = """
Analyze the given Polish word or phrase for educational media generation.

Target word/phrase: {target_word}
Additional context: {concept_context}
Learning level: {difficulty}

Return ONLY a JSON object with this exact structure:
{{
  "primaryCategory": "household|nature|food|transport|emotions|actions|...",
  "naturalSettings": ["setting1", "setting2", "setting3"],
  "keyVisualElements": ["element1", "element2", "element3"],
  "avoidVisualElements": ["avoid1", "avoid2"],
  "naturalScenarios": ["scenario1", "scenario2", "scenario3"]
}}
""".strip()


CONTENT_ANALYSIS_SYSTEM_PROMPT = (
    "You are a Polish language expert specializing in semantic analysis and educational content design. "
    "Provide precise, structured analysis for educational media generation."
)


AUDIO_SCRIPT_PROMPT = """
Write a short Polish audio script (2-4 sentences, 15-30 seconds when spoken) for language learners.

Target word/phrase: {target_word}
Learning level: {difficulty}
Concept context: {concept_context}
Everyday scenarios to draw on: {scenarios}

Requirements:
- Natural, clear Polish at {difficulty} level
- Use the target word/phrase 1-2 times naturally, not as a definition
- Simple vocabulary around the target

Return ONLY the Polish script text, ready for text-to-speech.
""".strip()


IMAGE_BRIEF_TEMPLATE = (
    "Clean, colorful cartoon illustration for Polish language learners showing {target_word} "
    "in its natural context: {settings}. Include {visual_elements}. "
    "Simple scene with 3-5 main elements, bright colors, high contrast. "
    "Absolutely no text, letters or labels. Avoid {avoid_elements}."
)


MEDIA_SYSTEM_PROMPT = (
    "You are an expert Polish language and culture specialist creating educational media content "
    "for language learners."
)


AUDIO_FALLBACK_TEMPLATE = "{target_word}. {description}"


IMAGE_FALLBACK_TEMPLATE = (
    "Simple cartoon-style flashcard illustration of {target_word} ({description}). "
    "Clean background, bright colors, educational illustration, no text or labels."
)


DEFAULT_TEMPLATES = PromptTemplates(
    generation=GENERATION_PROMPT,
    regeneration=REGENERATION_PROMPT,
    conjugation_requirements=CONJUGATION_REQUIREMENTS,
    type_prompts=QUESTION_TYPE_PROMPTS,
    difficulty_guidelines=DIFFICULTY_GUIDELINES,
    system=SYSTEM_PROMPT,
    content_analysis=CONTENT_ANALYSIS_PROMPT,
    content_analysis_system=CONTENT_ANALYSIS_SYSTEM_PROMPT,
    audio_script=AUDIO_SCRIPT_PROMPT,
    image_brief=IMAGE_BRIEF_TEMPLATE,
    media_system=MEDIA_SYSTEM_PROMPT,
    audio_fallback=AUDIO_FALLBACK_TEMPLATE,
    image_fallback=IMAGE_FALLBACK_TEMPLATE,
)
