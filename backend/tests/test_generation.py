import json

import pytest

from errors import GenerationExhaustedError, RegenerationError, ResponseParseError
from fakes import ANALYSIS, GENERATION, FakeLLM, FakeMedia, questions_json
from models import (
    GeneratedQuestion,
    GenerationRequest,
    LLMResponse,
    QuestionLevel,
    QuestionType,
    QuestionTypeQuantity,
)
from services.validation import BLANK_MARKER

BROKEN = "Sorry, I can't produce JSON right now."

BROKEN_RESPONSES = [
    BROKEN,
    "{oops}",
    '{"questions": [',
    '{"questions": [}]',
    '{"questions": [{"question": "Ja _____ do',
]

CLOZE = {"question": f"Ja {BLANK_MARKER} do sklepu.", "correctAnswer": "idę", "targetConcepts": ["present tense of iść"]}


def _request(concepts, question_type=QuestionType.BASIC_CLOZE, quantity=2, difficulty=QuestionLevel.A1):
    return GenerationRequest(concepts=concepts, question_type=question_type, difficulty=difficulty, quantity=quantity)


# ── Batch generation ──────────────────────────────────────────────────────────

async def test_vocab_choice_batch(make_service, concepts, sleep):
    llm = FakeLLM(generation=[questions_json(
        {"question": "Jak się mówi 'good morning'?", "correctAnswer": "dzień dobry",
         "targetConcepts": ["greeting"], "options": ["dzień dobry", "dobranoc", "do widzenia"]},
        {"question": "Which form completes 'ja ...'?", "correctAnswer": "idę",
         "targetConcepts": ["present tense of iść"], "options": ["idę", "idziesz"]},
    )])
    questions = await make_service(llm).generate_questions(_request(concepts, QuestionType.VOCAB_CHOICE))

    assert [q.correct_answer for q in questions] == ["dzień dobry", "idę"]
    assert [q.target_concepts for q in questions] == [["c1"], ["c2"]]
    assert all(q.question_type == QuestionType.VOCAB_CHOICE for q in questions)
    assert all(q.difficulty == QuestionLevel.A1 for q in questions)
    assert llm.count(GENERATION) == 1
    assert sleep.delays == []


async def test_generation_uses_configured_sampling(make_service, concepts, settings):
    llm = FakeLLM(generation=[questions_json(CLOZE)])
    await make_service(llm).generate_questions(_request(concepts))
    [call] = llm.calls
    assert call["temperature"] == settings.generation_temperature
    assert call["max_tokens"] == settings.generation_max_tokens
    assert "Generate exactly 2 questions" in call["prompt"]


@pytest.mark.parametrize("broken", BROKEN_RESPONSES)
async def test_retry_ceiling(make_service, concepts, sleep, broken):
    llm = FakeLLM(generation=[broken])
    with pytest.raises(GenerationExhaustedError) as exc_info:
        await make_service(llm).generate_questions(_request(concepts))

    assert llm.count(GENERATION) == 3
    assert sleep.delays == [1.0, 2.0]
    assert exc_info.value.attempts == 3
    assert isinstance(exc_info.value.last_error, ResponseParseError)
    assert str(exc_info.value).startswith("Failed to generate questions after 3 attempts")


async def test_exhaustion_message_embeds_parse_failure(make_service, concepts):
    llm = FakeLLM(generation=[BROKEN])
    with pytest.raises(GenerationExhaustedError, match="Failed to parse LLM response"):
        await make_service(llm).generate_questions(_request(concepts))


@pytest.mark.parametrize("first, second", [
    (BROKEN, BROKEN),
    ('{"questions": [{"question": ', '{"questions": ['),
    ("{oops}", '{"questions": [}]'),
])
async def test_recovers_on_third_attempt(make_service, concepts, sleep, first, second):
    llm = FakeLLM(generation=[first, second, questions_json(CLOZE)])
    questions = await make_service(llm).generate_questions(_request(concepts))

    assert len(questions) == 1
    assert questions[0].target_concepts == ["c2"]
    assert llm.count(GENERATION) == 3
    assert sleep.delays == [1.0, 2.0]


async def test_fragment_extraction_when_repair_gives_up(make_service, concepts, monkeypatch, caplog):
    monkeypatch.setattr("utils.repair_json", lambda *args, **kwargs: "")
    raw = (
        '{"questions": ['
        f'{{"question": "Ja {BLANK_MARKER} do sklepu.", "correctAnswer": "idę"}}, '
        f'{{"question": "Ty {BLANK_MARKER} do domu.", "correctAnswer": "idziesz"}}, '
        '{"question": "On _____'
    )
    llm = FakeLLM(generation=[raw])
    questions = await make_service(llm).generate_questions(_request(concepts, quantity=3))

    assert [q.correct_answer for q in questions] == ["idę", "idziesz"]
    assert llm.count(GENERATION) == 1
    assert "Using partial JSON extraction" in caplog.text


async def test_unusable_fragments_are_retried(make_service, concepts, monkeypatch):
    monkeypatch.setattr("utils.repair_json", lambda *args, **kwargs: "")
    truncated = '{"questions": [{"question": "Bez odpowiedzi _____"}, {"question": "On'
    llm = FakeLLM(generation=[truncated, questions_json(CLOZE)])
    questions = await make_service(llm).generate_questions(_request(concepts))
    assert len(questions) == 1
    assert llm.count(GENERATION) == 2


@pytest.mark.parametrize("failure", [
    LLMResponse(success=False, error="rate limited"),
    RuntimeError("connection reset"),
])
async def test_backend_failures_are_retried(make_service, concepts, failure):
    llm = FakeLLM(generation=[failure, questions_json(CLOZE)])
    questions = await make_service(llm).generate_questions(_request(concepts))
    assert len(questions) == 1
    assert llm.count(GENERATION) == 2


async def test_exhaustion_reports_last_backend_error(make_service, concepts):
    llm = FakeLLM(generation=[LLMResponse(success=False, error="rate limited")])
    with pytest.raises(GenerationExhaustedError, match="rate limited"):
        await make_service(llm).generate_questions(_request(concepts))


async def test_unexpected_structure_is_retried(make_service, concepts):
    llm = FakeLLM(generation=['{"items": []}'])
    with pytest.raises(GenerationExhaustedError, match="invalid question structure"):
        await make_service(llm).generate_questions(_request(concepts))
    assert llm.count(GENERATION) == 3


async def test_empty_batch_is_not_an_error(make_service, concepts, sleep):
    llm = FakeLLM(generation=['{"questions": []}'])
    assert await make_service(llm).generate_questions(_request(concepts)) == []
    assert llm.count(GENERATION) == 1
    assert sleep.delays == []


async def test_bare_list_response_is_accepted(make_service, concepts):
    llm = FakeLLM(generation=[f'[{{"question": "A {BLANK_MARKER}", "correctAnswer": "a"}}]'])
    [question] = await make_service(llm).generate_questions(_request(concepts, quantity=1))
    assert question.target_concepts == ["c1", "c2"]


async def test_truncated_response_keeps_complete_questions(make_service, concepts):
    raw = (
        '```json\n{"questions": ['
        f'{{"question": "Ja {BLANK_MARKER} do sklepu.", "correctAnswer": "idę"}}, '
        f'{{"question": "Ty {BLANK_MARKER} do domu.", "correctAnswer": "idziesz"}}, '
        '{"question": "On _____'
    )
    llm = FakeLLM(generation=[raw])
    questions = await make_service(llm).generate_questions(_request(concepts, quantity=3))
    assert [q.correct_answer for q in questions] == ["idę", "idziesz"]
    assert llm.count(GENERATION) == 1


async def test_invalid_entries_are_dropped_without_retry(make_service, concepts):
    llm = FakeLLM(generation=[questions_json(
        CLOZE,
        {"question": "No blank here", "correctAnswer": "x"},
        {"question": f"Bez odpowiedzi {BLANK_MARKER}"},
    )])
    questions = await make_service(llm).generate_questions(_request(concepts, quantity=3))
    assert len(questions) == 1
    assert llm.count(GENERATION) == 1


async def test_concept_ids_stay_within_request(make_service, concepts):
    llm = FakeLLM(generation=[questions_json(
        {**CLOZE, "targetConcepts": ["greeting", "made up"]},
        {**CLOZE, "targetConcepts": ["zz-unknown"]},
        {**CLOZE, "targetConcepts": "present tense of iść"},
    )])
    questions = await make_service(llm).generate_questions(_request(concepts, quantity=3))
    assert [q.target_concepts for q in questions] == [["c1"], ["c1", "c2"], ["c2"]]


# ── Media-bearing types ───────────────────────────────────────────────────────

AUDIO_QUESTION = {
    "question": "Listen and write what you hear.",
    "correctAnswer": "Dzień dobry",
    "targetConcepts": ["greeting"],
}


async def test_audio_questions_get_audio(make_service, concepts):
    llm = FakeLLM(generation=[questions_json(AUDIO_QUESTION)], analysis=[BROKEN])
    media = FakeMedia()
    [question] = await make_service(llm, media).generate_questions(
        _request(concepts, QuestionType.AUDIO_COMPREHENSION, quantity=1),
    )
    assert question.audio_url.startswith("data:audio/mp3;base64,")
    assert len(media.audio_calls) == 1
    assert llm.count(ANALYSIS) == 1


async def test_visual_questions_get_an_image(make_service, concepts):
    llm = FakeLLM(generation=[questions_json({**AUDIO_QUESTION, "correctAnswer": "dom"})], analysis=[BROKEN])
    [question] = await make_service(llm, FakeMedia(image_url="https://img.example/dom.png")).generate_questions(
        _request(concepts, QuestionType.VISUAL_VOCABULARY, quantity=1),
    )
    assert question.image_url == "https://img.example/dom.png"
    assert question.audio_url is None


async def test_media_failure_fails_the_attempt(make_service, concepts, sleep):
    llm = FakeLLM(generation=[questions_json(AUDIO_QUESTION)])
    media = FakeMedia(fail=True)
    with pytest.raises(GenerationExhaustedError, match="Audio generation failed"):
        await make_service(llm, media).generate_questions(
            _request(concepts, QuestionType.AUDIO_COMPREHENSION, quantity=1),
        )
    assert llm.count(GENERATION) == 3
    assert len(media.audio_calls) == 3
    assert sleep.delays == [1.0, 2.0]


# ── Multi-type batches ────────────────────────────────────────────────────────

class TypeRoutedLLM(FakeLLM):
    """Answers generation calls per question type."""

    def __init__(self, by_type):
        super().__init__()
        self.by_type = by_type

    async def generate(self, prompt, temperature=0.7, max_tokens=2000, system_prompt=None, model=None):
        for question_type, body in self.by_type.items():
            if f"- Type: {question_type.value}\n" in prompt:
                self.queues[GENERATION] = [body]
        return await super().generate(prompt, temperature, max_tokens, system_prompt, model)


async def test_batch_isolates_failing_types(make_service, concepts):
    llm = TypeRoutedLLM({
        QuestionType.BASIC_CLOZE: questions_json(CLOZE, CLOZE),
        QuestionType.TRANSLATION_EN: BROKEN,
    })
    plan = [
        QuestionTypeQuantity(type=QuestionType.BASIC_CLOZE, quantity=2),
        QuestionTypeQuantity(type=QuestionType.TRANSLATION_EN, quantity=3),
        QuestionTypeQuantity(type=QuestionType.VOCAB_CHOICE, quantity=0),
    ]
    questions, breakdown = await make_service(llm).generate_batch(concepts, plan, QuestionLevel.A1)

    assert len(questions) == 2
    assert [b.type for b in breakdown] == [QuestionType.BASIC_CLOZE, QuestionType.TRANSLATION_EN]
    cloze, translation = breakdown
    assert (cloze.requested, cloze.generated, cloze.error) == (2, 2, None)
    assert (translation.requested, translation.generated) == (3, 0)
    assert "after 3 attempts" in translation.error


async def test_batch_passes_special_instructions(make_service, concepts):
    llm = FakeLLM(generation=[questions_json(CLOZE)])
    plan = [QuestionTypeQuantity(type=QuestionType.BASIC_CLOZE, quantity=1)]
    await make_service(llm).generate_batch(concepts, plan, QuestionLevel.B1, "Use food vocabulary")
    [call] = llm.calls
    assert "SPECIAL INSTRUCTIONS: Use food vocabulary" in call["prompt"]
    assert "B1" in call["prompt"]


# ── Regeneration ──────────────────────────────────────────────────────────────

@pytest.fixture
def original():
    return GeneratedQuestion(
        question=f"Ja {BLANK_MARKER} do sklepu.",
        correct_answer="idę",
        question_type=QuestionType.BASIC_CLOZE,
        difficulty=QuestionLevel.A2,
        target_concepts=["c2"],
    )


async def test_regeneration_keeps_type_and_difficulty(make_service, concepts, original, settings, sleep):
    replacement = {"question": f"Ty {BLANK_MARKER} do szkoły.", "correctAnswer": "idziesz", "targetConcepts": ["present tense of iść"]}
    llm = FakeLLM(generation=[json.dumps({"question": replacement}, ensure_ascii=False)])
    question = await make_service(llm).regenerate_question(original, concepts, "Use school vocabulary")

    assert question.correct_answer == "idziesz"
    assert question.question_type == QuestionType.BASIC_CLOZE
    assert question.difficulty == QuestionLevel.A2
    assert question.target_concepts == ["c2"]
    [call] = llm.calls
    assert call["temperature"] == settings.regeneration_temperature
    assert call["max_tokens"] == settings.regeneration_max_tokens
    assert "SPECIAL REQUIREMENTS: Use school vocabulary" in call["prompt"]
    assert sleep.delays == []


async def test_regeneration_accepts_bare_object(make_service, concepts, original):
    llm = FakeLLM(generation=[f'{{"question": "On {BLANK_MARKER} do pracy.", "correctAnswer": "idzie"}}'])
    question = await make_service(llm).regenerate_question(original, concepts)
    assert question.correct_answer == "idzie"
    assert question.target_concepts == ["c1", "c2"]


async def test_regeneration_parse_failure_is_not_retried(make_service, concepts, original, sleep):
    llm = FakeLLM(generation=[BROKEN, questions_json(CLOZE)])
    with pytest.raises(RegenerationError, match="Failed to parse regeneration response"):
        await make_service(llm).regenerate_question(original, concepts)
    assert llm.count(GENERATION) == 1
    assert sleep.delays == []


async def test_regeneration_rejects_invalid_question(make_service, concepts, original):
    llm = FakeLLM(generation=['{"question": {"question": "No blank", "correctAnswer": "x"}}'])
    with pytest.raises(RegenerationError, match="valid replacement"):
        await make_service(llm).regenerate_question(original, concepts)


async def test_regeneration_backend_failure(make_service, concepts, original):
    llm = FakeLLM(generation=[LLMResponse(success=False, error="model overloaded")])
    with pytest.raises(RegenerationError, match="model overloaded"):
        await make_service(llm).regenerate_question(original, concepts)


async def test_regeneration_media_failure(make_service, concepts):
    original = GeneratedQuestion(
        question="Listen and write what you hear.",
        correct_answer="Dzień dobry",
        question_type=QuestionType.AUDIO_COMPREHENSION,
        difficulty=QuestionLevel.A1,
        target_concepts=["c1"],
    )
    llm = FakeLLM(generation=[json.dumps({"question": AUDIO_QUESTION}, ensure_ascii=False)])
    with pytest.raises(RegenerationError, match="Audio generation failed"):
        await make_service(llm, FakeMedia(fail=True)).regenerate_question(original, concepts)
