import os

# Settings are read at import time by main.py
os.environ.setdefault("OPENAI_API_KEY", "test-key")

import pytest

from config import Settings
from fakes import FakeLLM, FakeMedia, RecordingSleep
from models import Concept, QuestionLevel
from services.generation import QuestionGenerationService


@pytest.fixture
def settings():
    return Settings(openai_api_key="test-key")


@pytest.fixture
def concepts():
    return [
        Concept(id="c1", name="greeting", description="Common Polish greetings such as dzień dobry", difficulty=QuestionLevel.A1),
        Concept(id="c2", name="present tense of iść", description="Conjugation of the verb iść in the present tense", difficulty=QuestionLevel.A1, tags=["verbs"]),
    ]


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def make_service(settings, sleep):
    def factory(llm: FakeLLM, media: FakeMedia = None) -> QuestionGenerationService:
        return QuestionGenerationService(
            llm=llm,
            media=media or FakeMedia(),
            settings=settings,
            sleep=sleep,
        )
    return factory
