import logging
from functools import lru_cache

from fastapi import Depends, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware

from config import get_settings
from errors import RegenerationError
from models import (
    GenerateQuestionsRequest,
    GenerateQuestionsResponse,
    GenerationSummary,
    RegenerateQuestionRequest,
    RegenerateQuestionResponse,
)
from services.generation import QuestionGenerationService

logging.basicConfig(
    level=get_settings().log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Question Generation API",
    description="LLM-backed generation of validated Polish practice questions, with audio and image media.",
    version="1.0.0",
)

# ── CORS ──────────────────────────────────────────────────────────────────────
app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@lru_cache()
def get_generation_service() -> QuestionGenerationService:
    return QuestionGenerationService()


# ── Health ────────────────────────────────────────────────────────────────────
@app.get("/health")
async def health():
    return {"status": "ok"}


# ── Generate Questions ────────────────────────────────────────────────────────
@app.post("/api/questions/generate", response_model=GenerateQuestionsResponse)
async def generate_questions_endpoint(
    data: GenerateQuestionsRequest,
    service: QuestionGenerationService = Depends(get_generation_service),
):
    """
    Generate questions for each requested type. Types are generated
    independently; a type that fails is reported in the breakdown.
    Nothing is persisted here; the caller saves the returned drafts.
    """
    questions, breakdown = await service.generate_batch(
        concepts=data.concepts,
        plan=data.question_types,
        difficulty=data.difficulty,
        special_instructions=data.special_instructions,
    )
    if not questions:
        errors = "; ".join(b.error for b in breakdown if b.error)
        raise HTTPException(
            status_code=502,
            detail=f"Failed to generate any questions. {errors}".strip(),
        )

    return GenerateQuestionsResponse(
        questions=questions,
        summary=GenerationSummary(total_generated=len(questions), breakdown=breakdown),
    )


# ── Regenerate Question ───────────────────────────────────────────────────────
@app.post("/api/questions/regenerate", response_model=RegenerateQuestionResponse)
async def regenerate_question_endpoint(
    data: RegenerateQuestionRequest,
    service: QuestionGenerationService = Depends(get_generation_service),
):
    """Replace one draft question with a new variant. Fails fast, no retries."""
    try:
        question = await service.regenerate_question(
            data.question,
            data.concepts,
            data.special_instructions,
        )
    except RegenerationError as e:
        logger.error("Regeneration failed: %s", e)
        raise HTTPException(status_code=502, detail=f"Failed to regenerate question: {e}")
    return RegenerateQuestionResponse(question=question)
