"""FastAPI server - thin HTTP surface over the transcript pipeline"""

from contextlib import asynccontextmanager
from datetime import datetime
from typing import List, Optional

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from config.settings import get_settings
from core.errors import ErrorCategory, TranscriptPipelineError
from core.logging_setup import configure_logging
from workers.orchestrator import PipelineOrchestrator, build_orchestrator

# Caller-facing HTTP status per error category; anything unlisted is 502
ERROR_STATUS = {
    ErrorCategory.INVALID_INPUT: 400,
    ErrorCategory.NOT_FOUND: 404,
    ErrorCategory.UNAVAILABLE_CONTENT: 410,
    ErrorCategory.THROTTLED: 429,
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    app.state.orchestrator = build_orchestrator(get_settings())
    try:
        yield
    finally:
        await app.state.orchestrator.close()


app = FastAPI(
    title="Transcript Pipeline API",
    description="Time-aligned YouTube transcripts: authored captions first, speech recognition as fallback",
    version="1.0.0",
    lifespan=lifespan,
)


# Pydantic models
class SegmentModel(BaseModel):
    text: str
    offset: float
    duration: float


class TranscriptResponse(BaseModel):
    video_id: str
    source: str
    language: Optional[str] = None
    segments: List[SegmentModel]


def get_orchestrator(request: Request) -> PipelineOrchestrator:
    return request.app.state.orchestrator


@app.exception_handler(TranscriptPipelineError)
async def pipeline_error_handler(request: Request, exc: TranscriptPipelineError):
    status_code = ERROR_STATUS.get(exc.category, 502)
    return JSONResponse(status_code=status_code, content=exc.to_dict())


# Health check
@app.get("/health")
async def health():
    return {
        "status": "healthy",
        "timestamp": datetime.now().isoformat(),
    }


@app.get("/transcripts/{video_id}", response_model=TranscriptResponse)
async def get_transcript(
    video_id: str,
    language: Optional[str] = Query(None, description="Preferred language code"),
    orchestrator: PipelineOrchestrator = Depends(get_orchestrator),
):
    """Resolve the transcript for a video id"""
    transcript = await orchestrator.fetch(video_id, language=language)
    if transcript is None:
        raise HTTPException(status_code=404, detail=f"Transcript unavailable for {video_id}")

    return TranscriptResponse(
        video_id=video_id,
        source=transcript.source.value,
        language=transcript.language,
        segments=[SegmentModel(**record) for record in transcript.to_records()],
    )


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run(app, host=settings.api_host, port=settings.api_port)
