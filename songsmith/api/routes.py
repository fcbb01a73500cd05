"""REST API routes for the lyrics-to-music pipeline.

The composition credential stays on this side of the boundary; clients only
ever see job ids, stage labels and the final audio URL.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from typing import Callable, Optional

from fastapi import BackgroundTasks, FastAPI, Form, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel

from songsmith.config import Settings
from songsmith.models.generation import GenerationRequest
from songsmith.services.errors import ConfigurationError
from songsmith.services.lyrics_client import LyricsClient
from songsmith.services.pipeline import SongPipeline

log = logging.getLogger(__name__)


class JobStatus(BaseModel):
    job_id: str
    status: str  # "processing", "completed", "failed", "cancelled"
    stage: str = ""
    result: Optional[dict] = None
    error: Optional[str] = None


MAX_JOBS = 1000
MAX_SESSIONS = 100


def create_app(
    settings: Settings | None = None,
    pipeline_factory: Callable[[], SongPipeline] | None = None,
    lyrics_client: LyricsClient | None = None,
    max_jobs: int = MAX_JOBS,
    max_sessions: int = MAX_SESSIONS,
) -> FastAPI:
    """Create and configure the FastAPI application.

    ``pipeline_factory`` builds one pipeline per session; it defaults to the
    real HTTP clients configured from ``settings`` (or the environment).
    Finished jobs beyond ``max_jobs`` and idle sessions beyond ``max_sessions``
    are dropped, oldest first.
    """
    settings = settings or Settings.from_env()
    if pipeline_factory is None:
        pipeline_factory = lambda: SongPipeline.from_settings(settings)  # noqa: E731
    if lyrics_client is None:
        lyrics_client = LyricsClient.from_settings(settings)

    app = FastAPI(
        title="Songsmith API",
        description="Lyrics and music generation for a short user brief",
        version="0.1.0",
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Simple in-memory storage, one pipeline per session
    jobs: dict[str, dict] = {}
    sessions: dict[str, SongPipeline] = {}
    session_jobs: dict[str, str] = {}
    app.state.jobs = jobs
    app.state.sessions = sessions

    def get_pipeline(session_id: str) -> SongPipeline:
        if session_id not in sessions:
            evict_idle_sessions()
            if len(sessions) >= max_sessions:
                raise HTTPException(status_code=503, detail="Too many active sessions")
            try:
                sessions[session_id] = pipeline_factory()
            except ConfigurationError as e:
                log.error("Cannot build pipeline: %s", e)
                raise HTTPException(status_code=503, detail=str(e))
        return sessions[session_id]

    def active_job(session_id: str) -> Optional[dict]:
        job_id = session_jobs.get(session_id)
        if job_id is None or job_id not in jobs:
            return None
        job = jobs[job_id]
        return job if job["status"] == "processing" else None

    def evict_idle_sessions() -> None:
        """Make room for one more session by dropping the oldest idle ones."""
        for session_id in list(sessions):
            if len(sessions) < max_sessions:
                return
            pipeline = sessions[session_id]
            if active_job(session_id) is None and not pipeline.orchestrator.is_busy:
                log.debug("Evicting idle session %s", session_id)
                del sessions[session_id]
                session_jobs.pop(session_id, None)

    def evict_finished_jobs() -> None:
        for job_id in list(jobs):
            if len(jobs) <= max_jobs:
                return
            if jobs[job_id]["status"] != "processing":
                del jobs[job_id]

    @app.post("/api/lyrics")
    async def generate_lyrics(
        genre: str = Form(...),
        mood: str = Form(...),
        description: str = Form(...),
    ) -> dict:
        """Generate lyrics for a brief. Always answers 200 with renderable text."""
        request = GenerationRequest(genre=genre, mood=mood, description=description)
        result = await lyrics_client.generate(request)
        return {"lyrics": result.text, "ok": result.ok}

    @app.post("/api/generate-music")
    async def generate_music(
        lyrics: str = Form(...),
        genre: str = Form(...),
        mood: str = Form(...),
        description: str = Form(...),
        session_id: str = Form("default"),
        background_tasks: BackgroundTasks = BackgroundTasks(),
    ) -> dict:
        """Start composing music for the lyrics in the background.

        Returns a job id to poll via /api/status/{job_id}. Answers 409 while
        the session already has a composition in progress.
        """
        pipeline = get_pipeline(session_id)
        if active_job(session_id) is not None or pipeline.orchestrator.is_busy:
            raise HTTPException(
                status_code=409, detail="A composition is already in progress"
            )

        request = GenerationRequest(genre=genre, mood=mood, description=description)
        job_id = str(uuid.uuid4())
        jobs[job_id] = new_job()
        session_jobs[session_id] = job_id
        evict_finished_jobs()

        background_tasks.add_task(_run_music_job, jobs[job_id], job_id, pipeline, lyrics, request)
        return {"job_id": job_id, "status": "processing"}

    @app.get("/api/status/{job_id}")
    async def get_status(job_id: str) -> JobStatus:
        """Get the status and result of a generation job."""
        if job_id not in jobs:
            raise HTTPException(status_code=404, detail="Job not found")

        job = jobs[job_id]
        return JobStatus(
            job_id=job_id,
            status=job["status"],
            stage=job["stage"],
            result=job.get("result"),
            error=job.get("error"),
        )

    @app.post("/api/cancel/{session_id}")
    async def cancel(session_id: str) -> dict:
        """Cancel the session's in-flight composition, if any."""
        job = active_job(session_id)
        if job is None:
            return {"cancelled": False}

        job["cancel_requested"] = True
        if not sessions[session_id].cancel() and job["task"] is not None:
            job["task"].cancel()
        return {"cancelled": True}

    @app.get("/api/health")
    async def health_check() -> dict:
        """Health check endpoint."""
        return {"status": "ok"}

    return app


def new_job() -> dict:
    return {
        "status": "processing",
        "stage": "",
        "result": None,
        "error": None,
        "task": None,
        "cancel_requested": False,
    }


async def _run_music_job(
    job: dict,
    job_id: str,
    pipeline: SongPipeline,
    lyrics: str,
    request: GenerationRequest,
) -> None:
    """Run prompt derivation and composition for one job."""
    if job["cancel_requested"]:
        # Cancelled between the request returning and this task starting
        job["status"] = "cancelled"
        log.info(f"[{job_id}] Music generation cancelled before it started")
        return

    job["task"] = asyncio.current_task()

    def on_stage(stage: str) -> None:
        job["stage"] = stage

    previous = pipeline.on_stage
    pipeline.on_stage = on_stage
    try:
        log.info(f"[{job_id}] Starting music generation")
        result = await pipeline.compose(lyrics, request)
        if result is None:
            job["status"] = "cancelled"
            log.info(f"[{job_id}] Music generation cancelled")
            return

        job["status"] = "completed"
        job["result"] = {"audio_url": result.audio_url, "prompt": result.prompt}
        log.info(f"[{job_id}] Completed music generation: {result.audio_url}")

    except asyncio.CancelledError:
        if not job["cancel_requested"]:
            job["status"] = "failed"
            job["error"] = "Music generation was interrupted"
            raise
        # The cancel endpoint cancelled this task; the job absorbs it.
        asyncio.current_task().uncancel()
        job["status"] = "cancelled"
        log.info(f"[{job_id}] Music generation cancelled")

    except Exception as e:
        log.error(f"[{job_id}] Error during music generation: {e}", exc_info=True)
        job["status"] = "failed"
        job["error"] = str(e)

    finally:
        job["stage"] = ""
        job["task"] = None
        pipeline.on_stage = previous
