"""Main FastAPI application."""

import logging
from contextlib import asynccontextmanager
from datetime import datetime

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from fastapi import FastAPI, HTTPException

from .api_models import (
    ActionResponse,
    LoginRequest,
    OverallEvent,
    SnapshotsResponse,
    TargetResponse,
    UpdateResponse,
    XpEvent,
)
from .config import settings
from .store.database import SaveDatabase
from .tracker import TrackerNotReadyError, UnknownSkillError, XpTracker

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize components
db = SaveDatabase(settings.db_path)
tracker = XpTracker(settings, db)
scheduler = AsyncIOScheduler()


# Jobs are coroutines so they run on the event loop that owns the tracker
async def tick_job():
    """Advance the tracker clock."""
    tracker.tick()


async def save_job():
    """Write the periodic save."""
    tracker.tick_save()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run the tick and save jobs for the life of the app, saving on shutdown."""
    scheduler.add_job(
        tick_job,
        trigger=IntervalTrigger(seconds=settings.tick_interval_seconds),
        id="tick",
        replace_existing=True,
    )
    scheduler.add_job(
        save_job,
        trigger=IntervalTrigger(seconds=settings.save_interval_seconds),
        id="save",
        replace_existing=True,
    )
    scheduler.start()
    logger.info("Scheduler started")
    yield

    scheduler.shutdown(wait=False)
    if tracker.tick_save():
        logger.info(f"Saved XP state for {tracker.profile} on shutdown")
    logger.info("Scheduler stopped")


# Initialize FastAPI app
app = FastAPI(
    title="XP Tracker",
    description="Session XP tracking with goals, rates and pause handling",
    version="1.0.0",
    lifespan=lifespan,
)


def _not_ready(e: TrackerNotReadyError) -> HTTPException:
    """Map a call before login to 409 Conflict."""
    return HTTPException(status_code=409, detail=str(e))


def _unknown_skill(skill: str) -> HTTPException:
    """Map an unreported skill to 404 Not Found."""
    return HTTPException(status_code=404, detail=f"Unknown skill: {skill}")


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "XP Tracker",
        "version": "1.0.0",
        "endpoints": {
            "login": "/api/login",
            "xp": "/api/xp",
            "snapshots": "/api/snapshots",
            "target": "/api/target",
            "status": "/status",
        },
    }


@app.get("/status")
async def status():
    """Server status endpoint."""
    return {
        "status": "running",
        "version": "1.0.0",
        "timestamp": datetime.utcnow().isoformat(),
        "profile": tracker.profile,
        "logged_in": tracker.logged_in,
        "tracked_skills": len(tracker.xp_state.order),
    }


@app.post("/api/login", response_model=SnapshotsResponse)
async def login_endpoint(request: LoginRequest):
    """
    Log a profile in with the data source's current values.

    Restores the profile's save and baselines anything not seen before.
    """
    logger.info(f"Login request for profile: {request.profile}")
    tracker.login(request.profile, request.skills, request.overall)
    return SnapshotsResponse.from_frame(tracker.feed.latest)


@app.post("/api/logout", response_model=ActionResponse)
async def logout_endpoint():
    """Log the current profile out and save it."""
    try:
        tracker.logout()
    except TrackerNotReadyError as e:
        raise _not_ready(e)
    return ActionResponse(message=f"Logged out of {tracker.profile}")


@app.post("/api/xp", response_model=UpdateResponse)
async def xp_endpoint(event: XpEvent):
    """Report a changed skill XP value."""
    try:
        result = tracker.on_value_changed(event.skill, event.xp)
    except TrackerNotReadyError as e:
        raise _not_ready(e)
    logger.debug(f"XP update {event.skill}={event.xp}: {result.name}")
    return UpdateResponse(result=result.name)


@app.post("/api/overall", response_model=UpdateResponse)
async def overall_endpoint(event: OverallEvent):
    """Report a changed overall XP value."""
    try:
        result = tracker.on_overall_changed(event.xp)
    except TrackerNotReadyError as e:
        raise _not_ready(e)
    return UpdateResponse(result=result.name)


@app.get("/api/snapshots", response_model=SnapshotsResponse)
async def snapshots_endpoint():
    """Current snapshot of every tracked skill plus overall, in display order."""
    return SnapshotsResponse.from_frame(tracker.snapshots())


@app.get("/api/target", response_model=TargetResponse)
async def target_endpoint():
    """Where the configured target stands right now."""
    return TargetResponse.from_summary(tracker.target_summary())


@app.post("/api/skills/{skill}/pause", response_model=ActionResponse)
async def pause_skill_endpoint(skill: str):
    """Manually pause one skill."""
    changed = tracker.pause_skill(skill, True)
    return ActionResponse(changed=changed)


@app.post("/api/skills/{skill}/unpause", response_model=ActionResponse)
async def unpause_skill_endpoint(skill: str):
    """Lift the manual pause on one skill."""
    changed = tracker.pause_skill(skill, False)
    return ActionResponse(changed=changed)


@app.post("/api/skills/{skill}/reset", response_model=ActionResponse)
async def reset_skill_endpoint(skill: str, others: bool = False):
    """
    Reset one skill, or every other skill when ``others`` is set.
    """
    try:
        if others:
            tracker.reset_other_skills(skill)
        else:
            tracker.reset_skill(skill)
    except TrackerNotReadyError as e:
        raise _not_ready(e)
    except UnknownSkillError:
        raise _unknown_skill(skill)
    return ActionResponse(message=f"Reset {'all but ' if others else ''}{skill}")


@app.post("/api/skills/{skill}/reset-rate", response_model=ActionResponse)
async def reset_skill_rate_endpoint(skill: str):
    """Restart the rate window for one skill."""
    try:
        tracker.reset_skill_rate(skill)
    except TrackerNotReadyError as e:
        raise _not_ready(e)
    except UnknownSkillError:
        raise _unknown_skill(skill)
    return ActionResponse(message=f"Reset rate for {skill}")


@app.post("/api/pause-all", response_model=ActionResponse)
async def pause_all_endpoint():
    """Manually pause every skill and the overall total."""
    tracker.pause_all(True)
    return ActionResponse(message="Paused all skills")


@app.post("/api/unpause-all", response_model=ActionResponse)
async def unpause_all_endpoint():
    """Lift every manual pause."""
    tracker.pause_all(False)
    return ActionResponse(message="Unpaused all skills")


@app.post("/api/reset", response_model=ActionResponse)
async def reset_all_endpoint():
    """Forget all progress for the current profile, including its save."""
    try:
        tracker.reset_all()
    except TrackerNotReadyError as e:
        raise _not_ready(e)
    return ActionResponse(message=f"Reset all XP state for {tracker.profile}")


@app.post("/api/reset-rates", response_model=ActionResponse)
async def reset_rates_endpoint():
    """Restart the rate window for every skill and the overall total."""
    tracker.reset_all_rates()
    return ActionResponse(message="Reset all rates")


@app.post("/api/save", response_model=ActionResponse)
async def save_endpoint():
    """Persist the current state now."""
    saved = tracker.tick_save()
    return ActionResponse(changed=saved, message="Saved" if saved else "Nothing to save")


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        app,
        host=settings.server_host,
        port=settings.server_port,
        log_level=settings.log_level.lower(),
    )
