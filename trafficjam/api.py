import logging

from fastapi import FastAPI, HTTPException

from trafficjam.analyzer import build_analyzer
from trafficjam.config_loader import load_cameras
from trafficjam.errors import ModelError
from trafficjam.logging_setup import setup_logging
from trafficjam.scheduler import build_scheduler
from trafficjam.settings import get_field_prober_enabled, get_worker_autostart
from trafficjam.storage import SourceRepository

logger = logging.getLogger(__name__)

app = FastAPI(title="TrafficJam Analyzer API")

_scheduler = None
_analyzer = None


def _get_scheduler():
    global _scheduler
    if _scheduler is None:
        _scheduler = build_scheduler()
    return _scheduler


def _get_analyzer():
    global _analyzer
    if _analyzer is None:
        _analyzer = build_analyzer(use_prober=get_field_prober_enabled())
    return _analyzer


def _bootstrap():
    repository = SourceRepository()
    repository.init_db()
    cameras = load_cameras()
    if cameras:
        added = repository.sync_sources(cameras)
        logger.info("Synced %s configured cameras (%s new)", len(cameras), added)


@app.on_event("startup")
def startup():
    setup_logging()
    _bootstrap()
    if get_worker_autostart():
        _get_scheduler().start()


@app.on_event("shutdown")
def shutdown():
    if _scheduler is not None:
        _scheduler.stop()


@app.get("/health")
def health():
    scheduler = _get_scheduler()
    return {"status": "ok", "worker": scheduler.snapshot()}


@app.get("/api/worker/status")
def worker_status():
    return _get_scheduler().snapshot()


@app.post("/api/worker/start")
def worker_start():
    started = _get_scheduler().start()
    return {"started": started, "worker": _get_scheduler().snapshot()}


@app.post("/api/worker/stop")
def worker_stop():
    stopped = _get_scheduler().stop()
    return {"stopped": stopped, "worker": _get_scheduler().snapshot()}


@app.get("/api/analyze/{identifier}")
def analyze(identifier: str):
    try:
        outcome = _get_analyzer().analyze(identifier)
    except ModelError as exc:
        logger.error("Analysis failed for %s: %s", identifier, exc)
        raise HTTPException(status_code=502, detail=str(exc)) from exc
    return outcome.model_dump(mode="json")
