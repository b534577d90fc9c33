"""FastAPI application entry point."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from shuttle.api import buses, demo, drivers, ws
from shuttle.config import settings
from shuttle.core.orchestrator import ScenarioOrchestrator
from shuttle.core.publisher import LocationPublisher
from shuttle.core.routes import RouteCatalog
from shuttle.core.scheduler import create_scheduler
from shuttle.core.simulation import SimulationEngine
from shuttle.core.store import create_store
from shuttle.core.subscription import LocationSubscriptionClient

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application startup and shutdown."""
    store = create_store()
    await store.connect()

    scheduler = create_scheduler()
    publisher = LocationPublisher(store)
    engine = SimulationEngine(publisher, scheduler, RouteCatalog())
    orchestrator = ScenarioOrchestrator(engine, scheduler)
    client = LocationSubscriptionClient(store)

    # Wire up API modules
    demo.engine = engine
    demo.orchestrator = orchestrator
    drivers.publisher = publisher
    buses.client = client
    ws.client = client

    scheduler.start()
    logger.info("Shuttle tracker started - %s store, path %s", settings.store_backend, settings.active_drivers_path)

    yield

    # Shutdown: retract every simulated bus before the timers go away
    await orchestrator.stop_all_demos()
    orchestrator.dispose()
    engine.dispose()
    scheduler.shutdown(wait=False)
    await store.close()

    demo.engine = None
    demo.orchestrator = None
    drivers.publisher = None
    buses.client = None
    ws.client = None
    logger.info("Shuttle tracker shut down")


app = FastAPI(
    title="Campus Shuttle Tracker",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(demo.router)
app.include_router(drivers.router)
app.include_router(buses.router)
app.include_router(ws.router)


@app.get("/api/health")
async def health():
    return {"status": "ok"}
