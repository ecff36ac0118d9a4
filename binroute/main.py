from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from binroute.analytics.predictions import OverflowPredictor
from binroute.analytics.routing import RouteEngine
from binroute.api.routes import router as api_router
from binroute.config import load_config
from binroute.models.store import BinStore

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
)

LOGGER = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    config = load_config()
    store = BinStore(config.bins, history_limit=config.service.history_limit)
    predictor = OverflowPredictor(config.prediction)
    route_engine = RouteEngine(config.routing, predictor)

    app.state.config = config
    app.state.store = store
    app.state.predictor = predictor
    app.state.route_engine = route_engine

    LOGGER.info("Serving %d bins", len(config.bins))
    yield


app = FastAPI(
    title="Bin Collection Routing API",
    version="1.0.0",
    description="Overflow prediction and collection routing for waste bins",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(api_router)


@app.get("/health")
async def health() -> dict[str, str]:
    return {"status": "ok"}
