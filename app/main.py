# Run from project root: uvicorn app.main:app --reload

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from app.api.deps import build_services, close_services
from app.api.routes import router
from app.mcp.server import mcp_router

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    app.state.services = await build_services()
    logger.info("Feed assistant booted")
    try:
        yield
    finally:
        await close_services(app.state.services)
        app.state.services = None


app = FastAPI(title="Feed Assistant Backend", lifespan=lifespan)
app.include_router(router)
app.include_router(mcp_router, prefix="/mcp")
