import json
import logging
import os

import uvicorn
from fastapi import FastAPI, Request, WebSocket, WebSocketDisconnect, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException

from skillswap.core.config import settings
from skillswap.core.logging_config import setup_logging
from skillswap.core.security import decode_access_token
from skillswap.realtime.hub import realtime_hub
from skillswap.routers import admin as admin_router
from skillswap.routers import analytics as analytics_router
from skillswap.routers import auth as auth_router
from skillswap.routers import bids as bids_router
from skillswap.routers import dashboard as dashboard_router
from skillswap.routers import messaging as messaging_router
from skillswap.routers import notifications as notifications_router
from skillswap.routers import projects as projects_router
from skillswap.routers import users as users_router

setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

app = FastAPI(
    title="SkillSwap API",
    version="1.0.0",
    description="Freelance marketplace: projects, bids, verification, messaging and dashboards",
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router.router, prefix="/api")
app.include_router(users_router.router, prefix="/api")
app.include_router(projects_router.router, prefix="/api")
app.include_router(bids_router.router, prefix="/api")
app.include_router(messaging_router.router, prefix="/api")
app.include_router(admin_router.router, prefix="/api")
app.include_router(dashboard_router.router, prefix="/api")
app.include_router(analytics_router.router, prefix="/api")
app.include_router(notifications_router.router, prefix="/api")

os.makedirs(settings.UPLOAD_DIR, exist_ok=True)
app.mount("/uploads", StaticFiles(directory=settings.UPLOAD_DIR), name="uploads")


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error"},
    )


@app.get("/")
async def root():
    return {"message": "SkillSwap API is running", "environment": settings.ENVIRONMENT}


@app.websocket("/ws")
async def realtime_endpoint(websocket: WebSocket, token: str = ""):
    """Realtime channel; authenticate with the same bearer token as the REST API (`/ws?token=...`)."""
    user_id = decode_access_token(token) if token else None
    if not user_id:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    await realtime_hub.connect(websocket, user_id)
    try:
        while True:
            raw = await websocket.receive_text()
            try:
                frame = json.loads(raw)
            except ValueError:
                logger.warning(f"Ignoring malformed realtime frame from user {user_id}")
                continue
            if not isinstance(frame, dict):
                await realtime_hub.send_error(websocket, "Frames must be JSON objects")
                continue
            await realtime_hub.handle(websocket, frame)
    except WebSocketDisconnect as e:
        logger.debug(f"Realtime client {user_id} disconnected with code {e.code}")
    finally:
        realtime_hub.disconnect(websocket)


def main():
    """Run the FastAPI application."""
    uvicorn.run(
        "skillswap.main:app",
        host="0.0.0.0",
        port=8000,
        reload=not settings.is_production(),
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
