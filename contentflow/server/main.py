"""
FastAPI + Socket.IO server.

Start with:
    python -m contentflow.server.main

Or via uvicorn directly:
    uvicorn contentflow.server.main:socket_app --port 3001 --reload
"""
from __future__ import annotations

import logging
import os
from typing import Optional

# Load .env from the working directory so that OPENAI_API_KEY and the
# CONTENTFLOW_* settings are available without manual `export`.
from dotenv import load_dotenv

load_dotenv(os.path.join(os.getcwd(), ".env"))

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from contentflow.server.routes.graph_routes import router
from contentflow.server.settings import Settings
from contentflow.server.state import WorkflowState
from contentflow.server.trace.socket_server import create_socket_app

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# FastAPI application
# ---------------------------------------------------------------------------

def create_app(settings: Optional[Settings] = None, state: Optional[WorkflowState] = None) -> FastAPI:
    settings = settings or Settings.from_env()

    app = FastAPI(title="ContentFlow API", version="1.0.0")
    app.state.settings = settings
    app.state.workflow_state = state or WorkflowState.from_settings(settings)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router, prefix="/api")

    return app


settings = Settings.from_env()

logging.basicConfig(
    level=settings.log_level,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

app = create_app(settings)

# ---------------------------------------------------------------------------
# Wrap with Socket.IO ASGI layer
# ---------------------------------------------------------------------------

# socket_app is the top-level ASGI app passed to uvicorn.
# Socket.IO connections are handled at the root; all other requests are
# forwarded to the inner FastAPI app.
socket_app = create_socket_app(app)

# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------

def main() -> None:
    import uvicorn

    uvicorn.run(
        "contentflow.server.main:socket_app",
        host=settings.host,
        port=settings.port,
        reload=False,
    )


if __name__ == "__main__":
    main()
