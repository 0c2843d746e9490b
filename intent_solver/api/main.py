"""FastAPI application exposing solver status.

The solver runs inside the application lifespan: it starts listening when
the server starts and stops with it.
"""

import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

import structlog
import uvicorn
from fastapi import FastAPI

from intent_solver import __version__
from intent_solver.api.endpoints import router
from intent_solver.config import load_settings
from intent_solver.logging_config import configure_logging
from intent_solver.solver import Solver

logger = structlog.get_logger()

# Configuration from environment variables with sensible defaults
HOST = os.environ.get("SOLVER_HOST", "0.0.0.0")
PORT = int(os.environ.get("SOLVER_PORT", "8000"))


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    settings = load_settings()
    configure_logging(settings.log_level, settings.log_format)
    solver = Solver.from_settings(settings)
    await solver.start()
    app.state.solver = solver
    try:
        yield
    finally:
        await solver.stop()
        app.state.solver = None


app = FastAPI(
    title="Intent Solver",
    description="Status API for a cross-chain ERC-7683 intent solver",
    version=__version__,
    lifespan=lifespan,
)

app.include_router(router)


@app.get("/health")
async def health() -> dict[str, object]:
    """Health check endpoint."""
    return {"status": "ok", "solver_running": getattr(app.state, "solver", None) is not None}


def run() -> None:
    """Run the solver with its status API.

    Configuration via environment variables:
    - SOLVER_HOST: Host to bind to (default: 0.0.0.0)
    - SOLVER_PORT: Port to bind to (default: 8000)
    - plus everything `intent_solver.config.load_settings` reads
    """
    uvicorn.run("intent_solver.api.main:app", host=HOST, port=PORT)


if __name__ == "__main__":
    run()
