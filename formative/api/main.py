"""Formative API - staged product planning over an LLM.

Walks a session through six stages (requirements, risks, tech stack, MVP
boundary, diagrams, document). Each stage result comes from one validated
LLM call; stages unlock strictly in order.
"""

import logging
import os
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from formative import __version__
from formative.api.routes import sessions
from formative.extraction.contracts import get_contract_registry
from formative.prompts.registry import get_prompt_registry
from formative.stages.schemas import STAGE_ORDER

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    # Startup: prompts and contracts are static; a missing one is fatal here
    logger.info("Loading stage prompts...")
    prompt_registry = get_prompt_registry()
    prompt_registry.validate()
    logger.info(f"Loaded {prompt_registry.count()} stage prompts")

    logger.info("Loading shape contracts...")
    contract_registry = get_contract_registry()
    logger.info(f"Loaded {len(contract_registry.list_kinds())} shape contracts")

    # Settings are validated here; ConfigurationError aborts startup
    logger.info("Building workflow orchestrator...")
    build_orchestrator = app.dependency_overrides.get(
        sessions.get_orchestrator, sessions.get_orchestrator
    )
    orchestrator = build_orchestrator()
    logger.info(f"LLM backend: {orchestrator.client.backend.model_id}")

    logger.info("Formative API ready")
    yield
    # Shutdown
    logger.info("Shutting down Formative API")


app = FastAPI(
    title="Formative API",
    description="""
## Staged product planning

Each session moves through six locked/active/completed stages.

### Key Endpoints

- `POST /v1/sessions` - Create a session
- `GET /v1/sessions/{id}` - State and completed outputs
- `POST /v1/sessions/{id}/stages/{stage}/run` - Generate the active stage
- `GET /v1/sessions/{id}/stages/{stage}` - Read a stage's output
- `POST /v1/sessions/{id}/reset` - Start over
""",
    version=__version__,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(sessions.router, prefix="/v1")


@app.get("/")
async def root():
    """Root endpoint with API info."""
    return {
        "service": "Formative API",
        "version": __version__,
        "docs": "/docs",
        "stages": [kind.value for kind in STAGE_ORDER],
    }


@app.get("/health")
async def health():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "prompts_loaded": get_prompt_registry().count(),
        "contracts_loaded": len(get_contract_registry().list_kinds()),
    }


def run() -> None:
    """Console entry point: serve the API with uvicorn."""
    uvicorn.run(
        "formative.api.main:app",
        host=os.environ.get("HOST", "0.0.0.0"),
        port=int(os.environ.get("PORT", "8000")),
    )
