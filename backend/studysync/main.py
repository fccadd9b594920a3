"""StudySync Backend Application.

This is the main entry point for the StudySync backend service. StudySync
lets study group members chat and co-edit one shared note per group in real
time.

Modules:
    - chat: WebSocket room multiplexer and message history
    - notes: Shared note HTTP endpoints
    - auth: Bearer credential verification
    - membership: Group membership checks
    - store: DuckDB persistence for messages, notes and membership

Run with:
    uvicorn studysync.main:app --host 0.0.0.0 --port 3000
"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from studysync.auth import set_verifier
from studysync.chat.router import router as chat_router
from studysync.config import get_config
from studysync.membership import set_oracle
from studysync.notes.router import router as notes_router
from studysync.store import StudyStore

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)

# uvicorn's access log repeats every websocket upgrade and history fetch.
for _noisy in ("uvicorn.access",):
    logging.getLogger(_noisy).setLevel(logging.WARNING)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown events."""
    # Startup
    config = get_config()

    # Apply configured log level to root logger so that
    # `logging.level: "debug"` in studysync.settings.yaml activates DEBUG output.
    configured_level = getattr(logging, config.logging.level.upper(), None)
    if configured_level is not None:
        logging.getLogger().setLevel(configured_level)
        logger.info("Root logger level set to %s", config.logging.level.upper())

    StudyStore.get_instance(config.database.path)
    logger.info(
        f"Server ready on http://{config.server.host}:{config.server.port} "
        f"(database={config.database.path})"
    )

    yield  # Application runs here

    # Shutdown
    set_verifier(None)
    set_oracle(None)
    StudyStore.reset_instance()
    logger.info("Application shutdown complete")


# Create FastAPI application with metadata
app = FastAPI(
    title="StudySync API",
    description="Realtime chat and shared notes for study groups",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_config().server.allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Register all routers
app.include_router(chat_router)
app.include_router(notes_router)


@app.get("/health")
async def health() -> dict:
    """Health check endpoint.

    Returns:
        dict: Status object indicating the server is running.
    """
    return {"status": "ok"}
