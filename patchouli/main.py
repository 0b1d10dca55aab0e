"""FastAPI application entry point."""
import logging
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse

from patchouli.config import APP_VERSION, get_settings
from patchouli.db.database import init_db
from patchouli.api.auth import router as auth_router
from patchouli.api.users import router as users_router
from patchouli.api.invites import router as invites_router
from patchouli.api.content import router as content_router

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown events."""
    init_db()
    logger.info("Patchouli gateway started (credential mode: %s)", get_settings().credential_mode)
    yield
    logger.info("Patchouli gateway stopped")


app = FastAPI(
    title="Patchouli",
    description="OAuth login gateway with invite-gated registration",
    version=APP_VERSION,
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def trace_requests(request: Request, call_next):
    """Log method, path, status and latency of every request."""
    started = time.perf_counter()
    response = await call_next(request)
    elapsed_ms = (time.perf_counter() - started) * 1000
    logger.info("%s %s -> %d (%.1f ms)", request.method, request.url.path, response.status_code, elapsed_ms)
    return response


# Include routers
app.include_router(auth_router)
app.include_router(users_router)
app.include_router(invites_router)
app.include_router(content_router)


@app.get("/", response_class=HTMLResponse)
def index():
    return """
    <html>
    <head><title>Patchouli Server</title></head>
    <body>
        <h1>Patchouli Knowledge Base Server</h1>
        <p>Welcome to Patchouli! Please authenticate to access the API.</p>
        <a href="/login">Login with Google</a>
    </body>
    </html>
    """


@app.get("/health")
def health_check():
    """Health check endpoint."""
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()
    uvicorn.run("patchouli.main:app", host=settings.api_host, port=settings.api_port)
