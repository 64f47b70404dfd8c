"""FastAPI application entry point"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

load_dotenv()

from siteforge.core.config import settings  # noqa: E402
from siteforge.models.errors import ApplicationError  # noqa: E402
from siteforge.api import build, markup, progress, result  # noqa: E402

# Configure logging early with force=True to override any existing config
logging.basicConfig(
    level=getattr(logging, settings.log_level.upper(), logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    force=True,
    handlers=[
        logging.StreamHandler(sys.stdout)
    ]
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the session cleanup loop and stop it on shutdown"""
    logger.info("=" * 60)
    logger.info(f"SITEFORGE SERVICE STARTING | env: {settings.environment} | model: {settings.openai_model}")
    logger.info("=" * 60)
    cleanup_task = asyncio.create_task(build.cleanup_loop())
    yield
    cleanup_task.cancel()
    logger.info("SiteForge service shutdown complete")


# Create FastAPI app
app = FastAPI(
    title=settings.api_title,
    version=settings.api_version,
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(ApplicationError)
async def application_error_handler(request: Request, exc: ApplicationError):
    """Map application errors to their HTTP status with the error payload"""
    return JSONResponse(status_code=exc.http_status, content=exc.model_dump())


@app.get("/")
async def root():
    """Health check endpoint"""
    return {"status": "healthy", "version": settings.api_version}


@app.get("/health")
async def health():
    """Health check for monitoring"""
    return {"status": "healthy"}


# Register API routes
app.include_router(build.router, prefix="/api", tags=["build"])
app.include_router(result.router, prefix="/api", tags=["result"])
app.include_router(markup.router, prefix="/api", tags=["markup"])
app.include_router(progress.router, prefix="/sse", tags=["progress"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        app,
        host="127.0.0.1",
        port=8000,
        log_level=settings.log_level.lower(),
    )
