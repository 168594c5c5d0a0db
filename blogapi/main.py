import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from blogapi.cache import cache
from blogapi.config import settings
from blogapi.exceptions import register_exception_handlers
from blogapi.middleware import TimingMiddleware
from blogapi.routers import auth, posts
from blogapi.schemas import HealthResponse
from blogapi.services import article_service
from blogapi.static import CachedStaticFiles

logging.basicConfig(
    level=settings.LOG_LEVEL.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup: a missing Redis only degrades caching
    await cache.connect()
    yield
    # Shutdown
    await article_service.wait_for_background_tasks()
    await cache.disconnect()


app = FastAPI(
    title="Blog API",
    description="Blog publishing backend with cached reads and AI-assisted drafts",
    version="1.0.0",
    lifespan=lifespan,
)

# Middleware
app.add_middleware(TimingMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[settings.FRONTEND_ORIGIN],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
    expose_headers=["ETag"],
)

register_exception_handlers(app)

# Routers
app.include_router(auth.router)
app.include_router(posts.router)

app.mount(
    "/static",
    CachedStaticFiles(directory=settings.STATIC_DIR, check_dir=False),
    name="static",
)


@app.get("/api/health", response_model=HealthResponse)
async def health():
    return HealthResponse(status="ok")
