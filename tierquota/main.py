# tierquota/main.py
from contextlib import asynccontextmanager
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from prometheus_client import make_asgi_app
from tierquota import __version__
from tierquota.database import engine, Base
from tierquota.errors import ConflictError, InvalidConfigError, NotFoundError
from tierquota.policy_cache import close_redis
from tierquota.routes import admin, generate, quota, users
from tierquota.schemas import HealthResponse


@asynccontextmanager
async def lifespan(app: FastAPI):
    # Startup
    Base.metadata.create_all(bind=engine)
    yield
    # Shutdown
    close_redis()


app = FastAPI(
    title="Tier Quota API",
    description="Tiered model access and quota enforcement for image generation",
    version=__version__,
    lifespan=lifespan,
)


@app.exception_handler(NotFoundError)
async def not_found_handler(request: Request, exc: NotFoundError):
    return JSONResponse({"detail": str(exc), "code": exc.code}, status_code=404)


@app.exception_handler(ConflictError)
async def conflict_handler(request: Request, exc: ConflictError):
    return JSONResponse({"detail": str(exc), "code": exc.code}, status_code=409)


@app.exception_handler(InvalidConfigError)
async def invalid_config_handler(request: Request, exc: InvalidConfigError):
    return JSONResponse({"detail": str(exc), "code": exc.code}, status_code=400)


# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Mount Prometheus metrics
metrics_app = make_asgi_app()
app.mount("/metrics", metrics_app)

# Include routers
app.include_router(users.router)
app.include_router(generate.router)
app.include_router(quota.router)
app.include_router(admin.router)


@app.get("/v1/health", response_model=HealthResponse)
def health():
    """Health check endpoint."""
    return HealthResponse(status="ok", version=__version__)


if __name__ == "__main__":
    import logging
    import uvicorn
    from tierquota.config import settings

    settings.validate_secrets()
    logging.basicConfig(level=logging.INFO)
    uvicorn.run(app, host="0.0.0.0", port=8000)
