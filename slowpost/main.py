# slowpost/main.py
from contextlib import asynccontextmanager
import os

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from starlette.exceptions import HTTPException as StarletteHTTPException
import uvicorn

from slowpost import __version__
from slowpost.api import letters
from slowpost.config import Settings, settings as default_settings
from slowpost.schemas.commons_schemas import HealthResponse, MessageResponse
from slowpost.services.country_service import CountryService
from slowpost.services.letter_service import LetterService
from slowpost.services.storage import LocalStorage, StorageBackend, build_storage
from slowpost.utils.logger import setup_logger

logger = setup_logger()


def create_app(
    settings: Settings = None,
    storage: StorageBackend = None,
    country_service: CountryService = None,
    clock=None,
) -> FastAPI:
    """Build the app around one storage backend chosen up front."""
    settings = settings or default_settings
    storage = storage or build_storage(settings)
    service_kwargs = {"clock": clock} if clock is not None else {}
    letter_service = LetterService(storage, settings, country_service=country_service, **service_kwargs)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f" Slowpost {__version__} starting (storage={storage.name})")
        await storage.prepare()
        yield
        logger.info(" Slowpost shutting down")
        await storage.close()

    app = FastAPI(
        lifespan=lifespan,
        title="Slowpost",
        description="Delayed letters: locked until their reveal time, then opened",
        version=__version__,
        debug=settings.debug,
    )
    app.state.settings = settings
    app.state.letter_service = letter_service

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=MessageResponse(message=str(exc.detail)).model_dump(),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error.get('loc', ()))}: {error.get('msg')}"
            for error in exc.errors()
        )
        return JSONResponse(
            status_code=400,
            content=MessageResponse(message=f"Invalid request: {problems}").model_dump(),
        )

    app.include_router(letters.router, prefix="/api")

    @app.get("/api/health", response_model=HealthResponse)
    async def health_check():
        return await letter_service.health()

    # local uploads are served straight from the data directory
    if isinstance(storage, LocalStorage):
        os.makedirs(storage.uploads_dir, exist_ok=True)
        app.mount("/uploads", StaticFiles(directory=storage.uploads_dir), name="uploads")

    return app


app = create_app()

if __name__ == "__main__":
    uvicorn.run(
        "slowpost.main:app",
        host=default_settings.host,
        port=default_settings.port,
        reload=default_settings.debug,
        log_level=default_settings.log_level.lower()
    )
