import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from schoolhub.api.v1.academic_years.router import router as academic_years_router
from schoolhub.api.v1.activity_logs.router import router as activity_logs_router
from schoolhub.api.v1.auth.router import router as auth_router
from schoolhub.api.v1.classes.classes_router import router as classes_router
from schoolhub.api.v1.notifications.router import router as notifications_router
from schoolhub.api.v1.sections.sections_router import router as sections_router
from schoolhub.api.v1.students.router import router as students_router
from schoolhub.core.config import settings

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()],
)

logger = logging.getLogger(__name__)


def _error(status_code: int, message: str, headers=None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={"success": False, "message": message},
        headers=headers,
    )


def _register_exception_handlers(app: FastAPI) -> None:
    """Every error leaves the API as {"success": false, "message": ...}."""

    @app.exception_handler(StarletteHTTPException)
    async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
        return _error(exc.status_code, str(exc.detail), getattr(exc, "headers", None))

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
        messages = []
        for err in exc.errors():
            loc = ".".join(str(p) for p in err.get("loc", ()) if p != "body")
            messages.append(f"{loc}: {err.get('msg')}" if loc else str(err.get("msg")))
        return _error(status.HTTP_400_BAD_REQUEST, "; ".join(messages) or "Invalid request")

    @app.exception_handler(Exception)
    async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error(status.HTTP_500_INTERNAL_SERVER_ERROR, "Internal server error")


def create_app() -> FastAPI:
    app = FastAPI(title="SchoolHub Backend")

    # Cookies carry the tokens, so origins must be explicit (no "*")
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    _register_exception_handlers(app)

    # Routers
    app.include_router(auth_router)
    app.include_router(academic_years_router)
    app.include_router(classes_router)
    app.include_router(sections_router)
    app.include_router(students_router)
    app.include_router(notifications_router)
    app.include_router(activity_logs_router)

    logger.info("SchoolHub app created")
    return app


app = create_app()
