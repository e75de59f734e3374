# session_keeper/main.py
from fastapi import FastAPI, Depends, Request, Response, status
from fastapi.responses import JSONResponse
from contextlib import asynccontextmanager
from pydantic import BaseModel
import logging
from typing import Any, Annotated, Dict, Optional
from dotenv import load_dotenv
load_dotenv()

from .settings import settings
from .sessions import (
    AbstractSessionStore,
    RESERVED_FIELDS,
    SessionFieldNotFoundError,
    SessionManager,
    SessionMiddleware,
    SessionResolution,
    SessionStoreError,
    build_session_manager,
    build_session_store,
    get_session_id,
    get_session_resolution,
    mark_session_discarded,
)

# Configure logging based on debug mode setting
if not logging.getLogger().hasHandlers():
    logging.basicConfig(
        level=settings.effective_log_level,
        format='%(asctime)s - %(name)s [%(levelname)s] - %(message)s'
    )

logger = logging.getLogger(__name__)
logger.setLevel(settings.effective_log_level)


class SessionValuePayload(BaseModel):
    value: Any


@asynccontextmanager
async def keeper_app_lifespan(app_instance: FastAPI):
    """
    Builds and initializes the configured session store and the session
    manager, and tears the store down again on shutdown.
    """
    logger.info("Application startup initiated.")
    store: Optional[AbstractSessionStore] = None
    try:
        store = build_session_store(settings)
        await store.initialize()
        app_instance.state.session_store = store
        app_instance.state.session_manager = build_session_manager(store, settings)
        logger.info(f"SessionManager ({type(store).__name__}-backed) initialized.")
    except Exception as e:
        logger.error(f"Error during session store initialization: {e}", exc_info=True)
        raise

    try:
        yield
    finally:
        logger.info("Application shutdown initiated.")
        if store is not None:
            try:
                await store.teardown()
            except Exception as e:
                logger.error(f"Error tearing down {type(store).__name__}: {e}", exc_info=True)
        logger.info("Application shutdown complete.")


def _get_manager(request: Request) -> SessionManager:
    return request.app.state.session_manager


def create_app() -> FastAPI:
    app = FastAPI(title=settings.app_name, lifespan=keeper_app_lifespan)
    app.add_middleware(
        SessionMiddleware,
        cookie_name=settings.session_cookie_name,
        secure=settings.session_secure_cookie,
    )

    @app.exception_handler(SessionStoreError)
    async def session_store_error_handler(request: Request, exc: SessionStoreError) -> JSONResponse:
        logger.error(f"Session store failure on {request.url.path}: {exc}")
        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content={"detail": "Internal Server Error"},
        )

    @app.get("/health")
    async def health() -> Dict[str, str]:
        return {"status": "ok"}

    @app.get("/session")
    async def read_session(
        resolution: Annotated[SessionResolution, Depends(get_session_resolution)],
    ) -> Dict[str, Any]:
        return {
            "session_id": resolution.session_id,
            "is_new": resolution.is_new,
            "rotated": resolution.rotated,
        }

    @app.get("/session/data")
    async def read_session_data(
        request: Request,
        session_id: Annotated[str, Depends(get_session_id)],
    ) -> Dict[str, str]:
        fields = await _get_manager(request).store.hgetall(session_id)
        return {k: v for k, v in fields.items() if k not in RESERVED_FIELDS}

    @app.put("/session/data/{field}", status_code=status.HTTP_204_NO_CONTENT)
    async def write_session_value(
        field: str,
        payload: SessionValuePayload,
        request: Request,
        session_id: Annotated[str, Depends(get_session_id)],
    ) -> Response:
        if field in RESERVED_FIELDS:
            return Response(status_code=status.HTTP_400_BAD_REQUEST)
        await _get_manager(request).store.save_value(session_id, field, payload.value)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.get("/session/data/{field}")
    async def read_session_value(
        field: str,
        request: Request,
        session_id: Annotated[str, Depends(get_session_id)],
    ) -> Any:
        try:
            return {"value": await _get_manager(request).store.load_json(session_id, field)}
        except SessionFieldNotFoundError:
            return Response(status_code=status.HTTP_404_NOT_FOUND)

    @app.delete("/session/data/{field}", status_code=status.HTTP_204_NO_CONTENT)
    async def delete_session_value(
        field: str,
        request: Request,
        session_id: Annotated[str, Depends(get_session_id)],
    ) -> Response:
        if field in RESERVED_FIELDS:
            return Response(status_code=status.HTTP_400_BAD_REQUEST)
        await _get_manager(request).store.delete_value(session_id, field)
        return Response(status_code=status.HTTP_204_NO_CONTENT)

    @app.post("/session/logout", status_code=status.HTTP_204_NO_CONTENT)
    async def logout(
        request: Request,
        session_id: Annotated[str, Depends(get_session_id)],
    ) -> Response:
        await _get_manager(request).clear(session_id)
        mark_session_discarded(request)
        response = Response(status_code=status.HTTP_204_NO_CONTENT)
        response.delete_cookie(settings.session_cookie_name, path="/")
        return response

    return app


app = create_app()
