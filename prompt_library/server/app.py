from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from prompt_library.core.config import get_app_config
from prompt_library.core.logger import prompt_library_logger as logger
from prompt_library.server.routes.org_invites import (
    invite_admin_router,
    invite_router,
    request_validation_error_handler,
)
from prompt_library.storage.database import create_tables


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    if get_app_config().auto_create_tables:
        logger.info('Creating database tables')
        await create_tables()
    yield


def create_app() -> FastAPI:
    """Build the invite API application."""
    app = FastAPI(title='Prompt Library Invites', lifespan=lifespan)
    app.add_exception_handler(RequestValidationError, request_validation_error_handler)
    app.include_router(invite_admin_router)
    app.include_router(invite_router)
    return app
