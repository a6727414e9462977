from __future__ import annotations

import uuid

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from selfassessment.infrastructure.config import get_settings
from selfassessment.infrastructure.logging import LogContext, get_logger
from selfassessment.web.routes import api, pages

logger = get_logger(__name__)


def create_application() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title=settings.app.title,
        version=settings.app.version,
        debug=settings.app.debug,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.security.cors_origins,
        allow_credentials=True,
        allow_methods=settings.security.cors_methods,
        allow_headers=["*"],
    )

    @app.middleware("http")
    async def browser_session(request: Request, call_next):
        """Give every browser a stable id; the progress cache is keyed by it."""
        cookie_name = settings.app.session_cookie_name
        session_id = request.cookies.get(cookie_name)
        is_new = not session_id
        if is_new:
            session_id = uuid.uuid4().hex
        request.state.browser_session = session_id

        with LogContext(browser_session=session_id):
            response = await call_next(request)

        if is_new:
            response.set_cookie(
                cookie_name,
                session_id,
                max_age=settings.app.session_cookie_max_age,
                httponly=True,
                samesite="lax",
            )
        return response

    app.include_router(api.router)
    app.include_router(pages.router)

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        client = getattr(app.state, "airtable_client", None)
        if client is not None:
            await client.aclose()

    logger.info(f"Application created ({settings.app.environment})")
    return app


app = create_application()
