"""FastAPI application wiring the request queue and client pool."""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse
from loguru import logger

from chorus.auth import bearer_token, verify_access_token
from chorus.exceptions import handle_api_error, success_response
from chorus.services.client import BackendClient, BackendClientFactory
from chorus.services.errors import ServiceError
from chorus.services.pool import ClientPool, PoolConfig
from chorus.services.request_queue import QueueConfig, RequestQueue
from chorus.settings import Settings, load_settings


def get_queue(request: Request) -> RequestQueue:
    return request.app.state.queue


def get_pool(request: Request) -> ClientPool[BackendClient]:
    return request.app.state.pool


def create_app(
    settings: Settings | None = None,
    client_factory: Optional[BackendClientFactory] = None,
) -> FastAPI:
    """Create the FastAPI app.

    The queue, pool and maintenance scheduler are built per app in the
    lifespan handler and exposed on `app.state`.

    Args:
        settings: Settings to use (defaults to the process environment)
        client_factory: Builds backend clients for the pool

    Returns:
        FastAPI app
    """
    settings = settings or load_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        logger.info("Starting chorus backend core...")

        queue = RequestQueue(QueueConfig.from_settings(settings), debug=settings.debug)
        pool: ClientPool[BackendClient] = ClientPool(
            client_factory or BackendClientFactory(settings),
            PoolConfig.from_settings(settings),
            debug=settings.debug,
        )
        scheduler = AsyncIOScheduler()
        pool.start_cleanup(scheduler)
        scheduler.start()

        app.state.settings = settings
        app.state.queue = queue
        app.state.pool = pool
        app.state.scheduler = scheduler

        try:
            yield
        finally:
            logger.info("Shutting down chorus backend core...")
            pool.stop_cleanup()
            scheduler.shutdown(wait=False)
            await queue.aclose()
            pool.clear()
            logger.info("Chorus backend core stopped")

    app = FastAPI(title="Chorus Backend", lifespan=lifespan)

    @app.exception_handler(ServiceError)
    async def service_error_handler(request: Request, exc: ServiceError) -> JSONResponse:
        return handle_api_error(exc)

    @app.exception_handler(HTTPException)
    async def http_error_handler(request: Request, exc: HTTPException) -> JSONResponse:
        return handle_api_error(exc)

    @app.exception_handler(Exception)
    async def unexpected_error_handler(request: Request, exc: Exception) -> JSONResponse:
        return handle_api_error(exc)

    @app.get("/health")
    async def health_check(request: Request):
        """Health check endpoint."""
        return {
            "status": "ok",
            "service": "chorus",
            "queue": get_queue(request).get_stats().to_dict(),
            "pool": get_pool(request).get_stats().to_dict(),
        }

    @app.get("/api/queue/stats")
    async def queue_stats(request: Request):
        return success_response(get_queue(request).get_stats().to_dict())

    @app.get("/api/auth/me")
    async def current_user(
        request: Request,
        authorization: Optional[str] = Header(None),
    ):
        """Return the caller identified by the bearer token."""
        token = bearer_token(authorization)
        user = verify_access_token(token)

        # Warm the pooled client so later storage calls for this caller hit it
        get_pool(request).get_client(token)
        return success_response(user.model_dump())

    return app
