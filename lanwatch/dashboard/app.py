"""
FastAPI Application

Web application for LanWatch with middleware, error handling,
and shared engine components attached to app state.
"""

import logging
import time

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware

from config import ALLOWED_ORIGINS, APP_NAME, APP_VERSION

logger = logging.getLogger(__name__)


def create_app(
    store=None,
    coordinator=None,
    notifier=None,
    reconciler=None,
    lifespan=None,
) -> FastAPI:
    """
    Create and configure FastAPI application.

    Args:
        store: DeviceStore instance
        coordinator: SweepCoordinator instance
        notifier: ChangeNotifier instance
        reconciler: LivenessReconciler instance
        lifespan: Optional lifespan context manager for startup/shutdown

    Returns:
        Configured FastAPI app
    """
    app = FastAPI(
        title=APP_NAME,
        description="Local network device discovery and monitoring",
        version=APP_VERSION,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=ALLOWED_ORIGINS,
        allow_credentials=False,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Request timing middleware
    @app.middleware("http")
    async def add_timing_header(request: Request, call_next):
        start = time.monotonic()
        response = await call_next(request)
        duration = time.monotonic() - start
        response.headers["X-Response-Time"] = f"{duration:.4f}s"
        return response

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception on {request.url}: {exc}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error", "detail": str(exc)},
        )

    # Store shared resources in app state
    app.state.store = store
    app.state.coordinator = coordinator
    app.state.notifier = notifier
    app.state.reconciler = reconciler

    from .routes import router as api_router
    from .websocket import router as ws_router

    app.include_router(api_router)
    app.include_router(ws_router)

    @app.get("/health")
    async def health_check():
        """Health check endpoint."""
        store_ok = store is not None
        coordinator_ok = coordinator is not None
        last_sweep = coordinator.last_sweep if coordinator_ok else None

        return {
            "status": "healthy" if (store_ok and coordinator_ok) else "degraded",
            "version": APP_VERSION,
            "components": {
                "store": {
                    "available": store_ok,
                    "devices": store.device_count if store_ok else 0,
                    "online": store.online_count if store_ok else 0,
                },
                "sweep": {
                    "available": coordinator_ok,
                    "in_progress": coordinator.in_progress if coordinator_ok else False,
                    "last_sweep": last_sweep.to_dict() if last_sweep else None,
                },
                "notifier": {
                    "available": notifier is not None,
                    "subscribers": notifier.subscriber_count if notifier else 0,
                },
                "reconciler": {
                    "available": reconciler is not None,
                    "running": reconciler.running if reconciler else False,
                    "cycles": reconciler.cycles if reconciler else 0,
                },
            },
        }

    logger.info(f"FastAPI application v{APP_VERSION} created successfully")
    return app
