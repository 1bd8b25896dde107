"""Warden: access protection and abuse detection service.

FastAPI entry point with lifespan management and background maintenance.
"""

import asyncio
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI

from .api.router import api_router
from .config import get_config
from .database import close_engine, create_tables
from .dependencies import get_protection_service, get_retention_manager
from .middleware.error_handler import register_error_handlers
from .middleware.rate_limit import GatekeeperMiddleware
from .middleware.request_id import RequestIDMiddleware
from .utils.logging import get_logger, setup_logging

VERSION = "1.0.0"

config = get_config()
setup_logging(
    debug=config.debug,
    log_dir=config.log_dir,
    log_max_bytes=config.log_max_bytes,
    log_backup_count=config.log_backup_count,
)
logger = get_logger("warden.main")

# Background tasks by name
_task_registry: dict[str, asyncio.Task] = {}


def _register_task(name: str, coro_factory) -> asyncio.Task:
    """Start a background task and track it for health and shutdown."""
    task = asyncio.create_task(coro_factory(), name=name)
    _task_registry[name] = task
    return task


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan: startup and shutdown."""
    logger.info("warden_starting", host=config.host, port=config.port)

    if not config.admin_api_key:
        logger.warning("admin_api_disabled", reason="ADMIN_API_KEY not set")

    await create_tables(config)

    service = get_protection_service()
    await service.start()
    retention = get_retention_manager()

    async def _retention_cleanup_loop():
        interval = config.retention_cleanup_interval_hours * 3600
        while True:
            try:
                await asyncio.sleep(interval)
                logger.info("retention_cleanup_starting")
                await retention.run_cleanup()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.error("retention_cleanup_error", error=str(e))

    _register_task("retention_cleanup", _retention_cleanup_loop)

    if config.mining_interval_hours > 0:
        async def _crawler_mining_loop():
            interval = config.mining_interval_hours * 3600
            while True:
                try:
                    await asyncio.sleep(interval)
                    logger.info("crawler_mining_starting")
                    await service.mine_logs()
                except asyncio.CancelledError:
                    break
                except Exception as e:
                    logger.error("crawler_mining_error", error=str(e))

        _register_task("crawler_mining", _crawler_mining_loop)

    logger.info("warden_started", app=config.app_name)

    yield

    # --- Shutdown ---
    logger.info("warden_shutting_down")

    for task in _task_registry.values():
        if not task.done():
            task.cancel()

    pending = [t for t in _task_registry.values() if not t.done()]
    if pending:
        await asyncio.wait(pending, timeout=3.0)
    _task_registry.clear()

    try:
        await asyncio.wait_for(service.stop(), timeout=5.0)
    except asyncio.TimeoutError:
        logger.error("protection_service_stop_timeout")

    await close_engine()
    logger.info("warden_stopped")


app = FastAPI(
    title="WARDEN",
    description="Access protection and abuse detection service",
    version=VERSION,
    lifespan=lifespan,
)

register_error_handlers(app)

# Request gating for every non-admin path
app.add_middleware(GatekeeperMiddleware)

# Outermost, so every response carries a request ID
app.add_middleware(RequestIDMiddleware)

app.include_router(api_router)


@app.get("/health")
async def health():
    """Service health and protection state."""
    service = get_protection_service()
    tasks = {
        name: ("running" if not task.done() else "stopped")
        for name, task in _task_registry.items()
    }
    return {
        "status": "healthy",
        "app": config.app_name,
        "version": VERSION,
        "protection": service.health(),
        "tasks": tasks,
    }


def main():
    """Run the Warden server."""
    uvicorn.run(
        "warden.main:app",
        host=config.host,
        port=config.port,
        reload=config.debug,
        log_level="debug" if config.debug else "info",
    )


if __name__ == "__main__":
    main()
