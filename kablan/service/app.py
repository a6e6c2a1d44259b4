"""FastAPI application exposing the collection store."""

from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone
from functools import partial
from typing import Any, Callable, Dict, List, Optional, TypeVar

from fastapi import Body, FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from .. import __version__
from ..config import ServiceConfig, StorageConfig
from ..records import RecordNotFound
from ..schemas import CHILD_COLLECTIONS, LIST_COLLECTIONS
from . import repository
from .context import ServerContext
from .store import StoreError

logger = logging.getLogger("kablan-service")

T = TypeVar("T")


def _require_list(collection: str) -> None:
    if collection not in LIST_COLLECTIONS:
        raise HTTPException(status_code=404, detail=f"Unknown collection '{collection}'")


def _require_child(collection: str, child: str) -> None:
    if child not in CHILD_COLLECTIONS.get(collection, {}):
        raise HTTPException(status_code=404, detail=f"'{collection}' has no nested '{child}'")


def create_app(
    context: Optional[ServerContext] = None,
    service: Optional[ServiceConfig] = None,
    storage: Optional[StorageConfig] = None,
) -> FastAPI:
    """Factory to build the FastAPI application."""
    app = FastAPI(title="Kablan Collection Service", version=__version__)
    service = service or ServiceConfig()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=service.cors_allow_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    state: Dict[str, Optional[ServerContext]] = {"context": context}

    def get_context() -> ServerContext:
        ctx = state["context"]
        if ctx is None:
            raise HTTPException(status_code=503, detail="Storage not initialized yet.")
        return ctx

    async def run(func: Callable[..., T], *args: Any) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, partial(func, get_context().store, *args))

    @app.on_event("startup")
    async def startup_event() -> None:
        if state["context"] is None:
            state["context"] = ServerContext.from_config(storage)
        ctx = state["context"]
        logger.info("Canonical data directory: %s", ctx.canonical_dir)
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, repository.seed_defaults, ctx.store)

    @app.on_event("shutdown")
    async def shutdown_event() -> None:
        ctx = state["context"]
        if ctx is not None:
            ctx.close()

    @app.exception_handler(RecordNotFound)
    async def record_not_found(request: Request, exc: RecordNotFound) -> JSONResponse:
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(ValidationError)
    async def invalid_record(request: Request, exc: ValidationError) -> JSONResponse:
        return JSONResponse(status_code=422, content={"detail": str(exc)})

    @app.exception_handler(StoreError)
    async def store_failure(request: Request, exc: StoreError) -> JSONResponse:
        logger.error("Storage failure on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=500, content={"detail": str(exc), "error": type(exc).__name__})

    @app.get("/")
    async def root() -> Dict[str, Any]:
        """Root endpoint with API information."""
        return {
            "name": "Kablan Collection Service",
            "version": __version__,
            "status": "running",
            "collections": list(LIST_COLLECTIONS) + ["settings"],
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    @app.get("/health")
    async def healthcheck() -> Dict[str, Any]:
        ctx = state["context"]
        payload: Dict[str, Any] = {
            "status": "ok" if ctx is not None else "initializing",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if ctx is not None:
            payload.update(ctx.describe())
            if ctx.replicator.failures:
                payload["status"] = "degraded"
        return payload

    # ----------------------------------------------------------------------
    # Settings (object collection)
    # ----------------------------------------------------------------------

    @app.get("/api/settings")
    async def get_settings() -> Dict[str, Any]:
        return await run(repository.get_settings)

    @app.put("/api/settings")
    async def update_settings(
        changes: Dict[str, Any] = Body(...), updated_by: Optional[str] = None
    ) -> Dict[str, Any]:
        return await run(repository.update_settings, changes, updated_by)

    # ----------------------------------------------------------------------
    # Record lists
    # ----------------------------------------------------------------------

    @app.get("/api/{collection}")
    async def list_records(collection: str) -> List[Dict[str, Any]]:
        _require_list(collection)
        return await run(repository.list_records, collection)

    @app.post("/api/{collection}")
    async def create_record(collection: str, payload: Dict[str, Any] = Body(...)) -> Dict[str, Any]:
        _require_list(collection)
        return await run(repository.create_record, collection, payload)

    @app.delete("/api/{collection}")
    async def delete_all(collection: str) -> Dict[str, Any]:
        _require_list(collection)
        removed = await run(repository.delete_all, collection)
        return {"success": True, "deleted": removed}

    @app.put("/api/{collection}/{record_id}")
    async def update_record(
        collection: str, record_id: str, changes: Dict[str, Any] = Body(...)
    ) -> Dict[str, Any]:
        _require_list(collection)
        return await run(repository.update_record, collection, record_id, changes)

    @app.delete("/api/{collection}/{record_id}")
    async def delete_record(collection: str, record_id: str) -> Dict[str, Any]:
        _require_list(collection)
        await run(repository.delete_record, collection, record_id)
        return {"success": True}

    # ----------------------------------------------------------------------
    # Nested records
    # ----------------------------------------------------------------------

    @app.post("/api/{collection}/{record_id}/{child}")
    async def add_child(
        collection: str, record_id: str, child: str, payload: Dict[str, Any] = Body(...)
    ) -> Dict[str, Any]:
        _require_child(collection, child)
        return await run(repository.add_child, collection, record_id, child, payload)

    @app.put("/api/{collection}/{record_id}/{child}/{child_id}")
    async def update_child(
        collection: str,
        record_id: str,
        child: str,
        child_id: str,
        changes: Dict[str, Any] = Body(...),
    ) -> Dict[str, Any]:
        _require_child(collection, child)
        return await run(repository.update_child, collection, record_id, child, child_id, changes)

    @app.delete("/api/{collection}/{record_id}/{child}/{child_id}")
    async def delete_child(collection: str, record_id: str, child: str, child_id: str) -> Dict[str, Any]:
        _require_child(collection, child)
        await run(repository.delete_child, collection, record_id, child, child_id)
        return {"success": True}

    return app


app = create_app()
