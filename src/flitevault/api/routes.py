"""Admin endpoints for snapshot download and restore."""

from collections.abc import AsyncGenerator
from typing import Annotated

import structlog
from fastapi import APIRouter, Depends, File, Header, HTTPException, Query, Response, UploadFile
from fastapi.responses import JSONResponse

from flitevault.api.schemas import RestoreFailure, RestoreResponse
from flitevault.codec import encode_snapshot, snapshot_filename
from flitevault.config import settings
from flitevault.context import RestoreContext
from flitevault.errors import (
    ConfigurationError,
    ExportError,
    FliteVaultError,
    RestoreError,
    SnapshotFormatError,
)
from flitevault.export import export_snapshot
from flitevault.restore import CONFIRMATION_MESSAGE, restore_snapshot
from flitevault.store import Actor, SnapshotStore, StoreError, create_store

log = structlog.get_logger()

router = APIRouter(prefix="/admin", tags=["admin"])


def _bearer_token(authorization: str | None) -> str | None:
    if not authorization:
        return None
    scheme, _, token = authorization.partition(" ")
    if scheme.lower() != "bearer" or not token:
        return None
    return token.strip()


async def get_store(
    authorization: Annotated[str | None, Header()] = None,
) -> AsyncGenerator[SnapshotStore]:
    """Store client acting as the caller; the bearer token is forwarded."""
    try:
        store = create_store(settings, access_token=_bearer_token(authorization))
    except ConfigurationError as e:
        raise HTTPException(status_code=503, detail=e.message) from e
    async with store:
        yield store


async def _resolve_actor(store: SnapshotStore) -> Actor | None:
    try:
        return await store.get_actor()
    except StoreError as e:
        log.warning("Could not resolve actor", error=e.message)
        return None


@router.get("/snapshot")
async def download_snapshot(store: SnapshotStore = Depends(get_store)) -> Response:
    """Export every table as a downloadable snapshot file."""
    actor = await _resolve_actor(store)
    try:
        envelope = await export_snapshot(store, actor, settings=settings)
    except ExportError as e:
        log.warning("snapshot_export_failed", error=e.message)
        raise HTTPException(status_code=502, detail=e.message) from e

    filename = snapshot_filename(settings.product_name)
    return Response(
        content=encode_snapshot(envelope),
        media_type="application/json",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/snapshot/restore", response_model=RestoreResponse)
async def restore_snapshot_endpoint(
    file: Annotated[UploadFile, File(description="Snapshot .json file")],
    confirm: Annotated[bool, Query(description="Acknowledge the restore warning")] = False,
    store: SnapshotStore = Depends(get_store),
) -> RestoreResponse | JSONResponse:
    """Restore an uploaded snapshot.

    Matching ids are overwritten and staff logins other than the caller's are
    disconnected, so ``confirm=true`` is required.
    """
    filename = file.filename or ""
    if not filename.lower().endswith(".json"):
        raise HTTPException(status_code=400, detail=f"Snapshot files must be .json: {filename}")
    if not confirm:
        raise HTTPException(status_code=400, detail=CONFIRMATION_MESSAGE)

    payload = await file.read()
    actor = await _resolve_actor(store)
    context = RestoreContext()

    try:
        report = await restore_snapshot(
            payload, store=store, actor=actor, context=context, settings=settings
        )
    except SnapshotFormatError as e:
        raise HTTPException(status_code=400, detail=e.message) from e
    except FliteVaultError as e:
        log.warning("snapshot_restore_failed", error=e.message, filename=filename)
        failure = RestoreFailure(
            message=e.message,
            table=e.table if isinstance(e, RestoreError) else None,
            log=list(context.lines),
        )
        return JSONResponse(status_code=409, content=failure.model_dump())

    log.info("Snapshot restored", filename=filename, rows=report.total_rows)
    return RestoreResponse.from_report(report)
