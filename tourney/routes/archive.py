"""Admin archive routes.

Auth: every endpoint requires the API key (X-API-Key).
Responses carry the OperationResult body; failures map to HTTP status codes
by reason code.
"""

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from tourney.archive.service import ArchiveService, OperationResult, ReasonCode, ResultStatus
from tourney.database import AsyncSessionLocal
from tourney.security import limiter, verify_api_key
from tourney.storage.r2_client import get_object_store

logger = logging.getLogger(__name__)

router = APIRouter(tags=["archive"], dependencies=[Depends(verify_api_key)])

_STATUS_BY_REASON = {
    ReasonCode.TOURNAMENT_NOT_FOUND: 404,
    ReasonCode.ARCHIVE_NOT_FOUND: 404,
    ReasonCode.STORAGE_UNAVAILABLE: 503,
    ReasonCode.STORE_WRITE_FAILED: 502,
    ReasonCode.STORE_DELETE_FAILED: 502,
}


class ArchiveRequest(BaseModel):
    archived_by: Optional[str] = None


def get_archive_service() -> ArchiveService:
    return ArchiveService(AsyncSessionLocal, get_object_store())


def to_response(result: OperationResult) -> JSONResponse:
    status_code = 200
    if result.status == ResultStatus.FAILED:
        status_code = _STATUS_BY_REASON.get(result.reason, 500)
    return JSONResponse(content=result.to_dict(), status_code=status_code)


@router.post("/admin/archives/{tournament_id}")
@limiter.limit("10/minute")
async def archive_tournament(
    request: Request,
    tournament_id: int,
    body: Optional[ArchiveRequest] = None,
    service: ArchiveService = Depends(get_archive_service),
):
    """Snapshot a tournament into the object store and index it."""
    actor = body.archived_by if body else None
    return to_response(await service.archive(tournament_id, actor or "admin"))


@router.get("/admin/archives")
async def list_archives(service: ArchiveService = Depends(get_archive_service)):
    """Archived tournaments, newest first."""
    return to_response(await service.list_archives())


@router.get("/admin/archives/{tournament_id}")
async def get_archive(tournament_id: int, service: ArchiveService = Depends(get_archive_service)):
    return to_response(await service.get_archive(tournament_id))


@router.delete("/admin/archives/{tournament_id}")
@limiter.limit("10/minute")
async def delete_archive(
    request: Request,
    tournament_id: int,
    service: ArchiveService = Depends(get_archive_service),
):
    """Delete the snapshot object, its index entry and the row's archive stamp."""
    return to_response(await service.delete_archive(tournament_id))


@router.delete("/admin/tournaments/{tournament_id}/data")
@limiter.limit("5/minute")
async def delete_tournament_data(
    request: Request,
    tournament_id: int,
    keep_tournament: bool = Query(False, description="Keep the tournament row and mark it archived"),
    service: ArchiveService = Depends(get_archive_service),
):
    """
    Delete all live data of a tournament (normally after archiving it).

    200 with status "partial" when some steps failed but the run completed;
    500 with the ledger and investigation when the tournament row remains.
    """
    logger.info(f"[RECONCILE] Deletion requested for tournament {tournament_id} (keep={keep_tournament})")
    return to_response(await service.reconcile_deletion(tournament_id, keep_tournament_row=keep_tournament))


@router.get("/health/storage")
async def storage_health(service: ArchiveService = Depends(get_archive_service)):
    """Write/read/delete check against the object store."""
    return to_response(await service.storage_health())
