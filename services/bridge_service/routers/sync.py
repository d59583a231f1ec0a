from fastapi import APIRouter, Depends
from services.bridge_service.dependencies import (
    get_sync_orchestrator,
    get_sync_status_cell,
)
from services.bridge_service.schemas import (
    SyncAllResponse,
    SyncOneResponse,
    SyncStatusResponse,
)
from services.bridge_service.services.orchestrator import (
    SyncOrchestrator,
    SyncStatusCell,
)

router = APIRouter(prefix="/sync", tags=["sync"])


@router.post("/members", response_model=SyncAllResponse)
async def sync_all_members(
    orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator),
):
    """
    Reconcile every member of the site onto the device.
    """
    results = await orchestrator.sync_all()
    return SyncAllResponse(
        message=f"Synced {results.successful} out of {results.total} members",
        results=results,
    )


@router.post("/member/{member_id}", response_model=SyncOneResponse)
async def sync_single_member(
    member_id: int,
    orchestrator: SyncOrchestrator = Depends(get_sync_orchestrator),
):
    """
    Reconcile one member. 404 if unknown, 403 if it belongs to another site.
    """
    result = await orchestrator.sync_one(member_id)
    return SyncOneResponse(
        message=f"Member {member_id} synced successfully",
        action=result.action,
        access=result.decision.present,
        begin_time=result.decision.begin_time,
        end_time=result.decision.end_time,
    )


@router.get("/status", response_model=SyncStatusResponse)
async def get_sync_status(cell: SyncStatusCell = Depends(get_sync_status_cell)):
    """
    Summary of the most recent full sync.
    """
    return SyncStatusResponse(status=cell.get())
