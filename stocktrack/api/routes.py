"""API routes for inventory items, alerts and sync control."""

from enum import Enum

from fastapi import APIRouter, Depends, HTTPException, Request, status
from pydantic import BaseModel

from stocktrack.engine.runtime import EngineRuntime
from stocktrack.errors import AlertWriteError, StoreUnavailableError
from stocktrack.models.alert import Alert, AlertTransition
from stocktrack.models.item import Item
from stocktrack.models.sync import SyncReport
from stocktrack.utils.logging import get_logger
from stocktrack.utils.parsing import InvalidPayloadError, parse_item_payload

logger = get_logger(__name__)

router = APIRouter()


class BackendName(str, Enum):
    LOCAL = "local"
    REMOTE = "remote"


# Request/Response Models


class UpsertItemRequest(BaseModel):
    """Raw item record from a scan or manual entry (JSON or key:value text)."""

    payload: str


class UpsertItemResponse(BaseModel):
    """Stored item and what happened to its alert."""

    item: Item
    alert: AlertTransition


class AcknowledgeResponse(BaseModel):
    item_id: str
    acknowledged: bool


class AppStateRequest(BaseModel):
    """Host application lifecycle state (active, background, inactive)."""

    state: str


# Dependency to get the engine runtime


def get_runtime(request: Request) -> EngineRuntime:
    """Engine runtime built by the application lifespan."""
    return request.app.state.runtime


def _unavailable(e: StoreUnavailableError | AlertWriteError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))


# Item endpoints


@router.get("/items/{backend}", response_model=list[Item])
async def list_items(
    backend: BackendName,
    runtime: EngineRuntime = Depends(get_runtime),
) -> list[Item]:
    """List every item on a backend."""
    try:
        return await runtime.items_for(backend.value).list_all()
    except StoreUnavailableError as e:
        raise _unavailable(e) from e


@router.put("/items/{backend}", response_model=UpsertItemResponse)
async def upsert_item(
    backend: BackendName,
    request: UpsertItemRequest,
    runtime: EngineRuntime = Depends(get_runtime),
) -> UpsertItemResponse:
    """
    Create or update an item from a scanned or typed record.

    A record carrying only id and quantity updates the quantity of an
    existing item; any other field supplied replaces the stored value.
    The item's alert is re-evaluated after the write.
    """
    try:
        payload = parse_item_payload(request.payload)
    except InvalidPayloadError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=str(e),
        ) from e

    store = runtime.items_for(backend.value)
    alerts = runtime.alerts_for(backend.value)

    try:
        existing = await store.get_one(payload.id)
        item = payload.apply_to(existing, runtime.clock.now())
        await store.upsert(item)
        transition = await alerts.check_and_update_alert(
            item.id,
            quantity=item.quantity,
            name=item.display_name,
            threshold=item.threshold(runtime.settings.default_min_stock_level),
        )
    except (StoreUnavailableError, AlertWriteError) as e:
        raise _unavailable(e) from e

    logger.info(
        "item_upserted",
        backend=backend.value,
        item_id=item.id,
        created=existing is None,
        alert=transition.value,
    )

    return UpsertItemResponse(item=item, alert=transition)


@router.delete("/items/{backend}/{item_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_item(
    backend: BackendName,
    item_id: str,
    runtime: EngineRuntime = Depends(get_runtime),
) -> None:
    """Delete an item and any alert it has."""
    try:
        removed = await runtime.items_for(backend.value).delete(item_id)
        if not removed:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Item not found",
            )
        await runtime.alerts_for(backend.value).check_and_update_alert(item_id)
    except (StoreUnavailableError, AlertWriteError) as e:
        raise _unavailable(e) from e

    logger.info("item_deleted_via_api", backend=backend.value, item_id=item_id)


# Alert endpoints


@router.get("/alerts/{backend}", response_model=list[Alert])
async def list_alerts(
    backend: BackendName,
    runtime: EngineRuntime = Depends(get_runtime),
) -> list[Alert]:
    """Unacknowledged low stock alerts, newest first."""
    try:
        return await runtime.alerts_for(backend.value).alerts.list_active()
    except StoreUnavailableError as e:
        raise _unavailable(e) from e


@router.post(
    "/alerts/{backend}/{item_id}/acknowledge",
    response_model=AcknowledgeResponse,
)
async def acknowledge_alert(
    backend: BackendName,
    item_id: str,
    runtime: EngineRuntime = Depends(get_runtime),
) -> AcknowledgeResponse:
    """Acknowledge an item's alert until its stock recovers."""
    try:
        acknowledged = await runtime.alerts_for(backend.value).acknowledge(item_id)
    except AlertWriteError as e:
        raise _unavailable(e) from e

    if not acknowledged:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Alert not found",
        )

    return AcknowledgeResponse(item_id=item_id, acknowledged=True)


# Sync endpoints


@router.post("/sync", response_model=SyncReport)
async def trigger_sync(runtime: EngineRuntime = Depends(get_runtime)) -> SyncReport:
    """Run every due backend now."""
    return await runtime.scheduler.run_sync_tasks("manual")


@router.post("/lifecycle/foreground", response_model=SyncReport | None)
async def app_foreground(
    runtime: EngineRuntime = Depends(get_runtime),
) -> SyncReport | None:
    """The host app was brought to the foreground."""
    return await runtime.scheduler.on_foreground()


@router.post("/lifecycle/state", response_model=SyncReport | None)
async def app_state_changed(
    request: AppStateRequest,
    runtime: EngineRuntime = Depends(get_runtime),
) -> SyncReport | None:
    """Report a lifecycle state; syncs when the app returns to active."""
    return await runtime.scheduler.on_app_state_change(request.state)


@router.get("/sync/status")
async def sync_status(runtime: EngineRuntime = Depends(get_runtime)) -> dict[str, object]:
    """Last completed pass per backend."""
    scheduler = runtime.scheduler
    return {
        "running": scheduler.is_running,
        "backends": {
            backend.name: {
                "available": backend.available,
                "last_run": scheduler.last_run(backend.name),
                "backoff_seconds": scheduler.backoff_delay(backend),
            }
            for backend in scheduler.backends
        },
    }
