from __future__ import annotations

from typing import Any
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Response, WebSocket, WebSocketDisconnect, status

from thimblerig.api.deps import get_registry
from thimblerig.api.models import (
    BalanceUpdateRequest,
    BetAmountRequest,
    BetErrorRequest,
    BetStepRequest,
    ConnectionRequest,
    IdentityRequest,
    PlaceBetResponse,
    SelectRequest,
    SessionRequest,
    TableCreateRequest,
    TableListResponse,
    TableState,
)
from thimblerig.shuffle.models import SelectionResult
from thimblerig.table import Table, TableClosedError, TableRegistry
from thimblerig.wagering.models import BetRecord, WagerSnapshot
from thimblerig.websocket_hub import hub

router = APIRouter()


def _table_state(table: Table) -> TableState:
    return TableState(
        table_id=table.table_id,
        created_at=table.created_at,
        wager=table.wager.snapshot(),
        shuffle=table.shuffle.snapshot(),
    )


def _require_table(registry: TableRegistry, table_id: UUID) -> Table:
    table = registry.get_table(table_id)
    if table is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Table not found")
    return table


@router.websocket("/ws/table/{table_id}")
async def table_updates_ws(
    websocket: WebSocket, table_id: UUID, registry: TableRegistry = Depends(get_registry)
) -> None:
    table = registry.get_table(table_id)
    if table is None:
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    # Sockets must join the hub the table broadcasts through.
    table_hub = registry.hub if registry.hub is not None else hub
    tid = str(table_id)
    initial = {"type": "table_state", **_table_state(table).model_dump(mode="json")}
    await table_hub.connect(tid, websocket, initial=initial)

    try:
        # Keep the socket open; client can optionally send pings.
        while True:
            await websocket.receive_text()
    except WebSocketDisconnect:
        await table_hub.disconnect(tid, websocket)
    except Exception:
        await table_hub.disconnect(tid, websocket)
        raise


@router.get("/healthcheck")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


# ========== Tables ==========


@router.post("/tables", response_model=TableState, status_code=status.HTTP_201_CREATED)
async def create_table_route(
    payload: TableCreateRequest | None = None,
    registry: TableRegistry = Depends(get_registry),
) -> TableState:
    table = registry.create_table(seed=payload.seed if payload else None)
    return _table_state(table)


@router.get("/tables", response_model=TableListResponse)
async def list_tables_route(registry: TableRegistry = Depends(get_registry)) -> TableListResponse:
    return TableListResponse(tables=[_table_state(t) for t in registry.list_tables()])


@router.get("/tables/{table_id}", response_model=TableState)
async def get_table_route(table_id: UUID, registry: TableRegistry = Depends(get_registry)) -> TableState:
    return _table_state(_require_table(registry, table_id))


@router.delete("/tables/{table_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_table_route(table_id: UUID, registry: TableRegistry = Depends(get_registry)) -> Response:
    if not await registry.remove_table(table_id):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Table not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ========== Wager intents (from the betting panel) ==========


@router.post("/tables/{table_id}/wager/bet", response_model=WagerSnapshot)
async def set_bet_route(
    table_id: UUID, payload: BetAmountRequest, registry: TableRegistry = Depends(get_registry)
) -> WagerSnapshot:
    table = _require_table(registry, table_id)
    table.panel.set_bet_amount(payload.amount)
    return table.wager.snapshot()


@router.post("/tables/{table_id}/wager/increase", response_model=WagerSnapshot)
async def increase_bet_route(
    table_id: UUID, payload: BetStepRequest | None = None, registry: TableRegistry = Depends(get_registry)
) -> WagerSnapshot:
    table = _require_table(registry, table_id)
    table.panel.increase_bet(payload.step if payload else None)
    return table.wager.snapshot()


@router.post("/tables/{table_id}/wager/decrease", response_model=WagerSnapshot)
async def decrease_bet_route(
    table_id: UUID, payload: BetStepRequest | None = None, registry: TableRegistry = Depends(get_registry)
) -> WagerSnapshot:
    table = _require_table(registry, table_id)
    table.panel.decrease_bet(payload.step if payload else None)
    return table.wager.snapshot()


@router.post("/tables/{table_id}/wager/max", response_model=WagerSnapshot)
async def max_bet_route(table_id: UUID, registry: TableRegistry = Depends(get_registry)) -> WagerSnapshot:
    table = _require_table(registry, table_id)
    table.panel.set_max_bet()
    return table.wager.snapshot()


@router.post("/tables/{table_id}/wager/quick", response_model=WagerSnapshot)
async def quick_bet_route(
    table_id: UUID, payload: BetAmountRequest, registry: TableRegistry = Depends(get_registry)
) -> WagerSnapshot:
    table = _require_table(registry, table_id)
    if payload.amount not in table.panel.quick_bets:
        allowed = ",".join(f"{a:g}" for a in table.panel.quick_bets)
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"amount must be one of the quick bets ({allowed})",
        )
    table.panel.quick_bet(payload.amount)
    return table.wager.snapshot()


@router.post("/tables/{table_id}/wager/place", response_model=PlaceBetResponse)
async def place_bet_route(table_id: UUID, registry: TableRegistry = Depends(get_registry)) -> PlaceBetResponse:
    table = _require_table(registry, table_id)
    record = table.panel.place_bet()
    return PlaceBetResponse(record=record, wager=table.wager.snapshot())


@router.post("/tables/{table_id}/wager/refresh", response_model=WagerSnapshot)
async def refresh_balance_route(table_id: UUID, registry: TableRegistry = Depends(get_registry)) -> WagerSnapshot:
    table = _require_table(registry, table_id)
    table.panel.refresh_balance()
    return table.wager.snapshot()


# ========== Wager feeds (from the backend that owns balances) ==========


@router.post("/tables/{table_id}/wager/balance", response_model=WagerSnapshot)
async def update_balance_route(
    table_id: UUID, payload: BalanceUpdateRequest, registry: TableRegistry = Depends(get_registry)
) -> WagerSnapshot:
    table = _require_table(registry, table_id)
    table.wager.update_balance(payload.balance, payload.currency)
    return table.wager.snapshot()


@router.post("/tables/{table_id}/wager/identity", response_model=WagerSnapshot)
async def set_identity_route(
    table_id: UUID, payload: IdentityRequest, registry: TableRegistry = Depends(get_registry)
) -> WagerSnapshot:
    table = _require_table(registry, table_id)
    # Only forward what the caller actually sent; omitted fields stay untouched.
    fields: dict[str, Any] = {name: getattr(payload, name) for name in payload.model_fields_set}
    table.wager.set_identity(**fields)
    return table.wager.snapshot()


@router.post("/tables/{table_id}/wager/session", response_model=WagerSnapshot)
async def set_session_route(
    table_id: UUID, payload: SessionRequest, registry: TableRegistry = Depends(get_registry)
) -> WagerSnapshot:
    table = _require_table(registry, table_id)
    table.wager.set_session(payload.token)
    return table.wager.snapshot()


@router.post("/tables/{table_id}/wager/confirm", response_model=WagerSnapshot)
async def confirm_bet_route(
    table_id: UUID, payload: BetRecord, registry: TableRegistry = Depends(get_registry)
) -> WagerSnapshot:
    table = _require_table(registry, table_id)
    table.wager.confirm_bet(payload)
    return table.wager.snapshot()


@router.post("/tables/{table_id}/wager/error", response_model=WagerSnapshot)
async def bet_error_route(
    table_id: UUID, payload: BetErrorRequest, registry: TableRegistry = Depends(get_registry)
) -> WagerSnapshot:
    table = _require_table(registry, table_id)
    table.wager.bet_error(payload.error)
    return table.wager.snapshot()


@router.post("/tables/{table_id}/wager/connection", response_model=WagerSnapshot)
async def connection_route(
    table_id: UUID, payload: ConnectionRequest, registry: TableRegistry = Depends(get_registry)
) -> WagerSnapshot:
    table = _require_table(registry, table_id)
    if payload.error:
        table.wager.set_connection_error(payload.error)
    else:
        table.wager.set_connected(payload.connected)
    return table.wager.snapshot()


# ========== Shuffle rounds ==========


@router.post("/tables/{table_id}/round", response_model=TableState, status_code=status.HTTP_202_ACCEPTED)
async def start_round_route(
    table_id: UUID,
    response: Response,
    wait: bool = False,
    registry: TableRegistry = Depends(get_registry),
) -> TableState:
    """Start a round.

    By default the reveal + shuffle runs in the background and progress is
    pushed over the table WebSocket. `wait=true` holds the request until
    the shuffle is done and selection is open (handy for scripted clients).
    """

    table = _require_table(registry, table_id)
    if wait:
        try:
            started = await table.start_round()
        except TableClosedError as e:
            raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
        response.status_code = status.HTTP_200_OK
    else:
        started = table.start_round_in_background()

    if not started:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="A round is already in progress")
    return _table_state(table)


@router.post("/tables/{table_id}/round/select", response_model=SelectionResult)
async def select_slot_route(
    table_id: UUID, payload: SelectRequest, registry: TableRegistry = Depends(get_registry)
) -> SelectionResult:
    table = _require_table(registry, table_id)
    try:
        result = await table.select_slot(payload.slot)
    except TableClosedError as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e
    except ValueError as e:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=str(e)) from e

    if result is None:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail="Table is not awaiting a selection")
    return result
