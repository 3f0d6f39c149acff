"""API routes for budget inspection and acquisition."""

import logging
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from pydantic import BaseModel, Field

from budgetgate.budget.callers import CallerTracker
from budgetgate.budget.errors import EmptyRequestError, UnknownRequestTypeError
from budgetgate.budget.service import AdmissionController
from budgetgate.budget.types import RequestType

logger = logging.getLogger(__name__)
router = APIRouter()


def get_controller(request: Request) -> AdmissionController:
    return request.app.state.controller


def get_callers(request: Request) -> CallerTracker:
    return request.app.state.callers


# --- Request/Response Models ---

class BudgetInfo(BaseModel):
    """Current state of one budget."""
    request_type: str
    level: int
    ceiling: float
    rate: float
    derived_from: list[str] | None = None


class BudgetsResponse(BaseModel):
    """All budgets plus queue diagnostics."""
    budgets: list[BudgetInfo]
    queue_depth: int
    tick_count: int
    caller_count: int


class AcquireRequest(BaseModel):
    """Acquire one unit of each listed budget."""
    key: str | None = Field(default=None, description="Label used in diagnostics")
    request_types: list[str] = Field(..., description="Budgets required together")
    wait: bool = Field(
        default=False,
        description="Queue until granted instead of failing fast",
    )


class AcquireResponse(BaseModel):
    """Outcome of an acquisition."""
    acquired: bool
    request_types: list[str]
    levels: dict[str, int]


class CallerResponse(BaseModel):
    """Active caller bookkeeping result."""
    caller_id: str
    changed: bool
    caller_count: int


# --- Endpoints ---

@router.get("/budgets", response_model=BudgetsResponse)
async def list_budgets(request: Request):
    """List every budget with its level, ceiling and rate."""
    status = get_controller(request).status()
    return BudgetsResponse(
        budgets=[
            BudgetInfo(request_type=name, **info)
            for name, info in status["budgets"].items()
        ],
        queue_depth=status["queue_depth"],
        tick_count=status["tick_count"],
        caller_count=status["caller_count"],
    )


@router.get("/budgets/{request_type}", response_model=BudgetInfo)
async def get_budget(request_type: str, request: Request):
    """Get a single budget."""
    budgets: dict[str, Any] = get_controller(request).status()["budgets"]
    info = budgets.get(request_type)
    if info is None:
        raise HTTPException(
            status_code=404,
            detail=f"Unknown request type: {request_type}",
        )
    return BudgetInfo(request_type=request_type, **info)


@router.post("/budgets/acquire", response_model=AcquireResponse)
async def acquire_budgets(body: AcquireRequest, request: Request):
    """
    Acquire budgets atomically.

    With wait=false a shortfall returns 429. With wait=true the request
    is held until a replenishment tick grants it.
    """
    controller = get_controller(request)
    try:
        if body.wait:
            await controller.acquire_all_blocking(body.key, body.request_types)
            acquired = True
        else:
            acquired = await controller.try_acquire_all(body.request_types)
    except (EmptyRequestError, UnknownRequestTypeError) as e:
        raise HTTPException(status_code=400, detail=str(e))

    if not acquired:
        raise HTTPException(
            status_code=429,
            detail=f"Insufficient budget for: {', '.join(body.request_types)}",
        )

    requested = sorted({RequestType.parse(t).value for t in body.request_types})
    return AcquireResponse(
        acquired=True,
        request_types=requested,
        levels={t: controller.level(t) for t in requested},
    )


@router.put("/callers/{caller_id}", response_model=CallerResponse)
async def join_caller(caller_id: str, request: Request):
    """Mark a caller active, raising rates and ceilings from the next tick."""
    callers = get_callers(request)
    changed = callers.join(caller_id)
    return CallerResponse(caller_id=caller_id, changed=changed, caller_count=callers.count())


@router.delete("/callers/{caller_id}", response_model=CallerResponse)
async def leave_caller(caller_id: str, request: Request):
    """Mark a caller inactive."""
    callers = get_callers(request)
    changed = callers.leave(caller_id)
    if not changed:
        raise HTTPException(status_code=404, detail=f"Caller not active: {caller_id}")
    return CallerResponse(caller_id=caller_id, changed=changed, caller_count=callers.count())
