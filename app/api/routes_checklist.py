from fastapi import APIRouter, Depends, HTTPException

from app.api.deps import get_checklist_service
from app.api.schemas import LoadChecklistRequest, ReanalyzeRequest, ToggleItemRequest
from app.services.checklist_service import (
    ChecklistService,
    ChecklistView,
    ReanalyzeNotAllowed,
    ReanalyzeOutcome,
)
from app.services.pipeline_types import ReanalyzeCheck

router = APIRouter(prefix="/checklist", tags=["checklist"])


@router.post("/{user_id}/{role}/load", response_model=ChecklistView, response_model_by_alias=True)
def load_checklist(
    user_id: int,
    role: str,
    payload: LoadChecklistRequest,
    service: ChecklistService = Depends(get_checklist_service),
):
    return service.load_or_create(
        user_id,
        role,
        payload.pipeline_data,
        health_score=payload.health_score,
    )


@router.post(
    "/{user_id}/{role}/items/{item_id}/toggle",
    response_model=ChecklistView,
    response_model_by_alias=True,
)
def toggle_item(
    user_id: int,
    role: str,
    item_id: str,
    payload: ToggleItemRequest | None = None,
    service: ChecklistService = Depends(get_checklist_service),
):
    health_score = payload.health_score if payload else 0
    try:
        return service.toggle_item(user_id, role, item_id, health_score=health_score)
    except LookupError as exc:
        # KeyError (unknown item) is a LookupError as well.
        raise HTTPException(status_code=404, detail=f"Checklist item or session not found: {exc}") from exc


@router.get("/{user_id}/{role}/reanalyze", response_model=ReanalyzeCheck, response_model_by_alias=True)
def reanalyze_check(
    user_id: int,
    role: str,
    service: ChecklistService = Depends(get_checklist_service),
):
    try:
        return service.check_reanalyze(user_id, role)
    except LookupError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc


@router.post("/{user_id}/{role}/reanalyze", response_model=ReanalyzeOutcome, response_model_by_alias=True)
def reanalyze(
    user_id: int,
    role: str,
    payload: ReanalyzeRequest,
    service: ChecklistService = Depends(get_checklist_service),
):
    try:
        return service.reanalyze(
            user_id,
            role,
            payload.pipeline_data,
            health_score=payload.health_score,
            force=payload.force,
        )
    except ReanalyzeNotAllowed as exc:
        raise HTTPException(status_code=409, detail=exc.check.reason) from exc
