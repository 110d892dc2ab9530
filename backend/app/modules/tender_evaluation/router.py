"""REST endpoints for tender price evaluations."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status

from backend.app.core import dependencies

from . import engine, importers, schemas
from .domain import LineItem, PriceEntry, TenderEvaluation
from .service import TenderEvaluationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/tender-evaluations", tags=["tender-evaluations"])


def _serialize(evaluation: TenderEvaluation) -> schemas.EvaluationResponse:
    return schemas.EvaluationResponse(
        evaluation=schemas.TenderEvaluationSchema.model_validate(evaluation),
        firm_totals=engine.firm_totals(evaluation),
    )


def _get_or_404(evaluation_service: TenderEvaluationService, evaluation_id: str) -> TenderEvaluation:
    evaluation = evaluation_service.get(evaluation_id)
    if evaluation is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Tender evaluation {evaluation_id} not found")
    evaluation_service.attach_firms(evaluation)
    return evaluation


@router.get("", response_model=schemas.EvaluationResponse)
def load_or_init_evaluation(
    project_id: str = Query(...),
    discipline_id: str = Query(..., description="Discipline or trade id"),
    consultant_card_id: Optional[str] = Query(None),
    contractor_card_id: Optional[str] = Query(None),
    evaluation_service: TenderEvaluationService = Depends(dependencies.get_evaluation_service),
):
    evaluation = evaluation_service.load_or_init(project_id, discipline_id, consultant_card_id, contractor_card_id)
    return _serialize(evaluation)


@router.put("", response_model=schemas.EvaluationResponse)
def save_evaluation(
    payload: schemas.TenderEvaluationSchema,
    actor: Optional[str] = Depends(dependencies.get_actor),
    evaluation_service: TenderEvaluationService = Depends(dependencies.get_evaluation_service),
):
    evaluation = engine.revalidate(payload.to_domain())
    evaluation_service.save(evaluation, actor=actor)
    return _serialize(evaluation)


@router.get("/{evaluation_id}", response_model=schemas.EvaluationResponse)
def get_evaluation(
    evaluation_id: str,
    evaluation_service: TenderEvaluationService = Depends(dependencies.get_evaluation_service),
):
    return _serialize(_get_or_404(evaluation_service, evaluation_id))


@router.post("/{evaluation_id}/recalculate", response_model=schemas.EvaluationResponse)
def recalculate_evaluation(
    evaluation_id: str,
    actor: Optional[str] = Depends(dependencies.get_actor),
    evaluation_service: TenderEvaluationService = Depends(dependencies.get_evaluation_service),
):
    evaluation = engine.recalculate_all(_get_or_404(evaluation_service, evaluation_id))
    evaluation_service.save(evaluation, actor=actor)
    return _serialize(evaluation)


# ------------------------------------------------------------------ tables
@router.post("/{evaluation_id}/tables", response_model=schemas.EvaluationResponse, status_code=status.HTTP_201_CREATED)
def add_table(
    evaluation_id: str,
    payload: schemas.TableCreate,
    actor: Optional[str] = Depends(dependencies.get_actor),
    evaluation_service: TenderEvaluationService = Depends(dependencies.get_evaluation_service),
):
    evaluation = _get_or_404(evaluation_service, evaluation_id)
    engine.add_table(evaluation, payload.name)
    evaluation_service.save(evaluation, actor=actor)
    return _serialize(evaluation)


@router.patch("/{evaluation_id}/tables/{table_id}", response_model=schemas.EvaluationResponse)
def rename_table(
    evaluation_id: str,
    table_id: str,
    payload: schemas.TableRename,
    actor: Optional[str] = Depends(dependencies.get_actor),
    evaluation_service: TenderEvaluationService = Depends(dependencies.get_evaluation_service),
):
    evaluation = _get_or_404(evaluation_service, evaluation_id)
    engine.rename_table(evaluation, table_id, payload.name)
    evaluation_service.save(evaluation, actor=actor)
    return _serialize(evaluation)


@router.delete("/{evaluation_id}/tables/{table_id}", response_model=schemas.EvaluationResponse)
def remove_table(
    evaluation_id: str,
    table_id: str,
    actor: Optional[str] = Depends(dependencies.get_actor),
    evaluation_service: TenderEvaluationService = Depends(dependencies.get_evaluation_service),
):
    evaluation = _get_or_404(evaluation_service, evaluation_id)
    engine.remove_table(evaluation, table_id)
    evaluation_service.save(evaluation, actor=actor)
    return _serialize(evaluation)


# ------------------------------------------------------------------ line items
@router.post(
    "/{evaluation_id}/tables/{table_id}/items",
    response_model=schemas.EvaluationResponse,
    status_code=status.HTTP_201_CREATED,
)
def add_line_item(
    evaluation_id: str,
    table_id: str,
    payload: schemas.LineItemCreate,
    actor: Optional[str] = Depends(dependencies.get_actor),
    evaluation_service: TenderEvaluationService = Depends(dependencies.get_evaluation_service),
):
    evaluation = _get_or_404(evaluation_service, evaluation_id)
    item = LineItem(
        description=payload.description,
        is_category=payload.is_category,
        sort_order=payload.sort_order,
        prices=[PriceEntry(firm_id=price.firm_id, amount=price.amount) for price in payload.prices],
    )
    engine.add_line_item(evaluation, table_id, item, payload.parent_id)
    evaluation_service.save(evaluation, actor=actor)
    return _serialize(evaluation)


@router.patch("/{evaluation_id}/tables/{table_id}/items/{item_id}", response_model=schemas.EvaluationResponse)
def update_line_item(
    evaluation_id: str,
    table_id: str,
    item_id: str,
    payload: schemas.LineItemUpdate,
    actor: Optional[str] = Depends(dependencies.get_actor),
    evaluation_service: TenderEvaluationService = Depends(dependencies.get_evaluation_service),
):
    evaluation = _get_or_404(evaluation_service, evaluation_id)
    engine.update_line_item(evaluation, table_id, item_id, **payload.model_dump(exclude_none=True))
    evaluation_service.save(evaluation, actor=actor)
    return _serialize(evaluation)


@router.delete("/{evaluation_id}/tables/{table_id}/items/{item_id}", response_model=schemas.EvaluationResponse)
def delete_line_item(
    evaluation_id: str,
    table_id: str,
    item_id: str,
    actor: Optional[str] = Depends(dependencies.get_actor),
    evaluation_service: TenderEvaluationService = Depends(dependencies.get_evaluation_service),
):
    evaluation = _get_or_404(evaluation_service, evaluation_id)
    engine.delete_line_item(evaluation, table_id, item_id)
    evaluation_service.save(evaluation, actor=actor)
    return _serialize(evaluation)


@router.put(
    "/{evaluation_id}/tables/{table_id}/items/{item_id}/prices/{firm_id}",
    response_model=schemas.EvaluationResponse,
)
def set_firm_price(
    evaluation_id: str,
    table_id: str,
    item_id: str,
    firm_id: str,
    payload: schemas.PriceUpdate,
    actor: Optional[str] = Depends(dependencies.get_actor),
    evaluation_service: TenderEvaluationService = Depends(dependencies.get_evaluation_service),
):
    evaluation = _get_or_404(evaluation_service, evaluation_id)
    engine.set_firm_price(evaluation, table_id, item_id, firm_id, payload.amount)
    evaluation_service.save(evaluation, actor=actor)
    return _serialize(evaluation)


# ------------------------------------------------------------------ imports
@router.post("/{evaluation_id}/import-fee-structure", response_model=schemas.EvaluationResponse)
def import_fee_structure(
    evaluation_id: str,
    table_id: Optional[str] = Query(None, description="Defaults to table 1"),
    actor: Optional[str] = Depends(dependencies.get_actor),
    evaluation_service: TenderEvaluationService = Depends(dependencies.get_evaluation_service),
):
    evaluation = _get_or_404(evaluation_service, evaluation_id)
    evaluation_service.import_fee_structure(evaluation, table_id=table_id)
    evaluation_service.save(evaluation, actor=actor)
    return _serialize(evaluation)


@router.post("/{evaluation_id}/retrieve-prices", response_model=schemas.PriceImportResponse)
def retrieve_prices(
    evaluation_id: str,
    table_id: Optional[str] = Query(None, description="Defaults to table 1"),
    actor: Optional[str] = Depends(dependencies.get_actor),
    evaluation_service: TenderEvaluationService = Depends(dependencies.get_evaluation_service),
):
    evaluation = _get_or_404(evaluation_service, evaluation_id)
    report: importers.PriceImportReport = evaluation_service.retrieve_prices(evaluation, table_id=table_id)
    evaluation_service.save(evaluation, actor=actor)
    return schemas.PriceImportResponse(
        evaluation=schemas.TenderEvaluationSchema.model_validate(evaluation),
        updated_item_ids=report.updated_item_ids,
        unmatched_refs=report.unmatched_refs,
        category_refs=report.category_refs,
    )
