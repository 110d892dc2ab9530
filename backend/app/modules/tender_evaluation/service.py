"""Load, initialise and persist tender evaluations.

Saving rewrites the whole evaluation inside one transaction. Concurrent saves
of the same evaluation are last-writer-wins: the engine keeps no version token,
so callers that need conflict detection must add it at the storage boundary.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Tuple

from sqlalchemy import delete, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backend.app.core.config import Settings, settings as default_settings

from . import engine, importers
from .collaborators import FeeStructureSource, FirmRegistry, TenderSubmissionStore
from .domain import Firm, TenderEvaluation, check_card_ids, new_id
from .errors import CollaboratorError, InvalidStateError, PersistenceError, ValidationError
from .mapper import FlatEvaluation, flatten_evaluation, rebuild_evaluation
from .models import (
    EvaluationFirmPriceRecord,
    EvaluationLineItemRecord,
    EvaluationTableRecord,
    TenderEvaluationRecord,
)

logger = logging.getLogger(__name__)


def _record_key(record: TenderEvaluationRecord) -> Tuple[str, str, Optional[str], Optional[str]]:
    return (
        record.project_id,
        record.discipline_id,
        record.consultant_card_id or None,
        record.contractor_card_id or None,
    )


def _evaluation_key(evaluation: TenderEvaluation) -> Tuple[str, str, Optional[str], Optional[str]]:
    return (
        evaluation.project_id,
        evaluation.discipline_id,
        evaluation.consultant_card_id or None,
        evaluation.contractor_card_id or None,
    )


class TenderEvaluationService:
    """Bridge between the in-memory evaluation engine and relational storage."""

    def __init__(
        self,
        db: Session,
        *,
        firm_registry: Optional[FirmRegistry] = None,
        fee_structure: Optional[FeeStructureSource] = None,
        submissions: Optional[TenderSubmissionStore] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._db = db
        self._firm_registry = firm_registry
        self._fee_structure = fee_structure
        self._submissions = submissions
        self._settings = settings or default_settings

    # ------------------------------------------------------------------ read
    def load(
        self,
        project_id: str,
        discipline_id: str,
        consultant_card_id: Optional[str] = None,
        contractor_card_id: Optional[str] = None,
    ) -> Optional[TenderEvaluation]:
        check_card_ids(consultant_card_id, contractor_card_id)
        try:
            record = self._find_record(project_id, discipline_id, consultant_card_id, contractor_card_id)
            if record is None:
                return None
            return self._read(record)
        except SQLAlchemyError as exc:
            logger.exception("Failed to load tender evaluation for project %s", project_id)
            raise PersistenceError("Failed to fetch tender evaluation") from exc

    def get(self, evaluation_id: str) -> Optional[TenderEvaluation]:
        try:
            record = self._db.get(TenderEvaluationRecord, evaluation_id)
            return self._read(record) if record is not None else None
        except SQLAlchemyError as exc:
            logger.exception("Failed to load tender evaluation %s", evaluation_id)
            raise PersistenceError("Failed to fetch tender evaluation") from exc

    def load_or_init(
        self,
        project_id: str,
        discipline_id: str,
        consultant_card_id: Optional[str] = None,
        contractor_card_id: Optional[str] = None,
    ) -> TenderEvaluation:
        """Return the stored evaluation, or an unsaved default seeded from the fee structure."""

        evaluation = self.load(project_id, discipline_id, consultant_card_id, contractor_card_id)
        if evaluation is not None:
            return self.attach_firms(evaluation)

        firms = self._shortlisted_firms(project_id, discipline_id)
        evaluation = engine.create_default_evaluation(
            project_id,
            discipline_id,
            consultant_card_id=consultant_card_id,
            contractor_card_id=contractor_card_id,
            firms=firms,
            table_names=self._settings.default_table_names,
            placeholder_count=self._settings.adds_and_subs_placeholder_count,
        )
        if self._fee_structure is not None and evaluation.tables:
            fee_items = self._fee_structure.get_fee_structure(project_id, discipline_id)
            if fee_items:
                importers.import_structure_from_fee_schedule(
                    evaluation,
                    fee_items,
                    [firm.id for firm in firms],
                    table_id=evaluation.tables[0].id,
                )
        return evaluation

    # ------------------------------------------------------------------ write
    def save(self, evaluation: TenderEvaluation, *, actor: Optional[str] = None) -> TenderEvaluation:
        """Atomically write the full evaluation, replacing any previously stored tree.

        Totals are stored as computed on the aggregate. On failure nothing is
        written and ``evaluation`` is left untouched, so the call can be retried.
        """

        check_card_ids(evaluation.consultant_card_id, evaluation.contractor_card_id)
        try:
            record = self._resolve_record(evaluation)
            evaluation_id = record.id if record is not None else (evaluation.id or new_id())
            flat = flatten_evaluation(evaluation, evaluation_id)
            self._check_ids_unclaimed(evaluation_id, flat)

            if record is None:
                flat.evaluation_row.created_by = actor
                flat.evaluation_row.updated_by = actor
                self._db.add(flat.evaluation_row)
            else:
                self._delete_tree(record.id)
                record.grand_total = evaluation.grand_total
                record.updated_by = actor
                self._db.add(record)
            self._db.flush()

            # Staged flushes keep inserts in dependency order: tables, items (parents first), prices.
            for rows in (flat.table_rows, flat.item_rows, flat.price_rows):
                self._db.add_all(rows)
                self._db.flush()
            self._db.commit()
        except SQLAlchemyError as exc:
            self._db.rollback()
            logger.exception(
                "Failed to save tender evaluation",
                extra={"evaluation_id": evaluation.id, "project_id": evaluation.project_id},
            )
            raise PersistenceError("Failed to save tender evaluation") from exc

        evaluation.id = evaluation_id
        logger.info(
            "Saved tender evaluation %s",
            evaluation_id,
            extra={"tables": len(flat.table_rows), "items": len(flat.item_rows), "prices": len(flat.price_rows)},
        )
        return evaluation

    # ------------------------------------------------------------------ imports
    def attach_firms(self, evaluation: TenderEvaluation) -> TenderEvaluation:
        """Refresh the cached shortlisted firms from the firm registry."""

        if self._firm_registry is not None:
            evaluation.shortlisted_firms = self._shortlisted_firms(evaluation.project_id, evaluation.discipline_id)
        return evaluation

    def import_fee_structure(self, evaluation: TenderEvaluation, table_id: Optional[str] = None) -> TenderEvaluation:
        """Replace the designated table (table 1 by default) with the current fee structure."""

        if self._fee_structure is None:
            raise CollaboratorError("No fee structure service is configured")
        fee_items = self._fee_structure.get_fee_structure(evaluation.project_id, evaluation.discipline_id)
        if not evaluation.shortlisted_firms:
            self.attach_firms(evaluation)
        importers.import_structure_from_fee_schedule(
            evaluation,
            fee_items,
            [firm.id for firm in evaluation.shortlisted_firms],
            table_id=table_id,
        )
        return evaluation

    def retrieve_prices(self, evaluation: TenderEvaluation, table_id: Optional[str] = None) -> importers.PriceImportReport:
        """Pull submitted prices from the tender submission store and apply them."""

        if self._submissions is None:
            raise CollaboratorError("No tender submission store is configured")
        rows = self._submissions.get_submitted_prices(evaluation.project_id, evaluation.discipline_id)
        return importers.import_prices_from_submissions(evaluation, rows, table_id=table_id)

    # ------------------------------------------------------------------ internal
    def _shortlisted_firms(self, project_id: str, discipline_id: str) -> List[Firm]:
        if self._firm_registry is None:
            return []
        return list(self._firm_registry.list_shortlisted_firms(project_id, discipline_id))

    def _find_record(
        self,
        project_id: str,
        discipline_id: str,
        consultant_card_id: Optional[str],
        contractor_card_id: Optional[str],
    ) -> Optional[TenderEvaluationRecord]:
        stmt = select(TenderEvaluationRecord).where(
            TenderEvaluationRecord.project_id == project_id,
            TenderEvaluationRecord.discipline_id == discipline_id,
        )
        if consultant_card_id:
            stmt = stmt.where(TenderEvaluationRecord.consultant_card_id == consultant_card_id)
        if contractor_card_id:
            stmt = stmt.where(TenderEvaluationRecord.contractor_card_id == contractor_card_id)
        stmt = stmt.order_by(TenderEvaluationRecord.created_at).limit(1)
        return self._db.scalars(stmt).first()

    def _resolve_record(self, evaluation: TenderEvaluation) -> Optional[TenderEvaluationRecord]:
        if evaluation.id:
            record = self._db.get(TenderEvaluationRecord, evaluation.id)
            if record is not None:
                if _record_key(record) != _evaluation_key(evaluation):
                    raise InvalidStateError(
                        f"Tender evaluation {evaluation.id} belongs to project {record.project_id}, "
                        f"discipline {record.discipline_id}; it cannot be saved under another key"
                    )
                return record
        return self._find_record(
            evaluation.project_id,
            evaluation.discipline_id,
            evaluation.consultant_card_id,
            evaluation.contractor_card_id,
        )

    def _check_ids_unclaimed(self, evaluation_id: str, flat: FlatEvaluation) -> None:
        # Table and line item ids are global keys; another evaluation may already own them.
        table_ids = [row.id for row in flat.table_rows]
        item_ids = [row.id for row in flat.item_rows]
        claimed = list(
            self._db.scalars(
                select(EvaluationTableRecord.id).where(
                    EvaluationTableRecord.id.in_(table_ids),
                    EvaluationTableRecord.evaluation_id != evaluation_id,
                )
            )
        )
        claimed += self._db.scalars(
            select(EvaluationLineItemRecord.id)
            .join(EvaluationTableRecord, EvaluationLineItemRecord.table_id == EvaluationTableRecord.id)
            .where(
                EvaluationLineItemRecord.id.in_(item_ids),
                EvaluationTableRecord.evaluation_id != evaluation_id,
            )
        )
        if claimed:
            raise ValidationError(
                f"Ids already used by another tender evaluation: {', '.join(sorted(claimed))}; "
                "send new tables and items without ids"
            )

    def _read(self, record: TenderEvaluationRecord) -> TenderEvaluation:
        table_rows: List[EvaluationTableRecord] = list(
            self._db.scalars(select(EvaluationTableRecord).where(EvaluationTableRecord.evaluation_id == record.id))
        )
        table_ids = [table.id for table in table_rows]
        item_rows: List[EvaluationLineItemRecord] = []
        price_rows: List[EvaluationFirmPriceRecord] = []
        if table_ids:
            item_rows = list(
                self._db.scalars(
                    select(EvaluationLineItemRecord)
                    .where(EvaluationLineItemRecord.table_id.in_(table_ids))
                    .order_by(EvaluationLineItemRecord.sort_order)
                )
            )
        item_ids = [item.id for item in item_rows]
        if item_ids:
            price_rows = list(
                self._db.scalars(
                    select(EvaluationFirmPriceRecord).where(EvaluationFirmPriceRecord.line_item_id.in_(item_ids))
                )
            )
        return rebuild_evaluation(record, table_rows, item_rows, price_rows)

    def _delete_tree(self, evaluation_id: str) -> None:
        table_ids = select(EvaluationTableRecord.id).where(EvaluationTableRecord.evaluation_id == evaluation_id)
        item_ids = select(EvaluationLineItemRecord.id).where(EvaluationLineItemRecord.table_id.in_(table_ids))
        for stmt in (
            delete(EvaluationFirmPriceRecord).where(EvaluationFirmPriceRecord.line_item_id.in_(item_ids)),
            delete(EvaluationLineItemRecord).where(EvaluationLineItemRecord.table_id.in_(table_ids)),
            delete(EvaluationTableRecord).where(EvaluationTableRecord.evaluation_id == evaluation_id),
        ):
            self._db.execute(stmt.execution_options(synchronize_session="fetch"))
