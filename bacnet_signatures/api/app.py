"""
Signature Engine API — FastAPI endpoints.

Thin JSON-over-HTTP binding for:
- Signature CRUD, promotion and verification
- Equipment inspection, coverage and candidate ranking
- Point classification and normalization corrections
- Equipment↔signature and equipment↔external-record mappings
- Rule-based auto-assignment with dry runs, batches and rollback
- Signature analytics and reviewer feedback

All rules live in the engine components; handlers only translate.
"""

import logging
from contextlib import asynccontextmanager
from typing import List, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from bacnet_signatures.analytics.store import AnalyticsStore
from bacnet_signatures.classification.categorizer import classify_all, summarize_normalization
from bacnet_signatures.equipment.store import EquipmentStore, ExternalRecordStore
from bacnet_signatures.errors import ConflictError, NotFoundError, ValidationError
from bacnet_signatures.logging_config import setup_logging
from bacnet_signatures.mapping.auto_assign import AutoAssigner
from bacnet_signatures.mapping.ledger import MappingLedger
from bacnet_signatures.mapping.manager import ANY, MappingManager
from bacnet_signatures.matching.matcher import (
    apply_template,
    candidate_signatures,
    coverage,
    point_universe,
    search_points,
)
from bacnet_signatures.models.assignment import AutoAssignmentStatus
from bacnet_signatures.models.config import EngineConfig
from bacnet_signatures.models.signature import SignatureDraft, SignaturePatch, SignatureSource
from bacnet_signatures.registry.store import SignatureRegistry

logger = logging.getLogger(__name__)


# --- Request Models ---

class PromoteRequest(BaseModel):
    name: str
    point_ids: Optional[List[str]] = None


class SignatureAssignRequest(BaseModel):
    signature_id: str
    actor: Optional[str] = None
    expected_current: Optional[str] = None


class RecordAssignRequest(BaseModel):
    external_record_id: str
    actor: Optional[str] = None
    expected_current: Optional[str] = None
    expected_holder: Optional[str] = None


class NormalizationCorrectionRequest(BaseModel):
    normalized_name: Optional[str] = None
    normalization_confidence: Optional[float] = None


class FeedbackRequest(BaseModel):
    positive: bool


class AutoAssignRequest(BaseModel):
    dry_run: bool = False
    actor: Optional[str] = None


class BatchAutoAssignRequest(BaseModel):
    equipment_ids: List[str]
    dry_run: bool = False
    actor: Optional[str] = None
    max_assignments: Optional[int] = None
    equipment_type: Optional[str] = None
    vendor_name: Optional[str] = None


class RollbackRequest(BaseModel):
    equipment_id: str
    signature_id: str
    reason: str
    actor: Optional[str] = None


class AutoAssignFeedbackRequest(BaseModel):
    equipment_id: str
    signature_id: str
    confirmed: bool


def _expectation(req: BaseModel, field: str):
    """A field the client left out means 'no expectation', an explicit null means 'unassigned'."""
    return getattr(req, field) if field in req.model_fields_set else ANY


# --- Application Factory ---

def create_app(
    registry: Optional[SignatureRegistry] = None,
    equipment_store: Optional[EquipmentStore] = None,
    record_store: Optional[ExternalRecordStore] = None,
    analytics: Optional[AnalyticsStore] = None,
    ledger: Optional[MappingLedger] = None,
    config: Optional[EngineConfig] = None,
    configure_logging: bool = False,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    config = config or EngineConfig()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        if configure_logging:
            setup_logging(config.log_level, config.log_json)
        yield

    app = FastAPI(
        title="BACnet Signature Engine API",
        description="Signature matching, point classification and equipment mapping",
        version="0.1.0-alpha",
        lifespan=lifespan,
    )

    # Initialize components
    reg = registry or SignatureRegistry(config)
    es = equipment_store or EquipmentStore()
    rs = record_store or ExternalRecordStore()
    an = analytics or AnalyticsStore()
    manager = MappingManager(
        registry=reg,
        equipment_store=es,
        record_store=rs,
        ledger=ledger or MappingLedger(),
        analytics=an,
        config=config,
    )
    assigner = AutoAssigner(manager, config)

    app.state.registry = reg
    app.state.equipment_store = es
    app.state.record_store = rs
    app.state.analytics = an
    app.state.mapping_manager = manager
    app.state.auto_assigner = assigner

    # === ERROR TRANSLATION ===

    @app.exception_handler(ValidationError)
    async def on_validation_error(request: Request, exc: ValidationError):
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(NotFoundError)
    async def on_not_found(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(ConflictError)
    async def on_conflict(request: Request, exc: ConflictError):
        logger.warning("Conflict on %s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=409, content={"detail": str(exc)})

    # === SIGNATURES ===

    @app.post("/signatures", status_code=201)
    def create_signature(draft: SignatureDraft):
        """Create a signature from an explicit draft."""
        return reg.create(draft).model_dump(mode="json")

    @app.get("/signatures")
    def list_signatures(
        q: Optional[str] = None,
        equipment_type: Optional[str] = None,
        source: Optional[SignatureSource] = None,
        min_confidence: float = 0,
        max_confidence: float = 100,
    ):
        """List signatures, optionally filtered."""
        found = reg.search(
            term=q,
            equipment_type=equipment_type,
            source=source,
            confidence_range=(min_confidence, max_confidence),
        )
        return [s.model_dump(mode="json") for s in found]

    @app.get("/signatures/types")
    def list_signature_types():
        return reg.equipment_types()

    @app.get("/signatures/{signature_id}")
    def get_signature(signature_id: str):
        return reg.get(signature_id).model_dump(mode="json")

    @app.patch("/signatures/{signature_id}")
    def update_signature(signature_id: str, patch: SignaturePatch):
        return reg.update(signature_id, patch).model_dump(mode="json")

    @app.delete("/signatures/{signature_id}")
    def delete_signature(signature_id: str):
        reg.delete(signature_id)
        return {"status": "deleted", "signature_id": signature_id}

    @app.post("/signatures/{signature_id}/verify")
    def verify_signature(signature_id: str):
        return reg.verify(signature_id).model_dump(mode="json")

    @app.post("/signatures/from-equipment/{equipment_id}", status_code=201)
    def promote_equipment(equipment_id: str, req: PromoteRequest):
        """Create a user signature from a reviewed equipment's points."""
        equipment = es.get(equipment_id)
        return reg.create_from_equipment(equipment, req.name, req.point_ids).model_dump(
            mode="json"
        )

    # === EQUIPMENT ===

    @app.get("/equipment")
    def list_equipment(group_by_type: bool = False):
        if group_by_type:
            return {
                t: [e.model_dump(mode="json") for e in group]
                for t, group in es.group_by_type().items()
            }
        return [e.model_dump(mode="json") for e in es.list()]

    @app.get("/equipment/{equipment_id}")
    def get_equipment(equipment_id: str):
        return es.get(equipment_id).model_dump(mode="json")

    @app.get("/equipment/{equipment_id}/coverage/{signature_id}")
    def get_coverage(equipment_id: str, signature_id: str):
        return coverage(es.get(equipment_id), reg.get(signature_id)).model_dump(mode="json")

    @app.get("/equipment/{equipment_id}/candidates")
    def get_candidates(equipment_id: str):
        """Same-type signatures ranked by coverage, confidence, then name."""
        equipment = es.get(equipment_id)
        return [
            {
                "signature": s.model_dump(mode="json"),
                "coverage": coverage(equipment, s).model_dump(mode="json"),
            }
            for s in candidate_signatures(equipment, reg)
        ]

    @app.get("/equipment/{equipment_id}/tracked-points")
    def get_tracked_points(equipment_id: str, q: Optional[str] = None):
        """Points covered by the applied signature; all points when none is applied."""
        equipment = es.get(equipment_id)
        signature_id = manager.current_signature_id(equipment_id)
        points = equipment.points
        if signature_id is not None:
            points = apply_template(equipment, reg.get(signature_id))
        return [p.model_dump(mode="json") for p in search_points(points, q, config)]

    @app.get("/equipment/{equipment_id}/point-universe")
    def get_point_universe(equipment_id: str, q: Optional[str] = None):
        equipment = es.get(equipment_id)
        points = search_points(point_universe(equipment.points), q, config)
        return [p.model_dump(mode="json") for p in points]

    @app.get("/equipment/{equipment_id}/classification")
    def get_classification(equipment_id: str):
        equipment = es.get(equipment_id)
        return {
            "points": [c.model_dump(mode="json") for c in classify_all(equipment.points, config)],
            "summary": summarize_normalization(equipment.points, config).model_dump(mode="json"),
        }

    @app.patch("/equipment/{equipment_id}/points/{point_id}/normalization")
    def correct_normalization(
        equipment_id: str, point_id: str, req: NormalizationCorrectionRequest
    ):
        """Reviewer correction of a point's normalized name or confidence."""
        changes = {f: getattr(req, f) for f in req.model_fields_set}
        if not changes:
            raise HTTPException(400, "No normalization fields supplied")
        point = es.update_point_normalization(equipment_id, point_id, **changes)
        return point.model_dump(mode="json")

    # === MAPPINGS ===

    @app.put("/equipment/{equipment_id}/signature")
    def assign_signature(equipment_id: str, req: SignatureAssignRequest):
        signature = manager.assign_signature(
            equipment_id,
            req.signature_id,
            actor=req.actor,
            expected_current=_expectation(req, "expected_current"),
        )
        return signature.model_dump(mode="json")

    @app.delete("/equipment/{equipment_id}/signature")
    def unassign_signature(equipment_id: str, actor: Optional[str] = None):
        removed = manager.unassign_signature(equipment_id, actor=actor)
        return {"equipment_id": equipment_id, "removed_signature_id": removed}

    @app.put("/equipment/{equipment_id}/external-record")
    def assign_external_record(equipment_id: str, req: RecordAssignRequest):
        mapping = manager.assign_external_record(
            equipment_id,
            req.external_record_id,
            actor=req.actor,
            expected_current=_expectation(req, "expected_current"),
            expected_holder=_expectation(req, "expected_holder"),
        )
        return mapping.model_dump(mode="json")

    @app.delete("/equipment/{equipment_id}/external-record")
    def unassign_external_record(equipment_id: str, actor: Optional[str] = None):
        removed = manager.unassign_external_record(equipment_id, actor=actor)
        return {
            "equipment_id": equipment_id,
            "removed": removed.model_dump(mode="json") if removed else None,
        }

    @app.get("/mappings")
    def list_mappings():
        return [m.model_dump(mode="json") for m in manager.list_mappings()]

    @app.get("/mappings/history")
    def mapping_history(limit: int = 50):
        return [e.model_dump(mode="json") for e in manager.ledger.query_recent(limit=limit)]

    @app.get("/mappings/equipment/{equipment_id}")
    def get_equipment_mapping(equipment_id: str):
        """Current signature and external record for an equipment instance."""
        es.get(equipment_id)
        state = manager.mapping_for_equipment(equipment_id)
        return {
            "equipment_id": equipment_id,
            "signature_id": manager.current_signature_id(equipment_id),
            "mapping": state.model_dump(mode="json") if state else None,
        }

    @app.get("/mappings/external/{record_id}")
    def get_record_mapping(record_id: str):
        state = manager.mapping_for_external_record(record_id)
        if state is None:
            raise HTTPException(404, "External record is not mapped")
        return state.model_dump(mode="json")

    @app.get("/external-records/unmapped")
    def get_unmapped_records():
        return [r.model_dump(mode="json") for r in manager.unmapped_external_records()]

    # === AUTO-ASSIGNMENT ===

    @app.get("/auto-assign/recommendations")
    def get_recommendations(equipment_id: Optional[str] = None, eligible_only: bool = False):
        ids = [equipment_id] if equipment_id else None
        recs = assigner.recommendations(ids)
        if eligible_only:
            recs = [r for r in recs if r.eligible]
        return [r.model_dump(mode="json") for r in recs]

    @app.post("/auto-assign/equipment/{equipment_id}")
    def auto_assign_equipment(equipment_id: str, req: AutoAssignRequest):
        """Auto-assign one equipment instance; reports why when it does not qualify."""
        rec = assigner.recommend(equipment_id)
        if not rec.eligible:
            return {"equipment_id": equipment_id, "assignment": None, "reason": rec.reason}
        assignment = assigner.process_equipment(equipment_id, req.dry_run, req.actor)
        return {
            "equipment_id": equipment_id,
            "assignment": assignment.model_dump(mode="json") if assignment else None,
            "reason": rec.reason,
        }

    @app.post("/auto-assign/batch")
    def auto_assign_batch(req: BatchAutoAssignRequest):
        result = assigner.process_batch(
            req.equipment_ids,
            dry_run=req.dry_run,
            actor=req.actor,
            max_assignments=req.max_assignments,
            equipment_type=req.equipment_type,
            vendor_name=req.vendor_name,
        )
        return result.model_dump(mode="json")

    @app.post("/auto-assign/rollback")
    def rollback_auto_assignment(req: RollbackRequest):
        rolled_back = assigner.rollback(
            req.equipment_id, req.signature_id, req.reason, actor=req.actor
        )
        return rolled_back.model_dump(mode="json")

    @app.post("/auto-assign/feedback")
    def auto_assignment_feedback(req: AutoAssignFeedbackRequest):
        updated = assigner.record_feedback(req.equipment_id, req.signature_id, req.confirmed)
        return updated.model_dump(mode="json")

    @app.get("/auto-assign/assignments")
    def list_auto_assignments(status: Optional[AutoAssignmentStatus] = None):
        return [a.model_dump(mode="json") for a in assigner.assignments(status)]

    # === ANALYTICS ===

    @app.get("/analytics")
    def list_analytics():
        return [a.model_dump(mode="json") for a in an.list()]

    @app.get("/analytics/{signature_id}")
    def get_analytics(signature_id: str):
        return an.get(signature_id).model_dump(mode="json")

    @app.post("/analytics/{signature_id}/feedback")
    def record_feedback(signature_id: str, req: FeedbackRequest):
        reg.get(signature_id)
        return an.record_feedback(signature_id, req.positive).model_dump(mode="json")

    return app


# Default application instance
app = create_app(configure_logging=True)
