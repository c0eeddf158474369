"""Document lifecycle: create, inspect, switch page, reset, delete."""

from __future__ import annotations

import logging
import uuid
from typing import Any

from fastapi import APIRouter

from pageredact.api import deps
from pageredact.api.deps import get_doc
from pageredact.models.schemas import (
    ActivePageRequest,
    CreateDocumentRequest,
    DocumentSummary,
)
from pageredact.state.store import DocumentState

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api", tags=["documents"])


@router.post("/documents", response_model=DocumentSummary, status_code=201)
async def create_document(req: CreateDocumentRequest) -> DocumentSummary:
    doc_id = uuid.uuid4().hex
    doc = DocumentState(req.page_count, doc_id=doc_id)
    deps.documents[doc_id] = doc
    logger.info(f"Created document {doc_id} with {req.page_count} page(s)")
    return DocumentSummary(**doc.summary())


@router.get("/documents/{doc_id}", response_model=DocumentSummary)
async def get_document(doc_id: str) -> DocumentSummary:
    return DocumentSummary(**get_doc(doc_id).summary())


@router.delete("/documents/{doc_id}")
async def delete_document(doc_id: str) -> dict[str, str]:
    get_doc(doc_id)
    deps.documents.pop(doc_id, None)
    deps.cache.invalidate(doc_id)
    return {"status": "ok", "doc_id": doc_id}


@router.put("/documents/{doc_id}/active-page", response_model=DocumentSummary)
async def set_active_page(doc_id: str, req: ActivePageRequest) -> DocumentSummary:
    doc = get_doc(doc_id)
    doc.set_active_page(req.page)
    return DocumentSummary(**doc.summary())


@router.post("/documents/{doc_id}/reset")
async def reset_document(doc_id: str) -> dict[str, Any]:
    """Full reset: every automatic item and every manual box is dropped."""
    doc = get_doc(doc_id)
    doc.reset()
    deps.cache.invalidate(doc_id)
    return {"status": "ok", "doc_id": doc_id}


@router.post("/documents/{doc_id}/pages/{page}/reset")
async def reset_page(doc_id: str, page: int, preserve_manual: bool = True) -> dict[str, Any]:
    doc = get_doc(doc_id)
    doc.reset_page(page, preserve_manual=preserve_manual)
    deps.cache.invalidate(doc_id, page)
    return {"status": "ok", "page": page, "preserve_manual": preserve_manual}
