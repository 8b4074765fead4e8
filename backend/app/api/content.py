"""Content API routes (repurposing, history updates, analysis)"""
import logging
from typing import List, Dict

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.orm import Session

from app.core.exceptions import RepurposelyError
from app.core.security import require_auth, get_optional_user, ensure_same_user
from app.db.session import get_db
from app.models.enums import ContentStatus, OutputFormat
from app.schemas.auth import AuthUser
from app.schemas.content import (
    RepurposeRequest, ContentUpdateRequest, ContentStatusUpdateRequest, ContentAnalysisRequest
)
from app.services.content_analysis_service import analyze_content
from app.services.content_service import (
    save_content_history, update_content, update_content_status, get_frequent_templates
)
from app.services.generation_service import repurpose_content

router = APIRouter(prefix="/api", tags=["content"])
logger = logging.getLogger(__name__)

VALID_STATUSES = {status.value for status in ContentStatus}
VALID_OUTPUT_FORMATS = {output_format.value for output_format in OutputFormat}


@router.post("/repurpose")
def repurpose(
    body: RepurposeRequest,
    user: AuthUser = Depends(get_optional_user),
    db: Session = Depends(get_db)
):
    """Rewrite content into another format; saved to history for a signed-in user"""
    if not body.originalContent or not body.outputFormat or not body.tone:
        raise HTTPException(400, "Missing required fields")
    if body.outputFormat not in VALID_OUTPUT_FORMATS:
        raise HTTPException(400, "Invalid output format")
    if user:
        ensure_same_user(user, body.userId)
    elif body.userId:
        logger.warning(f"Anonymous repurpose named user {body.userId}, history will not be saved")

    try:
        repurposed = repurpose_content(
            body.originalContent,
            body.outputFormat,
            body.tone,
            body.contentLength or "medium",
            body.targetAudience or "general"
        )
    except RepurposelyError:
        raise HTTPException(500, "Failed to repurpose content")

    content_id = None
    if user and body.userId:
        content_id = save_content_history(
            user.id,
            body.originalContent,
            repurposed,
            body.outputFormat,
            body.tone,
            body.contentLength or "medium",
            body.targetAudience or "general",
            db
        )

    return {"repurposedContent": repurposed, "contentId": content_id}


@router.post("/content/update")
def update_content_route(
    body: ContentUpdateRequest,
    user: AuthUser = Depends(require_auth),
    db: Session = Depends(get_db)
):
    """Replace the repurposed text of one of the user's content items"""
    # Empty content is allowed, missing is not
    if not body.id or body.repurposed_content is None:
        raise HTTPException(400, "Missing required fields: id and repurposed_content")

    try:
        updated = update_content(user.id, body.id, body.repurposed_content, db, tone=body.tone)
    except RepurposelyError as e:
        raise HTTPException(e.status_code, e.message)
    return {"success": True, "updatedContent": updated}


@router.post("/content/update-status")
def update_status_route(
    body: ContentStatusUpdateRequest,
    user: AuthUser = Depends(require_auth),
    db: Session = Depends(get_db)
):
    """Move one of the user's content items to another status"""
    if not body.id or not body.status:
        raise HTTPException(400, "Missing required fields: id and status")
    if body.status not in VALID_STATUSES:
        raise HTTPException(400, "Invalid status value provided.")

    try:
        updated = update_content_status(user.id, body.id, ContentStatus(body.status), db)
    except RepurposelyError as e:
        raise HTTPException(e.status_code, e.message)
    return {"success": True, "updatedContent": updated}


@router.post("/content/analyze")
def analyze_content_route(body: ContentAnalysisRequest):
    """Heuristic quality scores and suggestions"""
    if not body.content or not body.content.strip():
        raise HTTPException(400, "Content is required")
    return analyze_content(body.content, (body.contentType or "general").lower())


@router.get("/templates/frequent", response_model=List[Dict])
def frequent_templates(user: AuthUser = Depends(require_auth), db: Session = Depends(get_db)):
    """The user's three most used output formats"""
    return get_frequent_templates(user.id, db)
