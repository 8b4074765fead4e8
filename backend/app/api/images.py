"""Image generation API routes"""
import logging

from fastapi import APIRouter, Depends, HTTPException
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import RepurposelyError
from app.core.security import require_auth, ensure_same_user
from app.db.session import get_db
from app.models.enums import ImageSize, ImageStyle
from app.schemas.auth import AuthUser
from app.schemas.content import ImageGenerationRequest
from app.services.image_service import generate_image_for_user

router = APIRouter(prefix="/api", tags=["images"])
logger = logging.getLogger(__name__)

VALID_SIZES = {size.value for size in ImageSize}
VALID_STYLES = {style.value for style in ImageStyle}


@router.post("/generate-image")
def generate_image(
    body: ImageGenerationRequest,
    user: AuthUser = Depends(require_auth),
    db: Session = Depends(get_db)
):
    """Generate an image for a PRO/ENTERPRISE user, charging the image cost"""
    if not body.prompt or not body.prompt.strip():
        raise HTTPException(400, "Prompt is required")
    if not body.userId:
        raise HTTPException(400, "User ID is required")
    if body.size not in VALID_SIZES:
        raise HTTPException(400, f"Invalid image size. Supported sizes: {', '.join(sorted(VALID_SIZES))}")
    if body.style not in VALID_STYLES:
        raise HTTPException(400, f"Invalid image style. Supported styles: {', '.join(sorted(VALID_STYLES))}")
    ensure_same_user(user, body.userId)

    try:
        return generate_image_for_user(
            user.id,
            body.prompt.strip(),
            body.size,
            body.style,
            db,
            content_id=body.contentId
        )
    except RepurposelyError as e:
        raise HTTPException(e.status_code, e.message)
    except SQLAlchemyError as e:
        logger.error(f"Database error during image generation for user {user.id}: {e}", exc_info=True)
        db.rollback()
        raise HTTPException(500, "Failed to check subscription status")
