"""Image service - paid image generation flow (plan gate, debit, generate, store)"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy.orm import Session

from app.core.exceptions import (
    InsufficientBalanceError, PlanNotAllowedError, GenerationError, StorageError
)
from app.models.enums import SubscriptionTier, TransactionType, IMAGE_GENERATION_TIERS
from app.services import generation_service, storage_service
from app.services.content_service import attach_image
from app.services.token_service import (
    IMAGE_GENERATION_COST, get_subscription, check_balance, debit_tokens,
    refund_tokens, record_transaction
)

logger = logging.getLogger(__name__)

PLAN_REQUIRED_MESSAGE = (
    "Image generation is only available for Pro and Enterprise plans. "
    "Please upgrade your subscription."
)


def _image_balance_error(error: InsufficientBalanceError) -> InsufficientBalanceError:
    return InsufficientBalanceError(
        error.balance,
        error.required,
        message=f"Insufficient tokens for image generation. Requires {error.required}, you have {error.balance}."
    )


def ensure_image_plan(user_id: str, db: Session) -> SubscriptionTier:
    """
    Raises:
        PlanNotAllowedError: Unless the user has an active PRO or ENTERPRISE subscription
    """
    subscription = get_subscription(user_id, db)
    tier = subscription.tier if subscription else SubscriptionTier.FREE
    is_active = bool(subscription and subscription.is_active)
    if not is_active or tier not in IMAGE_GENERATION_TIERS:
        raise PlanNotAllowedError(tier.value, message=PLAN_REQUIRED_MESSAGE)
    return tier


def generate_image_for_user(
    user_id: str,
    prompt: str,
    size: str,
    style: str,
    db: Session,
    content_id: Optional[str] = None
) -> Dict[str, Any]:
    """
    Generate an image for a paying user.

    Steps: plan gate, balance check, atomic debit and its audit row, provider
    call, upload. When the provider or the upload fails after the debit, the
    tokens are refunded with an offsetting audit row and the error is re-raised.

    Raises:
        PlanNotAllowedError: Tier is not PRO/ENTERPRISE or the subscription is inactive
        InsufficientBalanceError: Balance below the cost (checked and at debit time)
        GenerationError, StorageError: Provider or upload failure (tokens refunded)
    """
    ensure_image_plan(user_id, db)

    cost = IMAGE_GENERATION_COST
    try:
        check_balance(user_id, cost, db)
        tokens_remaining = debit_tokens(user_id, cost, db, transaction_type=TransactionType.IMAGE_GENERATION)
    except InsufficientBalanceError as e:
        raise _image_balance_error(e)

    record_transaction(user_id, cost, TransactionType.IMAGE_GENERATION, db, content_id=content_id)

    try:
        image = generation_service.generate_image(prompt, size, style)
        url = storage_service.upload_image(user_id, image["b64_json"])
    except (GenerationError, StorageError) as e:
        logger.error(f"Image generation failed for user {user_id} after debit, refunding {cost} tokens: {e}")
        refund_tokens(user_id, cost, db, content_id=content_id)
        raise

    if content_id and not attach_image(user_id, content_id, url, db):
        logger.warning(f"Generated image for user {user_id} could not be linked to content {content_id}")

    logger.info(f"Generated image for user {user_id}: {tokens_remaining} tokens remaining")
    return {
        "url": url,
        "prompt": prompt,
        "revised_prompt": image["revised_prompt"],
        "size": size,
        "style": style,
        "tokens_remaining": tokens_remaining,
    }
