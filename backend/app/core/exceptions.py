"""Domain exceptions raised by services and mapped to HTTP status codes by the routes"""
from typing import Optional


class RepurposelyError(Exception):
    """Base exception for all service-level errors"""

    status_code = 500

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class AuthenticationError(RepurposelyError):
    """Missing or invalid access token"""

    status_code = 401

    def __init__(self, message: str = "Authentication required"):
        super().__init__(message)


class InsufficientBalanceError(RepurposelyError):
    """Token balance is lower than the cost of the operation"""

    status_code = 402

    def __init__(self, balance: int, required: int, message: Optional[str] = None):
        self.balance = balance
        self.required = required
        self.shortfall = max(0, required - balance)
        super().__init__(
            message or f"Insufficient tokens. Requires {required}, you have {balance}."
        )


class PlanNotAllowedError(RepurposelyError):
    """Subscription tier does not include the requested feature"""

    status_code = 403

    def __init__(self, tier: str, message: Optional[str] = None):
        self.tier = tier
        super().__init__(message or f"Feature not available on the {tier} plan")


class NoActiveSubscriptionError(RepurposelyError):
    """User has no billing-provider subscription to act on"""

    status_code = 400

    def __init__(self, message: str = "No active subscription found"):
        super().__init__(message)


class CustomerNotFoundError(RepurposelyError):
    """User has no billing-provider customer"""

    status_code = 404

    def __init__(self, message: str = "Stripe customer ID not found for this user."):
        super().__init__(message)


class ContentNotFoundError(RepurposelyError):
    """Content row does not exist or belongs to another user"""

    status_code = 404

    def __init__(self, content_id: str, message: str = "Content not found or permission denied."):
        self.content_id = content_id
        super().__init__(message)


class UserNotFoundError(RepurposelyError):
    """User does not exist with the auth provider"""

    status_code = 404

    def __init__(self, user_id: str):
        self.user_id = user_id
        super().__init__(f"User not found: {user_id}")


class WebhookSignatureError(RepurposelyError):
    """Stripe webhook payload or signature could not be verified"""

    status_code = 400


class GenerationError(RepurposelyError):
    """Text, image or transcription provider call failed"""

    status_code = 500


class StorageError(RepurposelyError):
    """Uploading a generated asset to object storage failed"""

    status_code = 500


class AccountDeletionError(RepurposelyError):
    """Auth provider refused to delete the user"""

    status_code = 500
