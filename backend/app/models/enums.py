"""Closed value sets stored as strings in the database"""
from enum import Enum


class SubscriptionTier(str, Enum):
    FREE = "FREE"
    PRO = "PRO"
    ENTERPRISE = "ENTERPRISE"

    @classmethod
    def parse(cls, value, default: "SubscriptionTier" = None) -> "SubscriptionTier":
        """Case-insensitive lookup; unknown or empty values map to ``default`` (FREE)"""
        if isinstance(value, cls):
            return value
        if value:
            try:
                return cls(str(value).strip().upper())
            except ValueError:
                pass
        return default or cls.FREE


# Monthly token allowance per tier
TIER_MONTHLY_TOKENS = {
    SubscriptionTier.FREE: 50,
    SubscriptionTier.PRO: 500,
    SubscriptionTier.ENTERPRISE: 2000,
}

# Tiers that may generate images
IMAGE_GENERATION_TIERS = (SubscriptionTier.PRO, SubscriptionTier.ENTERPRISE)


class TransactionType(str, Enum):
    ACCOUNT_INITIALIZATION = "ACCOUNT_INITIALIZATION"
    IMAGE_GENERATION = "IMAGE_GENERATION"
    IMAGE_GENERATION_REFUND = "IMAGE_GENERATION_REFUND"
    SUBSCRIPTION_GRANT = "SUBSCRIPTION_GRANT"
    SUBSCRIPTION_RENEWAL = "SUBSCRIPTION_RENEWAL"
    MONTHLY_RESET = "MONTHLY_RESET"
    ADMIN_ADJUSTMENT = "ADMIN_ADJUSTMENT"


class ContentStatus(str, Enum):
    DRAFT = "draft"
    PUBLISHED = "published"
    COMPLETED = "completed"
    ARCHIVED = "archived"


class OutputFormat(str, Enum):
    TWITTER_THREAD = "twitter-thread"
    TWEET = "tweet"
    LINKEDIN_POST = "linkedin-post"
    INSTAGRAM_CAPTION = "instagram-caption"
    FACEBOOK_POST = "facebook-post"
    TIKTOK_SCRIPT = "tiktok-script"
    BLOG_POST = "blog-post"
    LISTICLE = "listicle"
    HOW_TO_GUIDE = "how-to-guide"
    CONTENT_SUMMARY = "content-summary"
    NEWSLETTER = "newsletter"
    WELCOME_EMAIL = "welcome-email"
    PROMOTIONAL_EMAIL = "promotional-email"
    YOUTUBE_SCRIPT = "youtube-script"
    VIDEO_DESCRIPTION = "video-description"
    PODCAST_OUTLINE = "podcast-outline"
    PRODUCT_DESCRIPTION = "product-description"
    AD_COPY = "ad-copy"
    PRESS_RELEASE = "press-release"


class ImageSize(str, Enum):
    SQUARE = "1024x1024"
    LANDSCAPE = "1792x1024"
    PORTRAIT = "1024x1792"


class ImageStyle(str, Enum):
    VIVID = "vivid"
    NATURAL = "natural"
