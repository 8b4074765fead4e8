"""Pydantic schemas for content generation and history"""
from pydantic import BaseModel
from typing import Optional

from app.models.enums import ImageSize, ImageStyle


# Required fields are validated in the routes so that missing values return 400
class RepurposeRequest(BaseModel):
    originalContent: Optional[str] = None
    outputFormat: Optional[str] = None
    tone: Optional[str] = None
    contentLength: str = "medium"
    targetAudience: str = "general"
    userId: Optional[str] = None


class ImageGenerationRequest(BaseModel):
    prompt: Optional[str] = None
    userId: Optional[str] = None
    contentId: Optional[str] = None
    size: str = ImageSize.SQUARE.value
    style: str = ImageStyle.VIVID.value


class ContentUpdateRequest(BaseModel):
    id: Optional[str] = None
    repurposed_content: Optional[str] = None
    tone: Optional[str] = None


class ContentStatusUpdateRequest(BaseModel):
    id: Optional[str] = None
    status: Optional[str] = None


class ContentAnalysisRequest(BaseModel):
    content: Optional[str] = None
    contentType: str = "general"


class YoutubeTranscriptRequest(BaseModel):
    youtubeUrl: Optional[str] = None
