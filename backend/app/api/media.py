"""Media transcription API routes"""
import logging
from typing import Optional

from fastapi import APIRouter, File, HTTPException, UploadFile

from app.core.exceptions import RepurposelyError
from app.schemas.content import YoutubeTranscriptRequest
from app.services.generation_service import (
    transcribe_media, extract_youtube_video_id, transcribe_youtube
)

router = APIRouter(prefix="/api", tags=["media"])
logger = logging.getLogger(__name__)

ALLOWED_MEDIA_PREFIXES = ("audio/", "video/")


@router.post("/transcribe")
def transcribe(file: Optional[UploadFile] = File(None)):
    """Transcribe an uploaded audio or video file"""
    if file is None:
        raise HTTPException(400, "No file provided")
    content_type = file.content_type or ""
    if not content_type.startswith(ALLOWED_MEDIA_PREFIXES):
        raise HTTPException(400, "File must be an audio or video file")

    data = file.file.read()
    try:
        text = transcribe_media(file.filename or "upload", data, content_type)
    except RepurposelyError as e:
        raise HTTPException(e.status_code, e.message)
    return {"transcription": text}


@router.post("/youtube-transcript")
def youtube_transcript(body: YoutubeTranscriptRequest):
    """Transcript of a YouTube video"""
    if not body.youtubeUrl:
        raise HTTPException(400, "YouTube URL is required")
    video_id = extract_youtube_video_id(body.youtubeUrl)
    if not video_id:
        raise HTTPException(400, "Invalid YouTube URL")

    try:
        text = transcribe_youtube(f"https://www.youtube.com/watch?v={video_id}")
    except RepurposelyError as e:
        raise HTTPException(e.status_code, e.message)
    return {"transcription": text}
