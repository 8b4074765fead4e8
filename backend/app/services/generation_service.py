"""Generation service - text, image and transcription provider calls"""
import logging
import re
from typing import Dict, Optional

import anthropic
from openai import OpenAI

from app.core.config import settings
from app.core.exceptions import GenerationError
from app.core.metrics import generation_requests_counter

logger = logging.getLogger(__name__)

# Lazy initialization - no client construction at import time
_anthropic_client = None
_openai_client = None

LENGTH_GUIDANCE = {
    "short": "Keep it short and punchy.",
    "medium": "Aim for a moderate length that covers the key points.",
    "long": "Write a detailed, comprehensive version.",
}

# Boilerplate the model sometimes puts before the actual content
PREAMBLE_PATTERNS = [
    re.compile(r"^\s*(?:sure|certainly|absolutely|of course|okay|ok|great)[!,.][^\n]*\n+", re.IGNORECASE),
    re.compile(r"^\s*here(?:'s|’s| is| are)\b[^\n]*:[ \t]*\n+", re.IGNORECASE),
    re.compile(r"^\s*(?:below|following) (?:is|are)\b[^\n]*:[ \t]*\n+", re.IGNORECASE),
]

# Sign-offs after the content
POSTAMBLE_PATTERNS = [
    re.compile(r"\n+[ \t]*(?:let me know|i hope (?:this|that)|feel free to)[^\n]*\s*$", re.IGNORECASE),
]

YOUTUBE_ID_PATTERN = re.compile(
    r"(?:youtu\.be/|/v/|/u/\w/|embed/|shorts/|watch\?(?:[^#]*&)?v=)([A-Za-z0-9_-]{11})(?![A-Za-z0-9_-])"
)

YOUTUBE_TRANSCRIPT_SYSTEM_PROMPT = (
    "You are a helpful assistant that transcribes YouTube videos. Given a YouTube URL, "
    "provide only the transcript of the video content. Do not include any introduction, "
    "explanation, or commentary."
)


def get_anthropic_client():
    global _anthropic_client
    if _anthropic_client is None:
        _anthropic_client = anthropic.Anthropic(api_key=settings.ANTHROPIC_API_KEY)
    return _anthropic_client


def get_openai_client():
    global _openai_client
    if _openai_client is None:
        _openai_client = OpenAI(api_key=settings.OPENAI_API_KEY)
    return _openai_client


def build_repurpose_prompt(
    original_content: str,
    output_format: str,
    tone: str,
    content_length: str = "medium",
    target_audience: str = "general"
) -> str:
    """Build the single templated prompt sent to the text model"""
    format_name = output_format.replace("-", " ")
    length_hint = LENGTH_GUIDANCE.get(content_length, LENGTH_GUIDANCE["medium"])
    return (
        "You are an expert content repurposing assistant. Your task is to transform the "
        f"following original content into a {format_name} with a {tone} tone for a "
        f"{target_audience} audience.\n\n"
        f"Original Content:\n{original_content}\n\n"
        f"Please rewrite this content as a {format_name} with a {tone} tone. {length_hint} "
        "Ensure the repurposed content maintains the key points and message of the original "
        "while optimizing it for the new format. Respond with the repurposed content only."
    )


def strip_preamble(text: str) -> str:
    """Remove conversational boilerplate around generated content"""
    result = text
    changed = True
    while changed:
        changed = False
        for pattern in PREAMBLE_PATTERNS:
            stripped = pattern.sub("", result, count=1)
            if stripped != result and stripped.strip():
                result = stripped
                changed = True
    for pattern in POSTAMBLE_PATTERNS:
        stripped = pattern.sub("", result)
        if stripped.strip():
            result = stripped
    return result.strip()


def repurpose_content(
    original_content: str,
    output_format: str,
    tone: str,
    content_length: str = "medium",
    target_audience: str = "general"
) -> str:
    """
    Rewrite content into another format with the text model.

    One call, no retry and no streaming.

    Raises:
        GenerationError: If the provider call fails or returns no text
    """
    prompt = build_repurpose_prompt(original_content, output_format, tone, content_length, target_audience)
    try:
        response = get_anthropic_client().messages.create(
            model=settings.ANTHROPIC_MODEL,
            max_tokens=settings.ANTHROPIC_MAX_TOKENS,
            messages=[{"role": "user", "content": prompt}],
        )
    except Exception as e:
        generation_requests_counter.labels(kind="repurpose", status="failure").inc()
        logger.error(f"Error generating content with Claude: {e}", exc_info=True)
        raise GenerationError("Failed to repurpose content") from e

    text = "".join(
        block.text for block in response.content if getattr(block, "type", None) == "text"
    )
    if not text.strip():
        generation_requests_counter.labels(kind="repurpose", status="empty").inc()
        raise GenerationError("Failed to repurpose content")

    generation_requests_counter.labels(kind="repurpose", status="success").inc()
    return strip_preamble(text)


def generate_image(prompt: str, size: str, style: str) -> Dict[str, Optional[str]]:
    """Generate one image and return its base64 payload

    Raises:
        GenerationError: If the provider call fails
    """
    try:
        response = get_openai_client().images.generate(
            model=settings.OPENAI_IMAGE_MODEL,
            prompt=prompt,
            n=1,
            size=size,
            style=style,
            response_format="b64_json",
        )
        image = response.data[0]
    except Exception as e:
        generation_requests_counter.labels(kind="image", status="failure").inc()
        logger.error(f"Image generation failed: {e}", exc_info=True)
        raise GenerationError(f"Failed to generate image: {e}") from e

    if not image.b64_json:
        generation_requests_counter.labels(kind="image", status="empty").inc()
        raise GenerationError("Image provider returned no image data")

    generation_requests_counter.labels(kind="image", status="success").inc()
    return {
        "b64_json": image.b64_json,
        "revised_prompt": getattr(image, "revised_prompt", None) or prompt,
    }


def transcribe_media(filename: str, data: bytes, content_type: str) -> str:
    """Transcribe an audio or video file

    Raises:
        GenerationError: If the provider call fails
    """
    try:
        transcription = get_openai_client().audio.transcriptions.create(
            model=settings.OPENAI_TRANSCRIPTION_MODEL,
            file=(filename, data, content_type),
        )
    except Exception as e:
        generation_requests_counter.labels(kind="transcription", status="failure").inc()
        logger.error(f"Transcription failed for {filename}: {e}", exc_info=True)
        raise GenerationError("Failed to transcribe file") from e

    generation_requests_counter.labels(kind="transcription", status="success").inc()
    return transcription.text


def extract_youtube_video_id(url: str) -> Optional[str]:
    """11-character video ID from watch, short, embed, shorts and /v/ URLs"""
    match = YOUTUBE_ID_PATTERN.search(url or "")
    return match.group(1) if match else None


def transcribe_youtube(video_url: str) -> str:
    """Ask the chat model for a transcript of a YouTube video

    Raises:
        GenerationError: If the provider call fails
    """
    try:
        completion = get_openai_client().chat.completions.create(
            model=settings.OPENAI_CHAT_MODEL,
            messages=[
                {"role": "system", "content": YOUTUBE_TRANSCRIPT_SYSTEM_PROMPT},
                {"role": "user", "content": f"Please provide a transcript of this YouTube video: {video_url}"},
            ],
        )
    except Exception as e:
        generation_requests_counter.labels(kind="youtube", status="failure").inc()
        logger.error(f"YouTube transcription failed for {video_url}: {e}", exc_info=True)
        raise GenerationError("Failed to fetch transcript") from e

    generation_requests_counter.labels(kind="youtube", status="success").inc()
    return completion.choices[0].message.content or ""
