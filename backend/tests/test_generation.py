"""Generation service tests (prompt building, output cleanup, provider errors)"""
import pytest
from unittest.mock import Mock, MagicMock, patch

from app.core.exceptions import GenerationError
from app.services.generation_service import (
    build_repurpose_prompt, strip_preamble, repurpose_content, generate_image,
    extract_youtube_video_id
)


@pytest.mark.high
class TestStripPreamble:
    """Conversational boilerplate removal"""

    def test_strips_greeting_and_intro(self):
        text = "Certainly! I'd be happy to help.\nHere's the tweet:\n\nShip it today."
        assert strip_preamble(text) == "Ship it today."

    def test_strips_sign_off(self):
        text = "Ship it today.\n\nLet me know if you'd like any changes!"
        assert strip_preamble(text) == "Ship it today."

    def test_plain_content_is_unchanged(self):
        text = "Here is what nobody tells you about shipping: it never feels ready."
        assert strip_preamble(text) == text

    def test_never_strips_to_empty(self):
        assert strip_preamble("Sure, here you go.\n") == "Sure, here you go."


@pytest.mark.high
class TestPrompt:
    def test_prompt_includes_format_tone_and_audience(self):
        prompt = build_repurpose_prompt("Original", "linkedin-post", "professional", "short", "founders")

        assert "linkedin post" in prompt
        assert "professional tone" in prompt
        assert "founders audience" in prompt
        assert "Keep it short" in prompt
        assert "Original Content:\nOriginal" in prompt

    def test_unknown_length_uses_medium(self):
        prompt = build_repurpose_prompt("Original", "tweet", "witty", "epic")
        assert "moderate length" in prompt


@pytest.mark.high
class TestProviderCalls:
    @patch('app.services.generation_service.get_anthropic_client')
    def test_repurpose_joins_text_blocks(self, mock_get_client):
        mock_get_client.return_value.messages.create.return_value = Mock(content=[
            Mock(type="text", text="Part one. "),
            Mock(type="tool_use"),
            Mock(type="text", text="Part two."),
        ])

        assert repurpose_content("x", "tweet", "casual") == "Part one. Part two."

    @patch('app.services.generation_service.get_anthropic_client')
    def test_repurpose_empty_response_raises(self, mock_get_client):
        mock_get_client.return_value.messages.create.return_value = Mock(content=[])

        with pytest.raises(GenerationError):
            repurpose_content("x", "tweet", "casual")

    @patch('app.services.generation_service.get_openai_client')
    def test_generate_image_returns_payload(self, mock_get_client):
        image = Mock(b64_json="aGVsbG8=", revised_prompt="A better prompt")
        mock_get_client.return_value.images.generate.return_value = Mock(data=[image])

        result = generate_image("A prompt", "1792x1024", "vivid")

        assert result == {"b64_json": "aGVsbG8=", "revised_prompt": "A better prompt"}
        _, kwargs = mock_get_client.return_value.images.generate.call_args
        assert kwargs["size"] == "1792x1024"
        assert kwargs["n"] == 1

    @patch('app.services.generation_service.get_openai_client')
    def test_generate_image_provider_error(self, mock_get_client):
        mock_get_client.return_value = MagicMock()
        mock_get_client.return_value.images.generate.side_effect = RuntimeError("content policy")

        with pytest.raises(GenerationError):
            generate_image("A prompt", "1024x1024", "natural")


@pytest.mark.high
class TestYoutubeVideoId:
    @pytest.mark.parametrize("url", [
        "https://www.youtube.com/watch?v=dQw4w9WgXcQ",
        "https://www.youtube.com/watch?feature=share&v=dQw4w9WgXcQ",
        "https://youtu.be/dQw4w9WgXcQ?t=42",
        "https://www.youtube.com/embed/dQw4w9WgXcQ",
        "https://www.youtube.com/shorts/dQw4w9WgXcQ",
        "https://www.youtube.com/v/dQw4w9WgXcQ",
    ])
    def test_supported_urls(self, url):
        assert extract_youtube_video_id(url) == "dQw4w9WgXcQ"

    @pytest.mark.parametrize("url", ["", "https://example.com/watch?v=short", "not a url"])
    def test_invalid_urls(self, url):
        assert extract_youtube_video_id(url) is None
