"""Content analysis heuristics tests"""
import pytest

from app.services.content_analysis_service import analyze_content, keyword_density


@pytest.mark.high
class TestKeywordDensity:
    def test_most_frequent_long_word(self):
        assert keyword_density("data data data pipeline") == 0.75

    def test_only_short_words(self):
        assert keyword_density("it is a day") == 0.0

    def test_empty(self):
        assert keyword_density("") == 0.0


@pytest.mark.high
class TestAnalyzeContent:
    def test_engaging_short_post(self):
        result = analyze_content("Do you ship fast? You should!", "twitter")

        assert result["readabilityScore"] == 100
        assert result["engagementScore"] == 95
        assert result["seoScore"] == 80
        assert result["overallScore"] == 92
        assert result["suggestions"] == []

    def test_dense_single_paragraph_gets_readability_suggestions(self):
        content = "Comprehensive organizational transformation necessitates extraordinary commitment " * 5

        result = analyze_content(content, "blog")

        assert result["readabilityScore"] == 55
        kinds = [s["type"] for s in result["suggestions"]]
        assert kinds == ["readability", "readability", "readability"]

    def test_thin_video_script_gets_seo_suggestions(self):
        result = analyze_content("It is a day. We go out.", "youtube")

        assert result["seoScore"] == 60
        seo = [s for s in result["suggestions"] if s["type"] == "seo"]
        assert [s["priority"] for s in seo] == ["high", "medium"]

    def test_long_tweet_is_flagged(self):
        result = analyze_content("a " * 200, "twitter")

        general = [s for s in result["suggestions"] if s["type"] == "general"]
        assert len(general) == 1
        assert "280" in general[0]["suggestion"]

    def test_your_counts_as_direct_address(self):
        with_you = analyze_content("Check your inbox.", "email")
        without_you = analyze_content("Check the inbox.", "email")

        assert with_you["engagementScore"] == without_you["engagementScore"] + 10
