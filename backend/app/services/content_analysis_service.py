"""Content analysis service - heuristic readability, engagement and SEO scoring"""
import re
from collections import Counter
from typing import Dict, List

SENTENCE_SPLIT = re.compile(r"[.!?]+")
PARAGRAPH_SPLIT = re.compile(r"\n\s*\n")
YOU_PATTERN = re.compile(r"\byou(?:r)?\b", re.IGNORECASE)

TWEET_LIMIT = 280
LINKEDIN_SOFT_LIMIT = 3000


def _clamp(score: int) -> int:
    return max(0, min(100, score))


def keyword_density(content: str) -> float:
    """Share of words taken by the most frequent word longer than 3 characters"""
    words = content.lower().split()
    if not words:
        return 0.0
    frequencies = Counter(word for word in words if len(word) > 3)
    if not frequencies:
        return 0.0
    return max(frequencies.values()) / len(words)


def _content_stats(content: str) -> Dict:
    sentences = [s for s in SENTENCE_SPLIT.split(content) if s.strip()]
    paragraphs = [p for p in PARAGRAPH_SPLIT.split(content) if p.strip()]
    words = content.split()
    length = len(content)
    return {
        "content_length": length,
        "avg_sentence_length": length / (len(sentences) or 1),
        "avg_word_length": sum(len(w) for w in words) / (len(words) or 1),
        "paragraphs": len(paragraphs),
        "question_count": content.count("?"),
        "exclamation_count": content.count("!"),
    }


def _suggestion(kind: str, text: str, priority: str) -> Dict[str, str]:
    return {"type": kind, "suggestion": text, "priority": priority}


def _suggestions(readability: int, engagement: int, seo: int, content_type: str, stats: Dict) -> List[Dict[str, str]]:
    suggestions = []

    if readability < 70:
        if stats["avg_sentence_length"] > 25:
            suggestions.append(_suggestion("readability", "Try breaking long sentences into shorter ones to improve readability.", "high"))
        if stats["avg_word_length"] > 6:
            suggestions.append(_suggestion("readability", "Consider using simpler words to make your content more accessible.", "medium"))
        if stats["paragraphs"] < 2 and stats["content_length"] > 200:
            suggestions.append(_suggestion("readability", "Break your content into more paragraphs to improve scannability.", "high"))

    if engagement < 70:
        if stats["question_count"] == 0:
            suggestions.append(_suggestion("engagement", "Add a question to engage your audience and encourage responses.", "medium"))
        if "linkedin" not in content_type and stats["exclamation_count"] == 0:
            suggestions.append(_suggestion("engagement", "Add some enthusiasm with an exclamation mark to engage readers!", "low"))
        if content_type == "blog" and stats["content_length"] < 500:
            suggestions.append(_suggestion("engagement", "Consider expanding your blog post to provide more value to readers.", "medium"))

    if seo < 70 and content_type in ("blog", "youtube"):
        suggestions.append(_suggestion("seo", "Include relevant keywords in your first paragraph to improve SEO.", "high"))
        if stats["content_length"] < 300:
            suggestions.append(_suggestion("seo", "Longer content tends to rank better. Try to expand your content.", "medium"))

    if content_type == "twitter" and stats["content_length"] > TWEET_LIMIT:
        suggestions.append(_suggestion("general", "Your tweet exceeds the 280 character limit. Consider shortening it.", "high"))
    elif content_type == "linkedin" and stats["content_length"] > LINKEDIN_SOFT_LIMIT:
        suggestions.append(_suggestion("general", "Your LinkedIn post is quite long. Consider shortening it for better engagement.", "medium"))
    elif content_type == "blog" and stats["paragraphs"] < 5 and stats["content_length"] > 500:
        suggestions.append(_suggestion("general", "Consider adding more paragraph breaks to improve readability.", "medium"))

    return suggestions


def analyze_content(content: str, content_type: str = "general") -> Dict:
    """Score content 0-100 on readability, engagement and SEO, with suggestions"""
    stats = _content_stats(content)

    readability = 100
    if stats["avg_sentence_length"] > 25:
        readability -= 20
    if stats["avg_word_length"] > 6:
        readability -= 15
    if stats["paragraphs"] < 2 and stats["content_length"] > 200:
        readability -= 10
    readability = _clamp(readability)

    engagement = 70
    if stats["question_count"] > 0:
        engagement += 10
    if stats["exclamation_count"] > 0:
        engagement += 5
    if YOU_PATTERN.search(content):
        engagement += 10
    engagement = _clamp(engagement)

    seo = 60
    if keyword_density(content) > 0.02:
        seo += 20
    if stats["content_length"] > 300:
        seo += 15
    if stats["paragraphs"] > 3:
        seo += 10
    seo = _clamp(seo)

    return {
        "readabilityScore": readability,
        "engagementScore": engagement,
        "seoScore": seo,
        "overallScore": round((readability + engagement + seo) / 3),
        "suggestions": _suggestions(readability, engagement, seo, content_type, stats),
    }
