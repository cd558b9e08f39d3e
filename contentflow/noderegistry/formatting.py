"""
Per-platform text helpers used by the content node executors.
"""
import re
from collections import Counter
from typing import Any, List, Mapping, Optional

TWITTER_LIMIT = 280
TIKTOK_LIMIT = 150
INSTAGRAM_MAX_HASHTAGS = 30
LINKEDIN_MAX_HASHTAGS = 5

PLATFORMS = ("twitter", "instagram", "facebook", "linkedin", "tiktok")


def _tags(hashtags: List[str]) -> str:
    return " ".join(f"#{tag}" for tag in hashtags)


def _truncate(text: str, limit: int) -> str:
    if len(text) > limit:
        return text[:limit - 3] + "..."
    return text


def format_content_for_platform(content: str, platform: str, hashtags: Optional[List[str]] = None) -> str:
    hashtags = list(hashtags or [])
    text = content or ""

    if platform == "twitter":
        text = _truncate(text, TWITTER_LIMIT)
        tags = _tags(hashtags)
        # hashtags only go in if they still fit
        if len(text) + len(tags) + 1 <= TWITTER_LIMIT:
            text = f"{text}\n{tags}"
    elif platform == "instagram":
        text = f"{text}\n\n{_tags(hashtags)}"
    elif platform in ("facebook", "linkedin"):
        if hashtags:
            text = f"{text}\n\n{_tags(hashtags[:3])}"
    elif platform == "tiktok":
        text = f"{_truncate(text, TIKTOK_LIMIT)}\n{_tags(hashtags)}"
    elif hashtags:
        text = f"{text}\n\n{_tags(hashtags)}"
    return text


def generate_hashtags_from_content(content: str, count: int = 5) -> List[str]:
    """Most frequent words longer than three characters, most frequent first."""
    cleaned = re.sub(r"[^\w\s]", "", (content or "").lower(), flags=re.ASCII)
    words = [w for w in cleaned.split() if len(w) > 3]

    counts = Counter(words)
    # Counter keeps first-seen order, sorted() is stable: ties stay in text order
    ranked = sorted(counts, key=lambda w: -counts[w])

    tags = [re.sub(r"[^a-z0-9]", "", w) for w in ranked[:count]]
    return [t for t in tags if t]


def validate_platform_content(content: Mapping[str, Any]) -> List[str]:
    warnings = []
    draft = content.get("draft") or ""
    platform = content.get("platform")
    hashtags = content.get("hashtags") or []

    if not draft.strip():
        warnings.append("Content text is empty")
    if platform == "twitter" and len(draft) > TWITTER_LIMIT:
        warnings.append("Content exceeds Twitter's 280 character limit")
    if platform == "instagram" and not content.get("media"):
        warnings.append("Instagram posts typically require an image")
    if platform == "instagram" and len(hashtags) > INSTAGRAM_MAX_HASHTAGS:
        warnings.append("Instagram limits posts to 30 hashtags")
    if platform == "linkedin" and len(hashtags) > LINKEDIN_MAX_HASHTAGS:
        warnings.append("LinkedIn posts perform better with fewer hashtags (3-5 recommended)")
    return warnings
