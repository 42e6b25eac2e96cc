"""
Prose scraping for responses that never became JSON.
"""

import re

# "- item", "* item", "12. item"; matched against a stripped line
LIST_ITEM_PATTERN = re.compile(r"^(?:[-*]|\d+\.)\s+(.+)$")


def excerpt(text: str, limit: int) -> str:
    """Return text, cut to limit characters with a trailing ellipsis."""
    if len(text) <= limit:
        return text
    return text[:limit] + "..."


def extract_recommendations(text: str, cap: int) -> list[str]:
    """Collect up to cap bullet or numbered list items, markers stripped."""
    recommendations = []
    for line in text.splitlines():
        if len(recommendations) >= cap:
            break
        match = LIST_ITEM_PATTERN.match(line.strip())
        if match:
            recommendations.append(match.group(1))
    return recommendations
