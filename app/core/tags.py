"""Tag normalization shared by the API schemas and the offline client."""
from typing import Any


def normalize_tags(raw: Any) -> list[str]:
    """Trim, lowercase and de-duplicate tags, dropping empties. Order kept.

    Accepts a list or a comma-separated string ("Leash, walk,,LEASH").
    """
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = raw.split(",")
    seen: list[str] = []
    for tag in raw:
        cleaned = str(tag).strip().lower()
        if cleaned and cleaned not in seen:
            seen.append(cleaned)
    return seen
