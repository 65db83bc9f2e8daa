"""Normalization of server-supplied job error messages into user-facing text."""

from typing import Optional

from outfitgen.models.job import JobKind

CONTENT_SAFETY_MESSAGE = "We couldn't process these images. Please try different images."
QUOTA_MESSAGE = "You have reached your generation limit for this month."
TIMEOUT_MESSAGE = "Generation took too long. Please try again."

DEFAULT_MESSAGES = {
    JobKind.OUTFIT: "Failed to generate outfit. Please try again.",
    JobKind.QUILT_DESIGN: "Failed to generate quilt design. Please try again.",
}

# Checked in order; first match wins
_RULES: list[tuple[tuple[str, ...], str]] = [
    (
        ("content policy", "nsfw", "safety", "inappropriate", "moderation"),
        CONTENT_SAFETY_MESSAGE,
    ),
    (("quota", "limit exceeded"), QUOTA_MESSAGE),
    (("timeout", "timed out", "deadline"), TIMEOUT_MESSAGE),
]


def normalize_job_error(message: Optional[str], kind: JobKind = JobKind.OUTFIT) -> str:
    """Map a raw job error onto friendlier text.

    Known substrings (case-insensitive) are replaced by a canned message. Any
    other non-empty message is returned unchanged; an empty one becomes the
    per-kind default.
    """
    if not message or not message.strip():
        return DEFAULT_MESSAGES[kind]

    lowered = message.lower()
    for needles, friendly in _RULES:
        if any(needle in lowered for needle in needles):
            return friendly

    return message.strip()
