"""
Player tag extraction and validation for raw vision model output.
"""

import re
from typing import Iterable, Optional
from .models import TagExtraction
from .config import settings
from .logging import get_logger


# '#' followed by 3-10 upper-case letters or digits
PLAYER_TAG_PATTERN = re.compile(r"#[A-Z0-9]{3,10}")


class TagValidator:
    """Turns free-form model output into a trustworthy player tag or nothing.

    The checks run in a fixed order:

    1. The "no tag" marker anywhere in the text (any letter case) wins.
    2. Only the first ``#XXXX`` match in the text is considered.
    3. Pure-digit matches are rejected, the model tends to echo numbers.
    4. Every character after the ``#`` must be in the allow-list, which
       filters out OCR near-misses the structural pattern lets through.

    No case-folding is applied to the tag itself.
    """

    def __init__(
        self,
        allowed_characters: Optional[Iterable[str]] = None,
        no_tag_marker: Optional[str] = None,
    ):
        self.logger = get_logger("tag_validator")
        if allowed_characters is None:
            allowed_characters = settings.tag_allowed_characters
        self.allowed_characters = frozenset(allowed_characters)
        self.no_tag_marker = no_tag_marker or settings.no_tag_marker

    def validate(self, text: Optional[str]) -> TagExtraction:
        """Validate raw model output and return the extraction outcome."""
        if not text:
            return TagExtraction(reason="empty")

        if self.no_tag_marker.upper() in text.upper():
            self.logger.debug("Model reported that no tag is visible")
            return TagExtraction(reason="no_tag_marker")

        match = PLAYER_TAG_PATTERN.search(text)
        if not match:
            self.logger.debug(f"No tag-shaped token in model output: {text!r}")
            return TagExtraction(reason="no_match")

        candidate = match.group()
        body = candidate[1:]

        if body.isdigit():
            self.logger.debug(f"Rejecting numeric candidate {candidate}")
            return TagExtraction(reason="numeric", candidate=candidate)

        disallowed = sorted(set(body) - self.allowed_characters)
        if disallowed:
            self.logger.debug(f"Rejecting candidate {candidate}, disallowed characters: {''.join(disallowed)}")
            return TagExtraction(reason="disallowed_characters", candidate=candidate)

        return TagExtraction(tag=candidate, reason="found", candidate=candidate)

    def extract_tag(self, text: Optional[str]) -> Optional[str]:
        """Return the validated tag, or None when no trustworthy tag was found."""
        return self.validate(text).tag


def extract_player_tag(text: Optional[str]) -> Optional[str]:
    """Validate text with the configured allow-list and marker."""
    return TagValidator().extract_tag(text)
