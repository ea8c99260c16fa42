"""Input sanitizing and log masking for embedding traffic."""

import re
from typing import Any, Dict, List, Sequence, Tuple

import structlog

logger = structlog.get_logger("security")

EMPTY_TEXT_MARKER = "[empty]"
DEFAULT_MAX_CHARS = 8000


class TextSanitizer:
    """Prepares raw texts for an embedding API.

    Embedding endpoints reject empty strings (HTTP 400), so blank inputs are
    replaced by a marker rather than dropped: the item count must not change.
    """

    def __init__(self, max_chars: int = DEFAULT_MAX_CHARS, empty_marker: str = EMPTY_TEXT_MARKER):
        if max_chars < 1:
            raise ValueError("max_chars must be at least 1")
        self.max_chars = max_chars
        self.empty_marker = empty_marker

    def sanitize_text(self, text: Any) -> Tuple[str, bool]:
        """Return ``(clean_text, was_empty)`` for a single input."""
        if text is None:
            return self.empty_marker, True
        if not isinstance(text, str):
            raise ValueError("Input must be a string")

        cleaned = text.replace("\x00", "").replace("\ufffd", "")
        if not cleaned.strip():
            return self.empty_marker, True

        if len(cleaned) > self.max_chars:
            cleaned = cleaned[:self.max_chars]
        return cleaned, False

    def sanitize_texts(self, texts: Sequence[Any]) -> List[str]:
        """Sanitize a sequence of texts, preserving length and order."""
        cleaned: List[str] = []
        empty_count = 0
        truncated_count = 0

        for text in texts:
            value, was_empty = self.sanitize_text(text)
            if was_empty:
                empty_count += 1
            elif isinstance(text, str) and len(text) > self.max_chars:
                truncated_count += 1
            cleaned.append(value)

        if empty_count:
            logger.warning("Replaced empty texts with marker", count=empty_count, marker=self.empty_marker)
        if truncated_count:
            logger.info("Truncated long texts", count=truncated_count, max_chars=self.max_chars)

        return cleaned


class DataMasker:
    """Masks sensitive data in logs and error messages."""

    def __init__(self, max_body_chars: int = 500):
        self.max_body_chars = max_body_chars
        self.sensitive_fields = {
            "password", "secret", "key", "token", "credential", "authorization"
        }
        self.bearer_pattern = re.compile(r'(?i)bearer\s+[A-Za-z0-9._\-]+')
        self.api_key_pattern = re.compile(r'\b(?:sk-)?[A-Za-z0-9_\-]{32,}\b')

    def mask_sensitive_data(self, data: Any) -> Any:
        """Mask sensitive data in various data structures."""
        if isinstance(data, dict):
            return self._mask_dict(data)
        elif isinstance(data, list):
            return [self.mask_sensitive_data(item) for item in data]
        elif isinstance(data, str):
            return self._mask_string(data)
        else:
            return data

    def truncate_body(self, body: str) -> str:
        """Mask and shorten a response body for logging."""
        if body is None:
            return ""
        masked = self._mask_string(body)
        if len(masked) > self.max_body_chars:
            return masked[:self.max_body_chars] + "..."
        return masked

    def _mask_dict(self, data: Dict[str, Any]) -> Dict[str, Any]:
        masked = {}

        for key, value in data.items():
            key_lower = str(key).lower()
            if any(sensitive in key_lower for sensitive in self.sensitive_fields):
                masked[key] = "***MASKED***"
            else:
                masked[key] = self.mask_sensitive_data(value)

        return masked

    def _mask_string(self, text: str) -> str:
        text = self.bearer_pattern.sub("Bearer ***MASKED***", text)
        return self.api_key_pattern.sub("***API_KEY***", text)
