"""
RFC 2047 encoded-word decoding for header values rendered into the book.
"""

from __future__ import annotations

import codecs
from email.errors import HeaderParseError
from email.header import decode_header
from typing import Optional

from email2epub.email.config import (
    B_ENCODED_WORD_RE,
    CHARSET_ALIASES,
    ENCODED_WORD_MARKERS,
    FALLBACK_CHARSET,
)
from email2epub.logger import get_logger

logger = get_logger(__name__)


class HeaderDecoder:
    """Stateless decoder for ``=?charset?encoding?payload?=`` header text."""

    @staticmethod
    def is_encoded_word(text: str) -> bool:
        if not text.startswith("=?") or "?=" not in text:
            return False
        upper = text.upper()
        return any(marker in upper for marker in ENCODED_WORD_MARKERS)

    @staticmethod
    def normalize_base64(payload: str) -> str:
        """Turn URL-safe and/or unpadded base64 into standard padded base64."""
        normalized = payload.replace("-", "+").replace("_", "/").rstrip("=")
        missing = -len(normalized) % 4
        if missing == 3:
            # not valid base64 at any padding; let the decoder report it
            return payload
        return normalized + "=" * missing

    @staticmethod
    def resolve_charset(charset: Optional[str]) -> str:
        """Map a declared charset onto a codec Python knows."""
        if not charset:
            return FALLBACK_CHARSET
        name = CHARSET_ALIASES.get(charset.strip().lower(), charset.strip())
        try:
            codecs.lookup(name)
        except LookupError:
            logger.debug("Unknown charset %r, falling back to %s", charset, FALLBACK_CHARSET)
            return FALLBACK_CHARSET
        return name

    @classmethod
    def decode(cls, text: str) -> str:
        """
        Decode *text* if it is an encoded word; otherwise return it unchanged.

        Malformed words are returned as-is rather than raising.
        """
        if not text or not cls.is_encoded_word(text):
            return text
        if len(text.split("?")) < 5:
            return text

        word = B_ENCODED_WORD_RE.sub(
            lambda m: "=?{}?{}?{}?=".format(m.group(1), m.group(2), cls.normalize_base64(m.group(3))),
            text,
        )
        try:
            chunks = decode_header(word)
        except HeaderParseError as e:
            logger.debug("Cannot decode header %r: %s", text, e)
            return text

        decoded = ""
        for chunk, charset in chunks:
            if isinstance(chunk, bytes) and charset is None:
                # unencoded text between words comes back raw-unicode-escape encoded
                decoded += chunk.decode("raw-unicode-escape", errors="replace")
            elif isinstance(chunk, bytes):
                decoded += chunk.decode(cls.resolve_charset(charset), errors="replace")
            else:
                decoded += chunk
        return decoded
