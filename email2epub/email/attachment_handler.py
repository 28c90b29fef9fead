"""
Attachment persistence for the conversion pipeline.

Responsibilities:
- Write each attachment to the attachments cache under a deterministic name.
- Build the lookup used to resolve ``cid:`` references (Content-ID and
  filename both map to the written file).
- Guess extensions from filenames or declared content types.
"""

from __future__ import annotations

import hashlib
import mimetypes
import os
from pathlib import Path
from typing import Dict, Optional, Sequence

from email2epub.email.config import CONTENT_TYPE_EXTENSION_MAP
from email2epub.logger import get_logger
from email2epub.models import Attachment

logger = get_logger(__name__)


class AttachmentHandler:
    """Persists attachments of one email at a time into *out_dir*."""

    def __init__(self, out_dir: str, verbose: bool = False) -> None:
        self.out_dir = out_dir
        self.verbose = verbose

    # ------------------------------------------------------------------
    # Extension guessing
    # ------------------------------------------------------------------

    @staticmethod
    def guess_extension(content_type: str, filename: Optional[str] = None) -> str:
        """Best-effort extension guessing.

        Returns a lowercase extension (including leading dot), or ``""``
        if unknown.
        """
        if filename:
            ext = Path(filename).suffix.lower()
            if ext:
                return ext

        ct = (content_type or "").lower().strip()
        if not ct:
            return ""
        if ct in CONTENT_TYPE_EXTENSION_MAP:
            return CONTENT_TYPE_EXTENSION_MAP[ct]

        guessed = mimetypes.guess_extension(ct)
        return guessed.lower() if guessed else ""

    # ------------------------------------------------------------------
    # Naming
    # ------------------------------------------------------------------

    @staticmethod
    def storage_name(source: str, subject: str, index: int, extension: str) -> str:
        """Stable name for attachment *index* of the email read from *source*."""
        key = f"{os.path.basename(source)}.{subject}.{index}"
        return hashlib.md5(key.encode("utf-8")).hexdigest() + extension

    # ------------------------------------------------------------------
    # Extraction
    # ------------------------------------------------------------------

    def extract(self, source: str, subject: str, attachments: Sequence[Attachment]) -> Dict[str, str]:
        """
        Write *attachments* to disk and return ``{content_id | filename: path}``.

        A failed write is logged and that attachment left out of the lookup.
        """
        lookup: Dict[str, str] = {}
        for index, attachment in enumerate(attachments):
            label = attachment.filename or attachment.content_id or f"#{index}"
            ext = self.guess_extension(attachment.content_type, attachment.filename)
            path = os.path.join(self.out_dir, self.storage_name(source, subject, index, ext))

            if self.verbose:
                logger.info("Extract %s -> %s", label, path)

            try:
                os.makedirs(self.out_dir, exist_ok=True)
                with open(path, "wb") as f:
                    f.write(attachment.content)
            except OSError as e:
                logger.warning("Cannot extract attachment %s of %s (%s)", label, source, e)
                continue

            if attachment.content_id:
                lookup[attachment.content_id] = path
            if attachment.filename:
                lookup[attachment.filename] = path

        logger.debug("Attachments extracted from %s: %d keys", source, len(lookup))
        return lookup
