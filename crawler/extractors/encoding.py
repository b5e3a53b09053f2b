"""
Decode fetched byte buffers whose charset is not trustworthy.

Korean finance portals still serve EUC-KR pages next to UTF-8 ones, and their
``Content-Type`` headers are frequently wrong, so decoding is attempted in a
fixed priority order instead of trusting the declared charset.
"""
from __future__ import annotations

import logging
from typing import Callable, Optional, Sequence

logger = logging.getLogger(__name__)

DEFAULT_ENCODINGS = ("euc-kr", "utf-8")
MIN_DECODED_LENGTH = 100


class EncodingNormalizer:
    def __init__(
        self,
        encodings: Sequence[str] = DEFAULT_ENCODINGS,
        min_length: int = MIN_DECODED_LENGTH,
    ) -> None:
        self.encodings = tuple(encodings)
        self.min_length = min_length

    def decode(self, content: bytes, default_text: Optional[Callable[[], str]] = None) -> str:
        """
        Return the first strict decode of at least ``min_length`` characters.

        ``default_text`` is the platform-default decode (typically the HTTP
        response's own ``.text``); without it a lenient UTF-8 decode is used.
        If nothing qualifies, the output of the last attempt is returned, which
        may be empty. Never raises.
        """
        if not content:
            return ""

        last = ""
        for encoding in self.encodings:
            try:
                text = content.decode(encoding)
            except (UnicodeDecodeError, LookupError):
                logger.debug("Decoding as %s failed; trying next encoding", encoding)
                continue
            last = text
            if len(text) >= self.min_length:
                return text

        try:
            text = default_text() if default_text else content.decode("utf-8", errors="replace")
        except Exception as exc:
            logger.debug("Platform-default decode failed: %s", exc)
            return last
        return text
