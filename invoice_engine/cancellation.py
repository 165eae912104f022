"""
Per-file cancellation and deadlines.

Text extraction is the only slow step of invoice processing, and malformed
PDFs can make it pathologically slow. A CancellationToken is handed to the
extractor for one file; the extractor checks it between pages. Cancelling one
file's token never affects any other file.

A token may have a parent. Cancelling the parent cancels every token derived
from it, so a caller can share one parent across a batch to abandon the
whole batch, or keep one per file.
"""

import threading
import time
from typing import Optional

from .exceptions import ExtractionCancelledError


class CancellationToken:
    """Cancellation flag with an optional deadline, for a single file."""

    def __init__(self, timeout: Optional[float] = None,
                 parent: Optional['CancellationToken'] = None):
        """
        Args:
            timeout: Seconds from now after which the token counts as cancelled.
                None means no deadline.
            parent: Token whose cancellation or deadline also applies to this one
        """
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout is not None else None
        self._parent = parent

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancel_requested(self) -> bool:
        """True once cancel() was called on this token or any parent."""
        if self._event.is_set():
            return True
        return self._parent is not None and self._parent.cancel_requested

    @property
    def deadline_exceeded(self) -> bool:
        if self._deadline is not None and time.monotonic() >= self._deadline:
            return True
        return self._parent is not None and self._parent.deadline_exceeded

    @property
    def cancelled(self) -> bool:
        return self.cancel_requested or self.deadline_exceeded

    def raise_if_cancelled(self, pdf_path: Optional[str] = None,
                           page_number: Optional[int] = None) -> None:
        """
        Raises:
            ExtractionCancelledError: If the token was cancelled or its deadline passed
        """
        if self.cancel_requested:
            raise ExtractionCancelledError("Extraction cancelled", pdf_path=pdf_path,
                                           page_number=page_number)
        if self.deadline_exceeded:
            raise ExtractionCancelledError("Extraction deadline exceeded", pdf_path=pdf_path,
                                           page_number=page_number, deadline_exceeded=True)
