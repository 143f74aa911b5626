"""Multi-format document text extractor for the IntentGuard risk engine.

:class:`DocumentExtractor` is the default text extraction adapter.  Given the
bytes of an attachment and its MIME type it returns a bounded plaintext
excerpt, or ``None`` when nothing could be extracted in time.

**Supported formats**

+-----------+----------------------------------------+------------------+
| Format    | MIME types                             | Library          |
+===========+========================================+==================+
| PDF       | application/pdf                        | pdfminer.six     |
+-----------+----------------------------------------+------------------+
| DOCX      | application/vnd.openxml…document,      | python-docx      |
|           | application/msword                     |                  |
+-----------+----------------------------------------+------------------+
| XLSX      | application/vnd.openxml…sheet,         | openpyxl         |
|           | application/vnd.ms-excel               |                  |
+-----------+----------------------------------------+------------------+
| PPTX      | application/vnd.openxml…presentation,  | python-pptx      |
|           | application/vnd.ms-powerpoint          |                  |
+-----------+----------------------------------------+------------------+
| CSV       | text/csv                               | stdlib csv       |
+-----------+----------------------------------------+------------------+
| Plaintext | text/plain, text/markdown, text/html,  | raw decode       |
|           | text/xml, application/xml, text/yaml,  |                  |
|           | application/x-yaml, application/json   |                  |
+-----------+----------------------------------------+------------------+

Legacy binary ``.doc``/``.xls``/``.ppt`` uploads are accepted by MIME type but
the OOXML parsers reject them; they end up as ``None`` like any corrupt file.

**Bounds**

* Files larger than ``max_file_size`` are never extractable.
* Only the first :data:`MAX_PDF_PAGES` PDF pages and the first
  :data:`MAX_SHEETS` worksheets are read.
* Handlers stop collecting once ``max_chars`` of text are in hand.
* :meth:`DocumentExtractor.extract_text` enforces a wall-clock deadline with
  :func:`asyncio.wait_for`; expiry is logged and reported as ``None``.
  Cancelling the awaiting coroutine cannot stop a worker thread, so the same
  deadline is handed to the handler, which checks it between pages, rows,
  paragraphs and slides and abandons the parse.  A single page that blocks
  still holds its worker until that page finishes.
* Output longer than ``max_chars`` is truncated and
  :data:`TRUNCATION_MARKER` is appended.

Line structure is preserved (only runs of spaces and tabs are collapsed)
because the pre-scan looks for line-oriented shapes such as ``KEY=value``.

Parsing is CPU-bound and runs in a :class:`~concurrent.futures.ThreadPoolExecutor`
so the event loop is never blocked.

Usage::

    extractor = DocumentExtractor(max_workers=2)
    text = await extractor.extract_text(pdf_bytes, "application/pdf")
"""

from __future__ import annotations

import asyncio
import csv
import io
import logging
import re
import time
from concurrent.futures import ThreadPoolExecutor

import docx
import openpyxl
import pptx
from pdfminer.high_level import extract_pages

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: ~750 tokens, enough to classify a document.
DEFAULT_MAX_CHARS = 3000
DEFAULT_MAX_FILE_SIZE = 20 * 1024 * 1024
DEFAULT_TIMEOUT_SECONDS = 3.0
TRUNCATION_MARKER = "\n[...truncated]"
MAX_PDF_PAGES = 5
MAX_SHEETS = 3

_PDF_TYPES = frozenset({"application/pdf"})
_DOCX_TYPES = frozenset({
    "application/vnd.openxmlformats-officedocument.wordprocessingml.document",
    "application/msword",
})
_XLSX_TYPES = frozenset({
    "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
    "application/vnd.ms-excel",
})
_PPTX_TYPES = frozenset({
    "application/vnd.openxmlformats-officedocument.presentationml.presentation",
    "application/vnd.ms-powerpoint",
})
_CSV_TYPES = frozenset({"text/csv", "application/csv"})
_PLAINTEXT_TYPES = frozenset({
    "text/plain",
    "text/markdown",
    "application/json",
    "text/xml",
    "application/xml",
    "text/yaml",
    "application/x-yaml",
    "text/html",
})

SUPPORTED_MIME_TYPES: frozenset[str] = (
    _PDF_TYPES | _DOCX_TYPES | _XLSX_TYPES | _PPTX_TYPES | _CSV_TYPES | _PLAINTEXT_TYPES
)

_INLINE_WS_RE = re.compile(r"[ \t\r\f\v]+")
_BLANK_LINES_RE = re.compile(r"\n{3,}")

# ---------------------------------------------------------------------------
# Public types
# ---------------------------------------------------------------------------


class ExtractionError(Exception):
    """Raised when a document cannot be extracted.

    Covers unsupported MIME types, corrupt or misidentified files and parses
    abandoned at the deadline.  The adapter entry point
    :meth:`DocumentExtractor.extract_text` converts this into a ``None``
    result; only :meth:`DocumentExtractor.extract` raises it.

    Attributes:
        mime_type: The MIME type supplied by the caller.
        original: The underlying exception, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        mime_type: str | None = None,
        original: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.mime_type = mime_type
        self.original = original

    def __str__(self) -> str:
        base = super().__str__()
        parts = [base]
        if self.mime_type:
            parts.append(f"mime_type={self.mime_type!r}")
        if self.original is not None:
            parts.append(f"caused_by={type(self.original).__name__}")
        return " | ".join(parts)


class DeadlineExceeded(ExtractionError):
    """A handler gave up because the extraction deadline passed."""


# ---------------------------------------------------------------------------
# Private helpers: synchronous format handlers
# ---------------------------------------------------------------------------


class _Budget:
    """Tracks collected text against a character budget and a deadline.

    *deadline* is an absolute :func:`time.monotonic` value.  Handlers call
    :meth:`check` between units of work and stop adding once :attr:`full`.
    """

    def __init__(
        self,
        mime_type: str,
        max_chars: int | None = None,
        deadline: float | None = None,
    ) -> None:
        self.mime_type = mime_type
        self.max_chars = max_chars
        self.deadline = deadline
        self.parts: list[str] = []
        self._chars = 0

    @property
    def full(self) -> bool:
        return self.max_chars is not None and self._chars > self.max_chars

    def check(self) -> None:
        if self.deadline is not None and time.monotonic() > self.deadline:
            raise DeadlineExceeded("Extraction deadline passed", mime_type=self.mime_type)

    def add(self, text: str) -> None:
        if text and text.strip():
            self.parts.append(text)
            self._chars += len(text.strip())

    def text(self) -> str:
        return _normalise("\n".join(self.parts))


def _normalise(text: str) -> str:
    """Collapse inline whitespace, keep line breaks, strip the ends."""
    lines = (_INLINE_WS_RE.sub(" ", line).strip() for line in text.split("\n"))
    return _BLANK_LINES_RE.sub("\n\n", "\n".join(lines)).strip()


def _decode(data: bytes) -> str:
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError:
        return data.decode("latin-1")


def _extract_plaintext(data: bytes) -> str:
    return _normalise(_decode(data))


def _extract_csv(data: bytes, budget: _Budget | None = None) -> str:
    budget = budget or _Budget("text/csv")
    try:
        for row in csv.reader(io.StringIO(_decode(data))):
            budget.check()
            budget.add(", ".join(cell for cell in row if cell))
            if budget.full:
                break
    except csv.Error as exc:
        raise ExtractionError(
            "Failed to parse CSV document",
            mime_type="text/csv",
            original=exc,
        ) from exc
    return budget.text()


def _extract_pdf(data: bytes, budget: _Budget) -> str:
    try:
        for page_layout in extract_pages(io.BytesIO(data), maxpages=MAX_PDF_PAGES):
            budget.check()
            page_chars: list[str] = []
            for element in page_layout:
                get_text = getattr(element, "get_text", None)
                if get_text is not None and callable(get_text):
                    page_chars.append(get_text())
            budget.add("".join(page_chars))
            if budget.full:
                break
    except DeadlineExceeded:
        raise
    except Exception as exc:
        raise ExtractionError(
            "Failed to extract text from PDF",
            mime_type="application/pdf",
            original=exc,
        ) from exc
    return budget.text()


def _extract_docx(data: bytes, budget: _Budget) -> str:
    try:
        document = docx.Document(io.BytesIO(data))
        for para in document.paragraphs:
            budget.check()
            budget.add(para.text)
            if budget.full:
                break
    except DeadlineExceeded:
        raise
    except Exception as exc:
        raise ExtractionError(
            "Failed to extract text from DOCX",
            mime_type="application/vnd.openxmlformats-officedocument.wordprocessingml.document",
            original=exc,
        ) from exc
    return budget.text()


def _extract_xlsx(data: bytes, budget: _Budget) -> str:
    try:
        workbook = openpyxl.load_workbook(io.BytesIO(data), read_only=True, data_only=True)
        try:
            for sheet in workbook.worksheets[:MAX_SHEETS]:
                budget.add(f"Sheet: {sheet.title}")
                for row in sheet.iter_rows(values_only=True):
                    budget.check()
                    cells = [str(v) for v in row if v is not None and str(v).strip()]
                    budget.add(", ".join(cells))
                    if budget.full:
                        break
                if budget.full:
                    break
        finally:
            workbook.close()
    except DeadlineExceeded:
        raise
    except Exception as exc:
        raise ExtractionError(
            "Failed to extract text from spreadsheet",
            mime_type="application/vnd.openxmlformats-officedocument.spreadsheetml.sheet",
            original=exc,
        ) from exc
    return budget.text()


def _extract_pptx(data: bytes, budget: _Budget) -> str:
    try:
        presentation = pptx.Presentation(io.BytesIO(data))
        for number, slide in enumerate(presentation.slides, start=1):
            budget.check()
            texts = [
                shape.text_frame.text
                for shape in slide.shapes
                if shape.has_text_frame and shape.text_frame.text.strip()
            ]
            if texts:
                budget.add(f"Slide {number}:\n" + "\n".join(texts))
            if budget.full:
                break
    except DeadlineExceeded:
        raise
    except Exception as exc:
        raise ExtractionError(
            "Failed to extract text from presentation",
            mime_type="application/vnd.openxmlformats-officedocument.presentationml.presentation",
            original=exc,
        ) from exc
    return budget.text()


def _base_mime(mime_type: str | None) -> str:
    return (mime_type or "").split(";")[0].strip().lower()


def _dispatch_sync(
    data: bytes,
    mime_type: str,
    max_chars: int | None = None,
    deadline: float | None = None,
) -> str:
    """Synchronously dispatch to the appropriate format handler.

    Args:
        max_chars: Stop collecting once this much text is in hand.
        deadline: Absolute :func:`time.monotonic` value after which the
            handler abandons the parse.

    Raises:
        ExtractionError: For unsupported MIME types, parse failures or an
            expired deadline.
    """
    base_mime = _base_mime(mime_type)
    budget = _Budget(base_mime, max_chars, deadline)
    # Work that waited in the queue past its deadline is dropped unstarted.
    budget.check()

    if base_mime in _PDF_TYPES:
        return _extract_pdf(data, budget)
    if base_mime in _DOCX_TYPES:
        return _extract_docx(data, budget)
    if base_mime in _XLSX_TYPES:
        return _extract_xlsx(data, budget)
    if base_mime in _PPTX_TYPES:
        return _extract_pptx(data, budget)
    if base_mime in _CSV_TYPES:
        return _extract_csv(data, budget)
    if base_mime in _PLAINTEXT_TYPES:
        return _extract_plaintext(data)

    raise ExtractionError(
        f"Unsupported MIME type: {mime_type!r}",
        mime_type=mime_type,
    )


def truncate(text: str, max_chars: int = DEFAULT_MAX_CHARS) -> str:
    """Cut *text* to *max_chars* and append :data:`TRUNCATION_MARKER` if cut."""
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + TRUNCATION_MARKER


# ---------------------------------------------------------------------------
# Public class
# ---------------------------------------------------------------------------


class DocumentExtractor:
    """Multi-format text extractor with thread-pool execution.

    Args:
        max_workers: Number of threads in the pool.  Defaults to 4.
        executor: Pre-built executor to use (useful for testing/injection).
            When supplied, *max_workers* is ignored.
        timeout: Default per-file extraction deadline in seconds.
        max_chars: Character budget for :meth:`extract_text` output.
        max_file_size: Largest file, in bytes, considered extractable.
    """

    def __init__(
        self,
        max_workers: int | None = None,
        executor: ThreadPoolExecutor | None = None,
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        max_chars: int = DEFAULT_MAX_CHARS,
        max_file_size: int = DEFAULT_MAX_FILE_SIZE,
    ) -> None:
        if executor is not None:
            self._executor = executor
            self._owns_executor = False
        else:
            self._executor = ThreadPoolExecutor(max_workers=max_workers or 4)
            self._owns_executor = True
        self._timeout = timeout
        self._max_chars = max_chars
        self._max_file_size = max_file_size

    # ------------------------------------------------------------------
    # Context-manager support
    # ------------------------------------------------------------------

    def __enter__(self) -> "DocumentExtractor":
        return self

    def __exit__(self, *_: object) -> None:
        self.shutdown()

    def shutdown(self, *, wait: bool = True) -> None:
        """Shut down the thread pool.

        Safe to call multiple times.  Does nothing if the executor was
        supplied externally.
        """
        if self._owns_executor:
            self._executor.shutdown(wait=wait)

    # ------------------------------------------------------------------
    # Capability checks
    # ------------------------------------------------------------------

    def supports(self, mime_type: str | None) -> bool:
        return _base_mime(mime_type) in SUPPORTED_MIME_TYPES

    def can_extract(self, mime_type: str | None, size: int) -> bool:
        """``True`` if a file of this type and size is worth downloading."""
        return self.supports(mime_type) and size <= self._max_file_size

    # ------------------------------------------------------------------
    # Extraction
    # ------------------------------------------------------------------

    async def extract(
        self,
        file_bytes: bytes,
        mime_type: str,
        *,
        max_chars: int | None = None,
        deadline: float | None = None,
    ) -> str:
        """Extract normalised text from *file_bytes* in the thread pool.

        Args:
            max_chars: Optional character budget; handlers stop reading once
                it is exceeded.
            deadline: Optional absolute :func:`time.monotonic` value at which
                the worker abandons the parse.

        Raises:
            ExtractionError: If the MIME type is unsupported, the file is
                corrupt and cannot be parsed, or the deadline passed.
        """
        loop = asyncio.get_running_loop()
        logger.debug(
            "Dispatching extraction to thread pool: mime_type=%r, size=%d bytes",
            mime_type,
            len(file_bytes),
        )
        text: str = await loop.run_in_executor(
            self._executor,
            _dispatch_sync,
            file_bytes,
            mime_type,
            max_chars,
            deadline,
        )
        logger.debug("Extraction complete: %d chars extracted", len(text))
        return text

    async def extract_text(
        self,
        file_bytes: bytes,
        mime_type: str,
        timeout: float | None = None,
    ) -> str | None:
        """Adapter contract: bounded, truncated excerpt or ``None``.

        Never raises for extraction problems.  Unsupported types, oversized
        input, parse failures and deadline expiry all yield ``None``.
        """
        if not self.supports(mime_type):
            return None
        if len(file_bytes) > self._max_file_size:
            logger.info(
                "Skipping extraction of oversized file: mime_type=%r size=%d",
                mime_type,
                len(file_bytes),
            )
            return None

        seconds = self._timeout if timeout is None else timeout
        try:
            text = await asyncio.wait_for(
                self.extract(
                    file_bytes,
                    mime_type,
                    max_chars=self._max_chars,
                    deadline=time.monotonic() + seconds,
                ),
                timeout=seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "File text extraction timed out: mime_type=%r timeout=%.1fs",
                mime_type,
                seconds,
            )
            return None
        except ExtractionError as exc:
            logger.warning("File text extraction failed: %s", exc)
            return None

        if not text:
            return None
        return truncate(text, self._max_chars)
