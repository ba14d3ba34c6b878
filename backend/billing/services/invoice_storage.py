"""Durable storage for rendered invoice documents."""

import logging
import re
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

from billing.core.config import settings
from billing.core.errors import NotFoundError, StorageError

logger = logging.getLogger(__name__)

_executor = ThreadPoolExecutor(max_workers=4, thread_name_prefix="invoice-storage")

_UNSAFE = re.compile(r"[^A-Za-z0-9_-]+")
_FILE_NAME = re.compile(r"^invoice_[A-Za-z0-9_-]+_\d+\.pdf$")


@dataclass
class StoredDocument:
    """Location of a stored document."""
    file_name: str
    document_ref: str
    path: Path


class InvoiceStorage:
    """Writes invoice PDFs to a directory addressable by URL prefix.

    Files are created exclusively; a name that already exists gets its
    millisecond suffix bumped so a previous render is never overwritten.
    """

    def __init__(
        self,
        root: Optional[str] = None,
        url_prefix: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self.root = Path(root or settings.INVOICE_STORAGE_DIR)
        self.url_prefix = (url_prefix or settings.INVOICE_URL_PREFIX).rstrip("/")
        self.timeout = timeout or settings.STORAGE_TIMEOUT_SECONDS

    def save(self, base_name: str, content: bytes, epoch_millis: int) -> StoredDocument:
        safe_name = _UNSAFE.sub("_", base_name).strip("_") or "bill"
        file_name, path = self._run(self._write_exclusive, safe_name, content, epoch_millis)
        logger.info("Stored invoice %s (%d bytes)", path, len(content))
        return StoredDocument(
            file_name=file_name,
            document_ref=f"{self.url_prefix}/{file_name}",
            path=path,
        )

    def read(self, document_ref: str) -> bytes:
        path = self.resolve(document_ref)
        if not path.is_file():
            raise NotFoundError("PDF file not found")
        return self._run(path.read_bytes)

    def exists(self, document_ref: Optional[str]) -> bool:
        if not document_ref:
            return False
        try:
            return self.resolve(document_ref).is_file()
        except NotFoundError:
            return False

    def resolve(self, document_ref: str) -> Path:
        """Map a document reference back to its file, refusing foreign paths."""
        file_name = document_ref.rsplit("/", 1)[-1]
        if not _FILE_NAME.match(file_name):
            raise NotFoundError("PDF file not found")
        return self.root / file_name

    def _write_exclusive(self, safe_name: str, content: bytes, epoch_millis: int):
        self.root.mkdir(parents=True, exist_ok=True)
        millis = epoch_millis
        while True:
            file_name = f"invoice_{safe_name}_{millis}.pdf"
            path = self.root / file_name
            try:
                with open(path, "xb") as handle:
                    handle.write(content)
                return file_name, path
            except FileExistsError:
                millis += 1

    def _run(self, func: Callable, *args):
        future = _executor.submit(func, *args)
        try:
            return future.result(timeout=self.timeout)
        except FuturesTimeoutError as exc:
            logger.error("Invoice storage timed out after %ss", self.timeout)
            raise StorageError("Invoice storage timed out") from exc
        except OSError as exc:
            logger.error("Invoice storage failed: %s", exc)
            raise StorageError(f"Invoice storage failed: {exc.strerror or exc}") from exc
