"""
Response interpretation for the storage HTTP API.

Maps a raw response onto a typed result or a typed error. Every response is
read and closed here, except successful object reads, whose body is handed to
the caller as an ObjectStream.
"""
import logging
import re
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import Iterator, Optional, Tuple
from xml.etree import ElementTree as ET

import requests

from .cancellation import CancellationToken
from .errors import DecodeError, OperationCancelled, OperationError, TransportError
from .models import ListingResult, ObjectMetadata, UploadOutcome
from .request_builder import PreparedCall


logger = logging.getLogger(__name__)


# Labels the upload endpoint prints before the preview and thumbnail links
PREVIEW_LABEL = "预览地址:"
THUMBNAIL_LABEL = "缩略图地址:"

DEFAULT_CHUNK_SIZE = 64 * 1024

_FRACTION = re.compile(r'(\.\d{6})\d+')


def body_text(response) -> str:
    """Full body as text. The server sends UTF-8 without always declaring it."""
    return response.content.decode('utf-8', errors='replace')


def ensure_success(response, call: PreparedCall) -> None:
    """
    Raise OperationError if the status code is not accepted for this call.

    The body is drained and the response closed before raising.
    """
    if response.status_code in call.accepted:
        return

    try:
        message = body_text(response)
    finally:
        response.close()

    logger.debug(f"Status {response.status_code} not accepted for {call.operation}: {message[:200]}")
    raise OperationError(response.status_code, message, call.operation)


class ObjectStream:
    """
    Streamed object body, owned by the caller.

    Must be closed on every exit path to return the connection to its pool;
    use it as a context manager:

        with client.get_object("bucket", "key") as stream:
            data = stream.read()
    """

    def __init__(
        self,
        response,
        operation: str,
        cancel: Optional[CancellationToken] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ):
        self._response = response
        self.operation = operation
        self.status_code = response.status_code
        self.headers = response.headers
        self._cancel = cancel
        self._chunk_size = chunk_size
        self._chunks: Optional[Iterator[bytes]] = None
        self._buffer = bytearray()
        self._exhausted = False
        self._closed = False
        self._unregister = cancel.register(self.close) if cancel is not None else None

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def content_type(self) -> str:
        return self.headers.get('Content-Type', '')

    @property
    def content_length(self) -> Optional[int]:
        value = self.headers.get('Content-Length')
        try:
            return int(value) if value is not None else None
        except ValueError:
            return None

    def _check_open(self) -> None:
        if self._cancel is not None:
            self._cancel.raise_if_cancelled(self.operation)
        if self._closed:
            raise ValueError("I/O operation on closed object stream")

    def _next_chunk(self) -> Optional[bytes]:
        """Next non-empty chunk from the transport, or None at end of body."""
        if self._exhausted:
            return None
        if self._chunks is None:
            self._chunks = self._response.iter_content(chunk_size=self._chunk_size)
        try:
            while True:
                chunk = next(self._chunks)
                if chunk:
                    return chunk
        except StopIteration:
            self._exhausted = True
            # A body closed by cancel() can end early instead of failing
            if self._cancel is not None:
                self._cancel.raise_if_cancelled(self.operation)
            return None
        except Exception as e:
            # A cancel() from another thread closes the body mid-read; the
            # read then fails with whatever the closed connection raises
            if self._cancel is not None and self._cancel.cancelled:
                raise OperationCancelled(
                    f"failed to {self.operation}: {self._cancel.reason}",
                    operation=self.operation,
                ) from e
            if isinstance(e, (requests.exceptions.RequestException, OSError, ValueError)):
                raise TransportError(
                    f"failed to {self.operation}: error reading body: {e}",
                    operation=self.operation,
                ) from e
            raise

    def read(self, size: int = -1) -> bytes:
        """Read up to size bytes (all remaining bytes when size < 0)."""
        self._check_open()
        while size < 0 or len(self._buffer) < size:
            chunk = self._next_chunk()
            if chunk is None:
                break
            self._buffer.extend(chunk)
            self._check_open()

        if size < 0:
            size = len(self._buffer)
        data = bytes(self._buffer[:size])
        del self._buffer[:size]
        return data

    def iter_chunks(self) -> Iterator[bytes]:
        """Yield the remaining body in chunks."""
        self._check_open()
        if self._buffer:
            data = bytes(self._buffer)
            self._buffer.clear()
            yield data
        while True:
            chunk = self._next_chunk()
            if chunk is None:
                return
            self._check_open()
            yield chunk

    def __iter__(self) -> Iterator[bytes]:
        return self.iter_chunks()

    def close(self) -> None:
        """Release the underlying connection. Safe to call more than once."""
        if self._closed:
            return
        self._closed = True
        if self._unregister is not None:
            self._unregister()
            self._unregister = None
        self._response.close()

    def __enter__(self) -> "ObjectStream":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()


def open_stream(
    response, call: PreparedCall, cancel: Optional[CancellationToken] = None
) -> ObjectStream:
    """Check the status of a read and hand over its body undrained."""
    ensure_success(response, call)
    return ObjectStream(response, call.operation, cancel=cancel)


def parse_http_date(value: Optional[str]) -> Optional[datetime]:
    """Parse an HTTP date header; None when absent or malformed."""
    if not value:
        return None
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None


def read_metadata(response, call: PreparedCall, object_key: str) -> ObjectMetadata:
    """Build ObjectMetadata from the headers of a HEAD response."""
    try:
        ensure_success(response, call)
        headers = response.headers

        try:
            size = max(0, int(headers.get('Content-Length', 0)))
        except ValueError:
            size = 0

        return ObjectMetadata(
            key=object_key,
            content_type=headers.get('Content-Type', ''),
            last_modified=parse_http_date(headers.get('Last-Modified')),
            etag=headers.get('ETag', '').strip('"'),
            size=size,
        )
    finally:
        response.close()


def _local_name(tag: str) -> str:
    return tag.rsplit('}', 1)[-1]


def _child_text(element: ET.Element, name: str) -> str:
    for child in element:
        if _local_name(child.tag) == name:
            return (child.text or '').strip()
    return ''


def _parse_timestamp(value: str) -> Optional[datetime]:
    if not value:
        return None
    value = _FRACTION.sub(r'\1', value)
    if value.endswith(('Z', 'z')):
        value = value[:-1] + '+00:00'
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        raise DecodeError(f"invalid LastModified timestamp in listing: '{value}'")


def _parse_entry(element: ET.Element) -> ObjectMetadata:
    raw_size = _child_text(element, 'Size')
    try:
        size = int(raw_size) if raw_size else 0
    except ValueError:
        raise DecodeError(f"invalid Size in listing: '{raw_size}'")
    if size < 0:
        raise DecodeError(f"negative Size in listing: {size}")

    return ObjectMetadata(
        key=_child_text(element, 'Key'),
        name=_child_text(element, 'Name'),
        content_type=_child_text(element, 'ContentType'),
        last_modified=_parse_timestamp(_child_text(element, 'LastModified')),
        etag=_child_text(element, 'ETag').strip('"'),
        size=size,
    )


def decode_listing(content: bytes, bucket: str = '', prefix: str = '') -> ListingResult:
    """
    Decode a ListBucketResult XML document.

    Raises:
        DecodeError: Document is malformed
    """
    try:
        root = ET.fromstring(content)
    except ET.ParseError as e:
        raise DecodeError(f"failed to parse listing response: {e}") from e

    objects = [
        _parse_entry(child) for child in root
        if _local_name(child.tag) == 'Contents'
    ]
    return ListingResult(
        bucket=_child_text(root, 'Name') or bucket,
        prefix=_child_text(root, 'Prefix') or prefix,
        objects=objects,
    )


def read_listing(response, call: PreparedCall, bucket: str, prefix: str = '') -> ListingResult:
    """Check the status of a listing and decode its body."""
    try:
        ensure_success(response, call)
        content = response.content
    finally:
        response.close()
    return decode_listing(content, bucket=bucket, prefix=prefix)


def scan_upload_links(text: str) -> Tuple[Optional[str], Optional[str]]:
    """
    Best-effort extraction of preview and thumbnail links from upload output.

    The upload endpoint answers with free text, not a document, so lines are
    matched by label and the last whitespace-separated field is taken.
    """
    preview_url = None
    thumbnail_url = None
    if PREVIEW_LABEL not in text:
        return preview_url, thumbnail_url

    for line in text.split('\n'):
        if PREVIEW_LABEL in line:
            parts = line.split()
            if len(parts) > 1:
                preview_url = parts[-1]
        if THUMBNAIL_LABEL in line:
            parts = line.split()
            if len(parts) > 1:
                thumbnail_url = parts[-1]

    return preview_url, thumbnail_url


def read_upload(response, call: PreparedCall, object_key: str) -> UploadOutcome:
    """Check the status of an upload and build its UploadOutcome."""
    try:
        ensure_success(response, call)
        text = body_text(response)
    finally:
        response.close()

    preview_url, thumbnail_url = scan_upload_links(text)
    return UploadOutcome(
        key=object_key,
        etag=response.headers.get('ETag', ''),
        preview_url=preview_url,
        thumbnail_url=thumbnail_url,
    )


def read_empty(response, call: PreparedCall) -> None:
    """Check the status of a call with no result and drain its body."""
    try:
        ensure_success(response, call)
        response.content  # drain so the connection can be reused
    finally:
        response.close()
