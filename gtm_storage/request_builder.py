"""
Request construction for the storage HTTP API.

Every operation is turned into a PreparedCall: method, URL, headers, body and
the set of status codes that count as success. Input is validated here, so a
malformed bucket name or range fails before any network traffic.
"""
import posixpath
import re
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, Optional, Union, BinaryIO
from urllib.parse import quote

from urllib3 import encode_multipart_formdata

from .config import ClientConfig
from .errors import BuildError


# Operation names, used in error messages and logs
MAKE_BUCKET = "create bucket"
DELETE_BUCKET = "delete bucket"
PUT_OBJECT = "upload object"
GET_OBJECT = "get object"
DELETE_OBJECT = "delete object"
HEAD_OBJECT = "get object metadata"
LIST_OBJECTS = "list objects"

HTTP_OK = 200
HTTP_PARTIAL_CONTENT = 206

# Multipart field carrying the uploaded file
UPLOAD_FIELD = "file"
UPLOAD_PART_CONTENT_TYPE = "application/octet-stream"

_CONTROL_CHARS = re.compile(r'[\x00-\x1f\x7f]')

UploadBody = Union[bytes, bytearray, memoryview, str, BinaryIO]


@dataclass(frozen=True)
class PreparedCall:
    """A fully-built HTTP exchange, ready for the transport."""
    operation: str
    method: str
    url: str
    headers: Dict[str, str] = field(default_factory=dict)
    params: Dict[str, str] = field(default_factory=dict)
    body: Optional[bytes] = None
    accepted: FrozenSet[int] = frozenset({HTTP_OK})
    streamed: bool = False


def object_url(base_url: str, bucket: str, object_key: Optional[str] = None) -> str:
    """Join base URL, bucket and (optionally) object key. Pure string composition."""
    url = f"{base_url}/api/{quote(bucket, safe='')}"
    if object_key is not None:
        url += f"/{quote(object_key, safe='/')}"
    return url


def _check_name(value, what: str) -> None:
    if not isinstance(value, str) or not value:
        raise BuildError(f"{what} must be a non-empty string")
    if _CONTROL_CHARS.search(value):
        raise BuildError(f"{what} contains control characters: {value!r}")


def _check_bucket(bucket) -> None:
    _check_name(bucket, "bucket name")
    if '/' in bucket:
        raise BuildError(f"bucket name must not contain '/': {bucket!r}")


def _read_body(data: UploadBody) -> bytes:
    """Buffer the whole upload payload in memory."""
    if isinstance(data, (bytes, bytearray, memoryview)):
        return bytes(data)
    if isinstance(data, str):
        return data.encode('utf-8')
    read = getattr(data, 'read', None)
    if not callable(read):
        raise BuildError(
            f"upload data must be bytes, str or a binary file object, got {type(data).__name__}"
        )
    try:
        content = read()
    except OSError as e:
        raise BuildError(f"failed to read upload data: {e}") from e
    if isinstance(content, str):
        return content.encode('utf-8')
    if not isinstance(content, (bytes, bytearray)):
        raise BuildError(
            f"upload stream returned {type(content).__name__}, expected bytes"
        )
    return bytes(content)


class RequestBuilder:
    """Builds PreparedCall objects from a client configuration."""

    def __init__(self, config: ClientConfig):
        self.base_url = config.base_url
        self._api_key = config.api_key

    def _auth_headers(self) -> Dict[str, str]:
        # Both schemes are sent so the server may accept either
        if not self._api_key:
            return {}
        return {
            'Authorization': f'Bearer {self._api_key}',
            'X-API-Key': self._api_key,
        }

    def object_url(self, bucket: str, object_key: str) -> str:
        return object_url(self.base_url, bucket, object_key)

    def make_bucket(self, bucket: str) -> PreparedCall:
        _check_bucket(bucket)
        return PreparedCall(
            operation=MAKE_BUCKET,
            method='POST',
            url=object_url(self.base_url, bucket),
            headers=self._auth_headers(),
        )

    def delete_bucket(self, bucket: str) -> PreparedCall:
        _check_bucket(bucket)
        return PreparedCall(
            operation=DELETE_BUCKET,
            method='DELETE',
            url=object_url(self.base_url, bucket),
            headers=self._auth_headers(),
        )

    def put_object(
        self,
        bucket: str,
        object_key: str,
        data: UploadBody,
        filename: Optional[str] = None,
    ) -> PreparedCall:
        """
        Build a multipart upload with a single file field.

        Args:
            bucket: Target bucket
            object_key: Target object key
            data: Payload (bytes, str or binary file object), read fully into memory
            filename: Filename for the multipart part (defaults to the key's basename)
        """
        _check_bucket(bucket)
        _check_name(object_key, "object key")
        if filename is None:
            filename = posixpath.basename(object_key) or object_key
        _check_name(filename, "filename")

        content = _read_body(data)
        body, content_type = encode_multipart_formdata(
            {UPLOAD_FIELD: (filename, content, UPLOAD_PART_CONTENT_TYPE)}
        )

        headers = {'Content-Type': content_type}
        headers.update(self._auth_headers())
        return PreparedCall(
            operation=PUT_OBJECT,
            method='PUT',
            url=object_url(self.base_url, bucket, object_key),
            headers=headers,
            body=body,
        )

    def get_object(self, bucket: str, object_key: str) -> PreparedCall:
        _check_bucket(bucket)
        _check_name(object_key, "object key")
        return PreparedCall(
            operation=GET_OBJECT,
            method='GET',
            url=object_url(self.base_url, bucket, object_key),
            streamed=True,
        )

    def get_object_range(
        self, bucket: str, object_key: str, start: int, end: int
    ) -> PreparedCall:
        """
        Build a ranged read for bytes [start, end].

        The Range header is only sent when start > 0 or end > 0, so
        start=0, end=0 is a plain full read.
        """
        _check_bucket(bucket)
        _check_name(object_key, "object key")
        if start < 0 or end < 0:
            raise BuildError(f"range bounds must not be negative: start={start}, end={end}")

        headers = {}
        if start > 0 or end > 0:
            headers['Range'] = f"bytes={start}-{end}"

        return PreparedCall(
            operation=GET_OBJECT,
            method='GET',
            url=object_url(self.base_url, bucket, object_key),
            headers=headers,
            accepted=frozenset({HTTP_OK, HTTP_PARTIAL_CONTENT}),
            streamed=True,
        )

    def delete_object(self, bucket: str, object_key: str) -> PreparedCall:
        _check_bucket(bucket)
        _check_name(object_key, "object key")
        return PreparedCall(
            operation=DELETE_OBJECT,
            method='DELETE',
            url=object_url(self.base_url, bucket, object_key),
            headers=self._auth_headers(),
        )

    def head_object(self, bucket: str, object_key: str) -> PreparedCall:
        _check_bucket(bucket)
        _check_name(object_key, "object key")
        return PreparedCall(
            operation=HEAD_OBJECT,
            method='HEAD',
            url=object_url(self.base_url, bucket, object_key),
        )

    def list_objects(self, bucket: str, prefix: Optional[str] = None) -> PreparedCall:
        _check_bucket(bucket)
        params = {}
        if prefix:
            if _CONTROL_CHARS.search(prefix):
                raise BuildError(f"prefix contains control characters: {prefix!r}")
            params['prefix'] = prefix
        return PreparedCall(
            operation=LIST_OBJECTS,
            method='GET',
            url=object_url(self.base_url, bucket),
            params=params,
        )
