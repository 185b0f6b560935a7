"""
HTTP client for the GTM object storage service.

Wraps the service's bucket and object endpoints:
- Bucket create/delete
- Object upload (multipart), download (full or ranged), delete
- Object metadata (HEAD) and prefix listing (XML)
"""
import os
import logging
import threading
from concurrent.futures import Future
from typing import Any, Callable, List, Optional, TypeVar

import requests

from .cancellation import CancellationToken
from .config import ClientConfig
from .errors import (
    BuildError,
    OperationCancelled,
    OperationError,
    TransportError,
)
from .models import ListingResult, ObjectMetadata, UploadOutcome
from .request_builder import PreparedCall, RequestBuilder, UploadBody
from .response_interpreter import (
    ObjectStream,
    open_stream,
    read_empty,
    read_listing,
    read_metadata,
    read_upload,
)


logger = logging.getLogger(__name__)

T = TypeVar("T")


class StorageClient:
    """
    GTM storage service client.

    Configuration is immutable after construction, so a single client can be
    shared between threads. Every operation performs exactly one HTTP exchange
    and accepts an optional CancellationToken.
    """

    def __init__(
        self,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        *,
        timeout: Optional[float] = None,
        transport: Optional[Any] = None,
        config: Optional[ClientConfig] = None,
    ):
        """
        Initialize storage client.

        Args:
            base_url: Service base URL (read from GTM_STORAGE_URL when omitted)
            api_key: API key for write operations
            timeout: Request timeout in seconds (default 30)
            transport: requests.Session-compatible executor
            config: Prebuilt configuration (overrides the other arguments)

        Raises:
            ConfigurationError: Configuration is missing or invalid
        """
        if config is None:
            if base_url is None:
                config = ClientConfig.from_env(transport=transport)
            else:
                config = ClientConfig.from_options(
                    base_url=base_url,
                    api_key=api_key,
                    timeout=timeout,
                    transport=transport,
                )

        self.config = config
        self._builder = RequestBuilder(config)
        self._local = threading.local()
        self._sessions: List[requests.Session] = []
        self._sessions_lock = threading.Lock()

        logger.info(f"Initialized storage client for {config.base_url}")

    @property
    def base_url(self) -> str:
        return self.config.base_url

    def _transport(self):
        """Caller-supplied transport, or this thread's own session."""
        if self.config.transport is not None:
            return self.config.transport

        session = getattr(self._local, 'session', None)
        if session is None:
            session = requests.Session()
            self._local.session = session
            with self._sessions_lock:
                self._sessions.append(session)
        return session

    def close(self) -> None:
        """Close sessions created by this client. Caller-supplied transports are left open."""
        with self._sessions_lock:
            sessions, self._sessions = self._sessions, []
        for session in sessions:
            session.close()
        self._local = threading.local()

    def __enter__(self) -> "StorageClient":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def _cancelled(self, call: PreparedCall, cancel: CancellationToken) -> OperationCancelled:
        return OperationCancelled(
            f"failed to {call.operation}: {cancel.reason}", operation=call.operation
        )

    def _dispatch(self, call: PreparedCall, timeout: float, cancel: Optional[CancellationToken]):
        """
        Run the transport request.

        With a token, the request runs on a helper thread and this thread
        waits for either the response or the token, so cancel() and deadlines
        return control promptly. A response that arrives after the caller has
        given up is closed as soon as it lands.
        """
        transport = self._transport()

        def send():
            return transport.request(
                call.method,
                call.url,
                headers=call.headers or None,
                params=call.params or None,
                data=call.body,
                timeout=timeout,
                stream=True,
            )

        if cancel is None:
            return send()

        future: Future = Future()

        def run():
            future.set_running_or_notify_cancel()
            try:
                future.set_result(send())
            except BaseException as e:
                future.set_exception(e)

        threading.Thread(target=run, name="gtm-storage-request", daemon=True).start()
        wake = threading.Event()
        future.add_done_callback(lambda _: wake.set())
        unregister = cancel.register(wake.set)
        try:
            while not future.done() and not cancel.cancelled:
                wake.wait(cancel.remaining())
        finally:
            unregister()

        if not future.done():
            future.add_done_callback(_discard_response)
            logger.debug(f"Abandoned in-flight {call.method} {call.url}: {cancel.reason}")
            raise self._cancelled(call, cancel)
        return future.result()

    def _send(self, call: PreparedCall, cancel: Optional[CancellationToken]):
        """Issue the request and return the response with its body unread."""
        timeout = self.config.timeout
        if cancel is not None:
            cancel.raise_if_cancelled(call.operation)
            remaining = cancel.remaining()
            if remaining is not None:
                timeout = min(timeout, remaining)

        logger.debug(f"{call.method} {call.url}")

        try:
            response = self._dispatch(call, timeout, cancel)
        except (requests.exceptions.InvalidURL,
                requests.exceptions.MissingSchema,
                requests.exceptions.InvalidSchema) as e:
            raise BuildError(f"failed to create request for {call.operation}: {e}") from e
        except requests.exceptions.Timeout as e:
            if cancel is not None and cancel.cancelled:
                raise self._cancelled(call, cancel) from e
            raise TransportError(
                f"failed to {call.operation}: request timed out after {timeout:.1f}s",
                operation=call.operation,
            ) from e
        except requests.exceptions.RequestException as e:
            if cancel is not None and cancel.cancelled:
                raise self._cancelled(call, cancel) from e
            raise TransportError(
                f"failed to {call.operation}: {e}", operation=call.operation
            ) from e

        if cancel is not None and cancel.cancelled:
            response.close()
            raise self._cancelled(call, cancel)

        return response

    def _call(
        self,
        call: PreparedCall,
        interpret: Callable[[Any], T],
        cancel: Optional[CancellationToken] = None,
    ) -> T:
        """Send a prepared call and interpret its response."""
        response = self._send(call, cancel)

        aborted = []
        unregister = None
        if cancel is not None:
            def abort():
                aborted.append(True)
                response.close()
            unregister = cancel.register(abort)

        try:
            result = interpret(response)
        except Exception as e:
            # Closing the body from the cancelling thread surfaces as whatever
            # the read happened to hit (AttributeError, DecodeError, ...)
            if aborted:
                raise self._cancelled(call, cancel) from e
            if isinstance(e, OperationError):
                logger.error(
                    f"Storage {call.operation} failed with status {e.status_code}: {call.method} {call.url}"
                )
                raise
            if isinstance(e, (requests.exceptions.RequestException, OSError)):
                raise TransportError(
                    f"failed to {call.operation}: error reading response: {e}",
                    operation=call.operation,
                ) from e
            raise
        finally:
            if unregister is not None:
                unregister()

        if aborted and not call.streamed:
            raise self._cancelled(call, cancel)
        return result

    def make_bucket(self, bucket: str, cancel: Optional[CancellationToken] = None) -> None:
        """
        Create a bucket.

        Raises:
            BuildError: Invalid bucket name
            TransportError: Connection failed, timed out or was cancelled
            OperationError: Server rejected the request
        """
        call = self._builder.make_bucket(bucket)
        self._call(call, lambda response: read_empty(response, call), cancel)
        logger.info(f"Created bucket: {bucket}")

    def delete_bucket(self, bucket: str, cancel: Optional[CancellationToken] = None) -> None:
        """Delete a bucket."""
        call = self._builder.delete_bucket(bucket)
        self._call(call, lambda response: read_empty(response, call), cancel)
        logger.info(f"Deleted bucket: {bucket}")

    def put_object(
        self,
        bucket: str,
        object_key: str,
        data: UploadBody,
        filename: Optional[str] = None,
        cancel: Optional[CancellationToken] = None,
    ) -> UploadOutcome:
        """
        Upload an object as a multipart form with a single file field.

        The payload is read fully into memory before the request is sent.

        Args:
            bucket: Target bucket
            object_key: Object key within the bucket
            data: Content as bytes, str or a binary file object
            filename: Filename sent with the file field (defaults to the key's basename)
            cancel: Optional cancellation token

        Returns:
            UploadOutcome with the server ETag and, when reported, preview/thumbnail links

        Raises:
            BuildError: Invalid names or unreadable data
            TransportError: Connection failed, timed out or was cancelled
            OperationError: Server rejected the upload
        """
        call = self._builder.put_object(bucket, object_key, data, filename)
        logger.info(f"Uploading {bucket}/{object_key} ({len(call.body)} bytes)")
        result = self._call(call, lambda response: read_upload(response, call, object_key), cancel)
        logger.info(f"Successfully uploaded {bucket}/{object_key}")
        return result

    def put_object_from_file(
        self,
        bucket: str,
        object_key: str,
        file_path: str,
        cancel: Optional[CancellationToken] = None,
    ) -> UploadOutcome:
        """
        Upload a local file, using its basename as the multipart filename.

        Raises:
            FileNotFoundError: Local file not found
        """
        if not os.path.isfile(file_path):
            raise FileNotFoundError(f"File not found: {file_path}")

        with open(file_path, 'rb') as f:
            return self.put_object(
                bucket, object_key, f, filename=os.path.basename(file_path), cancel=cancel
            )

    def get_object(
        self, bucket: str, object_key: str, cancel: Optional[CancellationToken] = None
    ) -> ObjectStream:
        """
        Download an object.

        Returns:
            ObjectStream over the undrained body; the caller must close it
            (use it in a with block)
        """
        call = self._builder.get_object(bucket, object_key)
        return self._call(call, lambda response: open_stream(response, call, cancel), cancel)

    def get_object_range(
        self,
        bucket: str,
        object_key: str,
        start: int,
        end: int,
        cancel: Optional[CancellationToken] = None,
    ) -> ObjectStream:
        """
        Download bytes [start, end] of an object.

        start=0, end=0 sends no Range header and reads the whole object.
        Both 200 and 206 are accepted.
        """
        call = self._builder.get_object_range(bucket, object_key, start, end)
        return self._call(call, lambda response: open_stream(response, call, cancel), cancel)

    def delete_object(
        self, bucket: str, object_key: str, cancel: Optional[CancellationToken] = None
    ) -> None:
        """Delete an object."""
        call = self._builder.delete_object(bucket, object_key)
        self._call(call, lambda response: read_empty(response, call), cancel)
        logger.info(f"Deleted object: {bucket}/{object_key}")

    def head_object(
        self, bucket: str, object_key: str, cancel: Optional[CancellationToken] = None
    ) -> ObjectMetadata:
        """Fetch object metadata from response headers."""
        call = self._builder.head_object(bucket, object_key)
        return self._call(
            call, lambda response: read_metadata(response, call, object_key), cancel
        )

    def list_objects(
        self,
        bucket: str,
        prefix: str = "",
        cancel: Optional[CancellationToken] = None,
    ) -> ListingResult:
        """
        List objects in a bucket, optionally restricted to a key prefix.

        Returns:
            ListingResult in server order

        Raises:
            DecodeError: Server answered 200 with a malformed listing
        """
        call = self._builder.list_objects(bucket, prefix)
        result = self._call(
            call, lambda response: read_listing(response, call, bucket, prefix), cancel
        )
        logger.info(f"Found {len(result)} objects in bucket {bucket} (prefix: '{prefix}')")
        return result

    def get_object_url(self, bucket: str, object_key: str) -> str:
        """Direct URL of an object. No request is made."""
        return self._builder.object_url(bucket, object_key)


def _discard_response(future: Future) -> None:
    """Close the response of a request nobody is waiting for any more."""
    error = future.exception()
    if error is not None:
        logger.debug(f"Abandoned request failed: {error}")
        return
    future.result().close()
