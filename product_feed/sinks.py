"""
Destination sinks for feed output.

A sink is addressed by a URI-like descriptor and owned by exactly one run.
Supported descriptors:

    stdout://, -            standard output
    file:///abs/path.xml    local file (a bare path works too)
    s3://bucket/key.xml     S3 object, uploaded when the sink is closed
"""

import logging
import os
import sys
import tempfile
from dataclasses import dataclass
from typing import Optional
from urllib.parse import unquote, urlparse

import boto3
from botocore.config import Config

from product_feed.exceptions import ConfigurationError, S3SinkError, SinkError

logger = logging.getLogger(__name__)

STDOUT = "stdout"
FILE = "file"
S3 = "s3"

# S3 output stays in memory up to this size, then spills to a temporary file
SPOOL_MAX_SIZE = 8 * 1024 * 1024

boto_config = Config(
    connect_timeout=10,
    read_timeout=60,
)


@dataclass(frozen=True)
class Destination:
    """Parsed destination descriptor."""
    scheme: str
    location: str
    bucket: Optional[str] = None

    @property
    def key(self) -> Optional[str]:
        return self.location if self.scheme == S3 else None


def parse_destination(descriptor: str) -> Destination:
    """
    Parse a destination descriptor.

    Args:
        descriptor: URI-like destination string

    Returns:
        Parsed Destination

    Raises:
        ConfigurationError: If the descriptor is empty or uses an unknown scheme
    """
    if not isinstance(descriptor, str) or not descriptor.strip():
        raise ConfigurationError(
            message="Destination must be a non-empty descriptor",
            config_key="destination",
        )

    descriptor = descriptor.strip()
    if descriptor in ("-", "stdout://"):
        return Destination(scheme=STDOUT, location="stdout")

    parsed = urlparse(descriptor)
    scheme = parsed.scheme.lower()

    # a single letter is a windows drive, not a scheme
    if not scheme or len(scheme) == 1:
        return Destination(scheme=FILE, location=descriptor)

    if scheme == FILE:
        path = unquote(parsed.netloc + parsed.path)
        if not path:
            raise ConfigurationError(
                message=f"Invalid file destination '{descriptor}': missing path",
                config_key="destination",
            )
        return Destination(scheme=FILE, location=path)

    if scheme == S3:
        bucket = parsed.netloc
        key = parsed.path.lstrip("/")
        if not bucket or not key:
            raise ConfigurationError(
                message=(
                    f"Invalid S3 destination '{descriptor}': expected s3://bucket/key"
                ),
                config_key="destination",
            )
        return Destination(scheme=S3, location=key, bucket=bucket)

    raise ConfigurationError(
        message=f"Unsupported destination scheme '{scheme}' in '{descriptor}'",
        config_key="destination",
    )


class AWSClientFactory:
    """Factory for creating AWS clients with proper configuration."""

    _s3_clients: dict = {}

    @classmethod
    def get_s3_client(
        cls,
        region_name: Optional[str] = None,
        endpoint_url: Optional[str] = None,
    ):
        """Get or create S3 client."""
        region_name = region_name or os.environ.get("AWS_REGION", "us-east-1")
        endpoint_url = endpoint_url or os.environ.get("LOCALSTACK_ENDPOINT")
        cache_key = (region_name, endpoint_url)
        if cache_key not in cls._s3_clients:
            kwargs = {"config": boto_config, "region_name": region_name}
            if endpoint_url:
                kwargs["endpoint_url"] = endpoint_url
            cls._s3_clients[cache_key] = boto3.client("s3", **kwargs)
        return cls._s3_clients[cache_key]

    @classmethod
    def reset(cls):
        """Reset clients (useful for testing)."""
        cls._s3_clients = {}


class Sink:
    """
    Text sink with an explicit close.

    close() releases the underlying resource at most once; later calls
    are no-ops. discard() closes the sink and removes whatever was written,
    where the destination allows it.
    """

    def __init__(self, descriptor: str):
        self.descriptor = descriptor
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def write(self, text: str) -> None:
        if self._closed:
            raise SinkError(
                message=f"Write to closed sink {self.descriptor}",
                destination=self.descriptor,
                operation="write",
            )
        try:
            self._write(text)
        except (OSError, UnicodeError) as e:
            raise SinkError(
                message=f"Failed to write to {self.descriptor}: {e}",
                destination=self.descriptor,
                operation="write",
                original_exception=e,
            ) from e

    def flush(self) -> None:
        if self._closed:
            return
        try:
            self._flush()
        except OSError as e:
            raise SinkError(
                message=f"Failed to flush {self.descriptor}: {e}",
                destination=self.descriptor,
                operation="flush",
                original_exception=e,
            ) from e

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self._close()
        except OSError as e:
            raise SinkError(
                message=f"Failed to close {self.descriptor}: {e}",
                destination=self.descriptor,
                operation="close",
                original_exception=e,
            ) from e
        logger.debug(f"Closed sink {self.descriptor}")

    def discard(self) -> None:
        """Close without committing and remove partial output."""
        if self._closed:
            self._remove()
            return
        self._closed = True
        try:
            self._abandon()
        finally:
            self._remove()

    def __enter__(self) -> "Sink":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def _write(self, text: str) -> None:
        raise NotImplementedError

    def _flush(self) -> None:
        pass

    def _close(self) -> None:
        pass

    def _abandon(self) -> None:
        self._close()

    def _remove(self) -> None:
        pass


class StreamSink(Sink):
    """
    Writes to standard output; the stream itself is left open.

    Text is encoded with the feed encoding and written to the binary
    buffer, so the bytes match the XML declaration whatever encoding
    sys.stdout was set up with.
    """

    def __init__(self, descriptor: str = "stdout://", encoding: str = "utf-8"):
        super().__init__(descriptor)
        self.encoding = encoding
        stream = sys.stdout
        if getattr(stream, "buffer", None) is None:
            raise SinkError(
                message="Standard output has no binary buffer to write to",
                destination=descriptor,
                operation="open",
            )
        stream.flush()
        self._buffer = stream.buffer

    def _write(self, text: str) -> None:
        self._buffer.write(text.encode(self.encoding, "xmlcharrefreplace"))

    def _flush(self) -> None:
        self._buffer.flush()

    def _close(self) -> None:
        self._buffer.flush()


class FileSink(Sink):
    """Writes to a local file."""

    def __init__(self, descriptor: str, path: str, encoding: str = "utf-8"):
        super().__init__(descriptor)
        self.path = path
        try:
            self._handle = open(
                path, "w", encoding=encoding, errors="xmlcharrefreplace", newline="\n"
            )
        except OSError as e:
            raise SinkError(
                message=f"Failed to open {path} for writing: {e}",
                destination=descriptor,
                operation="open",
                original_exception=e,
            ) from e

    def _write(self, text: str) -> None:
        self._handle.write(text)

    def _flush(self) -> None:
        self._handle.flush()

    def _close(self) -> None:
        self._handle.close()

    def _remove(self) -> None:
        try:
            os.remove(self.path)
            logger.info(f"Removed partial output {self.path}")
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Could not remove partial output {self.path}: {e}")


class S3Sink(Sink):
    """
    Spools output locally and uploads it as a single object on close.
    Nothing is uploaded when the sink is discarded.
    """

    def __init__(
        self,
        descriptor: str,
        bucket: str,
        key: str,
        encoding: str = "utf-8",
        region_name: Optional[str] = None,
        endpoint_url: Optional[str] = None,
    ):
        super().__init__(descriptor)
        self.bucket = bucket
        self.key = key
        self.encoding = encoding
        self._s3 = AWSClientFactory.get_s3_client(region_name, endpoint_url)
        self._spool = tempfile.SpooledTemporaryFile(max_size=SPOOL_MAX_SIZE, mode="w+b")

    def _write(self, text: str) -> None:
        self._spool.write(text.encode(self.encoding, "xmlcharrefreplace"))

    def _close(self) -> None:
        try:
            self._spool.seek(0)
            self._s3.upload_fileobj(
                self._spool,
                self.bucket,
                self.key,
                ExtraArgs={"ContentType": "application/xml"},
            )
            logger.info(
                "Uploaded feed to S3",
                extra={"destination": self.descriptor},
            )
        except Exception as e:
            raise S3SinkError(
                message=f"Failed to upload feed to S3: {e}",
                bucket=self.bucket,
                key=self.key,
                original_exception=e,
            ) from e
        finally:
            self._spool.close()

    def _abandon(self) -> None:
        self._spool.close()


def open_sink(
    descriptor: str,
    encoding: str = "utf-8",
    aws_region: Optional[str] = None,
    s3_endpoint_url: Optional[str] = None,
) -> Sink:
    """
    Open the sink a descriptor points at.

    Raises:
        ConfigurationError: If the descriptor is invalid
        SinkError: If the destination cannot be opened
    """
    destination = parse_destination(descriptor)

    if destination.scheme == STDOUT:
        return StreamSink(descriptor, encoding=encoding)
    if destination.scheme == FILE:
        return FileSink(descriptor, destination.location, encoding=encoding)
    return S3Sink(
        descriptor,
        bucket=destination.bucket,
        key=destination.key,
        encoding=encoding,
        region_name=aws_region,
        endpoint_url=s3_endpoint_url,
    )
