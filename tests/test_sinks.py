"""Tests for destination parsing and sinks."""

from unittest.mock import Mock, patch

import pytest

from product_feed.exceptions import ConfigurationError, S3SinkError, SinkError
from product_feed.sinks import (
    AWSClientFactory,
    FileSink,
    S3Sink,
    StreamSink,
    open_sink,
    parse_destination,
)


class TestParseDestination:
    """Tests for parse_destination."""

    @pytest.mark.parametrize("descriptor", ["stdout://", "-", " stdout:// "])
    def test_stdout(self, descriptor):
        """Test standard output descriptors."""
        assert parse_destination(descriptor).scheme == "stdout"

    def test_file_uri(self):
        """Test file URIs resolve to a path."""
        destination = parse_destination("file:///tmp/my%20feed.xml")
        assert destination.scheme == "file"
        assert destination.location == "/tmp/my feed.xml"

    def test_bare_path(self):
        """Test bare paths are local files."""
        destination = parse_destination("exports/feed.xml")
        assert destination.scheme == "file"
        assert destination.location == "exports/feed.xml"

    def test_s3_uri(self):
        """Test S3 URIs split into bucket and key."""
        destination = parse_destination("s3://my-bucket/feeds/feed.xml")
        assert destination.scheme == "s3"
        assert destination.bucket == "my-bucket"
        assert destination.key == "feeds/feed.xml"

    @pytest.mark.parametrize("descriptor", ["", "   ", "http://example.com/feed", "s3:///key"])
    def test_invalid(self, descriptor):
        """Test invalid descriptors raise ConfigurationError."""
        with pytest.raises(ConfigurationError):
            parse_destination(descriptor)


class TestStreamSink:
    """Tests for StreamSink."""

    def test_writes_to_stdout(self, capsys):
        """Test text reaches standard output."""
        sink = open_sink("stdout://")
        assert isinstance(sink, StreamSink)
        sink.write("<feed/>\n")
        sink.close()

        assert capsys.readouterr().out == "<feed/>\n"
        assert sink.closed

    def test_encodes_with_feed_encoding(self, capsysbinary):
        """Test bytes follow the feed encoding, not the encoding of sys.stdout."""
        sink = open_sink("stdout://", encoding="iso-8859-1")
        sink.write("Caf\u00e9 \u20ac")
        sink.close()

        assert capsysbinary.readouterr().out == b"Caf\xe9 &#8364;"


class TestFileSink:
    """Tests for FileSink."""

    def test_write_and_close(self, feed_path):
        """Test content is written and the handle closed once."""
        sink = open_sink(str(feed_path))
        assert isinstance(sink, FileSink)
        sink.write("hello")
        sink.flush()
        sink.close()
        sink.close()

        assert feed_path.read_text(encoding="utf-8") == "hello"
        assert sink.closed

    def test_write_after_close(self, feed_path):
        """Test writing to a closed sink fails."""
        sink = open_sink(str(feed_path))
        sink.close()
        with pytest.raises(SinkError):
            sink.write("late")

    def test_open_failure(self, tmp_path):
        """Test an unopenable path raises SinkError."""
        missing_dir = tmp_path / "missing" / "feed.xml"
        with pytest.raises(SinkError) as exc_info:
            open_sink(str(missing_dir))
        assert exc_info.value.operation == "open"

    def test_discard_removes_file(self, feed_path):
        """Test discard closes and deletes partial output."""
        sink = open_sink(str(feed_path))
        sink.write("partial")
        sink.discard()

        assert sink.closed
        assert not feed_path.exists()

    def test_unencodable_characters_escaped(self, feed_path):
        """Test characters outside the encoding become character references."""
        sink = open_sink(str(feed_path), encoding="ascii")
        sink.write("café")
        sink.close()

        assert feed_path.read_text(encoding="ascii") == "caf&#233;"

    def test_context_manager_closes(self, feed_path):
        """Test the sink closes when used as a context manager."""
        with open_sink(str(feed_path)) as sink:
            sink.write("x")
        assert sink.closed


class TestS3Sink:
    """Tests for S3Sink."""

    def test_uploads_on_close(self):
        """Test spooled content is uploaded when the sink closes."""
        uploaded = {}

        def upload_fileobj(fileobj, bucket, key, ExtraArgs=None):
            uploaded["body"] = fileobj.read()
            uploaded["target"] = (bucket, key)

        client = Mock()
        client.upload_fileobj.side_effect = upload_fileobj

        with patch("product_feed.sinks.boto3.client", return_value=client):
            sink = open_sink("s3://bucket/feeds/feed.xml")
            assert isinstance(sink, S3Sink)
            sink.write("<feed>")
            sink.write("</feed>")
            sink.close()

        assert uploaded["body"] == b"<feed></feed>"
        assert uploaded["target"] == ("bucket", "feeds/feed.xml")
        client.upload_fileobj.assert_called_once()

    def test_upload_failure(self):
        """Test upload errors become S3SinkError."""
        client = Mock()
        client.upload_fileobj.side_effect = RuntimeError("AccessDenied")

        with patch("product_feed.sinks.boto3.client", return_value=client):
            sink = open_sink("s3://bucket/feed.xml")
            sink.write("<feed/>")
            with pytest.raises(S3SinkError) as exc_info:
                sink.close()

        assert exc_info.value.bucket == "bucket"
        assert sink.closed

    def test_discard_skips_upload(self):
        """Test a discarded S3 sink uploads nothing."""
        client = Mock()

        with patch("product_feed.sinks.boto3.client", return_value=client):
            sink = open_sink("s3://bucket/feed.xml")
            sink.write("<feed>")
            sink.discard()

        client.upload_fileobj.assert_not_called()


class TestAWSClientFactory:
    """Tests for the S3 client factory."""

    def test_clients_cached_per_endpoint(self):
        """Test clients are reused for the same region and endpoint."""
        with patch("product_feed.sinks.boto3.client", side_effect=lambda *a, **kw: Mock()) as factory:
            first = AWSClientFactory.get_s3_client("eu-west-1", "http://localhost:4566")
            second = AWSClientFactory.get_s3_client("eu-west-1", "http://localhost:4566")
            other = AWSClientFactory.get_s3_client("us-east-1", None)

        assert first is second
        assert other is not first
        assert factory.call_count == 2
        assert factory.call_args_list[0].kwargs["endpoint_url"] == "http://localhost:4566"
