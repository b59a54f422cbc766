"""
AWS Lambda handler for product feed generation.
Triggered by an S3 upload of a JSON-lines export, streams it into an XML feed.

Items are read from the object body line by line, so the whole export is
never held in memory.
"""

import os
import posixpath
import time
from typing import Any, Optional, Tuple
from urllib.parse import unquote_plus

from product_feed.config import CleanupPolicy, FeedConfig
from product_feed.driver import iter_json_lines
from product_feed.exceptions import ConfigurationError, FeedError, SourceError
from product_feed.feed import Feed
from product_feed.logging_config import configure_logging
from product_feed.mappers import map_record
from product_feed.sinks import S3, AWSClientFactory, parse_destination

logger = configure_logging(
    level=os.environ.get("LOG_LEVEL", "INFO"),
    service_name="product-feed",
)


def open_s3_body(
    bucket: str,
    key: str,
    region_name: Optional[str] = None,
    endpoint_url: Optional[str] = None,
) -> Any:
    """
    Open an S3 object and return its streaming body; the caller closes it.

    Raises:
        SourceError: If the object cannot be fetched
    """
    try:
        s3 = AWSClientFactory.get_s3_client(region_name, endpoint_url)
        response = s3.get_object(Bucket=bucket, Key=key)
    except Exception as e:
        raise SourceError(
            message=f"Failed to open source object: {e}",
            source=f"s3://{bucket}/{key}",
            original_exception=e,
        ) from e

    logger.info(
        "Opened S3 source",
        extra={"extra_data": {"s3_bucket": bucket, "s3_key": key}},
    )
    return response["Body"]


def resolve_source(event: dict) -> Tuple[str, str]:
    """Return (bucket, key) of the source object from an S3 or direct event."""
    if event.get("source"):
        destination = parse_destination(event["source"])
        if destination.scheme != S3:
            raise ConfigurationError(
                message=f"Source must be an s3:// URI, got {event['source']}",
                config_key="source",
            )
        return destination.bucket, destination.key

    if "Records" not in event or not event["Records"]:
        raise ConfigurationError(
            message="Invalid event structure: missing Records",
            config_key="event.Records",
        )

    s3_record = event["Records"][0]["s3"]
    return s3_record["bucket"]["name"], unquote_plus(s3_record["object"]["key"])


def default_destination(bucket: str, key: str) -> str:
    stem = posixpath.splitext(posixpath.basename(key))[0]
    return f"s3://{bucket}/feeds/{stem}.xml"


def handler(event: dict, context: Any) -> dict:
    """
    Main Lambda handler.

    Accepts either an S3 event notification or a direct invocation with
    ``source`` and optional ``destination`` URIs. The destination falls back
    to FEED_DESTINATION, then to ``feeds/<name>.xml`` in the source bucket.
    A failed run uploads nothing unless FEED_CLEANUP_POLICY=keep.

    Args:
        event: S3 event notification or direct event
        context: Lambda context

    Returns:
        Processing result summary
    """
    start_time = time.perf_counter()

    logger.info(
        "Lambda invocation started",
        extra={
            "aws_request_id": getattr(context, "aws_request_id", None) if context else None,
        },
    )

    try:
        bucket, key = resolve_source(event)

        overrides = {}
        if event.get("destination"):
            overrides["destination"] = event["destination"]
        elif not os.environ.get("FEED_DESTINATION"):
            overrides["destination"] = default_destination(bucket, key)
        if not os.environ.get("FEED_CLEANUP_POLICY"):
            overrides["cleanup_policy"] = CleanupPolicy.DELETE
        config = FeedConfig.from_env(**overrides)

        feed = Feed(config)
        feed.add_mapper(map_record)

        body = open_s3_body(
            bucket,
            key,
            region_name=config.aws_region,
            endpoint_url=config.s3_endpoint_url,
        )
        try:
            result = feed.write(iter_json_lines(body.iter_lines()))
        finally:
            body.close()

        return build_response(
            200,
            {
                "message": "Feed written",
                "source": {"bucket": bucket, "key": key},
                "result": result.to_dict(),
            },
            start_time,
        )

    except FeedError as e:
        logger.error(
            f"Feed error: {e.message}",
            extra={"extra_data": e.to_dict()},
        )
        return build_response(
            500 if e.retryable else 400,
            {"error": e.to_dict()},
            start_time,
        )

    except Exception as e:
        logger.error(f"Unexpected error: {e}", exc_info=True)
        return build_response(
            500,
            {"error": {"type": type(e).__name__, "message": str(e)}},
            start_time,
        )


def build_response(status_code: int, body: dict, start_time: float) -> dict:
    """Build Lambda response with timing metadata."""
    duration_ms = (time.perf_counter() - start_time) * 1000

    body["durationMs"] = round(duration_ms, 2)

    logger.info(
        "Lambda invocation complete",
        extra={
            "status_code": status_code,
            "duration_ms": round(duration_ms, 2),
        },
    )

    return {
        "statusCode": status_code,
        "body": body,
    }
