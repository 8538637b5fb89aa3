# Overview: S3-compatible object storage adapter (upload + presigned downloads).

from __future__ import annotations

import re
import time

import boto3
from botocore.client import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError
from flask import current_app


_UNSAFE_NAME_CHARS = re.compile(r"[^a-zA-Z0-9.-]")


class StorageError(Exception):
    """Raised when object storage is unconfigured or rejects a request."""


def _s3_client():
    """
    S3 client for the current app, created on first use.

    Clients are cached per Flask app (not per process) so tests and multiple
    apps with different credentials never share one.
    """
    cfg = current_app.config
    if not cfg.get("S3_ACCESS_KEY_ID") or not cfg.get("S3_SECRET_ACCESS_KEY"):
        raise StorageError("S3 storage not configured")

    client = current_app.extensions.get("cifra.s3")
    if client is None:
        client = boto3.client(
            "s3",
            endpoint_url=cfg.get("S3_ENDPOINT_URL") or None,
            region_name=cfg.get("S3_REGION"),
            aws_access_key_id=cfg["S3_ACCESS_KEY_ID"],
            aws_secret_access_key=cfg["S3_SECRET_ACCESS_KEY"],
            config=BotoConfig(signature_version="s3v4"),
        )
        current_app.extensions["cifra.s3"] = client
    return client


def build_object_key(folder: str, filename: str) -> str:
    """products/1734900000000-my_file.zip style keys; never trusts client names."""
    parts = [_UNSAFE_NAME_CHARS.sub("_", p) for p in (folder or "").split("/") if p and p not in (".", "..")]
    folder = "/".join(parts) or "products"
    safe_name = _UNSAFE_NAME_CHARS.sub("_", filename or "file") or "file"
    return f"{folder}/{int(time.time() * 1000)}-{safe_name}"


def put_object(key: str, data: bytes, content_type: str | None = None) -> str:
    """Store bytes under key (private ACL); returns the key."""
    try:
        _s3_client().put_object(
            Bucket=current_app.config["S3_BUCKET"],
            Key=key,
            Body=data,
            ContentType=content_type or "application/octet-stream",
        )
    except (BotoCoreError, ClientError) as exc:
        raise StorageError(f"Upload failed for {key}: {exc}")
    return key


def get_signed_url(key: str, ttl_seconds: int | None = None) -> str:
    """Time-boxed GET URL for a private object."""
    if not key:
        raise StorageError("Object key is required")
    expires_in = int(ttl_seconds or current_app.config.get("SIGNED_URL_TTL_SECONDS", 3600))
    try:
        return _s3_client().generate_presigned_url(
            "get_object",
            Params={"Bucket": current_app.config["S3_BUCKET"], "Key": key},
            ExpiresIn=expires_in,
        )
    except (BotoCoreError, ClientError) as exc:
        raise StorageError(f"Could not sign URL for {key}: {exc}")
