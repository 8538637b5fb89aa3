# Overview: Download gateway; resolves a purchase token to a short-lived file location.

"""
Download Gateway

WHY: Buyers get a bearer link, never a permanent storage location. Each
resolution produces a fresh presigned URL (SIGNED_URL_TTL_SECONDS) for
object storage, or a redirect to the legacy file host for products
uploaded before the object storage migration.

RULES:
- Unknown token -> TokenNotFound (404)
- Past expires_at -> TokenExpired (410), checked before any file lookup
- download_count is a usage counter, not a limit
- Multi-file products resolve one file per call (index 0 by default)
"""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import quote

from flask import current_app

from ..extensions import db
from ..models import DownloadToken, Product
from cifra.time_utils import utcnow, to_utc_z, to_utc_naive
from . import storage


LOCATION_SIGNED = "signed"
LOCATION_LEGACY = "legacy"


class DownloadError(Exception):
    """Base class for download resolution failures."""
    status_code = 400


class TokenNotFound(DownloadError):
    status_code = 404


class TokenExpired(DownloadError):
    status_code = 410


class NoFilesAvailable(DownloadError):
    status_code = 404


@dataclass(frozen=True)
class FileLocation:
    url: str
    kind: str
    file_index: int
    file_count: int


def _get_token(token: str) -> DownloadToken:
    if not token or not token.strip():
        raise TokenNotFound("Download link not found or invalid")
    record = db.session.query(DownloadToken).filter_by(token=token.strip()).first()
    if record is None:
        raise TokenNotFound("Download link not found or invalid")
    return record


def _file_refs(product: Product) -> tuple[str, list[str]]:
    keys = list(product.file_keys or [])
    if keys:
        return LOCATION_SIGNED, keys
    return LOCATION_LEGACY, list(product.legacy_files or [])


def _legacy_url(product: Product, filename: str) -> str:
    base = current_app.config["LEGACY_FILES_BASE_URL"]
    return f"{base}/{product.id}/{quote(filename)}"


def resolve(token: str, file_index: int = 0) -> FileLocation:
    """
    Resolve a download token to a file location and count the download.

    Raises:
        TokenNotFound, TokenExpired, NoFilesAvailable
        storage.StorageError: object storage unconfigured or signing failed
    """
    record = _get_token(token)

    if utcnow() > to_utc_naive(record.expires_at):
        raise TokenExpired("Download link has expired")

    product = db.session.get(Product, record.product_id)
    if product is None:
        raise NoFilesAvailable("No files available for this product")

    kind, refs = _file_refs(product)
    if not refs:
        raise NoFilesAvailable("No files available for this product")
    if file_index < 0 or file_index >= len(refs):
        raise NoFilesAvailable(f"File {file_index} does not exist for this product")

    if kind == LOCATION_SIGNED:
        url = storage.get_signed_url(refs[file_index], current_app.config.get("SIGNED_URL_TTL_SECONDS", 3600))
    else:
        url = _legacy_url(product, refs[file_index])

    db.session.query(DownloadToken).filter(DownloadToken.id == record.id).update(
        {
            DownloadToken.download_count: DownloadToken.download_count + 1,
            DownloadToken.used: True,
            DownloadToken.last_downloaded_at: utcnow(),
        },
        synchronize_session=False,
    )
    db.session.commit()

    current_app.logger.info("Resolved download for order %s (file %s/%s)", record.order_id, file_index + 1, len(refs))
    return FileLocation(url=url, kind=kind, file_index=file_index, file_count=len(refs))


def get_token_info(token: str) -> dict:
    """Landing-page details for a token; does not count as a download."""
    record = _get_token(token)
    product = db.session.get(Product, record.product_id)
    _, refs = _file_refs(product) if product else (None, [])
    return {
        "product_id": record.product_id,
        "product_title": product.title if product else None,
        "file_count": len(refs),
        "expires_at": to_utc_z(record.expires_at),
        "expired": utcnow() > to_utc_naive(record.expires_at),
        "download_count": record.download_count,
    }
