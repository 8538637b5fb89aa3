# Overview: Flask API routes for the download gateway; exchanges a purchase token for a file redirect.

from flask import Blueprint, request, jsonify, redirect, current_app

from ..services import download_service
from ..services.download_service import DownloadError
from ..services.storage import StorageError


downloads_bp = Blueprint("downloads", __name__, url_prefix="/api/download")


def _file_index():
    raw = request.args.get("file")
    if raw is None or raw == "":
        return 0
    # str.isdigit() also accepts superscripts and other scripts' digits
    if not (raw.isascii() and raw.isdigit()):
        return None
    return int(raw)


@downloads_bp.get("/<token>")
def download_route(token: str):
    """
    Redirect to a short-lived URL for one of the product's files.

    Query params:
    - file: int (optional) - zero-based file index, default 0

    Responses:
        302 to the file
        404 unknown token or missing file, 410 expired token,
        500 storage unavailable
    """
    file_index = _file_index()
    if file_index is None:
        return jsonify({"error": "file must be a non-negative integer"}), 400

    try:
        location = download_service.resolve(token, file_index)
    except DownloadError as e:
        return jsonify({"error": str(e)}), e.status_code
    except StorageError as e:
        current_app.logger.error("Storage unavailable for download: %s", e)
        return jsonify({"error": "File storage is unavailable"}), 500
    except Exception:
        current_app.logger.exception("Download resolution failed")
        return jsonify({"error": "Internal server error"}), 500

    return redirect(location.url, code=302)


@downloads_bp.get("/<token>/info")
def download_info_route(token: str):
    try:
        info = download_service.get_token_info(token)
    except DownloadError as e:
        return jsonify({"error": str(e)}), e.status_code
    return jsonify(info), 200
