# Overview: Seller file upload route; streams multipart files into private object storage.

from flask import Blueprint, request, jsonify, current_app, g

from ..decorators import require_auth
from ..services import storage
from ..services.storage import StorageError


uploads_bp = Blueprint("uploads", __name__, url_prefix="/api")

ALLOWED_FOLDERS = {"products", "covers"}


@uploads_bp.post("/upload")
@require_auth
def upload_route():
    """
    Form fields:
    - file: the upload (required)
    - folder: products | covers (default products)

    Returns the object key to store on the product; files are private and
    only reachable through presigned URLs.
    """
    upload = request.files.get("file")
    if upload is None or not upload.filename:
        return jsonify({"error": "File is required"}), 400

    folder = request.form.get("folder") or "products"
    if folder not in ALLOWED_FOLDERS:
        return jsonify({"error": f"folder must be one of: {', '.join(sorted(ALLOWED_FOLDERS))}"}), 400

    data = upload.read()
    key = storage.build_object_key(f"{folder}/{g.current_seller.id}", upload.filename)
    try:
        storage.put_object(key, data, upload.mimetype)
    except StorageError as e:
        current_app.logger.error("Upload failed for seller %s: %s", g.current_seller.id, e)
        return jsonify({"error": str(e)}), 500

    return jsonify({
        "success": True,
        "fileKey": key,
        "fileName": upload.filename,
        "size": len(data),
        "contentType": upload.mimetype,
    }), 201
