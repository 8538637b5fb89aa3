"""
Object storage adapter and upload route tests.

Presigning is a local computation in boto3, so it runs against the real
client with test credentials; uploads go to a stand-in client.
"""

import io
import re
from urllib.parse import urlparse, parse_qs

import pytest

from cifra.services import storage
from cifra.services.storage import StorageError


class FakeS3:
    def __init__(self, error=None):
        self.objects = {}
        self.error = error

    def put_object(self, Bucket, Key, Body, ContentType):
        if self.error:
            raise self.error
        self.objects[(Bucket, Key)] = (Body, ContentType)


@pytest.fixture
def fresh_s3(app, monkeypatch):
    monkeypatch.delitem(app.extensions, "cifra.s3", raising=False)
    yield
    app.extensions.pop("cifra.s3", None)


@pytest.fixture
def fake_s3(app, monkeypatch):
    fake = FakeS3()
    monkeypatch.setitem(app.extensions, "cifra.s3", fake)
    return fake


# =============================================================================
# SIGNED URLS
# =============================================================================


class TestSignedUrl:

    def test_presigned_get(self, app, fresh_s3):
        url = storage.get_signed_url("products/1/finance-tracker.zip")

        parsed = urlparse(url)
        query = parse_qs(parsed.query)
        assert "products/1/finance-tracker.zip" in parsed.path
        assert query["X-Amz-Algorithm"] == ["AWS4-HMAC-SHA256"]
        assert query["X-Amz-Expires"] == ["3600"]
        assert "X-Amz-Signature" in query

    def test_custom_ttl(self, app, fresh_s3):
        url = storage.get_signed_url("products/1/a.zip", 120)
        assert "X-Amz-Expires=120" in url

    def test_client_cached_per_app(self, app, fresh_s3):
        storage.get_signed_url("products/1/a.zip")
        first = app.extensions["cifra.s3"]
        storage.get_signed_url("products/1/b.zip")
        assert app.extensions["cifra.s3"] is first

    def test_not_configured(self, app, fresh_s3, monkeypatch):
        monkeypatch.setitem(app.config, "S3_SECRET_ACCESS_KEY", "")

        with pytest.raises(StorageError):
            storage.get_signed_url("products/1/a.zip")

    def test_empty_key(self, app):
        with pytest.raises(StorageError):
            storage.get_signed_url("")


# =============================================================================
# OBJECT KEYS AND UPLOADS
# =============================================================================


class TestObjectKeys:

    def test_sanitizes_filename(self):
        key = storage.build_object_key("products", "My File (final).zip")
        assert re.fullmatch(r"products/\d+-My_File__final_\.zip", key)

    def test_nested_folder(self):
        key = storage.build_object_key("covers/7", "cover.png")
        assert key.startswith("covers/7/")

    def test_path_traversal_dropped(self):
        key = storage.build_object_key("../../etc", "../passwd")
        assert ".." not in key.split("/")
        assert key.startswith("etc/")

    def test_empty_folder_defaults(self):
        assert storage.build_object_key("", "a.zip").startswith("products/")


class TestPutObject:

    def test_put(self, app, fake_s3):
        key = storage.put_object("products/1/a.zip", b"PK\x03\x04", "application/zip")

        assert key == "products/1/a.zip"
        assert fake_s3.objects[("cifra-test", "products/1/a.zip")] == (b"PK\x03\x04", "application/zip")

    def test_default_content_type(self, app, fake_s3):
        storage.put_object("products/1/a.bin", b"x")
        assert fake_s3.objects[("cifra-test", "products/1/a.bin")][1] == "application/octet-stream"

    def test_client_error(self, app, fake_s3):
        from botocore.exceptions import ClientError

        fake_s3.error = ClientError({"Error": {"Code": "AccessDenied", "Message": "Access Denied"}}, "PutObject")

        with pytest.raises(StorageError):
            storage.put_object("products/1/a.zip", b"x")


class TestUploadRoute:

    def test_upload(self, client, db_session, seller, auth_headers, fake_s3):
        resp = client.post(
            "/api/upload",
            headers=auth_headers,
            data={"file": (io.BytesIO(b"PK\x03\x04data"), "tracker.zip", "application/zip")},
            content_type="multipart/form-data",
        )

        assert resp.status_code == 201
        data = resp.get_json()
        assert data["success"] is True
        assert data["fileKey"].startswith(f"products/{seller.id}/")
        assert data["fileKey"].endswith("-tracker.zip")
        assert data["size"] == 8
        assert data["contentType"] == "application/zip"
        assert ("cifra-test", data["fileKey"]) in fake_s3.objects

    def test_cover_folder(self, client, db_session, seller, auth_headers, fake_s3):
        resp = client.post(
            "/api/upload",
            headers=auth_headers,
            data={"file": (io.BytesIO(b"\x89PNG"), "cover.png", "image/png"), "folder": "covers"},
            content_type="multipart/form-data",
        )

        assert resp.status_code == 201
        assert resp.get_json()["fileKey"].startswith(f"covers/{seller.id}/")

    def test_unknown_folder(self, client, db_session, auth_headers, fake_s3):
        resp = client.post(
            "/api/upload",
            headers=auth_headers,
            data={"file": (io.BytesIO(b"x"), "a.zip"), "folder": "../secrets"},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 400

    def test_file_required(self, client, db_session, auth_headers, fake_s3):
        resp = client.post("/api/upload", headers=auth_headers, data={}, content_type="multipart/form-data")
        assert resp.status_code == 400

    def test_requires_auth(self, client, db_session, fake_s3):
        resp = client.post(
            "/api/upload",
            data={"file": (io.BytesIO(b"x"), "a.zip")},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 401
        assert fake_s3.objects == {}

    def test_storage_failure(self, client, db_session, auth_headers, fake_s3):
        from botocore.exceptions import EndpointConnectionError

        fake_s3.error = EndpointConnectionError(endpoint_url="https://storage.test")

        resp = client.post(
            "/api/upload",
            headers=auth_headers,
            data={"file": (io.BytesIO(b"x"), "a.zip")},
            content_type="multipart/form-data",
        )
        assert resp.status_code == 500
