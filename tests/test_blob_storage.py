import io

import boto3
import pytest
from botocore.response import StreamingBody
from botocore.stub import ANY, Stubber

from library_catalog.core.exceptions import NotFoundError, StorageUnavailableError, ValidationError
from library_catalog.schemas.library import UploadedFile
from library_catalog.services.blob_storage_service import (
    InMemoryBlobStore,
    S3BlobStore,
    generate_key,
    release_blob,
    thumbnail_key_for,
    validate_upload,
)

BUCKET = "library-test"


@pytest.fixture
def s3_client():
    return boto3.client(
        "s3",
        region_name="us-east-1",
        aws_access_key_id="test",
        aws_secret_access_key="test",
        endpoint_url="http://localhost:9000"
    )


@pytest.fixture
def stubber(s3_client):
    with Stubber(s3_client) as stub:
        yield stub
        stub.assert_no_pending_responses()


@pytest.fixture
def s3_store(s3_client):
    return S3BlobStore(client=s3_client, bucket=BUCKET)


class TestS3BlobStore:

    def test_store_puts_object_under_upload_prefix(self, stubber, s3_store):
        stubber.add_response(
            "put_object",
            {"ETag": '"abc"'},
            {"Body": ANY, "Bucket": BUCKET, "Key": ANY, "ContentType": "application/pdf"}
        )

        key = s3_store.store_upload(UploadedFile(filename="Atlas.PDF", content=b"%PDF"))

        assert key.startswith("library/items/")
        assert key.endswith(".pdf")

    def test_load_reads_body(self, stubber, s3_store):
        body = StreamingBody(io.BytesIO(b"reef data"), len(b"reef data"))
        stubber.add_response("get_object", {"Body": body}, {"Bucket": BUCKET, "Key": "library/items/a.pdf"})

        assert s3_store.load("library/items/a.pdf") == b"reef data"

    def test_load_missing_key(self, stubber, s3_store):
        stubber.add_client_error("get_object", service_error_code="NoSuchKey", http_status_code=404)

        with pytest.raises(NotFoundError):
            s3_store.load("library/items/missing.pdf")

    def test_exists(self, stubber, s3_store):
        stubber.add_response("head_object", {}, {"Bucket": BUCKET, "Key": "library/items/a.pdf"})
        stubber.add_client_error("head_object", service_error_code="404", http_status_code=404)

        assert s3_store.exists("library/items/a.pdf") is True
        assert s3_store.exists("library/items/b.pdf") is False

    def test_backend_errors_become_storage_unavailable(self, stubber, s3_store):
        stubber.add_client_error("head_object", service_error_code="InternalError", http_status_code=500)
        stubber.add_client_error("delete_object", service_error_code="AccessDenied", http_status_code=403)

        with pytest.raises(StorageUnavailableError):
            s3_store.exists("library/items/a.pdf")
        with pytest.raises(StorageUnavailableError):
            s3_store.delete("library/items/a.pdf")

    def test_release_blob_swallows_backend_errors(self, stubber, s3_store):
        stubber.add_client_error("delete_object", service_error_code="InternalError", http_status_code=500)

        assert release_blob(s3_store, "library/items/a.pdf") is False


class TestUploadValidation:

    def test_empty_file(self):
        with pytest.raises(ValidationError):
            validate_upload(UploadedFile(filename="empty.pdf", content=b""))

    def test_path_traversal(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_upload(UploadedFile(filename="../../etc/passwd", content=b"x"))

        assert exc_info.value.context["filename"] == "../../etc/passwd"

    def test_oversized_file(self, monkeypatch):
        from library_catalog.core.config import settings

        monkeypatch.setattr(settings, "MAX_UPLOAD_SIZE", 4)

        with pytest.raises(ValidationError):
            validate_upload(UploadedFile(filename="big.pdf", content=b"12345"))
        validate_upload(UploadedFile(filename="ok.pdf", content=b"1234"))


class TestKeys:

    def test_generated_keys_are_unique(self):
        assert generate_key("a.pdf") != generate_key("a.pdf")

    def test_key_without_extension(self):
        key = generate_key("README", prefix="library/misc")

        assert key.startswith("library/misc/")
        assert "." not in key.rsplit("/", 1)[1]

    def test_thumbnail_key(self):
        assert thumbnail_key_for("library/items/1234.mp4") == "library/thumbnails/1234_thumb.mp4"


def test_in_memory_store_roundtrip():
    store = InMemoryBlobStore()
    key = store.store(b"data", suggested_name="notes.txt")

    assert store.exists(key)
    assert store.load(key) == b"data"
    assert store.delete(key) is True
    assert store.delete(key) is False
    with pytest.raises(NotFoundError):
        store.load(key)
