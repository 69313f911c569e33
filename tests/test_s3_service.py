import pytest
from botocore.exceptions import ClientError

from app.core.exceptions import InvalidArgument, StorageError
from app.services.s3_service import S3Service
from factories import StubS3Client


def _client_error():
    return ClientError({"Error": {"Code": "AccessDenied", "Message": "denied"}}, "PutObject")


async def test_upload_document_stores_object_under_type_and_user():
    client = StubS3Client()
    service = S3Service(s3_client=client, bucket_name="docs-bucket")

    stored = await service.upload_document(
        content=b"%PDF-1.4",
        filename="passport.PDF",
        content_type="application/pdf",
        user_id=42,
        document_type="id_document"
    )

    assert stored["s3_key"].startswith("id_document/42/")
    assert stored["s3_key"].endswith(".pdf")
    assert stored["file_size_bytes"] == 8
    assert stored["url"] == f"https://docs-bucket.s3.us-east-1.amazonaws.com/{stored['s3_key']}"

    call = client.put_calls[0]
    assert call["Bucket"] == "docs-bucket"
    assert call["ContentType"] == "application/pdf"
    assert call["Metadata"]["user-id"] == "42"


@pytest.mark.parametrize("document_type, content_type, content", [
    ("tax_return", "application/pdf", b"data"),
    ("id_document", "application/x-msdownload", b"data"),
    ("id_document", "application/pdf", b""),
])
async def test_rejected_documents_are_never_uploaded(document_type, content_type, content):
    client = StubS3Client()
    service = S3Service(s3_client=client, bucket_name="docs-bucket")

    with pytest.raises(InvalidArgument):
        await service.upload_document(content, "file.pdf", content_type, 1, document_type)

    assert client.put_calls == []


async def test_s3_failure_maps_to_storage_error():
    service = S3Service(s3_client=StubS3Client(fail_with=_client_error()), bucket_name="docs-bucket")

    with pytest.raises(StorageError) as exc_info:
        await service.upload_document(b"data", "a.png", "image/png", 1, "portfolio")

    assert exc_info.value.status_code == 502


async def test_delete_file_reports_success():
    client = StubS3Client()
    service = S3Service(s3_client=client, bucket_name="docs-bucket")

    assert await service.delete_file("portfolio/1/abc.png") is True
    assert client.deleted == ["portfolio/1/abc.png"]
