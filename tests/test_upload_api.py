import pytest
from sqlalchemy import func, select

from app.config import get_settings
from app.main import app
from app.models.upload import DocumentUpload
from app.services.s3_service import S3Service, get_s3_service
from factories import StubS3Client, auth_headers, create_user


@pytest.fixture()
def s3_client(client):
    stub = StubS3Client()
    app.dependency_overrides[get_s3_service] = lambda: S3Service(s3_client=stub, bucket_name="docs-bucket")
    return stub


def _pdf(name="passport.pdf", content=b"%PDF-1.4 test"):
    return {"file": (name, content, "application/pdf")}


async def _upload_count(session_factory) -> int:
    async with session_factory() as session:
        return await session.scalar(select(func.count()).select_from(DocumentUpload))


async def test_document_upload_is_stored_and_recorded(client, db, s3_client, session_factory):
    user = await create_user(db)

    response = await client.post(
        "/api/v1/upload/document",
        files=_pdf(),
        data={"document_type": "id_document"},
        headers=auth_headers(user)
    )

    assert response.status_code == 201
    body = response.json()
    assert body["document_type"] == "id_document"
    assert body["original_filename"] == "passport.pdf"
    assert body["s3_key"].startswith(f"id_document/{user.user_id}/")
    assert body["url"].startswith("https://docs-bucket.s3.")
    assert s3_client.put_calls[0]["Key"] == body["s3_key"]
    assert await _upload_count(session_factory) == 1


async def test_upload_requires_authentication(client, s3_client):
    response = await client.post("/api/v1/upload/document", files=_pdf(), data={"document_type": "id_document"})

    assert response.status_code == 401
    assert s3_client.put_calls == []


async def test_unsupported_document_type_is_rejected(client, db, s3_client, session_factory):
    user = await create_user(db)

    response = await client.post(
        "/api/v1/upload/document",
        files=_pdf(),
        data={"document_type": "tax_return"},
        headers=auth_headers(user)
    )

    assert response.status_code == 400
    assert s3_client.put_calls == []
    assert await _upload_count(session_factory) == 0


async def test_failed_record_insert_removes_the_stored_object(client, db, s3_client, monkeypatch, session_factory):
    user = await create_user(db)
    # Same key twice makes the second insert violate the unique constraint
    monkeypatch.setattr(S3Service, "_generate_s3_key", lambda self, filename, user_id, document_type: "fixed/key.pdf")
    headers = auth_headers(user)

    first = await client.post(
        "/api/v1/upload/document", files=_pdf(), data={"document_type": "portfolio"}, headers=headers
    )
    second = await client.post(
        "/api/v1/upload/document", files=_pdf(), data={"document_type": "portfolio"}, headers=headers
    )

    assert first.status_code == 201
    assert second.status_code == 502
    assert second.json()["error"] == "server_error"
    assert s3_client.deleted == ["fixed/key.pdf"]
    assert await _upload_count(session_factory) == 1


async def test_oversized_request_is_refused_before_reading_the_body(client, db, s3_client, monkeypatch):
    user = await create_user(db)
    monkeypatch.setattr(get_settings(), "max_file_size_mb", 0)

    response = await client.post(
        "/api/v1/upload/document",
        files=_pdf(content=b"x" * (100 * 1024)),
        data={"document_type": "portfolio"},
        headers=auth_headers(user)
    )

    assert response.status_code == 413
    assert response.json()["message"] == "File too large. Maximum size: 0MB"
    assert s3_client.put_calls == []
