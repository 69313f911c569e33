"""
Document upload router
Stores user documents (ID documents, portfolio files, ...) in S3
"""

import logging

from fastapi import APIRouter, Depends, File, Form, UploadFile, status
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dependencies import get_current_user, read_upload
from app.core.exceptions import StorageError
from app.database import get_db, transaction
from app.models.upload import DocumentUpload
from app.models.user import User
from app.schemas.upload import DocumentUploadResponse
from app.services.s3_service import S3Service, get_s3_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/document", response_model=DocumentUploadResponse, status_code=status.HTTP_201_CREATED)
async def upload_document(
    file: UploadFile = File(...),
    document_type: str = Form(..., description="Kind of document, e.g. id_document or portfolio"),
    current_user: User = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    s3_service: S3Service = Depends(get_s3_service)
) -> DocumentUploadResponse:
    """
    Upload a document for the current user.

    Args:
        file: Document to upload
        document_type: Kind of document (must be an allowed type)
        current_user: Current authenticated user
        db: Database session
        s3_service: S3 storage

    Returns:
        DocumentUploadResponse: Stored document details

    Raises:
        InvalidArgument: If the file type, size or document type is rejected
        NotConfigured: If S3 is not configured
        StorageError: If the upload fails
    """
    content = await read_upload(file)
    content_type = file.content_type or "application/octet-stream"

    stored = await s3_service.upload_document(
        content=content,
        filename=file.filename,
        content_type=content_type,
        user_id=current_user.user_id,
        document_type=document_type
    )

    try:
        async with transaction(db):
            upload = DocumentUpload(
                user_id=current_user.user_id,
                document_type=document_type,
                original_filename=file.filename,
                content_type=content_type,
                file_size_bytes=stored['file_size_bytes'],
                s3_key=stored['s3_key'],
                url=stored['url']
            )
            db.add(upload)
    except SQLAlchemyError as e:
        logger.error(f"Failed to save upload record for {stored['s3_key']}: {e}")
        # Remove the orphaned object
        await s3_service.delete_file(stored['s3_key'])
        raise StorageError("Failed to save the uploaded document. Please try again.")

    return DocumentUploadResponse.model_validate(upload)
