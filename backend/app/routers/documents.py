"""Document registration routes."""

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.db.dependencies import get_db
from app.schemas.common import ApiResponse
from app.schemas.document import DocumentCreate, DocumentRead
from app.services.documents import create_document


router = APIRouter(prefix="/documents")


@router.post("", response_model=ApiResponse[DocumentRead], status_code=201)
def register_document(
    payload: DocumentCreate,
    db: Session = Depends(get_db),
) -> ApiResponse[DocumentRead]:
    """Store already-extracted document text."""

    document = create_document(db, payload)
    return ApiResponse(data=DocumentRead.model_validate(document))
