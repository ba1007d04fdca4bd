"""Document store services."""

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.document import Document
from app.schemas.document import DocumentCreate


def create_document(db: Session, payload: DocumentCreate) -> Document:
    """Register already-extracted plain text as a document."""

    document = Document(owner=payload.owner, filename=payload.filename, full_text=payload.full_text)
    db.add(document)
    db.commit()
    db.refresh(document)
    return document


def get_documents_by_id(db: Session, document_ids: list[int]) -> dict[int, Document]:
    """Return documents keyed by ID; unknown IDs are simply absent."""

    if not document_ids:
        return {}
    rows = db.scalars(select(Document).where(Document.id.in_(document_ids)))
    return {document.id: document for document in rows}
