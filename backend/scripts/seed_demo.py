"""Seed the model catalog and demo contracts, then create a pending batch job.

Usage (from repository root):
    python backend/scripts/seed_demo.py

Usage (from backend directory):
    python scripts/seed_demo.py
    # or
    python -m scripts.seed_demo
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from sqlalchemy import delete, select

# Make `app` imports work whether the script is run from repo root or backend/.
BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from app.db.session import SessionLocal
from app.models.batch_job import BatchJob
from app.models.document import Document
from app.models.language_model import LanguageModel
from app.schemas.batch import BatchJobCreate
from app.schemas.document import DocumentCreate
from app.services.batch_jobs import create_batch_job
from app.services.documents import create_document
from scripts.demo_data import (
    DEMO_DOCUMENTS,
    DEMO_MODELS,
    DEMO_OWNER,
    DEMO_SCHEMA,
    DEMO_SYSTEM_PROMPT,
    DEMO_USER_PROMPT,
)


def upsert_model_catalog(db) -> int:
    """Insert or refresh the demo model catalog entries."""

    for entry in DEMO_MODELS:
        row = db.scalar(select(LanguageModel).where(LanguageModel.identifier == entry["identifier"]))
        if row is None:
            row = LanguageModel(identifier=str(entry["identifier"]), display_name=str(entry["display_name"]))
            db.add(row)
        row.display_name = str(entry["display_name"])
        row.supports_json_mode = bool(entry["supports_json_mode"])
        row.price_in = float(entry["price_in"])
        row.price_out = float(entry["price_out"])
    db.commit()
    return len(DEMO_MODELS)


def reset_owner(db, owner: str) -> None:
    """Remove existing batch jobs and documents for the demo owner."""

    db.execute(delete(BatchJob).where(BatchJob.owner == owner))
    db.execute(delete(Document).where(Document.owner == owner))
    db.commit()


def parse_args() -> argparse.Namespace:
    """Parse script CLI arguments."""

    parser = argparse.ArgumentParser(description="Seed demo contracts and create a pending batch job.")
    parser.add_argument(
        "--owner",
        default=DEMO_OWNER,
        help=f"Owner to seed documents for (default: {DEMO_OWNER})",
    )
    parser.add_argument(
        "--no-reset",
        action="store_true",
        help="Do not delete existing batch jobs and documents for the owner before seeding.",
    )
    return parser.parse_args()


def main() -> None:
    """Seed demo data and print a short summary."""

    args = parse_args()
    owner: str = args.owner

    with SessionLocal() as db:
        if not args.no_reset:
            reset_owner(db, owner)

        model_count = upsert_model_catalog(db)
        documents = [
            create_document(db, DocumentCreate(owner=owner, filename=filename, full_text=text))
            for filename, text in DEMO_DOCUMENTS
        ]
        batch_job = create_batch_job(
            db,
            BatchJobCreate(
                owner=owner,
                name="Demo contract extraction",
                document_ids=[document.id for document in documents],
                models=[str(entry["identifier"]) for entry in DEMO_MODELS],
                system_prompt=DEMO_SYSTEM_PROMPT,
                user_prompt=DEMO_USER_PROMPT,
                output_shape="single-object",
                validation_schema=DEMO_SCHEMA,
            ),
        )
        batch_job_id = batch_job.id
        total_runs = batch_job.total_runs

    print("Seed complete")
    print(f"owner={owner}")
    print(f"models_seeded={model_count}")
    print(f"documents_created={len(documents)}")
    print(f"batch_job_id={batch_job_id}")
    print(f"total_runs={total_runs}")
    print()
    print("Next:")
    print(f"  POST /batches/{batch_job_id}/start")
    print(f"  GET /batches/{batch_job_id}/status")
    print(f"  GET /batches/{batch_job_id}/analytics")


if __name__ == "__main__":
    main()
