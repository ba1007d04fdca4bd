"""Run one real dispatcher call against a demo contract and print the verdict.

Usage (from repo root):
    python backend/scripts/smoke_completion.py --model openai/gpt-4o-mini

Usage (from backend/):
    python scripts/smoke_completion.py
"""

from __future__ import annotations

import argparse
import json
import sys
from dataclasses import asdict
from pathlib import Path

BACKEND_DIR = Path(__file__).resolve().parents[1]
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from app.db.session import SessionLocal
from app.models.batch_job import OUTPUT_SHAPE_SINGLE_OBJECT
from app.services.run_dispatcher import get_default_dispatcher
from scripts.demo_data import DEMO_DOCUMENTS, DEMO_SCHEMA, DEMO_SYSTEM_PROMPT, DEMO_USER_PROMPT


def main() -> None:
    parser = argparse.ArgumentParser(description="Dispatch a single extraction run.")
    parser.add_argument("--model", default="openai/gpt-4o-mini", help="provider/name model identifier")
    args = parser.parse_args()

    _, text = DEMO_DOCUMENTS[0]
    with SessionLocal() as db:
        dispatcher = get_default_dispatcher(db, [args.model])
    result = dispatcher.execute(
        document_id=0,
        document_text=text,
        model=args.model,
        system_prompt=DEMO_SYSTEM_PROMPT,
        user_prompt=DEMO_USER_PROMPT,
        schema=DEMO_SCHEMA,
        output_shape=OUTPUT_SHAPE_SINGLE_OBJECT,
    )
    summary = asdict(result)
    summary["validation_passed"] = result.validation_passed
    print(json.dumps(summary, indent=2, default=str))


if __name__ == "__main__":
    main()
