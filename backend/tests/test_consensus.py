"""Integration tests for cross-model consensus."""

from __future__ import annotations

import unittest

from sqlalchemy import create_engine, delete
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from app.models.base import Base, utc_now
from app.models.batch_job import BATCH_STATUS_COMPLETED, BatchJob
from app.models.document import Document
from app.models.run import RUN_STATUS_COMPLETED, RUN_STATUS_FAILED, Run
from app.schemas.consensus import ConsensusNotApplicable, ConsensusResult
from app.services.batch_jobs import DocumentNotFoundError
from app.services.consensus import (
    REASON_BINARY,
    REASON_DIFFERENT,
    REASON_FORMATTING,
    REASON_HIGH_VARIANCE,
    compute_consensus,
    disagreement_reason,
    levenshtein_similarity,
)

_SCHEMA = {
    "type": "object",
    "required": ["contract_name", "total_value"],
    "properties": {
        "contract_name": {"type": "string"},
        "total_value": {"type": "number"},
    },
}


class ConsensusTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls) -> None:
        cls.engine = create_engine(
            "sqlite+pysqlite:///:memory:",
            future=True,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
        cls.SessionLocal = sessionmaker(bind=cls.engine, autoflush=False, autocommit=False, future=True)
        Base.metadata.create_all(cls.engine)

    @classmethod
    def tearDownClass(cls) -> None:
        Base.metadata.drop_all(cls.engine)
        cls.engine.dispose()

    def setUp(self) -> None:
        self.db: Session = self.SessionLocal()
        self.db.execute(delete(Run))
        self.db.execute(delete(BatchJob))
        self.db.execute(delete(Document))
        self.db.commit()
        self.document = Document(owner="analyst", filename="contract.txt", full_text="Contract body")
        self.db.add(self.document)
        self.db.commit()

    def tearDown(self) -> None:
        self.db.close()

    def _batch(self, runs: list[tuple[str, object, int, bool]]) -> BatchJob:
        """Persist a completed batch; each run is (model, payload or None, execution ms, validated)."""

        batch_job = BatchJob(
            owner="analyst",
            name="Consensus",
            document_ids_json=[self.document.id],
            models_json=[model for model, _, _, _ in runs],
            system_prompt="Return JSON only.",
            user_prompt="Extract.",
            output_shape="single-object",
            validation_schema_json=_SCHEMA,
            status=BATCH_STATUS_COMPLETED,
            total_documents=1,
            completed_documents=1,
        )
        self.db.add(batch_job)
        self.db.flush()
        for model, payload, execution_ms, validated in runs:
            self.db.add(
                Run(
                    batch_job_id=batch_job.id,
                    document_id=self.document.id,
                    model=model,
                    status=RUN_STATUS_COMPLETED if payload is not None else RUN_STATUS_FAILED,
                    payload_json=payload,
                    json_valid=payload is not None,
                    attributes_valid=validated,
                    formats_valid=validated,
                    validation_passed=validated,
                    execution_time_ms=execution_ms,
                    completed_at=utc_now(),
                )
            )
        self.db.commit()
        return batch_job

    def test_two_of_three_agreement_is_disputed(self) -> None:
        batch_job = self._batch(
            [
                ("alpha/one", {"contract_name": "Supply Agreement", "total_value": 1250000}, 900, True),
                ("beta/two", {"contract_name": "Supply Agreement", "total_value": 1250000}, 400, True),
                ("gamma/three", {"contract_name": "Supply Contract", "total_value": 1250000}, 100, True),
            ]
        )

        result = compute_consensus(self.db, batch_job.id, self.document.id)

        self.assertIsInstance(result, ConsensusResult)
        self.assertEqual([entry.field for entry in result.disputed], ["contract_name"])
        disputed = result.disputed[0]
        self.assertAlmostEqual(disputed.agreement, 0.6667)
        self.assertEqual(disputed.plurality_value, "Supply Agreement")
        self.assertEqual(disputed.models_agreeing, ["alpha/one", "beta/two"])
        self.assertEqual(disputed.reason, REASON_BINARY)
        self.assertEqual([entry.field for entry in result.agreed], ["total_value"])
        self.assertEqual(result.agreed[0].agreement, 1.0)
        self.assertEqual(result.models_compared, ["alpha/one", "beta/two", "gamma/three"])

        # Every model matches the single agreed field, so the fastest one wins.
        self.assertEqual(result.recommendation.basis, "highest_agreement")
        self.assertEqual(result.recommendation.model, "gamma/three")
        self.assertEqual(result.recommendation.agreement_score, 1)
        self.assertEqual(result.warnings, [])

    def test_recommendation_prefers_more_agreed_fields_over_speed(self) -> None:
        batch_job = self._batch(
            [
                ("alpha/one", {"contract_name": "Supply", "total_value": 10, "currency": "USD"}, 800, True),
                ("beta/two", {"contract_name": "Supply", "total_value": 10, "currency": "USD"}, 500, True),
                ("gamma/three", {"contract_name": "Supply", "total_value": 10, "currency": "USD"}, 700, True),
                ("delta/four", {"contract_name": "Supply", "total_value": 99, "currency": "EUR"}, 50, True),
            ]
        )

        result = compute_consensus(self.db, batch_job.id, self.document.id)

        self.assertEqual(sorted(entry.field for entry in result.agreed), ["contract_name", "currency", "total_value"])
        self.assertEqual(result.recommendation.model, "beta/two")
        self.assertEqual(result.recommendation.agreement_score, 3)

    def test_unique_and_divergent_fields(self) -> None:
        batch_job = self._batch(
            [
                ("alpha/one", {"contract_name": "A", "total_value": 1, "notes": "x"}, 300, True),
                ("beta/two", {"contract_name": "B", "total_value": 1}, 200, True),
                ("gamma/three", {"contract_name": "C", "total_value": 1}, 100, True),
                ("delta/four", {"contract_name": "D", "total_value": 1}, 400, True),
            ]
        )

        result = compute_consensus(self.db, batch_job.id, self.document.id)

        self.assertEqual([entry.field for entry in result.unique], ["notes"])
        self.assertEqual(result.unique[0].models_present, ["alpha/one"])
        self.assertEqual([entry.field for entry in result.divergent], ["contract_name"])
        self.assertEqual(result.divergent[0].agreement, 0.25)
        self.assertEqual(result.divergent[0].reason, REASON_DIFFERENT)

    def test_without_agreed_fields_fastest_validated_run_is_recommended(self) -> None:
        batch_job = self._batch(
            [
                ("alpha/one", {"contract_name": "A", "total_value": 1}, 300, True),
                ("beta/two", {"contract_name": "B", "total_value": 2}, 100, False),
            ]
        )

        result = compute_consensus(self.db, batch_job.id, self.document.id)

        self.assertEqual(result.agreed, [])
        self.assertEqual(result.recommendation.basis, "fastest_validated")
        self.assertEqual(result.recommendation.model, "alpha/one")
        self.assertIn("No field reached the agreement threshold; compare the outputs manually", result.warnings)

    def test_integral_float_and_integer_values_agree(self) -> None:
        batch_job = self._batch(
            [
                ("alpha/one", {"contract_name": "Supply", "total_value": 100}, 300, True),
                ("beta/two", {"contract_name": "Supply", "total_value": 100.0}, 200, True),
            ]
        )

        result = compute_consensus(self.db, batch_job.id, self.document.id)

        self.assertEqual(sorted(entry.field for entry in result.agreed), ["contract_name", "total_value"])
        self.assertEqual(result.disputed, [])
        self.assertEqual(result.divergent, [])
        self.assertEqual(result.recommendation.agreement_score, 2)

    def test_near_identical_values_are_reported_as_formatting_differences(self) -> None:
        batch_job = self._batch(
            [
                ("alpha/one", {"contract_name": "Acme Corp", "total_value": 5}, 300, True),
                ("beta/two", {"contract_name": "Acme Corp.", "total_value": 5}, 200, True),
                ("gamma/three", {"contract_name": "ACME Corp", "total_value": 5}, 100, True),
            ]
        )

        result = compute_consensus(self.db, batch_job.id, self.document.id)

        self.assertEqual([entry.field for entry in result.disputed], ["contract_name"])
        self.assertEqual(result.disputed[0].reason, REASON_FORMATTING)
        self.assertIsNone(result.agreed[0].reason)

    def test_failed_and_unvalidated_runs_produce_warnings(self) -> None:
        batch_job = self._batch(
            [
                ("alpha/one", {"contract_name": "A", "total_value": 1}, 300, False),
                ("beta/two", {"contract_name": "A", "total_value": 1}, 200, False),
                ("gamma/three", None, 100, False),
                ("delta/four", None, 100, False),
            ]
        )

        result = compute_consensus(self.db, batch_job.id, self.document.id)

        self.assertIsInstance(result, ConsensusResult)
        self.assertEqual(
            result.warnings,
            [
                "50% of models failed to produce a parsed payload",
                "No model fully validated for this document; consider refining the prompts",
            ],
        )

    def test_fewer_than_two_parsed_payloads_is_not_applicable(self) -> None:
        batch_job = self._batch(
            [
                ("alpha/one", {"contract_name": "A", "total_value": 1}, 300, True),
                ("beta/two", None, 100, False),
            ]
        )

        result = compute_consensus(self.db, batch_job.id, self.document.id)

        self.assertIsInstance(result, ConsensusNotApplicable)
        self.assertFalse(result.applicable)
        self.assertEqual(result.successful_runs, 1)

    def test_document_outside_batch_raises(self) -> None:
        batch_job = self._batch([("alpha/one", {"contract_name": "A", "total_value": 1}, 300, True)])

        with self.assertRaises(DocumentNotFoundError):
            compute_consensus(self.db, batch_job.id, self.document.id + 1000)


class DisagreementReasonTests(unittest.TestCase):
    def test_many_distinct_values_are_high_variance(self) -> None:
        self.assertEqual(disagreement_reason(["a", "b", "c", "d", "e", "f"]), REASON_HIGH_VARIANCE)

    def test_two_unrelated_values_are_a_binary_split(self) -> None:
        self.assertEqual(disagreement_reason(["2024-01-01", "unknown"]), REASON_BINARY)

    def test_three_unrelated_values_differ_in_content(self) -> None:
        self.assertEqual(disagreement_reason([1, "net 30", True]), REASON_DIFFERENT)

    def test_levenshtein_similarity(self) -> None:
        self.assertEqual(levenshtein_similarity("same", "same"), 1.0)
        self.assertEqual(levenshtein_similarity("", "text"), 0.0)
        self.assertAlmostEqual(levenshtein_similarity("kitten", "sitting"), 1 - 3 / 7)


if __name__ == "__main__":
    unittest.main()
