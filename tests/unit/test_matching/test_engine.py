#!/usr/bin/env python3
"""Tests for the reconciliation engine state machine."""

import threading
from decimal import Decimal

import pytest

from dinkup_recon.config import MatchingConfig, ReconConfig
from dinkup_recon.matching.engine import ReconciliationEngine
from dinkup_recon.models.transaction import (
    MatchMethod,
    Obligation,
    ObligationStatus,
    ReconciliationOutcome,
)
from dinkup_recon.storage import InMemoryObligationStore, InMemoryTransactionStore
from dinkup_recon.utils.exceptions import PersistenceError, SettlementError

TAGGED_TEXT = "John Smith paid you $20.00\nNote: Pickleball Tuesday #dinkup-abc123"


class FailingTransactionStore(InMemoryTransactionStore):
    def add(self, transaction):
        raise RuntimeError("disk full")


class FailingObligationStore(InMemoryObligationStore):
    def mark_paid(self, obligation_id, paid_at=None, notes=None):
        raise RuntimeError("connection reset")


class RacedObligationStore(InMemoryObligationStore):
    """Reports pending on lookup but loses every conditional update."""

    def mark_paid(self, obligation_id, paid_at=None, notes=None):
        return False


@pytest.mark.unit
@pytest.mark.matching
class TestReconciliationOutcomes:
    """Test the three terminal states."""

    def test_tag_and_amount_settle_obligation(
        self, engine, make_payload, transaction_store, obligation_store
    ):
        """Test a tagged payment with the right amount settles automatically."""
        result = engine.ingest(make_payload("John Smith paid you $20.00", text=TAGGED_TEXT))

        assert result.outcome == ReconciliationOutcome.AUTO_SETTLED
        assert result.is_settled
        assert result.match_method == MatchMethod.TAG_MATCH
        assert result.match_score == 1.0

        obligation = obligation_store.get("abc123")
        assert obligation.status == ObligationStatus.PAID
        assert obligation.paid_at is not None
        assert obligation.notes == "Auto-matched from payment email (#dinkup-abc123)"

        stored = transaction_store.get(result.transaction.id)
        assert stored.matched_obligation_id == "abc123"
        assert stored.match_method == MatchMethod.TAG_MATCH
        assert stored.review_required is False
        assert stored.processed is True
        assert stored.matched_at is not None

    def test_amount_and_name_flag_for_review(
        self, engine, make_payload, transaction_store, obligation_store
    ):
        """Test an untagged payment from a nickname is linked but not settled."""
        result = engine.ingest(make_payload("Johnny Smith paid you $20.00"))

        assert result.outcome == ReconciliationOutcome.FLAGGED_FOR_REVIEW
        assert result.match_method == MatchMethod.AMOUNT_NAME_MATCH
        assert result.obligation.id == "abc123"

        obligation = obligation_store.get("abc123")
        assert obligation.status == ObligationStatus.PENDING
        assert obligation.candidate_transaction_ids == [result.transaction.id]

        stored = transaction_store.get(result.transaction.id)
        assert stored.matched_obligation_id == "abc123"
        assert stored.match_method == MatchMethod.AMOUNT_NAME_MATCH
        assert stored.review_required is True
        assert stored.processed is False

    def test_tag_with_wrong_amount_is_unmatched(
        self, engine, make_payload, transaction_store, obligation_store
    ):
        """Test an amount mismatch blocks settlement without falling back."""
        text = "John Smith paid you $25.00\nNote: #dinkup-abc123"
        result = engine.ingest(make_payload("John Smith paid you $25.00", text=text))

        assert result.outcome == ReconciliationOutcome.UNMATCHED
        assert result.obligation.id == "abc123"
        assert obligation_store.get("abc123").status == ObligationStatus.PENDING
        assert not transaction_store.get(result.transaction.id).is_matched

    def test_no_match(self, engine, make_payload, transaction_store):
        """Test a payment nobody owes is stored unmatched."""
        result = engine.ingest(make_payload("Alice Wong paid you $7.00"))

        assert result.outcome == ReconciliationOutcome.UNMATCHED
        assert result.obligation is None
        assert transaction_store.list_unmatched() == [result.transaction]

    def test_unresolved_tag_falls_back_to_amount_and_name(self, engine, make_payload):
        """Test a tag that names no obligation still allows advisory matching."""
        text = "Note: Pickleball #dinkup-unknown"
        result = engine.ingest(make_payload("John Smith paid you $20.00", text=text))

        assert result.outcome == ReconciliationOutcome.FLAGGED_FOR_REVIEW

    def test_already_paid_obligation(self, engine, make_payload, obligation_store):
        """Test a re-delivered email never settles twice."""
        payload = make_payload("John Smith paid you $20.00", text=TAGGED_TEXT)

        first = engine.ingest(payload)
        paid_at = obligation_store.get("abc123").paid_at
        second = engine.ingest(payload)

        assert first.outcome == ReconciliationOutcome.AUTO_SETTLED
        assert second.outcome == ReconciliationOutcome.UNMATCHED
        assert "already paid" in second.reason
        assert obligation_store.get("abc123").paid_at == paid_at

    def test_narrowed_types_leave_others_unmatched(
        self, make_payload, transaction_store, obligation_store
    ):
        """Test types outside matching.eligible_types are recorded but never reconciled."""
        config = ReconConfig(matching=MatchingConfig(eligible_types=["payment_received"]))
        engine = ReconciliationEngine(config, transaction_store, obligation_store)

        result = engine.ingest(make_payload("You paid John Smith $20.00", text=TAGGED_TEXT))

        assert result.outcome == ReconciliationOutcome.UNMATCHED
        assert "not reconciled" in result.reason
        assert transaction_store.get(result.transaction.id) is not None
        assert obligation_store.get("abc123").status == ObligationStatus.PENDING

    def test_outgoing_payment_with_tag_settles(self, engine, make_payload, obligation_store):
        """Test every transaction type goes through the tag path by default."""
        result = engine.ingest(
            make_payload("You paid Sarah Jones $20.00", text="Pickleball #dinkup-abc123")
        )

        assert result.outcome == ReconciliationOutcome.AUTO_SETTLED
        assert obligation_store.get("abc123").status == ObligationStatus.PAID

    def test_non_transaction_email_is_discarded(self, engine, make_payload, transaction_store):
        """Test unclassifiable emails produce no record."""
        assert engine.ingest(make_payload("Your weekly summary", text=TAGGED_TEXT)) is None
        assert transaction_store.list_all() == []

    def test_raw_source_is_kept(self, engine, make_payload, transaction_store):
        """Test the delivered payload is stored verbatim."""
        payload = make_payload("Alice Wong paid you $7.00", message_id="<m1@venmo.com>")

        result = engine.ingest(payload)

        assert transaction_store.get(result.transaction.id).raw_source == payload.to_dict()


@pytest.mark.unit
@pytest.mark.matching
class TestMatchingConfiguration:
    """Test strategy switches from configuration."""

    def test_tag_settlement_disabled(self, make_payload, transaction_store, obligation_store):
        """Test tagged payments go through advisory matching when settlement is off."""
        config = ReconConfig(matching=MatchingConfig(tag_settlement_enabled=False))
        engine = ReconciliationEngine(config, transaction_store, obligation_store)

        result = engine.ingest(make_payload("John Smith paid you $20.00", text=TAGGED_TEXT))

        assert result.outcome == ReconciliationOutcome.FLAGGED_FOR_REVIEW
        assert obligation_store.get("abc123").status == ObligationStatus.PENDING

    def test_amount_name_disabled(self, make_payload, transaction_store, obligation_store):
        """Test untagged payments stay unmatched when advisory matching is off."""
        config = ReconConfig(matching=MatchingConfig(amount_name_enabled=False))
        engine = ReconciliationEngine(config, transaction_store, obligation_store)

        result = engine.ingest(make_payload("Johnny Smith paid you $20.00"))

        assert result.outcome == ReconciliationOutcome.UNMATCHED

    def test_request_received_reconciled_by_default(
        self, engine, make_payload, obligation_store
    ):
        """Test incoming requests are reconciled without extra configuration."""
        result = engine.ingest(make_payload("John Smith requests $20.00", text=TAGGED_TEXT))

        assert result.outcome == ReconciliationOutcome.AUTO_SETTLED
        assert obligation_store.get("abc123").status == ObligationStatus.PAID


@pytest.mark.unit
@pytest.mark.matching
class TestFailureSurfacing:
    """Test store failures propagate as domain errors."""

    def test_transaction_write_failure(self, config, make_payload, obligation_store):
        """Test a failed transaction write raises PersistenceError."""
        engine = ReconciliationEngine(config, FailingTransactionStore(), obligation_store)

        with pytest.raises(PersistenceError, match="disk full"):
            engine.ingest(make_payload("John Smith paid you $20.00", text=TAGGED_TEXT))

    def test_settlement_failure(self, config, make_payload, sample_obligation, transaction_store):
        """Test a failed obligation write raises SettlementError and leaves the record unmatched."""
        engine = ReconciliationEngine(
            config, transaction_store, FailingObligationStore([sample_obligation])
        )

        with pytest.raises(SettlementError, match="connection reset"):
            engine.ingest(make_payload("John Smith paid you $20.00", text=TAGGED_TEXT))

        stored = transaction_store.list_all()
        assert len(stored) == 1
        assert not stored[0].is_matched

    def test_lost_settlement_race(self, config, make_payload, sample_obligation, transaction_store):
        """Test losing the conditional update yields unmatched."""
        engine = ReconciliationEngine(
            config, transaction_store, RacedObligationStore([sample_obligation])
        )

        result = engine.ingest(make_payload("John Smith paid you $20.00", text=TAGGED_TEXT))

        assert result.outcome == ReconciliationOutcome.UNMATCHED
        assert not transaction_store.get(result.transaction.id).is_matched


@pytest.mark.unit
@pytest.mark.matching
@pytest.mark.concurrency
class TestConcurrentSettlement:
    """Test racing ingests of one tagged payment."""

    def test_obligation_settled_exactly_once(
        self, engine, make_payload, transaction_store, obligation_store
    ):
        """Test only one of many concurrent deliveries settles the obligation."""
        workers = 8
        barrier = threading.Barrier(workers)
        results = []

        def deliver():
            barrier.wait()
            results.append(
                engine.ingest(make_payload("John Smith paid you $20.00", text=TAGGED_TEXT))
            )

        threads = [threading.Thread(target=deliver) for _ in range(workers)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        outcomes = [r.outcome for r in results]
        assert outcomes.count(ReconciliationOutcome.AUTO_SETTLED) == 1
        assert outcomes.count(ReconciliationOutcome.UNMATCHED) == workers - 1
        assert len(transaction_store.list_all()) == workers
        assert len(transaction_store.list_matched()) == 1
        assert obligation_store.get("abc123").status == ObligationStatus.PAID


@pytest.mark.unit
@pytest.mark.matching
class TestBatchSummary:
    """Test batch ingest and summary statistics."""

    def test_summary_counts_and_amounts(self, config, make_payload):
        """Test every outcome is counted and totalled."""
        obligations = InMemoryObligationStore(
            [
                Obligation(id="abc123", amount=Decimal("20.00"), owing_party="John Smith"),
                Obligation(id="def456", amount=Decimal("15.50"), owing_party="Mike Jones"),
            ]
        )
        engine = ReconciliationEngine(config, InMemoryTransactionStore(), obligations)
        payloads = [
            make_payload("John Smith paid you $20.00", text=TAGGED_TEXT),
            make_payload("Michael Jones paid you $15.50"),
            make_payload("Alice Wong paid you $7.00"),
            make_payload("Your weekly summary"),
        ]

        results = engine.ingest_batch(payloads)
        summary = engine.generate_summary(results, len(payloads), processing_time=0.5)

        assert [r.outcome for r in results] == [
            ReconciliationOutcome.AUTO_SETTLED,
            ReconciliationOutcome.FLAGGED_FOR_REVIEW,
            ReconciliationOutcome.UNMATCHED,
        ]
        assert summary.emails_received == 4
        assert summary.discarded_count == 1
        assert summary.transaction_count == 3
        assert summary.auto_settled_count == 1
        assert summary.flagged_count == 1
        assert summary.unmatched_count == 1
        assert summary.settled_amount == Decimal("20.00")
        assert summary.flagged_amount == Decimal("15.50")
        assert summary.unmatched_amount == Decimal("7.00")
        assert summary.settlement_rate == pytest.approx(100 / 3)
        assert summary.match_rate == pytest.approx(200 / 3)
        assert summary.outcomes_by_type == {
            "payment_received": {"auto_settled": 1, "flagged_for_review": 1, "unmatched": 1}
        }
        assert summary.processing_time_seconds == 0.5

    def test_empty_summary(self, engine):
        """Test rates are zero when nothing was processed."""
        summary = engine.generate_summary([], 0, processing_time=0.0)

        assert summary.transaction_count == 0
        assert summary.settlement_rate == 0.0
        assert summary.match_rate == 0.0
