"""
Pytest Configuration and Shared Fixtures

Provides common test fixtures and configuration for the entire test suite.
"""

import json
import tempfile
from decimal import Decimal
from pathlib import Path
from typing import Any, Callable, Dict

import pytest

from dinkup_recon.config import ReconConfig
from dinkup_recon.matching.engine import ReconciliationEngine
from dinkup_recon.models.transaction import EmailPayload, Obligation
from dinkup_recon.storage import InMemoryObligationStore, InMemoryTransactionStore


@pytest.fixture
def temp_dir():
    """Create a temporary directory for test files."""
    with tempfile.TemporaryDirectory() as temp_path:
        yield Path(temp_path)


@pytest.fixture
def config() -> ReconConfig:
    """Default application configuration."""
    return ReconConfig()


@pytest.fixture
def make_payload() -> Callable[..., EmailPayload]:
    """Factory for notification payloads with realistic defaults."""

    def _make(subject: str, text: str = "", html: str = "", **kwargs) -> EmailPayload:
        return EmailPayload(
            from_address=kwargs.pop("from_address", "venmo@venmo.com"),
            to_address=kwargs.pop("to_address", "payments@dinkup.app"),
            subject=subject,
            text=text,
            html=html,
            **kwargs,
        )

    return _make


@pytest.fixture
def sample_obligation() -> Obligation:
    """Pending $20 obligation owed by John Smith."""
    return Obligation(id="abc123", amount=Decimal("20.00"), owing_party="John Smith")


@pytest.fixture
def transaction_store() -> InMemoryTransactionStore:
    return InMemoryTransactionStore()


@pytest.fixture
def obligation_store(sample_obligation) -> InMemoryObligationStore:
    return InMemoryObligationStore([sample_obligation])


@pytest.fixture
def engine(config, transaction_store, obligation_store) -> ReconciliationEngine:
    """Engine wired to in-memory stores seeded with the sample obligation."""
    return ReconciliationEngine(config, transaction_store, obligation_store)


@pytest.fixture
def sample_wire_payload() -> Dict[str, Any]:
    """Payload as posted by the mail forwarder."""
    return {
        "from": "venmo@venmo.com",
        "to": "payments@dinkup.app",
        "subject": "John Smith paid you $20.00",
        "text": "John Smith paid you $20.00\nNote: Pickleball Tuesday #dinkup-abc123",
        "html": "",
        "date": "Tue, 14 Jan 2025 19:02:11 +0000",
        "messageId": "<msg-001@venmo.com>",
    }


@pytest.fixture
def obligations_csv(temp_dir) -> Path:
    """Obligation ledger export with two pending rows and one paid row."""
    path = temp_dir / "obligations.csv"
    path.write_text(
        "id,amount,owing_party,status,correlation_tag,session_id\n"
        "abc123,20.00,John Smith,pending,,sess-1\n"
        "def456,$15.50,Mike Jones,pending,,sess-1\n"
        "ghi789,12.00,Alice Wong,paid,#dinkup-ghi789,sess-0\n"
    )
    return path


@pytest.fixture
def payload_json(temp_dir, sample_wire_payload) -> Path:
    """JSON file holding a tagged payment and an unrelated email."""
    path = temp_dir / "emails.json"
    path.write_text(
        json.dumps(
            [
                sample_wire_payload,
                {
                    "from": "venmo@venmo.com",
                    "to": "payments@dinkup.app",
                    "subject": "Your weekly Venmo summary",
                    "text": "Nothing to see here",
                },
            ]
        )
    )
    return path


# Test markers for categorizing tests
def pytest_configure(config):
    """Configure custom pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests for individual components")
    config.addinivalue_line(
        "markers", "integration: Integration tests for complete workflows"
    )
    config.addinivalue_line("markers", "parser: Tests for email and ledger parsing")
    config.addinivalue_line("markers", "matching: Tests for reconciliation matching")
    config.addinivalue_line("markers", "storage: Tests for ledger stores")
    config.addinivalue_line("markers", "concurrency: Tests that race threads")
