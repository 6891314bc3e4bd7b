#!/usr/bin/env python3
"""Tests for loading notification emails from disk."""

import json

import pytest

from dinkup_recon.parsers.email_parser import EmailTransactionParser
from dinkup_recon.parsers.message_loader import load_payloads
from dinkup_recon.utils.exceptions import EmailParseError

SAMPLE_EML = b"""From: Venmo <venmo@venmo.com>
To: payments@dinkup.app
Subject: =?utf-8?q?John_Smith_paid_you_=2420.00?=
Date: Tue, 14 Jan 2025 19:02:11 +0000
Message-ID: <msg-eml@venmo.com>
MIME-Version: 1.0
Content-Type: multipart/mixed; boundary="BOUNDARY"

--BOUNDARY
Content-Type: text/plain; charset="utf-8"
Content-Disposition: attachment; filename="receipt.txt"

ATTACHMENT BODY
--BOUNDARY
Content-Type: text/plain; charset="utf-8"

John Smith paid you $20.00
Note: Pickleball #dinkup-abc123

--BOUNDARY
Content-Type: text/html; charset="utf-8"

<p>John Smith paid you $20.00</p>
--BOUNDARY--
"""


@pytest.mark.unit
@pytest.mark.parser
class TestJsonPayloads:
    """Test JSON delivery payloads."""

    def test_single_object(self, temp_dir, sample_wire_payload):
        """Test a file holding one payload object."""
        path = temp_dir / "one.json"
        path.write_text(json.dumps(sample_wire_payload))

        payloads = load_payloads(path)

        assert len(payloads) == 1
        assert payloads[0].subject == "John Smith paid you $20.00"
        assert payloads[0].message_id == "<msg-001@venmo.com>"
        assert payloads[0].from_address == "venmo@venmo.com"

    def test_numeric_headers_are_parsed(self, temp_dir, sample_wire_payload, config):
        """Test a numeric date or message id still yields a transaction."""
        sample_wire_payload.update({"date": 1700000000, "messageId": 42})
        path = temp_dir / "numeric.json"
        path.write_text(json.dumps(sample_wire_payload))

        payload = load_payloads(path)[0]
        parsed = EmailTransactionParser(config).parse(payload)

        assert payload.date == "1700000000"
        assert payload.message_id == "42"
        assert parsed.correlation_tag == "#dinkup-abc123"

    def test_list_of_objects(self, payload_json):
        """Test a file holding several payloads keeps their order."""
        payloads = load_payloads(payload_json)

        assert [p.subject for p in payloads] == [
            "John Smith paid you $20.00",
            "Your weekly Venmo summary",
        ]
        assert payloads[1].html == ""

    def test_wire_round_trip(self, temp_dir, sample_wire_payload):
        """Test the audit copy reproduces the delivered payload."""
        path = temp_dir / "one.json"
        path.write_text(json.dumps(sample_wire_payload))

        assert load_payloads(path)[0].to_dict() == sample_wire_payload

    def test_invalid_json(self, temp_dir):
        """Test malformed JSON raises EmailParseError."""
        path = temp_dir / "broken.json"
        path.write_text("{not json")

        with pytest.raises(EmailParseError):
            load_payloads(path)

    def test_non_object_entries(self, temp_dir):
        """Test list entries must be objects."""
        path = temp_dir / "strings.json"
        path.write_text(json.dumps(["John paid you $5"]))

        with pytest.raises(EmailParseError, match="Expected JSON objects"):
            load_payloads(path)


@pytest.mark.unit
@pytest.mark.parser
class TestEmlMessages:
    """Test raw RFC 822 messages."""

    @pytest.fixture
    def eml_path(self, temp_dir):
        path = temp_dir / "payment.eml"
        path.write_bytes(SAMPLE_EML)
        return path

    def test_headers_are_decoded(self, eml_path):
        """Test encoded subjects and plain headers are read."""
        payload = load_payloads(eml_path)[0]

        assert payload.subject == "John Smith paid you $20.00"
        assert payload.from_address == "Venmo <venmo@venmo.com>"
        assert payload.to_address == "payments@dinkup.app"
        assert payload.date == "Tue, 14 Jan 2025 19:02:11 +0000"
        assert payload.message_id == "<msg-eml@venmo.com>"

    def test_bodies_skip_attachments(self, eml_path):
        """Test the first inline text and html parts are used."""
        payload = load_payloads(eml_path)[0]

        assert payload.text.startswith("John Smith paid you $20.00")
        assert "#dinkup-abc123" in payload.text
        assert "ATTACHMENT" not in payload.text
        assert "<p>John Smith paid you $20.00</p>" in payload.html


@pytest.mark.unit
@pytest.mark.parser
class TestUnsupportedFiles:
    """Test file type and read failures."""

    def test_unsupported_extension(self, temp_dir):
        """Test unknown extensions are rejected."""
        path = temp_dir / "email.txt"
        path.write_text("John paid you $5")

        with pytest.raises(EmailParseError, match="Unsupported"):
            load_payloads(path)

    def test_missing_file(self, temp_dir):
        """Test read failures are wrapped."""
        with pytest.raises(EmailParseError):
            load_payloads(temp_dir / "missing.json")
