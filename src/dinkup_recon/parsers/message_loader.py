"""
Load notification emails from disk.

Accepts raw RFC 822 messages (``.eml``) and JSON delivery payloads in the
shape the mail forwarder posts (``from``, ``to``, ``subject``, ``text``,
``html``, ``date``, ``messageId``), either one object or a list.
"""

from pathlib import Path
import email
import email.header
import email.message
import json
import logging

from ..models.transaction import EmailPayload
from ..utils.exceptions import EmailParseError

logger = logging.getLogger(__name__)


def load_payloads(file_path: Path, encoding: str = "utf-8") -> list[EmailPayload]:
    """
    Load one or more email payloads from a file.

    Args:
        file_path: Path to a .eml or .json file
        encoding: Text encoding for JSON files

    Returns:
        List of payloads

    Raises:
        EmailParseError: If the file cannot be read or decoded
    """
    suffix = file_path.suffix.lower()
    try:
        if suffix == ".eml":
            return [_load_eml(file_path)]
        if suffix == ".json":
            return _load_json(file_path, encoding)
    except EmailParseError:
        raise
    except (OSError, ValueError) as e:
        raise EmailParseError(f"Failed to read {file_path}: {e}") from e

    raise EmailParseError(f"Unsupported email file type: {file_path.name}")


def _load_json(file_path: Path, encoding: str) -> list[EmailPayload]:
    with open(file_path, "r", encoding=encoding) as f:
        data = json.load(f)

    items = data if isinstance(data, list) else [data]
    payloads: list[EmailPayload] = []
    for item in items:
        if not isinstance(item, dict):
            raise EmailParseError(f"Expected JSON objects in {file_path}, got {type(item).__name__}")
        payloads.append(EmailPayload.from_dict(item))

    logger.debug(f"Loaded {len(payloads)} payload(s) from {file_path}")
    return payloads


def _load_eml(file_path: Path) -> EmailPayload:
    with open(file_path, "rb") as f:
        msg = email.message_from_bytes(f.read())

    html_content, text_content = _extract_email_content(msg)

    return EmailPayload(
        from_address=_decode_header(msg.get("From", "")),
        to_address=_decode_header(msg.get("To", "")),
        subject=_decode_header(msg.get("Subject", "")),
        text=text_content,
        html=html_content,
        date=msg.get("Date"),
        message_id=msg.get("Message-ID"),
    )


def _extract_email_content(msg: email.message.Message) -> tuple[str, str]:
    """Return (html, text) bodies, taking the first part of each type."""
    html_content = ""
    text_content = ""

    parts = msg.walk() if msg.is_multipart() else [msg]
    for part in parts:
        if "attachment" in str(part.get("Content-Disposition", "")):
            continue

        content_type = part.get_content_type()
        if content_type not in ("text/html", "text/plain"):
            continue

        payload = part.get_payload(decode=True)
        if not payload or not isinstance(payload, bytes):
            continue

        charset = part.get_content_charset() or "utf-8"
        try:
            content = payload.decode(charset, errors="ignore")
        except LookupError:
            content = payload.decode("utf-8", errors="ignore")

        if content_type == "text/html" and not html_content:
            html_content = content
        elif content_type == "text/plain" and not text_content:
            text_content = content.strip()

    return html_content, text_content


def _decode_header(header: str) -> str:
    """Decode an RFC 2047 encoded header."""
    if not header:
        return ""

    decoded_parts = []
    for part, encoding in email.header.decode_header(header):
        if isinstance(part, bytes):
            try:
                decoded_parts.append(part.decode(encoding or "utf-8", errors="ignore"))
            except LookupError:
                decoded_parts.append(part.decode("utf-8", errors="ignore"))
        else:
            decoded_parts.append(part)

    return "".join(decoded_parts)
