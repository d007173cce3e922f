"""Signed, time-limited entry tokens (the QR payload shown at the venue gate).

A token is ``base64url(json({"p": <payload json>, "s": <hex hmac-sha256>}))`` where
the payload JSON is ``{"id": ticket_id, "issued_at": epoch_seconds, "version": 1}``
serialized with sorted keys and no whitespace. The signature covers the exact payload
string carried in the bundle, so verification never re-serializes anything.

The codec holds no state besides its configuration: callers may issue as often as
they like (live displays refresh roughly every 45s, downloaded PDFs embed a single
token). A token proves possession of a ticket id, not ownership; callers must
re-check the ticket's current status before admitting anyone.
"""
from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
import re
import time
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable

from loguru import logger

from gatepass.core.exceptions import ExpiredEntryTokenError, InvalidEntryTokenError

TOKEN_VERSION = 1
SIGNATURE_PATTERN = re.compile(r"^[0-9a-f]{64}\Z")


@dataclass(frozen=True)
class EntryToken:
    token: str
    ticket_id: str
    issued_at: int
    expires_at: int

    @property
    def issued_at_dt(self) -> datetime:
        return datetime.fromtimestamp(self.issued_at, tz=timezone.utc)

    @property
    def expires_at_dt(self) -> datetime:
        return datetime.fromtimestamp(self.expires_at, tz=timezone.utc)


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).rstrip(b"=").decode("ascii")


def _b64decode(text: str) -> bytes:
    padded = text + "=" * (-len(text) % 4)
    raw = base64.urlsafe_b64decode(padded.encode("ascii"))
    # Reject non-canonical encodings (e.g. altered unused trailing bits).
    if _b64encode(raw) != text:
        raise ValueError("non-canonical encoding")
    return raw


class EntryTokenCodec:
    def __init__(
        self,
        secret: str,
        ttl_seconds: int = 24 * 60 * 60,
        leeway_seconds: int = 60,
        clock: Callable[[], float] = time.time,
    ) -> None:
        if not secret:
            raise ValueError("Entry token secret must not be empty")
        if ttl_seconds <= 0:
            raise ValueError("Entry token ttl must be positive")
        self._key = secret.encode("utf-8")
        self.ttl_seconds = ttl_seconds
        self.leeway_seconds = leeway_seconds
        self._clock = clock

    def _sign(self, payload: str) -> str:
        return hmac.new(self._key, payload.encode("utf-8"), hashlib.sha256).hexdigest()

    def issue(self, ticket_id: str) -> EntryToken:
        if not ticket_id:
            raise ValueError("ticket_id is required")
        issued_at = int(self._clock())
        payload = json.dumps(
            {"id": str(ticket_id), "issued_at": issued_at, "version": TOKEN_VERSION},
            sort_keys=True,
            separators=(",", ":"),
        )
        bundle = json.dumps({"p": payload, "s": self._sign(payload)}, sort_keys=True, separators=(",", ":"))
        token = _b64encode(bundle.encode("utf-8"))
        logger.debug(f"Issued entry token for ticket {ticket_id}")
        return EntryToken(token=token, ticket_id=str(ticket_id), issued_at=issued_at, expires_at=issued_at + self.ttl_seconds)

    def verify(self, token: str) -> str:
        """Return the ticket id carried by ``token``.

        Raises InvalidEntryTokenError for anything malformed or badly signed and
        ExpiredEntryTokenError (a subclass) once the freshness window has passed.
        """
        try:
            bundle = json.loads(_b64decode((token or "").strip()))
            payload_text = bundle["p"]
            signature = bundle["s"]
            if not isinstance(payload_text, str) or not isinstance(signature, str):
                raise TypeError("bundle fields must be strings")
            if not SIGNATURE_PATTERN.match(signature):
                raise ValueError("signature must be 64 lower-case hex digits")
            expected = self._sign(payload_text)
        except (ValueError, TypeError, KeyError, UnicodeError, binascii.Error) as exc:
            raise InvalidEntryTokenError("Malformed entry token") from exc

        if not hmac.compare_digest(expected.encode("ascii"), signature.encode("ascii")):
            raise InvalidEntryTokenError("Entry token signature mismatch")

        try:
            payload = json.loads(payload_text)
            ticket_id = payload["id"]
            issued_at = payload["issued_at"]
            version = payload["version"]
        except (ValueError, TypeError, KeyError) as exc:
            raise InvalidEntryTokenError("Malformed entry token payload") from exc
        if version != TOKEN_VERSION or not isinstance(ticket_id, str) or not ticket_id:
            raise InvalidEntryTokenError("Unsupported entry token payload")
        if not isinstance(issued_at, int) or isinstance(issued_at, bool):
            raise InvalidEntryTokenError("Unsupported entry token payload")

        now = self._clock()
        if issued_at > now + self.leeway_seconds:
            raise InvalidEntryTokenError("Entry token issued in the future")
        if now - issued_at > self.ttl_seconds:
            raise ExpiredEntryTokenError()
        return ticket_id
