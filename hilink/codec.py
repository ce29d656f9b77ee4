"""XML codec and response classification for the HiLink protocol.

The device answers almost everything with HTTP 200 and reports failures
in-band::

    <?xml version="1.0" encoding="UTF-8"?>
    <error><code>125002</code><message></message></error>

so classification has to look at the body even when the status says success.
The pipeline only ever sees the tagged ``Outcome`` produced here; payload
schemas stay in ``hilink.models``.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional, Type, TypeVar, Union
from xml.parsers.expat import ExpatError

import xmltodict
from pydantic import BaseModel, ValidationError

from .errors import (
    BUSY_ERROR_CODES,
    NO_RIGHTS,
    TOKEN_ERROR_CODES,
    DecodingError,
    EncodingError,
    MalformedPayload,
    describe_code,
)

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

# Elements that may repeat and must always decode as lists
FORCE_LIST = ("Message", "Phone")


class OutcomeKind(str, Enum):
    """Classification of one exchange with the device."""
    SUCCESS = "success"
    AUTH_EXPIRED = "auth_expired"
    TOKEN_INVALID = "token_invalid"
    DEVICE_BUSY = "device_busy"
    TRANSPORT_FAILURE = "transport_failure"
    MALFORMED_PAYLOAD = "malformed_payload"
    REJECTED = "rejected"


@dataclass(frozen=True)
class Outcome:
    """Tagged result of classifying a response."""
    kind: OutcomeKind
    code: Optional[int] = None
    message: str = ""
    document: Optional[Dict[str, Any]] = None

    @property
    def retryable(self) -> bool:
        return self.kind in (OutcomeKind.TRANSPORT_FAILURE, OutcomeKind.DEVICE_BUSY)

    @classmethod
    def transport_failure(cls, message: str) -> "Outcome":
        return cls(OutcomeKind.TRANSPORT_FAILURE, message=message)


class XmlCodec:
    """Encode request models to XML and decode/classify XML responses."""

    def encode(self, payload: Union[BaseModel, bytes, None]) -> bytes:
        """Serialise a request payload as a ``<request>`` document."""
        if payload is None:
            return b""
        if isinstance(payload, bytes):
            return payload
        try:
            data = payload.model_dump(by_alias=True, exclude_none=True, mode="json")
            return xmltodict.unparse({"request": data}, encoding="UTF-8").encode("utf-8")
        except (AttributeError, TypeError, ValueError) as e:
            raise EncodingError(f"Failed to encode {type(payload).__name__}: {e}") from e

    def parse(self, body: bytes) -> Dict[str, Any]:
        """Parse raw bytes into a document dict, or raise MalformedPayload."""
        if not body or not body.strip():
            raise MalformedPayload("Empty response body")
        try:
            document = xmltodict.parse(body, force_list=FORCE_LIST)
        except (ExpatError, ValueError) as e:
            raise MalformedPayload(f"Response is not valid XML: {e}") from e
        if not isinstance(document, dict) or len(document) != 1:
            raise MalformedPayload("Response has no single root element")
        return document

    def decode(self, body: bytes, model: Type[T]) -> T:
        """Decode a ``<response>`` body into ``model``."""
        return self.decode_document(self.parse(body), model)

    def decode_document(self, document: Dict[str, Any], model: Type[T]) -> T:
        if "response" not in document:
            raise DecodingError(f"Expected <response> root, got <{next(iter(document))}>")
        content = document["response"]
        if content is None:
            content = {}
        elif isinstance(content, str):
            # Plain acknowledgements: <response>OK</response>
            content = {"OK": content.strip()}
        try:
            return model.model_validate(content)
        except ValidationError as e:
            raise DecodingError(f"Response does not match {model.__name__}: {e}") from e

    def classify(self, body: bytes, status: int) -> Outcome:
        """Derive the outcome of an exchange from HTTP status and body content."""
        if status in (401, 403):
            return Outcome(OutcomeKind.AUTH_EXPIRED, code=status, message=f"HTTP {status}")
        if status >= 500:
            return Outcome(OutcomeKind.DEVICE_BUSY, code=status, message=f"Server error: HTTP {status}")
        if not 200 <= status < 300:
            return Outcome(OutcomeKind.REJECTED, code=status, message=f"Client error: HTTP {status}")

        try:
            document = self.parse(body)
        except MalformedPayload as e:
            return Outcome(OutcomeKind.MALFORMED_PAYLOAD, message=str(e))

        root = next(iter(document))
        if root == "error":
            error = document["error"] or {}
            return self._classify_code(error.get("code") if isinstance(error, dict) else None,
                                       error.get("message") if isinstance(error, dict) else None,
                                       document)
        if root == "response":
            content = document["response"]
            if isinstance(content, dict) and content.get("ErrorCode") not in (None, "0"):
                return self._classify_code(content.get("ErrorCode"), content.get("ErrorMessage"), document,
                                           token_errors=False)
            return Outcome(OutcomeKind.SUCCESS, document=document)
        return Outcome(OutcomeKind.MALFORMED_PAYLOAD, message=f"Unexpected root element <{root}>")

    def _classify_code(self, raw_code: Optional[str], message: Optional[str],
                       document: Dict[str, Any], token_errors: bool = True) -> Outcome:
        try:
            code = int(str(raw_code).strip())
        except ValueError:
            return Outcome(OutcomeKind.MALFORMED_PAYLOAD, message=f"Invalid error code {raw_code!r}")

        text = message or describe_code(code)
        # Only a token code in an <error> document marks a request as rejected
        # before it took effect at the device.
        if token_errors and code in TOKEN_ERROR_CODES:
            kind = OutcomeKind.TOKEN_INVALID
        elif code == NO_RIGHTS:
            kind = OutcomeKind.AUTH_EXPIRED
        elif code in BUSY_ERROR_CODES:
            kind = OutcomeKind.DEVICE_BUSY
        else:
            kind = OutcomeKind.REJECTED
        logger.debug(f"Device error {code} classified as {kind.value}")
        return Outcome(kind, code=code, message=text, document=document)
