"""HTTP interaction recorder/replayer.

A ``Cassette`` wraps a live transport and persists request/response pairs to a
YAML file, so a connector test run against a real service once can be replayed
deterministically afterwards.

Modes:
    record  always call the live transport and persist every interaction
    replay  never call the live transport; unmatched requests raise NoMatchingInteraction
    once    replay matched requests, record the rest

Requests match on exact method and URI, plus the body when the outgoing
request has a non-empty one. Sensitive values are replaced by placeholder
tokens before anything is written, and outgoing requests are filtered the
same way before matching.
"""

import json
from collections.abc import Callable, Sequence
from enum import Enum
from pathlib import Path
from urllib.parse import quote, quote_plus

import structlog
import yaml
from pydantic import BaseModel

from connector_kit.errors import NoMatchingInteraction
from connector_kit.runtime.http import HttpRequest, HttpResponse, Transport

logger = structlog.get_logger()

SensitiveDataFilter = Callable[[str], str]


class RecordMode(str, Enum):
    RECORD = "record"
    REPLAY = "replay"
    ONCE = "once"


class Interaction(BaseModel):
    method: str
    uri: str
    request_body: str | None = None
    response_status: int
    response_body: str = ""
    response_headers: dict[str, str] = {}

    def matches(self, request: HttpRequest) -> bool:
        if self.method != request.method or self.uri != request.uri:
            return False
        if request.body:
            return self.request_body == request.body
        return True

    def to_response(self) -> HttpResponse:
        return HttpResponse(status=self.response_status, headers=dict(self.response_headers), body=self.response_body)


def filter_sensitive_data(placeholder: str, secret: str | None) -> SensitiveDataFilter:
    """Build a filter replacing every occurrence of ``secret`` with ``placeholder``.

    The secret is also replaced in the encoded forms it takes on the wire:
    percent-encoded (path or query string) and escaped inside a JSON string.
    An empty secret yields a no-op filter.
    """
    if not secret:
        return lambda text: text
    variants = sorted(_encoded_forms(secret), key=len, reverse=True)

    def scrub(text: str) -> str:
        for variant in variants:
            text = text.replace(variant, placeholder)
        return text

    return scrub


def _encoded_forms(secret: str) -> set[str]:
    return {
        secret,
        quote(secret, safe=""),
        quote_plus(secret),
        json.dumps(secret)[1:-1],
        json.dumps(secret, ensure_ascii=False)[1:-1],
    }


def connection_filters(connection_values: dict[str, str]) -> list[SensitiveDataFilter]:
    """One filter per connection value, e.g. ``api_key`` -> ``<API_KEY>``."""
    # longest first so a secret containing another one is replaced whole
    items = sorted(connection_values.items(), key=lambda kv: len(kv[1] or ""), reverse=True)
    return [filter_sensitive_data(f"<{name.upper()}>", value) for name, value in items]


class Cassette:
    """A transport that records to and replays from a single fixture file."""

    def __init__(
        self,
        path: Path,
        mode: RecordMode | str = RecordMode.ONCE,
        filters: Sequence[SensitiveDataFilter] = (),
        transport: Transport | None = None,
    ):
        self.path = Path(path)
        self.mode = RecordMode(mode)
        self.filters = list(filters)
        self.transport = transport
        # record mode starts a fresh recording
        self.interactions: list[Interaction] = [] if self.mode is RecordMode.RECORD else self._load()

    def _load(self) -> list[Interaction]:
        if not self.path.exists():
            return []
        data = yaml.safe_load(self.path.read_text(encoding="utf-8")) or []
        return [Interaction.model_validate(item) for item in data]

    def save(self) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = [i.model_dump() for i in self.interactions]
        self.path.write_text(
            yaml.safe_dump(data, sort_keys=False, allow_unicode=True),
            encoding="utf-8",
        )

    def scrub(self, text: str) -> str:
        for f in self.filters:
            text = f(text)
        return text

    def _scrubbed_request(self, request: HttpRequest) -> HttpRequest:
        return HttpRequest(
            method=request.method.upper(),
            uri=self.scrub(request.uri),
            headers={},
            body=self.scrub(request.body) if request.body else None,
        )

    def find(self, request: HttpRequest) -> Interaction | None:
        """Return the first recorded interaction matching an (already scrubbed) request."""
        for interaction in self.interactions:
            if interaction.matches(request):
                return interaction
        return None

    def send(self, request: HttpRequest) -> HttpResponse:
        scrubbed = self._scrubbed_request(request)

        if self.mode is not RecordMode.RECORD:
            interaction = self.find(scrubbed)
            if interaction is not None:
                logger.debug("interaction_replayed", method=scrubbed.method, uri=scrubbed.uri)
                return interaction.to_response()
            if self.mode is RecordMode.REPLAY:
                raise NoMatchingInteraction(scrubbed.method, scrubbed.uri, scrubbed.body, str(self.path))

        return self._record(request, scrubbed)

    def _record(self, request: HttpRequest, scrubbed: HttpRequest) -> HttpResponse:
        if self.transport is None:
            raise NoMatchingInteraction(scrubbed.method, scrubbed.uri, scrubbed.body, str(self.path))

        response = self.transport.send(request)
        self.interactions.append(Interaction(
            method=scrubbed.method,
            uri=scrubbed.uri,
            request_body=scrubbed.body,
            response_status=response.status,
            response_body=self.scrub(response.body),
            response_headers={k: self.scrub(v) for k, v in response.headers.items()},
        ))
        self.save()
        logger.info("interaction_recorded", method=scrubbed.method, uri=scrubbed.uri, status=response.status)
        return response
