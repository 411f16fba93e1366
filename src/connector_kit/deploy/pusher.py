"""Deployment pusher: uploads a connector to a remote registry."""

import json

import structlog
from pydantic import BaseModel

from connector_kit.errors import MalformedDescriptor, MissingCredential, RemoteRejected
from connector_kit.runtime.http import HttpRequest, HttpResponse, RequestsTransport, Transport

logger = structlog.get_logger()


class PushResult(BaseModel):
    status: int
    connector_id: str | None = None
    message: str = ""


def push(
    descriptor_bytes: bytes,
    endpoint: str,
    bearer_token: str | None,
    notes: str | None = None,
    transport: Transport | None = None,
) -> PushResult:
    """Upload a point-in-time snapshot of a connector's source.

    Raises MissingCredential (before any network call) when no token is given,
    MalformedDescriptor when the source is not UTF-8,
    TransportError when the exchange fails, and RemoteRejected on a non-2xx
    answer.
    """
    if not bearer_token:
        raise MissingCredential()

    try:
        code = descriptor_bytes.decode("utf-8")
    except UnicodeDecodeError as e:
        raise MalformedDescriptor(f"connector source is not valid UTF-8 (byte {e.start})") from e

    payload = {"code": code}
    if notes:
        payload["notes"] = notes
    request = HttpRequest(
        method="POST",
        uri=endpoint,
        headers={
            "Authorization": f"Bearer {bearer_token}",
            "Content-Type": "application/json",
            "Accept": "application/json",
        },
        body=json.dumps(payload),
    )

    transport = transport or RequestsTransport()
    response = transport.send(request)
    if not response.ok:
        message = _diagnostic(response)
        logger.warning("push_rejected", endpoint=endpoint, status=response.status)
        raise RemoteRejected(endpoint, response.status, message)

    body = response.decoded()
    connector_id = None
    message = ""
    if isinstance(body, dict):
        raw_id = body.get("id") or body.get("connector_id")
        connector_id = str(raw_id) if raw_id is not None else None
        message = str(body.get("message", ""))
    logger.info("push_accepted", endpoint=endpoint, status=response.status, connector_id=connector_id)
    return PushResult(status=response.status, connector_id=connector_id, message=message)


def _diagnostic(response: HttpResponse) -> str:
    body = response.decoded()
    if isinstance(body, dict):
        for key in ("message", "error", "errors", "detail"):
            if body.get(key):
                value = body[key]
                return value if isinstance(value, str) else json.dumps(value)
    if isinstance(body, str) and body.strip():
        return body.strip()[:500]
    return f"HTTP {response.status}"
