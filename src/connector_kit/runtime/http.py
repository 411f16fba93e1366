"""HTTP plumbing: request/response models, transports, and the helper given to connectors."""

import json
from typing import Any, Protocol
from urllib.parse import urlencode

import requests
import structlog
from pydantic import BaseModel

from connector_kit.errors import ResponseError, Timeout, TransportError

logger = structlog.get_logger()

DEFAULT_TIMEOUT = 30.0


class HttpRequest(BaseModel):
    method: str
    uri: str
    headers: dict[str, str] = {}
    body: str | None = None


class HttpResponse(BaseModel):
    status: int
    headers: dict[str, str] = {}
    body: str = ""

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def header(self, name: str) -> str | None:
        name = name.lower()
        for key, value in self.headers.items():
            if key.lower() == name:
                return value
        return None

    def decoded(self) -> Any:
        """JSON-decode the body when it is JSON, else return the text."""
        if not self.body:
            return None
        content_type = self.header("content-type") or ""
        if "json" in content_type or self.body.lstrip()[:1] in ("{", "["):
            try:
                return json.loads(self.body)
            except ValueError:
                pass
        return self.body


class Transport(Protocol):
    """Anything that can perform one HTTP exchange."""

    def send(self, request: HttpRequest) -> HttpResponse: ...


class RequestsTransport:
    """Live transport backed by a ``requests.Session``."""

    def __init__(self, session: requests.Session | None = None, timeout: float = DEFAULT_TIMEOUT):
        self.session = session or requests.Session()
        self.timeout = timeout

    def send(self, request: HttpRequest) -> HttpResponse:
        try:
            resp = self.session.request(
                request.method,
                request.uri,
                headers=request.headers,
                data=request.body.encode("utf-8") if request.body is not None else None,
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            raise Timeout(request.method, request.uri) from e
        except requests.RequestException as e:
            raise TransportError(request.method, request.uri, str(e)) from e

        logger.debug("http_exchange", method=request.method, uri=request.uri, status=resp.status_code)
        return HttpResponse(status=resp.status_code, headers=dict(resp.headers), body=resp.text)


class ConnectorHttp:
    """HTTP helper passed to connector lambdas.

    Relative paths are resolved against the connection's base URI and the
    authorization headers are attached to every request. Responses are
    decoded (JSON when possible); an HTTP error status raises ResponseError.
    """

    def __init__(self, transport: Transport, base_uri: str = "", headers: dict[str, str] | None = None):
        self.transport = transport
        self.base_uri = base_uri
        self.headers = dict(headers or {})

    def resolve_uri(self, path: str, params: dict | None = None) -> str:
        if path.startswith(("http://", "https://")) or not self.base_uri:
            uri = path
        else:
            uri = f"{self.base_uri.rstrip('/')}/{path.lstrip('/')}"
        if params:
            query = urlencode(sorted(params.items()), doseq=True)
            uri = f"{uri}{'&' if '?' in uri else '?'}{query}"
        return uri

    def request(
        self,
        method: str,
        path: str,
        params: dict | None = None,
        payload: Any = None,
        headers: dict[str, str] | None = None,
    ) -> Any:
        all_headers = {**self.headers, **(headers or {})}
        body = None
        if payload is not None:
            body = json.dumps(payload, sort_keys=True, separators=(",", ":"))
            all_headers.setdefault("Content-Type", "application/json")

        req = HttpRequest(method=method.upper(), uri=self.resolve_uri(path, params), headers=all_headers, body=body)
        resp = self.transport.send(req)
        if resp.status >= 400:
            raise ResponseError(req.method, req.uri, resp.status, resp.body)
        return resp.decoded()

    def get(self, path: str, params: dict | None = None, **kwargs) -> Any:
        return self.request("GET", path, params=params, **kwargs)

    def post(self, path: str, payload: Any = None, **kwargs) -> Any:
        return self.request("POST", path, payload=payload, **kwargs)

    def put(self, path: str, payload: Any = None, **kwargs) -> Any:
        return self.request("PUT", path, payload=payload, **kwargs)

    def patch(self, path: str, payload: Any = None, **kwargs) -> Any:
        return self.request("PATCH", path, payload=payload, **kwargs)

    def delete(self, path: str, **kwargs) -> Any:
        return self.request("DELETE", path, **kwargs)
