import json
from unittest.mock import MagicMock

import pytest
import requests

from connector_kit.errors import ResponseError, Timeout, TransportError
from connector_kit.runtime.http import ConnectorHttp, HttpRequest, HttpResponse, RequestsTransport


def _transport(status=200, body='{"ok": true}', headers=None):
    transport = MagicMock()
    transport.send.return_value = HttpResponse(
        status=status,
        body=body,
        headers=headers if headers is not None else {"Content-Type": "application/json"},
    )
    return transport


class TestConnectorHttp:
    def test_resolve_relative_path(self):
        http = ConnectorHttp(_transport(), base_uri="https://acme.example.com/api/v1/")
        assert http.resolve_uri("/records/42") == "https://acme.example.com/api/v1/records/42"

    def test_resolve_absolute_path(self):
        http = ConnectorHttp(_transport(), base_uri="https://acme.example.com")
        assert http.resolve_uri("https://other.example.com/x") == "https://other.example.com/x"

    def test_params_are_sorted(self):
        http = ConnectorHttp(_transport(), base_uri="https://h")
        assert http.resolve_uri("/r", {"b": 2, "a": 1}) == "https://h/r?a=1&b=2"

    def test_get_sends_auth_headers_and_decodes_json(self):
        transport = _transport()
        http = ConnectorHttp(transport, base_uri="https://h", headers={"Authorization": "Bearer k"})
        assert http.get("/ping") == {"ok": True}
        sent = transport.send.call_args[0][0]
        assert sent.method == "GET"
        assert sent.uri == "https://h/ping"
        assert sent.headers["Authorization"] == "Bearer k"
        assert sent.body is None

    def test_post_serializes_payload(self):
        transport = _transport()
        http = ConnectorHttp(transport, base_uri="https://h")
        http.post("/records", payload={"name": "Widget", "active": True})
        sent = transport.send.call_args[0][0]
        assert sent.body == '{"active":true,"name":"Widget"}'
        assert sent.headers["Content-Type"] == "application/json"

    def test_error_status_raises(self):
        http = ConnectorHttp(_transport(status=404, body="not found", headers={}), base_uri="https://h")
        with pytest.raises(ResponseError) as exc:
            http.get("/records/9")
        assert exc.value.status == 404
        assert exc.value.uri == "https://h/records/9"

    def test_text_body_is_returned_as_is(self):
        http = ConnectorHttp(_transport(body="pong", headers={"Content-Type": "text/plain"}))
        assert http.get("https://h/ping") == "pong"


class TestRequestsTransport:
    def test_send(self):
        session = MagicMock()
        resp = MagicMock()
        resp.status_code = 201
        resp.headers = {"Content-Type": "application/json"}
        resp.text = '{"id": 1}'
        session.request.return_value = resp

        transport = RequestsTransport(session=session, timeout=5)
        result = transport.send(HttpRequest(method="POST", uri="https://h/r", body=json.dumps({"a": 1})))

        assert result.status == 201
        assert result.decoded() == {"id": 1}
        call_kwargs = session.request.call_args[1]
        assert call_kwargs["timeout"] == 5
        assert call_kwargs["data"] == b'{"a": 1}'

    def test_timeout(self):
        session = MagicMock()
        session.request.side_effect = requests.Timeout("slow")
        with pytest.raises(Timeout):
            RequestsTransport(session=session).send(HttpRequest(method="GET", uri="https://h"))

    def test_connection_error(self):
        session = MagicMock()
        session.request.side_effect = requests.ConnectionError("refused")
        with pytest.raises(TransportError, match="GET https://h"):
            RequestsTransport(session=session).send(HttpRequest(method="GET", uri="https://h"))
