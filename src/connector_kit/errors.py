"""Error taxonomy shared by every connector-kit component."""


class ConnectorKitError(Exception):
    """Base class for all connector-kit errors."""


# -- descriptor / validation ---------------------------------------------------


class MalformedDescriptor(ConnectorKitError):
    """The descriptor cannot be turned into a well-formed model."""

    def __init__(self, message: str, location: str = ""):
        self.location = location
        super().__init__(f"{location}: {message}" if location else message)


class UnknownControlType(ConnectorKitError):
    """A connection field uses a control type outside the known set (warning-level)."""

    def __init__(self, field_name: str, control_type: str):
        self.field_name = field_name
        self.control_type = control_type
        super().__init__(f"connection field '{field_name}' has unknown control type '{control_type}'")


class DanglingObjectReference(ConnectorKitError):
    """An output_fields resolver refers to an object definition that is not declared."""

    def __init__(self, owner: str, object_name: str):
        self.owner = owner
        self.object_name = object_name
        super().__init__(f"{owner} references undeclared object definition '{object_name}'")


class InvalidIdentifier(ConnectorKitError):
    """An action or trigger name is not a lower_snake_case identifier."""

    def __init__(self, kind: str, name: str):
        self.kind = kind
        self.name = name
        super().__init__(f"{kind} name '{name}' must match ^[a-z][a-z0-9_]*$")


class InvalidDescriptor(ConnectorKitError):
    """Validation produced hard failures; execution is refused."""

    def __init__(self, result):
        self.result = result
        lines = [f"  {f.code}: {f.message}" for f in result.errors]
        super().__init__("descriptor failed validation:\n" + "\n".join(lines))


# -- execution -----------------------------------------------------------------


class ActionNotFound(ConnectorKitError):
    def __init__(self, name: str, available: list[str], kind: str = "action"):
        self.name = name
        self.available = available
        self.kind = kind
        choices = ", ".join(available) or "none declared"
        super().__init__(f"{kind} '{name}' not found (available: {choices})")


class ExecutionError(ConnectorKitError):
    """A connector lambda or the transport beneath it failed."""

    def __init__(self, action: str, message: str):
        self.action = action
        super().__init__(f"{action}: {message}")


class SchemaMismatch(ConnectorKitError):
    def __init__(self, action: str, object_name: str):
        self.action = action
        self.object_name = object_name
        super().__init__(f"{action}: output_fields references unknown object definition '{object_name}'")


# -- transport -----------------------------------------------------------------


class TransportError(ConnectorKitError):
    """The HTTP exchange itself failed."""

    def __init__(self, method: str, uri: str, message: str):
        self.method = method
        self.uri = uri
        super().__init__(f"{method} {uri}: {message}")


class ResponseError(TransportError):
    """The remote side answered with an HTTP error status."""

    def __init__(self, method: str, uri: str, status: int, body: str = ""):
        self.status = status
        self.body = body
        super().__init__(method, uri, f"HTTP {status} {body[:200]}".rstrip())


class Timeout(TransportError):
    def __init__(self, method: str, uri: str):
        super().__init__(method, uri, "timed out")


class Cancelled(TransportError):
    def __init__(self, method: str, uri: str):
        super().__init__(method, uri, "cancelled")


class NoMatchingInteraction(ConnectorKitError):
    """Replay found no recorded interaction for the outgoing request."""

    def __init__(self, method: str, uri: str, body: str | None, cassette: str):
        self.method = method
        self.uri = uri
        self.body = body
        self.cassette = cassette
        detail = f" with body {body[:80]!r}" if body else ""
        super().__init__(f"no recorded interaction for {method} {uri}{detail} in {cassette}")


# -- deployment ----------------------------------------------------------------


class MissingCredential(ConnectorKitError):
    def __init__(self, what: str = "bearer token"):
        super().__init__(f"missing {what}: set CONNECTOR_KIT_API_TOKEN or pass -t/--token")


class RemoteRejected(ConnectorKitError):
    def __init__(self, endpoint: str, status: int, message: str):
        self.endpoint = endpoint
        self.status = status
        self.message = message
        super().__init__(f"{endpoint} rejected push (HTTP {status}): {message}")
