"""Capabilities a connector implements.

Every callable embedded in a descriptor is one of these. Plain functions,
lambdas and objects defining ``__call__`` all satisfy them, so a connector
can be written as a literal mapping or as a set of small classes.
"""

from collections.abc import Iterable, Mapping
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from connector_kit.descriptor.model import ObjectDefinitions, SchemaField
    from connector_kit.runtime.http import ConnectorHttp

ConnectionValues = Mapping[str, str]
FieldLike = "SchemaField | Mapping[str, Any]"


@runtime_checkable
class AuthorizationApplier(Protocol):
    """Turns connection values into outbound header mutations."""

    def __call__(self, connection: ConnectionValues) -> Mapping[str, str]: ...


@runtime_checkable
class BaseUriResolver(Protocol):
    def __call__(self, connection: ConnectionValues) -> str: ...


@runtime_checkable
class FieldResolver(Protocol):
    """Produces a field sequence, optionally built from object definitions."""

    def __call__(self, object_definitions: "ObjectDefinitions") -> Iterable[FieldLike]: ...


@runtime_checkable
class FieldSource(Protocol):
    """Produces the fields of an object definition."""

    def __call__(self) -> Iterable[FieldLike]: ...


@runtime_checkable
class ActionExecutor(Protocol):
    def __call__(self, connection: ConnectionValues, input: Mapping[str, Any], http: "ConnectorHttp") -> Any: ...


@runtime_checkable
class ConnectionProbe(Protocol):
    def __call__(self, connection: ConnectionValues, http: "ConnectorHttp") -> Any: ...


@runtime_checkable
class TriggerPoller(Protocol):
    """Single poll: returns ``{"events": [...], "closure": <cursor>}``."""

    def __call__(
        self,
        connection: ConnectionValues,
        input: Mapping[str, Any],
        closure: Any,
        http: "ConnectorHttp",
    ) -> Mapping[str, Any]: ...


@runtime_checkable
class WebhookHandler(Protocol):
    def __call__(self, input: Mapping[str, Any], payload: Any) -> Any: ...
