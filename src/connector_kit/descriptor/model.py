"""Typed in-memory model of a connector descriptor.

A connector is authored as a loose mapping (see ``tests/fixtures/sample_connector.py``)
and converted once, by ``ConnectorDescriptor.from_mapping``, into these frozen
models. Anything that cannot be represented is rejected there with
``MalformedDescriptor`` instead of surfacing later at execution time.
"""

from collections.abc import Iterable, Iterator, Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator, model_validator

from connector_kit.descriptor.interfaces import (
    ActionExecutor,
    AuthorizationApplier,
    BaseUriResolver,
    ConnectionProbe,
    FieldResolver,
    FieldSource,
    TriggerPoller,
    WebhookHandler,
)
from connector_kit.errors import DanglingObjectReference, MalformedDescriptor


class ControlType(str, Enum):
    TEXT = "text"
    TEXT_AREA = "text-area"
    PLAIN_TEXT = "plain-text"
    PASSWORD = "password"
    SELECT = "select"
    MULTISELECT = "multiselect"
    CHECKBOX = "checkbox"
    NUMBER = "number"
    INTEGER = "integer"
    URL = "url"
    EMAIL = "email"
    PHONE = "phone"
    DATE = "date"
    DATE_TIME = "date_time"
    SUBDOMAIN = "subdomain"


class FieldType(str, Enum):
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATETIME = "datetime"
    OBJECT = "object"
    ARRAY = "array"


FIELD_TYPE_ALIASES = {
    "integer": FieldType.NUMBER,
    "date": FieldType.DATETIME,
    "date_time": FieldType.DATETIME,
    "timestamp": FieldType.DATETIME,
}


class AuthType(str, Enum):
    CUSTOM = "custom_auth"
    API_KEY = "api_key"
    BASIC = "basic_auth"
    OAUTH2 = "oauth2"
    NONE = "none"


class TriggerStrategy(str, Enum):
    POLL = "poll"
    WEBHOOK = "webhook"


def _no_fields(*_args) -> list:
    return []


def _no_headers(_connection) -> dict:
    return {}


class _Spec(BaseModel):
    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)


# -- fields --------------------------------------------------------------------


class ConnectionField(_Spec):
    """A credential or setting the user supplies when connecting."""

    name: str
    label: str = ""
    hint: str = ""
    optional: bool = False
    control_type: str = ControlType.TEXT.value

    @property
    def control(self) -> ControlType | None:
        """The known control type, or None when ``control_type`` is not one."""
        try:
            return ControlType(self.control_type)
        except ValueError:
            return None

    @property
    def is_secret(self) -> bool:
        return self.control is ControlType.PASSWORD


class SchemaField(_Spec):
    """One entry of an input, output or object-definition field sequence."""

    name: str
    type: FieldType = FieldType.STRING
    optional: bool = True
    label: str = ""
    hint: str = ""

    @field_validator("type", mode="before")
    @classmethod
    def _fold_aliases(cls, value):
        if isinstance(value, str) and value in FIELD_TYPE_ALIASES:
            return FIELD_TYPE_ALIASES[value]
        return value


def materialize_fields(items: Iterable[Any] | None, location: str) -> list[SchemaField]:
    """Evaluate a lazy field sequence into validated ``SchemaField`` objects.

    Raises MalformedDescriptor on an invalid entry or a duplicated name.
    """
    if items is None:
        return []
    if isinstance(items, (str, bytes, Mapping)):
        raise MalformedDescriptor("expected a sequence of fields", location)

    fields: list[SchemaField] = []
    seen: set[str] = set()
    for index, item in enumerate(items):
        try:
            field = item if isinstance(item, SchemaField) else SchemaField.model_validate(item)
        except ValidationError as e:
            raise MalformedDescriptor(_first_error(e), f"{location}[{index}]") from e
        if field.name in seen:
            raise MalformedDescriptor(f"duplicate field name '{field.name}'", location)
        seen.add(field.name)
        fields.append(field)
    return fields


# -- connection ----------------------------------------------------------------


class AuthorizationSpec(_Spec):
    type: AuthType = AuthType.NONE
    apply: AuthorizationApplier = _no_headers
    authorization_url: str | None = None
    token_url: str | None = None


class Connection(_Spec):
    fields: tuple[ConnectionField, ...] = ()
    authorization: AuthorizationSpec = AuthorizationSpec()
    base_uri: BaseUriResolver | None = None

    @model_validator(mode="after")
    def _unique_field_names(self):
        _check_unique([f.name for f in self.fields], "connection.fields")
        return self

    def field(self, name: str) -> ConnectionField | None:
        for f in self.fields:
            if f.name == name:
                return f
        return None


# -- object definitions --------------------------------------------------------


class ObjectDefinition(_Spec):
    name: str
    fields: FieldSource = _no_fields

    def resolve_fields(self) -> list[SchemaField]:
        return materialize_fields(self.fields(), f"object_definitions.{self.name}.fields")


class ObjectDefinitions(Mapping):
    """Read-only view handed to ``input_fields``/``output_fields`` resolvers.

    ``definitions["record"]`` yields the materialized fields of that object
    definition; an undeclared name raises DanglingObjectReference.
    """

    def __init__(self, definitions: Mapping[str, ObjectDefinition], owner: str = "descriptor"):
        self._definitions = definitions
        self.owner = owner

    def __getitem__(self, name: str) -> list[SchemaField]:
        definition = self._definitions.get(name)
        if definition is None:
            return self._missing(name)
        return definition.resolve_fields()

    def _missing(self, name: str) -> list[SchemaField]:
        raise DanglingObjectReference(self.owner, name)

    def __contains__(self, name: object) -> bool:
        return name in self._definitions

    def get(self, name, default=None):
        if name not in self._definitions:
            return default
        return self[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._definitions)

    def __len__(self) -> int:
        return len(self._definitions)


# -- actions & triggers --------------------------------------------------------


class ActionSpec(_Spec):
    name: str
    title: str = ""
    subtitle: str = ""
    description: str = ""
    input_fields: FieldResolver = _no_fields
    execute: ActionExecutor
    output_fields: FieldResolver = _no_fields


class TriggerSpec(_Spec):
    name: str
    title: str = ""
    subtitle: str = ""
    description: str = ""
    strategy: TriggerStrategy = TriggerStrategy.POLL
    input_fields: FieldResolver = _no_fields
    output_fields: FieldResolver = _no_fields
    poll: TriggerPoller | None = None
    webhook_notification: WebhookHandler | None = None

    @model_validator(mode="after")
    def _strategy_has_handler(self):
        if self.strategy is TriggerStrategy.POLL and self.poll is None:
            raise ValueError("poll trigger requires a 'poll' function")
        if self.strategy is TriggerStrategy.WEBHOOK and self.webhook_notification is None:
            raise ValueError("webhook trigger requires a 'webhook_notification' function")
        return self


# -- descriptor ----------------------------------------------------------------


class ConnectorDescriptor(_Spec):
    """Root of a connector: connection, actions, triggers and object definitions."""

    title: str = ""
    connection: Connection
    test: ConnectionProbe | None = None
    actions: dict[str, ActionSpec]
    triggers: dict[str, TriggerSpec] = {}
    object_definitions: dict[str, ObjectDefinition] = {}

    @classmethod
    def from_mapping(cls, raw: Mapping[str, Any]) -> "ConnectorDescriptor":
        """Build a descriptor from an authored mapping.

        ``actions``, ``triggers`` and ``object_definitions`` may be given as a
        mapping keyed by name or as a list of entries carrying a ``name`` key.
        """
        if not isinstance(raw, Mapping):
            raise MalformedDescriptor(f"descriptor must be a mapping, got {type(raw).__name__}")
        for key in ("connection", "actions"):
            if key not in raw:
                raise MalformedDescriptor(f"missing required key '{key}'")

        data = dict(raw)
        for section in ("actions", "triggers", "object_definitions"):
            if section in data:
                data[section] = _named_entries(data[section], section)

        try:
            return cls.model_validate(data)
        except ValidationError as e:
            loc = ".".join(str(p) for p in e.errors()[0]["loc"])
            raise MalformedDescriptor(_first_error(e), loc) from e

    def resolve_base_uri(self, connection_values: Mapping[str, str]) -> str:
        if self.connection.base_uri is None:
            return ""
        return str(self.connection.base_uri(connection_values))

    def list_actions(self) -> list[ActionSpec]:
        return list(self.actions.values())

    def list_triggers(self) -> list[TriggerSpec]:
        return list(self.triggers.values())

    def resolve_object_definition(self, name: str) -> ObjectDefinition:
        definition = self.object_definitions.get(name)
        if definition is None:
            raise DanglingObjectReference("descriptor", name)
        return definition

    def object_definitions_view(self, owner: str = "descriptor") -> ObjectDefinitions:
        return ObjectDefinitions(self.object_definitions, owner=owner)


def _named_entries(section: Any, kind: str) -> dict[str, Any]:
    """Normalize a mapping-or-list section into ``{name: entry}``."""
    entries: dict[str, Any] = {}
    if isinstance(section, Mapping):
        for name, entry in section.items():
            entries[name] = _with_name(entry, name, f"{kind}.{name}")
        return entries

    if isinstance(section, (list, tuple)):
        for index, entry in enumerate(section):
            name = entry.name if isinstance(entry, BaseModel) else (entry or {}).get("name")
            if not name:
                raise MalformedDescriptor("entry has no 'name'", f"{kind}[{index}]")
            if name in entries:
                raise MalformedDescriptor(f"duplicate name '{name}'", kind)
            entries[name] = entry
        return entries

    raise MalformedDescriptor(f"expected a mapping or list, got {type(section).__name__}", kind)


def _with_name(entry: Any, name: str, location: str) -> Any:
    if isinstance(entry, BaseModel):
        explicit = entry.name
    elif isinstance(entry, Mapping):
        explicit = entry.get("name", name)
    else:
        return entry
    if explicit != name:
        raise MalformedDescriptor(f"entry is named '{explicit}' but keyed as '{name}'", location)
    return entry if isinstance(entry, BaseModel) else {**entry, "name": name}


def _check_unique(names: list[str], location: str) -> None:
    seen: set[str] = set()
    for name in names:
        if name in seen:
            raise ValueError(f"duplicate field name '{name}' in {location}")
        seen.add(name)


def _first_error(e: ValidationError) -> str:
    err = e.errors()[0]
    return err["msg"]
