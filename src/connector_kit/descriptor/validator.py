"""Static validation of connector descriptors.

Runs every check and aggregates the findings instead of stopping at the first
problem. Resolvers are evaluated against recording probes only; validation
never touches the network.
"""

import re
from collections.abc import Iterator, Mapping
from enum import Enum
from typing import Any

import structlog
from pydantic import BaseModel

from connector_kit.descriptor.model import (
    AuthType,
    ConnectorDescriptor,
    ObjectDefinitions,
    SchemaField,
    materialize_fields,
)
from connector_kit.errors import (
    ConnectorKitError,
    DanglingObjectReference,
    InvalidDescriptor,
    InvalidIdentifier,
    MalformedDescriptor,
    UnknownControlType,
)

logger = structlog.get_logger()

IDENTIFIER_PATTERN = re.compile(r"^[a-z][a-z0-9_]*$")


class Severity(str, Enum):
    ERROR = "error"
    WARNING = "warning"


class Finding(BaseModel):
    """A single validation problem."""

    code: str  # name of the error class, e.g. DanglingObjectReference
    severity: Severity
    message: str
    location: str = ""


class ValidationResult(BaseModel):
    findings: list[Finding] = []

    @property
    def errors(self) -> list[Finding]:
        return [f for f in self.findings if f.severity is Severity.ERROR]

    @property
    def warnings(self) -> list[Finding]:
        return [f for f in self.findings if f.severity is Severity.WARNING]

    @property
    def ok(self) -> bool:
        return not self.errors

    def codes(self) -> list[str]:
        return [f.code for f in self.findings]

    def add(self, error: ConnectorKitError, location: str = "", severity: Severity = Severity.ERROR) -> None:
        self.findings.append(Finding(
            code=type(error).__name__,
            severity=severity,
            message=str(error),
            location=location,
        ))

    def raise_for_errors(self) -> None:
        if self.errors:
            raise InvalidDescriptor(self)


def validate(descriptor: ConnectorDescriptor | Mapping[str, Any]) -> ValidationResult:
    """Validate a descriptor, or an authored mapping that is built first."""
    result = ValidationResult()
    if not isinstance(descriptor, ConnectorDescriptor):
        try:
            descriptor = ConnectorDescriptor.from_mapping(descriptor)
        except MalformedDescriptor as e:
            result.add(e, location=e.location)
            return result

    _check_connection(descriptor, result)
    _check_object_references(descriptor, result)
    _check_identifiers(descriptor, result)

    logger.debug("descriptor_validated", errors=len(result.errors), warnings=len(result.warnings))
    return result


# -- (a) connection ------------------------------------------------------------


class _ConnectionProbe(Mapping):
    """Stands in for live connection values and records which keys are read."""

    def __init__(self, declared: list[str]):
        self._declared = declared
        self.read: set[str] = set()

    def __getitem__(self, key: str) -> str:
        self.read.add(key)
        return f"<{key}>"

    def __iter__(self) -> Iterator[str]:
        return iter(self._declared)

    def __len__(self) -> int:
        return len(self._declared)


def _check_connection(descriptor: ConnectorDescriptor, result: ValidationResult) -> None:
    connection = descriptor.connection
    for index, field in enumerate(connection.fields):
        location = f"connection.fields[{index}]"
        if not field.name.strip():
            result.add(MalformedDescriptor("connection field has an empty name"), location)
            continue
        if field.control is None:
            result.add(
                UnknownControlType(field.name, field.control_type),
                location,
                severity=Severity.WARNING,
            )

    declared = [f.name for f in connection.fields]
    probe = _ConnectionProbe(declared)
    resolvers = [("connection.authorization.apply", connection.authorization.apply)]
    if connection.base_uri is not None:
        resolvers.append(("connection.base_uri", connection.base_uri))
    for location, resolver in resolvers:
        try:
            resolver(probe)
        except Exception as e:
            result.add(MalformedDescriptor(f"raised {type(e).__name__}: {e}"), location)

    for name in sorted(probe.read - set(declared)):
        result.add(
            MalformedDescriptor(f"reads connection field '{name}' which is not declared"),
            "connection",
        )

    auth = connection.authorization
    if auth.type is AuthType.OAUTH2:
        for attr in ("authorization_url", "token_url"):
            if not getattr(auth, attr):
                result.add(MalformedDescriptor(f"oauth2 authorization requires '{attr}'"), "connection.authorization")


# -- (b) object references -----------------------------------------------------


class _RecordingDefinitions(ObjectDefinitions):
    """Object-definition view that records dangling names instead of raising."""

    def __init__(self, definitions, owner: str):
        super().__init__(definitions, owner=owner)
        self.dangling: list[str] = []

    def _missing(self, name: str) -> list[SchemaField]:
        if name not in self.dangling:
            self.dangling.append(name)
        return []


def _check_object_references(descriptor: ConnectorDescriptor, result: ValidationResult) -> None:
    for name, definition in descriptor.object_definitions.items():
        location = f"object_definitions.{name}"
        try:
            definition.resolve_fields()
        except MalformedDescriptor as e:
            result.add(e, e.location or location)
        except Exception as e:
            result.add(MalformedDescriptor(f"fields raised {type(e).__name__}: {e}"), location)

    specs = [("action", a) for a in descriptor.list_actions()]
    specs += [("trigger", t) for t in descriptor.list_triggers()]
    for kind, spec in specs:
        section = "actions" if kind == "action" else "triggers"
        for attr in ("input_fields", "output_fields"):
            location = f"{section}.{spec.name}.{attr}"
            view = _RecordingDefinitions(descriptor.object_definitions, owner=f"{kind} '{spec.name}' {attr}")
            try:
                materialize_fields(getattr(spec, attr)(view), location)
            except MalformedDescriptor as e:
                result.add(e, e.location or location)
            except Exception as e:
                result.add(MalformedDescriptor(f"raised {type(e).__name__}: {e}"), location)
            for missing in view.dangling:
                result.add(DanglingObjectReference(view.owner, missing), location)


# -- (c) identifiers -----------------------------------------------------------


def _check_identifiers(descriptor: ConnectorDescriptor, result: ValidationResult) -> None:
    for kind, section, names in (
        ("action", "actions", descriptor.actions),
        ("trigger", "triggers", descriptor.triggers),
    ):
        for name in names:
            if not IDENTIFIER_PATTERN.fullmatch(name):
                result.add(InvalidIdentifier(kind, name), f"{section}.{name}")
