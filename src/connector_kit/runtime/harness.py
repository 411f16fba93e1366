"""Execution harness: runs a connector's actions and triggers against a transport."""

from collections.abc import Mapping
from enum import Enum
from typing import Any

import structlog
from pydantic import BaseModel

from connector_kit.descriptor.model import ConnectorDescriptor, SchemaField, materialize_fields
from connector_kit.descriptor.validator import validate
from connector_kit.errors import (
    ActionNotFound,
    Cancelled,
    ConnectorKitError,
    DanglingObjectReference,
    ExecutionError,
    MalformedDescriptor,
    NoMatchingInteraction,
    SchemaMismatch,
    Timeout,
)
from connector_kit.runtime.http import ConnectorHttp, Transport

logger = structlog.get_logger()

# Outcomes a caller must see as-is rather than wrapped in ExecutionError.
PASSTHROUGH_ERRORS = (Timeout, Cancelled, NoMatchingInteraction)


class RunState(str, Enum):
    IDLE = "idle"
    VALIDATING = "validating"
    AUTHORIZING = "authorizing"
    INVOKING = "invoking"
    COMPLETED = "completed"
    VALIDATION_FAILED = "validation_failed"
    INVOCATION_FAILED = "invocation_failed"


class ActionResult(BaseModel):
    output: Any = None
    schema_fields: list[SchemaField] = []


class TriggerResult(BaseModel):
    events: list[Any] = []
    closure: Any = None
    schema_fields: list[SchemaField] = []


class ActionRun:
    """Tracks one run through the harness state machine."""

    def __init__(self, kind: str, name: str):
        self.kind = kind
        self.name = name
        self.state = RunState.IDLE
        self.error: Exception | None = None
        self.transitions: list[RunState] = [RunState.IDLE]

    def advance(self, state: RunState) -> None:
        self.state = state
        self.transitions.append(state)

    def fail(self, error: Exception) -> None:
        failed = RunState.VALIDATION_FAILED if self.state is RunState.VALIDATING else RunState.INVOCATION_FAILED
        self.error = error
        self.advance(failed)


class ExecutionHarness:
    """Resolves and invokes connector lambdas through a caller-supplied transport.

    The harness keeps no state between runs apart from ``history``; it never
    retries.
    """

    def __init__(self, transport: Transport):
        self.transport = transport
        self.history: list[ActionRun] = []

    # -- actions --------------------------------------------------------------

    def run(
        self,
        descriptor: ConnectorDescriptor,
        action_name: str,
        connection_values: Mapping[str, str],
        input: Mapping[str, Any] | None = None,
    ) -> ActionResult:
        input = dict(input or {})
        run = self._start("action", action_name)
        try:
            self._validate(descriptor)
            action = descriptor.actions.get(action_name)
            if action is None:
                raise ActionNotFound(action_name, sorted(descriptor.actions))
            self._check_required_input(descriptor, action, input)

            http = self._authorize(run, descriptor, connection_values)

            run.advance(RunState.INVOKING)
            output = self._invoke(action_name, action.execute, connection_values, input, http)
            schema = self._output_schema(descriptor, action_name, action.output_fields)
        except Exception as e:
            run.fail(e)
            logger.warning("action_failed", action=action_name, state=run.state.value, error=str(e))
            raise

        run.advance(RunState.COMPLETED)
        logger.info("action_completed", action=action_name)
        return ActionResult(output=output, schema_fields=schema)

    # -- triggers -------------------------------------------------------------

    def run_trigger(
        self,
        descriptor: ConnectorDescriptor,
        trigger_name: str,
        connection_values: Mapping[str, str],
        input: Mapping[str, Any] | None = None,
        closure: Any = None,
        payload: Any = None,
    ) -> TriggerResult:
        """Single poll, or a single webhook notification when ``payload`` is given."""
        input = dict(input or {})
        run = self._start("trigger", trigger_name)
        try:
            self._validate(descriptor)
            trigger = descriptor.triggers.get(trigger_name)
            if trigger is None:
                raise ActionNotFound(trigger_name, sorted(descriptor.triggers), kind="trigger")
            self._check_required_input(descriptor, trigger, input)

            http = self._authorize(run, descriptor, connection_values)

            run.advance(RunState.INVOKING)
            if trigger.poll is not None and payload is None:
                polled = self._invoke(trigger_name, trigger.poll, connection_values, input, closure, http)
                events, closure = self._poll_result(trigger_name, polled)
            elif trigger.webhook_notification is not None:
                event = self._invoke(trigger_name, trigger.webhook_notification, input, payload)
                events = [] if event is None else [event]
            else:
                raise ExecutionError(trigger_name, "poll trigger cannot handle a webhook payload")
            schema = self._output_schema(descriptor, trigger_name, trigger.output_fields)
        except Exception as e:
            run.fail(e)
            logger.warning("trigger_failed", trigger=trigger_name, state=run.state.value, error=str(e))
            raise

        run.advance(RunState.COMPLETED)
        logger.info("trigger_completed", trigger=trigger_name, events=len(events))
        return TriggerResult(events=events, closure=closure, schema_fields=schema)

    # -- connection test ------------------------------------------------------

    def test_connection(self, descriptor: ConnectorDescriptor, connection_values: Mapping[str, str]) -> Any:
        """Run the descriptor's connection probe, if it declares one."""
        run = self._start("connection", "test")
        try:
            self._validate(descriptor)
            http = self._authorize(run, descriptor, connection_values)
            run.advance(RunState.INVOKING)
            result = None
            if descriptor.test is not None:
                result = self._invoke("test", descriptor.test, connection_values, http)
        except Exception as e:
            run.fail(e)
            raise
        run.advance(RunState.COMPLETED)
        return result

    # -- steps ----------------------------------------------------------------

    def _start(self, kind: str, name: str) -> ActionRun:
        run = ActionRun(kind, name)
        self.history.append(run)
        run.advance(RunState.VALIDATING)
        return run

    def _validate(self, descriptor: ConnectorDescriptor) -> None:
        validate(descriptor).raise_for_errors()

    def _authorize(self, run: ActionRun, descriptor: ConnectorDescriptor, connection_values) -> ConnectorHttp:
        run.advance(RunState.AUTHORIZING)
        try:
            base_uri = descriptor.resolve_base_uri(connection_values)
            headers = dict(descriptor.connection.authorization.apply(connection_values) or {})
        except Exception as e:
            raise ExecutionError("authorization", f"{type(e).__name__}: {e}") from e
        return ConnectorHttp(self.transport, base_uri=base_uri, headers=headers)

    def _invoke(self, name: str, fn, *args) -> Any:
        try:
            return fn(*args)
        except PASSTHROUGH_ERRORS:
            raise
        except ConnectorKitError as e:
            raise ExecutionError(name, str(e)) from e
        except Exception as e:
            raise ExecutionError(name, f"{type(e).__name__}: {e}") from e

    def _check_required_input(self, descriptor: ConnectorDescriptor, spec, input: Mapping[str, Any]) -> None:
        view = descriptor.object_definitions_view(owner=f"{spec.name} input_fields")
        fields = materialize_fields(spec.input_fields(view), f"{spec.name}.input_fields")
        missing = [f.name for f in fields if not f.optional and input.get(f.name) in (None, "")]
        if missing:
            raise ExecutionError(spec.name, f"missing required input: {', '.join(missing)}")

    def _output_schema(self, descriptor: ConnectorDescriptor, name: str, resolver) -> list[SchemaField]:
        view = descriptor.object_definitions_view(owner=f"{name} output_fields")
        try:
            return materialize_fields(resolver(view), f"{name}.output_fields")
        except DanglingObjectReference as e:
            raise SchemaMismatch(name, e.object_name) from e
        except MalformedDescriptor as e:
            raise SchemaMismatch(name, str(e)) from e

    def _poll_result(self, name: str, polled: Any) -> tuple[list[Any], Any]:
        if not isinstance(polled, Mapping):
            raise ExecutionError(name, f"poll must return a mapping with 'events', got {type(polled).__name__}")
        return list(polled.get("events") or []), polled.get("closure")


def run(
    descriptor: ConnectorDescriptor,
    action_name: str,
    connection_values: Mapping[str, str],
    input: Mapping[str, Any] | None,
    transport: Transport,
) -> ActionResult:
    """Run one action through a fresh harness."""
    return ExecutionHarness(transport).run(descriptor, action_name, connection_values, input)
