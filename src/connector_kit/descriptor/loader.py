"""Connector file loading.

A connector file is a Python source file defining a module-level
``connector`` value: either an authored mapping or a ``ConnectorDescriptor``.
"""

import ast
import importlib.util
from pathlib import Path

import structlog

from connector_kit.descriptor.model import ConnectorDescriptor
from connector_kit.descriptor.validator import Finding, Severity
from connector_kit.errors import MalformedDescriptor

logger = structlog.get_logger()

CONNECTOR_ATTRIBUTE = "connector"


def check_source(file_path: Path) -> list[Finding]:
    """Statically check a connector file without executing it.

    Reports syntax errors and duplicated literal keys inside dict displays,
    which Python would otherwise collapse silently (last one wins).
    """
    try:
        text = file_path.read_text(encoding="utf-8")
    except UnicodeDecodeError as e:
        return [_malformed(f"not valid UTF-8 (byte {e.start})", file_path.name)]
    try:
        tree = ast.parse(text, filename=str(file_path))
    except SyntaxError as e:
        return [_malformed(f"SyntaxError: {e.msg}", f"{file_path.name}:{e.lineno}")]

    findings = []
    for node in ast.walk(tree):
        if not isinstance(node, ast.Dict):
            continue
        seen: dict[object, int] = {}
        for key in node.keys:
            if not isinstance(key, ast.Constant):
                continue
            if key.value in seen:
                findings.append(_malformed(
                    f"duplicate key {key.value!r} (first defined on line {seen[key.value]})",
                    f"{file_path.name}:{key.lineno}",
                ))
            else:
                seen[key.value] = key.lineno
    return findings


def load_connector(file_path: Path) -> ConnectorDescriptor:
    """Execute a connector file and build its descriptor."""
    value = _load_attribute(file_path)
    if isinstance(value, ConnectorDescriptor):
        return value
    descriptor = ConnectorDescriptor.from_mapping(value)
    logger.debug(
        "connector_loaded",
        path=str(file_path),
        actions=len(descriptor.actions),
        triggers=len(descriptor.triggers),
    )
    return descriptor


def load_connector_value(file_path: Path):
    """Return the raw ``connector`` value of a file, without building it."""
    return _load_attribute(file_path)


def _load_attribute(file_path: Path):
    if not file_path.is_file():
        raise MalformedDescriptor("connector file not found", str(file_path))

    module_name = f"_connector_kit_{file_path.stem}"
    spec = importlib.util.spec_from_file_location(module_name, file_path)
    if spec is None or spec.loader is None:
        raise MalformedDescriptor("not a Python source file", str(file_path))
    module = importlib.util.module_from_spec(spec)
    try:
        spec.loader.exec_module(module)
    except SyntaxError as e:
        raise MalformedDescriptor(f"SyntaxError: {e.msg}", f"{file_path.name}:{e.lineno}") from e
    except Exception as e:
        raise MalformedDescriptor(f"{type(e).__name__}: {e}", str(file_path)) from e

    if not hasattr(module, CONNECTOR_ATTRIBUTE):
        raise MalformedDescriptor(f"no module-level '{CONNECTOR_ATTRIBUTE}' defined", str(file_path))
    return getattr(module, CONNECTOR_ATTRIBUTE)


def _malformed(message: str, location: str) -> Finding:
    return Finding(code=MalformedDescriptor.__name__, severity=Severity.ERROR, message=message, location=location)
