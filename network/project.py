"""
Project Document

Version-tagged load/save of a switchgear project: devices (with protection
settings), connections (with bus groups and ratings) and interlock rules.
Runtime state such as faults and pending commands is never persisted.
"""

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Tuple, Union

from dataclasses_json import dataclass_json
from loguru import logger

from .components import Connection, Device, InterlockRule
from .topology import Network

SCHEMA_VERSION = "1.0"
SUPPORTED_MAJOR = 1


class ProjectFormatError(ValueError):
    """Raised when a project file cannot be read"""


@dataclass_json
@dataclass
class ProjectDocument:
    """Persisted layout of a mimic project"""
    schema_version: str = SCHEMA_VERSION
    devices: List[Device] = field(default_factory=list)
    connections: List[Connection] = field(default_factory=list)
    rules: List[InterlockRule] = field(default_factory=list)
    name: Optional[str] = None

    @classmethod
    def from_network(cls, network: Network, rules: Optional[List[InterlockRule]] = None,
                     name: Optional[str] = None) -> 'ProjectDocument':
        snapshot = network.snapshot()
        devices = snapshot.device_list()
        for device in devices:
            device.moving = False
        return cls(
            devices=devices,
            connections=snapshot.connection_list(),
            rules=list(rules or []),
            name=name,
        )

    def to_network(self) -> Tuple[Network, List[InterlockRule]]:
        """Build a live network and its rule list from the document"""
        return Network(self.devices, self.connections), list(self.rules)


def _check_version(version: str):
    try:
        major = int(str(version).split(".")[0])
    except ValueError:
        raise ProjectFormatError(f"Malformed schema version: {version!r}") from None
    if major != SUPPORTED_MAJOR:
        raise ProjectFormatError(
            f"Unsupported schema version {version} (expected {SUPPORTED_MAJOR}.x)"
        )


def parse_project(json_str: str) -> ProjectDocument:
    """Parse a project from its JSON text"""
    try:
        data = json.loads(json_str)
    except json.JSONDecodeError as e:
        raise ProjectFormatError(f"Project is not valid JSON: {e}") from e

    if not isinstance(data, dict):
        raise ProjectFormatError("Project root must be an object")

    _check_version(data.get("schema_version", ""))

    try:
        document = ProjectDocument.from_dict(data)
    except (KeyError, TypeError, ValueError) as e:
        raise ProjectFormatError(f"Invalid project content: {e}") from e

    for device in document.devices:
        device.moving = False

    return document


def serialize_project(document: ProjectDocument) -> str:
    return document.to_json(indent=2)


def save_project(document: ProjectDocument, path: Union[str, Path]) -> Path:
    """Write a project document to disk"""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(serialize_project(document), encoding="utf-8")
    logger.info(f"Project saved to {path} ({len(document.devices)} devices, "
                f"{len(document.connections)} connections, {len(document.rules)} rules)")
    return path


def load_project(path: Union[str, Path]) -> ProjectDocument:
    """Read a project document from disk"""
    path = Path(path)
    logger.info(f"Loading project from {path}...")
    document = parse_project(path.read_text(encoding="utf-8"))
    logger.info(f"Loaded project: {len(document.devices)} devices, {len(document.connections)} connections")
    return document
