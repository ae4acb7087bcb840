"""
Relationship edge documents.

An edge is a JSON file {"from": {"/": "./a.json"}, "to": {"/": "./b.json"}}.
File names without an ordinal suffix (relationship_property_address.json)
are canonical; names ending in _<N>.json are one of many numbered edges.
Within one run and one output directory a given from->to signature is
written at most once, and a canonical file always replaces a numbered one.
"""
import os
import re
import logging
from dataclasses import dataclass
from typing import Dict, Optional

from .utils import write_json, remove_file_if_exists

logger = logging.getLogger(__name__)

ORDINAL_SUFFIX_PATTERN = re.compile(r"_\d+\.json$")


def is_canonical_name(file_name) -> bool:
    return not ORDINAL_SUFFIX_PATTERN.search(file_name)


def edge_signature(from_ref, to_ref) -> str:
    return f"{from_ref}->{to_ref}"


def relationship_body(from_ref, to_ref) -> Dict[str, Dict[str, str]]:
    return {
        "from": {"/": from_ref},
        "to": {"/": to_ref},
    }


def file_ref(file_name) -> str:
    """Relative pointer to a sibling entity file"""
    return f"./{file_name}"


@dataclass
class RegisteredEdge:
    file_name: str
    is_canonical: bool


class RelationshipRegistry:
    """Edges written so far in one run, per resolved output directory"""

    def __init__(self):
        self._directories: Dict[str, Dict[str, RegisteredEdge]] = {}

    def for_directory(self, directory) -> Dict[str, RegisteredEdge]:
        resolved = os.path.realpath(os.path.abspath(directory))
        return self._directories.setdefault(resolved, {})

    def lookup(self, directory, signature) -> Optional[RegisteredEdge]:
        return self.for_directory(directory).get(signature)

    def register(self, directory, signature, file_name, is_canonical):
        self.for_directory(directory)[signature] = RegisteredEdge(file_name, is_canonical)

    def forget(self, directory, signature):
        self.for_directory(directory).pop(signature, None)

    def __len__(self):
        return sum(len(entries) for entries in self._directories.values())


class RelationshipEdgeWriter:
    """Writes relationship files, skipping or promoting duplicates of the same signature"""

    def __init__(self, registry: Optional[RelationshipRegistry] = None, validator=None):
        self.registry = registry if registry is not None else RelationshipRegistry()
        self.validator = validator

    def _write(self, directory, file_name, body):
        if self.validator is not None:
            self.validator("relationship", body)
        write_json(os.path.join(directory, file_name), body)

    def write_edge(self, directory, file_name, from_ref, to_ref) -> bool:
        """Returns True when a file was written, False when the request was skipped"""
        signature = edge_signature(from_ref, to_ref)
        canonical = is_canonical_name(file_name)
        body = relationship_body(from_ref, to_ref)

        existing = self.registry.lookup(directory, signature)
        if existing is not None and not os.path.exists(os.path.join(directory, existing.file_name)):
            self.registry.forget(directory, signature)
            existing = None

        if existing is None:
            self.registry.register(directory, signature, file_name, canonical)
            self._write(directory, file_name, body)
            return True

        if canonical:
            # one canonical file per signature: drop the earlier file under its old name
            if existing.file_name != file_name:
                remove_file_if_exists(os.path.join(directory, existing.file_name))
                logger.debug(f"Replaced {existing.file_name} with canonical {file_name} ({signature})")
            self.registry.register(directory, signature, file_name, True)
            self._write(directory, file_name, body)
            return True

        if existing.is_canonical:
            logger.debug(f"Skipped {file_name}: canonical {existing.file_name} already holds {signature}")
            return False

        if existing.file_name != file_name:
            logger.debug(f"Skipped {file_name}: {existing.file_name} already holds {signature}")
            return False

        self._write(directory, file_name, body)
        return True
