import os
import logging
from functools import lru_cache

from jsonschema import validate, ValidationError

from .utils import load_json

logger = logging.getLogger(__name__)

SCHEMA_DIR = os.path.join(os.path.dirname(__file__), "schemas")


class RecordValidationError(Exception):
    """An emitted record does not satisfy its bundled schema"""

    def __init__(self, kind, path, message):
        self.kind = kind
        self.path = path
        self.message = message
        super().__init__(f"{kind} record invalid at {path}: {message}")

    def to_dict(self):
        return {"type": "error", "message": self.message, "path": self.path}


@lru_cache(maxsize=None)
def load_schema(kind):
    return load_json(os.path.join(SCHEMA_DIR, f"{kind}.json"))


def has_schema(kind):
    return os.path.exists(os.path.join(SCHEMA_DIR, f"{kind}.json"))


def validate_record(kind, record):
    """Validate a record against schemas/<kind>.json; kinds without a schema pass through"""
    if not has_schema(kind):
        return True
    try:
        validate(instance=record, schema=load_schema(kind))
        return True
    except ValidationError as e:
        path = ".".join([kind] + [str(part) for part in e.absolute_path])
        logger.error(f"Schema validation failed for {path}: {e.message}")
        raise RecordValidationError(kind, path, e.message) from e
