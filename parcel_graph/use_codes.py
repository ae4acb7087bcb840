"""
Property use-code classification.

Maps a scraped use-code label ("Single Family (0100)", "0400 Condominia",
"MFR Less Than 10 Units", ...) onto the canonical property attributes
(property_type, property_usage_type, ownership_estate_type, structure_form,
build_status). The table itself is data and lives in data/use_codes.json.
"""
import os
import re
import logging
from dataclasses import dataclass
from functools import lru_cache
from typing import Any, Dict, Iterable, List, Optional, Tuple

from .utils import load_json

logger = logging.getLogger(__name__)

LOCAL_DIR = os.path.dirname(__file__)
DEFAULT_TAXONOMY_PATH = os.path.join(LOCAL_DIR, "data", "use_codes.json")

PROPERTY_TYPE_PATH = "property.property_type"

# A code token: optional letters, digits, optional -/. separated digit groups, optional trailing alnum
CODE_TOKEN_PATTERN = re.compile(r"[A-Z]*\d+(?:[-.]\d+)*[A-Z0-9]*")
DIGIT_RUN_PATTERN = re.compile(r"\d+")


class TaxonomyError(ValueError):
    """The taxonomy table itself is inconsistent"""


class ClassificationError(Exception):
    """A raw use-code value could not be mapped to a property_type"""

    def __init__(self, raw_value, path=PROPERTY_TYPE_PATH, message=None):
        self.raw_value = raw_value
        self.path = path
        self.message = message or f'Missing property use mapping for label "{raw_value}".'
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "error",
            "message": self.message,
            "path": self.path,
            "value": self.raw_value,
        }


def normalize_use_label(value) -> str:
    """Upper-case, collapse every non-alphanumeric run to one space, trim"""
    if value is None:
        return ""
    return re.sub(r"[^A-Z0-9]+", " ", str(value).upper()).strip()


def extract_code_candidates(raw) -> List[str]:
    """Code-like tokens in order of appearance, each followed by its bare digit runs"""
    if raw is None:
        return []
    candidates = []
    for token in CODE_TOKEN_PATTERN.findall(str(raw).upper()):
        for candidate in [token] + DIGIT_RUN_PATTERN.findall(token):
            if candidate not in candidates:
                candidates.append(candidate)
    return candidates


@dataclass(frozen=True)
class UseCodeEntry:
    property_type: str
    descriptors: Tuple[str, ...] = ()
    code: Optional[str] = None
    property_usage_type: Optional[str] = None
    ownership_estate_type: Optional[str] = None
    structure_form: Optional[str] = None
    build_status: Optional[str] = None
    number_of_units_type: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "UseCodeEntry":
        descriptors = []
        for descriptor in data.get("descriptors") or []:
            if isinstance(descriptor, str) and descriptor.strip() and descriptor not in descriptors:
                descriptors.append(descriptor)
        code = data.get("code")
        return cls(
            property_type=data.get("property_type"),
            descriptors=tuple(descriptors),
            code=str(code).strip().upper() if code not in (None, "") else None,
            property_usage_type=data.get("property_usage_type"),
            ownership_estate_type=data.get("ownership_estate_type"),
            structure_form=data.get("structure_form"),
            build_status=data.get("build_status"),
            number_of_units_type=data.get("number_of_units_type"),
        )

    @property
    def label(self) -> str:
        if self.descriptors:
            return self.descriptors[0]
        return self.code or ""

    def to_property_attributes(self) -> Dict[str, Any]:
        return {
            "property_type": self.property_type,
            "property_usage_type": self.property_usage_type,
            "ownership_estate_type": self.ownership_estate_type,
            "structure_form": self.structure_form,
            "build_status": self.build_status,
        }


class UseCodeTaxonomy:
    """Immutable lookup table of use-code entries by code and by normalized descriptor"""

    def __init__(self, entries: Iterable[UseCodeEntry]):
        self._entries: Tuple[UseCodeEntry, ...] = tuple(entries)
        self._by_code: Dict[str, UseCodeEntry] = {}
        self._by_descriptor: Dict[str, UseCodeEntry] = {}

        for entry in self._entries:
            if not entry.property_type:
                raise TaxonomyError(f'Use-code entry "{entry.label}" does not include a property_type.')
            if entry.code:
                if entry.code in self._by_code:
                    raise TaxonomyError(f'Duplicate use code "{entry.code}" in taxonomy.')
                self._by_code[entry.code] = entry
            for descriptor in entry.descriptors:
                key = normalize_use_label(descriptor)
                if not key:
                    continue
                existing = self._by_descriptor.get(key)
                if existing is not None and existing is not entry:
                    raise TaxonomyError(
                        f'Duplicate use descriptor "{descriptor}" for entries '
                        f'"{existing.label}" and "{entry.label}".'
                    )
                self._by_descriptor[key] = entry

    @classmethod
    def from_dict(cls, data) -> "UseCodeTaxonomy":
        raw_entries = data.get("entries", []) if isinstance(data, dict) else data
        return cls(UseCodeEntry.from_dict(item) for item in raw_entries)

    @classmethod
    def load(cls, path=None) -> "UseCodeTaxonomy":
        path = path or DEFAULT_TAXONOMY_PATH
        taxonomy = cls.from_dict(load_json(path))
        logger.info(f"Loaded {len(taxonomy)} use-code entries from {path}")
        return taxonomy

    def __len__(self):
        return len(self._entries)

    def __iter__(self):
        return iter(self._entries)

    @property
    def entries(self) -> Tuple[UseCodeEntry, ...]:
        return self._entries

    def by_code(self, code) -> Optional[UseCodeEntry]:
        if code is None:
            return None
        return self._by_code.get(str(code).strip().upper())

    def by_descriptor(self, text) -> Optional[UseCodeEntry]:
        return self._by_descriptor.get(normalize_use_label(text))

    def descriptor_items(self):
        """(normalized descriptor, entry) pairs in table order"""
        return self._by_descriptor.items()


@lru_cache(maxsize=None)
def load_default_taxonomy() -> UseCodeTaxonomy:
    return UseCodeTaxonomy.load(DEFAULT_TAXONOMY_PATH)


class UseCodeClassifier:
    """Resolve raw use-code strings: code match, then exact descriptor, then longest substring"""

    def __init__(self, taxonomy: Optional[UseCodeTaxonomy] = None):
        self.taxonomy = taxonomy if taxonomy is not None else load_default_taxonomy()

    def classify(self, raw) -> Optional[UseCodeEntry]:
        if raw is None or not str(raw).strip():
            return None

        for candidate in extract_code_candidates(raw):
            entry = self.taxonomy.by_code(candidate)
            if entry is not None:
                logger.debug(f'Use code "{raw}" matched code {candidate}')
                return entry

        normalized = normalize_use_label(raw)
        if not normalized:
            return None

        entry = self.taxonomy.by_descriptor(normalized)
        if entry is not None:
            return entry

        best_entry = None
        best_length = 0
        for descriptor_key, candidate_entry in self.taxonomy.descriptor_items():
            if descriptor_key in normalized or normalized in descriptor_key:
                if len(descriptor_key) > best_length:
                    best_entry = candidate_entry
                    best_length = len(descriptor_key)
        if best_entry is not None:
            logger.debug(f'Use code "{raw}" matched descriptor substring of "{best_entry.label}"')
        return best_entry

    def require(self, raw, path=PROPERTY_TYPE_PATH) -> UseCodeEntry:
        """Classify or raise ClassificationError; never falls back to a guessed category"""
        entry = self.classify(raw)
        if entry is None:
            shown = raw if raw is not None and str(raw).strip() else "Unknown"
            error = ClassificationError(raw, path=path, message=f'Missing property use mapping for label "{shown}".')
            logger.error(f"Classification failed: {error.to_dict()}")
            raise error
        return entry


def classify(raw, taxonomy: Optional[UseCodeTaxonomy] = None) -> Optional[UseCodeEntry]:
    return UseCodeClassifier(taxonomy).classify(raw)
