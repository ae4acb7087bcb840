import os
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import pandas as pd
from dotenv import load_dotenv

from .data_extractor import plan_property, write_property_plan
from .relationships import RelationshipEdgeWriter, RelationshipRegistry
from .use_codes import ClassificationError, UseCodeClassifier, UseCodeTaxonomy
from .utils import BASE_DIR, load_json, load_json_or_default, print_status, print_completed
from .validation import RecordValidationError, validate_record

logger = logging.getLogger(__name__)

# Try to load .env from multiple locations
for env_path in [".env", os.path.expanduser("~/.env")]:
    if os.path.exists(env_path):
        load_dotenv(dotenv_path=env_path)
        break
else:
    load_dotenv()  # fallback to default behavior


@dataclass
class Settings:
    input_dir: str
    owners_dir: str
    data_dir: str
    seed_csv: str
    use_codes: Optional[str] = None
    log_dir: Optional[str] = None
    log_level: str = "INFO"
    validate: bool = True

    @classmethod
    def from_env(cls, **overrides) -> "Settings":
        """Environment values, with any non-None keyword overriding its variable"""
        settings = cls(
            input_dir=os.getenv("PARCEL_GRAPH_INPUT_DIR", os.path.join(BASE_DIR, "input")),
            owners_dir=os.getenv("PARCEL_GRAPH_OWNERS_DIR", os.path.join(BASE_DIR, "owners")),
            data_dir=os.getenv("PARCEL_GRAPH_DATA_DIR", os.path.join(BASE_DIR, "data")),
            seed_csv=os.getenv("PARCEL_GRAPH_SEED_CSV", os.path.join(BASE_DIR, "seed.csv")),
            use_codes=os.getenv("PARCEL_GRAPH_USE_CODES") or None,
            log_dir=os.getenv("PARCEL_GRAPH_LOG_DIR", os.path.join(BASE_DIR, "logs")),
            log_level=os.getenv("PARCEL_GRAPH_LOG_LEVEL", "INFO"),
        )
        for name, value in overrides.items():
            if value is not None:
                setattr(settings, name, value)
        return settings


@dataclass
class RunReport:
    written: List[Dict[str, Any]] = field(default_factory=list)
    failures: List[Dict[str, Any]] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failures


def load_seed_csv(seed_csv_path) -> Dict[str, Dict[str, Any]]:
    """parcel_id -> seed row (method, url, ...); missing file yields an empty map"""
    seed_map = {}
    if not seed_csv_path or not os.path.exists(seed_csv_path):
        logger.info(f"No seed CSV at {seed_csv_path}")
        return seed_map

    # Read with string dtypes to preserve leading zeros
    seed_df = pd.read_csv(seed_csv_path, dtype={'parcel_id': str, 'source_identifier': str})
    logger.info(f"📊 Found {len(seed_df)} entries in seed.csv")
    for _, row in seed_df.iterrows():
        if pd.notna(row.get('parcel_id')):
            parcel_id = str(row['parcel_id']).strip()
        elif pd.notna(row.get('source_identifier')):
            parcel_id = str(row['source_identifier']).strip()
        else:
            continue
        seed_map[parcel_id] = {
            key: (str(value).strip() if pd.notna(value) else None)
            for key, value in row.items()
        }
    return seed_map


def list_input_files(input_dir) -> List[str]:
    if not os.path.isdir(input_dir):
        raise FileNotFoundError(f"Input directory not found: {input_dir}")
    return sorted(name for name in os.listdir(input_dir) if name.endswith('.json'))


def run(settings: Settings) -> RunReport:
    """
    Generate the entity graph for every property in the input directory.

    All properties are classified and validated before anything is written:
    if any property fails, the report carries the failures and no output
    directory is touched.
    """
    taxonomy = UseCodeTaxonomy.load(settings.use_codes) if settings.use_codes else None
    classifier = UseCodeClassifier(taxonomy)
    seed_map = load_seed_csv(settings.seed_csv)
    owner_data = load_json_or_default(os.path.join(settings.owners_dir, 'owner_data.json'))
    layout_data = load_json_or_default(os.path.join(settings.owners_dir, 'layout_data.json'))

    report = RunReport()
    plans = []
    input_files = list_input_files(settings.input_dir)
    print_status(f"Processing {len(input_files)} input files from {settings.input_dir}")

    for input_file in input_files:
        parcel_id = os.path.splitext(input_file)[0]
        record = load_json(os.path.join(settings.input_dir, input_file))
        parcel_id = str(record.get('parcel_id') or parcel_id)
        property_key = f"property_{parcel_id}"
        try:
            plans.append(plan_property(
                parcel_id,
                record,
                os.path.join(settings.data_dir, parcel_id),
                owners_entry=owner_data.get(property_key),
                layout_entry=layout_data.get(property_key),
                seed_row=seed_map.get(parcel_id),
                classifier=classifier,
                validate=settings.validate,
            ))
        except (ClassificationError, RecordValidationError) as e:
            failure = dict(e.to_dict(), parcel_id=parcel_id)
            logger.error(f"❌ {parcel_id}: {failure}")
            report.failures.append(failure)

    if report.failures:
        print_completed("parcel graph generation", success=False)
        return report

    edge_writer = RelationshipEdgeWriter(
        RelationshipRegistry(),
        validator=validate_record if settings.validate else None,
    )
    for plan in plans:
        report.written.append(write_property_plan(plan, edge_writer))

    print_completed(f"parcel graph generation ({len(report.written)} properties)")
    return report
