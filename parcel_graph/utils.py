import os
import re
import sys
import json
import time
import logging
from datetime import datetime

BASE_DIR = os.path.abspath(".")

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Generated output families removed before a property is regenerated
STALE_OUTPUT_PATTERNS = [
    re.compile(r"^layout_\d+\.json$"),
    re.compile(r"^person_\d+\.json$"),
    re.compile(r"^company_\d+\.json$"),
    re.compile(r"^sales_\d+\.json$"),
    re.compile(r"^deed_\d+\.json$"),
    re.compile(r"^file_\d+\.json$"),
    re.compile(r"^tax_\d+\.json$"),
    re.compile(r"^address\.json$"),
    re.compile(r"^structure\.json$"),
    re.compile(r"^utility\.json$"),
    re.compile(r"^relationship_property_layout(_\d+)?\.json$"),
    re.compile(r"^relationship_layout_layout(_\d+)?\.json$"),
    re.compile(r"^relationship_layout_structure(_\d+)?\.json$"),
    re.compile(r"^relationship_layout_utility(_\d+)?\.json$"),
    re.compile(r"^relationship_property_structure(_\d+)?\.json$"),
    re.compile(r"^relationship_property_utility(_\d+)?\.json$"),
    re.compile(r"^relationship_property_address(_\d+)?\.json$"),
    re.compile(r"^relationship_property_tax(_\d+)?\.json$"),
    re.compile(r"^relationship_sales_deed(_\d+)?\.json$"),
    re.compile(r"^relationship_deed_file(_\d+)?\.json$"),
    re.compile(r"^relationship_sales_person.*\.json$"),
    re.compile(r"^relationship_sales_company.*\.json$"),
    re.compile(r"^relationship_sales_history_person(_\d+)?\.json$"),
    re.compile(r"^relationship_sales_history_company(_\d+)?\.json$"),
]


def setup_logging(log_dir=None, level="INFO"):
    """Send detailed logs to a timestamped file; keep the console for status lines only"""
    log_dir = log_dir or os.path.join(BASE_DIR, "logs")
    os.makedirs(log_dir, exist_ok=True)
    log_file_path = os.path.join(log_dir, f"workflow_{int(time.time())}.log")

    file_handler = logging.FileHandler(log_file_path, encoding="utf-8")
    file_handler.setLevel(getattr(logging, str(level).upper(), logging.INFO))
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT))

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(logging.CRITICAL)  # Only show critical messages

    logging.basicConfig(
        level=getattr(logging, str(level).upper(), logging.INFO),
        handlers=[file_handler, console_handler],
        force=True,
    )
    return log_file_path


def print_status(message):
    """Print status messages to terminal only"""
    print(f"STATUS: {message}")
    logger.info(f"STATUS: {message}")  # Also log to file


def print_completed(name, success=True):
    """Print completion status"""
    status = "✅ COMPLETED" if success else "❌ FAILED"
    print(f"{status}: {name}")
    logger.info(f"COMPLETED: {name} - Success: {success}")


def is_empty_value(value):
    """Check if a value is empty, None, or whitespace"""
    if value is None:
        return True
    if isinstance(value, str):
        return len(value.strip()) == 0
    return False


def ensure_directory(path):
    """Create directory if it doesn't exist"""
    os.makedirs(path, exist_ok=True)


def load_json(path):
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def load_json_or_default(path, default=None):
    """Read an optional intermediate file; a missing file yields the default"""
    if not os.path.exists(path):
        logger.info(f"Optional input not found: {path}")
        return {} if default is None else default
    return load_json(path)


def write_json(path, data):
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, ensure_ascii=False)


def remove_file_if_exists(path):
    """Delete a file, treating an already-absent file as success"""
    try:
        os.unlink(path)
        return True
    except FileNotFoundError:
        return False


def remove_files_by_predicate(directory, matcher):
    """Remove files in directory whose names satisfy matcher; returns removed names"""
    if not os.path.isdir(directory):
        return []
    removed = []
    for entry in sorted(os.listdir(directory)):
        if matcher(entry) and remove_file_if_exists(os.path.join(directory, entry)):
            removed.append(entry)
    return removed


def cleanup_stale_outputs(directory, patterns=None):
    """Delete generated files from a previous run before regenerating them"""
    patterns = STALE_OUTPUT_PATTERNS if patterns is None else patterns
    removed = remove_files_by_predicate(
        directory, lambda name: any(p.match(name) for p in patterns)
    )
    if removed:
        logger.info(f"🗑️ Removed {len(removed)} stale files from {directory}")
    return removed


def to_iso_date(date_str):
    """Convert MM/DD/YYYY, M/D/YY or YYYY-MM-DD text to YYYY-MM-DD"""
    if not date_str or not isinstance(date_str, str):
        return None
    text = date_str.strip()
    for fmt in ("%Y-%m-%d", "%m/%d/%Y", "%m/%d/%y", "%m-%d-%Y"):
        try:
            return datetime.strptime(text, fmt).strftime("%Y-%m-%d")
        except ValueError:
            continue
    return None


def parse_money(value):
    """Parse a currency string like '$1,234.50' into a float rounded to cents"""
    if value is None:
        return None
    if isinstance(value, (int, float)):
        return round(float(value), 2)
    cleaned = re.sub(r"[^0-9.\-]", "", str(value))
    if cleaned in ("", "-", ".", "-."):
        return None
    try:
        return round(float(cleaned), 2)
    except ValueError:
        return None


def to_int_or_none(value):
    """Integer part of the first number in a value like '1,850 SF'"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    match = re.search(r"\d[\d,]*", str(value))
    if not match:
        return None
    return int(match.group(0).replace(",", ""))
