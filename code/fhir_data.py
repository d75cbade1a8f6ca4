"""
MIMIC-FHIR Explorer: data loading.

Reads the static FHIR JSON exports (Condition / Patient / Encounter) from a
local directory or an http(s) base URL. Every failure surfaces as
DataLoadError so the pages can show a single "Error loading data." state.
"""

import gzip
import json
import logging
import os
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import requests

logger = logging.getLogger(__name__)

CONDITION_FILE = "Condition.json"
PATIENT_FILE = "Patient.json"
ENCOUNTER_FILE = "Encounter.json"

DATA_DIR_ENV = "MIMIC_FHIR_DIR"
DEFAULT_DATA_DIR = "../data/mimic-fhir"
REQUEST_TIMEOUT = 30  # seconds


class DataLoadError(RuntimeError):
    """A required FHIR document could not be read or parsed."""


# ============================================================================
# Data source resolution
# ============================================================================
def get_data_path(relative_path):
    """Get data directory path (cwd, parent dir, then project root)"""
    if os.path.exists(relative_path):
        return relative_path
    parent_path = os.path.join("..", relative_path)
    if os.path.exists(parent_path):
        return parent_path
    project_root = Path(__file__).parent.parent
    abs_path = project_root / relative_path
    if abs_path.exists():
        return str(abs_path)
    return None


def resolve_data_source(explicit=None, secrets=None, environ=None):
    """
    Decide where the FHIR exports live.

    Priority: explicit value -> secrets['fhir']['dir'] -> $MIMIC_FHIR_DIR ->
    a data/mimic-fhir directory found near the app -> DEFAULT_DATA_DIR.

    Args:
        explicit: Directory or base URL chosen by the caller
        secrets: Mapping shaped like st.secrets
        environ: Mapping of environment variables (defaults to os.environ)

    Returns:
        str: Local directory or http(s) base URL
    """
    if explicit:
        return explicit

    if secrets:
        from_secret = (secrets.get("fhir", {}) or {}).get("dir")
        if from_secret:
            return from_secret

    environ = os.environ if environ is None else environ
    from_env = environ.get(DATA_DIR_ENV)
    if from_env:
        return from_env

    return get_data_path("data/mimic-fhir") or DEFAULT_DATA_DIR


def is_remote(source):
    return str(source).startswith(("http://", "https://"))


# ============================================================================
# Reading & parsing
# ============================================================================
def _read_local(source, name):
    path = os.path.join(source, name)
    gz_path = path + ".gz"

    try:
        if os.path.exists(path):
            with open(path, encoding="utf-8") as f:
                return f.read()
        if os.path.exists(gz_path):
            with gzip.open(gz_path, "rt", encoding="utf-8") as f:
                return f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise DataLoadError(f"Failed to read {name}: {e}") from e

    raise DataLoadError(f"{name} not found in {source}")


def _fetch_remote(source, name, timeout=REQUEST_TIMEOUT):
    url = source.rstrip("/") + "/" + name
    try:
        r = requests.get(url, timeout=timeout, headers={"Accept": "application/json"})
    except requests.RequestException as e:
        raise DataLoadError(f"GET {url} failed: {e}") from e
    if r.status_code >= 400:
        raise DataLoadError(f"GET {url} failed {r.status_code}")
    try:
        return r.content.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DataLoadError(f"GET {url} returned non UTF-8 content: {e}") from e


def parse_document(text, name="document"):
    """
    Parse a FHIR export into a list of resources.

    Accepts a JSON array, newline-delimited JSON (one resource per line), a
    Bundle-like object with an 'entry' list, or a single resource object.
    """
    if not text.strip():
        raise DataLoadError(f"{name} is empty")

    try:
        doc = json.loads(text)
    except json.JSONDecodeError:
        try:
            doc = [json.loads(line) for line in text.splitlines() if line.strip()]
        except json.JSONDecodeError as e:
            raise DataLoadError(f"{name} is not valid JSON: {e}") from e

    if isinstance(doc, list):
        return doc
    if isinstance(doc, dict):
        if isinstance(doc.get("entry"), list):
            return [
                entry["resource"] for entry in doc["entry"]
                if isinstance(entry, dict) and "resource" in entry
            ]
        return [doc]
    raise DataLoadError(f"{name} does not contain a list of resources")


def load_document(source, name):
    """
    Load one FHIR export.

    Args:
        source: Local directory or http(s) base URL
        name: File name, e.g. CONDITION_FILE

    Returns:
        list: Parsed resources

    Raises:
        DataLoadError: Missing file, HTTP error or undecodable content
    """
    if is_remote(source):
        text = _fetch_remote(source, name)
    else:
        text = _read_local(source, name)

    records = parse_document(text, name)
    logger.info("Loaded %s: %d records", name, len(records))
    return records


def load_documents(source, names):
    """
    Load several exports in parallel.

    All documents are awaited before returning; if any one fails its
    DataLoadError propagates and nothing is returned.

    Returns:
        list: One resource list per name, in the order requested
    """
    if not names:
        return []

    logger.info("Fetching %s from %s", ", ".join(names), source)
    with ThreadPoolExecutor(max_workers=len(names)) as pool:
        futures = [pool.submit(load_document, source, name) for name in names]
        return [future.result() for future in futures]
