"""
================================================================================
MIMIC-FHIR Explorer: Aggregation Functions
================================================================================

Pure transformations that turn raw FHIR resource lists (as parsed from the
Condition / Patient / Encounter JSON exports) into chart-ready summaries.

Nothing in here touches Streamlit, so the same functions back both dashboard
pages and the test-suite.

Structure:
    SECTION 1: Reference & Field Helpers
    SECTION 2: Condition Frequencies (overview page)
    SECTION 3: Condition Drill-Down (detail page)
    SECTION 4: Navigation & Label Helpers
================================================================================
"""

import re
from urllib.parse import quote, unquote

import pandas as pd

TOP_N_CONDITIONS = 10
UNKNOWN = "Unknown"

DETAIL_PAGE = "Condition_Detail"
CONDITION_PARAM = "condition"

FREQUENCY_COLUMNS = ["name", "count", "subject", "encounter"]
CROSS_TAB_COLUMNS = ["Gender", "Admission Class", "Number of Patients"]

MARKDOWN_SPECIAL = re.compile(r"([\\`*_{}\[\]()#+\-.!|~<>$])")


# =============================================================================
# SECTION 1: REFERENCE & FIELD HELPERS
# =============================================================================

def reference_id(reference):
    """
    Extract the id part of a FHIR reference string.

    Args:
        reference: Reference such as "Patient/123"

    Returns:
        str or None: Everything after the first '/', or None when the
        reference is missing or has no '/'
    """
    if not isinstance(reference, str) or "/" not in reference:
        return None
    return reference.split("/", 1)[1]


def _reference(record, field):
    """Return record[field]['reference'] or None."""
    target = record.get(field)
    if not isinstance(target, dict):
        return None
    ref = target.get("reference")
    return ref if isinstance(ref, str) else None


def _codings(record):
    """Return the list of coding entries of a Condition, or [] when absent."""
    if not isinstance(record, dict):
        return []
    code = record.get("code")
    if not isinstance(code, dict):
        return []
    coding = code.get("coding")
    if not isinstance(coding, list):
        return []
    return [c for c in coding if isinstance(c, dict)]


def _display_names(record):
    """Non-empty display strings of a Condition's coding entries, in order."""
    names = []
    for coding in _codings(record):
        display = coding.get("display")
        if isinstance(display, str) and display:
            names.append(display)
    return names


# =============================================================================
# SECTION 2: CONDITION FREQUENCIES
# =============================================================================

def condition_frequencies(records):
    """
    Count every condition display name across a Condition export.

    Each coding entry with a non-empty display adds one to that name. The
    exemplar subject/encounter kept for a name is the one from the last
    record that mentioned it.

    Args:
        records: Parsed Condition.json (list of resources)

    Returns:
        DataFrame: name, count, subject, encounter sorted by count
        (descending), ties kept in order of first appearance
    """
    rows = []
    for record in records or []:
        names = _display_names(record)
        if not names:
            continue
        subject = _reference(record, "subject")
        encounter = _reference(record, "encounter")
        for name in names:
            rows.append((name, subject, encounter))

    if not rows:
        return pd.DataFrame(columns=FREQUENCY_COLUMNS)

    mentions = pd.DataFrame(rows, columns=["name", "subject", "encounter"])

    # groupby(sort=False) keeps first-appearance order for the stable sort below
    counts = mentions.groupby("name", sort=False).size().rename("count")
    exemplars = (
        mentions
        .drop_duplicates("name", keep="last")
        .set_index("name")[["subject", "encounter"]]
    )

    freq = (
        counts.to_frame()
        .join(exemplars)
        .reset_index()
        .sort_values("count", ascending=False, kind="stable")
        .reset_index(drop=True)
    )
    return freq[FREQUENCY_COLUMNS]


def top_conditions(records, top_n=TOP_N_CONDITIONS):
    """
    Most frequent condition display names.

    Args:
        records: Parsed Condition.json
        top_n: Number of conditions to keep

    Returns:
        DataFrame: First `top_n` rows of condition_frequencies()
    """
    return condition_frequencies(records).head(top_n).reset_index(drop=True)


def condition_summaries(freq):
    """
    Convert a frequency frame to plain dicts for the chart layer.

    Returns:
        list: [{'name', 'count', 'details': {'subject', 'encounter'}}, ...]
    """
    summaries = []
    for row in freq.to_dict("records"):
        summaries.append({
            "name": row["name"],
            "count": int(row["count"]),
            "details": {
                "subject": None if pd.isna(row["subject"]) else row["subject"],
                "encounter": None if pd.isna(row["encounter"]) else row["encounter"],
            },
        })
    return summaries


# =============================================================================
# SECTION 3: CONDITION DRILL-DOWN
# =============================================================================

def _has_display(record, label):
    return isinstance(label, str) and label in _display_names(record)


def _distinct(values):
    """Distinct non-None values in first-appearance order."""
    seen = {}
    for value in values:
        if value is not None and value not in seen:
            seen[value] = True
    return list(seen)


def resolve_condition(conditions, patients, encounters, label):
    """
    Find the patients and encounters linked to one condition.

    Args:
        conditions: Parsed Condition.json
        patients: Parsed Patient.json
        encounters: Parsed Encounter.json
        label: Condition display name, matched exactly (case-sensitive)

    Returns:
        dict or None: None when no Condition carries `label`; otherwise
        'conditions', 'patient_ids', 'encounter_ids', 'patients' and
        'encounters' for the matching records
    """
    matched = [c for c in conditions or [] if _has_display(c, label)]
    if not matched:
        return None

    patient_ids = _distinct(reference_id(_reference(c, "subject")) for c in matched)
    encounter_ids = _distinct(reference_id(_reference(c, "encounter")) for c in matched)

    wanted_patients = set(patient_ids)
    wanted_encounters = set(encounter_ids)

    matched_patients = [
        p for p in patients or []
        if isinstance(p, dict) and p.get("id") is not None and str(p["id"]) in wanted_patients
    ]
    matched_encounters = [
        e for e in encounters or []
        if isinstance(e, dict) and e.get("id") is not None and str(e["id"]) in wanted_encounters
    ]

    return {
        "conditions": matched,
        "patient_ids": patient_ids,
        "encounter_ids": encounter_ids,
        "patients": matched_patients,
        "encounters": matched_encounters,
    }


def _admission_class(encounter):
    enc_class = encounter.get("class")
    if isinstance(enc_class, dict):
        return enc_class.get("code") or UNKNOWN
    return UNKNOWN


def gender_admission_counts(patients, encounters):
    """
    Count encounters by patient gender and admission class.

    Encounters whose subject is not among `patients` are skipped. Missing
    gender or class code is counted under "Unknown".

    Args:
        patients: Patient resources (usually resolve_condition()['patients'])
        encounters: Encounter resources (usually resolve_condition()['encounters'])

    Returns:
        dict: {gender: {admission_class: count}}, keys in first-appearance order
    """
    by_id = {}
    for patient in patients or []:
        if isinstance(patient, dict) and patient.get("id") is not None:
            by_id.setdefault(str(patient["id"]), patient)

    counts = {}
    for encounter in encounters or []:
        if not isinstance(encounter, dict):
            continue
        patient = by_id.get(reference_id(_reference(encounter, "subject")))
        if patient is None:
            continue

        gender = patient.get("gender") or UNKNOWN
        admission_class = _admission_class(encounter)

        by_class = counts.setdefault(gender, {})
        by_class[admission_class] = by_class.get(admission_class, 0) + 1

    return counts


def cross_tab_frame(counts):
    """
    Flatten a gender x admission-class mapping into long format.

    Returns:
        DataFrame: Gender, Admission Class, Number of Patients
    """
    rows = [
        (gender, admission_class, count)
        for gender, by_class in counts.items()
        for admission_class, count in by_class.items()
    ]
    return pd.DataFrame(rows, columns=CROSS_TAB_COLUMNS)


# =============================================================================
# SECTION 4: NAVIGATION & LABEL HELPERS
# =============================================================================

def condition_detail_href(name, page=DETAIL_PAGE):
    """Relative URL of the detail page for one condition name."""
    return f"{page}?{CONDITION_PARAM}={quote(name, safe='')}"


def read_condition_param(value):
    """
    Normalise the `condition` query parameter.

    Streamlit hands the value over already percent-decoded; a raw
    (still-encoded) string from elsewhere can be passed with
    `unquote(value)` first.

    Returns:
        str or None: The condition name, or None when missing/empty
    """
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if not isinstance(value, str) or not value:
        return None
    return value


def condition_name_from_href(href):
    """Inverse of condition_detail_href(): the condition name in an href."""
    _, _, query = href.partition("?")
    for part in query.split("&"):
        key, _, raw = part.partition("=")
        if key == CONDITION_PARAM:
            return read_condition_param(unquote(raw))
    return None


def smart_truncate(text, max_length=40):
    """
    Truncate text at word boundary, not mid-word.

    Args:
        text: Text to truncate
        max_length: Maximum length before truncation

    Returns:
        str: Truncated text with '...' if needed
    """
    text = str(text)
    if len(text) <= max_length:
        return text
    truncated = text[:max_length].rsplit(' ', 1)[0]
    return truncated + '...'


def escape_markdown(text):
    """Backslash-escape Markdown control characters so `text` renders literally."""
    return MARKDOWN_SPECIAL.sub(r"\\\1", str(text))
