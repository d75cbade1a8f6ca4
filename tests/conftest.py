"""Shared pytest fixtures for the FHIR explorer tests."""

import pytest


def condition(display, patient_id, encounter_id):
    """Build a minimal Condition resource with one coding entry."""
    return {
        "resourceType": "Condition",
        "code": {"coding": [{"display": display}]},
        "subject": {"reference": f"Patient/{patient_id}"},
        "encounter": {"reference": f"Encounter/{encounter_id}"},
    }


def encounter(encounter_id, patient_id, class_code):
    return {
        "resourceType": "Encounter",
        "id": encounter_id,
        "subject": {"reference": f"Patient/{patient_id}"},
        "class": {"code": class_code},
    }


@pytest.fixture
def sepsis_conditions():
    """Two Sepsis records for different patients and encounters."""
    return [condition("Sepsis", "1", "1"), condition("Sepsis", "2", "2")]


@pytest.fixture
def sepsis_patients():
    return [{"id": "1", "gender": "F"}, {"id": "2", "gender": "M"}]


@pytest.fixture
def sepsis_encounters():
    return [encounter("1", "1", "EMER"), encounter("2", "2", "ELEC")]


@pytest.fixture
def mixed_conditions():
    """Conditions with repeated names, ties and malformed entries."""
    return [
        condition("Hypertension", "1", "10"),
        condition("Sepsis", "2", "20"),
        {"code": {}},  # no coding
        condition("Hypertension", "3", "30"),
        {"subject": {"reference": "Patient/9"}},  # no code at all
        condition("Asthma", "4", "40"),
        {"code": {"coding": [{"display": ""}, {"system": "icd"}, {"display": "Sepsis"}]},
         "subject": {"reference": "Patient/5"},
         "encounter": {"reference": "Encounter/50"}},
        condition("Diabetes", "6", "60"),
    ]
