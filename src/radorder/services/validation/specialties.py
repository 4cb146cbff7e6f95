from __future__ import annotations

import re
from typing import Dict, List

DEFAULT_WORD_COUNT = 33

SPECIALTY_WORD_COUNTS: Dict[str, int] = {
    "Family Medicine": 29,
    "Dermatology": 30,
    "Orthopedics": 30,
    "General Radiology": 30,
    "Ultrasound": 30,
    "Computed Tomography (CT)": 30,
    "Magnetic Resonance Imaging (MRI)": 30,
    "Fluoroscopy": 30,
    "Oncology": 31,
    "Hematology": 31,
    "Endocrinology": 31,
    "Vascular": 31,
    "Urogenital": 31,
    "Allergy & Immunology": 31,
    "Internal Medicine": 31,
    "Neurology": 32,
    "Women's Health": 32,
    "Gastroenterology": 32,
    "Pulmonary": 32,
    "Rheumatology": 32,
    "Body Imaging": 32,
    "Oncologic Imaging": 32,
    "Genitourinary Radiology": 32,
    "Cardiology": 33,
    "Trauma": 33,
    "Infectious Disease": 33,
    "Geriatrics": 33,
    "Musculoskeletal Radiology": 33,
    "Breast Imaging": 33,
    "Abdominal Imaging": 33,
    "Chest Imaging": 33,
    "Gastrointestinal Radiology": 33,
    "Head and Neck Imaging": 33,
    "Cardiac Imaging": 33,
    "Obstetric/Gynecologic Imaging": 33,
    "Molecular Imaging": 33,
    "PET/CT Imaging": 33,
    "Pediatrics": 34,
    "Emergency Medicine": 34,
    "Cardiothoracic Imaging": 34,
    "Nuclear Medicine": 34,
    "Cardiovascular Imaging": 34,
    "Interventional Radiology": 35,
    "Neuroradiology": 35,
    "Pediatric Radiology": 35,
    "Emergency Radiology": 35,
    "Trauma Imaging": 35,
    "Functional Imaging": 35,
    "Musculoskeletal Interventional": 36,
    "Neurologic Interventional": 37,
    "Thoracic Interventional": 37,
    "Abdominal Interventional": 37,
    "Pediatric Interventional Radiology": 38,
}

SPECIALTY_VALIDATION_PROMPTS: Dict[str, str] = {
    "Family Medicine": (
        "Verify first-line imaging before advanced studies. Check step-wise approach compliance. "
        "Confirm anatomical specificity. Document red flags for emergency studies. "
        "Validate clinical monitoring alternatives. Assess ACR guideline appropriateness."
    ),
    "Orthopedics": (
        "Verify joint-specific protocols. Check weight-bearing views. Confirm metal artifact reduction needs. "
        "Validate appropriate views for pathology. Assess motion study requirements. "
        "Confirm post-surgical protocol modifications. Verify soft tissue evaluation."
    ),
    "Cardiology": (
        "Verify cardiac function assessment parameters. Check stress test integration when applicable. "
        "Confirm rhythm considerations for gated studies. Validate coronary assessment protocol selection. "
        "Verify appropriate chamber/valve visualization protocols. Confirm cardiac device compatibility "
        "assessment. Validate myocardial viability assessment needs."
    ),
    "Neuroradiology": (
        "Validate sequence-specific requirements for suspected pathology. Verify contrast protocols align "
        "with barrier disruption expectations. Confirm MS protocol completeness. Validate stroke protocol "
        "appropriateness and urgency indicators. Verify seizure protocol specifications. Confirm "
        "neurodegeneration sequences. Validate CSF flow requirements when indicated. Check functional "
        "requirements."
    ),
    "Interventional Radiology": (
        "Verify pre-procedure labs including coagulation status. Validate vascular access planning. "
        "Confirm appropriate anesthesia/sedation. Check device-disease matching. Assess pre/post procedure "
        "requirements. Verify contrast safety considerations. Document post-procedure monitoring protocol. "
        "Evaluate alternative approaches. Consider radiation dose optimization."
    ),
    "Pediatric Radiology": (
        "Verify age/weight-based protocols and parameters. Validate ALARA radiation principles for modality "
        "selection. Confirm developmental appropriateness of procedure preparation. Verify sedation "
        "requirements and safety protocols. Validate growth plate considerations for MSK studies. Confirm "
        "parent/guardian presence requirements. Verify congenital anomaly-specific protocols when indicated."
    ),
}

# Generic guidance grows with the specialty's word count.
_GENERIC_STEPS: List[str] = [
    "Verify appropriateness of imaging selection per ACR guidelines.",
    "Check required clinical elements for interpretation.",
    "Confirm protocol selection matches indication.",
    "Validate timing of imaging relative to symptoms.",
    "Assess need for specialty-specific considerations.",
    "Document relevant disease-specific requirements.",
    "Confirm follow-up recommendations.",
    "Validate quantitative measurement needs.",
    "Assess comparative study requirements.",
    "Verify safety considerations.",
    "Check preparation instructions.",
]


def all_specialties() -> List[str]:
    return sorted(SPECIALTY_WORD_COUNTS)


def optimal_word_count(specialty: str) -> int:
    return SPECIALTY_WORD_COUNTS.get(specialty, DEFAULT_WORD_COUNT)


def specialty_validation(specialty: str) -> str:
    """Return specialty-specific validation guidance, or tiered generic text."""

    if specialty in SPECIALTY_VALIDATION_PROMPTS:
        return SPECIALTY_VALIDATION_PROMPTS[specialty]

    word_count = optimal_word_count(specialty)
    if word_count <= 30:
        steps = 5
    elif word_count <= 32:
        steps = 7
    elif word_count <= 34:
        steps = 9
    else:
        steps = 11
    return " ".join(_GENERIC_STEPS[:steps])


def count_words(text: str) -> int:
    return len(text.split())


def enforce_word_count(feedback: str, specialty: str) -> str:
    """Truncate ``feedback`` to the specialty's word count."""

    limit = optimal_word_count(specialty)
    words = re.split(r"\s+", feedback.strip())
    if len(words) > limit:
        return " ".join(words[:limit])
    return feedback


def specialty_validation_section(specialty: str) -> str:
    guidance = specialty_validation(specialty)
    return (
        f"SPECIALTY VALIDATION ({specialty}, {count_words(guidance)}/{optimal_word_count(specialty)} words):\n"
        f"{guidance}"
    )
