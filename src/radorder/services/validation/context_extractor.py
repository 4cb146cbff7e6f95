from __future__ import annotations

import re
from typing import Dict, List, Pattern

from src.radorder.domain.validation.models import ClinicalContext, Laterality, PatientAttributes

# Each table is matched in order; the output lists keep that order.
MODALITY_PATTERNS: Dict[str, Pattern[str]] = {
    "mri": re.compile(r"\b(mri|magnetic resonance( imaging)?)\b", re.IGNORECASE),
    "ct": re.compile(r"\b(ct( scan)?|computed tomography)\b", re.IGNORECASE),
    "xray": re.compile(r"\b(xray|x-ray|radiograph)\b", re.IGNORECASE),
    "ultrasound": re.compile(r"\b(us|ultrasound|sonograph|sonogram)\b", re.IGNORECASE),
    "pet": re.compile(r"\b(pet( scan| ct)?|positron emission)\b", re.IGNORECASE),
    "mammogram": re.compile(r"\bmammogra", re.IGNORECASE),
    "nuclear": re.compile(r"\b(nuclear|scintigraphy)\b", re.IGNORECASE),
}

CONTRAST_PATTERNS: Dict[str, Pattern[str]] = {
    "withcontrast": re.compile(r"\b(with contrast|contrast enhanced|with gad|with gadolinium)\b", re.IGNORECASE),
    "withoutcontrast": re.compile(r"\b(without contrast|non-?contrast|noncontrast|no contrast)\b", re.IGNORECASE),
    "withandwithout": re.compile(r"\b(with and without|without and with)\b", re.IGNORECASE),
}

ANATOMY_PATTERNS: Dict[str, Pattern[str]] = {
    # No closing boundary: stems such as "acromi" and "labr" must match, so a
    # bare "labral" or "labrum" mention implies the shoulder.
    "shoulder": re.compile(r"\b(shoulder|glenohumeral|acromi|rotator cuff|labr)", re.IGNORECASE),
    "knee": re.compile(r"\b(knee|patella|acl|pcl|mcl|lcl|meniscus)\b", re.IGNORECASE),
    "spine": re.compile(r"\b(spine|cervical|thoracic|lumbar|sacral)\b", re.IGNORECASE),
    "brain": re.compile(r"\b(brain|head|cranial|cerebral|cerebellum)\b", re.IGNORECASE),
    "abdomen": re.compile(r"\b(abdomen|abdominal|liver|spleen|pancreas|kidney)\b", re.IGNORECASE),
    "pelvis": re.compile(r"\b(pelvis|pelvic|hip|bladder)\b", re.IGNORECASE),
    "chest": re.compile(r"\b(chest|thorax|thoracic|lung|mediastinum)\b", re.IGNORECASE),
    "wrist": re.compile(r"\b(wrist|carpal|tfcc|triangular fibrocartilage|scaphoid|lunate)\b", re.IGNORECASE),
    "elbow": re.compile(r"\b(elbow|olecranon|cubital)\b", re.IGNORECASE),
    "ankle": re.compile(r"\b(ankle|tarsal|calcaneus|talus)\b", re.IGNORECASE),
    "foot": re.compile(r"\b(foot|metatarsal|phalanges|toe)\b", re.IGNORECASE),
    "hand": re.compile(r"\b(hand|metacarpal|phalanx|finger|thumb)\b", re.IGNORECASE),
    "extremity": re.compile(r"\b(extremity|arm|leg)\b", re.IGNORECASE),
}

CONDITION_PATTERNS: Dict[str, Pattern[str]] = {
    "tear": re.compile(r"\b(tear|rupture|torn)\b", re.IGNORECASE),
    "fracture": re.compile(r"\b(fracture|fx)\b", re.IGNORECASE),
    "pain": re.compile(r"\b(pain|ache|painful|discomfort)\b", re.IGNORECASE),
    "tumor": re.compile(r"\b(tumor|mass|lesion|neoplasm|cancer)\b", re.IGNORECASE),
    "infection": re.compile(r"\b(infection|abscess|osteomyelitis)\b", re.IGNORECASE),
    "arthritis": re.compile(r"\b(arthritis|degenerative|osteoarthritis|degen)\b", re.IGNORECASE),
    "sprain": re.compile(r"\b(sprain|strain|tendinitis|tendinopathy)\b", re.IGNORECASE),
}

# Priority order: the first side that matches wins.
LATERALITY_PATTERNS = (
    (Laterality.RIGHT, re.compile(r"\b(right|rt)\b", re.IGNORECASE)),
    (Laterality.LEFT, re.compile(r"\b(left|lt)\b", re.IGNORECASE)),
    (Laterality.BILATERAL, re.compile(r"\b(bilateral|both)\b", re.IGNORECASE)),
)

_ATHLETE_PATTERN = re.compile(r"\b(athlete|player|sports|athletic)\b", re.IGNORECASE)
_AGE_PATTERN = re.compile(r"\b([1-9][0-9])[ -]?(year|y)s?\b", re.IGNORECASE)

_NORMALIZATIONS = (
    (re.compile(r"non[ -]contrast"), "noncontrast"),
    (re.compile(r"t2-weighted"), "t2weighted"),
    (re.compile(r"t1-weighted"), "t1weighted"),
)

KEYWORD_STOPWORDS = frozenset(
    {
        "with",
        "without",
        "patient",
        "year",
        "requesting",
        "ordering",
        "male",
        "female",
        "body",
        "screen",
        "please",
    }
)


def normalize_dictation(text: str) -> str:
    normalized = text.lower()
    for pattern, replacement in _NORMALIZATIONS:
        normalized = pattern.sub(replacement, normalized)
    return normalized


def extract_clinical_context(text: str) -> ClinicalContext:
    """Derive modality, anatomy, laterality, conditions and patient hints.

    Pure function of ``text``; never raises.
    """

    normalized = normalize_dictation(text)

    modality = [key for key, pattern in MODALITY_PATTERNS.items() if pattern.search(normalized)]
    modality.extend(key for key, pattern in CONTRAST_PATTERNS.items() if pattern.search(normalized))

    anatomy = [key for key, pattern in ANATOMY_PATTERNS.items() if pattern.search(normalized)]

    laterality = Laterality.UNSPECIFIED
    for side, pattern in LATERALITY_PATTERNS:
        if pattern.search(normalized):
            laterality = side
            break

    conditions = [key for key, pattern in CONDITION_PATTERNS.items() if pattern.search(normalized)]

    patient_info = PatientAttributes(is_athlete=bool(_ATHLETE_PATTERN.search(normalized)))
    age_match = _AGE_PATTERN.search(normalized)
    if age_match:
        patient_info.approximate_age = int(age_match.group(1))

    return ClinicalContext(
        modality=modality,
        anatomy=anatomy,
        laterality=laterality,
        clinical_conditions=conditions,
        patient_info=patient_info,
    )


def extract_medical_keywords(text: str) -> List[str]:
    """Return deduplicated lowercase keywords for code lookup.

    Category hits come first (modality, anatomy, laterality, conditions),
    followed by generic tokens longer than three characters that are not
    stopwords. Order is stable so the lookup queries are reproducible.
    """

    context = extract_clinical_context(text)
    keywords: Dict[str, None] = {}

    for key in context.modality:
        keywords[key] = None
    for key in context.anatomy:
        keywords[key] = None
    if context.laterality != Laterality.UNSPECIFIED:
        keywords[context.laterality.value] = None
    for key in context.clinical_conditions:
        keywords[key] = None

    for word in re.split(r"\W+", text.lower()):
        if len(word) > 3 and word not in KEYWORD_STOPWORDS:
            keywords[word] = None

    return list(keywords)
