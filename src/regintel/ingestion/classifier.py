"""Deterministic keyword classification of ingested items.

Priority is taken from the first keyword tier that matches the title and
description; categories come from every domain keyword set that matches.
The same input always yields the same output, so reclassification runs
are reproducible.
"""

import re
from dataclasses import dataclass, field

from regintel.ingestion.base import RawItem, Source
from regintel.schemas import Priority

# Ordered: first matching tier wins.
PRIORITY_TIERS: tuple[tuple[Priority, tuple[str, ...]], ...] = (
    (Priority.CRITICAL, ("recall", "safety alert", "urgent", "immediate action")),
    (Priority.HIGH, ("warning", "guidance", "approval", "clearance")),
    (Priority.MEDIUM, ("announcement", "update", "new", "change")),
)

# Qualifiers marking an item as routine; they cap HIGH at MEDIUM.
ROUTINE_QUALIFIERS = ("routine", "periodic", "scheduled")

CATEGORY_KEYWORDS: dict[str, tuple[str, ...]] = {
    # Device types
    "Diagnostics": ("diagnostic", "in vitro", "ivd", "imaging"),
    "Implantables": ("implantable", "implant", "pacemaker", "stent", "defibrillator"),
    "Surgical Devices": ("surgical", "surgery", "catheter", "robotic"),
    "Monitoring Devices": ("monitoring", "remote monitoring", "infusion pump", "insulin pump"),
    "Software & Digital Health": (
        "software", "samd", "digital health", "mobile app", "telemedicine",
    ),
    "AI/ML Technology": ("artificial intelligence", "machine learning", "ai", "ai-enabled"),
    # Therapeutic areas
    "Cardiology": ("cardiology", "cardiac", "cardiovascular", "heart"),
    "Neurology": ("neurology", "neurological", "neurostimulation"),
    "Oncology": ("oncology", "cancer", "tumor"),
    "Orthopedics": ("orthopedics", "orthopedic", "prosthetic", "joint replacement"),
    "Ophthalmology": ("ophthalmology", "ophthalmic", "retinal"),
    "Diabetes & Endocrinology": ("endocrinology", "diabetes", "diabetic", "insulin"),
    "Respiratory": ("respiratory", "ventilator", "anesthesia"),
    # Compliance terms
    "Cybersecurity": ("cybersecurity", "cyber security"),
    "Clinical Evidence": (
        "clinical evaluation", "clinical investigation", "clinical trial", "clinical study",
    ),
    "Post-Market Surveillance": ("post-market surveillance", "post-market", "vigilance"),
    "Quality Management": ("quality management", "iso 13485", "qms"),
    "Risk Management": ("risk management", "iso 14971", "biocompatibility"),
    "Safety Alert": ("recall", "safety alert", "field safety"),
    # Regulatory frameworks
    "MDR Compliance": ("mdr", "medical device regulation", "ivdr"),
    "FDA Regulation": ("fda", "510(k)", "510k", "pma", "de novo"),
}

FALLBACK_CATEGORY = "General MedTech"


def _compile(keyword: str, whole_word: bool) -> re.Pattern[str]:
    suffix = r"(?!\w)" if whole_word else ""
    return re.compile(r"(?<!\w)" + re.escape(keyword) + suffix, re.IGNORECASE)


# Priority keywords match at a word start ("recalls", "updated");
# category keywords must match a whole word ("ai" must not hit "said").
_PRIORITY_PATTERNS = tuple(
    (priority, tuple(_compile(kw, whole_word=False) for kw in keywords))
    for priority, keywords in PRIORITY_TIERS
)
_ROUTINE_PATTERNS = tuple(_compile(kw, whole_word=False) for kw in ROUTINE_QUALIFIERS)
_CATEGORY_PATTERNS = {
    label: tuple(_compile(kw, whole_word=True) for kw in keywords)
    for label, keywords in CATEGORY_KEYWORDS.items()
}


@dataclass(frozen=True)
class Classification:
    """Classifier output for one item."""

    priority: Priority
    categories: list[str] = field(default_factory=list)


def _matches_any(patterns: tuple[re.Pattern[str], ...], text: str) -> bool:
    return any(p.search(text) for p in patterns)


def determine_priority(text: str) -> Priority:
    """Priority of a text from the ordered keyword tiers."""
    for priority, patterns in _PRIORITY_PATTERNS:
        if _matches_any(patterns, text):
            if priority is Priority.HIGH and _matches_any(_ROUTINE_PATTERNS, text):
                return Priority.MEDIUM
            return priority
    return Priority.LOW


def determine_categories(text: str) -> list[str]:
    """All category labels whose keyword set matches, in declaration order."""
    labels = [
        label for label, patterns in _CATEGORY_PATTERNS.items()
        if _matches_any(patterns, text)
    ]
    return labels or [FALLBACK_CATEGORY]


def classify(item: RawItem, source: Source | None = None) -> Classification:
    """Assign priority and categories to an item."""
    text = f"{item.title} {item.description}"
    categories = determine_categories(text)

    # Safety feeds are categorised as such even when the wording is neutral
    if source is not None and source.category == "safety" and "Safety Alert" not in categories:
        if categories == [FALLBACK_CATEGORY]:
            categories = []
        categories.append("Safety Alert")

    return Classification(priority=determine_priority(text), categories=categories)
