from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Mapping, Optional, Sequence, Union


class Category(str, Enum):
    """Built-in main categories. Values are the folder names used in the vault."""

    IDENTITY = "Identität & Zivilstand"
    EDUCATION = "Bildung & Qualifikation"
    EMPLOYMENT = "Beruf & Beschäftigung"
    FINANCE = "Finanzen & Bankwesen"
    TAXES = "Steuern & Abgaben"
    HOUSING = "Wohnen & Immobilien"
    HEALTH = "Gesundheit & Vorsorge"
    INSURANCE = "Versicherungen"
    LEGAL = "Recht & Verträge"
    MOBILITY = "Fahrzeuge & Mobilität"
    AUTHORITIES = "Behörden & Soziales"
    PROPERTY = "Eigentum & Besitz"
    CORRESPONDENCE = "Kommunikation & Korrespondenz"
    ESTATE = "Nachlass & Erbe"
    TECH = "Technik & IT"
    OTHER = "Sonstiges"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True)
class CustomCategory:
    """A category introduced by the user's own keyword rules."""

    name: str

    def __str__(self) -> str:
        return self.name


CategoryRef = Union[Category, CustomCategory]

SUBCATEGORIES: Dict[Category, List[str]] = {
    Category.IDENTITY: ["Ausweisdokumente", "Zivilstandsdokumente", "Meldebescheinigungen"],
    Category.EDUCATION: ["Abschlüsse & Diplome", "Arbeitszeugnisse", "Weiterbildung"],
    Category.EMPLOYMENT: ["Arbeitsverträge", "Lohnabrechnungen", "Sozialversicherungen"],
    Category.FINANCE: ["Konten & Karten", "Kredite & Hypotheken", "Anlagen & Depots"],
    Category.TAXES: ["Steuererklärungen", "Veranlagungen", "MWST & Zoll"],
    Category.HOUSING: ["Mietverträge", "Eigentum", "Nebenkosten"],
    Category.HEALTH: ["Medizinische Akten", "Rechnungen & Rezepte", "Patientenverfügung"],
    Category.INSURANCE: ["Krankenkasse", "Sach & Haftpflicht", "Leben & Unfall"],
    Category.LEGAL: ["Kauf & Service", "Rechtsfälle", "Vollmachten"],
    Category.MOBILITY: ["Fahrzeugpapiere", "Wartung & MFK", "Reisen & ÖV"],
    Category.AUTHORITIES: ["Leistungen", "Militär & Zivilschutz", "Bewilligungen"],
    Category.PROPERTY: ["Garantien", "Wertsachen", "Inventarlisten"],
    Category.CORRESPONDENCE: ["Wichtige Post", "Protokolle", "Digitales"],
    Category.ESTATE: ["Testamente", "Amtliches", "Bestattung"],
    Category.TECH: ["Lizenzen", "Handbücher", "Zugangsdaten"],
    Category.OTHER: [],
}

TAX_CATEGORIES = (
    "Berufsauslagen",
    "Weiterbildung",
    "Alimente",
    "Kindesunterhalt",
    "Hardware/Büro",
    "Versicherung",
    "Krankenkassenprämien",
    "Sonstiges",
)

EXPENSE_CATEGORIES = (
    "Verpflegung",
    "Mobilität",
    "Haushalt",
    "Freizeit",
    "Shopping",
    "Gesundheit",
    "Wohnen",
    "Reisen",
    "Sonstiges",
)

_BY_VALUE = {c.value: c for c in Category}


def builtin_category(name: str) -> Optional[Category]:
    return _BY_VALUE.get((name or "").strip())


def parse_category(
    name: Optional[str],
    user_rules: Optional[Mapping[str, Sequence[str]]] = None,
) -> Optional[CategoryRef]:
    """Map a free-text category name onto the taxonomy.

    Returns None when the name is neither built-in nor one of the user's
    rule categories, so callers decide how to treat unknown buckets.
    """
    if not name:
        return None
    cleaned = name.strip()
    builtin = builtin_category(cleaned)
    if builtin is not None:
        return builtin
    if user_rules and cleaned in user_rules:
        return CustomCategory(cleaned)
    return None


def valid_subcategory(category: CategoryRef, sub_category: Optional[str]) -> Optional[str]:
    """Keep only subcategories that belong to a built-in category's structure.

    Custom categories have no fixed structure, so any non-empty value is kept.
    """
    if not sub_category or not sub_category.strip():
        return None
    sub = sub_category.strip()
    if isinstance(category, CustomCategory):
        return sub
    return sub if sub in SUBCATEGORIES.get(category, []) else None
