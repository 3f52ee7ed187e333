from __future__ import annotations

import re
from datetime import date
from typing import Dict, Mapping, Optional, Sequence

from .taxonomy import Category, CategoryRef, CustomCategory, builtin_category

UserRules = Mapping[str, Sequence[str]]

# keyword -> category; iteration order is the tie-break order
DEFAULT_RULES: Dict[str, Category] = {
    "pass": Category.IDENTITY,
    "ausweis": Category.IDENTITY,
    "urkunde": Category.IDENTITY,
    "zivilstand": Category.IDENTITY,
    "zeugnis": Category.EDUCATION,
    "diplom": Category.EDUCATION,
    "zertifikat": Category.EDUCATION,
    "kurs": Category.EDUCATION,
    "lohn": Category.EMPLOYMENT,
    "gehalt": Category.EMPLOYMENT,
    "arbeit": Category.EMPLOYMENT,
    "vertrag": Category.EMPLOYMENT,
    "ahv": Category.EMPLOYMENT,
    "bank": Category.FINANCE,
    "konto": Category.FINANCE,
    "kredit": Category.FINANCE,
    "depot": Category.FINANCE,
    "rechnung": Category.FINANCE,
    "steuer": Category.TAXES,
    "tax": Category.TAXES,
    "finanzamt": Category.TAXES,
    "mwst": Category.TAXES,
    "miete": Category.HOUSING,
    "wohnung": Category.HOUSING,
    "strom": Category.HOUSING,
    "nebenkosten": Category.HOUSING,
    "arzt": Category.HEALTH,
    "krank": Category.HEALTH,
    "rezept": Category.HEALTH,
    "spital": Category.HEALTH,
    "versicherung": Category.INSURANCE,
    "police": Category.INSURANCE,
    "helsana": Category.INSURANCE,
    "swica": Category.INSURANCE,
    "anwalt": Category.LEGAL,
    "gericht": Category.LEGAL,
    "vollmacht": Category.LEGAL,
    "agb": Category.LEGAL,
    "auto": Category.MOBILITY,
    "kfz": Category.MOBILITY,
    "bahn": Category.MOBILITY,
    "sbb": Category.MOBILITY,
    "flug": Category.MOBILITY,
    "amt": Category.AUTHORITIES,
    "gemeinde": Category.AUTHORITIES,
    "rente": Category.AUTHORITIES,
    "kindergeld": Category.AUTHORITIES,
    "garantie": Category.PROPERTY,
    "kaufbeleg": Category.PROPERTY,
    "quittung": Category.PROPERTY,
    "inventar": Category.PROPERTY,
    "brief": Category.CORRESPONDENCE,
    "schreiben": Category.CORRESPONDENCE,
    "notiz": Category.CORRESPONDENCE,
    "email": Category.CORRESPONDENCE,
    "erbe": Category.ESTATE,
    "testament": Category.ESTATE,
    "tod": Category.ESTATE,
    "schenkung": Category.ESTATE,
    "software": Category.TECH,
    "lizenz": Category.TECH,
    "handbuch": Category.TECH,
    "anleitung": Category.TECH,
    "passwort": Category.TECH,
}

_YEAR = re.compile(r"(?<!\d)(20\d{2})(?!\d)")


def _rule_category(name: str) -> CategoryRef:
    return builtin_category(name) or CustomCategory(name.strip())


def score_categories(text: str, filename: str, user_rules: Optional[UserRules] = None) -> Dict[CategoryRef, int]:
    """Sum the lengths of all matching keywords per category.

    Longer keywords are more specific, so they weigh more. The returned dict
    is ordered by first match, which is the tie-break order.
    """
    haystack = f"{text} {filename}".lower()
    scores: Dict[CategoryRef, int] = {}

    def add(keyword: str, category: CategoryRef) -> None:
        key = keyword.lower()
        if key and key in haystack:
            scores[category] = scores.get(category, 0) + len(key)

    for keyword, category in DEFAULT_RULES.items():
        add(keyword, category)
    for name, keywords in (user_rules or {}).items():
        if isinstance(keywords, (list, tuple)):
            category = _rule_category(name)
            for keyword in keywords:
                if isinstance(keyword, str):
                    add(keyword, category)
    return scores


def classify(text: str, filename: str, user_rules: Optional[UserRules] = None) -> CategoryRef:
    best: CategoryRef = Category.OTHER
    best_score = 0
    for category, score in score_categories(text, filename, user_rules).items():
        if score > best_score:
            best, best_score = category, score
    return best


def extract_year(text: str, today: Optional[date] = None) -> str:
    match = _YEAR.search(text or "")
    if match:
        return match.group(1)
    return str((today or date.today()).year)
