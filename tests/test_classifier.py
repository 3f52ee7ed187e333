from datetime import date

from docuvault.vault.classifier import classify, extract_year, score_categories
from docuvault.vault.taxonomy import Category, CustomCategory


def test_invoice_goes_to_finance():
    assert classify("Rechnung Nr. 42", "invoice_2024.pdf") == Category.FINANCE


def test_no_keyword_gives_other():
    assert classify("hello world", "x.dat") == Category.OTHER


def test_longer_keyword_outweighs_shorter():
    # "versicherung" (12) beats "bank" (4)
    assert classify("Versicherung Bank", "doc.dat") == Category.INSURANCE


def test_scores_sum_keyword_lengths():
    scores = score_categories("Lohn und Gehalt", "doc.dat")
    assert scores[Category.EMPLOYMENT] == len("lohn") + len("gehalt")


def test_tie_resolves_to_rule_table_order():
    # "lohn" and "bank" both score 4; "lohn" comes first in the rule table
    assert classify("bank lohn", "doc.dat") == Category.EMPLOYMENT
    assert classify("lohn bank", "doc.dat") == Category.EMPLOYMENT


def test_classification_is_deterministic():
    rules = {"Hobby": ["modell"], "Reisen": ["hotel"]}
    results = {classify("Hotel Modell Bank", "a.pdf", rules) for _ in range(20)}
    assert len(results) == 1


def test_filename_is_part_of_the_haystack():
    assert classify("", "Nebenkosten_Wohnung.pdf") == Category.HOUSING


def test_user_rule_creates_custom_category():
    result = classify("Modellbahn Katalog", "k.dat", {"Hobby": ["modellbahn"]})
    assert result == CustomCategory("Hobby")
    assert str(result) == "Hobby"


def test_user_rule_can_extend_builtin_category():
    assert classify("axa", "x.dat", {"Versicherungen": ["AXA"]}) == Category.INSURANCE


def test_malformed_user_rules_are_ignored():
    assert classify("bank", "x.dat", {"Broken": "not-a-list", "Empty": [""]}) == Category.FINANCE


def test_extract_year_finds_first_20xx():
    assert extract_year("Datum 12.03.2023, fällig 2024") == "2023"


def test_extract_year_ignores_longer_numbers():
    assert extract_year("Kundennummer 120234", today=date(2021, 6, 1)) == "2021"


def test_extract_year_defaults_to_current_year():
    assert extract_year("", today=date(2022, 1, 1)) == "2022"
