"""Optional AI enrichment of inbox documents.

The analyzer itself is an external service. This module validates whatever
it returns before anything reaches the pipeline, and turns the recognised
structured facts into tagged values.
"""

from __future__ import annotations

import base64
import logging
import re
from dataclasses import dataclass, field
from datetime import date
from typing import Any, List, Mapping, Optional, Protocol, Sequence, Union

from pydantic import BaseModel, ConfigDict, ValidationError
from pydantic.alias_generators import to_camel

from docuvault import config

from .taxonomy import (
    EXPENSE_CATEGORIES,
    SUBCATEGORIES,
    TAX_CATEGORIES,
    Category,
    CategoryRef,
    parse_category,
    valid_subcategory,
)

logger = logging.getLogger(__name__)

_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})(?:-(\d{2}))?")


class DocumentAnalyzer(Protocol):
    def analyze(self, data: bytes, file_name: str, mime_type: Optional[str]) -> Optional[Mapping[str, Any]]: ...


# -- wire payload ---------------------------------------------------------


class _Payload(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class TaxPayload(_Payload):
    amount: float = 0.0
    currency: Optional[str] = None
    tax_category: Optional[str] = None


class DailyExpensePayload(_Payload):
    is_expense: bool = True
    merchant: Optional[str] = None
    amount: float = 0.0
    currency: Optional[str] = None
    expense_category: Optional[str] = None
    location: Optional[str] = None


class SalaryPayload(_Payload):
    month: Optional[str] = None
    net_income: float = 0.0
    gross_income: float = 0.0
    deductions: float = 0.0
    employer: Optional[str] = None


class AnalysisPayload(_Payload):
    title: Optional[str] = None
    summary: Optional[str] = None
    category: Optional[str] = None
    sub_category: Optional[str] = None
    date: Optional[str] = None
    is_tax_relevant: bool = False
    tax_data: Optional[TaxPayload] = None
    daily_expense_data: Optional[DailyExpensePayload] = None
    salary_data: Optional[SalaryPayload] = None


# -- tagged facts ---------------------------------------------------------


@dataclass(frozen=True)
class SalaryFact:
    year: str
    month: str
    net_income: float
    gross_income: float
    deductions: float
    employer: Optional[str] = None


@dataclass(frozen=True)
class ExpenseFact:
    date: str
    merchant: str
    amount: float
    currency: str
    category: str
    location: Optional[str] = None


@dataclass(frozen=True)
class TaxFact:
    amount: float
    currency: str
    tax_category: str


Fact = Union[SalaryFact, ExpenseFact, TaxFact]


@dataclass
class Analysis:
    category: CategoryRef
    year: str
    title: Optional[str] = None
    summary: Optional[str] = None
    sub_category: Optional[str] = None
    date: Optional[str] = None
    tax_relevant: bool = False
    facts: List[Fact] = field(default_factory=list)

    @property
    def salary(self) -> Optional[SalaryFact]:
        return next((f for f in self.facts if isinstance(f, SalaryFact)), None)

    @property
    def expense(self) -> Optional[ExpenseFact]:
        return next((f for f in self.facts if isinstance(f, ExpenseFact)), None)

    @property
    def tax(self) -> Optional[TaxFact]:
        return next((f for f in self.facts if isinstance(f, TaxFact)), None)


def _pick(value: Optional[str], allowed: Sequence[str], default: str = "Sonstiges") -> str:
    return value if value in allowed else default


def parse_analysis(
    payload: Optional[Mapping[str, Any]],
    user_rules: Optional[Mapping[str, Sequence[str]]] = None,
    today: Optional[date] = None,
) -> Optional[Analysis]:
    """Validate a raw analyzer result; None when it is absent or malformed.

    A recognised salary document yields only the salary fact: income is never
    also booked as an expense or a tax deduction.
    """
    if not payload:
        return None
    try:
        raw = AnalysisPayload.model_validate(payload)
    except ValidationError as e:
        logger.warning("Discarding malformed analyzer result: %s", e.error_count())
        return None

    today = today or date.today()
    m = _ISO_DATE.match(raw.date or "")
    year = m.group(1) if m else str(today.year)
    doc_date = raw.date if m and m.group(3) else None

    category = parse_category(raw.category, user_rules)
    if category is None:
        if raw.category:
            logger.warning("Analyzer proposed unknown category %r; using %s", raw.category, Category.OTHER)
        category = Category.OTHER

    facts: List[Fact] = []
    if raw.salary_data is not None:
        month = raw.salary_data.month or (m.group(2) if m else f"{today.month:02d}")
        facts.append(
            SalaryFact(
                year=year,
                month=month.zfill(2),
                net_income=raw.salary_data.net_income,
                gross_income=raw.salary_data.gross_income,
                deductions=raw.salary_data.deductions,
                employer=raw.salary_data.employer,
            )
        )
    else:
        exp = raw.daily_expense_data
        if exp is not None and exp.is_expense:
            facts.append(
                ExpenseFact(
                    date=doc_date or today.isoformat(),
                    merchant=exp.merchant or "Unbekannt",
                    amount=exp.amount,
                    currency=exp.currency or "CHF",
                    category=_pick(exp.expense_category, EXPENSE_CATEGORIES),
                    location=exp.location,
                )
            )
        if raw.is_tax_relevant and raw.tax_data is not None:
            facts.append(
                TaxFact(
                    amount=raw.tax_data.amount,
                    currency=raw.tax_data.currency or "CHF",
                    tax_category=_pick(raw.tax_data.tax_category, TAX_CATEGORIES),
                )
            )

    return Analysis(
        category=category,
        year=year,
        title=raw.title,
        summary=raw.summary,
        sub_category=valid_subcategory(category, raw.sub_category),
        date=doc_date,
        tax_relevant=raw.is_tax_relevant and raw.salary_data is None,
        facts=facts,
    )


# -- OpenAI adapter -------------------------------------------------------


def _structure_context() -> str:
    return "\n".join(f"- {cat.value}: [{', '.join(subs)}]" for cat, subs in SUBCATEGORIES.items())


INSTRUCTIONS = (
    "You analyse scanned personal documents for a Swiss household archive. "
    "Return JSON only, matching the provided schema.\n"
    "- category must be one of the main categories below; subCategory one of its sub categories or empty.\n"
    "- date is the date of issue or period start (YYYY-MM-DD), never today's date.\n"
    "- summary: 2-3 sentences naming sender, subject and key figures.\n"
    "- salaryData only for payslips; dailyExpenseData only for shop receipts.\n"
    "- isTaxRelevant only for costs deductible in Switzerland; taxData.amount is the yearly total "
    "(monthly amounts x12, pro rata when the period starts mid-year).\n"
    f"- taxCategory one of: {', '.join(TAX_CATEGORIES)}.\n"
    f"- expenseCategory one of: {', '.join(EXPENSE_CATEGORIES)}.\n"
    "Categories:\n"
)


class OpenAIDocumentAnalyzer:
    """Analyzer backed by the OpenAI Responses API with structured output."""

    def __init__(self, api_key: Optional[str] = None, model: str = config.OPENAI_MODEL, client: Any = None) -> None:
        self.model = model
        self._client = client
        self._api_key = api_key or config.OPENAI_API_KEY

    @property
    def client(self):
        if self._client is None:
            from openai import OpenAI

            self._client = OpenAI(api_key=self._api_key)
        return self._client

    def analyze(self, data: bytes, file_name: str, mime_type: Optional[str]) -> Optional[Mapping[str, Any]]:
        part = self._file_part(data, file_name, mime_type)
        if part is None:
            logger.debug("Analyzer skips %s (unsupported type %s)", file_name, mime_type)
            return None
        try:
            response = self.client.responses.parse(
                model=self.model,
                input=[
                    {"role": "system", "content": INSTRUCTIONS + _structure_context()},
                    {"role": "user", "content": [part, {"type": "input_text", "text": f"File name: {file_name}"}]},
                ],
                text_format=AnalysisPayload,
            )
        except Exception as err:
            logger.error("Document analysis failed for %s: %s", file_name, err)
            return None

        result = getattr(response, "output_parsed", None)
        if result is None:
            logger.warning("Analyzer returned no parsed output for %s", file_name)
            return None
        return result.model_dump(by_alias=True, exclude_none=True)

    @staticmethod
    def _file_part(data: bytes, file_name: str, mime_type: Optional[str]) -> Optional[dict]:
        encoded = base64.b64encode(data).decode()
        mime = (mime_type or "").lower()
        if mime.startswith("image/"):
            return {"type": "input_image", "image_url": f"data:{mime};base64,{encoded}"}
        if mime == "application/pdf":
            return {"type": "input_file", "filename": file_name, "file_data": f"data:{mime};base64,{encoded}"}
        return None
