"""Structured dataset records.

Field names follow the JSON stored in backups (camelCase aliases), and every
model keeps unknown keys so a backup round trip never drops data.
"""

from __future__ import annotations

import uuid
from datetime import datetime
from typing import Dict, List, Literal, Optional, Set

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .utils import path_key


DocType = Literal["pdf", "image", "word", "excel", "note", "other"]


def new_id(prefix: str) -> str:
    return f"{prefix}_{uuid.uuid4().hex[:12]}"


def now_iso() -> str:
    return datetime.now().isoformat(timespec="seconds")


class RecordModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="allow",
    )


class NoteDocument(RecordModel):
    id: str
    title: str
    type: DocType = "other"
    category: str
    sub_category: Optional[str] = None
    year: str
    created: str = Field(default_factory=now_iso)
    content: str = ""
    file_name: Optional[str] = None
    file_path: Optional[str] = None
    tags: List[str] = Field(default_factory=list)
    is_new: Optional[bool] = None
    tax_relevant: Optional[bool] = None
    is_expense: Optional[bool] = None
    expense_id: Optional[str] = None
    attachments: Optional[List[str]] = None


class TaxExpense(RecordModel):
    id: Optional[str] = None
    note_ref: Optional[str] = None
    desc: str
    amount: float = 0.0
    year: str
    cat: str = "Sonstiges"
    currency: str = "CHF"
    rate: float = 1.0
    receipts: List[str] = Field(default_factory=list)
    tax_relevant: bool = True


class ExpenseEntry(RecordModel):
    id: str
    date: str
    merchant: str
    description: Optional[str] = None
    amount: float = 0.0
    currency: str = "CHF"
    rate: float = 1.0
    category: str = "Sonstiges"
    location: Optional[str] = None
    receipt_id: Optional[str] = None
    is_tax_relevant: bool = False


class SalaryEntry(RecordModel):
    # The ledger uses the payslip's own (German) column names
    monatslohn: float = 0.0
    brutto: float = 0.0
    ahv: float = 0.0
    alv: float = 0.0
    bvg: float = 0.0
    quellensteuer: float = 0.0
    abzuege: float = 0.0
    netto: float = 0.0
    auszahlung: float = 0.0
    kommentar: str = ""
    pdf_filename: Optional[str] = None


class DayEntry(RecordModel):
    total: float = 0.0
    note: str = ""
    trades: List[dict] = Field(default_factory=list)
    screenshots: List[str] = Field(default_factory=list)


class TaxData(RecordModel):
    expenses: List[TaxExpense] = Field(default_factory=list)
    rate_usd: Optional[float] = Field(default=None, alias="rateUSD")
    rate_eur: Optional[float] = Field(default=None, alias="rateEUR")


class Dataset(RecordModel):
    """The complete application dataset (the backup's TradeLog_Data.json)."""

    trades: Dict[str, DayEntry] = Field(default_factory=dict)
    salary: Dict[str, Dict[str, SalaryEntry]] = Field(default_factory=dict)
    tax: TaxData = Field(default_factory=TaxData)
    notes: Dict[str, NoteDocument] = Field(default_factory=dict)
    category_rules: Dict[str, List[str]] = Field(default_factory=dict)
    daily_expenses: Dict[str, List[ExpenseEntry]] = Field(default_factory=dict)

    @classmethod
    def from_json(cls, raw: str | bytes) -> "Dataset":
        return cls.model_validate_json(raw)

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True, exclude_none=True, indent=2)

    def add_notes(self, docs: List[NoteDocument]) -> None:
        for doc in docs:
            self.notes[doc.id] = doc

    def indexed_paths(self) -> Set[str]:
        """Normalised `filePath` of every archived note."""
        return {path_key(doc.file_path) for doc in self.notes.values() if doc.file_path}
