"""Pydantic schemas for the persisted collections."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Type, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class Record(BaseModel):
    """Base for every stored entity; camelCase on disk, unknown keys preserved."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    id: str = Field(..., min_length=1)

    def to_json(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class Income(Record):
    date: str = ""
    description: str = ""
    amount: float = 0.0
    payment_method: Optional[str] = None
    status: str = "paid"
    payment_date: Optional[str] = None
    actual_payment_date: Optional[str] = None
    partial_payments: List[Dict[str, Any]] = Field(default_factory=list)

    @model_validator(mode="after")
    def default_payment_date(self) -> "Income":
        """Legacy incomes were paid on their booking date."""
        if self.payment_date is None and self.date:
            self.payment_date = self.date
        return self


class Expense(Record):
    category: str = ""
    subcategory_id: Optional[str] = None
    date: str = ""
    supplier: str = ""
    supplier_id: Optional[str] = None
    description: str = ""
    amount: float = 0.0
    amount_with_vat: Optional[float] = None
    has_vat: bool = False
    additions: float = 0.0
    exceptions: float = 0.0
    daily_workers: float = 0.0
    notes: str = ""
    invoice_received: bool = False


class Milestone(Record):
    project_id: Optional[str] = None
    name: str = ""
    amount: float = 0.0
    percentage: Optional[float] = None
    due_date: Optional[str] = None
    status: str = "pending"


class Project(Record):
    name: str = ""
    description: str = ""
    contract_amount: float = 0.0
    incomes: List[Income] = Field(default_factory=list)
    expenses: List[Expense] = Field(default_factory=list)
    milestones: List[Milestone] = Field(default_factory=list)
    is_archived: bool = False
    created_at: Optional[str] = None

    @model_validator(mode="after")
    def fill_milestone_percentages(self) -> "Project":
        for milestone in self.milestones:
            if milestone.percentage is None:
                if self.contract_amount > 0:
                    milestone.percentage = round(milestone.amount / self.contract_amount * 100, 2)
                else:
                    milestone.percentage = 0.0
        return self


class Subcategory(Record):
    name: str = ""


class Category(Record):
    name: str = ""
    subcategories: List[Subcategory] = Field(default_factory=list)


class Supplier(Record):
    name: str = ""
    description: Optional[str] = None
    contact_person: Optional[str] = None
    phone: Optional[str] = None
    email: Optional[str] = None
    vat_number: Optional[str] = None
    business_number: Optional[str] = None
    address: Optional[str] = None
    created_at: Optional[str] = None


class User(Record):
    username: str = Field(..., min_length=1)
    password: Optional[str] = None
    role: str = "user"
    full_name: str = ""
    email: Optional[str] = None
    created_at: Optional[str] = None
    last_login: Optional[str] = None
    is_active: bool = True

    @field_validator("role")
    @classmethod
    def normalize_role(cls, value: str) -> str:
        return value.strip().lower()


class ActivityLog(Record):
    user_id: Optional[str] = None
    action: str = ""
    entity_type: Optional[str] = None
    entity_id: Optional[str] = None
    details: Optional[Union[str, Dict[str, Any]]] = None
    timestamp: Optional[str] = None


class SystemSettings(Record):
    id: str = "settings"
    tax_rate: float = 0.0
    tax_amount: float = 0.0
    vat_rate: float = Field(18.0, ge=0, le=100)
    company_name: str = ""
    company_address: str = ""
    company_phone: str = ""
    company_email: str = ""
    updated_at: Optional[str] = None
    updated_by: Optional[str] = None


@dataclass(frozen=True)
class CollectionSpec:
    """Name, record model and top-level JSON shape of one collection."""

    name: str
    model: Type[Record]
    shape: type

    @property
    def filename(self) -> str:
        return f"{self.name}.json"

    def empty(self) -> Union[List[Any], Dict[str, Any]]:
        return self.shape()


COLLECTIONS: Dict[str, CollectionSpec] = {
    spec.name: spec
    for spec in (
        CollectionSpec("projects", Project, list),
        CollectionSpec("categories", Category, list),
        CollectionSpec("suppliers", Supplier, list),
        CollectionSpec("users", User, list),
        CollectionSpec("activityLogs", ActivityLog, list),
        CollectionSpec("settings", SystemSettings, dict),
    )
}

# Nested record lists that live inside a parent record.
CHILD_COLLECTIONS: Dict[str, Dict[str, Type[Record]]] = {
    "projects": {"incomes": Income, "expenses": Expense, "milestones": Milestone},
    "categories": {"subcategories": Subcategory},
}

LIST_COLLECTIONS = tuple(name for name, spec in COLLECTIONS.items() if spec.shape is list)


def get_collection(name: str) -> CollectionSpec:
    """Return the collection spec, raising KeyError for unknown names."""
    try:
        return COLLECTIONS[name]
    except KeyError:
        raise KeyError(f"Unknown collection '{name}'") from None


def get_child_model(collection: str, child: str) -> Type[Record]:
    try:
        return CHILD_COLLECTIONS[collection][child]
    except KeyError:
        raise KeyError(f"'{collection}' has no nested '{child}' list") from None
