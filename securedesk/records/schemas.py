"""
Record Schemas
==============

Explicit, per-collection field maps. Each collection states which fields
are required, which are encrypted at rest, which accept only a fixed set
of values and which are derived by the store. Callers get back frozen
dataclasses, one type per collection.

Security Notes:
    - Record reprs never include field values
    - Sensitive fields hold plaintext only in the returned record objects,
      never in what is handed to the backend
"""

from __future__ import annotations

import dataclasses
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Final, Mapping, Optional

from securedesk.core.exceptions import ValidationError
from securedesk.records.masking import password_strength

#: Keys every persisted record carries, never writable by callers
META_FIELDS: Final[tuple[str, ...]] = ("id", "user_id", "created_at", "updated_at")


class CardType(str, Enum):
    CREDIT = "credit"
    DEBIT = "debit"


class CardVariant(str, Enum):
    VISA = "visa"
    MASTERCARD = "mastercard"
    RUPAY = "rupay"
    AMEX = "amex"
    OTHER = "other"


class AccountType(str, Enum):
    SAVINGS = "savings"
    CURRENT = "current"
    SALARY = "salary"
    OTHER = "other"


class DocumentType(str, Enum):
    AADHAAR = "aadhaar"
    PAN = "pan"
    DRIVING_LICENSE = "driving_license"
    PASSPORT = "passport"
    OTHER = "other"


def _choices(enum_type: type[Enum]) -> frozenset[str]:
    return frozenset(member.value for member in enum_type)


@dataclass(frozen=True, slots=True)
class FieldSpec:
    """One collection field and its storage rules."""

    name: str
    required: bool = False
    sensitive: bool = False
    kind: type = str
    choices: Optional[frozenset[str]] = None
    default: Any = None
    derived: bool = False


# -- record types ---------------------------------------------------------


@dataclass(frozen=True, slots=True, kw_only=True, repr=False)
class BaseRecord:
    """Fields shared by every record."""

    id: str
    user_id: str
    created_at: str
    updated_at: str

    def to_dict(self) -> dict[str, Any]:
        return dataclasses.asdict(self)

    def __repr__(self) -> str:
        """Safe representation without field values."""
        return f"{type(self).__name__}(id={self.id!r}, user_id={self.user_id!r})"


@dataclass(frozen=True, slots=True, kw_only=True, repr=False)
class Credential(BaseRecord):
    title: str
    password: str
    username: Optional[str] = None
    url: Optional[str] = None
    notes: Optional[str] = None
    folder_id: Optional[str] = None
    strength: str = "weak"


@dataclass(frozen=True, slots=True, kw_only=True, repr=False)
class BankCard(BaseRecord):
    bank_name: str
    card_name: str
    card_holder_name: str
    card_number: str
    cvv: str
    type: str = CardType.CREDIT.value
    variant: Optional[str] = None
    valid_from: Optional[str] = None
    valid_to: Optional[str] = None
    color: Optional[str] = None
    card_image: Optional[str] = None


@dataclass(frozen=True, slots=True, kw_only=True, repr=False)
class BankDetail(BaseRecord):
    bank_name: str
    account_holder_name: str
    account_number: str
    ifsc_code: str
    account_type: str = AccountType.SAVINGS.value
    is_primary: bool = False
    customer_id: Optional[str] = None
    pin: Optional[str] = None
    net_banking_id: Optional[str] = None
    net_banking_password: Optional[str] = None


@dataclass(frozen=True, slots=True, kw_only=True, repr=False)
class Document(BaseRecord):
    type: str
    name: str
    document_number: str
    expiry_date: Optional[str] = None
    front_image: Optional[str] = None
    back_image: Optional[str] = None
    is_primary: bool = False


# -- schema ------------------------------------------------------------------


@dataclass(frozen=True)
class CollectionSchema:
    """
    Field map for one collection.

    ``derive`` receives the plaintext values being written and returns the
    derived fields to store alongside them.
    """

    name: str
    record_type: type[BaseRecord]
    fields: tuple[FieldSpec, ...]
    derive: Optional[Callable[[Mapping[str, Any]], dict[str, Any]]] = None

    def __post_init__(self) -> None:
        names = [spec.name for spec in self.fields]
        record_fields = {f.name for f in dataclasses.fields(self.record_type)}
        if set(names) | set(META_FIELDS) != record_fields:
            raise ValueError(f"Schema {self.name} does not match {self.record_type.__name__}")

    @property
    def field_map(self) -> dict[str, FieldSpec]:
        return {spec.name: spec for spec in self.fields}

    @property
    def sensitive_fields(self) -> tuple[str, ...]:
        return tuple(spec.name for spec in self.fields if spec.sensitive)

    @property
    def required_fields(self) -> tuple[str, ...]:
        return tuple(spec.name for spec in self.fields if spec.required)

    def context(self, field_name: str) -> str:
        """Associated data binding a ciphertext to its collection and field."""
        return f"{self.name}.{field_name}"

    def _check_writable(self, fields: Mapping[str, Any]) -> None:
        field_map = self.field_map
        blocked = [
            key for key in fields
            if key in META_FIELDS or key not in field_map or field_map[key].derived
        ]
        if blocked:
            raise ValidationError(f"Fields cannot be set: {', '.join(sorted(blocked))}", sorted(blocked))

    def _check_values(self, values: Mapping[str, Any]) -> None:
        field_map = self.field_map
        bad: list[str] = []
        for key, value in values.items():
            spec = field_map[key]
            if value is None:
                continue
            if spec.kind is bool:
                if not isinstance(value, bool):
                    bad.append(key)
            elif not isinstance(value, spec.kind):
                bad.append(key)
            elif spec.choices is not None and value not in spec.choices:
                bad.append(key)
        if bad:
            raise ValidationError(f"Invalid values for: {', '.join(bad)}", bad)

    @staticmethod
    def _is_empty(value: Any) -> bool:
        return value is None or (isinstance(value, str) and not value.strip())

    @staticmethod
    def _normalize(values: Mapping[str, Any]) -> dict[str, Any]:
        # str Enum members are stored as their plain value
        return {k: (v.value if isinstance(v, Enum) else v) for k, v in values.items()}

    def validate_new(self, fields: Mapping[str, Any]) -> dict[str, Any]:
        """
        Check a create payload and fill defaults.

        Returns:
            Plaintext values for every schema field, derived fields included

        Raises:
            ValidationError: Unknown/protected fields, missing required
                fields (all listed at once) or invalid values
        """
        self._check_writable(fields)
        values = self._normalize(fields)

        missing = [
            spec.name for spec in self.fields
            if spec.required and self._is_empty(values.get(spec.name))
        ]
        if missing:
            raise ValidationError.missing(missing)

        self._check_values(values)

        full = {
            spec.name: spec.default if values.get(spec.name) is None else values[spec.name]
            for spec in self.fields
            if not spec.derived
        }
        if self.derive is not None:
            full.update(self.derive(full))
        return full

    def validate_patch(self, fields: Mapping[str, Any]) -> dict[str, Any]:
        """
        Check an update payload.

        Returns:
            Plaintext values to change, plus any derived fields whose inputs
            are part of the patch
        """
        self._check_writable(fields)
        values = self._normalize(fields)

        emptied = [
            spec.name for spec in self.fields
            if spec.required and spec.name in values and self._is_empty(values[spec.name])
        ]
        if emptied:
            raise ValidationError(f"Required fields cannot be empty: {', '.join(emptied)}", emptied)

        self._check_values(values)

        if self.derive is not None and values:
            values.update(self.derive(values))
        return values

    def build(self, values: Mapping[str, Any]) -> BaseRecord:
        """Instantiate the record type from plaintext values."""
        kwargs = {name: values.get(name) for name in META_FIELDS}
        for spec in self.fields:
            value = values.get(spec.name)
            kwargs[spec.name] = spec.default if value is None else value
        return self.record_type(**kwargs)


def _derive_credential(values: Mapping[str, Any]) -> dict[str, Any]:
    if "password" not in values:
        return {}
    return {"strength": password_strength(values["password"])}


CREDENTIALS: Final[CollectionSchema] = CollectionSchema(
    name="credentials",
    record_type=Credential,
    fields=(
        FieldSpec("title", required=True),
        FieldSpec("password", required=True, sensitive=True),
        FieldSpec("username"),
        FieldSpec("url"),
        FieldSpec("notes"),
        FieldSpec("folder_id"),
        FieldSpec("strength", derived=True, default="weak"),
    ),
    derive=_derive_credential,
)

CARDS: Final[CollectionSchema] = CollectionSchema(
    name="cards",
    record_type=BankCard,
    fields=(
        FieldSpec("bank_name", required=True),
        FieldSpec("card_name", required=True),
        FieldSpec("card_holder_name", required=True),
        FieldSpec("card_number", required=True, sensitive=True),
        FieldSpec("cvv", required=True, sensitive=True),
        FieldSpec("type", choices=_choices(CardType), default=CardType.CREDIT.value),
        FieldSpec("variant", choices=_choices(CardVariant)),
        FieldSpec("valid_from"),
        FieldSpec("valid_to"),
        FieldSpec("color"),
        FieldSpec("card_image"),
    ),
)

BANK_DETAILS: Final[CollectionSchema] = CollectionSchema(
    name="bank_details",
    record_type=BankDetail,
    fields=(
        FieldSpec("bank_name", required=True),
        FieldSpec("account_holder_name", required=True),
        FieldSpec("account_number", required=True, sensitive=True),
        FieldSpec("ifsc_code", required=True),
        FieldSpec("account_type", choices=_choices(AccountType), default=AccountType.SAVINGS.value),
        # Advisory only: nothing stops two primary accounts
        FieldSpec("is_primary", kind=bool, default=False),
        FieldSpec("customer_id", sensitive=True),
        FieldSpec("pin", sensitive=True),
        FieldSpec("net_banking_id", sensitive=True),
        FieldSpec("net_banking_password", sensitive=True),
    ),
)

DOCUMENTS: Final[CollectionSchema] = CollectionSchema(
    name="documents",
    record_type=Document,
    fields=(
        FieldSpec("type", required=True, choices=_choices(DocumentType)),
        FieldSpec("name", required=True),
        FieldSpec("document_number", required=True),
        FieldSpec("expiry_date"),
        # Opaque image payloads (data URL or remote URL), stored as given
        FieldSpec("front_image"),
        FieldSpec("back_image"),
        FieldSpec("is_primary", kind=bool, default=False),
    ),
)

#: Every record collection, in dashboard order
COLLECTIONS: Final[tuple[CollectionSchema, ...]] = (CREDENTIALS, CARDS, BANK_DETAILS, DOCUMENTS)
