"""
Record storage package.

Per-collection stores for credentials, bank cards, bank details and
identity documents, with field-level encryption of sensitive attributes.
"""

from securedesk.records.masking import (
    mask_account_number,
    mask_card_number,
    mask_document_number,
    password_strength,
)
from securedesk.records.schemas import (
    BANK_DETAILS,
    CARDS,
    COLLECTIONS,
    CREDENTIALS,
    DOCUMENTS,
    AccountType,
    BankCard,
    BankDetail,
    BaseRecord,
    CardType,
    CardVariant,
    CollectionSchema,
    Credential,
    Document,
    DocumentType,
    FieldSpec,
)
from securedesk.records.store import RecordBatch, RecordReadError, RecordStore

__all__ = [
    "mask_account_number",
    "mask_card_number",
    "mask_document_number",
    "password_strength",
    "BANK_DETAILS",
    "CARDS",
    "COLLECTIONS",
    "CREDENTIALS",
    "DOCUMENTS",
    "AccountType",
    "BankCard",
    "BankDetail",
    "BaseRecord",
    "CardType",
    "CardVariant",
    "CollectionSchema",
    "Credential",
    "Document",
    "DocumentType",
    "FieldSpec",
    "RecordBatch",
    "RecordReadError",
    "RecordStore",
]
