# Tests for collection schemas
# Covers: field maps matching record types, required/sensitive flags,
#          create and patch validation, defaults, derived fields.

import pytest

from securedesk.core.exceptions import ValidationError
from securedesk.records import (
    BANK_DETAILS,
    CARDS,
    COLLECTIONS,
    CREDENTIALS,
    DOCUMENTS,
    CardType,
    Credential,
)
from securedesk.records.schemas import META_FIELDS


# ── Field maps ───────────────────────────────────────────────────────

class TestFieldMaps:
    def test_collection_order(self):
        assert [s.name for s in COLLECTIONS] == ["credentials", "cards", "bank_details", "documents"]

    def test_sensitive_fields(self):
        assert CREDENTIALS.sensitive_fields == ("password",)
        assert CARDS.sensitive_fields == ("card_number", "cvv")
        assert set(BANK_DETAILS.sensitive_fields) == {
            "account_number", "customer_id", "pin", "net_banking_id", "net_banking_password",
        }
        assert DOCUMENTS.sensitive_fields == ()

    def test_required_fields(self):
        assert CREDENTIALS.required_fields == ("title", "password")
        assert DOCUMENTS.required_fields == ("type", "name", "document_number")

    def test_context(self):
        assert CARDS.context("cvv") == "cards.cvv"


# ── Create validation ────────────────────────────────────────────────

class TestValidateNew:
    def test_all_missing_fields_listed(self):
        with pytest.raises(ValidationError) as exc_info:
            CARDS.validate_new({"bank_name": "HDFC"})
        assert exc_info.value.fields == ("card_name", "card_holder_name", "card_number", "cvv")
        assert "card_name" in str(exc_info.value)

    def test_blank_string_counts_as_missing(self):
        with pytest.raises(ValidationError) as exc_info:
            CREDENTIALS.validate_new({"title": "  ", "password": "x"})
        assert exc_info.value.fields == ("title",)

    def test_validation_error_is_value_error(self):
        with pytest.raises(ValueError):
            CREDENTIALS.validate_new({})

    def test_defaults_filled(self):
        values = CARDS.validate_new({
            "bank_name": "HDFC", "card_name": "Regalia", "card_holder_name": "A",
            "card_number": "4111111111111111", "cvv": "123",
        })
        assert values["type"] == "credit"
        assert values["variant"] is None

    def test_derived_strength(self):
        values = CREDENTIALS.validate_new({"title": "mail", "password": "abcdefgh"})
        assert values["strength"] == "medium"

    def test_derived_field_not_writable(self):
        with pytest.raises(ValidationError):
            CREDENTIALS.validate_new({"title": "t", "password": "p", "strength": "strong"})

    @pytest.mark.parametrize("field", META_FIELDS)
    def test_meta_fields_not_writable(self, field):
        with pytest.raises(ValidationError) as exc_info:
            CREDENTIALS.validate_new({"title": "t", "password": "p", field: "x"})
        assert exc_info.value.fields == (field,)

    def test_unknown_field_rejected(self):
        with pytest.raises(ValidationError):
            CREDENTIALS.validate_new({"title": "t", "password": "p", "colour": "red"})

    def test_choices_enforced(self):
        with pytest.raises(ValidationError) as exc_info:
            DOCUMENTS.validate_new({"type": "library_card", "name": "n", "document_number": "1"})
        assert exc_info.value.fields == ("type",)

    def test_enum_member_accepted(self):
        values = CARDS.validate_new({
            "bank_name": "b", "card_name": "c", "card_holder_name": "h",
            "card_number": "4111", "cvv": "1", "type": CardType.DEBIT,
        })
        assert values["type"] == "debit"

    def test_bool_kind_enforced(self):
        with pytest.raises(ValidationError):
            BANK_DETAILS.validate_new({
                "bank_name": "b", "account_holder_name": "h",
                "account_number": "1", "ifsc_code": "I", "is_primary": "yes",
            })


# ── Patch validation ─────────────────────────────────────────────────

class TestValidatePatch:
    def test_empty_patch(self):
        assert CREDENTIALS.validate_patch({}) == {}

    def test_cannot_empty_required(self):
        with pytest.raises(ValidationError):
            CREDENTIALS.validate_patch({"password": ""})

    def test_optional_may_be_cleared(self):
        assert CREDENTIALS.validate_patch({"notes": None}) == {"notes": None}

    def test_password_change_rederives_strength(self):
        assert CREDENTIALS.validate_patch({"password": "x" * 12})["strength"] == "strong"

    def test_unrelated_patch_keeps_strength(self):
        assert "strength" not in CREDENTIALS.validate_patch({"title": "new"})


class TestBuild:
    def test_build_record_and_safe_repr(self):
        record = CREDENTIALS.build({
            "id": "r1", "user_id": "u1", "created_at": "t", "updated_at": "t",
            "title": "mail", "password": "hunter2",
        })
        assert isinstance(record, Credential)
        assert record.strength == "weak"
        assert "hunter2" not in repr(record)
        assert record.to_dict()["password"] == "hunter2"
