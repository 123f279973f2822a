from __future__ import annotations

import pytest

from wareworks.services.pdf_fields import (
    APPLICATION_BINDINGS,
    CHECKBOX,
    I9_BINDINGS,
    FieldBinding,
    alien_documents,
    date_parts,
    i9_date,
    mask_ssn,
    normalize_citizenship,
    requires_i9,
    ssn_digits,
)


def binding_value(bindings, template_field, payload):
    binding = next(b for b in bindings if b.template_field == template_field)
    return binding.value(payload)


@pytest.mark.parametrize(
    "status,expected",
    [
        ("us_citizen", False),
        ("citizen", False),
        ("noncitizen_national", True),
        ("lawful_permanent", True),
        ("alien_authorized", True),
        ("", False),
        (None, False),
        ("unknown", False),
    ],
)
def test_requires_i9(status, expected):
    assert requires_i9({"citizenshipStatus": status}) is expected


def test_normalize_citizenship_aliases():
    assert normalize_citizenship("Permanent_Resident") == "lawful_permanent"
    assert normalize_citizenship("work_authorized") == "alien_authorized"
    assert normalize_citizenship("other") is None


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("1990-04-15", ("04", "15", "1990")),
        ("2021-3", ("03", "", "2021")),
        ("4/5/1990", ("04", "05", "1990")),
        ("yesterday", ("", "", "")),
        (None, ("", "", "")),
    ],
)
def test_date_parts(raw, expected):
    assert date_parts(raw) == expected


def test_i9_formats():
    assert i9_date("1990-04-15") == "04151990"
    assert i9_date("2021-03") == ""
    assert ssn_digits("123-45-6789") == "123456789"
    assert ssn_digits("123-45-6789-0000") == "123456789"
    assert mask_ssn("123-45-6789") == "***-**-6789"
    assert mask_ssn("12") == ""


def test_alien_documents_priority():
    payload = {
        "uscisANumber": "A123456789",
        "i94AdmissionNumber": "123456789012345",
        "foreignPassportNumber": "P123",
        "foreignPassportCountry": "Mexico",
    }
    assert alien_documents(payload) == ("A123456789", "", "")

    payload.pop("uscisANumber")
    assert alien_documents(payload) == ("", "12345678901", "")

    payload.pop("i94AdmissionNumber")
    assert alien_documents(payload) == ("", "", "P123 - Mexico")

    payload.pop("foreignPassportCountry")
    assert alien_documents(payload) == ("", "", "")


def test_alien_documents_from_typed_number():
    payload = {"alienDocumentType": "form_i94", "alienDocumentNumber": "99988877766"}
    assert alien_documents(payload) == ("", "99988877766", "")


def test_checkbox_binding_value_is_bool():
    binding = FieldBinding("age18", "Age Yes", CHECKBOX, extract=lambda p: p.get("age18") == "yes")
    assert binding.value({"age18": "yes"}) is True
    assert binding.value({}) is False


def test_missing_text_value_is_empty():
    assert FieldBinding("city", "City").value({}) == ""
    assert FieldBinding("city", "City").value({"city": "  Joliet "}) == "Joliet"


def test_i9_ssn_is_digits_only():
    value = binding_value(I9_BINDINGS, "US Social Security Number", {"socialSecurityNumber": "123-45-6789"})
    assert value == "123456789"


def test_i9_fills_one_alien_document():
    payload = {
        "citizenshipStatus": "alien_authorized",
        "i94AdmissionNumber": "12345678901",
        "foreignPassportNumber": "P1",
        "foreignPassportCountry": "Peru",
        "workAuthorizationExpiration": "2030-01-31",
    }
    assert binding_value(I9_BINDINGS, "USCIS ANumber", payload) == ""
    assert binding_value(I9_BINDINGS, "Form I94 Admission Number", payload) == "12345678901"
    assert binding_value(I9_BINDINGS, "Foreign Passport Number and Country of IssuanceRow1", payload) == ""
    assert binding_value(I9_BINDINGS, "Exp Date mmddyyyy", payload) == "01312030"
    assert binding_value(I9_BINDINGS, "CB_4", payload) is True
    assert binding_value(I9_BINDINGS, "CB_1", payload) is False


def test_permanent_resident_number_only_for_that_status():
    payload = {"citizenshipStatus": "lawful_permanent", "uscisANumber": "A1"}
    field = "3 A lawful permanent resident Enter USCIS or ANumber"
    assert binding_value(I9_BINDINGS, field, payload) == "A1"
    assert binding_value(I9_BINDINGS, "USCIS ANumber", payload) == ""


def test_application_history_slots():
    payload = {"education": [{"schoolName": "Central High"}, {"schoolName": "City College"}]}
    assert binding_value(APPLICATION_BINDINGS, "School Name and Location 1", payload) == "Central High"
    assert binding_value(APPLICATION_BINDINGS, "School Name and Location 2", payload) == "City College"
