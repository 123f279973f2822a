"""
Binding tables from application payload fields to PDF form field names.

Each template has one static table. A binding names the payload field it reads,
the template field it writes (plus alternative names seen in older template
revisions) and the writer used for it. The tables are checked against the real
template at startup by `PDFFiller.check_bindings`.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Callable, Mapping

TEXT = "text"
CHECKBOX = "checkbox"
CHOICE = "choice"

CITIZEN = "us_citizen"
NONCITIZEN_NATIONAL = "noncitizen_national"
PERMANENT_RESIDENT = "lawful_permanent"
ALIEN_AUTHORIZED = "alien_authorized"

CITIZENSHIP_ALIASES = {
    "us_citizen": CITIZEN,
    "citizen": CITIZEN,
    "noncitizen_national": NONCITIZEN_NATIONAL,
    "non_citizen_national": NONCITIZEN_NATIONAL,
    "lawful_permanent": PERMANENT_RESIDENT,
    "permanent_resident": PERMANENT_RESIDENT,
    "alien_authorized": ALIEN_AUTHORIZED,
    "authorized_alien": ALIEN_AUTHORIZED,
    "work_authorized": ALIEN_AUTHORIZED,
}

EDUCATION_SLOTS = 2
EMPLOYMENT_SLOTS = 2
I94_MAX_LENGTH = 11
SSN_DIGITS = 9

Extractor = Callable[[Mapping[str, Any]], Any]


@dataclass(frozen=True)
class FieldBinding:
    payload_field: str
    template_field: str
    writer: str = TEXT
    fallbacks: tuple[str, ...] = ()
    extract: Extractor | None = None
    # Optional bindings are written when present but are not reported as drift.
    required: bool = True

    @property
    def candidates(self) -> tuple[str, ...]:
        return (self.template_field, *self.fallbacks)

    def value(self, payload: Mapping[str, Any]) -> str | bool:
        raw = self.extract(payload) if self.extract else payload.get(self.payload_field)
        if self.writer == CHECKBOX:
            return bool(raw)
        if raw is None:
            return ""
        return str(raw).strip()


def text_of(value: Any) -> str:
    if value is None:
        return ""
    return str(value).strip()


def normalize_citizenship(value: Any) -> str | None:
    return CITIZENSHIP_ALIASES.get(text_of(value).lower())


def requires_i9(payload: Mapping[str, Any]) -> bool:
    status = normalize_citizenship(payload.get("citizenshipStatus"))
    return status is not None and status != CITIZEN


_ISO_DATE = re.compile(r"^(\d{4})-(\d{1,2})(?:-(\d{1,2}))?")
_US_DATE = re.compile(r"^(\d{1,2})/(\d{1,2})/(\d{4})$")


def date_parts(value: Any) -> tuple[str, str, str]:
    """Splits `YYYY-MM-DD`, `YYYY-MM` or `MM/DD/YYYY` into (month, day, year)."""
    raw = text_of(value)
    match = _ISO_DATE.match(raw)
    if match:
        year, month, day = match.groups()
        return month.zfill(2), day.zfill(2) if day else "", year
    match = _US_DATE.match(raw)
    if match:
        month, day, year = match.groups()
        return month.zfill(2), day.zfill(2), year
    return "", "", ""


def i9_date(value: Any) -> str:
    month, day, year = date_parts(value)
    if not (month and day and year):
        return ""
    return f"{month}{day}{year}"


def ssn_digits(value: Any) -> str:
    return re.sub(r"\D", "", text_of(value))[:SSN_DIGITS]


def mask_ssn(value: Any) -> str:
    digits = re.sub(r"\D", "", text_of(value))
    if len(digits) < 4:
        return ""
    return f"***-**-{digits[-4:]}"


def alien_documents(payload: Mapping[str, Any]) -> tuple[str, str, str]:
    """
    Returns (a_number, i94, passport) for an alien authorized to work, keeping
    only the first available one in that order.
    """
    a_number = text_of(payload.get("uscisANumber"))
    i94 = text_of(payload.get("i94AdmissionNumber"))
    passport = text_of(payload.get("foreignPassportNumber"))
    country = text_of(payload.get("foreignPassportCountry")) or text_of(payload.get("documentCountry"))

    doc_type = text_of(payload.get("alienDocumentType"))
    doc_number = text_of(payload.get("alienDocumentNumber"))
    if doc_number:
        if doc_type == "uscis_a_number" and not a_number:
            a_number = doc_number
        elif doc_type == "form_i94" and not i94:
            i94 = doc_number
        elif doc_type == "foreign_passport" and not passport:
            passport = doc_number

    if a_number:
        return a_number, "", ""
    if i94:
        return "", i94[:I94_MAX_LENGTH], ""
    if passport and country:
        return "", "", f"{passport} - {country}"
    return "", "", ""


EQUIPMENT_LEVELS = {
    "none": "None",
    "basic": "Basic",
    "intermediate": "Intermediate",
    "advanced": "Advanced",
    "expert": "Expert",
}


def _first(*keys: str) -> Extractor:
    def _extract(payload: Mapping[str, Any]) -> str:
        for key in keys:
            value = text_of(payload.get(key))
            if value:
                return value
        return ""

    return _extract


def _answer(expected: str, *keys: str) -> Extractor:
    read = _first(*keys)
    return lambda payload: read(payload).lower() == expected


def _date(key: str, part: int) -> Extractor:
    return lambda payload: date_parts(payload.get(key))[part]


def _ssn_part(start: int, end: int) -> Extractor:
    return lambda payload: ssn_digits(payload.get("socialSecurityNumber"))[start:end]


def _equipment(*keys: str) -> Extractor:
    read = _first(*keys)

    def _extract(payload: Mapping[str, Any]) -> str:
        level = read(payload)
        return EQUIPMENT_LEVELS.get(level.lower(), level)

    return _extract


def entries(payload: Mapping[str, Any], section: str) -> list[Mapping[str, Any]]:
    raw = payload.get(section)
    if not isinstance(raw, list):
        return []
    return [item for item in raw if isinstance(item, Mapping)]


def _slot(section: str, index: int, key: str) -> Extractor:
    def _extract(payload: Mapping[str, Any]) -> str:
        items = entries(payload, section)
        if index >= len(items):
            return ""
        return text_of(items[index].get(key))

    return _extract


def _slot_answer(section: str, index: int, key: str, expected: str) -> Extractor:
    read = _slot(section, index, key)
    return lambda payload: read(payload).lower() == expected


def _slot_date(section: str, index: int, key: str, part: int) -> Extractor:
    read = _slot(section, index, key)
    return lambda payload: date_parts(read(payload))[part]


def _yes_no(payload_field: str, question: str, keys: tuple[str, ...], short: str) -> tuple[FieldBinding, ...]:
    return (
        FieldBinding(
            payload_field,
            f"{question} Yes",
            CHECKBOX,
            fallbacks=(f"{short} Yes",),
            extract=_answer("yes", *keys),
        ),
        FieldBinding(
            payload_field,
            f"{question} No",
            CHECKBOX,
            fallbacks=(f"{short} No",),
            extract=_answer("no", *keys),
        ),
    )


def _education_slot(n: int, fallbacks: Mapping[str, tuple[str, ...]]) -> tuple[FieldBinding, ...]:
    index = n - 1
    return (
        FieldBinding(
            f"education[{index}].schoolName",
            f"School Name and Location {n}",
            fallbacks=fallbacks["name"],
            extract=_slot("education", index, "schoolName"),
        ),
        FieldBinding(
            f"education[{index}].graduationYear",
            f"School Year {n}",
            fallbacks=fallbacks["year"],
            extract=_slot("education", index, "graduationYear"),
        ),
        FieldBinding(
            f"education[{index}].fieldOfStudy",
            f"School Major {n}",
            fallbacks=fallbacks["major"],
            extract=_slot("education", index, "fieldOfStudy"),
        ),
        FieldBinding(
            f"education[{index}].degreeReceived",
            f"School Diploma {n} - yes",
            CHECKBOX,
            fallbacks=(f"Diploma {n} Yes",),
            extract=_slot_answer("education", index, "degreeReceived", "yes"),
        ),
        FieldBinding(
            f"education[{index}].degreeReceived",
            f"School Diploma {n} - No",
            CHECKBOX,
            fallbacks=(f"Diploma {n} No",),
            extract=_slot_answer("education", index, "degreeReceived", "no"),
        ),
    )


def _employment_slot(n: int, fallbacks: Mapping[str, tuple[str, ...]], reason_continued: str) -> tuple[FieldBinding, ...]:
    index = n - 1
    section = "employment"
    bindings: list[FieldBinding] = [
        FieldBinding(
            f"employment[{index}].companyName",
            f"Company Name and Location {n}",
            fallbacks=fallbacks["name"],
            extract=_slot(section, index, "companyName"),
        ),
    ]
    for key, label in (("startDate", "Started"), ("endDate", "Ended")):
        short = "Start" if key == "startDate" else "End"
        for part, part_name in enumerate(("Month", "Day", "Year")):
            bindings.append(
                FieldBinding(
                    f"employment[{index}].{key}",
                    f"Company Date {label} {n} - {part_name}",
                    fallbacks=(f"{short} {part_name} {n}",),
                    extract=_slot_date(section, index, key, part),
                )
            )
    bindings.extend(
        (
            FieldBinding(
                f"employment[{index}].startingPosition",
                f"Company Starting Position {n}",
                fallbacks=fallbacks["start_position"],
                extract=_slot(section, index, "startingPosition"),
            ),
            FieldBinding(
                f"employment[{index}].endingPosition",
                f"Company Ending Position {n}",
                fallbacks=fallbacks["end_position"],
                extract=_slot(section, index, "endingPosition"),
            ),
            FieldBinding(
                f"employment[{index}].supervisorPhone",
                f"Company Telephone Number {n}",
                fallbacks=fallbacks["phone"],
                extract=_slot(section, index, "supervisorPhone"),
            ),
            FieldBinding(
                f"employment[{index}].supervisorName",
                f"Company Supervisor Name {n}",
                fallbacks=fallbacks["supervisor"],
                extract=_slot(section, index, "supervisorName"),
            ),
            FieldBinding(
                f"employment[{index}].mayContact",
                f"Company May we contact {n}? Yes",
                CHECKBOX,
                fallbacks=(f"May Contact {n} Yes",),
                extract=_slot_answer(section, index, "mayContact", "yes"),
            ),
            FieldBinding(
                f"employment[{index}].mayContact",
                f"Company May we contact {n}? No",
                CHECKBOX,
                fallbacks=(f"May Contact {n} No",),
                extract=_slot_answer(section, index, "mayContact", "no"),
            ),
            FieldBinding(
                f"employment[{index}].responsibilities",
                f"Company Responsibilities {n}",
                fallbacks=fallbacks["responsibilities"],
                extract=_slot(section, index, "responsibilities"),
            ),
            FieldBinding(
                f"employment[{index}].responsibilitiesContinued",
                f"Company Responsibilities {n} Continued",
                fallbacks=(f"Responsibilities {n} Continued",),
                extract=_slot(section, index, "responsibilitiesContinued"),
            ),
            FieldBinding(
                f"employment[{index}].reasonForLeaving",
                f"Company Reason for Leaving {n}",
                fallbacks=fallbacks["reason"],
                extract=_slot(section, index, "reasonForLeaving"),
            ),
            FieldBinding(
                f"employment[{index}].reasonLeavingContinued",
                reason_continued,
                fallbacks=(f"Reason Leaving {n} Continued",),
                extract=_slot(section, index, "reasonLeavingContinued"),
            ),
        )
    )
    return tuple(bindings)


_WEEKDAYS = (
    ("Sunday", "Sunday Hours", "Sun"),
    ("Monday", "Monday  Hours", "Mon"),
    ("Tuesday", "Tuesday  Hours", "Tue"),
    ("Wednesday", "Wednesday  Hours", "Wed"),
    ("Thursday", "Thursday  Hours", "Thu"),
    ("Friday", "Friday  Hours", "Fri"),
    ("Saturday", "Saturday Hours", "Sat"),
)

_FORKLIFTS = (
    (("equipmentSD",), "SD Sit Down", ("SD", "Sit Down")),
    (("equipmentSU",), "SU Stand Up", ("SU", "Stand Up")),
    (("equipmentSUR",), "SUR Stand Up Reach", ("SUR", "Stand Up Reach")),
    (("equipmentCP",), "CP Cherry Picker", ("CP", "Cherry Picker")),
    (("equipmentCL",), "CL Clamps", ("CL", "Clamps")),
    (("equipmentRidingJack", "equipmentRJ"), "Riding Jack", ("RJ", "Jack")),
)

APPLICATION_BINDINGS: tuple[FieldBinding, ...] = (
    FieldBinding("legalFirstName", "Applicant Legal First Name", fallbacks=("Legal First Name", "First Name", "FirstName")),
    FieldBinding("legalLastName", "Applicant Legal Last Name", fallbacks=("Legal Last Name", "Last Name", "LastName")),
    FieldBinding("middleInitial", "Applicant Middle Initials", fallbacks=("Middle Initial", "MI", "Middle")),
    FieldBinding("dateOfBirth", "Applicant DOB - Month", fallbacks=("DOB Month", "Birth Month"), extract=_date("dateOfBirth", 0)),
    FieldBinding("dateOfBirth", "Applicant DOB - Day", fallbacks=("DOB Day", "Birth Day"), extract=_date("dateOfBirth", 1)),
    FieldBinding("dateOfBirth", "Applicant DOB - Year", fallbacks=("DOB Year", "Birth Year"), extract=_date("dateOfBirth", 2)),
    FieldBinding("streetAddress", "Applicant Street Address", fallbacks=("Street Address", "Address", "Street")),
    FieldBinding("city", "Applicant City", fallbacks=("City", "City Name")),
    FieldBinding("state", "Applicant State", fallbacks=("State", "State/Province")),
    FieldBinding("zipCode", "Applicant Zip Code", fallbacks=("Zip Code", "ZIP", "Postal Code")),
    FieldBinding(
        "homePhone",
        "Applicant Home Phone",
        fallbacks=("Home Phone", "Phone", "Home Phone Number"),
        extract=_first("homePhone", "phoneNumber"),
    ),
    FieldBinding(
        "cellPhone",
        "Applicant Cell Phone Number",
        fallbacks=("Cell Phone Number", "Cell Phone", "Mobile"),
        extract=_first("cellPhone", "phoneNumber"),
    ),
    FieldBinding("email", "Applicant Email", fallbacks=("Email", "Email Address", "E-mail")),
    FieldBinding("socialSecurityNumber", "Applicant SSN - P1", fallbacks=("SSN Part 1", "SSN P1"), extract=_ssn_part(0, 3)),
    FieldBinding("socialSecurityNumber", "Applicant SSN - P2", fallbacks=("SSN Part 2", "SSN P2"), extract=_ssn_part(3, 5)),
    FieldBinding("socialSecurityNumber", "Applicant SSN - P3", fallbacks=("SSN Part 3", "SSN P3"), extract=_ssn_part(5, 9)),
    FieldBinding("emergencyName", "Emergency Contact Name", fallbacks=("Name", "Contact Name")),
    FieldBinding("emergencyPhone", "Emergency Contact Phone Number", fallbacks=("Number", "Emergency Phone", "Contact Phone")),
    FieldBinding("emergencyRelationship", "Emergency Contact Relationship", fallbacks=("Relationship", "Contact Relationship")),
    *(
        FieldBinding(f"availability{day}", field_name, fallbacks=(day, short))
        for day, field_name, short in _WEEKDAYS
    ),
    FieldBinding("positionApplied", "Position Applied For", fallbacks=("Position", "Job Title")),
    FieldBinding("jobDiscovery", "How did you discover this job opening", fallbacks=("Job Discovery", "How did you hear")),
    FieldBinding(
        "jobDiscoveryContinued",
        "How did you discover this job opening - Continued",
        fallbacks=("Job Discovery Continued",),
    ),
    FieldBinding("expectedSalary", "Expected Salary", fallbacks=("Salary", "Expected Pay")),
    *_yes_no("age18", "Are you 18 years of age or older?", ("age18",), "Age 18+"),
    *_yes_no(
        "transportation",
        "Do you have a reliable means of transportation?",
        ("transportation", "reliableTransport"),
        "Transport",
    ),
    *_yes_no(
        "workAuthorized",
        "Are you legally authorized to work in the country where you are applying?",
        ("workAuthorized", "workAuthorizationConfirm"),
        "Work Auth",
    ),
    *_yes_no("fullTimeEmployment", "Are you looking for full-time employment?", ("fullTimeEmployment",), "Full Time"),
    *_yes_no("swingShifts", "Are you open to working swing shifts?", ("swingShifts",), "Swing Shifts"),
    *_yes_no("graveyardShifts", "Are you willing to work graveyard shifts?", ("graveyardShifts",), "Graveyard"),
    *_yes_no(
        "previouslyApplied",
        "Have you previously applied at WareWorks?",
        ("previouslyApplied",),
        "Previously Applied",
    ),
    *_yes_no(
        "forkliftCertification",
        "Do you have forklift certification?",
        ("forkliftCertification",),
        "Forklift Cert",
    ),
    *(
        FieldBinding(keys[0], field_name, fallbacks=fallbacks, extract=_equipment(*keys))
        for keys, field_name, fallbacks in _FORKLIFTS
    ),
    *(
        FieldBinding(f"skills{n}", f"Applicable Skills  Qualifications {n}", fallbacks=(f"Skills {n}", f"Skill {n}"))
        for n in (1, 2, 3)
    ),
    *_education_slot(
        1,
        {
            "name": ("School Name and Location", "School 1", "Education 1"),
            "year": ("Year", "Year 1", "Graduation Year"),
            "major": ("Major", "Major 1", "Degree"),
        },
    ),
    *_education_slot(
        2,
        {
            "name": ("School Name and Location_2", "School 2", "Education 2"),
            "year": ("Year_2", "Year 2", "Graduation Year 2"),
            "major": ("Major_2", "Major 2", "Degree 2"),
        },
    ),
    *_employment_slot(
        1,
        {
            "name": ("Company Name and Location", "Company 1", "Employer 1"),
            "start_position": ("Starting Position", "Start Position", "Initial Position"),
            "end_position": ("Ending Position", "End Position", "Final Position"),
            "phone": ("Telephone Number", "Company Phone", "Phone"),
            "supervisor": ("Supervisor Name", "Supervisor", "Manager"),
            "responsibilities": ("Responsibilities 1", "Duties", "Job Description"),
            "reason": ("Reason for Leaving 1", "Reason Leaving", "Why Left"),
        },
        # Field name is misspelled in the published template.
        reason_continued="Company Reason for Leaving 1 Conitnued",
    ),
    *_employment_slot(
        2,
        {
            "name": ("Company Name and Location_2", "Company 2", "Employer 2"),
            "start_position": ("Starting Position_2", "Start Position 2", "Initial Position 2"),
            "end_position": ("Ending Position_2", "End Position 2", "Final Position 2"),
            "phone": ("Telephone Number_2", "Company Phone 2", "Phone 2"),
            "supervisor": ("Supervisor Name_2", "Supervisor 2", "Manager 2"),
            "responsibilities": ("Responsibilities 1_2", "Duties 2", "Job Description 2"),
            "reason": ("Reason for Leaving 1_2", "Reason Leaving 2", "Why Left 2"),
        },
        reason_continued="Company Reason for Leaving 2 Continued",
    ),
)


def _status_is(*statuses: str) -> Extractor:
    return lambda payload: normalize_citizenship(payload.get("citizenshipStatus")) in statuses


def _when_status(status: str, read: Extractor) -> Extractor:
    return lambda payload: read(payload) if normalize_citizenship(payload.get("citizenshipStatus")) == status else ""


def _alien_document(index: int) -> Extractor:
    return _when_status(ALIEN_AUTHORIZED, lambda payload: alien_documents(payload)[index])


I9_BINDINGS: tuple[FieldBinding, ...] = (
    FieldBinding("legalLastName", "Last Name (Family Name)", fallbacks=("LastName",)),
    FieldBinding("legalFirstName", "First Name Given Name", fallbacks=("FirstName",)),
    FieldBinding("middleInitial", "Employee Middle Initial (if any)", fallbacks=("MI",)),
    FieldBinding("otherLastNames", "Employee Other Last Names Used (if any)", fallbacks=("Other Names", "Previous Names")),
    FieldBinding("streetAddress", "Address Street Number and Name", fallbacks=("Street Address", "Address")),
    FieldBinding("aptNumber", "Apt Number (if any)", fallbacks=("Apartment", "Unit")),
    FieldBinding("city", "City or Town", fallbacks=("City", "Town")),
    FieldBinding("state", "State", CHOICE, fallbacks=("State/Province",)),
    FieldBinding("zipCode", "ZIP Code", fallbacks=("Zip", "Postal Code")),
    FieldBinding(
        "dateOfBirth",
        "Date of Birth mmddyyyy",
        fallbacks=("DOB", "Birth Date"),
        extract=lambda payload: i9_date(payload.get("dateOfBirth")),
    ),
    FieldBinding(
        "socialSecurityNumber",
        "US Social Security Number",
        fallbacks=("SSN", "Social Security"),
        extract=lambda payload: ssn_digits(payload.get("socialSecurityNumber")),
    ),
    FieldBinding("phoneNumber", "Telephone Number", fallbacks=("Phone", "Phone Number")),
    FieldBinding("email", "Employees E-mail Address", fallbacks=("Email", "Email Address")),
    # Section 2 repeats the employee name at the top of the page.
    FieldBinding("legalLastName", "Last Name Family Name from Section 1", required=False),
    FieldBinding("legalFirstName", "First Name Given Name from Section 1", required=False),
    FieldBinding("middleInitial", "Middle initial if any from Section 1", required=False),
    FieldBinding("citizenshipStatus", "CB_1", CHECKBOX, fallbacks=("Citizen", "US Citizen"), extract=_status_is(CITIZEN)),
    FieldBinding(
        "citizenshipStatus",
        "CB_2",
        CHECKBOX,
        fallbacks=("Non-citizen National",),
        extract=_status_is(NONCITIZEN_NATIONAL),
    ),
    FieldBinding(
        "citizenshipStatus",
        "CB_3",
        CHECKBOX,
        fallbacks=("Permanent Resident",),
        extract=_status_is(PERMANENT_RESIDENT),
    ),
    FieldBinding(
        "citizenshipStatus",
        "CB_4",
        CHECKBOX,
        fallbacks=("Authorized Alien", "Work Authorized"),
        extract=_status_is(ALIEN_AUTHORIZED),
    ),
    FieldBinding(
        "uscisANumber",
        "3 A lawful permanent resident Enter USCIS or ANumber",
        fallbacks=("CB_3 USCIS", "Permanent Resident A-Number"),
        extract=_when_status(PERMANENT_RESIDENT, _first("uscisANumber")),
    ),
    FieldBinding(
        "workAuthorizationExpiration",
        "Exp Date mmddyyyy",
        fallbacks=("Expiration Date", "Exp Date"),
        extract=_when_status(
            ALIEN_AUTHORIZED,
            lambda payload: i9_date(_first("workAuthorizationExpiration", "workAuthExpiration")(payload)),
        ),
    ),
    FieldBinding("uscisANumber", "USCIS ANumber", fallbacks=("CB_4 USCIS", "A-Number"), extract=_alien_document(0)),
    FieldBinding(
        "i94AdmissionNumber",
        "Form I94 Admission Number",
        fallbacks=("I-94 Number", "Admission Number"),
        extract=_alien_document(1),
    ),
    FieldBinding(
        "foreignPassportNumber",
        "Foreign Passport Number and Country of IssuanceRow1",
        fallbacks=("Passport Number", "Foreign Passport"),
        extract=_alien_document(2),
    ),
)
