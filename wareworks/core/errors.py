from __future__ import annotations


class WareWorksError(Exception):
    """Base class for failures raised inside the application services."""


class TemplateError(WareWorksError):
    """A PDF template is missing, unreadable, or has no form fields."""

    def __init__(self, template: str, reason: str) -> None:
        super().__init__(f"{template}: {reason}")
        self.template = template
        self.reason = reason


class BindingDriftError(TemplateError):
    """The binding table references fields the template does not have."""

    def __init__(self, template: str, missing: list[str]) -> None:
        super().__init__(template, f"{len(missing)} bound field(s) missing from template")
        self.missing = missing


class DispatchError(WareWorksError):
    """A notification transport rejected or failed to deliver a message."""


class SpreadsheetError(WareWorksError):
    """The spreadsheet append could not be completed."""


class StorageError(WareWorksError):
    """An uploaded document could not be written to the document store."""
