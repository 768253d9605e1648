"""
Exception hierarchy for viewx.

Render-time problems (bad selectors, unparseable markup) are caught inside the
compiler and only ever logged. Registration-time problems are raised to the
caller so plugin setup code fails fast at boot.
"""

from typing import List, Optional


class ViewxError(Exception):
    """Base class for all viewx errors."""


class SelectorSyntaxError(ViewxError):
    """An XPath selector could not be compiled or evaluated."""

    def __init__(self, selector: str, reason: str = ""):
        self.selector = selector
        self.reason = reason
        message = f"Invalid selector {selector!r}"
        if reason:
            message += f": {reason}"
        super().__init__(message)


SelectorError = SelectorSyntaxError


class ParseFailure(ViewxError):
    """Base markup could not be parsed at all."""


class RegistrationError(ViewxError, ValueError):
    """A registration call was rejected."""


class CycleDetected(RegistrationError):
    """A view definition would inherit from itself."""

    def __init__(self, chain: List[str]):
        self.chain = list(chain)
        super().__init__("Inheritance cycle detected: " + " -> ".join(self.chain))


class UnknownViewType(RegistrationError):
    """The view type is not registered in the catalogue."""

    def __init__(self, name: Optional[str]):
        self.name = name
        super().__init__(f"Unknown view type: {name}")


class DuplicateSystemType(RegistrationError):
    """A system view type name is already taken."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"View type '{name}' is already registered as a system type")


class InvalidViewDefinition(RegistrationError):
    """A view definition failed validation against its view type."""

    def __init__(self, issues):
        self.issues = list(issues)
        details = ", ".join(f"{issue.field}: {issue.message}" for issue in self.issues)
        super().__init__(f"Invalid view definition: {details}")


class ViewDefinitionNotFound(RegistrationError, LookupError):
    """A referenced view definition does not exist."""

    def __init__(self, slug: str):
        self.slug = slug
        super().__init__(f"View definition '{slug}' not found")


class InvalidExtension(RegistrationError):
    """An extension, slot contribution or replacement is malformed."""
