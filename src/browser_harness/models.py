"""Value objects shared by sessions, resolvers and drivers."""

from __future__ import annotations

import enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

_XPATH_PREFIXES = ("/", "./", "(")


class SelectorType(str, enum.Enum):
    """Kinds of selector expressions understood by the resolver."""

    CSS = "css"
    XPATH = "xpath"
    ID = "id"
    FIELD = "field"
    FILLABLE_FIELD = "fillable_field"
    SELECT = "select"
    CHECKBOX = "checkbox"
    RADIO_BUTTON = "radio_button"
    FILE_FIELD = "file_field"
    LINK = "link"
    BUTTON = "button"
    LINK_OR_BUTTON = "link_or_button"
    OPTION = "option"
    FIELDSET = "fieldset"
    TABLE = "table"

    @property
    def structural(self) -> bool:
        return self in {SelectorType.CSS, SelectorType.XPATH}


class Selector(BaseModel):
    """An immutable query against a document."""

    model_config = ConfigDict(frozen=True)

    type: SelectorType
    locator: str
    exact: Optional[bool] = Field(
        default=None,
        description="Exact text matching for semantic selectors; None uses the session default.",
    )

    @classmethod
    def parse(
        cls,
        expression: str,
        default: SelectorType = SelectorType.CSS,
        exact: Optional[bool] = None,
    ) -> "Selector":
        """Build a selector from a bare expression, detecting XPath syntax."""

        if expression.startswith(_XPATH_PREFIXES):
            return cls(type=SelectorType.XPATH, locator=expression, exact=exact)
        return cls(type=default, locator=expression, exact=exact)

    def describe(self) -> str:
        return f"{self.type.value} {self.locator!r}"


class InteractionType(str, enum.Enum):
    """Interactions a driver performs on a single element."""

    SET = "set"
    SELECT_OPTION = "select_option"
    UNSELECT_OPTION = "unselect_option"
    CHECK = "check"
    UNCHECK = "uncheck"
    CLICK = "click"
    ATTACH_FILE = "attach_file"


class Interaction(BaseModel):
    """An instruction for a driver to act on one element."""

    type: InteractionType
    value: Optional[str] = None
