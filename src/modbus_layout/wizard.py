"""Tab state machine of the device/template form: connection -> registers -> parameters."""

import dataclasses
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .form import DeviceForm
from .submission import to_submission
from .types import ValidationCategory, ValidationResult
from .validation import validate_form

logger = logging.getLogger(__name__)


class Tab(str, Enum):
    CONNECTION = "connection"
    REGISTERS = "registers"
    PARAMETERS = "parameters"


TAB_ORDER = (Tab.CONNECTION, Tab.REGISTERS, Tab.PARAMETERS)

# Error categories shown when leaving each tab
TAB_CATEGORIES: dict[Tab, tuple[ValidationCategory, ...]] = {
    Tab.CONNECTION: (ValidationCategory.BASIC_INFO, ValidationCategory.CONNECTION, ValidationCategory.GENERAL),
    Tab.REGISTERS: (ValidationCategory.REGISTERS, ValidationCategory.GENERAL),
    Tab.PARAMETERS: tuple(ValidationCategory),
}


@dataclass(frozen=True)
class WizardState:
    """Active tab and the validation errors currently on display (None when hidden)."""

    tab: Tab = Tab.CONNECTION
    displayed: ValidationResult | None = None

    @property
    def has_visible_errors(self) -> bool:
        return self.displayed is not None and bool(self.displayed.all_errors())


@dataclass(frozen=True)
class SubmitOutcome:
    state: WizardState
    result: ValidationResult
    payload: dict[str, Any] | None = None


def select_tab(state: WizardState, tab: Tab) -> WizardState:
    """Jump straight to tab; displayed errors are hidden."""
    return WizardState(tab=Tab(tab), displayed=None)


def previous_tab(state: WizardState) -> WizardState:
    """Step back one tab (staying on the first), hiding displayed errors."""
    position = TAB_ORDER.index(state.tab)
    return WizardState(tab=TAB_ORDER[max(position - 1, 0)], displayed=None)


def next_tab(state: WizardState, form: DeviceForm) -> WizardState:
    """
    Validate the whole form and show the errors belonging to the tab being
    left. Move on only when none of those errors exist.
    """
    result = validate_form(form)
    shown = result.only(*TAB_CATEGORIES[state.tab])
    if shown.all_errors():
        logger.debug("Staying on %s tab: %d error(s)", state.tab.value, len(shown.all_errors()))
        return dataclasses.replace(state, displayed=shown)
    position = TAB_ORDER.index(state.tab)
    return WizardState(tab=TAB_ORDER[min(position + 1, len(TAB_ORDER) - 1)], displayed=shown)


def submit(state: WizardState, form: DeviceForm) -> SubmitOutcome:
    """Validate everything, show every error, and build the payload only for a valid form."""
    result = validate_form(form)
    new_state = dataclasses.replace(state, displayed=result)
    if not result.is_valid:
        logger.debug("Submit blocked: %d error(s)", len(result.all_errors()))
        return SubmitOutcome(state=new_state, result=result)
    return SubmitOutcome(state=new_state, result=result, payload=to_submission(form))
