"""Project-status catalog: fixed built-ins plus user-defined extensions.

Built-ins are a module-level tuple and are never mutated; custom entries
live in the catalog instance and are merged after the built-ins on read.
"""

import logging
import re
from collections.abc import Iterable

from sitewatch.core.errors import InvalidInputError
from sitewatch.core.schemas import HEX_COLOR_RE, ProjectStatusOption

logger = logging.getLogger(__name__)

BUILTIN_PROJECT_STATUSES: tuple[ProjectStatusOption, ...] = (
    ProjectStatusOption(value="wip", label="Work in Progress", color="#F0AD4E"),
    ProjectStatusOption(value="live", label="Live", color="#28A745"),
    ProjectStatusOption(value="maintenance", label="Maintenance", color="#17A2B8"),
    ProjectStatusOption(value="on_hold", label="On Hold", color="#6C757D"),
    ProjectStatusOption(value="archived", label="Archived", color="#343A40"),
)

FALLBACK_COLOR = "#A4A4A4"


def status_value(label: str) -> str:
    """Slug used as a custom status value: lowercase, whitespace runs become '_'."""
    return re.sub(r"\s+", "_", label.strip().lower())


class ProjectStatusCatalog:
    """Merged view of built-in and custom project statuses."""

    def __init__(self, custom: Iterable[ProjectStatusOption] = ()) -> None:
        self._custom: list[ProjectStatusOption] = []
        self.replace_custom(custom)

    @property
    def custom(self) -> list[ProjectStatusOption]:
        return list(self._custom)

    def all(self) -> list[ProjectStatusOption]:
        return [*BUILTIN_PROJECT_STATUSES, *self._custom]

    def values(self) -> list[str]:
        return [s.value for s in self.all()]

    def lookup(self, value: str) -> ProjectStatusOption:
        """Return the option for ``value``; unknown values get a neutral grey entry."""
        for option in self.all():
            if option.value == value:
                return option
        return ProjectStatusOption(value=value, label=value, color=FALLBACK_COLOR)

    def add(self, label: str, color: str) -> ProjectStatusOption:
        label = label.strip()
        value = status_value(label)
        if not value:
            msg = "custom status label must not be empty"
            raise InvalidInputError(msg)
        if not HEX_COLOR_RE.match(color):
            msg = f"invalid color '{color}' (expected #rgb or #rrggbb)"
            raise InvalidInputError(msg)
        if value in self.values():
            msg = f"project status '{value}' already exists"
            raise InvalidInputError(msg)
        option = ProjectStatusOption(value=value, label=label, color=color)
        self._custom.append(option)
        logger.info("Added custom project status '%s'", value)
        return option

    def remove(self, value: str) -> bool:
        if any(s.value == value for s in BUILTIN_PROJECT_STATUSES):
            msg = f"built-in project status '{value}' cannot be removed"
            raise InvalidInputError(msg)
        before = len(self._custom)
        self._custom = [s for s in self._custom if s.value != value]
        return len(self._custom) < before

    def replace_custom(self, custom: Iterable[ProjectStatusOption]) -> None:
        """Swap all custom entries. Entries shadowing a built-in or each other are rejected."""
        custom = list(custom)
        seen = {s.value for s in BUILTIN_PROJECT_STATUSES}
        for option in custom:
            if option.value in seen:
                msg = f"duplicate project status '{option.value}'"
                raise InvalidInputError(msg)
            seen.add(option.value)
        self._custom = custom
