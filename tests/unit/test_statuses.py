"""Tests for the project-status catalog."""

import pytest

from sitewatch.core.errors import InvalidInputError
from sitewatch.core.schemas import ProjectStatusOption
from sitewatch.registry.statuses import (
    BUILTIN_PROJECT_STATUSES,
    FALLBACK_COLOR,
    ProjectStatusCatalog,
    status_value,
)


class TestStatusValue:
    def test_slug(self) -> None:
        assert status_value("  Needs   Review ") == "needs_review"

    def test_blank(self) -> None:
        assert status_value("   ") == ""


class TestCatalog:
    def test_builtins_first(self) -> None:
        catalog = ProjectStatusCatalog()
        catalog.add("Client Review", "#ff8800")
        values = catalog.values()
        assert values[: len(BUILTIN_PROJECT_STATUSES)] == [s.value for s in BUILTIN_PROJECT_STATUSES]
        assert values[-1] == "client_review"

    def test_add_returns_option(self) -> None:
        option = ProjectStatusCatalog().add(" Client Review ", "#abc")
        assert option == ProjectStatusOption(value="client_review", label="Client Review", color="#abc")

    @pytest.mark.parametrize("color", ["red", "#12345", "#ggg", ""])
    def test_bad_color_rejected(self, color: str) -> None:
        catalog = ProjectStatusCatalog()
        with pytest.raises(InvalidInputError, match="invalid color"):
            catalog.add("Review", color)
        assert catalog.custom == []

    def test_empty_label_rejected(self) -> None:
        with pytest.raises(InvalidInputError, match="must not be empty"):
            ProjectStatusCatalog().add("  ", "#fff")

    def test_duplicate_of_builtin_rejected(self) -> None:
        with pytest.raises(InvalidInputError, match="already exists"):
            ProjectStatusCatalog().add("Live", "#fff")

    def test_duplicate_custom_rejected(self) -> None:
        catalog = ProjectStatusCatalog()
        catalog.add("Review", "#fff")
        with pytest.raises(InvalidInputError, match="already exists"):
            catalog.add("review", "#000")
        assert len(catalog.custom) == 1

    def test_remove_custom(self) -> None:
        catalog = ProjectStatusCatalog()
        catalog.add("Review", "#fff")
        assert catalog.remove("review") is True
        assert catalog.remove("review") is False
        assert catalog.custom == []

    def test_builtin_cannot_be_removed(self) -> None:
        catalog = ProjectStatusCatalog()
        with pytest.raises(InvalidInputError, match="cannot be removed"):
            catalog.remove("wip")
        assert "wip" in catalog.values()

    def test_lookup_unknown_is_grey(self) -> None:
        option = ProjectStatusCatalog().lookup("retired")
        assert option.label == "retired"
        assert option.color == FALLBACK_COLOR

    def test_lookup_known(self) -> None:
        assert ProjectStatusCatalog().lookup("live").label == "Live"

    def test_custom_is_a_copy(self) -> None:
        catalog = ProjectStatusCatalog()
        catalog.add("Review", "#fff")
        catalog.custom.clear()
        assert len(catalog.custom) == 1


class TestReplaceCustom:
    def test_replace(self) -> None:
        catalog = ProjectStatusCatalog([ProjectStatusOption(value="a", label="A")])
        catalog.replace_custom([ProjectStatusOption(value="b", label="B")])
        assert [s.value for s in catalog.custom] == ["b"]

    def test_shadowing_builtin_rejected(self) -> None:
        with pytest.raises(InvalidInputError, match="duplicate project status 'live'"):
            ProjectStatusCatalog([ProjectStatusOption(value="live", label="Mine")])

    def test_rejection_keeps_previous(self) -> None:
        catalog = ProjectStatusCatalog([ProjectStatusOption(value="a", label="A")])
        with pytest.raises(InvalidInputError):
            catalog.replace_custom([
                ProjectStatusOption(value="x", label="X"),
                ProjectStatusOption(value="x", label="X again"),
            ])
        assert [s.value for s in catalog.custom] == ["a"]
