"""Full-backup export and import of the registry and custom project statuses.

Document shape::

    {"type": "full-backup", "version": "1.0", "export_date": "...",
     "websites": [...], "custom_statuses": [...]}

Import also accepts a bare JSON list of websites. Everything is validated
before the caller swaps anything in.
"""

import json
import logging
from collections import Counter
from collections.abc import Iterable
from datetime import datetime
from typing import Any, Literal

from pydantic import AliasChoices, BaseModel, Field, ValidationError

from sitewatch.core.errors import InvalidInputError
from sitewatch.core.schemas import ProjectStatusOption, WebsiteRecord

logger = logging.getLogger(__name__)

BACKUP_TYPE = "full-backup"
BACKUP_VERSION = "1.0"


class BackupDocument(BaseModel):
    type: Literal["full-backup"] = BACKUP_TYPE
    version: str = BACKUP_VERSION
    export_date: datetime = Field(
        default_factory=datetime.now,
        validation_alias=AliasChoices("export_date", "exportDate"),
    )
    websites: list[WebsiteRecord] = Field(default_factory=list)
    custom_statuses: list[ProjectStatusOption] = Field(
        default_factory=list,
        validation_alias=AliasChoices("custom_statuses", "customStatuses"),
    )


class ImportReport(BaseModel):
    """Validated import contents plus anything worth telling the user."""

    websites: list[WebsiteRecord] = Field(default_factory=list)
    custom_statuses: list[ProjectStatusOption] | None = None
    duplicate_urls: list[str] = Field(default_factory=list)


def export_backup(
    records: Iterable[WebsiteRecord],
    custom_statuses: Iterable[ProjectStatusOption] = (),
) -> BackupDocument:
    return BackupDocument(websites=list(records), custom_statuses=list(custom_statuses))


def dump_backup(document: BackupDocument) -> str:
    """Pretty JSON without transient fields."""
    return document.model_dump_json(
        indent=2,
        exclude={"websites": {"__all__": {"is_capturing"}}},
    )


def parse_backup(text: str) -> ImportReport:
    """Parse and validate a backup. Raises InvalidInputError on any problem.

    ``custom_statuses`` is None when the input was a bare website list, so
    the caller can leave its catalog untouched.
    """
    try:
        raw: Any = json.loads(text)
    except json.JSONDecodeError as e:
        msg = f"backup is not valid JSON: {e}"
        raise InvalidInputError(msg) from e

    try:
        if isinstance(raw, list):
            websites = [WebsiteRecord.model_validate(item) for item in raw]
            custom_statuses = None
        elif isinstance(raw, dict):
            document = BackupDocument.model_validate(raw)
            websites = document.websites
            custom_statuses = document.custom_statuses
        else:
            msg = "backup must be a JSON object or a list of websites"
            raise InvalidInputError(msg)
    except ValidationError as e:
        msg = f"backup failed validation: {e}"
        raise InvalidInputError(msg) from e

    ids = Counter(w.id for w in websites)
    repeated = sorted(i for i, n in ids.items() if n > 1)
    if repeated:
        msg = f"backup contains duplicate website ids: {repeated}"
        raise InvalidInputError(msg)

    duplicate_urls = _duplicate_urls(websites)
    if duplicate_urls:
        logger.warning("Backup contains %d duplicate URLs", len(duplicate_urls))

    return ImportReport(
        websites=[w.model_copy(update={"is_capturing": False}) for w in websites],
        custom_statuses=custom_statuses,
        duplicate_urls=duplicate_urls,
    )


def _duplicate_urls(websites: list[WebsiteRecord]) -> list[str]:
    counts = Counter(w.url.rstrip("/").casefold() for w in websites)
    return sorted(url for url, n in counts.items() if n > 1)
