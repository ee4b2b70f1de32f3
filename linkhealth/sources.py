"""Record sources feeding the monitor."""

import asyncio
import logging
from pathlib import Path
from typing import Protocol

import yaml

from .models import Record, UrlType

logger = logging.getLogger(__name__)


class SourceError(Exception):
    """Raised when records cannot be fetched from the source."""

    pass


class RecordSource(Protocol):
    """Anything that can fetch the full list of records to check."""

    async def fetch_records(self) -> list[Record]: ...


# Accepted keys per record attribute: upstream field name first, then snake_case.
_FIELD_KEYS = {
    "id": ("Id", "id"),
    "name": ("Name", "name"),
    "component_screenshot_url": (UrlType.COMPONENT_SCREENSHOT.value, "component_screenshot_url"),
    "html_source_url": (UrlType.HTML_SOURCE.value, "html_source_url"),
    "screenshot_url": (UrlType.SCREENSHOT.value, "screenshot_url"),
}


def _lookup(data: dict, keys: tuple[str, ...]) -> object:
    for key in keys:
        if key in data:
            return data[key]
    return None


def _parse_record(data: object, index: int) -> Record:
    """Parse a single record entry."""
    if not isinstance(data, dict):
        raise SourceError(f"Record entry {index} must be a dictionary")

    values = {attr: _lookup(data, keys) for attr, keys in _FIELD_KEYS.items()}

    if values["id"] is None:
        raise SourceError(f"Record entry {index} is missing 'Id' field")

    record_id = str(values["id"])
    name = values["name"]

    def url(attr: str) -> str | None:
        value = values[attr]
        return str(value) if value is not None else None

    return Record(
        id=record_id,
        name=str(name) if name is not None else record_id,
        component_screenshot_url=url("component_screenshot_url"),
        html_source_url=url("html_source_url"),
        screenshot_url=url("screenshot_url"),
    )


class FileRecordSource:
    """Reads records from a YAML or JSON file.

    The file holds either a list of records or a mapping with a "records"
    list. Records without any URL are skipped.
    """

    def __init__(self, path: str | Path) -> None:
        self._path = Path(path)

    @property
    def path(self) -> Path:
        return self._path

    async def fetch_records(self) -> list[Record]:
        records = await asyncio.to_thread(self._load)
        logger.info("Found %d records with URLs in %s", len(records), self._path)
        return records

    def _load(self) -> list[Record]:
        if not self._path.exists():
            raise SourceError(f"Records file not found: {self._path}")

        try:
            with open(self._path, encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise SourceError(f"Failed to parse records file: {e}")
        except OSError as e:
            raise SourceError(f"Failed to read records file: {e}")

        if data is None:
            return []
        if isinstance(data, dict):
            data = data.get("records")
        if not isinstance(data, list):
            raise SourceError("Records file must contain a list of records or a 'records' list")

        records = [_parse_record(entry, i) for i, entry in enumerate(data)]
        skipped = [record for record in records if not record.has_urls]
        if skipped:
            logger.debug("Skipping %d records without URLs", len(skipped))
        return [record for record in records if record.has_urls]
