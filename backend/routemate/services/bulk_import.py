"""All-or-nothing bulk import of locations.

The whole batch is validated before anything is written: the first invalid
record rejects the batch and nothing reaches the store. A valid batch is
written with a single multi-row insert, so it becomes visible as a unit.

Example:
    Import two records:
        >>> result = import_locations(repo, [
        ...     {"name": "A", "lat": 1, "lng": 1},
        ...     {"name": "B", "lat": 2, "lng": 2},
        ... ])
        >>> result.count
        2
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from typing import TYPE_CHECKING, Any, NamedTuple

from routemate.core import errors
from routemate.core.logging import get_logger
from routemate.services import validation

if TYPE_CHECKING:
    from routemate.db import models as db_models
    from routemate.services import locations

logger = get_logger(__name__)


class BulkImportResult(NamedTuple):
    count: int
    locations: list[db_models.Location]


def _describe(record: object) -> str:
    try:
        return json.dumps(record, default=str)[:200]
    except (TypeError, ValueError):
        return repr(record)[:200]


def validate_batch(
    records: object,
    strict: bool = False,
) -> list[db_models.LocationDraft]:
    """Validate every candidate record of a batch.

    Args:
        records: Candidate records, each a mapping with name, lat and lng.
        strict: Enforce coordinate ranges.

    Returns:
        One draft per record, in input order.

    Raises:
        ValidationError: If the batch is not a non-empty list, or on the
            first invalid record.
    """
    if not isinstance(records, list) or not records:
        raise errors.ValidationError(
            "Locations array is required and must not be empty"
        )

    drafts = []
    for index, record in enumerate(records):
        if not isinstance(record, Mapping):
            raise errors.ValidationError(
                f"Invalid location data at index {index}: {_describe(record)}."
                " Name, lat, and lng are required."
            )
        try:
            drafts.append(
                validation.build_draft(
                    record.get("name"),
                    record.get("lat"),
                    record.get("lng"),
                    strict=strict,
                )
            )
        except errors.ValidationError as exc:
            raise errors.ValidationError(
                f"Invalid location data at index {index}: {_describe(record)}."
                f" {exc.message}"
            ) from exc
    return drafts


def import_locations(
    repository: locations.LocationRepository,
    records: Any,
) -> BulkImportResult:
    """Validate a batch and write it with one insert.

    Raises:
        ValidationError: If any record is invalid; nothing is written.
        UpstreamError: If the insert fails.
    """
    drafts = validate_batch(records, strict=repository.strict_coordinates)
    # The insert is all-or-nothing, so every draft was written even if a
    # returned row fails to decode
    written = repository.create_many(drafts)
    logger.info("locations_imported", count=len(drafts))
    return BulkImportResult(count=len(drafts), locations=written)
