"""
Event file loaders.

Reads JSON arrays of raw events and validates every element. A single invalid
record fails the whole file; partial ingestion never happens.
"""
from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import List, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError

from src.seller_radar.pipeline.errors import IngestionValidationError
from src.seller_radar.pipeline.schemas import (
    EngagementEvent,
    IngestionBundle,
    ListingEvent,
    TransactionEvent,
)
from src.seller_radar.utils.logger import get_logger

logger = get_logger(__name__)

EventT = TypeVar("EventT", bound=BaseModel)
PathLike = Union[str, Path]


def _read_json_file(file_path: Path):
    with file_path.open("r", encoding="utf-8") as f:
        return json.load(f)


async def read_json_file(file_path: PathLike):
    """Read and parse a JSON file without blocking the event loop."""
    resolved = Path(file_path).expanduser().resolve()
    return await asyncio.to_thread(_read_json_file, resolved)


def parse_event_array(raw: object, schema: Type[EventT], source: str = "<memory>") -> List[EventT]:
    """
    Validate a decoded JSON array against an event schema.

    Raises:
        IngestionValidationError: If the payload is not an array or any
            element is invalid. The error names the first offending record.
    """
    if not isinstance(raw, list):
        raise IngestionValidationError(
            f"{source}: expected a JSON array of {schema.__name__} records",
            file_path=source,
            schema=schema.__name__,
        )

    parsed: List[EventT] = []
    for index, item in enumerate(raw):
        try:
            parsed.append(schema.model_validate(item))
        except ValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first.get("loc", ()))
            raise IngestionValidationError(
                f"{source}: record {index} failed {schema.__name__} validation "
                f"({field}: {first.get('msg')})",
                file_path=source,
                index=index,
                field=field or None,
                value=first.get("input"),
                schema=schema.__name__,
            ) from e
    return parsed


async def _load_events(file_path: PathLike, schema: Type[EventT]) -> List[EventT]:
    raw = await read_json_file(file_path)
    events = parse_event_array(raw, schema, source=str(file_path))
    logger.info("events_loaded", schema=schema.__name__, path=str(file_path), count=len(events))
    return events


async def load_transactions(file_path: PathLike) -> List[TransactionEvent]:
    return await _load_events(file_path, TransactionEvent)


async def load_listings(file_path: PathLike) -> List[ListingEvent]:
    return await _load_events(file_path, ListingEvent)


async def load_engagement_events(file_path: PathLike) -> List[EngagementEvent]:
    return await _load_events(file_path, EngagementEvent)


async def load_ingestion_bundle(
    transactions_path: PathLike,
    listings_path: PathLike,
    engagement_path: PathLike,
) -> IngestionBundle:
    """
    Load all three event files concurrently.

    Any failure (missing file, bad JSON, invalid record) propagates to the caller.
    """
    transactions, listings, engagement = await asyncio.gather(
        load_transactions(transactions_path),
        load_listings(listings_path),
        load_engagement_events(engagement_path),
    )
    return IngestionBundle(transactions=transactions, listings=listings, engagement=engagement)
