"""On-disk cache of the routes discovered per service."""
import json
import logging
from pathlib import Path
from typing import List, Union

from src.schema.models import RefreshRecord

logger = logging.getLogger(__name__)


class RouteCacheError(Exception):
    """Cache file could not be read or is corrupt."""


class RouteCacheFile:
    """JSON array of {service, routes} records."""

    def __init__(self, path: Union[str, Path]):
        """Initialize cache file."""
        self.path = Path(path)

    def exists(self) -> bool:
        """Check if cache file exists."""
        return self.path.is_file()

    def load(self) -> List[RefreshRecord]:
        """
        Load records from the cache file.

        Raises:
            RouteCacheError: If the file is unreadable or malformed
        """
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            raise RouteCacheError(f"Error reading routes file {self.path}: {e}") from e

        if not isinstance(data, list):
            raise RouteCacheError(f"Routes file {self.path} must contain a JSON array")

        try:
            records = [RefreshRecord.from_dict(item) for item in data]
        except (KeyError, TypeError, ValueError, AttributeError) as e:
            raise RouteCacheError(f"Malformed record in {self.path}: {e}") from e

        logger.debug(f"Loaded {len(records)} services from {self.path}")
        return records

    def save(self, records: List[RefreshRecord]) -> None:
        """Write records to the cache file, in the given order."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.path, "w", encoding="utf-8") as f:
            json.dump([record.to_dict() for record in records], f, indent=2)
        logger.debug(f"Saved {len(records)} services to {self.path}")

    def delete(self) -> None:
        """Remove the cache file if present."""
        try:
            self.path.unlink()
            logger.debug(f"Deleted routes file {self.path}")
        except FileNotFoundError:
            pass
