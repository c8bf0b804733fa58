# ethree/domain/locations.py

import logging
from enum import Enum

from ethree.domain.exceptions import InvalidInputError

logger = logging.getLogger(__name__)


class Location(str, Enum):
    E3 = "E3"
    E4 = "E4"

    @classmethod
    def parse(cls, value: str | None, default: "Location | None" = None) -> "Location":
        """
        Case-insensitive lookup. Blank input resolves to the default
        (the primary location unless told otherwise).
        """
        if value is None or not str(value).strip():
            return default or PRIMARY_LOCATION

        normalized = str(value).strip().upper()
        try:
            return cls(normalized)
        except ValueError as exc:
            raise InvalidInputError(f"Unknown location: {value}") from exc

    @classmethod
    def from_callback(cls, value: str | None) -> "Location":
        """
        Lenient variant for gateway pass-through fields.
        A callback must still be reconciled, so unknown values fall back
        to the primary location instead of raising.
        """
        try:
            return cls.parse(value)
        except InvalidInputError:
            logger.warning(
                "Unrecognised callback location udf1=%r, routing to %s.",
                value,
                PRIMARY_LOCATION.value,
            )
            return PRIMARY_LOCATION


PRIMARY_LOCATION = Location.E3
