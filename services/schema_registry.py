"""Registry of the telemetry field names ("data types") readings carry."""

from __future__ import annotations

import logging
import re
from threading import Lock
from typing import Iterable, List, Optional, Sequence, Tuple

from datastore.telemetry import TelemetryStore
from services.errors import InvalidDataTypesError, SchemaPersistenceError
from storage.properties import PropertyStore

logger = logging.getLogger(__name__)

DATA_TYPES_PROPERTY_KEY = "dataTypeListString"

_FIELD_NAME_PATTERN = re.compile(r"[0-9A-Za-z]+")
_SEPARATOR = ","


def is_valid_field_name(value: object) -> bool:
    return isinstance(value, str) and _FIELD_NAME_PATTERN.fullmatch(value) is not None


def validate_field_names(candidates: Optional[Sequence[str]]) -> None:
    """Raise ``InvalidDataTypesError`` for an empty list or the first bad token."""
    if not candidates:
        raise InvalidDataTypesError("Data type list is empty.")
    for token in candidates:
        if not is_valid_field_name(token):
            raise InvalidDataTypesError(
                f"Invalid data type string --> {token!r}", token=str(token)
            )


def canonicalize(candidates: Iterable[str]) -> List[str]:
    return sorted(set(candidates))


def serialize_field_names(field_names: Iterable[str]) -> str:
    return _SEPARATOR.join(field_names)


def parse_field_names(raw: str) -> List[str]:
    tokens = (token.strip() for token in raw.split(_SEPARATOR))
    return [token for token in tokens if token]


class SchemaRegistry:
    """Owns the canonical, sorted data type list.

    ``reconfigure`` is serialized by a lock scoped to the registry. Reads of
    ``data_types`` take no lock and see either the list before or after an
    in-flight reconfiguration, since the swap is a single assignment.
    """

    def __init__(
        self,
        property_store: PropertyStore,
        telemetry: TelemetryStore,
        initial: Optional[Iterable[str]] = None,
    ) -> None:
        names = list(initial or [])
        if names:
            validate_field_names(names)
        self.property_store = property_store
        self.telemetry = telemetry
        self._data_types: List[str] = canonicalize(names)
        self._lock = Lock()

    @classmethod
    def from_store(
        cls,
        property_store: PropertyStore,
        telemetry: TelemetryStore,
        default: Iterable[str] = (),
    ) -> "SchemaRegistry":
        """Build a registry from the persisted list, falling back to ``default``.

        Malformed persisted or default lists are logged and skipped; with
        neither usable the registry starts empty.
        """
        raw = property_store.get(DATA_TYPES_PROPERTY_KEY)
        candidates: List[Tuple[str, List[str]]] = []
        if raw is not None and raw.strip():
            candidates.append(("persisted", parse_field_names(raw)))
        candidates.append(("default", list(default)))

        initial: List[str] = []
        for source, names in candidates:
            if not names:
                continue
            try:
                validate_field_names(names)
            except InvalidDataTypesError as exc:
                logger.warning(
                    "Ignoring %s data types: %s",
                    source,
                    exc,
                    extra={"token": exc.token},
                )
                continue
            initial = names
            break
        registry = cls(property_store, telemetry, initial=initial)
        logger.info("Data types loaded", extra={"data_types": registry.data_types})
        return registry

    @property
    def data_types(self) -> List[str]:
        return list(self._data_types)

    def reconfigure(self, candidates: Optional[Sequence[str]]) -> List[str]:
        """Replace the data type list and discard readings recorded under the old one.

        Returns the canonical list. Input that is set-equal to the current list
        is a no-op and leaves stored readings untouched.

        The property write happens first; if clearing readings then fails, the
        previous property value is written back and the in-memory list is left
        as it was.
        """
        if isinstance(candidates, str):
            logger.error("Rejected data types: expected a list, got a string")
            raise InvalidDataTypesError(
                f"Data types must be a list of names, not the string {candidates!r}",
                token=candidates,
            )
        names = None if candidates is None else list(candidates)
        with self._lock:
            try:
                validate_field_names(names)
            except InvalidDataTypesError as exc:
                logger.error("Rejected data types: %s", exc, extra={"token": exc.token})
                raise

            assert names is not None
            current = self._data_types
            if set(names) == set(current):
                logger.debug(
                    "Data types unchanged", extra={"data_types": current}
                )
                return list(current)

            updated = canonicalize(names)
            previous_raw = self.property_store.get(DATA_TYPES_PROPERTY_KEY)

            try:
                self.property_store.set(
                    DATA_TYPES_PROPERTY_KEY, serialize_field_names(updated)
                )
            except OSError as exc:
                raise SchemaPersistenceError(
                    f"Could not persist data types: {exc}"
                ) from exc

            try:
                deleted = self.telemetry.clear_all()
            except Exception as exc:
                self._restore_property(previous_raw, current)
                if isinstance(exc, OSError):
                    raise SchemaPersistenceError(
                        f"Could not clear readings for new data types: {exc}"
                    ) from exc
                raise

            self._data_types = updated
            logger.info(
                "Data types updated",
                extra={"data_types": updated, "deleted_count": deleted},
            )
            return list(updated)

    def _restore_property(self, previous_raw: Optional[str], current: List[str]) -> None:
        restored = previous_raw if previous_raw is not None else serialize_field_names(current)
        try:
            self.property_store.set(DATA_TYPES_PROPERTY_KEY, restored)
        except OSError:
            logger.exception(
                "Could not restore persisted data types",
                extra={"data_types": current},
            )
