from __future__ import annotations

import logging
import weakref
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import TYPE_CHECKING, Any

from core.model import zfs_property_names as names
from core.util.time_util import EPOCH, format_timestamp, parse_timestamp

if TYPE_CHECKING:
    from core.ingest.raw_zfs_object import RawProperty
    from core.model.zfs_record import ZfsRecord

logger = logging.getLogger(__name__)

PropertyValue = bool | int | str | datetime


@dataclass(frozen=True)
class ZfsProperty:
    """
    Immutable named property value with its locality.

    Equality only considers (name, value, is_local). The owner is held weakly and
    is used for provenance lookups only; updating a property means building a new
    instance with `with_value` and storing it in the owner's slot.
    """

    name: str
    value: PropertyValue
    is_local: bool = True
    _owner_ref: weakref.ReferenceType | None = field(default=None, compare=False, repr=False)

    @classmethod
    def create(
        cls, name: str, value: PropertyValue, is_local: bool = True, owner: ZfsRecord | None = None
    ) -> ZfsProperty:
        return cls(name, value, is_local, weakref.ref(owner) if owner is not None else None)

    # ---------- Derived views ----------

    @property
    def owner(self) -> ZfsRecord | None:
        return self._owner_ref() if self._owner_ref is not None else None

    @property
    def is_inherited(self) -> bool:
        return not self.is_local

    @property
    def source(self) -> str:
        """Provenance string in the external tool's format."""
        if self.owner is None:
            return names.SOURCE_NONE
        if self.is_local:
            return names.SOURCE_LOCAL
        ancestor = self.resolve_source()
        if ancestor is None:
            return names.SOURCE_DEFAULT
        return f"{names.SOURCE_INHERITED_PREFIX}{ancestor.name}"

    @property
    def value_string(self) -> str:
        if isinstance(self.value, bool):
            return "true" if self.value else "false"
        if isinstance(self.value, datetime):
            return format_timestamp(self.value)
        return str(self.value)

    @property
    def set_string(self) -> str:
        """`name=value` token for a batched property-set instruction."""
        return f"{self.name}={self.value_string}"

    # ---------- Copy helpers ----------

    def with_value(self, value: PropertyValue, is_local: bool | None = None) -> ZfsProperty:
        return replace(self, value=value, is_local=self.is_local if is_local is None else is_local)

    def with_owner(self, owner: ZfsRecord | None) -> ZfsProperty:
        return replace(self, _owner_ref=weakref.ref(owner) if owner is not None else None)

    def resolve_source(self) -> ZfsRecord | None:
        """
        Node where this value is defined locally: the owner itself for a local value,
        otherwise the nearest ancestor holding a local value of the same name.
        Returns None when the walk runs past a root without finding one.
        """
        node = self.owner
        if node is None:
            return None
        if self.is_local:
            return node

        node = node.parent
        while node is not None:
            prop = node.properties.get(self.name)
            if prop is not None and prop.is_local:
                return node
            node = node.parent
        return None


# ---------- Raw parse helpers ----------
# Each helper returns None on failure so ingestion can skip the object without raising.


def try_parse_bool(raw: RawProperty) -> ZfsProperty | None:
    text = raw.value.strip().lower()
    if text not in ("true", "false"):
        return None
    return ZfsProperty(raw.name, text == "true", _is_local_source(raw.source))


def try_parse_int(raw: RawProperty) -> ZfsProperty | None:
    try:
        value = int(raw.value.strip())
    except ValueError:
        return None

    bounds = names.INT_PROPERTY_RANGES.get(raw.name)
    if bounds is not None and not bounds[0] <= value <= bounds[1]:
        logger.debug(f"[Property] {raw.name}={value} outside allowed range {bounds}")
        return None
    return ZfsProperty(raw.name, value, _is_local_source(raw.source))


def try_parse_datetime(raw: RawProperty) -> ZfsProperty | None:
    value = parse_timestamp(raw.value)
    if value is None or value < EPOCH:
        return None
    return ZfsProperty(raw.name, value, _is_local_source(raw.source))


def try_parse_string(raw: RawProperty) -> ZfsProperty | None:
    if raw.value == names.SOURCE_NONE or raw.source == names.SOURCE_NONE:
        return None
    return ZfsProperty(raw.name, raw.value, _is_local_source(raw.source))


_PARSERS: dict[type, Any] = {
    bool: try_parse_bool,
    int: try_parse_int,
    datetime: try_parse_datetime,
    str: try_parse_string,
}


def try_parse(raw: RawProperty, value_type: type | None = None) -> ZfsProperty | None:
    """Parse a raw property using the value type registered for its name (or `value_type`)."""
    value_type = value_type or names.PROPERTY_VALUE_TYPES.get(raw.name)
    parser = _PARSERS.get(value_type)  # type: ignore[arg-type]
    if parser is None:
        return None
    return parser(raw)


def _is_local_source(source: str) -> bool:
    return source.strip() == names.SOURCE_LOCAL
