"""
Point Key Codec — canonical identity of a point for matching.

A point key is the (name, kind, unit) triple. It ignores the
point id, writable flag, description and tags, so the same logical point
compares equal across equipment instances and signature templates.
Missing and empty units are the same unit.
"""

from typing import Iterable, List, Optional, Set, Union

from pydantic import BaseModel, ConfigDict

from bacnet_signatures.errors import ValidationError
from bacnet_signatures.models.point import Point, PointKind
from bacnet_signatures.models.signature import SignaturePoint

SEPARATOR = "|"


class PointKey(BaseModel):
    """Hashable value type. Build through encode(), never by string formatting."""

    model_config = ConfigDict(frozen=True)

    name: str
    kind: PointKind
    unit: str = ""

    def __str__(self) -> str:
        return SEPARATOR.join((self.name, self.kind.value, self.unit))


def encode(name: str, kind: Union[PointKind, str], unit: Optional[str] = None) -> PointKey:
    """The single constructor for point keys. Units may not contain the separator."""
    if unit and SEPARATOR in unit:
        raise ValidationError(f"Point unit {unit!r} contains the key separator {SEPARATOR!r}")
    return PointKey(name=name, kind=PointKind(kind), unit=unit or "")


def decode(raw: str) -> PointKey:
    """
    Parse the string form produced by str(PointKey).

    Names may contain the separator; kind and unit may not.
    """
    parts = raw.rsplit(SEPARATOR, 2)
    if len(parts) != 3:
        raise ValidationError(f"Malformed point key: {raw!r}")
    name, kind, unit = parts
    try:
        return encode(name, kind, unit)
    except ValueError:
        raise ValidationError(f"Unknown point kind {kind!r} in key {raw!r}")


def key_for_point(point: Union[Point, SignaturePoint]) -> PointKey:
    """Key of an equipment point or a signature template point."""
    if isinstance(point, Point):
        return encode(point.display_name, point.kind, point.unit)
    return encode(point.name, point.kind, point.unit)


def key_set(points: Iterable[Union[Point, SignaturePoint]]) -> Set[PointKey]:
    return {key_for_point(p) for p in points}


def unique_by_key(points: Iterable[Union[Point, SignaturePoint]]) -> List:
    """Drop later duplicates; the first occurrence of each key is kept, order preserved."""
    seen: Set[PointKey] = set()
    result = []
    for p in points:
        key = key_for_point(p)
        if key in seen:
            continue
        seen.add(key)
        result.append(p)
    return result
