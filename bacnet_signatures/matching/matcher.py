"""
Signature Matcher — how well an equipment's point set satisfies a signature.

A template point is matched iff its key is in the equipment's key set.
Extra points on the equipment are ignored. Matching is a query only:
it never prunes or edits a signature's matching_equipment_ids.
"""

from typing import Iterable, List, Optional, Set

from pydantic import BaseModel, computed_field, field_serializer

from bacnet_signatures.keys.codec import PointKey, key_for_point, key_set, unique_by_key
from bacnet_signatures.models.config import EngineConfig
from bacnet_signatures.models.point import EquipmentInstance, Point
from bacnet_signatures.models.signature import Signature


class Coverage(BaseModel):
    signature_id: str
    matched_count: int
    total_signature_points: int
    matched_point_keys: Set[PointKey]
    missing_point_keys: Set[PointKey]

    @field_serializer("matched_point_keys", "missing_point_keys")
    def serialize_keys(self, keys: Set[PointKey]) -> List[str]:
        return sorted(str(k) for k in keys)

    @computed_field
    @property
    def ratio(self) -> float:
        if not self.total_signature_points:
            return 0.0
        return self.matched_count / self.total_signature_points

    @computed_field
    @property
    def is_full_match(self) -> bool:
        return self.matched_count == self.total_signature_points


def coverage(equipment: EquipmentInstance, signature: Signature) -> Coverage:
    equipment_keys = key_set(equipment.points)
    template_keys = key_set(signature.point_signature)
    matched = template_keys & equipment_keys
    return Coverage(
        signature_id=signature.id,
        matched_count=len(matched),
        total_signature_points=len(template_keys),
        matched_point_keys=matched,
        missing_point_keys=template_keys - matched,
    )


def is_full_match(equipment: EquipmentInstance, signature: Signature) -> bool:
    return coverage(equipment, signature).is_full_match


def rank_signatures(
    equipment: EquipmentInstance,
    signatures: Iterable[Signature],
) -> List[Signature]:
    """
    Same-type signatures ordered by matched count (desc), confidence (desc),
    then name (asc).
    """
    scored = [
        (coverage(equipment, s).matched_count, s)
        for s in signatures
        if s.equipment_type == equipment.equipment_type
    ]
    scored.sort(key=lambda item: (-item[0], -item[1].confidence, item[1].name))
    return [s for _, s in scored]


def candidate_signatures(equipment: EquipmentInstance, registry) -> List[Signature]:
    """Rank the registry's signatures for this equipment's type."""
    return rank_signatures(
        equipment, registry.list_by_equipment_type(equipment.equipment_type)
    )


def apply_template(equipment: EquipmentInstance, signature: Signature) -> List[Point]:
    """The tracked points: equipment points whose key is templated, in equipment order."""
    template_keys = key_set(signature.point_signature)
    return [p for p in equipment.points if key_for_point(p) in template_keys]


def point_universe(points: Iterable[Point]) -> List[Point]:
    """Points offered for selection, one representative (the first) per key."""
    return unique_by_key(points)


def find_original(points: Iterable[Point], key: PointKey) -> Optional[Point]:
    """Look up a point's full metadata by its compound key, never by name alone."""
    for p in points:
        if key_for_point(p) == key:
            return p
    return None


def search_points(
    points: Iterable[Point],
    term: Optional[str],
    config: Optional[EngineConfig] = None,
) -> List[Point]:
    """Substring search over display name, normalized name, description and tags."""
    config = config or EngineConfig()
    points = list(points)
    if not term or len(term) < config.search_min_length:
        return points

    needle = term.lower()
    results = []
    for p in points:
        haystack = [p.display_name, p.normalized_name or "", p.functional_description or ""]
        haystack.extend(p.tags)
        if any(needle in field.lower() for field in haystack):
            results.append(p)
    return results
