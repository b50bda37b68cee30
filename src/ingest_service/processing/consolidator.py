"""
Restaurant consolidator: turns raw inspection rows into Restaurant records.

Responsibility: group rows by camis, pick the most recent inspection as the
canonical row, collect the violation history, drop restaurants without
usable coordinates.
Input: InspectionRecord rows from the fetcher.
Output: Restaurant records ready for the local store.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, Iterable, List, Optional, Tuple

from ingest_service.models import InspectionRecord, Restaurant, Violation

logger = logging.getLogger(__name__)

DATE_FORMATS = ['%Y-%m-%dT%H:%M:%S.%f', '%Y-%m-%dT%H:%M:%S', '%Y-%m-%d']


def parse_inspection_date(date_str):
    """Parse an inspection date; returns None if no known format matches."""
    if not date_str or not date_str.strip():
        return None

    date_str = date_str.strip()
    for fmt in DATE_FORMATS:
        try:
            return datetime.strptime(date_str, fmt)
        except ValueError:
            continue
    return None


def parse_coordinates(record: InspectionRecord) -> Optional[Tuple[float, float]]:
    """Return (latitude, longitude) if both parse as non-zero floats."""
    try:
        lat = float(record.latitude)
        lon = float(record.longitude)
    except (TypeError, ValueError):
        return None
    if lat == 0.0 or lon == 0.0:
        return None
    return lat, lon


def parse_score(score_str):
    try:
        return int(score_str)
    except (TypeError, ValueError):
        return 0


def select_canonical(inspections: List[InspectionRecord]) -> InspectionRecord:
    """
    Pick the inspection with the latest parseable date.

    Rows with equal dates keep source order, so the first one seen wins.
    If no row has a parseable date the first row is used.
    """
    best = None
    best_date = None
    for inspection in inspections:
        inspected_on = parse_inspection_date(inspection.inspection_date)
        if inspected_on is None:
            continue
        if best_date is None or inspected_on > best_date:
            best, best_date = inspection, inspected_on
    return best if best is not None else inspections[0]


def build_violations(inspections: List[InspectionRecord]) -> List[Violation]:
    """One Violation per row with a violation description, in source order."""
    violations = []
    for inspection in inspections:
        description = (inspection.violation_description or "").strip()
        if not description:
            continue
        violations.append(Violation(
            id=f"{inspection.violation_code or ''}{inspection.inspection_date or ''}",
            code=inspection.violation_code,
            description=description,
            critical_flag=inspection.critical_flag,
            inspection_date=parse_inspection_date(inspection.inspection_date),
        ))
    return violations


def create_restaurant(inspection: InspectionRecord, camis: str, coordinates: Tuple[float, float],
                      violations: List[Violation], now: Optional[datetime] = None) -> Restaurant:
    """Build a Restaurant from its canonical inspection row."""
    address = " ".join(part for part in (inspection.building, inspection.street) if part).strip()
    latitude, longitude = coordinates

    return Restaurant(
        id=camis,
        name=inspection.dba,
        grade=inspection.grade or "N/A",
        food_type=inspection.cuisine_description or "Unknown",
        address=address or "Address not available",
        borough=inspection.boro or "Unknown",
        zip_code=inspection.zipcode or "",
        latitude=latitude,
        longitude=longitude,
        last_updated=now or datetime.now(),
        phone=inspection.phone,
        cuisine=inspection.cuisine_description,
        inspection_date=parse_inspection_date(inspection.inspection_date),
        score=parse_score(inspection.score),
        violations=violations,
    )


@dataclass
class ConsolidationResult:
    restaurants: List[Restaurant] = field(default_factory=list)
    dropped: int = 0


def group_by_camis(rows: Iterable[InspectionRecord]) -> Dict[str, List[InspectionRecord]]:
    """Group rows by restaurant identifier, keeping first-seen group order."""
    groups: Dict[str, List[InspectionRecord]] = {}
    for row in rows:
        groups.setdefault(row.camis, []).append(row)
    return groups


def consolidate(rows: Iterable[InspectionRecord], now: Optional[datetime] = None) -> ConsolidationResult:
    """
    Reduce inspection rows to one Restaurant per camis.

    Restaurants whose canonical row has missing or zero coordinates are
    left out and only counted in ConsolidationResult.dropped.
    """
    now = now or datetime.now()
    result = ConsolidationResult()
    groups = group_by_camis(rows)

    for camis, inspections in groups.items():
        canonical = select_canonical(inspections)
        coordinates = parse_coordinates(canonical)
        if coordinates is None:
            result.dropped += 1
            continue
        result.restaurants.append(
            create_restaurant(canonical, camis, coordinates, build_violations(inspections), now)
        )

    logger.info(f"Grouped {len(groups)} restaurants: {len(result.restaurants)} kept, {result.dropped} without valid coordinates")
    return result


class PageCarry:
    """
    Holds back the trailing restaurant of a page.

    Pages are ordered by camis, so only the last identifier of a full page
    can continue on the next one. Its rows are kept until the next page
    (or the end of the dataset) so every restaurant is consolidated once.
    """

    def __init__(self):
        self._pending: List[InspectionRecord] = []

    def feed(self, rows: List[InspectionRecord], last_page: bool) -> List[InspectionRecord]:
        """Return the rows that are complete and can be consolidated now."""
        rows = self._pending + list(rows)
        self._pending = []
        if last_page or not rows:
            return rows

        trailing = rows[-1].camis
        split = len(rows)
        while split > 0 and rows[split - 1].camis == trailing:
            split -= 1
        if split == 0:
            # Whole page is one restaurant; keep waiting for more rows
            self._pending = rows
            return []
        self._pending = rows[split:]
        return rows[:split]

    @property
    def pending(self) -> int:
        return len(self._pending)


def consolidate_pages(pages: Iterable[Tuple[int, List[InspectionRecord]]], page_size: int):
    """
    Consolidate a stream of (offset, rows) pages as they arrive.

    A page shorter than page_size is the last one. Yields
    (offset, row_count, ConsolidationResult) per page.
    """
    carry = PageCarry()
    for offset, rows in pages:
        last_page = len(rows) < page_size
        complete = carry.feed(rows, last_page)
        yield offset, len(rows), consolidate(complete)
        if last_page:
            return

    # Source ran out right after a full page
    if carry.pending:
        yield offset + page_size, 0, consolidate(carry.feed([], last_page=True))
