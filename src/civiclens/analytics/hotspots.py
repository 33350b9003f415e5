"""Hotspot aggregation: complaint counts per coordinate pair and category."""

from collections import Counter

from civiclens.core.types import ComplaintRecord, HotspotCell


def aggregate_hotspots(
    records: list[ComplaintRecord],
    precision: int | None = None,
) -> list[HotspotCell]:
    """Group located complaints by (latitude, longitude, category).

    Records missing either coordinate are skipped. By default coordinates
    are grouped exactly, so two points a meter apart stay separate cells.
    Pass ``precision`` to round to that many decimals first
    (4 decimals ≈ 11 m at the equator).

    Cells are ordered by count descending, then category and coordinates.
    """
    counts: Counter = Counter()
    for r in records:
        if r.latitude is None or r.longitude is None:
            continue
        lat, lon = r.latitude, r.longitude
        if precision is not None:
            lat, lon = round(lat, precision), round(lon, precision)
        counts[(lat, lon, r.category)] += 1

    cells = [
        HotspotCell(latitude=lat, longitude=lon, category=category, count=n)
        for (lat, lon, category), n in counts.items()
    ]
    cells.sort(key=lambda c: (-c.count, c.category, c.latitude, c.longitude))
    return cells
