"""
Uniform grid spatial index over canonical POIs.

The grid covers the region bbox (and the POI extent) with cells sized for a
small expected POI count each. Nearest-neighbour queries expand ring by ring from
the query's home cell and stop once a great-circle lower bound on the distance
to every unexplored cell exceeds the best candidate, so the answer is the true
nearest POI on the sphere.

The index is read-only after `build`.
"""
from __future__ import annotations

import logging
import math
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

import numpy as np

from ..config import GRID_TARGET_PER_CELL
from ..errors import InvalidInput
from ..geometry_utils import (
    BBox,
    bbox_union,
    haversine_m_array,
    meters_per_degree_lat,
    meters_per_degree_lon,
    min_distance_to_bbox_m,
)
from ..poi.schema import CanonicalPOI, CategoryGroup

logger = logging.getLogger(__name__)

_EDGE_PAD_DEG = 1e-9
_EMPTY = np.empty(0, dtype=np.int64)
_EMPTY.flags.writeable = False


def _frozen(arr: np.ndarray) -> np.ndarray:
    arr.flags.writeable = False
    return arr


def _check_point(lon, lat) -> Tuple[float, float]:
    try:
        lon = float(lon); lat = float(lat)
    except (TypeError, ValueError):
        raise InvalidInput(f"coordinates must be numeric, got ({lon!r}, {lat!r})")
    if not (math.isfinite(lon) and math.isfinite(lat)):
        raise InvalidInput("coordinates must be finite")
    return lon, lat


def _check_bbox(bbox: BBox) -> BBox:
    try:
        min_lon, min_lat, max_lon, max_lat = (float(v) for v in bbox)
    except (TypeError, ValueError):
        raise InvalidInput(f"bbox must be (min_lon, min_lat, max_lon, max_lat), got {bbox!r}")
    if min_lon > max_lon or min_lat > max_lat:
        raise InvalidInput(f"bbox bounds are reversed: {bbox!r}")
    return min_lon, min_lat, max_lon, max_lat


def grid_shape(n: int, width_m: float, height_m: float, target_per_cell: int) -> Tuple[int, int]:
    """(ncols, nrows) giving roughly `target_per_cell` POIs per cell, square-ish in meters."""
    n_cells = max(1, math.ceil(n / max(1, target_per_cell)))
    if n_cells == 1:
        return 1, 1
    if height_m <= 0 and width_m <= 0:
        return 1, 1
    if height_m <= 0:
        return n_cells, 1
    if width_m <= 0:
        return 1, n_cells
    aspect = width_m / height_m
    ncols = max(1, int(round(math.sqrt(n_cells * aspect))))
    nrows = max(1, math.ceil(n_cells / ncols))
    return ncols, nrows


class GridIndex:

    def __init__(
        self,
        pois: Tuple[CanonicalPOI, ...],
        lons: np.ndarray,
        lats: np.ndarray,
        origin: Tuple[float, float],
        cell_size: Tuple[float, float],
        shape: Tuple[int, int],
        cells: Dict[int, np.ndarray],
        by_category: Dict[CategoryGroup, np.ndarray],
    ):
        self._pois = pois
        self._lons = lons
        self._lats = lats
        self._min_lon, self._min_lat = origin
        self._cell_w, self._cell_h = cell_size
        self._ncols, self._nrows = shape
        self._cells = cells
        self._by_category = by_category

    @classmethod
    def build(
        cls,
        pois: Iterable[CanonicalPOI],
        bbox: Optional[BBox] = None,
        target_per_cell: int = GRID_TARGET_PER_CELL,
    ) -> "GridIndex":
        """
        Partition the region into a uniform grid and bucket the POIs.

        Args:
            pois: canonical POIs; their order is the canonical order used for ties
            bbox: region bbox; the grid also stretches to cover every POI
            target_per_cell: expected POIs per cell

        Returns:
            A read-only GridIndex
        """
        pois = tuple(pois)
        n = len(pois)
        lons = _frozen(np.array([p.lon for p in pois], dtype=np.float64))
        lats = _frozen(np.array([p.lat for p in pois], dtype=np.float64))

        by_category: Dict[CategoryGroup, np.ndarray] = {}
        for group in CategoryGroup:
            positions = [i for i, p in enumerate(pois) if p.category_group is group]
            by_category[group] = _frozen(np.array(positions, dtype=np.int64))

        if n == 0:
            logger.info("Built empty grid index")
            return cls(pois, lons, lats, (0.0, 0.0), (1.0, 1.0), (0, 0), {}, by_category)

        extent = (float(lons.min()), float(lats.min()), float(lons.max()), float(lats.max()))
        min_lon, min_lat, max_lon, max_lat = bbox_union(_check_bbox(bbox) if bbox is not None else None, extent)

        mid_lat = (min_lat + max_lat) / 2.0
        width_m = (max_lon - min_lon) * meters_per_degree_lon(mid_lat)
        height_m = (max_lat - min_lat) * meters_per_degree_lat()
        ncols, nrows = grid_shape(n, width_m, height_m, target_per_cell)
        cell_w = (max_lon - min_lon) / ncols if max_lon > min_lon else 1.0
        cell_h = (max_lat - min_lat) / nrows if max_lat > min_lat else 1.0

        cols = np.clip(np.floor((lons - min_lon) / cell_w).astype(np.int64), 0, ncols - 1)
        rows = np.clip(np.floor((lats - min_lat) / cell_h).astype(np.int64), 0, nrows - 1)
        flat = cols * nrows + rows
        order = np.argsort(flat, kind="stable")
        keys, starts = np.unique(flat[order], return_index=True)
        cells = {
            int(k): _frozen(group)
            for k, group in zip(keys, np.split(order, starts[1:]))
        }

        logger.info(
            f"[ok] Built grid index: {n} POIs in {ncols}x{nrows} cells "
            f"({len(cells)} occupied)"
        )
        return cls(pois, lons, lats, (min_lon, min_lat), (cell_w, cell_h), (ncols, nrows), cells, by_category)

    # --- introspection ---

    def __len__(self) -> int:
        return len(self._pois)

    @property
    def pois(self) -> Tuple[CanonicalPOI, ...]:
        return self._pois

    @property
    def shape(self) -> Tuple[int, int]:
        return self._ncols, self._nrows

    @property
    def bbox(self) -> Optional[BBox]:
        if not self._ncols:
            return None
        return (
            self._min_lon,
            self._min_lat,
            self._min_lon + self._ncols * self._cell_w,
            self._min_lat + self._nrows * self._cell_h,
        )

    # --- cell geometry ---

    def _col(self, lon: float) -> int:
        return min(max(int(math.floor((lon - self._min_lon) / self._cell_w)), 0), self._ncols - 1)

    def _row(self, lat: float) -> int:
        return min(max(int(math.floor((lat - self._min_lat) / self._cell_h)), 0), self._nrows - 1)

    def _block_bbox(self, c0: int, c1: int, r0: int, r1: int) -> BBox:
        """Degree rectangle covering columns c0..c1 and rows r0..r1, padded outward."""
        return (
            self._min_lon + c0 * self._cell_w - _EDGE_PAD_DEG,
            self._min_lat + r0 * self._cell_h - _EDGE_PAD_DEG,
            self._min_lon + (c1 + 1) * self._cell_w + _EDGE_PAD_DEG,
            self._min_lat + (r1 + 1) * self._cell_h + _EDGE_PAD_DEG,
        )

    def _ring(self, hc: int, hr: int, r: int) -> Iterator[Tuple[int, int]]:
        if r == 0:
            yield hc, hr
            return
        for c in range(hc - r, hc + r + 1):
            for rr in (hr - r, hr + r):
                if 0 <= c < self._ncols and 0 <= rr < self._nrows:
                    yield c, rr
        for rr in range(hr - r + 1, hr + r):
            for c in (hc - r, hc + r):
                if 0 <= c < self._ncols and 0 <= rr < self._nrows:
                    yield c, rr

    def _unexplored_lower_bound(self, lon: float, lat: float, hc: int, hr: int, r: int) -> float:
        """Minimum possible distance to any cell outside rings 0..r (inf when none are left)."""
        c0, c1 = max(0, hc - r), min(self._ncols - 1, hc + r)
        r0, r1 = max(0, hr - r), min(self._nrows - 1, hr + r)
        last_c, last_r = self._ncols - 1, self._nrows - 1

        strips: List[BBox] = []
        if c0 > 0:
            strips.append(self._block_bbox(0, c0 - 1, 0, last_r))
        if c1 < last_c:
            strips.append(self._block_bbox(c1 + 1, last_c, 0, last_r))
        if r0 > 0:
            strips.append(self._block_bbox(c0, c1, 0, r0 - 1))
        if r1 < last_r:
            strips.append(self._block_bbox(c0, c1, r1 + 1, last_r))
        if not strips:
            return math.inf
        return min(min_distance_to_bbox_m(lat, lon, s) for s in strips)

    # --- queries ---

    def query_nearest(self, lon: float, lat: float) -> Optional[Tuple[CanonicalPOI, float]]:
        """
        Nearest POI by great-circle distance.

        Returns:
            (poi, distance in meters), or None when the index is empty
        """
        lon, lat = _check_point(lon, lat)
        if not self._pois:
            return None
        if not self._cells:
            dists = haversine_m_array(lat, lon, self._lats, self._lons)
            best = int(np.argmin(dists))
            return self._pois[best], float(dists[best])

        hc, hr = self._col(lon), self._row(lat)
        max_ring = max(hc, self._ncols - 1 - hc, hr, self._nrows - 1 - hr)
        best_pos = -1
        best_d = math.inf

        for r in range(max_ring + 1):
            for c, rr in self._ring(hc, hr, r):
                positions = self._cells.get(c * self._nrows + rr)
                if positions is None:
                    continue
                dists = haversine_m_array(lat, lon, self._lats[positions], self._lons[positions])
                i = int(np.argmin(dists))
                d = float(dists[i])
                pos = int(positions[i])
                if d < best_d or (d == best_d and pos < best_pos):
                    best_d, best_pos = d, pos
            if best_pos >= 0 and self._unexplored_lower_bound(lon, lat, hc, hr, r) > best_d:
                break

        return self._pois[best_pos], best_d

    def _positions_in_bbox(self, bbox: BBox) -> np.ndarray:
        min_lon, min_lat, max_lon, max_lat = bbox
        grid = self.bbox
        if grid is None:
            return _EMPTY
        if max_lon < grid[0] or min_lon > grid[2] or max_lat < grid[1] or min_lat > grid[3]:
            return _EMPTY

        chunks = []
        for c in range(self._col(min_lon), self._col(max_lon) + 1):
            for rr in range(self._row(min_lat), self._row(max_lat) + 1):
                positions = self._cells.get(c * self._nrows + rr)
                if positions is not None:
                    chunks.append(positions)
        if not chunks:
            return _EMPTY
        positions = np.concatenate(chunks)
        lons = self._lons[positions]
        lats = self._lats[positions]
        inside = (lons >= min_lon) & (lons <= max_lon) & (lats >= min_lat) & (lats <= max_lat)
        return np.sort(positions[inside])

    def query_range(self, bbox: BBox) -> List[CanonicalPOI]:
        """POIs with min <= coordinate <= max on both axes, in canonical order."""
        bbox = _check_bbox(bbox)
        return [self._pois[int(i)] for i in self._positions_in_bbox(bbox)]

    def query_category(self, group, bbox: Optional[BBox] = None) -> List[CanonicalPOI]:
        try:
            group = CategoryGroup.parse(group)
        except ValueError as e:
            raise InvalidInput(str(e)) from e
        positions = self._by_category.get(group, _EMPTY)
        if bbox is not None:
            min_lon, min_lat, max_lon, max_lat = _check_bbox(bbox)
            lons = self._lons[positions]
            lats = self._lats[positions]
            positions = positions[(lons >= min_lon) & (lons <= max_lon) & (lats >= min_lat) & (lats <= max_lat)]
        return [self._pois[int(i)] for i in positions]
