"""
Drought cluster identification and tracking in space and time.

Clusters are 8-connected groups of drought cells at one time step; clusters
with fewer than ``th_cell_clus`` cells are dropped as noise. Clusters at
consecutive steps belong to the same drought event when they share at least
``n_cell_inter`` cells (and at least one).

Linkage is one-to-one and deterministic: candidate (event, cluster) pairs are
ranked by shared cells (descending), then event id, then cluster label (both
ascending) and accepted greedily while both sides are still free.

* merge: a cluster overlapping several events continues the best-ranked one;
  the other events close with ``merged_into`` pointing at it.
* split: an event overlapping several clusters is continued by the best-ranked
  one; the other clusters open new events listing it in ``parent_ids``.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterator, List, Optional, Tuple

import numpy as np
from scipy import ndimage

from smi.core.constants import CLUSTER_STRUCTURE, NODATA_INT
from smi.core.exceptions import ClusteringInconsistency, ConfigurationError, ErrorContext
from smi.core.types import CellSets, EventID, EventState, IndicatorGrid, StepIndex
from smi.grid.mask import GridMask

logger = logging.getLogger(__name__)


@dataclass
class DroughtEvent:
    """A drought cluster followed through consecutive time steps"""

    event_id: EventID
    start: StepIndex
    cells: CellSets = field(default_factory=dict)  # step -> sorted packed cell indices
    state: EventState = EventState.OPEN
    end: Optional[StepIndex] = None
    parent_ids: List[EventID] = field(default_factory=list)
    merged_into: Optional[EventID] = None
    censored: bool = False  # still open at the last step

    @property
    def last_step(self) -> StepIndex:
        return max(self.cells)

    @property
    def steps(self) -> List[StepIndex]:
        return sorted(self.cells)

    @property
    def duration(self) -> int:
        return len(self.cells)

    def area(self, step: StepIndex) -> int:
        return int(self.cells[step].size) if step in self.cells else 0

    @property
    def areas(self) -> np.ndarray:
        return np.array([self.cells[t].size for t in self.steps], dtype=int)

    @property
    def peak_area(self) -> int:
        return int(self.areas.max()) if self.cells else 0

    def footprint(self) -> np.ndarray:
        """All cells touched by the event at any step"""
        if not self.cells:
            return np.empty(0, dtype=np.int64)
        return np.unique(np.concatenate(list(self.cells.values())))

    def close(self, end: StepIndex, censored: bool = False) -> None:
        self.end = end
        self.state = EventState.CLOSED
        self.censored = censored


class ClusterRegistry:
    """Drought events of one run, finalized at the end of tracking"""

    def __init__(self, mask: GridMask, n_steps: int, th_cell_clus: int,
                 nodata: Optional[np.ndarray] = None):
        self.mask = mask
        self.n_steps = n_steps
        self.th_cell_clus = th_cell_clus
        self._events: Dict[EventID, DroughtEvent] = {}
        self._nodata = nodata

    def add(self, event: DroughtEvent) -> None:
        self._events[event.event_id] = event

    def get(self, event_id: EventID) -> DroughtEvent:
        return self._events[event_id]

    @property
    def events(self) -> List[DroughtEvent]:
        return [self._events[k] for k in sorted(self._events)]

    @property
    def n_events(self) -> int:
        return len(self._events)

    def __len__(self) -> int:
        return self.n_events

    def __iter__(self) -> Iterator[DroughtEvent]:
        return iter(self.events)

    def events_at(self, step: StepIndex) -> List[DroughtEvent]:
        return [e for e in self.events if step in e.cells]

    def cluster_id_field(self) -> np.ndarray:
        """Event id per (row, col, step); 0 outside events, NODATA_INT for no-data"""
        packed = np.zeros((self.mask.n_cells, self.n_steps), dtype=np.int32)
        for event in self.events:
            for t, cells in event.cells.items():
                packed[cells, t] = event.event_id
        grid = self.mask.unpack(packed, fill=NODATA_INT)
        if self._nodata is not None:
            grid[self._nodata] = NODATA_INT
        return grid

    def validate(self) -> None:
        """Check registry invariants, raising ClusteringInconsistency on violation."""
        owner = np.zeros((self.mask.n_cells, self.n_steps), dtype=np.int64)
        for event in self.events:
            ctx = ErrorContext(component="clusters", details={"event_id": event.event_id})
            steps = event.steps
            if event.state != EventState.CLOSED or event.end is None:
                raise ClusteringInconsistency(f"Event {event.event_id} was never closed", ctx)
            if steps != list(range(event.start, event.end + 1)):
                raise ClusteringInconsistency(
                    f"Event {event.event_id} steps {steps} are not contiguous", ctx)
            for t in steps:
                cells = event.cells[t]
                if not self.mask.contains(cells):
                    raise ClusteringInconsistency(
                        f"Event {event.event_id} references cells outside the mask", ctx)
                if cells.size < self.th_cell_clus:
                    raise ClusteringInconsistency(
                        f"Event {event.event_id} has {cells.size} cells at step {t}", ctx)
                if np.any(owner[cells, t]):
                    raise ClusteringInconsistency(
                        f"Event {event.event_id} shares cells with another event at step {t}", ctx)
                owner[cells, t] = event.event_id
        self._check_links()

    def _check_links(self) -> None:
        """Parents are earlier events; merge chains never revisit an event."""
        for event in self.events:
            ctx = ErrorContext(component="clusters", details={"event_id": event.event_id})
            links = list(event.parent_ids)
            if event.merged_into is not None:
                links.append(event.merged_into)
            for other in links:
                if other not in self._events:
                    raise ClusteringInconsistency(
                        f"Event {event.event_id} links to unknown event {other}", ctx)
            for parent in event.parent_ids:
                if parent >= event.event_id:
                    raise ClusteringInconsistency(
                        f"Event {event.event_id} lists later event {parent} as parent", ctx)

        for event in self.events:
            seen = {event.event_id}
            target = event.merged_into
            while target is not None:
                if target in seen:
                    raise ClusteringInconsistency(
                        f"Merge chain of event {event.event_id} forms a cycle through event {target}",
                        ErrorContext(component="clusters"),
                    )
                seen.add(target)
                target = self._events[target].merged_into


class ClusterTracker:
    """
    Sequential cluster evolution over an indicator field.

    Each step rebuilds the link table from the previous step's open events
    only; the tracker is the sole writer of event ids.
    """

    def __init__(self, mask: GridMask, th_cell_clus: int, n_cell_inter: int):
        for name, value in (("th_cell_clus", th_cell_clus), ("n_cell_inter", n_cell_inter)):
            if value is None or value < 0:
                raise ConfigurationError(
                    f"{name} must be non-negative, got {value}",
                    ErrorContext(component="clusters"),
                )
        self.mask = mask
        self.th_cell_clus = int(th_cell_clus)
        self.n_cell_inter = int(n_cell_inter)
        self.logger = logging.getLogger(f"{__name__}.ClusterTracker")

    def find_clusters(self, flags: np.ndarray) -> List[np.ndarray]:
        """Packed cell sets of the clusters at one step, in label order."""
        drought = (np.asarray(flags) == 1) & self.mask.mask
        labels, n_labels = ndimage.label(drought, structure=CLUSTER_STRUCTURE)
        if n_labels == 0:
            return []
        packed = labels[self.mask.rows, self.mask.cols]
        sizes = np.bincount(packed, minlength=n_labels + 1)
        return [
            np.flatnonzero(packed == k)
            for k in range(1, n_labels + 1)
            if sizes[k] >= max(self.th_cell_clus, 1)
        ]

    def _candidates(self, clusters: List[np.ndarray], owner_prev: np.ndarray
                    ) -> List[Tuple[int, EventID, int]]:
        min_shared = max(self.n_cell_inter, 1)
        candidates = []
        for c, cells in enumerate(clusters):
            ids = owner_prev[cells]
            ids = ids[ids > 0]
            if ids.size == 0:
                continue
            event_ids, counts = np.unique(ids, return_counts=True)
            for event_id, shared in zip(event_ids, counts):
                if shared >= min_shared:
                    candidates.append((int(shared), int(event_id), c))
        candidates.sort(key=lambda x: (-x[0], x[1], x[2]))
        return candidates

    def track(self, indicator: IndicatorGrid) -> ClusterRegistry:
        """Identify and link drought clusters over all steps of ``indicator``."""
        indicator = np.asarray(indicator)
        if indicator.ndim != 3:
            raise ConfigurationError(
                f"Indicator must be (rows, cols, t), got shape {indicator.shape}",
                ErrorContext(component="clusters"),
            )
        self.mask.check_grid(indicator, "indicator")
        n_steps = indicator.shape[2]

        registry = ClusterRegistry(self.mask, n_steps, self.th_cell_clus,
                                   nodata=indicator == NODATA_INT)
        open_events: Dict[EventID, DroughtEvent] = {}
        next_id = 1

        for t in range(n_steps):
            clusters = self.find_clusters(indicator[:, :, t])

            owner_prev = np.zeros(self.mask.n_cells, dtype=np.int64)
            for event_id, event in open_events.items():
                owner_prev[event.cells[t - 1]] = event_id

            candidates = self._candidates(clusters, owner_prev)
            cluster_event: Dict[int, EventID] = {}
            continued = set()
            for shared, event_id, c in candidates:
                if c in cluster_event or event_id in continued:
                    continue
                cluster_event[c] = event_id
                continued.add(event_id)
                open_events[event_id].cells[t] = clusters[c]

            for c, cells in enumerate(clusters):
                if c in cluster_event:
                    continue
                parents = sorted({e for _, e, cc in candidates if cc == c})
                event = DroughtEvent(event_id=next_id, start=t, cells={t: cells},
                                     parent_ids=parents)
                registry.add(event)
                open_events[next_id] = event
                cluster_event[c] = next_id
                next_id += 1

            for event_id in sorted(set(open_events) - continued):
                event = open_events[event_id]
                if event.start == t:
                    continue
                links = [cc for _, e, cc in candidates if e == event_id]
                if links:
                    event.merged_into = cluster_event[links[0]]
                event.close(t - 1)
                del open_events[event_id]

            self.logger.debug("Step %d: %d clusters, %d open events", t, len(clusters), len(open_events))

        for event in open_events.values():
            event.close(n_steps - 1, censored=True)

        registry.validate()
        self.logger.info("Tracked %d drought events over %d steps", registry.n_events, n_steps)
        return registry


def track_clusters(indicator: IndicatorGrid, mask: GridMask, th_cell_clus: int,
                   n_cell_inter: int) -> ClusterRegistry:
    """Convenience wrapper around ClusterTracker.track"""
    return ClusterTracker(mask, th_cell_clus, n_cell_inter).track(indicator)
