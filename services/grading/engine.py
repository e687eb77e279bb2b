# services/grading/engine.py
"""
Grade Computation Engine

Turns the components of one (student, subject) into a single summary grade.

Rules:
1. An explicitly entered summary component (semester_1 / semester_2 / yearly)
   matching the period's type wins over derivation
2. Otherwise:  summary = (R + 2*M + 3*F) / (n + 5)
   R = sum of regular values, n = their count,
   M = midterm (0 if absent), F = final (0 if absent)
3. No regular, midterm or final data at all -> None ("not yet available")

For summary periods the caller passes the components gathered from every
component period of the semester (or year). Only the latest entered value
of each component slot (midterm, final, regular_k) counts, ordered by
updated_at then id.
"""
from __future__ import annotations
import logging
from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, Iterable, List, Optional, Tuple

from sqlalchemy.engine import Connection, Engine
from sqlalchemy.exc import SQLAlchemyError

from core.clock import Clock, stamp
from services.grading.models import (
    EXPLICIT_SUMMARY_COMPONENTS,
    CellKey,
    ComponentType,
    GradeComponent,
    GradePeriod,
    PeriodType,
)
from services.grading.store import GradeStore
from services.roster.repository import RosterRepository

log = logging.getLogger(__name__)

MIDTERM_WEIGHT = 2
FINAL_WEIGHT = 3
# regular components weigh 1 each; the denominator adds the midterm and final weights
BASE_DENOMINATOR = MIDTERM_WEIGHT + FINAL_WEIGHT


# ============================================================================
# PURE COMPUTATION
# ============================================================================

@dataclass(frozen=True)
class SummaryGrade:
    value: Optional[float]
    display_value: Optional[float]
    # "explicit", "derived" or "unavailable"
    source: str

    @property
    def available(self) -> bool:
        return self.value is not None

    def to_dict(self) -> dict:
        return {"value": self.value, "display_value": self.display_value, "source": self.source}


def _latest_per_slot(components: Iterable[GradeComponent]) -> Dict[ComponentType, GradeComponent]:
    latest: Dict[ComponentType, GradeComponent] = {}
    for c in sorted(components, key=lambda c: (c.updated_at or "", c.id or 0)):
        if c.value is not None:
            latest[c.component_type] = c
    return latest


def _explicit_value(components: Iterable[GradeComponent],
                    period_type: Optional[PeriodType]) -> Optional[float]:
    if period_type is not None:
        wanted = {period_type.summary_component}
    else:
        wanted = set(EXPLICIT_SUMMARY_COMPONENTS)
    explicit = [c for c in components if c.component_type in wanted and c.value is not None]
    if not explicit:
        return None
    # latest entry wins if the gathered set holds more than one
    explicit.sort(key=lambda c: (c.updated_at or "", c.id or 0))
    return explicit[-1].value


def compute_summary(components: Iterable[GradeComponent],
                    period_type: Optional[PeriodType] = None) -> Optional[float]:
    """Summary grade at full precision, or None when nothing has been entered."""
    components = [c for c in components if c.component_type != ComponentType.SUMMARY]

    explicit = _explicit_value(components, period_type)
    if explicit is not None:
        return explicit

    slots = _latest_per_slot(components)
    regulars = [c.value for t, c in slots.items() if t.is_regular]
    midterm = slots.get(ComponentType.MIDTERM)
    final = slots.get(ComponentType.FINAL)

    if not regulars and midterm is None and final is None:
        return None

    r_sum = sum(regulars)
    m = midterm.value if midterm is not None else 0.0
    f = final.value if final is not None else 0.0
    return (r_sum + MIDTERM_WEIGHT * m + FINAL_WEIGHT * f) / (len(regulars) + BASE_DENOMINATOR)


def round_for_display(value: Optional[float], decimals: int = 1) -> Optional[float]:
    """Half-up rounding (7.25 -> 7.3), unlike round() which rounds half to even."""
    if value is None:
        return None
    quantum = Decimal(1).scaleb(-decimals)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_HALF_UP))


def summarize(components: Iterable[GradeComponent], period_type: Optional[PeriodType] = None,
              decimals: int = 1) -> SummaryGrade:
    components = list(components)
    explicit = _explicit_value(
        [c for c in components if c.component_type != ComponentType.SUMMARY], period_type
    )
    value = compute_summary(components, period_type)
    if value is None:
        source = "unavailable"
    elif explicit is not None:
        source = "explicit"
    else:
        source = "derived"
    return SummaryGrade(value=value, display_value=round_for_display(value, decimals), source=source)


# ============================================================================
# SERVICE
# ============================================================================

class SummaryGradeService:
    """Gathers components from the store and applies the computation engine."""

    def __init__(
        self,
        engine: Engine,
        store: Optional[GradeStore] = None,
        roster: Optional[RosterRepository] = None,
        clock: Optional[Clock] = None,
        display_decimals: int = 1,
        cache_summaries: bool = True,
    ):
        self.engine = engine
        self.store = store or GradeStore()
        self.roster = roster or RosterRepository()
        self.clock = clock
        self.display_decimals = display_decimals
        self.cache_summaries = cache_summaries

    def summary_for_cell(self, conn: Connection, period: GradePeriod, student_id: str,
                         subject_id: str, class_id: str) -> SummaryGrade:
        period_ids = self.roster.component_period_ids(conn, period)
        components = self.store.get_components_for_periods(
            conn, period_ids, class_id, student_id=student_id, subject_id=subject_id
        )
        return summarize(components, period.period_type, self.display_decimals)

    def class_summaries(self, conn: Connection, period: GradePeriod,
                        class_id: str) -> Dict[Tuple[str, str], SummaryGrade]:
        """Summary per (student_id, subject_id) for every cell with at least one row."""
        period_ids = self.roster.component_period_ids(conn, period)
        grouped: Dict[Tuple[str, str], List[GradeComponent]] = {}
        for comp in self.store.get_components_for_periods(conn, period_ids, class_id):
            grouped.setdefault((comp.student_id, comp.subject_id), []).append(comp)
        return {
            key: summarize(comps, period.period_type, self.display_decimals)
            for key, comps in grouped.items()
        }

    def compute(self, period_id: str, student_id: str, subject_id: str, class_id: str) -> SummaryGrade:
        with self.engine.connect() as conn:
            period = self.roster.get_period(conn, period_id)
            result = self.summary_for_cell(conn, period, student_id, subject_id, class_id)

        if result.available and self.cache_summaries:
            self._write_cache([(CellKey(period_id, student_id, subject_id, class_id), result.value)])
        return result

    def refresh_cache(self, conn: Connection, period: GradePeriod, class_id: str) -> int:
        """Rewrite every summary cache row of a class inside the caller's transaction."""
        now = stamp(self.clock)
        written = 0
        for (student_id, subject_id), result in self.class_summaries(conn, period, class_id).items():
            if result.available:
                self.store.write_summary_cache(
                    conn, CellKey(period.id, student_id, subject_id, class_id), result.value, now
                )
                written += 1
        return written

    def _write_cache(self, entries: List[Tuple[CellKey, float]]) -> None:
        try:
            with self.engine.begin() as conn:
                now = stamp(self.clock)
                for cell, value in entries:
                    self.store.write_summary_cache(conn, cell, value, now)
        except SQLAlchemyError as e:
            # the read already succeeded; a missed cache write only costs a recompute
            log.warning("Summary cache write failed for %d cell(s): %s", len(entries), e)
