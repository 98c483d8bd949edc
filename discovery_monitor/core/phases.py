# discovery_monitor/core/phases.py
"""
Phase classification for discovery progress.

Jobs are expected to move through PHASE_ORDER, but nothing here enforces it:
scan phases are skipped by single-server registration, progress phases repeat,
and the service may deliver anything. The machine only answers "is this
terminal?" and keeps the latest phase + counters for display.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Dict, Optional

from discovery_monitor.models.progress import Outcome, Phase, ProgressEvent

log = logging.getLogger("discovery_monitor.core.phases")

PHASE_ORDER: tuple[Phase, ...] = (
    Phase.PENDING,
    Phase.STARTED,
    Phase.NETWORK_SCAN_STARTED,
    Phase.NETWORK_SCAN_RESULT,
    Phase.NETWORK_SCAN_PROGRESS,
    Phase.NETWORK_SCAN_FINISHED,
    Phase.PORT_SCAN_STARTED,
    Phase.PORT_SCAN_RESULT,
    Phase.PORT_SCAN_PROGRESS,
    Phase.PORT_SCAN_FINISHED,
    Phase.SERVER_DISCOVERY_STARTED,
    Phase.ENDPOINTS_DISCOVERY_STARTED,
    Phase.ENDPOINTS_DISCOVERY_FINISHED,
    Phase.SERVER_DISCOVERY_FINISHED,
    Phase.FINISHED,
)

_TERMINAL: Dict[Phase, Outcome] = {
    Phase.FINISHED: Outcome.SUCCESS,
    Phase.CANCELLED: Outcome.CANCELLED,
    Phase.ERROR: Outcome.ERROR,
}


def is_terminal(phase: Phase) -> bool:
    return phase in _TERMINAL


def classify(phase: Phase) -> Optional[Outcome]:
    """Outcome for a terminal phase, None for everything else."""
    return _TERMINAL.get(phase)


@dataclass(frozen=True)
class PhaseSnapshot:
    correlation_id: Optional[str]
    phase: Optional[Phase] = None
    progress: int = 0
    total: int = 0
    discovered: int = 0
    result: Optional[str] = None
    request_details: Dict[str, str] = field(default_factory=dict)
    events_seen: int = 0
    terminal: bool = False
    # first terminal outcome; later events do not change it
    outcome: Optional[Outcome] = None
    regressed: bool = False


class PhaseStateMachine:
    """Tracks the latest phase and counters for one correlation id."""

    def __init__(self, correlation_id: Optional[str] = None):
        self.correlation_id = correlation_id
        self._snapshot = PhaseSnapshot(correlation_id=correlation_id)

    @property
    def snapshot(self) -> PhaseSnapshot:
        return self._snapshot

    @property
    def terminal(self) -> bool:
        return self._snapshot.terminal

    def advance(self, event: ProgressEvent) -> PhaseSnapshot:
        prev = self._snapshot
        # counters are advisory: lower values are surfaced, not rejected
        regressed = prev.events_seen > 0 and (
            event.progress < prev.progress or event.total < prev.total
        )
        if regressed:
            log.debug(
                "progress counters went backwards",
                extra={
                    "correlation_id": self.correlation_id,
                    "phase": event.phase.value,
                    "progress": f"{prev.progress}->{event.progress}",
                    "total": f"{prev.total}->{event.total}",
                },
            )
        self._snapshot = replace(
            prev,
            phase=event.phase,
            progress=event.progress,
            total=event.total,
            discovered=event.discovered,
            result=event.result,
            request_details=dict(event.request_details),
            events_seen=prev.events_seen + 1,
            terminal=prev.terminal or is_terminal(event.phase),
            outcome=prev.outcome or classify(event.phase),
            regressed=regressed,
        )
        return self._snapshot
