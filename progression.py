"""
Curriculum progression for non-privileged players.

Players work through the modes in order, with a fixed number of runs in
each. The state is an immutable value; every function returns a new one.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from typing import Dict, Optional, Tuple

from program_tree import Mode

MODE_SEQUENCE = (Mode.BASIC, Mode.CONDITIONS, Mode.LOOP)
MAX_ATTEMPTS_PER_MODE = 4

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AttemptRecord:
    success: bool
    moves: int
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


@dataclass(frozen=True)
class ProgressionState:
    mode_sequence: Tuple[Mode, ...] = MODE_SEQUENCE
    current_mode_index: int = 0
    attempts: Dict[Mode, Tuple[AttemptRecord, ...]] = field(
        default_factory=lambda: {mode: () for mode in MODE_SEQUENCE}
    )
    max_attempts_per_mode: int = MAX_ATTEMPTS_PER_MODE
    locked: bool = False


def current_mode(state: ProgressionState) -> Mode:
    return state.mode_sequence[state.current_mode_index]


def attempts_used(state: ProgressionState, mode: Optional[Mode] = None) -> int:
    mode = current_mode(state) if mode is None else mode
    return len(state.attempts.get(mode, ()))


def attempts_remaining(state: ProgressionState, mode: Optional[Mode] = None) -> int:
    return max(0, state.max_attempts_per_mode - attempts_used(state, mode))


def advance_if_needed(state: ProgressionState) -> ProgressionState:
    """Move to the next mode once the current quota is spent; lock after the last."""
    if state.locked or attempts_used(state) < state.max_attempts_per_mode:
        return state
    if state.current_mode_index < len(state.mode_sequence) - 1:
        advanced = replace(state, current_mode_index=state.current_mode_index + 1)
        logger.info("Progressing to %s mode", current_mode(advanced).value)
        return advanced
    logger.info("All attempts exhausted; locking session")
    return replace(state, locked=True)


def record_attempt(state: ProgressionState, record: AttemptRecord) -> ProgressionState:
    mode = current_mode(state)
    attempts = dict(state.attempts)
    attempts[mode] = attempts.get(mode, ()) + (record,)
    return advance_if_needed(replace(state, attempts=attempts))
