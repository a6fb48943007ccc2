"""Job lifecycle transition rules."""

from typing import Dict, List, Set

from .models import JobStatus

PIPELINE_ORDER: List[JobStatus] = [
    JobStatus.PENDING,
    JobStatus.GENERATING_SCRIPT,
    JobStatus.GENERATING_AUDIO,
    JobStatus.FETCHING_BACKGROUND,
    JobStatus.RENDERING_VIDEO,
    JobStatus.UPLOADING,
    JobStatus.COMPLETED,
]

STAGE_PROGRESS: Dict[JobStatus, int] = {
    JobStatus.PENDING: 0,
    JobStatus.GENERATING_SCRIPT: 10,
    JobStatus.GENERATING_AUDIO: 30,
    JobStatus.FETCHING_BACKGROUND: 50,
    JobStatus.RENDERING_VIDEO: 70,
    JobStatus.UPLOADING: 90,
    JobStatus.COMPLETED: 100,
}

TERMINAL_STATES: Set[JobStatus] = {JobStatus.COMPLETED, JobStatus.FAILED}

ACTIVE_STATES: Set[JobStatus] = set(PIPELINE_ORDER) - TERMINAL_STATES


def _build_transitions() -> Dict[JobStatus, Set[JobStatus]]:
    transitions: Dict[JobStatus, Set[JobStatus]] = {}
    for index, status in enumerate(PIPELINE_ORDER[:-1]):
        following = PIPELINE_ORDER[index + 1]
        # same-status updates attach URLs and metadata within a stage
        transitions[status] = {status, following, JobStatus.FAILED}
    transitions[JobStatus.PENDING].discard(JobStatus.PENDING)
    transitions[JobStatus.COMPLETED] = set()
    transitions[JobStatus.FAILED] = set()
    return transitions


_ALLOWED_TRANSITIONS: Dict[JobStatus, Set[JobStatus]] = _build_transitions()


def allowed_previous_statuses(status: JobStatus) -> Set[JobStatus]:
    """Statuses from which a job may move into ``status``."""
    return {old for old, targets in _ALLOWED_TRANSITIONS.items() if status in targets}
