"""
Exeat approval stage graph.

pending -> cmd_review (medical only) -> deputy-dean_review -> parent_consent -> dean_review
-> hostel_signout -> security_signout -> security_signin -> hostel_signin -> completed.
Any non-terminal stage may be rejected; completed and rejected are terminal.
"""

import logging
from typing import Dict, FrozenSet, Iterable, Set

from app.core.enums import ExeatStatus
from app.core.exceptions import InvalidTransitionError
from app.core.models.staff import (
    EXEAT_ROLE_ADMIN,
    EXEAT_ROLE_CMD,
    EXEAT_ROLE_DEAN,
    EXEAT_ROLE_DEPUTY_DEAN,
    EXEAT_ROLE_HOSTEL_ADMIN,
    EXEAT_ROLE_SECURITY,
)

logger = logging.getLogger(__name__)

TERMINAL_STATUSES: FrozenSet[ExeatStatus] = frozenset({ExeatStatus.COMPLETED, ExeatStatus.REJECTED})

# pending is resolved by the is_medical guard in next_stage()
NEXT_STAGE: Dict[ExeatStatus, ExeatStatus] = {
    ExeatStatus.CMD_REVIEW: ExeatStatus.DEPUTY_DEAN_REVIEW,
    ExeatStatus.DEPUTY_DEAN_REVIEW: ExeatStatus.PARENT_CONSENT,
    ExeatStatus.PARENT_CONSENT: ExeatStatus.DEAN_REVIEW,
    ExeatStatus.DEAN_REVIEW: ExeatStatus.HOSTEL_SIGNOUT,
    ExeatStatus.HOSTEL_SIGNOUT: ExeatStatus.SECURITY_SIGNOUT,
    ExeatStatus.SECURITY_SIGNOUT: ExeatStatus.SECURITY_SIGNIN,
    ExeatStatus.SECURITY_SIGNIN: ExeatStatus.HOSTEL_SIGNIN,
    ExeatStatus.HOSTEL_SIGNIN: ExeatStatus.COMPLETED,
}

# Stages from which a parent consent may be (re)issued
CONSENT_ISSUE_STAGES: FrozenSet[ExeatStatus] = frozenset(
    {ExeatStatus.DEPUTY_DEAN_REVIEW, ExeatStatus.PARENT_CONSENT}
)

_REVIEW_STAGES = (
    ExeatStatus.CMD_REVIEW,
    ExeatStatus.DEPUTY_DEAN_REVIEW,
    ExeatStatus.PARENT_CONSENT,
    ExeatStatus.DEAN_REVIEW,
    ExeatStatus.HOSTEL_SIGNOUT,
    ExeatStatus.HOSTEL_SIGNIN,
    ExeatStatus.SECURITY_SIGNOUT,
    ExeatStatus.SECURITY_SIGNIN,
)

ROLE_STAGES: Dict[str, FrozenSet[ExeatStatus]] = {
    EXEAT_ROLE_CMD: frozenset({ExeatStatus.CMD_REVIEW}),
    EXEAT_ROLE_DEPUTY_DEAN: frozenset({ExeatStatus.PENDING, ExeatStatus.DEPUTY_DEAN_REVIEW}),
    EXEAT_ROLE_DEAN: frozenset((ExeatStatus.PENDING,) + _REVIEW_STAGES),
    EXEAT_ROLE_HOSTEL_ADMIN: frozenset({ExeatStatus.HOSTEL_SIGNOUT, ExeatStatus.HOSTEL_SIGNIN}),
    EXEAT_ROLE_SECURITY: frozenset({ExeatStatus.SECURITY_SIGNOUT, ExeatStatus.SECURITY_SIGNIN}),
    EXEAT_ROLE_ADMIN: frozenset((ExeatStatus.PENDING,) + _REVIEW_STAGES),
}


def parse_status(value: str) -> ExeatStatus:
    try:
        return ExeatStatus(value)
    except ValueError:
        raise InvalidTransitionError(f"Unknown exeat status '{value}'")


def is_terminal(value: str) -> bool:
    try:
        return ExeatStatus(value) in TERMINAL_STATUSES
    except ValueError:
        return False


def next_stage(current: str, is_medical: bool) -> ExeatStatus:
    """Stage that follows `current` on approval. Terminal and unknown stages raise InvalidTransitionError."""
    try:
        status = ExeatStatus(current)
    except ValueError:
        logger.warning("Unknown exeat status; cannot advance", extra={"status": current})
        raise InvalidTransitionError(f"Unknown exeat status '{current}'")
    if status == ExeatStatus.PENDING:
        return ExeatStatus.CMD_REVIEW if is_medical else ExeatStatus.DEPUTY_DEAN_REVIEW
    nxt = NEXT_STAGE.get(status)
    if nxt is None:
        logger.warning("Exeat is in a final status; cannot advance", extra={"status": current})
        raise InvalidTransitionError(f"Exeat request is already {status.value}")
    return nxt


def allowed_stages(roles: Iterable[str]) -> Set[str]:
    stages: Set[str] = set()
    for role in roles:
        mapped = ROLE_STAGES.get(role)
        if mapped is None:
            logger.info("Role not mapped to exeat stages", extra={"role": role})
            continue
        stages.update(s.value for s in mapped)
    return stages
