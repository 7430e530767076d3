from collections.abc import Iterable

from .._util import normalize_iso_timestamp
from ..models import CONDITION_FILE_SYSTEM_RESIZE_PENDING, CONDITION_RESIZING, ClaimCondition

RESIZE_CONDITION_TYPES: frozenset[str] = frozenset({CONDITION_RESIZING, CONDITION_FILE_SYSTEM_RESIZE_PENDING})

FILE_SYSTEM_RESIZE_PENDING_MESSAGE = (
    "Waiting for user to (re-)start a pod to finish file system resize of volume on node."
)


def new_condition(type_: str, *, message: str | None = None) -> ClaimCondition:
    """Build a true condition stamped with the current time."""
    return ClaimCondition(
        type=type_,
        status="True",
        last_transition_time=normalize_iso_timestamp(),
        message=message,
    )


def merge_resize_conditions(
    old_conditions: Iterable[ClaimCondition],
    new_conditions: Iterable[ClaimCondition],
) -> list[ClaimCondition]:
    """Merge the asserted resize conditions into an existing condition list.

    Conditions of types unrelated to resizing are kept untouched. A resize
    condition present in both lists is replaced in place by the asserted one,
    a resize condition missing from the asserted list is dropped, and asserted
    types not present before are appended. Merging with an empty list
    therefore clears every resize condition.
    """
    asserted = {condition.type: condition for condition in new_conditions}

    result: list[ClaimCondition] = []
    for condition in old_conditions:
        if condition.type not in RESIZE_CONDITION_TYPES:
            result.append(condition)
            continue
        if (replacement := asserted.pop(condition.type, None)) is not None:
            result.append(replacement)

    result.extend(asserted.values())
    return result
