from external_resizer.controller.conditions import (
    FILE_SYSTEM_RESIZE_PENDING_MESSAGE,
    merge_resize_conditions,
    new_condition,
)
from external_resizer.models import ClaimCondition


def _condition(type_: str, status: str = "True", **kwargs) -> ClaimCondition:
    return ClaimCondition(type=type_, status=status, last_transition_time="2024-01-01T00:00:00Z", **kwargs)


def _types(conditions) -> list[str]:
    return [c.type for c in conditions]


def test_new_condition_is_true_and_timestamped():
    condition = new_condition("FileSystemResizePending", message=FILE_SYSTEM_RESIZE_PENDING_MESSAGE)

    assert condition.is_true
    assert condition.last_transition_time.endswith("Z")
    assert condition.message == FILE_SYSTEM_RESIZE_PENDING_MESSAGE
    assert condition.reason is None


def test_merge_with_empty_list_drops_resize_conditions_only():
    old = [_condition("Resizing"), _condition("ModifyingVolume"), _condition("FileSystemResizePending")]

    assert _types(merge_resize_conditions(old, [])) == ["ModifyingVolume"]


def test_merge_keeps_unrelated_conditions_and_appends_new_resize_condition():
    unrelated = _condition("ModifyingVolume", reason="ControllerModify", message="in progress")
    progress = new_condition("Resizing")

    merged = merge_resize_conditions([unrelated], [progress])

    assert merged == [unrelated, progress]


def test_merge_replaces_resize_condition_in_place():
    old = [_condition("Resizing", status="False"), _condition("ModifyingVolume")]
    progress = new_condition("Resizing")

    merged = merge_resize_conditions(old, [progress])

    assert merged[0] is progress
    assert _types(merged) == ["Resizing", "ModifyingVolume"]


def test_merge_swaps_resizing_for_file_system_resize_pending():
    old = [_condition("Resizing"), _condition("ModifyingVolume")]
    pending = new_condition("FileSystemResizePending", message=FILE_SYSTEM_RESIZE_PENDING_MESSAGE)

    merged = merge_resize_conditions(old, [pending])

    assert _types(merged) == ["ModifyingVolume", "FileSystemResizePending"]


def test_merge_does_not_modify_inputs():
    old = [_condition("Resizing")]
    new = [new_condition("FileSystemResizePending")]

    merge_resize_conditions(old, new)

    assert _types(old) == ["Resizing"]
    assert _types(new) == ["FileSystemResizePending"]
