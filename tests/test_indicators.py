import pytest

from pgflow.core.errors import PolicyInvariantError
from pgflow.core.indicators import GroupEnd, SpawningMode, next_state


def test_spawning_mode_has_error():
    assert not SpawningMode.PROCESS_ALL.has_error
    assert SpawningMode.FINISH_ACTIVE.has_error
    assert SpawningMode.STOP_ALL.has_error


def test_mode_after_error_in_same_group():
    assert GroupEnd.ON_FAILURE_STOP_ALL.mode_after_error_in_same_group() is SpawningMode.STOP_ALL
    assert GroupEnd.ON_FAILURE_FINISH_ACTIVE.mode_after_error_in_same_group() is SpawningMode.FINISH_ACTIVE
    assert GroupEnd.PROCESS_ALL.mode_after_error_in_same_group() is SpawningMode.PROCESS_ALL


@pytest.mark.parametrize("group_end", list(GroupEnd))
def test_success_keeps_process_all(group_end):
    assert next_state(SpawningMode.PROCESS_ALL, False, group_end) is SpawningMode.PROCESS_ALL


@pytest.mark.parametrize("group_end", list(GroupEnd))
def test_first_failure_moves_to_mapped_state(group_end):
    new = next_state(SpawningMode.PROCESS_ALL, True, group_end)
    assert new is group_end.mode_after_error_in_same_group()


@pytest.mark.parametrize("failed", [True, False])
def test_failure_state_is_sticky(failed):
    mode = SpawningMode.FINISH_ACTIVE
    assert next_state(mode, failed, GroupEnd.ON_FAILURE_FINISH_ACTIVE) is mode
    assert SpawningMode.STOP_ALL.after_result(failed, GroupEnd.ON_FAILURE_STOP_ALL) is SpawningMode.STOP_ALL


def test_state_policy_mismatch_is_invariant_violation():
    with pytest.raises(PolicyInvariantError):
        next_state(SpawningMode.STOP_ALL, False, GroupEnd.ON_FAILURE_FINISH_ACTIVE)
    with pytest.raises(PolicyInvariantError):
        next_state(SpawningMode.FINISH_ACTIVE, True, GroupEnd.PROCESS_ALL)


def test_group_end_parse():
    assert GroupEnd.parse("on_failure_stop_all") is GroupEnd.ON_FAILURE_STOP_ALL
    assert GroupEnd.parse("OnFailureFinishActive") is GroupEnd.ON_FAILURE_FINISH_ACTIVE
    assert GroupEnd.parse("PROCESS_ALL") is GroupEnd.PROCESS_ALL
    assert GroupEnd.parse(GroupEnd.PROCESS_ALL) is GroupEnd.PROCESS_ALL
    with pytest.raises(ValueError):
        GroupEnd.parse("sometimes")
