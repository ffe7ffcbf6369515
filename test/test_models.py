import pytest
from pydantic import ValidationError
from webapi_client.models import JobHandle, PollingState, PollingStateKind


def test_started():
    state = PollingState.from_wire({"Started": 17})
    assert state.kind == PollingStateKind.started
    assert state.handle == 17


def test_pending():
    state = PollingState.from_wire("Pending")
    assert state.kind == PollingStateKind.pending


@pytest.mark.parametrize("result", [None, 0, "proof", [1, 2], {"Ok": {"a": 1}}])
def test_done_keeps_result(result):
    state = PollingState.from_wire({"Done": result})
    assert state.kind == PollingStateKind.done
    assert state.result == result


@pytest.mark.parametrize(
    "value",
    [
        "Removed",
        {"Error": "worker crashed"},
        {"Started": None},
        {"Started": 1, "Done": 2},
        [],
        None,
    ],
)
def test_other_shapes_are_failures(value):
    state = PollingState.from_wire(value)
    assert state.kind == PollingStateKind.failed
    assert state.raw_response == value


def test_job_handle_is_frozen():
    job = JobHandle(server="https://w1", handle=3)
    with pytest.raises(ValidationError):
        job.handle = 4
    assert job == JobHandle(server="https://w1", handle=3)
