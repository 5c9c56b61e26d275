"""Test the job monitor state machine with canned accounting output."""
import os
import sys
import pytest
sys.path.append(os.path.abspath('.'))
import hpcpipe
from hpcpipe.monitor import SUCCEEDED, FAILED
from fake_scheduler import FakeClient

RUNNING   = 'State\n----------\nRUNNING'
PENDING   = 'State\n----------\nPENDING'
COMPLETED = 'State\n----------\nCOMPLETED'
TIMEOUT   = ('sacct: error: slurm_persist_conn_open_without_init: '
             'Connection timed out')


def _monitor(responses, qtype='slurm', **kwds):
    sleeps = []
    client = FakeClient(responses=responses, qtype=qtype)
    monitor = hpcpipe.JobMonitor(client, interval=30, max_timeouts=20,
                                 sleep=sleeps.append, **kwds)
    return monitor, client, sleeps


def test_running_then_completed():
    """Five RUNNING responses and one COMPLETED take six polls."""
    monitor, client, sleeps = _monitor([RUNNING]*5 + [COMPLETED])
    result = monitor.await_terminal('101')
    assert result.state == SUCCEEDED
    assert result.polls == 6
    assert sleeps == [30]*6
    assert client.queries == ['101']*6


def test_timeout_budget():
    """Twenty consecutive timeouts fail on the twentieth poll."""
    monitor, client, _ = _monitor([TIMEOUT]*20 + [COMPLETED])
    result = monitor.await_terminal('101')
    assert result.state == FAILED
    assert result.polls == 20
    assert 'exceeded consecutive timeout budget' in result.message
    assert client.responses == [COMPLETED]


def test_timeouts_reset():
    """A pending response resets the timeout count."""
    monitor, _, _ = _monitor([TIMEOUT]*19 + [PENDING] + [TIMEOUT]*19 +
                             [COMPLETED])
    result = monitor.await_terminal('101')
    assert result.state == SUCCEEDED
    assert result.polls == 40


def test_unknown_state():
    """An unrecognized response fails immediately."""
    monitor, client, _ = _monitor(['State\n----------\nFAILED', COMPLETED])
    result = monitor.await_terminal('101')
    assert result.state == FAILED
    assert result.polls == 1
    assert 'FAILED' in result.message
    assert client.responses == [COMPLETED]

    monitor, _, _ = _monitor([''])
    result = monitor.await_terminal('101')
    assert result.state == FAILED
    assert 'accounting returned nothing' in result.message


def test_wait_raises():
    """wait() turns a failure into an exception."""
    monitor, _, _ = _monitor(['State\n----------\nCANCELLED by 0'])
    with pytest.raises(hpcpipe.JobFailedError):
        monitor.wait('101')
    assert monitor.state == FAILED
    monitor, _, _ = _monitor([COMPLETED])
    assert monitor.wait('101').state == SUCCEEDED


def test_torque_states():
    """Torque qstat output is classified too."""
    monitor, _, _ = _monitor(
        ['job_state = R\n', 'job_state = C\n    exit_status = 0\n'],
        qtype='torque'
    )
    result = monitor.await_terminal('101')
    assert result.state == SUCCEEDED
    assert result.polls == 2

    monitor, _, _ = _monitor(['job_state = C\n    exit_status = 1\n'],
                             qtype='torque')
    assert monitor.await_terminal('101').state == FAILED


def test_classify():
    """Patterns are checked complete, transient, active."""
    monitor, _, _ = _monitor([])
    assert monitor.classify(COMPLETED) == 'complete'
    assert monitor.classify(TIMEOUT) == 'transient'
    assert monitor.classify(RUNNING) == 'active'
    assert monitor.classify('OUT_OF_MEMORY') == 'unknown'
