"""Test submission through the SchedulerClient."""
import os
import sys
from subprocess import CalledProcessError
import pytest
sys.path.append(os.path.abspath('.'))
import hpcpipe
from hpcpipe import StageScript
from hpcpipe.batch_systems import slurm, torque


def _script(tmpdir):
    return StageScript('call_S1', str(tmpdir), 'true').render('slurm')


def test_unknown_backend():
    """Unknown batch systems are a config error."""
    with pytest.raises(hpcpipe.ClusterError):
        hpcpipe.SchedulerClient('lsf')


def test_dry_run(tmpdir):
    """Dry runs never submit and never return a handle."""
    client = hpcpipe.SchedulerClient('slurm', dry_run=True)
    script = _script(tmpdir)
    assert client.submit(script) == ''
    assert not script.submitted
    assert client.submitted == []
    assert client.queue_length() is None


def test_dependency_directive():
    """Empty handles are removed before encoding."""
    client = hpcpipe.SchedulerClient('slurm', dry_run=True)
    assert client.dependency_directive(['', '1', None, '']) == [
        '#SBATCH --dependency=afterok:1', '#SBATCH --kill-on-invalid-dep=yes'
    ]
    assert client.dependency_directive(['', '']) == []
    assert client.dependency_directive(['1', '2'], kill_on_error=False) == [
        '#SBATCH --dependency=afterany:1:2'
    ]
    client = hpcpipe.SchedulerClient('torque', dry_run=True)
    assert client.dependency_directive(['1', '', '2']) == [
        '#PBS -W depend=afterok:1:2'
    ]


def test_live_submit(tmpdir, monkeypatch):
    """A fake sbatch returns a job id."""
    sbatch = tmpdir.join('sbatch')
    sbatch.write('#!/bin/bash\necho "Submitted batch job 9876"\n')
    os.chmod(str(sbatch), 0o755)
    monkeypatch.setattr(slurm, 'submit_args', lambda f: [str(sbatch), f])
    client = hpcpipe.SchedulerClient('slurm', tries=1)
    script = _script(tmpdir)
    assert client.submit(script) == '9876'
    assert script.submitted
    assert client.submitted == ['9876']


def test_failed_submit(tmpdir, monkeypatch):
    """A failing sbatch aborts with a SubmissionError."""
    sbatch = tmpdir.join('sbatch')
    sbatch.write('#!/bin/bash\necho "sbatch: error: bad" >&2\nexit 1\n')
    os.chmod(str(sbatch), 0o755)
    monkeypatch.setattr(slurm, 'submit_args', lambda f: [str(sbatch), f])
    client = hpcpipe.SchedulerClient('slurm', tries=1)
    script = _script(tmpdir)
    with pytest.raises(hpcpipe.SubmissionError):
        client.submit(script)
    assert not script.submitted


def test_submit_errors_wrapped(tmpdir, monkeypatch):
    """Backend errors become SubmissionErrors."""
    def fail(file_name, tries=5):
        raise CalledProcessError(1, ['sbatch', file_name])
    monkeypatch.setattr(slurm, 'submit', fail)
    client = hpcpipe.SchedulerClient('slurm')
    with pytest.raises(hpcpipe.SubmissionError):
        client.submit(_script(tmpdir))
    monkeypatch.setattr(slurm, 'submit', lambda file_name, tries=5: '')
    with pytest.raises(hpcpipe.SubmissionError):
        client.submit(_script(tmpdir))


def test_job_ids():
    """Job ids are parsed from submission output."""
    assert slurm.normalize_job_id('1234') == ('1234', None)
    assert slurm.normalize_job_id('1234_5') == ('1234', '5')
    assert torque.normalize_job_id('1234.cluster.local') == ('1234', None)
    assert torque.normalize_job_id('1234[3].cluster') == ('1234', '3')


def test_stats_command():
    """The metrics command writes accounting data to a file."""
    client = hpcpipe.SchedulerClient('slurm', dry_run=True)
    cmnd = client.job_stats_command(['1', '', '2'], '/out/metrics.out')
    assert cmnd.program.endswith('sacct')
    assert '-j' in cmnd.args
    assert '1,2' in cmnd.args
    assert cmnd.render().endswith('> /out/metrics.out')
    cmnd = hpcpipe.SchedulerClient('torque', dry_run=True).job_stats_command(
        ['1', '2'], '/out/metrics.out'
    )
    assert cmnd.argv[-2:] == ['1', '2']


def test_check_queue(tmpdir, monkeypatch):
    """slurm is usable only with both sbatch and sacct on the PATH."""
    monkeypatch.setenv('PATH', str(tmpdir))
    assert not hpcpipe.batch_systems.check_queue('slurm')
    for exe in ['sbatch', 'sacct']:
        fake = tmpdir.join(exe)
        fake.write('#!/bin/sh\n')
        fake.chmod(0o755)
    assert hpcpipe.batch_systems.check_queue('slurm')
    with pytest.raises(hpcpipe.ClusterError):
        hpcpipe.batch_systems.check_queue('lsf')


def test_query_allocation_row(monkeypatch):
    """Only the job's own state is queried, not its step rows."""
    calls = []

    def fake_cmd(args, **kwargs):
        calls.append(args)
        return 0, 'FAILED', ''
    monkeypatch.setattr(slurm._run, 'cmd', fake_cmd)
    client = hpcpipe.SchedulerClient('slurm')
    output = client.query('1234')
    assert calls[0][1:] == ['-X', '-n', '--format=State', '-j', '1234']
    assert not client.complete_pattern.search(output)
