"""Test building the stage chain of a unit."""
import os
import sys
import pytest
sys.path.append(os.path.abspath('.'))
import hpcpipe
from hpcpipe import Command, StageDefinition, Unit, RunContext, Cohort
from fake_scheduler import FakeClient, script_for


def _setup(tmpdir, dry_run=False):
    context = RunContext(str(tmpdir), dry_run=dry_run)
    os.makedirs(context.log_dir)
    client  = FakeClient(dry_run=dry_run)
    cohort  = Cohort()
    builder = hpcpipe.StageGraphBuilder(context, client, cohort)
    return context, client, cohort, builder


def _chain(tmpdir, unit, depends_on=None):
    """Stages A -> B -> C writing <unit>.<stage>.out."""
    return [
        StageDefinition(
            name, Command('touch', str(tmpdir.join(unit + '.' + name))),
            artifacts=[str(tmpdir.join(unit + '.' + name))],
            depends_on=depends_on if name == 'C' else None,
        ) for name in ['A', 'B', 'C']
    ]


def _complete(tmpdir, unit, names):
    for name in names:
        tmpdir.join(unit + '.' + name).write('done')


def test_all_need_execution(tmpdir):
    """Every stage depends on every earlier submitted stage."""
    _, client, cohort, builder = _setup(tmpdir)
    jobs = builder.build(Unit('S1'), _chain(tmpdir, 'S1'))
    assert [job.handle for job in jobs] == ['101', '102', '103']
    assert jobs[0].dependencies == []
    assert jobs[1].dependencies == ['101']
    assert jobs[2].dependencies == ['101', '102']
    assert cohort.jobs == ['101', '102', '103']
    assert cohort.jobs_for('S1') == ['101', '102', '103']
    assert [job.name for job in jobs] == ['A_S1', 'B_S1', 'C_S1']
    with open(script_for(client, 'C_S1').file_name) as fin:
        assert '#SBATCH --dependency=afterok:101:102\n' in fin.read()


def test_depends_on(tmpdir):
    """depends_on restricts the upstream stages."""
    _, _, _, builder = _setup(tmpdir)
    jobs = builder.build(Unit('S1'), _chain(tmpdir, 'S1', depends_on=['B']))
    assert jobs[2].dependencies == ['102']


def test_skipped_upstream(tmpdir):
    """With A and B complete, C has no dependencies at all."""
    _, client, cohort, builder = _setup(tmpdir)
    _complete(tmpdir, 'S1', ['A', 'B'])
    jobs = builder.build(Unit('S1'), _chain(tmpdir, 'S1'))
    assert [job.skipped for job in jobs] == [True, True, False]
    assert [job.handle for job in jobs] == ['', '', '101']
    assert jobs[2].dependencies == []
    assert len(client.scripts) == 1
    assert cohort.jobs == ['101']
    with open(script_for(client, 'C_S1').file_name) as fin:
        assert 'dependency' not in fin.read()


def test_skipped_middle(tmpdir):
    """A skipped stage adds no edge, earlier submitted stages still do."""
    _, _, _, builder = _setup(tmpdir)
    _complete(tmpdir, 'S1', ['B'])
    jobs = builder.build(Unit('S1'), _chain(tmpdir, 'S1', depends_on=['B']))
    assert [job.handle for job in jobs] == ['101', '', '102']
    assert jobs[2].dependencies == []


def test_idempotence(tmpdir):
    """A second build after everything completed submits nothing."""
    _, client, _, builder = _setup(tmpdir)
    builder.build(Unit('S1'), _chain(tmpdir, 'S1'))
    assert len(client.scripts) == 3
    _complete(tmpdir, 'S1', ['A', 'B', 'C'])
    cohort = Cohort()
    builder.cohort = cohort
    jobs = builder.build(Unit('S1'), _chain(tmpdir, 'S1'))
    assert len(client.scripts) == 3
    assert all(job.skipped for job in jobs)
    assert cohort.jobs == []
    assert len(cohort.records) == 3


def test_roles(tmpdir):
    """Stages only run for their roles."""
    _, _, _, builder = _setup(tmpdir)
    stages = [
        StageDefinition('call', 'true', artifacts=['/nothere']),
        StageDefinition('somatic', 'true', roles=['tumour'],
                        artifacts=['/nothere']),
        StageDefinition('filter', 'true', depends_on=['somatic', 'call']),
    ]
    jobs = builder.build(Unit('S1N', role='normal'), stages)
    assert [job.stage.name for job in jobs] == ['call', 'filter']
    assert jobs[1].dependencies == ['101']
    jobs = builder.build(Unit('S1T', role='tumour'), stages)
    assert [job.stage.name for job in jobs] == ['call', 'somatic', 'filter']
    assert jobs[2].dependencies == ['104', '103']


def test_bad_depends_on(tmpdir):
    """Dependencies on unknown or later stages are fatal."""
    _, _, _, builder = _setup(tmpdir)
    stages = [StageDefinition('A', 'true', depends_on=['B']),
              StageDefinition('B', 'true')]
    with pytest.raises(hpcpipe.PipelineError):
        builder.build(Unit('S1'), stages)
    stages = [StageDefinition('A', 'true', depends_on=['Z'])]
    with pytest.raises(hpcpipe.PipelineError):
        builder.build(Unit('S1'), stages)


def test_prerequisites(tmpdir):
    """Cohort level prerequisites feed every submitted stage."""
    context, _, cohort, builder = _setup(tmpdir)
    prep = [StageDefinition('prep_reference', 'true',
                            artifacts=[str(tmpdir.join('ref.dict'))])]
    handles = builder.build_prerequisites(prep)
    assert handles == ['101']
    assert cohort.jobs_for('cohort') == ['101']
    jobs = builder.build(Unit('S1'), _chain(tmpdir, 'S1'), handles)
    assert jobs[0].dependencies == ['101']
    assert jobs[1].dependencies == ['101', '102']

    tmpdir.join('ref.dict').write('done')
    assert builder.build_prerequisites(prep) == []


def test_dry_run(tmpdir):
    """Dry runs write scripts but submit nothing."""
    _, client, cohort, builder = _setup(tmpdir, dry_run=True)
    jobs = builder.build(Unit('S1'), _chain(tmpdir, 'S1'))
    assert [job.handle for job in jobs] == ['', '', '']
    assert len(client.scripts) == 3
    assert not [i for i in client.scripts if i.submitted]
    assert all(i.exists for i in client.scripts)
    assert cohort.jobs == []


def test_context_extra_args(tmpdir):
    """Run wide scheduler arguments are added to every script."""
    context = RunContext(str(tmpdir), extra_args=['--account=pughlab', ''])
    os.makedirs(context.log_dir)
    client  = FakeClient()
    builder = hpcpipe.StageGraphBuilder(context, client, Cohort())
    job = builder.build(Unit('S1'), [StageDefinition('A', 'true')])[0]
    assert '#SBATCH --account=pughlab' in job.script.script
