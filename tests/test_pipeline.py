"""Test whole runs with a fake scheduler."""
import os
import sys
from textwrap import dedent
import pytest
sys.path.append(os.path.abspath('.'))
import hpcpipe
from hpcpipe import Command, StageDefinition, Unit, RunContext
from hpcpipe import PipelineRunner, JobMonitor
from hpcpipe import config_file
from hpcpipe.pipeline import DONE, WAITING, INIT
from fake_scheduler import FakeClient, no_sleep, script_for


def _provider(tmpdir, intermediates=False):
    """Call -> Filter for every unit, Filter is final."""
    def stages(unit, context):
        call = str(tmpdir.join(unit.name + '.call.vcf'))
        filt = str(tmpdir.join(unit.name + '.filter.vcf'))
        return [
            StageDefinition('Call', Command('caller', '-o', call),
                            artifacts=[call], time='24:00:00', mem='8G',
                            intermediates=[call] if intermediates else None),
            StageDefinition('Filter', Command('filter', call, '-o', filt),
                            artifacts=[filt], depends_on=['Call'],
                            final=True),
        ]
    return stages


def _runner(tmpdir, dry_run=False, no_wait=False, remove=False,
            responses=None, stages=None, aggregate=True):
    context = RunContext(str(tmpdir.join('out')), dry_run=dry_run,
                         no_wait=no_wait, remove=remove, project='PROJ')
    client  = FakeClient(dry_run=dry_run, responses=responses)
    monitor = JobMonitor(client, interval=0, sleep=no_sleep)
    agg = StageDefinition('aggregate', Command('collect', context.out_dir)) \
        if aggregate else None
    runner = PipelineRunner(
        context, stages if stages else _provider(tmpdir),
        pipeline_name='test', aggregate=agg, client=client, monitor=monitor
    )
    return runner, client


def _units():
    return [Unit('P2'), Unit('P1')]


def test_scenario(tmpdir):
    """P1 runs both stages, P2 already called: 3 + aggregate + metrics."""
    tmpdir.join('P2.call.vcf').write('done')
    runner, client = _runner(tmpdir)
    cohort = runner.run(_units())

    assert runner.state == DONE
    assert [i.name for i in cohort.units] == ['P1', 'P2']
    assert len(client.scripts) == 5
    assert cohort.jobs_for('P1') == ['101', '102']
    assert cohort.jobs_for('P2') == ['103']

    filters = [j for j in cohort.records if j.stage.name == 'Filter']
    assert filters[0].dependencies == ['101']
    assert filters[1].unit.name == 'P2'
    assert filters[1].dependencies == []

    assert runner.aggregate_job.handle == '104'
    assert runner.aggregate_job.dependencies == ['101', '102', '103']
    assert runner.aggregate_job.name == 'aggregate_PROJ'

    metrics = runner.metrics_job
    assert metrics.handle == '105'
    assert metrics.dependencies == ['101', '102', '103', '104']
    assert metrics.state == hpcpipe.monitor.SUCCEEDED
    assert client.queries == ['105']
    text = script_for(client, 'job_metrics_PROJ').script
    assert '#SBATCH --dependency=afterany:101:102:103:104' in text
    assert 'kill-on-invalid-dep' not in text
    assert 'sacct' in text
    assert text.count('job_metrics_1.out') == 1

    logs = str(tmpdir.join('out', 'logs'))
    assert os.path.isfile(os.path.join(logs, 'job_metrics_1.out'))
    assert not os.path.exists(os.path.join(logs, 'hpcpipe.lock'))
    with open(os.path.join(logs, 'run_test_pipeline_1.log')) as fin:
        log = fin.read()
    assert 'Skipping Call for P2 as this has already been completed' in log
    assert 'Number of jobs submitted: 4' in log
    assert 'terminated successfully' in log


def test_run_counter(tmpdir):
    """Every live run claims the next number."""
    runner, _ = _runner(tmpdir, no_wait=True)
    runner.run(_units())
    runner, _ = _runner(tmpdir, no_wait=True)
    runner.run(_units())
    assert runner.runlog.run_count == 2
    assert os.path.isfile(str(tmpdir.join('out', 'logs',
                                          'run_test_pipeline_2.log')))


def test_dry_run(tmpdir):
    """Dry runs traverse everything and submit nothing."""
    tmpdir.join('P2.call.vcf').write('done')
    runner, client = _runner(tmpdir, dry_run=True)
    cohort = runner.run(_units())

    assert runner.state == DONE
    assert len(client.scripts) == 4
    assert not [i for i in client.scripts if i.submitted]
    assert all(job.handle == '' for job in cohort.records)
    assert cohort.jobs == []
    assert cohort.processed == ['P1', 'P2']
    assert runner.aggregate_job is not None
    assert runner.metrics_job is None
    assert client.queries == []

    logs = str(tmpdir.join('out', 'logs'))
    assert not [i for i in os.listdir(logs) if i.startswith('job_metrics')]
    with open(os.path.join(logs, 'run_test_pipeline.log')) as fin:
        log = fin.read()
    assert 'Skipping Call for P2 as this has already been completed' in log
    assert 'Dry run' in log


def test_no_units_processed(tmpdir):
    """No applicable stages means no aggregation and no metrics."""
    runner, client = _runner(tmpdir, stages=lambda unit, context: [])
    cohort = runner.run(_units())
    assert runner.state == DONE
    assert cohort.processed == []
    assert client.scripts == []
    assert runner.aggregate_job is None
    assert runner.metrics_job is None


def test_everything_skipped(tmpdir):
    """Processed units get an aggregation job even if nothing ran."""
    for unit in ['P1', 'P2']:
        tmpdir.join(unit + '.call.vcf').write('done')
        tmpdir.join(unit + '.filter.vcf').write('done')
    runner, client = _runner(tmpdir)
    cohort = runner.run(_units())
    assert runner.aggregate_job.handle == '101'
    assert runner.aggregate_job.dependencies == []
    assert runner.metrics_job.dependencies == ['101']
    assert len(client.scripts) == 2
    assert cohort.processed == ['P1', 'P2']


def test_without_aggregate(tmpdir):
    """The aggregation stage is optional."""
    runner, client = _runner(tmpdir, aggregate=False, no_wait=True)
    runner.run(_units())
    assert runner.aggregate_job is None
    assert runner.metrics_job.dependencies == ['101', '102', '103', '104']
    assert client.queries == []


def test_callable_aggregate(tmpdir):
    """The aggregation stage can be built from the cohort."""
    runner, _ = _runner(tmpdir, aggregate=False, no_wait=True)
    runner.aggregate = lambda cohort, context: StageDefinition(
        'collect', Command('collect', *[u.name for u in cohort.units])
    )
    runner.run(_units())
    assert runner.aggregate_job.name == 'collect_PROJ'
    assert 'collect P1 P2' in runner.aggregate_job.script.script


def test_cleanup(tmpdir):
    """--remove adds a guarded cleanup job per unit that ran something."""
    tmpdir.join('P2.call.vcf').write('done')
    tmpdir.join('P2.filter.vcf').write('done')
    runner, client = _runner(tmpdir, remove=True, no_wait=True,
                             stages=_provider(tmpdir, intermediates=True))
    runner.run(_units())
    assert len(runner.cleanup_jobs) == 1
    cleanup = runner.cleanup_jobs[0]
    assert cleanup.unit.name == 'P1'
    assert cleanup.dependencies == ['101', '102']
    assert not cleanup.stage.kill_on_error
    text = cleanup.script.script
    assert 'if [ -s {} ]; then'.format(
        tmpdir.join('P1.filter.vcf')) in text
    assert 'rm -rf {}'.format(tmpdir.join('P1.call.vcf')) in text
    assert '#SBATCH --dependency=afterany:101:102' in text
    # Aggregation waits on the cleanup job too
    assert runner.aggregate_job.dependencies == ['101', '102', '103']


def test_no_cleanup_without_intermediates(tmpdir):
    """Nothing to remove, no cleanup job."""
    runner, _ = _runner(tmpdir, remove=True, no_wait=True)
    runner.run(_units())
    assert runner.cleanup_jobs == []


def test_metrics_job_failed(tmpdir):
    """A failed metrics job is fatal when waiting."""
    runner, _ = _runner(tmpdir, responses=['State\n----------\nFAILED'])
    with pytest.raises(hpcpipe.JobFailedError):
        runner.run(_units())
    assert runner.state == WAITING
    logs = str(tmpdir.join('out', 'logs'))
    assert not os.path.exists(os.path.join(logs, 'hpcpipe.lock'))
    with open(os.path.join(logs, 'run_test_pipeline_1.log')) as fin:
        assert 'terminated with errors' in fin.read()


def test_locked(tmpdir):
    """A live run refuses an output directory in use."""
    logs = tmpdir.join('out', 'logs')
    logs.ensure(dir=True)
    logs.join('hpcpipe.lock').write(str(os.getpid()))
    runner, client = _runner(tmpdir)
    with pytest.raises(hpcpipe.RunLockError):
        runner.run(_units())
    assert client.scripts == []
    # Dry runs do not need the lock
    runner, _ = _runner(tmpdir, dry_run=True)
    runner.run(_units())
    assert runner.state == DONE


def test_submission_error(tmpdir):
    """A refused submission aborts the run."""
    class Refusing(FakeClient):
        def submit(self, script):
            raise hpcpipe.SubmissionError('refused')
    context = RunContext(str(tmpdir.join('out')))
    runner = PipelineRunner(context, _provider(tmpdir), client=Refusing())
    with pytest.raises(hpcpipe.SubmissionError):
        runner.run(_units())
    assert runner.state == 'building'


def _yaml_runner(tmpdir, text):
    """Runner for a tool config over a cohort where PB has no tumour."""
    tmpdir.join('tool.yaml').write(dedent(text))
    tool = config_file.load_tool_config(str(tmpdir.join('tool.yaml')))
    units = config_file.units_from_data({
        'PA': {'normal': {'NA': '/na.bam'}, 'tumour': {'TA': '/ta.bam'}},
        'PB': {'normal': {'NB': '/nb.bam'}},
    })
    provider = config_file.YamlStageProvider(tool)
    client = FakeClient()
    runner = PipelineRunner(
        RunContext(str(tmpdir.join('out'))), provider, pipeline_name='calls',
        aggregate=provider.aggregate if tool['aggregate'] else None,
        client=client, monitor=JobMonitor(client, interval=0, sleep=no_sleep)
    )
    return runner, client, units


def test_config_error_before_submission(tmpdir):
    """A bad placeholder for a later unit stops the run before NA runs."""
    runner, client, units = _yaml_runner(tmpdir, """\
        stages:
          - name: call
            command: [caller, '{input}', '{tumour_input}']
        """)
    assert [u.name for u in units] == ['NA', 'TA', 'NB']
    with pytest.raises(hpcpipe.ConfigError):
        runner.run(units)
    assert client.submitted == []
    assert client.scripts == []
    assert runner.state == INIT
    logs = str(tmpdir.join('out', 'logs'))
    assert not os.path.exists(os.path.join(logs, 'hpcpipe.lock'))
    with open(os.path.join(logs, 'run_calls_pipeline_1.log')) as fin:
        assert 'terminated with errors' in fin.read()


def test_aggregate_error_before_submission(tmpdir):
    """The aggregation stage is built before any unit is submitted."""
    runner, client, units = _yaml_runner(tmpdir, """\
        stages:
          - name: call
            command: [caller, '{input}']
        aggregate:
          name: collect
          command: [[collect, '{nothing}']]
        """)
    with pytest.raises(hpcpipe.ConfigError):
        runner.run(units)
    assert client.submitted == []
    assert runner.state == INIT
