"""Test the command line interface."""
import os
import sys
from textwrap import dedent
import pytest
sys.path.append(os.path.abspath('.'))
import hpcpipe
from hpcpipe import __main__ as cli

TOOL = dedent(
    """\
    pipeline: bwa
    project_name: PROJ1
    stages:
      - name: align
        command: [[bwa, mem, -o, '{unit_dir}/{unit}.sam', '{input}']]
        outputs: ['{unit_dir}/{unit}.sam']
        resources: {time: '02:00:00', mem: 4G}
    aggregate:
      name: collect
      command: [[collect.py, '{out_dir}']]
    """
)

DATA = dedent(
    """\
    PATIENT1:
      normal:
        SAMPLE1N: /data/normal.fq.gz
      tumour:
        SAMPLE1T: /data/tumour.fq.gz
    """
)


@pytest.fixture
def configs(tmpdir):
    tmpdir.join('tool.yaml').write(TOOL)
    tmpdir.join('data.yaml').write(DATA)
    return str(tmpdir.join('tool.yaml')), str(tmpdir.join('data.yaml'))


def test_required_flags(configs):
    """Tool, data and output directory are all required."""
    with pytest.raises(SystemExit) as err:
        cli.main([])
    assert err.value.code == 2
    with pytest.raises(SystemExit) as err:
        cli.main(['-t', configs[0], '-o', 'out'])
    assert err.value.code == 2


def test_version(capsys):
    assert cli.main(['-V']) == 0
    assert hpcpipe.__version__ in capsys.readouterr().out


def test_bad_cluster(configs):
    with pytest.raises(SystemExit) as err:
        cli.main(['-t', configs[0], '-d', configs[1], '-o', 'out',
                  '-c', 'lsf'])
    assert err.value.code == 2


def test_missing_tool(configs, tmpdir):
    """Config errors are reported with a non-zero exit."""
    assert cli.main(['-t', str(tmpdir.join('nothere.yaml')),
                     '-d', configs[1], '-o', str(tmpdir.join('out')),
                     '-c', 'slurm', '--dry-run']) == 1


def test_dry_run(configs, tmpdir):
    """A dry run writes every script and submits nothing."""
    out = str(tmpdir.join('out'))
    assert cli.main(['-t', configs[0], '-d', configs[1], '-o', out,
                     '-c', 'slurm', '--dry-run', '--no-wait']) == 0
    logs = os.listdir(os.path.join(out, 'logs'))
    assert 'align_SAMPLE1N.sh' in logs
    assert 'align_SAMPLE1T.sh' in logs
    assert 'collect_PROJ1.sh' in logs
    assert 'run_bwa_pipeline.log' in logs
    assert not [i for i in logs if i.startswith('job_metrics')]
    assert os.path.isdir(os.path.join(out, 'PATIENT1', 'SAMPLE1T'))
