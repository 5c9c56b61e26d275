# -*- coding: utf-8 -*-
"""
SLURM submission and accounting functions.
"""
import os as _os
import re as _re
from subprocess import CalledProcessError as _CalledProcessError

from .. import run as _run
from .. import conf as _conf
from .. import logme as _logme
from ..command import Command as _Command


PREFIX = '#SBATCH'

# Matched against `sacct -X -n --format=State -j <id>` output, in this order
COMPLETE_PATTERN  = _re.compile(r'COMPLETED')
TRANSIENT_PATTERN = _re.compile(
    r'Connection timed out|Socket timed out|'
    r'Unable to contact slurm controller|slurm_persist_conn_open'
)
ACTIVE_PATTERN    = _re.compile(
    r'PENDING|RUNNING|CONFIGURING|COMPLETING|REQUEUED'
)

STATS_FORMAT = ('JobID,JobName,Partition,State,ExitCode,Elapsed,Timelimit,'
                'MaxRSS,ReqMem,NCPUS,NodeList')


def _executable(name):
    """Path to a slurm command, next to the configured sbatch if set."""
    sbatch = _conf.get_option('queue', 'sbatch')
    if sbatch and _os.path.dirname(sbatch):
        return _os.path.join(_os.path.dirname(sbatch), name)
    return name


###############################################################################
#                             Functionality Test                              #
###############################################################################


def queue_test(warn=True):
    """Check that slurm can be used, looks for sbatch and sacct.

    Parameters
    ----------
    warn : bool
        log a warning on fail

    Returns
    -------
    batch_system_functional : bool
    """
    log_level = 'error' if warn else 'debug'
    for cmnd in ['sbatch', 'sacct']:
        exe = _executable(cmnd)
        if not (_run.is_exe(exe) or _run.which(exe)):
            _logme.log('Cannot use slurm as cannot find {}'.format(cmnd),
                       log_level)
            return False
    return True


###############################################################################
#                           Normalization Functions                           #
###############################################################################


def normalize_job_id(job_id):
    """Convert the job id into job_id, array_id."""
    job_id = job_id.strip().split(';')[0]
    if '_' in job_id:
        job_id, array_id = job_id.split('_', 1)
        job_id = job_id.strip()
        array_id = array_id.strip()
    else:
        array_id = None
    return job_id, array_id


###############################################################################
#                               Script Headers                                #
###############################################################################


def header(name, log_dir):
    """Directives for the job name and its STDOUT/STDERR files."""
    outfile = _os.path.join(log_dir, 'slurm', name)
    return [
        '{} --job-name={}'.format(PREFIX, name),
        '{} -o {}.out'.format(PREFIX, outfile),
        '{} -e {}.err'.format(PREFIX, outfile),
    ]


def output_dirs(log_dir):
    """Directories that must exist before the job starts."""
    return [_os.path.join(log_dir, 'slurm')]


def dependency_directive(job_ids, kill_on_error=True):
    """Return dependency directives for a list of non-empty job ids.

    With kill_on_error the job only starts if every dependency succeeded and
    is cancelled if one fails, otherwise it starts once every dependency
    ended, whatever the outcome.
    """
    if not job_ids:
        return []
    kind  = 'afterok' if kill_on_error else 'afterany'
    lines = ['{} --dependency={}:{}'.format(
        PREFIX, kind, ':'.join([str(i) for i in job_ids])
    )]
    if kill_on_error:
        lines.append('{} --kill-on-invalid-dep=yes'.format(PREFIX))
    return lines


###############################################################################
#                               Job Submission                                #
###############################################################################


def submit_args(file_name):
    """The command used to submit file_name."""
    return [_conf.get_option('queue', 'sbatch') or 'sbatch', file_name]


def submit(file_name, tries=5):
    """Submit a script file to slurm.

    Parameters
    ----------
    file_name : str
        Path to an existing file
    tries : int
        Attempts before giving up

    Returns
    -------
    job_id : str

    Raises
    ------
    CalledProcessError
        If sbatch keeps failing.
    """
    _logme.log('Submitting to slurm', 'debug')
    args = submit_args(file_name)
    code, stdout, stderr = _run.cmd(args, tries=tries)
    if code == 0:
        job_id, _ = normalize_job_id(stdout.split(' ')[-1])
    else:
        _logme.log('sbatch failed with code {}\n'.format(code) +
                   'stdout: {}\nstderr: {}'.format(stdout, stderr),
                   'critical')
        raise _CalledProcessError(code, args, stdout, stderr)
    return job_id


###############################################################################
#                                 Accounting                                  #
###############################################################################


def query_state(job_id):
    """Return sacct State output for job_id.

    Only the allocation row is asked for (-X), the batch and extern step
    rows can read COMPLETED when the job itself failed.

    A failed sacct call returns its STDERR, so connection errors can be
    recognized by TRANSIENT_PATTERN.
    """
    args = [_executable('sacct'), '-X', '-n', '--format=State', '-j',
            str(job_id)]
    try:
        code, stdout, stderr = _run.cmd(args)
    except OSError as err:
        return str(err)
    if code != 0:
        _logme.log('sacct exited with code {}: {}'.format(code, stderr),
                   'debug')
        return '\n'.join([stdout, stderr]).strip()
    return stdout


def job_stats_command(job_ids, outfile):
    """Command writing accounting data for job_ids to outfile."""
    return _Command(
        _executable('sacct'), '-P', '--delimiter=\t',
        '--format={}'.format(STATS_FORMAT),
        '-j', ','.join([str(i) for i in job_ids]),
        stdout=outfile
    )


def queue_length():
    """Number of jobs in the queue, None if squeue fails."""
    code, stdout, _ = _run.cmd([_executable('squeue'), '-r', '-h'])
    if code != 0:
        return None
    return len([i for i in stdout.split('\n') if i.strip()])
