# -*- coding: utf-8 -*-
"""
Define functions for using the Torque batch system
"""
import os as _os
import re as _re
from subprocess import CalledProcessError as _CalledProcessError

from .. import run as _run
from .. import conf as _conf
from .. import logme as _logme
from .. import ClusterError as _ClusterError
from ..command import Command as _Command


PREFIX = '#PBS'

# Matched against `qstat -x -f <id>` output, in this order
COMPLETE_PATTERN  = _re.compile(r'job_state = C\b.*exit_status = 0\b',
                                _re.DOTALL)
TRANSIENT_PATTERN = _re.compile(
    r'Connection timed out|cannot connect to server|'
    r'Communication failure|End of File'
)
ACTIVE_PATTERN    = _re.compile(r'job_state = [QRHWE]\b')


def _executable(name):
    """Path to a torque command, next to the configured qsub if set."""
    qsub = _conf.get_option('queue', 'qsub')
    if qsub and _os.path.dirname(qsub):
        return _os.path.join(_os.path.dirname(qsub), name)
    return name


###############################################################################
#                             Functionality Test                              #
###############################################################################


def queue_test(warn=True):
    """Check that torque can be used.

    Just looks for qsub and qstat.

    Parameters
    ----------
    warn : bool
        log a warning on fail

    Returns
    -------
    batch_system_functional : bool
    """
    log_level = 'error' if warn else 'debug'
    for cmnd in ['qsub', 'qstat']:
        exe = _executable(cmnd)
        if not (_run.is_exe(exe) or _run.which(exe)):
            _logme.log('Cannot use torque as cannot find {}'.format(cmnd),
                       log_level)
            return False
    return True


###############################################################################
#                           Normalization Functions                           #
###############################################################################


def normalize_job_id(job_id):
    """Convert the job id into job_id, array_id."""
    job_id = job_id.strip().split('.')[0]
    if '[' in job_id:
        job_id, array_id = job_id.split('[')
        job_id = job_id.strip('[]')
        array_id = array_id.strip('[]')
        if not array_id:
            array_id = None
    else:
        array_id = None
    return job_id, array_id


###############################################################################
#                               Script Headers                                #
###############################################################################


def header(name, log_dir):
    """Directives for the job name and its STDOUT/STDERR files."""
    outfile = _os.path.join(log_dir, 'torque', name)
    return [
        '{} -N {}'.format(PREFIX, name),
        '{} -o {}.out'.format(PREFIX, outfile),
        '{} -e {}.err'.format(PREFIX, outfile),
    ]


def output_dirs(log_dir):
    """Directories that must exist before the job starts."""
    return [_os.path.join(log_dir, 'torque')]


def dependency_directive(job_ids, kill_on_error=True):
    """Return the depend directive for a list of non-empty job ids.

    Torque removes jobs with an unsatisfiable afterok dependency by itself,
    afterany runs once the dependencies end whatever their exit status.
    """
    if not job_ids:
        return []
    kind = 'afterok' if kill_on_error else 'afterany'
    return ['{} -W depend={}:{}'.format(
        PREFIX, kind, ':'.join([str(i) for i in job_ids])
    )]


###############################################################################
#                           Job Sumission Functions                           #
###############################################################################


def submit_args(file_name):
    """The command used to submit file_name."""
    return [_conf.get_option('queue', 'qsub') or 'qsub', file_name]


def submit(file_name, tries=5):
    """Submit a script file to Torque.

    Parameters
    ----------
    file_name : str
        Path to an existing torque submission file
    tries : int
        Attempts before giving up

    Returns:
        job_id (str)
    """
    _logme.log('Submitting to torque', 'debug')
    args = submit_args(file_name)
    code, stdout, stderr = _run.cmd(args, tries=tries)
    if code == 0:
        job_id, _ = normalize_job_id(stdout.split('.')[0])
    elif stderr.startswith('qsub: submit error ('):
        raise _ClusterError('qsub submission failed with error: ' +
                            '{}, command: {}'.format(stderr, args))
    else:
        _logme.log(
            'qsub failed with code {}\nstdout: {}\nstderr: {}'
            .format(code, stdout, stderr), 'critical'
        )
        raise _CalledProcessError(code, args, stdout, stderr)
    return job_id


###############################################################################
#                                 Accounting                                  #
###############################################################################


def query_state(job_id):
    """Return `qstat -x -f` output for job_id, STDERR on failure."""
    args = [_executable('qstat'), '-x', '-f', str(job_id)]
    try:
        code, stdout, stderr = _run.cmd(args)
    except OSError as err:
        return str(err)
    if code != 0:
        _logme.log('qstat exited with code {}: {}'.format(code, stderr),
                   'debug')
        return '\n'.join([stdout, stderr]).strip()
    return stdout


def job_stats_command(job_ids, outfile):
    """Command writing full qstat records for job_ids to outfile."""
    return _Command(
        _executable('qstat'), '-x', '-f', [str(i) for i in job_ids],
        stdout=outfile
    )


def queue_length():
    """Number of jobs in the queue, None if qstat fails."""
    code, stdout, _ = _run.cmd([_executable('qstat')])
    if code != 0:
        return None
    # Two header lines
    return max(len([i for i in stdout.split('\n') if i.strip()]) - 2, 0)
