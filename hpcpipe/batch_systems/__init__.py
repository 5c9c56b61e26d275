# -*- coding: utf-8 -*-
"""
Modular batch system handling.

All batch system specific functions are contained within files in the
batch_systems folder. The files must have the same name as the batch system,
and possible batch systems are set in the DEFINED_SYSTEMS set.

Every batch system module defines:

    PREFIX                  directive prefix, e.g. '#SBATCH'
    COMPLETE_PATTERN        regex on accounting output for a finished job
    ACTIVE_PATTERN          regex for a pending or running job
    TRANSIENT_PATTERN       regex for a scheduler connection failure
    queue_test()            can this system be used here
    normalize_job_id()      job id from submission output
    header()                job name and output file directives
    dependency_directive()  directive lines for a list of job ids
    submit()                submit a script file, return the job id
    query_state()           raw accounting output for one job
    job_stats_command()     Command writing accounting data to a file
    queue_length()          number of jobs currently queued

To add new systems, create a new module with identical function names and
return values to those in an existing definition.
"""
from importlib import import_module as _import

from .. import logme as _logme
from .. import run as _run
from .. import ClusterError as _ClusterError

DEFINED_SYSTEMS = {'torque', 'slurm'}

MODE = None

# Job states, slurm style. Torque states are converted to these.
GOOD_STATES      = ['completed']
ACTIVE_STATES    = ['configuring', 'completing', 'pending', 'held',
                    'requeued', 'running']
BAD_STATES       = ['boot_fail', 'cancelled', 'deadline', 'failed',
                    'node_fail', 'out_of_memory', 'timeout']
UNCERTAIN_STATES = ['preempted', 'stopped', 'suspended']
ALL_STATES = GOOD_STATES + ACTIVE_STATES + BAD_STATES + UNCERTAIN_STATES

_default_batches = None


def get_batch_system(qtype=None):
    """Return a batch_system module."""
    qtype = qtype if qtype else get_cluster_environment()
    if qtype not in DEFINED_SYSTEMS:
        raise _ClusterError(
            'qtype value {0} is not recognized, '.format(qtype) +
            'should be one of {0}'.format(sorted(DEFINED_SYSTEMS))
        )
    global _default_batches
    if not _default_batches:
        _default_batches = {}
    if qtype not in _default_batches:
        _default_batches[qtype] = _import(
            'hpcpipe.batch_systems.{}'.format(qtype)
        )
    return _default_batches[qtype]


#################################
#  Set the global cluster type  #
#################################


def get_cluster_environment(overwrite=False):
    """Return the batch system to use and set MODE globally.

    Uses queue_type from the config file. If that is 'auto', looks for
    sbatch then qsub on the PATH. Falls back to slurm so scripts can still
    be rendered in dry runs on machines without a scheduler.

    Parameters
    ----------
    overwrite : bool, optional
        If True, run checks anyway, otherwise just accept MODE if it is
        already set.

    Returns
    -------
    MODE : str
    """
    global MODE
    if not overwrite and MODE in DEFINED_SYSTEMS:
        return MODE
    from .. import conf as _conf
    conf_queue = _conf.get_option('queue', 'queue_type', 'slurm')
    if conf_queue not in list(DEFINED_SYSTEMS) + ['auto']:
        _logme.log('queue_type in the config file is {}, '.format(conf_queue) +
                   'but it should be one of {}'.format(DEFINED_SYSTEMS) +
                   ' or auto. Using auto', 'warn')
        conf_queue = 'auto'
    if conf_queue == 'auto':
        sbatch_cmnd = _conf.get_option('queue', 'sbatch') or 'sbatch'
        qsub_cmnd   = _conf.get_option('queue', 'qsub') or 'qsub'
        if _run.which(sbatch_cmnd):
            MODE = 'slurm'
        elif _run.which(qsub_cmnd):
            MODE = 'torque'
        else:
            _logme.log('No batch system detected, defaulting to slurm',
                       'debug')
            MODE = 'slurm'
    else:
        MODE = conf_queue
    _logme.log('{0} selected for cluster submissions'.format(MODE), 'debug')
    return MODE


def check_queue(qtype=None):
    """Check if the batch system qtype (or MODE) is usable on this machine.

    Raises
    ------
    ClusterError
        If qtype is not in DEFINED_SYSTEMS

    Returns
    -------
    batch_system_functional : bool
    """
    qtype = qtype if qtype else get_cluster_environment()
    return get_batch_system(qtype).queue_test(warn=True)
