# -*- coding: utf-8 -*-
"""
Build, submit, and track chains of analysis stages on slurm or torque.

 =============== ===================================================
        LICENSE: MIT License
        VERSION: 0.1.0
 =============== ===================================================

Every unit of work (a sample or a patient) gets an ordered chain of stages.
A stage whose output artifacts already exist and are non-empty is skipped,
everything else is written to a script and submitted with explicit
dependencies on the upstream jobs of the same unit. Once all units are built,
one aggregation job collects the whole cohort, an optional cleanup job per
unit removes intermediates, and a final accounting job records job metrics.
The run can block until that accounting job finishes.

Simple Use
----------

Define stages with a command and the artifacts they write::

    from hpcpipe import Command, StageDefinition, Unit, RunContext
    from hpcpipe import PipelineRunner

    def stages(unit, context):
        bam = unit.inputs['bam']
        vcf = os.path.join(context.out_dir, unit.name + '.vcf')
        return [
            StageDefinition(
                'call', Command('caller', '--bam', bam, '--out', vcf),
                artifacts=[vcf], time='12:00:00', mem='8G', cpus=2
            ),
        ]

    context = RunContext('/data/out', qtype='slurm')
    runner  = PipelineRunner(context, stages, pipeline_name='caller')
    cohort  = runner.run([Unit('S1', inputs={'bam': 's1.bam'})])

Re-running the same call submits nothing for stages that already completed.

Command Line
------------

The same machinery is available from the command line with stages declared
in a YAML tool config::

    hpcpipe -t tool.yaml -d data.yaml -o /path/to/out -c slurm --dry-run

Logging
-------

All narration goes through logme. To get verbose output set
logme.MIN_LEVEL to 'debug', to reduce it set logme.MIN_LEVEL to 'warn'. Each
run also writes its own log file under <out_dir>/logs.
"""

__version__ = '0.1.0'
version = __version__

###################
#  House Keeping  #
###################


class ClusterError(Exception):

    """A custom exception for cluster errors."""

    pass


class PipelineError(ClusterError):

    """A fatal error that aborts a pipeline run."""

    pass


#########################################
#  Make our functions easily available  #
#########################################


from . import logme
from . import run
from . import conf
from . import options
from . import batch_systems

from .reference import RefBuild
from .reference import SeqType
from .command import Command
from .command import CommandChain
from .artifacts import ArtifactRegistry
from .artifacts import needs_execution
from .submission_scripts import Script
from .submission_scripts import StageScript
from .scheduler import SchedulerClient
from .scheduler import SubmissionError
from .monitor import JobMonitor
from .monitor import JobFailedError
from .job import Unit
from .job import StageDefinition
from .job import Job
from .job import Cohort
from .job import RunContext
from .graph import StageGraphBuilder
from .runlog import RunLog
from .runlog import RunLock
from .runlog import RunLockError
from .pipeline import PipelineRunner
from .config_file import ConfigError

option_help = options.option_help

__all__ = ['ClusterError', 'PipelineError', 'RefBuild', 'SeqType', 'Command',
           'CommandChain', 'ArtifactRegistry', 'needs_execution', 'Script',
           'StageScript', 'SchedulerClient', 'SubmissionError', 'JobMonitor',
           'JobFailedError', 'Unit', 'StageDefinition', 'Job', 'Cohort',
           'RunContext', 'StageGraphBuilder', 'RunLog', 'RunLock',
           'RunLockError', 'PipelineRunner', 'ConfigError', 'option_help',
           'conf', 'logme']
