# -*- coding: utf-8 -*-
"""
Drive a whole run: every unit, the aggregation job, cleanup, and metrics.

A run moves through these states, kept in PipelineRunner.state::

    init -> building -> aggregating -> metrics -> waiting -> done
                                               \\-> done  (no wait)

Any exception aborts the run in the state it was raised in.
"""
import os as _os
from collections import OrderedDict as _OrderedDict

from tabulate import tabulate as _tabulate

from . import run as _run
from . import conf as _conf
from . import logme as _logme
from .job import Unit as _Unit
from .job import Cohort as _Cohort
from .job import StageDefinition as _StageDefinition
from .graph import StageGraphBuilder as _StageGraphBuilder
from .runlog import RunLog as _RunLog
from .runlog import RunLock as _RunLock
from .monitor import JobMonitor as _JobMonitor
from .monitor import SUCCEEDED as _SUCCEEDED
from .command import guarded_cleanup as _guarded_cleanup
from .scheduler import SchedulerClient as _SchedulerClient

INIT        = 'init'
BUILDING    = 'building'
AGGREGATING = 'aggregating'
METRICS     = 'metrics'
WAITING     = 'waiting'
DONE        = 'done'

CLEANUP_RESOURCES = {'time': '02:00:00', 'mem': '1G', 'cpus': 1}
METRICS_RESOURCES = {'time': '00:10:00', 'mem': '256', 'cpus': 1}


class PipelineRunner(object):

    """Build and submit every job of a run.

    Attributes
    ----------
    state : str
        Where in the run we are, see module docstring.
    cohort : Cohort
        Filled by run().
    aggregate_job : Job or None
    cleanup_jobs : list of Job
    metrics_job : Job or None
    """

    def __init__(self, context, stage_provider, pipeline_name='pipeline',
                 aggregate=None, prerequisites=None, client=None,
                 monitor=None, log=None, registry=None):
        """Set up the run.

        Parameters
        ----------
        context : RunContext
        stage_provider : callable
            stage_provider(unit, context) returns the ordered list of
            StageDefinitions for unit.
        pipeline_name : str, optional
            Used in log file names.
        aggregate : StageDefinition or callable, optional
            Cohort level stage, or aggregate(cohort, context) returning one.
            Called with the units of the cohort before anything is submitted.
            Submitted if at least one unit was processed.
        prerequisites : list of StageDefinition, optional
            Cohort level stages every unit's jobs wait for.
        client : SchedulerClient, optional
            Defaults to one for context.qtype and context.dry_run.
        monitor : JobMonitor, optional
        log : RunLog, optional
            By default a RunLog is opened in context.out_dir for the run.
        registry : ArtifactRegistry, optional
        """
        self.context        = context
        self.stage_provider = stage_provider
        self.pipeline_name  = pipeline_name
        self.aggregate      = aggregate
        self.prerequisites  = _run.listify(prerequisites)
        self.client         = client if client else _SchedulerClient(
            context.qtype, dry_run=context.dry_run
        )
        self.monitor        = monitor if monitor else \
                              _JobMonitor(self.client)
        self.runlog         = log
        self.registry       = registry
        self.state          = INIT
        self.cohort         = None
        self.builder        = None
        self.aggregate_job  = None
        self.cleanup_jobs   = []
        self.metrics_job    = None

    def run(self, units):
        """Build, submit, and optionally wait for every job.

        Parameters
        ----------
        units : list of Unit

        Returns
        -------
        Cohort

        Raises
        ------
        PipelineError
            On any fatal problem, including a failed metrics job when
            waiting.
        """
        lock = None
        if not self.context.dry_run and _conf.get_option('jobs', 'lock',
                                                         True):
            lock = _RunLock(self.context.out_dir).acquire()
        try:
            if self.runlog is None:
                with _RunLog(self.context.out_dir, self.pipeline_name,
                             self.context.dry_run) as self.runlog:
                    return self._run(units)
            return self._run(units)
        finally:
            if lock:
                lock.release()

    def _run(self, units):
        """Step through the run states."""
        self.cohort  = _Cohort(units)
        self.builder = _StageGraphBuilder(
            self.context, self.client, self.cohort, registry=self.registry,
            log=self.runlog
        )
        # All stages exist before the first submission
        plan      = self.plan()
        aggregate = self.aggregate_stage()

        self.state = BUILDING
        self.narrate('Building jobs for {} units, output in {}'
                     .format(len(self.cohort), self.context.out_dir))
        if not _os.path.isdir(self.context.log_dir):
            _os.makedirs(self.context.log_dir)

        prereqs = []
        if self.prerequisites:
            prereqs = self.builder.build_prerequisites(self.prerequisites)

        for unit in _run.get_pbar(self.cohort.units, name='Building',
                                  unit='units'):
            self.build_unit(unit, plan[unit.name], prereqs)

        self.state = AGGREGATING
        if aggregate is not None:
            if self.cohort.any_processed:
                self.submit_aggregate(aggregate)
            else:
                self.narrate('No units were processed, not submitting '
                             'the aggregation job', 'warn')

        self.state = METRICS
        if self.context.dry_run:
            self.narrate('Dry run, not collecting job metrics')
        elif not self.cohort.jobs:
            self.narrate('No jobs submitted, nothing to collect metrics for')
        else:
            self.submit_metrics()
            if not self.context.no_wait:
                self.state = WAITING
                self.monitor.wait(self.metrics_job.handle)
                self.metrics_job.state = _SUCCEEDED

        self.narrate(self.summary())
        self.state = DONE
        return self.cohort

    ###########################
    #  Steps of a single run  #
    ###########################

    def plan(self):
        """Ask the stage provider for the stages of every unit.

        Returns
        -------
        OrderedDict
            {unit name: list of StageDefinition}, in cohort order.

        Raises
        ------
        ConfigError
            Or anything else the provider raises, before any submission.
        """
        plan = _OrderedDict()
        for unit in self.cohort.units:
            plan[unit.name] = _run.listify(
                self.stage_provider(unit, self.context)
            )
        return plan

    def aggregate_stage(self):
        """The aggregation StageDefinition, or None without one."""
        stage = self.aggregate
        if callable(stage) and not isinstance(stage, _StageDefinition):
            stage = stage(self.cohort, self.context)
        return stage

    def build_unit(self, unit, stages, prerequisites=()):
        """Build the stages of one unit and its cleanup job.

        Returns
        -------
        list of Job
        """
        if not [stage for stage in stages if stage.applies_to(unit)]:
            self.narrate('No stages to run for {}, skipping'
                         .format(unit.name))
            return []
        self.cohort.mark_processed(unit)
        self.narrate('Initiating process for {}'.format(unit.name))
        jobs = self.builder.build(unit, stages, prerequisites)
        if self.context.remove:
            self.submit_cleanup(unit, jobs)
        finals = final_outputs(jobs)
        if finals:
            self.narrate('Final output files for {}:\n{}'
                         .format(unit.name, '\n'.join(finals)))
        return jobs

    def submit_cleanup(self, unit, jobs):
        """Submit the guarded intermediate removal job for unit.

        Only submitted if a stage of unit was submitted in this run, and
        only if the unit declares final outputs and intermediates.

        Returns
        -------
        Job or None
        """
        handles = self.cohort.jobs_for(unit)
        if not handles:
            return None
        finals = final_outputs(jobs)
        if not finals:
            self.narrate('No final outputs declared for {}, not removing '
                         'intermediates'.format(unit.name), 'warn')
            return None
        intermediates = []
        for job in jobs:
            intermediates += [i for i in job.stage.intermediates
                              if i not in intermediates]
        if not intermediates:
            return None
        stage = _StageDefinition(
            'cleanup', _guarded_cleanup(finals, intermediates),
            kill_on_error=False, **CLEANUP_RESOURCES
        )
        job = self.builder.submit(stage, unit, handles)
        self.cleanup_jobs.append(job)
        return job

    def submit_aggregate(self, stage=None):
        """Submit the aggregation job, depending on the whole cohort."""
        if stage is None:
            stage = self.aggregate_stage()
        self.narrate('Submitting {} for {} processed units'.format(
            stage.name, len(self.cohort.processed)
        ))
        self.aggregate_job = self.builder.submit(
            stage, self.run_unit, list(self.cohort.jobs)
        )
        return self.aggregate_job

    def submit_metrics(self):
        """Submit the accounting job, run even if upstream jobs failed."""
        handles = list(self.cohort.jobs)
        stage = _StageDefinition(
            'job_metrics',
            self.client.job_stats_command(handles,
                                          self.runlog.metrics_file),
            kill_on_error=False, **METRICS_RESOURCES
        )
        self.metrics_job = self.builder.submit(stage, self.run_unit, handles)
        self.narrate('Number of jobs submitted: {}'.format(len(handles)))
        queued = self.client.queue_length()
        if queued is not None:
            self.narrate('Total number of jobs in queue: {}'.format(queued))
        return self.metrics_job

    ############
    #  Output  #
    ############

    @property
    def run_unit(self):
        """The cohort level unit used for aggregation and metrics."""
        return _Unit(self.context.project if self.context.project
                     else self.pipeline_name)

    def summary(self):
        """Table of every job of the run."""
        rows = []
        for job in self.cohort.records:
            if job.skipped:
                status = 'skipped'
            elif job.handle:
                status = job.state if job.state else 'submitted'
            else:
                status = 'dry run'
            rows.append([job.unit.name, job.stage.name,
                         job.handle if job.handle else '-', status,
                         ':'.join(job.dependencies)])
        if not rows:
            return 'No jobs built'
        return 'Jobs:\n' + _tabulate(
            rows, headers=['unit', 'stage', 'job', 'status', 'depends on']
        )

    def narrate(self, message, level='info'):
        """Write message to the run log, or to logme without one."""
        if self.runlog is not None:
            self.runlog.log(message, level)
        else:
            _logme.log(message, level)

    def __repr__(self):
        return 'PipelineRunner<{}({})>'.format(self.pipeline_name,
                                               self.state)


def final_outputs(jobs):
    """Artifacts of every stage in jobs marked final, in order."""
    out = []
    for job in jobs:
        if job.stage.final:
            out += [i for i in job.stage.artifacts if i not in out]
    return out
