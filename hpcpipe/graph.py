# -*- coding: utf-8 -*-
"""
Turn the stage list of one unit into submitted jobs.

For every stage, in order, the builder asks the ArtifactRegistry whether
the stage still has to run. Stages that have to run are written to a script
and submitted with dependencies on the jobs of the upstream stages of the
same unit that were submitted in *this* run, plus any cohort level
prerequisite jobs. A skipped stage gets the empty handle, so it never adds a
dependency edge and never points at a job from an earlier run.

Any submission or filesystem error propagates and aborts the run.
"""
from . import logme as _logme
from . import PipelineError
from .job import Job as _Job
from .job import Unit as _Unit
from .job import job_name as _job_name
from .artifacts import ArtifactRegistry as _ArtifactRegistry
from .submission_scripts import StageScript as _StageScript
from .submission_scripts import clean_dependencies as _clean_dependencies

COHORT_UNIT = 'cohort'


class StageGraphBuilder(object):

    """Decide, render and submit the stages of each unit.

    Attributes
    ----------
    context : RunContext
    client : SchedulerClient
    cohort : Cohort
        Receives every Job built, submitted handles go into its job lists.
    registry : ArtifactRegistry
    """

    def __init__(self, context, client, cohort, registry=None, log=None):
        """Set up the builder.

        Parameters
        ----------
        context : RunContext
        client : SchedulerClient
        cohort : Cohort
        registry : ArtifactRegistry, optional
            Defaults to checking the local filesystem.
        log : RunLog, optional
            Narration goes here, otherwise to logme.
        """
        self.context  = context
        self.client   = client
        self.cohort   = cohort
        self.registry = registry if registry else _ArtifactRegistry()
        self.runlog   = log

    def build(self, unit, stages, prerequisites=()):
        """Build the chain of stages for one unit.

        Parameters
        ----------
        unit : Unit
        stages : list of StageDefinition
            In execution order. Stages whose roles exclude the unit are
            ignored.
        prerequisites : list, optional
            Cohort level job handles every submitted stage depends on.

        Returns
        -------
        list of Job
            One per applicable stage, skipped stages included.

        Raises
        ------
        PipelineError
            If a stage depends on a stage that is unknown or comes later.
        SubmissionError
            If the scheduler refuses a job.
        """
        names    = [stage.name for stage in stages]
        handles  = {}
        earlier  = []
        jobs     = []
        for stage in stages:
            if not stage.applies_to(unit):
                _logme.log('{} does not apply to {} ({})'
                           .format(stage.name, unit.name, unit.role),
                           'debug')
                continue
            if not self.registry.needs_execution(stage.artifacts):
                self.narrate('Skipping {} for {} as this has already been '
                             'completed!'.format(stage.name, unit.name))
                job = _Job(stage, unit, skipped=True)
                self.cohort.add(job)
            else:
                upstream = earlier if stage.depends_on is None \
                           else stage.depends_on
                deps = list(prerequisites)
                for name in upstream:
                    if name in handles:
                        deps.append(handles[name])
                    elif name not in names or \
                            names.index(name) > names.index(stage.name):
                        raise PipelineError(
                            'Stage {} depends on {}, which is not an '
                            'earlier stage'.format(stage.name, name)
                        )
                job = self.submit(stage, unit, deps)
            handles[stage.name] = job.handle
            earlier.append(stage.name)
            jobs.append(job)
        return jobs

    def build_prerequisites(self, stages):
        """Build cohort level stages, e.g. reference preparation.

        Returns
        -------
        list
            The non-empty handles every unit has to wait for.
        """
        name = self.context.project if self.context.project else COHORT_UNIT
        jobs = self.build(_Unit(name), stages)
        return _clean_dependencies([job.handle for job in jobs])

    def submit(self, stage, unit, dependencies=None):
        """Render and submit stage for unit without an artifact check.

        The Job is added to the cohort.

        Returns
        -------
        Job
        """
        deps   = _clean_dependencies(dependencies)
        name   = _job_name(stage.name, unit.name)
        script = _StageScript(
            name, self.context.log_dir, stage.command,
            dependencies=deps,
            kill_on_error=stage.kill_on_error,
            modules=stage.modules,
            extra_args=list(stage.extra_args) + list(self.context.extra_args),
            **stage.resources
        )
        written = self.client.render(script)
        handle  = self.client.submit(written)
        job = _Job(stage, unit, handle, deps, script=written)
        self.cohort.add(job)
        if handle:
            self.narrate('{} submitted as job {}{}'.format(
                name, handle,
                ', depends on {}'.format(':'.join(deps)) if deps else ''
            ))
        else:
            self.narrate('{} written to {}'.format(name, written.file_name))
        return job

    def narrate(self, message, level='info'):
        """Write message to the run log, or to logme without one."""
        if self.runlog is not None:
            self.runlog.log(message, level)
        else:
            _logme.log(message, level)
