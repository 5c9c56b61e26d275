# -*- coding: utf-8 -*-
"""
The values passed around while a run is built.

Unit
    A sample or patient, the thing a chain of stages is built for.
StageDefinition
    What a domain driver hands to the orchestrator: a command, its resource
    profile, and the artifacts proving it already ran.
Job
    One StageDefinition for one Unit, submitted or skipped.
Cohort
    Every unit of a run plus the job handles collected while building.
RunContext
    Settings of one invocation, built once and never changed.
"""
import os as _os
from collections import OrderedDict as _OD
from collections import namedtuple as _nt

from . import run as _run
from . import options as _options
from .reference import RefBuild as _RefBuild
from .reference import SeqType as _SeqType


class Unit(object):

    """A sample or patient over which stages fan out."""

    def __init__(self, name, role=None, patient=None, inputs=None):
        """Create the unit.

        Parameters
        ----------
        name : str
            Unique identifier, used in job names.
        role : str, optional
            e.g. 'normal' or 'tumour', selects the stages that apply.
        patient : str, optional
            The patient a sample belongs to.
        inputs : dict, optional
            Input paths, e.g. {'bam': '/path/to.bam'}.
        """
        self.name    = str(name)
        self.role    = role
        self.patient = patient
        self.inputs  = inputs if inputs else {}

    def __repr__(self):
        role = ', {}'.format(self.role) if self.role else ''
        return 'Unit<{}{}>'.format(self.name, role)


class StageDefinition(object):

    """A named command with its resources and expected artifacts."""

    def __init__(self, name, command, artifacts=None, depends_on=None,
                 roles=None, kill_on_error=True, modules=None,
                 extra_args=None, intermediates=None, final=False,
                 **resources):
        """Define the stage.

        Parameters
        ----------
        name : str
            Stage name, unique within a unit's chain.
        command : Command, CommandChain, Pipe, or str
        artifacts : list, optional
            Paths that must all exist and be non-empty to skip the stage.
            No artifacts means the stage always runs.
        depends_on : list, optional
            Names of earlier stages of the same unit this stage consumes.
            None means every earlier stage.
        roles : list, optional
            Unit roles this stage applies to, None means all.
        kill_on_error : bool, optional
            Cancel if an upstream job fails. Default True.
        modules : list, optional
            Environment modules to load.
        extra_args : list, optional
            Verbatim scheduler arguments.
        intermediates : list, optional
            Paths removed by the unit's cleanup job.
        final : bool, optional
            The artifacts of this stage are final outputs of the unit.
        resources : dict
            time, mem, cpus, partition, account or their synonyms.
        """
        self.name          = str(name)
        self.command       = command
        self.artifacts     = [str(i) for i in _run.listify(artifacts)]
        self.depends_on    = None if depends_on is None else \
                             [str(i) for i in _run.listify(depends_on)]
        self.roles         = None if roles is None else \
                             [str(i) for i in _run.listify(roles)]
        self.kill_on_error = bool(kill_on_error)
        self.modules       = _run.listify(modules)
        self.extra_args    = _run.listify(extra_args)
        self.intermediates = [str(i) for i in _run.listify(intermediates)]
        self.final         = bool(final)
        resources, bad = _options.split_keywords(resources)
        self.modules    += _run.listify(resources.pop('modules', None))
        self.extra_args += _run.listify(resources.pop('extra_args', None))
        resources.pop('kill_on_error', None)
        if bad:
            raise _options.OptionsError(
                'Stage {}: unrecognized options {}'.format(name, sorted(bad))
            )
        self.resources = resources

    def applies_to(self, unit):
        """True if this stage runs for unit's role."""
        return self.roles is None or unit.role in self.roles

    def __repr__(self):
        return 'StageDefinition<{}>'.format(self.name)


class Job(object):

    """A stage instance for one unit.

    handle is '' if the stage was skipped or the run is a dry run.
    """

    def __init__(self, stage, unit, handle='', dependencies=None,
                 script=None, skipped=False):
        self.stage        = stage
        self.unit         = unit
        self.handle       = handle if handle else ''
        self.dependencies = _run.listify(dependencies)
        self.script       = script
        self.skipped      = skipped
        self.state        = None

    @property
    def name(self):
        """stage_unit job name."""
        return job_name(self.stage.name, self.unit.name)

    @property
    def submitted(self):
        return bool(self.handle)

    def __repr__(self):
        status = 'skipped' if self.skipped else (self.handle or 'dry run')
        return 'Job<{}({})>'.format(self.name, status)


def job_name(stage_name, unit_name=None):
    """File system safe name of a stage for a unit."""
    if unit_name:
        return _run.safe_name('{}_{}'.format(stage_name, unit_name))
    return _run.safe_name(stage_name)


class Cohort(object):

    """All units of a run and the job handles collected for them.

    Attributes
    ----------
    units : list
        Units sorted by name.
    jobs : list
        Every non-empty handle submitted in the run, in order.
    unit_jobs : OrderedDict
        unit name -> non-empty handles submitted for that unit.
    records : list
        Every Job, submitted or skipped.
    processed : list
        Names of units that had at least one applicable stage.
    """

    def __init__(self, units=None):
        self.units     = sorted(_run.listify(units), key=lambda u: u.name)
        self.jobs      = []
        self.unit_jobs = _OD()
        self.records   = []
        self.processed = []

    def add(self, job):
        """Record a Job, collecting its handle if it was submitted."""
        self.records.append(job)
        if job.submitted:
            self.jobs.append(job.handle)
            self.unit_jobs.setdefault(job.unit.name, []).append(job.handle)

    def mark_processed(self, unit):
        if unit.name not in self.processed:
            self.processed.append(unit.name)

    @property
    def any_processed(self):
        """True if any unit had work to decide on."""
        return bool(self.processed)

    def jobs_for(self, unit):
        """Handles submitted for unit."""
        name = unit.name if isinstance(unit, Unit) else unit
        return list(self.unit_jobs.get(name, []))

    def __len__(self):
        return len(self.units)

    def __repr__(self):
        return 'Cohort<{} units, {} jobs>'.format(len(self.units),
                                                  len(self.jobs))


_RunContextBase = _nt(
    '_RunContextBase',
    ['out_dir', 'log_dir', 'qtype', 'dry_run', 'no_wait', 'remove',
     'ref_build', 'seq_type', 'project', 'extra_args']
)


class RunContext(_RunContextBase):

    """Immutable settings of one pipeline invocation.

    Built once and passed to every component instead of module level
    globals.
    """

    __slots__ = ()

    def __new__(cls, out_dir, qtype=None, dry_run=False, no_wait=False,
                remove=False, ref_build=None, seq_type=None, project=None,
                extra_args=None, log_dir=None):
        out_dir = _os.path.abspath(out_dir)
        log_dir = _os.path.abspath(log_dir) if log_dir else \
                  _os.path.join(out_dir, 'logs')
        if ref_build is not None:
            ref_build = _RefBuild.parse(ref_build)
        if seq_type is not None:
            seq_type = _SeqType.parse(seq_type)
        extra_args = tuple(i for i in _run.listify(extra_args) if i)
        return super(RunContext, cls).__new__(
            cls, out_dir, log_dir, qtype, bool(dry_run), bool(no_wait),
            bool(remove), ref_build, seq_type, project, extra_args
        )
