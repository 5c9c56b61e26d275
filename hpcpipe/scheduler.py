# -*- coding: utf-8 -*-
"""
Submit stage scripts to a batch system, or pretend to in dry runs.

The SchedulerClient is the only place that talks to the scheduler. Everything
else deals in job handles: strings holding a scheduler job id, or '' for a
job that was never submitted. An empty handle is a valid dependency that
simply adds no edge.
"""
from subprocess import CalledProcessError as _CalledProcessError

from . import conf as _conf
from . import logme as _logme
from . import batch_systems as _batch
from . import PipelineError
from . import ClusterError as _ClusterError
from .submission_scripts import clean_dependencies


class SubmissionError(PipelineError):

    """A script could not be submitted, the run must stop."""

    pass


class SchedulerClient(object):

    """Submit scripts to one batch system and query its accounting.

    Attributes
    ----------
    qtype : str
        'slurm' or 'torque'
    batch_system : module
        The hpcpipe.batch_systems module for qtype
    dry_run : bool
        If True nothing is submitted and every handle is ''
    submitted : list
        Every handle returned by a live submission, in order
    """

    def __init__(self, qtype=None, dry_run=False, tries=None):
        """Pick the batch system.

        Parameters
        ----------
        qtype : str, optional
            Batch system, defaults to the configured one.
        dry_run : bool, optional
            Only log what would be submitted.
        tries : int, optional
            Submission attempts, defaults to [queue] submit_tries.

        Raises
        ------
        ClusterError
            If qtype is not a defined batch system.
        """
        self.qtype        = qtype if qtype else \
                            _batch.get_cluster_environment()
        self.batch_system = _batch.get_batch_system(self.qtype)
        self.dry_run      = bool(dry_run)
        self.tries        = int(tries if tries else
                                _conf.get_option('queue', 'submit_tries', 5))
        self.submitted    = []

    ##########################
    #  Scripts & Submission  #
    ##########################

    def render(self, stage_script):
        """Write a StageScript in this batch system's syntax."""
        return stage_script.render(self.qtype)

    def dependency_directive(self, handles, kill_on_error=True):
        """Directive lines for handles, empty handles are filtered first."""
        return self.batch_system.dependency_directive(
            clean_dependencies(handles), kill_on_error
        )

    def submit(self, script):
        """Submit a written Script and return its job handle.

        In dry runs the submission command is logged and '' is returned.

        Raises
        ------
        SubmissionError
            If the scheduler refuses the job.
        """
        args = self.batch_system.submit_args(script.file_name)
        if self.dry_run:
            _logme.log('Dry run, not submitting: {}'.format(' '.join(args)),
                       'info')
            return ''
        try:
            job_id = self.batch_system.submit(script.file_name,
                                              tries=self.tries)
        except (_CalledProcessError, _ClusterError, OSError) as err:
            raise SubmissionError(
                'Could not submit {}: {}'.format(script.file_name, err)
            )
        if not job_id:
            raise SubmissionError('{} returned no job id for {}'
                                  .format(self.qtype, script.file_name))
        script.submitted = True
        self.submitted.append(job_id)
        _logme.log('Submitted {} as job {}'.format(script.file_name, job_id),
                   'debug')
        return job_id

    ################
    #  Accounting  #
    ################

    def query(self, handle):
        """Raw accounting output for handle."""
        return self.batch_system.query_state(handle)

    @property
    def complete_pattern(self):
        return self.batch_system.COMPLETE_PATTERN

    @property
    def transient_pattern(self):
        return self.batch_system.TRANSIENT_PATTERN

    @property
    def active_pattern(self):
        return self.batch_system.ACTIVE_PATTERN

    def job_stats_command(self, handles, outfile):
        """Command writing accounting metrics for handles to outfile."""
        return self.batch_system.job_stats_command(
            clean_dependencies(handles), outfile
        )

    def queue_length(self):
        """Number of jobs queued, None in dry runs or if unavailable."""
        if self.dry_run:
            return None
        try:
            return self.batch_system.queue_length()
        except OSError:
            return None

    def __repr__(self):
        return 'SchedulerClient<{}{}>'.format(
            self.qtype, ', dry run' if self.dry_run else ''
        )
