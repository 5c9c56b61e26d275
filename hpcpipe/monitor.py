# -*- coding: utf-8 -*-
"""
Block until a submitted job reaches a terminal state.

The monitor sleeps for a fixed interval, then reads the scheduler accounting
for the job and classifies the output:

    complete pattern          -> succeeded
    transient error pattern   -> one more consecutive timeout; failed once
                                 the timeout budget is used up
    pending/running pattern   -> keep polling, timeouts reset to 0
    anything else             -> failed immediately

With the defaults (30 seconds, 20 timeouts) a scheduler outage of about ten
minutes is tolerated.
"""
from time import sleep as _sleep
from collections import namedtuple as _nt

from . import conf as _conf
from . import logme as _logme
from . import PipelineError
from .batch_systems import BAD_STATES

POLLING   = 'polling'
SUCCEEDED = 'succeeded'
FAILED    = 'failed'


class JobFailedError(PipelineError):

    """The monitored job did not finish successfully."""

    pass


MonitorResult = _nt('MonitorResult', ['state', 'polls', 'message'])
"""
Outcome of JobMonitor.await_terminal(): state is 'succeeded' or 'failed',
polls is the number of accounting queries made.
"""


class JobMonitor(object):

    """Poll scheduler accounting for one job until it ends.

    The client only needs a `query(handle)` method and the three compiled
    patterns complete_pattern, transient_pattern and active_pattern, so a
    test double can replay canned accounting output.
    """

    def __init__(self, client, interval=None, max_timeouts=None, sleep=None):
        """Set up the monitor.

        Parameters
        ----------
        client : SchedulerClient
        interval : int, optional
            Seconds between queries, defaults to [monitor] poll_interval.
        max_timeouts : int, optional
            Consecutive transient errors allowed, defaults to [monitor]
            max_timeouts.
        sleep : callable, optional
            Replacement for time.sleep.
        """
        self.client       = client
        self.interval     = interval if interval is not None else \
                            _conf.get_option('monitor', 'poll_interval', 30)
        self.max_timeouts = max_timeouts if max_timeouts is not None else \
                            _conf.get_option('monitor', 'max_timeouts', 20)
        self.sleep        = sleep if sleep else _sleep
        self.state        = None

    def classify(self, output):
        """Return 'complete', 'transient', 'active', or 'unknown'."""
        if self.client.complete_pattern.search(output):
            return 'complete'
        if self.client.transient_pattern.search(output):
            return 'transient'
        if self.client.active_pattern.search(output):
            return 'active'
        return 'unknown'

    def await_terminal(self, handle):
        """Poll until handle succeeds or fails.

        Returns
        -------
        MonitorResult
        """
        self.state = POLLING
        timeouts   = 0
        polls      = 0
        _logme.log('Waiting for job {} to finish'.format(handle), 'info')
        while self.state == POLLING:
            self.sleep(self.interval)
            output = self.client.query(handle)
            polls += 1
            kind = self.classify(output)
            if kind == 'complete':
                self.state = SUCCEEDED
                message    = 'Job {} completed'.format(handle)
            elif kind == 'transient':
                timeouts += 1
                _logme.log('Accounting query for {} timed out ({} of {})'
                           .format(handle, timeouts, self.max_timeouts),
                           'warn')
                if timeouts >= self.max_timeouts:
                    self.state = FAILED
                    message    = ('Job {}: exceeded consecutive timeout '
                                  'budget of {}'.format(handle,
                                                        self.max_timeouts))
            elif kind == 'active':
                timeouts = 0
                _logme.log('{} still not complete, waiting'.format(handle),
                           'verbose')
            else:
                self.state = FAILED
                message    = 'Job {} finished with errors, {}'.format(
                    handle, _describe(output)
                )
        level = 'info' if self.state == SUCCEEDED else 'error'
        _logme.log(message, level)
        return MonitorResult(self.state, polls, message)

    def wait(self, handle):
        """Like await_terminal, but raise JobFailedError on failure."""
        result = self.await_terminal(handle)
        if result.state != SUCCEEDED:
            raise JobFailedError(result.message)
        return result


def _describe(output):
    """Short description of unrecognized accounting output."""
    for state in BAD_STATES:
        if state.upper() in output.upper():
            return 'state {}'.format(state.upper())
    output = ' '.join(output.split())
    if not output:
        return 'accounting returned nothing'
    return 'unrecognized accounting output: {}'.format(output[:200])
