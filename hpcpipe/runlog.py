# -*- coding: utf-8 -*-
"""
Per-run log files and the output directory lock.

Every live run claims a number by counting the job metrics files already in
<out_dir>/logs and creating the next one::

    logs/job_metrics_3.out               # filled by the run's metrics job
    logs/run_mutect_pipeline_3.log       # narration of the run

The metrics file is created exclusively before anything is submitted, so
two runs starting at the same time can never end up with the same number.
Dry runs do not claim a number and write to run_<pipeline>_pipeline.log.

RunLock keeps two live runs out of the same output directory. Artifact
checks are check-then-submit, so without the lock both runs would see the
same missing outputs and submit the same stages twice.
"""
import os as _os
import re as _re
import time as _time
from datetime import datetime as _dt

from . import run as _run
from . import logme as _logme
from . import PipelineError

METRICS_PREFIX = 'job_metrics'
LOCK_NAME      = 'hpcpipe.lock'

# A lock without a readable pid younger than this is still being written
STALE_SECONDS  = 30


class RunLockError(PipelineError):

    """Another live run holds the output directory."""

    pass


class RunLog(object):

    """The narration log and metrics file of one run.

    Use as a context manager, leaving the block writes the closing line.

    Attributes
    ----------
    log_dir : str
        <out_dir>/logs
    run_count : int or None
        Number of this run, None for dry runs.
    metrics_file : str or None
        Path the metrics job writes to, None for dry runs.
    log_file : str
        Path of the narration log.
    """

    def __init__(self, out_dir, pipeline_name, dry_run=False):
        """Create the log directory and claim a run number.

        Raises
        ------
        OSError
            If the log directory or files cannot be created.
        """
        self.out_dir       = _os.path.abspath(out_dir)
        self.log_dir       = _os.path.join(self.out_dir, 'logs')
        self.pipeline_name = _run.safe_name(pipeline_name)
        self.dry_run       = bool(dry_run)
        self.closed        = False
        if not _os.path.isdir(self.log_dir):
            _os.makedirs(self.log_dir)
        if self.dry_run:
            self.run_count    = None
            self.metrics_file = None
            self.log_file     = _os.path.join(
                self.log_dir, 'run_{}_pipeline.log'.format(self.pipeline_name)
            )
        else:
            self.run_count, self.metrics_file = self._claim_metrics_file()
            self.log_file = _os.path.join(
                self.log_dir, 'run_{}_pipeline_{}.log'.format(
                    self.pipeline_name, self.run_count
                )
            )
        self.log('---')
        self.log('Running {} pipeline{}, log: {}'.format(
            self.pipeline_name, ' (dry run)' if self.dry_run else
            ' (run {})'.format(self.run_count), self.log_file
        ))
        self.log('Started {}'.format(_dt.now().strftime('%Y-%m-%d %H:%M:%S')))

    def _claim_metrics_file(self):
        """Create the next job_metrics_<n>.out, return n and its path."""
        count = len(metrics_files(self.log_dir)) + 1
        while True:
            path = _os.path.join(self.log_dir, '{}_{}.out'.format(
                METRICS_PREFIX, count
            ))
            try:
                fd = _os.open(path, _os.O_CREAT | _os.O_EXCL | _os.O_WRONLY)
            except FileExistsError:
                count += 1
                continue
            _os.close(fd)
            return count, path

    def log(self, message, level='info'):
        """Append message to the run log."""
        _logme.log(message, level, logfile=self.log_file)

    def close(self, success=True):
        """Write the closing line, only once."""
        if self.closed:
            return
        if success:
            self.log('{} pipeline terminated successfully'
                     .format(self.pipeline_name))
        else:
            self.log('{} pipeline terminated with errors'
                     .format(self.pipeline_name), 'error')
        self.closed = True

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_value, traceback):
        self.close(success=exc_type is None)

    def __repr__(self):
        return 'RunLog<{}>'.format(self.log_file)


def metrics_files(log_dir):
    """Existing job metrics files in log_dir."""
    if not _os.path.isdir(log_dir):
        return []
    regex = _re.compile(r'^{}(_\d+)?\.out$'.format(METRICS_PREFIX))
    return sorted([i for i in _os.listdir(log_dir) if regex.match(i)])


class RunLock(object):

    """Exclusive lock file holding the pid of the run that owns out_dir.

    The pid is written to a private file first and hard linked into place,
    so the lock file never exists without its pid. A lock whose pid is no
    longer running is stale and is replaced. Replacing it is itself guarded
    by a second exclusive file, so two runs finding the same stale lock
    cannot both end up holding the directory.
    """

    def __init__(self, out_dir):
        self.lock_file = _os.path.join(_os.path.abspath(out_dir), 'logs',
                                       LOCK_NAME)
        self.locked    = False

    @property
    def breaker(self):
        """Held while a stale lock is being replaced."""
        return self.lock_file + '.break'

    def acquire(self):
        """Take the lock.

        Raises
        ------
        RunLockError
            If a running process holds it, or another run is replacing a
            stale lock at the same time.
        """
        pth = _os.path.dirname(self.lock_file)
        if not _os.path.isdir(pth):
            _os.makedirs(pth)
        tmp = '{}.{}'.format(self.lock_file, _os.getpid())
        with open(tmp, 'w') as fout:
            fout.write(str(_os.getpid()))
        try:
            if not self._link(tmp):
                self._replace_stale(tmp)
        finally:
            _os.remove(tmp)
        self.locked = True
        _logme.log('Locked {}'.format(self.lock_file), 'debug')
        return self

    def release(self):
        """Remove the lock if we hold it."""
        if self.locked and _os.path.exists(self.lock_file):
            _os.remove(self.lock_file)
            _logme.log('Released {}'.format(self.lock_file), 'debug')
        self.locked = False

    @property
    def owner(self):
        """pid in the lock file, None if missing or unreadable."""
        try:
            with open(self.lock_file) as fin:
                return int(fin.read().strip())
        except (OSError, ValueError):
            return None

    def _link(self, tmp):
        """Link tmp to the lock file, False if the lock exists."""
        try:
            _os.link(tmp, self.lock_file)
        except FileExistsError:
            return False
        return True

    def _replace_stale(self, tmp):
        """Remove a dead run's lock and link ours, one run at a time."""
        for _ in range(2):
            try:
                fd = _os.open(self.breaker,
                              _os.O_CREAT | _os.O_EXCL | _os.O_WRONLY)
            except FileExistsError:
                age = _age(self.breaker)
                if age is not None and age < STALE_SECONDS:
                    raise RunLockError(
                        'Another run is replacing the stale lock {}'
                        .format(self.lock_file)
                    )
                # Left behind by a run that died while replacing a lock
                _remove(self.breaker)
                continue
            _os.close(fd)
            try:
                self._check_stale()
                _remove(self.lock_file)
                if not self._link(tmp):
                    raise RunLockError('Could not lock {}'
                                       .format(self.lock_file))
            finally:
                _remove(self.breaker)
            return
        raise RunLockError('Could not lock {}'.format(self.lock_file))

    def _check_stale(self):
        """Raise RunLockError unless the current lock can be removed."""
        pid = self.owner
        if pid and _run.check_pid(pid):
            raise RunLockError(
                'Output directory is in use by process {}, remove {} '
                'if that is not a pipeline run'.format(pid, self.lock_file)
            )
        age = _age(self.lock_file)
        if pid is None and age is not None and age < STALE_SECONDS:
            raise RunLockError(
                'Lock {} has no pid but was written {:.0f} seconds ago, '
                'another run may be starting'.format(self.lock_file, age)
            )
        if age is not None:
            _logme.log('Removing stale lock {} (pid {})'
                       .format(self.lock_file, pid), 'warn')

    def __enter__(self):
        return self.acquire()

    def __exit__(self, exc_type, exc_value, traceback):
        self.release()

    def __repr__(self):
        return 'RunLock<{}(locked: {})>'.format(self.lock_file, self.locked)


def _age(path):
    """Seconds since path was modified, None if it is gone."""
    try:
        return _time.time() - _os.path.getmtime(path)
    except OSError:
        return None


def _remove(path):
    try:
        _os.remove(path)
    except FileNotFoundError:
        pass
