# -*- coding: utf-8 -*-
"""
Decide whether a stage still has to run by looking at its outputs.

An artifact counts as done only if it exists *and* is non-empty. A stage
with several artifacts is skipped only if every one of them is done, one
missing or empty file is enough to run the stage again. A stage with no
declared artifacts always runs.

Large or multi-file outputs are better tracked through a sentinel, written
by the stage itself once everything else is finished::

    <stem>.COMPLETE   # see command.mark_complete()
    <file>.md5        # see command.md5_command()

This is a check-then-submit test, not a lock. Use runlog.RunLock to keep two
runs away from the same output directory.
"""
import os as _os

from . import logme as _logme
from .run import listify as _listify

COMPLETE_SUFFIX = '.COMPLETE'
MD5_SUFFIX      = '.md5'


def missing_file(path):
    """True if path does not exist or has zero size."""
    try:
        return _os.path.getsize(path) == 0
    except OSError:
        return True


def needs_execution(paths):
    """True if any path is missing or empty, False if all are non-empty.

    An empty list of paths always needs execution.
    """
    paths = _listify(paths)
    if not paths:
        return True
    return any(missing_file(i) for i in paths)


def complete_marker(stem):
    """Name of the .COMPLETE sentinel for stem."""
    return str(stem) + COMPLETE_SUFFIX


def md5_marker(path):
    """Name of the .md5 sentinel for path."""
    return str(path) + MD5_SUFFIX


class ArtifactRegistry(object):

    """Answer whether a stage's artifacts are already in place.

    Subclass and override `exists` to check somewhere other than the local
    filesystem.
    """

    def exists(self, path):
        """True if path exists and is non-empty."""
        return not missing_file(path)

    def missing(self, paths):
        """Return the paths that are missing or empty."""
        return [i for i in _listify(paths) if not self.exists(i)]

    def needs_execution(self, paths):
        """True if the stage owning paths must be run."""
        paths = _listify(paths)
        if not paths:
            _logme.log('No artifacts declared, stage will run', 'debug')
            return True
        missing = self.missing(paths)
        for path in missing:
            _logme.log('Artifact missing or empty: {}'.format(path), 'debug')
        return bool(missing)
