# -*- coding: utf-8 -*-
"""
Classes to build submission scripts.
"""
import os  as _os
import shlex as _shlex

from . import run as _run
from . import logme as _logme
from . import ClusterError as _ClusterError
from . import options as _options
from . import batch_systems as _batch
from . import script_runners as _scrpts
from .command import render as _render


class Script(object):

    """A script string plus a file name."""

    written   = False
    submitted = False

    def __init__(self, file_name, script):
        """Initialize the script and file name."""
        self.script    = script
        self.file_name = _os.path.abspath(file_name)

    def write(self, overwrite=True):
        """Write the script file."""
        _logme.log('Script: Writing {}'.format(self.file_name), 'debug')
        pth = _os.path.split(_os.path.abspath(self.file_name))[0]
        if not _os.path.isdir(pth):
            raise OSError('{} Does not exist, cannot write scripts'
                          .format(pth))
        if overwrite or not _os.path.exists(self.file_name):
            with open(self.file_name, 'w') as fout:
                fout.write(self.script + '\n')
            _os.chmod(self.file_name, 0o755)
            self.written = True
            return self.file_name
        else:
            return None

    def clean(self):
        """Delete the script file if we wrote it."""
        if self.written and self.exists:
            _logme.log('Script: Deleting {}'.format(self.file_name), 'debug')
            _os.remove(self.file_name)

    @property
    def exists(self):
        """True if file is on disk, False if not."""
        return _os.path.exists(self.file_name)

    def __repr__(self):
        """Display simple info."""
        return "Script<{}(exists: {}; written: {}; submitted: {})>".format(
            self.file_name, self.exists, self.written, self.submitted)

    def __str__(self):
        """Print the script."""
        return repr(self) + '::\n\n' + self.script + '\n'


class StageScript(object):

    """The resource profile and command of one stage job.

    Renders into a Script holding scheduler directives, module loads and the
    command, written to <log_dir>/<name>.sh. Rendering the same name again
    overwrites the file.
    """

    def __init__(self, name, log_dir, command, dependencies=None,
                 kill_on_error=True, modules=None, extra_args=None,
                 runpath=None, **kwds):
        """Store the profile.

        Parameters
        ----------
        name : str
            Job name, also used for the script and output file names.
        log_dir : str
            Directory the script and job STDOUT/STDERR go to, must exist
            and contain no whitespace, scheduler directives cannot quote it.
        command : Command, CommandChain, Pipe, or str
            The body of the job.
        dependencies : list, optional
            Job handles this job waits for, empty handles are dropped.
        kill_on_error : bool, optional
            If False the job runs even when a dependency failed.
        modules : list, optional
            Environment modules to load.
        extra_args : list, optional
            Extra scheduler arguments, written as directives verbatim.
        runpath : str, optional
            Working directory of the job, defaults to log_dir.
        kwds : dict
            Resource options, see options.RESOURCES, synonyms allowed
            (e.g. max_time, memory, cpus_per_task).
        """
        self.name          = _run.safe_name(name)
        self.log_dir       = _os.path.abspath(log_dir)
        if any(i.isspace() for i in self.log_dir):
            raise _ClusterError(
                'Scheduler output paths cannot contain whitespace: {}'
                .format(self.log_dir)
            )
        self.command       = command
        self.dependencies  = clean_dependencies(dependencies)
        self.kill_on_error = bool(kill_on_error)
        self.modules       = [i for i in _run.listify(modules) if i]
        self.extra_args    = [i for i in _run.listify(extra_args) if i]
        self.runpath       = _os.path.abspath(runpath) if runpath \
                             else self.log_dir
        resources, bad = _options.split_keywords(kwds)
        if bad:
            raise _options.OptionsError(
                'Unrecognized resource options {}'.format(sorted(bad))
            )
        self.resources = resources

    @property
    def file_name(self):
        """Where the script is written."""
        return _os.path.join(self.log_dir, self.name + '.sh')

    def directives(self, qtype):
        """All scheduler directive lines for qtype."""
        batch = _batch.get_batch_system(qtype)
        lines = batch.header(self.name, self.log_dir)
        resources = _options.options_to_string(self.resources, qtype)
        if resources:
            lines += resources.split('\n')
        lines += batch.dependency_directive(
            self.dependencies, self.kill_on_error
        )
        for arg in self.extra_args:
            lines.append('{} {}'.format(batch.PREFIX, arg))
        return lines

    def render(self, qtype, write=True):
        """Build the Script and write it to disk.

        Parameters
        ----------
        qtype : str
            'slurm' or 'torque'
        write : bool
            Write the file, otherwise only return the Script.

        Returns
        -------
        Script
        """
        modstr = ''
        if self.modules:
            modstr = _scrpts.MODULE_LOAD.format(' '.join(self.modules)) + '\n'
        text = _scrpts.STAGE_RUNNER.format(
            directives='\n'.join(self.directives(qtype)),
            modules=modstr,
            usedir=_shlex.quote(self.runpath),
            name=self.name,
            command=_render(self.command).rstrip(),
        )
        script = Script(file_name=self.file_name, script=text.rstrip())
        if write:
            if not _os.path.isdir(self.log_dir):
                raise OSError('{} Does not exist, cannot write scripts'
                              .format(self.log_dir))
            batch = _batch.get_batch_system(qtype)
            for pth in batch.output_dirs(self.log_dir):
                if not _os.path.isdir(pth):
                    _os.makedirs(pth)
            script.write(overwrite=True)
        return script

    def __repr__(self):
        return 'StageScript<{}(deps: {})>'.format(self.name,
                                                  self.dependencies)


def clean_dependencies(dependencies):
    """Return dependencies as a list of strings without empty handles.

    Order is kept and duplicates are dropped.
    """
    out = []
    for dep in _run.listify(dependencies):
        if dep is None:
            continue
        dep = str(getattr(dep, 'handle', dep)).strip()
        if dep and dep not in out:
            out.append(dep)
    return out
