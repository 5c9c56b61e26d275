# -*- coding: utf-8 -*-
"""
A library of useful functions used throughout the *hpcpipe* package.

These include functions to run external commands with retries, look up
executables, check running processes, and wrap iterables in progress bars.

These functions are not intended to be accessed directly and so documentation
is limited.
"""
import os as _os
import re as _re
import argparse as _argparse
from subprocess import Popen
from subprocess import PIPE
from time import sleep

from tqdm import tqdm

from . import logme as _logme


def get_pbar(iterable, name=None, unit=None, **kwargs):
    """Return a tqdm progress bar iterable.

    If progressbar is set to False in the config, will not be shown.
    """
    from . import conf  # Avoid reciprocal import issues
    show_pb = bool(conf.get_option('jobs', 'progressbar', True))
    if 'disable' not in kwargs:
        kwargs['disable'] = not show_pb
    return tqdm(iterable, desc=name, unit=unit, **kwargs)


###############################################################################
#                               Useful Classes                                #
###############################################################################


class CustomFormatter(_argparse.ArgumentDefaultsHelpFormatter,
                      _argparse.RawDescriptionHelpFormatter):

    """Custom argparse formatting."""

    pass


###############################################################################
#                               Misc Functions                                #
###############################################################################


def listify(iterable):
    """Try to force any iterable into a list sensibly."""
    if isinstance(iterable, list):
        return iterable
    if isinstance(iterable, (str, int, float)):
        return [iterable]
    if not iterable:
        return []
    try:
        iterable = list(iterable)
    except TypeError:
        iterable = [iterable]
    return iterable


def safe_name(name):
    """Make a string usable as a job and file name."""
    return _re.sub(r'[^A-Za-z0-9_.-]+', '_', str(name)).strip('_')


###############################################################################
#                               Run Functions                                 #
###############################################################################


def is_exe(fpath):
    """True if fpath is executable."""
    return _os.path.isfile(fpath) and _os.access(fpath, _os.X_OK)


def cmd(command, args=None, stdout=None, stderr=None, tries=1):
    """Run command and return status, output, stderr.

    Parameters
    ----------
    command : str or list
        A shell string, or a list of program and arguments. Lists are run
        directly without a shell.
    args : list, optional
        Additional arguments, only allowed when command is a str naming an
        executable.
    stdout : str, optional
        File to write STDOUT to.
    stderr : str, optional
        File to write STDERR to.
    tries : int, optional
        Number of times to try to execute. 1+

    Returns
    -------
    exit_code : int
    STDOUT : str
    STDERR : str
    """
    tries = int(tries)
    assert tries > 0
    if isinstance(command, (list, tuple)):
        if args:
            raise ValueError('Cannot submit list/tuple command as ' +
                             'well as args argument')
        pargs = [str(i) for i in command]
        shell = False
        name  = pargs[0]
    else:
        assert isinstance(command, str)
        name = command
        if args:
            pargs = [command] + [str(i) for i in listify(args)]
            shell = False
        else:
            pargs = command
            shell = True
    _logme.log('Running {}'.format(pargs), 'verbose')
    count = 1
    while True:
        try:
            pp = Popen(pargs, shell=shell, universal_newlines=True,
                       stdout=PIPE, stderr=PIPE)
        except FileNotFoundError:
            _logme.log('{} does not exist'.format(name), 'critical')
            raise
        out, err = pp.communicate()
        code = pp.returncode
        if code == 0 or count == tries:
            break
        _logme.log('Command {} failed with code {}, retrying.'
                   .format(name, code), 'warn')
        sleep(1)
        count += 1
    _logme.log('{} completed with code {}'.format(name, code), 'debug')
    if stdout:
        with open(stdout, 'w') as fout:
            fout.write(out)
    if stderr:
        with open(stderr, 'w') as fout:
            fout.write(err)
    return code, out.rstrip(), err.rstrip()


def which(program):
    """Replicate the UNIX which command.

    Parameters
    ----------
    program : str
        Name of executable to test.

    Returns
    -------
    str or None
        Path to the program or None on failure.
    """
    fpath, _ = _os.path.split(program)
    if fpath:
        if is_exe(program):
            return _os.path.abspath(program)
    else:
        for path in _os.environ["PATH"].split(_os.pathsep):
            path = path.strip('"')
            exe_file = _os.path.join(path, program)
            if is_exe(exe_file):
                return _os.path.abspath(exe_file)
    return None


def check_pid(pid):
    """Check For the existence of a unix pid."""
    try:
        _os.kill(int(pid), 0)
    except ProcessLookupError:
        return False
    except PermissionError:
        # Exists, owned by someone else
        return True
    return True
