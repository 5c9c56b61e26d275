# -*- coding: utf-8 -*-
"""
Timestamped, leveled logging to STDERR, open files, or paths.

Every message is written as::

    20240223 11:46:24.969 | INFO --> message

Multi-line messages are continued with an arrow aligned under the flag.
Terminal outputs (STDOUT/STDERR) get colored flags, files do not.

Messages below MIN_LEVEL are dropped. Level order:
critical > error > warn > info > debug > verbose

Messages at 'error' or 'critical' are also echoed to STDERR when they were
sent to a file, so fatal problems are never only hidden in a run log.

Usage::
    from hpcpipe import logme
    logme.log('Submitting job', 'debug')
    logme.log('Run finished', logfile=run_log_handle)
    logme.MIN_LEVEL = 'debug'
"""
import sys
import logging
from datetime import datetime as dt

__all__ = ['log', 'MIN_LEVEL', 'LOGFILE']

###################################
#  Constants for printing colors  #
###################################

WHITE  = '\033[97m'
YELLOW = '\033[93m'
RED    = '\033[91m'
BOLD   = '\033[1m'
ENDC   = '\033[0m'

MIN_LEVEL = 'info'
LOGFILE   = sys.stderr

LEVELS = {'verbose': 0, 'debug': 1, 'info': 2, 'warn': 3, 'error': 4,
          'critical': 5,
          'v': 0, 'd': 1, 'i': 2, 'w': 3, 'e': 4, 'c': 5}

FLAGS = ['VERBOSE', 'DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']

COLORS = {'INFO': BOLD + WHITE, 'WARNING': BOLD + YELLOW,
          'ERROR': BOLD + RED, 'CRITICAL': BOLD + RED}


def log(message, level='info', logfile=None, also_write=None):
    """Print a string to logfile.

    Args:
        message:    The message to print, converted with str().
        level:      'verbose'|'debug'|'info'|'warn'|'error'|'critical', or
                    the first letter of any of these. Only printed if
                    level >= MIN_LEVEL.
        logfile:    Where to write. Defaults to LOGFILE (STDERR). Can be an
                    open file handle, a path (appended to), or a
                    logging.Logger.
        also_write: 'stdout' or 'stderr', also print the message there if
                    that is not already the output.
    """
    level_no = _level_number(level)
    if level_no < _level_number(MIN_LEVEL):
        return

    logfile = logfile if logfile else LOGFILE
    message = str(message)

    if level_no >= 4 and not also_write:
        also_write = 'stderr'

    if isinstance(logfile, logging.Logger):
        _to_logger(message, logfile, level_no)
        written_to = None
    elif isinstance(logfile, str):
        with open(logfile, 'a') as fout:
            _logit(message, fout, level_no, color=False)
        written_to = None
    else:
        written_to = _stream_name(logfile)
        _logit(message, logfile, level_no, color=bool(written_to))

    if also_write and also_write != written_to:
        stream = sys.stdout if also_write == 'stdout' else sys.stderr
        _logit(message, stream, level_no, color=True)


###############################################################################
#                              Private Functions                              #
###############################################################################


def _level_number(level):
    """Return the integer for a level name."""
    if isinstance(level, int) and 0 <= level <= 5:
        return level
    try:
        return LEVELS[level]
    except KeyError:
        raise ValueError('Invalid level {}'.format(level))


def _stream_name(handle):
    """Return 'stdout' or 'stderr' if handle is a terminal stream."""
    name = str(getattr(handle, 'name', '')).strip('<>')
    return name if name in ('stdout', 'stderr') else None


def _timestamp():
    """Current time with millisecond precision."""
    now = dt.now()
    return "{0}.{1:<3}".format(now.strftime("%Y%m%d %H:%M:%S"),
                               str(int(now.microsecond/1000)))


def _logit(message, output, level_no, color=False):
    """Write message to an open file handle, continuing extra lines."""
    timestamp = _timestamp()
    flag      = FLAGS[level_no]
    pad       = len('{0} | {1} --> '.format(timestamp, flag)) - 2
    lines     = message.split('\n')
    if len(lines) > 1:
        message = '\n'.join(
            [lines[0]] + [''.ljust(pad, '-') + '> ' + i for i in lines[1:]]
        )
    if color and flag in COLORS:
        flag = COLORS[flag] + flag + ENDC
    output.write('{0} | {1} --> {2}\n'.format(timestamp, flag, message))
    output.flush()


def _to_logger(message, logger, level_no):
    """Pass message on to a logging.Logger at the matching level."""
    pylevels = [logging.DEBUG, logging.DEBUG, logging.INFO, logging.WARNING,
                logging.ERROR, logging.CRITICAL]
    logger.log(pylevels[level_no], ' {} --> {}'.format(_timestamp(), message))
