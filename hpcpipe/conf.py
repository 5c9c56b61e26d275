# -*- coding: utf-8 -*-
"""
Get and set config file options.

The functions defined here provide an easy way to access the config file
defined by CONFIG_FILE (default ~/.hpcpipe/config.txt). The file is managed by
Python's ConfigParser class and only holds settings of the machine that runs
the orchestrator: which batch system to use, how often to retry a
submission, and how the final job is monitored. Everything about a
particular pipeline lives in the tool and data YAML files instead.

If the file does not exist, the values in DEFAULTS are used. Run
`create_config()` to write a file you can edit.
"""
import os as _os
from textwrap import dedent as _dnt
import configparser as _configparser

from . import logme as _logme


###############################################################################
#                            Configurable Defaults                            #
###############################################################################

CONFIG_PATH = _os.path.join(_os.path.expanduser('~'), '.hpcpipe')
"""
Where configuration files will be kept
"""
CONFIG_FILE = _os.path.join(CONFIG_PATH, 'config.txt')
"""
Where the main config will be kept.
"""

DEFAULTS = {
    'queue': {
        'queue_type':   'slurm',
        'sbatch':       None,  # Path to sbatch command
        'qsub':         None,  # Path to qsub command
        'submit_tries': 5,
    },
    'monitor': {
        'poll_interval': 30,
        'max_timeouts':  20,
    },
    'jobs': {
        'progressbar': True,
        'lock':        True,
    },
}

CONF_HELP = {
    'summary': _dnt(
        """
        The following options and sections are recognized and defined by the
        DEFAULTS dictionary in the conf.py file. They can be updated in the
        config file.

        Any options added to the config file not present here are ignored.
        """
    ),
    'queue': _dnt(
        """
        [queue]
        Define how jobs are submitted

        Options:
            queue_type (str):   the default batch system, one of 'slurm' or
                                'torque'. Overridden by --cluster.
            sbatch (str):       A path to the sbatch executable, only required
                                if sbatch is not in the PATH.
            qsub (str):         A path to the qsub executable, only required
                                if qsub is not in the PATH.
            submit_tries (int): How many times to attempt a submission before
                                the run is aborted.
        """
    ),
    'monitor': _dnt(
        """
        [monitor]
        Define how the final accounting job is waited on

        Options:
            poll_interval (int): Seconds between accounting queries.
            max_timeouts (int):  Consecutive scheduler connection failures
                                 tolerated before giving up.
        """
    ),
    'jobs': _dnt(
        """
        [jobs]
        Options for building a run

        Options:
            progressbar (bool): Show a progress bar while building units.
            lock (bool):        Take a lock on the output directory during
                                live runs so two runs cannot submit the same
                                stages.
        """
    ),
}


###############################################################################
#                         Do Not Edit Below This Point                        #
###############################################################################

config = _configparser.ConfigParser(allow_no_value=True)
"""
This is the globally accessible ConfigParser object for the config.txt file.
"""

__all__ = ['get_option', 'set_option', 'delete', 'load_config',
           'create_config', 'get_config']


###############################################################################
#                        Config Manipulation Functions                        #
###############################################################################


def get_option(section=None, key=None, default=None):
    """Get a single key or section.

    All args are optional, if they are missing, the parent section or entire
    config will be returned.

    Args:
        section (str): The config section to use (e.g. queue), if None, all
                       sections returned.
        key (str) :    The config key to get (e.g. 'submit_tries'), if None,
                       whole section returned.
        default:       Returned if the key is neither in the file nor in
                       DEFAULTS.

    Returns:
        Option value, section dict, or whole config dict.
    """
    cnf = get_config()

    if not section:
        return cnf

    if section not in cnf:
        raise ValueError('Section {} not in the config file or DEFAULTS'
                         .format(section))

    if not key:
        _logme.log('Getting the whole section: {}'.format(section), 'verbose')
        return cnf[section]

    if key in cnf[section]:
        return cnf[section][key]

    _logme.log('{} not in the {} section of the config file'
               .format(key, section), 'debug')
    return default


def set_option(section, key, value):
    """Write a config key to the config file.

    Args:
        section (str): Section of the config file to use.
        key (str):     Key to add.
        value:         Value to add for key.

    Returns:
        ConfigParser
    """
    section = str(section)
    key     = str(key)

    load_config()

    if not config.has_section(section):
        config.add_section(section)

    config.set(section, key, str(value))

    write_config()

    return config


def delete(section, key):
    """Delete a config item and write the file."""
    load_config()
    config.remove_option(section, key)
    write_config()
    return config


def load_config():
    """Load config from the config file.

    Any section or key from DEFAULTS missing in the file is filled in
    memory, the file itself is not touched.

    Returns:
        ConfigParser: Config options.
    """
    global config
    config = _configparser.ConfigParser(allow_no_value=True)
    if _os.path.isfile(CONFIG_FILE):
        config.read(CONFIG_FILE)

    for section, opts in DEFAULTS.items():
        if not config.has_section(section):
            config.add_section(section)
        for key, val in opts.items():
            if not config.has_option(section, key):
                config.set(section, key, str(val))
    return config


def get_config():
    """Return a dictionary representation of the entire config."""
    cnf = load_config()
    return {sect: _section_to_dict(cnf.items(sect))
            for sect in cnf.sections()}


def write_config():
    """Write the current config to CONFIG_FILE."""
    pth = _os.path.dirname(_os.path.abspath(CONFIG_FILE))
    if not _os.path.isdir(pth):
        _os.makedirs(pth)
    with open(CONFIG_FILE, 'w') as fout:
        config.write(fout)


def create_config(cnf=None):
    """Create an initial config file.

    Gets all information from the file-wide DEFAULTS constant and overwrites
    specific keys using the values in cnf. Records in cnf that are not
    present in DEFAULTS are ignored.

    Args:
        cnf (dict): A dictionary of {section: {key: value}} overrides.
    """
    global config
    config = _configparser.ConfigParser(allow_no_value=True)
    cnf = cnf if cnf else {}
    for section, opts in DEFAULTS.items():
        config.add_section(section)
        for key, val in opts.items():
            if section in cnf and key in cnf[section]:
                val = cnf[section][key]
            config.set(section, key, str(val))
    write_config()
    _logme.log('Wrote config to {}'.format(CONFIG_FILE), 'debug')
    return config


###############################################################################
#                              Private Functions                              #
###############################################################################


def _section_to_dict(section):
    """Convert a ConfigParser list of tuples to a dictionary with types."""
    out = {}
    for key, val in dict(section).items():
        if not isinstance(val, str):
            out[key] = val
        elif val == 'True':
            out[key] = True
        elif val == 'False':
            out[key] = False
        elif val == 'None':
            out[key] = None
        elif val.isdigit():
            out[key] = int(val)
        else:
            out[key] = val
    return out
