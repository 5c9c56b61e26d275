# -*- coding: utf-8 -*-
"""
Available resource options for stage scripts.

Every keyword that can be given to a StageDefinition or StageScript resource
profile is defined in this file. Options are defined in dictionaries with the
syntax:
    'name': {'slurm': The directive argument used for slurm
             'torque': The directive argument used for torque
             'default': The default to use if not set
             'type': The python object type for the option
             'help': A string with help information}

Options without a 'slurm' or 'torque' entry are not written as directives,
they are handled explicitly by the script builder (e.g. modules are turned
into `module load` lines and kill_on_error changes the dependency type).
"""
import sys
from textwrap import wrap as _wrap
from itertools import groupby
from collections import OrderedDict

from tabulate import tabulate as _tabulate

from . import logme
from . import ClusterError

__all__ = ['option_help', 'check_arguments', 'options_to_string']

###############################################################################
#                           Possible Resource Options                         #
###############################################################################

PREFIXES = {'slurm': '#SBATCH', 'torque': '#PBS'}

# Options written as scheduler directives
RESOURCES = OrderedDict([
    ('time',
     {'help': 'Walltime in HH:MM:SS, D-HH:MM:SS is also accepted',
      'default': '12:00:00', 'type': str,
      'slurm': '-t {}', 'torque': '-l walltime={}'}),
    # We explictly set MB in both
    ('mem',
     {'help': 'Memory to use in MB (e.g. 4000) or with a unit (e.g. 4G)',
      'default': 4000, 'type': (int, str),
      'slurm': '--mem={}M', 'torque': '-l mem={}mb'}),
    ('cpus',
     {'help': 'Number of cpus per task',
      'default': 1, 'type': int,
      'slurm': '-c {}', 'torque': '-l nodes=1:ppn={}'}),
    ('partition',
     {'help': 'The partition/queue to run in (e.g. all/himem)',
      'default': None, 'type': str,
      'slurm': '-p {}', 'torque': '-q {}'}),
    ('account',
     {'help': 'Account or HPC group to be charged',
      'default': None, 'type': str,
      'slurm': '-A {}', 'torque': '-A {}'}),
])

# Options handled by the script builder itself
SCRIPT = OrderedDict([
    ('modules',
     {'help': 'Modules to load with the `module load` command',
      'default': None, 'type': list}),
    ('extra_args',
     {'help': 'Additional scheduler arguments, written verbatim as ' +
              'directives',
      'default': None, 'type': list}),
    ('kill_on_error',
     {'help': 'Cancel this job if an upstream job fails, if False the job ' +
              'runs whatever the upstream outcome',
      'default': True, 'type': bool}),
])

################################################################
#                         SYNONYMS                             #
#  These allow alternate keyword arguments for common options  #
################################################################

SYNONYMS = OrderedDict([
    ('max_time',      'time'),
    ('walltime',      'time'),
    ('memory',        'mem'),
    ('cpus_per_task', 'cpus'),
    ('n_cpus',        'cpus'),
    ('cores',         'cpus'),
    ('threads',       'cpus'),
    ('queue',         'partition'),
    ('hpc_group',     'account'),
    ('group',         'account'),
    ('module',        'modules'),
    ('extra',         'extra_args'),
])


###############################################################################
#                       DO NOT EDIT BELOW THIS LINE!!!                        #
###############################################################################

ALL_KWDS = RESOURCES.copy()
ALL_KWDS.update(SCRIPT)

# Will be 'name' -> type
ALLOWED_KWDS = OrderedDict()
for name, info in ALL_KWDS.items():
    ALLOWED_KWDS[name] = info['type']


###############################################################################
#                      Option Handling Custom Exception                       #
###############################################################################

class OptionsError(ClusterError):

    """A custom Exception for failures in option parsing."""

    pass


###############################################################################
#                          Option Handling Functions                          #
###############################################################################


def split_keywords(kwargs):
    """Split a dictionary of keyword arguments into two dictionaries.

    The first dictionary will contain valid resource arguments, the second
    will contain all others.

    Returns:
        tuple: (dict, dict) valid resource args, other args
    """
    if not isinstance(kwargs, dict):
        raise ValueError('Invalid argument. Should be a dictionary, is {}'
                         .format(type(kwargs)))
    good = {}
    bad  = {}
    for key, val in kwargs.items():
        if key in ALLOWED_KWDS or key in SYNONYMS:
            good[key] = val
        else:
            bad[key] = val
    return check_arguments(good), bad


def check_arguments(kwargs):
    """Make sure all keywords are allowed and normalize their values.

    Synonyms are replaced with their option name, values are converted to
    the option type, time is formatted as HH:MM:SS and memory is converted
    to an int of MB. None values are kept as None.

    Raises:
        OptionsError: on unknown keywords or unparsable time.
        TypeError: if a value cannot be converted to the option type.
        ValueError: if memory cannot be parsed.

    Returns:
        dict: sanitized keywords
    """
    new_kwds = {}
    for arg, opt in kwargs.items():
        if arg not in ALLOWED_KWDS:
            if arg in SYNONYMS:
                arg = SYNONYMS[arg]
            else:
                raise OptionsError('Unrecognized argument {}'.format(arg))
        if opt is None:
            new_kwds[arg] = None
            continue
        newtype = ALLOWED_KWDS[arg]
        if not isinstance(opt, newtype):
            if newtype is list:
                opt = list(opt) if isinstance(opt, tuple) else [opt]
            else:
                try:
                    opt = newtype(opt)
                except (TypeError, ValueError):
                    raise TypeError('{} must be {}, is {}'.format(
                        arg, newtype, type(opt)))
        if arg == 'time':
            opt = format_time(opt)
        elif arg == 'mem':
            opt = format_mem(opt)
        new_kwds[arg] = opt
    return new_kwds


def format_time(opt):
    """Return a D-HH:MM:SS fragment as HH:MM:SS."""
    try:
        if '-' in opt:
            day, time = opt.split('-')
        else:
            day  = 0
            time = opt
        time = [int(i) for i in time.split(':')]
        if len(time) == 3:
            hours, mins, secs = time
        elif len(time) == 2:
            hours = 0
            mins, secs = time
        elif len(time) == 1:
            hours = mins = 0
            secs = time[0]
        else:
            raise ValueError('Too many fields')
        hours = (int(day)*24) + hours
        # Carry overflowing seconds and minutes
        mins  += secs // 60
        secs   = secs % 60
        hours += mins // 60
        mins   = mins % 60
    except ValueError:
        raise OptionsError('time must be formatted as D-HH:MM:SS ' +
                           'or a fragment of that (e.g. MM:SS) ' +
                           'it is formatted as {}'.format(opt))
    return '{}:{}:{}'.format(str(hours).rjust(2, '0'),
                             str(mins).rjust(2, '0'),
                             str(secs).rjust(2, '0'))


def format_mem(opt):
    """Force memory into an integer of megabytes.

    Accepts ints (MB) and strings like '4000', '256M', '8G', '8GB'. The
    minimum returned is 5.
    """
    if isinstance(opt, int):
        return max(opt, 5)
    opt = opt.strip()
    if opt.isdigit():
        return max(int(opt), 5)
    groups = [(k, ''.join(g)) for k, g in groupby(opt, key=str.isdigit)]
    if len(groups) != 2 or not groups[0][0] or groups[1][0]:
        raise ValueError('mem is malformatted, should be a number '
                         'of MB or a string like 24MB or 10GB, '
                         'it is: {}'.format(opt))
    sval  = int(groups[0][1])
    sunit = groups[1][1].lower()
    if sunit in ('b',):
        mem = int(float(sval)/1024/1024)
    elif sunit in ('kb', 'k'):
        mem = int(float(sval)/1024)
    elif sunit in ('mb', 'm'):
        mem = sval
    elif sunit in ('gb', 'g'):
        mem = sval*1024
    elif sunit in ('tb', 't'):
        mem = sval*1024*1024
    else:
        raise ValueError('Unknown memory unit opt {}'.format(sunit))
    return max(mem, 5)


def option_to_string(option, value, qtype):
    """Return a single directive line for slurm or torque.

    Args:
        option: An allowed option defined in RESOURCES
        value:  A value for that option, if None, the default is used
        qtype:  'torque' or 'slurm'

    Returns:
        str: A directive, or '' if the option has no directive in this mode
             or no value.
    """
    if isinstance(option, dict):
        raise ValueError('Arguments to option_to_string cannot be '
                         'dictionaries, you probably want options_to_string')
    if qtype not in PREFIXES:
        raise ClusterError('Invalid qtype {}'.format(qtype))

    option, value = list(check_arguments({option: value}).items())[0]

    if option not in RESOURCES:
        raise OptionsError('{} is not written as a directive'.format(option))

    if value is None:
        value = RESOURCES[option]['default']
        if value is None:
            return ''
        value = check_arguments({option: value})[option]
        logme.log('Using default value {} for {}'.format(value, option),
                  'verbose')

    if qtype not in RESOURCES[option]:
        logme.log('{} not available in {} mode.'.format(option, qtype),
                  'debug')
        return ''

    return '{prefix} {optarg}'.format(
        prefix=PREFIXES[qtype],
        optarg=RESOURCES[option][qtype].format(value)
    )


def options_to_string(option_dict, qtype):
    """Return a multi-line string of directives for slurm or torque.

    Every option in RESOURCES is written, using its default when it is not
    in option_dict. Options in SCRIPT are ignored here.

    Args:
        option_dict (dict): Dict in format {option: value} where value can be
                            None. If value is None, default used.
        qtype (str):        'torque' or 'slurm'

    Returns:
        str: A multi-line string of torque or slurm directives.
    """
    if not isinstance(option_dict, dict):
        raise TypeError('option_dict must be dict is {}'.format(
            type(option_dict)))
    option_dict = check_arguments(option_dict.copy())

    outlist = []
    for option in RESOURCES:
        line = option_to_string(option, option_dict.get(option), qtype)
        if line:
            outlist.append(line)
    return '\n'.join(outlist)


def option_help(mode='string', tablefmt='simple'):
    """Return or print a string displaying information on all options.

    Args:
        mode (str):     string: Return a formatted string
                        print:  Print the string to stdout
                        list:   Return a simple list of keywords
                        table:  Return a table of options and synonyms
        tablefmt (str): A tabulate-style table format, e.g. 'simple', 'rst'

    Returns:
        str: A formatted string
    """
    hlp = OrderedDict([
        ('resources', {'summary': 'Written as scheduler directives',
                       'help': RESOURCES}),
        ('script', {'summary': 'Handled by the script builder',
                    'help': SCRIPT}),
    ])

    if mode == 'print' or mode == 'string':
        outstr = ''
        for hlp_info in hlp.values():
            tmpstr = ''
            for option, inf in hlp_info['help'].items():
                helpitems = _wrap(inf['help'])
                helpstr   = ('\n' + ' '*15).join(helpitems)
                tmpstr += ('{o:<15}{h}\n{s:<15}Type: {t}; Default: {d}\n'
                           .format(o=option + ':', h=helpstr, s=' ',
                                   t=_type_name(inf['type']),
                                   d=inf['default']))
            outstr += '{}::\n{}\n'.format(hlp_info['summary'], tmpstr)
        outstr = outstr.rstrip() + '\n'
        if mode == 'print':
            sys.stdout.write(outstr)
            return None
        return outstr

    elif mode == 'table':
        table = []
        for sect, ddct in hlp.items():
            for opt, inf in ddct['help'].items():
                table.append([opt, inf['help'], _type_name(inf['type']),
                              str(inf['default']), sect])
        out_string  = _tabulate(
            table, headers=['Option', 'Description', 'Type', 'Default',
                            'Section'],
            tablefmt=tablefmt
        ) + '\n\n'
        out_string += 'Synonyms\n'
        out_string += '-'*8 + '\n\n'
        out_string += _tabulate(
            [list(i) for i in SYNONYMS.items()],
            headers=['Synonym', 'Option'], tablefmt=tablefmt
        )
        return out_string

    elif mode == 'list':
        return '\n'.join(ALL_KWDS.keys())

    else:
        raise ClusterError('mode must be "print", "string", "list", or ' +
                           '"table"')


def _type_name(typ):
    """Readable name for a type or tuple of types."""
    if isinstance(typ, (tuple, list, set)):
        return '/'.join([t.__name__ for t in typ])
    return typ.__name__
