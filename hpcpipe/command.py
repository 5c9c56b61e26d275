# -*- coding: utf-8 -*-
"""
Structured shell commands.

Stage commands are built from a program and a list of arguments and only
turned into shell text when a script is rendered. Every argument is quoted
with shlex.quote, so paths with spaces or shell metacharacters can never
change the meaning of a command.

    >>> Command('samtools', 'index', 'my file.bam').render()
    "samtools index 'my file.bam'"
    >>> CommandChain([Command('mkdir', '-p', 'out'),
    ...               Command('touch', 'out/done')]).render()
    'mkdir -p out && touch out/done'
"""
from shlex import quote as _quote

from .run import listify as _listify


class Command(object):

    """A program, its arguments, and optional redirections."""

    def __init__(self, program, *args, **kwds):
        """Create the command.

        Parameters
        ----------
        program : str
            Executable name or path.
        args : str
            Arguments, converted with str(). Lists are flattened.
        stdout : str, optional
            File to redirect STDOUT to (truncates).
        append : bool, optional
            Append to stdout instead of truncating.
        stdin : str, optional
            File to read STDIN from.
        stderr : str, optional
            File to redirect STDERR to.
        """
        self.program = str(program)
        self.args    = []
        for arg in args:
            if isinstance(arg, (list, tuple)):
                self.args += [str(i) for i in arg]
            else:
                self.args.append(str(arg))
        self.stdout = kwds.pop('stdout', None)
        self.append = kwds.pop('append', False)
        self.stdin  = kwds.pop('stdin', None)
        self.stderr = kwds.pop('stderr', None)
        if kwds:
            raise TypeError('Unknown keyword arguments {}'
                            .format(list(kwds)))

    @classmethod
    def from_list(cls, argv, **kwds):
        """Build a command from an argv style list."""
        argv = _listify(argv)
        if not argv:
            raise ValueError('Cannot build a command from an empty list')
        return cls(argv[0], *argv[1:], **kwds)

    @property
    def argv(self):
        """The program and arguments as a list."""
        return [self.program] + self.args

    def render(self):
        """Return the quoted shell string."""
        out = ' '.join([_quote(i) for i in self.argv])
        if self.stdin:
            out += ' < ' + _quote(self.stdin)
        if self.stdout:
            out += (' >> ' if self.append else ' > ') + _quote(self.stdout)
        if self.stderr:
            out += ' 2> ' + _quote(self.stderr)
        return out

    def __or__(self, other):
        """Pipe this command into other."""
        return Pipe([self, other])

    def __eq__(self, other):
        return isinstance(other, Command) and self.render() == other.render()

    def __repr__(self):
        return 'Command<{}>'.format(self.render())

    def __str__(self):
        return self.render()


class Pipe(object):

    """Commands connected with shell pipes."""

    def __init__(self, commands):
        self.commands = []
        for command in commands:
            if isinstance(command, Pipe):
                self.commands += command.commands
            else:
                self.commands.append(command)

    def __or__(self, other):
        return Pipe(self.commands + [other])

    def render(self):
        """Return the pipeline as shell text."""
        return ' | '.join([render(i) for i in self.commands])

    def __str__(self):
        return self.render()


class CommandChain(object):

    """Commands run one after the other.

    By default joined with '&&' so a failure stops the chain, with
    joiner='\\n' every command is a line of its own.
    """

    def __init__(self, commands, joiner='&&'):
        self.commands = [i for i in _listify(commands) if i]
        self.joiner   = joiner

    def add(self, command):
        """Append a command, returns self."""
        self.commands.append(command)
        return self

    def render(self):
        """Return the chain as shell text."""
        if self.joiner == '\n':
            return '\n'.join([render(i) for i in self.commands])
        return ' {} '.format(self.joiner).join(
            [render(i) for i in self.commands]
        )

    def __len__(self):
        return len(self.commands)

    def __str__(self):
        return self.render()


###############################################################################
#                               Helper Builders                               #
###############################################################################


def render(command):
    """Render a Command, Pipe, CommandChain, or pass a string through."""
    if isinstance(command, str):
        return command
    if hasattr(command, 'render'):
        return command.render()
    if isinstance(command, (list, tuple)):
        return Command.from_list(command).render()
    raise TypeError('Cannot render command of type {}'.format(type(command)))


def mark_complete(path):
    """Write a sentinel file by renaming into place.

    The sentinel holds the completion date, so it is never empty, and only
    ever exists complete. A partially written marker is never visible under
    its final name.
    """
    tmp = path + '.tmp'
    return CommandChain([Command('date', stdout=tmp),
                         Command('mv', tmp, path)])


def md5_command(path):
    """Write the md5 sum of path to path.md5."""
    return Command('md5sum', path, stdout=path + '.md5')


def guarded_cleanup(final_outputs, to_remove):
    """Return a shell block removing to_remove only if every final output
    exists and is non-empty.

    Parameters
    ----------
    final_outputs : list
        Paths that must all pass `[ -s path ]`.
    to_remove : list
        Paths passed to `rm -rf`.

    Returns
    -------
    str
    """
    final_outputs = _listify(final_outputs)
    to_remove     = _listify(to_remove)
    if not final_outputs:
        raise ValueError('Refusing to build a cleanup without final outputs')
    test = ' && '.join(['[ -s {} ]'.format(_quote(i)) for i in final_outputs])
    removals = '\n'.join(
        ['  ' + Command('rm', '-rf', i).render() for i in to_remove]
    )
    return '\n'.join([
        'if {}; then'.format(test),
        removals if removals else '  :',
        'else',
        '  echo "One or more FINAL OUTPUT FILES is missing; '
        'not removing intermediates"',
        'fi',
    ])
