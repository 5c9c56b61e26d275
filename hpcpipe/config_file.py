# -*- coding: utf-8 -*-
"""
Load tool and data YAML files and turn them into stages and units.

The tool config declares the stages of a pipeline, the data config lists
the samples of a cohort::

    # tool.yaml
    pipeline: bwa
    project_name: PROJ1
    ref_type: hg38
    seq_type: exome
    hpc_group: pughlab          # charged account, optional
    unit_level: sample          # or patient
    stages:
      - name: align
        command:
          - [bwa, mem, -o, '{unit_dir}/{unit}.sam', ref.fa, '{input}']
        outputs: ['{unit_dir}/{unit}.sam']
        resources: {time: '24:00:00', mem: 8G, cpus: 4}
        modules: [bwa/0.7.17]
        intermediates: ['{unit_dir}/{unit}.sam']
      - name: sort
        command:
          - [samtools, sort, -o, '{unit_dir}/{unit}.bam',
             '{unit_dir}/{unit}.sam']
        outputs: ['{unit_dir}/{unit}.bam']
        final: true
    aggregate:
      name: collect
      command: [[collect.py, --dir, '{out_dir}']]

    # data.yaml
    PATIENT1:
      normal:
        SAMPLE1N: /path/to/normal.fastq.gz
      tumour:
        SAMPLE1T: /path/to/tumour.fastq.gz

Commands are lists of argument lists, joined with '&&'. Every argument is
filled with these fields:

    {unit} {role} {patient} {input} {unit_dir} {out_dir} {project}
    {ref_type} {seq_type} {chr_prefix} {assembly} {<role>_input}

{chr_prefix} is 'chr' for UCSC style builds (hg19, hg38) and empty for GRC
builds, {assembly} is 37 or 38.

An input field holding several paths (patient level units, or several
samples of one role) expands into one argument per path when the argument
is exactly that field, and is comma joined otherwise. Literal braces, e.g.
in an awk program, are written doubled: '{{print $1}}'.
"""
import os as _os

import yaml as _yaml

from . import run as _run
from . import logme as _logme
from . import PipelineError
from . import ClusterError as _ClusterError
from .job import Unit as _Unit
from .job import StageDefinition as _StageDefinition
from .command import Command as _Command
from .command import CommandChain as _CommandChain
from .command import mark_complete as _mark_complete
from .artifacts import complete_marker as _complete_marker
from .reference import RefBuild as _RefBuild
from .reference import SeqType as _SeqType

UNIT_LEVELS = ('sample', 'patient')

STAGE_KEYS = {'name', 'command', 'outputs', 'depends_on', 'roles',
              'resources', 'modules', 'intermediates', 'final',
              'kill_on_error', 'complete_marker', 'extra_args'}


class ConfigError(PipelineError):

    """A tool or data config is missing or malformed."""

    pass


###############################################################################
#                               Loading Files                                 #
###############################################################################


def _load_yaml(path, kind):
    """Return the parsed contents of a YAML file."""
    if not path or not _os.path.isfile(path):
        raise ConfigError('{} config {} does not exist'.format(kind, path))
    try:
        with open(path) as fin:
            data = _yaml.safe_load(fin)
    except _yaml.YAMLError as err:
        raise ConfigError('Could not parse {} config {}: {}'
                          .format(kind, path, err))
    if not isinstance(data, dict):
        raise ConfigError('{} config {} must be a mapping'.format(kind, path))
    return data


def load_tool_config(path):
    """Load and validate a tool config.

    Returns
    -------
    dict
        The config with defaults filled in, ref_type and seq_type parsed to
        RefBuild and SeqType members (or None).

    Raises
    ------
    ConfigError
    """
    tool = _load_yaml(path, 'Tool')
    tool.setdefault('pipeline', _os.path.splitext(_os.path.basename(path))[0])
    tool.setdefault('project_name', None)
    tool.setdefault('hpc_group', None)
    tool.setdefault('cluster', None)
    tool.setdefault('unit_level', 'sample')
    tool.setdefault('prepare', [])
    tool.setdefault('aggregate', None)

    try:
        if tool.get('ref_type') is not None:
            tool['ref_type'] = _RefBuild.parse(tool['ref_type'])
        else:
            tool['ref_type'] = None
        if tool.get('seq_type') is not None:
            tool['seq_type'] = _SeqType.parse(tool['seq_type'])
        else:
            tool['seq_type'] = None
    except _ClusterError as err:
        raise ConfigError('{}: {}'.format(path, err))

    if tool['unit_level'] not in UNIT_LEVELS:
        raise ConfigError('unit_level must be one of {}, is {}'
                          .format(UNIT_LEVELS, tool['unit_level']))

    stages = tool.get('stages')
    if not stages or not isinstance(stages, list):
        raise ConfigError('{} must define a list of stages'.format(path))
    for stage in stages:
        _check_stage(stage)
    names = [i['name'] for i in stages]
    if len(set(names)) != len(names):
        raise ConfigError('Stage names must be unique, got {}'.format(names))

    if not isinstance(tool['prepare'], list):
        raise ConfigError('prepare must be a list of stages')
    for stage in tool['prepare']:
        _check_stage(stage)
    if tool['aggregate'] is not None:
        _check_stage(tool['aggregate'])

    _logme.log('Loaded {} stages for {} from {}'
               .format(len(stages), tool['pipeline'], path), 'debug')
    return tool


def load_data_config(path):
    """Load a {patient: {role: {sample: path}}} data config.

    Raises
    ------
    ConfigError
    """
    data = _load_yaml(path, 'Data')
    for patient, roles in data.items():
        if not isinstance(roles, dict) or not roles:
            raise ConfigError('Patient {} must map roles to samples'
                              .format(patient))
        for role, samples in roles.items():
            if not isinstance(samples, dict) or not samples:
                raise ConfigError('{} {} must map sample names to paths'
                                  .format(patient, role))
            for sample, pth in samples.items():
                if not isinstance(pth, str) or not pth:
                    raise ConfigError('Sample {} of {} has no input path'
                                      .format(sample, patient))
    return data


def _check_stage(stage):
    """Raise ConfigError if a stage mapping is malformed."""
    if not isinstance(stage, dict):
        raise ConfigError('Stages must be mappings, got {}'.format(stage))
    if 'name' not in stage:
        raise ConfigError('Stage without a name: {}'.format(stage))
    unknown = set(stage) - STAGE_KEYS
    if unknown:
        raise ConfigError('Stage {}: unknown keys {}'
                          .format(stage['name'], sorted(unknown)))
    command = stage.get('command')
    if not command or not isinstance(command, list):
        raise ConfigError('Stage {}: command must be a list of arguments'
                          .format(stage['name']))
    if not stage.get('outputs') and not stage.get('complete_marker'):
        _logme.log('Stage {} declares no outputs, it will always run'
                   .format(stage['name']), 'warn')


###############################################################################
#                                   Units                                     #
###############################################################################


def units_from_data(data, level='sample'):
    """Build the Units of a cohort from a data config.

    Parameters
    ----------
    data : dict
        {patient: {role: {sample: path}}}
    level : str
        'sample' gives one unit per sample with its role, 'patient' one unit
        per patient without a role.

    Returns
    -------
    list of Unit
    """
    if level not in UNIT_LEVELS:
        raise ConfigError('level must be one of {}'.format(UNIT_LEVELS))
    units = []
    for patient in sorted(data):
        roles = data[patient]
        role_inputs = {}
        for role in sorted(roles):
            paths = [roles[role][i] for i in sorted(roles[role])]
            role_inputs['{}_input'.format(role)] = \
                paths[0] if len(paths) == 1 else paths
        if level == 'patient':
            inputs = dict(role_inputs)
            inputs['input'] = [roles[r][s] for r in sorted(roles)
                               for s in sorted(roles[r])]
            units.append(_Unit(patient, patient=patient, inputs=inputs))
            continue
        for role in sorted(roles):
            for sample in sorted(roles[role]):
                inputs = dict(role_inputs)
                inputs['input'] = roles[role][sample]
                units.append(_Unit(sample, role=role, patient=patient,
                                   inputs=inputs))
    return units


###############################################################################
#                               Stage Provider                                #
###############################################################################


class YamlStageProvider(object):

    """Turn the stages of a tool config into StageDefinitions.

    Called as provider(unit, context), as PipelineRunner expects.
    """

    def __init__(self, tool):
        self.tool = tool

    def __call__(self, unit, context):
        unit_dir = self.unit_dir(unit, context)
        return [self.stage(i, unit, context, unit_dir)
                for i in self.tool['stages']]

    def unit_dir(self, unit, context, create=True):
        """Output directory of unit, <out_dir>/<patient>/<unit>."""
        parts = [context.out_dir]
        if unit.patient and unit.patient != unit.name:
            parts.append(_run.safe_name(unit.patient))
        parts.append(_run.safe_name(unit.name))
        pth = _os.path.join(*parts)
        if create and not _os.path.isdir(pth):
            _os.makedirs(pth)
        return pth

    def prerequisites(self, context):
        """Cohort level stages from the prepare section."""
        unit = self.cohort_unit(context)
        return [self.stage(i, unit, context, context.out_dir)
                for i in self.tool['prepare']]

    def aggregate(self, cohort, context):
        """The aggregation stage, for PipelineRunner's aggregate argument."""
        unit = self.cohort_unit(context)
        return self.stage(self.tool['aggregate'], unit, context,
                          context.out_dir)

    def cohort_unit(self, context):
        return _Unit(context.project if context.project
                     else self.tool['pipeline'])

    def fields(self, unit, context, unit_dir):
        """Placeholder values for unit."""
        out = {
            'unit':     unit.name,
            'role':     unit.role if unit.role else '',
            'patient':  unit.patient if unit.patient else '',
            'unit_dir': unit_dir,
            'out_dir':  context.out_dir,
            'project':  context.project if context.project else '',
            'ref_type': context.ref_build.value if context.ref_build else '',
            'seq_type': context.seq_type.value if context.seq_type else '',
        }
        build = context.ref_build
        out['chr_prefix'] = 'chr' if build and build.chr_prefix else ''
        out['assembly']   = str(build.assembly) if build else ''
        out.update(unit.inputs)
        return out

    def stage(self, defn, unit, context, unit_dir):
        """Build one StageDefinition from its tool config mapping.

        Raises
        ------
        ConfigError
            If a placeholder is unknown or a resource is invalid.
        """
        name   = defn['name']
        fields = self.fields(unit, context, unit_dir)
        try:
            commands = defn['command']
            if not isinstance(commands[0], list):
                commands = [commands]
            chain = _CommandChain(
                [_Command.from_list(fill_args(i, fields)) for i in commands]
            )
            artifacts = [fill(i, fields) for i in
                         _run.listify(defn.get('outputs'))]
            intermediates = [fill(i, fields) for i in
                             _run.listify(defn.get('intermediates'))]
        except (KeyError, IndexError) as err:
            raise ConfigError('Stage {}: unknown placeholder {} for {}'
                              .format(name, err, unit.name))
        except ValueError as err:
            raise ConfigError('Stage {}: {}'.format(name, err))

        if defn.get('complete_marker'):
            marker = _complete_marker(_os.path.join(unit_dir, name))
            chain.add(_mark_complete(marker))
            artifacts = [marker]

        resources = dict(defn.get('resources') or {})
        if self.tool.get('hpc_group') and 'account' not in resources:
            resources['account'] = self.tool['hpc_group']
        try:
            return _StageDefinition(
                name, chain,
                artifacts=artifacts,
                depends_on=defn.get('depends_on'),
                roles=defn.get('roles'),
                kill_on_error=defn.get('kill_on_error', True),
                modules=defn.get('modules'),
                extra_args=defn.get('extra_args'),
                intermediates=intermediates,
                final=defn.get('final', False),
                **resources
            )
        except (_ClusterError, TypeError, ValueError) as err:
            raise ConfigError('Stage {}: {}'.format(name, err))


def fill(template, fields):
    """Format one string, lists are comma joined."""
    flat = {k: ','.join(v) if isinstance(v, list) else v
            for k, v in fields.items()}
    return str(template).format(**flat)


def fill_args(args, fields):
    """Format an argument list.

    An argument that is exactly a field holding a list expands to one
    argument per item.
    """
    out = []
    for arg in _run.listify(args):
        arg = str(arg)
        key = arg[1:-1] if arg.startswith('{') and arg.endswith('}') \
            else None
        if key in fields and isinstance(fields[key], list):
            out += [str(i) for i in fields[key]]
        else:
            out.append(fill(arg, fields))
    return out
