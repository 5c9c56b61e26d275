#!/usr/bin/env python
# -*- coding: utf-8 -*-
"""
Build and submit a pipeline described by a tool YAML for every sample of a
data YAML.
"""
import sys
import argparse
import signal

import hpcpipe
from hpcpipe.job import RunContext
from hpcpipe.pipeline import PipelineRunner
from hpcpipe.config_file import load_tool_config
from hpcpipe.config_file import load_data_config
from hpcpipe.config_file import units_from_data
from hpcpipe.config_file import YamlStageProvider

###############################################################################
#                                  Help Text                                  #
###############################################################################

DESC = """\
{doc}

============   ======================================
License        MIT License, use as you wish
Version        {version}
============   ======================================
""".format(doc=__doc__, version=hpcpipe.__version__)

EPILOG = """\
Stages whose outputs already exist and are non-empty are skipped, so a
failed or interrupted run can simply be started again.

With --dry-run every script is written to <out_dir>/logs but nothing is
submitted. With --no-wait the command exits once everything is submitted,
otherwise it blocks until the final job metrics job has finished.
"""

###############################################################################
#                         Catch Keyboard Interruption                         #
###############################################################################


def catch_keyboard(sig, frame):
    """Catch Keyboard Interruption."""
    sys.stderr.write('\nKeyboard Interrupt Detected, Exiting\n')
    sys.exit(1)


###############################################################################
#                               Run the Pipeline                              #
###############################################################################


def run_pipeline(args):
    """Load both configs and run every unit.

    Parameters
    ----------
    args : Namespace
        Command line arguments from argparse

    Returns
    -------
    Cohort
    """
    tool  = load_tool_config(args.tool)
    data  = load_data_config(args.data)
    units = units_from_data(data, tool['unit_level'])

    context = RunContext(
        args.out_dir,
        qtype=args.cluster if args.cluster else tool['cluster'],
        dry_run=args.dry_run,
        no_wait=args.no_wait,
        remove=args.remove,
        ref_build=tool['ref_type'],
        seq_type=tool['seq_type'],
        project=tool['project_name'],
    )
    provider = YamlStageProvider(tool)
    runner = PipelineRunner(
        context, provider,
        pipeline_name=tool['pipeline'],
        aggregate=provider.aggregate if tool['aggregate'] else None,
        prerequisites=provider.prerequisites(context)
        if tool['prepare'] else None,
    )
    return runner.run(units)


###############################################################################
#                               Argument Parsing                              #
###############################################################################


def command_line_parser():
    """Parse command line options.

    Returns:
        argparse parser
    """
    parser = argparse.ArgumentParser(
        description=DESC, epilog=EPILOG,
        formatter_class=hpcpipe.run.CustomFormatter
    )

    files = parser.add_argument_group('Inputs and Outputs')
    files.add_argument('-t', '--tool', metavar='tool.yaml',
                       help='Stage and resource configuration')
    files.add_argument('-d', '--data', metavar='data.yaml',
                       help='Patients, samples and their input files')
    files.add_argument('-o', '--out_dir', metavar='DIR',
                       help='Output directory')

    run_opts = parser.add_argument_group('Run Options')
    run_opts.add_argument('-c', '--cluster', choices=['slurm', 'torque'],
                          help='Batch system, default from the config file')
    run_opts.add_argument('--remove', action='store_true',
                          help='Remove intermediates once final outputs exist')
    run_opts.add_argument('--dry-run', '--dry_run', dest='dry_run',
                          action='store_true',
                          help='Write scripts but do not submit them')
    run_opts.add_argument('--no-wait', '--no_wait', dest='no_wait',
                          action='store_true',
                          help='Do not wait for the jobs to finish')

    parser.add_argument('-v', '--verbose', action='store_true',
                        help='Show debug outputs')
    parser.add_argument('-V', '--version', action='store_true',
                        help='Print version string')
    return parser


###############################################################################
#                                Main Function                                #
###############################################################################


def main(argv=None):
    """Parse command line options to run as a script."""
    if argv is None:
        argv = sys.argv[1:]

    parser = command_line_parser()

    args = parser.parse_args(argv)

    if args.version:
        print(hpcpipe.__version__)
        return 0

    missing = [flag for flag, val in [('-t/--tool', args.tool),
                                      ('-d/--data', args.data),
                                      ('-o/--out_dir', args.out_dir)]
               if not val]
    if missing:
        parser.error('the following arguments are required: {}'
                     .format(', '.join(missing)))

    if args.verbose:
        hpcpipe.logme.MIN_LEVEL = 'debug'

    signal.signal(signal.SIGINT, catch_keyboard)

    try:
        run_pipeline(args)
    except (hpcpipe.ClusterError, OSError) as err:
        hpcpipe.logme.log(str(err), 'critical')
        return 1
    return 0


if __name__ == '__main__':
    sys.exit(main())
