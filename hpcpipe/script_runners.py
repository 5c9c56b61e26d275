#!/usr/bin/env python
"""
Script templates for stage jobs.
"""

STAGE_RUNNER = """\
#!/bin/bash
{directives}
{modules}
cd {usedir} || exit 1
date +'%y-%m-%d-%H:%M:%S'
echo "Running {name}"
(
set -e -o pipefail
{command}
)
exitcode=$?
echo Done
date +'%y-%m-%d-%H:%M:%S'
if [[ $exitcode != 0 ]]; then
    echo Exited with code: $exitcode >&2
fi
exit $exitcode
"""

MODULE_LOAD = "module load {}"
