# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#                              ᚺᚢᚷᛁᚾᚾ • COMMANDS
#                 Command bodies, one module per CLI command
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━
#
#   cli.py only parses flags; the work happens in these run_* functions,
#   which load a snapshot, build the graph and print the answer.
#
# ━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━━

from accessmap.commands.can_access import run_can_access
from accessmap.commands.path import run_path
from accessmap.commands.report import run_report
from accessmap.commands.simulate import run_simulate_diff, run_simulate_test, run_simulate_validate
from accessmap.commands.who_can import run_who_can

__all__ = [
    'run_can_access',
    'run_path',
    'run_report',
    'run_simulate_diff',
    'run_simulate_test',
    'run_simulate_validate',
    'run_who_can',
]
