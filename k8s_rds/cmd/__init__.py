"""
This module holds all of the command classes for the k8s_rds entrypoint
"""

# Local
from .base import CmdBase
from .run_operator_cmd import RunOperatorCmd
