"""Custom script registry and executor."""

from .executor import ScriptExecutor, ScriptRun
from .registry import ScriptRegistry, load_script_definitions, script_from_row, script_to_row

__all__ = [
    "ScriptExecutor",
    "ScriptRun",
    "ScriptRegistry",
    "load_script_definitions",
    "script_from_row",
    "script_to_row",
]
