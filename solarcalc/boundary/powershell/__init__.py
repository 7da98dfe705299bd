"""PowerShell process execution."""

from solarcalc.boundary.powershell.runner import PowerShellRunner, ScriptResult

__all__ = ["PowerShellRunner", "ScriptResult"]
