"""
The scpanel CLI.

Commands:
- add, remove, change-path, list: manage the script catalog
- run: run a single script
- link, unlink, clear-workflow, preview, settings: edit the workflow
- run-workflow: run the workflow in dependency order
- preset: save, load, delete and list workflow presets
"""

from __future__ import annotations

from scpanel.cli import preset_cmd, scripts_cmd, workflow_cmd
from scpanel.cli.app import app

__all__ = ["app", "preset_cmd", "scripts_cmd", "workflow_cmd"]
