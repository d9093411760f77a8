"""Action Service: administrator remediation actions.

Actions are created by administrators or seeded automatically when a
location newly crosses the hotspot threshold, and move
pending -> in-progress -> completed.
"""

from .tracker import ActionTracker, parse_action_status

__all__ = [
    "ActionTracker",
    "parse_action_status",
]
