from fundflow.tasks.outreach_stats import (
    reconcile_outreach_recipients,
    refresh_active_outreach_stats,
    refresh_outreach_stats,
)

__all__ = [
    "refresh_outreach_stats",
    "refresh_active_outreach_stats",
    "reconcile_outreach_recipients",
]
