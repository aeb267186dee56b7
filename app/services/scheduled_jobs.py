"""
Skincare Routine Platform
Scheduled jobs.

Jobs:
    - overdue_completion_sweep: marks pending completions whose grace period
      has ended as missed, for every user
"""

from __future__ import annotations

import logging
from typing import Any

from app.services.compliance_service import sweep_all_overdue
from app.services.scheduler_service import register_job

logger = logging.getLogger(__name__)


@register_job("overdue_completion_sweep")
def sweep_overdue_completions(app) -> dict[str, Any]:
    """Mark pending completions past their grace period as missed."""
    marked, err = sweep_all_overdue()
    if err:
        raise RuntimeError(err["error"])
    logger.info("Overdue sweep marked %d completions as missed", marked)
    return {"marked_missed": marked}
