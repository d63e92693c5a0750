"""
Worker Pool
===========
Thin joblib wrapper used by every parallel phase.

The call returns only after every task finished, so it doubles as the
join point between stages.
"""

import logging
from typing import Any, Iterable, List

from joblib import Parallel

logger = logging.getLogger(__name__)


def run_tasks(tasks: Iterable, n_jobs: int = 1, backend: str = "threading") -> List[Any]:
    """
    Run ``joblib.delayed`` tasks and return their results in submission order.

    Args:
        tasks: Iterable of delayed calls
        n_jobs: Worker count (-1 = all cores, 1 = run inline)
        backend: joblib backend; threading by default since candidate
            fitting procedures may close over un-picklable objects

    Returns:
        List of task results
    """
    tasks = list(tasks)
    if not tasks:
        return []

    if n_jobs == 1:
        backend = "sequential"

    logger.debug(f"Running {len(tasks)} tasks (n_jobs={n_jobs}, backend={backend})")
    return Parallel(n_jobs=n_jobs, backend=backend)(tasks)
