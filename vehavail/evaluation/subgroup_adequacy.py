from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np


@dataclass(frozen=True)
class SubgroupAdequacy:
    n: int
    n_levels_observed: int
    min_level_n: int
    adequate: bool
    reason: str


def evaluate_subgroup_adequacy(
    y_true,
    levels: Sequence[str],
    *,
    min_group_n: int,
    min_levels_observed: int = 2,
) -> SubgroupAdequacy:
    """Decide whether a subgroup is large enough to report an error rate for."""

    y = np.asarray(y_true, dtype=object)
    n = int(y.size)
    counts = [int(np.sum(y == lvl)) for lvl in levels]
    n_levels_observed = int(sum(c > 0 for c in counts))
    min_level_n = int(min((c for c in counts if c > 0), default=0))

    reasons = []
    if n < int(min_group_n):
        reasons.append(f"n<{int(min_group_n)}")
    if n_levels_observed < int(min_levels_observed):
        reasons.append(f"levels_observed<{int(min_levels_observed)}")

    return SubgroupAdequacy(
        n=n,
        n_levels_observed=n_levels_observed,
        min_level_n=min_level_n,
        adequate=(len(reasons) == 0),
        reason=";".join(reasons),
    )
