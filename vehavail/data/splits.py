from typing import Optional, Sequence, Tuple

import numpy as np
from sklearn.model_selection import ShuffleSplit, StratifiedShuffleSplit


def make_household_split(
    household_ids: Sequence,
    test_size: float,
    seed: int,
    stratify: Optional[Sequence] = None,
) -> Tuple[np.ndarray, np.ndarray]:
    """Partition household ids into disjoint (train_ids, test_ids).

    Households are sampled by id, so every record of a household lands on the
    same side. Passing outcome labels in `stratify` keeps class shares equal
    across the two sides.
    """

    ids = np.asarray(household_ids)
    if not 0.0 < float(test_size) < 1.0:
        raise ValueError(f"test_size must be in (0, 1); got {test_size}")
    if np.unique(ids).size != ids.size:
        raise ValueError("household_ids must be unique.")

    if stratify is None:
        splitter = ShuffleSplit(n_splits=1, test_size=test_size, random_state=seed)
        train_pos, test_pos = next(splitter.split(ids))
    else:
        labels = np.asarray(stratify)
        if labels.shape[0] != ids.shape[0]:
            raise ValueError("stratify must have one label per household id.")
        splitter = StratifiedShuffleSplit(n_splits=1, test_size=test_size, random_state=seed)
        train_pos, test_pos = next(splitter.split(ids, labels))

    return np.sort(ids[train_pos]), np.sort(ids[test_pos])
