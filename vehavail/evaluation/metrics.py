from typing import Dict, Sequence

import numpy as np
import pandas as pd
from sklearn.metrics import accuracy_score, balanced_accuracy_score, confusion_matrix, f1_score, log_loss, recall_score


def predict_class(proba: pd.DataFrame) -> pd.Series:
    """Arg-max label per row; ties go to the first column."""
    cols = np.asarray(proba.columns)
    idx = np.argmax(proba.to_numpy(dtype=float), axis=1)
    return pd.Series(cols[idx], index=proba.index, name="y_pred")


def confusion_matrix_df(y_true, y_pred, levels: Sequence[str]) -> pd.DataFrame:
    """Rows are actual levels, columns predicted levels; every level appears."""
    levels = list(levels)
    cm = confusion_matrix(np.asarray(y_true, dtype=object), np.asarray(y_pred, dtype=object), labels=levels)
    return pd.DataFrame(
        cm,
        index=pd.Index(levels, name="actual"),
        columns=pd.Index(levels, name="predicted"),
    )


def compute_multiclass_metrics(y_true, proba: pd.DataFrame, levels: Sequence[str]) -> Dict[str, float]:
    levels = list(levels)
    y_true = np.asarray(y_true, dtype=object)
    y_pred = predict_class(proba[levels]).to_numpy(dtype=object)
    # log_loss expects probability columns in sorted label order.
    sorted_levels = sorted(levels)
    p = np.clip(proba[sorted_levels].to_numpy(dtype=float), 1e-12, 1.0)
    p = p / p.sum(axis=1, keepdims=True)

    out = {
        "accuracy": float(accuracy_score(y_true, y_pred)),
        "balanced_accuracy": float(balanced_accuracy_score(y_true, y_pred)),
        "macro_f1": float(f1_score(y_true, y_pred, labels=levels, average="macro", zero_division=0)),
        "log_loss": float(log_loss(y_true, p, labels=sorted_levels)),
    }
    recalls = recall_score(y_true, y_pred, labels=levels, average=None, zero_division=0)
    for level, r in zip(levels, recalls):
        out[f"recall_{level}"] = float(r)
    return out
