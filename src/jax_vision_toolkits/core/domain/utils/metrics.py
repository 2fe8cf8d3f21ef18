from __future__ import annotations

from typing import Any

import numpy as np


def roc_auc_score_binary(y_true: np.ndarray, y_score: np.ndarray) -> float:
    """Compute ROC AUC for binary labels without sklearn.

    Args:
        y_true: shape (n,), values in {0,1}
        y_score: shape (n,), higher means more likely positive

    Returns:
        AUC in [0,1]. If the metric is undefined (all positives or all negatives), returns NaN.
    """

    y_true = np.asarray(y_true).astype(np.int32)
    y_score = np.asarray(y_score).astype(np.float64)

    pos = (y_true == 1)
    neg = (y_true == 0)
    n_pos = int(pos.sum())
    n_neg = int(neg.sum())
    if n_pos == 0 or n_neg == 0:
        return float("nan")

    # Rank scores; handle ties by average rank.
    order = np.argsort(y_score)
    ranks = np.empty_like(order, dtype=np.float64)
    ranks[order] = np.arange(1, len(y_score) + 1, dtype=np.float64)

    # Average ranks for ties
    sorted_scores = y_score[order]
    i = 0
    while i < len(sorted_scores):
        j = i
        while j + 1 < len(sorted_scores) and sorted_scores[j + 1] == sorted_scores[i]:
            j += 1
        if j > i:
            avg = (i + 1 + j + 1) / 2.0
            ranks[order[i : j + 1]] = avg
        i = j + 1

    sum_pos_ranks = float(ranks[pos].sum())
    # Mann–Whitney U statistic
    u = sum_pos_ranks - (n_pos * (n_pos + 1)) / 2.0
    auc = u / (n_pos * n_neg)
    return float(auc)


def confusion_matrix(y_true: np.ndarray, y_pred: np.ndarray, num_classes: int) -> np.ndarray:
    """Counts with rows = target index, columns = predicted index."""

    cm = np.zeros((num_classes, num_classes), dtype=np.int64)
    np.add.at(cm, (np.asarray(y_true, dtype=np.int64), np.asarray(y_pred, dtype=np.int64)), 1)
    return cm


def compute_classifier_metrics(
    y_true: np.ndarray,
    probabilities: np.ndarray,
    classes: list[str] | tuple[str, ...],
) -> dict[str, Any]:
    """Classification report over class indices.

    Precision/recall/F1 are macro-averaged over classes that appear in the
    targets or the predictions; a class with no predicted samples contributes
    a precision of 0.

    Args:
        y_true: shape (n,), class indices
        probabilities: shape (n, num_classes)
        classes: labels, position = class index
    """

    y_true = np.asarray(y_true).astype(np.int64).reshape(-1)
    probabilities = np.asarray(probabilities, dtype=np.float64)
    num_classes = len(classes)
    y_pred = np.argmax(probabilities, axis=-1)

    cm = confusion_matrix(y_true, y_pred, num_classes)
    tp = np.diag(cm).astype(np.float64)
    predicted = cm.sum(axis=0).astype(np.float64)
    actual = cm.sum(axis=1).astype(np.float64)
    present = (predicted + actual) > 0

    with np.errstate(divide="ignore", invalid="ignore"):
        precision = np.where(predicted > 0, tp / predicted, 0.0)
        recall = np.where(actual > 0, tp / actual, 0.0)
        f1 = np.where(precision + recall > 0, 2 * precision * recall / (precision + recall), 0.0)

    report: dict[str, Any] = {
        "accuracy": float(tp.sum() / max(1, len(y_true))),
        "precision": float(precision[present].mean()) if present.any() else 0.0,
        "recall": float(recall[present].mean()) if present.any() else 0.0,
        "f1_score": float(f1[present].mean()) if present.any() else 0.0,
        "confusion_matrix": [
            {
                "target_label": classes[i],
                "predicted_label": classes[j],
                "count": int(cm[i, j]),
            }
            for i in range(num_classes)
            for j in range(num_classes)
            if cm[i, j] > 0
        ],
    }
    if num_classes == 2:
        report["auc"] = roc_auc_score_binary(y_true, probabilities[:, 1])
    return report
