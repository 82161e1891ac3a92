"""
Evaluation Module for the stairs vs. elevator analysis
Classification and ranking metrics, confusion matrix and metric tables.
"""

import pandas as pd
import numpy as np
from sklearn.metrics import (
    roc_auc_score, average_precision_score, accuracy_score,
    precision_score, recall_score, f1_score, balanced_accuracy_score,
    brier_score_loss, log_loss, confusion_matrix, roc_curve,
)

from stairchoice.config import DATASET


def compute_ece(y_true, y_prob, n_bins=10):
    """
    Compute Expected Calibration Error (ECE) with equal-width bins.

    Args:
        y_true: True labels
        y_prob: Predicted probabilities
        n_bins: Number of calibration bins

    Returns:
        ECE value
    """
    y_true = np.asarray(y_true, dtype=float)
    y_prob = np.asarray(y_prob, dtype=float)
    n = len(y_true)
    if n == 0:
        return np.nan

    bin_edges = np.linspace(0, 1, n_bins + 1)
    ece = 0.0

    for i in range(n_bins):
        bin_mask = (y_prob >= bin_edges[i]) & (y_prob < bin_edges[i + 1])
        if i == n_bins - 1:
            bin_mask = (y_prob >= bin_edges[i]) & (y_prob <= bin_edges[i + 1])

        if bin_mask.sum() > 0:
            mean_conf = y_prob[bin_mask].mean()
            mean_acc = y_true[bin_mask].mean()
            ece += (bin_mask.sum() / n) * abs(mean_acc - mean_conf)

    return ece


def find_optimal_threshold_youden(y_true, y_prob):
    """
    Find optimal threshold using Youden's J statistic (TPR - FPR).

    Returns:
        optimal_threshold, youden_j_value
    """
    fpr, tpr, thresholds = roc_curve(y_true, y_prob)
    youden_j = tpr - fpr
    optimal_idx = np.argmax(youden_j)

    return float(min(thresholds[optimal_idx], 1.0)), float(youden_j[optimal_idx])


def specificity_score(y_true, y_pred):
    """True-negative rate (elevator choices predicted as elevator)."""
    tn, fp, _, _ = confusion_matrix(y_true, y_pred, labels=[0, 1]).ravel()
    return tn / (tn + fp) if (tn + fp) > 0 else 0.0


def compute_all_metrics(y_true, y_prob, y_pred):
    """
    Compute classification and ranking metrics for the stairs class.

    Ranking metrics (ROC AUC, PR AUC) are NaN when y_true holds one class.

    Returns:
        Dict with all metrics
    """
    y_true = np.asarray(y_true).astype(int)
    y_prob = np.asarray(y_prob, dtype=float)
    y_pred = np.asarray(y_pred).astype(int)
    both_classes = len(np.unique(y_true)) == 2

    return {
        'roc_auc': roc_auc_score(y_true, y_prob) if both_classes else np.nan,
        'pr_auc': average_precision_score(y_true, y_prob) if both_classes else np.nan,
        'accuracy': accuracy_score(y_true, y_pred),
        'precision': precision_score(y_true, y_pred, zero_division=0),
        'sensitivity': recall_score(y_true, y_pred, zero_division=0),
        'specificity': specificity_score(y_true, y_pred),
        'f1': f1_score(y_true, y_pred, zero_division=0),
        'balanced_accuracy': balanced_accuracy_score(y_true, y_pred) if both_classes else np.nan,
        'brier': brier_score_loss(y_true, y_prob),
        'log_loss': log_loss(y_true, np.clip(y_prob, 1e-15, 1 - 1e-15), labels=[0, 1]),
        'ece': compute_ece(y_true, y_prob, n_bins=10),
    }


def confusion_table(y_true, y_pred) -> pd.DataFrame:
    """Labelled 2x2 confusion matrix: truth in rows, prediction in columns."""
    labels = [DATASET.POSITIVE_CLASS, DATASET.NEGATIVE_CLASS]
    cm = confusion_matrix(np.asarray(y_true).astype(int),
                          np.asarray(y_pred).astype(int), labels=[1, 0])
    return pd.DataFrame(
        cm,
        index=pd.Index(labels, name="truth"),
        columns=pd.Index(labels, name="prediction"),
    )


def metric_table(metrics: dict, keys: list[str] | None = None) -> pd.DataFrame:
    """Tidy metric/estimate table for console output."""
    if keys is None:
        keys = [
            'roc_auc', 'pr_auc', 'accuracy', 'balanced_accuracy', 'sensitivity',
            'specificity', 'precision', 'f1', 'brier', 'log_loss', 'ece',
        ]
    rows = [{'metric': k, 'estimate': float(metrics[k])} for k in keys if k in metrics]
    return pd.DataFrame(rows)
