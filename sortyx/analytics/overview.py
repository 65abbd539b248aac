from __future__ import annotations

from collections import Counter
from typing import Any

import numpy as np

SEVERITIES = ("critical", "high", "medium", "info")


def _fill_values(entities: list[dict[str, Any]]) -> list[float]:
    values: list[float] = []
    for item in entities:
        fill = item.get("current_fill")
        if fill is None or isinstance(fill, bool):
            continue
        values.append(float(fill))
    return values


def fill_statistics(entities: list[dict[str, Any]]) -> dict[str, float | None]:
    values = _fill_values(entities)
    if not values:
        return {"mean": None, "max": None, "p90": None}

    array = np.asarray(values, dtype=float)
    return {
        "mean": round(float(array.mean()), 2),
        "max": round(float(array.max()), 2),
        "p90": round(float(np.percentile(array, 90)), 2),
    }


def count_over_threshold(entities: list[dict[str, Any]], default_threshold: float) -> int:
    total = 0
    for item in entities:
        fill = item.get("current_fill")
        if fill is None:
            continue
        threshold = item.get("fill_threshold")
        if float(fill) >= float(threshold if threshold is not None else default_threshold):
            total += 1
    return total


def build_overview(
    *,
    smart_bins: list[dict[str, Any]],
    single_bins: list[dict[str, Any]],
    compartments: list[dict[str, Any]],
    alerts: list[dict[str, Any]],
    default_fill_threshold: float = 80.0,
) -> dict[str, Any]:
    """Dashboard summary: counts, fill distribution, open alerts by severity."""
    bins = smart_bins + single_bins
    statuses = Counter(str(item.get("status", "active")) for item in bins)

    # compartments carry the fill for smart bins; single bins carry their own
    sensored = compartments + single_bins
    open_alerts = [item for item in alerts if not item.get("acknowledged")]
    by_severity = Counter(str(item.get("severity")) for item in open_alerts)

    return {
        "smart_bins": len(smart_bins),
        "single_bins": len(single_bins),
        "compartments": len(compartments),
        "active_bins": statuses.get("active", 0),
        "maintenance_bins": statuses.get("maintenance", 0),
        "inactive_bins": statuses.get("inactive", 0),
        "fill": fill_statistics(sensored),
        "needs_collection": count_over_threshold(sensored, default_fill_threshold),
        "open_alerts": len(open_alerts),
        "open_alerts_by_severity": {severity: by_severity.get(severity, 0) for severity in SEVERITIES},
    }
