"""
Side-by-side comparison of several battens.

Each row holds the net deflections and the four metrics of one batten,
so battens can be ranked or exported as CSV.
"""

import logging
from dataclasses import asdict

import pandas as pd

from .calculator import calculate, net_deflections
from .profiles import ProfileStore

logger = logging.getLogger(__name__)

COMPARISON_COLUMNS = [
    "net_14",
    "net_12",
    "net_34",
    "front_percent",
    "back_percent",
    "camber_percent",
    "average_ei",
]


def compare_measurements(named) -> pd.DataFrame:
    """
    Build the comparison table.

    Args:
        named: iterable of (name, Measurement) pairs

    Returns:
        DataFrame indexed by name with COMPARISON_COLUMNS
    """
    rows = []
    names = []
    for name, measurement in named:
        measurement = measurement.normalized()
        row = asdict(net_deflections(measurement))
        row.update(calculate(measurement).to_dict())
        rows.append(row)
        names.append(name)

    df = pd.DataFrame(rows, index=pd.Index(names, name="name"), columns=COMPARISON_COLUMNS)
    return df.astype(float)


def compare_profiles(store: ProfileStore, query: str = "") -> pd.DataFrame:
    """Comparison table of the saved profiles matching ``query``, newest first."""
    named = []
    for meta in store.search(query):
        profile = store.load(meta.id)
        if profile is not None:
            named.append((profile.name, profile.data))
    logger.info(f"Comparing {len(named)} profiles")
    return compare_measurements(named)
