"""
Deflection chart rendered to PNG for the report.

Plots the self-weight, loaded and net deflection along the span. The ends
of the batten rest on the supports, so every curve is 0 at 0 and at 1.
"""

import io
import logging

import matplotlib

matplotlib.use("Agg")  # non-interactive backend
import matplotlib.pyplot as plt

from .calculator import net_deflections
from .measurement import Measurement

logger = logging.getLogger(__name__)

SPAN_POSITIONS = (0.0, 0.25, 0.5, 0.75, 1.0)
SPAN_LABELS = ("0", "1/4", "1/2", "3/4", "1")

SELF_COLOR = "#6B7280"
LOADED_COLOR = "#0A8A8C"
NET_COLOR = "#A12B2B"


def deflection_profile(measurement: Measurement) -> dict:
    """Deflection (mm) at the span positions, per curve."""
    net = net_deflections(measurement)
    return {
        "self": [0.0, measurement.self_14, measurement.self_12, measurement.self_34, 0.0],
        "weighted": [0.0, measurement.weighted_14, measurement.weighted_12,
                     measurement.weighted_34, 0.0],
        "net": [0.0, net.net_14, net.net_12, net.net_34, 0.0],
    }


def render_deflection_chart(measurement: Measurement, width_px: int = 640,
                            height_px: int = 400, dpi: int = 100) -> bytes:
    """Render the deflection profile chart and return PNG bytes."""
    profile = deflection_profile(measurement)

    fig, ax = plt.subplots(figsize=(width_px / dpi, height_px / dpi), dpi=dpi)

    ax.plot(SPAN_POSITIONS, profile["self"], marker="o", color=SELF_COLOR,
            label="Self weighted")
    ax.plot(SPAN_POSITIONS, profile["weighted"], marker="o", color=LOADED_COLOR,
            label="Weighted")
    ax.plot(SPAN_POSITIONS, profile["net"], marker="s", linestyle="--", color=NET_COLOR,
            label="Net deflection (Δ)")

    # Sag is drawn downwards
    ax.invert_yaxis()
    ax.set_xticks(SPAN_POSITIONS)
    ax.set_xticklabels(SPAN_LABELS)
    ax.set_xlabel(f"Span position (length {measurement.test_length:g} mm)")
    ax.set_ylabel("Deflection (mm)")
    ax.grid(True, alpha=0.3)
    ax.legend(loc="best", fontsize=8)
    fig.tight_layout()

    buffer = io.BytesIO()
    fig.savefig(buffer, format="png", dpi=dpi)
    plt.close(fig)
    logger.debug(f"Rendered deflection chart ({len(buffer.getvalue())} bytes)")
    return buffer.getvalue()
