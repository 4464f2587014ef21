"""CSV and PNG export of beamlet analyses."""

from __future__ import annotations

import csv
import logging
from datetime import datetime
from pathlib import Path
import matplotlib
import matplotlib.pyplot as plt

from WAKE.src.core.types import BeamletAnalysis

matplotlib.use("Agg")

logger = logging.getLogger(__name__)

CSV_HEADER = [
    "Beamlet",
    "X1_Start",
    "X1_Stop",
    "X1_Peak",
    "X1_FWHM_Lower",
    "X1_FWHM_Upper",
    "X1_Mean",
    "X1_Std",
    "X2_Peak",
    "X2_FWHM_Lower",
    "X2_FWHM_Upper",
    "X2_Mean",
    "X2_Std",
    "Radial_Cutoff",
    "Charge",
    "Particles",
]


def beamlet_rows(result: BeamletAnalysis) -> list[list[float]]:
    rows = []
    for i, b in enumerate(result.beamlets):
        rows.append([
            i + 1,
            b.x1_start,
            b.x1_stop,
            b.x1.peak,
            b.x1.fwhm[0],
            b.x1.fwhm[1],
            b.x1.mean,
            b.x1.std,
            b.x2.peak,
            b.x2.fwhm[0],
            b.x2.fwhm[1],
            b.x2.mean,
            b.x2.std,
            b.radial_cutoff,
            b.charge,
            b.particles,
        ])
    return rows


def save_beamlet_report(
    result: BeamletAnalysis, directory: Path, name: str = "beamlets", x1_unit: str = ""
) -> Path:
    """Write the beamlet table and a projection preview. Returns the PNG path."""
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")

    csv_path = directory / f"{name}_{timestamp}.csv"
    with csv_path.open("w", newline="") as f:
        writer = csv.writer(f)
        writer.writerow(CSV_HEADER)
        writer.writerows(beamlet_rows(result))
        writer.writerow([])
        writer.writerow(["Total_Charge", result.total_charge])

    fig, ax = plt.subplots(figsize=(10, 5))
    ax.plot(result.x1_axis, result.projection, "r-", lw=1.0, label="Projection")
    ax.plot(result.x1_axis, result.smooth, "b-", lw=2.0, label="Smoothed")
    for start, stop in result.spans:
        ax.axvspan(result.x1_axis[start], result.x1_axis[stop], color="k", alpha=0.08)
    for b in result.beamlets:
        ax.axvline(b.x1.peak, color="g", ls="--", lw=1.0)
    ax.set_title(f"Beamlets: {result.peaks} found (z = {result.z_pos:.3g} m)")
    ax.set_xlabel(f"x1 [{x1_unit}]" if x1_unit else "x1")
    ax.set_ylabel("Charge density projection")
    ax.grid(True, which="both", linestyle="-", alpha=0.6)
    ax.legend()

    plt.tight_layout()
    plot_path = directory / f"{name}_{timestamp}.png"
    plt.savefig(plot_path)
    plt.close(fig)

    logger.info("Results saved to %s and %s", csv_path.name, plot_path.name)
    return plot_path
