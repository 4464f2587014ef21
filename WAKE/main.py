import sys
import argparse
import logging
from pathlib import Path

from WAKE.config import Config
from WAKE.src.core.charge import ChargeAnalyzer
from WAKE.src.core.errors import WakeError
from WAKE.src.core.momentum import MomentumAnalyzer
from WAKE.src.core.report import save_beamlet_report
from WAKE.src.drivers.data import MockSimulationData, OsirisData, SimulationData

logger = logging.getLogger("WAKE")


def run(data: SimulationData, config: Config, dump: str, species: str, report: bool) -> int:
    charge = ChargeAnalyzer(data, config)
    momentum = MomentumAnalyzer(data, config)
    i_dump = data.string_to_dump(dump)
    unit = charge.scaling.axis_units[0]

    result = charge.beamlets(i_dump, species)
    logger.info("Dump %d, species %s: %d beamlets, total charge %.4g",
                i_dump, species, result.peaks, result.total_charge)
    for i, b in enumerate(result.beamlets):
        logger.info(
            "  #%d  x1 %.3f-%.3f %s  peak %.3f  FWHM %.3f-%.3f  charge %.4g",
            i + 1, b.x1_start, b.x1_stop, unit, b.x1.peak, b.x1.fwhm[0], b.x1.fwhm[1], b.charge,
        )

    energy = momentum.energy(i_dump, species)
    logger.info("Energy: mean %.3f MeV, spread %.2f %%", energy.mean, 100.0 * energy.spread)

    if report:
        save_beamlet_report(result, Path(config.REPORT_DIR), f"beamlets_{species}_{i_dump:06d}", unit)
    return 0


def main():
    parser = argparse.ArgumentParser(description="Beamlet analysis of PIC simulation dumps")
    parser.add_argument("--sim", action="store_true", help="Run on synthetic mock data")
    parser.add_argument("--data", action="store", help="Simulation output directory (overrides config)")
    parser.add_argument("--config", action="store", help="Config JSON file")
    parser.add_argument("--dump", action="store", default="0", help="Dump number, 'start' or 'end'")
    parser.add_argument("--species", action="store", default="electron_beam", help="Beam species name")
    parser.add_argument("--units", action="store", choices=["N", "SI"], help="Unit system")
    parser.add_argument("--report", action="store_true", help="Save CSV table and preview plot")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    config = Config.load(Path(args.config) if args.config else None)
    if args.data:
        config.DATA_PATH = args.data
    if args.units:
        config.UNITS = args.units

    if args.sim:
        data = MockSimulationData()
    else:
        if not config.DATA_PATH:
            parser.error("--data is required unless --sim is given")
        data = OsirisData(config.DATA_PATH)

    try:
        return run(data, config, args.dump, args.species, args.report)
    except WakeError as e:
        logger.error("%s", e)
        return 1
    finally:
        data.close()


if __name__ == "__main__":
    sys.exit(main())
