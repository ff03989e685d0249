#!/usr/bin/env python
"""
Run the SMI engine on arrays stored in an .npz archive.

The archive must hold ``mask`` and either ``sm_kde`` + ``sm_eval`` or an
external ``smi`` field; ``basin_ids`` is optional. Periods, thresholds and
switches come from a YAML configuration (see SmiConfig).
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import numpy as np

from smi.core.config import SmiConfig
from smi.core.exceptions import SmiError
from smi.pipeline import SmiInputs, SmiPipeline

logging.basicConfig(level=logging.INFO,
                    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s")
logger = logging.getLogger("run_smi")


def load_inputs(path: Path) -> SmiInputs:
    with np.load(path) as data:
        arrays = {key: np.asarray(data[key]) for key in data.files}
    if "mask" not in arrays:
        raise SystemExit(f"{path} must contain a 'mask' array")
    return SmiInputs(
        mask=arrays["mask"],
        sm_kde=arrays.get("sm_kde"),
        sm_eval=arrays.get("sm_eval"),
        smi=arrays.get("smi"),
        basin_ids=arrays.get("basin_ids"),
    )


def write_outputs(result, out_dir: Path) -> None:
    out_dir.mkdir(parents=True, exist_ok=True)
    fields = {
        name: value for name, value in (
            ("smi", result.smi),
            ("sm_invert", result.sm_invert),
            ("indicator", result.indicator),
            ("cluster_ids", result.cluster_ids),
        ) if value is not None
    }
    np.savez_compressed(out_dir / "smi_fields.npz", **fields)
    if result.bandwidth is not None:
        result.bandwidth.save(out_dir / "bandwidth.npz")
    if result.event_stats is not None:
        result.event_stats.to_csv(out_dir / "event_stats.csv", index=False)
        result.event_evolution.to_csv(out_dir / "event_evolution.csv", index=False)
    for duration, sad in result.sad.items():
        sad.table.to_csv(out_dir / f"sad_d{duration:02d}.csv")
        sad.percentiles.to_csv(out_dir / f"sad_percentiles_d{duration:02d}.csv")
    if result.basin_smi is not None:
        result.basin_smi.to_csv(out_dir / "basin_smi.csv")


def main(argv: list[str]) -> int:
    parser = argparse.ArgumentParser(
        description="Soil moisture index and drought cluster analysis")
    parser.add_argument("--config", required=True, help="YAML run configuration")
    parser.add_argument("--inputs", required=True, help=".npz archive with input arrays")
    parser.add_argument("--out", default=None, help="Output directory (overrides config)")
    parser.add_argument("--workers", type=int, default=None, help="Thread pool size")
    args = parser.parse_args(argv)

    try:
        config = SmiConfig.from_yaml(args.config)
        if args.workers:
            config.estimation.n_workers = args.workers
        result = SmiPipeline(config).run(load_inputs(Path(args.inputs)))
    except SmiError as e:
        logger.error(str(e))
        return 1

    out_dir = Path(args.out) if args.out else config.output_dir
    write_outputs(result, out_dir)
    logger.info(f"Results written to {out_dir}")
    print(result.summary())

    return 0 if result.succeeded else 1


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
