#!/usr/bin/env python3
from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(ROOT))

from sortyx.sensors.readings import calculate_fill_level


def prompt_float(label: str) -> float:
    while True:
        raw = input(f"{label}: ").strip()
        try:
            value = float(raw)
            if value <= 0:
                raise ValueError
            return value
        except ValueError:
            print("Please enter a positive number.")


def main() -> None:
    print("Smart Bin Calibration")
    print("Read the sensor distance with the bin emptied, then optionally with a known fill.")

    bin_height = round(prompt_float("Distance reported by the sensor with an empty bin (cm)"), 1)

    raw = input("Distance at a known fill level, blank to skip (cm): ").strip()
    if raw:
        try:
            probe = float(raw)
        except ValueError:
            print("Not a number, skipping check.")
        else:
            print(f"  That reading reports {calculate_fill_level(probe, bin_height)}% full with this height.")

    print("\nSuggested bin settings:")
    print(f"  bin_height: {bin_height:.1f}")
    print("\nSet this value on the SmartBin, compartment or SingleBin (PUT /api/smartbins/{id}).")


if __name__ == "__main__":
    main()
