#!/usr/bin/env python3
import os
import json
import sys

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from RadarCast.core import RadarCastEngine


def shape_of(value):
    """Nested-list shape of a JSON array, e.g. [6, 64, 64, 1]."""
    dims = []
    while isinstance(value, list):
        dims.append(len(value))
        value = value[0] if value else None
    return dims


def summarize_bundle(bundle):
    """Copy of a bundle with grids replaced by their shapes."""
    summary = {}
    for key, value in bundle.items():
        if key == "frames":
            summary[key] = [
                {k: (f"<array {shape_of(v)}>" if k == "data" else v) for k, v in frame.items()}
                for frame in value[:1]
            ] + ([f"... {len(value) - 1} more"] if len(value) > 1 else [])
        elif key == "prediction_frames":
            summary[key] = f"<array {shape_of(value)}>"
        else:
            summary[key] = value
    return summary


def verify_export(site_id="KAMX", hours_back=1):
    # 1. Generate bundles for a registered site
    engine = RadarCastEngine()
    result = engine.generate_for_site_id(site_id, hours_back)

    # 2. Round-trip through JSON
    historical = json.loads(json.dumps(result.historical))
    prediction = json.loads(json.dumps(result.prediction))

    # 3. Check the array shapes consumers rely on
    assert shape_of(historical["frames"][0]["data"]) == [64, 64]
    assert shape_of(prediction["prediction_frames"]) == [len(result.predictions), 64, 64, 1]

    # 4. Print to verify
    print("Historical bundle:")
    print(json.dumps(summarize_bundle(historical), indent=2))
    print("\nPrediction bundle:")
    print(json.dumps(summarize_bundle(prediction), indent=2))


if __name__ == "__main__":
    verify_export(*sys.argv[1:2])
