#!/usr/bin/env python3
"""
RadarCast Demo Script

Demonstrates the complete RadarCast pipeline for one radar site:
1. Site and Region Profile
2. Synthetic Radar History
3. Motion Estimation (optical flow)
4. Feature Tracking
5. Multi-Regime Forecast with Ensemble Uncertainty
6. Cached Engine Output
"""

import sys
import os
import argparse
import logging

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from datetime import datetime, timedelta, timezone

import numpy as np

from RadarCast.config import ENGINE_PARAMS, PRECIP_THRESHOLD
from RadarCast.core import RadarCastEngine, get_site, summarize_predictions
from RadarCast.forecast import generate_predictions, regime_confidence, select_regime
from RadarCast.generator import generate_frame_at_time
from RadarCast.optical_flow import analyze_recent_motion
from RadarCast.region import determine_region_profile
from RadarCast.rng import SeededRNG, daily_seed
from RadarCast.tracking import FeatureTracker
from RadarCast.types import GridFrame


def print_section(title: str):
    """Print a formatted section header."""
    print(f"\n{'='*60}")
    print(f"  {title}")
    print('='*60)


def print_grid_stats(name: str, grid: np.ndarray):
    """Print summary statistics of one radar grid."""
    precip = int(np.count_nonzero(grid > PRECIP_THRESHOLD))
    print(f"  {name}: min={grid.min():.1f} max={grid.max():.1f} "
          f"mean={grid.mean():.2f} precip_cells={precip}")


def main(site_id: str = "KAMX", hours_back: int = 1):
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    now = datetime.now(timezone.utc).replace(second=0, microsecond=0)

    print_section(f"RadarCast Demo - {site_id}, {hours_back} h look-back")

    # =========================================================================
    # Step 1: Site and Region Profile
    # =========================================================================
    print_section("Step 1: Site and Region Profile")

    site = get_site(site_id)
    profile = determine_region_profile(site.latitude)
    seed = daily_seed(site.site_id, now.date())

    print(f"  Site: {site.site_id} - {site.name}, {site.location}")
    print(f"  Coordinates: ({site.latitude:.4f}, {site.longitude:.4f})")
    print(f"  Region: {profile.region_type}")
    print(f"    Storm intensity: {profile.storm_intensity[0]:.0f}-{profile.storm_intensity[1]:.0f}")
    print(f"    Speed: {profile.speed_range[0]:.0f}-{profile.speed_range[1]:.0f} km/h, "
          f"direction {profile.direction_range[0]:.0f}-{profile.direction_range[1]:.0f} deg")
    print(f"    Instability: {profile.convective_instability:.1f}, shear: {profile.shear_strength:.1f}")
    print(f"  Daily seed: {seed}")

    # =========================================================================
    # Step 2: Synthetic Radar History
    # =========================================================================
    print_section("Step 2: Synthetic Radar History")

    rng = SeededRNG(seed)
    count = min(hours_back * ENGINE_PARAMS.frames_per_hour, ENGINE_PARAMS.max_history_frames)
    start = now - timedelta(hours=hours_back)
    frames = []
    for k in range(count):
        timestamp = start + (now - start) * k / (count - 1)
        frames.append(GridFrame(timestamp=timestamp, data=generate_frame_at_time(timestamp, rng, profile)))

    print(f"  Generated {len(frames)} frames from {frames[0].timestamp:%H:%M} to {frames[-1].timestamp:%H:%M} UTC")
    for frame in frames[-3:]:
        print_grid_stats(f"{frame.timestamp:%H:%M}", frame.data)

    # =========================================================================
    # Step 3: Motion Estimation
    # =========================================================================
    print_section("Step 3: Motion Estimation")

    recent = frames[-ENGINE_PARAMS.forecast_input_frames:]
    motion = analyze_recent_motion(recent)
    matched = motion.match_confidence > 0
    print(f"  Matched cells: {int(matched.sum())} of {motion.u.size}")
    if matched.any():
        print(f"  Mean motion: u={motion.u[matched].mean():.2f} km/h, v={motion.v[matched].mean():.2f} km/h")
        print(f"  Mean match confidence: {motion.match_confidence[matched].mean():.3f}")

    # =========================================================================
    # Step 4: Feature Tracking
    # =========================================================================
    print_section("Step 4: Feature Tracking")

    features = FeatureTracker().extract_features(recent[-1].data, SeededRNG(seed), recent[-1].timestamp, motion)
    print(f"  {len(features)} features extracted")
    print(f"  {'Structure':<12} {'Stage':<12} {'X (km)':>8} {'Y (km)':>8} {'Size':>7} {'Peak':>6} {'Speed':>7}")
    print("  " + "-"*64)
    for feature in features:
        print(f"  {feature.structure:<12} {feature.stage:<12} {feature.x:>8.1f} {feature.y:>8.1f} "
              f"{feature.size:>7.1f} {feature.max_intensity:>6.1f} {feature.speed:>7.1f}")

    # =========================================================================
    # Step 5: Multi-Regime Forecast
    # =========================================================================
    print_section("Step 5: Multi-Regime Forecast (8 h, hourly)")

    predictions = generate_predictions(recent, 8, 60, profile, rng, longitude=site.longitude)
    print(f"  {'Lead':>6} {'Regime':<9} {'Conf':>6} {'Peak':>7} {'Spread':>7}")
    print("  " + "-"*40)
    for p in predictions:
        print(f"  {p.lead_time:>4.0f} m {p.regime:<9} {p.confidence:>6.3f} "
              f"{p.data.max():>7.1f} {p.ensemble_spread.max():>7.2f}")

    print("\n  Regime boundaries:")
    for lead in (60, 120, 121, 360, 361, 720):
        print(f"    {lead:>4} min: {select_regime(lead):<8} confidence {regime_confidence(lead):.3f}")

    # =========================================================================
    # Step 6: Cached Engine Output
    # =========================================================================
    print_section("Step 6: Cached Engine Output")

    engine = RadarCastEngine()
    result = engine.generate(site, hours_back)
    engine.generate(site, hours_back)
    print(f"  Frames generated: {engine.frames_generated} (second call served from cache)")
    print(f"  Historical bundle: {result.historical['total_frames']} frames, "
          f"{result.historical['time_range']['start']} -> {result.historical['time_range']['end']}")
    for lead, regime, confidence, peak in summarize_predictions(result.predictions):
        print(f"    +{lead:>3.0f} min  {regime:<8} conf={confidence:.3f} peak={peak:.1f}")

    print_section("Demo Complete")


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Walk through the RadarCast pipeline for one site.")
    parser.add_argument("--site", default="KAMX", help="Registered radar site id (KAMX, KATX).")
    parser.add_argument("--hours", type=int, default=1, help="Look-back window in hours.")
    args = parser.parse_args()
    main(args.site, args.hours)
