#!/usr/bin/env python3
import os
import sys
import argparse
import logging

import numpy as np
import matplotlib.pyplot as plt
from matplotlib.colors import Normalize

# Add src to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..', 'src'))

from RadarCast.config import BASELINE_INTENSITY, MAX_INTENSITY
from RadarCast.core import RadarCastEngine, build_coordinate_metadata, get_site


def plot_grid_on_ax(ax, grid, extent, title, cmap='turbo', norm=None):
    """Draw one 64x64 grid with north up in geographic coordinates."""
    ax.set_facecolor('#1a1a1a')
    image = ax.imshow(grid, origin='upper', extent=extent, cmap=cmap, norm=norm, interpolation='nearest')
    ax.set_title(title, color='white', fontsize=10)
    ax.tick_params(colors='gray', labelsize=7)
    ax.grid(True, alpha=0.1, color='gray')
    return image


def create_panel_for_site(site_id, hours_back, output_path):
    engine = RadarCastEngine()
    site = get_site(site_id)
    result = engine.generate(site, hours_back)
    west, east, south, north = build_coordinate_metadata(site).bounds
    extent = [west, east, south, north]

    history = result.frames[-3:]
    steps = [p for p in result.predictions if p.lead_time in (20, 40, 60)]
    intensity_norm = Normalize(vmin=BASELINE_INTENSITY, vmax=MAX_INTENSITY)

    fig, axes = plt.subplots(3, 3, figsize=(14, 13), dpi=110)
    fig.patch.set_facecolor('#0f0f0f')
    plt.subplots_adjust(hspace=0.3, wspace=0.25, top=0.92, bottom=0.06)
    fig.suptitle(f"RadarCast Nowcast - {site.site_id} ({site.name})", color='white', fontsize=18, fontweight='bold')

    image = None
    for ax, frame in zip(axes[0], history):
        image = plot_grid_on_ax(ax, frame.data, extent, f"Observed {frame.timestamp:%H:%M} UTC", norm=intensity_norm)
    for ax, p in zip(axes[1], steps):
        plot_grid_on_ax(ax, p.data, extent, f"+{p.lead_time:.0f} min (conf {p.confidence:.2f})", norm=intensity_norm)
    spread_image = None
    for ax, p in zip(axes[2], steps):
        spread_image = plot_grid_on_ax(ax, p.ensemble_spread, extent, f"Ensemble spread +{p.lead_time:.0f} min", cmap='magma')

    if image is not None:
        cbar = fig.colorbar(image, ax=axes[:2].ravel().tolist(), shrink=0.6)
        cbar.set_label('Intensity', color='white')
        cbar.ax.tick_params(colors='gray')
    if spread_image is not None:
        cbar = fig.colorbar(spread_image, ax=axes[2].ravel().tolist(), shrink=0.8)
        cbar.set_label('Spread', color='white')
        cbar.ax.tick_params(colors='gray')

    plt.savefig(output_path, facecolor=fig.get_facecolor(), bbox_inches='tight')
    plt.close()
    peak = max(float(np.max(p.data)) for p in result.predictions)
    print(f"Saved {output_path} (peak predicted intensity {peak:.1f})")


def main():
    logging.basicConfig(level=logging.INFO)
    parser = argparse.ArgumentParser(description="Plot observed and predicted radar panels for radar sites.")
    parser.add_argument("--sites", nargs="+", default=["KAMX", "KATX"], help="Registered radar site ids.")
    parser.add_argument("--hours", type=int, default=1, help="Look-back window in hours.")
    parser.add_argument("--output_dir", default="plots", help="Directory for the generated PNG panels.")
    args = parser.parse_args()

    os.makedirs(args.output_dir, exist_ok=True)
    for site_id in args.sites:
        create_panel_for_site(site_id, args.hours, os.path.join(args.output_dir, f"panel_{site_id}.png"))


if __name__ == "__main__":
    main()
