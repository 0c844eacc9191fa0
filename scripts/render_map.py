#!/usr/bin/env python3
"""
Render one static map to a file, through the same renderer (and caches) as the server.

Examples:
  python scripts/render_map.py --center 40.714728,-73.998672 --zoom 14 --size 512x512 --out map.png
  python scripts/render_map.py --markers "40.702147,-74.015794,ol-marker|40.718217,-73.998284" --out fit.png
  python scripts/render_map.py --center 40.71,-74.0 --zoom 13 --scale 2 --format jpg --no-cache --out big.jpg
"""
from __future__ import annotations

import argparse
import os
import sys
import time
from pathlib import Path
from typing import List, Tuple

# Add the project root to the path
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from common.logging_setup import setup_logging
from staticmap.config import load_settings
from staticmap.params import parse_params
from staticmap.renderer import StaticMapRenderer, cache_key


def build_query(args: argparse.Namespace) -> List[Tuple[str, str]]:
    q: List[Tuple[str, str]] = []
    for name in ("center", "zoom", "size", "maptype", "scale", "format"):
        v = getattr(args, name)
        if v is not None:
            q.append((name, str(v)))
    for m in args.markers or []:
        q.append(("markers", m))
    return q


def main() -> None:
    ap = argparse.ArgumentParser(description="Render a static map image to a file.")
    ap.add_argument("--config", default=None, help="YAML config (default: $STATICMAP_CONFIG or config/staticmap.yaml)")
    ap.add_argument("--center", help="lat,lon")
    ap.add_argument("--zoom", type=int)
    ap.add_argument("--size", help="WxH, e.g. 512x512")
    ap.add_argument("--maptype")
    ap.add_argument("--markers", action="append", help="marker set 'lat,lon[,icon]|...' (repeatable)")
    ap.add_argument("--scale", type=int)
    ap.add_argument("--format")
    ap.add_argument("--no-cache", action="store_true", help="bypass the composed-map cache")
    ap.add_argument("--log-level", default=None)
    ap.add_argument("--out", required=True, help="output image path")
    args = ap.parse_args()

    setup_logging(args.log_level)
    settings = load_settings(args.config)
    if args.no_cache:
        settings = settings.with_overrides(use_map_cache=False)

    renderer = StaticMapRenderer(settings)
    req = parse_params(build_query(args), settings)

    t0 = time.time()
    resp = renderer.show_map(req)
    out = Path(args.out)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(resp.body)

    w, h = req.viewport.output_size
    print(f"Saved {out} ({len(resp.body)} bytes, {w}x{h}, {int((time.time() - t0) * 1000)}ms)")
    print(f"  center={req.viewport.center.lat:.6f},{req.viewport.center.lon:.6f} zoom={req.viewport.zoom}")
    print(f"  key={cache_key(req)}")


if __name__ == "__main__":
    main()
