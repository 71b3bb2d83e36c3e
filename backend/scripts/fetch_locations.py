"""Run one load cycle and dump the normalized locations.

Usage:
    PYTHONPATH=backend python -m backend.scripts.fetch_locations --output locations.json
    PYTHONPATH=backend python -m backend.scripts.fetch_locations --offline --snapshot map.png

`--offline` skips the Overpass call and loads the bundled dataset directly,
which is handy for refreshing fixtures without network access. With
`--snapshot` the points are also rendered through the map session and
written as a PNG.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from domain.models import ActiveFilterSet, LoadResult, LocationCategory
from services.location_loader import load_locations
from services.map_session import MapViewSession
from services.map_surface import MapContainer
from settings import settings

LOG = logging.getLogger("fetch_locations")


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--output", type=Path, help="Write normalized locations as JSON here")
    parser.add_argument("--snapshot", type=Path, help="Render the map and write a PNG here")
    parser.add_argument("--offline", action="store_true", help="Skip the remote source")
    parser.add_argument(
        "--category",
        action="append",
        choices=[c.value for c in LocationCategory],
        help="Only render these categories (repeatable)",
    )
    parser.add_argument("--width", type=int, default=settings.MAP_WIDTH)
    parser.add_argument("--height", type=int, default=settings.MAP_HEIGHT)
    return parser.parse_args(argv)


def _write_snapshot(result: LoadResult, args: argparse.Namespace) -> int:
    session = MapViewSession(MapContainer(args.width, args.height))
    try:
        if args.category:
            session.set_filters(ActiveFilterSet.of(args.category))
        render_pass = session.apply_load(result)
        session.scheduler.run_until_idle()
        surface = session.renderer.surface
        if surface is None:
            LOG.warning("Map surface unavailable; no snapshot written")
            return 1
        path = surface.save_snapshot(args.snapshot.name, output_dir=args.snapshot.parent)
        LOG.info(
            "Wrote %s (%d markers in %d batches)",
            path,
            surface.marker_count,
            render_pass.batch_count,
        )
        return 0
    finally:
        session.close()


def main(argv: Optional[List[str]] = None) -> int:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")
    args = parse_args(argv)

    result = load_locations(remote_enabled=not args.offline)
    if result is None:
        return 1
    LOG.info("Loaded %d locations from %s", len(result.points), result.source.value)
    for line in result.diagnostics:
        LOG.info("diagnostic: %s", line)

    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(
            json.dumps([p.to_dict() for p in result.points], indent=2, ensure_ascii=False),
            encoding="utf-8",
        )
        LOG.info("Wrote %s", args.output)

    if args.snapshot:
        return _write_snapshot(result, args)
    return 0


if __name__ == "__main__":
    sys.exit(main())
