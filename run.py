"""CLI entrypoint."""
from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional, Tuple

from dotenv import load_dotenv

from civic_locator import config
from civic_locator.engine import LocatorEngine, build_engine
from civic_locator.errors import NearbyFetchError
from civic_locator.geo import parse_coordinate_pair
from civic_locator.models import Candidate, MergeResult


def _repo_root() -> Path:
    return Path(__file__).resolve().parent


def load_env(path: str = ".env", root_dir: Optional[Path] = None) -> None:
    """Optionally load a repo-root .env file without overriding real env vars."""
    root = Path(root_dir) if root_dir else _repo_root()
    env_path = (root / path).resolve()
    if not env_path.exists():
        return
    load_dotenv(dotenv_path=env_path, override=False)


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Resolve Bengaluru locations from text or coordinates")
    group = parser.add_mutually_exclusive_group()
    group.add_argument("--preflight", action="store_true", help="Run offline checks only")
    group.add_argument(
        "--preflight-online",
        action="store_true",
        help="Run offline checks + one cheap geocoder call",
    )
    group.add_argument("--search", type=str, default=None, help="Search text (runs immediately)")
    group.add_argument("--nearby", type=str, default=None, help='Nearby features around "LAT,LNG"')
    group.add_argument("--recent", action="store_true", help="List recent locations")
    group.add_argument("--clear-recent", action="store_true", help="Forget recent locations")
    parser.add_argument(
        "--select",
        type=int,
        default=None,
        help="With --search: commit the Nth suggestion (1-based) and record it as recent",
    )
    parser.add_argument("--radius", type=int, default=None, help="Nearby radius in metres (default from config)")
    parser.add_argument("--limit", type=int, default=None, help="Max nearby features (default from config)")
    parser.add_argument("--state-path", type=str, default=config.STATE_PATH)
    parser.add_argument("--config", type=str, default=None, help="Path to locator_config.json")
    parser.add_argument("--verbose", action="store_true")
    return parser.parse_args(argv)


def format_candidate(candidate: Candidate) -> str:
    extra = candidate.category or candidate.locality or ""
    suffix = f" [{extra}]" if extra else ""
    return f"{candidate.name} ({candidate.lat:.5f}, {candidate.lng:.5f}){suffix}"


def print_payload(payload: MergeResult) -> None:
    if payload.empty_state is not None:
        print(payload.empty_state.hint)
    index = 0
    for section in payload.sections:
        print(f"{section.title}:")
        for candidate in section.candidates:
            index += 1
            print(f"  {index}. {format_candidate(candidate)}")
    print(f"- {payload.affordance.label}")


async def run_search(engine: LocatorEngine, text: str, select: Optional[int]) -> int:
    session = engine.session
    session.text = text
    payload = await engine.dispatcher.search_now(text)
    if session.status is not None:
        print(session.status.message, file=sys.stderr)
        return 1
    if payload is None:
        print("No results", file=sys.stderr)
        return 1
    print_payload(payload)
    if select is None:
        return 0

    items = payload.selectable()
    if not 1 <= select <= len(items):
        print(f"--select must be between 1 and {len(items)}", file=sys.stderr)
        return 1
    if not await session.click_item(select - 1):
        print("That place cannot be selected", file=sys.stderr)
        return 1
    print(f"Selected: {format_candidate(items[select - 1])}")
    if session.status is not None:
        print(session.status.message, file=sys.stderr)
    for candidate in session.nearby_features:
        print(f"  near: {format_candidate(candidate)}")
    return 0


async def run_nearby(engine: LocatorEngine, point: Tuple[float, float], radius: int, limit: int) -> int:
    lat, lng = point
    try:
        features = await engine.nearby_index.fetch(lat, lng, radius=radius, limit=limit)
    except NearbyFetchError as exc:
        print(f"Nearby fetch failed (status={exc.status}): {exc}", file=sys.stderr)
        return 1
    if not features:
        print("No nearby features")
    for candidate in features:
        print(format_candidate(candidate))
    return 0


def run_preflight(online: bool, state_path: str) -> int:
    ok = True
    if os.environ.get("NOMINATIM_USER_AGENT"):
        print("NOMINATIM_USER_AGENT: OK")
    else:
        print("NOMINATIM_USER_AGENT: MISSING (fallback UA will be used)")

    west, north, east, south = config.SERVICE_AREA_VIEWBOX
    if west < east and south < north:
        print(f"Service area: OK ({config.SERVICE_AREA_NAME}, {config.SERVICE_AREA_VIEWBOX})")
    else:
        print(f"Service area: FAIL (bad viewbox {config.SERVICE_AREA_VIEWBOX})")
        ok = False

    state_dir = Path(state_path).resolve().parent
    if os.access(state_dir, os.W_OK):
        print(f"State path: OK ({state_path})")
    else:
        print(f"State path: FAIL ({state_dir} not writable)")
        ok = False

    if online:
        try:
            engine = build_engine(state_path=None)
            payload = asyncio.run(engine.dispatcher.search_now("MG Road"))
            if payload is None:
                print("Online geocoder call: FAIL")
                ok = False
            else:
                print("Online geocoder call: OK")
        except Exception as exc:
            print(f"Online geocoder call: FAIL ({exc})")
            ok = False

    print("Preflight: PASS" if ok else "Preflight: FAIL")
    return 0 if ok else 1


def main(argv: Optional[List[str]] = None) -> int:
    load_env()
    args = parse_args(argv)
    config.load_locator_config(args.config)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    if args.preflight or args.preflight_online:
        return run_preflight(online=args.preflight_online, state_path=args.state_path)

    radius = args.radius if args.radius is not None else config.NEARBY_DEFAULT_RADIUS_M
    limit = args.limit if args.limit is not None else config.NEARBY_DEFAULT_LIMIT

    engine = build_engine(state_path=args.state_path)
    engine.session.nearby_radius = radius
    engine.session.nearby_limit = limit

    if args.recent:
        entries = engine.recency.list()
        if not entries:
            print("No recent locations")
        for entry in entries:
            print(f"{entry.name} ({entry.lat:.5f}, {entry.lng:.5f}) {entry.timestamp}")
        return 0

    if args.clear_recent:
        engine.recency.clear()
        print("Recent locations cleared")
        return 0

    if args.nearby:
        point = parse_coordinate_pair(args.nearby)
        if point is None:
            print(f'--nearby expects "LAT,LNG", got {args.nearby!r}', file=sys.stderr)
            return 1
        return asyncio.run(run_nearby(engine, point, radius, limit))

    if args.search:
        if len(args.search.strip()) < config.MIN_QUERY_LENGTH:
            print(f"Search text must be at least {config.MIN_QUERY_LENGTH} characters", file=sys.stderr)
            return 1
        return asyncio.run(run_search(engine, args.search, args.select))

    print("Nothing to do; see --help", file=sys.stderr)
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
