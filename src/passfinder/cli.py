"""
Command-line interface for passfinder.

This module exposes pass prediction, the incremental best-pass search,
the nearby-object scan and magnitude estimates from the command line.
"""

from dataclasses import replace
from datetime import datetime
from pathlib import Path
from typing import List, Optional
import json
import logging

import click

from .calendar import export_ics, ics_filename
from .config import load_config
from .magnitude import StandardMagnitudeCatalog, estimate_magnitude, max_magnitude_for_pass
from .observer import ObserverLocation
from .orbit import TrackedObject, load_objects
from .proximity import ProximityScanner
from .scheduler import BatchScheduler, SearchSession
from .visibility import Pass, best_passes, filter_passes, find_next_visible_pass, predict_passes
from .utils import (
    download_tle_file,
    format_duration,
    get_common_tle_sources,
    parse_datetime,
    setup_logging,
)

logger = logging.getLogger(__name__)


def observer_options(func):
    """Shared observer location options."""
    func = click.option('--timezone', 'tz', type=str,
                        help='IANA time zone of the observer (default: solar offset)')(func)
    func = click.option('--lon', required=True, type=float,
                        help='Observer longitude in degrees')(func)
    func = click.option('--lat', required=True, type=float,
                        help='Observer latitude in degrees')(func)
    return func


def _start_time(start_time: Optional[str]) -> datetime:
    return parse_datetime(start_time) if start_time else datetime.utcnow()


def _echo_pass(p: Pass) -> None:
    marker = " (past)" if p.is_historical else ""
    click.echo(
        f"  {p.start.strftime('%Y-%m-%d %H:%M:%S')}  "
        f"{format_duration(p.duration.total_seconds()):>7}  "
        f"{p.max_elevation:5.1f}°  "
        f"{p.to_dict()['start_direction']:>2} → {p.to_dict()['end_direction']:<2}  "
        f"{p.satellite_name}{marker}"
    )


@click.group()
@click.option('--log-level', default='WARNING',
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR']),
              help='Set logging level')
@click.option('--log-file', type=click.Path(), help='Log file path')
@click.option('--config', 'config_path', type=click.Path(exists=True),
              help='YAML configuration file (default: $PASSFINDER_CONFIG)')
@click.pass_context
def main(ctx: click.Context, log_level: str, log_file: Optional[str], config_path: Optional[str]) -> None:
    """passfinder - predict when satellites can be seen with the naked eye."""
    setup_logging(log_level, log_file)
    ctx.obj = load_config(config_path)


@main.command()
@click.option('--tle', required=True, type=click.Path(exists=True),
              help='Path to TLE file')
@click.option('--satellite', required=True,
              help='Satellite name (must match name in TLE file)')
@observer_options
@click.option('--days', type=float, help='Days to scan (default: 30 ahead, 3 back)')
@click.option('--direction', default='future', type=click.Choice(['future', 'past']),
              help='Scan forward or backward in time')
@click.option('--start-time', type=str,
              help='Start time (YYYY-MM-DD HH:MM:SS UTC, default: now)')
@click.option('--filter', 'mode', default='all', type=click.Choice(['all', 'dusk', 'dawn']),
              help='Keep only passes after sunset or before sunrise')
@click.option('--json', 'as_json', is_flag=True, help='Print passes as JSON')
@click.pass_obj
def passes(
    config,
    tle: str,
    satellite: str,
    lat: float,
    lon: float,
    tz: Optional[str],
    days: Optional[float],
    direction: str,
    start_time: Optional[str],
    mode: str,
    as_json: bool,
) -> None:
    """List the visible passes of one satellite."""

    try:
        sat = TrackedObject.from_tle_file(tle, satellite)
        location = ObserverLocation(lat, lon, tz)
        found = predict_passes(
            sat, location, days=days, direction=direction,
            start_date=_start_time(start_time), config=config,
        )
        found = filter_passes(found, location, mode)

        if as_json:
            click.echo(json.dumps([p.to_dict() for p in found], indent=2))
            return

        if not found:
            click.echo(f"No visible passes of {sat.name} from {location}")
            return

        click.echo(f"Visible passes of {sat.name} from {location}:")
        for p in found:
            _echo_pass(p)

    except Exception as e:
        logger.error(f"Pass prediction failed: {e}")
        click.echo(f"Error: {e}", err=True)


@main.command(name='best-passes')
@click.option('--tle', required=True, type=click.Path(exists=True),
              help='Path to TLE file with the objects to search')
@observer_options
@click.option('--source', default='favorites',
              help='Catalog label; "all" scans one day per batch')
@click.option('--start-time', type=str,
              help='Start time (YYYY-MM-DD HH:MM:SS UTC, default: now)')
@click.option('--batches', type=int,
              help='Stop after this many batches (default: run to the horizon)')
@click.option('--previous', is_flag=True, help='Also include high passes of the last days')
@click.option('--filter', 'mode', default='all', type=click.Choice(['all', 'dusk', 'dawn']),
              help='Keep only passes after sunset or before sunrise')
@click.pass_obj
def best_passes_cmd(
    config,
    tle: str,
    lat: float,
    lon: float,
    tz: Optional[str],
    source: str,
    start_time: Optional[str],
    batches: Optional[int],
    previous: bool,
    mode: str,
) -> None:
    """Search many satellites for high passes, batch by batch."""

    def on_batch(found: List[Pass], session: SearchSession) -> None:
        click.echo(f"... scanned {session.cursor}/{session.max_days} days, {len(found)} new passes")

    try:
        objects = load_objects(Path(tle).read_text(), source=source)
        if not objects:
            click.echo(f"No valid element sets in {tle}", err=True)
            return

        location = ObserverLocation(lat, lon, tz)
        scheduler = BatchScheduler(config, on_batch=on_batch)
        session = scheduler.start_session(objects, location, source=source, start_date=_start_time(start_time))

        for count, _ in enumerate(scheduler.run(session), start=1):
            if batches is not None and count >= batches:
                scheduler.cancel(session)

        if previous:
            scheduler.load_previous_passes(session)

        after = None if previous else session.start_date
        high = best_passes(session.passes, config.best_pass_min_elevation_deg, after=after)
        high = filter_passes(high, location, mode)

        if not high:
            click.echo(f"No passes above {config.best_pass_min_elevation_deg:.0f}° found")
            return

        label = "cached" if session.from_cache else f"{session.cursor} days"
        click.echo(f"Best passes over {location} ({label}):")
        for p in high:
            _echo_pass(p)

    except Exception as e:
        logger.error(f"Best pass search failed: {e}")
        click.echo(f"Error: {e}", err=True)


@main.command()
@click.option('--tle', required=True, type=click.Path(exists=True),
              help='Path to TLE file with the catalog to scan')
@observer_options
@click.option('--time', 'at_time', type=str, help='Scan time (default: now)')
@click.option('--radius', type=float, help='Radius in km (default: 1200)')
@click.option('--select', 'selected', type=str, help='Satellite whose orbit is clipped to the radius')
@click.pass_obj
def nearby(
    config,
    tle: str,
    lat: float,
    lon: float,
    tz: Optional[str],
    at_time: Optional[str],
    radius: Optional[float],
    selected: Optional[str],
) -> None:
    """Show satellites currently within a radius of the observer."""

    try:
        if radius is not None:
            config = replace(config, proximity_radius_km=radius)
        catalog = load_objects(Path(tle).read_text())
        scanner = ProximityScanner(catalog, ObserverLocation(lat, lon, tz), config)

        if selected:
            match = next((o for o in catalog if selected.upper() in o.name.upper()), None)
            if match is None:
                click.echo(f"Satellite '{selected}' not found in {tle}", err=True)
                return
            scanner.select(match)

        entries = scanner.tick(_start_time(at_time))
        if not entries:
            click.echo(f"No satellites within {scanner.radius_km:.0f} km")
            return

        click.echo(f"{len(entries)} satellites within {scanner.radius_km:.0f} km:")
        for entry in entries:
            state = "visible" if entry.is_visible else "not visible"
            click.echo(
                f"  {entry.obj.name:<24} {entry.distance_km:7.1f} km  "
                f"heading {entry.bearing:5.1f}°  {state}"
            )
            for segment in entry.orbit_segments:
                kind = "lit" if segment.is_visible else "dark"
                click.echo(f"    orbit segment: {len(segment.points)} points ({kind})")

    except Exception as e:
        logger.error(f"Proximity scan failed: {e}")
        click.echo(f"Error: {e}", err=True)


@main.command()
@click.option('--tle', required=True, type=click.Path(exists=True),
              help='Path to TLE file')
@click.option('--satellite', required=True,
              help='Satellite name (must match name in TLE file)')
@observer_options
@click.option('--time', 'at_time', type=str, help='Time of the estimate (default: now)')
@click.option('--max', 'over_pass', is_flag=True,
              help='Brightest magnitude over the current or next pass instead')
@click.option('--satcat', type=click.Path(), help='SATCAT JSON cache file')
@click.option('--offline', is_flag=True, help='Do not download SATCAT; use the default magnitude')
@click.pass_obj
def magnitude(
    config,
    tle: str,
    satellite: str,
    lat: float,
    lon: float,
    tz: Optional[str],
    at_time: Optional[str],
    over_pass: bool,
    satcat: Optional[str],
    offline: bool,
) -> None:
    """Estimate the apparent visual magnitude of a satellite."""

    try:
        sat = TrackedObject.from_tle_file(tle, satellite)
        location = ObserverLocation(lat, lon, tz)
        if satcat:
            config = replace(config, satcat_cache_path=satcat)

        catalog = StandardMagnitudeCatalog.from_config(config)
        if not offline:
            catalog.load()

        when = _start_time(at_time)
        if over_pass:
            value = max_magnitude_for_pass(sat, location, when, catalog, config)
        else:
            value = estimate_magnitude(sat, location, when, catalog, config)

        if value is None:
            click.echo(f"{sat.name} is not visible")
        else:
            click.echo(f"{sat.name}: magnitude {value:.1f}")

    except Exception as e:
        logger.error(f"Magnitude estimate failed: {e}")
        click.echo(f"Error: {e}", err=True)


@main.command()
@click.option('--tle', required=True, type=click.Path(exists=True),
              help='Path to TLE file')
@click.option('--satellite', required=True,
              help='Satellite name (must match name in TLE file)')
@observer_options
@click.option('--start-time', type=str,
              help='Start time (YYYY-MM-DD HH:MM:SS UTC, default: now)')
@click.pass_obj
def next_pass(
    config,
    tle: str,
    satellite: str,
    lat: float,
    lon: float,
    tz: Optional[str],
    start_time: Optional[str],
) -> None:
    """Find the next visible pass of a satellite."""

    try:
        sat = TrackedObject.from_tle_file(tle, satellite)
        location = ObserverLocation(lat, lon, tz)
        found = find_next_visible_pass(sat, location, _start_time(start_time), config=config)

        if found:
            info = found.to_dict()
            click.echo(f"\nNext visible pass of {sat.name}:")
            click.echo(f"Start:    {found.start.strftime('%Y-%m-%d %H:%M:%S')} UTC ({info['start_direction']})")
            click.echo(f"Max Elev: {found.max_elevation:.1f}°")
            click.echo(f"End:      {found.end.strftime('%Y-%m-%d %H:%M:%S')} UTC ({info['end_direction']})")
        else:
            click.echo(f"No visible passes of {sat.name} in the next two days")

    except Exception as e:
        logger.error(f"Next pass calculation failed: {e}")
        click.echo(f"Error: {e}", err=True)


@main.command(name='export-ics')
@click.option('--tle', required=True, type=click.Path(exists=True),
              help='Path to TLE file')
@click.option('--satellite', required=True,
              help='Satellite name (must match name in TLE file)')
@observer_options
@click.option('--days', default=7.0, type=float, help='Days to scan (default: 7)')
@click.option('--start-time', type=str,
              help='Start time (YYYY-MM-DD HH:MM:SS UTC, default: now)')
@click.option('--best', is_flag=True, help='Only passes above the best-pass elevation')
@click.option('--location-name', default='Observer location', help='LOCATION text of the events')
@click.option('--output', type=click.Path(), help='Output .ics file (default: pass_<name>.ics)')
@click.pass_obj
def export_ics_cmd(
    config,
    tle: str,
    satellite: str,
    lat: float,
    lon: float,
    tz: Optional[str],
    days: float,
    start_time: Optional[str],
    best: bool,
    location_name: str,
    output: Optional[str],
) -> None:
    """Export visible passes to an iCalendar file."""

    try:
        sat = TrackedObject.from_tle_file(tle, satellite)
        location = ObserverLocation(lat, lon, tz)
        start = _start_time(start_time)
        found = predict_passes(sat, location, days=days, start_date=start, config=config)
        found = [p for p in found if p.end >= start]
        if best:
            found = best_passes(found, config.best_pass_min_elevation_deg)

        if not found:
            click.echo(f"No visible passes of {sat.name} to export")
            return

        path = export_ics(found, output or ics_filename(sat.name), location_name)
        click.echo(f"{len(found)} passes written to: {path}")

    except Exception as e:
        logger.error(f"Calendar export failed: {e}")
        click.echo(f"Error: {e}", err=True)


@main.command()
@click.option('--source', default='visual',
              help='TLE source (use "list-sources" to see available)')
@click.option('--output', required=True, type=click.Path(),
              help='Output TLE file path')
@click.option('--url', type=str,
              help='Custom URL for TLE data')
def download_tle(source: str, output: str, url: Optional[str]) -> None:
    """Download TLE data from online sources."""

    if url:
        download_url = url
    else:
        sources = get_common_tle_sources()
        if source not in sources:
            click.echo(f"Unknown source: {source}")
            click.echo("Available sources:")
            for name in sources.keys():
                click.echo(f"  {name}")
            return
        download_url = sources[source]

    click.echo(f"Downloading TLE data from {download_url}")

    if download_tle_file(download_url, output):
        click.echo(f"TLE data saved to: {output}")
    else:
        click.echo("Download failed", err=True)


@main.command()
def list_sources() -> None:
    """List available TLE data sources."""
    sources = get_common_tle_sources()

    click.echo("Available TLE sources:")
    for name, url in sources.items():
        click.echo(f"  {name:<20} {url}")


if __name__ == '__main__':
    main()
