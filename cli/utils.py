import logging
import click
from typing import Optional

from core.availability import AvailabilitySummary
from core.catalog.libraries import find_library
from core.search import events
from core.search.events import SearchEvent
from core.search.models import SearchResult, SeriesDetails, SeriesResult

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

def setup_logging(verbose: bool = False) -> None:
    """Send log records to stderr, INFO and up when verbose, WARNING otherwise"""
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(logging.INFO if verbose else logging.WARNING)

def check_home_library(ctx, param, value: Optional[str]) -> Optional[str]:
    """Warn when --home-library is not one of the listed member libraries"""
    if value and find_library(value) is None:
        click.echo(click.style(f"Unknown library code '{value}' (see \"shelf libraries\")", fg='yellow'), err=True)
    return value

def availability_label(summary: Optional[AvailabilitySummary]) -> str:
    """Short colored availability label for one volume"""
    if summary is None:
        return click.style("no ISBN", fg='bright_black')
    if summary.not_in_catalog:
        return click.style("not in catalog", fg='bright_black')
    if summary.available:
        label = f"available ({summary.available_copies}/{summary.total_copies})"
        if summary.local_available:
            label += f", {summary.local_available} at home library"
        return click.style(label, fg='green')
    if summary.checked_out_copies:
        return click.style(f"checked out ({summary.checked_out_copies})", fg='yellow')
    if summary.on_order_copies:
        return click.style("on order", fg='cyan')
    if summary.in_transit_copies:
        return click.style("in transit", fg='cyan')
    return click.style("unavailable", fg='red')

def print_series(series: SeriesResult) -> None:
    """Print a series header and its volumes"""
    status = "complete" if series.is_complete else "ongoing"
    click.echo("\n" + click.style(series.title, fg='blue', bold=True) +
               click.style(f"  [{series.id}]", fg='bright_black'))
    details = f"{series.total_volumes} volumes, {series.available_volumes} available, {status}, source: {series.source}"
    if series.author:
        details = f"by {series.author}; " + details
    if series.relationship:
        details += f", {series.relationship.value}"
    click.echo(click.style(details, fg='cyan'))
    for volume in series.volumes:
        number = click.style(f"  Vol. {volume.volume_number:>3}", fg='white')
        isbn = click.style(f" {volume.primary_isbn or '-':<13} ", fg='bright_black')
        click.echo(number + isbn + availability_label(volume.availability))

def print_search_result(result: SearchResult) -> None:
    """Print a search result: best match first, then every series"""
    if not result.series:
        click.echo(click.style(f"No results for '{result.query}'", fg='yellow'))
        return

    if result.best_match and result.best_match.type == 'volume' and result.best_match.volume:
        volume = result.best_match.volume
        click.echo(click.style("Best match: ", fg='blue') + click.style(volume.title, fg='cyan') +
                   "  " + availability_label(volume.availability))
    elif result.best_match and result.best_match.series:
        click.echo(click.style("Best match: ", fg='blue') + click.style(result.best_match.series.title, fg='cyan'))

    for series in result.series:
        print_series(series)

    if result.debug:
        debug = result.debug
        click.echo("\n" + click.style("Debug:", fg='magenta'))
        click.echo(f"  sources: {', '.join(debug.sources) or '-'}")
        click.echo(f"  timing: total {debug.timing.total}ms, wikipedia {debug.timing.wikipedia}ms, "
                   f"nc-cardinal {debug.timing.nc_cardinal}ms")
        for error in debug.errors:
            click.echo(click.style(f"  error: {error}", fg='red'))
        for issue in debug.data_issues:
            click.echo(click.style(f"  issue: {issue}", fg='yellow'))
        for warning in debug.warnings:
            click.echo(click.style(f"  warning: {warning}", fg='yellow'))
        for line in debug.log:
            click.echo(click.style(f"  {line}", fg='bright_black'))

def print_details(details: SeriesDetails) -> None:
    """Print series details with the volumes the library is missing"""
    click.echo(click.style(details.title, fg='blue', bold=True) +
               click.style(f"  [{details.id}]", fg='bright_black'))
    if details.author:
        click.echo(click.style(f"by {details.author}", fg='cyan'))
    status = "complete" if details.is_complete else "ongoing"
    click.echo(click.style(f"{details.total_volumes} volumes ({status}), "
                           f"{details.available_count} available", fg='cyan'))
    for volume in details.volumes:
        click.echo(click.style(f"  Vol. {volume.volume_number:>3} ", fg='white') +
                   availability_label(volume.availability))
    if details.missing_volumes:
        missing = ', '.join(str(n) for n in details.missing_volumes)
        click.echo(click.style(f"Not on the shelf: {missing}", fg='yellow'))
    if details.related_series:
        click.echo(click.style(f"Related: {', '.join(details.related_series)}", fg='blue'))

def print_event(search_event: SearchEvent) -> None:
    """Render one streaming search event as a progress line on stderr"""
    data = search_event.data
    kind = search_event.type
    if kind == events.STARTED:
        message = click.style(f"Searching for '{data['query']}'", fg='blue')
    elif kind == events.METADATA_FOUND:
        message = click.style(f"Found '{data['series_title']}' ({data['volume_count']} volumes)", fg='green')
    elif kind == events.METADATA_NOT_FOUND:
        message = click.style(f"No metadata, falling back to {data['fallback']}", fg='yellow')
    elif kind == events.METADATA_ERROR:
        message = click.style(f"Metadata error: {data['message']}", fg='red')
    elif kind == events.CATALOG_FOUND:
        message = click.style(f"Catalog returned {data['record_count']} records", fg='green')
    elif kind == events.AVAILABILITY_PROGRESS:
        message = click.style(f"Availability {data['completed']}/{data['total']} "
                              f"({data['found_in_catalog']} in catalog)", fg='cyan')
    elif kind == events.COVERS_PROGRESS:
        label = 'Google Books covers' if data.get('source') == 'google-books' else 'Covers'
        message = click.style(f"{label} {data['completed']}/{data['total']}", fg='cyan')
    elif kind == events.ERROR:
        message = click.style(f"Search failed: {data['message']}", fg='red')
    elif kind == events.COMPLETE:
        return
    else:
        message = click.style(kind, fg='bright_black')
    click.echo(message, err=True)
