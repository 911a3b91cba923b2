import click
from core.services.search_service import SearchService

@click.group()
def store():
    """Entity store commands"""
    pass

@store.command()
def stats():
    """Show how many series, volumes and editions are stored"""
    with SearchService() as service:
        counts = service.store_stats()
    click.echo(click.style("Series:   ", fg='blue') + click.style(str(counts.series_count), fg='cyan'))
    click.echo(click.style("Volumes:  ", fg='blue') + click.style(str(counts.volume_count), fg='cyan'))
    click.echo(click.style("Editions: ", fg='blue') + click.style(str(counts.edition_count), fg='cyan'))
