import click
from core.catalog.libraries import LIBRARIES

@click.command()
def libraries():
    """List member libraries usable as --home-library"""
    for library in LIBRARIES:
        click.echo(click.style(f"{library.code:<18}", fg='cyan') + library.name)
