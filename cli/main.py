# cli/main.py
import click
from .commands.search import search, details
from .commands.cache import cache
from .commands.store import store
from .commands.libraries import libraries
from .utils import setup_logging

@click.group()
@click.option('--verbose/--no-verbose', default=False, help='Log progress at INFO level')
def cli(verbose: bool):
    """Shelf Finder: is volume N of series X at the library?"""
    setup_logging(verbose)

cli.add_command(search)
cli.add_command(details)
cli.add_command(cache)
cli.add_command(store)
cli.add_command(libraries)

def main():
    """Entry point for the CLI"""
    cli()

if __name__ == '__main__':
    main()
