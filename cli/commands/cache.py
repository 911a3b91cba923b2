import click
from core.cache.tiered_cache import CACHE_TYPES, ClearResult
from core.services.search_service import SearchService

def _print_cleared(result: ClearResult, verbose: bool = False):
    click.echo(click.style("Deleted ", fg='blue') +
               click.style(str(result.deleted_count), fg='cyan') +
               click.style(" cache entries", fg='blue'))
    if verbose:
        for key in result.deleted_keys:
            click.echo(click.style(f"  {key}", fg='bright_black'))

@click.group()
def cache():
    """Cache administration commands"""
    pass

@cache.command()
def stats():
    """Show entry counts and sizes per cache type"""
    with SearchService() as service:
        all_stats = service.cache_stats()

    for entry in all_stats.caches:
        click.echo(click.style(f"{entry.type:<14}", fg='blue') +
                   click.style(f"{entry.entry_count:>8} entries", fg='cyan') +
                   click.style(f"{entry.total_size_bytes / 1024:>10.1f} KB", fg='white'))
    click.echo(click.style(f"{'total':<14}", fg='blue', bold=True) +
               click.style(f"{all_stats.total_entries:>8} entries", fg='cyan') +
               click.style(f"{all_stats.total_size_bytes / 1024:>10.1f} KB", fg='white'))

@cache.command()
@click.option('--type', 'cache_type', type=click.Choice(CACHE_TYPES), default=None,
              help='Only clear this cache type')
def clear(cache_type: str):
    """Clear every cache, or one cache type"""
    with SearchService() as service:
        _print_cleared(service.clear_cache(cache_type))

@cache.command('clear-isbn')
@click.argument('isbn')
@click.option('--verbose/--no-verbose', default=False, help='List deleted keys')
def clear_isbn(isbn: str, verbose: bool):
    """Clear catalog, availability and cover entries for one ISBN"""
    with SearchService() as service:
        _print_cleared(service.cache.clear_isbn(isbn), verbose)

@cache.command('clear-series')
@click.argument('slug')
@click.option('--verbose/--no-verbose', default=False, help='List deleted keys')
def clear_series(slug: str, verbose: bool):
    """Clear cached metadata for a series"""
    with SearchService() as service:
        _print_cleared(service.cache.clear_series(slug), verbose)

@cache.command('clear-search')
@click.argument('text')
@click.option('--verbose/--no-verbose', default=False, help='List deleted keys')
def clear_search(text: str, verbose: bool):
    """Clear cached searches whose key contains the text"""
    with SearchService() as service:
        _print_cleared(service.cache.clear_search(text), verbose)
