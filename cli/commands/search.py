import click
from core.errors import ShelfError
from core.services.search_service import SearchService
from ..utils import check_home_library, print_details, print_event, print_search_result

@click.command()
@click.argument('query')
@click.option('--home-library', default=None, callback=check_home_library, help='Library code for local/remote copy counts (see "shelf libraries")')
@click.option('--debug/--no-debug', default=False, help='Include sources, timings and errors')
@click.option('--stream/--no-stream', default=False, help='Print progress while searching')
@click.option('--json', 'as_json', is_flag=True, default=False, help='Print the result as JSON')
def search(query: str, home_library: str, debug: bool, stream: bool, as_json: bool):
    """Search for a series or a single volume

    Example:
        shelf search "demon slayer"
        shelf search "demon slayer 12" --home-library HIGH_POINT_MAIN
        shelf search "spy x family" --stream --debug
    """
    with SearchService() as service:
        try:
            if stream:
                result = service.streaming_search(query, print_event, home_library=home_library, debug=debug)
                if result is None:
                    raise click.ClickException(f"Search for '{query}' did not complete")
            else:
                result = service.search(query, home_library=home_library, debug=debug)
        except ShelfError as e:
            raise click.ClickException(str(e))

    if as_json:
        click.echo(result.model_dump_json(indent=2))
    else:
        print_search_result(result)

@click.command()
@click.argument('id_or_title')
@click.option('--home-library', default=None, callback=check_home_library, help='Library code for local/remote copy counts')
@click.option('--json', 'as_json', is_flag=True, default=False, help='Print the details as JSON')
def details(id_or_title: str, home_library: str, as_json: bool):
    """Show one series by entity ID (s_...) or title

    Example:
        shelf details s_V1StGXR8_Z
        shelf details "blue box"
    """
    with SearchService() as service:
        result = service.series_details(id_or_title, home_library=home_library)

    if result is None:
        click.echo(click.style(f"Series not found: {id_or_title}", fg='yellow'))
        return
    if as_json:
        click.echo(result.model_dump_json(indent=2))
    else:
        print_details(result)
