import asyncio

import typer

from api.services import StreamService
from db.schemas import ContentIdentity
from streaming_providers.exceptions import AllProvidersFailed, InvalidMagnet
from utils.logging_config import configure_logging
from utils.validation_helper import InvalidInput

app = typer.Typer()


@app.callback()
def main(
    log_level: str = typer.Option(None, help="Override the configured logging level"),
):
    configure_logging(log_level)


@app.command()
def streams(
    media_type: str = typer.Argument(..., help="movie or series"),
    stremio_id: str = typer.Argument(..., help='e.g. "tt0111161" or "tt0944947:1:2"'),
    api_keys: str = typer.Option(
        ..., envvar="DEBRID_API_KEYS", help="e.g. rd=<token>,tb=<token>"
    ),
    provider: list[str] = typer.Option(
        None, "--provider", "-p", help="Only list streams cached on these providers"
    ),
):
    """List ranked cached streams for a movie or an episode."""
    try:
        identity = ContentIdentity.from_stremio_id(media_type, stremio_id)
    except InvalidInput as error:
        typer.echo(f"❌ {error}")
        raise typer.Exit(code=2)

    async def run():
        service = StreamService(api_keys=api_keys)
        return await service.get_ranked_streams(identity, provider or None)

    ranked_streams = asyncio.run(run())
    if not ranked_streams:
        typer.echo("No cached streams found.")
        return
    for ranked_stream in ranked_streams:
        typer.echo(f"{ranked_stream.name}\n{ranked_stream.description}")
        typer.echo(f"  {ranked_stream.magnet_link}\n")


@app.command()
def resolve(
    magnet_link: str = typer.Argument(..., help="Magnet link or bare info hash"),
    api_keys: str = typer.Option(
        ..., envvar="DEBRID_API_KEYS", help="e.g. rd=<token>,tb=<token>"
    ),
    preferred: str = typer.Option(None, help="Provider id to try first"),
    season: int = typer.Option(None),
    episode: int = typer.Option(None),
):
    """Resolve a magnet link to a playable url."""

    async def run():
        service = StreamService(api_keys=api_keys)
        return await service.resolve_selection(magnet_link, preferred, season, episode)

    try:
        typer.echo(asyncio.run(run()))
    except InvalidMagnet as error:
        typer.echo(f"❌ {error}")
        raise typer.Exit(code=2)
    except AllProvidersFailed as error:
        for provider_id, reason in error.reasons.items():
            typer.echo(f"❌ {provider_id}: {reason}")
        raise typer.Exit(code=1)


@app.command()
def probe(
    magnet_link: str = typer.Argument(..., help="Magnet link or bare info hash"),
    api_keys: str = typer.Option(
        ..., envvar="DEBRID_API_KEYS", help="e.g. rd=<token>,tb=<token>"
    ),
):
    """Show the cache status of one torrent on every configured provider."""

    async def run():
        return await StreamService(api_keys=api_keys).probe_providers(magnet_link)

    try:
        results = asyncio.run(run())
    except InvalidMagnet as error:
        typer.echo(f"❌ {error}")
        raise typer.Exit(code=2)

    for provider_id, result in results.items():
        status = "✅ cached" if result.cached else "⏳ not cached"
        if result.degraded:
            status = f"🔄 unverified ({result.error})"
        typer.echo(f"{provider_id}: {status}")


if __name__ == "__main__":
    app()
