"""Main entry point for the relay CLI."""

import json

import httpx
import typer
import uvicorn

from dingtalk_relay.api import configure_logging, create_app
from dingtalk_relay.config import RelayConfig
from dingtalk_relay.infrastructure.logging import LogStream
from dingtalk_relay.version import __version__

app = typer.Typer(help="DingTalk to AI backend relay.")

DEFAULT_URL = "http://127.0.0.1:8080"


def _request(method: str, url: str, **kwargs: object) -> dict:
    try:
        response = httpx.request(method, url, timeout=10.0, **kwargs)  # type: ignore[arg-type]
    except httpx.HTTPError as e:
        typer.echo(f"Request failed: {e}", err=True)
        raise typer.Exit(code=1) from e
    try:
        body = response.json()
    except ValueError as e:
        typer.echo(
            f"Unexpected response (HTTP {response.status_code}): {response.text[:200]}",
            err=True,
        )
        raise typer.Exit(code=1) from e
    if response.is_error:
        typer.echo(json.dumps(body, indent=2, ensure_ascii=False))
        raise typer.Exit(code=1)
    return body


@app.command()  # type: ignore[misc]
def version() -> None:
    """Show the relay version."""
    typer.echo(f"DingTalk relay version {__version__}")


@app.command()  # type: ignore[misc]
def config() -> None:
    """Print the effective configuration as JSON."""
    typer.echo(RelayConfig().model_dump_json(indent=2))


@app.command()  # type: ignore[misc]
def serve(
    host: str = typer.Option("127.0.0.1", help="Interface to bind"),
    port: int = typer.Option(8080, help="Port to listen on"),
) -> None:
    """Run the relay HTTP service."""
    relay_config = RelayConfig()
    configure_logging(relay_config, stream=LogStream.STDERR)
    uvicorn.run(create_app(relay_config), host=host, port=port, log_config=None)


@app.command()  # type: ignore[misc]
def stats(url: str = typer.Option(DEFAULT_URL, help="Relay base URL")) -> None:
    """Show statistics from a running relay."""
    body = _request("GET", f"{url}/api/v1/admin/stats")
    typer.echo(json.dumps(body.get("data"), indent=2, ensure_ascii=False))


@app.command()  # type: ignore[misc]
def send(
    conversation_id: str = typer.Argument(..., help="Target conversation id"),
    content: str = typer.Argument(..., help="Message text"),
    url: str = typer.Option(DEFAULT_URL, help="Relay base URL"),
) -> None:
    """Push a message into a conversation through a running relay."""
    body = _request(
        "POST",
        f"{url}/api/v1/admin/messages",
        json={"conversation_id": conversation_id, "content": content},
    )
    typer.echo(f"Delivered in {body['chunks']} chunk(s) ({body['duration_ms']} ms)")


if __name__ == "__main__":
    app()
