"""API server command."""

import typer

from winzen.api.main import run_api

app = typer.Typer(help="Start the HTTP API")


@app.callback(invoke_without_command=True)
def api(
    ctx: typer.Context,
    host: str = typer.Option("127.0.0.1", "--host", help="Bind host"),
    port: int = typer.Option(8000, "--port", help="Bind port"),
    with_sim: bool = typer.Option(False, "--with-sim", help="Run the bot simulation in the same process"),
) -> None:
    if ctx.invoked_subcommand is not None:
        return
    run_api(host=host, port=port, with_sim=with_sim, profile=ctx.obj.get("profile"))


if __name__ == "__main__":
    app()
