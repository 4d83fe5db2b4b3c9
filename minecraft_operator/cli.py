"""Minecraft Operator command line."""
import typer

from minecraft_operator.crd import render_crd

app = typer.Typer(
    name="minecraft-operator",
    help="Minecraft Operator",
    no_args_is_help=True,
    add_completion=False,
)


@app.command()
def run() -> None:
    """Run the operator and its status server."""
    from minecraft_operator.main import run as run_operator

    run_operator()


@app.command("crd-gen")
def crd_gen() -> None:
    """Print the Minecraft CustomResourceDefinition as YAML."""
    typer.echo(render_crd())


def main() -> None:
    app()


if __name__ == "__main__":
    main()
