import typer
from typing_extensions import Annotated

from dotenv import load_dotenv, find_dotenv

load_dotenv(find_dotenv())

app = typer.Typer(
    help="imagewright: keeps container images built from their sources",
    add_completion=False,
)


@app.command("operator")
def run_operator():
    """Run the Kubernetes operator (connects to cluster)."""
    from imagewright.main import main

    main()


@app.command("generate-crds")
def generate_crds(
    output: Annotated[
        str, typer.Option("-o", "--output", help="Output directory")
    ] = "crds/generated",
    force: Annotated[bool, typer.Option("--force", help="Force regeneration")] = False,
    validate: Annotated[
        bool, typer.Option("--validate", help="Validate generated CRDs")
    ] = False,
):
    """Generate CRD YAML files from pydantic models."""
    from pathlib import Path
    from imagewright.crd.generator import CRDManager

    try:
        output_dir = Path(output)
        manager = CRDManager(output_dir=output_dir)

        if manager.generate_all_crds(force=force):
            typer.echo(f"CRDs generated successfully in {output_dir}")
        else:
            typer.echo("No CRDs generated (models unchanged)")

        if validate:
            if manager.validate_generated_crds():
                typer.echo("CRD validation passed")
            else:
                typer.echo("CRD validation failed")
                raise typer.Exit(1)

    except typer.Exit:
        raise
    except Exception as e:
        typer.echo(f"Failed to generate CRDs: {e}")
        raise typer.Exit(1)


@app.command("validate-models")
def validate_models():
    """Validate CRD models without generating files."""
    from imagewright.crd.generator import CRDManager

    try:
        manager = CRDManager()
        manager.registry.discover_models()
        models = manager.registry.get_all_models()
        invalid = [
            key
            for key, info in models.items()
            if not manager.registry.validate_model_schema(info["model"])
        ]
        crds = manager.get_crds_as_dict()

        typer.echo(f"Validated {len(models)} CRD models")
        for key in models.keys():
            typer.echo(f"  - {key}")
        typer.echo(f"Generated {len(crds)} CRDs in memory")
        if invalid:
            typer.echo(f"Invalid models: {', '.join(invalid)}")
            raise typer.Exit(1)

    except typer.Exit:
        raise
    except Exception as e:
        typer.echo(f"Model validation failed: {e}")
        raise typer.Exit(1)
