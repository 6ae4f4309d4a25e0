"""
Command line interface for call sheet contact extraction.
"""

import asyncio
import json
import sys

import click

from callsheet.core.config import get_settings
from callsheet.core.logging import configure_logging
from callsheet.extraction.roles import get_role_vocabulary
from callsheet.extraction.service import ContactExtractionService
from callsheet.extraction.types import ExtractionOptions, InputValidationError, StrategyKind


@click.group()
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
def cli(verbose):
    """Extract contacts from production call sheets."""
    settings = get_settings()
    if verbose:
        settings = settings.model_copy(update={"log_level": "DEBUG", "log_format": "console"})
    # Results go to stdout
    configure_logging(settings, stream=sys.stderr)


@cli.command()
@click.argument("source", type=click.File("r", encoding="utf-8"))
@click.option(
    "--strategy",
    "-s",
    type=click.Choice([kind.value for kind in StrategyKind]),
    default=None,
    help="Force an extraction strategy",
)
@click.option("--no-ai", is_flag=True, help="Never call the AI collaborator")
@click.option("--max-contacts", "-n", type=int, default=None, help="Maximum contacts returned")
@click.option("--role", "-r", "roles", multiple=True, help="Keep only contacts with this role")
@click.option(
    "--format",
    "-f",
    "output_format",
    type=click.Choice(["json", "table"]),
    default="table",
    help="Output format",
)
def extract(source, strategy, no_ai, max_contacts, roles, output_format):
    """Extract contacts from a text file (use - for stdin)."""
    text = source.read()

    try:
        options = ExtractionOptions(
            max_contacts=max_contacts,
            preferred_strategy=strategy,
            role_preferences=list(roles),
            disable_ai=no_ai,
            file_name=getattr(source, "name", None),
        )
    except InputValidationError as e:
        raise click.BadParameter(str(e))

    service = ContactExtractionService.from_settings(get_settings())
    result = asyncio.run(service.extract(text, options))

    if output_format == "json":
        click.echo(json.dumps(result.to_dict(), indent=2, default=str))
    else:
        _print_contacts(result)

    if not result.success:
        sys.exit(1)


@cli.command()
@click.argument("source", type=click.File("r", encoding="utf-8"))
def classify(source):
    """Classify a document and recommend a strategy."""
    text = source.read()

    service = ContactExtractionService.from_settings(get_settings())
    normalized = service.normalizer.normalize(text)
    analysis = service.classifier.classify(normalized, getattr(source, "name", None))
    recommendation = service.selector.recommend(analysis)
    recommended = recommendation["recommended"]

    click.echo(json.dumps(
        {
            "analysis": analysis.to_dict(),
            "recommended": recommended.to_dict() if recommended else None,
            "ranked": [d.to_dict() for d in recommendation["ranked"]],
            "reasoning": recommendation["reasoning"],
        },
        indent=2,
    ))


@cli.command()
def roles():
    """Show the active role vocabulary."""
    settings = get_settings()
    vocabulary = get_role_vocabulary(settings.roles_config_path)

    click.echo("Known roles:")
    for role in vocabulary.known_role_list():
        priority = vocabulary.role_priority.get(role)
        suffix = f"  (priority {priority})" if priority is not None else ""
        click.echo(f"  {role}  [{vocabulary.section_for(role)}]{suffix}")

    if vocabulary.synonyms:
        click.echo("\nSynonyms:")
        for raw, canonical in sorted(vocabulary.synonyms.items()):
            click.echo(f"  {raw} -> {canonical}")


def _print_contacts(result):
    """Print contacts as a table."""
    if not result.success:
        click.echo(f"Extraction failed: {result.error}", err=True)
        return

    if not result.has_contacts:
        click.echo("No contacts found")
        return

    rows = [
        (c.role, c.name, c.email, c.phone, f"{c.confidence:.2f}")
        for c in result.contacts
    ]
    headers = ("ROLE", "NAME", "EMAIL", "PHONE", "CONF")
    widths = [max(len(str(row[i])) for row in rows + [headers]) for i in range(len(headers))]

    click.echo("  ".join(h.ljust(w) for h, w in zip(headers, widths)))
    for row in rows:
        click.echo("  ".join(str(v).ljust(w) for v, w in zip(row, widths)))

    metadata = result.metadata
    click.echo(
        f"\n{result.contact_count} contacts via {metadata.get('strategy')} "
        f"in {metadata.get('processing_time', 0.0):.3f}s"
    )


if __name__ == "__main__":
    cli()
