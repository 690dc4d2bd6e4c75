#!/usr/bin/env python3
"""
CLI for the Privacy Settings Monitor

Commands:
    seed-platforms     - Register the built-in platforms (Google, Facebook, ...)
    platforms          - List active platforms
    stats              - Scan counts and success rate
    templates          - Template history for a platform
    archive-template   - Deactivate a template
    compare-templates  - Show differences between two templates

Usage:
    python cli.py seed-platforms
    python cli.py stats --platform-id <uuid>
    python cli.py templates <platform-uuid> --json
    python cli.py compare-templates <old-template-uuid> <new-template-uuid>
"""

import click
import sys
import json


def get_app_context():
    """Get Flask app context for database access."""
    from app import create_app
    app = create_app()
    return app.app_context()


def _engine():
    from flask import current_app
    return current_app.extensions["scraping_engine"]


@click.group()
@click.version_option(version="1.0.0", prog_name="privacy-monitor")
def cli():
    """Privacy Settings Monitor CLI - Manage platforms and templates."""
    pass


@cli.command("seed-platforms")
def seed_platforms():
    """Register the built-in platforms that are not registered yet."""
    with get_app_context():
        created = _engine().registry.initialize_default_platforms()

        if created:
            click.secho(f"Registered {len(created)} platform(s):", fg="green")
            for platform_id in created:
                click.echo(f"  + {platform_id}")
        else:
            click.echo("All default platforms already registered.")


@cli.command("platforms")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def list_platforms(output_json):
    """List active platforms."""
    with get_app_context():
        platforms = _engine().registry.get_active_platforms()

        if output_json:
            click.echo(json.dumps([
                {"id": p.id, "slug": p.slug, "name": p.name, "domain": p.domain}
                for p in platforms
            ], indent=2))
            return

        for p in platforms:
            click.echo(f"{p.slug:<12} {p.id}  {p.domain}")
        click.echo(f"\n{len(platforms)} active platform(s)")


@cli.command("stats")
@click.option("--platform-id", default=None, help="Limit to one platform")
def stats(platform_id):
    """Show scan counts and success rate."""
    with get_app_context():
        result = _engine().get_scraping_stats(platform_id)

        click.echo("=" * 60)
        click.secho("SCRAPING STATS", fg="cyan", bold=True)
        click.echo("=" * 60)
        click.echo(f"  Total scans:      {result['total_scans']}")
        click.echo(f"  Successful scans: {result['successful_scans']}")
        click.echo(f"  Success rate:     {result['success_rate']}%")
        click.echo(f"  Scrapers:         {', '.join(result['platforms']) or '(none)'}")


@cli.command("templates")
@click.argument("platform_id")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def templates(platform_id, output_json):
    """
    Show template history for a platform, newest first.

    PLATFORM_ID: Platform UUID
    """
    with get_app_context():
        history = _engine().template_system.get_template_history(platform_id)

        if output_json:
            click.echo(json.dumps([t.to_dict() for t in history], indent=2, default=str))
            return

        if not history:
            click.echo(f"No templates for platform {platform_id}")
            return

        for t in history:
            state = click.style("active", fg="green") if t.is_active else click.style("archived", fg="yellow")
            click.echo(f"{t.version:<16} {t.id}  {state}  used {t.usage_count}x")


@cli.command("archive-template")
@click.argument("template_id")
def archive_template(template_id):
    """
    Deactivate a template so new scans no longer match it.

    TEMPLATE_ID: Template UUID
    """
    with get_app_context():
        if not _engine().template_system.archive_template(template_id):
            click.secho(f"Error: template {template_id} not found", fg="red")
            sys.exit(1)
        click.secho(f"Archived template {template_id}", fg="green")


@cli.command("compare-templates")
@click.argument("old_id")
@click.argument("new_id")
@click.option("--json", "output_json", is_flag=True, help="Output as JSON")
def compare_templates(old_id, new_id, output_json):
    """
    Show the differences between two templates.

    OLD_ID: Template UUID of the older template
    NEW_ID: Template UUID of the newer template
    """
    with get_app_context():
        system = _engine().template_system
        old = system.get_template(old_id)
        new = system.get_template(new_id)

        missing = [tid for tid, t in ((old_id, old), (new_id, new)) if t is None]
        if missing:
            click.secho(f"Error: template(s) not found: {', '.join(missing)}", fg="red")
            sys.exit(1)

        comparison = system.compare_templates(old, new)

        if output_json:
            click.echo(json.dumps(comparison.to_dict(), indent=2, default=str))
            return

        click.echo(f"Similarity: {comparison.similarity:.2%}")
        click.echo(f"Breaking changes: {comparison.breaking_count}")
        if comparison.needs_new_template:
            click.secho("Differences require a new template version", fg="yellow")
        click.echo()

        for diff in comparison.differences:
            color = "red" if diff.impact == "breaking" else None
            click.secho(f"  [{diff.type}] {diff.path} ({diff.impact})", fg=color)


if __name__ == "__main__":
    cli()
