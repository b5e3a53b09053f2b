"""
CLI to trigger crawls and inspect stored IPO news manually.
"""
from __future__ import annotations

import json

import click

from ipo_news.pipeline import PipelineCoordinator
from ipo_news.settings import configure_logging, load_settings
from ipo_news.status import build_status


def _echo_json(payload) -> None:
    click.echo(json.dumps(payload, ensure_ascii=False, indent=2, default=str))


@click.group()
@click.option("--log-level", default=None, help="Overrides IPO_NEWS_LOG_LEVEL.")
@click.pass_context
def cli(ctx: click.Context, log_level):
    settings = load_settings()
    configure_logging(log_level or settings.log_level)
    ctx.obj = {"settings": settings}


def _coordinator(ctx: click.Context) -> PipelineCoordinator:
    if "coordinator" not in ctx.obj:
        ctx.obj["coordinator"] = PipelineCoordinator(ctx.obj["settings"])
    return ctx.obj["coordinator"]


@cli.command()
@click.option("--query", default=None, help="Topic to search for; defaults to IPO_NEWS_DEFAULT_QUERY.")
@click.option("--limit", type=int, default=None, help="Maximum number of articles to collect.")
@click.pass_context
def crawl(ctx: click.Context, query, limit):
    """Collect, summarize and store articles."""
    if limit is not None:
        ctx.obj["settings"].fetch_limit = limit
    result = _coordinator(ctx).run_crawl(query)
    _echo_json(result.to_dict())
    if not result.success:
        ctx.exit(1)


@cli.command()
@click.pass_context
def schedules(ctx: click.Context):
    """Store this month's subscription/listing schedules."""
    result = _coordinator(ctx).crawl_schedules()
    _echo_json(result.to_dict())
    if not result.success:
        ctx.exit(1)


@cli.command()
@click.option("--query", default=None)
@click.option("--refresh", is_flag=True, help="Bypass the headline cache.")
@click.pass_context
def headlines(ctx: click.Context, query, refresh: bool):
    """Show the latest finance headlines."""
    result = _coordinator(ctx).headlines(query, refresh=refresh)
    for article in result.articles:
        click.echo(json.dumps(article.model_dump(), ensure_ascii=False))
    if result.error:
        click.echo(f"warning: {result.error}", err=True)


@cli.command()
@click.option("--limit", type=int, default=10)
@click.pass_context
def latest(ctx: click.Context, limit: int):
    """List the most recently stored records."""
    for record in _coordinator(ctx).store.recent(limit=limit):
        click.echo(json.dumps(record.model_dump(mode="json"), ensure_ascii=False))


@cli.command()
@click.option("--filter", "kind", type=click.Choice(["all", "demand", "subscription", "listing"]), default="all")
@click.pass_context
def calendar(ctx: click.Context, kind: str):
    """List scheduled offerings with their status."""
    for record, status in _coordinator(ctx).calendar(None if kind == "all" else kind):
        click.echo(f"[{status.urgency.value:<6}] {status.label:<17} {record.schedule} | {record.title}")


@cli.command()
@click.pass_context
def status(ctx: click.Context):
    """Print the pipeline status payload."""
    _echo_json(build_status(_coordinator(ctx)))


@cli.command()
@click.pass_context
def scheduler(ctx: click.Context):
    """Run the periodic crawl jobs in the foreground."""
    from crawler.schedulers.aps import run_scheduler

    run_scheduler(_coordinator(ctx))


if __name__ == "__main__":  # pragma: no cover
    cli()
