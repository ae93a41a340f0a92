import asyncio
import json
from dataclasses import asdict

import click
from pydantic import ValidationError

from .config import Settings
from .context import open_context
from .db import SqliteDataStore
from .models import JobResult, JobType
from .repository import enqueue_job, queue_status
from .store import RedisQueueStore
from .telemetry import setup_logging
from .worker import run_batch, run_trigger


def _settings(ctx: click.Context) -> Settings:
    return ctx.find_root().obj


async def _with_context(settings, fn):
    async with open_context(settings) as job_ctx:
        return await fn(job_ctx)


async def _with_store(settings, fn):
    store = RedisQueueStore.from_settings(settings)
    try:
        return await fn(store)
    finally:
        await store.close()


def _fail(message: str):
    click.secho(f"Error: {message}", fg="red")
    raise SystemExit(1)


@click.group(help="jobctl: background job queue CLI")
@click.pass_context
def cli(ctx):
    try:
        settings = Settings()
    except ValidationError as e:
        raise click.ClickException(f"Invalid configuration:\n{e}")
    setup_logging(settings)
    ctx.obj = settings


# ---------- Enqueue ----------
@cli.command("enqueue", help="Add a new job to the queue")
@click.argument("job_type", type=click.Choice([t.value for t in JobType]))
@click.option("--payload", "payload_json", default="{}", show_default=True, help="Job payload as a JSON object")
@click.option("--max-attempts", default=None, type=int, help="Override max attempts")
@click.pass_context
def enqueue_cmd(ctx, job_type, payload_json, max_attempts):
    settings = _settings(ctx)
    try:
        payload = json.loads(payload_json)
    except json.JSONDecodeError as e:
        _fail(f"Invalid --payload JSON ({e})")

    async def _enqueue(store):
        return await enqueue_job(store, job_type, payload, max_attempts=max_attempts, settings=settings)

    try:
        job_id = asyncio.run(_with_store(settings, _enqueue))
    except ValueError as e:
        _fail(str(e))
    click.secho(f"Enqueued {job_id} -> {job_type}", fg="green")


# ---------- Processing ----------
@cli.command("run", help="Process one batch of queued jobs")
@click.option("--limit", type=int, default=None, help="Max jobs to dequeue (default from config)")
@click.pass_context
def run_cmd(ctx, limit):
    report = asyncio.run(_with_context(_settings(ctx), lambda job_ctx: run_batch(job_ctx, limit=limit)))
    if report.processed == 0:
        click.echo("No jobs in queue.")
    click.echo(json.dumps(asdict(report), indent=2))
    if not report.store_reachable:
        click.secho("Queue store unreachable.", fg="yellow")


@cli.command("status")
@click.pass_context
def status_cmd(ctx):
    status = asyncio.run(_with_store(_settings(ctx), queue_status))
    click.echo(json.dumps(asdict(status), indent=2))


# ---------- Cron triggers ----------
@cli.group("trigger", help="Run scheduled jobs directly (cron entry points)")
def trigger_group():
    pass


def _report(name, result):
    out = {"ok": result.success, "job": name, **result.stats}
    if result.error:
        out["error"] = result.error
    click.echo(json.dumps(out, indent=2))
    if not result.success:
        raise SystemExit(1)


@trigger_group.command("favorites-starting-soon")
@click.pass_context
def trigger_favorites(ctx):
    result = asyncio.run(_with_context(
        _settings(ctx), lambda job_ctx: run_trigger(JobType.FAVORITES_STARTING_SOON, {}, job_ctx)
    ))
    _report(JobType.FAVORITES_STARTING_SOON.value, result)


@trigger_group.command("seller-weekly-analytics")
@click.option("--date", "date_str", default=None, help="Reference date (YYYY-MM-DD); defaults to today")
@click.pass_context
def trigger_seller_weekly(ctx, date_str):
    payload = {"date": date_str} if date_str else {}
    result = asyncio.run(_with_context(
        _settings(ctx), lambda job_ctx: run_trigger(JobType.SELLER_WEEKLY_ANALYTICS, payload, job_ctx)
    ))
    _report(JobType.SELLER_WEEKLY_ANALYTICS.value, result)


@trigger_group.command("daily")
@click.pass_context
def trigger_daily(ctx):
    """Yesterday's analytics rollup, then the starting-soon digests."""
    async def _daily(job_ctx):
        results = {}
        for job_type in (JobType.ANALYTICS_AGGREGATE, JobType.FAVORITES_STARTING_SOON):
            try:
                results[job_type.value] = await run_trigger(job_type, {}, job_ctx)
            except Exception as e:
                job_ctx.errors.capture(e, tags={"job_type": job_type.value, "trigger": "daily"})
                results[job_type.value] = JobResult.fail(str(e))
        return results

    results = asyncio.run(_with_context(_settings(ctx), _daily))
    out = {name: {"ok": r.success, "error": r.error, **r.stats} for name, r in results.items()}
    click.echo(json.dumps(out, indent=2))
    if not any(r.success for r in results.values()):
        raise SystemExit(1)


# ---------- Database ----------
@cli.group("db", help="Relational store")
def db_group():
    pass


@db_group.command("init")
@click.pass_context
def db_init(ctx):
    path = _settings(ctx).database_path
    asyncio.run(SqliteDataStore.open(path).close())
    click.secho(f"Schema ready in {path}", fg="green")


# ---------- Config ----------
@cli.group("config", help="Configuration")
def config_group():
    pass


@config_group.command("show")
@click.pass_context
def config_show(ctx):
    click.echo(json.dumps(_settings(ctx).public_dict(), indent=2))


def main():
    cli()
