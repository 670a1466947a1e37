"""
CLI for managing the periodic order jobs via Temporal.

The carrier sweep and the unpaid order expiry run as Temporal Schedules
rather than in-process crons, so they survive restarts and never overlap
with themselves.
"""

import asyncio
import logging
import sys
import uuid
from datetime import timedelta
from typing import Optional

import click
from temporalio.client import (
    Client,
    Schedule,
    ScheduleActionStartWorkflow,
    ScheduleIntervalSpec,
    ScheduleOverlapPolicy,
    SchedulePolicy,
    ScheduleSpec,
)
from temporalio.contrib.pydantic import pydantic_data_converter

from storefront.config import (
    Settings,
    expiry_request,
    get_settings,
    setup_logging,
    sweep_request,
)
from storefront.workflow import (
    BulkReconciliationWorkflow,
    ExpirePendingOrdersWorkflow,
)

logger = logging.getLogger(__name__)

SCHEDULE_ID = "carrier-sweep"
EXPIRY_SCHEDULE_ID = "pending-order-expiry"


async def _connect(settings: Settings) -> Client:
    click.echo(f"Connecting to Temporal at {settings.temporal_endpoint}...")
    return await Client.connect(
        settings.temporal_endpoint,
        namespace=settings.temporal_namespace,
        data_converter=pydantic_data_converter,
    )


async def _create_schedule(
    settings: Settings, interval_minutes: int, limit: Optional[int]
) -> None:
    """Create the Temporal schedule for the periodic sweep."""
    click.echo("Creating Carrier Sweep Schedule")
    click.echo("=" * 31)
    click.echo()

    try:
        client = await _connect(settings)
        request = sweep_request(settings, limit)

        click.echo(f"Creating schedule: {SCHEDULE_ID}")
        click.echo(f"Interval: {interval_minutes} minutes")
        click.echo(f"Batch limit: {request.limit}")
        click.echo()

        schedule = Schedule(
            action=ScheduleActionStartWorkflow(
                BulkReconciliationWorkflow.run,
                request,
                id=f"{SCHEDULE_ID}-{{.ScheduledTime.Unix}}",
                task_queue=settings.temporal_task_queue,
            ),
            spec=ScheduleSpec(
                intervals=[
                    ScheduleIntervalSpec(
                        every=timedelta(minutes=interval_minutes)
                    )
                ]
            ),
            policy=SchedulePolicy(overlap=ScheduleOverlapPolicy.SKIP),
        )
        await client.create_schedule(SCHEDULE_ID, schedule)

        click.echo("Schedule created successfully!")
        click.echo(f"Sweep will run every {interval_minutes} minutes")
    except Exception as e:
        logger.error(f"Schedule creation failed: {e}", exc_info=True)
        click.echo(f"Schedule creation failed: {e}", err=True)
        sys.exit(1)


async def _delete_schedule(
    settings: Settings,
    schedule_id: str = SCHEDULE_ID,
    title: str = "Carrier Sweep Schedule",
) -> None:
    """Delete a schedule by id."""
    click.echo(f"Deleting {title}")
    click.echo("=" * (len(title) + 9))
    click.echo()

    try:
        client = await _connect(settings)
        click.echo(f"Deleting schedule: {schedule_id}")
        await client.get_schedule_handle(schedule_id).delete()
        click.echo("Schedule deleted successfully!")
    except Exception as e:
        logger.error(f"Schedule deletion failed: {e}", exc_info=True)
        click.echo(f"Schedule deletion failed: {e}", err=True)
        sys.exit(1)


async def _describe_schedule(settings: Settings) -> None:
    """Show the sweep schedule and its recent runs."""
    click.echo("Carrier Sweep Schedule")
    click.echo("=" * 22)
    click.echo()

    try:
        client = await _connect(settings)
        found = False
        async for entry in await client.list_schedules():
            if entry.id == SCHEDULE_ID:
                found = True
                break
        if not found:
            click.echo("No carrier sweep schedule found.")
            return

        description = await client.get_schedule_handle(SCHEDULE_ID).describe()
        click.echo(f"Schedule ID: {SCHEDULE_ID}")
        click.echo(f"Paused: {description.schedule.state.paused}")
        for action in description.info.recent_actions:
            click.echo(f"Ran at: {action.started_at.isoformat()}")
        for next_time in description.info.next_action_times[:3]:
            click.echo(f"Next run: {next_time.isoformat()}")
    except Exception as e:
        logger.error(f"Schedule lookup failed: {e}", exc_info=True)
        click.echo(f"Schedule lookup failed: {e}", err=True)
        sys.exit(1)


async def _run_once(settings: Settings, limit: Optional[int]) -> None:
    """Run one sweep now and wait for its summary."""
    try:
        client = await _connect(settings)
        workflow_id = f"carrier-sweep-manual-{uuid.uuid4()}"
        click.echo(f"Starting sweep workflow: {workflow_id}")
        summary = await client.execute_workflow(
            BulkReconciliationWorkflow.run,
            sweep_request(settings, limit),
            id=workflow_id,
            task_queue=settings.temporal_task_queue,
        )
        click.echo(
            f"Sweep finished: total={summary.total} synced={summary.synced} "
            f"cancelled={summary.cancelled} errors={summary.errors}"
        )
        for detail in summary.details:
            if detail.error:
                click.echo(
                    f"  {detail.order_number or detail.order_id}: "
                    f"{detail.error}"
                )
    except Exception as e:
        logger.error(f"Sweep run failed: {e}", exc_info=True)
        click.echo(f"Sweep run failed: {e}", err=True)
        sys.exit(1)


async def _create_expiry_schedule(
    settings: Settings, interval_minutes: int, limit: Optional[int]
) -> None:
    """Create the Temporal schedule that expires unpaid orders."""
    click.echo("Creating Pending Order Expiry Schedule")
    click.echo("=" * 38)
    click.echo()

    try:
        client = await _connect(settings)
        request = expiry_request(settings, limit)

        click.echo(f"Creating schedule: {EXPIRY_SCHEDULE_ID}")
        click.echo(f"Interval: {interval_minutes} minutes")
        click.echo(f"Payment window: {request.ttl_hours} hours")
        click.echo()

        schedule = Schedule(
            action=ScheduleActionStartWorkflow(
                ExpirePendingOrdersWorkflow.run,
                request,
                id=f"{EXPIRY_SCHEDULE_ID}-{{.ScheduledTime.Unix}}",
                task_queue=settings.temporal_task_queue,
            ),
            spec=ScheduleSpec(
                intervals=[
                    ScheduleIntervalSpec(
                        every=timedelta(minutes=interval_minutes)
                    )
                ]
            ),
            policy=SchedulePolicy(overlap=ScheduleOverlapPolicy.SKIP),
        )
        await client.create_schedule(EXPIRY_SCHEDULE_ID, schedule)

        click.echo("Schedule created successfully!")
        click.echo(f"Expiry will run every {interval_minutes} minutes")
    except Exception as e:
        logger.error(f"Schedule creation failed: {e}", exc_info=True)
        click.echo(f"Schedule creation failed: {e}", err=True)
        sys.exit(1)


async def _run_expiry_once(settings: Settings, limit: Optional[int]) -> None:
    """Expire unpaid orders now and wait for the summary."""
    try:
        client = await _connect(settings)
        workflow_id = f"pending-order-expiry-manual-{uuid.uuid4()}"
        click.echo(f"Starting expiry workflow: {workflow_id}")
        summary = await client.execute_workflow(
            ExpirePendingOrdersWorkflow.run,
            expiry_request(settings, limit),
            id=workflow_id,
            task_queue=settings.temporal_task_queue,
        )
        click.echo(
            f"Expiry finished: total={summary.total} "
            f"cancelled={summary.cancelled} "
            f"restocked={summary.restocked_quantity} errors={summary.errors}"
        )
        for detail in summary.details:
            if detail.error:
                click.echo(
                    f"  {detail.order_number or detail.order_id}: "
                    f"{detail.error}"
                )
    except Exception as e:
        logger.error(f"Expiry run failed: {e}", exc_info=True)
        click.echo(f"Expiry run failed: {e}", err=True)
        sys.exit(1)


@click.group()
def cli() -> None:
    """Manage the periodic order jobs via Temporal."""
    setup_logging()


@cli.command()
@click.option(
    "--interval-minutes",
    default=None,
    type=int,
    help="Sweep interval in minutes (defaults to SWEEP_INTERVAL_MINUTES)",
)
@click.option(
    "--limit",
    default=None,
    type=int,
    help="Orders per sweep (defaults to SWEEP_LIMIT)",
)
def start(interval_minutes: Optional[int], limit: Optional[int]) -> None:
    """Create the sweep schedule."""
    settings = get_settings()
    asyncio.run(
        _create_schedule(
            settings, interval_minutes or settings.sweep_interval_minutes, limit
        )
    )


@cli.command()
def stop() -> None:
    """Delete the sweep schedule."""
    asyncio.run(_delete_schedule(get_settings()))


@cli.command()
def status() -> None:
    """Show the sweep schedule."""
    asyncio.run(_describe_schedule(get_settings()))


@cli.command("run-once")
@click.option("--limit", default=None, type=int, help="Orders to sweep")
def run_once(limit: Optional[int]) -> None:
    """Run a single sweep immediately and print its summary."""
    asyncio.run(_run_once(get_settings(), limit))


@cli.group()
def expiry() -> None:
    """Manage the expiry of unpaid online orders."""


@expiry.command("start")
@click.option(
    "--interval-minutes",
    default=None,
    type=int,
    help="Expiry interval in minutes (defaults to EXPIRY_INTERVAL_MINUTES)",
)
@click.option(
    "--limit",
    default=None,
    type=int,
    help="Orders per run (defaults to EXPIRY_LIMIT)",
)
def expiry_start(
    interval_minutes: Optional[int], limit: Optional[int]
) -> None:
    """Create the expiry schedule."""
    settings = get_settings()
    asyncio.run(
        _create_expiry_schedule(
            settings,
            interval_minutes or settings.expiry_interval_minutes,
            limit,
        )
    )


@expiry.command("stop")
def expiry_stop() -> None:
    """Delete the expiry schedule."""
    asyncio.run(
        _delete_schedule(
            get_settings(),
            EXPIRY_SCHEDULE_ID,
            "Pending Order Expiry Schedule",
        )
    )


@expiry.command("run-once")
@click.option("--limit", default=None, type=int, help="Orders to expire")
def expiry_run_once(limit: Optional[int]) -> None:
    """Expire unpaid orders immediately and print the summary."""
    asyncio.run(_run_expiry_once(get_settings(), limit))


def main() -> None:
    """Entry point for the storefront-sweep console script."""
    cli()


if __name__ == "__main__":
    main()
