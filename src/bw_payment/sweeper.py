"""One-shot reconciliation sweep for stale pending payments.

Run from cron or a scheduler:
    python -m src.bw_payment.sweeper --limit 500

Exit status is 1 when any payment could not be expired.
"""

import logging
import sys

import click
import uvloop

from config.settings import settings
from src.bw_common.database import async_session_factory, engine
from src.bw_payment.application.schemas import ExpireReport
from src.bw_payment.application.service import PaymentService


async def _sweep(limit: int) -> ExpireReport:
    service = PaymentService()
    try:
        async with async_session_factory() as db:
            return await service.expire_stale(db, limit=limit)
    finally:
        await engine.dispose()


@click.command()
@click.option("--limit", default=200, show_default=True, type=click.IntRange(min=1),
              help="Maximum payments to examine in this run")
def main(limit: int) -> None:
    """Fail pending payments older than PENDING_PAYMENT_TIMEOUT_MINUTES."""
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    report = uvloop.run(_sweep(limit))
    click.echo(
        f"examined={report.examined} expired={report.expired}"
        f" already_resolved={report.already_resolved} errors={len(report.errors)}"
    )
    for err in report.errors:
        click.echo(f"  {err}", err=True)
    sys.exit(1 if report.errors else 0)


if __name__ == "__main__":
    main()
