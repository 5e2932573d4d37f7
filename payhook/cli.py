from datetime import datetime, timezone

import click
import sqlalchemy as sa
from flask.cli import with_appcontext

from payhook.extensions import db
from payhook.models import (
    PaymentEvent,
    Subscription,
    STATUS_RECORDED,
    STATUS_PROCESSED,
    STATUS_PROCESSED_WITH_ERROR,
)

_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)


@click.group()
def events():
    """Webhook ledger inspection."""


@events.command("list")
@click.option(
    "--status",
    type=click.Choice([STATUS_RECORDED, STATUS_PROCESSED, STATUS_PROCESSED_WITH_ERROR]),
    default=None,
)
@click.option("--limit", type=int, default=20, show_default=True)
@with_appcontext
def events_list(status, limit):
    q = db.session.query(PaymentEvent).order_by(PaymentEvent.id.desc())
    if status:
        q = q.filter(PaymentEvent.status == status)
    rows = q.limit(limit).all()
    if not rows:
        click.echo("No events")
        return
    for ev in rows:
        line = f"{ev.event_id}\t{ev.event_type}\t{ev.status}\torder={ev.order_id or '-'}\tattempts={ev.attempts}"
        if ev.error_message:
            line += f"\terror={ev.error_message}"
        click.echo(line)


@events.command("reset")
@click.argument("event_id")
@with_appcontext
def events_reset(event_id):
    """Return an event to "recorded" so its next redelivery is processed again."""
    ev = db.session.query(PaymentEvent).filter_by(event_id=event_id).one_or_none()
    if not ev:
        raise click.ClickException(f"Event {event_id} not found")
    # Backdate the claim so the next redelivery can take it immediately
    db.session.execute(
        sa.update(PaymentEvent)
        .where(PaymentEvent.id == ev.id)
        .values(status=STATUS_RECORDED, error_message=None, processed_at=None, claimed_at=_EPOCH)
        .execution_options(synchronize_session=False)
    )
    db.session.commit()
    click.echo(f"Event {event_id} reset to {STATUS_RECORDED}")


@click.group()
def subscriptions():
    """Subscription inspection."""


@subscriptions.command("show")
@click.argument("order_id")
@with_appcontext
def subscriptions_show(order_id):
    sub = db.session.query(Subscription).filter_by(order_id=order_id).one_or_none()
    if not sub:
        raise click.ClickException(f"No subscription for order {order_id}")
    click.echo(
        f"id={sub.id} user_id={sub.user_id} order_id={sub.order_id} payment_id={sub.payment_id or '-'} "
        f"payment_status={sub.payment_status} status={sub.status}"
    )


def register_cli(app):
    app.cli.add_command(events)
    app.cli.add_command(subscriptions)
