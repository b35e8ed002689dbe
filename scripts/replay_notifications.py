"""Give parked (`FAILED`) notification outbox rows another round of attempts.

The running API's outbox relay picks the rows up on its next pass; use
`--deliver-now` to send them from this process instead.
"""

import argparse
import asyncio

from storeflight.common.config import Settings
from storeflight.common.db import make_engine, make_session_factory
from storeflight.common.outbox import requeue_failed_events
from storeflight.services.notification.models import OutboxEvent
from storeflight.services.notification.service import NotificationService, ResendMailer


def main() -> None:
    parser = argparse.ArgumentParser(description="Requeue failed reservation e-mails.")
    parser.add_argument("--reservation-id", default=None, help="only rows for this reservation")
    parser.add_argument("--dry-run", action="store_true")
    parser.add_argument("--deliver-now", action="store_true")
    args = parser.parse_args()

    settings = Settings()
    session_factory = make_session_factory(make_engine(settings.database_url))
    with session_factory() as db:
        count = requeue_failed_events(db, OutboxEvent, aggregate_id=args.reservation_id)
        if args.dry_run:
            db.rollback()
            print(f"Would requeue {count} failed notification(s).")
            return
        db.commit()
    print(f"Requeued {count} failed notification(s).")

    if args.deliver_now and count:
        notifier = NotificationService(
            session_factory,
            ResendMailer(settings.resend_api_key, settings.email_from, settings.resend_api_url),
            admin_email=settings.admin_email,
            max_attempts=settings.outbox_max_attempts,
            service_name=settings.service_name,
        )
        sent = asyncio.run(notifier.relay_once())
        print(f"Delivered {sent} notification(s).")


if __name__ == "__main__":
    main()
