from dotenv import load_dotenv
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

load_dotenv(".env")

import argparse

from subscription_engine.core.database import SessionLocal
from subscription_engine.services.messaging import TwilioWhatsAppTransport, get_transport
from subscription_engine.services.reminders import run_reminder_sweep
from subscription_engine.core.settings import settings


def main() -> None:
    parser = argparse.ArgumentParser(description="Run one reminder sweep, or send a single test message.")
    parser.add_argument("--to", help="Send one test message to this number instead of sweeping")
    args = parser.parse_args()

    if args.to:
        transport = get_transport()
        if not isinstance(transport, TwilioWhatsAppTransport):
            print(f"REMINDER_TRANSPORT={settings.reminder_transport}; message is only logged")
        message_id = transport.send(args.to, f"Test message from {settings.brand_name}.")
        print(message_id)
        return

    db = SessionLocal()
    try:
        report = run_reminder_sweep(db, get_transport())
    finally:
        db.close()
    print(report.as_dict())


main()
