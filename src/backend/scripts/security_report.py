"""
Print the security report.

Usage:
    python scripts/security_report.py            # overview
    python scripts/security_report.py --ip=1.2.3.4  # one address
"""

import argparse
import asyncio

import _common  # noqa: F401

from db.session import async_session_maker, close_db
from schemas.security import AddressReport, SecurityOverview
from services.security_report import SecurityReportService


def _ts(value) -> str:
    return value.strftime("%Y-%m-%d %H:%M:%S") if value else "-"


def print_overview(report: SecurityOverview) -> None:
    totals = report.totals
    print("=== Security overview ===")
    print(f"Total events:        {totals.total_events}")
    print(f"High severity:       {totals.high_severity}")
    print(f"Critical severity:   {totals.critical_severity}")
    print(f"Bot detections:      {totals.bot_detections}")
    print(f"Rate limit hits:     {totals.rate_limits}")
    print(f"Last 24 hours:       {totals.last_24h}")
    print(f"Latest event:        {_ts(totals.latest_event)}")

    print("\n=== Top addresses by events ===")
    if not report.top_addresses:
        print("  (none)")
    for row in report.top_addresses:
        print(f"  {row.ip:<40} {row.event_count:>6}  {', '.join(row.event_types)}")

    print("\n=== Blacklist ===")
    if not report.blacklist:
        print("  (empty)")
    for entry in report.blacklist:
        print(
            f"  {entry.ip:<40} {entry.status:<10} until {_ts(entry.blocked_until)}"
            f"  by {entry.created_by or '-'}: {entry.reason}"
        )

    print("\n=== Highest bot scores ===")
    if not report.top_scores:
        print("  (none)")
    for score in report.top_scores:
        print(
            f"  {score.ip:<40} {score.bot_score:>3} ({score.risk:<7}) "
            f"requests={score.request_count} suspicious={score.suspicious_patterns}"
        )
        print(f"      {score.user_agent[:80] or '(no user-agent)'}")

    print("\n=== Recent events ===")
    for event in report.recent_events:
        print(
            f"  {_ts(event.created_at)}  {event.severity:<8} {event.event_type:<20} "
            f"{event.ip:<40} {event.details or ''}"
        )


def print_address(report: AddressReport) -> None:
    print(f"=== Security report for {report.ip} ===")
    print(f"Blacklisted: {'yes' if report.blocked else 'no'}")

    print("\nBot scores:")
    if not report.scores:
        print("  (none)")
    for score in report.scores:
        print(
            f"  {score.bot_score:>3}  requests={score.request_count} "
            f"suspicious={score.suspicious_patterns}  {score.user_agent[:80] or '(no user-agent)'}"
        )

    print(f"\nEvents ({len(report.events)}):")
    for event in report.events:
        print(
            f"  {_ts(event.created_at)}  {event.severity:<8} {event.event_type:<20} "
            f"{event.endpoint or '-':<30} {event.details or ''}"
        )


async def main(ip: str | None) -> None:
    try:
        async with async_session_maker() as db:
            service = SecurityReportService(db)
            if ip:
                print_address(await service.events_for_address(ip))
            else:
                print_overview(await service.overview())
    finally:
        await close_db()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Security report")
    parser.add_argument("--ip", help="Show the report for a single address")
    args = parser.parse_args()

    asyncio.run(main(args.ip))
