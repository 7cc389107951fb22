import argparse
import threading

from . import __version__
from .api import RemoteAuthority
from .config import Settings
from .delivery import LogTransport
from .env import load_env
from .errors import AnnouncerError
from .logger import configure_logger, get_logger
from .retry import RetryError
from .schema import format_interval, interval_minutes, parse_interval
from .service import AnnouncementService


def _settings() -> Settings:
    try:
        settings = Settings.from_env()
    except AnnouncerError as e:
        raise SystemExit(str(e))
    configure_logger(settings.log_level, settings.log_dir)
    return settings


def _one_shot_service(settings: Settings) -> AnnouncementService:
    api = RemoteAuthority.from_settings(settings)
    return AnnouncementService.from_settings(settings, api, LogTransport(), group_pause=0.0)


def cmd_run(args: argparse.Namespace) -> None:
    settings = _settings()
    api = RemoteAuthority.from_settings(settings)
    service = AnnouncementService.from_settings(settings, api, LogTransport())
    logger = get_logger()

    service.start()
    print("Announcer running. Press Ctrl+C to stop.")
    try:
        threading.Event().wait()
    except KeyboardInterrupt:
        print("Stopping...")
    finally:
        service.stop()
        logger.log_metrics_summary()


def cmd_jobs(args: argparse.Namespace) -> None:
    settings = _settings()
    api = RemoteAuthority.from_settings(settings)
    try:
        jobs = api.list_jobs(args.group)
    except AnnouncerError as e:
        raise SystemExit(str(e))
    if not jobs:
        print("No jobs on the remote authority.")
        return
    print(f"Found {len(jobs)} remote jobs:\n")
    for job in jobs:
        print(f"Remote ID: {job.remote_id}")
        print(f"  Group: {job.group_id}")
        print(f"  Local ID: {job.local_job_id or '-'}")
        print(f"  Interval: {format_interval(job.interval_count, job.unit)}")
        print(f"  Content: {job.content}")
        print()


def cmd_list(args: argparse.Namespace) -> None:
    service = _one_shot_service(_settings())
    try:
        report = service.sync_now(args.group)
        if report is not None and report.error:
            raise SystemExit(f"Sync failed: {report.error}")
        records = service.list_jobs(args.group)
    finally:
        service.stop()

    if not records:
        print(f"No jobs in group {args.group}.")
        return
    for record in records:
        last = record.last_sent_at.strftime("%d/%m/%y %H:%M") if record.last_sent_at else "never"
        preview = record.content if len(record.content) <= 50 else record.content[:50] + "..."
        print(f"[{record.local_job_id}] {preview}")
        print(f"    {format_interval(record.interval_count, record.interval_unit)}, last sent: {last}")


def cmd_add(args: argparse.Namespace) -> None:
    try:
        count, unit = parse_interval(args.every)
    except ValueError as e:
        raise SystemExit(str(e))

    service = _one_shot_service(_settings())
    try:
        # Pull existing ids first so the allocation does not collide
        service.sync_now(args.group)
        local_job_id = service.add_job(args.group, args.content, count, unit)
    except AnnouncerError as e:
        raise SystemExit(f"Could not create job: {e}")
    finally:
        service.stop()
    print(f"Job created: {local_job_id} ({format_interval(count, unit)})")


def cmd_remove(args: argparse.Namespace) -> None:
    service = _one_shot_service(_settings())
    try:
        service.sync_now(args.group)
        record = service.remove_job(args.group, args.id)
    except AnnouncerError as e:
        raise SystemExit(f"Could not remove job: {e}")
    finally:
        service.stop()
    print(f"Job removed: {record.local_job_id} - {record.content[:50]}")


def cmd_parse_interval(args: argparse.Namespace) -> None:
    try:
        count, unit = parse_interval(args.text)
    except ValueError as e:
        raise SystemExit(str(e))
    print(f"{format_interval(count, unit)} ({interval_minutes(count, unit)} minutes)")


def cmd_confirm_group(args: argparse.Namespace) -> None:
    settings = _settings()
    api = RemoteAuthority.from_settings(settings)
    payload = {
        "group_id": args.group,
        "name": args.name,
        "user_id": args.user,
        "is_active": True,
    }
    try:
        api.confirm_group(payload)
    except RetryError as e:
        raise SystemExit(str(e))
    print(f"Group {args.group} confirmed.")


def main(argv=None):
    load_env()
    parser = argparse.ArgumentParser(prog="announcer", description="Recurring group announcements synced with a remote panel")
    parser.add_argument("--version", action="store_true", help="Show version")

    subparsers = parser.add_subparsers(dest="command")
    run = subparsers.add_parser("run", help="Sync jobs and send announcements until interrupted")
    run.set_defaults(func=cmd_run)

    jobs = subparsers.add_parser("jobs", help="List jobs held by the remote authority")
    jobs.add_argument("--group", help="Only jobs of this group")
    jobs.set_defaults(func=cmd_jobs)

    lst = subparsers.add_parser("list", help="Sync one group and list its cached jobs")
    lst.add_argument("--group", required=True, help="Group id")
    lst.set_defaults(func=cmd_list)

    add = subparsers.add_parser("add", help="Create a recurring announcement")
    add.add_argument("--group", required=True, help="Group id")
    add.add_argument("--content", required=True, help="Message to announce")
    add.add_argument("--every", required=True, help="Interval, e.g. 30m, 2h30m, 1d (1 minute to 7 days)")
    add.set_defaults(func=cmd_add)

    rm = subparsers.add_parser("remove", help="Remove an announcement by local id")
    rm.add_argument("--group", required=True, help="Group id")
    rm.add_argument("--id", required=True, help="Local job id")
    rm.set_defaults(func=cmd_remove)

    pi = subparsers.add_parser("parse-interval", help="Show how an interval string is interpreted")
    pi.add_argument("text", help="Interval, e.g. 90m")
    pi.set_defaults(func=cmd_parse_interval)

    cg = subparsers.add_parser("confirm-group", help="Confirm a joined group to the panel (3 attempts)")
    cg.add_argument("--group", required=True, help="Group id")
    cg.add_argument("--name", required=True, help="Group display name")
    cg.add_argument("--user", help="Panel user id that requested the join")
    cg.set_defaults(func=cmd_confirm_group)

    args = parser.parse_args(argv)

    if args.version:
        print(__version__)
        return

    if hasattr(args, "func"):
        args.func(args)
        return

    parser.print_help()


if __name__ == "__main__":
    main()
