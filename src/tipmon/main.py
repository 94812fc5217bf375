from __future__ import annotations

import argparse
import logging
import os
import time

from .config import load_config
from .runner import Runner, build_runner


def build_arg_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="tipmon", description="Listing Tip Monitor (incremental listing poller)")
    p.add_argument("--config", required=True, help="Path to JSON config file")
    p.add_argument(
        "--log-level",
        default=None,
        help="Log level (DEBUG/INFO/WARNING/ERROR). Defaults to env TIPMON_LOG_LEVEL or INFO",
    )
    p.add_argument(
        "--status-interval",
        type=int,
        default=None,
        help="Daemon heartbeat interval seconds. Defaults to env TIPMON_STATUS_INTERVAL_SECONDS or 60. Set 0 to disable.",
    )

    mode = p.add_mutually_exclusive_group(required=False)
    mode.add_argument("--once", action="store_true", help="Run one poll cycle and exit (seeds the tip only)")
    mode.add_argument("--daemon", action="store_true", help="Run forever with poll interval")
    return p


def _resolve_log_level(value: str | None) -> int:
    v = (value or "").strip().upper()
    if not v:
        return logging.INFO
    level = logging.getLevelNamesMapping().get(v)
    if isinstance(level, int):
        return level
    return logging.INFO


def _monitors_summary(runner: Runner) -> str:
    parts = [f"{name}({monitor.path}, tip_max={monitor.tip.max_size})" for name, monitor in runner.monitors]
    return "; ".join(parts) if parts else "<none>"


def _handlers_summary(runner: Runner) -> str:
    if not runner.monitors:
        return "<none>"
    _, monitor = runner.monitors[0]
    return monitor.handler.channel()


def _run_daemon(runner: Runner, *, poll_interval_seconds: int, status_interval: int, logger: logging.Logger) -> None:
    cycle_id = 0
    last_summary_logged_at = 0.0
    next_heartbeat_at = time.monotonic() + status_interval if status_interval > 0 else float("inf")
    acc = {"delivered": 0, "monitor_errors": 0}

    while True:
        cycle_id += 1
        try:
            report = runner.run_once()
        except Exception:  # noqa: BLE001
            logger.exception("cycle crashed: id=%d", cycle_id)
            time.sleep(5)
            continue

        now = time.monotonic()
        acc["delivered"] += report.delivered
        acc["monitor_errors"] += report.monitor_errors

        should_log_cycle = (
            status_interval <= 0
            or report.monitor_errors > 0
            or (now - last_summary_logged_at) >= max(1, status_interval)
        )
        if should_log_cycle:
            logger.info(
                "cycle summary: id=%d duration_ms=%d delivered=%d monitor_errors=%d dispatch_backlog=%d",
                cycle_id,
                report.duration_ms,
                acc["delivered"],
                acc["monitor_errors"],
                report.dispatch_backlog,
            )
            acc = {k: 0 for k in acc}
            last_summary_logged_at = now

        sleep_end = time.monotonic() + poll_interval_seconds
        while True:
            now = time.monotonic()
            if now >= sleep_end:
                break

            if status_interval > 0 and now >= next_heartbeat_at:
                logger.info(
                    "daemon alive: cycles=%d next_poll_in=%ds last_duration_ms=%d last_delivered=%d last_monitor_errors=%d "
                    "dispatch_backlog=%d",
                    cycle_id,
                    max(0, int(sleep_end - now)),
                    report.duration_ms,
                    report.delivered,
                    report.monitor_errors,
                    runner.dispatcher.pending,
                )
                next_heartbeat_at = now + status_interval

            remaining_s = sleep_end - now
            if status_interval > 0:
                time.sleep(min(remaining_s, max(0.2, next_heartbeat_at - now)))
            else:
                time.sleep(min(remaining_s, 1.0))


def main(argv: list[str] | None = None) -> int:
    args = build_arg_parser().parse_args(argv)
    log_level = _resolve_log_level(args.log_level or os.environ.get("TIPMON_LOG_LEVEL"))
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )
    logger = logging.getLogger("tipmon")

    config = load_config(args.config)
    runner = build_runner(config)

    status_interval = args.status_interval
    if status_interval is None:
        try:
            status_interval = int(os.environ.get("TIPMON_STATUS_INTERVAL_SECONDS") or 60)
        except ValueError:
            status_interval = 60
    status_interval = max(0, int(status_interval))

    mode = "daemon" if args.daemon and not args.once else "once"
    logger.info("tipmon start: mode=%s config=%s", mode, args.config)
    logger.info(
        "config: poll_interval_seconds=%d dispatch_workers=%d dispatch_backlog_warn=%d base_url=%s",
        config.poll_interval_seconds,
        config.dispatch_workers,
        config.dispatch_backlog_warn,
        config.operator.base_url,
    )
    logger.info("monitors: %s", _monitors_summary(runner))
    logger.info("handlers: %s", _handlers_summary(runner))
    if not runner.monitors:
        logger.warning("no monitors configured; nothing will be polled")

    try:
        if mode == "once":
            report = runner.run_once()
            logger.info(
                "once done: duration_ms=%d monitors=%d delivered=%d monitor_errors=%d",
                report.duration_ms,
                len(report.monitors),
                report.delivered,
                report.monitor_errors,
            )
            return 1 if report.monitor_errors else 0

        poll_interval_seconds = max(1, config.poll_interval_seconds)
        logger.info(
            "daemon: poll_interval_seconds=%d status_interval_seconds=%d",
            poll_interval_seconds,
            status_interval,
        )
        _run_daemon(runner, poll_interval_seconds=poll_interval_seconds, status_interval=status_interval, logger=logger)
    except KeyboardInterrupt:
        logger.info("interrupted; draining dispatcher")
    finally:
        runner.close()
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
