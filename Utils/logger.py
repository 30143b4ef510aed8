import os
import logging
from logging.handlers import TimedRotatingFileHandler
import gzip
import glob
import time
import re
from datetime import datetime
from collections import defaultdict
import click
from flask.cli import with_appcontext
from flask.logging import default_handler


LOG_FORMAT = "%(asctime)s [%(levelname)s] in %(module)s: %(message)s"


def _rotating_handler(log_dir, filename, level, formatter, backup_count):
    handler = TimedRotatingFileHandler(
        os.path.join(log_dir, filename), when="midnight", interval=1,
        backupCount=backup_count, encoding="utf-8", delay=True
    )
    handler.suffix = "%Y-%m-%d"
    handler.setFormatter(formatter)
    handler.setLevel(level)
    return handler


# ==================================================
# LOGGING SETUP
# ==================================================
def setup_logging(app, settings):
    """Configure app, access and payments loggers for the Flask app."""
    # Prevent duplicate log handlers when Flask auto-reloads
    if getattr(app, "_logging_configured", False):
        return app.logger
    app._logging_configured = True

    formatter = logging.Formatter(LOG_FORMAT)
    access_formatter = logging.Formatter("%(asctime)s - %(message)s")
    log_dir = settings.log_dir

    app_logger = app.logger
    app_logger.setLevel(logging.INFO)
    access_logger = logging.getLogger("access")
    access_logger.setLevel(logging.INFO)
    # Gateway sessions, webhooks, verifications and refunds
    payments_logger = logging.getLogger("payments")
    payments_logger.setLevel(logging.INFO)

    # -------------------------
    # FILE HANDLERS (skipped under test)
    # -------------------------
    if not settings.testing:
        os.makedirs(log_dir, exist_ok=True)
        app_logger.addHandler(_rotating_handler(log_dir, "app.log", logging.INFO, formatter, 14))
        app_logger.addHandler(_rotating_handler(log_dir, "error.log", logging.ERROR, formatter, 30))
        access_logger.addHandler(_rotating_handler(log_dir, "access.log", logging.INFO, access_formatter, 7))
        payments_logger.addHandler(_rotating_handler(log_dir, "payments.log", logging.INFO, formatter, 30))

    # -------------------------
    # CONSOLE HANDLERS
    # -------------------------
    # App, payments and module loggers (Controllers.*, Utils.*) reach the
    # console through root; access logs keep their own short format.
    app_logger.removeHandler(default_handler)
    root_logger = logging.getLogger()
    if not root_logger.handlers:
        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        console_handler.setLevel(logging.INFO)
        root_logger.addHandler(console_handler)
    root_logger.setLevel(logging.INFO)

    if not any(type(h) is logging.StreamHandler for h in access_logger.handlers):
        access_console = logging.StreamHandler()
        access_console.setFormatter(access_formatter)
        access_console.setLevel(logging.INFO)
        access_logger.addHandler(access_console)
    access_logger.propagate = False

    # -------------------------
    # LOG HOOKS & TASKS
    # -------------------------
    register_access_log_hook(app, access_logger)
    if not settings.testing:
        cleanup_old_logs(app, log_dir)
    register_log_summary_command(app, log_dir)

    app_logger.info("🚀 Logging initialized successfully.")
    return app_logger


# ==================================================
# ACCESS LOGGING
# ==================================================
def register_access_log_hook(app, access_logger):
    """Logs each incoming request (IP, method, URL) into access.log."""
    from flask import request

    @app.before_request
    def log_request_info():
        try:
            access_logger.info(f"{request.remote_addr} {request.method} {request.url}")
        except Exception as e:
            app.logger.warning(f"⚠️ Failed to log request: {e}")


# ==================================================
# OLD LOG CLEANUP & COMPRESSION
# ==================================================
def cleanup_old_logs(app, folder="logs", days=7):
    """Compress rotated logs and delete compressed logs older than `days`."""
    now = time.time()
    for log_file in glob.glob(f"{folder}/*.log.*"):
        if log_file.endswith(".gz"):
            continue
        try:
            with open(log_file, "rb") as f_in:
                with gzip.open(f"{log_file}.gz", "wb") as f_out:
                    f_out.writelines(f_in)
            os.remove(log_file)
            app.logger.info(f"🗜️ Compressed log: {log_file}")
        except OSError as e:
            app.logger.error(f"❌ Failed to compress {log_file}: {e}")

    for gz_file in glob.glob(f"{folder}/*.gz"):
        if os.stat(gz_file).st_mtime < now - days * 86400:
            os.remove(gz_file)
            app.logger.info(f"🧹 Deleted old log: {gz_file}")


# ==================================================
# CLI LOG SUMMARY COMMAND
# ==================================================
LOG_PATTERN = re.compile(r"^(\d{4}-\d{2}-\d{2}).*\[(INFO|ERROR|WARNING)\]")


def summarize_log_dir(log_dir, days=7):
    """Count INFO/WARNING/ERROR lines per day across app, error and payments logs."""
    summary = defaultdict(lambda: {"INFO": 0, "ERROR": 0, "WARNING": 0})
    if not os.path.isdir(log_dir):
        return {}
    now = datetime.now()

    for filename in os.listdir(log_dir):
        if not filename.startswith(("app.log", "error.log", "payments.log")):
            continue

        path = os.path.join(log_dir, filename)
        mtime = datetime.fromtimestamp(os.path.getmtime(path))
        if (now - mtime).days > days:
            continue

        opener = gzip.open if filename.endswith(".gz") else open
        with opener(path, "rt", encoding="utf-8", errors="ignore") as f:
            for line in f:
                match = LOG_PATTERN.match(line)
                if match:
                    date_str, level = match.groups()
                    summary[date_str][level] += 1

    return dict(sorted(summary.items()))


def register_log_summary_command(app, log_dir):
    """Adds 'flask logs:summary' CLI command to view log stats."""

    @click.command("logs:summary")
    @with_appcontext
    @click.option("--days", default=7, help="Days of logs to summarize")
    def summarize_logs(days):
        summary = summarize_log_dir(log_dir, days)

        if not summary:
            click.echo("No log entries found in the specified time range.")
            return

        click.echo("\n📊 Log Summary\n──────────────────────────────")
        total_info = total_error = total_warn = 0

        for date_str, counts in summary.items():
            total_info += counts["INFO"]
            total_error += counts["ERROR"]
            total_warn += counts["WARNING"]
            click.echo(
                f"{date_str}  INFO: {counts['INFO']:<5}  WARNING: {counts['WARNING']:<5}  ERROR: {counts['ERROR']:<5}"
            )

        click.echo("──────────────────────────────")
        click.echo(
            f"Total INFO: {total_info}   WARNING: {total_warn}   ERROR: {total_error}"
        )

    app.cli.add_command(summarize_logs)
