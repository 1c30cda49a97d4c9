"""Command line entrypoint for the sandbox purge tooling."""

import json
import logging
import sys
from datetime import datetime, timezone
from typing import Any, Callable, Dict

import click

from .cf import CFClient
from .config import (
    DEFAULT_DELETE_JOB_TIMEOUT,
    DEFAULT_DELETE_POLL_INTERVAL,
    DEFAULT_MAX_DELETE_ATTEMPTS,
    DEFAULT_NOTIFY_DAYS,
    DEFAULT_PURGE_DAYS,
    Options,
    SMTPOptions,
)
from .context import RunContext
from .errors import Cancelled, ConfigurationError, SandboxPurgeError
from .events import EventLog
from .inventory import list_org_resources, list_sandbox_orgs
from .lifecycle import list_purge_spaces, truncate_day
from .mail import SMTPMailer
from .runner import run

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))
    root.addHandler(handler)
    # urllib3 logs every request at DEBUG
    logging.getLogger("urllib3").setLevel(logging.WARNING)


def api_options(func: Callable) -> Callable:
    """Options shared by every command that talks to the platform API."""
    decorators = [
        click.option('--api-address', envvar='API_ADDRESS', default='', help='Platform API URL'),
        click.option('--client-id', envvar='CLIENT_ID', default='', help='UAA client ID'),
        click.option('--client-secret', envvar='CLIENT_SECRET', default='', help='UAA client secret'),
        click.option('--org-prefix', envvar='ORG_PREFIX', default='', help='Name prefix of sandbox orgs'),
        click.option('--notify-days', envvar='NOTIFY_DAYS', type=int, default=DEFAULT_NOTIFY_DAYS, show_default=True),
        click.option('--purge-days', envvar='PURGE_DAYS', type=int, default=DEFAULT_PURGE_DAYS, show_default=True),
        click.option('--disable-purge', envvar='DISABLE_PURGE', is_flag=True, default=False, help='Only notify, never purge'),
        click.option('--time-starts-at', envvar='TIME_STARTS_AT', default='', help='RFC 3339 floor for resource ages'),
        click.option('--json', 'output_json', is_flag=True, help='Output machine-readable JSON'),
    ]
    for decorator in reversed(decorators):
        func = decorator(func)
    return func


def _json_output(data: Dict[str, Any]) -> None:
    """Output data as JSON."""
    click.echo(json.dumps(data, indent=None, default=str))


def _human_output(message: str) -> None:
    """Output human-readable message."""
    if not click.get_current_context().obj.get('json', False):
        click.echo(message)


def _output(data: Dict[str, Any], output_json: bool, message: str) -> None:
    if output_json:
        _json_output(data)
    else:
        _human_output(message)


@click.group()
@click.option('--json', 'output_json', is_flag=True, help='Output machine-readable JSON')
@click.option('--verbose', '-v', is_flag=True, help='Enable debug logging')
@click.pass_context
def main(ctx, output_json, verbose):
    """Notify owners of ageing sandbox spaces and purge expired ones."""
    ctx.ensure_object(dict)
    ctx.obj['json'] = output_json
    setup_logging(verbose)


@main.command('run')
@api_options
@click.option('--dry-run/--no-dry-run', envvar='DRY_RUN', default=True, show_default=True,
              help='Log intended actions without sending mail or changing spaces')
@click.option('--sandbox-quota-name', envvar='SANDBOX_QUOTA_NAME', default='', help='Space quota for recreated spaces')
@click.option('--mail-sender', envvar='MAIL_SENDER', default='')
@click.option('--notify-mail-subject', envvar='NOTIFY_MAIL_SUBJECT', default='')
@click.option('--purge-mail-subject', envvar='PURGE_MAIL_SUBJECT', default='')
@click.option('--smtp-host', envvar='SMTP_HOST', default='')
@click.option('--smtp-port', envvar='SMTP_PORT', type=int, default=587, show_default=True)
@click.option('--smtp-user', envvar='SMTP_USER', default='')
@click.option('--smtp-pass', envvar='SMTP_PASS', default='')
@click.option('--smtp-cert', envvar='SMTP_CERT', default='', help='PEM CA certificate for the SMTP server')
@click.option('--max-delete-attempts', envvar='MAX_DELETE_ATTEMPTS', type=int,
              default=DEFAULT_MAX_DELETE_ATTEMPTS, show_default=True)
@click.option('--delete-poll-interval', envvar='DELETE_POLL_INTERVAL', type=float,
              default=DEFAULT_DELETE_POLL_INTERVAL, show_default=True)
@click.option('--delete-job-timeout', envvar='DELETE_JOB_TIMEOUT', type=float,
              default=DEFAULT_DELETE_JOB_TIMEOUT, show_default=True)
@click.option('--stop-org-on-error', envvar='STOP_ORG_ON_ERROR', is_flag=True, default=False,
              help='Skip the rest of an org after its first purge failure')
@click.option('--events-file', type=click.Path(dir_okay=False), help='Append run events as NDJSON')
@click.option('--timeout', type=float, help='Abort the run after this many seconds')
@click.pass_context
def run_cmd(ctx, api_address, client_id, client_secret, org_prefix, notify_days, purge_days, disable_purge,
            time_starts_at, output_json, dry_run, sandbox_quota_name, mail_sender,
            notify_mail_subject, purge_mail_subject, smtp_host, smtp_port, smtp_user, smtp_pass, smtp_cert,
            max_delete_attempts, delete_poll_interval, delete_job_timeout, stop_org_on_error, events_file,
            timeout):
    """Notify and purge sandbox spaces."""
    output_json = output_json or ctx.obj.get('json', False)
    opts = Options(
        api_address=api_address,
        client_id=client_id,
        client_secret=client_secret,
        org_prefix=org_prefix,
        notify_days=notify_days,
        purge_days=purge_days,
        dry_run=dry_run,
        disable_purge=disable_purge,
        time_starts_at=time_starts_at,
        sandbox_quota_name=sandbox_quota_name,
        mail_sender=mail_sender,
        notify_mail_subject=notify_mail_subject,
        purge_mail_subject=purge_mail_subject,
        max_delete_attempts=max_delete_attempts,
        delete_poll_interval=delete_poll_interval,
        delete_job_timeout=delete_job_timeout,
        stop_org_on_error=stop_org_on_error,
        smtp=SMTPOptions(
            smtp_host=smtp_host,
            smtp_port=smtp_port,
            smtp_user=smtp_user,
            smtp_pass=smtp_pass,
            smtp_cert=smtp_cert,
        ),
    )

    try:
        opts.validate()
    except ConfigurationError as e:
        _output({'error': str(e)}, output_json, f"❌ {e}")
        sys.exit(2)

    run_ctx = RunContext(timeout=timeout)
    try:
        cf = CFClient.from_credentials(opts.api_address, opts.client_id, opts.client_secret, ctx=run_ctx)
        summary = run(cf, opts, SMTPMailer(), ctx=run_ctx, events=EventLog(path=events_file))
    except (Cancelled, SandboxPurgeError) as e:
        _output({'error': str(e)}, output_json, f"❌ Run failed: {e}")
        sys.exit(1)
    except KeyboardInterrupt:
        run_ctx.cancel()
        _output({'error': 'interrupted'}, output_json, "❌ Interrupted")
        sys.exit(130)

    if output_json:
        _json_output(summary.to_dict())
    else:
        mode = " (dry run)" if opts.dry_run else ""
        _human_output(f"Checked {summary.orgs_checked} org(s){mode}")
        _human_output(f"Notified: {len(summary.notified)}  Purged: {len(summary.purged)}  Failed: {len(summary.errors)}")
        for error in summary.errors:
            where = f"{error.org}/{error.space}" if error.space else error.org
            _human_output(f"❌ {where}: {error.kind}: {error.message}")

    sys.exit(0 if summary.ok else 1)


@main.command('plan')
@api_options
@click.pass_context
def plan_cmd(ctx, api_address, client_id, client_secret, org_prefix, notify_days, purge_days, disable_purge,
             time_starts_at, output_json):
    """Show which spaces would be notified or purged, without side effects."""
    output_json = output_json or ctx.obj.get('json', False)
    opts = Options(
        api_address=api_address,
        client_id=client_id,
        client_secret=client_secret,
        org_prefix=org_prefix,
        notify_days=notify_days,
        purge_days=purge_days,
        disable_purge=disable_purge,
        time_starts_at=time_starts_at,
    )
    try:
        opts.validate()
        floor_time = opts.floor_time()
    except ConfigurationError as e:
        _output({'error': str(e)}, output_json, f"❌ {e}")
        sys.exit(2)

    try:
        cf = CFClient.from_credentials(opts.api_address, opts.client_id, opts.client_secret)
        orgs = list_sandbox_orgs(cf, opts.org_prefix)
    except SandboxPurgeError as e:
        _output({'error': str(e)}, output_json, f"❌ {e}")
        sys.exit(1)

    now = truncate_day(datetime.now(timezone.utc))

    plan = []
    failed = False
    for org in orgs:
        try:
            resources = list_org_resources(cf, org)
        except SandboxPurgeError as e:
            failed = True
            plan.append({'org': org.name, 'error': str(e)})
            continue
        to_notify, to_purge = list_purge_spaces(
            resources.spaces, resources.apps, resources.instances, now,
            opts.notify_days, opts.purge_days, disable_purge=opts.disable_purge, floor_time=floor_time,
        )
        plan.append({
            'org': org.name,
            'notify': [{'space': d.space.name, 'since': d.timestamp.date().isoformat()} for d in to_notify],
            'purge': [{'space': d.space.name, 'since': d.timestamp.date().isoformat()} for d in to_purge],
        })

    if output_json:
        _json_output({'orgs': plan})
    else:
        for entry in plan:
            if 'error' in entry:
                _human_output(f"{entry['org']}: ❌ {entry['error']}")
                continue
            _human_output(f"{entry['org']}:")
            for item in entry['notify']:
                _human_output(f"  notify  {item['space']} (since {item['since']})")
            for item in entry['purge']:
                _human_output(f"  purge   {item['space']} (since {item['since']})")
    sys.exit(1 if failed else 0)


if __name__ == '__main__':
    main()
