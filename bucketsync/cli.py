"""CLI interface for bucketsync."""

import logging
from contextlib import contextmanager, nullcontext
from pathlib import Path
from typing import Any, Callable, Iterator, Optional

import click

from .cli_progress import SyncProgressDisplay
from .config import AccountConfig, Config, config
from .database import create_db_engine
from .exceptions import BucketSyncError
from .output import OutputFormatter
from .storage import S3ClientManager
from .sync import (
    NewSyncPair,
    PairRegistry,
    SessionTracker,
    StateStore,
    SyncDirection,
    SyncOrchestrator,
    SyncPair,
    SyncPlan,
    SyncProgressEvent,
    SyncProgressInfo,
)
from .utils import format_size, format_timestamp

logger = logging.getLogger(__name__)

DIRECTION_CHOICES = [
    "upload_only",
    "download_only",
    "upload",
    "download",
    "push",
    "pull",
]


@contextmanager
def open_orchestrator(
    app_config: Config,
    progress_callback: Optional[Callable[[SyncProgressInfo], None]] = None,
) -> Iterator[SyncOrchestrator]:
    """Open the state database and yield an orchestrator bound to it."""
    engine, session_factory = create_db_engine(app_config.database_url)
    clients = S3ClientManager(app_config)
    orchestrator = SyncOrchestrator(
        PairRegistry(session_factory),
        StateStore(session_factory),
        SessionTracker(session_factory),
        clients.get_client,
        max_workers=app_config.max_workers,
        progress_callback=progress_callback,
    )
    try:
        yield orchestrator
    finally:
        orchestrator.shutdown()
        engine.dispose()


def _pair_rows(pairs: list[SyncPair]) -> list[list[Any]]:
    return [
        [
            p.id,
            p.name,
            str(p.local_path),
            p.account_id,
            p.remote_display,
            p.direction.value,
            "yes" if p.delete_propagation else "no",
            p.status.value,
            format_timestamp(p.last_sync_at),
        ]
        for p in pairs
    ]


PAIR_COLUMNS = [
    "ID",
    "Name",
    "Local path",
    "Account",
    "Remote",
    "Direction",
    "Delete",
    "Status",
    "Last sync",
]


@click.group()
@click.option(
    "--config-dir",
    type=click.Path(file_okay=False, path_type=Path),
    envvar="BUCKETSYNC_CONFIG_DIR",
    help="Configuration directory (default: ~/.config/bucketsync)",
)
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output")
@click.option("--json", is_flag=True, help="Output in JSON format")
@click.option(
    "--verbose",
    "-v",
    is_flag=True,
    help="Enable verbose/debug logging output",
)
@click.version_option()
@click.pass_context
def main(
    ctx: Any,
    config_dir: Optional[Path],
    quiet: bool,
    json: bool,
    verbose: bool,
) -> None:
    """bucketsync - One-way sync between local directories and S3 buckets."""
    # Store settings in context for subcommands to access
    ctx.ensure_object(dict)
    ctx.obj["out"] = OutputFormatter(json_output=json, quiet=quiet)
    ctx.obj["config"] = Config(config_dir) if config_dir else config
    ctx.obj["verbose"] = verbose

    # Configure logging based on verbose flag
    if verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            datefmt="%H:%M:%S",
        )
        logging.getLogger("bucketsync").setLevel(logging.DEBUG)
        # botocore is extremely chatty at DEBUG
        logging.getLogger("botocore").setLevel(logging.INFO)
    else:
        # Set default logging level to WARNING to suppress debug/info messages
        logging.basicConfig(level=logging.WARNING)


@main.group(invoke_without_command=True)
@click.pass_context
def accounts(ctx: Any) -> None:
    """Manage storage accounts.

    Without a subcommand, lists the accounts in config.json in the
    configuration directory.
    """
    if ctx.invoked_subcommand is not None:
        return

    out: OutputFormatter = ctx.obj["out"]
    app_config: Config = ctx.obj["config"]

    try:
        account_list = app_config.list_accounts()
    except BucketSyncError as e:
        out.error(str(e))
        ctx.exit(1)

    if out.json_output:
        out.output_json(
            [
                {
                    "accountId": a.account_id,
                    "endpointUrl": a.endpoint_url,
                    "region": a.region,
                }
                for a in account_list
            ]
        )
        return

    if not account_list:
        out.warning(f"No accounts configured in {app_config.get_config_path()}")
        return

    out.output_table(
        ["Account", "Endpoint", "Region"],
        [
            [a.account_id, a.endpoint_url or "(AWS)", a.region or "-"]
            for a in account_list
        ],
        title="Storage accounts",
    )


@accounts.command("add")
@click.argument("account_id")
@click.option("--endpoint-url", "-e", help="S3-compatible endpoint (default: AWS)")
@click.option("--region", "-r", help="Region name, e.g. auto for R2")
@click.option("--access-key-id", "-k", help="Access key id")
@click.option(
    "--secret-access-key",
    help="Secret access key (prompted for when an access key is given)",
)
@click.pass_context
def accounts_add(
    ctx: Any,
    account_id: str,
    endpoint_url: Optional[str],
    region: Optional[str],
    access_key_id: Optional[str],
    secret_access_key: Optional[str],
) -> None:
    """Add or replace a storage account.

    Without an access key, the default boto3 credential chain is used.
    """
    out: OutputFormatter = ctx.obj["out"]
    app_config: Config = ctx.obj["config"]

    if access_key_id and not secret_access_key:
        secret_access_key = click.prompt("Secret access key", hide_input=True)

    try:
        app_config.save_account(
            AccountConfig(
                account_id=account_id,
                endpoint_url=endpoint_url,
                region=region,
                access_key_id=access_key_id,
                secret_access_key=secret_access_key,
            )
        )
    except (BucketSyncError, OSError) as e:
        out.error(f"Could not save account: {e}")
        ctx.exit(1)

    if out.json_output:
        out.output_json({"accountId": account_id, "saved": True})
        return

    out.print_summary(
        "Account saved",
        [
            ("Account", account_id),
            ("Endpoint", endpoint_url or "(AWS)"),
            ("Credentials", "access key" if access_key_id else "default chain"),
            ("Config file", str(app_config.get_config_path())),
        ],
    )


@accounts.command("rm")
@click.argument("account_id")
@click.pass_context
def accounts_rm(ctx: Any, account_id: str) -> None:
    """Remove a storage account from the config file."""
    out: OutputFormatter = ctx.obj["out"]
    app_config: Config = ctx.obj["config"]

    try:
        removed = app_config.remove_account(account_id)
    except (BucketSyncError, OSError) as e:
        out.error(f"Could not remove account: {e}")
        ctx.exit(1)

    if not removed:
        out.error(f"Unknown storage account: {account_id}")
        ctx.exit(1)
    out.success(f"Removed account {account_id}")


@main.group()
def pair() -> None:
    """Manage sync pairs."""


@pair.command("add")
@click.argument("name")
@click.argument("local_path", type=click.Path(path_type=Path))
@click.option("--account", "-a", required=True, help="Storage account id")
@click.option("--bucket", "-b", required=True, help="Bucket name")
@click.option("--prefix", "-p", default="", help="Remote prefix inside the bucket")
@click.option(
    "--direction",
    "-d",
    type=click.Choice(DIRECTION_CHOICES, case_sensitive=False),
    default="upload_only",
    show_default=True,
    help="Sync direction",
)
@click.option(
    "--no-delete-propagation",
    is_flag=True,
    help="Do not propagate deletions from the source side",
)
@click.pass_context
def pair_add(
    ctx: Any,
    name: str,
    local_path: Path,
    account: str,
    bucket: str,
    prefix: str,
    direction: str,
    no_delete_propagation: bool,
) -> None:
    """Create a sync pair.

    NAME: Display name of the pair
    LOCAL_PATH: Existing local directory

    Examples:
        bucketsync pair add photos ~/Pictures -a r2-main -b backups -p photos
        bucketsync pair add docs ./docs -a aws -b team-docs -d pull
    """
    out: OutputFormatter = ctx.obj["out"]
    app_config: Config = ctx.obj["config"]

    try:
        new_pair = NewSyncPair(
            name=name,
            local_path=local_path,
            account_id=account,
            bucket=bucket,
            remote_prefix=prefix,
            direction=SyncDirection.from_string(direction),
            delete_propagation=not no_delete_propagation,
        )
        app_config.get_account(account)
        with open_orchestrator(app_config) as orchestrator:
            pair_id = orchestrator.create_pair(new_pair)
            created = orchestrator.get_pair(pair_id)
    except BucketSyncError as e:
        out.error(str(e))
        ctx.exit(1)

    if out.json_output:
        out.output_json(created.to_dict() if created else {"id": pair_id})
        return
    out.success(f"Created sync pair {pair_id}: {created}")


@pair.command("list")
@click.option("--account", "-a", help="Only show pairs of this account")
@click.pass_context
def pair_list(ctx: Any, account: Optional[str]) -> None:
    """List sync pairs."""
    out: OutputFormatter = ctx.obj["out"]

    try:
        with open_orchestrator(ctx.obj["config"]) as orchestrator:
            pairs = orchestrator.list_pairs(account)
    except BucketSyncError as e:
        out.error(str(e))
        ctx.exit(1)

    if out.json_output:
        out.output_json([p.to_dict() for p in pairs])
        return
    if not pairs:
        out.info("No sync pairs configured")
        return
    out.output_table(PAIR_COLUMNS, _pair_rows(pairs), title="Sync pairs")


@pair.command("show")
@click.argument("pair_id", type=int)
@click.pass_context
def pair_show(ctx: Any, pair_id: int) -> None:
    """Show a sync pair."""
    out: OutputFormatter = ctx.obj["out"]

    try:
        with open_orchestrator(ctx.obj["config"]) as orchestrator:
            found = orchestrator.get_pair(pair_id)
    except BucketSyncError as e:
        out.error(str(e))
        ctx.exit(1)

    if found is None:
        out.error(f"Sync pair not found: {pair_id}")
        ctx.exit(1)

    if out.json_output:
        out.output_json(found.to_dict())
        return
    out.print_summary(
        f"Sync pair {found.id}",
        [
            ("Name", found.name),
            ("Local path", str(found.local_path)),
            ("Account", found.account_id),
            ("Remote", found.remote_display),
            ("Direction", found.direction.value),
            ("Delete propagation", "yes" if found.delete_propagation else "no"),
            ("Status", found.status.value),
            ("Last sync", format_timestamp(found.last_sync_at)),
            ("Last error", found.last_error or "-"),
            ("Created", format_timestamp(found.created_at)),
        ],
    )


@pair.command("rm")
@click.argument("pair_id", type=int)
@click.option("--yes", "-y", is_flag=True, help="Do not ask for confirmation")
@click.pass_context
def pair_rm(ctx: Any, pair_id: int, yes: bool) -> None:
    """Delete a sync pair with its tracked state and history.

    Files on either side are not touched.
    """
    out: OutputFormatter = ctx.obj["out"]

    if not yes and not click.confirm(f"Delete sync pair {pair_id}?", default=False):
        out.warning("Cancelled.")
        return

    try:
        with open_orchestrator(ctx.obj["config"]) as orchestrator:
            deleted = orchestrator.delete_pair(pair_id)
    except BucketSyncError as e:
        out.error(str(e))
        ctx.exit(1)

    if not deleted:
        out.error(f"Sync pair not found: {pair_id}")
        ctx.exit(1)

    if out.json_output:
        out.output_json({"id": pair_id, "deleted": True})
        return
    out.success(f"Deleted sync pair {pair_id}")


def _display_plan(out: OutputFormatter, plan: SyncPlan) -> None:
    sections = [
        ("Upload", plan.to_upload),
        ("Download", plan.to_download),
        ("Delete local", plan.to_delete_local),
        ("Delete remote", plan.to_delete_remote),
    ]
    rows = [
        [
            action,
            change.relative_path,
            change.change_type.value,
            format_size(change.size),
        ]
        for action, changes in sections
        for change in changes
    ]
    if not rows:
        out.success("Everything is up to date")
        return
    out.output_table(["Action", "Path", "Change", "Size"], rows, title="Sync preview")
    out.info(f"{plan.total_actions} action(s)")


@main.command()
@click.argument("pair_id", type=int)
@click.pass_context
def preview(ctx: Any, pair_id: int) -> None:
    """Show what a sync would do, without changing anything."""
    out: OutputFormatter = ctx.obj["out"]

    try:
        with open_orchestrator(ctx.obj["config"]) as orchestrator:
            plan = orchestrator.preview_sync(pair_id)
    except BucketSyncError as e:
        out.error(str(e))
        ctx.exit(1)

    if out.json_output:
        out.output_json(plan.to_preview_dict())
        return
    _display_plan(out, plan)


@main.command()
@click.argument("pair_id", type=int)
@click.option(
    "--resync",
    is_flag=True,
    help="Forget tracked state and transfer every file of the source side",
)
@click.option("--no-progress", is_flag=True, help="Disable progress bars")
@click.pass_context
def sync(ctx: Any, pair_id: int, resync: bool, no_progress: bool) -> None:
    """Sync a pair.

    Press Ctrl-C to cancel; the file being transferred is finished first.

    Examples:
        bucketsync sync 1
        bucketsync sync 1 --resync
    """
    out: OutputFormatter = ctx.obj["out"]
    display = SyncProgressDisplay()
    show_progress = not (no_progress or out.quiet or out.json_output)

    app_config: Config = ctx.obj["config"]

    try:
        with open_orchestrator(
            app_config, display.handle_event
        ) as orchestrator, display if show_progress else nullcontext():
            session_id = orchestrator.start_sync(pair_id, is_resync=resync)
            try:
                while not orchestrator.wait(pair_id, timeout=0.25):
                    pass
            except KeyboardInterrupt:
                out.warning("\nCancelling sync, finishing current file...")
                orchestrator.cancel_sync(pair_id)
                orchestrator.wait(pair_id)
    except BucketSyncError as e:
        out.error(str(e))
        ctx.exit(1)

    final = display.final_event
    stats = final.stats if final else {}
    if out.json_output:
        out.output_json(
            {
                "pairId": pair_id,
                "sessionId": session_id,
                "status": final.event.value if final else None,
                "error": final.error if final else None,
                "stats": stats,
            }
        )
    elif final is not None:
        out.print_summary(
            "Sync summary",
            [
                ("Session", str(session_id)),
                ("Uploaded", str(stats.get("uploads", 0))),
                ("Downloaded", str(stats.get("downloads", 0))),
                ("Deleted locally", str(stats.get("deletes_local", 0))),
                ("Deleted remotely", str(stats.get("deletes_remote", 0))),
                ("Transferred", format_size(stats.get("bytes_transferred", 0))),
            ],
        )

    if final is None or final.event == SyncProgressEvent.ERROR:
        out.error(f"Sync failed: {final.error if final else 'no result'}")
        ctx.exit(1)
    if final.event == SyncProgressEvent.CANCELLED:
        out.warning("Sync cancelled by user")
        ctx.exit(130)  # Standard exit code for SIGINT
    out.success("Sync complete")


@main.command()
@click.argument("pair_id", type=int)
@click.option(
    "--limit", "-n", type=int, default=20, show_default=True, help="Sessions to show"
)
@click.pass_context
def history(ctx: Any, pair_id: int, limit: int) -> None:
    """Show recent sync sessions of a pair."""
    out: OutputFormatter = ctx.obj["out"]

    try:
        with open_orchestrator(ctx.obj["config"]) as orchestrator:
            sessions = orchestrator.list_sessions(pair_id, limit)
    except BucketSyncError as e:
        out.error(str(e))
        ctx.exit(1)

    if out.json_output:
        out.output_json([s.to_dict() for s in sessions])
        return
    if not sessions:
        out.info(f"No sync sessions for pair {pair_id}")
        return
    out.output_table(
        [
            "ID",
            "Started",
            "Completed",
            "Status",
            "Up",
            "Down",
            "Del local",
            "Del remote",
            "Bytes",
            "Error",
        ],
        [
            [
                s.id,
                format_timestamp(s.started_at),
                format_timestamp(s.completed_at),
                s.status.value,
                s.files_uploaded,
                s.files_downloaded,
                s.files_deleted_local,
                s.files_deleted_remote,
                format_size(s.bytes_transferred),
                s.error_message or "",
            ]
            for s in sessions
        ],
        title=f"Sync history of pair {pair_id}",
    )


if __name__ == "__main__":
    main()
