"""Command-line interface for bucket-mirror."""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import typer
import yaml
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.table import Table
from typing_extensions import Annotated

from bucket_mirror import __version__
from bucket_mirror.config import DEFAULT_CONCURRENCY, DEFAULT_HASH_FILE, Config
from bucket_mirror.config_manager import CONFIG_KEYS, get_config_path, load_config, save_config
from bucket_mirror.exceptions import BucketMirrorError, StoreError
from bucket_mirror.sync_engine import MirrorSync

app = typer.Typer(
    name="bucket-mirror",
    help="Publish a local directory tree to an S3 bucket",
    add_completion=False,
)
config_app = typer.Typer(help="Manage saved defaults")
app.add_typer(config_app, name="config")

console = Console()


class Colors:
    RED = "[red]"
    GREEN = "[green]"
    RESET = "[/red]"
    GREEN_RESET = "[/green]"


class Messages:
    CONFIG_LOAD_ERROR = "Error loading configuration: {error}"
    BUCKET_NOT_CONFIGURED = "Error: S3 bucket not configured. Pass --bucket or run 'bucket-mirror config set --bucket'"
    STORE_ERROR = "There was a problem talking to S3: {error}"
    SYNC_ERROR = "Sync failed: {error}"
    CONFIG_SAVED = "Configuration saved to {path}"
    NO_CONFIG = "No configuration saved at {path}"

    DRY_RUN_COMPLETED = "Dry run completed"
    SYNC_COMPLETED = "Sync completed successfully"


def error_msg(message: str) -> str:
    """Format error message with consistent styling."""
    return f"{Colors.RED}{message}{Colors.RESET}"


def success_msg(message: str) -> str:
    """Format success message with consistent styling."""
    return f"{Colors.GREEN}{message}{Colors.GREEN_RESET}"


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=False, show_path=False)],
        force=True,
    )
    # botocore is very chatty at debug level
    logging.getLogger("botocore").setLevel(logging.WARNING)
    logging.getLogger("boto3").setLevel(logging.WARNING)
    logging.getLogger("s3transfer").setLevel(logging.WARNING)


def _load_user_defaults() -> Dict[str, Any]:
    """Read saved defaults, treating a missing or empty file as no defaults."""
    return load_config(get_config_path()) or {}


def _load_and_configure(options: Dict[str, Any]) -> Config:
    """
    Build the run configuration.

    Precedence: command-line flags, then saved defaults, then environment
    variables and built-in defaults.
    """
    try:
        config = Config.from_env()
        defaults = _load_user_defaults()

        profile = options.get("profile") or defaults.get("profile")
        if profile:
            config.aws.profile = profile
        region = options.get("region") or defaults.get("region")
        if region:
            config.aws.region = region
        endpoint_url = options.get("endpoint_url") or defaults.get("endpoint_url")
        if endpoint_url:
            config.aws.endpoint_url = endpoint_url
        if options.get("access_key_id"):
            config.aws.access_key_id = options["access_key_id"]
        if options.get("secret_access_key"):
            config.aws.secret_access_key = options["secret_access_key"]

        bucket = options.get("bucket") or defaults.get("bucket") or config.s3.bucket_name

        # Re-validate through the models so ARNs and numeric limits are checked
        return Config(
            aws={
                **config.aws.model_dump(),
                "force_path_style": options.get("force_path_style", False),
                "signature_version": options.get("signature_version", 4),
            },
            s3={"bucket_name": bucket},
            sync={
                "directory": options.get("directory", Path(".")),
                "hash_file": options.get("hash_file", Path(DEFAULT_HASH_FILE)),
                "include": options.get("include"),
                "purge": options.get("purge", False),
                "concurrency": options.get("concurrency", DEFAULT_CONCURRENCY),
                "dry_run": options.get("dry_run", False),
            },
            verbose=options.get("verbose", False) or config.verbose,
        )
    except (ValidationError, yaml.YAMLError, OSError, ValueError) as e:
        console.print(error_msg(Messages.CONFIG_LOAD_ERROR.format(error=e)))
        raise typer.Exit(1)


def _validate_configuration(config: Config) -> None:
    """Validate required configuration settings."""
    if not config.s3.bucket_name:
        console.print(error_msg(Messages.BUCKET_NOT_CONFIGURED))
        raise typer.Exit(1)


def _display_results(result: Dict) -> None:
    """Display sync results."""
    if result["dry_run"]:
        console.print(f"\nWould upload {len(result['to_upload'])} file(s)")
        console.print(f"Would delete {len(result['to_delete'])} object(s)")
        console.print(success_msg(Messages.DRY_RUN_COMPLETED))
        return

    console.print(f"\nUploaded {result['files_uploaded']} file(s), {result['files_unchanged']} unchanged")
    console.print(f"Deleted {result['files_deleted']} object(s)")
    console.print(success_msg(Messages.SYNC_COMPLETED))


def _version_callback(value: bool) -> None:
    if value:
        typer.echo(f"bucket-mirror {__version__}")
        raise typer.Exit()


@app.callback()
def callback(
    version: Annotated[
        Optional[bool],
        typer.Option("--version", "-v", callback=_version_callback, is_eager=True, help="Show version and exit"),
    ] = None,
) -> None:
    """Publish a local directory tree to an S3 bucket."""


@app.command()
def sync(
    bucket: Annotated[Optional[str], typer.Option("--bucket", "-b", help="Bucket name or ARN")] = None,
    directory: Annotated[Path, typer.Option("--directory", "-d", help="Directory to sync")] = Path("."),
    hash_file: Annotated[Path, typer.Option("--hash-file", help="File containing hash cache")] = Path(DEFAULT_HASH_FILE),
    include: Annotated[Optional[str], typer.Option("--include", "-i", help="Only sync keys matching this regex")] = None,
    purge: Annotated[bool, typer.Option("--purge", "-p", help="Delete remote objects missing locally")] = False,
    access_key_id: Annotated[Optional[str], typer.Option("--access-key-id", "-k", help="AWS Access Key ID")] = None,
    secret_access_key: Annotated[Optional[str], typer.Option("--secret-access-key", "-s", help="AWS Secret Access Key")] = None,
    region: Annotated[Optional[str], typer.Option("--region", "-r", help="AWS Region")] = None,
    profile: Annotated[Optional[str], typer.Option("--profile", help="AWS profile")] = None,
    endpoint_url: Annotated[Optional[str], typer.Option("--endpoint", "-e", help="Custom S3 endpoint URL")] = None,
    force_path_style: Annotated[bool, typer.Option("--force-path-style", help="Use path-style bucket addressing")] = False,
    signature_version: Annotated[int, typer.Option("--signature-version", help="Signature version (2 or 4)")] = 4,
    concurrency: Annotated[int, typer.Option("--concurrency", "-c", help="Concurrent file operations")] = DEFAULT_CONCURRENCY,
    dry_run: Annotated[bool, typer.Option("--dry-run", help="Show the plan without changing anything")] = False,
    reset_state: Annotated[bool, typer.Option("--reset-state", help="Rebuild the hash cache from bucket metadata")] = False,
    verbose: Annotated[bool, typer.Option("--verbose", help="Verbose output")] = False,
) -> None:
    """Upload new or changed files and optionally purge stale objects."""
    _setup_logging(verbose)

    config = _load_and_configure(
        {
            "bucket": bucket,
            "directory": directory,
            "hash_file": hash_file,
            "include": include,
            "purge": purge,
            "access_key_id": access_key_id,
            "secret_access_key": secret_access_key,
            "region": region,
            "profile": profile,
            "endpoint_url": endpoint_url,
            "force_path_style": force_path_style,
            "signature_version": signature_version,
            "concurrency": concurrency,
            "dry_run": dry_run,
            "verbose": verbose,
        }
    )
    _validate_configuration(config)

    try:
        result = MirrorSync(config, console=console).sync(reset_state=reset_state)
    except StoreError as e:
        console.print(error_msg(Messages.STORE_ERROR.format(error=e)))
        if config.verbose:
            console.print_exception()
        raise typer.Exit(1)
    except BucketMirrorError as e:
        console.print(error_msg(Messages.SYNC_ERROR.format(error=e)))
        if config.verbose:
            console.print_exception()
        raise typer.Exit(1)

    _display_results(result)


@config_app.command("show")
def config_show() -> None:
    """Show saved defaults."""
    config_path = get_config_path()
    defaults = _load_user_defaults()
    if not defaults:
        console.print(Messages.NO_CONFIG.format(path=config_path))
        return

    table = Table(title=str(config_path))
    table.add_column("Setting")
    table.add_column("Value")
    for key in CONFIG_KEYS:
        if key in defaults:
            table.add_row(key, str(defaults[key]))
    console.print(table)


@config_app.command("set")
def config_set(
    profile: Annotated[Optional[str], typer.Option("--profile", help="AWS profile")] = None,
    region: Annotated[Optional[str], typer.Option("--region", "-r", help="AWS Region")] = None,
    bucket: Annotated[Optional[str], typer.Option("--bucket", "-b", help="Bucket name or ARN")] = None,
    endpoint_url: Annotated[Optional[str], typer.Option("--endpoint", "-e", help="Custom S3 endpoint URL")] = None,
) -> None:
    """Save defaults used by later sync runs."""
    config_path = get_config_path()
    defaults = _load_user_defaults()
    updates = {"profile": profile, "region": region, "bucket": bucket, "endpoint_url": endpoint_url}
    defaults.update({key: value for key, value in updates.items() if value is not None})

    save_config(config_path, defaults)
    console.print(success_msg(Messages.CONFIG_SAVED.format(path=config_path)))


def main() -> None:
    """Main entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
