from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from datetime import datetime

import click
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from keep import __version__
from keep.config import find_config, init_config, load_config, project_root, resolve_path
from keep.errors import KeepError, OperationCancelled
from keep.job import BackupJob, CancelToken
from keep.log import read_logs
from keep.storage import STRATEGIES, create_storage


def open_job(config=None, root=None):
    """Build a BackupJob from config and load its state file if one exists.

    Returns (job, state_path).
    """
    root = root or project_root()
    config = config if config is not None else load_config(root)
    job = BackupJob(
        create_storage(config),
        resolve_path(config["backup_dir"], root),
        persist_digests=bool(config.get("persist_digests", True)),
    )
    state_path = resolve_path(config["state_file"], root)
    if state_path.exists():
        job.load_state(state_path)
    return job, state_path


def _fail(console, error):
    console.print(f"[red]{escape(str(error))}[/red]")
    raise SystemExit(1)


def _warn_clashes(job, obj, console):
    for other in job.name_clashes(obj):
        console.print(f"  [yellow]Warning:[/yellow] {escape(obj.name)} shares its name with "
                      f"{escape(str(other.path))}; restore points keep only the last one written")


def _progress_printer(console):
    def _print(progress, message):
        console.print(f"  {message}: {progress * 100:.0f}%", highlight=False)
    return _print


def _run_restore(job, point, target, console):
    """Restore on a worker thread so Ctrl-C cancels between files instead of mid-copy."""
    token = CancelToken()
    with ThreadPoolExecutor(max_workers=1) as executor:
        future = executor.submit(job.restore, point, target, token)
        while True:
            try:
                return future.result(timeout=0.2)
            except FutureTimeout:
                continue
            except KeyboardInterrupt:
                console.print("[yellow]Cancelling after the current file...[/yellow]")
                token.cancel()


def _pick_point(job, index, console):
    points = job.restore_points
    if not points:
        _fail(console, "No restore points available.")
    if index < 0 or index >= len(points):
        _fail(console, f"Invalid restore point number {index} (0-{len(points) - 1}).")
    return points[index]


def _fmt_time(timestamp):
    return timestamp.astimezone().strftime("%Y-%m-%d %H:%M:%S")


def _points_table(points):
    table = Table(title="Restore points")
    table.add_column("#", style="bold cyan")
    table.add_column("Created", style="dim")
    table.add_column("Backend")
    table.add_column("Files", justify="right")
    table.add_column("Location", style="dim")
    for i, point in enumerate(points):
        table.add_row(str(i), _fmt_time(point.timestamp), point.layout or "?",
                      str(len(point.objects)), escape(str(point.location)))
    return table


@click.group(invoke_without_command=True)
@click.version_option(version=__version__)
@click.pass_context
def main(ctx):
    """keep: tracked files, timestamped restore points, verified restores."""
    if ctx.invoked_subcommand is None:
        shell()


@main.command()
@click.option("--backend", type=click.Choice(sorted(STRATEGIES)), default=None,
              help="Storage layout for restore points.")
def init(backend):
    """Create .keepconfig in the current directory."""
    if find_config():
        click.echo(".keepconfig already exists.")
        return
    config_path = init_config(storage_backend=backend)
    click.echo(f"Created {config_path}")


@main.command()
@click.argument("paths", nargs=-1, required=True, type=click.Path())
def add(paths):
    """Track one or more files. Paths must be absolute."""
    console = Console()
    try:
        job, state_path = open_job()
        for path in paths:
            obj = job.add_object(path)
            console.print(f"  [green]Tracking[/green] {escape(str(obj.path))}  [dim]{obj.stored_digest[:12]}[/dim]")
            _warn_clashes(job, obj, console)
        job.save_state(state_path)
    except (KeepError, OSError, ValueError) as e:
        _fail(console, e)


@main.command()
@click.argument("path", type=click.Path())
def remove(path):
    """Stop tracking a file."""
    console = Console()
    try:
        job, state_path = open_job()
        job.remove_object(path)
        job.save_state(state_path)
    except (KeepError, OSError, ValueError) as e:
        _fail(console, e)
    console.print(f"  [red]Removed[/red] {escape(path)}")


@main.command("objects")
def objects_cmd():
    """List tracked files and whether they still match their digest."""
    console = Console()
    try:
        job, _ = open_job()
        objects = job.objects
        if not objects:
            console.print("[dim]No tracked files.[/dim]")
            return
        table = Table(title="Tracked files")
        table.add_column("Path")
        table.add_column("Digest", style="dim")
        table.add_column("Status", style="bold")
        for obj in objects:
            if not obj.exists():
                status = "[red]missing[/red]"
            elif obj.verify_checksum():
                status = "[green]unchanged[/green]"
            else:
                status = "[yellow]modified[/yellow]"
            table.add_row(escape(str(obj.path)), obj.stored_digest[:12], status)
        console.print(table)
    except (KeepError, OSError, ValueError) as e:
        _fail(console, e)


@main.command()
def backup():
    """Create a restore point of every tracked file."""
    console = Console()
    try:
        job, state_path = open_job()
        point = job.create_restore_point()
        job.save_state(state_path)
    except (KeepError, OSError, ValueError) as e:
        _fail(console, e)
    console.print(f"[bold green]Restore point created:[/bold green] {escape(str(point.location))}")


@main.command("list")
def list_cmd():
    """List restore points, oldest first."""
    console = Console()
    try:
        job, _ = open_job()
    except (KeepError, OSError, ValueError) as e:
        _fail(console, e)
    points = job.restore_points
    if not points:
        console.print("[dim]No restore points.[/dim]")
        return
    console.print(_points_table(points))


@main.command()
@click.argument("index", type=int)
def verify(index):
    """Check every file of a restore point against its recorded digest."""
    console = Console()
    try:
        job, _ = open_job()
        point = _pick_point(job, index, console)
        broken = point.broken_objects()
    except (KeepError, OSError, ValueError) as e:
        _fail(console, e)
    if not broken:
        console.print(f"[green]Restore point {index} is intact ({len(point.objects)} files).[/green]")
        return
    console.print(f"[bold red]Restore point {index}: {len(broken)} file(s) changed or missing:[/bold red]")
    for obj in broken:
        console.print(f"  [red]•[/red] {escape(str(obj.path))}")
    raise SystemExit(1)


@main.command()
@click.argument("index", type=int)
@click.argument("target", type=click.Path(file_okay=False))
def restore(index, target):
    """Restore files of a restore point into TARGET. Ctrl-C cancels between files."""
    console = Console()
    try:
        job, _ = open_job()
        point = _pick_point(job, index, console)
        job.set_progress_callback(_progress_printer(console))
        restored = _run_restore(job, point, target, console)
    except OperationCancelled as e:
        console.print(f"[yellow]{escape(str(e))}. Files already restored were kept.[/yellow]")
        raise SystemExit(1)
    except (KeepError, OSError, ValueError) as e:
        _fail(console, e)
    console.print(f"[bold green]Restored {len(restored)} file(s) to {escape(target)}.[/bold green]")


@main.command()
@click.option("-n", "--limit", default=20, help="Number of log entries to show.")
def logs(limit):
    """Show the audit log."""
    console = Console()
    entries = read_logs(limit)
    if not entries:
        console.print("[dim]No logs yet.[/dim]")
        return

    table = Table(title="Audit log")
    table.add_column("Time", style="dim")
    table.add_column("Event", style="bold", no_wrap=True)
    table.add_column("Location", style="cyan")
    table.add_column("Detail")

    for entry in entries:
        ts = entry.get("timestamp", "")
        if ts:
            try:
                ts = datetime.fromisoformat(ts).strftime("%m-%d %H:%M:%S")
            except ValueError:
                pass
        detail = entry.get("error") or ", ".join(
            f"{k}={entry[k]}" for k in ("objects", "restored", "restore_points", "target") if k in entry
        )
        location = entry.get("location") or entry.get("path", "")
        table.add_row(ts, entry.get("event", ""), escape(location), escape(detail))

    console.print(table)


_SHELL_HELP = """\
Commands:
  add <path>              track a file
  remove <path>           stop tracking a file
  backup                  create a restore point
  restore <n> <target>    restore point n into target directory
  verify <n>              check restore point n
  list                    show restore points
  help                    this text
  exit                    quit"""


def shell():
    """Interactive keep shell. State is saved after every change."""
    console = Console()
    try:
        job, state_path = open_job()
    except (KeepError, OSError, ValueError) as e:
        _fail(console, e)
    job.set_progress_callback(_progress_printer(console))

    console.print("[bold]keep shell[/bold]")
    console.print(f"[dim]Backend: {job.storage.name} | Backups: {escape(str(job.backup_dir))}[/dim]")
    console.print("[dim]Type 'help' for commands.[/dim]\n")

    while True:
        try:
            user_input = input("keep> ").strip()
        except (KeyboardInterrupt, EOFError):
            console.print("\n[dim]Goodbye.[/dim]")
            break

        if not user_input:
            continue
        command, _, rest = user_input.partition(" ")
        rest = rest.strip()

        if command in ("exit", "quit"):
            break
        if command == "help":
            console.print(_SHELL_HELP, highlight=False)
            continue

        try:
            if command == "add" and rest:
                obj = job.add_object(rest)
                job.save_state(state_path)
                console.print(f"  [green]Tracking[/green] {escape(str(obj.path))}")
                _warn_clashes(job, obj, console)
            elif command == "remove" and rest:
                job.remove_object(rest)
                job.save_state(state_path)
                console.print(f"  [red]Removed[/red] {escape(rest)}")
            elif command == "backup":
                point = job.create_restore_point()
                job.save_state(state_path)
                console.print(f"  [green]Restore point created:[/green] {escape(str(point.location))}")
            elif command == "list":
                points = job.restore_points
                if points:
                    console.print(_points_table(points))
                else:
                    console.print("[dim]No restore points.[/dim]")
            elif command == "verify" and rest.isdigit():
                point = job.restore_points[int(rest)]
                if job.verify_backup(point):
                    console.print("  [green]Intact.[/green]")
                else:
                    console.print("  [red]Integrity check failed.[/red]")
            elif command == "restore":
                index, _, target = rest.partition(" ")
                if not index.isdigit() or not target.strip():
                    console.print("Usage: restore <n> <target>")
                    continue
                point = job.restore_points[int(index)]
                restored = _run_restore(job, point, target.strip(), console)
                console.print(f"  [green]Restored {len(restored)} file(s).[/green]")
            else:
                console.print("Unknown command. Type 'help' for the list.")
        except IndexError:
            console.print("[red]No such restore point.[/red]")
        except (KeepError, OSError, ValueError) as e:
            console.print(f"[red]{escape(str(e))}[/red]")
