"""CLI entrypoint for memology."""

import logging
from pathlib import Path

import rich_click as click

from memology import __version__
from memology.dispatch.controllers import (
    DispatchRunCommand,
    DispatchScanCommand,
    MemeCliController,
    MemeCreateCommand,
    MemeDeleteCommand,
    MemeInspectCommand,
    MemeListCommand,
    MemeUploadCommand,
    TemplateCommand,
)
from memology.storage.sqlmodel_models import DEFAULT_USER_ID

click.rich_click.USE_MARKDOWN = True
MEME_CONTROLLER = MemeCliController()


@click.group()
@click.version_option(version=__version__, prog_name="memology")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def memology(verbose: bool) -> None:
    """Meme generation backend CLI."""

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(threadName)s %(name)s: %(message)s",
    )


@memology.group()
def db() -> None:
    """Database commands."""


@db.command("init")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def db_init(db_path: Path | None) -> None:
    """Apply migrations to the meme database."""

    _emit_lines(MEME_CONTROLLER.init_db(db_path))


@memology.group()
def memes() -> None:
    """Meme record commands."""


@memes.command("create")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--prompt", required=True, help="Text the meme is generated from.")
@click.option("--style", default="", help="Generation style name, see `memology styles`.")
@click.option("--user-id", default=DEFAULT_USER_ID, show_default=True, help="Owner id.")
@click.option("--private", "is_private", is_flag=True, help="Hide the meme from public listings.")
def memes_create(
    db_path: Path | None,
    prompt: str,
    style: str,
    user_id: str,
    is_private: bool,
) -> None:
    """Start a generation and store a pending meme."""

    _emit_lines(
        MEME_CONTROLLER.create(
            MemeCreateCommand(
                db_path=db_path,
                prompt=prompt,
                style=style,
                user_id=user_id,
                is_public=not is_private,
            ),
        ),
    )


@memes.command("list")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--status", default=None, help="Only memes with this status.")
@click.option("--user-id", default=None, help="Only memes owned by this user.")
@click.option("--public", "public_only", is_flag=True, help="Only public memes.")
@click.option(
    "--limit",
    type=click.IntRange(min=1, max=500),
    default=20,
    show_default=True,
    help="Max number of memes to print.",
)
def memes_list(
    db_path: Path | None,
    status: str | None,
    user_id: str | None,
    public_only: bool,
    limit: int,
) -> None:
    """List memes, newest first."""

    _emit_lines(
        MEME_CONTROLLER.list_memes(
            MemeListCommand(
                db_path=db_path,
                status=status,
                user_id=user_id,
                public_only=public_only,
                limit=limit,
            ),
        ),
    )


@memes.command("show")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.argument("meme_id")
def memes_show(db_path: Path | None, meme_id: str) -> None:
    """Print one meme record."""

    _emit_lines(MEME_CONTROLLER.show(MemeInspectCommand(db_path=db_path, meme_id=meme_id)))


@memes.command("check")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.argument("meme_id")
def memes_check(db_path: Path | None, meme_id: str) -> None:
    """Poll the generation service once for a meme and apply the result."""

    _emit_lines(MEME_CONTROLLER.check(MemeInspectCommand(db_path=db_path, meme_id=meme_id)))


@memes.command("upload")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--image",
    "image_path",
    required=True,
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    help="Image file to attach.",
)
@click.argument("meme_id")
def memes_upload(db_path: Path | None, image_path: Path, meme_id: str) -> None:
    """Attach an image to a meme and mark it completed."""

    _emit_lines(
        MEME_CONTROLLER.upload(
            MemeUploadCommand(db_path=db_path, meme_id=meme_id, image_path=image_path),
        ),
    )


@memes.command("delete")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--user-id", default=DEFAULT_USER_ID, show_default=True, help="Owner id.")
@click.argument("meme_id")
def memes_delete(db_path: Path | None, user_id: str, meme_id: str) -> None:
    """Delete a meme owned by the given user."""

    _emit_lines(
        MEME_CONTROLLER.delete(
            MemeDeleteCommand(db_path=db_path, meme_id=meme_id, user_id=user_id),
        ),
    )


@memology.command("styles")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
def styles(db_path: Path | None) -> None:
    """List styles offered by the generation service."""

    _emit_lines(MEME_CONTROLLER.styles(db_path))


@memology.command("template")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option("--context", required=True, help="Situation the template meme should describe.")
@click.option("--width", type=click.IntRange(min=0), default=0, help="Width in px (0 = 512).")
@click.option("--height", type=click.IntRange(min=0), default=0, help="Height in px (0 = 512).")
def template(db_path: Path | None, context: str, width: int, height: int) -> None:
    """Render a template meme synchronously."""

    _emit_lines(
        MEME_CONTROLLER.template(
            TemplateCommand(db_path=db_path, context=context, width=width, height=height),
        ),
    )


@memology.group()
def dispatch() -> None:
    """Task processor commands."""


@dispatch.command("run")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--meme-id",
    "meme_ids",
    multiple=True,
    help="Meme id to submit right after start. Can be repeated.",
)
@click.option(
    "--duration",
    "duration_seconds",
    type=click.FloatRange(min=0, min_open=True),
    default=None,
    help="Stop after this many seconds (default: run until SIGINT/SIGTERM).",
)
@click.option(
    "--until-idle",
    is_flag=True,
    help="Stop once the queue is empty and no meme is in flight.",
)
@click.option("--workers", type=click.IntRange(min=1), default=None, help="Override worker count.")
def dispatch_run(
    db_path: Path | None,
    meme_ids: tuple[str, ...],
    duration_seconds: float | None,
    until_idle: bool,
    workers: int | None,
) -> None:
    """Run the worker pool and the stuck-job scanner."""

    _emit_lines(
        MEME_CONTROLLER.run_dispatch(
            DispatchRunCommand(
                db_path=db_path,
                meme_ids=meme_ids,
                duration_seconds=duration_seconds,
                until_idle=until_idle,
                workers=workers,
            ),
        ),
    )


@dispatch.command("scan")
@click.option("--db-path", type=click.Path(path_type=Path), default=None, help="SQLite DB path.")
@click.option(
    "--stale-after-seconds",
    type=click.IntRange(min=0),
    default=None,
    help="Override the staleness threshold.",
)
@click.option(
    "--reschedule",
    is_flag=True,
    help="Reset stale memes to pending and process them until idle.",
)
def dispatch_scan(db_path: Path | None, stale_after_seconds: int | None, reschedule: bool) -> None:
    """Show memes the stuck-job scanner would reschedule."""

    _emit_lines(
        MEME_CONTROLLER.scan(
            DispatchScanCommand(
                db_path=db_path,
                stale_after_seconds=stale_after_seconds,
                reschedule=reschedule,
            ),
        ),
    )


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    memology()
