"""Console script for course_editor."""

import logging
from collections.abc import Callable
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .config.loader import ConfigLoader
from .config.models import EditorConfig
from .editor import CourseEditor
from .exceptions import CourseEditorError
from .moodle.api import MoodleAPI, MoodleAPIError, create_api_client
from .mutations import Mutations, SequencedMutations
from .state.models import Course, CourseModule, Section
from .utils.logging import setup_logging

app = typer.Typer(help="Edit the structure of a Moodle course from the command line.")
console = Console()

ConfigOption = typer.Option(None, "--config", "-c", help="Path to the YAML configuration file")
CourseOption = typer.Option(None, "--course", help="Course id (defaults to course_id in the config)")
VerboseOption = typer.Option(False, "--verbose", "-v", help="Enable verbose logging")


def _load_config(config_file: Optional[Path], verbose: bool) -> EditorConfig:
    config = ConfigLoader().load(config_file)

    level = logging.DEBUG if verbose else getattr(logging, config.log_level, logging.INFO)
    setup_logging(level=level, log_file=Path(config.log_file) if config.log_file else None, rich=True)
    return config


def _open_editor(api: MoodleAPI, config: EditorConfig, course_id: int) -> CourseEditor:
    mutations_class = SequencedMutations if config.sequenced else Mutations
    editor = CourseEditor(
        api,
        mutations=mutations_class(api, edit_method=config.moodle.edit_method),
        state_method=config.moodle.state_method,
    )
    editor.init(course_id)
    return editor


def _print_course(editor: CourseEditor) -> None:
    course = Course.from_state(editor.get("course"))
    sections = [Section.from_state(s) for s in editor.get("section").values()]
    cms = {cm_id: CourseModule.from_state(cm) for cm_id, cm in editor.get("cm").items()}

    table = Table(title=f"Course {course.id}")
    table.add_column("Section", justify="right")
    table.add_column("Id", justify="right")
    table.add_column("Name")
    table.add_column("Visible")

    for section in sorted(sections, key=lambda s: s.number):
        table.add_row(str(section.number), str(section.id), f"[bold]{section.title}[/bold]", _yes_no(section.visible))
        for cm_id in section.cm_ids:
            cm = cms.get(cm_id)
            if cm is None:
                continue
            table.add_row("", str(cm.id), f"  {cm.name}", _yes_no(cm.visible))

    console.print(table)


def _yes_no(value: bool) -> str:
    return "[green]yes[/green]" if value else "[red]no[/red]"


def _run(config_file, course_id, verbose, action: Callable[[CourseEditor], None] | None = None) -> None:
    try:
        config = _load_config(config_file, verbose)
        course_id = course_id or config.course_id
        if course_id is None:
            raise typer.BadParameter("No course id given and none configured", param_hint="--course")

        with create_api_client(config.moodle) as api:
            editor = _open_editor(api, config, course_id)
            if action is not None:
                action(editor)
            _print_course(editor)
    except (CourseEditorError, MoodleAPIError, FileNotFoundError, ValueError) as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        raise typer.Exit(code=1)


@app.command()
def show(
    config: Optional[Path] = ConfigOption,
    course: Optional[int] = CourseOption,
    verbose: bool = VerboseOption,
):
    """Print the sections and activities of a course."""
    _run(config, course, verbose)


@app.command("move-cm")
def move_cm(
    ids: list[int] = typer.Argument(..., help="Course module ids to move"),
    section: Optional[int] = typer.Option(None, "--section", "-s", help="Append to this section"),
    before: Optional[int] = typer.Option(None, "--before", "-b", help="Place above this course module"),
    config: Optional[Path] = ConfigOption,
    course: Optional[int] = CourseOption,
    verbose: bool = VerboseOption,
):
    """Move activities to a section or above another activity."""
    _run(
        config,
        course,
        verbose,
        lambda editor: editor.dispatch("cm_move", ids, target_section_id=section, target_cm_id=before),
    )


@app.command("move-section")
def move_section(
    ids: list[int] = typer.Argument(..., help="Section ids to move"),
    target: int = typer.Option(..., "--target", "-t", help="Place after this section"),
    config: Optional[Path] = ConfigOption,
    course: Optional[int] = CourseOption,
    verbose: bool = VerboseOption,
):
    """Move sections after another section."""
    _run(config, course, verbose, lambda editor: editor.dispatch("section_move", ids, target))


@app.command()
def refresh(
    cm: Optional[list[int]] = typer.Option(None, "--cm", help="Course module id to refresh"),
    section: Optional[list[int]] = typer.Option(None, "--section", help="Section id to refresh"),
    config: Optional[Path] = ConfigOption,
    course: Optional[int] = CourseOption,
    verbose: bool = VerboseOption,
):
    """Reload course elements from the server."""

    def action(editor: CourseEditor) -> None:
        if cm:
            editor.dispatch("cm_state", cm)
        if section:
            editor.dispatch("section_state", section)
        if not cm and not section:
            editor.dispatch("course_state")

    _run(config, course, verbose, action)


@app.command("hide-cm")
def hide_cm(
    ids: list[int] = typer.Argument(..., help="Course module ids to hide"),
    config: Optional[Path] = ConfigOption,
    course: Optional[int] = CourseOption,
    verbose: bool = VerboseOption,
):
    """Hide activities."""
    _run(config, course, verbose, lambda editor: editor.dispatch("cm_hide", ids))


@app.command("show-cm")
def show_cm(
    ids: list[int] = typer.Argument(..., help="Course module ids to show"),
    config: Optional[Path] = ConfigOption,
    course: Optional[int] = CourseOption,
    verbose: bool = VerboseOption,
):
    """Make hidden activities visible."""
    _run(config, course, verbose, lambda editor: editor.dispatch("cm_show", ids))


if __name__ == "__main__":
    app()
