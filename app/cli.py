from __future__ import annotations

from pathlib import Path

import typer
from pydantic import ValidationError
from rich.console import Console
from rich.tree import Tree

from adapters.filesystem.json_utils import load_json
from adapters.filesystem.layout_repository import FileSystemLayoutRepository
from adapters.html.serializer import to_html
from app.config import load_settings
from domain.models import VIEWPORTS, LayoutDocument, LayoutKey, Slot
from domain.services.default_layouts import build_default_layout
from domain.services.geometry import ordered_children
from domain.services.render_dispatcher import RenderContext, RenderDispatcher
from domain.services.tree_mutator import validate_tree

app = typer.Typer(no_args_is_help=True)
console = Console()


def _load_document(input_path: Path) -> LayoutDocument:
    if not input_path.exists():
        console.print(f"[red]File not found:[/] {input_path}")
        raise typer.Exit(code=1)
    try:
        return LayoutDocument.model_validate(load_json(input_path))
    except (ValidationError, ValueError) as exc:
        console.print(f"[red]Invalid layout document:[/] {exc}")
        raise typer.Exit(code=1) from exc


def _check_viewport(viewport: str) -> str:
    if viewport not in VIEWPORTS:
        console.print(f"[red]Unknown viewport:[/] {viewport}")
        raise typer.Exit(code=2)
    return viewport


@app.command("validate")
def validate(
    input_path: Path = typer.Argument(..., help="Layout document JSON file."),
    viewport: str = typer.Option("desktop", help="Viewport used for column bounds."),
) -> None:
    document = _load_document(input_path)
    problems = validate_tree(document.slots, _check_viewport(viewport))
    if not problems:
        console.print(f"[green]OK[/] {input_path} ({len(document.slots)} slots)")
        return
    for problem in problems:
        color = "red" if problem.structural else "yellow"
        console.print(f"[{color}]{problem.slot_id}[/]: {problem.message}")
    if any(problem.structural for problem in problems):
        raise typer.Exit(code=1)


@app.command("tree")
def show_tree(
    input_path: Path = typer.Argument(..., help="Layout document JSON file."),
    viewport: str = typer.Option("desktop", help="Viewport used to resolve column spans."),
    view: str | None = typer.Option(None, help="View context used to filter slots."),
) -> None:
    document = _load_document(input_path)
    active = _check_viewport(viewport)
    root = Tree(f"[bold]{input_path.name}[/] ({active})")

    def add_children(branch: Tree, parent_id: str | None, seen: set[str]) -> None:
        for child in ordered_children(document.slots, parent_id, active, view):
            slot = child.slot
            if slot.id in seen:
                continue
            node = branch.add(_describe(slot, child.col_span))
            add_children(node, slot.id, seen | {slot.id})

    add_children(root, None, set())
    console.print(root)


@app.command("render")
def render(
    input_path: Path = typer.Argument(..., help="Layout document JSON file."),
    mode: str = typer.Option("display", help="Render mode: display or edit."),
    viewport: str = typer.Option("desktop", help="Viewport used to resolve column spans."),
    view: str | None = typer.Option(None, help="View context used to filter slots."),
    output: Path | None = typer.Option(None, help="Write HTML here instead of stdout."),
) -> None:
    if mode not in {"display", "edit"}:
        console.print(f"[red]Unknown mode:[/] {mode}")
        raise typer.Exit(code=2)
    document = _load_document(input_path)
    ctx = RenderContext(
        slots=document.slots,
        mode=mode,  # type: ignore[arg-type]
        viewport=_check_viewport(viewport),  # type: ignore[arg-type]
        view_context=view,
    )
    html = str(to_html(RenderDispatcher().render_page(ctx)))
    if output is None:
        typer.echo(html)
        return
    output.parent.mkdir(parents=True, exist_ok=True)
    output.write_text(html, encoding="utf-8")
    console.print(f"[green]Wrote[/] {output}")


@app.command("seed")
def seed(
    store_id: str = typer.Argument(..., help="Store identifier."),
    page_type: str = typer.Argument(..., help="Page type, e.g. cart or product."),
    data_dir: Path | None = typer.Option(None, help="Layout directory (defaults to config)."),
    config: Path | None = typer.Option(None, help="YAML config file."),
) -> None:
    settings = load_settings(config)
    root = data_dir or settings.editor.data_dir
    repository = FileSystemLayoutRepository(root)
    key = LayoutKey(store_id, page_type)
    if repository.path_for(key).exists():
        console.print(f"[yellow]Layout already exists:[/] {repository.path_for(key)}")
        raise typer.Exit(code=0)
    repository.save(key, build_default_layout(page_type))
    console.print(f"[green]Wrote[/] {repository.path_for(key)}")


@app.command("serve")
def serve(
    host: str = typer.Option("127.0.0.1", help="Bind address."),
    port: int = typer.Option(8000, help="Bind port."),
    config: Path | None = typer.Option(None, help="YAML config file."),
) -> None:
    import uvicorn

    from app.web_main import create_app

    uvicorn.run(create_app(load_settings(config)), host=host, port=port)


def _describe(slot: Slot, col_span: int) -> str:
    position = f"r{slot.position.row}c{slot.position.col}" if slot.position else "unplaced"
    flags = "" if slot.is_custom else " [dim]built-in[/]"
    return f"[cyan]{slot.id}[/] {slot.type} {position} span {col_span}{flags}"


if __name__ == "__main__":
    app()
