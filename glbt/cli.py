"""Command-line entry point for the glbt tool."""

from __future__ import annotations

import asyncio
import logging
from typing import Annotated, NoReturn

import typer

from glbt import render
from glbt.config import AppSettings, load_settings
from glbt.credentials import CredentialStore, StoredCredentials
from glbt.gitlab_client import ConfigError, GitLabClient, GitLabError
from glbt.models import Action
from glbt.pipelines import PipelineWatcher
from glbt.state import Cell, LoadStatus
from glbt.store import BulkOutcome, MergeRequestStore

app = typer.Typer(add_completion=False, help="Manage open GitLab merge requests in bulk.")

IdsOption = Annotated[
    list[int] | None,
    typer.Option("--id", help="Merge request id to toggle in the selection. Repeatable; with --all it excludes the id."),
]
AllOption = Annotated[bool, typer.Option("--all", help="Act on every open merge request.")]


def _configure_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s - %(message)s")


@app.callback()
def main(
    verbose: Annotated[bool, typer.Option("--verbose", help="Enable verbose logging output.")] = False,
) -> None:
    """Configure logging before executing a sub-command."""
    _configure_logging(verbose)


@app.command()
def login(
    url: Annotated[str, typer.Option("--url", help="GitLab server base URL, without the api/v4 part.")],
    token: Annotated[str, typer.Option("--token", help="Personal access token with the api scope.")],
) -> None:
    """Test the credentials and remember them for later commands."""
    settings = _load_settings_or_exit()
    try:
        client = GitLabClient(url, token, timeout=settings.request_timeout)
    except ConfigError as exc:
        _handle_settings_error(exc)
    username = asyncio.run(_current_username(client))
    CredentialStore(settings.state_file).save(StoredCredentials.from_client(client))
    typer.echo(f"Connected to {client} as {username}")


@app.command()
def logout() -> None:
    """Forget the stored credentials."""
    settings = _load_settings_or_exit()
    if CredentialStore(settings.state_file).clear():
        typer.echo("Logged out.")
    else:
        typer.echo("No stored credentials.")


@app.command()
def doctor() -> None:
    """Validate configuration and verify GitLab API connectivity."""
    settings = _load_settings_or_exit()
    client = _resolve_client(settings)
    typer.echo(f"Using GitLab at {client}")
    username = asyncio.run(_current_username(client))
    typer.echo(f"Authenticated as: {username}")


@app.command("list")
def list_merge_requests() -> None:
    """List open merge requests with their pipelines and available actions."""
    settings = _load_settings_or_exit()
    client = _resolve_client(settings)
    asyncio.run(_list(client))


@app.command()
def show(
    project_id: Annotated[int, typer.Argument(help="Numeric id of the project.")],
    iid: Annotated[int, typer.Argument(help="Merge request iid within the project.")],
) -> None:
    """Show one merge request and the pipelines of its head commit."""
    settings = _load_settings_or_exit()
    client = _resolve_client(settings)
    asyncio.run(_show(client, project_id, iid))


@app.command()
def close(ids: IdsOption = None, select_all: AllOption = False) -> None:
    """Close the selected merge requests."""
    _bulk(Action.CLOSE, ids, select_all)


@app.command()
def reopen(ids: IdsOption = None, select_all: AllOption = False) -> None:
    """Reopen the selected merge requests."""
    _bulk(Action.REOPEN, ids, select_all)


@app.command()
def merge(ids: IdsOption = None, select_all: AllOption = False) -> None:
    """Merge the selected merge requests at their current head commit."""
    _bulk(Action.MERGE, ids, select_all)


async def _current_username(client: GitLabClient) -> str:
    try:
        async with client:
            user = await client.get_current_user()
    except GitLabError as exc:
        typer.secho(f"Failed to reach GitLab API: {exc}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1) from exc
    return user.username


async def _load_store(client: GitLabClient) -> MergeRequestStore:
    store = MergeRequestStore(client)
    listing = await store.load()
    if listing.status is LoadStatus.FAILED:
        typer.secho(f"Failed to list merge requests: {listing.error}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    return store


async def _list(client: GitLabClient) -> None:
    async with client:
        store = await _load_store(client)
        await store.watch_pipelines()
    if not store.rows:
        typer.echo("No open merge requests.")
        return
    typer.echo(f"{len(store.rows)} open merge requests on {client}")
    for row in store.rows:
        typer.echo("\n".join(render.row_lines(row)))


async def _show(client: GitLabClient, project_id: int, iid: int) -> None:
    async with client:
        try:
            merge_request = await client.get_merge_request(project_id, iid)
        except GitLabError as exc:
            typer.secho(render.error_panel(exc), err=True)
            raise typer.Exit(code=1) from exc
        watcher = PipelineWatcher(client, Cell(merge_request))
        await watcher.refresh()
    lines = render.merge_request_lines(merge_request)
    lines.insert(2, f"    {render.pipelines_line(watcher.state.get())}")
    typer.echo("\n".join(lines))
    typer.echo(f"    {merge_request.status.description}")


def _bulk(action: Action, ids: list[int] | None, select_all: bool) -> None:
    if not ids and not select_all:
        typer.secho("Pass --id at least once, or --all.", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=2)
    settings = _load_settings_or_exit()
    client = _resolve_client(settings)
    outcome = asyncio.run(_apply(client, action, list(dict.fromkeys(ids or [])), select_all))
    if not outcome.ok:
        raise typer.Exit(code=1)


async def _apply(client: GitLabClient, action: Action, ids: list[int], select_all: bool) -> BulkOutcome:
    async with client:
        store = await _load_store(client)
        if select_all:
            store.selection.select_all()
        for mr_id in ids:
            try:
                store.selection.toggle(mr_id)
            except KeyError as exc:
                typer.secho(f"Merge request {mr_id} is not open or not visible.", fg=typer.colors.RED, err=True)
                raise typer.Exit(code=1) from exc
        selection = store.selection
        typer.echo(render.checkbox(selection.state, selection.count, selection.total))
        outcome = await store.apply_to_selection(action)
    references = {row.id: row.merge_request.reference for row in store.rows}
    for line in render.outcome_lines(outcome, references):
        typer.echo(line)
    return outcome


def _load_settings_or_exit() -> AppSettings:
    try:
        return load_settings()
    except ValueError as exc:
        _handle_settings_error(exc)


def _resolve_client(settings: AppSettings) -> GitLabClient:
    """Build a client from the environment, falling back to stored credentials."""
    try:
        if settings.gitlab_url is not None:
            return GitLabClient(
                str(settings.gitlab_url),
                settings.gitlab_token.get_secret_value(),
                timeout=settings.request_timeout,
            )
        stored = CredentialStore(settings.state_file).load()
        if stored is None:
            typer.secho("Not logged in. Run `glbt login` first.", fg=typer.colors.RED, err=True)
            raise typer.Exit(code=1)
        return stored.connect(timeout=settings.request_timeout)
    except ConfigError as exc:
        _handle_settings_error(exc)


def _handle_settings_error(exc: Exception) -> NoReturn:
    typer.secho(f"Configuration error: {exc}", fg=typer.colors.RED, err=True)
    raise typer.Exit(code=1) from exc


if __name__ == "__main__":
    app()
