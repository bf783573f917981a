"""
CLI for ``dynamo-import``: run one entity against a table and print its records.

    dynamo-import export -p region=eu-west-1 -a tableName=Orders \\
        -a keyConditionExpression="#yr = :yyyy" -a nameMapYear="#yr,year" \\
        -a valueMapYear="Int::yyyy,1985"

Records are written to stdout as JSON lines; logs go to stderr.
"""

from __future__ import annotations

import base64
import json
from decimal import Decimal
from typing import Any

import typer
from botocore.exceptions import BotoCoreError, ClientError
from rich.console import Console
from rich.markup import escape

from dynamo_import.core.errors import DynamoImportError
from dynamo_import.dynamo.datasource import DynamoDataSource
from dynamo_import.dynamo.entity import DynamoEntityProcessor, EntityConfig
from dynamo_import.dynamo.normalizer import FieldMapping
from dynamo_import.dynamo.planner import QueryPlanner
from dynamo_import.dynamo.variables import LAST_INDEX_TIME, ImportMode
from dynamo_import.framework.logging import configure_logging, get_logger, set_context

app = typer.Typer(
    name="dynamo-import",
    help="Import records from DynamoDB tables.",
    no_args_is_help=True,
)

err_console = Console(stderr=True)
logger = get_logger(__name__)


def _version_callback(value: bool) -> None:
    if value:
        from importlib.metadata import PackageNotFoundError, version as pkg_version

        try:
            v = pkg_version("dynamo-import")
        except PackageNotFoundError:
            v = "unknown"
        typer.echo(f"dynamo-import {v}")
        raise typer.Exit()


@app.callback()
def main(
    version: bool | None = typer.Option(
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """DynamoDB import connector."""


# ------------------------------------------------------------------ #
# Option parsing
# ------------------------------------------------------------------ #


def parse_pairs(values: list[str] | None, option: str) -> list[tuple[str, str]]:
    """``["k=v", ...]`` -> ordered pairs; the value may itself contain ``=``."""
    pairs = []
    for raw in values or []:
        key, sep, value = raw.partition("=")
        if not sep or not key.strip():
            raise typer.BadParameter(f"expected key=value, got {raw!r}", param_hint=option)
        pairs.append((key.strip(), value))
    return pairs


def parse_field(raw: str) -> FieldMapping:
    """``name[:column[:type]]`` -> FieldMapping."""
    parts = raw.split(":")
    if len(parts) > 3 or not parts[0].strip():
        raise typer.BadParameter(f"expected name[:column[:type]], got {raw!r}", param_hint="--field")
    name = parts[0].strip()
    column = parts[1].strip() if len(parts) > 1 and parts[1].strip() else None
    type_ = parts[2].strip() if len(parts) > 2 and parts[2].strip() else None
    return FieldMapping(name=name, column=column, type=type_)


def _json_default(value: Any) -> Any:
    if isinstance(value, Decimal):
        return format(value, "f")
    if isinstance(value, (set, frozenset)):
        return sorted(value, key=str)
    if isinstance(value, (bytes, bytearray)):
        return base64.b64encode(bytes(value)).decode("ascii")
    if hasattr(value, "value") and isinstance(value.value, (bytes, bytearray)):
        return base64.b64encode(bytes(value.value)).decode("ascii")
    return str(value)


def _fail(error: Exception) -> None:
    message = error.message if isinstance(error, DynamoImportError) else str(error)
    err_console.print(f"[bold red]{type(error).__name__}:[/bold red] {escape(message)}")
    raise typer.Exit(code=1)


# ------------------------------------------------------------------ #
# Commands
# ------------------------------------------------------------------ #


@app.command("export")
def export(
    props: list[str] = typer.Option(None, "--prop", "-p", help="Data source property key=value"),
    attrs: list[str] = typer.Option(None, "--attr", "-a", help="Entity attribute key=value (ordered)"),
    fields: list[str] = typer.Option(None, "--field", "-f", help="Field mapping name[:column[:type]]"),
    variables: list[str] = typer.Option(None, "--var", help="Pipeline variable key=value"),
    entity_name: str = typer.Option("entity", "--entity", "-e", help="Entity name for logs"),
    delta: bool = typer.Option(False, "--delta", help="Delta import (uses *DELTA attributes)"),
    last_index_time: str | None = typer.Option(
        None, "--last-index-time", help="Last import time, YYYY-MM-DD HH:MM:SS (UTC)"
    ),
    limit: int | None = typer.Option(None, "--limit", "-n", min=1, help="Stop after N records"),
    log_level: str | None = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING or ERROR"),
) -> None:
    """Run one entity and print its records as JSON lines."""
    configure_logging(level=log_level.upper() if log_level else None)

    properties = dict(parse_pairs(props, "--prop"))
    entity = EntityConfig(
        name=entity_name,
        attributes=parse_pairs(attrs, "--attr"),
        fields=[parse_field(f) for f in fields or []],
    )
    pipeline_vars: dict[str, Any] = dict(parse_pairs(variables, "--var"))
    if last_index_time:
        pipeline_vars[LAST_INDEX_TIME] = last_index_time
    mode = ImportMode.DELTA if delta else ImportMode.FULL

    set_context(entity=entity_name, mode=mode.value)
    data_source = DynamoDataSource()
    count = 0
    try:
        data_source.init(properties)
        processor = DynamoEntityProcessor(data_source, entity, variables=pipeline_vars, mode=mode)
        processor.init()
        pull = processor.next_modified_row_key if delta else processor.next_row
        while limit is None or count < limit:
            row = pull()
            if row is None:
                break
            typer.echo(json.dumps(row, default=_json_default, sort_keys=True))
            count += 1
        processor.destroy()
    except DynamoImportError as e:
        logger.error("export_failed", **e.to_dict())
        _fail(e)
    except (ClientError, BotoCoreError) as e:
        logger.error("export_failed", error_type=type(e).__name__, error=str(e))
        _fail(e)
    finally:
        data_source.close()

    logger.info("export_complete", entity=entity_name, rows=count)


@app.command("tables")
def tables(
    props: list[str] = typer.Option(None, "--prop", "-p", help="Data source property key=value"),
    log_level: str | None = typer.Option(None, "--log-level"),
) -> None:
    """List the tables visible to the configured credentials."""
    configure_logging(level=log_level.upper() if log_level else None)

    data_source = DynamoDataSource()
    try:
        data_source.init(dict(parse_pairs(props, "--prop")))
        names = QueryPlanner(data_source.client).list_tables()
    except DynamoImportError as e:
        _fail(e)
    except (ClientError, BotoCoreError) as e:
        logger.error("list_tables_failed", error_type=type(e).__name__, error=str(e))
        _fail(e)
    finally:
        data_source.close()

    for name in names:
        typer.echo(name)


if __name__ == "__main__":
    app()
