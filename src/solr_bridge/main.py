import json
import logging

from typer import Exit, Option, Argument, Typer
from typing import Annotated
from rich.markdown import Markdown
from rich.panel import Panel
from rich.console import Console
from rich.table import Table
from rich.markup import escape

from .config import resolve_settings
from .errors import SearchError
from .executor import SolrHttpExecutor
from .search import (
    Criteria,
    CriteriaParseError,
    QueryCompiler,
    SearchEngine,
    parse_criteria,
    parse_expansion_spec,
    supported_filter_syntax,
)

app = Typer(help="Compile criteria into Solr queries and run them.")
console = Console()

FiltersOption = Annotated[
    str | None,
    Option("--filters", "-f", help=supported_filter_syntax()),
]
QueryOption = Annotated[
    str | None,
    Option("--query", "-q", help="Relevance query passed through verbatim."),
]
HandlerOption = Annotated[
    str | None,
    Option("--handler", help="Request handler endpoint, e.g. /select."),
]
ExpandOption = Annotated[
    str | None,
    Option("--expand", "-e", help="Parent/child expansion: None, Parent, Child(limit), Both(offset,limit)."),
]
OffsetOption = Annotated[int | None, Option("--offset", help="Starting row offset.")]
LimitOption = Annotated[int | None, Option("--limit", "-n", help="Maximum rows to return.")]


def _build_criteria(
    filters: str | None,
    query: str | None,
    handler: str | None,
    expand: str | None,
    offset: int | None,
    limit: int | None,
) -> Criteria:
    criteria = Criteria(name="CLI Request", offset=offset, limit=limit)
    if query is not None:
        criteria.add_query(query)
    if handler is not None:
        criteria.add_handler(handler)
    parse_criteria(filters, criteria=criteria)
    if expand is not None:
        criteria.add_expansion(expand)
    return criteria


def _fail(message: str) -> None:
    console.print(f"[bold red]Error:[/] {escape(message)}")
    raise Exit(code=1)


@app.callback()
def main(
    verbose: Annotated[
        bool, Option("--verbose", "-v", help="Log compiled queries and expansion details.")
    ] = False,
) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@app.command("compile")
def compile_command(
    filters: FiltersOption = None,
    query: QueryOption = None,
    handler: HandlerOption = None,
    expand: ExpandOption = None,
    offset: OffsetOption = None,
    limit: LimitOption = None,
    as_string: Annotated[
        bool, Option("--as-string", help="Print the collapsed relevance query only.")
    ] = False,
) -> None:
    """Compile filters into Solr request parameters."""
    try:
        criteria = _build_criteria(filters, query, handler, expand, offset, limit)
        compiler = QueryCompiler(resolve_settings())
        if as_string:
            console.print(compiler.compile_as_string(criteria), markup=False)
            return
        compiled = compiler.compile(criteria)
    except (CriteriaParseError, SearchError) as exc:
        _fail(str(exc))
        return

    content = f"```json\n{json.dumps(compiled.to_dict(), indent=2)}\n```"
    console.print(
        Panel(
            Markdown(content),
            title_align="left",
            title=f"Compiled query ({compiled.endpoint})",
            border_style="bold yellow",
        )
    )


@app.command("search")
def search_command(
    filters: FiltersOption = None,
    query: QueryOption = None,
    handler: HandlerOption = None,
    expand: ExpandOption = None,
    offset: OffsetOption = None,
    limit: LimitOption = None,
    solr_url: Annotated[
        str | None, Option("--solr-url", help="Solr base URL (defaults to SOLR_BRIDGE_URL).")
    ] = None,
    collection: Annotated[
        str | None, Option("--collection", "-c", help="Collection name.")
    ] = None,
    workers: Annotated[
        int, Option("--workers", help="Parallel child-expansion fetches.")
    ] = 1,
) -> None:
    """Run filters against Solr and print the resulting rows."""
    try:
        criteria = _build_criteria(filters, query, handler, expand, offset, limit)
    except CriteriaParseError as exc:
        _fail(str(exc))
        return

    settings = resolve_settings(url=solr_url, collection=collection)
    executor = SolrHttpExecutor(settings)
    try:
        engine = SearchEngine(
            executor,
            compiler=QueryCompiler(settings),
            max_workers=workers,
        )
        with console.status(status="Querying Solr..."):
            table = engine.search(criteria)
    except SearchError as exc:
        _fail(str(exc))
        return
    finally:
        executor.close()

    grid = Table(title=f"{len(table.rows)} of {table.total_found} documents", title_justify="left")
    for column in table.columns:
        grid.add_column(column.name, style="bold magenta" if column.name == "is_expanded" else None)
    for row in table.rows:
        grid.add_row(*("" if row.get(column.name) is None else str(row.get(column.name)) for column in table.columns))
    console.print(grid)


@app.command("expand-spec")
def expand_spec_command(
    value: Annotated[str, Argument(help="Expansion value, e.g. Both(2,7).")],
) -> None:
    """Show how an expansion value is interpreted."""
    spec = parse_expansion_spec(value)
    console.print(
        Panel(
            f"mode: {spec.mode}\noffset: {spec.offset}\nlimit: {spec.limit}",
            title_align="left",
            title="Expansion",
            border_style="bold green",
        )
    )
