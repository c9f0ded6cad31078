"""
FastAPI server exposing criteria compilation and search.
"""

from fastapi import FastAPI
from fastapi.responses import JSONResponse

from .config import resolve_settings
from .errors import ExecutionError, TranslationError
from .executor import SolrHttpExecutor
from .models import ColumnModel, SearchRequest, SearchResponse
from .search import CriteriaParseError, QueryCompiler, SearchEngine

app = FastAPI(title="SolrBridge", description="Criteria-driven search over Solr")


def get_executor(collection: str | None = None) -> SolrHttpExecutor:
    """Build an executor from environment settings."""
    settings = resolve_settings(collection=collection)
    return SolrHttpExecutor(settings)


@app.post("/api/compile")
async def compile_criteria(request: SearchRequest):
    """Compile a request into Solr query parameters without executing it."""
    try:
        criteria = request.to_criteria()
        compiler = QueryCompiler(resolve_settings())
        compiled = compiler.compile(criteria)
        return {
            "compiled": compiled.to_dict(),
            "query_string": compiler.compile_as_string(criteria),
        }
    except (CriteriaParseError, TranslationError) as exc:
        return JSONResponse({"error": str(exc)}, status_code=400)


@app.post("/api/search")
def search(request: SearchRequest):
    """Run a request against Solr and return the (expanded) result rows."""
    try:
        criteria = request.to_criteria()
    except CriteriaParseError as exc:
        return JSONResponse({"error": str(exc)}, status_code=400)

    executor = get_executor(request.collection)
    try:
        engine = SearchEngine(executor, compiler=QueryCompiler(executor.settings))
        table = engine.search(criteria)
    except TranslationError as exc:
        return JSONResponse({"error": str(exc)}, status_code=400)
    except ExecutionError as exc:
        return JSONResponse({"error": str(exc)}, status_code=502)
    finally:
        executor.close()

    return SearchResponse(
        total_found=table.total_found,
        offset=table.offset,
        limit=table.limit,
        columns=[ColumnModel(name=column.name, type=column.type) for column in table.columns],
        rows=table.rows,
    )
