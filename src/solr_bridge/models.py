from pydantic import BaseModel, Field
from typing import Any

from .search.criteria import Conjunction, Criteria, Operator, ValueType
from .search.filters import parse_criteria


class CriterionModel(BaseModel):
    """A single structured filter or sort entry"""

    field: str = Field(description="Field name")
    operator: Operator = Field(description="Logical operator applied to the field")
    values: list[Any] = Field(default_factory=list, description="One or more operand values")
    value_type: ValueType | None = Field(
        default=None, description="Value type; inferred from the first value when omitted"
    )
    conjunction: Conjunction = Field(
        default="AND", description="Boolean join relative to the previous entry"
    )


class SearchRequest(BaseModel):
    """Request model for compile and search calls"""

    filters: str | None = Field(default=None, description="Filter string, e.g. `year>=2020, type=report`")
    criteria: list[CriterionModel] = Field(default_factory=list, description="Structured entries applied after `filters`")
    query: str | None = Field(default=None, description="Relevance query passed through verbatim")
    url: str | None = Field(default=None, description="Full Solr request URL whose parameters override the compiled request")
    handler: str | None = Field(default=None, description="Request handler endpoint")
    expand: str | None = Field(default=None, description="Parent/child expansion, e.g. `Both(0,5)`")
    params: dict[str, str] = Field(default_factory=dict, description="Extra request parameters")
    offset: int | None = Field(default=None, ge=0)
    limit: int | None = Field(default=None, ge=0)
    collection: str | None = Field(default=None, description="Collection override for search calls")

    def to_criteria(self) -> Criteria:
        criteria = Criteria(name="API Request", offset=self.offset, limit=self.limit)
        if self.query is not None:
            criteria.add_query(self.query)
        if self.url is not None:
            criteria.add_url(self.url)
        if self.handler is not None:
            criteria.add_handler(self.handler)
        for name, value in self.params.items():
            criteria.add_param(name, value)
        parse_criteria(self.filters, criteria=criteria)
        for entry in self.criteria:
            criteria.add(
                entry.field,
                entry.operator,
                *entry.values,
                value_type=entry.value_type,
                conjunction=entry.conjunction,
            )
        if self.expand is not None:
            criteria.add_expansion(self.expand)
        return criteria


class ColumnModel(BaseModel):
    name: str
    type: str


class SearchResponse(BaseModel):
    """Rows returned by a search call"""

    total_found: int
    offset: int
    limit: int
    columns: list[ColumnModel]
    rows: list[dict[str, Any]]
