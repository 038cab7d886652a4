# filters.py
# Query-string driven filtering, sorting, field limiting and pagination for list endpoints.
#
#   ?temperature[gte]=20&deviceName=Woodford_Sensor   -> filter
#   ?sort=-time,deviceName                            -> sort
#   ?fields=deviceName,time,temperature               -> projection
#   ?fields=-humidity,-windDirection                  -> projection minus those
#   ?page=2&limit=10                                  -> skip 10, take 10

import operator
import re
from datetime import datetime
from typing import NamedTuple, Any

from sqlalchemy import false, inspect as sa_inspect
from sqlalchemy.orm import load_only

from errors import ValidationError, NotFoundError
from utils import parse_datetime

RESERVED_PARAMS = ("page", "sort", "limit", "fields")

OPERATORS = {
    "eq": operator.eq,
    "gte": operator.ge,
    "gt": operator.gt,
    "lte": operator.le,
    "lt": operator.lt,
}

_RANGE_KEY = re.compile(r"^(?P<field>[^\[\]]+)\[(?P<op>gte|gt|lte|lt)\]$")

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 100
MAX_LIMIT = 1000
MAX_PAGE = 100_000


class Criterion(NamedTuple):
    field: str
    op: str
    value: Any


def _positive_int(raw, default, maximum):
    """Parse a positive int query param; invalid values fall back, large ones are clamped."""
    try:
        val = int(raw) if raw not in (None, "") else default
    except (TypeError, ValueError):
        return default
    if val < 1:
        return default
    return min(val, maximum)


class APIFeatures:
    """
    Build a read query from query-string parameters.

    `field_map` maps wire names (as clients send them) to model attributes.
    The stages are meant to be chained in order:

        features = APIFeatures(Weather.query, request.args, Weather, field_map(WeatherSchema))
        features.filter().sort().limit_fields().paginate()
        rows = features.query.all()

    Nothing is executed except the count that backs the page check in paginate().
    """

    def __init__(self, query, args, model, field_map, *, default_sort="-createdAt",
                 default_limit=DEFAULT_LIMIT, hidden=("version_id",)):
        self.query = query
        self.args = args
        self.model = model
        self.field_map = field_map
        self.default_sort = default_sort
        self.default_limit = default_limit
        self.hidden = hidden

        self.criteria = []
        self.sort_keys = []
        self.fields = None
        self.skip = 0
        self.limit = default_limit

    def _column(self, attr):
        return sa_inspect(self.model).columns[attr]

    def _coerce(self, attr, name, raw):
        python_type = self._column(attr).type.python_type
        if python_type is datetime:
            value = parse_datetime(raw)
            if value is None:
                raise ValidationError(f"Invalid '{name}': expected a date or ISO 8601 datetime.")
            return value
        try:
            return python_type(raw)
        except (TypeError, ValueError):
            raise ValidationError(f"Invalid '{name}': expected a {python_type.__name__}.")

    def filter(self):
        for key, raw in self.args.items():
            if key in RESERVED_PARAMS:
                continue
            match = _RANGE_KEY.match(key)
            name, op = (match.group("field"), match.group("op")) if match else (key, "eq")

            attr = self.field_map.get(name)
            if attr is None:
                # Equality on a field no reading has: matches nothing
                self.criteria.append(Criterion(name, op, raw))
                self.query = self.query.filter(false())
                continue

            value = self._coerce(attr, key, raw)
            self.criteria.append(Criterion(attr, op, value))
            self.query = self.query.filter(OPERATORS[op](getattr(self.model, attr), value))
        return self

    def sort(self):
        order = []
        for token in (self.args.get("sort") or self.default_sort).split(","):
            token = token.strip()
            descending = token.startswith("-")
            attr = self.field_map.get(token.lstrip("-"))
            if attr is None:
                continue
            column = getattr(self.model, attr)
            self.sort_keys.append((attr, "desc" if descending else "asc"))
            order.append(column.desc() if descending else column.asc())
        # Stable order across pages
        order.append(self.model.id.asc())
        self.query = self.query.order_by(*order)
        return self

    def limit_fields(self):
        defaults = [attr for attr in self.field_map.values() if attr not in self.hidden]
        names = [n.strip() for n in (self.args.get("fields") or "").split(",") if n.strip()]
        excluded = [n[1:] for n in names if n.startswith("-")]

        if excluded and len(excluded) != len(names):
            raise ValidationError("Invalid 'fields': cannot mix inclusion and exclusion.")
        if excluded:
            # -name drops fields from the default projection; id stays
            dropped = {self.field_map.get(n) for n in excluded} - {"id"}
            fields = [attr for attr in defaults if attr not in dropped]
        elif names:
            fields = ["id"]
            for name in names:
                attr = self.field_map.get(name)
                if attr and attr not in fields:
                    fields.append(attr)
        else:
            fields = defaults
        self.fields = fields
        self.query = self.query.options(load_only(*(getattr(self.model, f) for f in fields)))
        return self

    def paginate(self):
        page = _positive_int(self.args.get("page"), DEFAULT_PAGE, MAX_PAGE)
        self.limit = _positive_int(self.args.get("limit"), self.default_limit, MAX_LIMIT)
        self.skip = (page - 1) * self.limit

        if self.args.get("page"):
            total = self.query.order_by(None).count()
            if self.skip >= total:
                raise NotFoundError("This page does not exist")

        self.query = self.query.offset(self.skip).limit(self.limit)
        return self
