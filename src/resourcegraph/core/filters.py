"""
Filter argument translator.

Turns a resource's declared filters into the flat argument surface exposed
to callers, and turns incoming argument values into normalized filters and
ordering for the persistence backend.

Naming rules:
    product.color (search, exact)  -> product_color, product_color_list
    price (range)                  -> price: {lt, lte, gt, gte, between}
    releaseDate (date)             -> releaseDate: {before, after, strictly_before, strictly_after}
    product.image (exists)         -> exists: {product_image: true}
    product.releaseDate (order)    -> order: {product_releaseDate: "DESC"}

Nested paths always use "_" as separator in argument names, never ".".
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Literal, Mapping, Optional

from .defs import FilterDef, ResourceDescriptor
from .errors import GraphConfigError, ValidationError
from .query_types import NormalizedFilter, NormalizedOrder

if TYPE_CHECKING:
    from .registry import ResourceRegistry


# Search strategy -> normalized op
SEARCH_STRATEGIES = {
    "exact": "eq",
    "iexact": "iexact",
    "partial": "contains",
    "ipartial": "icontains",
    "start": "startswith",
    "end": "endswith",
    "word_start": "word_start",
}
TEXT_STRATEGIES = frozenset(SEARCH_STRATEGIES) - {"exact"}

RANGE_OPERATORS = {"lt": "lt", "lte": "lte", "gt": "gt", "gte": "gte", "between": "between"}
DATE_OPERATORS = {
    "before": "lte",
    "after": "gte",
    "strictly_before": "lt",
    "strictly_after": "gt",
}
ORDER_DIRECTIONS = {"ASC": "asc", "DESC": "desc"}

FILTER_KINDS = frozenset({"search", "numeric", "boolean", "range", "date", "exists", "order"})

PAGINATION_ARGUMENTS = ("first", "after", "last", "before")
RESERVED_ARGUMENTS = frozenset(PAGINATION_ARGUMENTS) | {"id"}
ORDER_ARGUMENT = "order"
EXISTS_ARGUMENT = "exists"
LIST_SUFFIX = "_list"

ArgumentShape = Literal["scalar", "list", "range", "date", "exists", "order"]


def path_to_argument(path: str) -> str:
    """product.color -> product_color"""
    return path.replace(".", "_")


@dataclass(frozen=True)
class FilterArgument:
    """
    One argument exposed to callers.

    ``path`` is the dotted property path for per-path arguments. The
    ``order`` and ``exists`` arguments cover several paths, listed in
    ``choices`` (argument key -> dotted path).
    """
    name: str
    shape: ArgumentShape
    kind: str
    value_type: str
    path: Optional[str] = None
    strategy: Optional[str] = None
    choices: Mapping[str, str] = field(default_factory=dict)

    def describe(self) -> dict[str, Any]:
        info: dict[str, Any] = {
            "name": self.name,
            "shape": self.shape,
            "kind": self.kind,
            "type": self.value_type,
        }
        if self.path:
            info["path"] = self.path
        if self.strategy:
            info["strategy"] = self.strategy
        if self.choices:
            info["choices"] = dict(self.choices)
        return info


@dataclass(frozen=True)
class TranslatedArguments:
    """Result of translating incoming filter arguments."""
    filters: tuple[NormalizedFilter, ...]
    order: tuple[NormalizedOrder, ...]  # final ordering, key tiebreaker included


def coerce_scalar(value: Any, value_type: str, argument: str) -> Any:
    """
    Check a scalar argument value against a field type.

    ISO strings are parsed for date and datetime fields.

    Raises:
        ValidationError: On null values or type mismatches
    """
    if value is None:
        raise ValidationError(f"Argument '{argument}' must not be null", argument=argument)

    if value_type == "int":
        if isinstance(value, int) and not isinstance(value, bool):
            return value
    elif value_type == "float":
        if isinstance(value, (int, float)) and not isinstance(value, bool):
            return value
    elif value_type == "string":
        if isinstance(value, str):
            return value
    elif value_type == "bool":
        if isinstance(value, bool):
            return value
    elif value_type == "date":
        if isinstance(value, date) and not isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                return date.fromisoformat(value)
            except ValueError:
                pass
    elif value_type == "datetime":
        if isinstance(value, datetime):
            return value
        if isinstance(value, str):
            try:
                return datetime.fromisoformat(value)
            except ValueError:
                pass
    elif value_type == "json":
        return value

    raise ValidationError(
        f"Argument '{argument}' expects {value_type}, got {type(value).__name__}",
        argument=argument,
    )


def coerce_list(value: Any, value_type: str, argument: str) -> list[Any]:
    """Check a list argument: a non-empty sequence of scalars."""
    if not isinstance(value, (list, tuple)):
        raise ValidationError(
            f"Argument '{argument}' expects a list of {value_type}", argument=argument
        )
    if not value:
        raise ValidationError(f"Argument '{argument}' must not be empty", argument=argument)
    return [coerce_scalar(item, value_type, argument) for item in value]


class FilterArgumentTranslator:
    """
    Argument schema and translation for one resource's active filter set.

    Usage:
        translator = FilterArgumentTranslator(registry, descriptor, descriptor.active_filters())
        result = translator.translate({"product_color_list": ["red", "green"]})
    """

    def __init__(
        self,
        registry: "ResourceRegistry",
        descriptor: ResourceDescriptor,
        filters: Mapping[str, FilterDef],
    ):
        self.registry = registry
        self.descriptor = descriptor
        self.resource = descriptor.name
        self._errors: list[str] = []
        self._arguments: dict[str, FilterArgument] = {}
        self._order_choices: dict[str, str] = {}
        self._exists_choices: dict[str, str] = {}
        self._order_defaults: dict[str, str] = {}

        for filter_name, filter_def in filters.items():
            self._add_filter(filter_name, filter_def)

        if self._order_choices:
            self._add_argument(
                FilterArgument(
                    name=ORDER_ARGUMENT,
                    shape="order",
                    kind="order",
                    value_type="direction",
                    choices=MappingProxyType(dict(self._order_choices)),
                ),
                "order",
            )
        if self._exists_choices:
            self._add_argument(
                FilterArgument(
                    name=EXISTS_ARGUMENT,
                    shape="exists",
                    kind="exists",
                    value_type="bool",
                    choices=MappingProxyType(dict(self._exists_choices)),
                ),
                "exists",
            )

        if self._errors:
            raise GraphConfigError(self._errors)

        self.arguments: Mapping[str, FilterArgument] = MappingProxyType(self._arguments)

    # --- schema building ---

    def _error(self, filter_name: str, message: str):
        self._errors.append(f"[{self.resource}.filters.{filter_name}] {message}")

    def _add_argument(self, argument: FilterArgument, filter_name: str):
        if argument.name in RESERVED_ARGUMENTS:
            self._error(filter_name, f"argument name '{argument.name}' is reserved")
            return
        if argument.name in self._arguments:
            self._error(filter_name, f"argument '{argument.name}' is declared twice")
            return
        self._arguments[argument.name] = argument

    def _add_filter(self, filter_name: str, filter_def: FilterDef):
        if filter_def.kind not in FILTER_KINDS:
            self._error(filter_name, f"unknown filter kind '{filter_def.kind}'")
            return

        for path, strategy in filter_def.properties.items():
            try:
                resolved = self.registry.resolve_path(self.resource, path)
            except ValidationError as e:
                self._error(filter_name, str(e))
                continue

            leaf = resolved.leaf
            if leaf.is_relation:
                self._error(filter_name, f"property '{path}' is a relation, not a scalar field")
                continue

            name = path_to_argument(path)
            kind = filter_def.kind

            if kind == "search":
                strategy = strategy or "exact"
                if strategy not in SEARCH_STRATEGIES:
                    self._error(filter_name, f"unknown search strategy '{strategy}' for '{path}'")
                    continue
                if strategy in TEXT_STRATEGIES and leaf.type != "string":
                    self._error(
                        filter_name,
                        f"strategy '{strategy}' needs a string field, '{path}' is {leaf.type}",
                    )
                    continue
                self._add_scalar_and_list(filter_name, name, kind, path, strategy, leaf.type)

            elif kind == "numeric":
                if leaf.type not in ("int", "float"):
                    self._error(filter_name, f"numeric filter on non-numeric '{path}'")
                    continue
                self._add_scalar_and_list(filter_name, name, kind, path, "exact", leaf.type)

            elif kind == "boolean":
                if leaf.type != "bool":
                    self._error(filter_name, f"boolean filter on non-bool '{path}'")
                    continue
                self._add_argument(
                    FilterArgument(name=name, shape="scalar", kind=kind,
                                   value_type="bool", path=path, strategy="exact"),
                    filter_name,
                )

            elif kind == "range":
                if leaf.type not in ("int", "float"):
                    self._error(filter_name, f"range filter on non-numeric '{path}'")
                    continue
                self._add_argument(
                    FilterArgument(name=name, shape="range", kind=kind,
                                   value_type=leaf.type, path=path),
                    filter_name,
                )

            elif kind == "date":
                if leaf.type not in ("date", "datetime"):
                    self._error(filter_name, f"date filter on non-date '{path}'")
                    continue
                self._add_argument(
                    FilterArgument(name=name, shape="date", kind=kind,
                                   value_type=leaf.type, path=path),
                    filter_name,
                )

            elif kind == "exists":
                if name in self._exists_choices:
                    self._error(filter_name, f"exists property '{path}' is declared twice")
                    continue
                self._exists_choices[name] = path

            elif kind == "order":
                if resolved.crosses_many:
                    self._error(filter_name, f"cannot order across a to-many relation: '{path}'")
                    continue
                if strategy is not None and strategy.upper() not in ORDER_DIRECTIONS:
                    self._error(filter_name, f"invalid default direction '{strategy}' for '{path}'")
                    continue
                if name in self._order_choices:
                    self._error(filter_name, f"order property '{path}' is declared twice")
                    continue
                self._order_choices[name] = path
                if strategy is not None:
                    self._order_defaults[name] = strategy.upper()

    def _add_scalar_and_list(
        self,
        filter_name: str,
        name: str,
        kind: str,
        path: str,
        strategy: str,
        value_type: str,
    ):
        self._add_argument(
            FilterArgument(name=name, shape="scalar", kind=kind,
                           value_type=value_type, path=path, strategy=strategy),
            filter_name,
        )
        self._add_argument(
            FilterArgument(name=name + LIST_SUFFIX, shape="list", kind=kind,
                           value_type=value_type, path=path, strategy=strategy),
            filter_name,
        )

    def describe(self) -> list[dict[str, Any]]:
        return [argument.describe() for argument in self.arguments.values()]

    # --- translation ---

    def translate(self, args: Mapping[str, Any]) -> TranslatedArguments:
        """
        Translate filter argument values (pagination arguments excluded).

        Raises:
            ValidationError: Unknown argument, type mismatch, bad ordering
        """
        filters: list[NormalizedFilter] = []
        requested_order: list[NormalizedOrder] = []

        for name, value in args.items():
            argument = self.arguments.get(name)
            if argument is None:
                raise ValidationError(
                    f"Unknown argument '{name}' for resource '{self.resource}'",
                    argument=name,
                )

            if argument.shape == "scalar":
                filters.append(self._translate_scalar(argument, value))
            elif argument.shape == "list":
                filters.append(self._translate_list(argument, value))
            elif argument.shape == "range":
                filters.extend(self._translate_operators(argument, value, RANGE_OPERATORS))
            elif argument.shape == "date":
                filters.extend(self._translate_operators(argument, value, DATE_OPERATORS))
            elif argument.shape == "exists":
                filters.extend(self._translate_exists(argument, value))
            elif argument.shape == "order":
                requested_order = self._translate_order(argument, value)

        return TranslatedArguments(
            filters=tuple(filters),
            order=tuple(self.ordering(requested_order)),
        )

    def ordering(self, requested: list[NormalizedOrder]) -> list[NormalizedOrder]:
        """
        Final ordering: requested order, else the resource default, then the
        key fields ascending so every item has a single position.
        """
        order = list(requested) or [
            NormalizedOrder(field=path, dir=direction)
            for path, direction in self.descriptor.order
        ]
        seen = {o.field for o in order}
        for key in self.descriptor.keys:
            if key not in seen:
                order.append(NormalizedOrder(field=key, dir="asc"))
        return order

    def _translate_scalar(self, argument: FilterArgument, value: Any) -> NormalizedFilter:
        value = coerce_scalar(value, argument.value_type, argument.name)
        op = SEARCH_STRATEGIES[argument.strategy or "exact"]
        return NormalizedFilter(field=argument.path, op=op, value=value)

    def _translate_list(self, argument: FilterArgument, value: Any) -> NormalizedFilter:
        values = coerce_list(value, argument.value_type, argument.name)
        op = SEARCH_STRATEGIES[argument.strategy or "exact"]
        if op == "eq":
            op = "in"
        return NormalizedFilter(field=argument.path, op=op, value=values)

    def _translate_operators(
        self,
        argument: FilterArgument,
        value: Any,
        operators: Mapping[str, str],
    ) -> list[NormalizedFilter]:
        if not isinstance(value, Mapping) or not value:
            raise ValidationError(
                f"Argument '{argument.name}' expects an object with any of {sorted(operators)}",
                argument=argument.name,
            )

        filters = []
        for operator, operand in value.items():
            location = f"{argument.name}.{operator}"
            if operator not in operators:
                raise ValidationError(
                    f"Unknown operator '{operator}' for argument '{argument.name}'",
                    argument=location,
                )
            if operator == "between":
                bounds = coerce_list(operand, argument.value_type, location)
                if len(bounds) != 2:
                    raise ValidationError(
                        f"Argument '{location}' expects exactly two values", argument=location
                    )
                operand = bounds
            else:
                operand = coerce_scalar(operand, argument.value_type, location)
            filters.append(
                NormalizedFilter(field=argument.path, op=operators[operator], value=operand)
            )
        return filters

    def _translate_exists(self, argument: FilterArgument, value: Any) -> list[NormalizedFilter]:
        if not isinstance(value, Mapping) or not value:
            raise ValidationError(
                f"Argument '{argument.name}' expects an object of property: bool",
                argument=argument.name,
            )

        filters = []
        for key, flag in value.items():
            location = f"{argument.name}.{key}"
            path = argument.choices.get(key)
            if path is None:
                raise ValidationError(
                    f"Unknown exists property '{key}' for resource '{self.resource}'",
                    argument=location,
                )
            flag = coerce_scalar(flag, "bool", location)
            filters.append(NormalizedFilter(field=path, op="isnull", value=not flag))
        return filters

    def _translate_order(self, argument: FilterArgument, value: Any) -> list[NormalizedOrder]:
        # Either {"a": "ASC", "b": "DESC"} or [{"a": "ASC"}, {"b": "DESC"}]
        if isinstance(value, Mapping):
            entries = list(value.items())
        elif isinstance(value, (list, tuple)) and all(isinstance(v, Mapping) for v in value):
            entries = [item for mapping in value for item in mapping.items()]
        else:
            raise ValidationError(
                f"Argument '{argument.name}' expects an object of property: ASC|DESC",
                argument=argument.name,
            )
        if not entries:
            raise ValidationError(f"Argument '{argument.name}' must not be empty",
                                  argument=argument.name)

        order: list[NormalizedOrder] = []
        seen: set[str] = set()
        for key, direction in entries:
            location = f"{argument.name}.{key}"
            path = argument.choices.get(key)
            if path is None:
                raise ValidationError(
                    f"Unknown order property '{key}' for resource '{self.resource}'",
                    argument=location,
                )
            if direction is None:
                direction = self._order_defaults.get(key, "ASC")
            if not isinstance(direction, str) or direction.upper() not in ORDER_DIRECTIONS:
                raise ValidationError(
                    f"Invalid order direction {direction!r} for '{key}', expected ASC or DESC",
                    argument=location,
                )
            if path in seen:
                raise ValidationError(f"Order property '{key}' given twice", argument=location)
            seen.add(path)
            order.append(NormalizedOrder(field=path, dir=ORDER_DIRECTIONS[direction.upper()]))
        return order
