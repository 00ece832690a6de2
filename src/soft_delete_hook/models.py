"""
Model Engine

SQLAlchemy Core backed models that speak a mapping-based criteria language
(field-name -> scalar-or-operator-dict, with optional ``where``, ``limit``,
``skip``, ``sort`` and ``select`` clauses). Records are returned as plain dicts.
"""

import json
import logging
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    and_,
    create_engine,
    delete,
    false,
    func,
    insert,
    or_,
    select,
    true,
    update,
)
from sqlalchemy.engine import Engine

from .config import DATABASE_URL

logger = logging.getLogger(__name__)

CLAUSE_KEYS = frozenset(["where", "limit", "skip", "sort", "select"])

COLUMN_TYPES: Dict[str, Callable[[], Any]] = {
    "string": String,
    "number": Float,
    "integer": BigInteger,
    "boolean": Boolean,
    "json": JSON,
    "ref": JSON,
}

OPERATORS: Dict[str, Callable[[Any, Any], Any]] = {
    "<": lambda column, operand: column < operand,
    "<=": lambda column, operand: column <= operand,
    ">": lambda column, operand: column > operand,
    ">=": lambda column, operand: column >= operand,
    "!=": lambda column, operand: column.is_not(None) if operand is None else column != operand,
    "in": lambda column, operand: column.in_(operand),
    "nin": lambda column, operand: column.not_in(operand),
    "like": lambda column, operand: column.like(operand),
    "contains": lambda column, operand: column.contains(operand, autoescape=True),
    "startsWith": lambda column, operand: column.startswith(operand, autoescape=True),
    "endsWith": lambda column, operand: column.endswith(operand, autoescape=True),
}


class UsageError(ValueError):
    """Criteria or values that cannot be applied to a model"""


class Model(Protocol):
    """Capability interface every model handle exposes"""

    identity: str
    primary_key: str
    attributes: Dict[str, Dict[str, Any]]
    archive_model_identity: Optional[str]

    def find(self, criteria: Any = None) -> List[Dict[str, Any]]: ...

    def find_one(self, criteria: Any = None) -> Optional[Dict[str, Any]]: ...

    def update(self, criteria: Any, values: Dict[str, Any]) -> List[Dict[str, Any]]: ...

    def update_one(self, criteria: Any, values: Dict[str, Any]) -> Optional[Dict[str, Any]]: ...

    def destroy(self, criteria: Any) -> List[Dict[str, Any]]: ...

    def destroy_one(self, criteria: Any) -> Optional[Dict[str, Any]]: ...


def _combine(expressions: List[Any]) -> Any:
    if not expressions:
        return true()
    if len(expressions) == 1:
        return expressions[0]
    return and_(*expressions)


class OrmModel:
    """
    A named entity type backed by one table

    The table is built from ``attributes`` when the owning ``Orm`` syncs, so
    attributes added before that (e.g. by hooks) become real columns.
    """

    def __init__(
        self,
        orm: "Orm",
        identity: str,
        attributes: Dict[str, Dict[str, Any]],
        primary_key: str = "id",
        archive_model_identity: Optional[str] = None,
    ):
        self.orm = orm
        self.identity = identity
        self.attributes = attributes
        self.primary_key = primary_key
        self.archive_model_identity = archive_model_identity
        self._table: Optional[Table] = None

        if primary_key not in attributes:
            attributes[primary_key] = {"type": "number", "auto_increment": True}

    def __repr__(self) -> str:
        return f"<OrmModel {self.identity}>"

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    @property
    def table(self) -> Table:
        if self._table is None:
            raise RuntimeError(f"Model `{self.identity}` has no table yet, call Orm.sync() first")
        return self._table

    def build_table(self, metadata: MetaData) -> Table:
        """Build (or reuse) the table described by the current attributes"""
        if self.identity in metadata.tables:
            self._table = metadata.tables[self.identity]
            return self._table

        columns = []
        for name, definition in self.attributes.items():
            is_pk = name == self.primary_key
            attr_type = definition.get("type", "string")
            if definition.get("auto_increment"):
                column_type = Integer()
            elif attr_type in COLUMN_TYPES:
                column_type = COLUMN_TYPES[attr_type]()
            else:
                raise UsageError(f"Unknown type `{attr_type}` for attribute `{self.identity}.{name}`")
            columns.append(
                Column(
                    name,
                    column_type,
                    primary_key=is_pk,
                    autoincrement=bool(definition.get("auto_increment")) if is_pk else False,
                    nullable=not is_pk and not definition.get("required", False),
                )
            )

        self._table = Table(self.identity, metadata, *columns)
        return self._table

    # ------------------------------------------------------------------
    # Criteria
    # ------------------------------------------------------------------

    def _column(self, name: str) -> Column:
        if name not in self.attributes:
            raise UsageError(f"Unknown attribute `{name}` for model `{self.identity}`")
        return self.table.c[name]

    def _parse(self, criteria: Any) -> Tuple[Any, Dict[str, Any]]:
        """Split criteria into a WHERE expression and the remaining clauses"""
        if criteria is None:
            return true(), {}
        if isinstance(criteria, (list, tuple)):
            return self._column(self.primary_key).in_(list(criteria)), {}
        if not isinstance(criteria, dict):
            return self._column(self.primary_key) == criteria, {}

        clauses = {key: value for key, value in criteria.items() if key in CLAUSE_KEYS and key != "where"}
        fields = {key: value for key, value in criteria.items() if key not in CLAUSE_KEYS}
        where = criteria.get("where")
        if where is not None and not isinstance(where, dict):
            raise UsageError(f"`where` must be a mapping, got {type(where).__name__}")

        conditions = self._conditions(fields)
        if where:
            conditions.extend(self._conditions(where))
        return _combine(conditions), clauses

    def _conditions(self, where: Dict[str, Any]) -> List[Any]:
        expressions = []
        for key, value in where.items():
            if key in ("or", "and"):
                if not isinstance(value, list) or not value:
                    raise UsageError(f"`{key}` must be a non-empty list of conditions")
                parts = []
                for sub in value:
                    if not isinstance(sub, dict):
                        raise UsageError(f"`{key}` entries must be mappings")
                    parts.append(_combine(self._conditions(sub)))
                expressions.append(or_(false(), *parts) if key == "or" else and_(true(), *parts))
            else:
                expressions.append(self._field_condition(self._column(key), value))
        return expressions

    def _field_condition(self, column: Column, value: Any) -> Any:
        if value is None:
            return column.is_(None)
        if isinstance(value, list):
            return column.in_(value)
        if isinstance(value, dict):
            if not value:
                raise UsageError(f"Empty condition for attribute `{column.name}`")
            expressions = []
            for operator, operand in value.items():
                if operator not in OPERATORS:
                    raise UsageError(f"Unsupported operator `{operator}` on `{column.name}`")
                expressions.append(OPERATORS[operator](column, operand))
            return _combine(expressions)
        return column == value

    def _order_by(self, sort: Any) -> List[Any]:
        items = sort if isinstance(sort, list) else [sort]
        order = []
        for item in items:
            if isinstance(item, str) and item.strip():
                parts = item.split()
                pairs = [(parts[0], parts[1] if len(parts) > 1 else "ASC")]
            elif isinstance(item, dict):
                pairs = list(item.items())
            else:
                raise UsageError(f"Invalid sort clause: {item!r}")
            for name, direction in pairs:
                column = self._column(name)
                order.append(column.desc() if str(direction).upper() == "DESC" else column.asc())
        return order

    def _select(self, where: Any, clauses: Dict[str, Any]):
        if clauses.get("select"):
            names = [self.primary_key] + [n for n in clauses["select"] if n != self.primary_key]
            stmt = select(*[self._column(name) for name in names])
        else:
            stmt = select(self.table)
        stmt = stmt.where(where)
        if clauses.get("sort"):
            stmt = stmt.order_by(*self._order_by(clauses["sort"]))
        if clauses.get("skip"):
            stmt = stmt.offset(int(clauses["skip"]))
        if clauses.get("limit") is not None:
            stmt = stmt.limit(int(clauses["limit"]))
        return stmt

    def _check_values(self, values: Dict[str, Any]) -> None:
        unknown = [name for name in values if name not in self.attributes]
        if unknown:
            raise UsageError(f"Unknown attribute(s) {', '.join(unknown)} for model `{self.identity}`")

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    def create(self, values: Dict[str, Any]) -> Dict[str, Any]:
        """Insert one record, applying ``defaults_to`` and ``required``"""
        self._check_values(values)
        record = dict(values)
        for name, definition in self.attributes.items():
            if name in record or definition.get("auto_increment"):
                continue
            if definition.get("required"):
                raise UsageError(f"Missing required attribute `{name}` for model `{self.identity}`")
            if "defaults_to" in definition:
                record[name] = definition["defaults_to"]

        with self.orm.engine.begin() as conn:
            result = conn.execute(insert(self.table).values(**record))
            pk_value = result.inserted_primary_key[0]
            row = conn.execute(select(self.table).where(self._column(self.primary_key) == pk_value)).one()
        return dict(row._mapping)

    def find(self, criteria: Any = None) -> List[Dict[str, Any]]:
        where, clauses = self._parse(criteria)
        with self.orm.engine.connect() as conn:
            return [dict(row._mapping) for row in conn.execute(self._select(where, clauses))]

    def find_one(self, criteria: Any = None) -> Optional[Dict[str, Any]]:
        records = self.find(criteria)
        if len(records) > 1:
            raise UsageError(f"More than one `{self.identity}` record matches the criteria passed to find_one")
        return records[0] if records else None

    def count(self, criteria: Any = None) -> int:
        where, _ = self._parse(criteria)
        with self.orm.engine.connect() as conn:
            return conn.execute(select(func.count()).select_from(self.table).where(where)).scalar_one()

    def _matching_keys(self, conn, criteria: Any, single: bool, operation: str) -> List[Any]:
        if criteria is None:
            raise UsageError(f"{operation} on `{self.identity}` requires criteria")
        where, _ = self._parse(criteria)
        pk_column = self._column(self.primary_key)
        keys = [row[0] for row in conn.execute(select(pk_column).where(where))]
        if single and len(keys) > 1:
            raise UsageError(f"More than one `{self.identity}` record matches the criteria passed to {operation}")
        return keys

    def _update(self, criteria: Any, values: Dict[str, Any], single: bool) -> List[Dict[str, Any]]:
        self._check_values(values)
        operation = "update_one" if single else "update"
        pk_column = self._column(self.primary_key)
        with self.orm.engine.begin() as conn:
            keys = self._matching_keys(conn, criteria, single, operation)
            if not keys:
                return []
            conn.execute(update(self.table).where(pk_column.in_(keys)).values(**values))
            rows = conn.execute(select(self.table).where(pk_column.in_(keys)))
            return [dict(row._mapping) for row in rows]

    def update(self, criteria: Any, values: Dict[str, Any]) -> List[Dict[str, Any]]:
        return self._update(criteria, values, single=False)

    def update_one(self, criteria: Any, values: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        records = self._update(criteria, values, single=True)
        return records[0] if records else None

    def _destroy(self, criteria: Any, single: bool) -> List[Dict[str, Any]]:
        operation = "destroy_one" if single else "destroy"
        pk_column = self._column(self.primary_key)
        with self.orm.engine.begin() as conn:
            keys = self._matching_keys(conn, criteria, single, operation)
            if not keys:
                return []
            records = [dict(row._mapping) for row in conn.execute(select(self.table).where(pk_column.in_(keys)))]
            conn.execute(delete(self.table).where(pk_column.in_(keys)))
        return records

    def destroy(self, criteria: Any) -> List[Dict[str, Any]]:
        return self._destroy(criteria, single=False)

    def destroy_one(self, criteria: Any) -> Optional[Dict[str, Any]]:
        records = self._destroy(criteria, single=True)
        return records[0] if records else None


class Orm:
    """Owns the engine, the table metadata and the model registry"""

    def __init__(
        self,
        engine: Optional[Engine] = None,
        database_url: str = DATABASE_URL,
        definitions_path: Optional[str] = None,
    ):
        if engine is None:
            engine = create_engine(
                database_url,
                connect_args={"check_same_thread": False} if "sqlite" in database_url else {},
            )
        self.engine = engine
        self.metadata = MetaData()
        self.definitions_path = definitions_path
        # identity -> model handle; hooks may replace entries with decorators
        self.models: Dict[str, Model] = {}
        self._defined: Dict[str, OrmModel] = {}
        self.loaded = False

    def define(
        self,
        identity: str,
        attributes: Optional[Dict[str, Dict[str, Any]]] = None,
        primary_key: str = "id",
        archive_model_identity: Optional[str] = None,
    ) -> OrmModel:
        """Register a model under ``identity``"""
        if identity in self._defined:
            raise UsageError(f"Model `{identity}` is already defined")
        model = OrmModel(
            self,
            identity,
            dict(attributes or {}),
            primary_key=primary_key,
            archive_model_identity=archive_model_identity,
        )
        self._defined[identity] = model
        self.models[identity] = model
        return model

    def define_all(self, definitions: Dict[str, Dict[str, Any]]) -> None:
        for identity, definition in definitions.items():
            self.define(
                identity,
                attributes=definition.get("attributes"),
                primary_key=definition.get("primary_key", "id"),
                archive_model_identity=definition.get("archive_model_identity"),
            )

    def load_definitions(self, path: str) -> None:
        """Define every model listed in a JSON file of ``{identity: definition}``"""
        with open(path, encoding="utf-8") as fh:
            definitions = json.load(fh)
        self.define_all(definitions)
        logger.info(f"Loaded {len(definitions)} model definitions from {path}")

    def load(self) -> None:
        if self.definitions_path:
            self.load_definitions(self.definitions_path)
        self.loaded = True
        logger.info(f"ORM loaded {len(self.models)} models")

    def sync(self) -> None:
        """Create tables for every defined model from its current attributes"""
        for model in self._defined.values():
            model.build_table(self.metadata)
        self.metadata.create_all(bind=self.engine)
        logger.info("Database tables created successfully")
