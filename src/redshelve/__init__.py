import hashlib
import json
import logging
import os
import re
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, ClassVar, Dict, Iterable, Iterator, Mapping, Optional, Sequence, Tuple, Union

import redis as redis_py
from pydantic import BaseModel
from redis.exceptions import ConnectionError as ConnectivityFailure
from redis.exceptions import NoScriptError, ResponseError


logger = logging.getLogger(__name__)

LUA_DIR = Path(__file__).resolve().parent / "lua"

__all__ = [
    "Key",
    "Connection",
    "ConnectionOptions",
    "Lua",
    "scripts",
    "Model",
    "ModelDescriptor",
    "Collection",
    "List",
    "Set",
    "attribute",
    "counter",
    "list_of",
    "set_of",
    "conn",
    "connect",
    "db",
    "flush",
    "RedshelveError",
    "MissingID",
    "IndexNotFound",
    "UniqueIndexViolation",
    "ConnectivityFailure",
]


class RedshelveError(Exception):
    """Base class for errors raised by redshelve itself."""


class MissingID(RedshelveError):
    """Raised when an operation needs the id of a record that was never saved."""


class IndexNotFound(RedshelveError):
    """Raised when a lookup references an attribute that is not indexed."""


class UniqueIndexViolation(RedshelveError):
    """Raised by :meth:`Model.save` when a unique value is already taken."""

    def __init__(self, attribute: str) -> None:
        super().__init__(f"{attribute} is not unique")
        self.attribute = attribute


# ----------------------------------------------------------------------
# Keys
# ----------------------------------------------------------------------
class Key:
    """Immutable, hierarchical Redis key.

    ``Key("Post")["indices"]["status"]["draft"]`` renders as
    ``Post:indices:status:draft``. Keys compare equal to each other and to
    their string form.
    """

    __slots__ = ("_parts", "_value")

    def __init__(self, *parts: Any) -> None:
        if not parts:
            raise ValueError("a key needs at least one part")
        self._parts = tuple(str(part) for part in parts)
        self._value = ":".join(self._parts)

    @property
    def parts(self) -> Tuple[str, ...]:
        return self._parts

    def __getitem__(self, token: Any) -> "Key":
        return Key(*self._parts, token)

    def __str__(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return f"Key({self._value!r})"

    def __eq__(self, other: Any) -> bool:
        if isinstance(other, Key):
            return self._value == other._value
        if isinstance(other, str):
            return self._value == other
        return NotImplemented

    def __hash__(self) -> int:
        return hash(self._value)


# ----------------------------------------------------------------------
# Connections
# ----------------------------------------------------------------------
class ConnectionOptions(BaseModel):
    """Selects which Redis instance and database a connection addresses."""

    host: str = "localhost"
    port: int = 6379
    db: int = 0
    username: Optional[str] = None
    password: Optional[str] = None
    socket_timeout: Optional[float] = None

    @classmethod
    def from_env(cls, prefix: str = "REDSHELVE_", environ: Optional[Mapping[str, str]] = None) -> "ConnectionOptions":
        """Build options from ``<prefix>HOST``, ``<prefix>PORT`` and friends.

        Unset or empty variables fall back to the field defaults.
        """

        environ = os.environ if environ is None else environ
        values: Dict[str, Any] = {}
        for name in cls.model_fields:
            raw = environ.get(f"{prefix}{name.upper()}")
            if raw:
                values[name] = raw
        return cls(**values)

    def client_kwargs(self) -> Dict[str, Any]:
        kwargs = self.model_dump(exclude_none=True)
        kwargs["decode_responses"] = True
        return kwargs


def _coerce_options(
    options: Union[ConnectionOptions, Mapping[str, Any], None] = None,
    **overrides: Any,
) -> ConnectionOptions:
    if options is None:
        return ConnectionOptions(**overrides)
    if isinstance(options, ConnectionOptions):
        return ConnectionOptions(**{**options.model_dump(), **overrides})
    return ConnectionOptions(**{**dict(options), **overrides})


class Connection:
    """Lazily established Redis client, one per thread and context.

    The context names the scope owning the connection (``"main"`` for the
    module-level connection, the class name for models that were connected
    explicitly). Clients are never shared between threads.
    """

    _local = threading.local()

    def __init__(
        self,
        context: str = "main",
        options: Union[ConnectionOptions, Mapping[str, Any], None] = None,
        *,
        client_factory: Optional[Callable[..., Any]] = None,
    ) -> None:
        self.context = context
        self.options = _coerce_options(options)
        self.client_factory = client_factory or redis_py.Redis

    def _threaded(self) -> Dict[str, Any]:
        registry = getattr(self._local, "connections", None)
        if registry is None:
            registry = self._local.connections = {}
        return registry

    def reset(self) -> None:
        """Drop the current thread's client for this context."""

        self._threaded().pop(self.context, None)

    def start(
        self,
        options: Union[ConnectionOptions, Mapping[str, Any], None] = None,
        *,
        client_factory: Optional[Callable[..., Any]] = None,
        **overrides: Any,
    ) -> None:
        self.options = _coerce_options(options, **overrides)
        if client_factory is not None:
            self.client_factory = client_factory
        self.reset()

    @property
    def redis(self) -> Any:
        registry = self._threaded()
        client = registry.get(self.context)
        if client is None:
            client = self.client_factory(**self.options.client_kwargs())
            registry[self.context] = client
            logger.debug(
                "connected context %s to %s:%s/%s",
                self.context,
                self.options.host,
                self.options.port,
                self.options.db,
            )
        return client


conn = Connection()


def connect(
    options: Union[ConnectionOptions, Mapping[str, Any], None] = None,
    *,
    client_factory: Optional[Callable[..., Any]] = None,
    **overrides: Any,
) -> None:
    """Configure the default connection used by models without their own."""

    conn.start(options, client_factory=client_factory, **overrides)


def db() -> Any:
    return conn.redis


def flush() -> None:
    db().flushdb()


# ----------------------------------------------------------------------
# Server-side scripts
# ----------------------------------------------------------------------
_COMMENT_LINE = re.compile(r"^\s*--.*$", re.MULTILINE)
_BLANK_LINE = re.compile(r"^\s+$", re.MULTILINE)
_INDENT = re.compile(r"^\s+", re.MULTILINE)


def _minify(code: str) -> str:
    code = _COMMENT_LINE.sub("", code)
    code = _BLANK_LINE.sub("", code)
    return _INDENT.sub("", code)


def _is_unknown_script(exc: ResponseError) -> bool:
    return isinstance(exc, NoScriptError) or str(exc).startswith("NOSCRIPT")


class Lua:
    """Runs the Lua scripts found in ``directory`` by their SHA1 fingerprint.

    Script bodies are read and minified once per command, then kept with
    their fingerprint for the lifetime of the instance. Models share the
    module-level ``scripts`` instance and pass their own client to ``run``.
    When the server no longer knows a fingerprint (after a restart or
    ``SCRIPT FLUSH``) the body is uploaded with ``EVAL`` instead, which gives
    the same result.
    """

    def __init__(self, directory: Union[str, Path], redis: Any = None) -> None:
        self.directory = Path(directory)
        self.redis = redis
        self._cache: Dict[str, Tuple[str, str]] = {}
        self._lock = threading.Lock()

    def _client(self, redis: Any = None) -> Any:
        redis = self.redis if redis is None else redis
        if redis is None:
            raise RedshelveError("no Redis client given to run scripts with")
        if isinstance(redis, Connection):
            return redis.redis
        return redis

    def _read(self, command: str) -> str:
        return _minify((self.directory / f"{command}.lua").read_text(encoding="utf-8"))

    def script(self, command: str) -> Tuple[str, str]:
        """Return ``(body, sha1)`` for ``command``, loading it on first use."""

        entry = self._cache.get(command)
        if entry is not None:
            return entry
        with self._lock:
            entry = self._cache.get(command)
            if entry is None:
                body = self._read(command)
                entry = (body, hashlib.sha1(body.encode("utf-8")).hexdigest())
                self._cache[command] = entry
                logger.debug("loaded script %s (%s)", command, entry[1])
        return entry

    def run(
        self,
        command: str,
        keys: Sequence[Any] = (),
        argv: Sequence[Any] = (),
        *,
        redis: Any = None,
    ) -> Any:
        body, sha = self.script(command)
        keys = [str(key) for key in keys]
        argv = [str(arg) for arg in argv]
        client = self._client(redis)
        try:
            return client.evalsha(sha, len(keys), *keys, *argv)
        except ResponseError as exc:
            if not _is_unknown_script(exc):
                raise
            logger.debug("script %s (%s) unknown to the server, sending body", command, sha)
            return client.eval(body, len(keys), *keys, *argv)


scripts = Lua(LUA_DIR)


# ----------------------------------------------------------------------
# Model declarations
# ----------------------------------------------------------------------
_MODELS: Dict[str, type] = {}


def _model_path(model: type) -> str:
    return f"{model.__module__}.{model.__qualname__}"


def _resolve_model(model: Union[str, type], module: Optional[str] = None) -> type:
    """Find a model by dotted path, qualified name or class name.

    Bare names prefer models defined in ``module``; a name matching models in
    several modules is rejected rather than guessed.
    """

    if not isinstance(model, str):
        return model
    if model in _MODELS:
        return _MODELS[model]
    matches = [cls for cls in _MODELS.values() if model in (cls.__name__, cls.__qualname__)]
    if module is not None:
        local = [cls for cls in matches if cls.__module__ == module]
        if local:
            matches = local
    if not matches:
        raise LookupError(f"model {model!r} is not defined")
    if len(matches) > 1:
        paths = ", ".join(sorted(_model_path(cls) for cls in matches))
        raise LookupError(f"model {model!r} is ambiguous: {paths}")
    return matches[0]


def _serialize(value: Any) -> str:
    if isinstance(value, str):
        return value
    return str(value)


def _section(items: Sequence[Any]) -> list:
    return [len(items), *items]


class Attribute:
    """Data descriptor mapping a declared attribute onto the record's values."""

    def __init__(self, cast: Optional[Callable[[Any], Any]] = None, *, index: bool = False, unique: bool = False) -> None:
        self.cast = cast
        self.index = index
        self.unique = unique
        self.name: Optional[str] = None

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, instance: Optional["Model"], owner: type) -> Any:
        if instance is None:
            return self
        value = instance._attributes.get(self.name)
        if value is None or self.cast is None:
            return value
        return self.cast(value)

    def __set__(self, instance: "Model", value: Any) -> None:
        instance._attributes[self.name] = value


class Counter:
    """Read-only view of a per-record counter; change it with ``incr``/``decr``."""

    def __init__(self) -> None:
        self.name: Optional[str] = None

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name

    def __get__(self, instance: Optional["Model"], owner: type) -> Any:
        if instance is None:
            return self
        if instance.is_new:
            return 0
        value = instance.db().hget(str(instance.key["counters"]), self.name)
        return int(value or 0)

    def __set__(self, instance: "Model", value: Any) -> None:
        raise AttributeError(f"counter {self.name!r} is read-only; use incr() or decr()")


class Relation:
    """Declares a List or Set of ``target`` records owned by each record."""

    def __init__(self, kind: type, target: Union[str, type]) -> None:
        self.kind = kind
        self.target = target
        self.name: Optional[str] = None
        self.module: Optional[str] = None

    def __set_name__(self, owner: type, name: str) -> None:
        self.name = name
        self.module = owner.__module__

    def __get__(self, instance: Optional["Model"], owner: type) -> Any:
        if instance is None:
            return self
        target = _resolve_model(self.target, self.module)
        return self.kind(instance.key[self.name], target.namespace(), target)


def attribute(cast: Optional[Callable[[Any], Any]] = None, *, index: bool = False, unique: bool = False) -> Attribute:
    return Attribute(cast, index=index, unique=unique)


def counter() -> Counter:
    return Counter()


def list_of(target: Union[str, type]) -> Relation:
    return Relation(List, target)


def set_of(target: Union[str, type]) -> Relation:
    return Relation(Set, target)


@dataclass(frozen=True)
class ModelDescriptor:
    """Everything a model declares, collected once when the class is defined."""

    namespace: str
    attributes: Tuple[str, ...] = ()
    indices: Tuple[str, ...] = ()
    uniques: Tuple[str, ...] = ()
    counters: Tuple[str, ...] = ()
    lists: Tuple[str, ...] = ()
    sets: Tuple[str, ...] = ()

    def sections(self) -> list:
        """Script arguments naming the declared uniques, indices, counters, lists and sets."""

        argv: list = []
        for names in (self.uniques, self.indices, self.counters, self.lists, self.sets):
            argv.extend(_section(names))
        return argv

    @classmethod
    def build(cls, model: type) -> "ModelDescriptor":
        declared: Dict[str, Any] = {}
        for klass in reversed(model.__mro__):
            for name, value in vars(klass).items():
                if isinstance(value, (Attribute, Counter, Relation)):
                    declared[name] = value

        attributes = tuple(name for name, value in declared.items() if isinstance(value, Attribute))
        indices = list(getattr(model, "__indices__", ()))
        uniques = list(getattr(model, "__uniques__", ()))
        for name in attributes:
            if declared[name].index and name not in indices:
                indices.append(name)
            if declared[name].unique and name not in uniques:
                uniques.append(name)

        for name in declared:
            if name == "id" or not name.isidentifier():
                raise ValueError(f"{model.__name__}: {name!r} cannot be declared")
        for name in (*indices, *uniques):
            if name not in attributes:
                raise ValueError(f"{model.__name__}: cannot index undeclared attribute {name!r}")

        namespace = getattr(model, "__namespace__", None) or model.__name__
        if ":" in namespace:
            raise ValueError(f"{model.__name__}: namespace {namespace!r} must not contain ':'")

        return cls(
            namespace=namespace,
            attributes=attributes,
            indices=tuple(indices),
            uniques=tuple(uniques),
            counters=tuple(name for name, value in declared.items() if isinstance(value, Counter)),
            lists=tuple(name for name, value in declared.items() if isinstance(value, Relation) and value.kind is List),
            sets=tuple(name for name, value in declared.items() if isinstance(value, Relation) and value.kind is Set),
        )


# ----------------------------------------------------------------------
# Records
# ----------------------------------------------------------------------
class Model:
    """Base class for records stored as Redis hashes.

    Subclasses declare their schema in the class body::

        class Post(Model):
            title = attribute()
            slug = attribute(unique=True)
            status = attribute(index=True)
            views = counter()
            comments = list_of("Comment")

    ``__namespace__`` overrides the key prefix (defaults to the class name);
    ``__indices__`` and ``__uniques__`` may list attribute names instead of
    passing ``index=True`` / ``unique=True``.
    """

    _descriptor: ClassVar[ModelDescriptor]
    _conn: ClassVar[Connection]
    _connected: ClassVar[bool] = False

    def __init_subclass__(cls, **kwargs):
        super().__init_subclass__(**kwargs)
        cls._descriptor = ModelDescriptor.build(cls)
        cls._conn = Connection(_model_path(cls))
        cls._connected = False
        _MODELS[_model_path(cls)] = cls

    def __init__(self, **attributes: Any) -> None:
        self._attributes: Dict[str, Any] = {}
        self._id: Optional[str] = None
        self.update_attributes(attributes)

    # ------------------------------------------------------------------
    # Connection helpers
    # ------------------------------------------------------------------
    @classmethod
    def connect(
        cls,
        options: Union[ConnectionOptions, Mapping[str, Any], None] = None,
        *,
        client_factory: Optional[Callable[..., Any]] = None,
        **overrides: Any,
    ) -> None:
        """Give this model its own connection instead of the module default."""

        cls._conn.start(options, client_factory=client_factory, **overrides)
        cls._connected = True

    @classmethod
    def connection(cls) -> Connection:
        return cls._conn if cls._connected else conn

    @classmethod
    def db(cls) -> Any:
        return cls.connection().redis

    @classmethod
    def namespace(cls) -> Key:
        return Key(cls._descriptor.namespace)

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------
    @classmethod
    def get(cls, id: Any) -> Optional["Model"]:
        if id is None or not cls.exists(id):
            return None
        return cls(id=id).load()

    @classmethod
    def exists(cls, id: Any) -> bool:
        return bool(cls.db().sismember(str(cls.namespace()["all"]), str(id)))

    @classmethod
    def new_id(cls) -> str:
        return str(cls.db().incr(str(cls.namespace()["id"])))

    @classmethod
    def with_(cls, attribute: str, value: Any) -> Optional["Model"]:
        """Return the record holding ``value`` for the unique ``attribute``."""

        if attribute not in cls._descriptor.uniques:
            raise IndexNotFound(attribute)
        id = cls.db().hget(str(cls.namespace()["uniques"][attribute]), _serialize(value))
        return cls.get(id) if id is not None else None

    @classmethod
    def find(cls, **filters: Any) -> "Set":
        """Return the records whose indexed attribute equals a value.

        Exactly one ``attribute=value`` filter is supported.
        """

        if not filters:
            raise TypeError(f"find() needs an attribute=value filter; use {cls.__name__}.get(id) to look up by id")
        if len(filters) > 1:
            raise ValueError("find() supports a single attribute=value filter")
        ((attribute, value),) = filters.items()
        if attribute not in cls._descriptor.indices:
            raise IndexNotFound(attribute)
        return Set(cls.namespace()["indices"][attribute][_serialize(value)], cls.namespace(), cls)

    @classmethod
    def all(cls) -> "Set":
        return Set(cls.namespace()["all"], cls.namespace(), cls)

    @classmethod
    def create(cls, **attributes: Any) -> "Model":
        return cls(**attributes).save()

    @classmethod
    def _from_store(cls, id: Any, attributes: Mapping[str, Any]) -> "Model":
        instance = cls(id=id)
        instance._attributes.update(attributes)
        return instance

    # ------------------------------------------------------------------
    # Identity
    # ------------------------------------------------------------------
    @property
    def id(self) -> str:
        if self._id is None:
            raise MissingID(f"{type(self).__name__} has not been saved")
        return self._id

    @property
    def is_new(self) -> bool:
        return self._id is None

    @property
    def key(self) -> Key:
        return self.namespace()[self.id]

    @property
    def attributes(self) -> Dict[str, Any]:
        return self._attributes

    def __eq__(self, other: Any) -> bool:
        if not isinstance(other, type(self)):
            return NotImplemented
        if self.is_new or other.is_new:
            return self is other
        return self.key == other.key

    def __hash__(self) -> int:
        if self.is_new:
            return object.__hash__(self)
        return hash(self.key)

    def __repr__(self) -> str:
        return f"<{type(self).__name__} id={self._id!r} {self._attributes!r}>"

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------
    def update_attributes(self, attributes: Mapping[str, Any]) -> None:
        for name, value in attributes.items():
            if name == "id":
                self._id = None if value is None else str(value)
            elif name in self._descriptor.attributes:
                setattr(self, name, value)
            else:
                raise AttributeError(f"{type(self).__name__} has no attribute {name!r}")

    def update(self, **attributes: Any) -> "Model":
        self.update_attributes(attributes)
        return self.save()

    def load(self) -> "Model":
        if not self.is_new:
            self._attributes.update(self.db().hgetall(str(self.key)))
        return self

    def save(self) -> "Model":
        """Persist the record in one atomic script call.

        Only the attributes held in memory are written (``None`` clears a
        field); stored fields that were never loaded keep their value and
        their index and unique entries. Raises :class:`UniqueIndexViolation`
        without writing anything when a unique attribute value belongs to
        another record.
        """

        pairs: list = []
        removed: list = []
        for name, value in self._attributes.items():
            if value is None:
                removed.append(name)
            else:
                pairs.extend((name, _serialize(value)))

        keys = [self.namespace()]
        if not self.is_new:
            keys.append(self.key)
        argv = self._descriptor.sections() + _section(pairs) + _section(removed)

        status, payload = scripts.run("save", keys=keys, argv=argv, redis=self.db())
        if int(status) == 500:
            raise UniqueIndexViolation(payload)

        self._id = str(payload)
        logger.debug("saved %s", self.key)
        return self

    def delete(self) -> None:
        """Remove the record, its counters and collections, and every index entry."""

        key = self.key
        scripts.run("delete", keys=[self.namespace(), key], argv=self._descriptor.sections(), redis=self.db())
        logger.debug("deleted %s", key)

    def incr(self, name: str, count: int = 1) -> int:
        return self.db().hincrby(str(self.key["counters"]), name, count)

    def decr(self, name: str, count: int = 1) -> int:
        return self.incr(name, -count)

    def to_dict(self) -> Dict[str, Any]:
        return {} if self.is_new else {"id": self.id}

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


# ----------------------------------------------------------------------
# Collections
# ----------------------------------------------------------------------
class Collection:
    """Lazy view over Redis ids belonging to ``model``.

    Members are only read when the collection is enumerated; records are
    hydrated with one pipelined round trip of ``HGETALL`` calls.
    """

    def __init__(self, key: Key, namespace: Optional[Key], model: Union[str, type]) -> None:
        self.key = key
        self._namespace = namespace
        self._model = model

    @property
    def model(self) -> type:
        return _resolve_model(self._model)

    @property
    def namespace(self) -> Key:
        if self._namespace is None:
            self._namespace = self.model.namespace()
        return self._namespace

    def db(self) -> Any:
        return self.model.db()

    def ids(self) -> list:
        raise NotImplementedError

    def size(self) -> int:
        raise NotImplementedError

    def all(self) -> list:
        return self._fetch(self.ids())

    def __iter__(self) -> Iterator[Any]:
        return iter(self.all())

    def __len__(self) -> int:
        return self.size()

    def empty(self) -> bool:
        return self.size() == 0

    def sort(
        self,
        *,
        by: Optional[str] = None,
        get: Optional[str] = None,
        limit: Optional[Tuple[int, int]] = None,
        desc: bool = False,
        alpha: bool = False,
        store: Optional[str] = None,
    ) -> Any:
        """Sort the member ids on the server.

        ``get`` names an attribute whose raw values are returned instead of
        records. ``limit`` is an ``(offset, count)`` pair. With ``store`` the
        result is written to that key and the number of elements returned.
        """

        start, num = limit if limit is not None else (None, None)
        options = dict(start=start, num=num, by=by, desc=desc, alpha=alpha, store=store)
        if get is not None:
            return self.db().sort(str(self.key), get=str(self.namespace[f"*->{get}"]), **options)
        result = self.db().sort(str(self.key), **options)
        if store is not None:
            return result
        return self._fetch(result)

    def sort_by(self, attribute: str, **options: Any) -> Any:
        return self.sort(by=str(self.namespace[f"*->{attribute}"]), **options)

    def _fetch(self, ids: Iterable[Any]) -> list:
        ids = list(ids)
        if not ids:
            return []
        with self.db().pipeline(transaction=False) as pipe:
            for id in ids:
                pipe.hgetall(str(self.namespace[id]))
            rows = pipe.execute()
        if not rows:
            return []
        model = self.model
        return [model._from_store(id, attributes) for id, attributes in zip(ids, rows)]

    def __repr__(self) -> str:
        return f"<{type(self).__name__} {self.key}>"


class List(Collection):
    """Ordered collection backed by a Redis list."""

    def ids(self) -> list:
        return self.db().lrange(str(self.key), 0, -1)

    def size(self) -> int:
        return self.db().llen(str(self.key))

    def first(self) -> Optional[Model]:
        return self.model.get(self.db().lindex(str(self.key), 0))

    def last(self) -> Optional[Model]:
        return self.model.get(self.db().lindex(str(self.key), -1))

    def include(self, record: Model) -> bool:
        if record.is_new:
            return False
        return record.id in self.ids()

    __contains__ = include

    def replace(self, records: Iterable[Model]) -> None:
        """Atomically rewrite the list with the ids of ``records``, in order."""

        ids = [record.id for record in records]
        with self.db().pipeline(transaction=True) as pipe:
            pipe.delete(str(self.key))
            if ids:
                pipe.rpush(str(self.key), *ids)
            pipe.execute()


class Set(Collection):
    """Unordered collection backed by a Redis set."""

    def ids(self) -> list:
        return list(self.db().smembers(str(self.key)))

    def size(self) -> int:
        return self.db().scard(str(self.key))

    def include(self, record: Model) -> bool:
        if record.is_new:
            return False
        return bool(self.db().sismember(str(self.key), record.id))

    __contains__ = include

    def __getitem__(self, id: Any) -> Optional[Model]:
        if self.db().sismember(str(self.key), str(id)):
            return self.model.get(id)
        return None

    def first(self, by: Optional[str] = None, **options: Any) -> Any:
        """First member by id, or by attribute ``by`` when given."""

        options["limit"] = (0, 1)
        if by is not None:
            result = self.sort_by(by, **options)
        else:
            result = self.sort(**options)
        return result[0] if result else None

    def replace(self, records: Iterable[Model]) -> None:
        """Atomically rewrite the set with the ids of ``records``."""

        ids = [record.id for record in records]
        with self.db().pipeline(transaction=True) as pipe:
            pipe.delete(str(self.key))
            if ids:
                pipe.sadd(str(self.key), *ids)
            pipe.execute()
