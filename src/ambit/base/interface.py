from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from collections import namedtuple
from enum import IntEnum, auto
from typing import Any, Optional, Sequence, Set, Tuple, Type
from urllib.parse import urlparse

from ambit.exception import AmbitError

logger = logging.getLogger(__name__)

UrlMapping = namedtuple("UrlMapping", ("key", "cast"))


URLPARSE_MAPPING = {
    "hostname": UrlMapping("_host", str),
    "username": UrlMapping("_user", str),
    "password": UrlMapping("_password", str),
    "port": UrlMapping("_port", int),
    "path": UrlMapping("_db", lambda value: value.replace("/", "")),
    "query": UrlMapping("_query", str),
}


class Fetch(IntEnum):
    NONE = auto()
    ONE = auto()
    ALL = auto()


class BaseInterface(ABC):
    """A pool of connections to one database server

    Subclasses adapt a concrete async driver. They only know how to hand out
    raw connections and run a single statement on one; transaction
    bookkeeping lives in the handles from ``ambit.base.connection``.
    """

    scheme = "dummy"
    aliases: Tuple[str, ...] = ()
    default_port: Optional[int] = None
    registered_interfaces: Set[Type[BaseInterface]] = set()
    POSITIONAL_SUB: str = "%s"
    BEGIN: str = "BEGIN"
    BEGIN_READ_ONLY: str = "BEGIN READ ONLY"
    COMMIT: str = "COMMIT"
    ROLLBACK: str = "ROLLBACK"

    def __init_subclass__(cls) -> None:
        BaseInterface.registered_interfaces.add(cls)

    @abstractmethod
    def _setup_pool(self): ...

    @abstractmethod
    async def open(self): ...

    @abstractmethod
    async def close(self): ...

    @abstractmethod
    def connection(self, timeout: Optional[float] = None): ...

    @abstractmethod
    async def _run_sql(
        self,
        conn: Any,
        query: str,
        args: Sequence[Any],
        fetch: Fetch,
        prepare: bool = False,
    ) -> Any: ...

    def __init__(
        self,
        dsn: Optional[str] = None,
        host: Optional[str] = None,
        port: Optional[int] = None,
        user: Optional[str] = None,
        password: Optional[str] = None,
        db: Optional[str] = None,
        query: Optional[str] = None,
        min_size: int = 1,
        max_size: Optional[int] = None,
    ) -> None:
        """DB class initialization.

        Args:
            dsn (str, optional): DB data source name
            host (str, optional): DB address URL or IP
            port (int, optional): DB port. Defaults to the port of the driver
            user (str, optional): DB user
            password (str, optional): DB password
            db (str, optional): DB name
            query (str, optional): DB query parameters. Defaults to None
            min_size (int, optional): Minimum number of connections in pool.
                Defaults to 1
            max_size (int, optional): Maximum number of connections in pool.
                Defaults to None
        """

        if dsn and host:
            raise AmbitError("Cannot connect to DB using host and dsn")

        if not dsn:
            if port is not None and (
                not isinstance(port, int) or port not in range(0, 65536)
            ):
                raise AmbitError(
                    "port: must be an integer between 0 and 65535"
                )

            if host is not None and (
                not isinstance(host, str) or not len(host) > 0
            ):
                raise AmbitError(
                    "host: must be a string at least 1 character long"
                )

        if password is not None and (
            not isinstance(password, str) or not len(password) > 0
        ):
            raise AmbitError(
                "password: must be a string at least 1 character long"
            )

        self._dsn = dsn
        self._host = host
        self._port = port
        self._user = user
        self._password = password
        self._db = db
        self._query = query
        self._min_size = min_size
        self._max_size = max_size
        self._full_dsn: Optional[str] = None

        self._populate_connection_args()
        self._populate_dsn()
        self._setup_pool()

    def __str__(self) -> str:
        return f"<{self.__class__.__name__} {self.dsn}>"

    def _populate_connection_args(self):
        dsn = self.dsn or ""
        defaults = {
            "port": self.default_port,
            "hostname": "localhost",
        }
        parts = urlparse(dsn) if dsn else None
        for key, mapping in URLPARSE_MAPPING.items():
            if getattr(self, mapping.key):
                continue
            value = getattr(parts, key, None) if parts else None
            if value is None or value == "":
                value = defaults.get(key)
            if value is not None:
                setattr(self, mapping.key, mapping.cast(value))

    def _populate_dsn(self):
        if not self.user:
            credentials = ""
        elif self.password:
            credentials = f"{self.user}:...@"
        else:
            credentials = f"{self.user}@"
        location = f"{self.host}:{self.port}/{self.db}"
        self._dsn = f"{self.scheme}://{credentials}{location}"
        self._full_dsn = (
            f"{self.scheme}://{self.user}:{self.password}@{location}"
            if self.password
            else self.dsn
        )
        self._full_dsn += f"?{self._query}" if self._query else ""

    @classmethod
    def matches(cls, scheme: str) -> bool:
        return scheme == cls.scheme or scheme in cls.aliases

    async def _begin(self, conn: Any, read_only: bool) -> None:
        statement = self.BEGIN_READ_ONLY if read_only else self.BEGIN
        await self._run_sql(conn, statement, (), Fetch.NONE)

    async def _commit(self, conn: Any) -> None:
        await self._run_sql(conn, self.COMMIT, (), Fetch.NONE)

    async def _rollback(self, conn: Any) -> None:
        await self._run_sql(conn, self.ROLLBACK, (), Fetch.NONE)

    @property
    def dsn(self):
        return self._dsn

    @property
    def host(self):
        return self._host

    @property
    def port(self):
        return self._port

    @property
    def user(self):
        return self._user

    @property
    def password(self):
        return self._password

    @property
    def db(self):
        return self._db

    @property
    def full_dsn(self):
        return self._full_dsn

    @property
    def min_size(self):
        return self._min_size

    @property
    def max_size(self):
        return self._max_size


def interface_for_dsn(
    dsn: str, default: Optional[Type[BaseInterface]] = None
) -> Type[BaseInterface]:
    """Find the registered interface whose scheme matches a DSN

    Args:
        dsn (str): The data source name
        default (Type[BaseInterface], optional): Returned when no scheme
            matches. Defaults to `None`.

    Raises:
        AmbitError: If nothing matches and there is no default

    Returns:
        Type[BaseInterface]: The interface class for the DSN
    """
    scheme = urlparse(dsn).scheme
    for interface_type in BaseInterface.registered_interfaces:
        if interface_type.matches(scheme):
            return interface_type
    if default is None:
        raise AmbitError(f"No interface registered for scheme {scheme!r}")
    logger.debug("Unknown scheme %r, using %s", scheme, default.__name__)
    return default
