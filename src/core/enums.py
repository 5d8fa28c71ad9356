from enum import Enum


class DatabaseKind(Enum):
    MYSQL = "mysql"
    POSTGRESQL = "postgresql"

    @classmethod
    def from_any(cls, value):
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            normalized = value.strip().lower()
            alias_map = {
                "postgres": cls.POSTGRESQL,
                "pg": cls.POSTGRESQL,
                "mariadb": cls.MYSQL,
            }
            if normalized in alias_map:
                return alias_map[normalized]
            for member in cls:
                if member.value == normalized or member.name.lower() == normalized:
                    return member
        raise ValueError(f"Cannot parse {value!r} into {cls.__name__}")

    @property
    def label(self):
        return _KIND_LABELS.get(self, self.name.title())

    @property
    def default_port(self) -> int:
        return _DEFAULT_PORTS[self]


_KIND_LABELS = {
    DatabaseKind.MYSQL: "MySQL",
    DatabaseKind.POSTGRESQL: "PostgreSQL",
}

_DEFAULT_PORTS = {
    DatabaseKind.MYSQL: 3306,
    DatabaseKind.POSTGRESQL: 5432,
}


class ExportState(Enum):
    VALIDATING = "validating"
    HEADERS_SENT = "headers_sent"
    STREAMING = "streaming"
    FINALIZED = "finalized"
    ABORTED = "aborted"

    @property
    def is_terminal(self) -> bool:
        return self in (ExportState.FINALIZED, ExportState.ABORTED)
