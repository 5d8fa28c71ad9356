from pydantic import BaseModel, ConfigDict, Field, SecretStr, field_validator, model_validator
from pydantic.alias_generators import to_camel

from core.enums import DatabaseKind


class DTOBase(BaseModel):
    model_config = ConfigDict(
        populate_by_name=True,
        from_attributes=True,
        str_strip_whitespace=True,
        strict=True,
    )


class _KindBase(DTOBase):
    kind: DatabaseKind = Field(alias="type")

    @field_validator("kind", mode="before")
    @classmethod
    def _parse_kind(cls, v):
        return DatabaseKind.from_any(v)


class ConnectionDescriptor(_KindBase):
    schema_name: str = Field(default="public", alias="schema")
    host: str = "localhost"
    port: int | None = None
    user: str = ""
    password: SecretStr = SecretStr("")
    database: str = ""

    @field_validator("schema_name", mode="before")
    @classmethod
    def _default_schema(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return "public"
        return v

    @field_validator("host", mode="before")
    @classmethod
    def _default_host(cls, v):
        if v is None or (isinstance(v, str) and not v.strip()):
            return "localhost"
        return v

    @field_validator("port", mode="before")
    @classmethod
    def _coerce_port(cls, v):
        # The browser form posts the port as text.
        if v is None or v == "":
            return None
        if isinstance(v, str) and v.strip().isdigit():
            return int(v.strip())
        return v

    @field_validator("password", mode="before")
    @classmethod
    def _wrap_password(cls, v):
        if v is None:
            return SecretStr("")
        if isinstance(v, str):
            return SecretStr(v)
        return v

    @field_validator("user", "database", mode="before")
    @classmethod
    def _none_to_empty(cls, v):
        return "" if v is None else v

    @model_validator(mode="after")
    def _fill_default_port(self):
        if self.port is None:
            self.port = self.kind.default_port
        return self


class ExportRequest(_KindBase):
    # None means the schema the session was connected with.
    schema_name: str | None = Field(default=None, alias="schema")
    tables: list[str] = Field(default_factory=list)

    @field_validator("schema_name", mode="before")
    @classmethod
    def _blank_schema(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v


class HealthDTO(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    status: str = "healthy"
    environment: str
    mysql_connected: bool
    postgres_connected: bool
