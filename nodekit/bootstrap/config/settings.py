from typing import Annotated

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict, PydanticBaseSettingsSource, YamlConfigSettingsSource

from nodekit.bootstrap.config.loader import get_configfile


class StorageSettings(BaseModel):
    map_size: Annotated[
        int,
        Field(
            description=(
                "Maximum size (bytes) an LMDB environment may grow to.\n"
                "Must be larger than the biggest store nodekit writes, including\n"
                "the temporary copy made while compacting the block store."
            ),
            default=1 << 40,
            gt=0
        )
    ]

    max_readers: Annotated[
        int,
        Field(
            description="Maximum number of concurrent read transactions per environment.",
            default=126,
            gt=0
        )
    ]

    blockstore_name: Annotated[
        str,
        Field(
            description="Name of the block store directory under <chaindata>/data.",
            default="blockstore.db"
        )
    ]

    tx_index_name: Annotated[
        str,
        Field(
            description="Name of the tx index directory under <chaindata>/data.",
            default="tx_index.db"
        )
    ]


class DefaultsSettings(BaseModel):
    batch_size: Annotated[
        int,
        Field(
            description=(
                "Number of writes buffered before a batch is committed, used when\n"
                "a command is run without --batch-size."
            ),
            default=10000,
            gt=0
        )
    ]

    log_level: Annotated[
        int,
        Field(
            description=(
                "Progress reporting granularity used when a command is run without --log.\n"
                "0 disables progress output, 1 reports every 10%, 2 every 1%, 3 every 0.1%."
            ),
            default=0,
            ge=0
        )
    ]

    def resolve_batch_size(self, value: int | None) -> int:
        return self.batch_size if value is None else value

    def resolve_log_level(self, value: int | None) -> int:
        return self.log_level if value is None else value


class NodekitConfig(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="NODEKIT_",
        env_nested_delimiter="__",
        extra="ignore"
    )

    log_level: Annotated[
        str,
        Field(
            description="Logging verbosity used when --log-level is not given.",
            default="INFO"
        )
    ]

    storage: Annotated[
        StorageSettings,
        Field(
            description=(
                "Storage engine configuration.\n"
                "Applies to every store nodekit opens, sources and destinations alike."
            ),
            default_factory=StorageSettings
        )
    ]

    defaults: Annotated[
        DefaultsSettings,
        Field(
            description="Fallback values for per-command options.",
            default_factory=DefaultsSettings
        )
    ]

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        level = v.upper()
        if level not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
            raise ValueError(f"unknown log level {v!r}")
        return level

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        sources: tuple[PydanticBaseSettingsSource, ...] = (init_settings, env_settings)

        configfile = get_configfile()
        if configfile is not None:
            sources += (YamlConfigSettingsSource(settings_cls, yaml_file=configfile),)

        return sources
