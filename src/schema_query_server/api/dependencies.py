from functools import lru_cache

from ..llm.client import LLMClient
from ..datasource.client import DataSourceClient
from ..datasource.discovery import SchemaDiscovery
from ..datasource.snapshots import SnapshotStore
from ..synthesis.mapping import FieldMapper


@lru_cache
def get_llm_client() -> LLMClient:
    return LLMClient()


@lru_cache
def get_datasource_client() -> DataSourceClient:
    return DataSourceClient()


@lru_cache
def get_snapshot_store() -> SnapshotStore:
    return SnapshotStore()


def get_schema_discovery() -> SchemaDiscovery:
    # Discovery holds no state of its own; a fresh instance per request.
    return SchemaDiscovery(get_datasource_client(), get_snapshot_store())


def get_field_mapper() -> FieldMapper:
    return FieldMapper(get_llm_client())
