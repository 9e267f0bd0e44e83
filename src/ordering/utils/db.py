"""Schema helpers for relational providers (sqlite, postgresql).

Memory providers need no schema; they are skipped.
"""

from protean.domain import Domain
from sqlalchemy import create_engine

_RELATIONAL_PROVIDERS = ("sqlite", "postgresql")


def _register_tables(domain: Domain, provider) -> None:
    # Touching the DAO makes the provider build the table metadata
    registries = (
        domain.registry.aggregates,
        domain.registry.entities,
        domain.registry.projections,
    )
    for registry in registries:
        for _, record in registry.items():
            if record.cls.meta_.provider == provider.name:
                domain.repository_for(record.cls)._dao  # noqa: B018


def relational_providers(domain: Domain):
    """Yield the providers of ``domain`` that are backed by SQL databases."""
    for _, provider in domain.providers.items():
        if provider.conn_info["provider"] in _RELATIONAL_PROVIDERS:
            yield provider


def setup_db(domain: Domain) -> list[str]:
    """Create tables for every relational provider; returns provider names."""
    created = []
    with domain.domain_context():
        for provider in relational_providers(domain):
            engine = create_engine(provider.conn_info["database_uri"])
            _register_tables(domain, provider)
            provider._metadata.create_all(engine)
            created.append(provider.name)
    return created


def drop_db(domain: Domain) -> list[str]:
    """Drop tables for every relational provider; returns provider names."""
    dropped = []
    with domain.domain_context():
        for provider in relational_providers(domain):
            engine = create_engine(provider.conn_info["database_uri"])
            _register_tables(domain, provider)
            provider._metadata.drop_all(engine)
            dropped.append(provider.name)
    return dropped
