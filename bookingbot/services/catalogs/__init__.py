from bookingbot.services.catalogs import prayer, transport
from bookingbot.services.errors import UnknownCatalogError
from bookingbot.services.flow_catalog import FlowCatalog

CATALOG_BUILDERS = {
    "prayer": prayer.build_catalog,
    "transport": transport.build_catalog,
}


def load_catalog(name: str, settings) -> FlowCatalog:
    """Build the catalog selected by CATALOG from settings."""
    builder = CATALOG_BUILDERS.get((name or "").strip().lower())
    if builder is None:
        raise UnknownCatalogError(name, sorted(CATALOG_BUILDERS))
    return builder(settings)


__all__ = ["CATALOG_BUILDERS", "load_catalog"]
