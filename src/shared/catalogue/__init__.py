"""Product catalogue factory.

Provides get_catalogue() / set_catalogue() to swap implementations. The
in-memory catalogue is the default and starts empty.
"""

from shared.catalogue.fake_adapter import InMemoryCatalogue
from shared.catalogue.port import ProductCatalogue

_current_catalogue: ProductCatalogue | None = None


def get_catalogue() -> ProductCatalogue:
    """Return the current catalogue. Defaults to an empty InMemoryCatalogue."""
    global _current_catalogue
    if _current_catalogue is None:
        _current_catalogue = InMemoryCatalogue()
    return _current_catalogue


def set_catalogue(catalogue: ProductCatalogue) -> None:
    """Override the active catalogue (useful for tests)."""
    global _current_catalogue
    _current_catalogue = catalogue


def reset_catalogue() -> None:
    """Reset to default catalogue."""
    global _current_catalogue
    _current_catalogue = None
