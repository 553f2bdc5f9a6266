"""CAD backends for cross-checking sketch solves."""

from .slvs_adapter import (
    AdapterFail,
    AdapterOK,
    AdapterResult,
    CAD_MAPPING_TABLE,
    SlvsAdapter,
    SlvsAdapterOptions,
    max_deviation,
)

__all__ = [
    "AdapterFail",
    "AdapterOK",
    "AdapterResult",
    "CAD_MAPPING_TABLE",
    "SlvsAdapter",
    "SlvsAdapterOptions",
    "max_deviation",
]
