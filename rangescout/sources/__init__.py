"""Upstream data sources: cloud range catalog and interface configs."""

from .interfaces import aggregate_interfaces, check_interface, merge_sites
from .ranges import ProviderNotFoundError, RangeCatalog, RangeSourceError

__all__ = [
    "ProviderNotFoundError",
    "RangeCatalog",
    "RangeSourceError",
    "aggregate_interfaces",
    "check_interface",
    "merge_sites",
]
