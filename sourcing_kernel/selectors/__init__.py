"""Read-only query layer."""

from sourcing_kernel.selectors.base import BaseSelector

__all__ = ["BaseSelector"]
