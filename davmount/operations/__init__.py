"""Modules that implement the commands of davmount."""

from .common import Operations
from .control import ControlOperations
from .serve import ServeOperations

__all__ = ["ControlOperations", "Operations", "ServeOperations"]
