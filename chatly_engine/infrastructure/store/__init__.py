"""
Remote document store contract.
"""

from .protocol import STORE_ERROR_CODES, DocumentStore, WriteOp

__all__ = ["STORE_ERROR_CODES", "DocumentStore", "WriteOp"]
