"""
Bounded cache-and-dedup gateway.
"""

from .admission import AdmissionGate
from .cache_gateway import CacheGateway, document_key

__all__ = ["AdmissionGate", "CacheGateway", "document_key"]
