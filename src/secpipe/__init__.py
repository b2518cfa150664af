"""
secpipe: reference-data dimensions and security event publishing.

Subpackages:
    dimensions  - TTL read-through caches over async loaders, background refresh
    events      - SecurityEvent model and structural validation
    publishing  - Event Hub + Kusto dual-sink publisher with retries and
                  idempotent schema provisioning
"""

__version__ = "0.1.0"
