"""ripsfold: ingest RIPS text exports and audit service goals, rankings and duplicates.

Reads pipe- or comma-delimited RIPS files plus a CUPS service catalog.
"""

__version__ = "1.0.0"
