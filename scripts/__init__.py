"""
Scripts Package.

Operational scripts for the activity indexer.

Scripts:
- run_api: Serve the read-only query API
"""

# Scripts are meant to be run directly, not imported
