"""Command-line tools for ragvault.

- ``python -m src.cli.ingest`` (or ``python -m src.cli``) uploads documents,
  queries and manages collections, and verifies the embedding model.

CLI modules use argparse and construct their services through
``src.main.build_services``, deferring the heavy imports until a command
actually runs.
"""
