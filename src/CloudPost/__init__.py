# === NAVMAP v1 ===
# {
#   "module": "CloudPost.__init__",
#   "purpose": "Streaming poster for add/delete XML command files.",
#   "sections": []
# }
# === /NAVMAP ===

"""
Streaming poster for add/delete XML command files.

Parses (optionally zipped) command files, groups their documents and delete
identifiers into bounded batches, and posts them to a Solr-compatible document
store with retries on connection errors. See :mod:`CloudPost.runner` for the
programmatic entry point and :mod:`CloudPost.cli` for the command line.
"""

__version__ = "0.1.0"

__all__ = ["__version__"]
