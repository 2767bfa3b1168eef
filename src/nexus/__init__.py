"""nexus: bulk importer for note-tool archives."""

__version__ = "0.3.0"
