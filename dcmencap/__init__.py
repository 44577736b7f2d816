# dcmencap package initialization
# Encapsulates CDA, PDF and STL documents into DICOM files

__version__ = "1.0.0"

__all__ = [
    "config",
    "errors",
    "fields",
    "source_tree",
    "mapping",
    "reconcile",
    "identifiers",
    "tags",
    "override_keys",
    "header",
    "documents",
    "encapsulate",
]
