"""
Data management submodule: loading, validating and saving task lists.
"""

from .core import DataCore, ListStore
from .io import atomic_write, load_model, load_yaml_file, DATA_YAML, DATA_JSON
from .validate import validate_collection_data, validate_file

__all__ = [
    'DataCore',
    'ListStore',
    'atomic_write',
    'load_model',
    'load_yaml_file',
    'DATA_YAML',
    'DATA_JSON',
    'validate_collection_data',
    'validate_file',
]
