"""
Storage module for serialized transport processes.

This module provides the file-backed source of process descriptions.
"""

from tpm.storage.process_store import ProcessStore, load_process_data, save_process_data

__all__ = [
    "ProcessStore",
    "load_process_data",
    "save_process_data",
]
