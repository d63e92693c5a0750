"""
Core Module - Shared Components
===============================
Configuration, logging, error kinds and types used across the stages.
"""

from .config import StackConfig, RegistryConfig, BlendConfig, RefitConfig, LoggingConfig
from .exceptions import (
    StacksError,
    PartitionMismatch,
    DuplicateCandidate,
    SolverNonConvergence,
    RefitFailure,
    EmptyEnsemble,
    NotFittedError,
)
from .logger import setup_logger, get_logger
from .types import Mode, Candidate, RegistryHandle, StackLayout

__all__ = [
    'StackConfig',
    'RegistryConfig',
    'BlendConfig',
    'RefitConfig',
    'LoggingConfig',
    'StacksError',
    'PartitionMismatch',
    'DuplicateCandidate',
    'SolverNonConvergence',
    'RefitFailure',
    'EmptyEnsemble',
    'NotFittedError',
    'setup_logger',
    'get_logger',
    'Mode',
    'Candidate',
    'RegistryHandle',
    'StackLayout',
]
