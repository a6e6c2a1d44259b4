"""
Configuration package for the Kablan store
"""
from .settings import (
    Config,
    StorageConfig,
    ServiceConfig,
    ClientConfig,
    LoggingConfig,
    config
)

__all__ = [
    'Config',
    'StorageConfig',
    'ServiceConfig',
    'ClientConfig',
    'LoggingConfig',
    'config',
]
