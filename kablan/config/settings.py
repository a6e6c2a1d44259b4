"""
Core configuration settings for the Kablan store
"""
import os
from dataclasses import dataclass, field
from typing import List, Optional
from dotenv import load_dotenv
from pathlib import Path

# Load environment variables
env_path = Path(__file__).parent.parent.parent / '.env'
load_dotenv(env_path)

DEFAULT_DATA_DIRS = 'data,public/data,dist/data'


def _split_dirs(raw: str) -> List[Path]:
    return [Path(part.strip()).expanduser() for part in raw.split(',') if part.strip()]


@dataclass
class StorageConfig:
    """Server-side storage locations, in priority order"""
    data_dirs: List[Path] = field(
        default_factory=lambda: _split_dirs(os.getenv('KABLAN_DATA_DIRS', DEFAULT_DATA_DIRS))
    )
    backup_keep: int = field(
        default_factory=lambda: int(os.getenv('KABLAN_BACKUP_KEEP', '50'))
    )
    backup_retention_days: int = field(
        default_factory=lambda: int(os.getenv('KABLAN_BACKUP_RETENTION_DAYS', '30'))
    )
    replication_workers: int = field(
        default_factory=lambda: int(os.getenv('KABLAN_REPLICATION_WORKERS', '2'))
    )

    def validate(self) -> bool:
        """Validate storage parameters"""
        if not self.data_dirs:
            raise ValueError("At least one data directory is required")
        if self.backup_keep < 1:
            raise ValueError(f"Invalid backup keep count: {self.backup_keep}")
        if self.backup_retention_days < 1:
            raise ValueError(f"Invalid backup retention: {self.backup_retention_days}")
        if self.replication_workers < 1:
            raise ValueError(f"Invalid replication workers: {self.replication_workers}")
        return True


@dataclass
class ServiceConfig:
    """HTTP service configuration"""
    host: str = field(default_factory=lambda: os.getenv('SERVICE_HOST', '0.0.0.0'))
    port: int = field(
        default_factory=lambda: int(os.getenv('SERVICE_PORT') or os.getenv('PORT') or '3001')
    )
    reload: bool = field(
        default_factory=lambda: os.getenv('SERVICE_RELOAD', 'false').lower() in {'1', 'true', 'yes'}
    )
    log_level: str = field(default_factory=lambda: os.getenv('SERVICE_LOG_LEVEL', 'info'))
    cors_allow_origins: List[str] = field(
        default_factory=lambda: [
            origin.strip()
            for origin in os.getenv('CORS_ALLOW_ORIGINS', '').split(',')
            if origin.strip()
        ] or ['*']
    )


@dataclass
class ClientConfig:
    """Client gateway configuration"""
    api_url: str = field(default_factory=lambda: os.getenv('KABLAN_API_URL', '').rstrip('/'))
    request_timeout: float = field(
        default_factory=lambda: float(os.getenv('KABLAN_REQUEST_TIMEOUT', '10'))
    )
    cache_file: Path = field(
        default_factory=lambda: Path(
            os.getenv('KABLAN_CACHE_FILE') or Path.home() / '.kablan' / 'cache.json'
        ).expanduser()
    )
    seed_dir: Optional[Path] = field(
        default_factory=lambda: Path(os.environ['KABLAN_SEED_DIR']).expanduser()
        if os.getenv('KABLAN_SEED_DIR') else None
    )

    def validate(self) -> bool:
        if self.request_timeout <= 0:
            raise ValueError(f"Invalid request timeout: {self.request_timeout}")
        return True


@dataclass
class LoggingConfig:
    """Logging configuration"""
    log_level: str = field(
        default_factory=lambda: os.getenv('LOG_LEVEL', 'INFO').upper()
    )
    log_file: str = field(
        default_factory=lambda: os.getenv('LOG_FILE', '')
    )

    @property
    def log_path(self) -> Optional[Path]:
        """Get full log file path, if file logging is enabled"""
        return Path(self.log_file).resolve() if self.log_file else None


class Config:
    """Main configuration class aggregating all settings"""

    def __init__(self):
        self.storage = StorageConfig()
        self.service = ServiceConfig()
        self.client = ClientConfig()
        self.logging = LoggingConfig()

    def validate(self) -> bool:
        """Validate all configuration sections"""
        try:
            self.storage.validate()
            self.client.validate()
            return True
        except Exception as e:
            raise ValueError(f"Configuration validation failed: {e}")

    @classmethod
    def load(cls) -> 'Config':
        """Load and validate configuration"""
        config = cls()
        config.validate()
        return config


# Global config instance
config = Config()
