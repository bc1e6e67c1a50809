"""
Configuration Management Module
Loads and validates configuration from config.yaml
"""

import yaml
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Any, Optional

logger = logging.getLogger(__name__)

VALID_LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


@dataclass
class DatabaseConfig:
    """Database configuration"""
    host: str = "localhost"
    port: int = 5432
    user: str = "ccm_user"
    password: str = "ccm_password"
    name: str = "ccm_database"
    url: Optional[str] = None
    pool_size: int = 5
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800
    echo: bool = False


@dataclass
class LoggingConfig:
    """Logging configuration"""
    level: str = "INFO"
    file: Optional[str] = "logs/ccm.log"
    console: bool = True
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


@dataclass
class HierarchyTreeConfig:
    """Scope tree display settings"""
    hide_inactive: bool = False


class ConfigurationError(Exception):
    """Raised when configuration is invalid"""
    pass


class ConfigManager:
    """Manages system configuration"""

    _instance: Optional['ConfigManager'] = None

    def __init__(self, config_path: Optional[str] = None):
        """Initialize configuration manager

        Args:
            config_path: Path to config.yaml file
        """
        self.config_path = Path(config_path) if config_path else self._find_config()
        self._raw_config: Dict[str, Any] = {}
        self.database: DatabaseConfig = DatabaseConfig()
        self.logging: LoggingConfig = LoggingConfig()
        self.hierarchy_tree: HierarchyTreeConfig = HierarchyTreeConfig()

        if self.config_path and self.config_path.exists():
            self.load()
        else:
            logger.warning(f"Config file not found at {self.config_path}, using defaults")

    def _find_config(self) -> Path:
        """Find config.yaml in common locations"""
        search_paths = [
            Path(__file__).parent / "config.yaml",
            Path.cwd() / "config.yaml",
            Path.cwd() / "python" / "config.yaml",
        ]

        for path in search_paths:
            if path.exists():
                return path

        return search_paths[0]

    def load(self) -> None:
        """Load configuration from YAML file"""
        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                self._raw_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in config file: {e}")
        except FileNotFoundError:
            raise ConfigurationError(f"Config file not found: {self.config_path}")

        if not isinstance(self._raw_config, dict):
            raise ConfigurationError("Config file must contain a mapping at the top level")

        self._parse_database()
        self._parse_logging()
        self._parse_hierarchy_tree()
        self._validate()

    def _parse_database(self) -> None:
        """Parse database configuration"""
        cfg = self._raw_config.get('database', {}) or {}
        defaults = DatabaseConfig()
        self.database = DatabaseConfig(
            host=cfg.get('host', defaults.host),
            port=cfg.get('port', defaults.port),
            user=cfg.get('user', defaults.user),
            password=cfg.get('password', defaults.password),
            name=cfg.get('name', defaults.name),
            url=cfg.get('url', defaults.url),
            pool_size=cfg.get('pool_size', defaults.pool_size),
            max_overflow=cfg.get('max_overflow', defaults.max_overflow),
            pool_timeout=cfg.get('pool_timeout', defaults.pool_timeout),
            pool_recycle=cfg.get('pool_recycle', defaults.pool_recycle),
            echo=cfg.get('echo', defaults.echo)
        )

    def _parse_logging(self) -> None:
        """Parse logging configuration"""
        cfg = self._raw_config.get('logging', {}) or {}
        defaults = LoggingConfig()
        self.logging = LoggingConfig(
            level=str(cfg.get('level', defaults.level)).upper(),
            file=cfg.get('file', defaults.file),
            console=cfg.get('console', defaults.console),
            format=cfg.get('format', defaults.format)
        )

    def _parse_hierarchy_tree(self) -> None:
        """Parse hierarchy tree configuration"""
        cfg = self._raw_config.get('hierarchy_tree', {}) or {}
        self.hierarchy_tree = HierarchyTreeConfig(
            hide_inactive=bool(cfg.get('hide_inactive', False))
        )

    @classmethod
    def get_instance(cls, config_path: Optional[str] = None) -> 'ConfigManager':
        """Get singleton instance of ConfigManager"""
        if cls._instance is None:
            cls._instance = ConfigManager(config_path)
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Reset singleton instance (useful for testing)"""
        cls._instance = None

    def to_dict(self) -> Dict[str, Any]:
        """Export configuration as dictionary (password masked)"""
        return {
            'database': {
                'host': self.database.host,
                'port': self.database.port,
                'user': self.database.user,
                'password': '***',
                'name': self.database.name,
                'pool_size': self.database.pool_size,
                'max_overflow': self.database.max_overflow,
                'echo': self.database.echo
            },
            'logging': {
                'level': self.logging.level,
                'file': self.logging.file,
                'console': self.logging.console
            },
            'hierarchy_tree': {
                'hide_inactive': self.hierarchy_tree.hide_inactive
            }
        }

    def _validate(self) -> None:
        """Validate configuration values"""
        if self.logging.level not in VALID_LOG_LEVELS:
            raise ConfigurationError(
                f"Invalid logging level '{self.logging.level}', expected one of {', '.join(VALID_LOG_LEVELS)}"
            )
        for name in ('pool_size', 'pool_timeout', 'pool_recycle'):
            value = getattr(self.database, name)
            if not isinstance(value, int) or value <= 0:
                raise ConfigurationError(f"database.{name} must be a positive integer, got {value!r}")
        if not isinstance(self.database.max_overflow, int) or self.database.max_overflow < 0:
            raise ConfigurationError(
                f"database.max_overflow must be a non-negative integer, got {self.database.max_overflow!r}"
            )
        if not isinstance(self.database.port, int) or not 0 < self.database.port < 65536:
            raise ConfigurationError(f"database.port out of range: {self.database.port!r}")


def configure_logging(config: LoggingConfig) -> None:
    """Configure root logging from a LoggingConfig section"""
    handlers = []
    if config.console:
        handlers.append(logging.StreamHandler())
    if config.file:
        log_path = Path(config.file)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        handlers.append(logging.FileHandler(log_path, encoding='utf-8'))
    if not handlers:
        handlers.append(logging.NullHandler())

    logging.basicConfig(
        level=getattr(logging, config.level.upper(), logging.INFO),
        format=config.format,
        handlers=handlers,
        force=True
    )


def get_config(config_path: Optional[str] = None) -> ConfigManager:
    """Convenience function to get configuration instance"""
    return ConfigManager.get_instance(config_path)
