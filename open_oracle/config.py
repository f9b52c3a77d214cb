"""
Configuration management for the oracle.
"""
import json
import os
from dataclasses import dataclass, asdict


@dataclass
class ChainConfig:
    """Host chain configuration."""
    chain_id: int = 1
    block_time: int = 12  # Target seconds between blocks


@dataclass
class ProtocolConfig:
    """Protocol constants shared by every report."""
    settlement_window: int = 60  # seconds
    settlement_window_blocks: int = 4
    min_creation_bond: int = 100
    callback_gas_reserve: int = 100_000


@dataclass
class LoggingConfig:
    level: str = "INFO"


@dataclass
class MonitoringConfig:
    """Monitoring configuration."""
    enabled: bool = False
    host: str = "127.0.0.1"
    port: int = 9090


@dataclass
class Config:
    """Main configuration."""
    chain: ChainConfig
    protocol: ProtocolConfig
    logging: LoggingConfig
    monitoring: MonitoringConfig

    @classmethod
    def default(cls) -> 'Config':
        """Create default configuration."""
        return cls(
            chain=ChainConfig(),
            protocol=ProtocolConfig(),
            logging=LoggingConfig(),
            monitoring=MonitoringConfig()
        )

    @classmethod
    def from_file(cls, path: str) -> 'Config':
        """Load configuration from JSON file."""
        with open(path, 'r') as f:
            data = json.load(f)

        return cls(
            chain=ChainConfig(**data.get('chain', {})),
            protocol=ProtocolConfig(**data.get('protocol', {})),
            logging=LoggingConfig(**data.get('logging', {})),
            monitoring=MonitoringConfig(**data.get('monitoring', {}))
        )

    def to_file(self, path: str):
        """Save configuration to JSON file."""
        os.makedirs(os.path.dirname(path) or '.', exist_ok=True)
        with open(path, 'w') as f:
            json.dump(self.to_dict(), f, indent=2)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            'chain': asdict(self.chain),
            'protocol': asdict(self.protocol),
            'logging': asdict(self.logging),
            'monitoring': asdict(self.monitoring)
        }
