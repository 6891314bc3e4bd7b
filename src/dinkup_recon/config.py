"""Configuration loader and validation for parsing and reconciliation settings."""

from pathlib import Path
from typing import Any, Optional
import logging

import yaml
from pydantic import BaseModel, Field, ValidationError, field_validator

from .models.transaction import TransactionType
from .utils.exceptions import ConfigurationError

logger = logging.getLogger(__name__)


class ObligationInputConfig(BaseModel):
    """Configuration for reading obligation ledger exports."""

    encoding: str = "utf-8"
    delimiter: str = ","
    column_mappings: dict[str, str] = Field(
        default_factory=lambda: {
            "id": "id",
            "amount": "amount",
            "owing_party": "owing_party",
            "status": "status",
            "correlation_tag": "correlation_tag",
            "session_id": "session_id",
        }
    )


class InputConfig(BaseModel):
    """Configuration for input file parsing."""

    obligations: ObligationInputConfig = Field(default_factory=ObligationInputConfig)
    email_encoding: str = "utf-8"


class ParsingConfig(BaseModel):
    """Settings for transaction extraction from notification emails."""

    tag_prefixes: list[str] = Field(
        default_factory=lambda: ["dinkup", "pay", "payment", "session"]
    )
    note_max_length: int = 500
    garbage_min_alnum_ratio: float = 0.3

    @field_validator("tag_prefixes")
    @classmethod
    def _prefixes_not_empty(cls, value: list[str]) -> list[str]:
        if not value:
            raise ValueError("at least one correlation tag prefix is required")
        return value


class MatchingConfig(BaseModel):
    """Configuration for the reconciliation engine."""

    amount_epsilon: float = 0.01
    eligible_types: list[str] = Field(
        default_factory=lambda: [t.value for t in TransactionType]
    )
    tag_settlement_enabled: bool = True
    amount_name_enabled: bool = True
    obligation_tag_prefix: str = "#dinkup-"

    @field_validator("eligible_types")
    @classmethod
    def _known_types(cls, value: list[str]) -> list[str]:
        known = {t.value for t in TransactionType}
        unknown = [v for v in value if v not in known]
        if unknown:
            raise ValueError(f"unknown transaction types: {', '.join(unknown)}")
        return value


class StorageConfig(BaseModel):
    """Configuration for the ledger stores."""

    sqlite_path: Optional[str] = None


class ExcelOutputConfig(BaseModel):
    """Configuration for Excel output."""

    filename_template: str = "reconciliation_report_{date}_{time}.xlsx"
    include_timestamp: bool = True


class SheetConfig(BaseModel):
    """Configuration for a report sheet."""

    enabled: bool = True
    name: str


class SheetsConfig(BaseModel):
    """Configuration for all report sheets."""

    summary: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Summary"))
    settled: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Auto Settled"))
    review: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Needs Review"))
    unmatched: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Unmatched"))
    audit_trail: SheetConfig = Field(default_factory=lambda: SheetConfig(name="Audit Trail"))


class OutputConfig(BaseModel):
    """Configuration for output."""

    excel: ExcelOutputConfig = Field(default_factory=ExcelOutputConfig)
    sheets: SheetsConfig = Field(default_factory=SheetsConfig)


class LoggingConfig(BaseModel):
    """Configuration for logging."""

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    file: Optional[str] = None
    max_bytes: int = 10 * 1024 * 1024
    backup_count: int = 5

    @field_validator("level")
    @classmethod
    def _known_level(cls, value: str) -> str:
        if not isinstance(logging.getLevelName(value.upper()), int):
            raise ValueError(f"unknown logging level: {value}")
        return value.upper()


class ReconConfig(BaseModel):
    """Main configuration model for reconciliation."""

    input: InputConfig = Field(default_factory=InputConfig)
    parsing: ParsingConfig = Field(default_factory=ParsingConfig)
    matching: MatchingConfig = Field(default_factory=MatchingConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    config_file_path: Optional[str] = None


def get_default_config() -> dict[str, Any]:
    """Return the default configuration as a dictionary."""
    return {
        "input": {
            "obligations": {
                "encoding": "utf-8",
                "delimiter": ",",
                "column_mappings": {
                    "id": "id",
                    "amount": "amount",
                    "owing_party": "owing_party",
                    "status": "status",
                    "correlation_tag": "correlation_tag",
                    "session_id": "session_id",
                },
            },
            "email_encoding": "utf-8",
        },
        "parsing": {
            "tag_prefixes": ["dinkup", "pay", "payment", "session"],
            "note_max_length": 500,
            "garbage_min_alnum_ratio": 0.3,
        },
        "matching": {
            "amount_epsilon": 0.01,
            "eligible_types": [
                "payment_sent",
                "payment_received",
                "request_sent",
                "request_received",
            ],
            "tag_settlement_enabled": True,
            "amount_name_enabled": True,
            "obligation_tag_prefix": "#dinkup-",
        },
        "storage": {
            "sqlite_path": None,
        },
        "output": {
            "excel": {
                "filename_template": "reconciliation_report_{date}_{time}.xlsx",
                "include_timestamp": True,
            },
            "sheets": {
                "summary": {"enabled": True, "name": "Summary"},
                "settled": {"enabled": True, "name": "Auto Settled"},
                "review": {"enabled": True, "name": "Needs Review"},
                "unmatched": {"enabled": True, "name": "Unmatched"},
                "audit_trail": {"enabled": True, "name": "Audit Trail"},
            },
        },
        "logging": {
            "level": "INFO",
            "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            "file": None,
            "max_bytes": 10 * 1024 * 1024,
            "backup_count": 5,
        },
    }


def load_config(config_path: Optional[Path] = None) -> ReconConfig:
    """
    Load configuration from a YAML file or use defaults.

    Args:
        config_path: Path to YAML configuration file (optional)

    Returns:
        ReconConfig object with loaded or default settings

    Raises:
        ConfigurationError: If the file is not valid YAML or fails validation
    """
    config_dict = get_default_config()

    if config_path and config_path.exists():
        logger.info(f"Loading configuration from: {config_path}")
        try:
            with open(config_path, "r") as f:
                user_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

        if not isinstance(user_config, dict):
            raise ConfigurationError(f"Configuration root must be a mapping: {config_path}")

        config_dict = _deep_merge(config_dict, user_config)
        config_dict["config_file_path"] = str(config_path)
    else:
        logger.info("Using default configuration")

    try:
        return ReconConfig(**config_dict)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid configuration: {e}") from e


def _deep_merge(base: dict, override: dict) -> dict:
    """
    Deep merge two dictionaries.

    Args:
        base: Base dictionary
        override: Dictionary to merge on top

    Returns:
        Merged dictionary
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value

    return result


def generate_default_config(output_path: Path) -> None:
    """
    Generate a default configuration file.

    Args:
        output_path: Path to write the configuration file
    """
    yaml_content = """# Payment email reconciliation configuration
# Generated configuration file - customize as needed

"""
    yaml_content += yaml.dump(get_default_config(), default_flow_style=False, sort_keys=False)

    output_path.parent.mkdir(parents=True, exist_ok=True)
    with open(output_path, "w") as f:
        f.write(yaml_content)

    logger.info(f"Generated configuration file: {output_path}")
