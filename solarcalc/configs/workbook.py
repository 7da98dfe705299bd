"""
Calculator workbook automation settings.

Folder layout of the calculator templates and opportunity copies,
PowerShell invocation, retry policy and file naming patterns.

Dependencies: pydantic, pydantic_settings
System role: Excel automation configuration
"""

from pathlib import Path

from pydantic import Field
from pydantic_settings import SettingsConfigDict

from solarcalc.configs.base import BaseSettings


class WorkbookSettings(BaseSettings):
    """Excel calculator automation configuration."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="WORKBOOK_",
        case_sensitive=False,
        extra="ignore",
    )

    calculator_root: Path = Field(
        default=Path("src/excel-calculations"),
        description="Root folder holding templates and opportunity copies",
    )
    templates_dir_name: str = Field(default="templates")
    opportunities_dir_name: str = Field(default="opportunities")
    epvs_opportunities_dir_name: str = Field(default="epvs-opportunities")
    default_template: str = Field(
        default="Off peak V2.1 Eon SEG - All Options.xlsm",
        description="Template used when a request names none",
    )
    off_peak_base_name: str = Field(
        default="Off peak V2.1 Eon SEG-{opportunity_id}",
        description="Opportunity file base name for the off-peak calculator",
    )
    flux_base_name: str = Field(
        default="EPVS Calculator Creativ - 06.02-{opportunity_id}",
        description="Opportunity file base name for the flux (EPVS) calculator",
    )
    file_extension: str = Field(default="xlsm")
    password: str = Field(default="99", description="Workbook/sheet protection password")

    powershell_executable: str = Field(default="powershell", description="PowerShell binary")
    require_windows: bool = Field(
        default=True,
        description="Refuse automation on non-Windows hosts",
    )
    script_timeout_seconds: float = Field(default=300, gt=0)
    process_start_timeout_seconds: float = Field(default=30, gt=0)

    max_calculation_attempts: int = Field(default=3, ge=1)
    retry_backoff_seconds: float = Field(
        default=2.0,
        ge=0,
        description="Multiplier for the exponential backoff between calculation attempts",
    )
    file_access_retries: int = Field(default=3, ge=1)
    file_access_backoff_seconds: float = Field(
        default=1.0,
        ge=0,
        description="Multiplier for 2^attempt waits while a workbook is locked",
    )
    copy_retry_seconds: float = Field(default=1.0, ge=0)
    cleanup_settle_seconds: float = Field(
        default=3.0,
        ge=0,
        description="Wait after force-closing Excel before touching files",
    )

    @property
    def templates_dir(self) -> Path:
        return self.calculator_root / self.templates_dir_name

    @property
    def opportunities_dir(self) -> Path:
        return self.calculator_root / self.opportunities_dir_name

    @property
    def epvs_opportunities_dir(self) -> Path:
        return self.calculator_root / self.epvs_opportunities_dir_name
