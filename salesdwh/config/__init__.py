"""
Sales Data Warehouse
Configuration Module
"""
from .settings import (
    DataLakeSettings,
    DatabaseSettings,
    MonitoringSettings,
    PipelineSettings,
    Settings,
    get_settings,
)

__all__ = [
    "DataLakeSettings",
    "DatabaseSettings",
    "MonitoringSettings",
    "PipelineSettings",
    "Settings",
    "get_settings",
]
