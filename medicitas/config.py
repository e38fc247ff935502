"""
Configuration management for the medicitas client.

This module provides centralized configuration using Pydantic settings
for type-safe environment variable management, plus the backend's
endpoint paths and status vocabulary.
"""

from functools import lru_cache
from typing import Dict, List

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Backend API Configuration
    api_base_url: str = Field(default="http://localhost:8000/api", alias="API_BASE_URL")
    api_timeout: float = Field(default=10.0, alias="API_TIMEOUT")
    connection_pool_size: int = Field(default=20, alias="CONNECTION_POOL_SIZE")

    # Booking Configuration
    appointment_duration_minutes: int = Field(
        default=30, alias="APPOINTMENT_DURATION_MINUTES"
    )
    default_reason: str = Field(default="Consulta general", alias="DEFAULT_REASON")
    directory_page_size: int = Field(default=100, alias="DIRECTORY_PAGE_SIZE")
    list_page_size: int = Field(default=10, alias="LIST_PAGE_SIZE")
    home_page: str = Field(default="inicio", alias="HOME_PAGE")

    # Application Configuration
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    sandbox_host: str = Field(default="127.0.0.1", alias="SANDBOX_HOST")
    sandbox_port: int = Field(default=8000, alias="SANDBOX_PORT")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        populate_by_name=True,
    )


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Uses lru_cache to ensure settings are only loaded once.
    """
    return Settings()


# Backend endpoints, relative to api_base_url
LOGIN_PATH = "auth/login"
LOGOUT_PATH = "auth/logout"
SPECIALTIES_PATH = "especialidades"
DOCTOR_DIRECTORY_PATH = "medicos-directorio"
AVAILABLE_SLOTS_PATH = "slots-disponibles"
APPOINTMENTS_PATH = "citas"
MY_APPOINTMENTS_PATH = "paciente/citas"

DEVICE_NAME = "web-browser"


def appointment_path(appointment_id: int) -> str:
    """Path of a single appointment resource."""
    return f"{APPOINTMENTS_PATH}/{appointment_id}"


# Status vocabulary: wire value (backend) -> canonical English name
STATUS_WIRE_NAMES: Dict[str, str] = {
    "programada": "scheduled",
    "confirmada": "confirmed",
    "completada": "completed",
    "cancelada": "cancelled",
    "pendiente": "pending",
    "activa": "active",
}

# Placeholder the backend sends when a doctor has no linked user
MISSING_NAME_PLACEHOLDER = "Usuario No Encontrado"

PAGE_SIZE_CHOICES: List[int] = [5, 10, 20]
