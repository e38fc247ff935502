"""
Directory Service - specialties and doctors for the booking wizard.
"""

from typing import List, TypeVar

from loguru import logger
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from medicitas.config import DOCTOR_DIRECTORY_PATH, SPECIALTIES_PATH
from medicitas.models.directory import DoctorDirectoryEntry, Specialty
from medicitas.services.http import ApiClient

ModelT = TypeVar("ModelT", bound=BaseModel)


def parse_records(model: type[ModelT], raw_items: List) -> List[ModelT]:
    """Validate each raw record, skipping the ones the backend sent malformed."""
    records = []
    for raw in raw_items:
        try:
            records.append(model.model_validate(raw))
        except PydanticValidationError as e:
            logger.warning(f"Skipping malformed {model.__name__} record: {e.error_count()} errors")
    return records


class DirectoryService:
    """Read-only reference data, fetched through the shared ApiClient."""

    def __init__(self, api: ApiClient):
        self._api = api

    async def list_specialties(self, per_page: int = 100) -> List[Specialty]:
        """
        Fetch all specialties.

        Args:
            per_page: Page size hint so a paginated backend returns everything

        Raises:
            TransportError: on any backend failure
        """
        raw = await self._api.get_collection(SPECIALTIES_PATH, params={"per_page": per_page})
        specialties = parse_records(Specialty, raw)
        logger.info(f"Loaded {len(specialties)} specialties")
        return specialties

    async def list_doctors(self, specialty_id: int, per_page: int = 100) -> List[DoctorDirectoryEntry]:
        """
        Fetch the doctors of one specialty.

        The backend does not always honor the filter, so the result is
        filtered again locally.
        """
        raw = await self._api.get_collection(
            DOCTOR_DIRECTORY_PATH,
            params={"per_page": per_page, "especialidad_id": specialty_id},
        )
        doctors = [
            doctor
            for doctor in parse_records(DoctorDirectoryEntry, raw)
            if doctor.specialty_id == specialty_id
        ]
        logger.info(f"Loaded {len(doctors)} doctors for specialty {specialty_id}")
        return doctors
