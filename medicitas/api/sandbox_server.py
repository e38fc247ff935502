"""
Sandbox API Server.

A FastAPI-based, in-memory stand-in for the appointment backend. It
serves the same endpoints and response shapes (bare arrays, {"data": ...}
wrappers, Spanish field names) so the client can be developed and tested
offline. Its slot grid is a fixed demo schedule, not a scheduling engine.
"""

import asyncio
import secrets
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Query, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from loguru import logger
from pydantic import BaseModel

from medicitas.config import get_settings

# ============================================================================
# Request Models
# ============================================================================


class LoginRequest(BaseModel):
    email: str
    password: str
    device_name: str = "web-browser"


class CreateAppointmentRequest(BaseModel):
    medico_id: int
    paciente_id: int
    fecha_hora_inicio: str
    fecha_hora_fin: Optional[str] = None
    motivo_consulta: str = "Consulta general"
    estado: str = "programada"


class UpdateAppointmentRequest(BaseModel):
    fecha_hora_inicio: Optional[str] = None
    fecha_hora_fin: Optional[str] = None
    estado: Optional[str] = None
    motivo_consulta: Optional[str] = None


# ============================================================================
# In-Memory Data Store
# ============================================================================

WIRE_FORMAT = "%Y-%m-%d %H:%M:%S"
SLOT_MINUTES = 30
DAILY_SLOTS = [
    f"{hour:02d}:{minute:02d}"
    for hour in (9, 10, 11, 14, 15, 16)
    for minute in (0, 30)
]
TERMINAL_STATES = {"cancelada", "completada"}


class SandboxStore:
    """In-memory users, directory and appointments."""

    def __init__(self):
        self._users: Dict[str, dict] = {}
        self._tokens: Dict[str, int] = {}
        self._specialties: Dict[int, dict] = {}
        self._doctors: Dict[int, dict] = {}
        self._appointments: Dict[int, dict] = {}
        self._next_appointment_id = 1
        self._lock = asyncio.Lock()
        self._initialized = False

    # Public accessors for testing
    @property
    def appointments(self) -> Dict[int, dict]:
        return self._appointments

    @property
    def tokens(self) -> Dict[str, int]:
        return self._tokens

    def reset(self) -> None:
        """Drop everything and reload the sample data."""
        self._users.clear()
        self._tokens.clear()
        self._specialties.clear()
        self._doctors.clear()
        self._appointments.clear()
        self._next_appointment_id = 1
        self._initialize_sample_data()

    def _initialize_sample_data(self) -> None:
        """Initialize sample users and directory synchronously."""
        self._users = {
            "paciente@demo.com": {
                "password": "secret",
                "user": {
                    "id": 1,
                    "nombre": "Ana",
                    "apellidos": "Torres",
                    "email": "paciente@demo.com",
                    "rol": "paciente",
                    "paciente": {"id": 1},
                },
            },
            "admin@demo.com": {
                "password": "secret",
                "user": {
                    "id": 2,
                    "nombre": "Admin",
                    "apellidos": "",
                    "email": "admin@demo.com",
                    "rol": "administrador",
                    "paciente": None,
                },
            },
        }
        self._specialties = {
            1: {"id": 1, "nombre": "Cardiología", "descripcion": "Corazón y sistema circulatorio"},
            2: {"id": 2, "nombre": "Pediatría", "descripcion": None},
        }
        self._doctors = {
            7: {
                "id_medico": 7,
                "nombre_completo": "Dra. Lucía Fernández",
                "especialidad": self._specialties[1],
                "telefono_consultorio": "555-0107",
                "licencia_medica": "CMP-10007",
            },
            8: {
                "id_medico": 8,
                "nombre_completo": "Usuario No Encontrado",
                "especialidad": self._specialties[1],
                "telefono_consultorio": None,
                "licencia_medica": "CMP-10008",
            },
            9: {
                "id_medico": 9,
                "nombre_completo": "Dr. Mateo Ruiz",
                "especialidad": self._specialties[2],
                "telefono_consultorio": "555-0109",
                "licencia_medica": "CMP-10009",
            },
        }
        self._initialized = True

    async def initialize(self) -> None:
        if self._initialized:
            return
        async with self._lock:
            if not self._initialized:
                self._initialize_sample_data()
                logger.info("Initialized sandbox data")

    # ---------------------------------------------------------------- auth

    def login(self, email: str, password: str) -> Optional[dict]:
        account = self._users.get(email)
        if account is None or account["password"] != password:
            return None
        token = secrets.token_hex(16)
        self._tokens[token] = account["user"]["id"]
        return {"token": token, "token_type": "Bearer", "user": account["user"]}

    def user_for_token(self, token: str) -> Optional[int]:
        return self._tokens.get(token)

    def revoke(self, token: str) -> None:
        self._tokens.pop(token, None)

    # ----------------------------------------------------------- directory

    def specialties(self) -> List[dict]:
        return list(self._specialties.values())

    def doctors(self, specialty_id: Optional[int]) -> List[dict]:
        return [
            doctor
            for doctor in self._doctors.values()
            if specialty_id is None or doctor["especialidad"]["id"] == specialty_id
        ]

    # -------------------------------------------------------- appointments

    def _taken(self, doctor_id: int, day: date, exclude_id: Optional[int] = None) -> set:
        taken = set()
        for appointment in self._appointments.values():
            if appointment["id"] == exclude_id or appointment["estado"] == "cancelada":
                continue
            if appointment["medico"]["id"] != doctor_id:
                continue
            start = datetime.strptime(appointment["fecha_hora_inicio"], WIRE_FORMAT)
            if start.date() == day:
                taken.add(start.strftime("%H:%M"))
        return taken

    def available_slots(self, doctor_id: int, day: date, exclude_id: Optional[int] = None) -> List[str]:
        """Demo grid on weekdays, minus slots already booked."""
        if doctor_id not in self._doctors or day.weekday() >= 5:
            return []
        taken = self._taken(doctor_id, day, exclude_id)
        return [slot for slot in DAILY_SLOTS if slot not in taken]

    def _render(self, appointment: dict) -> dict:
        doctor = self._doctors[appointment["medico"]["id"]]
        return {
            **appointment,
            "medico": {
                "id": doctor["id_medico"],
                "nombre_completo": doctor["nombre_completo"],
                "telefono_consultorio": doctor["telefono_consultorio"],
                "especialidad": doctor["especialidad"],
            },
        }

    def patient_appointments(self, patient_id: int) -> List[dict]:
        return [
            self._render(a)
            for a in self._appointments.values()
            if a["paciente"]["id"] == patient_id
        ]

    def _check_slot(self, doctor_id: int, start: datetime, exclude_id: Optional[int] = None) -> None:
        if start.strftime("%H:%M") not in self.available_slots(doctor_id, start.date(), exclude_id):
            raise HTTPException(
                status_code=status.HTTP_409_CONFLICT,
                detail="El horario seleccionado no está disponible",
            )

    async def create(self, request: CreateAppointmentRequest) -> dict:
        start = _parse_wire(request.fecha_hora_inicio)
        async with self._lock:
            if request.medico_id not in self._doctors:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Médico no encontrado")
            self._check_slot(request.medico_id, start)
            end = _parse_wire(request.fecha_hora_fin) if request.fecha_hora_fin else start + timedelta(minutes=SLOT_MINUTES)
            appointment = {
                "id": self._next_appointment_id,
                "fecha_hora_inicio": start.strftime(WIRE_FORMAT),
                "fecha_hora_fin": end.strftime(WIRE_FORMAT),
                "estado": request.estado,
                "motivo_consulta": request.motivo_consulta,
                "notas_paciente": None,
                "paciente": {"id": request.paciente_id, "nombre_completo": "Paciente Demo"},
                "medico": {"id": request.medico_id},
            }
            self._appointments[appointment["id"]] = appointment
            self._next_appointment_id += 1
        return self._render(appointment)

    async def update(self, appointment_id: int, request: UpdateAppointmentRequest) -> dict:
        async with self._lock:
            appointment = self._appointments.get(appointment_id)
            if appointment is None:
                raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Cita no encontrada")
            if appointment["estado"] in TERMINAL_STATES:
                raise HTTPException(
                    status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
                    detail="La cita ya no puede modificarse",
                )
            if request.fecha_hora_inicio:
                start = _parse_wire(request.fecha_hora_inicio)
                self._check_slot(appointment["medico"]["id"], start, exclude_id=appointment_id)
                end = _parse_wire(request.fecha_hora_fin) if request.fecha_hora_fin else start + timedelta(minutes=SLOT_MINUTES)
                appointment["fecha_hora_inicio"] = start.strftime(WIRE_FORMAT)
                appointment["fecha_hora_fin"] = end.strftime(WIRE_FORMAT)
            if request.estado:
                appointment["estado"] = request.estado
            if request.motivo_consulta:
                appointment["motivo_consulta"] = request.motivo_consulta
        return self._render(appointment)


def _parse_wire(raw: str) -> datetime:
    try:
        return datetime.strptime(raw, WIRE_FORMAT)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Fecha inválida: {raw}",
        )


# Global store instance
store = SandboxStore()


# ============================================================================
# FastAPI Application
# ============================================================================

auth_scheme = HTTPBearer(auto_error=False)


def current_user(credentials: Optional[HTTPAuthorizationCredentials] = Depends(auth_scheme)) -> int:
    """Resolve the bearer token to a user id or answer 401."""
    if credentials is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthenticated.")
    user_id = store.user_for_token(credentials.credentials)
    if user_id is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Unauthenticated.")
    return user_id


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler."""
    logger.info("Starting sandbox API server")
    await store.initialize()
    yield
    logger.info("Shutting down sandbox API server")


app = FastAPI(
    title="medicitas sandbox API",
    description="In-memory stand-in for the appointment backend",
    version="1.0.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

router = APIRouter(prefix="/api")


@app.exception_handler(HTTPException)
async def message_error_handler(request, exc: HTTPException):
    """Answer errors as {"message": ...}, like the real backend."""
    return JSONResponse(status_code=exc.status_code, content={"message": exc.detail})


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {"status": "healthy", "timestamp": datetime.now().isoformat()}


@router.post("/auth/login")
async def login(request: LoginRequest):
    session = store.login(request.email, request.password)
    if session is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Credenciales inválidas")
    return session


@router.post("/auth/logout")
async def logout(
    user_id: int = Depends(current_user),
    credentials: HTTPAuthorizationCredentials = Depends(auth_scheme),
):
    store.revoke(credentials.credentials)
    return {"message": "Sesión cerrada"}


@router.get("/especialidades")
async def list_specialties(
    per_page: int = Query(default=15, ge=1, le=100),
    user_id: int = Depends(current_user),
):
    """Wrapped list, the way the backend's resource collections answer."""
    return {"data": store.specialties()[:per_page]}


@router.get("/medicos-directorio")
async def doctor_directory(
    per_page: int = Query(default=15, ge=1, le=100),
    especialidad_id: Optional[int] = Query(default=None),
    user_id: int = Depends(current_user),
):
    """Paginated list: {data, meta}."""
    doctors = store.doctors(especialidad_id)
    return {
        "data": doctors[:per_page],
        "meta": {"current_page": 1, "per_page": per_page, "total": len(doctors), "last_page": 1},
    }


@router.get("/slots-disponibles")
async def available_slots(
    medico_id: int = Query(...),
    fecha: date = Query(..., description="YYYY-MM-DD"),
    user_id: int = Depends(current_user),
):
    return {"fecha": fecha.isoformat(), "slots": store.available_slots(medico_id, fecha)}


@router.post("/citas", status_code=status.HTTP_201_CREATED)
async def create_appointment(
    request: CreateAppointmentRequest,
    user_id: int = Depends(current_user),
):
    appointment = await store.create(request)
    return {"success": True, "data": appointment}


@router.put("/citas/{appointment_id}")
async def update_appointment(
    appointment_id: int,
    request: UpdateAppointmentRequest,
    user_id: int = Depends(current_user),
):
    appointment = await store.update(appointment_id, request)
    return {"success": True, "data": appointment}


@router.get("/paciente/citas")
async def my_appointments(
    paciente_id: int = Query(...),
    user_id: int = Depends(current_user),
):
    """Bare array, unlike the other collections."""
    return store.patient_appointments(paciente_id)


app.include_router(router)


# ============================================================================
# Run Server
# ============================================================================


def run_server(host: Optional[str] = None, port: Optional[int] = None):
    """Run the sandbox API server."""
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "medicitas.api.sandbox_server:app",
        host=host or settings.sandbox_host,
        port=port or settings.sandbox_port,
        reload=False,
    )


if __name__ == "__main__":
    run_server()
