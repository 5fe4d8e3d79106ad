"""HTTP route definitions for the service."""

from __future__ import annotations

from typing import Callable, Optional

from fastapi import APIRouter, Depends, Header, Response, status
from fastapi.security import HTTPBasic, HTTPBasicCredentials

from app.schemas import (
    AddDeviceRequest,
    CreateAccountRequest,
    DevicesResponse,
    ErrorResponse,
    RegisterMetricsRequest,
    RegisterMetricsResponse,
    SignInResponse,
)
from models.errors import BadRequest, Forbidden, Unauthorized
from models.users import Credentials, User
from services.devices import DeviceService, build_default_device_service
from services.ingestion import IngestionService, build_default_ingestion
from services.users import UserService, build_default_user_service

WRITE_METRICS_SCOPE = "write:metrics"

router = APIRouter()
_basic = HTTPBasic(auto_error=False)

_ERROR_RESPONSES = {
    code: {"model": ErrorResponse}
    for code in (
        status.HTTP_400_BAD_REQUEST,
        status.HTTP_401_UNAUTHORIZED,
        status.HTTP_403_FORBIDDEN,
        status.HTTP_404_NOT_FOUND,
        status.HTTP_409_CONFLICT,
        status.HTTP_500_INTERNAL_SERVER_ERROR,
    )
}


def get_ingestion() -> IngestionService:
    return build_default_ingestion()


def get_device_service() -> DeviceService:
    return build_default_device_service()


def get_user_service() -> UserService:
    return build_default_user_service()


def get_user_id(x_user_id: Optional[str] = Header(default=None)) -> str:
    """Subject of the verified access token, forwarded by the gateway."""
    user_id = (x_user_id or "").strip()
    if not user_id:
        raise Unauthorized().with_msg("missing user identity")
    return user_id


def require_scope(scope: str) -> Callable[..., None]:
    """Dependency rejecting callers whose token scopes do not include ``scope``."""

    def check(
        user_id: str = Depends(get_user_id),
        x_user_scope: Optional[str] = Header(default=None),
    ) -> None:
        if scope not in (x_user_scope or "").split():
            raise Forbidden().with_msg("missing required scope").with_details(
                user_id=user_id, scope=scope
            )

    return check


def _require_same_user(caller: str, user_id: str) -> None:
    if caller != user_id:
        raise Forbidden().with_msg("cannot manage devices of another user").with_details(
            user_id=caller
        )


@router.post(
    "/metrics",
    status_code=status.HTTP_201_CREATED,
    response_model=RegisterMetricsResponse,
    responses=_ERROR_RESPONSES,
    summary="Register a batch of sensor measurements.",
    dependencies=[Depends(require_scope(WRITE_METRICS_SCOPE))],
)
def register_metrics(
    request: RegisterMetricsRequest,
    user_id: str = Depends(get_user_id),
    ingestion: IngestionService = Depends(get_ingestion),
) -> RegisterMetricsResponse:
    measurements = [payload.to_measurement(user_id) for payload in request.metrics]
    ingestion.ingest(measurements)
    return RegisterMetricsResponse(accepted=len(measurements))


@router.post(
    "/users",
    status_code=status.HTTP_201_CREATED,
    response_class=Response,
    responses=_ERROR_RESPONSES,
    summary="Create an account with the identity provider.",
)
def create_account(
    request: CreateAccountRequest,
    users: UserService = Depends(get_user_service),
) -> Response:
    users.create_account(User(name=request.name, email=request.email, password=request.password))
    return Response(status_code=status.HTTP_201_CREATED)


@router.post(
    "/signin",
    response_model=SignInResponse,
    responses=_ERROR_RESPONSES,
    summary="Exchange basic credentials for an access token.",
)
def sign_in(
    credentials: Optional[HTTPBasicCredentials] = Depends(_basic),
    users: UserService = Depends(get_user_service),
) -> SignInResponse:
    if credentials is None or not credentials.username:
        raise BadRequest().with_msg("missing credentials")
    token = users.login(Credentials(email=credentials.username, password=credentials.password))
    return SignInResponse(access_token=token.access_token)


@router.get(
    "/users/{user_id}/devices",
    response_model=DevicesResponse,
    responses=_ERROR_RESPONSES,
    summary="List the devices correlated with a user.",
)
def list_devices(
    user_id: str,
    caller: str = Depends(get_user_id),
    devices: DeviceService = Depends(get_device_service),
) -> DevicesResponse:
    _require_same_user(caller, user_id)
    return DevicesResponse(user_id=user_id, devices=devices.get_devices(user_id))


@router.post(
    "/users/{user_id}/devices",
    status_code=status.HTTP_202_ACCEPTED,
    response_model=DevicesResponse,
    responses=_ERROR_RESPONSES,
    summary="Correlate a device with a user.",
)
def add_device(
    user_id: str,
    request: AddDeviceRequest,
    caller: str = Depends(get_user_id),
    devices: DeviceService = Depends(get_device_service),
) -> DevicesResponse:
    _require_same_user(caller, user_id)
    devices.add_device(user_id, request.device)
    return DevicesResponse(user_id=user_id, devices=devices.get_devices(user_id))


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}
