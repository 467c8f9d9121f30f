from __future__ import annotations

from datetime import datetime

from aws_lambda_powertools import Logger, Tracer
from aws_lambda_powertools.metrics import Metrics, MetricUnit
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from starlette.responses import JSONResponse

from campus_reservations import config, service
from campus_reservations.errors import ConflictError, FieldError, ReservationError, ValidationError
from campus_reservations.identity import get_caller
from campus_reservations.models import (
    Caller,
    ListScope,
    PurposeUpdate,
    Reservation,
    ReservationRequest,
    ResourceType,
    StatusUpdate,
)

logger = Logger()
tracer = Tracer()
metrics = Metrics(namespace=config.METRICS_NAMESPACE)

app = FastAPI(title="Campus Reservations API", version="0.1.0")


@app.exception_handler(ReservationError)
def reservation_error_handler(request: Request, exc: ReservationError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("Request failed", extra={"path": request.url.path, "error": exc.to_dict()})
    return JSONResponse(status_code=exc.status_code, content={"error": exc.to_dict()})


@app.exception_handler(RequestValidationError)
def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    fields = [
        FieldError(".".join(str(part) for part in err.get("loc", ()) if part != "body") or "body", err.get("msg", ""))
        for err in exc.errors()
    ]
    return reservation_error_handler(request, ValidationError(fields))


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@tracer.capture_method
@app.post("/reservations", response_model=Reservation, status_code=201)
def create_reservation(payload: ReservationRequest, caller: Caller = Depends(get_caller)) -> Reservation:
    try:
        reservation = service.create_reservation(payload, caller)
    except ConflictError:
        metrics.add_metric(name="ReservationConflict", value=1, unit=MetricUnit.Count)
        raise
    metrics.add_metric(name="CreateReservation", value=1, unit=MetricUnit.Count)
    return reservation


@tracer.capture_method
@app.get("/reservations", response_model=list[Reservation])
def list_reservations(
    scope: ListScope = ListScope.MINE,
    resource_id: str | None = None,
    resource_type: ResourceType | None = None,
    start: datetime | None = None,
    end: datetime | None = None,
    caller: Caller = Depends(get_caller),
) -> list[Reservation]:
    if resource_id:
        return service.list_for_resource(resource_id, resource_type, start, end)
    return service.list_reservations(caller, scope)


@tracer.capture_method
@app.get("/reservations/{reservation_id}", response_model=Reservation)
def get_reservation(reservation_id: str, caller: Caller = Depends(get_caller)) -> Reservation:
    return service.get_reservation(reservation_id, caller)


@tracer.capture_method
@app.patch("/reservations/{reservation_id}/status", response_model=Reservation)
def set_status(reservation_id: str, payload: StatusUpdate, caller: Caller = Depends(get_caller)) -> Reservation:
    reservation = service.set_status(reservation_id, caller, payload.status)
    metrics.add_metric(name=f"Reservation{payload.status.value.capitalize()}", value=1, unit=MetricUnit.Count)
    return reservation


@tracer.capture_method
@app.post("/reservations/{reservation_id}/cancel", response_model=Reservation)
def cancel_reservation(reservation_id: str, caller: Caller = Depends(get_caller)) -> Reservation:
    reservation = service.cancel_reservation(reservation_id, caller)
    metrics.add_metric(name="ReservationCancelled", value=1, unit=MetricUnit.Count)
    return reservation


@tracer.capture_method
@app.patch("/reservations/{reservation_id}", response_model=Reservation)
def update_reservation(
    reservation_id: str, payload: PurposeUpdate, caller: Caller = Depends(get_caller)
) -> Reservation:
    return service.update_purpose(reservation_id, caller, payload.purpose)


@tracer.capture_method
@app.delete("/reservations/{reservation_id}")
def delete_reservation(reservation_id: str, caller: Caller = Depends(get_caller)) -> dict[str, str]:
    service.delete_reservation(reservation_id, caller)
    metrics.add_metric(name="ReservationDeleted", value=1, unit=MetricUnit.Count)
    return {"msg": "Reservation deleted", "reservation_id": reservation_id}
