"""FastAPI routes for the Delivery domain.

The caller's identity arrives in the X-Actor-Role / X-Actor-Id headers;
authentication happens upstream. The system role is never accepted from a
header. Every mutating route processes its command under the record locks
of the records it touches and answers with the order as it now stands.
Those routes are plain functions so they run in the threadpool while they
wait on locks and external calls.
"""

import json
from dataclasses import asdict

from fastapi import APIRouter, Header, HTTPException, Query
from protean.utils.globals import current_domain

from delivery import settings
from delivery.api.schemas import (
    AssignDriverRequest,
    CancellationResponse,
    CancelOrderRequest,
    ConfigureGatewayRequest,
    ConfigureGeocoderRequest,
    Coordinates,
    CreateOrderRequest,
    DriverDutyRequest,
    DriverIdResponse,
    DriverLocationRequest,
    DriverStatisticsResponse,
    DriverStatusRequest,
    FeeBreakdownResponse,
    GatewayConfigResponse,
    GeocoderConfigResponse,
    NearbyDriverResponse,
    NearbyDriversResponse,
    OrderItemResponse,
    OrderListResponse,
    OrderResponse,
    PaymentResponse,
    PaymentWebhookRequest,
    PayOrderRequest,
    RateOrderRequest,
    RefundOrderRequest,
    RegisterDriverRequest,
    RegisterVenueRequest,
    StatusResponse,
    TrackingUpdateResponse,
    UpdateFeeScheduleRequest,
    UpdateStatusRequest,
    VenueAvailabilityRequest,
    VenueIdResponse,
    VenueStatisticsResponse,
)
from delivery.concurrency import process_exclusively
from delivery.driver.management import ChangeDriverStatus, RegisterDriver, SetDriverDutyStatus, UpdateDriverLocation
from delivery.driver.matching import DEFAULT_SEARCH_RADIUS_M, find_nearby_drivers, nearby_drivers_for_order
from delivery.driver.statistics import driver_statistics
from delivery.errors import Unauthorized
from delivery.gateway import get_gateway
from delivery.gateway.fake_adapter import FakeGateway
from delivery.geocoding import get_geocoder
from delivery.geocoding.fake_adapter import FakeGeocoder
from delivery.order.assignment import AssignDriver
from delivery.order.cancellation import CancelOrder
from delivery.order.creation import CreateOrder
from delivery.order.deletion import DeleteOrder
from delivery.order.locking import process_order_command
from delivery.order.order import Order
from delivery.order.payment import PayOrder, ProcessPaymentWebhook, RefundOrder
from delivery.order.queries import get_order, list_orders
from delivery.order.rating import RateOrder
from delivery.order.state_machine import ActorRole
from delivery.order.status import UpdateOrderStatus
from delivery.order.tracking import RecordDriverLocation
from delivery.venue.registration import RegisterVenue, SetVenueAcceptingOrders, UpdateVenueFeeSchedule
from delivery.venue.statistics import venue_statistics


def _require_role(actor_role: str, actor_id: str | None, role: ActorRole) -> str:
    if actor_role != role.value or not actor_id:
        raise Unauthorized({"actor_role": [f"Only a {role.value} may do this"]})
    return actor_id


def _caller_actor(actor_role: str, actor_id: str | None) -> tuple[str, str | None]:
    """Role and identity from the request headers. The system role is reserved for in-process callers."""
    if actor_role == ActorRole.SYSTEM.value:
        raise Unauthorized({"actor_role": ["The system role cannot be claimed by an HTTP caller"]})
    return actor_role, actor_id


def _order_response(order: Order) -> OrderResponse:
    fee = order.fee
    address = order.dropoff_address
    return OrderResponse(
        id=str(order.id),
        customer_id=str(order.customer_id),
        venue_id=str(order.venue_id),
        driver_id=str(order.driver_id) if order.driver_id else None,
        items=[
            OrderItemResponse(
                menu_item_id=str(item.menu_item_id),
                name=item.name,
                quantity=item.quantity,
                unit_price=item.unit_price,
                option_costs=item.option_cost_list(),
            )
            for item in order.items
        ],
        dropoff_location=Coordinates(
            latitude=order.dropoff_location.latitude,
            longitude=order.dropoff_location.longitude,
        ),
        dropoff_address=(address.formatted or address.street) if address else None,
        distance_km=order.distance_km,
        subtotal=order.subtotal,
        fee_breakdown=FeeBreakdownResponse(**fee.to_dict()) if fee else None,
        tax=order.tax,
        tip=order.tip,
        discount_amount=order.discount_amount,
        total_amount=order.total_amount,
        payment_method=order.payment_method,
        payment_status=order.payment_status,
        refunded_amount=order.refunded_amount or 0.0,
        delivery_status=order.delivery_status,
        tracking_updates=[
            TrackingUpdateResponse(
                sequence=update.sequence,
                status=update.status,
                actor_role=update.actor_role,
                actor_id=update.actor_id,
                location=(
                    Coordinates(latitude=update.location.latitude, longitude=update.location.longitude)
                    if update.location
                    else None
                ),
                notes=update.notes,
                recorded_at=update.recorded_at,
            )
            for update in order.tracking_log()
        ],
        cancellation=(
            CancellationResponse(
                reason=order.cancellation.reason,
                cancelled_by=order.cancellation.cancelled_by,
                cancelled_at=order.cancellation.cancelled_at,
            )
            if order.cancellation
            else None
        ),
        is_cancellable=order.is_cancellable,
        rating=order.rating,
        driver_rating=order.driver_rating,
        venue_rating=order.venue_rating,
        estimated_prep_minutes=order.estimated_prep_minutes,
        estimated_delivery_at=order.estimated_delivery_at,
        actual_delivery_at=order.actual_delivery_at,
        created_at=order.created_at,
        version=order.version or 0,
    )


def _current_order(order_id: str) -> OrderResponse:
    return _order_response(get_order(order_id, include_deleted=True))


# ---------------------------------------------------------------------------
# Order Router
# ---------------------------------------------------------------------------
order_router = APIRouter(prefix="/orders", tags=["orders"])


@order_router.post("", status_code=201, response_model=OrderResponse)
def create_order(body: CreateOrderRequest) -> OrderResponse:
    """Place an order; it starts pending and unpaid."""
    command = CreateOrder(
        customer_id=body.customer_id,
        venue_id=body.venue_id,
        items=json.dumps([item.model_dump() for item in body.items]),
        dropoff_latitude=body.dropoff.latitude,
        dropoff_longitude=body.dropoff.longitude,
        unit_number=body.unit_number,
        tip=body.tip,
        payment_method=body.payment_method,
        discount_code=body.discount.code if body.discount else None,
        discount_type=body.discount.type if body.discount else None,
        discount_value=body.discount.value if body.discount else None,
        special_instructions=body.special_instructions,
    )
    order_id = process_exclusively(command)
    return _current_order(order_id)


@order_router.get("", response_model=OrderListResponse)
async def search_orders(
    customer_id: str | None = None,
    venue_id: str | None = None,
    driver_id: str | None = None,
    status: str | None = None,
) -> OrderListResponse:
    orders = list_orders(customer_id=customer_id, venue_id=venue_id, driver_id=driver_id, status=status)
    return OrderListResponse(orders=[_order_response(order) for order in orders], count=len(orders))


@order_router.get("/{order_id}", response_model=OrderResponse)
async def order_detail(order_id: str) -> OrderResponse:
    return _order_response(get_order(order_id))


@order_router.get("/{order_id}/tracking", response_model=list[TrackingUpdateResponse])
async def order_tracking(order_id: str) -> list[TrackingUpdateResponse]:
    return _current_order(order_id).tracking_updates


@order_router.put("/{order_id}/status", response_model=OrderResponse)
def update_order_status(
    order_id: str,
    body: UpdateStatusRequest,
    x_actor_role: str = Header(),
    x_actor_id: str | None = Header(default=None),
) -> OrderResponse:
    """Move the order along the delivery state machine."""
    actor_role, actor_id = _caller_actor(x_actor_role, x_actor_id)
    command = UpdateOrderStatus(
        order_id=order_id,
        status=body.status,
        actor_role=actor_role,
        actor_id=actor_id,
        notes=body.notes,
        latitude=body.location.latitude if body.location else None,
        longitude=body.location.longitude if body.location else None,
        expected_version=body.expected_version,
    )
    process_order_command(command)
    return _current_order(order_id)


@order_router.put("/{order_id}/driver", response_model=OrderResponse)
def assign_driver(
    order_id: str,
    body: AssignDriverRequest,
    x_actor_role: str = Header(),
    x_actor_id: str | None = Header(default=None),
) -> OrderResponse:
    actor_role, actor_id = _caller_actor(x_actor_role, x_actor_id)
    command = AssignDriver(order_id=order_id, driver_id=body.driver_id, actor_role=actor_role, actor_id=actor_id)
    process_order_command(command)
    return _current_order(order_id)


@order_router.put("/{order_id}/cancel", response_model=OrderResponse)
def cancel_order(
    order_id: str,
    body: CancelOrderRequest,
    x_actor_role: str = Header(),
    x_actor_id: str | None = Header(default=None),
) -> OrderResponse:
    actor_role, actor_id = _caller_actor(x_actor_role, x_actor_id)
    command = CancelOrder(
        order_id=order_id,
        actor_role=actor_role,
        actor_id=actor_id,
        reason=body.reason,
        expected_version=body.expected_version,
    )
    process_order_command(command)
    return _current_order(order_id)


@order_router.put("/{order_id}/rating", response_model=OrderResponse)
def rate_order(
    order_id: str,
    body: RateOrderRequest,
    x_actor_role: str = Header(),
    x_actor_id: str | None = Header(default=None),
) -> OrderResponse:
    customer_id = _require_role(x_actor_role, x_actor_id, ActorRole.CUSTOMER)
    command = RateOrder(
        order_id=order_id,
        customer_id=customer_id,
        rating=body.rating,
        driver_rating=body.driver_rating,
        venue_rating=body.venue_rating,
        feedback=body.feedback,
    )
    process_order_command(command)
    return _current_order(order_id)


@order_router.put("/{order_id}/location", response_model=OrderResponse)
def record_driver_location(
    order_id: str,
    body: DriverLocationRequest,
    x_actor_role: str = Header(),
    x_actor_id: str | None = Header(default=None),
) -> OrderResponse:
    driver_id = _require_role(x_actor_role, x_actor_id, ActorRole.DRIVER)
    command = RecordDriverLocation(
        order_id=order_id,
        driver_id=driver_id,
        latitude=body.latitude,
        longitude=body.longitude,
        notes=body.notes,
    )
    process_order_command(command)
    return _current_order(order_id)


@order_router.delete("/{order_id}", response_model=StatusResponse)
def delete_order(
    order_id: str,
    x_actor_role: str = Header(),
    x_actor_id: str | None = Header(default=None),
) -> StatusResponse:
    actor_role, actor_id = _caller_actor(x_actor_role, x_actor_id)
    process_order_command(DeleteOrder(order_id=order_id, actor_role=actor_role, actor_id=actor_id))
    return StatusResponse(status="deleted")


@order_router.get("/{order_id}/nearby-drivers", response_model=NearbyDriversResponse)
async def order_nearby_drivers(order_id: str, max_distance_m: float | None = Query(default=None)):
    """Dispatchable drivers around the drop-off, nearest first."""
    candidates = nearby_drivers_for_order(order_id, max_distance_m=max_distance_m)
    return NearbyDriversResponse(drivers=[NearbyDriverResponse(**asdict(c)) for c in candidates])


@order_router.post("/{order_id}/payments", response_model=PaymentResponse)
def pay_order(
    order_id: str,
    body: PayOrderRequest,
    x_actor_role: str = Header(),
    x_actor_id: str | None = Header(default=None),
) -> PaymentResponse:
    customer_id = _require_role(x_actor_role, x_actor_id, ActorRole.CUSTOMER)
    command = PayOrder(
        order_id=order_id,
        customer_id=customer_id,
        amount=body.amount,
        payment_method=body.payment_method,
    )
    reference = process_order_command(command)
    order = get_order(order_id, include_deleted=True)
    return PaymentResponse(
        order_id=order_id,
        payment_reference=reference,
        payment_status=order.payment_status,
        delivery_status=order.delivery_status,
    )


@order_router.post("/{order_id}/refunds", response_model=OrderResponse)
def refund_order(
    order_id: str,
    body: RefundOrderRequest,
    x_actor_role: str = Header(),
    x_actor_id: str | None = Header(default=None),
) -> OrderResponse:
    actor_role, actor_id = _caller_actor(x_actor_role, x_actor_id)
    command = RefundOrder(
        order_id=order_id,
        actor_role=actor_role,
        actor_id=actor_id,
        amount=body.amount,
        reason=body.reason,
    )
    process_order_command(command)
    return _current_order(order_id)


# ---------------------------------------------------------------------------
# Payment Router
# ---------------------------------------------------------------------------
payment_router = APIRouter(prefix="/payments", tags=["payments"])


@payment_router.post("/webhook", response_model=StatusResponse)
def process_webhook(
    body: PaymentWebhookRequest,
    x_gateway_signature: str = Header(default=""),
) -> StatusResponse:
    """Process a payment gateway webhook callback."""
    gateway = get_gateway()
    if not gateway.verify_webhook_signature(json.dumps(body.model_dump()), x_gateway_signature):
        raise HTTPException(status_code=401, detail="Invalid webhook signature")

    command = ProcessPaymentWebhook(
        order_id=body.order_id,
        event_type=body.event_type,
        payment_reference=body.payment_reference,
        amount=body.amount,
        failure_reason=body.failure_reason,
    )
    changed = process_order_command(command)
    return StatusResponse(status="processed" if changed else "ignored")


@payment_router.post("/gateway/configure", response_model=GatewayConfigResponse)
async def configure_gateway(body: ConfigureGatewayRequest) -> GatewayConfigResponse:
    """Configure the FakeGateway behavior (non-production only)."""
    if settings.is_production():
        raise HTTPException(status_code=403, detail="Gateway configuration not available in production")

    gateway = get_gateway()
    if not isinstance(gateway, FakeGateway):
        raise HTTPException(status_code=400, detail="Gateway configuration only available for FakeGateway")

    gateway.configure(should_succeed=body.should_succeed, failure_reason=body.failure_reason)
    return GatewayConfigResponse(
        gateway=type(gateway).__name__,
        should_succeed=gateway.should_succeed,
        failure_reason=gateway.failure_reason,
    )


# ---------------------------------------------------------------------------
# Geocoding Router
# ---------------------------------------------------------------------------
geocoding_router = APIRouter(prefix="/geocoding", tags=["geocoding"])


@geocoding_router.post("/configure", response_model=GeocoderConfigResponse)
async def configure_geocoder(body: ConfigureGeocoderRequest) -> GeocoderConfigResponse:
    """Configure the FakeGeocoder behavior (non-production only)."""
    if settings.is_production():
        raise HTTPException(status_code=403, detail="Geocoder configuration not available in production")

    geocoder = get_geocoder()
    if not isinstance(geocoder, FakeGeocoder):
        raise HTTPException(status_code=400, detail="Geocoder configuration only available for FakeGeocoder")

    geocoder.configure(
        should_succeed=body.should_succeed,
        failure_reason=body.failure_reason,
        delay_seconds=body.delay_seconds,
    )
    return GeocoderConfigResponse(
        geocoder=type(geocoder).__name__,
        should_succeed=geocoder.should_succeed,
        failure_reason=geocoder.failure_reason,
        delay_seconds=geocoder.delay_seconds,
    )


# ---------------------------------------------------------------------------
# Venue Router
# ---------------------------------------------------------------------------
venue_router = APIRouter(prefix="/venues", tags=["venues"])


@venue_router.post("", status_code=201, response_model=VenueIdResponse)
def register_venue(body: RegisterVenueRequest) -> VenueIdResponse:
    command = RegisterVenue(
        name=body.name,
        owner_id=body.owner_id,
        latitude=body.location.latitude,
        longitude=body.location.longitude,
        delivery_radius_km=body.delivery_radius_km,
        fee_schedule=json.dumps(body.fee_schedule),
    )
    venue_id = current_domain.process(command, asynchronous=False)
    return VenueIdResponse(venue_id=venue_id)


@venue_router.put("/{venue_id}/fees", response_model=StatusResponse)
def update_fee_schedule(
    venue_id: str,
    body: UpdateFeeScheduleRequest,
    x_actor_id: str = Header(),
) -> StatusResponse:
    command = UpdateVenueFeeSchedule(venue_id=venue_id, actor_id=x_actor_id, fee_schedule=json.dumps(body.fee_schedule))
    process_exclusively(command)
    return StatusResponse(status="fee_schedule_updated")


@venue_router.put("/{venue_id}/availability", response_model=StatusResponse)
def set_venue_availability(
    venue_id: str,
    body: VenueAvailabilityRequest,
    x_actor_id: str = Header(),
) -> StatusResponse:
    command = SetVenueAcceptingOrders(venue_id=venue_id, actor_id=x_actor_id, accepting_orders=body.accepting_orders)
    process_exclusively(command)
    return StatusResponse(status="accepting_orders" if body.accepting_orders else "paused")


@venue_router.get("/{venue_id}/stats", response_model=VenueStatisticsResponse)
async def venue_stats(venue_id: str) -> VenueStatisticsResponse:
    return VenueStatisticsResponse(**asdict(venue_statistics(venue_id)))


# ---------------------------------------------------------------------------
# Driver Router
# ---------------------------------------------------------------------------
driver_router = APIRouter(prefix="/drivers", tags=["drivers"])


@driver_router.post("", status_code=201, response_model=DriverIdResponse)
def register_driver(body: RegisterDriverRequest) -> DriverIdResponse:
    command = RegisterDriver(
        name=body.name,
        latitude=body.location.latitude if body.location else None,
        longitude=body.location.longitude if body.location else None,
        max_delivery_radius_km=body.max_delivery_radius_km,
    )
    driver_id = current_domain.process(command, asynchronous=False)
    return DriverIdResponse(driver_id=driver_id)


@driver_router.get("/nearby", response_model=NearbyDriversResponse)
async def drivers_nearby(
    latitude: float,
    longitude: float,
    max_distance_m: float = DEFAULT_SEARCH_RADIUS_M,
) -> NearbyDriversResponse:
    candidates = find_nearby_drivers(latitude, longitude, max_distance_m=max_distance_m)
    return NearbyDriversResponse(drivers=[NearbyDriverResponse(**asdict(c)) for c in candidates])


@driver_router.put("/{driver_id}/status", response_model=StatusResponse)
def change_driver_status(driver_id: str, body: DriverStatusRequest) -> StatusResponse:
    process_exclusively(ChangeDriverStatus(driver_id=driver_id, status=body.status))
    return StatusResponse(status=body.status)


@driver_router.put("/{driver_id}/duty", response_model=StatusResponse)
def set_driver_duty(driver_id: str, body: DriverDutyRequest) -> StatusResponse:
    process_exclusively(SetDriverDutyStatus(driver_id=driver_id, on_duty=body.on_duty))
    return StatusResponse(status="on_duty" if body.on_duty else "off_duty")


@driver_router.put("/{driver_id}/location", response_model=StatusResponse)
def update_driver_location(driver_id: str, body: Coordinates) -> StatusResponse:
    process_exclusively(UpdateDriverLocation(driver_id=driver_id, latitude=body.latitude, longitude=body.longitude))
    return StatusResponse(status="location_updated")


@driver_router.get("/{driver_id}/stats", response_model=DriverStatisticsResponse)
async def driver_stats(driver_id: str) -> DriverStatisticsResponse:
    return DriverStatisticsResponse(**asdict(driver_statistics(driver_id)))
