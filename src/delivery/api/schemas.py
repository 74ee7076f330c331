"""Pydantic API schemas for the Delivery domain.

These are the external API contracts: separate from domain commands.
The API layer translates between these schemas and domain commands, and
renders aggregates back into the response models below.
"""

from datetime import datetime

from pydantic import BaseModel, Field


# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------
class Coordinates(BaseModel):
    latitude: float
    longitude: float


class OrderItemRequest(BaseModel):
    menu_item_id: str
    name: str
    quantity: int
    unit_price: float
    option_costs: list[float] = Field(default_factory=list)


class DiscountRequest(BaseModel):
    code: str | None = None
    type: str
    value: float


class CreateOrderRequest(BaseModel):
    customer_id: str
    venue_id: str
    items: list[OrderItemRequest]
    dropoff: Coordinates
    unit_number: str | None = None
    tip: float = 0.0
    payment_method: str
    discount: DiscountRequest | None = None
    special_instructions: str | None = None


class UpdateStatusRequest(BaseModel):
    status: str
    notes: str | None = None
    location: Coordinates | None = None
    expected_version: int | None = None


class AssignDriverRequest(BaseModel):
    driver_id: str


class CancelOrderRequest(BaseModel):
    reason: str
    expected_version: int | None = None


class RateOrderRequest(BaseModel):
    rating: int
    driver_rating: int | None = None
    venue_rating: int | None = None
    feedback: str | None = None


class DriverLocationRequest(BaseModel):
    latitude: float
    longitude: float
    notes: str | None = None


class PayOrderRequest(BaseModel):
    amount: float
    payment_method: str


class PaymentWebhookRequest(BaseModel):
    order_id: str
    event_type: str
    payment_reference: str | None = None
    amount: float | None = None
    failure_reason: str | None = None


class RefundOrderRequest(BaseModel):
    amount: float | None = None
    reason: str


class RegisterVenueRequest(BaseModel):
    name: str
    owner_id: str
    location: Coordinates
    delivery_radius_km: float
    fee_schedule: dict


class UpdateFeeScheduleRequest(BaseModel):
    fee_schedule: dict


class VenueAvailabilityRequest(BaseModel):
    accepting_orders: bool


class RegisterDriverRequest(BaseModel):
    name: str
    location: Coordinates | None = None
    max_delivery_radius_km: float = 10.0


class DriverStatusRequest(BaseModel):
    status: str


class DriverDutyRequest(BaseModel):
    on_duty: bool


class ConfigureGatewayRequest(BaseModel):
    should_succeed: bool = True
    failure_reason: str = "Card declined"


class ConfigureGeocoderRequest(BaseModel):
    should_succeed: bool = True
    failure_reason: str = "Geocoder unavailable"
    delay_seconds: float = 0.0


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class VenueIdResponse(BaseModel):
    venue_id: str


class DriverIdResponse(BaseModel):
    driver_id: str


class StatusResponse(BaseModel):
    status: str


class FeeBreakdownResponse(BaseModel):
    base: float
    distance_fee: float
    surge_fee: float
    small_order_fee: float
    service_fee: float
    handling_fee: float
    zone_fee: float
    discount: float
    is_free: bool
    surge_multiplier: float
    currency: str
    total: float


class OrderItemResponse(BaseModel):
    menu_item_id: str
    name: str
    quantity: int
    unit_price: float
    option_costs: list[float]


class TrackingUpdateResponse(BaseModel):
    sequence: int
    status: str
    actor_role: str
    actor_id: str | None = None
    location: Coordinates | None = None
    notes: str | None = None
    recorded_at: datetime


class CancellationResponse(BaseModel):
    reason: str
    cancelled_by: str
    cancelled_at: datetime


class OrderResponse(BaseModel):
    id: str
    customer_id: str
    venue_id: str
    driver_id: str | None = None
    items: list[OrderItemResponse]
    dropoff_location: Coordinates
    dropoff_address: str | None = None
    distance_km: float
    subtotal: float
    fee_breakdown: FeeBreakdownResponse | None = None
    tax: float
    tip: float
    discount_amount: float
    total_amount: float
    payment_method: str
    payment_status: str
    refunded_amount: float
    delivery_status: str
    tracking_updates: list[TrackingUpdateResponse]
    cancellation: CancellationResponse | None = None
    is_cancellable: bool
    rating: int | None = None
    driver_rating: int | None = None
    venue_rating: int | None = None
    estimated_prep_minutes: int | None = None
    estimated_delivery_at: datetime | None = None
    actual_delivery_at: datetime | None = None
    created_at: datetime | None = None
    version: int


class OrderListResponse(BaseModel):
    orders: list[OrderResponse]
    count: int


class NearbyDriverResponse(BaseModel):
    driver_id: str
    name: str
    distance_km: float
    latitude: float
    longitude: float
    average_rating: float


class NearbyDriversResponse(BaseModel):
    drivers: list[NearbyDriverResponse]


class PaymentResponse(BaseModel):
    order_id: str
    payment_reference: str | None = None
    payment_status: str
    delivery_status: str


class VenueStatisticsResponse(BaseModel):
    venue_id: str
    total_orders: int
    completed_orders: int
    cancelled_orders: int
    total_revenue: float
    avg_preparation_minutes: float | None = None
    average_rating: float
    rating_count: int


class DriverStatisticsResponse(BaseModel):
    driver_id: str
    total_deliveries: int
    completed_deliveries: int
    cancellation_rate: float
    on_time_percentage: float
    average_rating: float


class GatewayConfigResponse(BaseModel):
    gateway: str
    should_succeed: bool
    failure_reason: str


class GeocoderConfigResponse(BaseModel):
    geocoder: str
    should_succeed: bool
    failure_reason: str
    delay_seconds: float
