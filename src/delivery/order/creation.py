"""Order placement: command and handler.

Everything derived at placement is computed here explicitly, in this
order: items, venue availability, drop-off coordinates, distance and
radius check, delivery fee on the local wall clock, totals, then the
reverse-geocoded address. The geocoder is the only external call and it
runs last, before anything is written, so a timeout leaves no trace.
"""

import json
from datetime import UTC, datetime
from zoneinfo import ZoneInfo

import structlog
from protean import handle
from protean.exceptions import ValidationError
from protean.fields import Float, Identifier, String, Text
from protean.utils.globals import current_domain

from delivery import settings
from delivery.domain import delivery
from delivery.errors import InvalidItems, OutOfDeliveryRange
from delivery.geocoding import reverse_geocode
from delivery.order.order import Order, PaymentMethod, estimated_delivery_time, prep_minutes_for
from delivery.pricing.fees import calculate_delivery_fee
from delivery.pricing.totals import DiscountType, compute_totals, subtotal_of
from delivery.shared.geo import GeoPoint, PostalAddress
from delivery.venue.venue import Venue

logger = structlog.get_logger(__name__)


@delivery.command(part_of="Order")
class CreateOrder:
    customer_id = Identifier(required=True)
    venue_id = Identifier(required=True)
    items = Text(required=True)  # JSON list of item dicts
    dropoff_latitude = Float(required=True)
    dropoff_longitude = Float(required=True)
    unit_number = String(max_length=50)
    tip = Float(default=0.0)
    payment_method = String(required=True, choices=PaymentMethod)
    discount_code = String(max_length=50)
    discount_type = String(choices=DiscountType)
    discount_value = Float()
    special_instructions = String(max_length=500)


def parse_items(raw) -> list[dict]:
    """Validate order lines, raising InvalidItems with every problem found."""
    if isinstance(raw, str):
        try:
            raw = json.loads(raw)
        except ValueError:
            raise InvalidItems({"items": ["Items must be a JSON list"]}) from None
    if not isinstance(raw, list) or not raw:
        raise InvalidItems({"items": ["An order needs at least one item"]})

    errors = []
    items = []
    for position, item in enumerate(raw, start=1):
        if not isinstance(item, dict):
            errors.append(f"Item {position} is not an object")
            continue
        quantity = item.get("quantity")
        unit_price = item.get("unit_price")
        options = item.get("option_costs") or []
        if not item.get("menu_item_id"):
            errors.append(f"Item {position} has no menu_item_id")
        if not item.get("name"):
            errors.append(f"Item {position} has no name")
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity < 1:
            errors.append(f"Item {position} quantity must be a whole number of at least 1")
        if isinstance(unit_price, bool) or not isinstance(unit_price, int | float) or unit_price < 0:
            errors.append(f"Item {position} unit_price must be a non-negative number")
        if not isinstance(options, list) or any(
            isinstance(cost, bool) or not isinstance(cost, int | float) or cost < 0 for cost in options
        ):
            errors.append(f"Item {position} option_costs must be non-negative numbers")
        items.append(
            {
                "menu_item_id": item.get("menu_item_id"),
                "name": item.get("name"),
                "quantity": quantity,
                "unit_price": unit_price,
                "option_costs": options,
            }
        )

    if errors:
        raise InvalidItems({"items": errors})
    return items


def local_clock_time(now: datetime | None = None) -> str:
    """Wall-clock ``HH:MM`` used to pick surge windows."""
    zone = settings.local_timezone()
    if now is None:
        now = datetime.now(ZoneInfo(zone)) if zone else datetime.now()
    elif zone:
        now = now.astimezone(ZoneInfo(zone))
    return now.strftime("%H:%M")


@delivery.command_handler(part_of=Order)
class OrderCreationHandler:
    @handle(CreateOrder)
    def create_order(self, command):
        items = parse_items(command.items)

        venue_repo = current_domain.repository_for(Venue)
        venue = venue_repo.get(command.venue_id)
        venue.assert_accepting_orders()

        dropoff = GeoPoint(latitude=command.dropoff_latitude, longitude=command.dropoff_longitude)
        distance_km = venue.location.distance_km_to(dropoff)
        if distance_km > venue.delivery_radius_km:
            raise OutOfDeliveryRange(
                {
                    "dropoff": [
                        f"Drop-off is {distance_km} km from the venue, beyond its {venue.delivery_radius_km} km radius"
                    ]
                }
            )

        if command.discount_type and command.discount_value is None:
            raise ValidationError({"discount_value": ["A discount type needs a value"]})

        now = datetime.now(UTC)
        subtotal = subtotal_of((item["unit_price"], item["quantity"], item["option_costs"]) for item in items)
        schedule = venue.fee_schedule_config()
        fee = calculate_delivery_fee(schedule, distance_km, local_clock_time(), subtotal)
        if fee.distance_rate is None and schedule.distance_rates:
            logger.warning("No distance tier covers drop-off", venue_id=str(venue.id), distance_km=distance_km)
        totals = compute_totals(
            subtotal,
            fee.total,
            command.tip,
            settings.tax_rate(),
            discount_type=command.discount_type,
            discount_value=command.discount_value,
        )

        address = reverse_geocode(dropoff.latitude, dropoff.longitude)

        order = Order.place(
            customer_id=command.customer_id,
            venue=venue,
            items=items,
            dropoff=dropoff,
            distance_km=distance_km,
            fee=fee,
            totals=totals,
            payment_method=command.payment_method,
            dropoff_address=PostalAddress(
                street=address.street,
                city=address.city,
                state=address.state,
                postal_code=address.postal_code,
                country=address.country,
                unit_number=command.unit_number,
                formatted=address.formatted,
            ),
            discount_code=command.discount_code,
            discount_type=command.discount_type,
            discount_value=command.discount_value,
            special_instructions=command.special_instructions,
            estimated_delivery_at=estimated_delivery_time(
                now, prep_minutes_for(len(items)), distance_km, settings.courier_speed_kmh()
            ),
            placed_at=now,
        )
        venue.record_order_placed()

        current_domain.repository_for(Order).add(order)
        venue_repo.add(venue)
        logger.info(
            "Order placed",
            order_id=str(order.id),
            venue_id=str(venue.id),
            customer_id=str(command.customer_id),
            total=order.total_amount,
            distance_km=distance_km,
        )
        return str(order.id)
