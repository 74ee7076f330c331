"""Repository for the Order aggregate."""

from delivery.domain import delivery
from delivery.order.order import Order

# Upper bound for list and statistics queries
QUERY_LIMIT = 10_000


@delivery.repository(part_of=Order)
class OrderRepository:
    def _find(self, **filters) -> list[Order]:
        filters = {key: value for key, value in filters.items() if value is not None}
        return self._dao.query.filter(**filters).order_by("-created_at").limit(QUERY_LIMIT).all().items

    def find_orders(
        self,
        customer_id: str | None = None,
        venue_id: str | None = None,
        driver_id: str | None = None,
        delivery_status: str | None = None,
        include_deleted: bool = False,
    ) -> list[Order]:
        """Orders matching every given filter, newest first."""
        orders = self._find(
            customer_id=customer_id,
            venue_id=venue_id,
            driver_id=driver_id,
            delivery_status=delivery_status,
        )
        if include_deleted:
            return orders
        return [order for order in orders if not order.is_deleted]

    def find_rated_for_venue(self, venue_id: str) -> list[Order]:
        return [order for order in self.find_orders(venue_id=venue_id) if order.rating is not None]

    def find_rated_for_driver(self, driver_id: str) -> list[Order]:
        return [order for order in self.find_orders(driver_id=driver_id) if order.driver_rating is not None]
