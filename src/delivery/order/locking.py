"""Lock keys for order commands.

Besides the records a command names, an order command also touches the
driver currently carrying the order (freed on delivery or failure, moved on
location updates), so that driver's lock is held as well.
"""

from protean.exceptions import ObjectNotFoundError
from protean.utils.globals import current_domain

from delivery.concurrency import lock_keys_for, process_exclusively, record_key
from delivery.order.order import Order


def order_lock_keys(command) -> list[str]:
    keys = lock_keys_for(command)
    order_id = getattr(command, "order_id", None)
    if not order_id:
        return keys
    try:
        order = current_domain.repository_for(Order).get(order_id)
    except ObjectNotFoundError:
        # The handler raises NotFound itself
        return keys
    if order.driver_id:
        keys.append(record_key("driver", order.driver_id))
    return keys


def process_order_command(command):
    return process_exclusively(command, keys_for=order_lock_keys)
