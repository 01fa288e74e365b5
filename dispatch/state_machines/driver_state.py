from drivers.models import DriverStatus, WORKING_STATUSES

from ..exceptions import BusinessRejection


def can_accept_more_orders(driver) -> bool:
    """
    A driver can take one more order when they are working (available or busy),
    their account is active, and the batch is below capacity.
    """
    return (
        DriverStatus(driver.status) in WORKING_STATUSES
        and driver.is_active
        and len(driver.active_orders or []) < driver.max_orders_capacity
    )


def add_active_order(driver, order_id):
    """
    Append order_id to the driver's batch and flip them to busy.
    Refuses duplicates and anything past capacity.
    """
    active_orders = list(driver.active_orders or [])

    if order_id in active_orders:
        raise BusinessRejection(f"Driver {driver.pk} already carries order {order_id}")

    if len(active_orders) >= driver.max_orders_capacity:
        raise BusinessRejection(
            f"Driver {driver.pk} is at capacity ({len(active_orders)}/{driver.max_orders_capacity} orders)"
        )

    active_orders.append(order_id)
    driver.active_orders = active_orders
    if DriverStatus(driver.status) != DriverStatus.SUSPENDED:
        driver.status = DriverStatus.BUSY.value
    return active_orders


def remove_active_order(driver, order_id):
    """
    Drop order_id from the batch. An emptied batch returns the driver to available
    unless they are suspended or offline.
    """
    active_orders = [active_id for active_id in (driver.active_orders or []) if active_id != order_id]
    driver.active_orders = active_orders

    if not active_orders and DriverStatus(driver.status) == DriverStatus.BUSY:
        driver.status = DriverStatus.AVAILABLE.value
    return active_orders
