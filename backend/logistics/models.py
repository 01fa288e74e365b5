from django.db import models
from django.utils import timezone

from orders.models import OrderStatus, OrderType


class Restaurant(models.Model):
    """
    Read-only pickup point for dispatch.
    Menus and catalog live in another service.
    """
    name = models.CharField(max_length=255)
    address = models.TextField(blank=True)
    phone = models.CharField(max_length=32, blank=True)

    # Geolocation for driver broadcasts and batching
    lat = models.FloatField()
    lng = models.FloatField()

    is_open = models.BooleanField(default=True)

    def get_coordinates(self):
        return (self.lat, self.lng)

    def __str__(self):
        return self.name


class Order(models.Model):
    """
    Central model for the dispatch workflow.
    Tracks lifecycle: pending -> accepted -> preparing -> assigned -> delivering -> arrived -> delivered.
    Pickup orders go preparing -> delivered and never carry a driver.
    """
    order_number = models.CharField(max_length=32, unique=True, blank=True, null=True)

    status = models.CharField(max_length=20, choices=OrderStatus.choices(), default=OrderStatus.PENDING.value)
    order_type = models.CharField(max_length=20, choices=OrderType.choices(), default=OrderType.DELIVERY.value)

    # Relationships
    restaurant = models.ForeignKey(Restaurant, on_delete=models.PROTECT, related_name='orders')
    # Counter-created orders have no client
    client = models.ForeignKey('users.Client', on_delete=models.SET_NULL, null=True, blank=True, related_name='orders')
    # Driver is bound only while the order is assigned / delivering / arrived
    driver = models.ForeignKey('users.Driver', on_delete=models.SET_NULL, null=True, blank=True, related_name='orders')

    delivery_address = models.TextField(blank=True)
    # Coordinates where the driver needs to go (delivery orders only)
    delivery_lat = models.FloatField(blank=True, null=True)
    delivery_lng = models.FloatField(blank=True, null=True)
    delivery_distance = models.FloatField(blank=True, null=True, help_text="Restaurant to client, km")

    subtotal = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    delivery_fee = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    total_amount = models.DecimalField(max_digits=10, decimal_places=2, default=0)

    preparation_time = models.PositiveIntegerField(blank=True, null=True, help_text="Minutes")
    estimated_delivery_time = models.DateTimeField(blank=True, null=True)

    # One timestamp per state reached
    accepted_at = models.DateTimeField(blank=True, null=True)
    preparing_started_at = models.DateTimeField(blank=True, null=True)
    assigned_at = models.DateTimeField(blank=True, null=True)
    delivering_started_at = models.DateTimeField(blank=True, null=True)
    arrived_at = models.DateTimeField(blank=True, null=True)
    delivered_at = models.DateTimeField(blank=True, null=True)
    cancelled_at = models.DateTimeField(blank=True, null=True)

    decline_reason = models.TextField(blank=True, null=True)

    created_at = models.DateTimeField(default=timezone.now)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["status", "order_type"]),
            models.Index(fields=["delivery_lat", "delivery_lng"]),
        ]

    def get_delivery_coordinates(self):
        if self.delivery_lat is None or self.delivery_lng is None:
            return None
        return (self.delivery_lat, self.delivery_lng)

    @property
    def is_delivery(self):
        return self.order_type == OrderType.DELIVERY.value

    def __str__(self):
        return f"Order #{self.order_number or self.pk} - {self.status}"


class OrderStatusHistory(models.Model):
    """
    Append-only audit trail of status changes.
    """
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='status_history')
    old_status = models.CharField(max_length=20, choices=OrderStatus.choices(), blank=True, null=True)
    new_status = models.CharField(max_length=20, choices=OrderStatus.choices())
    changed_by = models.CharField(max_length=100, blank=True, null=True)
    note = models.TextField(blank=True, null=True)
    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["created_at", "id"]
        verbose_name_plural = "order status history"

    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise ValueError("Status history records are immutable")
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError("Status history records are immutable")

    def __str__(self):
        return f"{self.order_id}: {self.old_status} -> {self.new_status}"


class AdminNotification(models.Model):
    """
    Escalation raised to the back office.
    """
    class Type(models.TextChoices):
        PENDING_ORDER_TIMEOUT = "pending_order_timeout", "Pending order timeout"
        DRIVER_ASSIGNMENT_TIMEOUT = "driver_assignment_timeout", "No driver while preparing"
        DRIVER_EXCESSIVE_CANCELLATIONS = "driver_excessive_cancellations", "Driver excessive cancellations"

    type = models.CharField(max_length=40, choices=Type.choices)
    order = models.ForeignKey(Order, on_delete=models.CASCADE, null=True, blank=True, related_name='admin_notifications')
    restaurant = models.ForeignKey(Restaurant, on_delete=models.CASCADE, null=True, blank=True, related_name='admin_notifications')
    driver = models.ForeignKey('users.Driver', on_delete=models.CASCADE, null=True, blank=True, related_name='admin_notifications')

    message = models.TextField()
    details = models.JSONField(default=dict, blank=True)

    is_read = models.BooleanField(default=False)
    is_resolved = models.BooleanField(default=False)

    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["type"]),
            models.Index(fields=["is_resolved"]),
        ]

    def __str__(self):
        return f"{self.type} ({self.created_at:%Y-%m-%d %H:%M})"


class SystemConfig(models.Model):
    """
    Admin-tunable key/value settings. Dispatch only reads them (see dispatch/config.py).
    """
    config_key = models.CharField(max_length=100, unique=True)
    config_value = models.JSONField()
    description = models.TextField(blank=True, null=True)
    updated_at = models.DateTimeField(auto_now=True)

    @classmethod
    def get(cls, key, default=None):
        config = cls.objects.filter(config_key=key).first()
        return config.config_value if config else default

    @classmethod
    def set(cls, key, value, description=None):
        defaults = {"config_value": value}
        if description:
            defaults["description"] = description
        config, _ = cls.objects.update_or_create(config_key=key, defaults=defaults)
        return config

    def __str__(self):
        return f"{self.config_key}={self.config_value!r}"


class ScheduledTask(models.Model):
    """
    Durable escalation timer, swept by `manage.py run_escalations`.
    One task per (order, task_type).
    """
    class Status(models.TextChoices):
        PENDING = "pending", "Pending"
        DONE = "done", "Done"
        SKIPPED = "skipped", "Skipped"
        FAILED = "failed", "Failed"

    task_type = models.CharField(max_length=40)
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='scheduled_tasks')
    due_at = models.DateTimeField()
    payload = models.JSONField(default=dict, blank=True)

    status = models.CharField(max_length=20, choices=Status.choices, default=Status.PENDING)
    attempts = models.PositiveIntegerField(default=0)
    last_error = models.TextField(blank=True, null=True)
    processed_at = models.DateTimeField(blank=True, null=True)

    created_at = models.DateTimeField(default=timezone.now)

    class Meta:
        ordering = ["due_at", "id"]
        constraints = [
            models.UniqueConstraint(fields=["order", "task_type"], name="unique_task_per_order"),
        ]
        indexes = [
            models.Index(fields=["status", "due_at"]),
        ]

    def __str__(self):
        return f"{self.task_type} for order {self.order_id} due {self.due_at:%H:%M:%S} ({self.status})"
