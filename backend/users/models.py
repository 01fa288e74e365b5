from django.db import models
from phonenumber_field.modelfields import PhoneNumberField

from drivers.models import DriverStatus, VehicleType


class Client(models.Model):
    """
    Read model for the customer who placed an order.
    Accounts and authentication are managed upstream.
    """
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    phone_number = PhoneNumberField(blank=True, null=True)
    address = models.TextField(blank=True)

    created_at = models.DateTimeField(auto_now_add=True)

    def get_full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    def __str__(self):
        return self.get_full_name()


class Driver(models.Model):
    """
    A delivery driver and the batch of orders they currently carry.

    active_orders keeps order ids in the order they were assigned.
    Invariants:
    - len(active_orders) <= max_orders_capacity
    - status == busy  <=>  active_orders is non-empty (unless suspended/offline)
    """
    driver_code = models.CharField(max_length=20, unique=True)
    first_name = models.CharField(max_length=100)
    last_name = models.CharField(max_length=100)
    phone = PhoneNumberField(blank=True, null=True)
    email = models.EmailField(blank=True, null=True)
    vehicle_type = models.CharField(max_length=20, choices=VehicleType.choices(), default=VehicleType.MOTORCYCLE.value)

    status = models.CharField(max_length=20, choices=DriverStatus.choices(), default=DriverStatus.OFFLINE.value)

    # Last GPS fix
    current_lat = models.FloatField(blank=True, null=True)
    current_lng = models.FloatField(blank=True, null=True)
    last_active_at = models.DateTimeField(blank=True, null=True)

    active_orders = models.JSONField(default=list, blank=True)
    max_orders_capacity = models.PositiveIntegerField(default=5)

    cancellation_count = models.PositiveIntegerField(default=0)
    total_deliveries = models.PositiveIntegerField(default=0)

    is_verified = models.BooleanField(default=False)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        indexes = [
            models.Index(fields=["status"]),
            models.Index(fields=["current_lat", "current_lng"]),
        ]

    def get_full_name(self):
        return f"{self.first_name} {self.last_name}".strip()

    def get_current_coordinates(self):
        if self.current_lat is None or self.current_lng is None:
            return None
        return (self.current_lat, self.current_lng)

    def active_orders_count(self):
        return len(self.active_orders or [])

    def __str__(self):
        return f"{self.driver_code} ({self.status})"
