from rest_framework import serializers
from .models import Client, Driver


class ClientSerializer(serializers.ModelSerializer):
    phone_number = serializers.CharField(read_only=True)

    class Meta:
        model = Client
        fields = ['id', 'first_name', 'last_name', 'phone_number', 'address']
        read_only_fields = ['id']


class DriverSummarySerializer(serializers.ModelSerializer):
    """What a client or restaurant sees about the driver carrying an order."""
    phone = serializers.CharField(read_only=True)

    class Meta:
        model = Driver
        fields = ['id', 'driver_code', 'first_name', 'last_name', 'phone', 'vehicle_type']
        read_only_fields = fields


class DriverSerializer(serializers.ModelSerializer):
    phone = serializers.CharField(read_only=True)

    class Meta:
        model = Driver
        fields = ['id', 'driver_code', 'first_name', 'last_name', 'phone', 'email', 'vehicle_type',
                  'status', 'current_lat', 'current_lng', 'active_orders', 'max_orders_capacity',
                  'cancellation_count', 'total_deliveries', 'is_verified', 'is_active']
        # Batch and counters are owned by dispatch.
        read_only_fields = ['id', 'active_orders', 'cancellation_count', 'total_deliveries', 'status']
