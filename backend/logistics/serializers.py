from rest_framework import serializers

from orders.models import OrderStatus
from users.serializers import ClientSerializer, DriverSummarySerializer
from .models import Order, OrderStatusHistory, Restaurant


class RestaurantSerializer(serializers.ModelSerializer):
    class Meta:
        model = Restaurant
        fields = ['id', 'name', 'address', 'phone', 'lat', 'lng', 'is_open']


class OrderStatusHistorySerializer(serializers.ModelSerializer):
    class Meta:
        model = OrderStatusHistory
        fields = ['old_status', 'new_status', 'changed_by', 'note', 'created_at']


class OrderSerializer(serializers.ModelSerializer):
    restaurant = RestaurantSerializer(read_only=True)
    client = ClientSerializer(read_only=True)
    driver = DriverSummarySerializer(read_only=True)

    class Meta:
        model = Order
        fields = '__all__'
        # Status only moves through the dispatch actions.
        read_only_fields = [field.name for field in Order._meta.fields]


class OrderDetailSerializer(OrderSerializer):
    status_history = OrderStatusHistorySerializer(many=True, read_only=True)


# ---- Action payloads ----

class AcceptOrderSerializer(serializers.Serializer):
    # Out-of-range values are clamped by dispatch, not rejected.
    preparation_time = serializers.IntegerField(required=False, allow_null=True)


class AssignDriverSerializer(serializers.Serializer):
    driver_id = serializers.IntegerField(required=False, allow_null=True)


class ReasonSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="")


class CancelOrderSerializer(ReasonSerializer):
    refunded = serializers.BooleanField(required=False, default=False)


class DriverCancelSerializer(ReasonSerializer):
    driver_id = serializers.IntegerField()


class NearbyOrdersQuerySerializer(serializers.Serializer):
    radius = serializers.IntegerField(required=False, min_value=1)
    status = serializers.ListField(
        child=serializers.ChoiceField(choices=OrderStatus.choices()),
        required=False,
    )
    min_fee = serializers.DecimalField(max_digits=10, decimal_places=2, required=False)
    max_distance = serializers.FloatField(required=False, min_value=0)
    page = serializers.IntegerField(required=False, min_value=1, default=1)
    page_size = serializers.IntegerField(required=False, min_value=1)


class BatchEligibilitySerializer(serializers.Serializer):
    order_id = serializers.IntegerField()
