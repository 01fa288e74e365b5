import logging

from rest_framework import status, viewsets
from rest_framework.decorators import action
from rest_framework.response import Response
from rest_framework.views import exception_handler

from dispatch.exceptions import DispatchError
from dispatch.services import get_dispatch_services
from users.models import Driver
from users.serializers import DriverSerializer
from .models import Order
from .serializers import (
    AcceptOrderSerializer,
    AssignDriverSerializer,
    BatchEligibilitySerializer,
    CancelOrderSerializer,
    DriverCancelSerializer,
    NearbyOrdersQuerySerializer,
    OrderDetailSerializer,
    OrderSerializer,
    ReasonSerializer,
)

logger = logging.getLogger(__name__)


def dispatch_exception_handler(exc, context):
    """
    DispatchError -> {"error": message} with the status the error carries.
    Everything else goes through DRF's default handler.
    """
    if isinstance(exc, DispatchError):
        if exc.status_code >= 500:
            logger.error("Dispatch failure in %s: %s", context.get("view").__class__.__name__, exc.message)
        return Response({"error": exc.message}, status=exc.status_code)
    return exception_handler(exc, context)


def _actor(request):
    # Upstream auth proxy forwards who is acting on the order.
    return request.headers.get("X-Actor")


def _validated(serializer_class, data):
    serializer = serializer_class(data=data)
    serializer.is_valid(raise_exception=True)
    return serializer.validated_data


class OrderViewSet(viewsets.ReadOnlyModelViewSet):
    """
    Orders are created upstream; this API only moves them through dispatch.
    """
    queryset = Order.objects.select_related('restaurant', 'client', 'driver').order_by('-created_at')
    serializer_class = OrderSerializer
    lookup_value_regex = r"\d+"

    def get_serializer_class(self):
        if self.action == 'retrieve':
            return OrderDetailSerializer
        return OrderSerializer

    def get_queryset(self):
        queryset = super().get_queryset()
        status_filter = self.request.query_params.get('status')
        if status_filter:
            queryset = queryset.filter(status=status_filter)
        return queryset

    def _order_response(self, order, **extra):
        order.refresh_from_db()
        data = OrderSerializer(order).data
        data.update(extra)
        return Response(data)

    @property
    def dispatcher(self):
        return get_dispatch_services().dispatcher

    @action(detail=True, methods=['post'])
    def accept(self, request, pk=None):
        """Restaurant accepts the order with an optional preparation time (minutes)."""
        data = _validated(AcceptOrderSerializer, request.data)
        order = self.dispatcher.accept(int(pk), changed_by=_actor(request),
                                       preparation_time=data.get('preparation_time'))
        return self._order_response(order)

    @action(detail=True, methods=['post'])
    def prepare(self, request, pk=None):
        order = self.get_object()
        started = self.dispatcher.start_preparing(order.pk, changed_by=_actor(request))
        return self._order_response(order, changed=started)

    @action(detail=True, methods=['post'])
    def assign(self, request, pk=None):
        """Bind a driver (delivery) or hand the order over at the counter (pickup)."""
        data = _validated(AssignDriverSerializer, request.data)
        result = self.dispatcher.assign_driver_or_complete(int(pk), data.get('driver_id'), changed_by=_actor(request))
        route = result.route_to_restaurant
        return self._order_response(
            result.order,
            driver_to_restaurant_distance_km=route.distance_km if route else None,
            driver_to_restaurant_estimated_time_min=route.time_min if route else None,
        )

    @action(detail=True, methods=['post'])
    def deliver(self, request, pk=None):
        order = self.dispatcher.start_delivering(int(pk), changed_by=_actor(request))
        return self._order_response(order)

    @action(detail=True, methods=['post'])
    def arrived(self, request, pk=None):
        result = self.dispatcher.driver_arrived(int(pk), changed_by=_actor(request))
        return self._order_response(result.order, route=result.route.as_dict() if result.route else None)

    @action(detail=True, methods=['post'])
    def complete(self, request, pk=None):
        order = self.dispatcher.complete_delivery(int(pk), changed_by=_actor(request))
        return self._order_response(order)

    @action(detail=True, methods=['post'])
    def decline(self, request, pk=None):
        data = _validated(ReasonSerializer, request.data)
        order = self.dispatcher.decline(int(pk), reason=data['reason'] or None, changed_by=_actor(request))
        return self._order_response(order)

    @action(detail=True, methods=['post'])
    def cancel(self, request, pk=None):
        data = _validated(CancelOrderSerializer, request.data)
        order = self.dispatcher.cancel_order(int(pk), changed_by=_actor(request),
                                             reason=data['reason'] or None, refunded=data['refunded'])
        return self._order_response(order)

    @action(detail=True, methods=['post'], url_path='driver-cancel')
    def driver_cancel(self, request, pk=None):
        data = _validated(DriverCancelSerializer, request.data)
        result = get_dispatch_services().cancellations.driver_cancel(int(pk), data['driver_id'], data['reason'])
        return Response(result.as_dict(), status=status.HTTP_200_OK)


class DriverViewSet(viewsets.ReadOnlyModelViewSet):
    queryset = Driver.objects.all().order_by('id')
    serializer_class = DriverSerializer
    lookup_value_regex = r"\d+"

    @action(detail=True, methods=['get'], url_path='nearby-orders')
    def nearby_orders(self, request, pk=None):
        query = _validated(NearbyOrdersQuerySerializer, request.query_params)
        page = get_dispatch_services().nearby.find(
            int(pk),
            radius=query.get('radius'),
            statuses=query.get('status'),
            min_fee=query.get('min_fee'),
            max_distance=query.get('max_distance'),
            page=query.get('page', 1),
            page_size=query.get('page_size'),
        )
        return Response(page.as_dict())

    @action(detail=True, methods=['post'], url_path='batch-eligibility')
    def batch_eligibility(self, request, pk=None):
        data = _validated(BatchEligibilitySerializer, request.data)
        result = get_dispatch_services().eligibility.can_accept(int(pk), data['order_id'])
        return Response(result.as_dict())
