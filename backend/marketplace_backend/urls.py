from django.urls import path, include
from rest_framework.routers import DefaultRouter
from logistics.views import OrderViewSet, DriverViewSet

router = DefaultRouter()
router.register(r'orders', OrderViewSet, basename='order')
router.register(r'drivers', DriverViewSet, basename='driver')

urlpatterns = [
    path('api/v1/', include(router.urls)),
]
