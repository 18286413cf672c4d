from django.urls import include, path
from rest_framework.routers import SimpleRouter

from .views import InvoiceViewSet, ProductViewSet

router = SimpleRouter()
router.register(r"products", ProductViewSet, basename="product")
router.register(r"invoices", InvoiceViewSet, basename="invoice")

urlpatterns = [
    path("", include(router.urls)),
]
