from django.urls import path
from .views import ProcessQueueView

urlpatterns = [
    path("process", ProcessQueueView.as_view()),
]
