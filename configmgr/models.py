from django.db import models

class SystemSetting(models.Model):
    """
    Simple key/value settings store for shop rules that admins tune at runtime.
    Example keys:
      - SLOT_INTERVAL_MINUTES (e.g., '30')
      - CANCELLATION_WINDOW_HOURS (e.g., '24')
      - SHOP_NAME, SHOP_ADMIN_PHONE
    """
    key = models.CharField(max_length=100, unique=True)
    value = models.CharField(max_length=200)

    def __str__(self):
        return f"{self.key}={self.value}"
