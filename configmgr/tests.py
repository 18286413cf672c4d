from django.test import TestCase, override_settings

from .models import SystemSetting
from .settings_store import get_int_setting, get_setting


class SettingsStoreTests(TestCase):
    @override_settings(SHOP_NAME="Corner Garage")
    def test_row_overrides_django_setting(self):
        self.assertEqual(get_setting("SHOP_NAME"), "Corner Garage")
        SystemSetting.objects.create(key="SHOP_NAME", value="  Mr. Memo Auto  ")
        self.assertEqual(get_setting("SHOP_NAME"), "Mr. Memo Auto")

    def test_missing_key_uses_default(self):
        self.assertEqual(get_setting("NO_SUCH_KEY", "fallback"), "fallback")

    @override_settings(SLOT_INTERVAL_MINUTES=30)
    def test_int_setting_falls_back_on_bad_values(self):
        SystemSetting.objects.create(key="SLOT_INTERVAL_MINUTES", value="soon")
        with self.assertLogs("configmgr.settings_store", level="WARNING"):
            self.assertEqual(get_int_setting("SLOT_INTERVAL_MINUTES", 15), 30)

        SystemSetting.objects.filter(key="SLOT_INTERVAL_MINUTES").update(value="0")
        with self.assertLogs("configmgr.settings_store", level="WARNING"):
            self.assertEqual(get_int_setting("SLOT_INTERVAL_MINUTES", 15), 30)

        SystemSetting.objects.filter(key="SLOT_INTERVAL_MINUTES").update(value="20")
        self.assertEqual(get_int_setting("SLOT_INTERVAL_MINUTES", 15), 20)

    def test_minimum_zero_allows_zero(self):
        SystemSetting.objects.create(key="CANCELLATION_WINDOW_HOURS", value="0")
        self.assertEqual(get_int_setting("CANCELLATION_WINDOW_HOURS", 24, minimum=0), 0)
